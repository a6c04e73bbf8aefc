"""CLI for database profiles, live sync and snapshot backup/restore.

Usage:
    DB_PROFILE=dev db-mirror connect
    db-mirror disconnect
    db-mirror status
    db-mirror profiles
    db-mirror export --profile production
    db-mirror export --output snapshot.json --reason before-migration
    db-mirror import snapshot.json --yes
    db-mirror sync --from production --to dev
    db-mirror sync --from production --to dev --mode insert --confirm
    db-mirror backups list
    db-mirror backups prune --days 14

Commands:
    connect    - Connect to a profile and check every catalog table exists
    disconnect - Forget the validated profile
    status     - Show current connection status
    profiles   - List available profiles
    export     - Export a database to a JSON snapshot
    import     - Replace a database's contents with a JSON snapshot
    sync       - Copy every catalog table from one profile to another
    backups    - List or prune snapshot files in the backup directory
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from db_mirror.backup import (
    InvalidBackupNameError,
    RestoreError,
    export_snapshot,
    export_to_file,
    list_backups,
    prune_backups,
    restore_from_file,
    safe_backup_path,
    save_backup,
)
from db_mirror.cache import configure_materials_cache
from db_mirror.catalog import TableDescriptor, find_table, list_tables
from db_mirror.config import DatabaseConfig, load_db_config
from db_mirror.factory import (
    ProfileNotFoundError,
    clear_profile_lock,
    connect_and_validate,
    get_active_profile_name,
    get_adapter,
    read_profile_lock,
    resolve_sync_profiles,
    resolve_url,
)
from db_mirror.sync import (
    RunReport,
    SyncError,
    TableStatus,
    TransferMode,
    compare_counts,
    sync_databases,
)
from db_mirror.sync.orchestrator import check_connectivity, check_distinct

console = Console()

_STATUS_STYLE = {
    TableStatus.SYNCED: "green",
    TableStatus.PARTIAL: "yellow",
    TableStatus.SKIPPED: "red",
}


# ============================================================================
# Helpers
# ============================================================================


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def _load_config() -> DatabaseConfig | None:
    """Load db.toml, printing the error and returning ``None`` if missing."""
    try:
        config = load_db_config()
    except FileNotFoundError as e:
        console.print(f"[red]Error: {e}[/red]")
        return None
    configure_materials_cache(config.cache.materials_ttl_seconds)
    return config


def _parse_tables(value: str | None) -> tuple[TableDescriptor, ...] | None:
    """Turn ``--tables a,b`` into catalog entries, keeping catalog order.

    Raises:
        ValueError: If a name is not in the catalog.
    """
    if not value:
        return None
    names = {t.strip() for t in value.split(",") if t.strip()}
    unknown = sorted(n for n in names if find_table(n) is None)
    if unknown:
        raise ValueError(f"Unknown tables: {', '.join(unknown)}")
    return tuple(t for t in list_tables() if t.name in names)


def _resolve_snapshot_path(value: str, backup_dir: Path) -> Path:
    """A path on disk, or else the name of a file in the backup directory."""
    path = Path(value)
    if path.exists():
        return path
    return safe_backup_path(backup_dir, value)


def _print_run_report(report: RunReport) -> None:
    table = Table(title="Sync Result", show_header=True, header_style="bold")
    table.add_column("Table", style="dim")
    table.add_column("Inserted", justify="right", style="green")
    table.add_column("Updated", justify="right", style="yellow")
    table.add_column("Skipped", justify="right")
    table.add_column("Failed", justify="right", style="red")
    table.add_column("Status")

    for t in report.tables:
        style = _STATUS_STYLE[t.status]
        table.add_row(
            t.table,
            str(t.inserted) if t.inserted else "-",
            str(t.updated) if t.updated else "-",
            str(t.skipped) if t.skipped else "-",
            str(t.failed) if t.failed else "-",
            f"[{style}]{t.status.value}[/{style}]",
        )

    totals = report.totals()
    table.add_row(
        "[bold]total[/bold]",
        str(totals["inserted"]),
        str(totals["updated"]),
        str(totals["skipped"]),
        str(totals["failed"]),
        "",
    )
    console.print(table)

    if report.anomalies:
        console.print("\n[bold yellow]Anomalies:[/bold yellow]")
        for note in report.anomalies:
            console.print(f"  - {note}")


# ============================================================================
# Async command implementations
# ============================================================================


async def _async_connect(args: argparse.Namespace) -> int:
    """Async implementation for connect command.

    Returns:
        0 on success, 1 on failure.
    """
    env_prefix = getattr(args, "env_prefix", "")

    previous_profile = read_profile_lock()

    console.print("Connecting to database...", style="dim")

    result = await connect_and_validate(
        profile_name=args.profile, env_prefix=env_prefix
    )

    if result.success:
        console.print()
        console.print(
            f"[bold green]v[/bold green] Connected to profile: "
            f"[bold cyan]{result.profile_name}[/bold cyan] ({result.target})"
        )
        console.print(f"  Catalog tables: [green]{len(list_tables())} present[/green]")

        if previous_profile and previous_profile != result.profile_name:
            console.print(
                f"\n[dim]Switched from[/dim] [bold]{previous_profile}[/bold] "
                f"[dim]to[/dim] [bold cyan]{result.profile_name}[/bold cyan]"
            )
        return 0

    console.print()
    console.print(f"[bold red]x[/bold red] {result.error}")
    if result.missing_tables:
        console.print("\n[bold]Missing tables:[/bold]")
        for name in result.missing_tables:
            console.print(f"  - {name}")
    return 1


async def _async_export(args: argparse.Namespace) -> int:
    """Async implementation for export command."""
    env_prefix = getattr(args, "env_prefix", "")
    config = _load_config()
    if config is None:
        return 1

    try:
        tables = _parse_tables(args.tables)
        adapter = await get_adapter(profile_name=args.profile, env_prefix=env_prefix)
    except (ProfileNotFoundError, KeyError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    backup_dir = Path(config.backup.directory)
    try:
        console.print(f"Exporting [bold]{adapter.target}[/bold]...", style="dim")
        if args.output:
            path = Path(args.output)
            snapshot = await export_to_file(adapter, path, reason=args.reason, tables=tables)
        else:
            snapshot = await export_snapshot(adapter, tables)
            path = save_backup(snapshot, backup_dir, args.reason, {"source": adapter.target})
            prune_backups(backup_dir, config.backup.retention_days)
    except Exception as e:
        console.print(f"\n[bold red]x[/bold red] Export failed: {e}")
        return 1
    finally:
        await adapter.close()

    table = Table(title="Exported Tables", show_header=True, header_style="bold")
    table.add_column("Table", style="dim")
    table.add_column("Rows", justify="right")
    for name, rows in snapshot.items():
        table.add_row(name, str(len(rows)))
    console.print(table)
    console.print(f"[bold green]v[/bold green] Snapshot written to [cyan]{path}[/cyan]")
    return 0


async def _async_import(args: argparse.Namespace) -> int:
    """Async implementation for import command."""
    env_prefix = getattr(args, "env_prefix", "")
    config = _load_config()
    if config is None:
        return 1

    backup_dir = Path(config.backup.directory)
    try:
        path = _resolve_snapshot_path(args.path, backup_dir)
        tables = _parse_tables(args.tables)
        profile_name = args.profile or get_active_profile_name(env_prefix)
    except (InvalidBackupNameError, ProfileNotFoundError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    if not path.exists():
        console.print(f"[red]Error: Snapshot not found: {path}[/red]")
        return 1

    if not args.yes:
        console.print(
            f"This will [bold red]replace all data[/bold red] in profile "
            f"[bold cyan]{profile_name}[/bold cyan] with [cyan]{path}[/cyan]."
        )
        response = input("Continue? (y/N) ")
        if response.lower() not in ["y", "yes"]:
            console.print("Cancelled.")
            return 0

    try:
        adapter = await get_adapter(profile_name=profile_name)
    except KeyError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    try:
        report = await restore_from_file(
            adapter,
            path,
            backup_dir=None if args.no_backup else backup_dir,
            tables=tables,
        )
    except RestoreError as e:
        console.print(f"\n[bold red]x[/bold red] {e}")
        console.print("[dim]The transaction was rolled back; no data changed.[/dim]")
        return 1
    except Exception as e:
        console.print(f"\n[bold red]x[/bold red] Import failed: {e}")
        return 1
    finally:
        await adapter.close()

    table = Table(title="Restored Tables", show_header=True, header_style="bold")
    table.add_column("Table", style="dim")
    table.add_column("Deleted", justify="right", style="red")
    table.add_column("Restored", justify="right", style="green")
    for name, count in report.restored.items():
        table.add_row(name, str(report.deleted.get(name, 0)), str(count))
    console.print(table)

    if report.ignored_keys:
        console.print(
            f"[yellow]Ignored keys with no matching table: "
            f"{', '.join(report.ignored_keys)}[/yellow]"
        )
    console.print(
        f"[bold green]v[/bold green] Restored {report.total_restored} rows "
        f"into [bold cyan]{profile_name}[/bold cyan]"
    )
    return 0


async def _async_sync(args: argparse.Namespace) -> int:
    """Async implementation for sync command.

    Without ``--confirm`` only the row-count comparison is shown.

    Returns:
        0 on success or preview, 1 on fatal error or any failed row.
    """
    config = _load_config()
    if config is None:
        return 1

    try:
        source_name, dest_name = resolve_sync_profiles(args.source, args.destination, config)
        tables = _parse_tables(args.tables)
    except (ProfileNotFoundError, KeyError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    mode = TransferMode(args.mode) if args.mode else config.sync.mode

    source = await get_adapter(database_url=resolve_url(config.profiles[source_name]))
    destination = await get_adapter(database_url=resolve_url(config.profiles[dest_name]))
    try:
        check_distinct(source, destination)
        await check_connectivity(source, "source")
        await check_connectivity(destination, "destination")

        console.print("Comparing profiles...", style="dim")
        console.print(f"  Source: [bold]{source_name}[/bold] ({source.target})")
        console.print(f"  Destination: [bold cyan]{dest_name}[/bold cyan] ({destination.target})")
        console.print(f"  Mode: [dim]{mode.value}[/dim]")

        counts = await compare_counts(source, destination, tables)
        console.print()
        comp_table = Table(title="Data Comparison", show_header=True, header_style="bold")
        comp_table.add_column("", style="dim")
        comp_table.add_column(f"{source_name} (source)", justify="right")
        comp_table.add_column(f"{dest_name} (dest)", justify="right")
        for name, (src_count, dst_count) in counts.items():
            comp_table.add_row(
                name,
                "[red]n/a[/red]" if src_count is None else str(src_count),
                "[red]n/a[/red]" if dst_count is None else str(dst_count),
            )
        console.print(comp_table)

        if not args.confirm:
            console.print()
            console.print(
                "[dim]To actually sync, add[/dim] [cyan]--confirm[/cyan] "
                "[dim]flag.[/dim]"
            )
            return 0

        console.print()
        console.print("Syncing data...", style="dim")
        report = await sync_databases(source, destination, mode, tables)
    except SyncError as e:
        console.print(f"\n[bold red]x[/bold red] {e}")
        return 1
    except Exception as e:
        console.print(f"\n[bold red]x[/bold red] Sync failed: {e}")
        return 1
    finally:
        await source.close()
        await destination.close()

    console.print()
    _print_run_report(report)

    if report.success:
        console.print("\n[bold green]v[/bold green] Sync complete.")
        return 0
    console.print("\n[bold yellow]![/bold yellow] Sync finished with failures.")
    return 1


# ============================================================================
# Sync command wrappers (cmd_status, cmd_profiles, cmd_backups read local files only)
# ============================================================================


def cmd_connect(args: argparse.Namespace) -> int:
    """Connect to database and check catalog tables.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return asyncio.run(_async_connect(args))


def cmd_disconnect(args: argparse.Namespace) -> int:
    """Remove the profile lock file written by ``connect``."""
    profile = read_profile_lock()
    if not profile:
        console.print("[dim]No validated profile to forget.[/dim]")
        return 0

    clear_profile_lock()
    console.print(f"[bold green]v[/bold green] Disconnected from [bold]{profile}[/bold]")
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    """Show current connection status.

    Reads only local files (lock file and TOML config) -- no database calls.

    Returns:
        0 always (informational command).
    """
    profile = read_profile_lock()

    if not profile:
        console.print("[yellow]No validated profile.[/yellow]")
        console.print(
            "[dim]Run:[/dim] [cyan]DB_PROFILE=<name> db-mirror connect[/cyan]"
        )
        return 0

    table = Table(title="Connection Status", show_header=False)
    table.add_column("Key", style="dim")
    table.add_column("Value")

    table.add_row("Current profile", f"[bold cyan]{profile}[/bold cyan]")
    table.add_row("Profile source", ".db-profile (validated)")

    try:
        config = load_db_config()
        if profile in config.profiles:
            p = config.profiles[profile]
            table.add_row("Provider", p.provider)
            if p.description:
                table.add_row("Description", p.description)
        if config.sync.source and config.sync.destination:
            table.add_row(
                "Default sync",
                f"{config.sync.source} -> {config.sync.destination} ({config.sync.mode.value})",
            )
        table.add_row("Backup directory", config.backup.directory)
    except FileNotFoundError:
        table.add_row("Warning", "[yellow]db.toml not found[/yellow]")

    console.print(table)
    return 0


def cmd_profiles(args: argparse.Namespace) -> int:
    """List available profiles from db.toml.

    Returns:
        0 on success, 1 if db.toml not found.
    """
    try:
        config = load_db_config()
    except FileNotFoundError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    current = read_profile_lock()

    table = Table(title="Database Profiles", show_header=True, header_style="bold")
    table.add_column("", width=2)
    table.add_column("Profile")
    table.add_column("Provider")
    table.add_column("Description")

    for name, profile in config.profiles.items():
        marker = "[bold green]*[/bold green]" if name == current else " "
        name_style = "bold cyan" if name == current else ""
        table.add_row(
            marker,
            f"[{name_style}]{name}[/{name_style}]" if name_style else name,
            profile.provider,
            profile.description or "",
        )

    console.print(table)

    if current:
        console.print("\n[bold green]*[/bold green] = current profile")

    return 0


def cmd_export(args: argparse.Namespace) -> int:
    """Export a database to a snapshot file."""
    return asyncio.run(_async_export(args))


def cmd_import(args: argparse.Namespace) -> int:
    """Restore a snapshot file into a database."""
    return asyncio.run(_async_import(args))


def cmd_sync(args: argparse.Namespace) -> int:
    """Sync every catalog table from one profile to another.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return asyncio.run(_async_sync(args))


def cmd_backups_list(args: argparse.Namespace) -> int:
    """List backup files, newest first."""
    config = _load_config()
    if config is None:
        return 1

    backups = list_backups(Path(config.backup.directory))
    if not backups:
        console.print(f"[yellow]No backups in {config.backup.directory}[/yellow]")
        return 0

    table = Table(title="Backups", show_header=True, header_style="bold")
    table.add_column("File")
    table.add_column("Size", justify="right")
    table.add_column("Created", style="dim")
    for info in backups:
        table.add_row(
            info.filename,
            f"{info.size / 1024:.1f} KB",
            info.created.strftime("%Y-%m-%d %H:%M:%S"),
        )
    console.print(table)
    return 0


def cmd_backups_prune(args: argparse.Namespace) -> int:
    """Delete backups older than the retention period."""
    config = _load_config()
    if config is None:
        return 1

    days = args.days or config.backup.retention_days
    deleted = prune_backups(Path(config.backup.directory), days)
    if deleted:
        console.print(f"[bold green]v[/bold green] Deleted {len(deleted)} backup(s) older than {days} days")
    else:
        console.print(f"[dim]No backups older than {days} days.[/dim]")
    return 0


# ============================================================================
# Main entry point
# ============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="db-mirror",
        description="Cross-environment database sync, backup and restore",
    )

    # Global options
    parser.add_argument(
        "--env-prefix",
        default="",
        help=(
            "Prefix for environment variable lookup "
            "(e.g., --env-prefix APP_ reads APP_DB_PROFILE)"
        ),
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Log every table and row-level failure",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # connect command
    p_connect = subparsers.add_parser(
        "connect",
        help="Connect to database and check catalog tables",
    )
    p_connect.add_argument("profile", nargs="?", help="Profile name (default: active profile)")
    p_connect.set_defaults(func=cmd_connect)

    # disconnect command
    p_disconnect = subparsers.add_parser("disconnect", help="Forget the validated profile")
    p_disconnect.set_defaults(func=cmd_disconnect)

    # status command
    p_status = subparsers.add_parser("status", help="Show current connection status")
    p_status.set_defaults(func=cmd_status)

    # profiles command
    p_profiles = subparsers.add_parser("profiles", help="List available profiles")
    p_profiles.set_defaults(func=cmd_profiles)

    # export command
    p_export = subparsers.add_parser("export", help="Export a database to a JSON snapshot")
    p_export.add_argument("--profile", "-p", help="Profile to export (default: active profile)")
    p_export.add_argument(
        "--output",
        "-o",
        help="Snapshot file to write (default: timestamped file in the backup directory)",
    )
    p_export.add_argument("--reason", default="manual", help="Reason recorded in the metadata")
    p_export.add_argument("--tables", help="Comma-separated subset of catalog tables")
    p_export.set_defaults(func=cmd_export)

    # import command
    p_import = subparsers.add_parser(
        "import",
        help="Replace a database's contents with a JSON snapshot",
    )
    p_import.add_argument("path", help="Snapshot file, or the name of a file in the backup directory")
    p_import.add_argument("--profile", "-p", help="Profile to restore into (default: active profile)")
    p_import.add_argument("--tables", help="Comma-separated subset of catalog tables")
    p_import.add_argument("--yes", "-y", action="store_true", help="Skip the confirmation prompt")
    p_import.add_argument(
        "--no-backup",
        action="store_true",
        help="Skip the pre-restore backup of the destination",
    )
    p_import.set_defaults(func=cmd_import)

    # sync command
    p_sync = subparsers.add_parser(
        "sync",
        help="Copy every catalog table from one profile to another",
    )
    p_sync.add_argument("--from", "-f", dest="source", help="Source profile (default: [sync] source)")
    p_sync.add_argument("--to", "-t", dest="destination", help="Destination profile (default: [sync] destination)")
    p_sync.add_argument(
        "--mode",
        choices=[m.value for m in TransferMode],
        help="insert: keep existing rows; upsert: overwrite them (default: [sync] mode)",
    )
    p_sync.add_argument("--tables", help="Comma-separated subset of catalog tables")
    p_sync.add_argument(
        "--confirm",
        action="store_true",
        help="Actually perform the sync (otherwise only compare row counts)",
    )
    p_sync.set_defaults(func=cmd_sync)

    # backups command
    p_backups = subparsers.add_parser("backups", help="Manage snapshot files in the backup directory")
    backups_sub = p_backups.add_subparsers(dest="backups_command", required=True)

    p_list = backups_sub.add_parser("list", help="List backups, newest first")
    p_list.set_defaults(func=cmd_backups_list)

    p_prune = backups_sub.add_parser("prune", help="Delete backups older than the retention period")
    p_prune.add_argument("--days", type=int, help="Retention in days (default: [backup] retention_days)")
    p_prune.set_defaults(func=cmd_backups_prune)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    args = build_parser().parse_args(argv)
    _configure_logging(args.verbose)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
