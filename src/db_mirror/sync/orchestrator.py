"""Sync orchestrator: copy every catalog table from one live database to another.

Steps of a run, all sequential:

1. Refuse to run when source and destination resolve to the same
   ``host:port/database``.
2. Ping both databases.  Nothing is written unless both answer.
3. Build the user identity map (``users`` is always resolved first).
4. For every other table in catalog order: read the source, remap user
   foreign keys, write with the chosen ``TransferMode``.  A table that
   cannot be read, including one whose connection drops, is reported as
   skipped and the run continues.
5. Invalidate caches of the tables that were written to, even when the
   run stops on an unexpected error.

Completed tables are never rolled back; re-running the same sync is safe.

Usage:
    from db_mirror.adapters import AsyncPostgresAdapter
    from db_mirror.sync import TransferMode, sync_databases

    source = AsyncPostgresAdapter(prod_url)
    destination = AsyncPostgresAdapter(dev_url)
    report = await sync_databases(source, destination, TransferMode.UPSERT_OVERWRITE)
    for row in report.as_rows():
        print(row)
"""

import logging
from collections.abc import Sequence

from db_mirror.adapters.base import DatabaseClient, TableReadError
from db_mirror.cache import MaterialsCache, invalidate_tables
from db_mirror.catalog import USERS_TABLE, TableDescriptor, list_tables
from db_mirror.sync.models import RunReport, TableReport, TableStatus
from db_mirror.sync.remap import build_identity_map, remap_row
from db_mirror.sync.transfer import TransferMode, transfer_rows

logger = logging.getLogger(__name__)


class SyncError(Exception):
    """Base class for errors that abort a sync before anything is written."""


class SelfSyncError(SyncError):
    """Raised when source and destination are the same database."""

    def __init__(self, target: str) -> None:
        self.target = target
        super().__init__(
            f"Source and destination are the same database ({target}); refusing to sync"
        )


class ConnectivityError(SyncError):
    """Raised when either side of a sync does not answer a ping."""

    def __init__(self, role: str, target: str, reason: str) -> None:
        self.role = role
        self.target = target
        self.reason = reason
        super().__init__(f"Cannot connect to {role} database ({target}): {reason}")


def check_distinct(source: DatabaseClient, destination: DatabaseClient) -> None:
    """Raise ``SelfSyncError`` if both clients point at one database."""
    if source.target == destination.target:
        raise SelfSyncError(source.target)


async def check_connectivity(client: DatabaseClient, role: str) -> None:
    """Ping ``client``; raise ``ConnectivityError`` on any failure."""
    try:
        ok = await client.test_connection()
    except Exception as e:
        reason = str(e).splitlines()[0] if str(e) else type(e).__name__
        raise ConnectivityError(role, client.target, reason) from e
    if not ok:
        raise ConnectivityError(role, client.target, "ping returned no result")


def _skipped(table: TableDescriptor, note: str) -> TableReport:
    return TableReport(table=table.name, status=TableStatus.SKIPPED, note=note)


async def _read_rows(client: DatabaseClient, table: str) -> list[dict]:
    """``select_all`` with a dropped or refused connection raised as ``TableReadError``."""
    try:
        return await client.select_all(table)
    except OSError as e:
        raise TableReadError(table, str(e) or type(e).__name__) from e


async def sync_databases(
    source: DatabaseClient,
    destination: DatabaseClient,
    mode: TransferMode = TransferMode.UPSERT_OVERWRITE,
    tables: Sequence[TableDescriptor] | None = None,
    cache: MaterialsCache | None = None,
) -> RunReport:
    """Copy ``tables`` (default: the whole catalog) from source to destination.

    Args:
        source: Adapter to read from.
        destination: Adapter to write to.
        mode: Conflict policy for every table except ``users``, which is
            always resolved by email and inserted only if absent.
        tables: Subset of catalog entries, in catalog order.
        cache: Materials cache to invalidate; defaults to the process-wide one.

    Returns:
        ``RunReport`` with one ``TableReport`` per table in order.

    Raises:
        SelfSyncError: Source and destination are the same database.
        ConnectivityError: Either database is unreachable.
    """
    check_distinct(source, destination)
    await check_connectivity(source, "source")
    await check_connectivity(destination, "destination")

    selected = tuple(tables) if tables is not None else list_tables()
    logger.info(
        "Sync %s -> %s (%s, %d tables)",
        source.target,
        destination.target,
        mode.value,
        len(selected),
    )

    reports: list[TableReport] = []
    anomalies: list[str] = []
    unresolved: list = []
    identity_map: dict = {}
    written: list[str] = []

    try:
        users_table = next((t for t in selected if t.name == USERS_TABLE), None)
        if users_table is not None:
            try:
                source_users = await _read_rows(source, users_table.name)
                destination_users = await _read_rows(destination, users_table.name)
            except TableReadError as e:
                logger.warning("%s", e)
                reports.append(_skipped(users_table, e.reason))
                anomalies.append(f"{users_table.name}: skipped ({e.reason})")
            else:
                written.append(users_table.name)
                resolution = await build_identity_map(
                    source_users, destination_users, destination, users_table
                )
                identity_map = resolution.identity_map
                unresolved = resolution.unresolved
                reports.append(resolution.report)
                if unresolved:
                    anomalies.append(
                        f"{users_table.name}: {len(unresolved)} users unresolved; "
                        "rows referencing them keep their original ids"
                    )

        for table in selected:
            if table.name == USERS_TABLE:
                continue

            try:
                rows = await _read_rows(source, table.name)
            except TableReadError as e:
                logger.warning("%s", e)
                reports.append(_skipped(table, e.reason))
                anomalies.append(f"{table.name}: skipped ({e.reason})")
                continue

            if not rows:
                logger.debug("%s: no rows in source", table.name)
                reports.append(TableReport(table=table.name))
                continue

            rows = [remap_row(row, table, identity_map) for row in rows]
            written.append(table.name)
            report = await transfer_rows(rows, table, destination, mode)
            reports.append(report)
            if report.status is TableStatus.PARTIAL:
                anomalies.append(f"{table.name}: {report.note}")
    finally:
        # Tables written before an unexpected error still reach the cache
        invalidate_tables(written, cache)

    run = RunReport(
        source=source.target,
        destination=destination.target,
        tables=tuple(reports),
        unresolved_users=tuple(unresolved),
        anomalies=tuple(anomalies),
    )
    totals = run.totals()
    logger.info(
        "Sync finished: %d inserted, %d updated, %d skipped, %d failed",
        totals["inserted"],
        totals["updated"],
        totals["skipped"],
        totals["failed"],
    )
    return run


async def compare_counts(
    source: DatabaseClient,
    destination: DatabaseClient,
    tables: Sequence[TableDescriptor] | None = None,
) -> dict[str, tuple[int | None, int | None]]:
    """Row counts per table on both sides, ``None`` where a table cannot be read."""
    counts: dict[str, tuple[int | None, int | None]] = {}
    for table in tables if tables is not None else list_tables():
        pair: list[int | None] = []
        for client in (source, destination):
            try:
                pair.append(await client.count_rows(table.name))
            except (TableReadError, OSError):
                pair.append(None)
        counts[table.name] = (pair[0], pair[1])
    return counts
