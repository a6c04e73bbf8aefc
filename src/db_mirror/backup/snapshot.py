"""Snapshot codec: export a whole database to JSON and restore it atomically.

A snapshot is ``{table_name: [row, ...]}`` with one key per catalog table
that had at least one row.  Export reads tables in catalog order and never
writes.  Restore replaces the destination's contents inside ONE transaction:

1. delete every selected table, children first (reverse catalog order);
2. insert snapshot rows, parents first (catalog order);
3. commit only if every statement succeeded.

On any failure the transaction is rolled back and ``RestoreError`` is
raised; the destination is left exactly as it was.

Documents produced by older exports are accepted as-is: table keys and row
keys may be camelCase (``htmlFiles``, ``userId``), and a document wrapped
in a ``{"data": {...}}`` envelope is unwrapped.

Usage:
    from db_mirror.backup.snapshot import export_snapshot, restore_snapshot

    snapshot = await export_snapshot(source)
    report = await restore_snapshot(snapshot, destination)
    print(report.restored)
"""

import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from db_mirror.adapters.base import DatabaseClient, TableReadError
from db_mirror.backup.models import RestoreReport
from db_mirror.backup.store import read_document, save_backup, snapshot_document, write_document
from db_mirror.cache import MaterialsCache, invalidate_tables
from db_mirror.catalog import TableDescriptor, list_tables, resolve_table_name, to_snake_case

logger = logging.getLogger(__name__)

# Top-level keys of file envelopes that carry no rows
_ENVELOPE_KEYS = frozenset({"metadata", "timestamp", "reason", "version", "stats"})


class RestoreError(Exception):
    """Raised when a restore fails and has been rolled back."""

    def __init__(self, message: str, table: str | None = None) -> None:
        self.table = table
        super().__init__(message)


async def export_snapshot(
    source: DatabaseClient,
    tables: Sequence[TableDescriptor] | None = None,
) -> dict[str, list[dict]]:
    """Read every row of every table into a snapshot.

    Tables with no rows are omitted.  Tables that cannot be read are
    logged and omitted; the export still succeeds.
    """
    snapshot: dict[str, list[dict]] = {}
    for table in tables if tables is not None else list_tables():
        try:
            rows = await source.select_all(table.name)
        except TableReadError as e:
            logger.warning("Export: %s", e)
            continue
        if rows:
            snapshot[table.name] = rows
        logger.debug("Export: %s -> %d rows", table.name, len(rows))
    return snapshot


def normalize_snapshot(document: dict[str, Any]) -> tuple[dict[str, list[dict]], list[str]]:
    """Map a loaded document onto catalog table names and snake_case columns.

    Returns:
        ``(snapshot, ignored_keys)``.  ``ignored_keys`` lists top-level keys
        that name no catalog table (or repeat one already seen).

    Raises:
        RestoreError: If a table key does not hold a list of objects.
    """
    data = document.get("data")
    if isinstance(data, dict) and not any(resolve_table_name(k) for k in document):
        document = data

    snapshot: dict[str, list[dict]] = {}
    ignored: list[str] = []
    for key, rows in document.items():
        if key in _ENVELOPE_KEYS:
            continue
        table = resolve_table_name(key)
        if table is None or table in snapshot:
            ignored.append(key)
            continue
        if rows is None:
            continue
        if not isinstance(rows, list) or not all(isinstance(r, dict) for r in rows):
            raise RestoreError(f"Snapshot key '{key}' must hold a list of rows", table)
        snapshot[table] = [{to_snake_case(col): value for col, value in row.items()} for row in rows]

    if ignored:
        logger.warning("Ignoring snapshot keys with no matching table: %s", ", ".join(ignored))
    return snapshot, ignored


async def restore_snapshot(
    snapshot: dict[str, Any],
    destination: DatabaseClient,
    tables: Sequence[TableDescriptor] | None = None,
    cache: MaterialsCache | None = None,
) -> RestoreReport:
    """Replace the contents of ``tables`` on ``destination`` with ``snapshot``.

    Args:
        snapshot: Snapshot or loaded snapshot document.  Missing tables
            mean "no rows": the table is emptied.
        destination: Adapter to restore into.
        tables: Catalog subset to replace (default: all tables).
        cache: Materials cache to invalidate after commit.

    Returns:
        ``RestoreReport`` with per-table deleted/restored counts.

    Raises:
        RestoreError: Any statement failed; nothing was changed.
    """
    selected = tuple(tables) if tables is not None else list_tables()
    rows_by_table, ignored = normalize_snapshot(snapshot)

    deleted: dict[str, int] = {}
    restored: dict[str, int] = {}
    current: str | None = None

    try:
        async with destination.transaction() as tx:
            for table in reversed(selected):
                current = table.name
                deleted[table.name] = await tx.delete_all(table.name)

            for table in selected:
                current = table.name
                rows = rows_by_table.get(table.name, [])
                for row in rows:
                    await tx.insert(table.name, row)
                restored[table.name] = len(rows)
    except Exception as e:
        reason = str(e).splitlines()[0] if str(e) else type(e).__name__
        logger.error("Restore failed on %s, rolled back: %s", current, reason)
        raise RestoreError(f"Restore failed on table '{current}': {reason}", current) from e

    invalidate_tables([t.name for t in selected], cache)
    logger.info(
        "Restore committed: %d rows into %d tables",
        sum(restored.values()),
        len(selected),
    )
    return RestoreReport(restored=restored, deleted=deleted, ignored_keys=tuple(ignored))


async def export_to_file(
    source: DatabaseClient,
    path: Path,
    reason: str = "manual",
    tables: Sequence[TableDescriptor] | None = None,
) -> dict[str, list[dict]]:
    """Export ``source`` and write the snapshot with a ``metadata`` block to ``path``."""
    snapshot = await export_snapshot(source, tables)
    write_document(path, snapshot_document(snapshot, reason, {"source": source.target}))
    logger.info("Exported %d tables to %s", len(snapshot), path)
    return snapshot


async def restore_from_file(
    destination: DatabaseClient,
    path: Path,
    backup_dir: Path | None = None,
    tables: Sequence[TableDescriptor] | None = None,
    cache: MaterialsCache | None = None,
) -> RestoreReport:
    """Restore a snapshot file into ``destination``.

    When ``backup_dir`` is given, the destination's current contents are
    saved there first as a ``pre-restore`` backup.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        RestoreError: The restore failed and was rolled back.
    """
    document = read_document(path)
    if backup_dir is not None:
        current = await export_snapshot(destination, tables)
        save_backup(current, backup_dir, "pre-restore", {"source": destination.target})
    return await restore_snapshot(document, destination, tables, cache)
