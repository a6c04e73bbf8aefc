"""Row transfer engine.

Copies a row set into one destination table, one parameterized statement per
row, resolving primary-key conflicts with one of two modes:

- ``INSERT_IF_ABSENT``: an existing row wins; the incoming row is skipped.
- ``UPSERT_OVERWRITE``: the incoming row overwrites every non-pk column.

Transfers are best-effort: a failing row is logged with its primary-key
value, counted as ``failed`` and the next row is attempted.  Partial
success is visible in the returned ``TableReport``, never hidden.

Usage:
    from db_mirror.sync.transfer import TransferMode, transfer_rows

    report = await transfer_rows(rows, table, destination, TransferMode.UPSERT_OVERWRITE)
    print(report.inserted, report.updated, report.skipped, report.failed)
"""

import logging
from collections.abc import Sequence

from db_mirror.adapters.base import DatabaseClient, WriteMode, WriteOutcome
from db_mirror.catalog import TableDescriptor
from db_mirror.sync.models import TableReport, TableStatus

logger = logging.getLogger(__name__)

# Public name for the conflict policy of a whole transfer
TransferMode = WriteMode


async def transfer_rows(
    rows: Sequence[dict],
    table: TableDescriptor,
    destination: DatabaseClient,
    mode: TransferMode,
) -> TableReport:
    """Write ``rows`` into ``table`` on ``destination``.

    Rows need not share a column set; each statement lists only the
    columns present in its own row.

    Args:
        rows: Rows to write, already remapped if remapping applies.
        table: Catalog entry naming the table and its primary key.
        destination: Adapter for the database being written to.
        mode: Conflict policy, see module docstring.

    Returns:
        ``TableReport`` with inserted/updated/skipped/failed counts.
        ``status`` is ``PARTIAL`` when any row failed.
    """
    counts = {outcome: 0 for outcome in WriteOutcome}
    failed = 0

    for row in rows:
        if not row:
            continue
        try:
            outcome = await destination.write_row(table.name, row, table.pk, mode)
        except Exception as e:
            failed += 1
            logger.warning(
                "%s: row %s=%r failed: %s",
                table.name,
                table.pk,
                row.get(table.pk),
                str(e).splitlines()[0] if str(e) else type(e).__name__,
            )
            continue
        counts[outcome] += 1

    report = TableReport(
        table=table.name,
        inserted=counts[WriteOutcome.INSERTED],
        updated=counts[WriteOutcome.UPDATED],
        skipped=counts[WriteOutcome.SKIPPED],
        failed=failed,
        status=TableStatus.PARTIAL if failed else TableStatus.SYNCED,
        note=f"{failed} of {len(rows)} rows failed" if failed else None,
    )
    logger.info(
        "%s: %d inserted, %d updated, %d skipped, %d failed",
        table.name,
        report.inserted,
        report.updated,
        report.skipped,
        report.failed,
    )
    return report
