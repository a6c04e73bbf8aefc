"""Identity remapping for user foreign keys.

The same person can exist in two environments under different ``users.id``
values.  Before dependent tables are copied, source user ids are mapped to
destination user ids by matching on email:

1. Destination users are indexed by email (null/empty emails never match).
2. A source user whose email is in the index maps to that destination id;
   nothing is inserted.
3. Otherwise the source user is inserted as-is.  A fresh insert or a
   primary-key conflict both map the id to itself.
4. Any other insert error leaves the id unmapped.  Rows that reference it
   keep their original foreign-key value and the id is reported.
"""

import logging
from collections.abc import Sequence
from typing import Any

from db_mirror.adapters.base import DatabaseClient, WriteMode, WriteOutcome
from db_mirror.catalog import TableDescriptor
from db_mirror.sync.models import (
    IdentityOutcome,
    IdentityResolution,
    TableReport,
    TableStatus,
)

logger = logging.getLogger(__name__)


def _email_key(row: dict) -> str | None:
    email = row.get("email")
    if not isinstance(email, str) or not email.strip():
        return None
    return email


async def build_identity_map(
    source_users: Sequence[dict],
    destination_users: Sequence[dict],
    destination: DatabaseClient,
    table: TableDescriptor,
) -> IdentityResolution:
    """Resolve every source user against the destination.

    Args:
        source_users: All rows of the source users table.
        destination_users: All rows of the destination users table, read
            before any insert.
        destination: Adapter used to insert users missing from the
            destination.
        table: Catalog entry for the users table.

    Returns:
        ``IdentityResolution`` holding the id map (total over resolved
        users), the per-user outcome and a ``TableReport`` for the users
        table: matched and existing users count as skipped, unresolved as
        failed.
    """
    email_to_dest: dict[str, Any] = {}
    for row in destination_users:
        email = _email_key(row)
        if email is not None:
            email_to_dest[email] = row[table.pk]

    identity_map: dict[Any, Any] = {}
    outcomes: dict[Any, IdentityOutcome] = {}

    for user in source_users:
        source_id = user.get(table.pk)
        if source_id is None:
            continue

        email = _email_key(user)
        if email is not None and email in email_to_dest:
            identity_map[source_id] = email_to_dest[email]
            outcomes[source_id] = IdentityOutcome.MATCHED
            continue

        try:
            written = await destination.write_row(
                table.name, user, table.pk, WriteMode.INSERT_IF_ABSENT
            )
        except Exception as e:
            outcomes[source_id] = IdentityOutcome.UNRESOLVED
            logger.warning(
                "%s: could not resolve %s=%r: %s",
                table.name,
                table.pk,
                source_id,
                str(e).splitlines()[0] if str(e) else type(e).__name__,
            )
            continue

        identity_map[source_id] = source_id
        if written is WriteOutcome.INSERTED:
            outcomes[source_id] = IdentityOutcome.INSERTED
        else:
            outcomes[source_id] = IdentityOutcome.EXISTING

    values = list(outcomes.values())
    inserted = values.count(IdentityOutcome.INSERTED)
    skipped = values.count(IdentityOutcome.MATCHED) + values.count(IdentityOutcome.EXISTING)
    failed = values.count(IdentityOutcome.UNRESOLVED)
    remapped = sum(1 for k, v in identity_map.items() if k != v)

    logger.info(
        "%s: %d resolved (%d remapped by email), %d unresolved",
        table.name,
        len(identity_map),
        remapped,
        failed,
    )

    return IdentityResolution(
        identity_map=identity_map,
        outcomes=outcomes,
        report=TableReport(
            table=table.name,
            inserted=inserted,
            skipped=skipped,
            failed=failed,
            status=TableStatus.PARTIAL if failed else TableStatus.SYNCED,
            note=f"{failed} users unresolved" if failed else None,
        ),
    )


def remap_row(row: dict, table: TableDescriptor, identity_map: dict) -> dict:
    """Return a copy of ``row`` with user foreign keys rewritten.

    Values missing from ``identity_map`` (unresolved users, or ``None``)
    pass through unchanged.
    """
    if not table.user_columns:
        return row
    remapped = dict(row)
    for column in table.user_columns:
        value = remapped.get(column)
        if isinstance(value, (str, int)) and value in identity_map:
            remapped[column] = identity_map[value]
    return remapped
