"""Database client protocol definition.

Defines the ``DatabaseClient`` Protocol that all adapters must implement,
plus the ``TransactionClient`` used by atomic restores.  All methods are
``async def`` -- the library is async-first.

Usage:
    from db_mirror.adapters.base import DatabaseClient, WriteMode

    async def do_work(client: DatabaseClient) -> None:
        rows = await client.select_all("users")
        outcome = await client.write_row(
            "users", rows[0], pk="id", mode=WriteMode.INSERT_IF_ABSENT
        )
        async with client.transaction() as tx:
            await tx.delete_all("users")
        await client.close()
"""

from contextlib import AbstractAsyncContextManager
from enum import Enum
from typing import Any, Protocol


class WriteMode(str, Enum):
    """Conflict handling for a single-row write, keyed on primary key."""

    INSERT_IF_ABSENT = "insert"
    UPSERT_OVERWRITE = "upsert"


class WriteOutcome(str, Enum):
    """What a single-row write did to the destination table."""

    INSERTED = "inserted"
    UPDATED = "updated"
    SKIPPED = "skipped"


class TableReadError(Exception):
    """Raised when a whole table cannot be read (missing table, lost connection)."""

    def __init__(self, table: str, reason: str) -> None:
        self.table = table
        self.reason = reason
        super().__init__(f"Cannot read table '{table}': {reason}")


class TransactionClient(Protocol):
    """Writes bound to one open database transaction."""

    async def delete_all(self, table: str) -> int:
        """Delete every row in ``table`` and return the number removed."""
        ...

    async def insert(self, table: str, data: dict) -> None:
        """Insert one row using the column list of ``data``.

        Raises:
            Exception: Any database error.  The caller's transaction is
                rolled back when the exception leaves ``transaction()``.
        """
        ...


class DatabaseClient(Protocol):
    """Database client interface that all adapters must implement.

    All methods are async -- callers must ``await`` every operation.
    """

    @property
    def target(self) -> str:
        """Normalized ``host:port/database`` this client points at."""
        ...

    async def select(
        self,
        table: str,
        columns: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
    ) -> list[dict]:
        """Select rows from table.

        Args:
            table: Table name.
            columns: Comma-separated column names (e.g., ``"id, title"``).
            filters: Optional dict of field=value filters (all must match via AND).
            order_by: Optional column name to sort by.

        Returns:
            List of dicts, one per row.  Empty list if no matches.
        """
        ...

    async def select_all(self, table: str) -> list[dict]:
        """Return every row of ``table`` (``SELECT *``).

        Raises:
            TableReadError: If the table does not exist or cannot be read.
        """
        ...

    async def count_rows(self, table: str) -> int:
        """Return ``count(*)`` for ``table``.

        Raises:
            TableReadError: If the table does not exist or cannot be read.
        """
        ...

    async def insert(self, table: str, data: dict) -> dict:
        """Insert row into table and return the created row."""
        ...

    async def update(self, table: str, data: dict, filters: dict[str, Any]) -> dict:
        """Update rows in table and return the first updated row.

        Raises:
            ValueError: If no rows match filters.
        """
        ...

    async def delete(self, table: str, filters: dict[str, Any]) -> None:
        """Delete rows from table."""
        ...

    async def write_row(
        self,
        table: str,
        row: dict,
        pk: str,
        mode: WriteMode,
    ) -> WriteOutcome:
        """Insert one row, resolving a primary-key conflict according to ``mode``.

        - ``INSERT_IF_ABSENT``: conflict leaves the stored row untouched
          (``SKIPPED``).
        - ``UPSERT_OVERWRITE``: conflict overwrites every non-pk column
          (``UPDATED``), unless the stored values already match (``SKIPPED``).

        Raises:
            Exception: On any row-level database error.
        """
        ...

    def transaction(self) -> AbstractAsyncContextManager[TransactionClient]:
        """Open a transaction that commits on clean exit, rolls back on error."""
        ...

    async def table_names(self) -> set[str]:
        """Names of the tables in the public schema."""
        ...

    async def test_connection(self) -> bool:
        """Run a trivial query; raise if the database is unreachable."""
        ...

    async def close(self) -> None:
        """Close database connection and clean up resources."""
        ...
