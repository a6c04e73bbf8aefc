"""Shared fixtures: an in-memory database implementing ``DatabaseClient``.

``FakeDatabase`` keeps rows per table and enforces what the sync and
restore paths depend on: primary keys, unique user emails, optional
foreign keys and all-or-nothing transactions.  Failures are injected per
row, per table or for the whole connection; ``dropped_reads`` makes a
table read fail the way a lost asyncpg connection does.
"""

import copy
from contextlib import asynccontextmanager
from typing import Any

import pytest

from db_mirror import cache as cache_module
from db_mirror.adapters.base import TableReadError, WriteMode, WriteOutcome
from db_mirror.cache import MaterialsCache
from db_mirror.catalog import find_table, list_tables


class FakeIntegrityError(Exception):
    """Stands in for a driver constraint violation."""


class FakeDatabase:
    """In-memory ``DatabaseClient``.

    Args:
        target: ``host:port/database`` reported to the orchestrator.
        rows: Initial rows per table.  Every catalog table exists (empty)
            unless listed in ``missing``.
        missing: Tables that do not exist; reading them raises
            ``TableReadError``.
        foreign_keys: ``{(table, column): parent_table}`` checked on insert
            and on ``delete_all`` of the parent.
    """

    def __init__(
        self,
        target: str = "localhost:5432/app",
        rows: dict[str, list[dict]] | None = None,
        missing: tuple[str, ...] = (),
        foreign_keys: dict[tuple[str, str], str] | None = None,
    ) -> None:
        self._target = target
        self.tables: dict[str, list[dict]] = {
            t.name: [] for t in list_tables() if t.name not in missing
        }
        for table, table_rows in (rows or {}).items():
            self.tables[table] = [dict(r) for r in table_rows]
        self.foreign_keys = foreign_keys or {}
        self.writes: list[tuple[str, str]] = []
        self.failing_rows: set[tuple[str, Any]] = set()
        self.failing_reads: set[str] = set()
        self.failing_inserts: set[str] = set()
        self.dropped_reads: set[str] = set()
        self.down = False
        self.closed = False

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @property
    def target(self) -> str:
        return self._target

    def _pk(self, table: str) -> str:
        descriptor = find_table(table)
        return descriptor.pk if descriptor else "id"

    def _table(self, table: str) -> list[dict]:
        if table not in self.tables or table in self.failing_reads:
            raise TableReadError(table, f'relation "{table}" does not exist')
        return self.tables[table]

    def _find(self, table: str, pk_value: Any) -> dict | None:
        pk = self._pk(table)
        for row in self._table(table):
            if row.get(pk) == pk_value:
                return row
        return None

    def _check_constraints(self, table: str, row: dict, pk: str) -> None:
        if (table, row.get(pk)) in self.failing_rows or table in self.failing_inserts:
            raise FakeIntegrityError(f"injected failure on {table}")
        if table == "users" and row.get("email"):
            for existing in self.tables[table]:
                if existing.get("email") == row["email"] and existing.get(pk) != row.get(pk):
                    raise FakeIntegrityError(
                        'duplicate key value violates unique constraint "users_email_key"'
                    )
        for (child, column), parent in self.foreign_keys.items():
            if child != table or row.get(column) is None:
                continue
            parent_pk = self._pk(parent)
            if not any(p.get(parent_pk) == row[column] for p in self.tables.get(parent, [])):
                raise FakeIntegrityError(
                    f'insert on "{table}" violates foreign key {column} -> {parent}'
                )

    def rows(self, table: str) -> list[dict]:
        return self.tables.get(table, [])

    # ------------------------------------------------------------------
    # DatabaseClient
    # ------------------------------------------------------------------

    async def select(
        self,
        table: str,
        columns: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
    ) -> list[dict]:
        rows = [
            dict(r)
            for r in self._table(table)
            if all(r.get(k) == v for k, v in (filters or {}).items())
        ]
        if order_by:
            column, _, direction = order_by.partition(" ")
            rows.sort(key=lambda r: r.get(column) or "", reverse=direction.upper() == "DESC")
        return rows

    def _check_dropped(self, table: str) -> None:
        if table in self.dropped_reads:
            raise ConnectionRefusedError(111, f"Connect call failed ({self._target})")

    async def select_all(self, table: str) -> list[dict]:
        self._check_dropped(table)
        return [dict(r) for r in self._table(table)]

    async def count_rows(self, table: str) -> int:
        self._check_dropped(table)
        return len(self._table(table))

    async def insert(self, table: str, data: dict) -> dict:
        pk = self._pk(table)
        if self._find(table, data.get(pk)) is not None:
            raise FakeIntegrityError(f"duplicate key in {table}")
        self._check_constraints(table, data, pk)
        self.tables[table].append(dict(data))
        self.writes.append(("insert", table))
        return dict(data)

    async def update(self, table: str, data: dict, filters: dict[str, Any]) -> dict:
        matched = [
            r for r in self._table(table)
            if all(r.get(k) == v for k, v in filters.items())
        ]
        if not matched:
            raise ValueError(f"No rows matched filters: {filters}")
        for row in matched:
            row.update(data)
        self.writes.append(("update", table))
        return dict(matched[0])

    async def delete(self, table: str, filters: dict[str, Any]) -> None:
        self.tables[table] = [
            r for r in self._table(table)
            if not all(r.get(k) == v for k, v in filters.items())
        ]
        self.writes.append(("delete", table))

    async def write_row(self, table: str, row: dict, pk: str, mode: WriteMode) -> WriteOutcome:
        self._table(table)
        existing = self._find(table, row.get(pk))
        if existing is not None:
            if mode is WriteMode.INSERT_IF_ABSENT:
                return WriteOutcome.SKIPPED
            merged = {**existing, **row}
            if merged == existing:
                return WriteOutcome.SKIPPED
            self._check_constraints(table, merged, pk)
            existing.update(row)
            self.writes.append(("update", table))
            return WriteOutcome.UPDATED
        self._check_constraints(table, row, pk)
        self.tables[table].append(dict(row))
        self.writes.append(("insert", table))
        return WriteOutcome.INSERTED

    @asynccontextmanager
    async def transaction(self):
        saved = copy.deepcopy(self.tables)
        saved_writes = list(self.writes)
        try:
            yield FakeTransaction(self)
        except BaseException:
            self.tables = saved
            self.writes = saved_writes
            raise

    async def table_names(self) -> set[str]:
        return set(self.tables)

    async def test_connection(self) -> bool:
        if self.down:
            raise ConnectionError(f"could not connect to server at {self._target}")
        return True

    async def close(self) -> None:
        self.closed = True


class FakeTransaction:
    """``TransactionClient`` writing straight into a ``FakeDatabase``."""

    def __init__(self, db: FakeDatabase) -> None:
        self._db = db

    async def delete_all(self, table: str) -> int:
        rows = self._db._table(table)
        pk = self._db._pk(table)
        for (child, column), parent in self._db.foreign_keys.items():
            if parent != table:
                continue
            referenced = {r.get(pk) for r in rows}
            if any(r.get(column) in referenced for r in self._db.tables.get(child, [])):
                raise FakeIntegrityError(
                    f'delete on "{table}" violates foreign key from {child}.{column}'
                )
        count = len(rows)
        self._db.tables[table] = []
        self._db.writes.append(("delete_all", table))
        return count

    async def insert(self, table: str, data: dict) -> None:
        await self._db.insert(table, data)


@pytest.fixture
def user_foreign_keys() -> dict[tuple[str, str], str]:
    """Every catalog user reference as a foreign key to ``users``."""
    return {
        (t.name, column): "users"
        for t in list_tables()
        for column in t.user_columns
    }


@pytest.fixture
def make_db():
    """Factory for ``FakeDatabase`` instances."""
    return FakeDatabase


@pytest.fixture
def materials_cache():
    """A fresh cache with a controllable clock."""
    now = [1000.0]
    cache = MaterialsCache(ttl_seconds=300, clock=lambda: now[0])
    cache.now = now
    return cache


@pytest.fixture(autouse=True)
def reset_global_cache():
    """Isolate the process-wide materials cache between tests."""
    cache_module._cache = None
    yield
    cache_module._cache = None
