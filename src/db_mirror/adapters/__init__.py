"""Database adapters package.

Provides the ``DatabaseClient`` Protocol and the async PostgreSQL adapter.

Usage:
    from db_mirror.adapters import DatabaseClient, AsyncPostgresAdapter
"""

from db_mirror.adapters.base import (
    DatabaseClient,
    TableReadError,
    TransactionClient,
    WriteMode,
    WriteOutcome,
)
from db_mirror.adapters.postgres import AsyncPostgresAdapter, connection_target

__all__ = [
    "DatabaseClient",
    "TransactionClient",
    "AsyncPostgresAdapter",
    "TableReadError",
    "WriteMode",
    "WriteOutcome",
    "connection_target",
]
