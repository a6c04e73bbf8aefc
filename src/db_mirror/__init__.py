"""db-mirror: cross-environment database sync, backup and restore.

Usage:
    from db_mirror import AsyncPostgresAdapter, sync_databases, TransferMode

    source = AsyncPostgresAdapter("postgresql://...@prod/app")
    destination = AsyncPostgresAdapter("postgresql://...@dev/app")
    report = await sync_databases(source, destination, TransferMode.INSERT_IF_ABSENT)
"""

__version__ = "0.1.0"

from db_mirror.adapters import AsyncPostgresAdapter, DatabaseClient
from db_mirror.backup import (
    RestoreError,
    RestoreReport,
    export_snapshot,
    restore_snapshot,
)
from db_mirror.cache import MaterialsCache, get_materials_cache
from db_mirror.catalog import TableDescriptor, list_tables
from db_mirror.config import load_db_config
from db_mirror.factory import ProfileNotFoundError, get_adapter
from db_mirror.sync import (
    ConnectivityError,
    RunReport,
    SelfSyncError,
    TableReport,
    TransferMode,
    sync_databases,
    transfer_rows,
)

__all__ = [
    "__version__",
    "AsyncPostgresAdapter",
    "ConnectivityError",
    "DatabaseClient",
    "MaterialsCache",
    "ProfileNotFoundError",
    "RestoreError",
    "RestoreReport",
    "RunReport",
    "SelfSyncError",
    "TableDescriptor",
    "TableReport",
    "TransferMode",
    "export_snapshot",
    "get_adapter",
    "get_materials_cache",
    "list_tables",
    "load_db_config",
    "restore_snapshot",
    "sync_databases",
    "transfer_rows",
]
