"""Live database-to-database sync."""

from db_mirror.sync.models import (
    IdentityOutcome,
    IdentityResolution,
    RunReport,
    TableReport,
    TableStatus,
)
from db_mirror.sync.orchestrator import (
    ConnectivityError,
    SelfSyncError,
    SyncError,
    compare_counts,
    sync_databases,
)
from db_mirror.sync.remap import build_identity_map, remap_row
from db_mirror.sync.transfer import TransferMode, transfer_rows

__all__ = [
    "ConnectivityError",
    "IdentityOutcome",
    "IdentityResolution",
    "RunReport",
    "SelfSyncError",
    "SyncError",
    "TableReport",
    "TableStatus",
    "TransferMode",
    "build_identity_map",
    "compare_counts",
    "remap_row",
    "sync_databases",
    "transfer_rows",
]
