"""Snapshot export/restore and the backup file store."""

from db_mirror.backup.models import BackupInfo, RestoreReport
from db_mirror.backup.snapshot import (
    RestoreError,
    export_snapshot,
    export_to_file,
    normalize_snapshot,
    restore_from_file,
    restore_snapshot,
)
from db_mirror.backup.store import (
    InvalidBackupNameError,
    list_backups,
    load_backup,
    prune_backups,
    safe_backup_path,
    save_backup,
)

__all__ = [
    "BackupInfo",
    "InvalidBackupNameError",
    "RestoreError",
    "RestoreReport",
    "export_snapshot",
    "export_to_file",
    "list_backups",
    "load_backup",
    "normalize_snapshot",
    "prune_backups",
    "restore_from_file",
    "restore_snapshot",
    "safe_backup_path",
    "save_backup",
]
