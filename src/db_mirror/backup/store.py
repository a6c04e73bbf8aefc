"""Backup file store: timestamped JSON snapshots in one directory.

File names look like ``backup_2026-01-15T02-00-00_scheduled.json``.  Only
names made of ``[A-Za-z0-9_.-]`` ending in ``.json`` are ever opened, so a
caller-supplied name cannot escape the directory.

File layout::

    {
      "metadata": {"created_at": "...", "reason": "...", "version": "1.0",
                   "counts": {"users": 2, "html_files": 10}},
      "users": [...],
      "html_files": [...]
    }

Everything here is sync file I/O.

Usage:
    from db_mirror.backup.store import list_backups, prune_backups, save_backup

    path = save_backup(snapshot, Path("backups"), reason="manual")
    for info in list_backups(Path("backups")):
        print(info.filename, info.size)
    prune_backups(Path("backups"), retention_days=30)
"""

import json
import logging
import re
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from db_mirror.backup.models import BackupInfo

logger = logging.getLogger(__name__)

BACKUP_PREFIX = "backup_"
SNAPSHOT_VERSION = "1.0"

_SAFE_NAME = re.compile(r"^[A-Za-z0-9_.\-]+$")


class InvalidBackupNameError(ValueError):
    """Raised for a backup file name that could leave the backup directory."""


def safe_backup_path(directory: Path, filename: str) -> Path:
    """Return ``directory / filename`` after validating ``filename``.

    Raises:
        InvalidBackupNameError: Name contains ``..``, a path separator, a
            character outside ``[A-Za-z0-9_.-]`` or does not end in ``.json``.
    """
    if ".." in filename or "/" in filename or "\\" in filename:
        raise InvalidBackupNameError(f"Invalid backup name: {filename[:50]!r}")
    if not _SAFE_NAME.match(filename) or not filename.endswith(".json"):
        raise InvalidBackupNameError(f"Invalid backup name: {filename[:50]!r}")

    base = directory.resolve()
    path = (base / filename).resolve()
    if path.parent != base:
        raise InvalidBackupNameError(f"Invalid backup name: {filename[:50]!r}")
    return path


def backup_filename(reason: str, now: datetime | None = None) -> str:
    """``backup_<UTC timestamp>_<reason>.json``."""
    now = now or datetime.now(timezone.utc)
    timestamp = now.strftime("%Y-%m-%dT%H-%M-%S")
    name = f"{BACKUP_PREFIX}{timestamp}_{reason}.json"
    if not _SAFE_NAME.match(name):
        raise InvalidBackupNameError(f"Invalid backup reason: {reason!r}")
    return name


def snapshot_document(
    snapshot: dict[str, list[dict]],
    reason: str,
    extra: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Wrap a snapshot with a ``metadata`` block for writing to disk."""
    metadata: dict[str, Any] = {
        "created_at": datetime.now(timezone.utc).isoformat(),
        "reason": reason,
        "version": SNAPSHOT_VERSION,
        "counts": {table: len(rows) for table, rows in snapshot.items()},
    }
    if extra:
        metadata.update(extra)
    return {"metadata": metadata, **snapshot}


def write_document(path: Path, document: dict[str, Any]) -> Path:
    """Write ``document`` as indented JSON, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(document, f, indent=2, default=str)
    return path


def read_document(path: Path) -> dict[str, Any]:
    """Load a JSON snapshot document.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        ValueError: If the file is not a JSON object.
    """
    with open(path, encoding="utf-8") as f:
        document = json.load(f)
    if not isinstance(document, dict):
        raise ValueError(f"{path}: expected a JSON object, got {type(document).__name__}")
    return document


def save_backup(
    snapshot: dict[str, list[dict]],
    directory: Path,
    reason: str,
    extra: dict[str, Any] | None = None,
) -> Path:
    """Write ``snapshot`` to a new timestamped file in ``directory``.

    Returns:
        Path of the created file.
    """
    path = safe_backup_path(directory, backup_filename(reason))
    write_document(path, snapshot_document(snapshot, reason, extra))
    total = sum(len(rows) for rows in snapshot.values())
    logger.info("Backup created: %s (%d rows)", path.name, total)
    return path


def list_backups(directory: Path) -> list[BackupInfo]:
    """Backups in ``directory``, newest first.  Missing directory -> ``[]``."""
    if not directory.is_dir():
        return []

    infos: list[BackupInfo] = []
    for entry in directory.iterdir():
        name = entry.name
        if not name.startswith(BACKUP_PREFIX) or not name.endswith(".json"):
            continue
        try:
            path = safe_backup_path(directory, name)
        except InvalidBackupNameError:
            continue
        stat = path.stat()
        infos.append(
            BackupInfo(
                filename=name,
                size=stat.st_size,
                created=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            )
        )
    return sorted(infos, key=lambda info: info.created, reverse=True)


def load_backup(directory: Path, filename: str) -> dict[str, Any]:
    """Read one backup by file name.

    Raises:
        InvalidBackupNameError: Unsafe ``filename``.
        FileNotFoundError: No such backup.
    """
    return read_document(safe_backup_path(directory, filename))


def prune_backups(
    directory: Path,
    retention_days: int,
    now: float | None = None,
) -> list[str]:
    """Delete backups whose modification time is older than ``retention_days``.

    Returns:
        Names of the deleted files.
    """
    now = time.time() if now is None else now
    max_age = retention_days * 24 * 60 * 60
    deleted: list[str] = []

    for info in list_backups(directory):
        path = safe_backup_path(directory, info.filename)
        if now - path.stat().st_mtime > max_age:
            path.unlink()
            deleted.append(info.filename)
            logger.info("Deleted old backup: %s", info.filename)

    if deleted:
        logger.info("Pruned %d backup(s) older than %d days", len(deleted), retention_days)
    return deleted
