"""Configuration management: profiles, TOML loading, and config models.

Usage:
    >>> from db_mirror.config import load_db_config, DatabaseProfile, DatabaseConfig
"""

from db_mirror.config.loader import load_db_config
from db_mirror.config.models import (
    BackupSettings,
    CacheSettings,
    DatabaseConfig,
    DatabaseProfile,
    SyncSettings,
)

__all__ = [
    "load_db_config",
    "BackupSettings",
    "CacheSettings",
    "DatabaseConfig",
    "DatabaseProfile",
    "SyncSettings",
]
