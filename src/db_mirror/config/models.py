"""Pydantic models for db.toml and connection results."""

from pydantic import BaseModel, Field

from db_mirror.adapters.base import WriteMode


# ============================================================================
# Configuration Models
# ============================================================================


class DatabaseProfile(BaseModel):
    """Database connection profile from db.toml."""

    url: str
    description: str = ""
    db_password: str | None = None  # For [YOUR-PASSWORD] placeholder substitution
    provider: str = "postgres"


class SyncSettings(BaseModel):
    """``[sync]``: default profiles and conflict mode for ``db-mirror sync``."""

    source: str | None = None
    destination: str | None = None
    mode: WriteMode = WriteMode.UPSERT_OVERWRITE


class BackupSettings(BaseModel):
    """``[backup]``: where backup files live and how long they are kept."""

    directory: str = "backups"
    retention_days: int = Field(default=30, ge=1)


class CacheSettings(BaseModel):
    """``[cache]``"""

    materials_ttl_seconds: float = Field(default=300, gt=0)


class DatabaseConfig(BaseModel):
    """Complete configuration from db.toml."""

    profiles: dict[str, DatabaseProfile]
    sync: SyncSettings = Field(default_factory=SyncSettings)
    backup: BackupSettings = Field(default_factory=BackupSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)


# ============================================================================
# Connection Result
# ============================================================================


class ConnectionResult(BaseModel):
    """Result of connect_and_validate()."""

    success: bool
    profile_name: str | None = None
    target: str | None = None
    missing_tables: list[str] = Field(default_factory=list)  # catalog tables absent from the database
    error: str | None = None
