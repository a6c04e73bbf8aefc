"""Result models for snapshot restore and the backup file store."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class RestoreReport(BaseModel):
    """What a committed restore did, per table."""

    model_config = ConfigDict(frozen=True)

    restored: dict[str, int] = Field(default_factory=dict)     # rows inserted
    deleted: dict[str, int] = Field(default_factory=dict)      # rows removed first
    ignored_keys: tuple[str, ...] = ()                         # snapshot keys naming no table

    @property
    def total_restored(self) -> int:
        return sum(self.restored.values())


class BackupInfo(BaseModel):
    """One file in the backup directory."""

    filename: str
    size: int           # bytes
    created: datetime   # file modification time
