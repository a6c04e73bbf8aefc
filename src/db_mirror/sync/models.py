"""Result models for transfers and sync runs."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class TableStatus(str, Enum):
    """How completely a table made it to the destination."""

    SYNCED = "synced"       # every row inserted, updated or already present
    PARTIAL = "partial"     # at least one row failed
    SKIPPED = "skipped"     # table not transferred at all


class TableReport(BaseModel):
    """Per-table transfer counts."""

    model_config = ConfigDict(frozen=True)

    table: str
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    status: TableStatus = TableStatus.SYNCED
    note: str | None = None

    @property
    def written(self) -> int:
        return self.inserted + self.updated

    def as_row(self) -> dict[str, int | str]:
        """``{table, inserted, updated, skipped, failed}`` for callers and JSON."""
        return {
            "table": self.table,
            "inserted": self.inserted,
            "updated": self.updated,
            "skipped": self.skipped,
            "failed": self.failed,
        }


class RunReport(BaseModel):
    """Aggregated result of one sync run.

    Attributes:
        source: Target (``host:port/database``) rows were read from.
        destination: Target rows were written to.
        tables: One report per catalog table, in catalog order.
        unresolved_users: Source user ids that could not be mapped to a
            destination user.  Rows referencing them keep their original
            foreign-key value.
        anomalies: Human-readable notes about anything partial or skipped.
    """

    model_config = ConfigDict(frozen=True)

    source: str
    destination: str
    tables: tuple[TableReport, ...] = ()
    unresolved_users: tuple[Any, ...] = ()
    anomalies: tuple[str, ...] = ()

    @property
    def success(self) -> bool:
        """``True`` when no row failed and no table was skipped."""
        return all(t.status is TableStatus.SYNCED for t in self.tables)

    def totals(self) -> dict[str, int]:
        return {
            key: sum(getattr(t, key) for t in self.tables)
            for key in ("inserted", "updated", "skipped", "failed")
        }

    def tables_with_status(self, status: TableStatus) -> list[str]:
        return [t.table for t in self.tables if t.status is status]

    def as_rows(self) -> list[dict[str, int | str]]:
        return [t.as_row() for t in self.tables]


class IdentityOutcome(str, Enum):
    """How one source user was resolved against the destination."""

    MATCHED = "matched"         # same email already present under another id
    INSERTED = "inserted"       # copied with its own id
    EXISTING = "existing"       # id already present (conflict), kept as-is
    UNRESOLVED = "unresolved"   # insert failed for another reason


class IdentityResolution(BaseModel):
    """Result of building the source -> destination user id map."""

    model_config = ConfigDict(frozen=True)

    identity_map: dict[Any, Any] = Field(default_factory=dict)
    outcomes: dict[Any, IdentityOutcome] = Field(default_factory=dict)
    report: TableReport

    @property
    def unresolved(self) -> list[Any]:
        return [
            user_id
            for user_id, outcome in self.outcomes.items()
            if outcome is IdentityOutcome.UNRESOLVED
        ]
