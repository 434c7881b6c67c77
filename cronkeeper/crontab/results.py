"""Result and finding types returned by the reconciliation service."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import StrEnum
from typing import Any


class DiscrepancyKind(StrEnum):
    MISSING_IN_CRONTAB = "missing_in_crontab"
    MISSING_IN_DB = "missing_in_db"
    SCHEDULE_MISMATCH = "schedule_mismatch"
    COMMAND_MISMATCH = "command_mismatch"


@dataclass(frozen=True)
class Discrepancy:
    """An inconsistency between a task row and the crontab. Never persisted."""

    kind: DiscrepancyKind
    details: str
    task_id: int | None = None
    crontab_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": str(self.kind),
            "task_id": self.task_id,
            "crontab_id": self.crontab_id,
            "details": self.details,
        }


@dataclass
class ImportResult:
    imported: int = 0
    updated: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class SyncResult:
    imported: int = 0
    updated: int = 0
    exported: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ValidationResult:
    discrepancies: list[Discrepancy] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.discrepancies

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "discrepancies": [d.to_dict() for d in self.discrepancies],
        }


@dataclass(frozen=True)
class SyncStatus:
    """Counts describing how far the task table and the crontab agree."""

    crontab_entry_count: int
    managed_entry_count: int
    unmanaged_entry_count: int
    system_managed_count: int
    synced_count: int
    unsynced_count: int
    last_sync: str | None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
