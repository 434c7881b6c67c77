"""OS crontab access and reconciliation with the task table."""

from cronkeeper.crontab.accessor import CrontabAccessor, CrontabSnapshot
from cronkeeper.crontab.entries import CrontabEntry, CrontabFormat
from cronkeeper.crontab.results import (
    Discrepancy,
    DiscrepancyKind,
    ImportResult,
    SyncResult,
    SyncStatus,
    ValidationResult,
)
from cronkeeper.crontab.sync import CrontabSyncService

__all__ = [
    "CrontabAccessor",
    "CrontabEntry",
    "CrontabFormat",
    "CrontabSnapshot",
    "CrontabSyncService",
    "Discrepancy",
    "DiscrepancyKind",
    "ImportResult",
    "SyncResult",
    "SyncStatus",
    "ValidationResult",
]
