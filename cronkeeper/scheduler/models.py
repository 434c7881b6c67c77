"""Task data model and execution result types."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any


def utc_now() -> str:
    """Current time as an ISO 8601 UTC string."""
    return datetime.now(UTC).isoformat()


class TaskStatus(StrEnum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


class TaskSource(StrEnum):
    """Where a task came from.

    ``NATIVE`` tasks were created here (or carry our id marker in the
    crontab); ``IMPORTED`` tasks were adopted from a foreign crontab line.
    """

    NATIVE = "native"
    IMPORTED = "crontab"


# Column order of the ``tasks`` table.
COLUMNS = (
    "id",
    "name",
    "cron_schedule",
    "command",
    "status",
    "last_run",
    "output",
    "created_at",
    "is_system_managed",
    "crontab_id",
    "synced_to_crontab",
    "crontab_synced_at",
    "source",
)

_BOOL_COLUMNS = frozenset({"is_system_managed", "synced_to_crontab"})


@dataclass
class Task:
    """A named shell command with a cron schedule and persisted run status.

    Attributes:
        id: Integer key assigned by the TaskStore (0 until persisted).
        name: Display name.
        cron_schedule: 5-field cron expression.
        command: Shell command line.
        status: Last known execution status.
        last_run: ISO 8601 UTC timestamp of the last start.
        output: Captured output of the last run (size-capped).
        created_at: ISO 8601 UTC timestamp.
        is_system_managed: Whether the task should be mirrored into the
            OS crontab.
        crontab_id: Correlation id of the matching crontab entry.
        synced_to_crontab: Whether the task has been written to the crontab.
        crontab_synced_at: ISO 8601 UTC timestamp of the last sync.
        source: Provenance of the task.
    """

    id: int
    name: str
    cron_schedule: str
    command: str
    status: TaskStatus = TaskStatus.PENDING
    last_run: str | None = None
    output: str | None = None
    created_at: str = ""
    is_system_managed: bool = False
    crontab_id: str | None = None
    synced_to_crontab: bool = False
    crontab_synced_at: str | None = None
    source: TaskSource = TaskSource.NATIVE

    def __post_init__(self) -> None:
        if not self.created_at:
            self.created_at = utc_now()
        self.status = TaskStatus(self.status)
        self.source = TaskSource(self.source)

    # -- Serialization ---------------------------------------------------------

    def to_row(self) -> tuple:
        """Serialize to a tuple matching ``COLUMNS``."""
        return tuple(to_column_value(name, getattr(self, name)) for name in COLUMNS)

    @classmethod
    def from_row(cls, row: tuple) -> Task:
        """Deserialize from a SQLite row tuple."""
        values = dict(zip(COLUMNS, row, strict=True))
        for name in _BOOL_COLUMNS:
            values[name] = bool(values[name])
        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = str(self.status)
        data["source"] = str(self.source)
        return data


def to_column_value(name: str, value: Any) -> Any:
    """Convert a Python attribute value into its SQLite representation."""
    if name in _BOOL_COLUMNS:
        return int(bool(value))
    if isinstance(value, StrEnum):
        return str(value)
    return value


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of one command execution."""

    task_id: int
    status: TaskStatus
    exit_code: int | None
    output: str

    @property
    def succeeded(self) -> bool:
        return self.status is TaskStatus.SUCCESS
