"""NotificationChannel protocol and the task event it delivers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from cronkeeper.scheduler.models import TaskStatus, utc_now

_PREVIEW_CHARS = 200


@dataclass(frozen=True)
class TaskNotification:
    """A finished (or failed-to-start) task run, ready for delivery."""

    task_id: int
    task_name: str
    status: TaskStatus
    output: str
    timestamp: str = field(default_factory=utc_now)

    @property
    def headline(self) -> str:
        match self.status:
            case TaskStatus.SUCCESS:
                marker = "OK"
            case TaskStatus.FAILED:
                marker = "FAILED"
            case TaskStatus.PENDING | TaskStatus.RUNNING:
                marker = "INFO"
        return f"[{marker}] Task \"{self.task_name}\" {self.status} at {self.timestamp}"

    @property
    def output_preview(self) -> str:
        if len(self.output) > _PREVIEW_CHARS:
            return self.output[:_PREVIEW_CHARS] + "..."
        return self.output

    def to_payload(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "task_name": self.task_name,
            "status": str(self.status),
            "output": self.output,
            "timestamp": self.timestamp,
        }


@runtime_checkable
class NotificationChannel(Protocol):
    """Protocol that all notification channels must satisfy."""

    @property
    def name(self) -> str:
        """Unique channel identifier (e.g. 'log', 'webhook')."""
        ...

    async def send(self, notification: TaskNotification) -> bool:
        """Deliver a notification. Returns True on success."""
        ...
