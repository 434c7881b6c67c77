"""NotificationRouter — fans task results out to registered channels."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from cronkeeper.notifications.channels import TaskNotification

if TYPE_CHECKING:
    from cronkeeper.notifications.channels import NotificationChannel
    from cronkeeper.scheduler.models import Task, TaskStatus

logger = logging.getLogger(__name__)


class NotificationRouter:
    """Delivers task notifications to every registered channel.

    ``notify`` is fire-and-forget: channel failures are logged and never
    reach the caller.
    """

    def __init__(self) -> None:
        self._channels: dict[str, NotificationChannel] = {}

    def register_channel(self, channel: NotificationChannel) -> None:
        """Register a notification channel. Raises ValueError on duplicate name."""
        if channel.name in self._channels:
            msg = f"Channel '{channel.name}' is already registered"
            raise ValueError(msg)
        self._channels[channel.name] = channel

    def get_channel(self, name: str) -> NotificationChannel | None:
        return self._channels.get(name)

    def list_channels(self) -> list[str]:
        """Return names of all registered channels."""
        return list(self._channels.keys())

    async def notify(self, task: Task, status: TaskStatus, output: str) -> None:
        """Send a task result to all channels."""
        notification = TaskNotification(
            task_id=task.id,
            task_name=task.name,
            status=status,
            output=output,
        )
        for name, channel in self._channels.items():
            try:
                delivered = await channel.send(notification)
            except Exception:
                logger.exception("Notification channel '%s' raised for task %d", name, task.id)
                continue
            if not delivered:
                logger.warning("Notification channel '%s' failed for task %d", name, task.id)
