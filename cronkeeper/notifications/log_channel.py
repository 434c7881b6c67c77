"""LogChannel — writes task notifications to the application log."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cronkeeper.notifications.channels import TaskNotification

logger = logging.getLogger(__name__)


class LogChannel:
    """Notification channel backed by the ``logging`` module."""

    @property
    def name(self) -> str:
        return "log"

    async def send(self, notification: TaskNotification) -> bool:
        logger.info("[NOTIFICATION] %s", notification.headline)
        if notification.output:
            logger.info("[OUTPUT] %s", notification.output_preview)
        return True
