"""WebhookChannel — POSTs task notifications as JSON via httpx."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx

if TYPE_CHECKING:
    from cronkeeper.notifications.channels import TaskNotification

logger = logging.getLogger(__name__)


class WebhookChannel:
    """Delivers notifications to an HTTP endpoint.

    Args:
        url: Endpoint receiving the JSON payload.
        timeout: Request timeout in seconds.
        client: Optional pre-configured ``httpx.AsyncClient`` (tests inject
            one with a ``MockTransport``).
    """

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._client = client

    @property
    def name(self) -> str:
        return "webhook"

    async def send(self, notification: TaskNotification) -> bool:
        payload = notification.to_payload()
        try:
            if self._client is not None:
                resp = await self._client.post(self._url, json=payload, timeout=self._timeout)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    resp = await client.post(self._url, json=payload)
        except httpx.HTTPError as e:
            logger.warning("Webhook delivery failed for task %d: %s", notification.task_id, e)
            return False

        if resp.status_code >= 400:
            logger.warning(
                "Webhook returned %d for task %d", resp.status_code, notification.task_id
            )
            return False
        return True
