"""Notification channel abstraction layer."""

from cronkeeper.notifications.channels import NotificationChannel, TaskNotification
from cronkeeper.notifications.log_channel import LogChannel
from cronkeeper.notifications.router import NotificationRouter
from cronkeeper.notifications.webhook_channel import WebhookChannel

__all__ = [
    "LogChannel",
    "NotificationChannel",
    "NotificationRouter",
    "TaskNotification",
    "WebhookChannel",
]
