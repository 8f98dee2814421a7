"""Notification adapters."""

from tape_archive_worker.infrastructure.notifications.http_notifier import HttpNotifier
from tape_archive_worker.infrastructure.notifications.logging_notifier import LoggingNotifier
from tape_archive_worker.infrastructure.notifications.notification_client import (
    NotificationClient,
    NotificationClientError,
)

__all__ = ["HttpNotifier", "LoggingNotifier", "NotificationClient", "NotificationClientError"]
