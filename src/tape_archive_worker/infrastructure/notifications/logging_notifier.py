"""Notifier used when no notification service is configured."""

import logging

from tape_archive_worker.domain.notifications import AdminAlert, UserNotification
from tape_archive_worker.domain.ports import Notifier

logger = logging.getLogger(__name__)


class LoggingNotifier(Notifier):
    """Write notifications to the log instead of delivering them."""

    async def notify_user(self, notification: UserNotification) -> None:
        logger.info(
            "User notification for %s: %s %s %s",
            notification.recipient,
            notification.kind,
            notification.file_name,
            notification.status,
        )

    async def alert_admin(self, alert: AdminAlert) -> None:
        logger.warning(
            "Admin alert (%s) during %s: %s",
            alert.severity,
            alert.operation,
            alert.message,
        )


__all__ = ["LoggingNotifier"]
