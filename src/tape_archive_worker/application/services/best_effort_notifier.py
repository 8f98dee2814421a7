"""Notification wrapper that never lets delivery failures escape."""

from __future__ import annotations

import logging
from typing import Any

from tape_archive_worker.domain.notifications import (
    AdminAlert,
    AlertSeverity,
    NotificationKind,
    NotificationStatus,
    UserNotification,
)
from tape_archive_worker.domain.ports import Notifier

logger = logging.getLogger(__name__)


class BestEffortNotifier:
    """Deliver user events and admin alerts, logging instead of raising on failure."""

    def __init__(self, notifier: Notifier) -> None:
        self._notifier = notifier

    @property
    def notifier(self) -> Notifier:
        return self._notifier

    async def notify_user(
        self,
        *,
        recipient: str,
        user_name: str,
        file_name: str,
        kind: NotificationKind,
        status: NotificationStatus,
        **context: Any,
    ) -> None:
        notification = UserNotification(
            recipient=recipient,
            user_name=user_name,
            file_name=file_name,
            kind=kind,
            status=status,
            context={key: value for key, value in context.items() if value is not None},
        )
        try:
            await self._notifier.notify_user(notification)
        except Exception:
            logger.exception(
                "Failed to notify %s about %s of %s.", recipient, kind.value, file_name
            )

    async def alert_admin(
        self,
        operation: str,
        message: str,
        *,
        severity: AlertSeverity = AlertSeverity.CRITICAL,
        **context: Any,
    ) -> None:
        alert = AdminAlert(
            severity=severity,
            operation=operation,
            message=message,
            context={key: value for key, value in context.items() if value is not None},
        )
        try:
            await self._notifier.alert_admin(alert)
        except Exception:
            logger.exception("Failed to send %s admin alert for %s.", severity.value, operation)


__all__ = ["BestEffortNotifier"]
