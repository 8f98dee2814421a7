"""Notifier that forwards events to the notification service over HTTP."""

from tape_archive_worker.domain.notifications import AdminAlert, UserNotification
from tape_archive_worker.domain.ports import Notifier
from tape_archive_worker.infrastructure.notifications.notification_client import (
    NotificationClient,
)


class HttpNotifier(Notifier):
    """Serialize notification models and post them."""

    def __init__(self, client: NotificationClient) -> None:
        self._client = client

    async def notify_user(self, notification: UserNotification) -> None:
        await self._client.send_user_notification(
            notification.model_dump(mode="json", by_alias=True)
        )

    async def alert_admin(self, alert: AdminAlert) -> None:
        await self._client.send_admin_alert(alert.model_dump(mode="json", by_alias=True))


__all__ = ["HttpNotifier"]
