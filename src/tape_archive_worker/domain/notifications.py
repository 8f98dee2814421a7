"""Notification payloads handed to the notification collaborator."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class NotificationKind(StrEnum):
    """Operation a user notification is about."""

    UPLOAD = "upload"
    DOWNLOAD = "download"
    SECURE_COPY_UPLOAD = "secure_copy_upload"
    SECURE_COPY_DOWNLOAD = "secure_copy_download"


class NotificationStatus(StrEnum):
    """Outcome reported to the user."""

    COMPLETED = "completed"
    FAILED = "failed"


class AlertSeverity(StrEnum):
    """Admin alert classes."""

    CRITICAL = "critical"
    REPEATED_FAILURE = "repeated_failure"


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


class NotificationModel(BaseModel):
    """Base model for outbound notification payloads."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class UserNotification(NotificationModel):
    """Success or failure event addressed to the requesting user."""

    recipient: str
    user_name: str = Field(alias="userName")
    file_name: str = Field(alias="fileName")
    kind: NotificationKind
    status: NotificationStatus
    context: dict[str, Any] = Field(default_factory=dict)
    occurred_at: datetime = Field(default_factory=_utc_now, alias="occurredAt")


class AdminAlert(NotificationModel):
    """Operator-facing alert."""

    severity: AlertSeverity
    operation: str
    message: str
    context: dict[str, Any] = Field(default_factory=dict)
    occurred_at: datetime = Field(default_factory=_utc_now, alias="occurredAt")


__all__ = [
    "AdminAlert",
    "AlertSeverity",
    "NotificationKind",
    "NotificationStatus",
    "UserNotification",
]
