"""Persisted records mutated by archive pipelines."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum


class UploadStatus(StrEnum):
    """Lifecycle of an uploaded file on its way to tape."""

    QUEUEING = "queueing"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class DownloadStatus(StrEnum):
    """Lifecycle of a request to serve a file back to a user."""

    REQUESTED = "requested"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ServedFrom(StrEnum):
    """Where a download was served from."""

    CACHE = "cache"
    TAPE = "tape"


@dataclass(slots=True)
class TapeRecord:
    """Capacity bookkeeping for one tape cartridge.

    Sizes are labels as printed by the free-space report (``"2.3T"``).
    """

    tape_id: str
    group_name: str
    total_size: str | None = None
    used_size: str | None = None
    available_size: str | None = None
    usage_percentage: float = 0.0
    status: str = "active"


@dataclass(slots=True, frozen=True)
class TapeUsage:
    """Usage figures observed on a mounted tape."""

    filesystem: str
    total_size: str
    used_size: str
    available_size: str
    usage_percentage: float


@dataclass(slots=True)
class UploadRecord:
    """One file a user asked to archive."""

    file_id: str
    file_name: str
    user_name: str
    user_email: str
    group_name: str
    status: UploadStatus = UploadStatus.QUEUEING
    file_size_label: str | None = None
    local_file_location: str | None = None
    tape_location: str | None = None
    tape_id: str | None = None
    is_cached: bool = False
    is_priority: bool = False
    requested_at: datetime | None = None


@dataclass(slots=True)
class DownloadRequestRecord:
    """One request to restore an archived file."""

    request_id: str
    file_id: str
    user_name: str
    user_email: str
    status: DownloadStatus = DownloadStatus.REQUESTED
    served_from: ServedFrom | None = None
    requested_at: datetime | None = None


__all__ = [
    "DownloadRequestRecord",
    "DownloadStatus",
    "ServedFrom",
    "TapeRecord",
    "TapeUsage",
    "UploadRecord",
    "UploadStatus",
]
