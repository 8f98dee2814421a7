"""Domain public API."""

from tape_archive_worker.domain.commands import CommandResult
from tape_archive_worker.domain.device import (
    AutoloaderStatus,
    DevicePhase,
    DriveStatus,
    FreeSpaceReport,
    MountEntry,
    SettlePolicy,
    SlotStatus,
    TapeDeviceState,
)
from tape_archive_worker.domain.errors import (
    ArchiveError,
    HardwareError,
    MalformedOutputError,
    RecordNotFoundError,
    RemoteAuthenticationError,
    RemotePathError,
    SpaceError,
    TransferError,
    ValidationError,
    VerificationError,
)
from tape_archive_worker.domain.jobs import (
    DEFAULT_PRIORITY,
    PRIVILEGED_PRIORITY,
    DownloadJob,
    JobQueueName,
    JobStatus,
    QueuedJob,
    SecureCopyDownloadJob,
    SecureCopyUploadJob,
    TransferJob,
    UploadJob,
    queue_for_job,
)
from tape_archive_worker.domain.notifications import (
    AdminAlert,
    AlertSeverity,
    NotificationKind,
    NotificationStatus,
    UserNotification,
)
from tape_archive_worker.domain.ports import (
    ArchiveRepository,
    CommandRunner,
    DeviceStatusReader,
    JobQueue,
    Notifier,
    RemoteCopier,
    TapeDevice,
    TransferVerifier,
)
from tape_archive_worker.domain.records import (
    DownloadRequestRecord,
    DownloadStatus,
    ServedFrom,
    TapeRecord,
    TapeUsage,
    UploadRecord,
    UploadStatus,
)
from tape_archive_worker.domain.results import (
    PipelineOutcome,
    PipelineResult,
    SpaceCheck,
    TapeSpaceCandidate,
    TransferSummary,
)
from tape_archive_worker.domain.size_units import format_size, parse_size_label, sizes_match

__all__ = [
    "AdminAlert",
    "AlertSeverity",
    "ArchiveError",
    "ArchiveRepository",
    "AutoloaderStatus",
    "CommandResult",
    "CommandRunner",
    "DEFAULT_PRIORITY",
    "DevicePhase",
    "DeviceStatusReader",
    "DownloadJob",
    "DownloadRequestRecord",
    "DownloadStatus",
    "DriveStatus",
    "FreeSpaceReport",
    "HardwareError",
    "JobQueue",
    "JobQueueName",
    "JobStatus",
    "MalformedOutputError",
    "MountEntry",
    "NotificationKind",
    "NotificationStatus",
    "Notifier",
    "PRIVILEGED_PRIORITY",
    "PipelineOutcome",
    "PipelineResult",
    "QueuedJob",
    "RecordNotFoundError",
    "RemoteCopier",
    "RemoteAuthenticationError",
    "RemotePathError",
    "SecureCopyDownloadJob",
    "SecureCopyUploadJob",
    "ServedFrom",
    "SettlePolicy",
    "SlotStatus",
    "SpaceCheck",
    "SpaceError",
    "TapeDevice",
    "TapeDeviceState",
    "TapeRecord",
    "TapeSpaceCandidate",
    "TapeUsage",
    "TransferError",
    "TransferJob",
    "TransferSummary",
    "TransferVerifier",
    "UploadJob",
    "UploadRecord",
    "UploadStatus",
    "UserNotification",
    "ValidationError",
    "VerificationError",
    "format_size",
    "parse_size_label",
    "queue_for_job",
    "sizes_match",
]
