"""Infrastructure layer public API."""

from tape_archive_worker.infrastructure.cache import CacheEvictionSweeper, SweepReport
from tape_archive_worker.infrastructure.commands import SubprocessCommandRunner
from tape_archive_worker.infrastructure.device import (
    CommandDeviceStatusReader,
    LtfsTapeDeviceController,
    TapeCommandBuilder,
)
from tape_archive_worker.infrastructure.dispatch import JobDispatcher, JobHandler
from tape_archive_worker.infrastructure.notifications import (
    HttpNotifier,
    LoggingNotifier,
    NotificationClient,
    NotificationClientError,
)
from tape_archive_worker.infrastructure.queue import InMemoryJobQueue
from tape_archive_worker.infrastructure.repositories import (
    InMemoryArchiveRepository,
    PostgresArchiveRepository,
)
from tape_archive_worker.infrastructure.transfers import (
    DeviceSlotControl,
    DeviceSlotQueue,
    FilesystemTransferVerifier,
    RemoteCopyClient,
    RemoteCopyCommandBuilder,
    RemoteTarget,
)

__all__ = [
    "CacheEvictionSweeper",
    "CommandDeviceStatusReader",
    "DeviceSlotControl",
    "DeviceSlotQueue",
    "FilesystemTransferVerifier",
    "HttpNotifier",
    "InMemoryArchiveRepository",
    "InMemoryJobQueue",
    "JobDispatcher",
    "JobHandler",
    "LoggingNotifier",
    "LtfsTapeDeviceController",
    "NotificationClient",
    "NotificationClientError",
    "PostgresArchiveRepository",
    "RemoteCopyClient",
    "RemoteCopyCommandBuilder",
    "RemoteTarget",
    "SubprocessCommandRunner",
    "SweepReport",
    "TapeCommandBuilder",
]
