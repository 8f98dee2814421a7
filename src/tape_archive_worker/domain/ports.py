"""Ports for persistence, queueing, notifications, and the tape device."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from tape_archive_worker.domain.commands import CommandResult
from tape_archive_worker.domain.device import (
    AutoloaderStatus,
    FreeSpaceReport,
    MountEntry,
    TapeDeviceState,
)
from tape_archive_worker.domain.jobs import JobQueueName, JobStatus, QueuedJob, TransferJob
from tape_archive_worker.domain.notifications import AdminAlert, UserNotification
from tape_archive_worker.domain.records import (
    DownloadRequestRecord,
    DownloadStatus,
    ServedFrom,
    TapeRecord,
    TapeUsage,
    UploadRecord,
    UploadStatus,
)
from tape_archive_worker.domain.results import TransferSummary


class ArchiveRepository(Protocol):
    """Persistence port for uploads, download requests, tapes and hosts."""

    async def get_upload(self, file_id: str) -> UploadRecord | None:
        """Return one upload record."""

    async def update_upload(
        self,
        file_id: str,
        *,
        status: UploadStatus,
        tape_location: str | None = None,
        tape_id: str | None = None,
        local_file_location: str | None = None,
        file_size_label: str | None = None,
    ) -> None:
        """Set upload status; non-null keyword fields are written too."""

    async def set_upload_cache_state(
        self,
        file_id: str,
        *,
        local_file_location: str | None,
        is_cached: bool,
    ) -> None:
        """Record where the disk-cache copy lives and whether it is present."""

    async def mark_cache_evicted(self, local_file_location: str) -> int:
        """Clear ``is_cached`` for uploads cached at a path; return affected count."""

    async def get_download_request(self, request_id: str) -> DownloadRequestRecord | None:
        """Return one download request."""

    async def update_download_request(
        self,
        request_id: str,
        *,
        status: DownloadStatus,
        served_from: ServedFrom | None = None,
    ) -> None:
        """Set download request status."""

    async def get_tape(self, tape_id: str) -> TapeRecord | None:
        """Return one tape record."""

    async def list_group_tape_ids(self, group_name: str) -> list[str]:
        """Return a group's tapes ordered by ascending usage percentage."""

    async def update_tape_usage(self, tape_id: str, usage: TapeUsage) -> None:
        """Persist the latest observed usage of a tape."""

    async def resolve_host_address(self, group_name: str, host_alias: str) -> str | None:
        """Return the network address registered for a host alias."""


@runtime_checkable
class JobQueue(Protocol):
    """Priority job queue with bounded retry attempts."""

    async def enqueue(
        self,
        job: TransferJob,
        *,
        priority: int = 2,
        job_id: str | None = None,
    ) -> str:
        """Add a job; a pending job with the same id is left untouched."""

    async def claim_next(self, queue_name: JobQueueName) -> QueuedJob | None:
        """Claim the next due job: lowest priority value first, FIFO within a tier.

        The claim holds a lease; an active job whose lease ran out is claimed
        again as a new attempt, or failed once its attempts are used up.
        """

    async def renew_lease(self, job_id: str, *, attempt: int) -> bool:
        """Extend the lease of a claimed attempt; False once it was reclaimed or finished."""

    async def mark_completed(self, job_id: str) -> None:
        """Record a job as done."""

    async def mark_failed(self, job_id: str, *, error: str, retryable: bool) -> bool:
        """Record a failed attempt; return True when another attempt was scheduled."""

    async def queue_counts(self, queue_name: JobQueueName) -> dict[JobStatus, int]:
        """Return job counts per status for one queue."""


class Notifier(Protocol):
    """Outbound port to the notification collaborator."""

    async def notify_user(self, notification: UserNotification) -> None:
        """Deliver a success/failure event to a user."""

    async def alert_admin(self, alert: AdminAlert) -> None:
        """Deliver an operator alert."""


class CommandRunner(Protocol):
    """Run an external program from an argument vector."""

    async def run(
        self,
        argv: Sequence[str],
        *,
        timeout_seconds: float | None = None,
    ) -> CommandResult:
        """Run the command and capture its output; never raises on non-zero exit."""


class DeviceStatusReader(Protocol):
    """Read-only view of autoloader, mount table and free space."""

    async def read_autoloader_status(self) -> AutoloaderStatus:
        """Query the robot inventory."""

    async def read_mount_table(self) -> list[MountEntry]:
        """Query the OS mount table."""

    async def read_free_space(self, mount_point: str) -> FreeSpaceReport:
        """Query free space of the filesystem mounted at a path."""

    async def is_mount_helper_running(self) -> bool:
        """Return whether the LTFS helper process is still alive."""


class TapeDevice(Protocol):
    """Tape drive operations used by pipelines."""

    @property
    def mount_point(self) -> str:
        """Path where the mounted tape is visible."""

    async def ensure_correct_tape(self, tape_id: str) -> None:
        """Leave the requested tape loaded and mounted."""

    async def current_tape(self) -> str | None:
        """Return the volume tag in the drive."""

    async def is_mounted(self) -> bool:
        """Return whether the mount point is mounted."""

    async def read_state(self) -> TapeDeviceState:
        """Re-query and return the device state."""

    async def read_free_space(self) -> FreeSpaceReport:
        """Return free space on the mounted tape."""

    async def read_inventory(self) -> AutoloaderStatus:
        """Return the autoloader drive and slot inventory."""


class TransferVerifier(Protocol):
    """Copy a file or tree and prove the copy matches the source."""

    async def copy_and_verify(
        self,
        source: str,
        destination: str,
        *,
        verify_hash: bool = False,
    ) -> TransferSummary:
        """Copy and verify; raise VerificationError after removing a bad copy."""

    async def measure(self, path: str) -> int:
        """Return the size in bytes of a file or the total of a directory tree."""


class RemoteCopier(Protocol):
    """Copy to and from another host over an authenticated channel."""

    async def pull(self, *, user: str, address: str, remote_path: str, local_path: str) -> None:
        """Fetch a remote file or tree into a local path."""

    async def push(self, *, local_path: str, user: str, address: str, remote_path: str) -> None:
        """Send a local file or tree to the remote host and confirm it arrived."""


__all__ = [
    "ArchiveRepository",
    "CommandRunner",
    "DeviceStatusReader",
    "JobQueue",
    "Notifier",
    "RemoteCopier",
    "TapeDevice",
    "TransferVerifier",
]
