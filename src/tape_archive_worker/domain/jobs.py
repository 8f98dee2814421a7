"""Transfer job payloads exchanged with the job queue."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class JobQueueName(StrEnum):
    """Named queues drained by the dispatcher."""

    FILE_PROCESSING = "file-processing"
    SECURE_COPY = "secure-copy"


class JobStatus(StrEnum):
    """Queue-side state of one job."""

    QUEUED = "queued"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_JOB_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})

PRIVILEGED_PRIORITY = 1
DEFAULT_PRIORITY = 2


class JobModel(BaseModel):
    """Base model for queue payloads."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class UploadJob(JobModel):
    """Archive a disk-cached file onto tape."""

    type: Literal["upload"] = "upload"
    file_id: str = Field(alias="fileId")
    file_name: str = Field(alias="fileName")
    file_size_label: str = Field(alias="fileSizeLabel")
    user_name: str = Field(alias="userName")
    user_email: str = Field(alias="userEmail")
    group_name: str = Field(alias="groupName")
    is_priority: bool = Field(default=False, alias="isPriority")
    source_path: str = Field(alias="sourcePath")
    requested_at: datetime = Field(alias="requestedAt")


class DownloadJob(JobModel):
    """Restore an archived file from tape into the disk cache."""

    type: Literal["download"] = "download"
    request_id: str = Field(alias="requestId")
    file_id: str = Field(alias="fileId")
    file_name: str = Field(alias="fileName")
    user_name: str = Field(alias="userName")
    user_email: str = Field(alias="userEmail")
    group_name: str = Field(alias="groupName")
    tape_location: str = Field(alias="tapeLocation")
    tape_id: str = Field(alias="tapeId")
    requested_at: datetime = Field(alias="requestedAt")


class SecureCopyUploadJob(JobModel):
    """Pull a file from a user's host into the cache, then archive it."""

    type: Literal["secure_copy_upload"] = "secure_copy_upload"
    file_id: str = Field(alias="fileId")
    file_name: str = Field(alias="fileName")
    user_name: str = Field(alias="userName")
    user_email: str = Field(alias="userEmail")
    group_name: str = Field(alias="groupName")
    remote_host: str = Field(alias="remoteHost")
    remote_user: str = Field(alias="remoteUser")
    remote_path: str = Field(alias="remotePath")
    is_priority: bool = Field(default=False, alias="isPriority")
    requested_at: datetime = Field(alias="requestedAt")


class SecureCopyDownloadJob(JobModel):
    """Push a cached file to a user's host."""

    type: Literal["secure_copy_download"] = "secure_copy_download"
    download_request_id: str = Field(alias="downloadRequestId")
    file_id: str = Field(alias="fileId")
    file_name: str = Field(alias="fileName")
    user_name: str = Field(alias="userName")
    user_email: str = Field(alias="userEmail")
    group_name: str = Field(alias="groupName")
    remote_host: str = Field(alias="remoteHost")
    remote_user: str = Field(alias="remoteUser")
    remote_path: str = Field(alias="remotePath")
    is_priority: bool = Field(default=False, alias="isPriority")
    requested_at: datetime = Field(alias="requestedAt")


TransferJob = Annotated[
    UploadJob | DownloadJob | SecureCopyUploadJob | SecureCopyDownloadJob,
    Field(discriminator="type"),
]

TRANSFER_JOB_ADAPTER: TypeAdapter[TransferJob] = TypeAdapter(TransferJob)


def queue_for_job(job: TransferJob) -> JobQueueName:
    """Return the named queue a job type is routed through."""

    if isinstance(job, (SecureCopyUploadJob, SecureCopyDownloadJob)):
        return JobQueueName.SECURE_COPY
    return JobQueueName.FILE_PROCESSING


@dataclass(slots=True, frozen=True)
class QueuedJob:
    """A job claimed from the queue for one execution attempt."""

    job_id: str
    queue_name: JobQueueName
    job: TransferJob
    priority: int
    attempt: int
    max_attempts: int

    @property
    def is_last_attempt(self) -> bool:
        """Return whether a failure now exhausts the retry budget."""

        return self.attempt >= self.max_attempts


__all__ = [
    "DEFAULT_PRIORITY",
    "DownloadJob",
    "JobQueueName",
    "JobStatus",
    "PRIVILEGED_PRIORITY",
    "QueuedJob",
    "SecureCopyDownloadJob",
    "SecureCopyUploadJob",
    "TERMINAL_JOB_STATUSES",
    "TRANSFER_JOB_ADAPTER",
    "TransferJob",
    "UploadJob",
    "queue_for_job",
]
