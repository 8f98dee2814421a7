"""In-process priority job queue with bounded retries and claim leases."""

from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from uuid import uuid4

from tape_archive_worker.domain.jobs import (
    TERMINAL_JOB_STATUSES,
    JobQueueName,
    JobStatus,
    QueuedJob,
    TransferJob,
    queue_for_job,
)
from tape_archive_worker.domain.ports import JobQueue

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _InMemoryJob:
    job_id: str
    queue_name: JobQueueName
    job: TransferJob
    priority: int
    sequence: int
    status: JobStatus
    attempts: int
    available_at: datetime
    lease_until: datetime | None = None
    last_error: str | None = None


class InMemoryJobQueue(JobQueue):
    """Priority queue: lower priority value first, FIFO within a tier.

    Failed attempts are rescheduled with exponential backoff until
    ``max_attempts`` is reached. A claim is leased for ``lease_seconds``;
    an active job whose lease ran out is claimed again, or failed when it
    has no attempts left.
    """

    def __init__(
        self,
        *,
        max_attempts: int = 3,
        backoff_base_seconds: float = 1.0,
        lease_seconds: float = 300.0,
    ) -> None:
        self._max_attempts = max(1, max_attempts)
        self._backoff_base_seconds = max(backoff_base_seconds, 0.0)
        self._lease = timedelta(seconds=max(lease_seconds, 0.0))
        self._jobs: dict[str, _InMemoryJob] = {}
        self._sequence = itertools.count()
        self._lock = asyncio.Lock()

    async def enqueue(
        self,
        job: TransferJob,
        *,
        priority: int = 2,
        job_id: str | None = None,
    ) -> str:
        resolved_id = job_id or str(uuid4())
        async with self._lock:
            existing = self._jobs.get(resolved_id)
            if existing is not None and existing.status not in TERMINAL_JOB_STATUSES:
                logger.info("Job %s is already pending; not enqueuing again.", resolved_id)
                return resolved_id
            self._jobs[resolved_id] = _InMemoryJob(
                job_id=resolved_id,
                queue_name=queue_for_job(job),
                job=job,
                priority=priority,
                sequence=next(self._sequence),
                status=JobStatus.QUEUED,
                attempts=0,
                available_at=datetime.now(tz=UTC),
            )
        return resolved_id

    async def claim_next(self, queue_name: JobQueueName) -> QueuedJob | None:
        now = datetime.now(tz=UTC)
        async with self._lock:
            due = []
            for entry in self._jobs.values():
                if entry.queue_name != queue_name:
                    continue
                if entry.status == JobStatus.QUEUED and entry.available_at <= now:
                    due.append(entry)
                elif self._lease_expired(entry, now):
                    if entry.attempts >= self._max_attempts:
                        self._fail_expired(entry)
                    else:
                        logger.warning(
                            "Lease of job %s expired during attempt %s; reclaiming it.",
                            entry.job_id,
                            entry.attempts,
                        )
                        due.append(entry)
            if not due:
                return None
            entry = min(due, key=lambda item: (item.priority, item.sequence))
            entry.status = JobStatus.ACTIVE
            entry.attempts += 1
            entry.lease_until = now + self._lease
            return QueuedJob(
                job_id=entry.job_id,
                queue_name=entry.queue_name,
                job=entry.job,
                priority=entry.priority,
                attempt=entry.attempts,
                max_attempts=self._max_attempts,
            )

    async def renew_lease(self, job_id: str, *, attempt: int) -> bool:
        async with self._lock:
            entry = self._jobs.get(job_id)
            if entry is None or entry.status != JobStatus.ACTIVE or entry.attempts != attempt:
                return False
            entry.lease_until = datetime.now(tz=UTC) + self._lease
            return True

    async def mark_completed(self, job_id: str) -> None:
        async with self._lock:
            entry = self._jobs.get(job_id)
            if entry is not None:
                entry.status = JobStatus.COMPLETED
                entry.lease_until = None
                entry.last_error = None

    async def mark_failed(self, job_id: str, *, error: str, retryable: bool) -> bool:
        async with self._lock:
            entry = self._jobs.get(job_id)
            if entry is None:
                return False
            entry.last_error = error
            entry.lease_until = None
            if retryable and entry.attempts < self._max_attempts:
                entry.status = JobStatus.QUEUED
                entry.available_at = datetime.now(tz=UTC) + timedelta(
                    seconds=self._backoff_base_seconds * (2 ** max(entry.attempts - 1, 0))
                )
                return True
            entry.status = JobStatus.FAILED
            return False

    async def queue_counts(self, queue_name: JobQueueName) -> dict[JobStatus, int]:
        counts = {status: 0 for status in JobStatus}
        async with self._lock:
            for entry in self._jobs.values():
                if entry.queue_name == queue_name:
                    counts[entry.status] += 1
        return counts

    async def get_status(self, job_id: str) -> JobStatus | None:
        async with self._lock:
            entry = self._jobs.get(job_id)
            return entry.status if entry is not None else None

    async def get_last_error(self, job_id: str) -> str | None:
        async with self._lock:
            entry = self._jobs.get(job_id)
            return entry.last_error if entry is not None else None

    def _lease_expired(self, entry: _InMemoryJob, now: datetime) -> bool:
        return (
            entry.status == JobStatus.ACTIVE
            and entry.lease_until is not None
            and entry.lease_until <= now
        )

    def _fail_expired(self, entry: _InMemoryJob) -> None:
        logger.error(
            "Lease of job %s expired on its last attempt (%s); failing it.",
            entry.job_id,
            entry.attempts,
        )
        entry.status = JobStatus.FAILED
        entry.lease_until = None
        entry.last_error = f"Lease expired during attempt {entry.attempts}."


__all__ = ["InMemoryJobQueue"]
