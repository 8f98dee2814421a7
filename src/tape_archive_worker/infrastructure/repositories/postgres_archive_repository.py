"""PostgreSQL adapter for archive records and the durable job queue.

Upload, download, tape and host tables belong to the application database and
are only read and updated here. The ``archive_jobs`` table is created on first
use.
"""

from __future__ import annotations

import asyncio
import json
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

import asyncpg  # type: ignore[import-untyped]

from tape_archive_worker.domain.jobs import (
    TRANSFER_JOB_ADAPTER,
    JobQueueName,
    JobStatus,
    QueuedJob,
    TransferJob,
    queue_for_job,
)
from tape_archive_worker.domain.ports import ArchiveRepository, JobQueue
from tape_archive_worker.domain.records import (
    DownloadRequestRecord,
    DownloadStatus,
    ServedFrom,
    TapeRecord,
    TapeUsage,
    UploadRecord,
    UploadStatus,
)

_UPLOAD_SELECT = """
    SELECT
        ud.id::text AS file_id,
        ud.file_name,
        ud.user_name,
        COALESCE(u.email, '') AS user_email,
        ud.group_name,
        ud.status,
        ud.file_size,
        ud.local_file_location,
        ud.tape_location,
        ud.tape_number,
        COALESCE(ud.is_cached, FALSE) AS is_cached,
        COALESCE(ud.is_admin, FALSE) AS is_priority,
        ud.requested_at
    FROM upload_details AS ud
    LEFT JOIN users AS u ON u.name = ud.user_name
"""

_DOWNLOAD_SELECT = """
    SELECT
        dr.id::text AS request_id,
        dr.file_id::text AS file_id,
        dr.user_name,
        COALESCE(u.email, '') AS user_email,
        dr.status,
        dr.served_from,
        dr.requested_at
    FROM download_requests AS dr
    LEFT JOIN users AS u ON u.name = dr.user_name
"""


class PostgresArchiveRepository(ArchiveRepository, JobQueue):
    """Archive repository and job queue backed by PostgreSQL."""

    def __init__(
        self,
        dsn: str,
        min_pool_size: int = 1,
        max_pool_size: int = 10,
        *,
        job_max_attempts: int = 3,
        job_backoff_base_seconds: float = 1.0,
        job_lease_seconds: float = 300.0,
    ) -> None:
        self._dsn = dsn
        self._min_pool_size = min_pool_size
        self._max_pool_size = max_pool_size
        self._job_max_attempts = max(1, job_max_attempts)
        self._job_backoff_base_seconds = max(job_backoff_base_seconds, 0.0)
        self._job_lease_seconds = max(job_lease_seconds, 0.0)
        self._pool: asyncpg.Pool | None = None
        self._pool_lock = asyncio.Lock()

    async def get_upload(self, file_id: str) -> UploadRecord | None:
        pool = await self._get_pool()
        row = await pool.fetchrow(f"{_UPLOAD_SELECT} WHERE ud.id::text = $1", file_id)
        if row is None:
            return None
        return self._to_upload(row)

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
        pool = await self._get_pool()
        await pool.execute(
            """
            UPDATE upload_details
            SET
                status = $2,
                tape_location = COALESCE($3, tape_location),
                tape_number = COALESCE($4, tape_number),
                local_file_location = COALESCE($5, local_file_location),
                file_size = COALESCE($6, file_size),
                updated_at = NOW()
            WHERE id::text = $1
            """,
            file_id,
            status.value,
            tape_location,
            tape_id,
            local_file_location,
            file_size_label,
        )

    async def set_upload_cache_state(
        self,
        file_id: str,
        *,
        local_file_location: str | None,
        is_cached: bool,
    ) -> None:
        pool = await self._get_pool()
        await pool.execute(
            """
            UPDATE upload_details
            SET
                local_file_location = COALESCE($2, local_file_location),
                is_cached = $3,
                updated_at = NOW()
            WHERE id::text = $1
            """,
            file_id,
            local_file_location,
            is_cached,
        )

    async def mark_cache_evicted(self, local_file_location: str) -> int:
        pool = await self._get_pool()
        result = await pool.execute(
            """
            UPDATE upload_details
            SET is_cached = FALSE, updated_at = NOW()
            WHERE local_file_location = $1 AND is_cached
            """,
            local_file_location,
        )
        return self._affected_rows(result)

    async def get_download_request(self, request_id: str) -> DownloadRequestRecord | None:
        pool = await self._get_pool()
        row = await pool.fetchrow(f"{_DOWNLOAD_SELECT} WHERE dr.id::text = $1", request_id)
        if row is None:
            return None
        return DownloadRequestRecord(
            request_id=row["request_id"],
            file_id=row["file_id"],
            user_name=row["user_name"],
            user_email=row["user_email"],
            status=DownloadStatus(row["status"]),
            served_from=ServedFrom(row["served_from"]) if row["served_from"] else None,
            requested_at=row["requested_at"],
        )

    async def update_download_request(
        self,
        request_id: str,
        *,
        status: DownloadStatus,
        served_from: ServedFrom | None = None,
    ) -> None:
        pool = await self._get_pool()
        await pool.execute(
            """
            UPDATE download_requests
            SET
                status = $2,
                served_from = COALESCE($3, served_from),
                completed_at = CASE WHEN $2 = 'completed' THEN NOW() ELSE completed_at END
            WHERE id::text = $1
            """,
            request_id,
            status.value,
            served_from.value if served_from is not None else None,
        )

    async def get_tape(self, tape_id: str) -> TapeRecord | None:
        pool = await self._get_pool()
        row = await pool.fetchrow(
            """
            SELECT tape_no, group_name, total_size, used_size, available_size,
                   usage_percentage, status
            FROM tape_info
            WHERE tape_no = $1
            """,
            tape_id,
        )
        if row is None:
            return None
        return TapeRecord(
            tape_id=row["tape_no"],
            group_name=row["group_name"],
            total_size=row["total_size"],
            used_size=row["used_size"],
            available_size=row["available_size"],
            usage_percentage=float(row["usage_percentage"] or 0),
            status=row["status"] or "active",
        )

    async def list_group_tape_ids(self, group_name: str) -> list[str]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            """
            SELECT tape_no
            FROM tape_info
            WHERE group_name = $1
            ORDER BY usage_percentage ASC, tape_no ASC
            """,
            group_name,
        )
        return [row["tape_no"] for row in rows]

    async def update_tape_usage(self, tape_id: str, usage: TapeUsage) -> None:
        pool = await self._get_pool()
        await pool.execute(
            """
            UPDATE tape_info
            SET
                total_size = $2,
                used_size = $3,
                available_size = $4,
                usage_percentage = $5,
                updated_at = NOW()
            WHERE tape_no = $1
            """,
            tape_id,
            usage.total_size,
            usage.used_size,
            usage.available_size,
            usage.usage_percentage,
        )

    async def resolve_host_address(self, group_name: str, host_alias: str) -> str | None:
        pool = await self._get_pool()
        return await pool.fetchval(
            """
            SELECT private_ip
            FROM server_info
            WHERE server_name = $1 AND (group_name = $2 OR group_name IS NULL)
            ORDER BY group_name NULLS LAST
            LIMIT 1
            """,
            host_alias,
            group_name,
        )

    async def enqueue(
        self,
        job: TransferJob,
        *,
        priority: int = 2,
        job_id: str | None = None,
    ) -> str:
        resolved_id = job_id or str(uuid4())
        payload = json.dumps(
            TRANSFER_JOB_ADAPTER.dump_python(job, mode="json", by_alias=True)
        )
        pool = await self._get_pool()
        await pool.execute(
            """
            INSERT INTO archive_jobs (job_id, queue_name, priority, payload, status)
            VALUES ($1, $2, $3, $4::jsonb, 'queued')
            ON CONFLICT (job_id) DO UPDATE SET
                queue_name = EXCLUDED.queue_name,
                priority = EXCLUDED.priority,
                payload = EXCLUDED.payload,
                status = 'queued',
                attempts = 0,
                available_at = NOW(),
                last_error = NULL,
                enqueued_at = NOW(),
                updated_at = NOW()
            WHERE archive_jobs.status IN ('completed', 'failed')
            """,
            resolved_id,
            queue_for_job(job).value,
            priority,
            payload,
        )
        return resolved_id

    async def claim_next(self, queue_name: JobQueueName) -> QueuedJob | None:
        pool = await self._get_pool()
        await pool.execute(
            """
            UPDATE archive_jobs
            SET
                status = 'failed',
                lease_until = NULL,
                last_error = 'Lease expired during attempt ' || attempts || '.',
                updated_at = NOW()
            WHERE queue_name = $1
              AND status = 'active'
              AND lease_until <= NOW()
              AND attempts >= $2
            """,
            queue_name.value,
            self._job_max_attempts,
        )
        row = await pool.fetchrow(
            """
            WITH due AS (
                SELECT job_id
                FROM archive_jobs
                WHERE queue_name = $1
                  AND (
                      (status = 'queued' AND available_at <= NOW())
                      OR (status = 'active' AND lease_until <= NOW())
                  )
                ORDER BY priority ASC, enqueued_at ASC, id ASC
                FOR UPDATE SKIP LOCKED
                LIMIT 1
            )
            UPDATE archive_jobs AS jobs
            SET
                status = 'active',
                attempts = jobs.attempts + 1,
                lease_until = NOW() + ($2::double precision * INTERVAL '1 second'),
                updated_at = NOW()
            FROM due
            WHERE jobs.job_id = due.job_id
            RETURNING jobs.job_id, jobs.queue_name, jobs.priority, jobs.attempts, jobs.payload
            """,
            queue_name.value,
            self._job_lease_seconds,
        )
        if row is None:
            return None
        payload = row["payload"]
        if isinstance(payload, str):
            payload = json.loads(payload)
        return QueuedJob(
            job_id=row["job_id"],
            queue_name=JobQueueName(row["queue_name"]),
            job=TRANSFER_JOB_ADAPTER.validate_python(payload),
            priority=row["priority"],
            attempt=row["attempts"],
            max_attempts=self._job_max_attempts,
        )

    async def renew_lease(self, job_id: str, *, attempt: int) -> bool:
        pool = await self._get_pool()
        status = await pool.execute(
            """
            UPDATE archive_jobs
            SET
                lease_until = NOW() + ($3::double precision * INTERVAL '1 second'),
                updated_at = NOW()
            WHERE job_id = $1
              AND status = 'active'
              AND attempts = $2
            """,
            job_id,
            attempt,
            self._job_lease_seconds,
        )
        return self._affected_rows(status) == 1

    async def mark_completed(self, job_id: str) -> None:
        pool = await self._get_pool()
        await pool.execute(
            """
            UPDATE archive_jobs
            SET status = 'completed', lease_until = NULL, last_error = NULL, updated_at = NOW()
            WHERE job_id = $1
            """,
            job_id,
        )

    async def mark_failed(self, job_id: str, *, error: str, retryable: bool) -> bool:
        pool = await self._get_pool()
        status = await pool.fetchval(
            """
            UPDATE archive_jobs
            SET
                status = CASE
                    WHEN $3 AND attempts < $4 THEN 'queued'
                    ELSE 'failed'
                END,
                available_at = CASE
                    WHEN $3 AND attempts < $4
                    THEN NOW() + ($5::double precision * POWER(2, GREATEST(attempts - 1, 0))
                        * INTERVAL '1 second')
                    ELSE available_at
                END,
                lease_until = NULL,
                last_error = $2,
                updated_at = NOW()
            WHERE job_id = $1
            RETURNING status
            """,
            job_id,
            error,
            retryable,
            self._job_max_attempts,
            self._job_backoff_base_seconds,
        )
        return status == JobStatus.QUEUED.value

    async def queue_counts(self, queue_name: JobQueueName) -> dict[JobStatus, int]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            """
            SELECT status, COUNT(*) AS total
            FROM archive_jobs
            WHERE queue_name = $1
            GROUP BY status
            """,
            queue_name.value,
        )
        counts = {status: 0 for status in JobStatus}
        for row in rows:
            counts[JobStatus(row["status"])] = int(row["total"])
        return counts

    async def close(self) -> None:
        """Close the pool if it was initialized."""

        pool = self._pool
        self._pool = None
        if pool is not None:
            await pool.close()

    async def _get_pool(self) -> asyncpg.Pool:
        if self._pool is not None:
            return self._pool

        async with self._pool_lock:
            if self._pool is None:
                pool = await asyncpg.create_pool(
                    dsn=self._dsn,
                    min_size=self._min_pool_size,
                    max_size=self._max_pool_size,
                )
                await self._ensure_schema(pool)
                self._pool = pool
        assert self._pool is not None
        return self._pool

    async def _ensure_schema(self, pool: asyncpg.Pool) -> None:
        await pool.execute(
            """
            CREATE TABLE IF NOT EXISTS archive_jobs (
                id BIGSERIAL,
                job_id TEXT PRIMARY KEY,
                queue_name TEXT NOT NULL,
                priority INTEGER NOT NULL DEFAULT 2,
                payload JSONB NOT NULL,
                status TEXT NOT NULL,
                attempts INTEGER NOT NULL DEFAULT 0,
                available_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                lease_until TIMESTAMPTZ,
                last_error TEXT,
                enqueued_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            );
            ALTER TABLE archive_jobs ADD COLUMN IF NOT EXISTS lease_until TIMESTAMPTZ;
            CREATE INDEX IF NOT EXISTS idx_archive_jobs_claimable
                ON archive_jobs (queue_name, priority, enqueued_at, id)
                WHERE status IN ('queued', 'active');
            """
        )

    def _to_upload(self, row: Any) -> UploadRecord:
        requested_at = row["requested_at"]
        if isinstance(requested_at, datetime) and requested_at.tzinfo is None:
            requested_at = requested_at.replace(tzinfo=UTC)
        return UploadRecord(
            file_id=row["file_id"],
            file_name=row["file_name"],
            user_name=row["user_name"],
            user_email=row["user_email"],
            group_name=row["group_name"],
            status=UploadStatus(row["status"]),
            file_size_label=row["file_size"],
            local_file_location=row["local_file_location"],
            tape_location=row["tape_location"],
            tape_id=row["tape_number"],
            is_cached=bool(row["is_cached"]),
            is_priority=bool(row["is_priority"]),
            requested_at=requested_at,
        )

    def _affected_rows(self, status: str) -> int:
        # asyncpg returns the command tag, e.g. "UPDATE 3".
        try:
            return int(status.rsplit(" ", 1)[-1])
        except (ValueError, IndexError):
            return 0


__all__ = ["PostgresArchiveRepository"]
