"""Restore an archived file from tape into the disk cache."""

from __future__ import annotations

import asyncio
import logging
import os

from tape_archive_worker.application.services.best_effort_notifier import BestEffortNotifier
from tape_archive_worker.domain.jobs import DownloadJob
from tape_archive_worker.domain.notifications import NotificationKind, NotificationStatus
from tape_archive_worker.domain.ports import ArchiveRepository, TapeDevice, TransferVerifier
from tape_archive_worker.domain.records import DownloadStatus, ServedFrom
from tape_archive_worker.domain.results import PipelineResult

logger = logging.getLogger(__name__)

_OPERATION = "download"


class DownloadPipeline:
    """Mount the right tape, copy the file back to the cache, verify, record."""

    def __init__(
        self,
        repository: ArchiveRepository,
        device: TapeDevice,
        verifier: TransferVerifier,
        notifier: BestEffortNotifier,
        *,
        cache_root: str,
    ) -> None:
        self._repository = repository
        self._device = device
        self._verifier = verifier
        self._notifier = notifier
        self._cache_root = cache_root

    def cache_destination(self, job: DownloadJob) -> str:
        return os.path.join(self._cache_root, job.group_name, job.user_name, job.file_name)

    async def process(self, job: DownloadJob) -> PipelineResult:
        step = "mark_processing"
        try:
            await self._repository.update_download_request(
                job.request_id, status=DownloadStatus.PROCESSING
            )

            step = "ensure_tape"
            await self._device.ensure_correct_tape(job.tape_id)

            step = "check_tape_location"
            if not await asyncio.to_thread(os.path.exists, job.tape_location):
                return await self._report_missing_location(job)

            step = "prepare_cache"
            destination = self.cache_destination(job)
            await asyncio.to_thread(os.makedirs, os.path.dirname(destination), exist_ok=True)

            step = "copy_and_verify"
            summary = await self._verifier.copy_and_verify(job.tape_location, destination)

            step = "record_completion"
            await self._repository.set_upload_cache_state(
                job.file_id,
                local_file_location=destination,
                is_cached=True,
            )
            await self._repository.update_download_request(
                job.request_id,
                status=DownloadStatus.COMPLETED,
                served_from=ServedFrom.TAPE,
            )
        except Exception as exc:
            await self._report_failure(job, step, exc)
            raise

        logger.info(
            "Download %s restored %s from tape %s to %s.",
            job.request_id,
            job.tape_location,
            job.tape_id,
            destination,
        )
        await self._notifier.notify_user(
            recipient=job.user_email,
            user_name=job.user_name,
            file_name=job.file_name,
            kind=NotificationKind.DOWNLOAD,
            status=NotificationStatus.COMPLETED,
            tape_id=job.tape_id,
            cache_location=destination,
            size_bytes=summary.size_bytes,
            requested_at=job.requested_at.isoformat(),
        )
        return PipelineResult.succeeded(
            f"Restored {job.file_name} from tape {job.tape_id}.",
            cache_location=destination,
            size_bytes=summary.size_bytes,
        )

    async def _report_missing_location(self, job: DownloadJob) -> PipelineResult:
        message = f"Tape location {job.tape_location} not found on tape {job.tape_id}."
        logger.error("Download %s failed: %s", job.request_id, message)
        await self._repository.update_download_request(
            job.request_id, status=DownloadStatus.FAILED
        )
        await self._notifier.notify_user(
            recipient=job.user_email,
            user_name=job.user_name,
            file_name=job.file_name,
            kind=NotificationKind.DOWNLOAD,
            status=NotificationStatus.FAILED,
            error=message,
            tape_id=job.tape_id,
            requested_at=job.requested_at.isoformat(),
        )
        await self._notifier.alert_admin(
            _OPERATION,
            message,
            request_id=job.request_id,
            file_id=job.file_id,
            tape_id=job.tape_id,
            tape_location=job.tape_location,
        )
        return PipelineResult.permanent_failure(message, tape_id=job.tape_id)

    async def _report_failure(self, job: DownloadJob, step: str, exc: Exception) -> None:
        logger.error("Download %s failed at step %s: %s", job.request_id, step, exc)
        try:
            await self._repository.update_download_request(
                job.request_id, status=DownloadStatus.FAILED
            )
        except Exception:
            logger.exception("Failed to record failure of download %s.", job.request_id)
        await self._notifier.notify_user(
            recipient=job.user_email,
            user_name=job.user_name,
            file_name=job.file_name,
            kind=NotificationKind.DOWNLOAD,
            status=NotificationStatus.FAILED,
            error=str(exc),
            step=step,
            tape_id=job.tape_id,
            requested_at=job.requested_at.isoformat(),
        )
        await self._notifier.alert_admin(
            _OPERATION,
            f"Download of {job.file_name} failed at {step}: {exc}",
            request_id=job.request_id,
            file_id=job.file_id,
            tape_id=job.tape_id,
            error_type=type(exc).__name__,
        )


__all__ = ["DownloadPipeline"]
