"""Archive a disk-cached file onto a tape of the uploader's group."""

from __future__ import annotations

import asyncio
import logging
import os

from tape_archive_worker.application.services.best_effort_notifier import BestEffortNotifier
from tape_archive_worker.application.services.capacity_allocator import CapacityAllocator
from tape_archive_worker.domain.errors import HardwareError, SpaceError, ValidationError
from tape_archive_worker.domain.jobs import UploadJob
from tape_archive_worker.domain.notifications import NotificationKind, NotificationStatus
from tape_archive_worker.domain.ports import ArchiveRepository, TapeDevice, TransferVerifier
from tape_archive_worker.domain.records import UploadStatus
from tape_archive_worker.domain.results import PipelineResult, SpaceCheck
from tape_archive_worker.domain.size_units import parse_size_label, sizes_match

logger = logging.getLogger(__name__)

_OPERATION = "upload"


class UploadPipeline:
    """Validate, allocate, switch tape, copy, verify, record, notify.

    Each step is named in logs and failure reports. No-space is returned as a
    permanent failure; every other error is recorded, reported and re-raised
    so the queue can decide on a retry.
    """

    def __init__(
        self,
        repository: ArchiveRepository,
        device: TapeDevice,
        allocator: CapacityAllocator,
        verifier: TransferVerifier,
        notifier: BestEffortNotifier,
        *,
        size_tolerance_ratio: float = 0.01,
    ) -> None:
        self._repository = repository
        self._device = device
        self._allocator = allocator
        self._verifier = verifier
        self._notifier = notifier
        self._size_tolerance_ratio = max(size_tolerance_ratio, 0.0)
        self._background_tasks: set[asyncio.Task[None]] = set()

    async def process(self, job: UploadJob) -> PipelineResult:
        step = "mark_processing"
        try:
            await self._repository.update_upload(job.file_id, status=UploadStatus.PROCESSING)

            step = "validate_source"
            actual_bytes = await self._validate_source(job)

            step = "allocate_tape"
            space = await self._allocator.check_group_space(job.group_name, actual_bytes)
            if space.selected_tape_id is None:
                return await self._report_no_space(job, space)
            tape_id = space.selected_tape_id

            step = "ensure_tape"
            await self._device.ensure_correct_tape(tape_id)
            destination_dir = self.tape_directory(job)
            try:
                await asyncio.to_thread(os.makedirs, destination_dir, exist_ok=True)
            except OSError as exc:
                raise HardwareError(
                    f"Cannot create tape directory {destination_dir}: {exc}"
                ) from exc
            destination = os.path.join(destination_dir, job.file_name)

            step = "copy_and_verify"
            summary = await self._verifier.copy_and_verify(job.source_path, destination)

            step = "record_completion"
            await self._repository.update_upload(
                job.file_id,
                status=UploadStatus.COMPLETED,
                tape_location=destination,
                tape_id=tape_id,
            )
        except Exception as exc:
            await self._report_failure(job, step, exc)
            raise

        logger.info("Upload %s archived to %s on tape %s.", job.file_id, destination, tape_id)
        self._schedule_usage_refresh(tape_id)
        await self._notifier.notify_user(
            recipient=job.user_email,
            user_name=job.user_name,
            file_name=job.file_name,
            kind=NotificationKind.UPLOAD,
            status=NotificationStatus.COMPLETED,
            tape_id=tape_id,
            tape_location=destination,
            size_bytes=summary.size_bytes,
            requested_at=job.requested_at.isoformat(),
        )
        return PipelineResult.succeeded(
            f"Archived {job.file_name} to tape {tape_id}.",
            tape_id=tape_id,
            tape_location=destination,
            size_bytes=summary.size_bytes,
        )

    def tape_directory(self, job: UploadJob) -> str:
        """``<mount>/<group>/<user>/<yyyy>/<mm>/<dd>`` from the job's request time."""

        requested = job.requested_at
        return os.path.join(
            self._device.mount_point,
            job.group_name,
            job.user_name,
            f"{requested.year:04d}",
            f"{requested.month:02d}",
            f"{requested.day:02d}",
        )

    async def wait_for_background_tasks(self) -> None:
        """Wait for pending tape usage refreshes."""

        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)

    async def _validate_source(self, job: UploadJob) -> int:
        if not await asyncio.to_thread(os.path.exists, job.source_path):
            raise ValidationError(f"Source file {job.source_path} does not exist.")

        try:
            declared_bytes = parse_size_label(job.file_size_label)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc

        actual_bytes = await self._verifier.measure(job.source_path)
        if not sizes_match(actual_bytes, declared_bytes, self._size_tolerance_ratio):
            raise ValidationError(
                f"Size of {job.source_path} is {actual_bytes} bytes, declared "
                f"{job.file_size_label} ({declared_bytes} bytes)."
            )
        return actual_bytes

    async def _report_no_space(self, job: UploadJob, space: SpaceCheck) -> PipelineResult:
        error = SpaceError(
            f"No tape in group {job.group_name} has {space.required_bytes} bytes available.",
            space.diagnostics(),
        )
        logger.error("Upload %s failed: %s", job.file_id, error)
        await self._repository.update_upload(job.file_id, status=UploadStatus.FAILED)
        await self._notifier.notify_user(
            recipient=job.user_email,
            user_name=job.user_name,
            file_name=job.file_name,
            kind=NotificationKind.UPLOAD,
            status=NotificationStatus.FAILED,
            error=str(error),
            requested_at=job.requested_at.isoformat(),
        )
        await self._notifier.alert_admin(
            _OPERATION,
            str(error),
            file_id=job.file_id,
            group_name=job.group_name,
            required_bytes=space.required_bytes,
            tapes=error.diagnostics,
        )
        return PipelineResult.permanent_failure(str(error), tapes=error.diagnostics)

    async def _report_failure(self, job: UploadJob, step: str, exc: Exception) -> None:
        logger.error("Upload %s failed at step %s: %s", job.file_id, step, exc)
        try:
            await self._repository.update_upload(job.file_id, status=UploadStatus.FAILED)
        except Exception:
            logger.exception("Failed to record failure of upload %s.", job.file_id)
        await self._notifier.notify_user(
            recipient=job.user_email,
            user_name=job.user_name,
            file_name=job.file_name,
            kind=NotificationKind.UPLOAD,
            status=NotificationStatus.FAILED,
            error=str(exc),
            step=step,
            requested_at=job.requested_at.isoformat(),
        )
        await self._notifier.alert_admin(
            _OPERATION,
            f"Upload of {job.file_name} failed at {step}: {exc}",
            file_id=job.file_id,
            user_name=job.user_name,
            group_name=job.group_name,
            error_type=type(exc).__name__,
        )

    def _schedule_usage_refresh(self, tape_id: str) -> None:
        task = asyncio.create_task(
            self._refresh_usage(tape_id),
            name=f"tape-usage-refresh-{tape_id}",
        )
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _refresh_usage(self, tape_id: str) -> None:
        try:
            await self._allocator.refresh_tape_usage(tape_id)
        except Exception:
            logger.exception("Tape usage refresh failed for tape %s.", tape_id)


__all__ = ["UploadPipeline"]
