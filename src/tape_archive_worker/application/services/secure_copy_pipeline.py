"""Move files between the disk cache and users' own hosts."""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
from dataclasses import dataclass

from tape_archive_worker.application.services.best_effort_notifier import BestEffortNotifier
from tape_archive_worker.domain.errors import (
    RecordNotFoundError,
    RemoteAuthenticationError,
    RemotePathError,
    TransferError,
)
from tape_archive_worker.domain.jobs import (
    DEFAULT_PRIORITY,
    PRIVILEGED_PRIORITY,
    SecureCopyDownloadJob,
    SecureCopyUploadJob,
    UploadJob,
)
from tape_archive_worker.domain.notifications import NotificationKind, NotificationStatus
from tape_archive_worker.domain.ports import (
    ArchiveRepository,
    JobQueue,
    RemoteCopier,
    TransferVerifier,
)
from tape_archive_worker.domain.records import DownloadStatus, ServedFrom, UploadStatus
from tape_archive_worker.domain.results import PipelineResult
from tape_archive_worker.domain.size_units import format_size

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ResolvedHost:
    """Where a host alias points and whether that is this machine."""

    alias: str
    address: str
    is_local: bool


def _failure_kind(exc: Exception) -> str:
    if isinstance(exc, RemoteAuthenticationError):
        return "authentication_failed"
    if isinstance(exc, RemotePathError):
        return "remote_path_unavailable"
    if isinstance(exc, TransferError):
        return "transfer_failed"
    return "unexpected_error"


def _remove_existing(path: str) -> None:
    if os.path.isdir(path) and not os.path.islink(path):
        shutil.rmtree(path)
    elif os.path.lexists(path):
        os.unlink(path)


def _move_local(source: str, destination: str) -> None:
    try:
        shutil.move(source, destination)
    except FileNotFoundError as exc:
        raise RemotePathError(f"Local source {source} does not exist.") from exc
    except PermissionError as exc:
        raise RemotePathError(f"Local source {source} is not accessible: {exc}") from exc
    except OSError as exc:
        raise TransferError(f"Local move {source} -> {destination} failed: {exc}") from exc


class SecureCopyPipeline:
    """Pull uploads from, and push downloads to, hosts registered for a group.

    A host that resolves to this machine is served with a local move/copy;
    any other host goes through the remote copier. Non-retryable transfer
    errors are recorded and returned as permanent failures; anything else is
    recorded and re-raised.
    """

    def __init__(
        self,
        repository: ArchiveRepository,
        remote_copier: RemoteCopier,
        verifier: TransferVerifier,
        job_queue: JobQueue,
        notifier: BestEffortNotifier,
        *,
        cache_root: str,
        local_host_name: str | None = None,
        local_host_address: str | None = None,
        same_host_hash_verification: bool = True,
    ) -> None:
        self._repository = repository
        self._remote_copier = remote_copier
        self._verifier = verifier
        self._job_queue = job_queue
        self._notifier = notifier
        self._cache_root = cache_root
        self._local_host_name = local_host_name
        self._local_host_address = local_host_address
        self._same_host_hash_verification = same_host_hash_verification

    async def process_upload(self, job: SecureCopyUploadJob) -> PipelineResult:
        step = "resolve_host"
        try:
            host = await self.resolve_host(job.group_name, job.remote_host)

            step = "prepare_cache"
            target_dir = os.path.join(self._cache_root, job.group_name, job.user_name)
            local_path = os.path.join(target_dir, job.file_name)
            await asyncio.to_thread(os.makedirs, target_dir, exist_ok=True)
            await asyncio.to_thread(_remove_existing, local_path)

            step = "copy_from_host"
            if host.is_local:
                await asyncio.to_thread(_move_local, job.remote_path, local_path)
            else:
                await self._remote_copier.pull(
                    user=job.remote_user,
                    address=host.address,
                    remote_path=job.remote_path,
                    local_path=local_path,
                )

            step = "record_cache"
            size_label = format_size(await self._verifier.measure(local_path))
            await self._repository.update_upload(
                job.file_id,
                status=UploadStatus.QUEUEING,
                local_file_location=local_path,
                file_size_label=size_label,
            )
            await self._repository.set_upload_cache_state(
                job.file_id,
                local_file_location=local_path,
                is_cached=True,
            )

            step = "enqueue_upload"
            upload_job = UploadJob(
                file_id=job.file_id,
                file_name=job.file_name,
                file_size_label=size_label,
                user_name=job.user_name,
                user_email=job.user_email,
                group_name=job.group_name,
                is_priority=job.is_priority,
                source_path=local_path,
                requested_at=job.requested_at,
            )
            job_id = await self._job_queue.enqueue(
                upload_job,
                priority=PRIVILEGED_PRIORITY if job.is_priority else DEFAULT_PRIORITY,
                job_id=f"upload-{job.file_id}",
            )
        except Exception as exc:
            await self._report_upload_failure(job, step, exc)
            if isinstance(exc, TransferError) and not exc.retryable:
                return PipelineResult.permanent_failure(str(exc), failure=_failure_kind(exc))
            raise

        logger.info(
            "Secure copy upload %s fetched from %s into %s; queued as %s.",
            job.file_id,
            host.alias,
            local_path,
            job_id,
        )
        await self._notifier.notify_user(
            recipient=job.user_email,
            user_name=job.user_name,
            file_name=job.file_name,
            kind=NotificationKind.SECURE_COPY_UPLOAD,
            status=NotificationStatus.COMPLETED,
            remote_host=job.remote_host,
            remote_path=job.remote_path,
            file_size=size_label,
            requested_at=job.requested_at.isoformat(),
        )
        return PipelineResult.succeeded(
            f"Fetched {job.file_name} from {job.remote_host}.",
            local_path=local_path,
            file_size=size_label,
            upload_job_id=job_id,
        )

    async def process_download(self, job: SecureCopyDownloadJob) -> PipelineResult:
        step = "load_request"
        try:
            request = await self._repository.get_download_request(job.download_request_id)
            if request is None:
                raise RecordNotFoundError(
                    f"Download request {job.download_request_id} does not exist."
                )

            step = "locate_cache_copy"
            upload = await self._repository.get_upload(job.file_id)
            source = upload.local_file_location if upload is not None else None
            if (
                upload is None
                or not upload.is_cached
                or source is None
                or not await asyncio.to_thread(os.path.exists, source)
            ):
                return await self._report_missing_cache_copy(job, source)

            await self._repository.update_download_request(
                job.download_request_id,
                status=DownloadStatus.PROCESSING,
                served_from=ServedFrom.CACHE,
            )

            step = "resolve_host"
            host = await self.resolve_host(job.group_name, job.remote_host)

            step = "copy_to_host"
            if host.is_local:
                destination = job.remote_path
                if await asyncio.to_thread(os.path.isdir, destination):
                    destination = os.path.join(destination, os.path.basename(source))
                await self._verifier.copy_and_verify(
                    source,
                    destination,
                    verify_hash=self._same_host_hash_verification,
                )
            else:
                await self._remote_copier.push(
                    local_path=source,
                    user=job.remote_user,
                    address=host.address,
                    remote_path=job.remote_path,
                )

            step = "record_completion"
            await self._repository.update_download_request(
                job.download_request_id,
                status=DownloadStatus.COMPLETED,
                served_from=ServedFrom.CACHE,
            )
        except Exception as exc:
            await self._report_download_failure(job, step, exc)
            if isinstance(exc, (TransferError, RecordNotFoundError)) and not exc.retryable:
                return PipelineResult.permanent_failure(str(exc), failure=_failure_kind(exc))
            raise

        logger.info(
            "Secure copy download %s sent %s to %s:%s.",
            job.download_request_id,
            source,
            host.alias,
            job.remote_path,
        )
        await self._notifier.notify_user(
            recipient=job.user_email,
            user_name=job.user_name,
            file_name=job.file_name,
            kind=NotificationKind.SECURE_COPY_DOWNLOAD,
            status=NotificationStatus.COMPLETED,
            remote_host=job.remote_host,
            remote_path=job.remote_path,
            requested_at=job.requested_at.isoformat(),
        )
        return PipelineResult.succeeded(
            f"Sent {job.file_name} to {job.remote_host}.",
            remote_path=job.remote_path,
        )

    async def resolve_host(self, group_name: str, host_alias: str) -> ResolvedHost:
        """Look up a host alias and decide whether it is this machine."""

        address = await self._repository.resolve_host_address(group_name, host_alias)
        is_local_name = self._local_host_name is not None and host_alias == self._local_host_name
        if address is None:
            if not is_local_name:
                raise TransferError(f"Host '{host_alias}' is not registered for {group_name}.")
            address = self._local_host_address or "localhost"

        is_local = is_local_name or (
            self._local_host_address is not None and address == self._local_host_address
        )
        return ResolvedHost(alias=host_alias, address=address, is_local=is_local)

    async def _report_upload_failure(
        self, job: SecureCopyUploadJob, step: str, exc: Exception
    ) -> None:
        logger.error("Secure copy upload %s failed at step %s: %s", job.file_id, step, exc)
        try:
            await self._repository.update_upload(job.file_id, status=UploadStatus.FAILED)
        except Exception:
            logger.exception("Failed to record failure of upload %s.", job.file_id)
        await self._notifier.notify_user(
            recipient=job.user_email,
            user_name=job.user_name,
            file_name=job.file_name,
            kind=NotificationKind.SECURE_COPY_UPLOAD,
            status=NotificationStatus.FAILED,
            error=str(exc),
            failure=_failure_kind(exc),
            remote_host=job.remote_host,
            remote_path=job.remote_path,
            requested_at=job.requested_at.isoformat(),
        )
        await self._notifier.alert_admin(
            "secure_copy_upload",
            f"Secure copy upload of {job.file_name} failed at {step}: {exc}",
            file_id=job.file_id,
            user_name=job.user_name,
            remote_host=job.remote_host,
            failure=_failure_kind(exc),
        )

    async def _report_download_failure(
        self, job: SecureCopyDownloadJob, step: str, exc: Exception
    ) -> None:
        logger.error(
            "Secure copy download %s failed at step %s: %s", job.download_request_id, step, exc
        )
        try:
            await self._repository.update_download_request(
                job.download_request_id,
                status=DownloadStatus.FAILED,
                served_from=ServedFrom.CACHE,
            )
        except Exception:
            logger.exception(
                "Failed to record failure of download %s.", job.download_request_id
            )
        await self._notifier.notify_user(
            recipient=job.user_email,
            user_name=job.user_name,
            file_name=job.file_name,
            kind=NotificationKind.SECURE_COPY_DOWNLOAD,
            status=NotificationStatus.FAILED,
            error=str(exc),
            failure=_failure_kind(exc),
            remote_host=job.remote_host,
            remote_path=job.remote_path,
            requested_at=job.requested_at.isoformat(),
        )
        await self._notifier.alert_admin(
            "secure_copy_download",
            f"Secure copy download of {job.file_name} failed at {step}: {exc}",
            request_id=job.download_request_id,
            file_id=job.file_id,
            remote_host=job.remote_host,
            failure=_failure_kind(exc),
        )

    async def _report_missing_cache_copy(
        self, job: SecureCopyDownloadJob, source: str | None
    ) -> PipelineResult:
        message = f"No cached copy of file {job.file_id} is available" + (
            f" at {source}." if source else "."
        )
        await self._report_download_failure(
            job, "locate_cache_copy", RecordNotFoundError(message)
        )
        return PipelineResult.permanent_failure(message, failure="cache_copy_missing")


__all__ = ["ResolvedHost", "SecureCopyPipeline"]
