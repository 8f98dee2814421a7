"""Application bootstrap/wiring."""

import logging
import os
from dataclasses import dataclass

from tape_archive_worker.application.services import (
    BestEffortNotifier,
    CapacityAllocator,
    DownloadPipeline,
    SecureCopyPipeline,
    UploadPipeline,
)
from tape_archive_worker.config import RepositoryBackend, Settings
from tape_archive_worker.domain.device import SettlePolicy
from tape_archive_worker.domain.jobs import DEFAULT_PRIORITY, TransferJob, queue_for_job
from tape_archive_worker.domain.ports import (
    ArchiveRepository,
    CommandRunner,
    JobQueue,
    Notifier,
    TapeDevice,
)
from tape_archive_worker.infrastructure.cache import CacheEvictionSweeper
from tape_archive_worker.infrastructure.commands import SubprocessCommandRunner
from tape_archive_worker.infrastructure.device import (
    CommandDeviceStatusReader,
    LtfsTapeDeviceController,
    TapeCommandBuilder,
)
from tape_archive_worker.infrastructure.dispatch import JobDispatcher
from tape_archive_worker.infrastructure.notifications import (
    HttpNotifier,
    LoggingNotifier,
    NotificationClient,
)
from tape_archive_worker.infrastructure.queue import InMemoryJobQueue
from tape_archive_worker.infrastructure.repositories import (
    InMemoryArchiveRepository,
    PostgresArchiveRepository,
)
from tape_archive_worker.infrastructure.transfers import (
    FilesystemTransferVerifier,
    RemoteCopyClient,
    RemoteCopyCommandBuilder,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TapeArchiveWorker:
    """Composed worker: pipelines behind one dispatcher, plus the cache sweeper."""

    settings: Settings
    repository: ArchiveRepository
    job_queue: JobQueue
    device: TapeDevice
    allocator: CapacityAllocator
    upload_pipeline: UploadPipeline
    download_pipeline: DownloadPipeline
    secure_copy_pipeline: SecureCopyPipeline
    dispatcher: JobDispatcher
    sweeper: CacheEvictionSweeper | None = None

    async def start(self) -> None:
        await self.dispatcher.start()
        if self.sweeper is not None:
            await self.sweeper.start()

    async def stop(self) -> None:
        await self.dispatcher.stop()
        if self.sweeper is not None:
            await self.sweeper.stop()
        await self.upload_pipeline.wait_for_background_tasks()
        if isinstance(self.repository, PostgresArchiveRepository):
            await self.repository.close()

    async def submit(
        self,
        job: TransferJob,
        *,
        priority: int = DEFAULT_PRIORITY,
        job_id: str | None = None,
    ) -> str:
        """Enqueue a job and wake the loop of its queue."""

        queued_id = await self.job_queue.enqueue(job, priority=priority, job_id=job_id)
        self.dispatcher.notify_new_job(queue_for_job(job))
        return queued_id


def _build_repository(settings: Settings) -> ArchiveRepository:
    if settings.repository_backend == RepositoryBackend.POSTGRES:
        if settings.postgres_dsn is None:
            raise ValueError(
                "TAPE_WORKER_POSTGRES_DSN is required when "
                "TAPE_WORKER_REPOSITORY_BACKEND=postgres."
            )
        return PostgresArchiveRepository(
            dsn=settings.postgres_dsn,
            min_pool_size=settings.postgres_pool_min_size,
            max_pool_size=settings.postgres_pool_max_size,
            job_max_attempts=settings.job_max_attempts,
            job_backoff_base_seconds=settings.job_backoff_base_seconds,
            job_lease_seconds=settings.job_lease_seconds,
        )
    return InMemoryArchiveRepository()


def _build_job_queue(settings: Settings, repository: ArchiveRepository) -> JobQueue:
    if isinstance(repository, JobQueue):
        return repository
    return InMemoryJobQueue(
        max_attempts=settings.job_max_attempts,
        backoff_base_seconds=settings.job_backoff_base_seconds,
        lease_seconds=settings.job_lease_seconds,
    )


def _build_notifier(settings: Settings) -> Notifier:
    if settings.notification_endpoint is None:
        logger.warning(
            "TAPE_WORKER_NOTIFICATION_ENDPOINT is not set. "
            "Falling back to logging notifications."
        )
        return LoggingNotifier()

    client = NotificationClient(
        base_url=settings.notification_endpoint,
        timeout_seconds=settings.notification_timeout_seconds,
    )
    return HttpNotifier(client)


def _build_settle_policy(settings: Settings) -> SettlePolicy:
    return SettlePolicy(
        command_settle_seconds=settings.command_settle_seconds,
        unmount_busy_attempts=settings.unmount_busy_attempts,
        busy_retry_delay_seconds=settings.busy_retry_delay_seconds,
        mount_helper_poll_seconds=settings.mount_helper_poll_seconds,
        mount_helper_exit_timeout_seconds=settings.mount_helper_exit_timeout_seconds,
    )


def _build_device_controller(
    settings: Settings,
    runner: CommandRunner,
) -> LtfsTapeDeviceController:
    commands = TapeCommandBuilder(
        changer_device=settings.changer_device,
        drive_device=settings.drive_device,
        mount_point=settings.mount_point,
        drive_index=settings.drive_index,
        use_sudo=settings.use_sudo,
    )
    return LtfsTapeDeviceController(
        runner,
        CommandDeviceStatusReader(
            runner,
            commands,
            timeout_seconds=settings.command_timeout_seconds,
        ),
        commands,
        settle_policy=_build_settle_policy(settings),
        command_timeout_seconds=settings.command_timeout_seconds,
    )


def _build_sweeper(
    settings: Settings,
    repository: ArchiveRepository,
    cache_root: str,
) -> CacheEvictionSweeper | None:
    if not settings.cache_sweeper_enabled:
        return None
    return CacheEvictionSweeper(
        cache_root,
        repository,
        retention_days=settings.cache_retention_days,
        interval_seconds=settings.cache_sweep_interval_hours * 3600.0,
    )


def build_tape_worker(
    settings: Settings,
    *,
    runner: CommandRunner | None = None,
    device: TapeDevice | None = None,
    repository: ArchiveRepository | None = None,
    notifier: Notifier | None = None,
) -> TapeArchiveWorker:
    """Compose the worker graph; keyword overrides replace individual adapters."""

    runner = runner or SubprocessCommandRunner(
        default_timeout_seconds=settings.command_timeout_seconds
    )
    repository = repository or _build_repository(settings)
    job_queue = _build_job_queue(settings, repository)
    device = device or _build_device_controller(settings, runner)
    notifications = BestEffortNotifier(notifier or _build_notifier(settings))
    cache_root = os.path.abspath(settings.cache_root)

    verifier = FilesystemTransferVerifier()
    allocator = CapacityAllocator(repository, device)
    upload_pipeline = UploadPipeline(repository, device, allocator, verifier, notifications)
    download_pipeline = DownloadPipeline(
        repository,
        device,
        verifier,
        notifications,
        cache_root=cache_root,
    )
    secure_copy_pipeline = SecureCopyPipeline(
        repository,
        RemoteCopyClient(
            runner,
            RemoteCopyCommandBuilder(
                connect_timeout_seconds=settings.ssh_connect_timeout_seconds,
                legacy_protocol=settings.scp_legacy_protocol,
            ),
            timeout_seconds=settings.command_timeout_seconds,
        ),
        verifier,
        job_queue,
        notifications,
        cache_root=cache_root,
        local_host_name=settings.local_host_name,
        local_host_address=settings.local_host_address,
        same_host_hash_verification=settings.same_host_hash_verification,
    )

    dispatcher = JobDispatcher(
        job_queue,
        {
            "upload": upload_pipeline.process,
            "download": download_pipeline.process,
            "secure_copy_upload": secure_copy_pipeline.process_upload,
            "secure_copy_download": secure_copy_pipeline.process_download,
        },
        notifier=notifications.notifier,
        device=device,
        poll_interval_seconds=settings.dispatcher_poll_seconds,
        min_job_interval_seconds=settings.dispatcher_min_job_interval_seconds,
        lease_heartbeat_seconds=settings.job_heartbeat_seconds,
        repeated_failure_alert_threshold=settings.repeated_failure_alert_threshold,
    )

    return TapeArchiveWorker(
        settings=settings,
        repository=repository,
        job_queue=job_queue,
        device=device,
        allocator=allocator,
        upload_pipeline=upload_pipeline,
        download_pipeline=download_pipeline,
        secure_copy_pipeline=secure_copy_pipeline,
        dispatcher=dispatcher,
        sweeper=_build_sweeper(settings, repository, cache_root),
    )


__all__ = ["TapeArchiveWorker", "build_tape_worker"]
