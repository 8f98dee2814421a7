"""Drain the job queues one job at a time against the shared tape drive."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from contextlib import suppress
from typing import Any, TypeVar

from tape_archive_worker.domain.device import TapeDeviceState
from tape_archive_worker.domain.jobs import JobQueueName, QueuedJob
from tape_archive_worker.domain.notifications import AdminAlert, AlertSeverity
from tape_archive_worker.domain.ports import JobQueue, Notifier, TapeDevice
from tape_archive_worker.domain.results import PipelineOutcome, PipelineResult
from tape_archive_worker.infrastructure.transfers.runtime import (
    DeviceSlotControl,
    DeviceSlotQueue,
)

logger = logging.getLogger(__name__)

JobHandler = Callable[[Any], Awaitable[PipelineResult]]
T = TypeVar("T")


class JobDispatcher:
    """Pull jobs from named queues and route them to pipelines by job type.

    Every queue loop, and every operator action run through
    ``run_exclusive``, must hold the single device slot, so at most one
    job touches the drive or the disk cache at a time. Consecutive jobs
    are spaced by at least ``min_job_interval_seconds``.

    Pipelines return permanent failures directly and raise for everything
    else; raised errors carrying ``retryable=False`` fail the job for good,
    all others go back to the queue for a retry. The lease of a running job
    is renewed every ``lease_heartbeat_seconds``.
    """

    def __init__(
        self,
        job_queue: JobQueue,
        handlers: Mapping[str, JobHandler],
        *,
        slot_queue: DeviceSlotQueue | None = None,
        notifier: Notifier | None = None,
        device: TapeDevice | None = None,
        queue_names: Iterable[JobQueueName] = tuple(JobQueueName),
        poll_interval_seconds: float = 1.0,
        min_job_interval_seconds: float = 1.0,
        lease_heartbeat_seconds: float = 60.0,
        repeated_failure_alert_threshold: int = 3,
        max_error_length: int = 2000,
    ) -> None:
        self._job_queue = job_queue
        self._handlers = dict(handlers)
        self._slot_queue = slot_queue or DeviceSlotQueue()
        self._notifier = notifier
        self._device = device
        self._queue_names = tuple(queue_names)
        self._poll_interval_seconds = max(poll_interval_seconds, 0.01)
        self._min_job_interval_seconds = max(min_job_interval_seconds, 0.0)
        self._lease_heartbeat_seconds = max(lease_heartbeat_seconds, 0.01)
        self._repeated_failure_alert_threshold = max(repeated_failure_alert_threshold, 1)
        self._max_error_length = max(max_error_length, 128)

        self._tasks: dict[JobQueueName, asyncio.Task[None]] = {}
        self._controls: dict[JobQueueName, DeviceSlotControl] = {}
        self._wake_events: dict[JobQueueName, asyncio.Event] = {}
        self._stopping = asyncio.Event()
        self._lifecycle_lock = asyncio.Lock()
        self._paused = False
        self._last_job_finished_at: float | None = None
        self._consecutive_failures: dict[str, int] = {}

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks.values())

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def slot_holder(self) -> str | None:
        return self._slot_queue.holder

    def consecutive_failures(self) -> dict[str, int]:
        """Current failure streak per job type."""

        return {job_type: count for job_type, count in self._consecutive_failures.items() if count}

    async def start(self) -> None:
        """Start one loop per queue if not already running."""

        async with self._lifecycle_lock:
            if self.running:
                return

            self._stopping.clear()
            for queue_name in self._queue_names:
                control = self._control_for(queue_name)
                control.terminate_event.clear()
                self._wake_event_for(queue_name).set()
                self._tasks[queue_name] = asyncio.create_task(
                    self._run_loop(queue_name),
                    name=f"job-dispatcher-{queue_name.value}",
                )
            logger.info(
                "Job dispatcher started for queues: %s.",
                ", ".join(name.value for name in self._queue_names),
            )

    async def stop(self) -> None:
        """Stop queue loops; an in-flight job is cancelled and handed back to the queue."""

        async with self._lifecycle_lock:
            tasks = list(self._tasks.values())
            if not tasks:
                return
            self._tasks.clear()

            self._stopping.set()
            for control in self._controls.values():
                control.terminate_event.set()
            for event in self._wake_events.values():
                event.set()
            for task in tasks:
                task.cancel()

        for task in tasks:
            with suppress(asyncio.CancelledError):
                await task
        logger.info("Job dispatcher stopped.")

    def pause(self) -> None:
        """Stop claiming new jobs; a job already running finishes."""

        self._paused = True
        for control in self._controls.values():
            control.pause_event.clear()
        logger.info("Job dispatcher paused.")

    def resume(self) -> None:
        self._paused = False
        for control in self._controls.values():
            control.pause_event.set()
        for event in self._wake_events.values():
            event.set()
        logger.info("Job dispatcher resumed.")

    def notify_new_job(self, queue_name: JobQueueName | None = None) -> None:
        """Wake queue loops so new jobs are picked up before the next poll."""

        names = self._queue_names if queue_name is None else (queue_name,)
        for name in names:
            self._wake_event_for(name).set()

    async def process_next(self, queue_name: JobQueueName) -> PipelineResult | None:
        """Claim and run one job from a queue; ``None`` when the queue is empty."""

        async with self._slot_queue.hold(self._control_for(queue_name)):
            await self._respect_min_job_interval()
            queued = await self._job_queue.claim_next(queue_name)
            if queued is None:
                return None
            try:
                return await self._execute(queued)
            finally:
                self._last_job_finished_at = asyncio.get_running_loop().time()

    async def run_exclusive(self, name: str, operation: Callable[[], Awaitable[T]]) -> T:
        """Run an operator action while holding the device slot."""

        async with self._slot_queue.hold(DeviceSlotControl(name=name)):
            logger.info("Running exclusive operation %s.", name)
            return await operation()

    async def switch_tape(self, tape_id: str) -> TapeDeviceState:
        """Make ``tape_id`` the mounted tape between jobs."""

        device = self._device
        if device is None:
            raise RuntimeError("No tape device is configured for this dispatcher.")

        async def _switch() -> TapeDeviceState:
            await device.ensure_correct_tape(tape_id)
            return await device.read_state()

        return await self.run_exclusive(f"operator:switch-tape:{tape_id}", _switch)

    async def _run_loop(self, queue_name: JobQueueName) -> None:
        wake_event = self._wake_event_for(queue_name)
        while not self._stopping.is_set():
            try:
                result = await self.process_next(queue_name)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Job dispatcher loop for queue %s failed.", queue_name.value)
                result = None

            if result is not None:
                continue

            wake_event.clear()
            try:
                await asyncio.wait_for(wake_event.wait(), timeout=self._poll_interval_seconds)
            except TimeoutError:
                pass

    async def _execute(self, queued: QueuedJob) -> PipelineResult:
        job_type = queued.job.type
        handler = self._handlers.get(job_type)
        logger.info(
            "Running job %s (%s) attempt %s/%s from queue %s.",
            queued.job_id,
            job_type,
            queued.attempt,
            queued.max_attempts,
            queued.queue_name.value,
        )

        if handler is None:
            result = PipelineResult.permanent_failure(f"No handler for job type '{job_type}'.")
        else:
            heartbeat = asyncio.create_task(
                self._renew_lease(queued),
                name=f"job-lease-{queued.job_id}",
            )
            try:
                result = await handler(queued.job)
            except asyncio.CancelledError:
                await asyncio.shield(self._requeue_interrupted(queued))
                raise
            except Exception as exc:
                result = self._result_from_error(queued, exc)
            finally:
                heartbeat.cancel()
                with suppress(asyncio.CancelledError):
                    await heartbeat

        await self._record_outcome(queued, result)
        return result

    async def _renew_lease(self, queued: QueuedJob) -> None:
        while True:
            await asyncio.sleep(self._lease_heartbeat_seconds)
            try:
                renewed = await self._job_queue.renew_lease(
                    queued.job_id, attempt=queued.attempt
                )
            except Exception:
                logger.exception("Failed to renew the lease of job %s.", queued.job_id)
                continue
            if not renewed:
                logger.warning(
                    "Job %s lost its lease during attempt %s.", queued.job_id, queued.attempt
                )
                return

    async def _requeue_interrupted(self, queued: QueuedJob) -> None:
        try:
            will_retry = await self._job_queue.mark_failed(
                queued.job_id,
                error="Interrupted by dispatcher shutdown.",
                retryable=True,
            )
        except Exception:
            logger.exception("Failed to requeue interrupted job %s.", queued.job_id)
            return
        logger.warning(
            "Job %s was interrupted during attempt %s; %s.",
            queued.job_id,
            queued.attempt,
            "requeued" if will_retry else "no attempts left",
        )

    def _result_from_error(self, queued: QueuedJob, exc: Exception) -> PipelineResult:
        retryable = bool(getattr(exc, "retryable", True))
        message = f"{type(exc).__name__}: {exc}"
        logger.warning(
            "Job %s raised %s (retryable=%s).",
            queued.job_id,
            message,
            retryable,
            exc_info=exc,
        )
        if retryable:
            return PipelineResult.transient_failure(message, error_type=type(exc).__name__)
        return PipelineResult.permanent_failure(message, error_type=type(exc).__name__)

    async def _record_outcome(self, queued: QueuedJob, result: PipelineResult) -> None:
        job_type = queued.job.type
        if result.outcome is PipelineOutcome.SUCCEEDED:
            await self._job_queue.mark_completed(queued.job_id)
            self._consecutive_failures[job_type] = 0
            logger.info("Job %s completed: %s", queued.job_id, result.message)
            return

        error = (result.message or "job failed").strip()[: self._max_error_length]
        retryable = result.outcome is PipelineOutcome.TRANSIENT_FAILURE
        will_retry = await self._job_queue.mark_failed(
            queued.job_id,
            error=error,
            retryable=retryable,
        )
        logger.warning(
            "Job %s failed (%s); %s.",
            queued.job_id,
            error,
            "scheduled for retry" if will_retry else "not retrying",
        )

        failures = self._consecutive_failures.get(job_type, 0) + 1
        self._consecutive_failures[job_type] = failures
        if failures == self._repeated_failure_alert_threshold:
            await self._alert_repeated_failure(job_type, failures, error)

    async def _alert_repeated_failure(self, job_type: str, failures: int, error: str) -> None:
        logger.error("%s consecutive %s jobs failed; last error: %s", failures, job_type, error)
        if self._notifier is None:
            return
        alert = AdminAlert(
            severity=AlertSeverity.REPEATED_FAILURE,
            operation=job_type,
            message=f"{failures} consecutive {job_type} jobs failed.",
            context={"consecutive_failures": failures, "last_error": error},
        )
        try:
            await self._notifier.alert_admin(alert)
        except Exception:
            logger.exception("Failed to send repeated-failure alert for %s.", job_type)

    async def _respect_min_job_interval(self) -> None:
        if self._last_job_finished_at is None or self._min_job_interval_seconds <= 0:
            return
        elapsed = asyncio.get_running_loop().time() - self._last_job_finished_at
        remaining = self._min_job_interval_seconds - elapsed
        if remaining > 0:
            await asyncio.sleep(remaining)

    def _control_for(self, queue_name: JobQueueName) -> DeviceSlotControl:
        control = self._controls.get(queue_name)
        if control is None:
            control = DeviceSlotControl(name=f"queue:{queue_name.value}")
            if self._paused:
                control.pause_event.clear()
            self._controls[queue_name] = control
        return control

    def _wake_event_for(self, queue_name: JobQueueName) -> asyncio.Event:
        event = self._wake_events.get(queue_name)
        if event is None:
            event = asyncio.Event()
            self._wake_events[queue_name] = event
        return event


__all__ = ["JobDispatcher", "JobHandler"]
