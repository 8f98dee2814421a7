from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import Any

import pytest

from tape_archive_worker.domain.device import DevicePhase, TapeDeviceState
from tape_archive_worker.domain.errors import HardwareError, ValidationError
from tape_archive_worker.domain.jobs import (
    PRIVILEGED_PRIORITY,
    JobQueueName,
    JobStatus,
    SecureCopyUploadJob,
    UploadJob,
)
from tape_archive_worker.domain.notifications import (
    AdminAlert,
    AlertSeverity,
    UserNotification,
)
from tape_archive_worker.domain.results import PipelineOutcome, PipelineResult
from tape_archive_worker.infrastructure.dispatch import JobDispatcher
from tape_archive_worker.infrastructure.queue import InMemoryJobQueue

REQUESTED_AT = datetime(2024, 3, 9, tzinfo=UTC)


class RecordingNotifier:
    def __init__(self) -> None:
        self.alerts: list[AdminAlert] = []

    async def notify_user(self, notification: UserNotification) -> None:
        return None

    async def alert_admin(self, alert: AdminAlert) -> None:
        self.alerts.append(alert)


class ScriptedHandler:
    def __init__(self, *outcomes: PipelineResult | Exception) -> None:
        self._outcomes = list(outcomes)
        self.jobs: list[Any] = []

    async def __call__(self, job: Any) -> PipelineResult:
        self.jobs.append(job)
        outcome = self._outcomes.pop(0) if self._outcomes else PipelineResult.succeeded("done")
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def upload_job(file_id: str = "f1") -> UploadJob:
    return UploadJob(
        file_id=file_id,
        file_name=f"{file_id}.bin",
        file_size_label="1 MB",
        user_name="alice",
        user_email="alice@example.org",
        group_name="physics",
        source_path=f"/cache/physics/alice/{file_id}.bin",
        requested_at=REQUESTED_AT,
    )


def secure_copy_upload_job() -> SecureCopyUploadJob:
    return SecureCopyUploadJob(
        file_id="f9",
        file_name="run.dat",
        user_name="alice",
        user_email="alice@example.org",
        group_name="physics",
        remote_host="beamline",
        remote_user="alice",
        remote_path="/data/run.dat",
        requested_at=REQUESTED_AT,
    )


def build_dispatcher(
    queue: InMemoryJobQueue,
    handlers: dict[str, Any],
    **kwargs: Any,
) -> JobDispatcher:
    kwargs.setdefault("min_job_interval_seconds", 0.0)
    kwargs.setdefault("poll_interval_seconds", 0.01)
    return JobDispatcher(queue, handlers, **kwargs)


def test_jobs_are_routed_to_handlers_by_type() -> None:
    upload = ScriptedHandler()
    secure_copy = ScriptedHandler()

    async def scenario() -> None:
        queue = InMemoryJobQueue()
        dispatcher = build_dispatcher(
            queue, {"upload": upload, "secure_copy_upload": secure_copy}
        )
        await queue.enqueue(upload_job(), job_id="upload-f1")
        await queue.enqueue(secure_copy_upload_job(), job_id="scp-f9")

        first = await dispatcher.process_next(JobQueueName.FILE_PROCESSING)
        second = await dispatcher.process_next(JobQueueName.SECURE_COPY)
        empty = await dispatcher.process_next(JobQueueName.FILE_PROCESSING)

        assert first is not None and first.ok
        assert second is not None and second.ok
        assert empty is None
        assert await queue.get_status("upload-f1") is JobStatus.COMPLETED
        assert await queue.get_status("scp-f9") is JobStatus.COMPLETED

    asyncio.run(scenario())

    assert [job.file_id for job in upload.jobs] == ["f1"]
    assert [job.file_id for job in secure_copy.jobs] == ["f9"]


def test_privileged_jobs_run_first() -> None:
    upload = ScriptedHandler()

    async def scenario() -> None:
        queue = InMemoryJobQueue()
        dispatcher = build_dispatcher(queue, {"upload": upload})
        await queue.enqueue(upload_job("f1"))
        await queue.enqueue(upload_job("f2"), priority=PRIVILEGED_PRIORITY)
        await queue.enqueue(upload_job("f3"))

        for _ in range(3):
            await dispatcher.process_next(JobQueueName.FILE_PROCESSING)

    asyncio.run(scenario())

    assert [job.file_id for job in upload.jobs] == ["f2", "f1", "f3"]


def test_retryable_error_requeues_job() -> None:
    upload = ScriptedHandler(HardwareError("drive timeout"))

    async def scenario() -> None:
        queue = InMemoryJobQueue(backoff_base_seconds=0)
        dispatcher = build_dispatcher(queue, {"upload": upload})
        await queue.enqueue(upload_job(), job_id="upload-f1")

        result = await dispatcher.process_next(JobQueueName.FILE_PROCESSING)

        assert result is not None
        assert result.outcome is PipelineOutcome.TRANSIENT_FAILURE
        assert await queue.get_status("upload-f1") is JobStatus.QUEUED
        assert await queue.get_last_error("upload-f1") == "HardwareError: drive timeout"

        retried = await dispatcher.process_next(JobQueueName.FILE_PROCESSING)
        assert retried is not None and retried.ok
        assert await queue.get_status("upload-f1") is JobStatus.COMPLETED

    asyncio.run(scenario())


@pytest.mark.parametrize(
    "outcome",
    [
        ValidationError("size mismatch"),
        HardwareError("tape not in library", retryable=False),
        PipelineResult.permanent_failure("no space"),
    ],
)
def test_permanent_failures_fail_the_job(outcome: PipelineResult | Exception) -> None:
    async def scenario() -> None:
        queue = InMemoryJobQueue(backoff_base_seconds=0)
        dispatcher = build_dispatcher(queue, {"upload": ScriptedHandler(outcome)})
        await queue.enqueue(upload_job(), job_id="upload-f1")

        result = await dispatcher.process_next(JobQueueName.FILE_PROCESSING)

        assert result is not None
        assert result.outcome is PipelineOutcome.PERMANENT_FAILURE
        assert await queue.get_status("upload-f1") is JobStatus.FAILED

    asyncio.run(scenario())


def test_retries_stop_after_max_attempts() -> None:
    upload = ScriptedHandler(*(HardwareError("busy") for _ in range(5)))

    async def scenario() -> None:
        queue = InMemoryJobQueue(max_attempts=2, backoff_base_seconds=0)
        dispatcher = build_dispatcher(queue, {"upload": upload})
        await queue.enqueue(upload_job(), job_id="upload-f1")

        await dispatcher.process_next(JobQueueName.FILE_PROCESSING)
        await dispatcher.process_next(JobQueueName.FILE_PROCESSING)

        assert await queue.get_status("upload-f1") is JobStatus.FAILED
        assert await dispatcher.process_next(JobQueueName.FILE_PROCESSING) is None

    asyncio.run(scenario())

    assert len(upload.jobs) == 2


def test_job_without_handler_fails_permanently() -> None:
    async def scenario() -> None:
        queue = InMemoryJobQueue()
        dispatcher = build_dispatcher(queue, {})
        await queue.enqueue(upload_job(), job_id="upload-f1")

        result = await dispatcher.process_next(JobQueueName.FILE_PROCESSING)

        assert result is not None
        assert result.message == "No handler for job type 'upload'."
        assert await queue.get_status("upload-f1") is JobStatus.FAILED

    asyncio.run(scenario())


def test_repeated_failures_alert_once_at_threshold_and_reset_on_success() -> None:
    notifier = RecordingNotifier()
    upload = ScriptedHandler(
        ValidationError("bad 1"),
        ValidationError("bad 2"),
        ValidationError("bad 3"),
        PipelineResult.succeeded("ok"),
        ValidationError("bad 4"),
    )

    async def scenario() -> None:
        queue = InMemoryJobQueue()
        dispatcher = build_dispatcher(
            queue,
            {"upload": upload},
            notifier=notifier,
            repeated_failure_alert_threshold=2,
        )
        for index in range(5):
            await queue.enqueue(upload_job(f"f{index}"))

        for _ in range(3):
            await dispatcher.process_next(JobQueueName.FILE_PROCESSING)
        assert dispatcher.consecutive_failures() == {"upload": 3}

        await dispatcher.process_next(JobQueueName.FILE_PROCESSING)
        assert dispatcher.consecutive_failures() == {}

        await dispatcher.process_next(JobQueueName.FILE_PROCESSING)
        assert dispatcher.consecutive_failures() == {"upload": 1}

    asyncio.run(scenario())

    assert len(notifier.alerts) == 1
    alert = notifier.alerts[0]
    assert alert.severity is AlertSeverity.REPEATED_FAILURE
    assert alert.operation == "upload"
    assert alert.context["consecutive_failures"] == 2
    assert alert.context["last_error"] == "ValidationError: bad 2"


def test_consecutive_jobs_respect_minimum_interval() -> None:
    started_at: list[float] = []

    async def handler(job: UploadJob) -> PipelineResult:
        started_at.append(asyncio.get_running_loop().time())
        return PipelineResult.succeeded()

    async def scenario() -> None:
        queue = InMemoryJobQueue()
        dispatcher = build_dispatcher(
            queue, {"upload": handler}, min_job_interval_seconds=0.15
        )
        await queue.enqueue(upload_job("f1"))
        await queue.enqueue(upload_job("f2"))

        await dispatcher.process_next(JobQueueName.FILE_PROCESSING)
        await dispatcher.process_next(JobQueueName.FILE_PROCESSING)

    asyncio.run(scenario())

    assert started_at[1] - started_at[0] >= 0.14


def test_switch_tape_holds_the_device_slot() -> None:
    holders: list[str | None] = []

    class FakeDevice:
        mount_point = "/mnt/ltfs"

        def __init__(self) -> None:
            self.tape: str | None = None

        async def ensure_correct_tape(self, tape_id: str) -> None:
            holders.append(dispatcher.slot_holder)
            self.tape = tape_id

        async def read_state(self) -> TapeDeviceState:
            return TapeDeviceState(
                mounted_tape_id=self.tape,
                mount_point_mounted=True,
                drive_loaded=True,
            )

    device = FakeDevice()
    dispatcher = build_dispatcher(InMemoryJobQueue(), {}, device=device)

    state = asyncio.run(dispatcher.switch_tape("TAPE02"))

    assert state.mounted_tape_id == "TAPE02"
    assert state.phase is DevicePhase.MOUNTED
    assert holders == ["operator:switch-tape:TAPE02"]
    assert dispatcher.slot_holder is None


def test_switch_tape_without_device_is_rejected() -> None:
    async def scenario() -> None:
        dispatcher = build_dispatcher(InMemoryJobQueue(), {})
        with pytest.raises(RuntimeError):
            await dispatcher.switch_tape("TAPE02")

    asyncio.run(scenario())


def test_running_dispatcher_drains_queue_and_honours_pause() -> None:
    upload = ScriptedHandler()

    async def wait_for_status(queue: InMemoryJobQueue, job_id: str, status: JobStatus) -> None:
        for _ in range(200):
            if await queue.get_status(job_id) is status:
                return
            await asyncio.sleep(0.01)
        raise AssertionError(f"{job_id} never reached {status}")

    async def scenario() -> None:
        queue = InMemoryJobQueue()
        dispatcher = build_dispatcher(queue, {"upload": upload})
        await dispatcher.start()
        try:
            assert dispatcher.running is True
            dispatcher.pause()
            assert dispatcher.paused is True

            await queue.enqueue(upload_job("f1"), job_id="upload-f1")
            dispatcher.notify_new_job(JobQueueName.FILE_PROCESSING)
            await asyncio.sleep(0.1)
            assert await queue.get_status("upload-f1") is JobStatus.QUEUED

            dispatcher.resume()
            await wait_for_status(queue, "upload-f1", JobStatus.COMPLETED)
        finally:
            await dispatcher.stop()
        assert dispatcher.running is False

    asyncio.run(scenario())

    assert [job.file_id for job in upload.jobs] == ["f1"]


class BlockingHandler:
    def __init__(self) -> None:
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.calls = 0

    async def __call__(self, job: Any) -> PipelineResult:
        self.calls += 1
        self.started.set()
        await self.release.wait()
        return PipelineResult.succeeded("done")


def test_stopping_mid_job_hands_the_job_back_to_the_queue() -> None:
    blocking = BlockingHandler()
    upload = ScriptedHandler()

    async def scenario() -> None:
        queue = InMemoryJobQueue(backoff_base_seconds=0)
        dispatcher = build_dispatcher(queue, {"upload": blocking})
        await queue.enqueue(upload_job(), job_id="upload-f1")
        await dispatcher.start()
        try:
            await asyncio.wait_for(blocking.started.wait(), timeout=1.0)
            assert await queue.get_status("upload-f1") is JobStatus.ACTIVE
        finally:
            await dispatcher.stop()

        assert await queue.get_status("upload-f1") is JobStatus.QUEUED
        assert await queue.get_last_error("upload-f1") == "Interrupted by dispatcher shutdown."

        restarted = build_dispatcher(queue, {"upload": upload})
        result = await restarted.process_next(JobQueueName.FILE_PROCESSING)
        assert result is not None and result.ok
        assert await queue.get_status("upload-f1") is JobStatus.COMPLETED

    asyncio.run(scenario())

    assert blocking.calls == 1
    assert [job.file_id for job in upload.jobs] == ["f1"]


def test_running_job_keeps_its_lease_alive() -> None:
    blocking = BlockingHandler()

    async def scenario() -> None:
        queue = InMemoryJobQueue(lease_seconds=0.05)
        dispatcher = build_dispatcher(
            queue, {"upload": blocking}, lease_heartbeat_seconds=0.01
        )
        await queue.enqueue(upload_job(), job_id="upload-f1")
        running = asyncio.create_task(dispatcher.process_next(JobQueueName.FILE_PROCESSING))
        await asyncio.wait_for(blocking.started.wait(), timeout=1.0)

        await asyncio.sleep(0.2)
        assert await queue.claim_next(JobQueueName.FILE_PROCESSING) is None

        blocking.release.set()
        result = await asyncio.wait_for(running, timeout=1.0)
        assert result is not None and result.ok
        assert await queue.get_status("upload-f1") is JobStatus.COMPLETED

    asyncio.run(scenario())

    assert blocking.calls == 1
