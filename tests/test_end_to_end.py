from __future__ import annotations

import asyncio
import os
from datetime import UTC, datetime
from pathlib import Path

from tape_simulator import SimulatedTapeLibrary, build_controller

from tape_archive_worker.bootstrap import build_tape_worker
from tape_archive_worker.config import Settings
from tape_archive_worker.domain.jobs import (
    DownloadJob,
    JobQueueName,
    JobStatus,
    SecureCopyDownloadJob,
    UploadJob,
)
from tape_archive_worker.domain.records import (
    DownloadRequestRecord,
    DownloadStatus,
    ServedFrom,
    TapeRecord,
    UploadRecord,
    UploadStatus,
)
from tape_archive_worker.domain.size_units import format_size

FILE_SIZE = 100 * 1024 * 1024
REQUESTED_AT = datetime(2024, 3, 9, 9, 15, tzinfo=UTC)


def test_file_is_archived_to_tape_restored_and_delivered(tmp_path: Path) -> None:
    cache_root = tmp_path / "cache"
    mount_point = tmp_path / "ltfs"
    library = SimulatedTapeLibrary(mount_point=str(mount_point), slots={1: "TAPE01", 2: None})
    settings = Settings(
        mount_point=str(mount_point),
        cache_root=str(cache_root),
        cache_sweeper_enabled=False,
        dispatcher_min_job_interval_seconds=0,
        local_host_name="archive01",
    )
    source = cache_root / "physics" / "alice" / "detector.raw"
    source.parent.mkdir(parents=True)
    with source.open("wb") as handle:
        chunk = os.urandom(1024 * 1024)
        for _ in range(FILE_SIZE // len(chunk)):
            handle.write(chunk)
    inbox = tmp_path / "inbox"
    inbox.mkdir()

    async def scenario() -> None:
        worker = build_tape_worker(settings, runner=library, device=build_controller(library))
        repository = worker.repository
        await repository.add_tape(TapeRecord("TAPE01", "physics", available_size="1G"))
        await repository.add_upload(
            UploadRecord(
                "f1",
                "detector.raw",
                "alice",
                "alice@example.org",
                "physics",
                local_file_location=str(source),
                is_cached=True,
            )
        )

        label = format_size(FILE_SIZE)
        assert label == "100.00 MB"
        await worker.submit(
            UploadJob(
                file_id="f1",
                file_name="detector.raw",
                file_size_label=label,
                user_name="alice",
                user_email="alice@example.org",
                group_name="physics",
                source_path=str(source),
                requested_at=REQUESTED_AT,
            ),
            job_id="upload-f1",
        )
        uploaded = await worker.dispatcher.process_next(JobQueueName.FILE_PROCESSING)
        await worker.upload_pipeline.wait_for_background_tasks()

        assert uploaded is not None and uploaded.ok
        assert await worker.job_queue.get_status("upload-f1") is JobStatus.COMPLETED
        record = await repository.get_upload("f1")
        assert record is not None
        assert record.status is UploadStatus.COMPLETED
        assert record.tape_id == "TAPE01"
        tape_location = record.tape_location
        assert tape_location == str(
            mount_point / "physics" / "alice" / "2024" / "03" / "09" / "detector.raw"
        )

        source.unlink()
        await repository.add_download_request(
            DownloadRequestRecord("r1", "f1", "alice", "alice@example.org")
        )
        await worker.submit(
            DownloadJob(
                request_id="r1",
                file_id="f1",
                file_name="detector.raw",
                user_name="alice",
                user_email="alice@example.org",
                group_name="physics",
                tape_location=tape_location,
                tape_id="TAPE01",
                requested_at=REQUESTED_AT,
            )
        )
        restored = await worker.dispatcher.process_next(JobQueueName.FILE_PROCESSING)
        assert restored is not None and restored.ok

        await repository.add_download_request(
            DownloadRequestRecord("r2", "f1", "alice", "alice@example.org")
        )
        await worker.submit(
            SecureCopyDownloadJob(
                download_request_id="r2",
                file_id="f1",
                file_name="detector.raw",
                user_name="alice",
                user_email="alice@example.org",
                group_name="physics",
                remote_host="archive01",
                remote_user="alice",
                remote_path=str(inbox),
                requested_at=REQUESTED_AT,
            )
        )
        delivered = await worker.dispatcher.process_next(JobQueueName.SECURE_COPY)
        assert delivered is not None and delivered.ok

        first = await repository.get_download_request("r1")
        second = await repository.get_download_request("r2")
        assert first is not None and first.status is DownloadStatus.COMPLETED
        assert first.served_from is ServedFrom.TAPE
        assert second is not None and second.status is DownloadStatus.COMPLETED
        assert second.served_from is ServedFrom.CACHE

        await worker.stop()

    asyncio.run(scenario())

    assert source.stat().st_size == FILE_SIZE
    assert (inbox / "detector.raw").stat().st_size == FILE_SIZE
    assert library.count("load") == 1
    assert library.drive_tape == "TAPE01"
