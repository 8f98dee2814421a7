"""In-memory archive repository for local runs and tests."""

from __future__ import annotations

import asyncio
from dataclasses import replace

from tape_archive_worker.domain.ports import ArchiveRepository
from tape_archive_worker.domain.records import (
    DownloadRequestRecord,
    DownloadStatus,
    ServedFrom,
    TapeRecord,
    TapeUsage,
    UploadRecord,
    UploadStatus,
)


class InMemoryArchiveRepository(ArchiveRepository):
    """Simple repository guarded by one lock; records are copied in and out."""

    def __init__(self) -> None:
        self._uploads: dict[str, UploadRecord] = {}
        self._downloads: dict[str, DownloadRequestRecord] = {}
        self._tapes: dict[str, TapeRecord] = {}
        self._hosts: dict[tuple[str | None, str], str] = {}
        self._lock = asyncio.Lock()

    async def add_upload(self, record: UploadRecord) -> None:
        async with self._lock:
            self._uploads[record.file_id] = replace(record)

    async def add_download_request(self, record: DownloadRequestRecord) -> None:
        async with self._lock:
            self._downloads[record.request_id] = replace(record)

    async def add_tape(self, record: TapeRecord) -> None:
        async with self._lock:
            self._tapes[record.tape_id] = replace(record)

    async def add_host(self, host_alias: str, address: str, group_name: str | None = None) -> None:
        """Register a host; a group-scoped entry wins over a global one."""

        async with self._lock:
            self._hosts[(group_name, host_alias)] = address

    async def list_tapes(self) -> list[TapeRecord]:
        async with self._lock:
            return [replace(record) for record in self._tapes.values()]

    async def get_upload(self, file_id: str) -> UploadRecord | None:
        async with self._lock:
            record = self._uploads.get(file_id)
            return replace(record) if record is not None else None

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
        async with self._lock:
            record = self._uploads.get(file_id)
            if record is None:
                return
            record.status = status
            if tape_location is not None:
                record.tape_location = tape_location
            if tape_id is not None:
                record.tape_id = tape_id
            if local_file_location is not None:
                record.local_file_location = local_file_location
            if file_size_label is not None:
                record.file_size_label = file_size_label

    async def set_upload_cache_state(
        self,
        file_id: str,
        *,
        local_file_location: str | None,
        is_cached: bool,
    ) -> None:
        async with self._lock:
            record = self._uploads.get(file_id)
            if record is None:
                return
            if local_file_location is not None:
                record.local_file_location = local_file_location
            record.is_cached = is_cached

    async def mark_cache_evicted(self, local_file_location: str) -> int:
        async with self._lock:
            affected = 0
            for record in self._uploads.values():
                if record.is_cached and record.local_file_location == local_file_location:
                    record.is_cached = False
                    affected += 1
            return affected

    async def get_download_request(self, request_id: str) -> DownloadRequestRecord | None:
        async with self._lock:
            record = self._downloads.get(request_id)
            return replace(record) if record is not None else None

    async def update_download_request(
        self,
        request_id: str,
        *,
        status: DownloadStatus,
        served_from: ServedFrom | None = None,
    ) -> None:
        async with self._lock:
            record = self._downloads.get(request_id)
            if record is None:
                return
            record.status = status
            if served_from is not None:
                record.served_from = served_from

    async def get_tape(self, tape_id: str) -> TapeRecord | None:
        async with self._lock:
            record = self._tapes.get(tape_id)
            return replace(record) if record is not None else None

    async def list_group_tape_ids(self, group_name: str) -> list[str]:
        async with self._lock:
            tapes = [record for record in self._tapes.values() if record.group_name == group_name]
        # sorted() is stable, so equal usage keeps registration order.
        return [record.tape_id for record in sorted(tapes, key=lambda t: t.usage_percentage)]

    async def update_tape_usage(self, tape_id: str, usage: TapeUsage) -> None:
        async with self._lock:
            record = self._tapes.get(tape_id)
            if record is None:
                return
            record.total_size = usage.total_size
            record.used_size = usage.used_size
            record.available_size = usage.available_size
            record.usage_percentage = usage.usage_percentage

    async def resolve_host_address(self, group_name: str, host_alias: str) -> str | None:
        async with self._lock:
            address = self._hosts.get((group_name, host_alias))
            if address is None:
                address = self._hosts.get((None, host_alias))
            return address


__all__ = ["InMemoryArchiveRepository"]
