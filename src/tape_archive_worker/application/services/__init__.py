"""Application services: pipelines and the allocator they share."""

from tape_archive_worker.application.services.best_effort_notifier import BestEffortNotifier
from tape_archive_worker.application.services.capacity_allocator import CapacityAllocator
from tape_archive_worker.application.services.download_pipeline import DownloadPipeline
from tape_archive_worker.application.services.secure_copy_pipeline import (
    ResolvedHost,
    SecureCopyPipeline,
)
from tape_archive_worker.application.services.upload_pipeline import UploadPipeline

__all__ = [
    "BestEffortNotifier",
    "CapacityAllocator",
    "DownloadPipeline",
    "ResolvedHost",
    "SecureCopyPipeline",
    "UploadPipeline",
]
