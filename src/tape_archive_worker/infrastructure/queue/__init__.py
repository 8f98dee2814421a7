"""Job queue adapters."""

from tape_archive_worker.infrastructure.queue.in_memory_job_queue import InMemoryJobQueue

__all__ = ["InMemoryJobQueue"]
