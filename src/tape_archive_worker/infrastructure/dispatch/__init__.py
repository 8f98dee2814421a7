"""Job dispatch onto the shared tape drive."""

from tape_archive_worker.infrastructure.dispatch.job_dispatcher import JobDispatcher, JobHandler

__all__ = ["JobDispatcher", "JobHandler"]
