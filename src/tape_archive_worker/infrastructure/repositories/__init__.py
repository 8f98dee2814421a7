"""Archive repository adapters."""

from tape_archive_worker.infrastructure.repositories.in_memory_archive_repository import (
    InMemoryArchiveRepository,
)
from tape_archive_worker.infrastructure.repositories.postgres_archive_repository import (
    PostgresArchiveRepository,
)

__all__ = ["InMemoryArchiveRepository", "PostgresArchiveRepository"]
