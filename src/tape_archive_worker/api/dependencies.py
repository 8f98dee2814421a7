"""Dependency providers for FastAPI routes."""

from functools import lru_cache

from tape_archive_worker.bootstrap import TapeArchiveWorker, build_tape_worker
from tape_archive_worker.config import Settings


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return singleton settings."""

    return Settings()


@lru_cache(maxsize=1)
def get_tape_worker() -> TapeArchiveWorker:
    """Return singleton worker graph."""

    return build_tape_worker(get_settings())


__all__ = ["get_settings", "get_tape_worker"]
