"""Disk cache maintenance."""

from tape_archive_worker.infrastructure.cache.cache_eviction_sweeper import (
    CacheEvictionSweeper,
    SweepReport,
)

__all__ = ["CacheEvictionSweeper", "SweepReport"]
