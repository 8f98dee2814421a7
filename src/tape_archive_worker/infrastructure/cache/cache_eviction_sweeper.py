"""Periodic removal of stale files from the disk cache."""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import time
from collections.abc import Callable
from contextlib import suppress
from dataclasses import dataclass, field

from tape_archive_worker.domain.ports import ArchiveRepository

logger = logging.getLogger(__name__)

_SECONDS_PER_DAY = 86400.0
# cacheRoot/<group>/<user>/<fileName>
_CACHED_ENTRY_DEPTH = 3


@dataclass(slots=True)
class SweepReport:
    """What one sweep removed."""

    deleted_files: int = 0
    removed_directories: int = 0
    errors: int = 0
    evicted_paths: list[str] = field(default_factory=list)


class CacheEvictionSweeper:
    """Delete cache files older than the retention window and prune empty directories.

    A cached directory entry (``<group>/<user>/<name>``) is evicted as a
    whole as soon as any file inside it is past retention, so a copy is
    either complete or gone. The first sweep runs as soon as the sweeper starts, then once every
    ``interval_seconds``. A failure in one subtree is logged and the sweep
    carries on with its siblings. The cache root itself is never removed.
    """

    def __init__(
        self,
        cache_root: str,
        repository: ArchiveRepository | None = None,
        *,
        retention_days: float = 7.0,
        interval_seconds: float = _SECONDS_PER_DAY,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._cache_root = os.path.abspath(cache_root)
        self._repository = repository
        self._retention_seconds = max(retention_days, 0.0) * _SECONDS_PER_DAY
        self._interval_seconds = max(interval_seconds, 0.01)
        self._clock = clock

        self._task: asyncio.Task[None] | None = None
        self._stopping = asyncio.Event()
        self._lifecycle_lock = asyncio.Lock()

    @property
    def cache_root(self) -> str:
        return self._cache_root

    async def start(self) -> None:
        """Start the sweep loop if not already running."""

        async with self._lifecycle_lock:
            task = self._task
            if task is not None and not task.done():
                return

            self._stopping.clear()
            self._task = asyncio.create_task(
                self._run_loop(),
                name="cache-eviction-sweeper",
            )

    async def stop(self) -> None:
        async with self._lifecycle_lock:
            task = self._task
            if task is None:
                return
            self._task = None

            self._stopping.set()
            task.cancel()

        with suppress(asyncio.CancelledError):
            await task

    async def sweep_once(self) -> SweepReport:
        """Run one sweep and clear the cached flag of evicted uploads."""

        cutoff = self._clock() - self._retention_seconds
        report = await asyncio.to_thread(self._sweep, cutoff)
        logger.info(
            "Cache sweep of %s deleted %s files and %s directories (%s errors).",
            self._cache_root,
            report.deleted_files,
            report.removed_directories,
            report.errors,
        )

        if self._repository is not None:
            for path in report.evicted_paths:
                try:
                    updated = await self._repository.mark_cache_evicted(path)
                except Exception:
                    logger.exception("Failed to record cache eviction of %s.", path)
                    continue
                if updated:
                    logger.info("Marked %s upload(s) at %s as no longer cached.", updated, path)
        return report

    async def _run_loop(self) -> None:
        while not self._stopping.is_set():
            try:
                await self.sweep_once()
            except Exception:
                logger.exception("Cache eviction sweep failed.")

            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self._interval_seconds)
            except TimeoutError:
                pass

    def _sweep(self, cutoff: float) -> SweepReport:
        report = SweepReport()
        evicted: set[str] = set()
        if not os.path.isdir(self._cache_root):
            logger.warning("Cache root %s does not exist; nothing to sweep.", self._cache_root)
            return report

        try:
            self._sweep_directory(self._cache_root, (), cutoff, report, evicted)
        except OSError as exc:
            report.errors += 1
            logger.warning("Cannot list cache root %s: %s", self._cache_root, exc)

        report.evicted_paths = sorted(evicted)
        return report

    def _sweep_directory(
        self,
        directory: str,
        relative_parts: tuple[str, ...],
        cutoff: float,
        report: SweepReport,
        evicted: set[str],
    ) -> bool:
        """Sweep one directory; return whether anything inside it was removed."""

        removed_any = False
        with os.scandir(directory) as iterator:
            entries = list(iterator)

        for entry in entries:
            parts = (*relative_parts, entry.name)
            try:
                if len(parts) == _CACHED_ENTRY_DEPTH and entry.is_dir(follow_symlinks=False):
                    if self._evict_cached_entry(entry.path, parts, cutoff, report, evicted):
                        removed_any = True
                    elif self._remove_if_empty(entry.path, False, cutoff):
                        report.removed_directories += 1
                        removed_any = True
                elif entry.is_dir(follow_symlinks=False):
                    child_removed = self._sweep_directory(
                        entry.path, parts, cutoff, report, evicted
                    )
                    if self._remove_if_empty(entry.path, child_removed, cutoff):
                        report.removed_directories += 1
                        removed_any = True
                elif entry.stat(follow_symlinks=False).st_mtime < cutoff:
                    os.unlink(entry.path)
                    report.deleted_files += 1
                    removed_any = True
                    self._record_eviction(parts, evicted)
            except OSError as exc:
                report.errors += 1
                logger.warning("Failed to sweep %s: %s", entry.path, exc)
        return removed_any

    def _evict_cached_entry(
        self,
        path: str,
        parts: tuple[str, ...],
        cutoff: float,
        report: SweepReport,
        evicted: set[str],
    ) -> bool:
        """Remove a cached directory tree as a whole once any file in it is stale."""

        files = 0
        directories = 1
        stale = False
        for current, dir_names, file_names in os.walk(path):
            directories += len(dir_names)
            files += len(file_names)
            if not stale:
                stale = any(
                    os.lstat(os.path.join(current, name)).st_mtime < cutoff
                    for name in file_names
                )
        if not stale:
            return False

        self._record_eviction(parts, evicted)
        shutil.rmtree(path)
        report.deleted_files += files
        report.removed_directories += directories
        return True

    def _remove_if_empty(self, path: str, emptied_by_sweep: bool, cutoff: float) -> bool:
        if os.listdir(path):
            return False
        # Fresh empty directories may be pending transfer targets.
        if not emptied_by_sweep and os.stat(path).st_mtime >= cutoff:
            return False
        os.rmdir(path)
        return True

    def _record_eviction(self, parts: tuple[str, ...], evicted: set[str]) -> None:
        if len(parts) >= _CACHED_ENTRY_DEPTH:
            evicted.add(os.path.join(self._cache_root, *parts[:_CACHED_ENTRY_DEPTH]))


__all__ = ["CacheEvictionSweeper", "SweepReport"]
