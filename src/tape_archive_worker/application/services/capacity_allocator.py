"""Pick a tape with room for a file and keep tape usage figures current."""

from __future__ import annotations

import logging

from tape_archive_worker.domain.ports import ArchiveRepository, TapeDevice
from tape_archive_worker.domain.records import TapeUsage
from tape_archive_worker.domain.results import SpaceCheck, TapeSpaceCandidate
from tape_archive_worker.domain.size_units import parse_size_label

logger = logging.getLogger(__name__)


class CapacityAllocator:
    """First-fit allocation over a group's tapes, least used first."""

    def __init__(self, repository: ArchiveRepository, device: TapeDevice) -> None:
        self._repository = repository
        self._device = device

    async def check_group_space(self, group_name: str, required_bytes: int) -> SpaceCheck:
        """Return the first tape in usage order whose free space covers ``required_bytes``.

        A group with no qualifying tape is a normal answer, not an error: the
        result then carries every candidate's free space for diagnostics.
        """

        candidates: list[TapeSpaceCandidate] = []
        for tape_id in await self._repository.list_group_tape_ids(group_name):
            tape = await self._repository.get_tape(tape_id)
            if tape is None:
                logger.warning(
                    "Tape %s listed for group %s has no record; skipping.", tape_id, group_name
                )
                continue

            available_bytes: int | None = None
            if tape.available_size:
                try:
                    available_bytes = parse_size_label(tape.available_size)
                except ValueError:
                    logger.warning(
                        "Tape %s has unreadable available size %r; skipping.",
                        tape_id,
                        tape.available_size,
                    )
            candidate = TapeSpaceCandidate(
                tape_id=tape_id,
                available_size=tape.available_size,
                available_bytes=available_bytes,
                usage_percentage=tape.usage_percentage,
            )
            candidates.append(candidate)

            if available_bytes is not None and available_bytes >= required_bytes:
                logger.info(
                    "Selected tape %s for group %s (%s available, %s bytes required).",
                    tape_id,
                    group_name,
                    tape.available_size,
                    required_bytes,
                )
                return SpaceCheck(group_name, required_bytes, tape_id, tuple(candidates))

        logger.warning(
            "No tape in group %s has %s bytes available (%s candidates).",
            group_name,
            required_bytes,
            len(candidates),
        )
        return SpaceCheck(group_name, required_bytes, None, tuple(candidates))

    async def refresh_tape_usage(self, tape_id: str) -> TapeUsage | None:
        """Re-read free space of ``tape_id`` and persist it.

        Only runs while that tape is still mounted, and a reading taken while the
        drive switched to another tape is discarded; returns ``None`` in both cases.
        """

        if await self._device.current_tape() != tape_id or not await self._device.is_mounted():
            logger.warning("Skipping usage refresh for tape %s: it is no longer mounted.", tape_id)
            return None

        report = await self._device.read_free_space()
        if await self._device.current_tape() != tape_id:
            logger.warning(
                "Discarding usage reading for tape %s: the drive switched tapes meanwhile.",
                tape_id,
            )
            return None
        usage = TapeUsage(
            filesystem=report.filesystem,
            total_size=report.total_size,
            used_size=report.used_size,
            available_size=report.available_size,
            usage_percentage=float(report.usage_percentage),
        )
        await self._repository.update_tape_usage(tape_id, usage)
        logger.info(
            "Tape %s usage: %s used of %s, %s available (%s%%).",
            tape_id,
            usage.used_size,
            usage.total_size,
            usage.available_size,
            report.usage_percentage,
        )
        return usage


__all__ = ["CapacityAllocator"]
