"""Tape device controller for an mtx autoloader with an LTFS-mounted drive."""

from __future__ import annotations

import asyncio
import logging
import os

from tape_archive_worker.domain.device import (
    AutoloaderStatus,
    DriveStatus,
    FreeSpaceReport,
    SettlePolicy,
    TapeDeviceState,
)
from tape_archive_worker.domain.errors import HardwareError
from tape_archive_worker.domain.ports import CommandRunner, DeviceStatusReader, TapeDevice
from tape_archive_worker.infrastructure.device.status_parsers import is_path_mounted
from tape_archive_worker.infrastructure.device.tape_commands import (
    TapeCommandBuilder,
    is_busy_failure,
)

logger = logging.getLogger(__name__)


class LtfsTapeDeviceController(TapeDevice):
    """Drive the robot and the mount point through Unloaded, Loaded and Mounted.

    Every query re-reads the device; ``state`` only remembers the last
    observation. Callers must serialize access: the controller assumes it is
    the only writer to the drive.
    """

    def __init__(
        self,
        runner: CommandRunner,
        status_reader: DeviceStatusReader,
        commands: TapeCommandBuilder,
        *,
        settle_policy: SettlePolicy | None = None,
        command_timeout_seconds: float | None = None,
    ) -> None:
        self._runner = runner
        self._status_reader = status_reader
        self._commands = commands
        self._policy = settle_policy or SettlePolicy()
        self._command_timeout_seconds = command_timeout_seconds
        self._state = TapeDeviceState()

    @property
    def mount_point(self) -> str:
        return self._commands.mount_point

    @property
    def state(self) -> TapeDeviceState:
        """Last observed device state."""

        return self._state

    async def read_state(self) -> TapeDeviceState:
        status = await self._status_reader.read_autoloader_status()
        mounted = await self.is_mounted()
        drive = status.drive(self._commands.drive_index)
        self._state = TapeDeviceState(
            mounted_tape_id=status.loaded_tape(self._commands.drive_index),
            mount_point_mounted=mounted,
            drive_loaded=drive is not None and drive.full,
        )
        return self._state

    async def current_tape(self) -> str | None:
        status = await self._status_reader.read_autoloader_status()
        return status.loaded_tape(self._commands.drive_index)

    async def is_mounted(self) -> bool:
        entries = await self._status_reader.read_mount_table()
        return is_path_mounted(entries, self.mount_point)

    async def read_free_space(self) -> FreeSpaceReport:
        return await self._status_reader.read_free_space(self.mount_point)

    async def read_inventory(self) -> AutoloaderStatus:
        return await self._status_reader.read_autoloader_status()

    async def load(self, tape_id: str) -> None:
        """Move a tape from its slot into the drive."""

        status = await self._status_reader.read_autoloader_status()
        drive = self._drive(status)
        if drive.full:
            if drive.volume_tag == tape_id:
                logger.info("Tape %s is already loaded.", tape_id)
                return
            raise HardwareError(
                f"Cannot load tape {tape_id}: drive already holds "
                f"{drive.volume_tag or 'an unlabeled tape'}."
            )

        slot = status.slot_of(tape_id)
        if slot is None:
            raise HardwareError(f"Tape {tape_id} not found in any slot.", retryable=False)

        logger.info("Loading tape %s from slot %s.", tape_id, slot)
        await self._run_hardware_command(self._commands.load(slot), f"load tape {tape_id}")

        loaded = await self.current_tape()
        if loaded != tape_id:
            raise HardwareError(
                f"Load verification failed: expected tape {tape_id}, "
                f"drive reports {loaded or 'empty'}."
            )

    async def unload(self, tape_id: str | None = None) -> None:
        """Return the tape in the drive to its source slot or the first empty slot."""

        status = await self._status_reader.read_autoloader_status()
        drive = self._drive(status)
        if not drive.full:
            logger.info("Drive is already empty.")
            return
        if tape_id is not None and drive.volume_tag != tape_id:
            raise HardwareError(
                f"Cannot unload tape {tape_id}: drive holds "
                f"{drive.volume_tag or 'an unlabeled tape'}."
            )

        if drive.source_slot is not None and status.is_slot_empty(drive.source_slot):
            slot = drive.source_slot
        else:
            slot = status.first_empty_slot()
        if slot is None:
            raise HardwareError("No empty slot available to unload the drive.")

        logger.info("Unloading tape %s to slot %s.", drive.volume_tag, slot)
        await self._run_hardware_command(
            self._commands.unload(slot), f"unload tape {drive.volume_tag}"
        )

        status = await self._status_reader.read_autoloader_status()
        if self._drive(status).full:
            raise HardwareError("Unload verification failed: drive still reports a tape.")

    async def mount(self) -> None:
        """Mount the loaded tape; no-op when already mounted."""

        if await self.is_mounted():
            logger.info("Mount point %s is already mounted.", self.mount_point)
            return

        try:
            await asyncio.to_thread(os.makedirs, self.mount_point, exist_ok=True)
        except OSError as exc:
            raise HardwareError(f"Cannot create mount point {self.mount_point}: {exc}") from exc

        logger.info("Mounting tape at %s.", self.mount_point)
        result = await self._runner.run(
            self._commands.mount(),
            timeout_seconds=self._command_timeout_seconds,
        )
        if not result.succeeded:
            # ltfs can exit non-zero on a successful mount; the mount table decides.
            logger.warning("Mount helper reported a failure: %s", result.describe())
        await self._settle()

        if not await self.is_mounted():
            raise HardwareError(f"Mount verification failed for {self.mount_point}.")

    async def unmount(self) -> None:
        """Unmount the tape, retrying while the target is busy."""

        if not await self.is_mounted():
            logger.info("Mount point %s is not mounted.", self.mount_point)
            return

        attempts = max(1, self._policy.unmount_busy_attempts)
        for attempt in range(1, attempts + 1):
            result = await self._runner.run(
                self._commands.unmount(),
                timeout_seconds=self._command_timeout_seconds,
            )
            if result.succeeded:
                break
            if not is_busy_failure(result.output):
                raise HardwareError(f"Unmount failed: {result.describe()}")
            logger.warning(
                "Mount point %s is busy (attempt %s/%s).", self.mount_point, attempt, attempts
            )
            if attempt < attempts:
                await asyncio.sleep(self._policy.busy_retry_delay_seconds)
        else:
            raise HardwareError(
                f"Mount point {self.mount_point} still busy after {attempts} unmount attempts.",
                retryable=False,
            )

        await self._wait_for_mount_helper_exit()
        await self._settle()

        if await self.is_mounted():
            raise HardwareError(f"Unmount verification failed for {self.mount_point}.")

    async def ensure_correct_tape(self, tape_id: str) -> None:
        """Leave ``tape_id`` loaded and mounted, switching tapes when needed."""

        status = await self._status_reader.read_autoloader_status()
        drive = self._drive(status)
        mounted = await self.is_mounted()

        if mounted and drive.full and drive.volume_tag == tape_id:
            logger.info("Tape %s is already mounted.", tape_id)
            self._state = TapeDeviceState(tape_id, True, True)
            return

        logger.info(
            "Switching drive to tape %s (loaded=%s, mounted=%s).",
            tape_id,
            drive.volume_tag if drive.full else None,
            mounted,
        )
        if mounted:
            await self.unmount()
        if drive.full and drive.volume_tag != tape_id:
            await self.unload()
            await self.load(tape_id)
        elif not drive.full:
            await self.load(tape_id)
        await self.mount()

        state = await self.read_state()
        if not state.mount_point_mounted or state.mounted_tape_id != tape_id:
            raise HardwareError(
                f"Tape switch verification failed: expected {tape_id} mounted, "
                f"found {state.mounted_tape_id or 'no tape'} "
                f"({'mounted' if state.mount_point_mounted else 'not mounted'})."
            )
        logger.info("Tape %s is mounted at %s.", tape_id, self.mount_point)

    async def _run_hardware_command(self, argv: list[str], action: str) -> None:
        result = await self._runner.run(argv, timeout_seconds=self._command_timeout_seconds)
        await self._settle()
        if not result.succeeded:
            raise HardwareError(f"Failed to {action}: {result.describe()}")

    async def _wait_for_mount_helper_exit(self) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._policy.mount_helper_exit_timeout_seconds
        while await self._status_reader.is_mount_helper_running():
            if loop.time() >= deadline:
                raise HardwareError(
                    "Mount helper did not exit within "
                    f"{self._policy.mount_helper_exit_timeout_seconds}s after unmount."
                )
            logger.info("Waiting for mount helper to exit.")
            await asyncio.sleep(self._policy.mount_helper_poll_seconds)

    async def _settle(self) -> None:
        if self._policy.command_settle_seconds > 0:
            await asyncio.sleep(self._policy.command_settle_seconds)

    def _drive(self, status: AutoloaderStatus) -> DriveStatus:
        drive = status.drive(self._commands.drive_index)
        if drive is None:
            raise HardwareError(
                f"Autoloader reports no drive with index {self._commands.drive_index}."
            )
        return drive


__all__ = ["LtfsTapeDeviceController"]
