"""Device status reader that shells out to library tooling."""

from __future__ import annotations

from tape_archive_worker.domain.device import AutoloaderStatus, FreeSpaceReport, MountEntry
from tape_archive_worker.domain.errors import HardwareError
from tape_archive_worker.domain.ports import CommandRunner, DeviceStatusReader
from tape_archive_worker.infrastructure.device.status_parsers import (
    parse_autoloader_status,
    parse_free_space_report,
    parse_mount_table,
)
from tape_archive_worker.infrastructure.device.tape_commands import TapeCommandBuilder


class CommandDeviceStatusReader(DeviceStatusReader):
    """Query the robot, mount table and free space through a command runner."""

    def __init__(
        self,
        runner: CommandRunner,
        commands: TapeCommandBuilder,
        timeout_seconds: float | None = None,
    ) -> None:
        self._runner = runner
        self._commands = commands
        self._timeout_seconds = timeout_seconds

    async def read_autoloader_status(self) -> AutoloaderStatus:
        result = await self._runner.run(
            self._commands.autoloader_status(),
            timeout_seconds=self._timeout_seconds,
        )
        if not result.succeeded:
            raise HardwareError(f"Autoloader status query failed: {result.describe()}")
        return parse_autoloader_status(result.stdout)

    async def read_mount_table(self) -> list[MountEntry]:
        result = await self._runner.run(
            self._commands.mount_table(),
            timeout_seconds=self._timeout_seconds,
        )
        if not result.succeeded:
            raise HardwareError(f"Mount table query failed: {result.describe()}")
        return parse_mount_table(result.stdout)

    async def read_free_space(self, mount_point: str) -> FreeSpaceReport:
        result = await self._runner.run(
            self._commands.free_space(mount_point),
            timeout_seconds=self._timeout_seconds,
        )
        if not result.succeeded:
            raise HardwareError(f"Free-space query failed: {result.describe()}")
        return parse_free_space_report(result.stdout, mount_point)

    async def is_mount_helper_running(self) -> bool:
        result = await self._runner.run(
            self._commands.mount_helper_pids(),
            timeout_seconds=self._timeout_seconds,
        )
        # pidof exits 1 with no output when nothing matches.
        return result.succeeded and bool(result.stdout.strip())


__all__ = ["CommandDeviceStatusReader"]
