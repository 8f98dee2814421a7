from __future__ import annotations

import asyncio
from pathlib import Path

import pytest
from tape_simulator import SimulatedTapeLibrary, build_controller

from tape_archive_worker.domain.device import DevicePhase
from tape_archive_worker.domain.errors import HardwareError


def _library(tmp_path: Path, **kwargs: object) -> SimulatedTapeLibrary:
    kwargs.setdefault("slots", {1: "TAPE01", 2: "TAPE02", 3: None})
    return SimulatedTapeLibrary(mount_point=str(tmp_path / "ltfs"), **kwargs)


def test_ensure_correct_tape_loads_and_mounts_from_empty_drive(tmp_path: Path) -> None:
    library = _library(tmp_path)
    controller = build_controller(library)

    async def scenario() -> None:
        await controller.ensure_correct_tape("TAPE01")
        state = await controller.read_state()
        assert state.mounted_tape_id == "TAPE01"
        assert state.phase is DevicePhase.MOUNTED

    asyncio.run(scenario())

    assert library.hardware_commands() == [
        ["sudo", "mtx", "-f", "/dev/sg2", "load", "1", "0"],
        ["sudo", "ltfs", "-o", "devname=/dev/sg1", "-o", "eject", library.mount_point],
    ]
    assert (tmp_path / "ltfs").is_dir()


def test_ensure_correct_tape_twice_cycles_the_drive_once(tmp_path: Path) -> None:
    library = _library(tmp_path)
    controller = build_controller(library)

    async def scenario() -> None:
        await controller.ensure_correct_tape("TAPE01")
        issued = len(library.hardware_commands())
        await controller.ensure_correct_tape("TAPE01")
        assert len(library.hardware_commands()) == issued

    asyncio.run(scenario())

    assert library.count("load") == 1
    assert library.count("ltfs") == 1
    assert library.count("umount") == 0


def test_ensure_correct_tape_switches_mounted_tape(tmp_path: Path) -> None:
    library = _library(
        tmp_path,
        slots={1: None, 2: "TAPE02", 3: None},
        drive_tape="TAPE01",
        drive_source_slot=1,
        mounted=True,
    )
    controller = build_controller(library)

    asyncio.run(controller.ensure_correct_tape("TAPE02"))

    mount_point = library.mount_point
    assert library.hardware_commands() == [
        ["sudo", "umount", mount_point],
        ["sudo", "mtx", "-f", "/dev/sg2", "unload", "1", "0"],
        ["sudo", "mtx", "-f", "/dev/sg2", "load", "2", "0"],
        ["sudo", "ltfs", "-o", "devname=/dev/sg1", "-o", "eject", mount_point],
    ]
    assert library.slots == {1: "TAPE01", 2: None, 3: None}
    assert library.drive_tape == "TAPE02"
    assert controller.state.mounted_tape_id == "TAPE02"


def test_unload_uses_first_empty_slot_when_source_slot_is_taken(tmp_path: Path) -> None:
    library = _library(
        tmp_path,
        slots={1: "TAPE03", 2: "TAPE02", 3: None},
        drive_tape="TAPE01",
        drive_source_slot=1,
    )
    controller = build_controller(library)

    asyncio.run(controller.unload("TAPE01"))

    assert library.slots[3] == "TAPE01"
    assert library.drive_tape is None


def test_load_fails_permanently_when_tape_is_not_in_library(tmp_path: Path) -> None:
    library = _library(tmp_path)
    controller = build_controller(library)

    with pytest.raises(HardwareError) as exc_info:
        asyncio.run(controller.ensure_correct_tape("MISSING"))

    assert exc_info.value.retryable is False
    assert library.count("load") == 0


def test_unmount_retries_while_target_is_busy(tmp_path: Path) -> None:
    library = _library(
        tmp_path,
        slots={1: None, 2: "TAPE02"},
        drive_tape="TAPE01",
        drive_source_slot=1,
        mounted=True,
        busy_unmounts=2,
    )
    controller = build_controller(library)

    asyncio.run(controller.unmount())

    assert library.count("umount") == 3
    assert library.mounted is False


def test_unmount_busy_exhaustion_is_not_retryable(tmp_path: Path) -> None:
    library = _library(
        tmp_path,
        slots={1: None, 2: "TAPE02"},
        drive_tape="TAPE01",
        drive_source_slot=1,
        mounted=True,
        busy_unmounts=5,
    )
    controller = build_controller(library, unmount_busy_attempts=3)

    with pytest.raises(HardwareError) as exc_info:
        asyncio.run(controller.ensure_correct_tape("TAPE02"))

    assert exc_info.value.retryable is False
    assert library.count("umount") == 3
    assert library.mounted is True
    assert library.count("load") == 0


def test_unmount_waits_for_mount_helper_to_exit(tmp_path: Path) -> None:
    library = _library(
        tmp_path,
        slots={1: None},
        drive_tape="TAPE01",
        drive_source_slot=1,
        helper_exit_polls=3,
    )
    controller = build_controller(library)

    async def scenario() -> None:
        await controller.mount()
        await controller.unmount()

    asyncio.run(scenario())

    umount_index = library.commands.index(["sudo", "umount", library.mount_point])
    pidof_after_umount = [
        command for command in library.commands[umount_index:] if command[0] == "pidof"
    ]
    assert len(pidof_after_umount) == 4


def test_mount_is_idempotent(tmp_path: Path) -> None:
    library = _library(tmp_path, slots={1: None}, drive_tape="TAPE01", drive_source_slot=1)
    controller = build_controller(library)

    async def scenario() -> None:
        await controller.mount()
        await controller.mount()

    asyncio.run(scenario())

    assert library.count("ltfs") == 1


def test_mount_verification_failure_raises(tmp_path: Path) -> None:
    class SilentLtfsLibrary(SimulatedTapeLibrary):
        def _ltfs(self, argv):  # type: ignore[no-untyped-def]
            return self._result(argv, 0)

    library = SilentLtfsLibrary(
        mount_point=str(tmp_path / "ltfs"),
        slots={1: None},
        drive_tape="TAPE01",
        drive_source_slot=1,
    )
    controller = build_controller(library)

    with pytest.raises(HardwareError, match="Mount verification failed"):
        asyncio.run(controller.mount())


def test_queries_reread_device_state(tmp_path: Path) -> None:
    library = _library(tmp_path)
    controller = build_controller(library)

    async def scenario() -> None:
        await controller.ensure_correct_tape("TAPE01")
        library.mounted = False
        assert await controller.is_mounted() is False
        state = await controller.read_state()
        assert state.phase is DevicePhase.LOADED
        assert await controller.current_tape() == "TAPE01"

    asyncio.run(scenario())


def test_read_free_space_reports_mounted_tape(tmp_path: Path) -> None:
    library = _library(tmp_path)
    controller = build_controller(library)

    async def scenario() -> None:
        await controller.ensure_correct_tape("TAPE01")
        report = await controller.read_free_space()
        assert report.available_size == "1.2T"
        assert report.usage_percentage == 48

    asyncio.run(scenario())
