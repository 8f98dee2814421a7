"""Tape library device models."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class DevicePhase(StrEnum):
    """Physical state of the drive relative to the robot and the mount point."""

    UNLOADED = "unloaded"
    LOADED = "loaded"
    MOUNTED = "mounted"


@dataclass(slots=True, frozen=True)
class TapeDeviceState:
    """Last observation of the drive; a hint, never trusted before a mutation."""

    mounted_tape_id: str | None = None
    mount_point_mounted: bool = False
    drive_loaded: bool = False

    @property
    def phase(self) -> DevicePhase:
        if self.mount_point_mounted:
            return DevicePhase.MOUNTED
        if self.drive_loaded:
            return DevicePhase.LOADED
        return DevicePhase.UNLOADED


@dataclass(slots=True, frozen=True)
class SettlePolicy:
    """Delays and retry bounds for talking to the physical library.

    The robot and drive need quiescence after every raw command. Tests use
    ``SettlePolicy.immediate()``.
    """

    command_settle_seconds: float = 5.0
    unmount_busy_attempts: int = 10
    busy_retry_delay_seconds: float = 5.0
    mount_helper_poll_seconds: float = 5.0
    mount_helper_exit_timeout_seconds: float = 600.0

    @classmethod
    def immediate(cls, unmount_busy_attempts: int = 10) -> SettlePolicy:
        return cls(
            command_settle_seconds=0.0,
            unmount_busy_attempts=unmount_busy_attempts,
            busy_retry_delay_seconds=0.0,
            mount_helper_poll_seconds=0.0,
            mount_helper_exit_timeout_seconds=1.0,
        )


@dataclass(slots=True, frozen=True)
class DriveStatus:
    """One data transfer element reported by the autoloader."""

    index: int
    full: bool
    volume_tag: str | None = None
    source_slot: int | None = None


@dataclass(slots=True, frozen=True)
class SlotStatus:
    """One storage element reported by the autoloader."""

    index: int
    full: bool
    volume_tag: str | None = None
    import_export: bool = False


@dataclass(slots=True, frozen=True)
class AutoloaderStatus:
    """Parsed autoloader inventory."""

    drives: tuple[DriveStatus, ...]
    slots: tuple[SlotStatus, ...]

    def drive(self, index: int = 0) -> DriveStatus | None:
        for drive in self.drives:
            if drive.index == index:
                return drive
        return None

    def loaded_tape(self, drive_index: int = 0) -> str | None:
        drive = self.drive(drive_index)
        if drive is None or not drive.full:
            return None
        return drive.volume_tag

    def slot_of(self, volume_tag: str) -> int | None:
        for slot in self.slots:
            if slot.full and slot.volume_tag == volume_tag:
                return slot.index
        return None

    def is_slot_empty(self, index: int) -> bool:
        return any(slot.index == index and not slot.full for slot in self.slots)

    def first_empty_slot(self) -> int | None:
        for slot in self.slots:
            if not slot.full and not slot.import_export:
                return slot.index
        return None


@dataclass(slots=True, frozen=True)
class MountEntry:
    """One line of the OS mount table."""

    source: str
    target: str
    fstype: str
    options: str


@dataclass(slots=True, frozen=True)
class FreeSpaceReport:
    """One row of ``df -h`` output."""

    filesystem: str
    total_size: str
    used_size: str
    available_size: str
    usage_percentage: int
    target: str


__all__ = [
    "AutoloaderStatus",
    "DevicePhase",
    "DriveStatus",
    "FreeSpaceReport",
    "MountEntry",
    "SettlePolicy",
    "SlotStatus",
    "TapeDeviceState",
]
