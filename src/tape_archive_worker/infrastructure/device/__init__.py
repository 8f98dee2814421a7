"""Tape library device adapters."""

from tape_archive_worker.infrastructure.device.command_device_status_reader import (
    CommandDeviceStatusReader,
)
from tape_archive_worker.infrastructure.device.ltfs_tape_device_controller import (
    LtfsTapeDeviceController,
)
from tape_archive_worker.infrastructure.device.tape_commands import TapeCommandBuilder

__all__ = ["CommandDeviceStatusReader", "LtfsTapeDeviceController", "TapeCommandBuilder"]
