"""Runtime primitives shared by drive users."""

from tape_archive_worker.infrastructure.transfers.runtime.device_slot_queue import (
    DeviceSlotControl,
    DeviceSlotQueue,
)

__all__ = ["DeviceSlotControl", "DeviceSlotQueue"]
