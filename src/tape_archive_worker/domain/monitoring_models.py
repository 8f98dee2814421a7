"""Response and request models for the management API."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from tape_archive_worker.domain.device import (
    AutoloaderStatus,
    DevicePhase,
    TapeDeviceState,
)
from tape_archive_worker.domain.jobs import JobQueueName, JobStatus
from tape_archive_worker.domain.records import TapeUsage


class MonitoringModel(BaseModel):
    """Base model for management routes."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class DeviceStateResponse(MonitoringModel):
    """Drive state as just observed."""

    phase: DevicePhase
    mounted_tape_id: str | None = Field(default=None, alias="mountedTapeId")
    mount_point_mounted: bool = Field(alias="mountPointMounted")
    drive_loaded: bool = Field(alias="driveLoaded")

    @classmethod
    def from_state(cls, state: TapeDeviceState) -> DeviceStateResponse:
        return cls(
            phase=state.phase,
            mounted_tape_id=state.mounted_tape_id,
            mount_point_mounted=state.mount_point_mounted,
            drive_loaded=state.drive_loaded,
        )


class SlotResponse(MonitoringModel):
    """One storage slot of the autoloader."""

    index: int
    full: bool
    volume_tag: str | None = Field(default=None, alias="volumeTag")
    import_export: bool = Field(default=False, alias="importExport")


class DeviceInfoResponse(MonitoringModel):
    """Drive state plus slot inventory and who holds the drive."""

    state: DeviceStateResponse
    slots: list[SlotResponse] = Field(default_factory=list)
    slot_holder: str | None = Field(default=None, alias="slotHolder")

    @classmethod
    def build(
        cls,
        state: TapeDeviceState,
        inventory: AutoloaderStatus,
        slot_holder: str | None,
    ) -> DeviceInfoResponse:
        return cls(
            state=DeviceStateResponse.from_state(state),
            slots=[
                SlotResponse(
                    index=slot.index,
                    full=slot.full,
                    volume_tag=slot.volume_tag,
                    import_export=slot.import_export,
                )
                for slot in inventory.slots
            ],
            slot_holder=slot_holder,
        )


class QueueCountsResponse(MonitoringModel):
    """Job counts per status for one queue."""

    queue: JobQueueName
    counts: dict[JobStatus, int] = Field(default_factory=dict)


class DispatcherStatusResponse(MonitoringModel):
    """Dispatcher loop state and per-queue job counts."""

    running: bool
    paused: bool
    slot_holder: str | None = Field(default=None, alias="slotHolder")
    consecutive_failures: dict[str, int] = Field(
        default_factory=dict, alias="consecutiveFailures"
    )
    queues: list[QueueCountsResponse] = Field(default_factory=list)


class SwitchTapeRequest(MonitoringModel):
    """Operator request to mount a specific tape."""

    tape_id: str = Field(alias="tapeId", min_length=1)


class TapeUsageResponse(MonitoringModel):
    """Tape usage persisted by a refresh."""

    tape_id: str = Field(alias="tapeId")
    refreshed: bool
    filesystem: str | None = None
    total_size: str | None = Field(default=None, alias="totalSize")
    used_size: str | None = Field(default=None, alias="usedSize")
    available_size: str | None = Field(default=None, alias="availableSize")
    usage_percentage: float | None = Field(default=None, alias="usagePercentage")

    @classmethod
    def build(cls, tape_id: str, usage: TapeUsage | None) -> TapeUsageResponse:
        if usage is None:
            return cls(tape_id=tape_id, refreshed=False)
        return cls(
            tape_id=tape_id,
            refreshed=True,
            filesystem=usage.filesystem,
            total_size=usage.total_size,
            used_size=usage.used_size,
            available_size=usage.available_size,
            usage_percentage=usage.usage_percentage,
        )


__all__ = [
    "DeviceInfoResponse",
    "DeviceStateResponse",
    "DispatcherStatusResponse",
    "QueueCountsResponse",
    "SlotResponse",
    "SwitchTapeRequest",
    "TapeUsageResponse",
]
