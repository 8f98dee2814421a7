"""Pipeline outcomes and transfer summaries."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class PipelineOutcome(StrEnum):
    """How one job attempt ended."""

    SUCCEEDED = "succeeded"
    PERMANENT_FAILURE = "permanent_failure"
    TRANSIENT_FAILURE = "transient_failure"


@dataclass(slots=True, frozen=True)
class PipelineResult:
    """Result of running a job through a pipeline.

    Pipelines return ``SUCCEEDED`` or ``PERMANENT_FAILURE`` directly. Errors
    they raise are turned into ``TRANSIENT_FAILURE`` (queue retries) or
    ``PERMANENT_FAILURE`` by the dispatcher depending on ``retryable``.
    """

    outcome: PipelineOutcome
    message: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def succeeded(cls, message: str | None = None, **details: Any) -> PipelineResult:
        return cls(PipelineOutcome.SUCCEEDED, message, details)

    @classmethod
    def permanent_failure(cls, message: str, **details: Any) -> PipelineResult:
        return cls(PipelineOutcome.PERMANENT_FAILURE, message, details)

    @classmethod
    def transient_failure(cls, message: str, **details: Any) -> PipelineResult:
        return cls(PipelineOutcome.TRANSIENT_FAILURE, message, details)

    @property
    def ok(self) -> bool:
        return self.outcome is PipelineOutcome.SUCCEEDED


@dataclass(slots=True, frozen=True)
class TransferSummary:
    """What a verified copy produced."""

    source: str
    destination: str
    size_bytes: int
    file_count: int
    is_directory: bool


@dataclass(slots=True, frozen=True)
class TapeSpaceCandidate:
    """Diagnostics for one tape considered by the allocator."""

    tape_id: str
    available_size: str | None
    available_bytes: int | None
    usage_percentage: float | None

    def as_dict(self) -> dict[str, object]:
        return {
            "tape_id": self.tape_id,
            "available_size": self.available_size,
            "available_bytes": self.available_bytes,
            "usage_percentage": self.usage_percentage,
        }


@dataclass(slots=True, frozen=True)
class SpaceCheck:
    """Allocator answer for a group and a required size."""

    group_name: str
    required_bytes: int
    selected_tape_id: str | None
    candidates: tuple[TapeSpaceCandidate, ...] = ()

    @property
    def has_space(self) -> bool:
        return self.selected_tape_id is not None

    def diagnostics(self) -> list[dict[str, object]]:
        """Per-tape availability for alerts and failure reports."""

        return [candidate.as_dict() for candidate in self.candidates]


__all__ = [
    "PipelineOutcome",
    "PipelineResult",
    "SpaceCheck",
    "TapeSpaceCandidate",
    "TransferSummary",
]
