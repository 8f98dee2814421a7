"""Domain exceptions for tape archive operations."""


class ArchiveError(Exception):
    """Base class for archive errors.

    ``retryable`` tells the job dispatcher whether the queue should schedule
    another attempt of the failing job.
    """

    retryable = True

    def __init__(self, message: str, *, retryable: bool | None = None) -> None:
        super().__init__(message)
        if retryable is not None:
            self.retryable = retryable


class HardwareError(ArchiveError):
    """Raised when the robot, drive or mount layer misbehaves."""


class MalformedOutputError(HardwareError):
    """Raised when device tooling prints output outside the known grammar."""


class SpaceError(ArchiveError):
    """Raised when no tape in a group has room for a file."""

    retryable = False

    def __init__(self, message: str, diagnostics: list[dict[str, object]] | None = None) -> None:
        super().__init__(message)
        self.diagnostics = diagnostics or []


class ValidationError(ArchiveError):
    """Raised when a job's input does not match what is on disk."""

    retryable = False


class VerificationError(ArchiveError):
    """Raised when a copy does not match its source."""


class TransferError(ArchiveError):
    """Raised when a remote or local copy between hosts fails."""

    retryable = False


class RemoteAuthenticationError(TransferError):
    """Raised when the remote host rejects our credentials."""


class RemotePathError(TransferError):
    """Raised when the remote path is missing or not a regular file."""


class RecordNotFoundError(ArchiveError):
    """Raised when a persisted record a job refers to does not exist."""

    retryable = False


__all__ = [
    "ArchiveError",
    "HardwareError",
    "MalformedOutputError",
    "RecordNotFoundError",
    "RemoteAuthenticationError",
    "RemotePathError",
    "SpaceError",
    "TransferError",
    "ValidationError",
    "VerificationError",
]
