"""Transfer adapters: verified copies and remote copies."""

from tape_archive_worker.infrastructure.transfers.filesystem_transfer_verifier import (
    FilesystemTransferVerifier,
)
from tape_archive_worker.infrastructure.transfers.remote_copy import (
    RemoteCopyClient,
    RemoteCopyCommandBuilder,
    RemoteTarget,
)
from tape_archive_worker.infrastructure.transfers.runtime import (
    DeviceSlotControl,
    DeviceSlotQueue,
)

__all__ = [
    "DeviceSlotControl",
    "DeviceSlotQueue",
    "FilesystemTransferVerifier",
    "RemoteCopyClient",
    "RemoteCopyCommandBuilder",
    "RemoteTarget",
]
