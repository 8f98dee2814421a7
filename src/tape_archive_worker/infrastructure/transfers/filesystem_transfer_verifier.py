"""Copy files or directory trees and verify the copy against its source."""

from __future__ import annotations

import asyncio
import hashlib
import logging
import os
import shutil
from collections.abc import Callable

from tape_archive_worker.domain.errors import VerificationError
from tape_archive_worker.domain.ports import TransferVerifier
from tape_archive_worker.domain.results import TransferSummary

logger = logging.getLogger(__name__)

CopyFunction = Callable[[str, str], object]

_HASH_CHUNK_BYTES = 1024 * 1024


def tree_size(path: str) -> tuple[int, int]:
    """Return ``(total_bytes, file_count)`` for a file or a directory tree."""

    if not os.path.isdir(path):
        return os.path.getsize(path), 1

    total = 0
    count = 0
    for root, _dirs, files in os.walk(path):
        for name in files:
            total += os.path.getsize(os.path.join(root, name))
            count += 1
    return total, count


def file_digest(path: str, chunk_size: int = _HASH_CHUNK_BYTES) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as handle:
        while chunk := handle.read(chunk_size):
            digest.update(chunk)
    return digest.hexdigest()


def tree_digests(path: str) -> dict[str, str]:
    """Return sha256 per file keyed by path relative to ``path``."""

    if not os.path.isdir(path):
        return {"": file_digest(path)}

    digests: dict[str, str] = {}
    for root, _dirs, files in os.walk(path):
        for name in files:
            full_path = os.path.join(root, name)
            digests[os.path.relpath(full_path, path)] = file_digest(full_path)
    return digests


def remove_path(path: str) -> None:
    """Delete a file or tree if present."""

    if os.path.isdir(path) and not os.path.islink(path):
        shutil.rmtree(path)
    elif os.path.lexists(path):
        os.unlink(path)


class FilesystemTransferVerifier(TransferVerifier):
    """Size-verified copies, with optional sha256 comparison.

    Directory trees are compared by total size. With ``verify_hash`` every
    file is also compared by digest, which rereads both sides and is meant
    for same-host copies.
    """

    def __init__(self, copy_file: CopyFunction = shutil.copy2) -> None:
        self._copy_file = copy_file

    async def copy_and_verify(
        self,
        source: str,
        destination: str,
        *,
        verify_hash: bool = False,
    ) -> TransferSummary:
        return await asyncio.to_thread(
            self._copy_and_verify_sync,
            source,
            destination,
            verify_hash,
        )

    async def measure(self, path: str) -> int:
        size_bytes, _ = await asyncio.to_thread(tree_size, path)
        return size_bytes

    def _copy_and_verify_sync(
        self,
        source: str,
        destination: str,
        verify_hash: bool,
    ) -> TransferSummary:
        if not os.path.exists(source):
            raise VerificationError(f"Copy source {source} does not exist.")

        is_directory = os.path.isdir(source)
        try:
            remove_path(destination)
            if is_directory:
                shutil.copytree(source, destination, copy_function=self._copy_file)
            else:
                parent = os.path.dirname(destination)
                if parent:
                    os.makedirs(parent, exist_ok=True)
                self._copy_file(source, destination)
        except OSError as exc:
            self._discard(destination)
            raise VerificationError(f"Copy {source} -> {destination} failed: {exc}") from exc

        source_bytes, file_count = tree_size(source)
        destination_bytes, _ = tree_size(destination)
        if source_bytes != destination_bytes:
            self._discard(destination)
            raise VerificationError(
                f"Size mismatch after copy {source} -> {destination}: "
                f"source {source_bytes} bytes, destination {destination_bytes} bytes."
            )

        if verify_hash and tree_digests(source) != tree_digests(destination):
            self._discard(destination)
            raise VerificationError(f"Checksum mismatch after copy {source} -> {destination}.")

        logger.info(
            "Verified copy %s -> %s (%s bytes, %s files).",
            source,
            destination,
            source_bytes,
            file_count,
        )
        return TransferSummary(
            source=source,
            destination=destination,
            size_bytes=source_bytes,
            file_count=file_count,
            is_directory=is_directory,
        )

    def _discard(self, destination: str) -> None:
        try:
            remove_path(destination)
        except OSError:
            logger.exception("Failed to remove unverified copy %s.", destination)


__all__ = [
    "FilesystemTransferVerifier",
    "file_digest",
    "remove_path",
    "tree_digests",
    "tree_size",
]
