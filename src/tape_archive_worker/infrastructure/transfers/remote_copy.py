"""Authenticated remote copies over scp/ssh."""

from __future__ import annotations

import logging
import re
import shlex
from dataclasses import dataclass

from tape_archive_worker.domain.commands import CommandResult
from tape_archive_worker.domain.errors import (
    RemoteAuthenticationError,
    RemotePathError,
    TransferError,
)
from tape_archive_worker.domain.ports import CommandRunner, RemoteCopier
from tape_archive_worker.infrastructure.commands.subprocess_command_runner import (
    TIMEOUT_RETURNCODE,
)

logger = logging.getLogger(__name__)

_AUTH_MARKERS = ("permission denied", "host key verification failed")
_PATH_MARKERS = ("no such file or directory", "not a regular file", "is a directory")
_NETWORK_MARKERS = (
    "connection timed out",
    "connection refused",
    "connection reset",
    "connection closed",
    "could not resolve hostname",
    "network is unreachable",
    "no route to host",
)
_SAFE_LOGIN = re.compile(r"^[A-Za-z0-9._][A-Za-z0-9._-]*$")
_SAFE_ADDRESS = re.compile(r"^[A-Za-z0-9.:\-\[\]]+$")


@dataclass(slots=True, frozen=True)
class RemoteTarget:
    """A user on a host reachable over ssh."""

    user: str
    address: str

    def __post_init__(self) -> None:
        if not _SAFE_LOGIN.match(self.user):
            raise TransferError(f"Invalid remote user '{self.user}'.")
        if not _SAFE_ADDRESS.match(self.address) or self.address.startswith("-"):
            raise TransferError(f"Invalid remote address '{self.address}'.")

    @property
    def login(self) -> str:
        return f"{self.user}@{self.address}"

    def remote_spec(self, path: str) -> str:
        """``user@host:path`` with the path quoted for the remote shell."""

        return f"{self.login}:{shlex.quote(path)}"


@dataclass(slots=True, frozen=True)
class RemoteCopyCommandBuilder:
    """Build scp/ssh argv lists; remote paths are quoted, never interpolated raw.

    ``legacy_protocol`` passes ``-O`` so remote paths go through the remote
    shell on every OpenSSH version, which is what the quoting assumes.
    """

    connect_timeout_seconds: int = 5
    batch_mode: bool = True
    legacy_protocol: bool = True

    def ssh_options(self) -> list[str]:
        options = ["-o", f"ConnectTimeout={self.connect_timeout_seconds}"]
        if self.batch_mode:
            options = ["-o", "BatchMode=yes", *options]
        return options

    def pull(self, target: RemoteTarget, remote_path: str, local_path: str) -> list[str]:
        return [*self._scp(), target.remote_spec(remote_path), local_path]

    def push(self, local_path: str, target: RemoteTarget, remote_path: str) -> list[str]:
        return [*self._scp(), local_path, target.remote_spec(remote_path)]

    def remote_exists(self, target: RemoteTarget, remote_path: str) -> list[str]:
        return ["ssh", *self.ssh_options(), target.login, "test", "-e", shlex.quote(remote_path)]

    def _scp(self) -> list[str]:
        argv = ["scp", "-r"]
        if self.legacy_protocol:
            argv.append("-O")
        return [*argv, *self.ssh_options(), "--"]


def classify_remote_failure(result: CommandResult, action: str) -> TransferError:
    """Map a failed scp/ssh run onto the transfer error taxonomy."""

    output = result.output
    lowered = output.lower()
    message = f"{action} failed: {output or f'exit code {result.returncode}'}"

    if any(marker in lowered for marker in _AUTH_MARKERS):
        return RemoteAuthenticationError(f"{action} failed: authentication rejected. {output}")
    if any(marker in lowered for marker in _PATH_MARKERS):
        return RemotePathError(f"{action} failed: remote path missing or inaccessible. {output}")
    if result.returncode == TIMEOUT_RETURNCODE or any(
        marker in lowered for marker in _NETWORK_MARKERS
    ):
        return TransferError(message, retryable=True)
    return TransferError(message)


class RemoteCopyClient(RemoteCopier):
    """Run remote copies and raise classified transfer errors."""

    def __init__(
        self,
        runner: CommandRunner,
        commands: RemoteCopyCommandBuilder | None = None,
        *,
        timeout_seconds: float | None = None,
    ) -> None:
        self._runner = runner
        self._commands = commands or RemoteCopyCommandBuilder()
        self._timeout_seconds = timeout_seconds

    async def pull(self, *, user: str, address: str, remote_path: str, local_path: str) -> None:
        """Copy ``remote_path`` on the target host to ``local_path``."""

        target = RemoteTarget(user, address)
        logger.info("Pulling %s:%s to %s.", target.login, remote_path, local_path)
        await self._run(self._commands.pull(target, remote_path, local_path), "Remote pull")

    async def push(self, *, local_path: str, user: str, address: str, remote_path: str) -> None:
        """Copy ``local_path`` to ``remote_path`` on the target host, then confirm it landed."""

        target = RemoteTarget(user, address)
        logger.info("Pushing %s to %s:%s.", local_path, target.login, remote_path)
        await self._run(self._commands.push(local_path, target, remote_path), "Remote push")

        result = await self._runner.run(
            self._commands.remote_exists(target, remote_path),
            timeout_seconds=self._timeout_seconds,
        )
        if result.returncode == 1 and not result.output:
            raise RemotePathError(f"Remote push verification failed: {remote_path} not found.")
        if not result.succeeded:
            raise classify_remote_failure(result, "Remote push verification")

    async def _run(self, argv: list[str], action: str) -> None:
        result = await self._runner.run(argv, timeout_seconds=self._timeout_seconds)
        if not result.succeeded:
            raise classify_remote_failure(result, action)


__all__ = [
    "RemoteCopyClient",
    "RemoteCopyCommandBuilder",
    "RemoteTarget",
    "classify_remote_failure",
]
