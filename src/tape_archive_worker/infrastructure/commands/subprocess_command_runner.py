"""Command runner backed by asyncio subprocesses."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from tape_archive_worker.domain.commands import CommandResult
from tape_archive_worker.domain.ports import CommandRunner

logger = logging.getLogger(__name__)

# Exit code reported for commands killed after their timeout, as coreutils `timeout` does.
TIMEOUT_RETURNCODE = 124
NOT_FOUND_RETURNCODE = 127


class SubprocessCommandRunner(CommandRunner):
    """Run argv lists without a shell and capture decoded output."""

    def __init__(self, default_timeout_seconds: float | None = None) -> None:
        self._default_timeout_seconds = default_timeout_seconds

    async def run(
        self,
        argv: Sequence[str],
        *,
        timeout_seconds: float | None = None,
    ) -> CommandResult:
        command = tuple(argv)
        timeout = timeout_seconds if timeout_seconds is not None else self._default_timeout_seconds
        logger.debug("Running command: %s", " ".join(command))

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            return CommandResult(command, NOT_FOUND_RETURNCODE, "", str(exc))

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except TimeoutError:
            process.kill()
            await process.wait()
            logger.warning("Command timed out after %ss: %s", timeout, " ".join(command))
            return CommandResult(
                command,
                TIMEOUT_RETURNCODE,
                "",
                f"timed out after {timeout}s",
            )

        return CommandResult(
            command,
            process.returncode if process.returncode is not None else -1,
            stdout.decode(errors="replace"),
            stderr.decode(errors="replace"),
        )


__all__ = ["NOT_FOUND_RETURNCODE", "SubprocessCommandRunner", "TIMEOUT_RETURNCODE"]
