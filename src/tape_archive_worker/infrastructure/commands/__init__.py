"""External command runners."""

from tape_archive_worker.infrastructure.commands.subprocess_command_runner import (
    SubprocessCommandRunner,
)

__all__ = ["SubprocessCommandRunner"]
