"""External command invocation results."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True, frozen=True)
class CommandResult:
    """Exit status and captured output of one external command."""

    argv: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def succeeded(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        """Combined stdout and stderr, for diagnostics and pattern checks."""

        return "\n".join(part for part in (self.stdout.strip(), self.stderr.strip()) if part)

    def describe(self) -> str:
        command = " ".join(self.argv)
        return f"'{command}' exited with {self.returncode}: {self.output or '<no output>'}"


__all__ = ["CommandResult"]
