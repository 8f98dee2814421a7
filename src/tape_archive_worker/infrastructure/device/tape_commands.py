"""Argument vectors for tape library tooling."""

from __future__ import annotations

from dataclasses import dataclass

BUSY_MARKERS = ("target is busy", "device is busy")


@dataclass(slots=True, frozen=True)
class TapeCommandBuilder:
    """Build argv lists for ``mtx``, ``ltfs``, ``umount``, ``mount``, ``pidof``, ``df``."""

    changer_device: str
    drive_device: str
    mount_point: str
    drive_index: int = 0
    use_sudo: bool = True
    mount_helper_name: str = "ltfs"

    def autoloader_status(self) -> list[str]:
        return ["mtx", "-f", self.changer_device, "status"]

    def load(self, slot: int) -> list[str]:
        return self._privileged(
            "mtx", "-f", self.changer_device, "load", str(slot), str(self.drive_index)
        )

    def unload(self, slot: int) -> list[str]:
        return self._privileged(
            "mtx", "-f", self.changer_device, "unload", str(slot), str(self.drive_index)
        )

    def mount(self) -> list[str]:
        return self._privileged(
            self.mount_helper_name,
            "-o",
            f"devname={self.drive_device}",
            "-o",
            "eject",
            self.mount_point,
        )

    def unmount(self) -> list[str]:
        return self._privileged("umount", self.mount_point)

    def mount_table(self) -> list[str]:
        return ["mount"]

    def mount_helper_pids(self) -> list[str]:
        return ["pidof", self.mount_helper_name]

    def free_space(self, path: str | None = None) -> list[str]:
        return ["df", "-h", path or self.mount_point]

    def _privileged(self, *argv: str) -> list[str]:
        if self.use_sudo:
            return ["sudo", *argv]
        return list(argv)


def is_busy_failure(output: str) -> bool:
    lowered = output.lower()
    return any(marker in lowered for marker in BUSY_MARKERS)


__all__ = ["BUSY_MARKERS", "TapeCommandBuilder", "is_busy_failure"]
