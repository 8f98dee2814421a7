"""Parsers for autoloader, mount table and free-space tool output.

Autoloader (``mtx -f <changer> status``), one element per line, leading
whitespace ignored::

    Storage Changer <device>:<n> Drives, <m> Slots ( <k> Import/Export )
    Data Transfer Element <d>:Empty
    Data Transfer Element <d>:Full (Storage Element <s> Loaded):VolumeTag = <tag>
    Storage Element <n>:Full :VolumeTag=<tag>
    Storage Element <n>:Empty[:VolumeTag=]
    Storage Element <n> IMPORT/EXPORT:Empty|Full ...

The ``(Storage Element <s> Loaded)`` and ``VolumeTag`` parts are optional (no
barcode reader, or ``Unknown Storage Element``). Any other line starting with
``Data Transfer Element`` or ``Storage Element`` is rejected.

Mount table (``mount``)::

    <source> on <target> type <fstype> (<options>)

Free space (``df -h <path>``): a ``Filesystem`` header, then rows of
``<filesystem> <size> <used> <avail> <use%> <mounted on>``; a filesystem name
too long for its column is printed alone with the rest on the next line.
"""

from __future__ import annotations

import re

from tape_archive_worker.domain.device import (
    AutoloaderStatus,
    DriveStatus,
    FreeSpaceReport,
    MountEntry,
    SlotStatus,
)
from tape_archive_worker.domain.errors import MalformedOutputError

_CHANGER_HEADER = re.compile(r"^Storage Changer \S+:\d+ Drives?, \d+ Slots?")
_DRIVE_LINE = re.compile(
    r"^Data Transfer Element (?P<index>\d+):(?P<state>Full|Empty)"
    r"(?: \((?:Storage Element (?P<source>\d+)|Unknown Storage Element) Loaded\))?"
    r"(?::VolumeTag ?= ?(?P<tag>\S*))?\s*$"
)
_SLOT_LINE = re.compile(
    r"^Storage Element (?P<index>\d+)(?P<import_export> IMPORT/EXPORT)?:(?P<state>Full|Empty)"
    r"(?: ?:VolumeTag ?= ?(?P<tag>\S*))?\s*$"
)
_MOUNT_LINE = re.compile(
    r"^(?P<source>.+?) on (?P<target>.+?) type (?P<fstype>\S+) \((?P<options>[^)]*)\)$"
)


def parse_autoloader_status(output: str) -> AutoloaderStatus:
    """Parse ``mtx status`` output into drive and slot inventory."""

    drives: list[DriveStatus] = []
    slots: list[SlotStatus] = []
    saw_header = False

    for raw_line in output.splitlines():
        line = raw_line.strip()
        if not line:
            continue
        if _CHANGER_HEADER.match(line):
            saw_header = True
            continue

        if line.startswith("Data Transfer Element"):
            match = _DRIVE_LINE.match(line)
            if match is None:
                raise MalformedOutputError(
                    f"Unrecognized drive line in autoloader status: {line!r}"
                )
            source = match.group("source")
            drives.append(
                DriveStatus(
                    index=int(match.group("index")),
                    full=match.group("state") == "Full",
                    volume_tag=match.group("tag") or None,
                    source_slot=int(source) if source is not None else None,
                )
            )
            continue

        if line.startswith("Storage Element"):
            match = _SLOT_LINE.match(line)
            if match is None:
                raise MalformedOutputError(
                    f"Unrecognized slot line in autoloader status: {line!r}"
                )
            slots.append(
                SlotStatus(
                    index=int(match.group("index")),
                    full=match.group("state") == "Full",
                    volume_tag=match.group("tag") or None,
                    import_export=match.group("import_export") is not None,
                )
            )

    if not drives:
        detail = "no drive lines" if saw_header else "no changer header or drive lines"
        raise MalformedOutputError(f"Autoloader status has {detail}.")
    return AutoloaderStatus(drives=tuple(drives), slots=tuple(slots))


def parse_mount_table(output: str) -> list[MountEntry]:
    """Parse ``mount`` output."""

    entries: list[MountEntry] = []
    for raw_line in output.splitlines():
        line = raw_line.strip()
        if not line:
            continue
        match = _MOUNT_LINE.match(line)
        if match is None:
            raise MalformedOutputError(f"Unrecognized mount table line: {line!r}")
        entries.append(
            MountEntry(
                source=match.group("source"),
                target=match.group("target"),
                fstype=match.group("fstype"),
                options=match.group("options"),
            )
        )
    return entries


def normalize_mount_path(path: str) -> str:
    """Strip trailing separators so ``/mnt/tape/`` and ``/mnt/tape`` compare equal."""

    stripped = path.rstrip("/")
    return stripped or "/"


def is_path_mounted(entries: list[MountEntry], mount_point: str) -> bool:
    target = normalize_mount_path(mount_point)
    return any(normalize_mount_path(entry.target) == target for entry in entries)


def parse_free_space_report(output: str, mount_point: str) -> FreeSpaceReport:
    """Return the ``df -h`` row whose mount target is ``mount_point``."""

    lines = [line for line in output.splitlines() if line.strip()]
    if not lines or not lines[0].startswith("Filesystem"):
        raise MalformedOutputError("Free-space report is missing its header.")

    rows: list[list[str]] = []
    pending: list[str] = []
    for line in lines[1:]:
        fields = pending + line.split()
        if len(fields) < 6:
            pending = fields
            continue
        pending = []
        rows.append(fields)
    if pending:
        raise MalformedOutputError(f"Truncated free-space row: {' '.join(pending)!r}")

    target = normalize_mount_path(mount_point)
    for fields in rows:
        row_target = " ".join(fields[5:])
        if normalize_mount_path(row_target) != target:
            continue
        percentage = fields[4]
        if not percentage.endswith("%") or not percentage[:-1].isdigit():
            raise MalformedOutputError(
                f"Invalid use percentage {percentage!r} in free-space report."
            )
        return FreeSpaceReport(
            filesystem=fields[0],
            total_size=fields[1],
            used_size=fields[2],
            available_size=fields[3],
            usage_percentage=int(percentage[:-1]),
            target=row_target,
        )

    raise MalformedOutputError(f"No free-space row for mount point '{mount_point}'.")


__all__ = [
    "is_path_mounted",
    "normalize_mount_path",
    "parse_autoloader_status",
    "parse_free_space_report",
    "parse_mount_table",
]
