"""Human-readable size labels ("2.3 GB", "11T") to byte counts and back."""

from __future__ import annotations

import re

_SIZE_LABEL_PATTERN = re.compile(
    r"^\s*(?P<number>\d+(?:\.\d*)?|\.\d+)\s*(?P<unit>(?:[KMGT](?:I?B)?|B)?)\s*$",
    re.IGNORECASE,
)

_UNIT_EXPONENTS = {"": 0, "K": 1, "M": 2, "G": 3, "T": 4}
_FORMAT_UNITS = ("B", "KB", "MB", "GB", "TB")


def parse_size_label(label: str) -> int:
    """Return the byte count for a size label.

    Accepts ``<number>[ ]<unit>`` where unit is one of B, KB, MB, GB, TB, the
    short forms K, M, G, T used by ``df -h``, or the binary spellings KiB..TiB.
    Units are case-insensitive and always use a 1024 multiplier. A bare
    number is a byte count.
    """

    match = _SIZE_LABEL_PATTERN.match(label)
    if match is None:
        raise ValueError(f"Invalid size label '{label}'.")

    unit = match.group("unit").upper()
    if unit.endswith("IB"):
        unit = unit[:-2]
    elif unit.endswith("B"):
        unit = unit[:-1]
    exponent = _UNIT_EXPONENTS.get(unit)
    if exponent is None:
        raise ValueError(f"Invalid size unit in label '{label}'.")

    return round(float(match.group("number")) * (1024**exponent))


def format_size(size_bytes: int | float) -> str:
    """Format a byte count as ``"<value> <unit>"`` with two decimals."""

    size = float(size_bytes)
    if size < 0:
        raise ValueError("Size cannot be negative.")

    unit_index = 0
    while size >= 1024 and unit_index < len(_FORMAT_UNITS) - 1:
        size /= 1024
        unit_index += 1
    return f"{size:.2f} {_FORMAT_UNITS[unit_index]}"


def sizes_match(actual_bytes: int, declared_bytes: int, tolerance_ratio: float = 0.01) -> bool:
    """Return whether two sizes agree within a relative tolerance of the declared size."""

    return abs(actual_bytes - declared_bytes) <= declared_bytes * tolerance_ratio


__all__ = ["format_size", "parse_size_label", "sizes_match"]
