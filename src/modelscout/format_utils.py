"""Human-readable formatting helpers shared by the disk, download and CLI code."""

from __future__ import annotations

_BYTE_UNITS = ("B", "KB", "MB", "GB", "TB")
_BYTES_PER_UNIT = 1024


def format_bytes(size_bytes: int | float) -> str:
    """Format a byte count with one decimal, e.g. ``95.0 GB``."""
    value = float(size_bytes)
    idx = 0
    while value >= _BYTES_PER_UNIT and idx < len(_BYTE_UNITS) - 1:
        value /= _BYTES_PER_UNIT
        idx += 1
    return f"{value:.1f} {_BYTE_UNITS[idx]}"


def format_percent(part: int | float, whole: int | float) -> int:
    """Integer percentage of ``part`` in ``whole``; 0 when ``whole`` is empty."""
    if not whole:
        return 0
    return int(round(part / whole * 100))


__all__ = ["format_bytes", "format_percent"]
