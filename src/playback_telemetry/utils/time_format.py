"""Time and size formatting helpers for the UI."""

from __future__ import annotations

import math

_BYTE_UNITS = (("GB", 1_000_000_000), ("MB", 1_000_000), ("KB", 1_000))


def format_seconds(seconds: float) -> str:
    """Format seconds as MM:SS or H:MM:SS when needed."""
    return _format_seconds(seconds, force_hours=False)


def format_time_pair(position_s: float, duration_s: float | None) -> tuple[str, str]:
    """Format position and duration with consistent width.

    An unknown (`None`) or non-positive duration renders as a placeholder.
    """
    known = duration_s is not None and _coerce_seconds(duration_s) > 0
    hours_mode = _needs_hours(position_s) or (
        known and duration_s is not None and _needs_hours(duration_s)
    )
    position = _format_seconds(position_s, force_hours=hours_mode)
    if not known or duration_s is None:
        placeholder = "--:--:--" if hours_mode else "--:--"
        return position, placeholder
    return position, _format_seconds(duration_s, force_hours=hours_mode)


def format_bytes(count: int) -> str:
    """Format a byte count with decimal KB/MB/GB units."""
    value = max(0, int(count)) if isinstance(count, int) else 0
    for unit, size in _BYTE_UNITS:
        if value >= size:
            return f"{value / size:.1f} {unit}"
    return f"{value / 1_000:.1f} KB"


def _needs_hours(seconds: float) -> bool:
    return _coerce_seconds(seconds) >= 3600


def _format_seconds(seconds: float, *, force_hours: bool) -> str:
    total_seconds = _coerce_seconds(seconds)
    hours = total_seconds // 3600
    if hours > 0 or force_hours:
        minutes = (total_seconds // 60) % 60
        secs = total_seconds % 60
        return f"{hours}:{minutes:02d}:{secs:02d}"
    minutes = total_seconds // 60
    secs = total_seconds % 60
    return f"{minutes:02d}:{secs:02d}"


def _coerce_seconds(value: float) -> int:
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(numeric):
        return 0
    return max(0, int(numeric))
