"""Buffered-ahead and buffering-progress derivation from loaded time ranges.

Pipelines report the spans of media that are already available locally. This
module reduces such a range set plus the play head into the two continuous
metrics the UI shows: seconds buffered past the play head and a [0, 1]
progress fraction. Everything here is pure and total over its inputs.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass

DEFAULT_LOOKAHEAD_TARGET_S = 30.0


@dataclass(frozen=True)
class LoadedRange:
    """One contiguous span of locally available media, in seconds."""

    start_s: float
    duration_s: float

    @property
    def end_s(self) -> float:
        return self.start_s + self.duration_s


@dataclass(frozen=True)
class BufferMetrics:
    """Derived buffer metrics for a single range set and play head."""

    buffered_ahead_s: float = 0.0
    progress: float = 0.0


def normalize_duration(value: float | None) -> float | None:
    """Return a finite non-negative duration, or `None` when unknown.

    Engines report live or not-yet-probed durations as NaN, infinity or
    negative numbers; all of these collapse to the unknown variant.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(numeric) or numeric < 0:
        return None
    return numeric


def normalize_lookahead_target(value: float | None) -> float:
    """Return a usable lookahead target, falling back to the default."""
    if value is None or isinstance(value, bool):
        return DEFAULT_LOOKAHEAD_TARGET_S
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return DEFAULT_LOOKAHEAD_TARGET_S
    if not math.isfinite(numeric) or numeric <= 0:
        return DEFAULT_LOOKAHEAD_TARGET_S
    return numeric


def compute_buffer_metrics(
    ranges: Iterable[LoadedRange],
    current_position_s: float,
    total_duration_s: float | None,
    *,
    lookahead_target_s: float = DEFAULT_LOOKAHEAD_TARGET_S,
) -> BufferMetrics:
    """Compute buffered-ahead seconds and progress for the given ranges.

    Only ranges ending past the play head count. The furthest such end is the
    buffer frontier. Progress is the frontier's share of a known duration, or
    for unknown durations the share of `lookahead_target_s` buffered ahead.
    """
    candidates = list(ranges)
    if not candidates:
        return BufferMetrics()
    position = _coerce_position(current_position_s)
    frontier: float | None = None
    for loaded in candidates:
        end = loaded.end_s
        if not math.isfinite(end) or end <= position:
            continue
        if frontier is None or end > frontier:
            frontier = end
    if frontier is None:
        # Everything loaded is behind the play head.
        return BufferMetrics()
    buffered_ahead = max(0.0, frontier - position)

    duration = normalize_duration(total_duration_s)
    if duration is not None and duration > 0:
        progress = _clamp_float(frontier / duration, 0.0, 1.0)
    else:
        target = normalize_lookahead_target(lookahead_target_s)
        progress = _clamp_float(buffered_ahead / target, 0.0, 1.0)
    return BufferMetrics(buffered_ahead_s=buffered_ahead, progress=progress)


def _coerce_position(value: float) -> float:
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(numeric):
        return 0.0
    return max(0.0, numeric)


def _clamp_float(value: float, min_value: float, max_value: float) -> float:
    return max(min_value, min(value, max_value))
