"""Discrete buffering state derived from pipeline buffer flags."""

from __future__ import annotations

from typing import Literal

BufferingState = Literal["idle", "buffering", "buffered", "stalled"]
BUFFERING_STATES: tuple[BufferingState, ...] = (
    "idle",
    "buffering",
    "buffered",
    "stalled",
)


def derive_buffering_state(
    is_empty: bool,
    is_full: bool,
    is_likely_to_keep_up: bool,
    is_playing: bool,
) -> BufferingState:
    """Map the current flag set to a buffering state.

    Rules are checked in order and the first match wins: an empty buffer is
    always `buffering`, playing without keep-up is `stalled`, keep-up alone is
    `buffered`, anything else is `idle`. `is_full` does not participate.
    """
    del is_full
    if is_empty:
        return "buffering"
    if is_playing and not is_likely_to_keep_up:
        return "stalled"
    if is_likely_to_keep_up:
        return "buffered"
    return "idle"
