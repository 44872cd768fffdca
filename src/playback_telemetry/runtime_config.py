"""Runtime configuration normalization helpers.

These helpers keep CLI flag interpretation deterministic across entrypoints:
an explicit CLI value wins, then the persisted config, then the default.
"""

from __future__ import annotations

import math

from playback_telemetry.services.buffer_metrics import normalize_lookahead_target
from playback_telemetry.services.telemetry_service import (
    DEFAULT_SAMPLE_INTERVAL_S,
    SAMPLE_INTERVAL_MAX_S,
    SAMPLE_INTERVAL_MIN_S,
)

PIPELINE_NAMES = ("fake", "vlc")
DEFAULT_PIPELINE = "fake"


def resolve_log_level(*, verbose: bool, quiet: bool) -> str:
    """Resolve effective log level from CLI flags.

    Precedence is deterministic: --quiet overrides --verbose.
    """
    if quiet:
        return "WARNING"
    if verbose:
        return "DEBUG"
    return "INFO"


def resolve_pipeline_name(cli_value: str | None, persisted: str | None) -> str:
    """Pick the pipeline adapter name from CLI, then persisted config."""
    for candidate in (cli_value, persisted):
        if isinstance(candidate, str):
            normalized = candidate.strip().lower()
            if normalized in PIPELINE_NAMES:
                return normalized
    return DEFAULT_PIPELINE


def clamp_sample_interval(value: float | None) -> float:
    """Clamp a sampling cadence to the supported range."""
    if value is None or isinstance(value, bool):
        return DEFAULT_SAMPLE_INTERVAL_S
    numeric = float(value)
    if not math.isfinite(numeric):
        return DEFAULT_SAMPLE_INTERVAL_S
    return max(SAMPLE_INTERVAL_MIN_S, min(SAMPLE_INTERVAL_MAX_S, numeric))


def resolve_sample_interval(cli_value: float | None, persisted: float | None) -> float:
    return clamp_sample_interval(cli_value if cli_value is not None else persisted)


def resolve_lookahead_target(cli_value: float | None, persisted: float | None) -> float:
    return normalize_lookahead_target(cli_value if cli_value is not None else persisted)
