"""JSON persistence for user-facing runtime configuration.

The store is intentionally tolerant of invalid/missing values so upgrades and
partial/corrupt writes degrade to safe defaults instead of aborting startup.
"""

from __future__ import annotations

import json
import logging
import math
from contextlib import suppress
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any
from uuid import uuid4

from playback_telemetry.services.buffer_metrics import DEFAULT_LOOKAHEAD_TARGET_S
from playback_telemetry.services.telemetry_service import DEFAULT_SAMPLE_INTERVAL_S
from playback_telemetry.services.vlc_pipeline import DEFAULT_NETWORK_CACHING_MS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TelemetryConfig:
    """Persisted runtime configuration loaded at startup."""

    pipeline: str = "fake"
    sample_interval_s: float = DEFAULT_SAMPLE_INTERVAL_S
    lookahead_target_s: float = DEFAULT_LOOKAHEAD_TARGET_S
    network_caching_ms: int = DEFAULT_NETWORK_CACHING_MS
    log_level: str = "INFO"
    last_source_uri: str | None = None


def _coerce_config(data: dict[str, Any]) -> TelemetryConfig:
    """Coerce an untyped JSON object into a `TelemetryConfig`."""

    def _float_or_default(value: Any, default: float) -> float:
        if isinstance(value, bool):
            return default
        if isinstance(value, (int, float)):
            normalized = float(value)
            if math.isfinite(normalized) and normalized > 0:
                return normalized
        return default

    def _int_or_default(value: Any, default: int) -> int:
        if isinstance(value, bool):
            return default
        if isinstance(value, int) and value >= 0:
            return value
        return default

    def _str_or_default(value: Any, default: str) -> str:
        if isinstance(value, str) and value.strip():
            return value
        return default

    last_source = data.get("last_source_uri")
    return TelemetryConfig(
        pipeline=_str_or_default(data.get("pipeline"), "fake"),
        sample_interval_s=_float_or_default(
            data.get("sample_interval_s"), DEFAULT_SAMPLE_INTERVAL_S
        ),
        lookahead_target_s=_float_or_default(
            data.get("lookahead_target_s"), DEFAULT_LOOKAHEAD_TARGET_S
        ),
        network_caching_ms=_int_or_default(
            data.get("network_caching_ms"), DEFAULT_NETWORK_CACHING_MS
        ),
        log_level=_str_or_default(data.get("log_level"), "INFO"),
        last_source_uri=last_source
        if isinstance(last_source, str) and last_source.strip()
        else None,
    )


def load_config_with_notice(path: Path) -> tuple[TelemetryConfig, str | None]:
    """Load config and return an optional user-facing notice."""
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.info("Config file missing at %s; using defaults.", path)
        return TelemetryConfig(), None
    except OSError as exc:
        logger.warning("Failed to read config file %s: %s; using defaults.", path, exc)
        return (
            TelemetryConfig(),
            "Settings were reset to defaults.\n"
            "Likely cause: config file is unreadable due to permissions or IO issues.\n"
            f"Next step: verify access to '{path}' and restart.",
        )

    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Config file at %s is invalid JSON; using defaults.", path)
        return (
            TelemetryConfig(),
            "Settings were reset to defaults.\n"
            "Likely cause: config file is corrupt or partially written.\n"
            f"Next step: remove or repair '{path}' and restart.",
        )

    if not isinstance(data, dict):
        logger.warning("Config file at %s is not a JSON object; using defaults.", path)
        return (
            TelemetryConfig(),
            "Settings were reset to defaults.\n"
            "Likely cause: config file format is invalid for this version.\n"
            f"Next step: remove '{path}' and restart.",
        )

    return _coerce_config(data), None


def load_config(path: Path) -> TelemetryConfig:
    """Load the runtime config from disk, falling back to defaults."""
    config, _notice = load_config_with_notice(path)
    return config


def save_config(path: Path, config: TelemetryConfig) -> None:
    """Persist config atomically to disk via write-then-replace."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f"{path.name}.{uuid4().hex}.tmp")
    payload = json.dumps(asdict(config), indent=2, sort_keys=True)
    try:
        tmp_path.write_text(payload, encoding="utf-8")
        tmp_path.replace(path)
    finally:
        with suppress(OSError):
            tmp_path.unlink()
