"""Tests for runtime config persistence."""

from __future__ import annotations

from pathlib import Path

import pytest

from playback_telemetry.config_store import (
    TelemetryConfig,
    load_config,
    load_config_with_notice,
    save_config,
)


def test_config_roundtrip(tmp_path) -> None:
    path = tmp_path / "nested" / "config.json"
    config = TelemetryConfig(
        pipeline="vlc",
        sample_interval_s=0.25,
        lookahead_target_s=45.0,
        network_caching_ms=3000,
        log_level="DEBUG",
        last_source_uri="https://media.example.com/a.mp3",
    )

    save_config(path, config)

    assert load_config(path) == config
    assert list(path.parent.glob("*.tmp")) == []


def test_missing_config_defaults_without_notice(tmp_path) -> None:
    config, notice = load_config_with_notice(tmp_path / "absent.json")

    assert config == TelemetryConfig()
    assert notice is None


def test_corrupt_json_defaults_with_notice(tmp_path, caplog) -> None:
    path = tmp_path / "config.json"
    path.write_text("{bad json", encoding="utf-8")

    config, notice = load_config_with_notice(path)

    assert config == TelemetryConfig()
    assert notice is not None and "corrupt" in notice
    assert any("invalid JSON" in record.message for record in caplog.records)


def test_non_object_json_defaults_with_notice(tmp_path) -> None:
    path = tmp_path / "config.json"
    path.write_text("[1, 2, 3]", encoding="utf-8")

    config, notice = load_config_with_notice(path)

    assert config == TelemetryConfig()
    assert notice is not None and "format is invalid" in notice


def test_mistyped_values_fall_back_per_field(tmp_path) -> None:
    path = tmp_path / "config.json"
    path.write_text(
        '{"pipeline": 7, "sample_interval_s": "fast", "lookahead_target_s": -3,'
        ' "network_caching_ms": true, "log_level": "  ", "last_source_uri": "",'
        ' "unknown_key": 1}',
        encoding="utf-8",
    )

    assert load_config(path) == TelemetryConfig()


def test_partial_config_keeps_valid_fields(tmp_path) -> None:
    path = tmp_path / "config.json"
    path.write_text('{"pipeline": "vlc", "sample_interval_s": 2}', encoding="utf-8")

    config = load_config(path)

    assert config.pipeline == "vlc"
    assert config.sample_interval_s == 2.0
    assert config.lookahead_target_s == TelemetryConfig().lookahead_target_s


def test_save_replace_failure_keeps_previous_file(tmp_path, monkeypatch) -> None:
    path = tmp_path / "config.json"
    original = TelemetryConfig(pipeline="fake")
    save_config(path, original)

    def fail_replace(self: Path, target: Path) -> None:
        del target
        raise OSError("replace failed")

    monkeypatch.setattr(Path, "replace", fail_replace)

    with pytest.raises(OSError):
        save_config(path, TelemetryConfig(pipeline="vlc"))

    monkeypatch.undo()
    assert load_config(path) == original
    assert list(tmp_path.glob("*.tmp")) == []
