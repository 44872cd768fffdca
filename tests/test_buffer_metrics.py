"""Tests for buffered-ahead and progress derivation."""

from __future__ import annotations

import math

import pytest

from playback_telemetry.services.buffer_metrics import (
    DEFAULT_LOOKAHEAD_TARGET_S,
    BufferMetrics,
    LoadedRange,
    compute_buffer_metrics,
    normalize_duration,
    normalize_lookahead_target,
)


def test_single_range_with_known_duration() -> None:
    metrics = compute_buffer_metrics([LoadedRange(0.0, 10.0)], 5.0, 20.0)

    assert metrics.buffered_ahead_s == pytest.approx(5.0)
    assert metrics.progress == pytest.approx(0.5)


def test_unknown_duration_uses_lookahead_target() -> None:
    ranges = [LoadedRange(0.0, 5.0), LoadedRange(8.0, 10.0)]

    metrics = compute_buffer_metrics(ranges, 2.0, None)

    assert metrics.buffered_ahead_s == pytest.approx(16.0)
    assert metrics.progress == pytest.approx(16.0 / 30.0)


def test_lookahead_target_override() -> None:
    metrics = compute_buffer_metrics(
        [LoadedRange(0.0, 10.0)], 0.0, None, lookahead_target_s=20.0
    )

    assert metrics.progress == pytest.approx(0.5)


def test_lookahead_saturates_at_one() -> None:
    metrics = compute_buffer_metrics([LoadedRange(0.0, 90.0)], 0.0, None)

    assert metrics.buffered_ahead_s == pytest.approx(90.0)
    assert metrics.progress == 1.0


def test_empty_ranges_yield_zero_metrics() -> None:
    assert compute_buffer_metrics([], 0.0, 100.0) == BufferMetrics(0.0, 0.0)
    assert compute_buffer_metrics([], 42.0, None) == BufferMetrics(0.0, 0.0)


@pytest.mark.parametrize("position", [10.0, 15.0, 500.0])
def test_ranges_behind_play_head_yield_zero(position: float) -> None:
    ranges = [LoadedRange(0.0, 4.0), LoadedRange(5.0, 5.0)]

    metrics = compute_buffer_metrics(ranges, position, 100.0)

    assert metrics.buffered_ahead_s == 0.0
    assert metrics.progress == 0.0


def test_frontier_is_furthest_end_past_play_head() -> None:
    ranges = [LoadedRange(50.0, 10.0), LoadedRange(0.0, 20.0)]

    metrics = compute_buffer_metrics(ranges, 10.0, 120.0)

    assert metrics.buffered_ahead_s == pytest.approx(50.0)
    assert metrics.progress == pytest.approx(0.5)


@pytest.mark.parametrize("duration", [math.nan, math.inf, -math.inf, -5.0, 0.0])
def test_unusable_duration_is_treated_as_unknown(duration: float) -> None:
    metrics = compute_buffer_metrics([LoadedRange(0.0, 15.0)], 0.0, duration)

    assert metrics.progress == pytest.approx(0.5)
    assert 0.0 <= metrics.progress <= 1.0


def test_progress_is_clamped_when_frontier_passes_duration() -> None:
    metrics = compute_buffer_metrics([LoadedRange(0.0, 30.0)], 0.0, 20.0)

    assert metrics.progress == 1.0


def test_non_finite_range_end_is_ignored() -> None:
    ranges = [LoadedRange(0.0, math.inf), LoadedRange(0.0, 8.0)]

    metrics = compute_buffer_metrics(ranges, 2.0, 16.0)

    assert metrics.buffered_ahead_s == pytest.approx(6.0)
    assert metrics.progress == pytest.approx(0.5)


def test_non_finite_position_counts_from_zero() -> None:
    metrics = compute_buffer_metrics([LoadedRange(0.0, 10.0)], math.nan, 20.0)

    assert metrics.buffered_ahead_s == pytest.approx(10.0)


def test_normalize_duration() -> None:
    assert normalize_duration(None) is None
    assert normalize_duration(math.nan) is None
    assert normalize_duration(math.inf) is None
    assert normalize_duration(-1.0) is None
    assert normalize_duration(True) is None
    assert normalize_duration(12) == 12.0


def test_normalize_lookahead_target() -> None:
    assert normalize_lookahead_target(None) == DEFAULT_LOOKAHEAD_TARGET_S
    assert normalize_lookahead_target(0.0) == DEFAULT_LOOKAHEAD_TARGET_S
    assert normalize_lookahead_target(math.nan) == DEFAULT_LOOKAHEAD_TARGET_S
    assert normalize_lookahead_target(45.0) == 45.0


def test_loaded_range_end() -> None:
    assert LoadedRange(8.0, 10.0).end_s == 18.0
