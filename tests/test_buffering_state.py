"""Tests for discrete buffering state derivation."""

from __future__ import annotations

import itertools

import pytest

from playback_telemetry.services.buffering_state import (
    BUFFERING_STATES,
    derive_buffering_state,
)

FLAGS = (False, True)


def test_empty_buffer_dominates_all_other_flags() -> None:
    for is_full, likely, playing in itertools.product(FLAGS, repeat=3):
        assert derive_buffering_state(True, is_full, likely, playing) == "buffering"


def test_empty_dominates_keep_up_while_playing() -> None:
    assert derive_buffering_state(True, False, True, True) == "buffering"


@pytest.mark.parametrize("is_full", FLAGS)
def test_playing_without_keep_up_is_stalled(is_full: bool) -> None:
    assert derive_buffering_state(False, is_full, False, True) == "stalled"


@pytest.mark.parametrize(("is_full", "playing"), list(itertools.product(FLAGS, FLAGS)))
def test_keep_up_is_buffered(is_full: bool, playing: bool) -> None:
    assert derive_buffering_state(False, is_full, True, playing) == "buffered"


@pytest.mark.parametrize("is_full", FLAGS)
def test_paused_without_keep_up_is_idle(is_full: bool) -> None:
    assert derive_buffering_state(False, is_full, False, False) == "idle"


def test_full_flag_never_changes_the_result() -> None:
    for is_empty, likely, playing in itertools.product(FLAGS, repeat=3):
        assert derive_buffering_state(
            is_empty, False, likely, playing
        ) == derive_buffering_state(is_empty, True, likely, playing)


def test_every_combination_maps_to_a_known_state() -> None:
    results = {
        derive_buffering_state(*flags) for flags in itertools.product(FLAGS, repeat=4)
    }

    assert results == set(BUFFERING_STATES)
