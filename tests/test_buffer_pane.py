"""Tests for buffer pane rendering."""

from __future__ import annotations

import asyncio

from textual.app import App, ComposeResult

from playback_telemetry.services.telemetry_service import PlaybackSnapshot
from playback_telemetry.ui.buffer_pane import (
    PROGRESS_BAR_WIDTH,
    BufferPane,
    metrics_text,
    progress_bar_text,
    state_label,
)


def test_progress_bar_fill_and_clamp() -> None:
    assert progress_bar_text(0.0, width=10) == "░" * 10
    assert progress_bar_text(0.5, width=10) == "█" * 5 + "░" * 5
    assert progress_bar_text(1.7, width=10) == "█" * 10
    assert progress_bar_text(float("nan"), width=4) == "░" * 4
    assert len(progress_bar_text(0.33)) == PROGRESS_BAR_WIDTH


def test_state_labels() -> None:
    assert state_label("buffering")[0] == "Buffering..."
    assert state_label("buffered")[0] == "Buffered"
    assert state_label("stalled")[0] == "Connection stalled"
    assert state_label("idle") == ("", "")


def test_metrics_text() -> None:
    snapshot = PlaybackSnapshot(
        buffered_ahead_s=16.0, buffering_progress=0.5333, bytes_received=2_048_000
    )

    assert metrics_text(snapshot) == "Buffer: 53%  16.0s buffered  2.0 MB received"


def test_pane_renders_snapshot_and_notice() -> None:
    pane = BufferPane()

    class PaneApp(App):
        def compose(self) -> ComposeResult:
            yield pane

    app = PaneApp()

    async def run_app() -> None:
        async with app.run_test():
            await asyncio.sleep(0)
            pane.set_notice("Settings were reset to defaults.\nLikely cause: x")
            pane.update_snapshot(
                PlaybackSnapshot(
                    status="failed",
                    current_position_s=30.0,
                    total_duration_s=7200.0,
                    error="Media pipeline reported a playback failure.\nDetails: y",
                )
            )
            assert pane.snapshot is not None
            assert pane.status_text == (
                "Notice: Settings were reset to defaults. | Status: failed | "
                "Error: Media pipeline reported a playback failure."
            )

            pane.set_notice(None)
            assert pane.status_text.startswith("Status: failed")
            app.exit()

    asyncio.run(run_app())
