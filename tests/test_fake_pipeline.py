"""Tests for the simulated progressive-download pipeline."""

from __future__ import annotations

import asyncio

import pytest

from playback_telemetry.errors import SourceUnavailable
from playback_telemetry.services.buffer_metrics import LoadedRange
from playback_telemetry.services.fake_pipeline import FakeMediaPipeline
from playback_telemetry.services.media_pipeline import (
    BufferEmptyChanged,
    BufferFullChanged,
    DurationChanged,
    ItemStatusChanged,
    LikelyToKeepUpChanged,
    LoadedRangesChanged,
    PipelineEvent,
    WaitingReasonChanged,
)
from playback_telemetry.services.telemetry_service import PlaybackTelemetryService

URI = "https://media.example.com/live/feed.aac"


def _run(coro):
    return asyncio.run(coro)


async def _open_manual(**kwargs):
    kwargs.setdefault("autostart", False)
    pipeline = FakeMediaPipeline(**kwargs)
    session = await pipeline.open(URI)
    events: list[PipelineEvent] = []

    async def handler(event: PipelineEvent) -> None:
        events.append(event)

    subscription = session.subscribe(handler)
    return session, events, subscription


def test_first_tick_announces_item_and_initial_buffer() -> None:
    async def run() -> None:
        session, events, _ = await _open_manual(download_rate=4.0)

        await session.tick(1.0)

        assert events == [
            DurationChanged(3600.0),
            ItemStatusChanged("ready"),
            LoadedRangesChanged((LoadedRange(0.0, 4.0),)),
            BufferEmptyChanged(False),
            BufferFullChanged(False),
            LikelyToKeepUpChanged(False),
        ]
        assert await session.get_bytes_transferred() == 64_000
        await session.close()

    _run(run())


def test_only_changed_signals_are_emitted() -> None:
    async def run() -> None:
        session, events, _ = await _open_manual(download_rate=4.0)
        await session.tick(1.0)
        events.clear()

        await session.tick(1.0)

        assert events == [
            LoadedRangesChanged((LoadedRange(0.0, 8.0),)),
            LikelyToKeepUpChanged(True),
        ]
        await session.close()

    _run(run())


def test_playback_consumes_buffer_and_seek_past_it_empties() -> None:
    async def run() -> None:
        session, events, _ = await _open_manual(download_rate=4.0)
        await session.tick(2.0)
        await session.play()
        await session.tick(2.0)
        assert await session.get_position() == pytest.approx(2.0)

        events.clear()
        await session.seek(100.0)
        await session.tick(0.0)

        assert BufferEmptyChanged(True) in events
        assert LikelyToKeepUpChanged(False) in events
        assert WaitingReasonChanged("buffering") in events
        assert session.seeks == [(100.0, True)]
        await session.close()

    _run(run())


def test_playback_never_passes_downloaded_data() -> None:
    async def run() -> None:
        session, _, _ = await _open_manual(download_rate=1.0)
        await session.play()

        await session.tick(3.0)

        # Download runs first within a tick, so playback can reach its end.
        assert await session.get_position() == pytest.approx(3.0)
        await session.tick(0.0)
        assert await session.get_position() == pytest.approx(3.0)
        await session.close()

    _run(run())


def test_fully_downloaded_item_reports_full_and_keep_up() -> None:
    async def run() -> None:
        session, events, _ = await _open_manual(duration_s=10.0, download_rate=100.0)

        await session.tick(1.0)

        assert LoadedRangesChanged((LoadedRange(0.0, 10.0),)) in events
        assert BufferFullChanged(True) in events
        assert LikelyToKeepUpChanged(True) in events
        await session.close()

    _run(run())


def test_unknown_duration_is_announced() -> None:
    async def run() -> None:
        session, events, _ = await _open_manual(duration_s=None)

        await session.tick(1.0)

        assert events[0] == DurationChanged(None)
        await session.close()

    _run(run())


def test_seek_is_clamped_to_item_bounds() -> None:
    async def run() -> None:
        session, _, _ = await _open_manual(duration_s=60.0)

        await session.seek(-5.0)
        await session.seek(90.0, exact=False)

        assert session.seeks == [(0.0, True), (60.0, False)]
        await session.close()

    _run(run())


def test_unsubscribed_handler_receives_nothing() -> None:
    async def run() -> None:
        session, events, subscription = await _open_manual()
        assert session.subscriber_count == 1

        subscription.close()
        subscription.close()
        await session.tick(1.0)

        assert events == []
        assert subscription.active is False
        assert session.subscriber_count == 0
        await session.close()

    _run(run())


def test_close_clears_subscribers() -> None:
    async def run() -> None:
        session, _, _ = await _open_manual()

        await session.close()

        assert session.closed is True
        assert session.subscriber_count == 0

    _run(run())


def test_unavailable_uri_is_rejected() -> None:
    async def run() -> None:
        pipeline = FakeMediaPipeline(unavailable_uris=[URI])
        with pytest.raises(SourceUnavailable):
            await pipeline.open(URI)
        assert pipeline.sessions == []

    _run(run())


def test_invalid_tick_interval_is_rejected() -> None:
    with pytest.raises(ValueError):
        FakeMediaPipeline(tick_interval_s=0)


def test_ticker_drives_service_to_buffered() -> None:
    async def run() -> None:
        events: list[object] = []

        async def emit_event(event: object) -> None:
            events.append(event)

        pipeline = FakeMediaPipeline(tick_interval_s=0.02, download_rate=50.0)
        service = PlaybackTelemetryService(
            emit_event=emit_event, pipeline=pipeline, sample_interval_s=0.05
        )
        await service.initialize(URI)

        await asyncio.sleep(0.3)

        snapshot = service.snapshot
        assert snapshot.total_duration_s == pytest.approx(3600.0)
        assert snapshot.buffering_state == "buffered"
        assert snapshot.buffered_ahead_s >= 5.0
        assert snapshot.bytes_received > 0
        await service.shutdown()
        assert pipeline.sessions[0].closed is True

    _run(run())
