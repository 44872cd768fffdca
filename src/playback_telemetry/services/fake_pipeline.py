"""Simulated progressive-download pipeline for deterministic testing."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from contextlib import suppress
from dataclasses import dataclass, field

from playback_telemetry.errors import SourceUnavailable

from .buffer_metrics import LoadedRange
from .media_pipeline import (
    BufferEmptyChanged,
    BufferFullChanged,
    DurationChanged,
    ItemStatusChanged,
    LikelyToKeepUpChanged,
    LoadedRangesChanged,
    PipelineEvent,
    PipelineEventHandler,
    SubscriberSet,
    Subscription,
    WaitingReasonChanged,
)


@dataclass
class _SimulationState:
    playing: bool = False
    position_s: float = 0.0
    bytes_transferred: int = 0
    # Closed-open [start, end) spans, kept sorted and non-overlapping.
    spans: list[list[float]] = field(default_factory=list)


@dataclass
class _EmittedSignals:
    ranges: tuple[LoadedRange, ...] | None = None
    is_empty: bool | None = None
    is_full: bool | None = None
    likely_to_keep_up: bool | None = None
    waiting_reason: str | None = None
    announced: bool = False


class FakeMediaSession:
    """In-memory session that simulates buffering and playback progress."""

    def __init__(
        self,
        *,
        source_uri: str,
        tick_interval_s: float,
        download_rate: float,
        bitrate_bps: int,
        duration_s: float | None,
        keep_up_threshold_s: float,
        max_buffer_s: float,
    ) -> None:
        self.source_uri = source_uri
        self._tick_interval_s = tick_interval_s
        self._download_rate = download_rate
        self._bitrate_bps = bitrate_bps
        self._duration_s = duration_s
        self._keep_up_threshold_s = keep_up_threshold_s
        self._max_buffer_s = max_buffer_s
        self._state = _SimulationState()
        self._emitted = _EmittedSignals()
        self._subscribers = SubscriberSet()
        self._lock = asyncio.Lock()
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self.closed = False
        self.seeks: list[tuple[float, bool]] = []

    def subscribe(self, handler: PipelineEventHandler) -> Subscription:
        return self._subscribers.subscribe(handler)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def start(self) -> None:
        if self._task is not None:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._ticker_loop())

    async def play(self) -> None:
        async with self._lock:
            self._state.playing = True

    async def pause(self) -> None:
        async with self._lock:
            self._state.playing = False

    async def seek(self, position_s: float, *, exact: bool = True) -> None:
        async with self._lock:
            target = max(0.0, float(position_s))
            if self._duration_s is not None:
                target = min(target, self._duration_s)
            self._state.position_s = target
            self.seeks.append((target, exact))

    async def get_position(self) -> float:
        async with self._lock:
            return self._state.position_s

    async def get_bytes_transferred(self) -> int:
        async with self._lock:
            return self._state.bytes_transferred

    async def close(self) -> None:
        if self._task is not None:
            self._stop_event.set()
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        self._subscribers.clear()
        self.closed = True

    async def _ticker_loop(self) -> None:
        try:
            while not self._stop_event.is_set():
                await asyncio.sleep(self._tick_interval_s)
                await self.tick()
        except asyncio.CancelledError:
            pass

    async def tick(self, elapsed_s: float | None = None) -> None:
        """Advance the simulation by one step and emit changed signals."""
        step = self._tick_interval_s if elapsed_s is None else max(0.0, elapsed_s)
        async with self._lock:
            self._advance_download(step)
            self._advance_playback(step)
            events = self._collect_changes()
        for event in events:
            await self._subscribers.dispatch(event)

    def _advance_download(self, step: float) -> None:
        state = self._state
        span = self._span_at(state.position_s)
        if span is None:
            span = [state.position_s, state.position_s]
            state.spans.append(span)
            state.spans.sort()
        ahead = span[1] - state.position_s
        room = self._max_buffer_s - ahead
        if self._duration_s is not None:
            room = min(room, self._duration_s - span[1])
        chunk = min(self._download_rate * step, room)
        if chunk <= 0:
            return
        span[1] += chunk
        state.bytes_transferred += int(chunk * self._bitrate_bps / 8)
        self._merge_spans()

    def _advance_playback(self, step: float) -> None:
        state = self._state
        if not state.playing:
            return
        span = self._span_at(state.position_s)
        available_end = span[1] if span is not None else state.position_s
        state.position_s = min(state.position_s + step, available_end)
        if self._duration_s is not None and state.position_s >= self._duration_s:
            state.position_s = self._duration_s
            state.playing = False

    def _collect_changes(self) -> list[PipelineEvent]:
        state = self._state
        emitted = self._emitted
        events: list[PipelineEvent] = []
        if not emitted.announced:
            emitted.announced = True
            events.append(DurationChanged(self._duration_s))
            events.append(ItemStatusChanged("ready"))
        ranges = tuple(
            LoadedRange(start_s=start, duration_s=end - start)
            for start, end in state.spans
            if end > start
        )
        if ranges != emitted.ranges:
            emitted.ranges = ranges
            events.append(LoadedRangesChanged(ranges))

        span = self._span_at(state.position_s)
        ahead = (span[1] - state.position_s) if span is not None else 0.0
        complete = (
            self._duration_s is not None
            and span is not None
            and span[1] >= self._duration_s
        )
        is_empty = ahead <= 0 and not complete
        is_full = complete or ahead >= self._max_buffer_s
        likely = complete or ahead >= self._keep_up_threshold_s
        if is_empty != emitted.is_empty:
            emitted.is_empty = is_empty
            events.append(BufferEmptyChanged(is_empty))
        if is_full != emitted.is_full:
            emitted.is_full = is_full
            events.append(BufferFullChanged(is_full))
        if likely != emitted.likely_to_keep_up:
            emitted.likely_to_keep_up = likely
            events.append(LikelyToKeepUpChanged(likely))
        waiting = "buffering" if state.playing and not likely else None
        if waiting != emitted.waiting_reason:
            emitted.waiting_reason = waiting
            events.append(WaitingReasonChanged(waiting))
        return events

    def _span_at(self, position_s: float) -> list[float] | None:
        for span in self._state.spans:
            if span[0] <= position_s <= span[1]:
                return span
        return None

    def _merge_spans(self) -> None:
        merged: list[list[float]] = []
        for span in sorted(self._state.spans):
            if merged and span[0] <= merged[-1][1]:
                merged[-1][1] = max(merged[-1][1], span[1])
            else:
                merged.append(span)
        self._state.spans = merged


class FakeMediaPipeline:
    """Pipeline factory producing simulated sessions."""

    def __init__(
        self,
        *,
        tick_interval_s: float = 0.25,
        download_rate: float = 4.0,
        bitrate_bps: int = 128_000,
        duration_s: float | None = 3600.0,
        keep_up_threshold_s: float = 5.0,
        max_buffer_s: float = 60.0,
        unavailable_uris: Iterable[str] = (),
        autostart: bool = True,
    ) -> None:
        if tick_interval_s <= 0:
            raise ValueError("tick_interval_s must be > 0")
        self._tick_interval_s = tick_interval_s
        self._download_rate = max(0.0, download_rate)
        self._bitrate_bps = max(0, bitrate_bps)
        self._duration_s = duration_s
        self._keep_up_threshold_s = max(0.0, keep_up_threshold_s)
        self._max_buffer_s = max(self._keep_up_threshold_s, max_buffer_s)
        self._unavailable = frozenset(unavailable_uris)
        self._autostart = autostart
        self.sessions: list[FakeMediaSession] = []

    async def open(self, source_uri: str) -> FakeMediaSession:
        if source_uri in self._unavailable:
            raise SourceUnavailable(source_uri, "simulated source is unreachable")
        session = FakeMediaSession(
            source_uri=source_uri,
            tick_interval_s=self._tick_interval_s,
            download_rate=self._download_rate,
            bitrate_bps=self._bitrate_bps,
            duration_s=self._duration_s,
            keep_up_threshold_s=self._keep_up_threshold_s,
            max_buffer_s=self._max_buffer_s,
        )
        self.sessions.append(session)
        if self._autostart:
            await session.start()
        return session
