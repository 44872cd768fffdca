"""libVLC media pipeline using python-vlc.

libVLC has no loaded-range API. Buffering is reported as a cache fill
percentage through `MediaPlayerBuffering` events, so this adapter maps that
percentage onto the shared flag set and estimates a single loaded range of
`network_caching_ms * fill` ahead of the play head.
"""

from __future__ import annotations

import asyncio
import queue
import threading
from collections.abc import Coroutine
from dataclasses import dataclass
from typing import Any, cast

from .buffer_metrics import LoadedRange
from .media_pipeline import (
    BufferEmptyChanged,
    BufferFullChanged,
    DurationChanged,
    ItemStatus,
    ItemStatusChanged,
    LikelyToKeepUpChanged,
    LoadedRangesChanged,
    PipelineEvent,
    PipelineEventHandler,
    SubscriberSet,
    Subscription,
    WaitingReasonChanged,
)

DEFAULT_NETWORK_CACHING_MS = 1000


@dataclass
class _Command:
    name: str
    args: tuple[Any, ...]
    future: asyncio.Future[Any] | None


@dataclass(frozen=True)
class EngineSample:
    """Raw libVLC readings taken on the engine thread."""

    state_name: str
    time_ms: int
    length_ms: int
    cache_percent: float


@dataclass(frozen=True)
class BufferSignals:
    """Shared pipeline signal values derived from one engine sample."""

    ranges: tuple[LoadedRange, ...]
    is_empty: bool
    is_full: bool
    likely_to_keep_up: bool
    duration_s: float | None
    item_status: ItemStatus
    waiting_reason: str | None


def map_engine_sample(
    sample: EngineSample, *, network_caching_ms: int
) -> BufferSignals:
    """Translate one libVLC reading into pipeline signal values."""
    cache = max(0.0, min(100.0, sample.cache_percent))
    position_s = max(0, sample.time_ms) / 1000
    ahead_s = round(network_caching_ms / 1000 * cache / 100, 1)
    ranges: tuple[LoadedRange, ...] = ()
    if ahead_s > 0:
        ranges = (LoadedRange(start_s=round(position_s, 1), duration_s=ahead_s),)
    filled = cache >= 100.0
    item_status: ItemStatus = "unknown"
    if sample.state_name == "error":
        item_status = "failed"
    elif sample.state_name in {"playing", "paused"}:
        item_status = "ready"
    waiting: str | None = None
    if sample.state_name in {"opening", "buffering"}:
        waiting = sample.state_name
    return BufferSignals(
        ranges=ranges,
        is_empty=cache <= 0.0,
        is_full=filled,
        likely_to_keep_up=filled,
        duration_s=sample.length_ms / 1000 if sample.length_ms > 0 else None,
        item_status=item_status,
        waiting_reason=waiting,
    )


def diff_signals(
    previous: BufferSignals | None, current: BufferSignals
) -> list[PipelineEvent]:
    """Return the events needed to move subscribers from `previous` to `current`."""
    events: list[PipelineEvent] = []
    if previous is None or previous.duration_s != current.duration_s:
        events.append(DurationChanged(current.duration_s))
    if previous is None or previous.ranges != current.ranges:
        events.append(LoadedRangesChanged(current.ranges))
    if previous is None or previous.is_empty != current.is_empty:
        events.append(BufferEmptyChanged(current.is_empty))
    if previous is None or previous.is_full != current.is_full:
        events.append(BufferFullChanged(current.is_full))
    if previous is None or previous.likely_to_keep_up != current.likely_to_keep_up:
        events.append(LikelyToKeepUpChanged(current.likely_to_keep_up))
    if current.item_status != "unknown" and (
        previous is None or previous.item_status != current.item_status
    ):
        message = None
        if current.item_status == "failed":
            message = "libVLC reported a playback error"
        events.append(ItemStatusChanged(current.item_status, message=message))
    if previous is None or previous.waiting_reason != current.waiting_reason:
        events.append(WaitingReasonChanged(current.waiting_reason))
    return events


class VLCMediaSession:
    """Media session backed by a dedicated VLC thread."""

    def __init__(
        self,
        source_uri: str,
        *,
        network_caching_ms: int = DEFAULT_NETWORK_CACHING_MS,
        poll_interval_ms: int = 200,
    ) -> None:
        self._source_uri = source_uri
        self._network_caching_ms = max(0, int(network_caching_ms))
        self._poll_interval = poll_interval_ms / 1000
        self._subscribers = SubscriberSet()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._queue: queue.Queue[_Command] = queue.Queue()
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()
        self._vlc: Any = None
        self._cache_percent = 0.0

    def subscribe(self, handler: PipelineEventHandler) -> Subscription:
        return self._subscribers.subscribe(handler)

    async def start(self) -> None:
        if self._thread is not None:
            return
        self._loop = asyncio.get_running_loop()
        ready_future: asyncio.Future[None] = self._loop.create_future()
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._thread_main,
            args=(ready_future,),
            name="VLCPipelineThread",
            daemon=True,
        )
        self._thread.start()
        try:
            await ready_future
        except Exception:
            self._thread = None
            raise

    async def close(self) -> None:
        if self._thread is None:
            return
        self._stop_event.set()
        self._queue.put(_Command("wake", (), None))
        self._thread.join(timeout=2.0)
        self._subscribers.clear()
        if self._thread.is_alive():
            raise RuntimeError("VLC pipeline thread did not stop within 2.0 seconds.")
        self._thread = None

    async def play(self) -> None:
        await self._submit("play")

    async def pause(self) -> None:
        await self._submit("pause")

    async def seek(self, position_s: float, *, exact: bool = True) -> None:
        # libVLC set_time is already an exact seek.
        del exact
        await self._submit("seek", position_s)

    async def get_position(self) -> float:
        return float(await self._submit("get_position"))

    async def get_bytes_transferred(self) -> int:
        return int(await self._submit("get_bytes_transferred"))

    async def _submit(self, name: str, *args: Any) -> Any:
        if self._loop is None or self._thread is None:
            raise RuntimeError("VLC pipeline session not started.")
        future: asyncio.Future[Any] = self._loop.create_future()
        self._queue.put(_Command(name, args, future))
        return await future

    def _thread_main(self, ready_future: asyncio.Future[None]) -> None:
        try:
            import vlc

            self._vlc = vlc
            instance = vlc.Instance(f"--network-caching={self._network_caching_ms}")
            player = instance.media_player_new()
            media = instance.media_new(self._source_uri)
            player.set_media(media)
            player.event_manager().event_attach(
                vlc.EventType.MediaPlayerBuffering, self._on_buffering
            )
        except Exception:  # pragma: no cover - depends on VLC install
            self._notify_future_exception(
                ready_future,
                RuntimeError(
                    "VLC pipeline unavailable. Ensure VLC/libVLC is installed."
                ),
            )
            return

        self._notify_future_result(ready_future, None)
        last_signals: BufferSignals | None = None

        while not self._stop_event.is_set():
            try:
                cmd = self._queue.get(timeout=self._poll_interval)
            except queue.Empty:
                cmd = None

            if cmd is not None and cmd.name != "wake":
                try:
                    result = self._handle_command(cmd, player, media)
                    self._notify_future_result(cmd.future, result)
                except Exception as exc:  # pragma: no cover - pipeline safety net
                    self._notify_future_exception(cmd.future, exc)

            signals = map_engine_sample(
                self._sample_engine(player),
                network_caching_ms=self._network_caching_ms,
            )
            for event in diff_signals(last_signals, signals):
                self._emit_event(event)
            last_signals = signals

        self._drain_pending()
        player.stop()
        player.release()
        media.release()

    def _drain_pending(self) -> None:
        """Fail commands still queued when the thread stops."""
        while True:
            try:
                cmd = self._queue.get_nowait()
            except queue.Empty:
                return
            self._notify_future_exception(
                cmd.future, RuntimeError("VLC pipeline session closed.")
            )

    def _on_buffering(self, event: Any) -> None:
        self._cache_percent = float(event.u.new_cache)

    def _sample_engine(self, player: Any) -> EngineSample:
        return EngineSample(
            state_name=_state_name(player),
            time_ms=max(player.get_time(), 0),
            length_ms=max(player.get_length(), 0),
            cache_percent=self._cache_percent,
        )

    def _handle_command(self, cmd: _Command, player: Any, media: Any) -> Any:
        name = cmd.name
        if name == "play":
            player.play()
            return None
        if name == "pause":
            player.set_pause(1)
            return None
        if name == "seek":
            (position_s,) = cmd.args
            player.set_time(int(max(0.0, float(position_s)) * 1000))
            return None
        if name == "get_position":
            return max(player.get_time(), 0) / 1000
        if name == "get_bytes_transferred":
            return self._read_bytes(media)
        raise ValueError(f"Unknown command {name}")

    def _read_bytes(self, media: Any) -> int:
        if self._vlc is None:
            return 0
        stats = self._vlc.MediaStats()
        try:
            available = media.get_stats(stats)
        except Exception:
            return 0
        if not available:
            return 0
        return max(0, int(getattr(stats, "read_bytes", 0)))

    def _emit_event(self, event: PipelineEvent) -> None:
        if self._loop is None:
            return
        coro = self._subscribers.dispatch(event)
        asyncio.run_coroutine_threadsafe(
            cast(Coroutine[Any, Any, None], coro), self._loop
        )

    def _notify_future_result(
        self, future: asyncio.Future[Any] | None, value: Any
    ) -> None:
        if future is None or self._loop is None:
            return
        self._loop.call_soon_threadsafe(self._resolve_future_result, future, value)

    def _notify_future_exception(
        self, future: asyncio.Future[Any] | None, exc: Exception
    ) -> None:
        if future is None or self._loop is None:
            return
        self._loop.call_soon_threadsafe(self._resolve_future_exception, future, exc)

    @staticmethod
    def _resolve_future_result(future: asyncio.Future[Any], value: Any) -> None:
        if not future.done():
            future.set_result(value)

    @staticmethod
    def _resolve_future_exception(
        future: asyncio.Future[Any], exc: Exception
    ) -> None:
        if not future.done():
            future.set_exception(exc)


class VLCMediaPipeline:
    """Pipeline factory opening one libVLC player per session."""

    def __init__(
        self,
        *,
        network_caching_ms: int = DEFAULT_NETWORK_CACHING_MS,
        poll_interval_ms: int = 200,
    ) -> None:
        self._network_caching_ms = network_caching_ms
        self._poll_interval_ms = poll_interval_ms

    async def open(self, source_uri: str) -> VLCMediaSession:
        session = VLCMediaSession(
            source_uri,
            network_caching_ms=self._network_caching_ms,
            poll_interval_ms=self._poll_interval_ms,
        )
        await session.start()
        return session


def _state_name(player: Any) -> str:
    try:
        state = player.get_state()
    except Exception:
        return "error"
    name = getattr(state, "name", None) or str(state).rsplit(".", 1)[-1]
    name = name.lower()
    if name in {"nothingspecial", "nothing_special"}:
        return "idle"
    return name
