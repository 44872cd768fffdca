"""Telemetry orchestration between a media pipeline and UI consumers.

`PlaybackTelemetryService` is the single owner of the live session. It folds
asynchronous pipeline signals into one `BufferInputs` record, re-derives the
published `PlaybackSnapshot` from scratch after every change, samples position
and transferred bytes on a fixed cadence, and exposes the transport commands
that mutate playback intent.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Awaitable
from contextlib import ExitStack, suppress
from dataclasses import dataclass, replace
from functools import partial
from typing import Callable, Literal

from playback_telemetry.errors import SourceUnavailable
from playback_telemetry.events import PipelineDiagnostic, PipelineFault, SnapshotChanged
from playback_telemetry.services.buffer_metrics import (
    DEFAULT_LOOKAHEAD_TARGET_S,
    LoadedRange,
    compute_buffer_metrics,
    normalize_duration,
    normalize_lookahead_target,
)
from playback_telemetry.services.buffering_state import (
    BufferingState,
    derive_buffering_state,
)
from playback_telemetry.services.media_pipeline import (
    BufferEmptyChanged,
    BufferFullChanged,
    DurationChanged,
    ErrorLogEntry,
    FailedToPlayToEnd,
    ItemStatusChanged,
    LikelyToKeepUpChanged,
    LoadedRangesChanged,
    MediaPipeline,
    MediaSession,
    PipelineEvent,
    WaitingReasonChanged,
    validate_source_uri,
)

logger = logging.getLogger(__name__)

FacadeStatus = Literal[
    "uninitialized",
    "initializing",
    "ready",
    "playing",
    "paused",
    "resetting",
    "failed",
]
LIVE_STATUSES: frozenset[str] = frozenset({"ready", "playing", "paused"})
DEFAULT_SAMPLE_INTERVAL_S = 0.5
SAMPLE_INTERVAL_MIN_S = 0.05
SAMPLE_INTERVAL_MAX_S = 5.0


def _format_user_error(
    *, what_failed: str, likely_cause: str, next_step: str, detail: str | None = None
) -> str:
    message = f"{what_failed}\nLikely cause: {likely_cause}\nNext step: {next_step}"
    if detail:
        message = f"{message}\nDetails: {detail}"
    return message


@dataclass(frozen=True)
class PlaybackSnapshot:
    """Immutable telemetry snapshot exposed to the UI."""

    status: FacadeStatus = "uninitialized"
    source_uri: str | None = None
    current_position_s: float = 0.0
    total_duration_s: float | None = None
    is_playing: bool = False
    buffered_ahead_s: float = 0.0
    buffering_progress: float = 0.0
    buffering_state: BufferingState = "idle"
    is_buffered: bool = False
    bytes_received: int = 0
    error: str | None = None


@dataclass(frozen=True)
class BufferInputs:
    """Latest raw buffer signals reported by the pipeline."""

    ranges: tuple[LoadedRange, ...] = ()
    is_empty: bool = False
    is_full: bool = False
    likely_to_keep_up: bool = False
    duration_s: float | None = None


def derive_snapshot(
    snapshot: PlaybackSnapshot,
    inputs: BufferInputs,
    *,
    lookahead_target_s: float = DEFAULT_LOOKAHEAD_TARGET_S,
) -> PlaybackSnapshot:
    """Recompute every derived snapshot field from the inputs.

    Transport fields (`status`, position, `is_playing`, bytes) are taken from
    `snapshot` as-is; metrics and buffering state are rebuilt from scratch so
    repeated calls with the same arguments always agree.
    """
    metrics = compute_buffer_metrics(
        inputs.ranges,
        snapshot.current_position_s,
        inputs.duration_s,
        lookahead_target_s=lookahead_target_s,
    )
    buffering_state = derive_buffering_state(
        inputs.is_empty,
        inputs.is_full,
        inputs.likely_to_keep_up,
        snapshot.is_playing,
    )
    return replace(
        snapshot,
        total_duration_s=inputs.duration_s,
        buffered_ahead_s=metrics.buffered_ahead_s,
        buffering_progress=metrics.progress,
        buffering_state=buffering_state,
        is_buffered=inputs.likely_to_keep_up,
    )


@dataclass
class _Session:
    generation: int
    handle: MediaSession
    subscriptions: ExitStack
    sampler: asyncio.Task[None] | None = None


class PlaybackTelemetryService:
    """Owns the playback session and emits telemetry events to subscribers."""

    def __init__(
        self,
        *,
        emit_event: Callable[[object], Awaitable[None]],
        pipeline: MediaPipeline,
        sample_interval_s: float = DEFAULT_SAMPLE_INTERVAL_S,
        lookahead_target_s: float = DEFAULT_LOOKAHEAD_TARGET_S,
    ) -> None:
        self._emit_event = emit_event
        self._pipeline = pipeline
        self._sample_interval = max(
            SAMPLE_INTERVAL_MIN_S, min(SAMPLE_INTERVAL_MAX_S, float(sample_interval_s))
        )
        self._lookahead_target_s = normalize_lookahead_target(lookahead_target_s)
        self._state = PlaybackSnapshot()
        self._inputs = BufferInputs()
        self._lock = asyncio.Lock()
        self._session: _Session | None = None
        self._generation = 0
        self._source_uri: str | None = None

    @property
    def snapshot(self) -> PlaybackSnapshot:
        return self._state

    @property
    def inputs(self) -> BufferInputs:
        return self._inputs

    @property
    def source_uri(self) -> str | None:
        return self._source_uri

    @property
    def sample_interval_s(self) -> float:
        return self._sample_interval

    @property
    def lookahead_target_s(self) -> float:
        return self._lookahead_target_s

    async def initialize(self, source_uri: str) -> None:
        """Open a session for `source_uri` and start observing its signals.

        Raises `SourceUnavailable` after publishing the `failed` status when
        the URI is malformed or the pipeline cannot open it.
        """
        async with self._lock:
            if self._state.status != "uninitialized":
                raise RuntimeError(
                    "Telemetry session already initialized; use reset() instead."
                )
            self._source_uri = source_uri
            generation = self._begin_session(source_uri)
        await self._open_session(source_uri, generation)

    async def toggle_play_pause(self) -> None:
        async with self._lock:
            session = self._session
            if session is None or self._state.status not in LIVE_STATUSES:
                logger.debug("Ignoring play/pause while %s.", self._state.status)
                return
            playing = not self._state.is_playing
            generation = session.generation
            handle = session.handle
        try:
            if playing:
                await handle.play()
            else:
                await handle.pause()
        except Exception as exc:
            await self._fail_command(
                generation,
                exc,
                what_failed="Failed to start playback."
                if playing
                else "Failed to pause playback.",
            )
            return
        async with self._lock:
            if generation != self._generation:
                return
            self._state = self._derive(
                replace(
                    self._state,
                    is_playing=playing,
                    status="playing" if playing else "paused",
                )
            )
        await self._emit_state()

    async def seek_by(self, offset_s: float) -> float | None:
        """Seek relative to the live play head; returns the issued target.

        Targets below zero clamp to zero. There is no upper clamp: seeking
        past the end is left to the pipeline. Returns None when no seek was
        applied: no live session, a reset superseded it, or the pipeline
        failed the command.
        """
        offset = float(offset_s)
        if not math.isfinite(offset):
            raise ValueError("seek offset must be finite")
        async with self._lock:
            session = self._session
            if session is None or self._state.status not in LIVE_STATUSES:
                logger.debug("Ignoring seek while %s.", self._state.status)
                return None
            generation = session.generation
            handle = session.handle
        try:
            position = await handle.get_position()
        except Exception as exc:
            await self._fail_command(
                generation, exc, what_failed="Failed to read playback position."
            )
            return None
        target = max(0.0, position + offset)
        async with self._lock:
            if generation != self._generation:
                logger.debug("Dropping seek for a torn-down session.")
                return None
        try:
            await handle.seek(target, exact=True)
        except Exception as exc:
            await self._fail_command(generation, exc, what_failed="Failed to seek.")
            return None
        async with self._lock:
            if generation != self._generation:
                return None
            self._state = self._derive(replace(self._state, current_position_s=target))
        await self._emit_state()
        return target

    async def reset(self) -> None:
        """Tear down the session and start a fresh one for the same source."""
        async with self._lock:
            source_uri = self._source_uri
            if source_uri is None:
                raise RuntimeError("reset() requires a prior initialize().")
            self._generation += 1
            session = self._session
            self._session = None
            self._state = replace(self._state, status="resetting")
        logger.info("Resetting telemetry session for %s", source_uri)
        await self._emit_state()
        if session is not None:
            await self._teardown(session)
        async with self._lock:
            self._inputs = BufferInputs()
            self._state = PlaybackSnapshot(status="resetting", source_uri=source_uri)
        await self._emit_state()
        async with self._lock:
            generation = self._begin_session(source_uri)
        await self._open_session(source_uri, generation)

    async def shutdown(self) -> None:
        """Stop sampling and release the session without reopening it."""
        async with self._lock:
            self._generation += 1
            session = self._session
            self._session = None
            self._inputs = BufferInputs()
            self._state = PlaybackSnapshot()
        if session is not None:
            await self._teardown(session)

    async def sample_once(self) -> bool:
        """Sample position and transferred bytes from the live session.

        Returns False when there is no live session to sample.
        """
        async with self._lock:
            session = self._session
            if session is None:
                return False
            generation = session.generation
        return await self._sample(generation)

    def _begin_session(self, source_uri: str) -> int:
        """Claim a new generation in `initializing`; caller holds the lock."""
        self._generation += 1
        self._inputs = BufferInputs()
        self._state = PlaybackSnapshot(status="initializing", source_uri=source_uri)
        return self._generation

    async def _open_session(self, source_uri: str, generation: int) -> None:
        logger.info("Initializing telemetry session for %s", source_uri)
        await self._emit_state()
        try:
            uri = validate_source_uri(source_uri)
            handle = await self._pipeline.open(uri)
        except SourceUnavailable as exc:
            await self._fail_initialization(generation, exc)
            raise
        except Exception as exc:
            error = SourceUnavailable(source_uri, str(exc) or exc.__class__.__name__)
            await self._fail_initialization(generation, error)
            raise error from exc
        stale = False
        async with self._lock:
            if generation != self._generation:
                stale = True
            else:
                subscriptions = ExitStack()
                subscriptions.enter_context(
                    handle.subscribe(partial(self._handle_pipeline_event, generation))
                )
                session = _Session(generation, handle, subscriptions)
                session.sampler = asyncio.create_task(self._sample_loop(generation))
                self._session = session
                self._state = replace(self._state, status="ready")
        if stale:
            logger.debug("Discarding session opened for superseded generation.")
            await self._close_handle(handle)
            return
        logger.info("Telemetry session ready for %s", uri)
        await self._emit_state()

    async def _fail_initialization(
        self, generation: int, error: SourceUnavailable
    ) -> None:
        async with self._lock:
            if generation != self._generation:
                return
            self._state = replace(
                self._state,
                status="failed",
                error=_format_user_error(
                    what_failed="Failed to open media source.",
                    likely_cause="Source URI is malformed or the media host is unreachable.",
                    next_step="Verify the source URI and network access, then reset.",
                    detail=error.reason,
                ),
            )
        logger.warning("Media source unavailable: %s (%s)", error.uri, error.reason)
        await self._emit_state()

    async def _fail_command(
        self, generation: int, exc: Exception, *, what_failed: str
    ) -> None:
        """Move the live session to `failed` after a transport command error.

        Errors raised by a handle that a concurrent reset already tore down
        are dropped along with the stale generation.
        """
        async with self._lock:
            if generation != self._generation:
                logger.debug("Ignoring command error from a torn-down session.")
                return
            self._state = self._derive(
                replace(
                    self._state,
                    status="failed",
                    is_playing=False,
                    error=_format_user_error(
                        what_failed=what_failed,
                        likely_cause="Media pipeline rejected the command.",
                        next_step="Reset the session; check the source if it recurs.",
                        detail=str(exc) or exc.__class__.__name__,
                    ),
                )
            )
        logger.error("%s (%s)", what_failed, exc, exc_info=exc)
        await self._emit_state()

    async def _teardown(self, session: _Session) -> None:
        if session.sampler is not None:
            session.sampler.cancel()
            with suppress(asyncio.CancelledError):
                await session.sampler
            session.sampler = None
        # Unsubscribe first so nothing is delivered against a closing handle.
        session.subscriptions.close()
        await self._close_handle(session.handle)

    async def _close_handle(self, handle: MediaSession) -> None:
        try:
            await handle.pause()
            await handle.close()
        except Exception:  # pragma: no cover - pipeline safety net
            logger.warning("Media session teardown failed.", exc_info=True)

    async def _handle_pipeline_event(
        self, generation: int, event: PipelineEvent
    ) -> None:
        """Fold one pipeline signal into the inputs and republish."""
        fault: PipelineFault | None = None
        diagnostic: PipelineDiagnostic | None = None
        async with self._lock:
            if generation != self._generation or self._session is None:
                logger.debug("Dropping stale pipeline event %s.", type(event).__name__)
                return
            inputs = self._inputs
            if isinstance(event, LoadedRangesChanged):
                inputs = replace(inputs, ranges=tuple(event.ranges))
                logger.debug(
                    "Buffer ranges updated: %d range(s) [%s]",
                    len(event.ranges),
                    ", ".join(
                        f"{loaded.start_s:.1f}s-{loaded.end_s:.1f}s"
                        for loaded in event.ranges
                    ),
                )
            elif isinstance(event, BufferEmptyChanged):
                inputs = replace(inputs, is_empty=event.is_empty)
                if event.is_empty:
                    logger.warning(
                        "Playback buffer is empty at %.1fs.",
                        self._state.current_position_s,
                    )
            elif isinstance(event, BufferFullChanged):
                inputs = replace(inputs, is_full=event.is_full)
                if event.is_full:
                    logger.debug("Playback buffer is full.")
            elif isinstance(event, LikelyToKeepUpChanged):
                inputs = replace(inputs, likely_to_keep_up=event.likely_to_keep_up)
                logger.debug("Likely to keep up: %s", event.likely_to_keep_up)
            elif isinstance(event, DurationChanged):
                inputs = replace(inputs, duration_s=normalize_duration(event.duration_s))
            elif isinstance(event, ItemStatusChanged):
                if event.status == "failed":
                    fault = PipelineFault(
                        reason="item_failed",
                        message=event.message or "unknown error",
                        domain=event.domain,
                        code=event.code,
                    )
                elif event.status == "ready":
                    diagnostic = PipelineDiagnostic("ready", "Media item ready to play.")
            elif isinstance(event, FailedToPlayToEnd):
                fault = PipelineFault(
                    reason="failed_to_play_to_end",
                    message=event.message,
                    domain=event.domain,
                    code=event.code,
                )
            elif isinstance(event, ErrorLogEntry):
                diagnostic = PipelineDiagnostic(
                    "error_log_entry",
                    f"status={event.status_code} domain={event.domain} "
                    f"comment={event.comment or 'none'}",
                )
            elif isinstance(event, WaitingReasonChanged):
                diagnostic = PipelineDiagnostic(
                    "waiting",
                    f"Player waiting: {event.reason}"
                    if event.reason
                    else "Player not waiting.",
                )
            self._inputs = inputs
            state = self._state
            if fault is not None:
                state = replace(
                    state,
                    status="failed",
                    error=_format_user_error(
                        what_failed="Media pipeline reported a playback failure.",
                        likely_cause="Decoder, codec, or transport failure.",
                        next_step="Check the source and network, then reset.",
                        detail=fault.message,
                    ),
                )
            self._state = self._derive(state)
        if fault is not None:
            logger.error(
                "Pipeline fault (%s): %s domain=%s code=%s",
                fault.reason,
                fault.message,
                fault.domain,
                fault.code,
            )
            await self._emit_event(fault)
        if diagnostic is not None:
            if diagnostic.kind == "error_log_entry":
                logger.warning("Pipeline error log entry: %s", diagnostic.message)
            else:
                logger.info(diagnostic.message)
            await self._emit_event(diagnostic)
        await self._emit_state()

    async def _sample_loop(self, generation: int) -> None:
        """Sample position and byte counters until the session is torn down."""
        try:
            while True:
                await asyncio.sleep(self._sample_interval)
                if not await self._sample(generation):
                    return
        except asyncio.CancelledError:
            return

    async def _sample(self, generation: int) -> bool:
        async with self._lock:
            session = self._session
            if generation != self._generation or session is None:
                return False
            if self._state.status == "failed":
                return True
            handle = session.handle
        try:
            position = await handle.get_position()
            transferred = await handle.get_bytes_transferred()
        except Exception:  # pragma: no cover - pipeline safety net
            logger.debug("Pipeline sample failed.", exc_info=True)
            return True
        async with self._lock:
            if generation != self._generation:
                return False
            self._state = self._derive(
                _apply_sample(self._state, position, transferred)
            )
        await self._emit_state()
        return True

    def _derive(self, snapshot: PlaybackSnapshot) -> PlaybackSnapshot:
        return derive_snapshot(
            snapshot, self._inputs, lookahead_target_s=self._lookahead_target_s
        )

    async def _emit_state(self) -> None:
        await self._emit_event(SnapshotChanged(self._state))


def _apply_sample(
    snapshot: PlaybackSnapshot, position_s: float, transferred: int
) -> PlaybackSnapshot:
    position = snapshot.current_position_s
    if isinstance(position_s, (int, float)) and math.isfinite(position_s):
        position = max(0.0, float(position_s))
    received = snapshot.bytes_received
    if isinstance(transferred, int) and not isinstance(transferred, bool):
        if transferred < received:
            logger.debug(
                "Ignoring decreasing byte counter (%d < %d).", transferred, received
            )
        else:
            received = transferred
    return replace(snapshot, current_position_s=position, bytes_received=received)
