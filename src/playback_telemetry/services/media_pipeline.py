"""Media pipeline contracts and signal payloads.

`PlaybackTelemetryService` depends on these protocols to stay engine-agnostic.
Concrete pipelines (fake/VLC) translate engine-specific buffering behavior into
the shared signal events below and expose transport commands on a session.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Literal, Protocol
from urllib.parse import urlsplit

from playback_telemetry.errors import SourceUnavailable
from playback_telemetry.services.buffer_metrics import LoadedRange

ItemStatus = Literal["unknown", "ready", "failed"]


@dataclass(frozen=True)
class PipelineEvent:
    """Marker base type for pipeline-originated signals."""

    pass


@dataclass(frozen=True)
class LoadedRangesChanged(PipelineEvent):
    """Wholesale replacement of the loaded time-range set."""

    ranges: tuple[LoadedRange, ...]


@dataclass(frozen=True)
class BufferEmptyChanged(PipelineEvent):
    is_empty: bool


@dataclass(frozen=True)
class BufferFullChanged(PipelineEvent):
    is_full: bool


@dataclass(frozen=True)
class LikelyToKeepUpChanged(PipelineEvent):
    likely_to_keep_up: bool


@dataclass(frozen=True)
class DurationChanged(PipelineEvent):
    """Total media duration in seconds, `None` while unknown or live."""

    duration_s: float | None


@dataclass(frozen=True)
class ItemStatusChanged(PipelineEvent):
    """Media item readiness transition."""

    status: ItemStatus
    message: str | None = None
    domain: str | None = None
    code: int | None = None


@dataclass(frozen=True)
class FailedToPlayToEnd(PipelineEvent):
    """Playback stopped before the end because of a pipeline failure."""

    message: str
    domain: str | None = None
    code: int | None = None


@dataclass(frozen=True)
class ErrorLogEntry(PipelineEvent):
    """Non-fatal transport/decoder error appended to the pipeline error log."""

    status_code: int
    domain: str
    comment: str | None = None


@dataclass(frozen=True)
class WaitingReasonChanged(PipelineEvent):
    """Why the engine is holding playback, `None` once it stops waiting."""

    reason: str | None


PipelineEventHandler = Callable[[PipelineEvent], Awaitable[None]]


class Subscription:
    """Explicitly scoped registration of one pipeline event handler."""

    def __init__(self, unsubscribe: Callable[[], None]) -> None:
        self._unsubscribe: Callable[[], None] | None = unsubscribe

    @property
    def active(self) -> bool:
        return self._unsubscribe is not None

    def close(self) -> None:
        if self._unsubscribe is None:
            return
        unsubscribe = self._unsubscribe
        self._unsubscribe = None
        unsubscribe()

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class SubscriberSet:
    """Fan-out of pipeline events to the currently subscribed handlers."""

    def __init__(self) -> None:
        self._handlers: list[PipelineEventHandler] = []

    def __len__(self) -> int:
        return len(self._handlers)

    def subscribe(self, handler: PipelineEventHandler) -> Subscription:
        self._handlers.append(handler)

        def _remove() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return Subscription(_remove)

    def clear(self) -> None:
        self._handlers.clear()

    async def dispatch(self, event: PipelineEvent) -> None:
        # Snapshot so handlers may unsubscribe while being notified.
        for handler in list(self._handlers):
            await handler(event)


class MediaSession(Protocol):
    """One opened media source handle."""

    def subscribe(self, handler: PipelineEventHandler) -> Subscription: ...

    async def play(self) -> None: ...

    async def pause(self) -> None: ...

    async def seek(self, position_s: float, *, exact: bool = True) -> None: ...

    async def get_position(self) -> float: ...

    async def get_bytes_transferred(self) -> int: ...

    async def close(self) -> None: ...


class MediaPipeline(Protocol):
    """Factory for media sessions, consumed by `PlaybackTelemetryService`."""

    async def open(self, source_uri: str) -> MediaSession: ...


def validate_source_uri(source_uri: str) -> str:
    """Return the stripped URI or raise `SourceUnavailable` when malformed."""
    if not isinstance(source_uri, str):
        raise SourceUnavailable(repr(source_uri), "source URI must be a string")
    candidate = source_uri.strip()
    if not candidate:
        raise SourceUnavailable(source_uri, "source URI is empty")
    if any(char.isspace() for char in candidate):
        raise SourceUnavailable(source_uri, "source URI contains whitespace")
    try:
        parts = urlsplit(candidate)
    except ValueError as exc:
        raise SourceUnavailable(source_uri, f"unparseable source URI: {exc}") from exc
    if not parts.scheme:
        raise SourceUnavailable(source_uri, "source URI has no scheme")
    if not parts.netloc and not parts.path:
        raise SourceUnavailable(source_uri, "source URI has no location")
    return candidate
