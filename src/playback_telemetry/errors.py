"""Exceptions raised across the telemetry service boundary."""

from __future__ import annotations


class TelemetryError(Exception):
    """Base class for playback-telemetry failures."""


class SourceUnavailable(TelemetryError):
    """The configured source URI is malformed or could not be opened."""

    def __init__(self, uri: str, reason: str) -> None:
        self.uri = uri
        self.reason = reason
        super().__init__(f"Source unavailable: {uri!r} ({reason})")
