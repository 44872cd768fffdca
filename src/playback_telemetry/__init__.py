"""Buffering telemetry for streamed media playback."""

from __future__ import annotations

from .version import __version__

__all__ = ["__version__"]
