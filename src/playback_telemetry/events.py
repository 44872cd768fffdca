"""Cross-module event models for service to UI communication.

Dataclass events are pushed by `PlaybackTelemetryService` through its
`emit_event` callback; the Textual app consumes them to refresh widgets.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from playback_telemetry.services.telemetry_service import PlaybackSnapshot

FaultReason = Literal["item_failed", "failed_to_play_to_end"]
DiagnosticKind = Literal["ready", "error_log_entry", "waiting"]


@dataclass(frozen=True)
class SnapshotChanged:
    """Service event emitted after every snapshot recomputation."""

    snapshot: PlaybackSnapshot


@dataclass(frozen=True)
class PipelineFault:
    """Pipeline-reported failure that moves the session to `failed`."""

    reason: FaultReason
    message: str
    domain: str | None = None
    code: int | None = None


@dataclass(frozen=True)
class PipelineDiagnostic:
    """Informational pipeline notice; never changes buffering state."""

    kind: DiagnosticKind
    message: str
