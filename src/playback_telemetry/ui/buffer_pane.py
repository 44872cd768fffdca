"""Buffer telemetry pane rendering the latest playback snapshot."""

from __future__ import annotations

from rich.text import Text
from textual.app import ComposeResult
from textual.widget import Widget
from textual.widgets import Static

from playback_telemetry.services.buffering_state import BufferingState
from playback_telemetry.services.telemetry_service import PlaybackSnapshot
from playback_telemetry.utils.time_format import (
    format_bytes,
    format_seconds,
    format_time_pair,
)

PROGRESS_BAR_WIDTH = 30

_STATE_LABELS: dict[BufferingState, tuple[str, str]] = {
    "buffering": ("Buffering...", "#9E9E9E"),
    "buffered": ("Buffered", "bold #6FCF97"),
    "stalled": ("Connection stalled", "bold #F2994A"),
    "idle": ("", ""),
}


class BufferPane(Widget):
    DEFAULT_CSS = """
    BufferPane {
        layout: vertical;
        height: auto;
    }

    #time-line, #ahead-line, #progress-line, #state-line, #metrics-line,
    #status-line {
        height: 1;
        width: 1fr;
        overflow: hidden;
    }
    """

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._time_line = Static("", id="time-line")
        self._ahead_line = Static("", id="ahead-line")
        self._progress_line = Static("", id="progress-line")
        self._state_line = Static("", id="state-line")
        self._metrics_line = Static("", id="metrics-line")
        self._status_line = Static("", id="status-line")
        self._snapshot: PlaybackSnapshot | None = None
        self._notice: str | None = None
        self.status_text = ""

    def compose(self) -> ComposeResult:
        yield self._time_line
        yield self._ahead_line
        yield self._progress_line
        yield self._state_line
        yield self._metrics_line
        yield self._status_line

    @property
    def snapshot(self) -> PlaybackSnapshot | None:
        return self._snapshot

    def update_snapshot(self, snapshot: PlaybackSnapshot) -> None:
        self._snapshot = snapshot
        pos_text, dur_text = format_time_pair(
            snapshot.current_position_s, snapshot.total_duration_s
        )
        self._time_line.update(f"{pos_text} / {dur_text}")
        self._ahead_line.update(f"Buffer: {format_seconds(snapshot.buffered_ahead_s)}")
        bar = Text(progress_bar_text(snapshot.buffering_progress))
        if not snapshot.is_playing:
            bar.stylize("dim")
        self._progress_line.update(bar)
        label, style = state_label(snapshot.buffering_state)
        self._state_line.update(Text(label, style=style))
        self._metrics_line.update(metrics_text(snapshot))
        self._update_status_text()

    def set_notice(self, notice: str | None) -> None:
        self._notice = notice.strip() if notice else None
        if self._snapshot is not None:
            self._update_status_text()

    def _update_status_text(self) -> None:
        if self._snapshot is None:
            return
        snapshot = self._snapshot
        status_text = Text()
        if self._notice:
            status_text.append("Notice: ", style="bold #FF5A36")
            status_text.append(self._notice.splitlines()[0])
            status_text.append(" | ")
        status_text.append("Status: ", style="bold #F2C94C")
        status_text.append(snapshot.status)
        if snapshot.error:
            status_text.append(" | ")
            status_text.append("Error: ", style="bold #FF5A36")
            status_text.append(snapshot.error.splitlines()[0])
        self.status_text = status_text.plain
        self._status_line.update(status_text)


def progress_bar_text(fraction: float, width: int = PROGRESS_BAR_WIDTH) -> str:
    """Render a fixed-width bar for a [0, 1] fraction."""
    width = max(1, width)
    filled = int(round(clamp_float(fraction, 0.0, 1.0) * width))
    return "█" * filled + "░" * (width - filled)


def state_label(state: BufferingState) -> tuple[str, str]:
    """Return the display label and style for a buffering state."""
    return _STATE_LABELS.get(state, ("", ""))


def metrics_text(snapshot: PlaybackSnapshot) -> str:
    percent = clamp_float(snapshot.buffering_progress, 0.0, 1.0) * 100
    return (
        f"Buffer: {percent:.0f}%  "
        f"{snapshot.buffered_ahead_s:.1f}s buffered  "
        f"{format_bytes(snapshot.bytes_received)} received"
    )


def clamp_float(value: float, min_value: float, max_value: float) -> float:
    if value != value:  # NaN
        return min_value
    return max(min_value, min(value, max_value))
