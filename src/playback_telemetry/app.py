"""Textual TUI app for playback-telemetry."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from pathlib import Path

from textual.app import App, ComposeResult
from textual.widgets import Footer, Header

from . import __version__
from .config_store import (
    TelemetryConfig,
    load_config,
    load_config_with_notice,
    save_config,
)
from .errors import SourceUnavailable
from .events import PipelineDiagnostic, PipelineFault, SnapshotChanged
from .logging_utils import setup_logging
from .paths import config_path, log_dir
from .runtime_config import (
    PIPELINE_NAMES,
    resolve_lookahead_target,
    resolve_log_level,
    resolve_pipeline_name,
    resolve_sample_interval,
)
from .services.fake_pipeline import FakeMediaPipeline
from .services.media_pipeline import MediaPipeline
from .services.telemetry_service import PlaybackSnapshot, PlaybackTelemetryService
from .services.vlc_pipeline import VLCMediaPipeline
from .ui.buffer_pane import BufferPane
from .utils.async_utils import run_blocking
from .version import build_help_epilog

logger = logging.getLogger(__name__)
SEEK_STEP_S = 15.0
SEEK_BIG_STEP_S = 3600.0


class TelemetryApp(App):
    TITLE = "playback-telemetry"
    CSS = """
    Screen {
        layout: vertical;
    }

    #buffer-pane {
        border: solid white;
        padding: 0 1;
    }
    """
    BINDINGS = [
        ("space", "play_pause", "Play/Pause"),
        ("left", "seek_back", "Seek -15s"),
        ("right", "seek_forward", "Seek +15s"),
        ("shift+left", "seek_back_big", "Seek -1h"),
        ("shift+right", "seek_forward_big", "Seek +1h"),
        ("r", "reset", "Reset"),
        ("q", "quit", "Quit"),
    ]

    def __init__(
        self,
        *,
        source_uri: str,
        auto_init: bool = True,
        pipeline_name: str | None = None,
        sample_interval_s: float | None = None,
        lookahead_target_s: float | None = None,
        pipeline: MediaPipeline | None = None,
    ) -> None:
        super().__init__()
        self.source_uri = source_uri
        self.config = TelemetryConfig()
        self.snapshot = PlaybackSnapshot()
        self.telemetry: PlaybackTelemetryService | None = None
        self._auto_init = auto_init
        self._pipeline_name = pipeline_name
        self._sample_interval_s = sample_interval_s
        self._lookahead_target_s = lookahead_target_s
        self._pipeline = pipeline

    def compose(self) -> ComposeResult:
        yield Header()
        yield BufferPane(id="buffer-pane")
        yield Footer()

    def on_mount(self) -> None:
        if self._auto_init:
            asyncio.create_task(self._initialize_session())

    async def _initialize_session(self) -> None:
        try:
            self.config, notice = await run_blocking(
                load_config_with_notice, config_path()
            )
            pipeline_name = resolve_pipeline_name(
                self._pipeline_name, self.config.pipeline
            )
            self.config = replace(
                self.config, pipeline=pipeline_name, last_source_uri=self.source_uri
            )
            await run_blocking(save_config, config_path(), self.config)
            pipeline = self._pipeline or build_pipeline(
                pipeline_name, network_caching_ms=self.config.network_caching_ms
            )
            self.telemetry = PlaybackTelemetryService(
                emit_event=self._handle_telemetry_event,
                pipeline=pipeline,
                sample_interval_s=resolve_sample_interval(
                    self._sample_interval_s, self.config.sample_interval_s
                ),
                lookahead_target_s=resolve_lookahead_target(
                    self._lookahead_target_s, self.config.lookahead_target_s
                ),
            )
            if notice:
                self.query_one(BufferPane).set_notice(notice)
            await self.telemetry.initialize(self.source_uri)
        except SourceUnavailable as exc:
            # The failed snapshot already carries the user-facing message.
            logger.warning("Initial source open failed: %s", exc)
        except Exception as exc:
            logger.exception("Failed to initialize app: %s", exc)
            self.notify(
                "Failed to initialize app.\n"
                "Likely cause: config/log path or pipeline startup failure.\n"
                "Next step: verify file permissions/paths and review the log file.",
                severity="error",
            )

    async def on_unmount(self) -> None:
        if self.telemetry is not None:
            await self.telemetry.shutdown()

    async def action_play_pause(self) -> None:
        if self.telemetry is None:
            return
        await self.telemetry.toggle_play_pause()

    async def action_seek_back(self) -> None:
        await self._seek_by(-SEEK_STEP_S)

    async def action_seek_forward(self) -> None:
        await self._seek_by(SEEK_STEP_S)

    async def action_seek_back_big(self) -> None:
        await self._seek_by(-SEEK_BIG_STEP_S)

    async def action_seek_forward_big(self) -> None:
        await self._seek_by(SEEK_BIG_STEP_S)

    async def action_reset(self) -> None:
        if self.telemetry is None:
            return
        try:
            await self.telemetry.reset()
        except SourceUnavailable as exc:
            logger.warning("Reset could not reopen source: %s", exc)

    async def action_quit(self) -> None:
        self.exit()

    async def _seek_by(self, offset_s: float) -> None:
        if self.telemetry is None:
            return
        await self.telemetry.seek_by(offset_s)

    async def _handle_telemetry_event(self, event: object) -> None:
        if isinstance(event, SnapshotChanged):
            self.snapshot = event.snapshot
            self._update_buffer_pane()
        elif isinstance(event, PipelineFault):
            self.notify(event.message, title="Playback failed", severity="error")
        elif isinstance(event, PipelineDiagnostic):
            if event.kind == "error_log_entry":
                self.notify(event.message, title="Pipeline log", severity="warning")

    def _update_buffer_pane(self) -> None:
        self.query_one(BufferPane).update_snapshot(self.snapshot)


def build_pipeline(name: str, *, network_caching_ms: int) -> MediaPipeline:
    logger.info("Media pipeline selected: %s", name)
    if name == "vlc":
        return VLCMediaPipeline(network_caching_ms=network_caching_ms)
    return FakeMediaPipeline()


def add_common_arguments(parser: argparse.ArgumentParser) -> None:
    """Register the source and tuning flags shared by both entrypoints."""
    parser.add_argument(
        "source_uri",
        nargs="?",
        help="Media source URI; defaults to the last source used.",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    parser.add_argument("--verbose", action="store_true", help="Enable verbose output")
    parser.add_argument(
        "--quiet", action="store_true", help="Only show warnings and errors"
    )
    parser.add_argument("--log-file", help="Write logs to a file path")
    parser.add_argument(
        "--pipeline",
        choices=PIPELINE_NAMES,
        help="Media pipeline to use (fake or vlc).",
    )
    parser.add_argument(
        "--sample-interval",
        type=float,
        help="Seconds between position/byte samples (0.05-5.0).",
    )
    parser.add_argument(
        "--lookahead",
        type=float,
        help="Lookahead target in seconds for unknown-duration progress.",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="playback-telemetry",
        description="Live buffering telemetry for a streamed media source.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=build_help_epilog(),
    )
    add_common_arguments(parser)
    return parser


def resolve_effective_log_level(
    *, verbose: bool, quiet: bool, config: TelemetryConfig
) -> str:
    """CLI flags win over the persisted log level."""
    if verbose or quiet:
        return resolve_log_level(verbose=verbose, quiet=quiet)
    return config.log_level


def main() -> int:
    parser = build_parser()
    args = parser.parse_args()
    try:
        config = load_config(config_path())
        source_uri = args.source_uri or config.last_source_uri
        if not source_uri:
            parser.error("a SOURCE_URI is required (no previous source recorded)")
        level = resolve_effective_log_level(
            verbose=args.verbose, quiet=args.quiet, config=config
        )
        setup_logging(
            log_dir=log_dir(),
            level=level,
            log_file=Path(args.log_file) if args.log_file else None,
            console=False,
        )
        logging.getLogger(__name__).info("Starting playback-telemetry TUI")
        TelemetryApp(
            source_uri=source_uri,
            pipeline_name=args.pipeline,
            sample_interval_s=args.sample_interval,
            lookahead_target_s=args.lookahead,
        ).run()
        return 0
    except Exception as exc:  # pragma: no cover - top-level safety net
        logging.getLogger(__name__).exception("Fatal startup error: %s", exc)
        print(
            "Startup failed. Verify pipeline/config/log paths and re-run with --verbose.",
            file=sys.stderr,
        )
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
