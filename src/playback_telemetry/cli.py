"""Headless command-line monitor for playback-telemetry."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Callable
from pathlib import Path

from .app import add_common_arguments, build_pipeline, resolve_effective_log_level
from .config_store import load_config
from .doctor import render_report, run_doctor
from .errors import SourceUnavailable
from .events import PipelineDiagnostic, PipelineFault, SnapshotChanged
from .logging_utils import setup_logging
from .paths import config_path, log_dir
from .runtime_config import (
    resolve_lookahead_target,
    resolve_pipeline_name,
    resolve_sample_interval,
)
from .services.buffer_metrics import DEFAULT_LOOKAHEAD_TARGET_S
from .services.media_pipeline import MediaPipeline
from .services.telemetry_service import (
    DEFAULT_SAMPLE_INTERVAL_S,
    PlaybackSnapshot,
    PlaybackTelemetryService,
)
from .utils.time_format import format_bytes, format_time_pair
from .version import build_help_epilog

DEFAULT_MONITOR_DURATION_S = 10.0
EXIT_OK = 0
EXIT_UNEXPECTED = 1
EXIT_SOURCE_UNAVAILABLE = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="playback-telemetry-monitor",
        description="Print buffering telemetry for a media source without a UI.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=build_help_epilog(),
    )
    add_common_arguments(parser)
    parser.add_argument(
        "--duration",
        type=float,
        default=DEFAULT_MONITOR_DURATION_S,
        help="Seconds to observe before exiting.",
    )
    parser.add_argument(
        "--play", action="store_true", help="Start playback after the source opens"
    )
    parser.add_argument(
        "--doctor",
        action="store_true",
        help="Check runtime dependencies for the selected pipeline and exit.",
    )
    return parser


def format_snapshot_line(snapshot: PlaybackSnapshot) -> str:
    """Render one snapshot as a single monitor line."""
    position, duration = format_time_pair(
        snapshot.current_position_s, snapshot.total_duration_s
    )
    line = (
        f"{snapshot.status:<12} {position}/{duration} "
        f"ahead={snapshot.buffered_ahead_s:.1f}s "
        f"progress={snapshot.buffering_progress * 100:.0f}% "
        f"state={snapshot.buffering_state} "
        f"received={format_bytes(snapshot.bytes_received)}"
    )
    if snapshot.error:
        line = f"{line} error={snapshot.error.splitlines()[0]}"
    return line


async def run_monitor(
    source_uri: str,
    *,
    pipeline: MediaPipeline,
    duration_s: float = DEFAULT_MONITOR_DURATION_S,
    autoplay: bool = False,
    sample_interval_s: float = DEFAULT_SAMPLE_INTERVAL_S,
    lookahead_target_s: float = DEFAULT_LOOKAHEAD_TARGET_S,
    write: Callable[[str], None] = print,
) -> int:
    """Observe `source_uri` for `duration_s` and write one line per change."""
    last_line: str | None = None

    async def emit_event(event: object) -> None:
        nonlocal last_line
        if isinstance(event, SnapshotChanged):
            line = format_snapshot_line(event.snapshot)
            if line != last_line:
                last_line = line
                write(line)
        elif isinstance(event, PipelineFault):
            write(f"fault {event.reason}: {event.message}")
        elif isinstance(event, PipelineDiagnostic):
            write(f"note {event.kind}: {event.message}")

    service = PlaybackTelemetryService(
        emit_event=emit_event,
        pipeline=pipeline,
        sample_interval_s=sample_interval_s,
        lookahead_target_s=lookahead_target_s,
    )
    try:
        await service.initialize(source_uri)
    except SourceUnavailable as exc:
        write(f"Source unavailable: {exc.reason}")
        return EXIT_SOURCE_UNAVAILABLE
    try:
        if autoplay:
            await service.toggle_play_pause()
        await asyncio.sleep(max(0.0, duration_s))
        failed = service.snapshot.status == "failed"
    finally:
        await service.shutdown()
    return EXIT_SOURCE_UNAVAILABLE if failed else EXIT_OK


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logger = logging.getLogger(__name__)
    try:
        config = load_config(config_path())
        level = resolve_effective_log_level(
            verbose=args.verbose, quiet=args.quiet, config=config
        )
        setup_logging(
            log_dir=log_dir(),
            level=level,
            log_file=Path(args.log_file) if args.log_file else None,
        )
        pipeline_name = resolve_pipeline_name(args.pipeline, config.pipeline)
        if args.doctor:
            report = run_doctor(pipeline_name)
            print(render_report(report))
            return report.exit_code
        source_uri = args.source_uri or config.last_source_uri
        if not source_uri:
            print(
                "No source URI given and no previous source recorded.",
                file=sys.stderr,
            )
            return EXIT_SOURCE_UNAVAILABLE
        logger.info("Starting playback-telemetry monitor for %s", source_uri)
        return asyncio.run(
            run_monitor(
                source_uri,
                pipeline=build_pipeline(
                    pipeline_name, network_caching_ms=config.network_caching_ms
                ),
                duration_s=args.duration,
                autoplay=args.play,
                sample_interval_s=resolve_sample_interval(
                    args.sample_interval, config.sample_interval_s
                ),
                lookahead_target_s=resolve_lookahead_target(
                    args.lookahead, config.lookahead_target_s
                ),
            )
        )
    except Exception as exc:  # pragma: no cover - top-level safety net
        logger.exception("Unhandled error: %s", exc)
        print("Unexpected error. Re-run with --verbose for details.", file=sys.stderr)
        return EXIT_UNEXPECTED


if __name__ == "__main__":
    raise SystemExit(main())
