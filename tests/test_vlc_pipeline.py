"""Optional VLC pipeline smoke tests."""

from __future__ import annotations

import asyncio
import os

import pytest

try:
    import vlc  # noqa: F401
except (ImportError, OSError, FileNotFoundError) as exc:
    pytest.skip(f"python-vlc/libVLC unavailable: {exc}", allow_module_level=True)

from playback_telemetry.services.vlc_pipeline import VLCMediaPipeline


@pytest.mark.skipif(
    os.getenv("PLAYBACK_TELEMETRY_TEST_VLC") != "1",
    reason="Set PLAYBACK_TELEMETRY_TEST_VLC=1 to run VLC pipeline tests.",
)
def test_vlc_session_open_close() -> None:
    async def run() -> None:
        session = await VLCMediaPipeline().open(
            os.getenv("PLAYBACK_TELEMETRY_TEST_URI", "file:///dev/null")
        )

        async def _handler(_event) -> None:
            return None

        with session.subscribe(_handler):
            assert await session.get_position() >= 0.0
        await session.close()

    asyncio.run(run())
