"""Runtime diagnostics for UI dependencies and pipeline readiness."""

from __future__ import annotations

import importlib
from dataclasses import dataclass
from typing import Literal

DoctorStatus = Literal["ok", "missing", "error"]


@dataclass(frozen=True)
class DoctorCheck:
    """One environment readiness check result."""

    name: str
    status: DoctorStatus
    required: bool
    detail: str
    hint: str | None = None


@dataclass(frozen=True)
class DoctorReport:
    """Collection of doctor checks and derived process exit contract."""

    pipeline: str
    checks: list[DoctorCheck]

    @property
    def exit_code(self) -> int:
        """Return non-zero when any required check failed or is missing."""
        for check in self.checks:
            if check.required and check.status != "ok":
                return 2
        return 0


def run_doctor(pipeline: str) -> DoctorReport:
    """Run configured diagnostics for the selected pipeline."""
    checks = [
        probe_textual(),
        probe_vlc(required=pipeline == "vlc"),
    ]
    return DoctorReport(pipeline=pipeline, checks=checks)


def render_report(report: DoctorReport) -> str:
    """Render terminal-friendly diagnostics report text."""
    lines = [f"playback-telemetry doctor (pipeline={report.pipeline})", ""]
    for check in report.checks:
        state = _status_token(check.status)
        req = "required" if check.required else "optional"
        lines.append(f"{state} {check.name:<11} [{req}] {check.detail}")
        if check.hint:
            lines.append(f"      hint: {check.hint}")
    lines.append("")
    lines.append("Result: OK" if report.exit_code == 0 else "Result: FAIL")
    return "\n".join(lines)


def probe_textual() -> DoctorCheck:
    """Verify the Textual UI dependency is importable."""
    try:
        module = importlib.import_module("textual")
    except Exception as exc:
        return DoctorCheck(
            name="textual",
            status="missing",
            required=True,
            detail=f"not importable ({exc.__class__.__name__})",
            hint="Install Python dependencies (pip install playback-telemetry).",
        )
    version = getattr(module, "__version__", None)
    detail = f"importable ({version})" if version else "importable"
    return DoctorCheck(name="textual", status="ok", required=True, detail=detail)


def probe_vlc(*, required: bool) -> DoctorCheck:
    """Verify python-vlc import and libVLC runtime usability."""
    try:
        vlc = importlib.import_module("vlc")
    except Exception as exc:
        return DoctorCheck(
            name="vlc/libvlc",
            status="missing",
            required=required,
            detail=f"python-vlc import failed ({exc.__class__.__name__})",
            hint="Install VLC/libVLC and the vlc extra (pip install playback-telemetry[vlc]).",
        )
    version = getattr(vlc, "__version__", "unknown")
    try:
        instance = vlc.Instance()
        # Creating a media player verifies that the runtime bindings are usable.
        instance.media_player_new()
    except Exception as exc:
        return DoctorCheck(
            name="vlc/libvlc",
            status="error",
            required=required,
            detail=f"python-vlc {version}; libVLC runtime unavailable ({exc.__class__.__name__})",
            hint="Install VLC/libVLC and verify runtime library search path.",
        )
    return DoctorCheck(
        name="vlc/libvlc",
        status="ok",
        required=required,
        detail=f"python-vlc {version}; libVLC {_libvlc_version(vlc)}",
    )


def _status_token(status: DoctorStatus) -> str:
    """Map doctor status to compact display token."""
    if status == "ok":
        return "[OK]"
    if status == "missing":
        return "[MISS]"
    return "[ERR]"


def _libvlc_version(vlc: object) -> str:
    """Best-effort extraction of libVLC runtime version string."""
    getter = getattr(vlc, "libvlc_get_version", None)
    if not callable(getter):
        return "detected"
    try:
        release = getter()
    except Exception:
        return "detected"
    if isinstance(release, bytes):
        return release.decode("utf-8", errors="replace")
    return str(release) if release else "detected"
