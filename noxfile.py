"""Nox sessions for lint, typecheck, and test gates."""

from __future__ import annotations

import nox

nox.options.sessions = ["lint", "typecheck", "tests"]


@nox.session
def lint(session: nox.Session) -> None:
    """Check lint and formatting without rewriting files."""
    session.install("ruff")
    session.run("ruff", "check", ".")
    session.run("ruff", "format", "--check", ".")


@nox.session(name="lint-fix")
def lint_fix(session: nox.Session) -> None:
    session.install("ruff")
    session.run("ruff", "check", "--fix", ".")
    session.run("ruff", "format", ".")


@nox.session
def typecheck(session: nox.Session) -> None:
    """Type-check the playback_telemetry package."""
    session.install("mypy")
    session.install("-e", ".")
    session.run("mypy", "src")


@nox.session
def tests(session: nox.Session) -> None:
    session.install("-e", ".[test]")
    session.run("pytest", *session.posargs)


@nox.session(name="monitor-smoke")
def monitor_smoke(session: nox.Session) -> None:
    """Observe the fake pipeline headlessly for a couple of seconds."""
    session.install("-e", ".")
    session.run(
        "playback-telemetry-monitor",
        "https://example.invalid/stream.mp3",
        "--pipeline",
        "fake",
        "--duration",
        "2",
        "--play",
    )
