"""Tests for console progress reporting."""

from __future__ import annotations

import io

from labysync.reporting import ConsoleReporter


def _reporter(verbosity: int) -> tuple[ConsoleReporter, io.StringIO, io.StringIO, io.StringIO]:
    out, err, log = io.StringIO(), io.StringIO(), io.StringIO()
    reporter = ConsoleReporter(out, verbosity=verbosity, error_stream=err, transcript=log)
    return reporter, out, err, log


def test_normal_verbosity_hides_details() -> None:
    reporter, out, err, log = _reporter(ConsoleReporter.NORMAL)

    reporter.section("Creating new pages (1)")
    reporter.info("- start: Start")
    reporter.detail("created: ID 101")
    reporter.warning("[draft] HTML exists but JSON missing - skipped")

    assert out.getvalue() == "\n=== Creating new pages (1) ===\n  - start: Start\n"
    assert err.getvalue() == "  [warning] [draft] HTML exists but JSON missing - skipped\n"
    assert "created: ID 101" in log.getvalue()


def test_quiet_keeps_problems_and_transcript() -> None:
    reporter, out, err, log = _reporter(ConsoleReporter.QUIET)

    reporter.info("Logged in")
    reporter.error("[start] creation failed: timeout")

    assert out.getvalue() == ""
    assert err.getvalue() == "  [error] [start] creation failed: timeout\n"
    assert log.getvalue() == "Logged in\n[error] [start] creation failed: timeout\n"


def test_verbose_shows_details() -> None:
    reporter, out, _, _ = _reporter(ConsoleReporter.VERBOSE)

    reporter.detail("<- start [answer 1]")

    assert out.getvalue() == "    <- start [answer 1]\n"


def test_lines_skip_empty_groups() -> None:
    reporter, out, err, _ = _reporter(ConsoleReporter.NORMAL)

    reporter.lines("Create:", [])
    reporter.lines("Validation failed (1 errors):", ["title is required."], error=True)

    assert out.getvalue() == ""
    assert err.getvalue() == "Validation failed (1 errors):\n    title is required.\n"
