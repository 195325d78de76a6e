"""Command-line entry point for synchronising a labyrinth content tree."""

from __future__ import annotations

import argparse
import dataclasses
import os
import sys
from pathlib import Path
from typing import Mapping, Sequence, TextIO

from labysync import (
    ConfigError,
    ConsoleReporter,
    ContentStore,
    ContentValidationError,
    Credentials,
    FatalSyncError,
    PreparedSync,
    Reconciler,
    RemoteError,
    RemoteGateway,
    SyncSettings,
    prepare_sync,
)


def create_gateway(credentials: Credentials, settings: SyncSettings) -> RemoteGateway:
    """Return the gateway used for real runs."""

    from labysync.browser import PlaywrightGateway

    return PlaywrightGateway(credentials, settings)


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="labysync",
        description="Synchronise a local labyrinth folder with thelabyrinth.co.kr.",
    )
    parser.add_argument(
        "content_dir",
        type=Path,
        help="Folder containing labyrinth.json and the page/ directory.",
    )
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show per-image and per-link details.",
    )
    verbosity.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Only print warnings and errors.",
    )
    parser.add_argument(
        "--headed",
        action="store_true",
        help="Show the browser window instead of running headless.",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        help="Append the run transcript to this file as well.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Classify, validate and plan without logging in or changing anything.",
    )
    return parser.parse_args(argv)


def _verbosity(args: argparse.Namespace) -> int:
    if args.quiet:
        return ConsoleReporter.QUIET
    if args.verbose:
        return ConsoleReporter.VERBOSE
    return ConsoleReporter.NORMAL


def _print_plan(prepared: PreparedSync, reporter: ConsoleReporter) -> None:
    plan = prepared.plan
    state = prepared.state
    if state is None or state.remote_id is None:
        labyrinth_action = "create"
    elif state.config_hash != prepared.config_hash:
        labyrinth_action = "update"
    else:
        labyrinth_action = "unchanged"

    reporter.section("Plan (dry run)")
    reporter.info(f"Labyrinth: {labyrinth_action}")
    counts = prepared.inventory.counts()
    states = ", ".join(f"{status.value}: {count}" for status, count in counts.items() if count)
    reporter.info(f"Page states: {states or 'none'}")
    if plan.is_empty:
        reporter.info("No page changes.")
        return

    reporter.lines(
        "Recreate:",
        [f"{item.name} (stale ID {item.stale_remote_id})" for item in plan.recreate],
    )
    reporter.lines("Delete remote IDs:", list(plan.delete_ids))
    reporter.lines("Remove meta files:", list(plan.remove_states))
    reporter.lines("Create:", list(plan.create))
    reporter.lines("Update:", list(plan.update))
    reporter.lines("Skip (incomplete):", list(plan.skipped))
    reporter.info(f"Unchanged pages: {len(plan.unchanged)}")


def run_sync(
    args: argparse.Namespace,
    reporter: ConsoleReporter,
    *,
    environ: Mapping[str, str] | None = None,
) -> int:
    """Run one synchronisation and return the process exit code.

    ``0`` means every step succeeded, ``1`` that some pages failed or the run
    was aborted remotely, and ``2`` that local files or settings are invalid.
    """

    source = environ if environ is not None else os.environ
    try:
        settings = SyncSettings.from_env(source)
    except ValueError as exc:
        reporter.error(str(exc))
        return 2
    if args.headed:
        settings = dataclasses.replace(settings, headless=False)

    try:
        store = ContentStore(args.content_dir)
        reporter.info(f"Content folder: {store.root}")
        prepared = prepare_sync(store, reporter=reporter)
        prepared.raise_for_errors()
        if args.dry_run:
            _print_plan(prepared, reporter)
            return 0
        credentials = store.load_credentials(source)
    except ConfigError as exc:
        reporter.error(str(exc))
        return 2
    except ContentValidationError as exc:
        reporter.lines(
            f"Validation failed ({len(exc.report.errors)} errors):",
            exc.report.errors,
            error=True,
        )
        return 2

    gateway = create_gateway(credentials, settings)
    reconciler = Reconciler(
        store,
        gateway,
        reporter=reporter,
        retry_policy=settings.retry_policy(),
        settle_delay=settings.settle_delay,
    )
    try:
        reporter.section("Login")
        reconciler.call(gateway.login)
        reporter.info("Logged in")
        summary = reconciler.run(prepared)
    except (FatalSyncError, RemoteError) as exc:
        reporter.error(str(exc))
        return 1
    finally:
        gateway.logout()

    return 1 if summary.has_failures else 0


def main(argv: Sequence[str] | None = None) -> None:
    """Synchronise the content folder named on the command line."""

    args = _parse_args(argv)

    log_handle: TextIO | None = None
    try:
        if args.log_file is not None:
            args.log_file.parent.mkdir(parents=True, exist_ok=True)
            log_handle = args.log_file.open("a", encoding="utf-8")
        reporter = ConsoleReporter(
            sys.stdout,
            verbosity=_verbosity(args),
            error_stream=sys.stderr,
            transcript=log_handle,
        )
        exit_code = run_sync(args, reporter)
    finally:
        if log_handle is not None:
            log_handle.close()

    if exit_code:
        raise SystemExit(exit_code)


if __name__ == "__main__":
    main()
