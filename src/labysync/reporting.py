"""Progress reporting passed into the reconciler."""

from __future__ import annotations

import sys
from typing import Sequence, TextIO


class SyncReporter:
    """Receives progress messages from a sync run.

    The base implementation discards everything, which makes it the default
    for library use and tests. Subclasses override the methods they need.
    """

    def section(self, title: str) -> None:
        """Announce the start of a phase."""

    def info(self, message: str) -> None:
        """Report a normal progress line."""

    def detail(self, message: str) -> None:
        """Report a line only shown in verbose mode."""

    def warning(self, message: str) -> None:
        """Report a non-blocking problem."""

    def error(self, message: str) -> None:
        """Report a failure."""


class NullReporter(SyncReporter):
    """Reporter that ignores every message."""


class ConsoleReporter(SyncReporter):
    """Write a readable transcript of the run to one or more text streams."""

    QUIET = 0
    NORMAL = 1
    VERBOSE = 2

    def __init__(
        self,
        stream: TextIO | None = None,
        *,
        verbosity: int = NORMAL,
        error_stream: TextIO | None = None,
        transcript: TextIO | None = None,
    ) -> None:
        self._stream = stream if stream is not None else sys.stdout
        self._error_stream = error_stream if error_stream is not None else self._stream
        self._transcript = transcript
        self._verbosity = verbosity

    def section(self, title: str) -> None:
        if self._verbosity >= self.NORMAL:
            self._write(self._stream, "")
            self._write(self._stream, f"=== {title} ===")
        self._log(f"=== {title} ===")

    def info(self, message: str) -> None:
        if self._verbosity >= self.NORMAL:
            self._write(self._stream, f"  {message}")
        self._log(message)

    def detail(self, message: str) -> None:
        if self._verbosity >= self.VERBOSE:
            self._write(self._stream, f"    {message}")
        self._log(f"  {message}")

    def warning(self, message: str) -> None:
        self._write(self._error_stream, f"  [warning] {message}")
        self._log(f"[warning] {message}")

    def error(self, message: str) -> None:
        self._write(self._error_stream, f"  [error] {message}")
        self._log(f"[error] {message}")

    def lines(self, header: str, messages: Sequence[str], *, error: bool = False) -> None:
        """Write a header followed by indented messages to the error stream."""

        if not messages:
            return
        target = self._error_stream if error else self._stream
        self._write(target, header)
        self._log(header)
        for message in messages:
            self._write(target, f"    {message}")
            self._log(f"  {message}")

    def _write(self, stream: TextIO, text: str) -> None:
        stream.write(f"{text}\n")
        stream.flush()

    def _log(self, text: str) -> None:
        if self._transcript is not None:
            self._transcript.write(f"{text}\n")
            self._transcript.flush()


__all__ = ["ConsoleReporter", "NullReporter", "SyncReporter"]
