"""Run settings read from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

from .retry import RetryPolicy

DEFAULT_BASE_URL = "https://www.thelabyrinth.co.kr"


def _normalise_string(value: str | None, *, default: str) -> str:
    if value is None:
        return default

    trimmed = value.strip()
    return trimmed or default


def _normalise_bool(value: str | None, *, name: str, default: bool) -> bool:
    if value is None:
        return default

    trimmed = value.strip().lower()
    if not trimmed:
        return default
    if trimmed in {"1", "true", "yes", "on"}:
        return True
    if trimmed in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"{name} must be a boolean (true/false).")


def _normalise_int(value: str | None, *, name: str, default: int, minimum: int) -> int:
    if value is None or not value.strip():
        return default

    try:
        parsed = int(value.strip())
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer.") from exc
    if parsed < minimum:
        raise ValueError(f"{name} must be at least {minimum}.")
    return parsed


def _normalise_float(value: str | None, *, name: str, default: float) -> float:
    if value is None or not value.strip():
        return default

    try:
        parsed = float(value.strip())
    except ValueError as exc:
        raise ValueError(f"{name} must be a number.") from exc
    if parsed < 0:
        raise ValueError(f"{name} must not be negative.")
    return parsed


@dataclass(frozen=True)
class SyncSettings:
    """Settings shared by the browser gateway and the reconciler.

    Empty variables are treated as if they were unset. Invalid values raise
    :class:`ValueError` naming the offending variable.
    """

    base_url: str = DEFAULT_BASE_URL
    headless: bool = True
    timeout_ms: int = 60000
    retry_attempts: int = 3
    retry_delay: float = 1.0
    settle_delay: float = 0.1

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "SyncSettings":
        """Return settings populated from ``environ`` (default :data:`os.environ`)."""

        source = environ if environ is not None else os.environ

        base_url = _normalise_string(
            source.get("LABYSYNC_BASE_URL"), default=DEFAULT_BASE_URL
        ).rstrip("/")

        return cls(
            base_url=base_url,
            headless=_normalise_bool(
                source.get("LABYSYNC_HEADLESS"), name="LABYSYNC_HEADLESS", default=True
            ),
            timeout_ms=_normalise_int(
                source.get("LABYSYNC_TIMEOUT_MS"),
                name="LABYSYNC_TIMEOUT_MS",
                default=60000,
                minimum=1,
            ),
            retry_attempts=_normalise_int(
                source.get("LABYSYNC_RETRY_ATTEMPTS"),
                name="LABYSYNC_RETRY_ATTEMPTS",
                default=3,
                minimum=1,
            ),
            retry_delay=_normalise_float(
                source.get("LABYSYNC_RETRY_DELAY"),
                name="LABYSYNC_RETRY_DELAY",
                default=1.0,
            ),
            settle_delay=_normalise_float(
                source.get("LABYSYNC_SETTLE_DELAY"),
                name="LABYSYNC_SETTLE_DELAY",
                default=0.1,
            ),
        )

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(max_attempts=self.retry_attempts, initial_delay=self.retry_delay)


__all__ = ["DEFAULT_BASE_URL", "SyncSettings"]
