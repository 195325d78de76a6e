"""Retry and settle-delay helpers for calls to the remote site."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, TypeVar

from .gateway import TransientRemoteError

SleepFunction = Callable[[float], None]
RetryCallback = Callable[[int, Exception, float], None]

T = TypeVar("T")

# Error types call_with_retries repeats unless told otherwise.
RETRYABLE_ERRORS: tuple[type[Exception], ...] = (TransientRemoteError,)


class SettleDelay:
    """Pause between destructive remote operations.

    Each call to :meth:`wait` blocks until ``delay`` seconds have passed since
    the previous call returned. The first call never waits.
    """

    def __init__(
        self,
        delay: float,
        *,
        clock: Callable[[], float] | None = None,
        sleep: SleepFunction | None = None,
    ) -> None:
        if delay < 0:
            raise ValueError("delay must be non-negative")

        self.delay = float(delay)
        self._clock = clock or time.monotonic
        self._sleep = sleep or time.sleep
        self._released_at: float | None = None

    def wait(self) -> None:
        """Block until the next destructive operation may start."""

        if self._released_at is not None and self.delay > 0:
            remaining = self.delay - (self._clock() - self._released_at)
            if remaining > 0:
                self._sleep(remaining)
        self._released_at = self._clock()


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry schedule whose delay grows linearly with each attempt."""

    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 30.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.initial_delay < 0:
            raise ValueError("initial_delay must be non-negative")
        if self.max_delay < 0:
            raise ValueError("max_delay must be non-negative")

    def compute_delay(self, attempt: int) -> float:
        """Return the delay to wait after failed ``attempt`` (1-indexed)."""

        if attempt < 1:
            raise ValueError("attempt must be >= 1")
        return min(self.initial_delay * attempt, self.max_delay)


def call_with_retries(
    operation: Callable[[], T],
    *,
    retry_policy: RetryPolicy | None = None,
    retryable: tuple[type[Exception], ...] = RETRYABLE_ERRORS,
    sleep: SleepFunction | None = None,
    on_retry: RetryCallback | None = None,
) -> T:
    """Execute ``operation``, repeating it after errors of a ``retryable`` type.

    Other errors propagate on the first occurrence. Once the policy's
    attempts are exhausted the last retryable error propagates unchanged.
    """

    policy = retry_policy or RetryPolicy()
    sleep_fn = sleep or time.sleep

    attempt = 1
    while True:
        try:
            return operation()
        except retryable as error:
            if attempt >= policy.max_attempts:
                raise

            delay = policy.compute_delay(attempt)
            if on_retry is not None:
                on_retry(attempt, error, delay)
            if delay > 0:
                sleep_fn(delay)

            attempt += 1


class RetryingCaller:
    """Callable wrapper binding a retry policy to every remote invocation."""

    def __init__(
        self,
        *,
        retry_policy: RetryPolicy | None = None,
        retryable: tuple[type[Exception], ...] = RETRYABLE_ERRORS,
        sleep: SleepFunction | None = None,
        on_retry: RetryCallback | None = None,
    ) -> None:
        self.policy = retry_policy or RetryPolicy()
        self._retryable = retryable
        self._sleep = sleep
        self._on_retry = on_retry

    def __call__(self, operation: Callable[[], T]) -> T:
        return call_with_retries(
            operation,
            retry_policy=self.policy,
            retryable=self._retryable,
            sleep=self._sleep,
            on_retry=self._on_retry,
        )


__all__ = [
    "RETRYABLE_ERRORS",
    "RetryPolicy",
    "RetryingCaller",
    "SettleDelay",
    "call_with_retries",
]
