"""Retry-with-backoff for a single upstream call.

One implementation shared by every client: callers hand over a zero-argument
coroutine function and get back either its result or the exception raised by
the last attempt.

Default policy: 3 attempts, waiting 1s then 2s between them.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from skywatch.errors import MalformedPayloadError

logger = logging.getLogger("skywatch.sync.retry")

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to try and how long to wait in between.

    Attributes:
        max_attempts:   Total attempts including the first one.
        initial_delay:  Seconds to wait after the first failure.
        backoff_factor: Multiplier applied to the delay after each failure.
        non_retryable:  Exception types raised immediately without retrying.
    """

    max_attempts: int = 3
    initial_delay: float = 1.0
    backoff_factor: float = 2.0
    non_retryable: tuple[type[BaseException], ...] = (MalformedPayloadError,)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.initial_delay < 0:
            raise ValueError(f"initial_delay must be >= 0, got {self.initial_delay}")
        if self.backoff_factor < 1:
            raise ValueError(f"backoff_factor must be >= 1, got {self.backoff_factor}")

    def delays(self) -> list[float]:
        """Return the waits between consecutive attempts."""
        out: list[float] = []
        delay = self.initial_delay
        for _ in range(self.max_attempts - 1):
            out.append(delay)
            delay *= self.backoff_factor
        return out


DEFAULT_RETRY_POLICY = RetryPolicy()


@dataclass
class RetryState:
    """Attempt counter and current delay for one ``fetch_with_retry`` call."""

    attempt: int = 0
    delay: float = 0.0


async def fetch_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    *,
    label: str = "fetch",
    sleep: SleepFn = asyncio.sleep,
) -> T:
    """Run ``operation`` until it succeeds or the policy is exhausted.

    Args:
        operation: Zero-argument coroutine function to call.
        policy:    Attempt count and backoff.
        label:     Name used in log lines (usually the source name).
        sleep:     Coroutine function used to wait between attempts.

    Returns:
        The value returned by the first successful attempt.

    Raises:
        Exception: The exception raised by the final attempt, or the first
            exception whose type is listed in ``policy.non_retryable``.
    """
    state = RetryState(attempt=0, delay=policy.initial_delay)
    last_exc: Exception | None = None

    while state.attempt < policy.max_attempts:
        state.attempt += 1
        if state.attempt > 1:
            logger.info(
                "%s: retry attempt %d/%d", label, state.attempt, policy.max_attempts
            )
        try:
            result = await operation()
        except policy.non_retryable:
            raise
        except Exception as exc:
            last_exc = exc
            if state.attempt >= policy.max_attempts:
                break
            logger.warning(
                "%s: attempt %d/%d failed: %s; retrying in %.1fs",
                label,
                state.attempt,
                policy.max_attempts,
                exc,
                state.delay,
            )
            await sleep(state.delay)
            state.delay *= policy.backoff_factor
            continue

        if state.attempt > 1:
            logger.info(
                "%s: succeeded on attempt %d/%d",
                label,
                state.attempt,
                policy.max_attempts,
            )
        return result

    if last_exc is None:
        raise RuntimeError(f"{label}: no attempts made, max_attempts={policy.max_attempts}")
    logger.error(
        "%s: failed after %d attempts: %s", label, state.attempt, last_exc
    )
    raise last_exc
