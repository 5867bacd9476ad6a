"""Bounded exponential backoff around unreliable async calls."""

from __future__ import annotations

import asyncio
import errno
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeAlias, TypeVar

import structlog

from line_build_core.constants import (
    DEFAULT_RETRY_INITIAL_DELAY_SECONDS,
    DEFAULT_RETRY_MAX_ATTEMPTS,
    DEFAULT_RETRY_MAX_DELAY_SECONDS,
    DEFAULT_RETRY_MULTIPLIER,
    SEMANTIC_RETRY_MAX_ATTEMPTS,
    SEMANTIC_RETRY_MAX_DELAY_SECONDS,
)
from line_build_core.reliability.errors import (
    LineBuildValidationError,
    is_rate_limit_error,
    is_timeout_error,
    read_status_code,
)

SleepFn: TypeAlias = Callable[[float], Awaitable[None]]
ShouldRetryFn: TypeAlias = Callable[[BaseException, int], bool]

_T = TypeVar("_T")


def default_should_retry(error: BaseException, attempt: int) -> bool:
    """Retry transport-shaped failures; everything else propagates immediately."""

    del attempt
    if isinstance(error, LineBuildValidationError):
        return error.retryable
    if isinstance(error, (ConnectionRefusedError, TimeoutError, asyncio.TimeoutError)):
        return True
    if getattr(error, "errno", None) == errno.ECONNREFUSED:
        return True
    if getattr(error, "code", None) == "ECONNREFUSED":
        return True

    message = str(error).lower()
    if "timeout" in message or "network" in message:
        return True

    status = read_status_code(error)
    return status is not None and status >= 500


def semantic_should_retry(error: BaseException, attempt: int) -> bool:
    """Retry only timeouts and rate limiting around reasoning calls."""

    del attempt
    return is_timeout_error(error) or is_rate_limit_error(error)


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Attempt budget and backoff curve for :func:`run_with_retry`."""

    max_attempts: int = DEFAULT_RETRY_MAX_ATTEMPTS
    initial_delay_seconds: float = DEFAULT_RETRY_INITIAL_DELAY_SECONDS
    max_delay_seconds: float = DEFAULT_RETRY_MAX_DELAY_SECONDS
    multiplier: float = DEFAULT_RETRY_MULTIPLIER
    should_retry: ShouldRetryFn = default_should_retry

    def __post_init__(self) -> None:
        if isinstance(self.max_attempts, bool) or not isinstance(self.max_attempts, int):
            raise TypeError("max_attempts must be an integer")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.initial_delay_seconds < 0:
            raise ValueError("initial_delay_seconds must be >= 0")
        if self.max_delay_seconds < 0:
            raise ValueError("max_delay_seconds must be >= 0")
        if self.multiplier < 1.0:
            raise ValueError("multiplier must be >= 1.0")
        if not callable(self.should_retry):
            raise TypeError("should_retry must be callable")

    def delay_for(self, retry_number: int) -> float:
        """Delay before retry N (1-based): ``min(max, initial * multiplier ** (N - 1))``."""

        if retry_number <= 0:
            raise ValueError("retry_number must be > 0")
        base_delay = self.initial_delay_seconds * (self.multiplier ** (retry_number - 1))
        return min(base_delay, self.max_delay_seconds)


def semantic_retry_policy(
    *,
    max_attempts: int = SEMANTIC_RETRY_MAX_ATTEMPTS,
    initial_delay_seconds: float = DEFAULT_RETRY_INITIAL_DELAY_SECONDS,
    max_delay_seconds: float = SEMANTIC_RETRY_MAX_DELAY_SECONDS,
) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=max_attempts,
        initial_delay_seconds=initial_delay_seconds,
        max_delay_seconds=max_delay_seconds,
        should_retry=semantic_should_retry,
    )


async def run_with_retry(
    operation: Callable[[], Awaitable[_T]],
    policy: RetryPolicy | None = None,
    *,
    sleep: SleepFn = asyncio.sleep,
    logger: Any | None = None,
) -> _T:
    """Await ``operation`` until it succeeds or the policy gives up.

    Non-retryable errors are re-raised on the spot; after the final attempt the
    last error is re-raised unchanged.
    """

    active_policy = policy if policy is not None else RetryPolicy()
    log = logger if logger is not None else structlog.get_logger(__name__)

    attempt = 1
    while True:
        try:
            return await operation()
        except Exception as exc:
            if attempt >= active_policy.max_attempts:
                raise
            if not active_policy.should_retry(exc, attempt):
                raise

            delay_seconds = active_policy.delay_for(attempt)
            log.warning(
                "retry_attempt_scheduled",
                attempt=attempt,
                max_attempts=active_policy.max_attempts,
                delay_seconds=delay_seconds,
                error=str(exc),
                error_class=type(exc).__name__,
            )
            await sleep(delay_seconds)
            attempt += 1


__all__ = [
    "RetryPolicy",
    "ShouldRetryFn",
    "SleepFn",
    "default_should_retry",
    "run_with_retry",
    "semantic_retry_policy",
    "semantic_should_retry",
]
