"""Generic retry primitive with exponential backoff and jitter, built on tenacity.

Used around language model client calls that fail transiently (rate limits and
server errors). Structured output validation failures are retried separately by
:mod:`litestar_stepflow.engine.structured`.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeVar

from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt

from litestar_stepflow.exceptions import RetryExhaustedError

if TYPE_CHECKING:
    from tenacity import RetryCallState

    from litestar_stepflow.config import StepflowSettings

__all__ = ["RetryPolicy", "compute_delay_ms", "default_retry_condition", "error_status", "retry_async"]

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff parameters for :func:`retry_async`.

    Attributes:
        max_retries: Retries after the first attempt.
        base_delay_ms: Delay before the first retry.
        max_delay_ms: Ceiling applied before jitter.
        jitter_factor: Upper bound of the random extra delay, as a fraction of the delay.
    """

    max_retries: int = 3
    base_delay_ms: float = 1000
    max_delay_ms: float = 30000
    jitter_factor: float = 0.1

    @classmethod
    def from_settings(cls, settings: StepflowSettings) -> RetryPolicy:
        """Build a policy from the ``retry_*`` settings."""
        return cls(
            max_retries=settings.retry_max_retries,
            base_delay_ms=settings.retry_base_delay_ms,
            max_delay_ms=settings.retry_max_delay_ms,
            jitter_factor=settings.retry_jitter_factor,
        )


def error_status(error: BaseException) -> int | None:
    """Extract an HTTP-like status code from an exception, if it carries one.

    Looks at ``error.status``, ``error.status_code`` and ``error.response.status_code``.
    """
    for candidate in (
        getattr(error, "status", None),
        getattr(error, "status_code", None),
        getattr(getattr(error, "response", None), "status_code", None),
        getattr(getattr(error, "response", None), "status", None),
    ):
        if isinstance(candidate, int):
            return candidate
    return None


def default_retry_condition(error: BaseException) -> bool:
    """Retry on rate limiting (429) and server errors (5xx)."""
    status = error_status(error)
    return status is not None and (status == 429 or 500 <= status < 600)


def compute_delay_ms(policy: RetryPolicy, attempt: int, rand: Callable[[], float] = random.random) -> float:
    """Compute the sleep before retrying after ``attempt`` (0-based) failed.

    The delay is ``base * 2 ** attempt`` capped at ``max_delay_ms``, plus a random
    jitter of up to ``jitter_factor`` times the capped delay.
    """
    delay = min(policy.base_delay_ms * 2**attempt, policy.max_delay_ms)
    return float(int(delay + rand() * policy.jitter_factor * delay))


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy | None = None,
    retry_on: Callable[[BaseException], bool] = default_retry_condition,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    rand: Callable[[], float] = random.random,
    request_id: str | None = None,
) -> T:
    """Run ``operation`` until it succeeds, retrying errors accepted by ``retry_on``.

    Args:
        operation: Zero-argument coroutine factory to invoke on every attempt.
        policy: Backoff parameters. Defaults to ``RetryPolicy()``.
        retry_on: Predicate deciding whether an error is transient.
        sleep: Coroutine function taking seconds, injectable for tests.
        rand: Source of uniform random numbers in ``[0, 1)`` for jitter.
        request_id: Correlation id added to log records.

    Returns:
        The operation's result.

    Raises:
        RetryExhaustedError: When the last attempt fails or an error is not retryable.
            The original error is chained as ``__cause__``.
    """
    policy = policy or RetryPolicy()
    total = policy.max_retries + 1
    attempts = 0

    async def attempt() -> T:
        nonlocal attempts
        attempts += 1
        return await operation()

    def wait(retry_state: RetryCallState) -> float:
        return compute_delay_ms(policy, retry_state.attempt_number - 1, rand) / 1000

    def log_retry(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning(
            "Retry attempt failed - retrying",
            extra={
                "request_id": request_id,
                "attempt": retry_state.attempt_number,
                "max_attempts": total,
                "delay_ms": delay * 1000,
                "error": str(error),
                "status": error_status(error) if error else None,
            },
        )

    retrying = AsyncRetrying(
        stop=stop_after_attempt(total),
        wait=wait,
        retry=retry_if_exception(retry_on),
        sleep=sleep,
        before_sleep=log_retry,
        reraise=True,
    )
    try:
        result = await retrying(attempt)
    except Exception as e:
        logger.error(
            "Retry failed - giving up",
            extra={
                "request_id": request_id,
                "attempt": attempts,
                "max_attempts": total,
                "error": str(e),
                "status": error_status(e),
            },
        )
        raise RetryExhaustedError(attempts, e) from e

    if attempts > 1:
        logger.info(
            "Retry succeeded",
            extra={"request_id": request_id, "attempt": attempts, "max_attempts": total},
        )
    return result
