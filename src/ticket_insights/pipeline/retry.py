"""Bounded retry with exponential backoff and jitter for model invocations."""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from ticket_insights.config import Settings
from ticket_insights.models import ModelInvocationError
from ticket_insights.pipeline.normalizer import UnparseableResponseError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_RETRYABLE_MESSAGE_RE = re.compile(
    r"\b(?:429|503)\b"
    r"|\b(?:rate[ _]limit|too many requests|quota"
    r"|service unavailable|temporarily unavailable"
    r"|connection reset|econnreset|network error|timed out)"
)


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt bound and backoff parameters.

    The delay before attempt ``k`` (``k >= 2``) is
    ``base_delay * 2 ** (k - 2) + uniform(0, jitter)``, capped at ``max_delay`` before jitter.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    jitter: float = 1.0
    max_delay: float = 60.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {self.max_attempts}.")
        if self.base_delay < 0 or self.jitter < 0 or self.max_delay < 0:
            raise ValueError("Retry delays must be non-negative.")

    @classmethod
    def from_settings(cls, settings: Settings) -> RetryPolicy:
        return cls(
            max_attempts=settings.client_max_attempts,
            base_delay=settings.client_backoff_seconds,
            jitter=settings.client_backoff_jitter_seconds,
            max_delay=settings.client_backoff_max_seconds,
        )


def is_retryable_error(exc: BaseException) -> bool:
    """Return whether a failure is transient and worth another attempt."""

    if isinstance(exc, ModelInvocationError):
        return exc.retryable
    if isinstance(exc, UnparseableResponseError):
        return False
    if isinstance(exc, (TimeoutError, ConnectionError)):
        return True
    if not isinstance(exc, Exception):
        return False
    return _RETRYABLE_MESSAGE_RE.search(str(exc).lower()) is not None


def _log_before_sleep(operation_name: str, max_attempts: int) -> Callable[[RetryCallState], None]:
    def _before_sleep(retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        error = outcome.exception() if outcome is not None else None
        delay = retry_state.next_action.sleep if retry_state.next_action is not None else 0.0
        logger.warning(
            "%s attempt %d/%d failed (%s); retrying in %.2fs.",
            operation_name,
            retry_state.attempt_number,
            max_attempts,
            error,
            delay,
        )

    return _before_sleep


def build_retryer(
    policy: RetryPolicy,
    *,
    operation_name: str = "operation",
    sleep: Callable[[float], Awaitable[None]] | None = None,
) -> AsyncRetrying:
    """Build the tenacity retryer for one operation."""

    wait_strategy = wait_exponential(
        multiplier=policy.base_delay,
        exp_base=2,
        max=policy.max_delay,
    ) + wait_random(0.0, policy.jitter)
    return AsyncRetrying(
        sleep=sleep or asyncio.sleep,
        retry=retry_if_exception(is_retryable_error),
        wait=wait_strategy,
        stop=stop_after_attempt(policy.max_attempts),
        before_sleep=_log_before_sleep(operation_name, policy.max_attempts),
        reraise=True,
    )


async def run_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    operation_name: str = "operation",
    sleep: Callable[[float], Awaitable[None]] | None = None,
) -> T:
    """Run ``operation`` until it succeeds, fails fatally, or exhausts ``policy.max_attempts``."""

    retryer = build_retryer(policy, operation_name=operation_name, sleep=sleep)
    try:
        async for attempt in retryer:
            with attempt:
                result = await operation()
    except Exception as exc:
        attempts = retryer.statistics.get("attempt_number", 1)
        if is_retryable_error(exc):
            logger.error(
                "%s failed after %d attempt(s): %s", operation_name, attempts, exc
            )
        else:
            logger.error("%s failed with a non-retryable error: %s", operation_name, exc)
        raise
    return result
