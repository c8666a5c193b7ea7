"""
Retry and backoff for Discubot external calls.

Thread fetches, model calls and destination page creation all go through
``retry_call`` with a RetryPolicy. Errors decide their own fate through
their ``retryable`` flag, so a MalformedInput or NotFound error fails on
the first attempt while a 429 or 5xx is retried.

A policy is bounded twice: by ``max_attempts`` (including the first call)
and by ``max_total_delay``, the cumulative sleep one call may spend
waiting. A rate-limit ``retry_after`` hint replaces the computed delay but
still counts against the budget.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, TypeVar

from discubot.errors import is_retryable

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

T = TypeVar("T")


# =============================================================================
# Backoff
# =============================================================================


@dataclass(frozen=True)
class NoBackoff:
    """Retry immediately. Used in tests and for fail-fast calls."""

    def get_delay(self, attempt: int) -> float:
        return 0.0


@dataclass(frozen=True)
class ConstantBackoff:
    delay: float = 1.0

    def get_delay(self, attempt: int) -> float:
        return self.delay


@dataclass(frozen=True)
class ExponentialBackoff:
    """
    ``base * multiplier ** (attempt - 1)``, capped at ``max_delay``.

    Jitter spreads the delay by ``jitter_factor`` either way so that
    discussions failing together do not retry together.
    """

    base: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 60.0
    jitter: bool = True
    jitter_factor: float = 0.25

    def get_delay(self, attempt: int) -> float:
        delay = min(self.base * self.multiplier ** (attempt - 1), self.max_delay)
        if self.jitter and delay > 0:
            spread = delay * self.jitter_factor
            delay = max(0.0, delay + random.uniform(-spread, spread))
        return delay


BackoffStrategy = NoBackoff | ConstantBackoff | ExponentialBackoff


# =============================================================================
# Policy
# =============================================================================


@dataclass
class RetryPolicy:
    """
    How often and how patiently to retry one kind of call.

    Example:
        policy = RetryPolicy(
            max_attempts=3,
            backoff=ExponentialBackoff(base=1.0),
            max_total_delay=30.0,
        )
        page = await retry_call(create_page, policy, "[notion] create page")
    """

    max_attempts: int = 1
    backoff: BackoffStrategy = field(default_factory=NoBackoff)
    retry_on: tuple[type[BaseException], ...] = (Exception,)
    retry_if: Callable[[BaseException], bool] = is_retryable
    max_total_delay: float | None = None

    def should_retry(self, attempt: int, error: BaseException) -> bool:
        """Whether ``error`` on attempt ``attempt`` (1-indexed) earns another try."""
        return (
            attempt < self.max_attempts
            and isinstance(error, self.retry_on)
            and self.retry_if(error)
        )

    def get_delay(self, attempt: int, error: BaseException | None = None) -> float:
        retry_after = getattr(error, "retry_after", None)
        if retry_after:
            return float(retry_after)
        return self.backoff.get_delay(attempt)

    def next_delay(self, attempt: int, error: BaseException, slept: float) -> float | None:
        """
        Delay before the next attempt, or None when the call should give up.

        Args:
            attempt: Attempt that just failed (1-indexed)
            error: Its exception
            slept: Seconds already spent waiting between attempts
        """
        if not self.should_retry(attempt, error):
            return None
        delay = self.get_delay(attempt, error)
        if self.max_total_delay is not None and slept + delay > self.max_total_delay:
            return None
        return delay


NO_RETRY = RetryPolicy(max_attempts=1)

# External API calls: 1s, 2s (jittered), at most 30s asleep
RETRY_WITH_BACKOFF = RetryPolicy(
    max_attempts=3,
    backoff=ExponentialBackoff(base=1.0, multiplier=2.0, max_delay=10.0),
    max_total_delay=30.0,
)

# Whole-discussion reprocessing
REPROCESS_RETRY = RetryPolicy(
    max_attempts=3,
    backoff=ExponentialBackoff(base=2.0, multiplier=2.0, max_delay=30.0),
    max_total_delay=60.0,
)


# =============================================================================
# Execution
# =============================================================================


async def retry_call(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    operation_name: str = "operation",
) -> T:
    """
    Run ``operation`` under ``policy`` and return its value.

    Raises:
        The last error, unchanged, once the policy gives up
    """
    attempt = 0
    slept = 0.0

    while True:
        attempt += 1
        try:
            return await operation()
        except Exception as e:
            delay = policy.next_delay(attempt, e, slept)
            if delay is None:
                if attempt > 1 or policy.max_attempts > 1:
                    logger.error(
                        f"{operation_name}: giving up after {attempt} attempt(s) "
                        f"({slept:.2f}s waited): {type(e).__name__}: {e}"
                    )
                raise

            logger.warning(
                f"{operation_name}: attempt {attempt}/{policy.max_attempts} failed "
                f"with {type(e).__name__}: {e}; retrying in {delay:.2f}s"
            )
            slept += delay
            await asyncio.sleep(delay)


__all__ = [
    "NO_RETRY",
    "REPROCESS_RETRY",
    "RETRY_WITH_BACKOFF",
    "BackoffStrategy",
    "ConstantBackoff",
    "ExponentialBackoff",
    "NoBackoff",
    "RetryPolicy",
    "retry_call",
]
