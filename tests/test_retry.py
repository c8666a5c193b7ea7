"""
Tests for Discubot retry and backoff.
"""

from unittest.mock import AsyncMock, patch

import pytest

from discubot.errors import (
    ConfigurationError,
    MalformedInputError,
    NotFoundError,
    RateLimitedError,
    TransientError,
)
from discubot.pipeline import (
    NO_RETRY,
    REPROCESS_RETRY,
    ConstantBackoff,
    ExponentialBackoff,
    NoBackoff,
    RetryPolicy,
    retry_call,
)


# =============================================================================
# Backoff Strategy Tests
# =============================================================================


class TestNoBackoff:
    """Tests for NoBackoff strategy."""

    def test_always_returns_zero(self):
        backoff = NoBackoff()
        assert backoff.get_delay(1) == 0.0
        assert backoff.get_delay(100) == 0.0


class TestConstantBackoff:
    """Tests for ConstantBackoff strategy."""

    def test_returns_constant_delay(self):
        backoff = ConstantBackoff(delay=2.5)
        assert backoff.get_delay(1) == 2.5
        assert backoff.get_delay(5) == 2.5

    def test_default_delay(self):
        assert ConstantBackoff().get_delay(1) == 1.0


class TestExponentialBackoff:
    """Tests for ExponentialBackoff strategy."""

    def test_increases_exponentially(self):
        backoff = ExponentialBackoff(base=1.0, multiplier=2.0, jitter=False)
        assert backoff.get_delay(1) == 1.0
        assert backoff.get_delay(2) == 2.0
        assert backoff.get_delay(3) == 4.0

    def test_respects_max_delay(self):
        backoff = ExponentialBackoff(base=1.0, multiplier=10.0, max_delay=5.0, jitter=False)
        assert backoff.get_delay(2) == 5.0
        assert backoff.get_delay(3) == 5.0

    def test_jitter_stays_within_band(self):
        backoff = ExponentialBackoff(base=4.0, multiplier=1.0, jitter=True, jitter_factor=0.25)
        delays = [backoff.get_delay(1) for _ in range(100)]

        assert len(set(delays)) > 1
        assert all(3.0 <= d <= 5.0 for d in delays)


# =============================================================================
# Retry Policy Tests
# =============================================================================


class TestRetryPolicy:
    """Tests for RetryPolicy decisions."""

    def test_default_is_single_attempt(self):
        policy = RetryPolicy()
        assert policy.should_retry(1, TransientError("x")) is False

    def test_retries_retryable_errors(self):
        policy = RetryPolicy(max_attempts=3)
        assert policy.should_retry(1, TransientError("timeout")) is True
        assert policy.should_retry(2, TransientError("timeout")) is True
        assert policy.should_retry(3, TransientError("timeout")) is False

    def test_does_not_retry_terminal_errors(self):
        policy = RetryPolicy(max_attempts=3)
        assert policy.should_retry(1, MalformedInputError("bad")) is False
        assert policy.should_retry(1, NotFoundError("gone")) is False
        assert policy.should_retry(1, ConfigurationError("no default")) is False

    def test_unknown_errors_not_retried(self):
        policy = RetryPolicy(max_attempts=3)
        assert policy.should_retry(1, ValueError("boom")) is False

    def test_retry_on_filters_types(self):
        policy = RetryPolicy(max_attempts=3, retry_on=(RateLimitedError,))
        assert policy.should_retry(1, TransientError("x")) is False
        assert policy.should_retry(1, RateLimitedError("x")) is True

    def test_retry_after_overrides_backoff(self):
        policy = RetryPolicy(max_attempts=3, backoff=ConstantBackoff(delay=1.0))
        assert policy.get_delay(1, RateLimitedError("slow down", retry_after=7.0)) == 7.0
        assert policy.get_delay(1, TransientError("x")) == 1.0

    def test_reprocess_policy(self):
        assert REPROCESS_RETRY.max_attempts == 3
        assert NO_RETRY.max_attempts == 1


# =============================================================================
# Executor Tests
# =============================================================================


class TestNextDelay:
    """RetryPolicy.next_delay combines the retry decision and the budget."""

    def test_gives_up_on_terminal_error(self):
        policy = RetryPolicy(max_attempts=3, backoff=ConstantBackoff(delay=1.0))
        assert policy.next_delay(1, NotFoundError("gone"), slept=0.0) is None

    def test_budget(self):
        policy = RetryPolicy(max_attempts=10, backoff=ConstantBackoff(delay=4.0), max_total_delay=10.0)
        assert policy.next_delay(1, TransientError("x"), slept=0.0) == 4.0
        assert policy.next_delay(2, TransientError("x"), slept=4.0) == 4.0
        assert policy.next_delay(3, TransientError("x"), slept=8.0) is None

    def test_retry_after_counts_against_budget(self):
        policy = RetryPolicy(max_attempts=3, max_total_delay=5.0)
        assert policy.next_delay(1, RateLimitedError("slow", retry_after=30.0), slept=0.0) is None


class TestRetryCall:
    """Tests for retry_call."""

    @pytest.mark.asyncio
    async def test_success_first_attempt(self):
        operation = AsyncMock(return_value="ok")

        assert await retry_call(operation, RetryPolicy(max_attempts=3)) == "ok"
        assert operation.await_count == 1

    @pytest.mark.asyncio
    async def test_retries_until_success(self):
        operation = AsyncMock(side_effect=[TransientError("a"), TransientError("b"), "ok"])
        policy = RetryPolicy(max_attempts=3, backoff=NoBackoff())

        assert await retry_call(operation, policy) == "ok"
        assert operation.await_count == 3

    @pytest.mark.asyncio
    async def test_stops_on_terminal_error(self):
        operation = AsyncMock(side_effect=NotFoundError("gone"))

        with pytest.raises(NotFoundError):
            await retry_call(operation, RetryPolicy(max_attempts=5))

        assert operation.await_count == 1

    @pytest.mark.asyncio
    async def test_sleeps_between_attempts(self):
        operation = AsyncMock(side_effect=[TransientError("a"), "ok"])
        policy = RetryPolicy(max_attempts=2, backoff=ConstantBackoff(delay=0.5))

        with patch("discubot.pipeline.retry.asyncio.sleep", new=AsyncMock()) as sleep:
            await retry_call(operation, policy)

        sleep.assert_awaited_once_with(0.5)

    @pytest.mark.asyncio
    async def test_total_delay_budget(self):
        operation = AsyncMock(side_effect=TransientError("down"))
        policy = RetryPolicy(
            max_attempts=10,
            backoff=ConstantBackoff(delay=4.0),
            max_total_delay=10.0,
        )

        with patch("discubot.pipeline.retry.asyncio.sleep", new=AsyncMock()) as sleep:
            with pytest.raises(TransientError):
                await retry_call(operation, policy)

        assert sleep.await_count == 2
        assert operation.await_count == 3

    @pytest.mark.asyncio
    async def test_reraises_final_error_unchanged(self):
        errors = [TransientError("first"), TransientError("second")]
        operation = AsyncMock(side_effect=errors)

        with pytest.raises(TransientError) as exc_info:
            await retry_call(operation, RetryPolicy(max_attempts=2))

        assert exc_info.value is errors[1]
        assert exc_info.value.retryable is True
