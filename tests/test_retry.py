"""Tests for the shared retry policy."""

from unittest.mock import AsyncMock, patch

import pytest

from prpsync.exceptions import RateLimitError
from prpsync.retry import RetryPolicy, never_retry


def retry_rate_limits(exc):
    return isinstance(exc, RateLimitError)


class TestRetryPolicy:
    """Tests for RetryPolicy."""

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)

    def test_delay_doubles_with_jitter(self):
        """Delay is base * 2**attempt plus up to one second."""
        policy = RetryPolicy(base_delay=1.0, max_jitter=1.0)
        with patch("prpsync.retry.random.uniform", return_value=0.5):
            assert policy.delay_for(0) == 1.5
            assert policy.delay_for(1) == 2.5
            assert policy.delay_for(2) == 4.5

    @pytest.mark.asyncio
    async def test_success_first_try(self, fast_retry, sleeps):
        func = AsyncMock(return_value="ok")
        assert await fast_retry.execute(func, 1, key="v") == "ok"
        func.assert_awaited_once_with(1, key="v")
        assert sleeps == []

    @pytest.mark.asyncio
    async def test_retryable_exhausts_after_three_attempts(self, fast_retry, sleeps):
        """A persistent rate limit is attempted exactly three times."""
        policy = fast_retry.with_classifier(retry_rate_limits)
        func = AsyncMock(side_effect=RateLimitError("slow", service="x"))

        with pytest.raises(RateLimitError):
            await policy.execute(func)

        assert func.await_count == 3
        assert len(sleeps) == 2
        assert 1.0 <= sleeps[0] <= 2.0
        assert 2.0 <= sleeps[1] <= 3.0
        assert policy.stats.exhausted == 1

    @pytest.mark.asyncio
    async def test_recovers_after_retry(self, fast_retry):
        policy = fast_retry.with_classifier(retry_rate_limits)
        func = AsyncMock(side_effect=[RateLimitError("slow"), "done"])
        assert await policy.execute(func) == "done"
        assert policy.stats.retries == 1

    @pytest.mark.asyncio
    async def test_fatal_error_never_retries(self, fast_retry, sleeps):
        policy = fast_retry.with_classifier(retry_rate_limits)
        func = AsyncMock(side_effect=ValueError("bad shape"))

        with pytest.raises(ValueError):
            await policy.execute(func)

        assert func.await_count == 1
        assert sleeps == []

    def test_default_classifier_is_fatal(self):
        assert never_retry(RateLimitError("x")) is False
