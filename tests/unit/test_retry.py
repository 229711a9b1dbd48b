"""Tests for the bounded retry helper."""
from unittest.mock import AsyncMock, MagicMock

import pytest

from tasksync.utils.retry import RetryPolicy, call_with_retry


class Flaky:
    """Awaitable factory that fails `failures` times, then returns `value`."""

    def __init__(self, failures, exc=ConnectionError("db locked"), value="ok"):
        self.failures = failures
        self.exc = exc
        self.value = value
        self.calls = 0

    def __call__(self):
        self.calls += 1
        attempt = self.calls

        async def _op():
            if attempt <= self.failures:
                raise self.exc
            return self.value

        return _op()


class TestRetryPolicy:
    def test_delay_is_linear(self):
        policy = RetryPolicy(delay_seconds=0.1)
        assert policy.delay_for(1) == pytest.approx(0.1)
        assert policy.delay_for(2) == pytest.approx(0.2)
        assert policy.delay_for(3) == pytest.approx(0.3)

    def test_negative_delay_clamped(self):
        assert RetryPolicy(delay_seconds=-1).delay_for(2) == 0.0


class TestCallWithRetry:
    @pytest.mark.asyncio
    async def test_first_success_returns_immediately(self):
        op = Flaky(failures=0)
        sleep = AsyncMock()
        assert await call_with_retry(op, RetryPolicy(), sleep=sleep) == "ok"
        assert op.calls == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failures(self):
        op = Flaky(failures=2)
        sleep = AsyncMock()
        on_retry = MagicMock()

        result = await call_with_retry(
            op, RetryPolicy(max_attempts=3, delay_seconds=0.1), on_retry=on_retry, sleep=sleep
        )

        assert result == "ok"
        assert op.calls == 3
        assert on_retry.call_count == 2
        delays = [c.args[0] for c in sleep.await_args_list]
        assert delays == [pytest.approx(0.1), pytest.approx(0.2)]

    @pytest.mark.asyncio
    async def test_raises_last_error_when_exhausted(self):
        op = Flaky(failures=5, exc=ConnectionError("still locked"))
        sleep = AsyncMock()

        with pytest.raises(ConnectionError, match="still locked"):
            await call_with_retry(op, RetryPolicy(max_attempts=3), sleep=sleep)

        assert op.calls == 3
        # No sleep after the final attempt
        assert sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_non_retryable_error_propagates_at_once(self):
        op = Flaky(failures=1, exc=ValueError("constraint"))
        sleep = AsyncMock()
        policy = RetryPolicy(max_attempts=3, retry_on=(ConnectionError,))

        with pytest.raises(ValueError):
            await call_with_retry(op, policy, sleep=sleep)

        assert op.calls == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_zero_attempts_still_tries_once(self):
        op = Flaky(failures=0)
        assert await call_with_retry(op, RetryPolicy(max_attempts=0), sleep=AsyncMock()) == "ok"
        assert op.calls == 1
