"""Tests for the retry executor and policies."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from tutor_orchestrator.config import Settings
from tutor_orchestrator.exceptions import (
    OverloadedError,
    ProviderTimeoutError,
    RateLimitedError,
    UnauthorizedError,
    UnknownProviderError,
)
from tutor_orchestrator.orchestrator.retry import RetryExecutor, RetryPolicy, RetryState, is_retryable


class TestRetryPolicy:
    def test_exponential_delays_by_kind(self):
        policy = RetryPolicy()
        overloaded = OverloadedError("busy", provider="gemini")
        assert [policy.delay_for(overloaded, n) for n in (1, 2, 3)] == [2.0, 4.0, 8.0]
        assert policy.delay_for(ProviderTimeoutError("slow"), 1) == 1.0
        assert policy.delay_for(ValueError("boom"), 2) == 2.0

    def test_retry_after_extends_delay(self):
        policy = RetryPolicy()
        assert policy.delay_for(RateLimitedError("slow down", retry_after=12), 1) == 12.0
        assert policy.delay_for(RateLimitedError("slow down", retry_after=1), 1) == 5.0

    def test_delay_capped(self):
        policy = RetryPolicy(max_delay=3.0)
        assert policy.delay_for(OverloadedError("busy"), 5) == 3.0

    def test_invalid_max_attempts(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)

    def test_from_settings_with_provider_override(self):
        settings = Settings(
            _env_file=None,
            retry_max_attempts=4,
            retry_policies={"gemini": {"max_attempts": 6, "overloaded_delay": 0.5, "multiplier": 3}},
        )
        default = RetryPolicy.from_settings(settings)
        gemini = RetryPolicy.from_settings(settings, "gemini")
        assert default.max_attempts == 4
        assert default.base_delays["overloaded"] == 2.0
        assert gemini.max_attempts == 6
        assert gemini.base_delays["overloaded"] == 0.5
        assert gemini.multiplier == 3.0
        assert RetryPolicy.from_settings(settings, "openai").max_attempts == 4


def test_is_retryable():
    assert is_retryable(OverloadedError("busy"))
    assert is_retryable(UnknownProviderError("HTTP 500", upstream_status=500, retryable=True))
    assert not is_retryable(UnauthorizedError("bad key"))
    assert not is_retryable(UnknownProviderError("HTTP 400", retryable=False))
    assert not is_retryable(ValueError("not a provider error"))


@pytest.mark.asyncio
class TestRetryExecutor:
    async def test_succeeds_after_transient_failures(self, no_sleep, metrics):
        func = AsyncMock(side_effect=[OverloadedError("busy"), OverloadedError("busy"), "ok"])
        executor = RetryExecutor(RetryPolicy(), provider="piston", sleep=no_sleep, metrics=metrics)
        state = RetryState()

        assert await executor.execute(func, "arg", key="value", state=state) == "ok"
        assert func.await_count == 3
        func.assert_awaited_with("arg", key="value")
        assert no_sleep.delays == [2.0, 4.0]
        assert state.delays == [2.0, 4.0]
        assert state.attempt == 3
        assert metrics.sample("retries_total", {"provider": "piston", "kind": "overloaded"}) == 2

    async def test_non_retryable_error_propagates_immediately(self, no_sleep, metrics):
        func = AsyncMock(side_effect=UnauthorizedError("bad key", provider="openai"))
        executor = RetryExecutor(provider="openai", sleep=no_sleep, metrics=metrics)

        with pytest.raises(UnauthorizedError) as exc_info:
            await executor.execute(func)
        assert func.await_count == 1
        assert exc_info.value.attempts == 1
        assert no_sleep.delays == []

    async def test_exhausted_attempts_reraise_last_error(self, no_sleep, metrics):
        errors = [ProviderTimeoutError("slow 1"), ProviderTimeoutError("slow 2"), OverloadedError("busy")]
        func = AsyncMock(side_effect=errors)
        executor = RetryExecutor(RetryPolicy(max_attempts=3), sleep=no_sleep, metrics=metrics)
        state = RetryState()

        with pytest.raises(OverloadedError) as exc_info:
            await executor.execute(func, state=state)
        assert exc_info.value.attempts == 3
        assert state.last_error is errors[-1]
        assert no_sleep.delays == [1.0, 2.0]

    async def test_non_provider_errors_are_not_retried(self, no_sleep, metrics):
        func = AsyncMock(side_effect=KeyError("missing"))
        executor = RetryExecutor(sleep=no_sleep, metrics=metrics)

        with pytest.raises(KeyError):
            await executor.execute(func)
        assert func.await_count == 1

    async def test_on_retry_callback(self, no_sleep, metrics):
        error = RateLimitedError("slow down", provider="openrouter", retry_after=7)
        func = AsyncMock(side_effect=[error, "done"])
        on_retry = MagicMock()
        executor = RetryExecutor(provider="openrouter", sleep=no_sleep, metrics=metrics)

        assert await executor.execute(func, on_retry=on_retry) == "done"
        on_retry.assert_called_once_with(error, 1, 7.0)
