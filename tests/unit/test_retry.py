"""
Unit tests for the read retry policy.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from restcache.config import EngineSettings
from restcache.errors import ClientTransportError, ReadCancelledError, TransientTransportError, TransportError
from restcache.retry import NO_RETRY, RetryConfig, RetryPolicy, _calculate_delay, call_with_retry


class TestRetryPolicy:
    """Test cases for RetryPolicy."""

    @pytest.fixture
    def policy(self):
        """Policy with the default limits and no jitter."""
        return RetryPolicy(RetryConfig(jitter=False), sleep=AsyncMock())

    def test_client_errors_are_terminal(self, policy):
        """Test that 4xx failures are never retried."""
        assert not policy.should_retry(1, ClientTransportError("not found", 404))
        assert not policy.should_retry(1, TransportError("conflict", 409))

    def test_cancellation_is_terminal(self, policy):
        """Test that cancelled reads are not retried."""
        assert not policy.should_retry(1, ReadCancelledError(["pets"]))

    def test_transient_errors_retry_three_times(self, policy):
        """Test the retry limit."""
        error = TransientTransportError("unavailable", 503)

        assert [policy.should_retry(n, error) for n in range(1, 5)] == [True, True, True, False]

    def test_other_exceptions_are_retried(self, policy):
        """Test that non-transport failures count as transient."""
        assert policy.should_retry(1, ValueError("bad payload"))

    @pytest.mark.parametrize("strategy,attempt,expected", [
        ("exponential", 1, 1.0),
        ("exponential", 3, 4.0),
        ("exponential", 10, 30.0),
        ("linear", 3, 3.0),
        ("fixed", 5, 1.0),
    ])
    def test_delay(self, strategy, attempt, expected):
        """Test backoff strategies and the delay cap."""
        config = RetryConfig(jitter=False, backoff_strategy=strategy)

        assert _calculate_delay(attempt, config) == expected

    def test_jitter_stays_within_ten_percent(self):
        """Test jitter bounds."""
        config = RetryConfig(base_delay=10.0, jitter=True)

        for _ in range(20):
            assert 9.0 <= _calculate_delay(1, config) <= 11.0

    def test_from_settings(self):
        """Test building a config from settings."""
        settings = EngineSettings(max_retries=5, retry_base_delay=0.5, retry_max_delay=2.0, retry_jitter=False)

        config = RetryConfig.from_settings(settings)

        assert (config.max_retries, config.base_delay, config.max_delay, config.jitter) == (5, 0.5, 2.0, False)


class TestCallWithRetry:
    """Test cases for call_with_retry."""

    @pytest.mark.asyncio
    async def test_success_after_transient_failures(self):
        """Test recovery on a later attempt."""
        sleep = AsyncMock()
        func = AsyncMock(side_effect=[TransientTransportError("down", 503), {"id": 1}])
        on_retry = MagicMock()

        result = await call_with_retry(func, RetryPolicy(RetryConfig(jitter=False), sleep=sleep), on_retry=on_retry)

        assert result == {"id": 1}
        assert func.await_count == 2
        sleep.assert_awaited_once_with(1.0)
        on_retry.assert_called_once()

    @pytest.mark.asyncio
    async def test_exhaustion_raises_last_error(self):
        """Test that four attempts are made before giving up."""
        sleep = AsyncMock()
        errors = [TransientTransportError(f"down {i}", 503) for i in range(4)]
        func = AsyncMock(side_effect=errors)

        with pytest.raises(TransientTransportError) as exc_info:
            await call_with_retry(func, RetryPolicy(RetryConfig(jitter=False), sleep=sleep))

        assert exc_info.value is errors[-1]
        assert func.await_count == 4
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0, 4.0]

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self):
        """Test that a 4xx failure surfaces immediately."""
        sleep = AsyncMock()
        func = AsyncMock(side_effect=ClientTransportError("missing", 404))

        with pytest.raises(ClientTransportError):
            await call_with_retry(func, RetryPolicy(sleep=sleep))

        assert func.await_count == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_retry_policy(self):
        """Test the single-attempt policy."""
        func = AsyncMock(side_effect=TransientTransportError("down", 500))

        with pytest.raises(TransientTransportError):
            await call_with_retry(func, NO_RETRY)

        assert func.await_count == 1
