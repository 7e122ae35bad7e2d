"""
Retry policy for cached reads.
"""

import asyncio
import random
from typing import Any, Awaitable, Callable, Optional

from .errors import ClientTransportError, ReadCancelledError, TransportError
from .logging import get_logger

Sleep = Callable[[float], Awaitable[Any]]


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(self,
                 max_retries: int = 3,
                 base_delay: float = 1.0,
                 max_delay: float = 30.0,
                 exponential_base: float = 2.0,
                 jitter: bool = True,
                 backoff_strategy: str = "exponential"):
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.backoff_strategy = backoff_strategy

    @classmethod
    def from_settings(cls, settings: Any) -> "RetryConfig":
        """Build a config from EngineSettings."""
        return cls(
            max_retries=settings.max_retries,
            base_delay=settings.retry_base_delay,
            max_delay=settings.retry_max_delay,
            jitter=settings.retry_jitter,
        )


def _calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Calculate delay before retry number ``attempt`` (1-based)."""
    if config.backoff_strategy == "exponential":
        delay = config.base_delay * (config.exponential_base ** (attempt - 1))
    elif config.backoff_strategy == "linear":
        delay = config.base_delay * attempt
    elif config.backoff_strategy == "fixed":
        delay = config.base_delay
    else:
        delay = config.base_delay

    delay = min(delay, config.max_delay)

    if config.jitter:
        jitter_amount = delay * 0.1  # 10% jitter
        delay += random.uniform(-jitter_amount, jitter_amount)

    return max(0.0, delay)


class RetryPolicy:
    """Decides whether a failed read is retried and how long to wait."""

    def __init__(self, config: Optional[RetryConfig] = None, sleep: Optional[Sleep] = None):
        self.config = config or RetryConfig()
        self.sleep: Sleep = sleep or asyncio.sleep

    def should_retry(self, failure_count: int, error: BaseException) -> bool:
        """Return True if another attempt should follow ``failure_count`` failures."""
        if isinstance(error, (ClientTransportError, ReadCancelledError)):
            return False
        if isinstance(error, TransportError) and error.is_client_error:
            return False
        return failure_count <= self.config.max_retries

    def delay_for(self, failure_count: int) -> float:
        """Backoff before the retry that follows ``failure_count`` failures."""
        return _calculate_delay(failure_count, self.config)


NO_RETRY = RetryPolicy(RetryConfig(max_retries=0))


async def call_with_retry(
    func: Callable[[], Awaitable[Any]],
    policy: RetryPolicy,
    *,
    name: str = "read",
    on_retry: Optional[Callable[[int, BaseException], None]] = None,
) -> Any:
    """Run ``func`` until it succeeds or the policy gives up.

    The last underlying error is re-raised unchanged.
    """
    logger = get_logger(f"restcache.retry.{name}")
    failure_count = 0

    while True:
        try:
            result = await func()
            if failure_count:
                logger.info("Retry succeeded", attempt=failure_count + 1, operation=name)
            return result
        except asyncio.CancelledError:
            raise
        except Exception as e:
            failure_count += 1
            if not policy.should_retry(failure_count, e):
                if failure_count > 1:
                    logger.error(
                        "All retry attempts exhausted",
                        attempts=failure_count,
                        operation=name,
                        error=str(e)
                    )
                raise

            delay = policy.delay_for(failure_count)
            logger.warning(
                "Read attempt failed, waiting before next attempt",
                attempt=failure_count,
                max_retries=policy.config.max_retries,
                delay=delay,
                operation=name,
                error=str(e)
            )
            if on_retry is not None:
                on_retry(failure_count, e)
            await policy.sleep(delay)
