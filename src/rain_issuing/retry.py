"""
Bounded retry with exponential backoff.

Besides retrying on exceptions, an ``is_acceptable`` predicate lets callers
poll for a resource that the issuer creates asynchronously: an unacceptable
result is retried like a failure, and only the final attempt turns it into
NotFoundAfterRetries.

Usage:
    from rain_issuing.retry import RetryConfig, retry_async

    contracts = await retry_async(
        lambda: client.list_user_contracts(user_id),
        RetryConfig(max_retries=5),
        is_acceptable=lambda rows: any(c.chain_id == 84532 for c in rows),
        description="deposit contract",
    )
"""
from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Type, TypeVar

from .constants import ContractPolling
from .exceptions import NotFoundAfterRetries, RetryCancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryConfig:
    """Configuration for retry behavior.

    Attributes:
        max_retries: Retries after the initial attempt (0 means a single attempt)
        base_delay: Delay before the first retry, in seconds
        max_delay: Cap on any single delay, in seconds
        exponential_base: Growth factor per attempt
        jitter: Maximum jitter factor (0.0-1.0) applied to delays
        retryable_exceptions: Exception types that trigger a retry
        non_retryable_exceptions: Exception types raised immediately
        on_retry: Optional callback (attempt, reason, delay) before each wait
        backoff: Optional override mapping attempt index to delay in seconds
    """

    max_retries: int = ContractPolling.MAX_RETRIES
    base_delay: float = ContractPolling.BASE_DELAY
    max_delay: float = ContractPolling.MAX_DELAY
    exponential_base: float = ContractPolling.EXPONENTIAL_BASE
    jitter: float = 0.0
    retryable_exceptions: tuple[Type[BaseException], ...] = (Exception,)
    non_retryable_exceptions: tuple[Type[BaseException], ...] = ()
    on_retry: Optional[Callable[[int, Optional[BaseException], float], None]] = None
    backoff: Optional[Callable[[int], float]] = None

    def calculate_delay(self, attempt: int) -> float:
        """Delay before retrying after the given 0-based attempt.

        Defaults to base_delay * exponential_base ** attempt (1s, 2s, 4s, ...).
        """
        if self.backoff is not None:
            return max(0.0, float(self.backoff(attempt)))

        delay = self.base_delay * (self.exponential_base ** attempt)
        delay = min(delay, self.max_delay)

        if self.jitter > 0:
            jitter_range = delay * self.jitter
            delay = delay + random.uniform(-jitter_range, jitter_range)

        return max(0.0, delay)

    def should_retry(self, exception: BaseException) -> bool:
        """Determine if the exception should trigger a retry."""
        if isinstance(exception, self.non_retryable_exceptions):
            return False
        return isinstance(exception, self.retryable_exceptions)


@dataclass
class RetryStats:
    """Statistics about retry execution.

    Attributes:
        attempts: Total number of attempts (including initial)
        total_delay: Total delay time in seconds
        success: Whether the operation eventually succeeded
        last_exception: The last exception raised, if any
    """

    attempts: int = 0
    total_delay: float = 0.0
    success: bool = False
    last_exception: Optional[BaseException] = None


def _cancelled(cancel_event: Optional[asyncio.Event]) -> bool:
    return cancel_event is not None and cancel_event.is_set()


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    config: Optional[RetryConfig] = None,
    *,
    is_acceptable: Optional[Callable[[T], bool]] = None,
    cancel_event: Optional[asyncio.Event] = None,
    description: Optional[str] = None,
    stats: Optional[RetryStats] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run ``operation`` up to ``config.max_retries + 1`` times.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt
        config: Retry configuration (uses defaults if None)
        is_acceptable: Optional predicate; a failing result is retried
        cancel_event: When set, no further attempt is scheduled
        description: Name used in logs and NotFoundAfterRetries
        stats: Optional RetryStats to fill in
        sleep: Awaitable sleep, replaceable in tests

    Returns:
        The first acceptable result

    Raises:
        The final attempt's exception, unchanged
        NotFoundAfterRetries: If the final result is still unacceptable
        RetryCancelled: If cancel_event fired between attempts
    """
    if config is None:
        config = RetryConfig()
    if stats is None:
        stats = RetryStats()
    name = description or getattr(operation, "__name__", "operation")

    for attempt in range(config.max_retries + 1):
        if _cancelled(cancel_event):
            raise RetryCancelled(stats.attempts)

        stats.attempts = attempt + 1
        reason: Optional[BaseException] = None

        try:
            result = await operation()
        except Exception as e:
            stats.last_exception = e
            if attempt >= config.max_retries:
                raise
            if not config.should_retry(e):
                logger.debug(f"{type(e).__name__} is not retryable for {name}, raising immediately")
                raise
            reason = e
        else:
            if is_acceptable is None or is_acceptable(result):
                stats.success = True
                return result
            if attempt >= config.max_retries:
                raise NotFoundAfterRetries(name, stats.attempts)

        delay = config.calculate_delay(attempt)
        stats.total_delay += delay

        if reason is not None:
            logger.warning(
                f"Retry {attempt + 1}/{config.max_retries} for {name} after "
                f"{type(reason).__name__}: {reason}. Waiting {delay:.2f}s"
            )
        else:
            logger.info(
                f"Retry {attempt + 1}/{config.max_retries} for {name}: "
                f"not available yet. Waiting {delay:.2f}s"
            )

        if config.on_retry:
            config.on_retry(attempt + 1, reason, delay)

        if _cancelled(cancel_event):
            raise RetryCancelled(stats.attempts)
        await sleep(delay)

    # Unreachable: the loop either returns or raises on its last iteration
    raise RuntimeError(f"retry loop for {name} exited without a result")


__all__ = [
    "RetryConfig",
    "RetryStats",
    "retry_async",
]
