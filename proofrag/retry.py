"""Retry with exponential backoff for provider calls.

Only ``ProviderTransientError`` is retried. Fatal provider errors and
anything else propagate on the first occurrence. When the attempts run
out the last transient error is escalated to ``ProviderFatalError``.
Backoff uses ``asyncio.sleep`` so a cancelled caller stops retrying.
"""
import asyncio
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

import structlog

from proofrag import config
from proofrag.errors import ProviderFatalError, ProviderTransientError

logger = structlog.get_logger()

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for retry behavior.

    Attributes:
        max_attempts: Maximum number of attempts (including first try)
        initial_delay: Delay before the second attempt, in seconds
        max_delay: Upper bound for any single delay, in seconds
        backoff_multiplier: Multiplier for exponential backoff
        jitter: Whether to add random jitter to delay
    """

    max_attempts: int = config.PROVIDER_MAX_ATTEMPTS
    initial_delay: float = config.PROVIDER_INITIAL_DELAY
    max_delay: float = config.PROVIDER_MAX_DELAY
    backoff_multiplier: float = 2.0
    jitter: bool = True

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {self.max_attempts}")


def calculate_delay(attempt: int, retry_config: RetryConfig) -> float:
    """Delay in seconds after the given 0-based attempt."""
    delay = min(
        retry_config.initial_delay * (retry_config.backoff_multiplier ** attempt),
        retry_config.max_delay,
    )
    if retry_config.jitter:
        # ±25% random variation
        delay *= 0.75 + random.random() * 0.5
    return delay


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    retry_config: RetryConfig,
    operation_name: str = "operation",
) -> T:
    """Run ``operation`` until it succeeds or the attempts are exhausted.

    Args:
        operation: Zero-argument coroutine factory
        retry_config: Retry configuration
        operation_name: Name used in log events

    Returns:
        The operation's result

    Raises:
        ProviderFatalError: On a fatal error or once retries are exhausted
    """
    last_error = None

    for attempt in range(retry_config.max_attempts):
        try:
            result = await operation()
        except ProviderTransientError as e:
            last_error = e
            logger.warning(
                "provider_call_failed_transient",
                operation=operation_name,
                attempt=attempt + 1,
                max_attempts=retry_config.max_attempts,
                error=str(e),
            )
            if attempt < retry_config.max_attempts - 1:
                await asyncio.sleep(calculate_delay(attempt, retry_config))
            continue

        if attempt > 0:
            logger.info(
                "provider_call_recovered",
                operation=operation_name,
                attempts=attempt + 1,
            )
        return result

    logger.error(
        "provider_retries_exhausted",
        operation=operation_name,
        attempts=retry_config.max_attempts,
        error=str(last_error),
    )
    raise ProviderFatalError(
        f"{operation_name} failed after {retry_config.max_attempts} attempts: {last_error}",
        status_code=last_error.status_code if last_error else None,
    ) from last_error
