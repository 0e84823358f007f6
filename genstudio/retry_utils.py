"""
Common retry utilities for provider clients.

Provides shared retry logic with exponential backoff to avoid code duplication
across provider implementations. Retries are bounded: a submission that keeps
hitting capacity limits surfaces as an error instead of blocking forever.
"""

import time
import random
import logging
from typing import Callable, Protocol, Tuple, Type, TypeVar

T = TypeVar("T")


class RetryConfig(Protocol):
    """Protocol for config objects that support retry settings."""
    retry_base_delay: float
    retry_max_delay: float
    retry_jitter_percent: float
    max_retries: int


def calculate_retry_delay(
    retry_count: int,
    base_delay: float = 2,
    max_delay: float = 30,
    jitter_percent: float = 0.2
) -> float:
    """
    Calculate exponential backoff delay with jitter.

    Args:
        retry_count: Current retry attempt number (1-indexed)
        base_delay: Initial delay in seconds
        max_delay: Maximum delay cap in seconds
        jitter_percent: Percentage of jitter to add (±)

    Returns:
        Calculated delay in seconds with jitter applied
    """
    # Exponential backoff with cap at attempt 4 (2^4 = 16x base)
    delay = min(
        base_delay * (2 ** min(retry_count - 1, 4)),
        max_delay
    )

    jitter = delay * jitter_percent * (random.random() - 0.5)
    return max(0.0, delay + jitter)


def call_with_retry(
    func: Callable[[], T],
    config: RetryConfig,
    logger: logging.Logger,
    retry_on: Tuple[Type[BaseException], ...],
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Call ``func`` and retry on the given exception types with backoff.

    Args:
        func: Zero-argument callable to invoke
        config: Configuration object with retry settings
        logger: Logger instance for output
        retry_on: Exception types that trigger another attempt
        sleep: Sleep function (injectable for tests)

    Returns:
        Whatever ``func`` returns

    Raises:
        The last exception once ``config.max_retries`` retries are spent
    """
    retry_count = 0
    while True:
        try:
            return func()
        except retry_on as e:
            retry_count += 1
            if retry_count > config.max_retries:
                logger.warning(f"Giving up after {config.max_retries} retries: {e}")
                raise
            delay = calculate_retry_delay(
                retry_count,
                config.retry_base_delay,
                config.retry_max_delay,
                config.retry_jitter_percent
            )
            logger.info(f"Waiting {delay:.1f}s before retry {retry_count}...")
            sleep(delay)
