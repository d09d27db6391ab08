"""
Centralized retry logic with exponential backoff and optional jitter.

Features:
- Configurable retry counts and delays
- Exponential backoff with jitter (prevents thundering herd)
- Retryable exception filtering
- Structured logging for observability

Reconciliation handlers wrap only the persistence call in retry_call();
lookups and identity resolution are never retried here.
"""

import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, Optional, Tuple, Type, TypeVar

from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    exponential_base: float = 2.0
    jitter_factor: float = 0.3  # 0-30% jitter
    retryable_exceptions: Tuple[Type[Exception], ...] = (Exception,)

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Calculate delay with exponential backoff and jitter."""
    # Exponential backoff
    delay = min(config.base_delay * (config.exponential_base**attempt), config.max_delay)

    if not config.jitter_factor:
        return delay

    # Add jitter to prevent thundering herd
    jitter = random.uniform(0, delay * config.jitter_factor)

    return delay + jitter


def retry_call(
    func: Callable[..., T],
    *args,
    config: Optional[RetryConfig] = None,
    sleep: Optional[Callable[[float], None]] = None,
    label: Optional[str] = None,
    **kwargs,
) -> T:
    """
    Execute a function with retry logic.

    Args:
        func: Function to call
        *args: Positional arguments for func
        config: Retry configuration
        sleep: Sleep function (injectable for tests); defaults to time.sleep
        label: Name used in log lines; defaults to func.__name__
        **kwargs: Keyword arguments for func

    Returns:
        Result from successful function call

    Raises:
        Last exception if all retries exhausted
    """
    config = config or RetryConfig()
    sleep = sleep or time.sleep
    name = label or getattr(func, "__name__", "operation")
    last_exception: Optional[Exception] = None

    for attempt in range(config.max_attempts):
        try:
            return func(*args, **kwargs)
        except config.retryable_exceptions as e:
            last_exception = e

            if attempt == config.max_retries:
                logger.error(
                    f"All {config.max_attempts} attempts failed for {name}",
                    extra={
                        "function": name,
                        "attempts": config.max_attempts,
                        "final_error": str(e),
                        "error_type": type(e).__name__,
                    },
                )
                raise

            delay = calculate_delay(attempt, config)

            logger.warning(
                f"Attempt {attempt + 1}/{config.max_attempts} failed for "
                f"{name}, retrying in {delay:.2f}s: {e}",
                extra={
                    "function": name,
                    "attempt": attempt + 1,
                    "delay_seconds": delay,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )

            sleep(delay)

    # Should not reach here, but satisfy type checker
    raise last_exception or RuntimeError("Unexpected retry state")


# Three attempts on the ledger write, 1s then 2s apart, no jitter
PERSISTENCE_RETRY_CONFIG = RetryConfig(
    max_retries=2,
    base_delay=1.0,
    max_delay=4.0,
    jitter_factor=0.0,
    retryable_exceptions=(ClientError, BotoCoreError, TimeoutError),
)
