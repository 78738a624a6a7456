"""Retry handler with exponential backoff for remote embedding calls."""

import random
import time
from typing import Any, Callable, Optional

import structlog

logger = structlog.get_logger("retry_handler")


class RetryConfig:
    """Configuration for retry behavior.

    ``max_attempts=1`` disables retries. ``should_retry`` decides per
    exception whether another attempt is worthwhile; by default nothing is
    retried.
    """

    def __init__(
        self,
        max_attempts: int = 1,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        exponential_base: float = 2.0,
        jitter: bool = True,
        should_retry: Optional[Callable[[BaseException], bool]] = None
    ):
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.should_retry = should_retry or (lambda exc: False)


class RetryHandler:
    """Handles retry logic with exponential backoff.

    Synchronous on purpose: backends are called from worker threads, never
    from the event loop.
    """

    def __init__(self, config: RetryConfig, sleep: Callable[[float], None] = time.sleep):
        self.config = config
        self._sleep = sleep

    def execute_with_retry(
        self,
        func: Callable,
        *args,
        operation_name: str = "unknown",
        **kwargs
    ) -> Any:
        """Call ``func`` until it succeeds, attempts run out, or the error is final."""
        for attempt in range(self.config.max_attempts):
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                last_attempt = attempt == self.config.max_attempts - 1
                if last_attempt or not self.config.should_retry(e):
                    if attempt > 0:
                        logger.error(
                            "Operation failed after retries",
                            operation=operation_name,
                            attempts=attempt + 1,
                            error=str(e)
                        )
                    raise

                delay = self._calculate_delay(attempt)
                logger.warning(
                    "Operation failed, retrying",
                    operation=operation_name,
                    attempt=attempt + 1,
                    total_attempts=self.config.max_attempts,
                    delay_seconds=delay,
                    error=str(e)
                )
                self._sleep(delay)
                continue

            if attempt > 0:
                logger.info(
                    "Operation succeeded after retry",
                    operation=operation_name,
                    attempt=attempt + 1,
                    total_attempts=self.config.max_attempts
                )
            return result

        raise RuntimeError("Retry logic error")

    def _calculate_delay(self, attempt: int) -> float:
        """Calculate delay for the given attempt."""
        # Exponential backoff: base_delay * (exponential_base ^ attempt)
        delay = self.config.base_delay * (self.config.exponential_base ** attempt)
        delay = min(delay, self.config.max_delay)

        # Add jitter to avoid thundering herd
        if self.config.jitter:
            jitter_range = delay * 0.1
            delay += random.uniform(-jitter_range, jitter_range)

        return max(delay, 0.0)


def create_remote_retry_handler(
    max_attempts: int,
    should_retry: Callable[[BaseException], bool],
    base_delay: float = 1.0,
    max_delay: float = 30.0
) -> RetryHandler:
    """Create the retry handler used by remote API backends."""
    config = RetryConfig(
        max_attempts=max_attempts,
        base_delay=base_delay,
        max_delay=max_delay,
        exponential_base=2.0,
        jitter=True,
        should_retry=should_retry
    )
    return RetryHandler(config)
