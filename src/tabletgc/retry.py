"""
Exponential backoff shared by the S3 backend and in-pass delete retries.
"""

import time
from dataclasses import dataclass
from typing import Any, Callable, Iterator, TypeVar

from .logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


try:
    from botocore.exceptions import BotoCoreError, ClientError
    RETRYABLE_EXCEPTIONS: Any = (ClientError, BotoCoreError, IOError, OSError)
except ImportError:
    RETRYABLE_EXCEPTIONS = (IOError, OSError)


@dataclass(frozen=True)
class BackoffPolicy:
    """Delay schedule: ``initial_delay`` growing by ``backoff_factor``, capped."""

    max_retries: int = 5
    initial_delay: float = 0.1
    max_delay: float = 5.0
    backoff_factor: float = 2.0

    def delays(self) -> Iterator[float]:
        """Yield the wait before each retry, ``max_retries`` times."""
        delay = self.initial_delay
        for _ in range(self.max_retries):
            yield delay
            delay = min(delay * self.backoff_factor, self.max_delay)


class RetryHandler:
    """Retries an operation on transient errors."""

    def __init__(
        self,
        policy: BackoffPolicy = BackoffPolicy(),
        retryable_exceptions: tuple = RETRYABLE_EXCEPTIONS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.policy = policy
        self.retryable_exceptions = retryable_exceptions
        self.sleep = sleep

    def retry_with_backoff(self, operation: Callable[[], T], operation_name: str = "operation") -> T:
        """Run ``operation``, retrying retryable exceptions with backoff.

        Args:
            operation: Operation to run
            operation_name: Description for logging

        Returns:
            Result of operation

        Raises:
            Exception: The last error once retries are exhausted, or the first
                non-retryable one
        """
        delays = self.policy.delays()
        attempt = 0

        while True:
            attempt += 1
            try:
                logger.debug(f"{operation_name} - attempt {attempt}/{self.policy.max_retries + 1}")
                return operation()
            except self.retryable_exceptions as e:
                delay = next(delays, None)
                if delay is None:
                    logger.error(f"{operation_name} - max retries exhausted: {e}")
                    raise
                logger.warning(f"{operation_name} failed: {e}, retrying in {delay:.2f}s...")
                self.sleep(delay)
            except Exception as e:
                logger.error(f"{operation_name} failed with non-retryable error: {e}")
                raise


default_handler = RetryHandler()


def with_s3_retry(operation: Callable[[], T], operation_name: str = "S3 operation") -> T:
    """Retry an S3 call with the default backoff."""
    return default_handler.retry_with_backoff(operation, operation_name)
