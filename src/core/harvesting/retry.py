"""
Exponential backoff retries.
"""

import logging
import time
from typing import Callable, Optional, TypeVar

from core.exceptions import ErrorRecovery

logger = logging.getLogger(__name__)

T = TypeVar('T')


class RetryStrategy:
    """
    Retry an operation with pure exponential backoff.

    After the n-th failure (n counted from 0) the strategy waits
    base_delay_ms * 2**n before trying again. With max_retries=3 the
    operation runs at most 4 times; the last error is re-raised.
    """

    def __init__(self,
                 max_retries: int = 3,
                 base_delay_ms: int = 1000,
                 sleep: Callable[[float], None] = time.sleep,
                 is_retryable: Callable[[Exception], bool] = ErrorRecovery.is_retryable_error):
        if max_retries < 0:
            raise ValueError("max_retries must not be negative")
        self.max_retries = max_retries
        self.base_delay_ms = base_delay_ms
        self._sleep = sleep
        self._is_retryable = is_retryable

    def execute(self, operation: Callable[[], T], retries: Optional[int] = None) -> T:
        """
        Run operation, retrying retryable errors until the budget runs out.

        Args:
            operation: Zero-argument callable
            retries: Override the retry budget for this call

        Returns:
            Whatever operation returns
        """
        budget = self.max_retries if retries is None else retries
        attempt = 0

        while True:
            try:
                return operation()
            except Exception as e:
                if not self._is_retryable(e):
                    raise
                if attempt >= budget:
                    logger.error(f"Giving up after {attempt + 1} attempts: {e}")
                    raise

                delay_ms = ErrorRecovery.get_retry_delay(self.base_delay_ms, attempt)
                logger.warning(f"Attempt {attempt + 1} failed ({e}), retrying in {delay_ms}ms...")
                self._sleep(delay_ms / 1000)
                attempt += 1
