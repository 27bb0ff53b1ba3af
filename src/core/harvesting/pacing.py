"""
Randomized delays between requests.
"""

import logging
import random
import time
from typing import Callable, Optional

from core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class DelayController:
    """Sleeps a uniformly sampled number of milliseconds in [min_ms, max_ms]."""

    def __init__(self,
                 min_ms: int,
                 max_ms: int,
                 sleep: Callable[[float], None] = time.sleep,
                 rng: Optional[random.Random] = None):
        if min_ms < 0 or max_ms < 0:
            raise ConfigurationError('delay', f"bounds must not be negative (got {min_ms}, {max_ms})")
        if min_ms > max_ms:
            raise ConfigurationError('delay', f"min ({min_ms}ms) exceeds max ({max_ms}ms)")

        self.min_ms = min_ms
        self.max_ms = max_ms
        self._sleep = sleep
        self._rng = rng or random.Random()

    def sample(self) -> int:
        """Pick a delay in milliseconds."""
        return self._rng.randint(self.min_ms, self.max_ms)

    def wait(self) -> int:
        """Sample a delay, sleep for it and return it in milliseconds."""
        delay_ms = self.sample()
        logger.info(f"Waiting {delay_ms / 1000:.1f}s before next request...")
        self._sleep(delay_ms / 1000)
        return delay_ms
