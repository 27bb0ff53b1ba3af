"""
Anti-bot block detection.

A response counts as blocked when its status is 403/429 or when its body
contains one of a fixed set of block-page phrases. No scoring: pages that
hide their block behind a 200 with unknown wording go undetected.
"""

import logging
from typing import Dict, Iterable, Optional

logger = logging.getLogger(__name__)


BLOCK_STATUS_CODES = frozenset({403, 429})

DEFAULT_BLOCK_INDICATORS = (
    'Access Denied',
    'Доступ запрещен',
    'Too Many Requests',
    'captcha',
    'cf-browser-verification',
    'Слишком много запросов',
)

REPEATED_BLOCK_WARNING = 3


class BlockDetector:
    """Flags block pages and counts blocks per key (host, proxy, IP)."""

    def __init__(self, indicators: Iterable[str] = DEFAULT_BLOCK_INDICATORS):
        self.indicators = tuple(i.lower() for i in indicators)
        self._blocked_counts: Dict[str, int] = {}

    def find_indicator(self, status_code: Optional[int], body: Optional[str]) -> Optional[str]:
        """
        Return the reason a response looks blocked, or None.

        The reason is either "HTTP <status>" or the matched indicator text.
        """
        if status_code in BLOCK_STATUS_CODES:
            return f"HTTP {status_code}"

        if not body:
            return None

        lowered = body.lower()
        for indicator in self.indicators:
            if indicator in lowered:
                return indicator
        return None

    def check_response(self, status_code: Optional[int], body: Optional[str]) -> bool:
        """True when the response is a block."""
        return self.find_indicator(status_code, body) is not None

    def record_block(self, key: str) -> int:
        """Count a block against key and return the new total."""
        count = self._blocked_counts.get(key, 0) + 1
        self._blocked_counts[key] = count

        if count > REPEATED_BLOCK_WARNING:
            logger.error(f"{key} blocked {count} times")
        return count

    def block_count(self, key: str) -> int:
        return self._blocked_counts.get(key, 0)
