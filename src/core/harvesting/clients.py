"""
HTTP clients that turn one listing URL into a payload.

ParseApiClient hands the URL to the extraction endpoint; DirectPageClient
fetches the page itself. Both raise the fetch exceptions from
core.exceptions and never retry on their own.
"""

import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import requests

from core.exceptions import (
    BlockDetectedError,
    HTTPStatusError,
    NetworkError,
    ResponseParseError,
)
from .block_detector import BlockDetector, BLOCK_STATUS_CODES
from .extraction import extract_listing

logger = logging.getLogger(__name__)


USER_AGENTS = [
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
    'Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
    'Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0',
]

BROWSER_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "ru-RU,ru;q=0.8,en-US;q=0.5,en;q=0.3",
    "Accept-Encoding": "gzip, deflate",
    "Connection": "keep-alive",
    "Upgrade-Insecure-Requests": "1",
}

ERROR_SNIPPET_LENGTH = 200


def get_random_user_agent(rng: Optional[random.Random] = None) -> str:
    """Pick a User-Agent from the pool."""
    return (rng or random).choice(USER_AGENTS)


def _host_of(url: str) -> str:
    return urlparse(url).netloc or url


@dataclass(frozen=True)
class FetchResponse:
    """Successful fetch of one URL."""
    url: str
    payload: Any
    status_code: int
    latency_ms: int


class ProxyRotator:
    """Round-robin over a fixed proxy list."""

    def __init__(self, proxies: Optional[List[str]] = None):
        self.proxies = list(proxies or [])
        self._index = 0

    def __len__(self) -> int:
        return len(self.proxies)

    def get_next(self) -> Optional[str]:
        if not self.proxies:
            return None
        proxy = self.proxies[self._index]
        self._index = (self._index + 1) % len(self.proxies)
        return proxy


class ParseApiClient:
    """Client for the extraction endpoint: POST {"url": ...} -> {data, error, status}."""

    def __init__(self,
                 endpoint: str,
                 timeout: int = 30,
                 block_detector: Optional[BlockDetector] = None,
                 session: Optional[requests.Session] = None):
        """
        Initialize parse API client.

        Args:
            endpoint: Full URL of the parse endpoint
            timeout: Request timeout in seconds
            block_detector: Detector shared with the rest of the run
            session: Preconfigured requests session (tests inject fakes here)
        """
        self.endpoint = endpoint
        self.timeout = timeout
        self.block_detector = block_detector or BlockDetector()
        self.session = session or requests.Session()
        self.session.headers.update({
            "Content-Type": "application/json",
            "Accept": "application/json",
        })

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self) -> None:
        self.session.close()

    def check_endpoint(self) -> bool:
        """
        Probe the endpoint with a GET.

        A 405 still means the route exists, it just only accepts POST.
        """
        try:
            response = self.session.get(self.endpoint, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.error(f"Parse API unreachable at {self.endpoint}: {e}")
            return False

        available = response.ok or response.status_code == 405
        if not available:
            logger.error(f"Parse API at {self.endpoint} answered HTTP {response.status_code}")
        return available

    def fetch(self, url: str) -> FetchResponse:
        """Ask the endpoint to fetch and parse url."""
        start = time.monotonic()
        try:
            response = self.session.post(self.endpoint, json={'url': url}, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise NetworkError(url, e) from e
        latency_ms = int((time.monotonic() - start) * 1000)

        status_code = response.status_code
        body = response.text or ''

        indicator = self.block_detector.find_indicator(status_code, body)
        if indicator:
            self.block_detector.record_block(_host_of(url))
            raise BlockDetectedError(url, status_code, indicator)

        try:
            payload = response.json()
        except ValueError as e:
            if not response.ok:
                raise HTTPStatusError(url, status_code, body[:ERROR_SNIPPET_LENGTH]) from e
            raise ResponseParseError(url, e, status_code) from e

        if not isinstance(payload, dict):
            raise ResponseParseError(url, TypeError(f"expected JSON object, got {type(payload).__name__}"), status_code)

        upstream_status = payload.get('status')
        if isinstance(upstream_status, int) and upstream_status in BLOCK_STATUS_CODES:
            self.block_detector.record_block(_host_of(url))
            raise BlockDetectedError(url, upstream_status, f"upstream HTTP {upstream_status}")

        if not response.ok or payload.get('error'):
            detail = str(payload.get('error') or payload.get('details') or '')
            effective_status = upstream_status if isinstance(upstream_status, int) else status_code
            raise HTTPStatusError(url, effective_status, detail)

        return FetchResponse(url=url, payload=payload.get('data'), status_code=status_code, latency_ms=latency_ms)


class DirectPageClient:
    """Fetches listing pages directly with a rotated User-Agent and optional proxies."""

    def __init__(self,
                 timeout: int = 30,
                 block_detector: Optional[BlockDetector] = None,
                 proxy_rotator: Optional[ProxyRotator] = None,
                 session: Optional[requests.Session] = None,
                 rng: Optional[random.Random] = None):
        self.timeout = timeout
        self.block_detector = block_detector or BlockDetector()
        self.proxy_rotator = proxy_rotator or ProxyRotator()
        self.session = session or requests.Session()
        self.session.headers.update(BROWSER_HEADERS)
        self._rng = rng

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self) -> None:
        self.session.close()

    def check_endpoint(self) -> bool:
        """Nothing to probe when fetching pages directly."""
        return True

    def _request_kwargs(self) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            'timeout': self.timeout,
            'headers': {'User-Agent': get_random_user_agent(self._rng)},
        }
        proxy = self.proxy_rotator.get_next()
        if proxy:
            kwargs['proxies'] = {'http': proxy, 'https': proxy}
        return kwargs

    def fetch(self, url: str) -> FetchResponse:
        """Download url and extract listing fields from its HTML."""
        kwargs = self._request_kwargs()
        proxy = kwargs.get('proxies', {}).get('https')

        start = time.monotonic()
        try:
            response = self.session.get(url, **kwargs)
        except requests.exceptions.RequestException as e:
            raise NetworkError(url, e) from e
        latency_ms = int((time.monotonic() - start) * 1000)

        html = response.text or ''
        indicator = self.block_detector.find_indicator(response.status_code, html)
        if indicator:
            self.block_detector.record_block(proxy or _host_of(url))
            raise BlockDetectedError(url, response.status_code, indicator)

        if not response.ok:
            raise HTTPStatusError(url, response.status_code, response.reason or '')

        return FetchResponse(
            url=url,
            payload=extract_listing(html, url),
            status_code=response.status_code,
            latency_ms=latency_ms,
        )
