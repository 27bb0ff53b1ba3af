"""
Listing harvesting: URL loading, pacing, block detection, retries and the batch runner.
"""

from .url_source import load_urls, parse_url_lines
from .pacing import DelayController
from .block_detector import BlockDetector
from .retry import RetryStrategy
from .clients import ParseApiClient, DirectPageClient, ProxyRotator, FetchResponse
from .accumulator import ResultLog, SnapshotWriter
from .runner import BatchRunner, RunReport, generate_run_id

__all__ = [
    'load_urls', 'parse_url_lines',
    'DelayController',
    'BlockDetector',
    'RetryStrategy',
    'ParseApiClient', 'DirectPageClient', 'ProxyRotator', 'FetchResponse',
    'ResultLog', 'SnapshotWriter',
    'BatchRunner', 'RunReport', 'generate_run_id',
]
