"""
URL list loading.
"""

import logging
from pathlib import Path
from typing import List, Optional, Union

from core.exceptions import UrlSourceError

logger = logging.getLogger(__name__)


def parse_url_lines(text: str, max_urls: Optional[int] = None) -> List[str]:
    """
    Extract URLs from newline-delimited text.

    Blank lines and lines starting with '#' are skipped; order is preserved.

    Args:
        text: File contents
        max_urls: Keep at most this many URLs (None for no limit)

    Returns:
        List of stripped URLs
    """
    urls = []
    for line in text.splitlines():
        candidate = line.strip()
        if not candidate or candidate.startswith('#'):
            continue
        urls.append(candidate)

    if max_urls is not None:
        urls = urls[:max_urls]
    return urls


def load_urls(path: Union[str, Path], max_urls: Optional[int] = None) -> List[str]:
    """
    Read a URL list file.

    Raises:
        UrlSourceError: If the file cannot be read
    """
    url_path = Path(path).expanduser()
    try:
        text = url_path.read_text(encoding='utf-8')
    except (OSError, UnicodeDecodeError) as e:
        raise UrlSourceError(str(url_path), e) from e

    urls = parse_url_lines(text, max_urls=max_urls)
    logger.info(f"Loaded {len(urls)} URLs from {url_path}")
    return urls
