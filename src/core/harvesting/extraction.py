"""
Generic listing extraction from raw HTML.

Used only by the direct page client; the parse API does its own,
site-specific extraction.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

PRICE_SELECTORS = [
    'meta[property="product:price:amount"]',
    'meta[property="og:price:amount"]',
    '[itemprop="price"]',
    '.offer__price',
    '[data-testid="ad-price-container"]',
]

MAX_IMAGES = 30


def _clean(text: Optional[str]) -> str:
    return re.sub(r'\s+', ' ', text or '').strip()


def _meta_content(soup: BeautifulSoup, *selectors: str) -> str:
    for selector in selectors:
        elem = soup.select_one(selector)
        if elem and elem.get('content'):
            return _clean(elem['content'])
    return ''


def _extract_price(soup: BeautifulSoup) -> str:
    for selector in PRICE_SELECTORS:
        elem = soup.select_one(selector)
        if not elem:
            continue
        value = elem.get('content') or elem.get_text(' ', strip=True)
        if value:
            return _clean(value)
    return ''


def _extract_images(soup: BeautifulSoup, base_url: str) -> List[str]:
    images: List[str] = []
    seen = set()

    candidates = [m.get('content') for m in soup.select('meta[property="og:image"]')]
    for img in soup.find_all('img'):
        candidates.append(img.get('src') or img.get('data-src'))

    for src in candidates:
        if not src or src.startswith('data:'):
            continue
        absolute = urljoin(base_url, src)
        if absolute in seen:
            continue
        seen.add(absolute)
        images.append(absolute)
        if len(images) >= MAX_IMAGES:
            break
    return images


def extract_listing(html: str, url: str) -> Dict[str, Any]:
    """
    Pull basic listing fields out of a page.

    Args:
        html: Page HTML
        url: Page URL, used to absolutize image links

    Returns:
        Dictionary with title, description, price, images and canonical_url
    """
    soup = BeautifulSoup(html, 'html.parser')

    title = _meta_content(soup, 'meta[property="og:title"]')
    if not title:
        h1 = soup.find('h1')
        title_elem = h1 or soup.find('title')
        title = _clean(title_elem.get_text()) if title_elem else ''

    description = _meta_content(
        soup,
        'meta[property="og:description"]',
        'meta[name="description"]',
    )

    canonical = soup.find('link', rel='canonical')
    canonical_url = canonical.get('href') if canonical and canonical.get('href') else url

    listing = {
        'title': title,
        'description': description,
        'price': _extract_price(soup),
        'images': _extract_images(soup, url),
        'canonical_url': canonical_url,
        'extracted_at': datetime.now(timezone.utc).isoformat(),
    }
    logger.debug(f"Extracted '{title[:60]}' with {len(listing['images'])} images from {url}")
    return listing
