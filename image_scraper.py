#!/usr/bin/env python3
"""
Lead image recovery for articles that arrived without one.

Article pages are fetched through the relay layer and searched for a lead
image. Results, including "no image found", go into an ``ImageCache`` whose
entries carry their own write time and expire after a TTL.
"""

from asyncio import sleep
from time import time
from typing import Any, Callable, Dict, Iterable, List, Optional

from bs4 import BeautifulSoup

from config import config, get_logger
from storage import IMAGE_CACHE_KEY
from telemetry import trace_span

logger = get_logger("image_scraper")

IMAGE_SELECTORS = [
    'meta[property="og:image"]',
    'meta[name="og:image"]',
    'meta[name="twitter:image"]',
    'meta[property="twitter:image"]',
    'meta[itemprop="image"]',
    '.featured-image img',
    '.post-thumbnail img',
    '.article-image img',
    '.news-image img',
    '.entry-thumb img',
    'article img',
    '.article-content img',
    '.news-content img',
    '.story-content img',
    'main img',
    '.content img',
]

REJECTED_IMAGE_MARKERS = ('logo', 'icon', 'avatar', 'placeholder', '1x1', 'blank')

FoundCallback = Callable[[str, str], None]


def is_acceptable_image(url: Optional[str]) -> bool:
    if not url:
        return False
    lowered = url.lower()
    return not any(marker in lowered for marker in REJECTED_IMAGE_MARKERS)


def extract_lead_image(html: str) -> Optional[str]:
    """First acceptable image from the ordered selector list, or None."""
    if not html:
        return None
    soup = BeautifulSoup(html, 'html.parser')
    for selector in IMAGE_SELECTORS:
        element = soup.select_one(selector)
        if element is None:
            continue
        image_url = element.get('content') or element.get('src') or element.get('data-src')
        if not image_url:
            continue
        image_url = image_url.strip()
        if image_url.startswith('//'):
            image_url = 'https:' + image_url
        if is_acceptable_image(image_url):
            return image_url
    return None


class ImageCache:
    """Article URL to image URL (or None), each entry stamped with its write time."""

    def __init__(self, ttl_seconds: Optional[int] = None, clock: Callable[[], float] = time):
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else config.IMAGE_CACHE_TTL_HOURS * 3600
        self._clock = clock
        self._entries: Dict[str, Dict[str, Any]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def _is_fresh(self, entry: Dict[str, Any]) -> bool:
        return self._clock() - entry.get('stored_at', 0) < self.ttl_seconds

    def has(self, url: str) -> bool:
        """True when a fresh entry exists, including cached misses."""
        entry = self._entries.get(url)
        if entry is None:
            return False
        if not self._is_fresh(entry):
            del self._entries[url]
            return False
        return True

    def get(self, url: str) -> Optional[str]:
        return self._entries[url]['image'] if self.has(url) else None

    def set(self, url: str, image: Optional[str]) -> None:
        self._entries[url] = {'image': image, 'stored_at': int(self._clock())}

    def clear(self) -> None:
        self._entries.clear()

    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        return {url: dict(entry) for url, entry in self._entries.items() if self._is_fresh(entry)}

    def update_from(self, data: Optional[Dict[str, Any]]) -> int:
        """Merge persisted entries, skipping expired or malformed ones. Returns the count kept."""
        kept = 0
        for url, entry in (data or {}).items():
            if not isinstance(entry, dict) or 'stored_at' not in entry:
                continue
            if self._is_fresh(entry):
                self._entries[url] = {'image': entry.get('image'), 'stored_at': int(entry['stored_at'])}
                kept += 1
        return kept

    async def load(self, store) -> int:
        data = await store.execute('get_value', key=IMAGE_CACHE_KEY)
        kept = self.update_from(data if isinstance(data, dict) else None)
        logger.info(f"Loaded {kept} cached images")
        return kept

    async def persist(self, store) -> None:
        await store.execute('set_value', key=IMAGE_CACHE_KEY, value=self.to_dict())


class ImageScraper:
    """Recovers missing lead images from article pages."""

    def __init__(self, fetcher, cache: Optional[ImageCache] = None, store=None):
        self.fetcher = fetcher
        self.cache = cache if cache is not None else ImageCache()
        self.store = store

    async def scrape_image(self, url: str) -> Optional[str]:
        if self.cache.has(url):
            return self.cache.get(url)
        html = await self.fetcher.fetch_text(url)
        if not html:
            # Transport failure is not a verdict; try again next time
            return None
        image = extract_lead_image(html)
        self.cache.set(url, image)
        return image

    def apply_cached(self, articles: Iterable[Dict[str, Any]], on_found: FoundCallback) -> int:
        applied = 0
        for article in articles:
            if article.get('image') or not article.get('link'):
                continue
            image = self.cache.get(article['link'])
            if image:
                on_found(article['id'], image)
                applied += 1
        return applied

    @trace_span(
        "image_scraper.scrape_images",
        attr_from_args=lambda self, articles, on_found: {"articles.count": len(articles or [])},
    )
    async def scrape_images_for_articles(self, articles: List[Dict[str, Any]], on_found: FoundCallback) -> int:
        """Find images for articles that lack one, calling ``on_found(article_id, url)`` per hit.

        Returns the number of images found, cached ones included.
        """
        found = self.apply_cached(articles, on_found)
        if found:
            logger.info(f"Applied {found} cached images")

        pending = [
            a for a in articles
            if not a.get('image') and a.get('link') and not self.cache.has(a['link'])
        ]
        if not pending:
            return found

        logger.info(f"Scraping images for {len(pending)} articles")
        for index, article in enumerate(pending):
            image = await self.scrape_image(article['link'])
            if image:
                on_found(article['id'], image)
                found += 1
            if index + 1 < len(pending) and config.IMAGE_SCRAPE_DELAY > 0:
                await sleep(config.IMAGE_SCRAPE_DELAY)

        if self.store is not None:
            await self.cache.persist(self.store)
        logger.info(f"Image scraping complete: {found} found")
        return found
