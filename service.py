#!/usr/bin/env python3
"""
News service: the library-level feed controller.

Owns the current article snapshot and drives fetch, reconcile, persist,
image recovery and the derived views (filters, pages, clusters). Refreshes
are single-flight: overlapping calls queue on a lock so each reconciliation
runs against the snapshot left by the previous one.
"""

from asyncio import Event, Lock, TimeoutError, wait_for
from time import time
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from aggregator import NewsAggregator
from article_scraper import ArticleScraper
from clustering import cluster_articles, related_articles, trending_topics
from config import config, get_logger
from errors import StorageError
from image_scraper import ImageCache, ImageScraper
from merge import apply_found_image, open_article, reconcile
from proxy import ProxyFetcher
from storage import BOOKMARKS_KEY, NEWS_CACHE_KEY, READ_IDS_KEY, NewsStore
from telemetry import trace_span

logger = get_logger("service")

ALL_CATEGORIES = 'All'


class NewsService:
    def __init__(
        self,
        store: Optional[NewsStore] = None,
        aggregator: Optional[NewsAggregator] = None,
        image_scraper: Optional[ImageScraper] = None,
        article_scraper: Optional[ArticleScraper] = None,
    ) -> None:
        self.store = store or NewsStore()
        fetcher = aggregator.fetcher if aggregator is not None else ProxyFetcher()
        self.aggregator = aggregator or NewsAggregator(fetcher)
        self.image_scraper = image_scraper or ImageScraper(fetcher, ImageCache(), self.store)
        self.article_scraper = article_scraper or ArticleScraper(fetcher)
        self.articles: List[Dict[str, Any]] = []
        self.read_ids: Set[str] = set()
        self.bookmarks: List[str] = []
        self.last_updated: Optional[int] = None
        self._refresh_lock = Lock()

    async def start(self) -> None:
        await self.store.start()
        await self.image_scraper.cache.load(self.store)
        await self.load_cached()

    async def close(self) -> None:
        await self.aggregator.close()
        await self.store.stop()

    async def __aenter__(self) -> "NewsService":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def _persist(self, key: str, value: Any) -> None:
        try:
            await self.store.execute('set_value', key=key, value=value)
        except StorageError as e:
            logger.error(f"Could not persist {key}: {e}")

    async def load_cached(self, now: Optional[int] = None) -> List[Dict[str, Any]]:
        """Restore the cached snapshot, read ids and bookmarks; stale items are dropped."""
        now = int(now if now is not None else time())
        cutoff = now - config.CACHE_MAX_AGE_HOURS * 3600

        self.read_ids = set(await self.store.execute('get_value', key=READ_IDS_KEY) or [])
        self.bookmarks = list(await self.store.execute('get_value', key=BOOKMARKS_KEY) or [])

        cached = await self.store.execute('get_value', key=NEWS_CACHE_KEY) or []
        fresh = [a for a in cached if isinstance(a, dict) and (a.get('pub_date') or 0) > cutoff]
        if cached and not fresh:
            logger.info("All cached articles are stale, discarding cache")
            await self.store.execute('remove_value', key=NEWS_CACHE_KEY)
        self.articles = fresh
        logger.info(f"Loaded {len(fresh)} cached articles ({len(self.read_ids)} read, {len(self.bookmarks)} bookmarked)")
        return self.articles

    @trace_span(
        "service.refresh",
        attr_from_args=lambda self, is_auto_refresh=False, on_progress=None: {"refresh.auto": bool(is_auto_refresh)},
    )
    async def refresh(
        self,
        is_auto_refresh: bool = False,
        on_progress: Optional[Callable[[int, int], None]] = None,
    ) -> List[Dict[str, Any]]:
        """Fetch all sources and reconcile them into the snapshot.

        When nothing could be fetched the previous snapshot is kept as is.
        """
        if self._refresh_lock.locked():
            logger.info("Refresh already in progress, waiting for it to finish")
        async with self._refresh_lock:
            incoming = await self.aggregator.fetch_news(on_progress=on_progress)
            if not incoming:
                logger.warning("No articles fetched from any source, keeping previous snapshot")
                return self.articles

            self.articles = reconcile(self.articles, incoming, self.read_ids, is_auto_refresh)
            self.last_updated = int(time())
            await self._persist(NEWS_CACHE_KEY, self.articles)
            logger.info(f"Snapshot now holds {len(self.articles)} articles")
            return self.articles

    async def search(self, query: str) -> List[Dict[str, Any]]:
        return await self.aggregator.search_news(query)

    def get_article(self, article_id: str) -> Optional[Dict[str, Any]]:
        for article in self.articles:
            if article.get('id') == article_id:
                return article
        return None

    async def open_article(self, article_id: str) -> Optional[Dict[str, Any]]:
        """Mark an article as read and persist the change."""
        already_read = article_id in self.read_ids
        article = open_article(self.articles, article_id, self.read_ids)
        if article is None:
            return None
        if not already_read:
            await self._persist(READ_IDS_KEY, sorted(self.read_ids))
        await self._persist(NEWS_CACHE_KEY, self.articles)
        return article

    async def read_full_article(self, article_id: str) -> Optional[Dict[str, Any]]:
        """Open an article and replace its teaser with the scraped full text when available."""
        article = await self.open_article(article_id)
        if article is None:
            return None
        result = await self.article_scraper.scrape_article(article.get('link'), article.get('source_id'))
        if result:
            article = dict(article, content=result['content'])
            if not article.get('image') and result.get('image'):
                article['image'] = result['image']
        return article

    async def toggle_bookmark(self, article_id: str) -> bool:
        """Flip the bookmark state; returns True when the article is now bookmarked."""
        if article_id in self.bookmarks:
            self.bookmarks.remove(article_id)
            bookmarked = False
        else:
            self.bookmarks.append(article_id)
            bookmarked = True
        await self._persist(BOOKMARKS_KEY, self.bookmarks)
        return bookmarked

    def bookmarked_articles(self) -> List[Dict[str, Any]]:
        by_id = {a['id']: a for a in self.articles}
        return [by_id[i] for i in self.bookmarks if i in by_id]

    async def save_offline(self, article_id: str) -> bool:
        article = self.get_article(article_id)
        if article is None:
            return False
        return await self.store.execute('save_offline', article=article)

    def filter_articles(
        self,
        category: str = ALL_CATEGORIES,
        query: str = "",
        articles: Optional[List[Dict[str, Any]]] = None,
    ) -> List[Dict[str, Any]]:
        """Articles in ``category`` whose title or source name contains ``query``."""
        result = self.articles if articles is None else articles
        if category and category != ALL_CATEGORIES:
            result = [a for a in result if a.get('category') == category]
        needle = (query or '').strip().lower()
        if needle:
            result = [
                a for a in result
                if needle in (a.get('title') or '').lower() or needle in (a.get('source') or '').lower()
            ]
        return result

    @staticmethod
    def paginate(articles: List[Dict[str, Any]], page: int, per_page: Optional[int] = None) -> Tuple[List[Dict[str, Any]], bool]:
        """Everything up to the end of ``page`` (1-based) and whether more remain."""
        per_page = per_page or config.ITEMS_PER_PAGE
        end = max(page, 1) * per_page
        return articles[:end], end < len(articles)

    def clusters(self, articles: Optional[List[Dict[str, Any]]] = None) -> List[Dict[str, Any]]:
        return cluster_articles(self.articles if articles is None else articles)

    def trending(self, limit: int = 8) -> List[str]:
        return trending_topics(self.articles, limit)

    def related(self, article_id: str, limit: int = 4) -> List[Dict[str, Any]]:
        article = self.get_article(article_id)
        if article is None:
            return []
        return related_articles(article, self.articles, limit)

    async def recover_images(self) -> int:
        """Scrape lead images for articles without one and persist the patched snapshot."""
        def on_found(article_id: str, image_url: str) -> None:
            apply_found_image(self.articles, article_id, image_url)

        found = await self.image_scraper.scrape_images_for_articles(list(self.articles), on_found)
        if found:
            await self._persist(NEWS_CACHE_KEY, self.articles)
        return found

    async def run_auto_refresh(self, stop_event: Event, interval: Optional[int] = None) -> None:
        """Refresh silently every ``interval`` seconds until ``stop_event`` is set."""
        interval = interval or config.AUTO_REFRESH_INTERVAL
        logger.info(f"Auto refresh every {interval}s")
        while not stop_event.is_set():
            try:
                await self.refresh(is_auto_refresh=True)
                await self.recover_images()
            except StorageError as e:
                logger.error(f"Auto refresh could not persist: {e}")
            try:
                await wait_for(stop_event.wait(), timeout=interval)
            except TimeoutError:
                continue
        logger.info("Auto refresh stopped")
