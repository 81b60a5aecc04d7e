#!/usr/bin/env python3
"""
Source fetch orchestration.

Each source's feed and homepage are fetched concurrently; sources themselves
run one after another with a courtesy delay so the relay services are not
hammered. A failing extractor or source only costs its own items.
"""

from asyncio import gather, sleep
from typing import Any, Callable, Dict, List, Optional

from config import config, get_logger
from feed_parser import parse_feed
from homepage import scrape_homepage
from merge import sort_by_pub_date
from proxy import ProxyFetcher
from telemetry import trace_span
from utils import normalize_url_key

logger = get_logger("aggregator")

ProgressCallback = Callable[[int, int], None]


def merge_source_results(*result_sets: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Concatenate result sets, keeping the first article per normalized URL."""
    merged = []
    seen = set()
    for results in result_sets:
        for article in results:
            key = normalize_url_key(article.get('link') or '') or article['id']
            if key in seen:
                continue
            seen.add(key)
            merged.append(article)
    return merged


class NewsAggregator:
    """Fetches articles from the configured sources through a :class:`ProxyFetcher`."""

    def __init__(self, fetcher: Optional[ProxyFetcher] = None, sources: Optional[List[Dict[str, Any]]] = None) -> None:
        self.fetcher = fetcher or ProxyFetcher()
        self.sources = sources if sources is not None else config.SOURCES

    async def close(self) -> None:
        await self.fetcher.close()

    async def fetch_feed(self, source: Dict[str, Any], allow_old: bool = False) -> List[Dict[str, Any]]:
        if not source.get('url'):
            return []
        xml_text = await self.fetcher.fetch_text(source['url'])
        if not xml_text:
            logger.warning(f"Feed for {source.get('name')}: all relays failed")
            return []
        return parse_feed(xml_text, source, allow_old=allow_old)

    async def fetch_homepage(self, source: Dict[str, Any]) -> List[Dict[str, Any]]:
        return await scrape_homepage(source, self.fetcher)

    @trace_span(
        "aggregator.fetch_source",
        attr_from_args=lambda self, source, allow_old=False: {"source.id": str(source.get('id'))},
    )
    async def fetch_source(self, source: Dict[str, Any], allow_old: bool = False) -> List[Dict[str, Any]]:
        """Feed and homepage items for one source, homepage items first, deduplicated by URL."""
        feed_result, homepage_result = await gather(
            self.fetch_feed(source, allow_old=allow_old),
            self.fetch_homepage(source),
            return_exceptions=True,
        )
        if isinstance(feed_result, BaseException):
            logger.error(f"Feed extraction failed for {source.get('name')}: {feed_result}")
            feed_result = []
        if isinstance(homepage_result, BaseException):
            logger.error(f"Homepage extraction failed for {source.get('name')}: {homepage_result}")
            homepage_result = []

        articles = merge_source_results(homepage_result, feed_result)
        logger.info(
            f"Source {source.get('name')}: {len(articles)} items "
            f"(feed={len(feed_result)}, homepage={len(homepage_result)})"
        )
        return articles

    @trace_span(
        "aggregator.fetch_news",
        attr_from_args=lambda self, sources=None, on_progress=None, allow_old=False: {
            "sources.count": len(sources if sources is not None else self.sources),
        },
    )
    async def fetch_news(
        self,
        sources: Optional[List[Dict[str, Any]]] = None,
        on_progress: Optional[ProgressCallback] = None,
        allow_old: bool = False,
    ) -> List[Dict[str, Any]]:
        """Fetch every source in turn and return all items, newest first.

        ``on_progress(completed, total)`` is called after each source.
        """
        sources = self.sources if sources is None else sources
        total = len(sources)
        all_articles: List[Dict[str, Any]] = []

        for index, source in enumerate(sources):
            try:
                all_articles.extend(await self.fetch_source(source, allow_old=allow_old))
            except Exception as e:
                logger.error(f"Source {source.get('name')} failed: {e}")
            if on_progress:
                on_progress(index + 1, total)
            if index + 1 < total and config.RATE_LIMIT_DELAY > 0:
                await sleep(config.RATE_LIMIT_DELAY)

        logger.info(f"Total items fetched: {len(all_articles)} from {total} sources")
        return sort_by_pub_date(all_articles)

    async def search_news(self, query: str, sources: Optional[List[Dict[str, Any]]] = None) -> List[Dict[str, Any]]:
        """Fetch ignoring the retention horizon and keep items whose title or source matches ``query``."""
        needle = (query or '').strip().lower()
        if not needle:
            return []
        articles = await self.fetch_news(sources, allow_old=True)
        return [
            a for a in articles
            if needle in (a.get('title') or '').lower() or needle in (a.get('source') or '').lower()
        ]
