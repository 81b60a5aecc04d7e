#!/usr/bin/env python3
"""
Full article extraction for the reader view.

Feeds usually carry a teaser only. The article page is fetched through the
relay layer and the body located with per-source selectors, generic
selectors, readability, and finally a paragraph sweep.
"""

from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup
from readability import Document

from config import config, get_logger
from image_scraper import extract_lead_image
from normalizer import extract_text
from telemetry import trace_span

logger = get_logger("article_scraper")

UNWANTED_SELECTORS = [
    'script', 'style', 'nav', 'header', 'footer', 'aside', 'noscript', 'iframe',
    '.sidebar', '.advertisement', '.ad', '.social-share', '.related-news',
    '.comments', '.author-bio', '.breadcrumb', '.navigation', '.menu',
]

SOURCE_CONTENT_SELECTORS: Dict[str, List[str]] = {
    'jago-news': ['.news-content', '.article-content', '.news-details'],
    'risingbd': ['.article-content', '.news-details', '.content-body'],
    'prothom-alo': ['.story-content', '.story-element-text', 'article'],
    'bdnews24': ['.article-content', '.print-only', '.custombody'],
    'somoy-tv': ['.news-content', '.article-body', '.content'],
    'ntv': ['.news-details', '.article-content', '.content'],
    'channel-i': ['.news-details', '.article-content'],
    'daily-star': ['.article-content', '.story-content', '.node-content'],
}

GENERIC_CONTENT_SELECTORS = [
    'article',
    '[itemprop="articleBody"]',
    '.article-body',
    '.article-content',
    '.news-content',
    '.story-content',
    '.post-content',
    '.entry-content',
    '.content-body',
    '.news-details',
    '.main-content',
    'main',
]

MIN_BLOCK_TEXT = 200
MIN_PARAGRAPH_TEXT = 50
MIN_ARTICLE_TEXT = 100


def _content_by_selectors(soup: BeautifulSoup, source_id: Optional[str]) -> Optional[str]:
    for selector in SOURCE_CONTENT_SELECTORS.get(source_id or '', []) + GENERIC_CONTENT_SELECTORS:
        element = soup.select_one(selector)
        if element is not None and len(element.get_text(strip=True)) > MIN_BLOCK_TEXT:
            return element.decode_contents()
    return None


def _content_by_readability(html: str) -> Optional[str]:
    try:
        summary = Document(html).summary()
    except (ValueError, RuntimeError, TypeError) as e:
        logger.debug(f"Readability failed: {e}")
        return None
    if summary and len(BeautifulSoup(summary, 'html.parser').get_text(strip=True)) > MIN_BLOCK_TEXT:
        return summary
    return None


def _content_by_paragraphs(soup: BeautifulSoup) -> Optional[str]:
    paragraphs = [str(p) for p in soup.find_all('p') if len(p.get_text(strip=True)) > MIN_PARAGRAPH_TEXT]
    return ''.join(paragraphs) or None


def extract_article(html: str, source_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """Body text and lead image from an article page, or None when too little text is found."""
    if not html:
        return None
    image = extract_lead_image(html)

    soup = BeautifulSoup(html, 'html.parser')
    for element in soup.select(', '.join(UNWANTED_SELECTORS)):
        element.decompose()

    content_html = (
        _content_by_selectors(soup, source_id)
        or _content_by_readability(str(soup))
        or _content_by_paragraphs(soup)
    )
    if not content_html:
        return None

    # Figures and inline images are covered by the lead image
    fragment = BeautifulSoup(content_html, 'html.parser')
    for element in fragment.find_all(['figure', 'img']):
        element.decompose()
    content = extract_text(str(fragment))
    if len(content) <= MIN_ARTICLE_TEXT:
        return None
    return {'content': content, 'image': image}


class ArticleScraper:
    def __init__(self, fetcher):
        self.fetcher = fetcher

    @trace_span(
        "article_scraper.scrape_article",
        attr_from_args=lambda self, url, source_id=None: {"http.url": str(url), "source.id": str(source_id)},
    )
    async def scrape_article(self, url: str, source_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Fetch and extract ``{content, image}`` for an article URL, or None."""
        if not url:
            return None
        logger.info(f"Scraping article from: {url}")
        html = await self.fetcher.fetch_text(url, timeout=config.ARTICLE_HTTP_TIMEOUT)
        if not html:
            logger.warning(f"Failed to fetch article {url}")
            return None
        result = extract_article(html, source_id)
        if result is None:
            logger.warning(f"Could not extract article content from {url}")
            return None
        logger.info(f"Scraped {len(result['content'])} characters from {url}")
        return result
