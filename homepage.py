#!/usr/bin/env python3
"""
Homepage headline extraction.

Feeds often lag behind a site's front page, so each source's homepage is
scanned for headline links as well. Selectors come from a per-source strategy
registry; sources without an entry use the generic strategy.
"""

import re
from time import time
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from classifier import classify, sentiment
from config import config, get_logger
from models import new_article
from normalizer import nfc, parse_localized_date
from telemetry import trace_span
from utils import resolve_url, url_origin

logger = get_logger("homepage")

GENERIC_HEADLINE_SELECTORS = [
    'h1 a', 'h2 a', 'h3 a', 'h4 a',
    '.title a', '.headline a', '.news-title a', '.post-title a',
    'a.title', 'a.headline', 'a.news-title',
]
DATE_SELECTORS = '.date, .time, .publish-time, .published, .post-date, [class*="date"]'
BLOCK_TAGS = ['article', 'li', 'div', 'section', 'figure']
IMAGE_ATTRIBUTES = ('data-src', 'data-original', 'data-lazy-src', 'src')

# Fallback scan: any anchor whose text is longer than this
FALLBACK_MIN_TEXT_LENGTH = 20
# Shorter selector hits are section labels, not headlines
MIN_HEADLINE_LENGTH = 10


class HomepageStrategy:
    """Extraction settings for one outlet's homepage."""

    def __init__(self, headline_selectors: Optional[List[str]] = None) -> None:
        self.headline_selectors = list(headline_selectors or []) + GENERIC_HEADLINE_SELECTORS

    def headline_anchors(self, soup: BeautifulSoup) -> List[Any]:
        """Anchors matched by the headline selectors, in document order."""
        anchors = []
        seen = set()
        for element in soup.select(', '.join(self.headline_selectors)):
            anchor = element if element.name == 'a' else element.find('a', href=True)
            if anchor is None or not anchor.get('href') or id(anchor) in seen:
                continue
            seen.add(id(anchor))
            anchors.append(anchor)
        return anchors

    def fallback_anchors(self, soup: BeautifulSoup) -> List[Any]:
        anchors = []
        for anchor in soup.find_all('a', href=True):
            href = anchor['href'].strip()
            if not href or href.startswith('#') or href.lower().startswith('javascript:'):
                continue
            if len(anchor.get_text(' ', strip=True)) > FALLBACK_MIN_TEXT_LENGTH:
                anchors.append(anchor)
        return anchors


GENERIC_STRATEGY = HomepageStrategy()

HOMEPAGE_STRATEGIES: Dict[str, HomepageStrategy] = {
    'jago-news': HomepageStrategy(['.lead-news a', '.single-block a', '.media-heading a']),
    'risingbd': HomepageStrategy(['.lead-news a', '.top-news a', '.news-list a']),
    'prothom-alo': HomepageStrategy(['.headline-title a', '.newsHeadline-m__title-link', '.card-with-image-zoom a']),
    'bdnews24': HomepageStrategy(['.SubCat-wrapper a', '.lead-news a', '.top-news a']),
    'somoy-tv': HomepageStrategy(['.lead-news a', '.top-news a', '.title-wrap a']),
    'ntv': HomepageStrategy(['.lead-news a', '.bulletin a', '.news-list a']),
    'channel-i': HomepageStrategy(['.lead-news a', '.entry-title a']),
    'daily-star': HomepageStrategy(['.card-content .title a', '.lead-news a']),
}


def get_strategy(source_id: Optional[str]) -> HomepageStrategy:
    return HOMEPAGE_STRATEGIES.get(source_id or '', GENERIC_STRATEGY)


def register_strategy(source_id: str, strategy: HomepageStrategy) -> None:
    HOMEPAGE_STRATEGIES[source_id] = strategy


def _image_from(container) -> Optional[str]:
    if container is None or not hasattr(container, 'find_all'):
        return None
    for img in container.find_all('img'):
        for attr in IMAGE_ATTRIBUTES:
            value = (img.get(attr) or '').strip()
            if value and not value.startswith('data:'):
                return value
    return None


def find_nearby_image(anchor, base_url: str) -> Optional[str]:
    """Image in the anchor's closest block ancestor, then in that block's previous sibling."""
    block = anchor.find_parent(BLOCK_TAGS)
    candidates = [anchor, block]
    if block is not None:
        candidates.append(block.find_previous_sibling())
    for container in candidates:
        image = _image_from(container)
        if image:
            return resolve_url(image, base_url)
    return None


def find_nearby_date(anchor) -> Optional[int]:
    block = anchor.find_parent(BLOCK_TAGS)
    if block is None:
        return None
    time_tag = block.find('time')
    if time_tag is not None:
        timestamp = parse_localized_date(time_tag.get('datetime')) or parse_localized_date(time_tag.get_text(' ', strip=True))
        if timestamp:
            return timestamp
    date_tag = block.select_one(DATE_SELECTORS)
    if date_tag is not None:
        return parse_localized_date(date_tag.get_text(' ', strip=True))
    return None


def _headline_text(anchor) -> str:
    text = anchor.get_text(' ', strip=True) or anchor.get('title', '')
    return nfc(re.sub(r'\s+', ' ', text).strip())


def _is_article_path(url: str) -> bool:
    try:
        path = urlparse(url).path
    except ValueError:
        return False
    return path not in ('', '/')


@trace_span(
    "homepage.extract",
    attr_from_args=lambda html, source, now=None: {"source.id": str(source.get('id'))},
)
def extract_homepage_articles(html: str, source: Dict[str, Any], now: Optional[int] = None) -> List[Dict[str, Any]]:
    """Headline articles from a homepage document, in DOM order, capped at ``HOMEPAGE_ITEM_LIMIT``."""
    if not html:
        return []
    base_url = source.get('homepage') or source.get('url') or ''
    origin = url_origin(base_url) or base_url
    now = int(now if now is not None else time())

    soup = BeautifulSoup(html, 'html.parser')
    strategy = get_strategy(source.get('id'))
    anchors = strategy.headline_anchors(soup)
    min_length = MIN_HEADLINE_LENGTH
    if not anchors:
        logger.debug(f"No headline selectors matched for {source.get('id')}, scanning all links")
        anchors = strategy.fallback_anchors(soup)
        min_length = FALLBACK_MIN_TEXT_LENGTH

    articles = []
    seen_links = set()
    for anchor in anchors:
        if len(articles) >= config.HOMEPAGE_ITEM_LIMIT:
            break
        link = resolve_url(anchor.get('href'), origin + '/')
        if not link or not _is_article_path(link) or link in seen_links:
            continue
        title = _headline_text(anchor)
        if len(title) < min_length:
            continue
        seen_links.add(link)

        index = len(articles)
        pub_date = find_nearby_date(anchor) or now - index * config.HOMEPAGE_STAGGER_SECONDS
        articles.append(new_article(
            title=title,
            link=link,
            pub_date=pub_date,
            source=source,
            image=find_nearby_image(anchor, origin + '/'),
            category=classify(title),
            sentiment=sentiment(title),
        ))
    return articles


async def scrape_homepage(source: Dict[str, Any], fetcher) -> List[Dict[str, Any]]:
    """Fetch ``source['homepage']`` through ``fetcher`` and extract its headlines."""
    homepage = source.get('homepage')
    if not homepage:
        return []
    html = await fetcher.fetch_text(homepage)
    if not html:
        logger.warning(f"Homepage for {source.get('name')} could not be fetched")
        return []
    articles = extract_homepage_articles(html, source)
    logger.info(f"Homepage {source.get('name')} scraped: {len(articles)} items")
    return articles
