#!/usr/bin/env python3
"""
RSS/Atom feed parsing into article records.

Feed documents are decoded with feedparser. Image and content extraction are
ordered lists of small strategy functions; the first one returning a value
wins, so adding a new feed quirk means adding a function, not editing a
cascade.
"""

import calendar
import re
from html import unescape
from time import time
from typing import Any, Callable, Dict, List, Optional

import feedparser

from classifier import classify, sentiment
from config import config, get_logger
from errors import FeedParseError
from models import new_article
from normalizer import extract_text, nfc, parse_localized_date
from telemetry import trace_span

logger = get_logger("feed_parser")

DAY_IN_SECONDS = 86400

# Encoding mismatches are reported through ``bozo`` but the document is fine
_BENIGN_BOZO = (feedparser.CharacterEncodingOverride, feedparser.NonXMLContentType)

_ITEM_FRAGMENT_RE = re.compile(r'<(item|entry)\b[^>]*>.*?</\1\s*>', re.IGNORECASE | re.DOTALL)
_IMAGE_EXTENSION_RE = re.compile(r'\.(jpg|jpeg|png|gif|webp)', re.IGNORECASE)
_FEATURED_IMAGE_RES = [
    re.compile(
        r'<(?:[\w-]+:)?(?:post-thumbnail|featured-image)\b[^>]*>\s*'
        r'<(?:[\w-]+:)?url\b[^>]*>\s*(?:<!\[CDATA\[)?\s*([^<\]\s]+)',
        re.IGNORECASE,
    ),
    re.compile(
        r'<(?:[\w-]+:)?(?:post-thumbnail|featured-image)\b[^>]*>\s*(?:<!\[CDATA\[)?\s*(https?://[^<\]\s]+)',
        re.IGNORECASE,
    ),
]
_MARKUP_IMAGE_RES = [
    re.compile(r'<img[^>]+src=["\']([^"\']+)["\']', re.IGNORECASE),
    re.compile(r'<img[^>]+src=([^\s>]+)', re.IGNORECASE),
    re.compile(r'src=["\'](https?://[^"\']+\.(?:jpg|jpeg|png|gif|webp)[^"\']*)["\']', re.IGNORECASE),
    re.compile(r'(https?://[^\s<>"]+\.(?:jpg|jpeg|png|gif|webp))', re.IGNORECASE),
]
_OG_IMAGE_RE = re.compile(r'og:image[^>]+content=["\']([^"\']+)["\']', re.IGNORECASE)

ImageStrategy = Callable[[Any, str, str], Optional[str]]
ContentStrategy = Callable[[Any], Optional[str]]


def _clean_image_url(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    url = unescape(url.strip().strip('"\''))
    if url.startswith('//'):
        url = 'https:' + url
    if not url.startswith(('http://', 'https://')):
        return None
    return url


def image_from_enclosure(entry, fragment: str, raw_xml: str) -> Optional[str]:
    for enclosure in entry.get('enclosures') or []:
        href = enclosure.get('href') or enclosure.get('url')
        if not href:
            continue
        if _IMAGE_EXTENSION_RE.search(href) or str(enclosure.get('type', '')).startswith('image/'):
            return href
    return None


def image_from_media_content(entry, fragment: str, raw_xml: str) -> Optional[str]:
    for media in entry.get('media_content') or []:
        if media.get('url'):
            return media['url']
    return None


def image_from_media_thumbnail(entry, fragment: str, raw_xml: str) -> Optional[str]:
    for thumbnail in entry.get('media_thumbnail') or []:
        if thumbnail.get('url'):
            return thumbnail['url']
    return None


def image_from_featured_tag(entry, fragment: str, raw_xml: str) -> Optional[str]:
    """WordPress ``<post-thumbnail><url>`` / ``<featured-image>`` extensions."""
    for pattern in _FEATURED_IMAGE_RES:
        match = pattern.search(fragment or '')
        if match:
            return match.group(1)
    return None


def image_from_markup(entry, fragment: str, raw_xml: str) -> Optional[str]:
    """First image referenced by the description or content HTML."""
    markup = (entry.get('summary') or '') + ''.join(
        c.get('value') or '' for c in entry.get('content') or []
    )
    for pattern in _MARKUP_IMAGE_RES:
        match = pattern.search(markup)
        if match and match.group(1):
            return match.group(1).replace('&amp;', '&')
    return None


def image_from_og_meta(entry, fragment: str, raw_xml: str) -> Optional[str]:
    match = _OG_IMAGE_RE.search(raw_xml or '')
    return match.group(1) if match else None


IMAGE_STRATEGIES: List[ImageStrategy] = [
    image_from_enclosure,
    image_from_media_content,
    image_from_media_thumbnail,
    image_from_featured_tag,
    image_from_markup,
    image_from_og_meta,
]


def content_from_encoded(entry) -> Optional[str]:
    """``content:encoded`` and Atom ``<content>`` both land in ``entry.content``."""
    for content in entry.get('content') or []:
        value = content.get('value')
        if value and value.strip():
            return value
    return None


def content_from_summary(entry) -> Optional[str]:
    """RSS ``<description>`` and Atom ``<summary>`` both land in ``entry.summary``."""
    value = entry.get('summary') or entry.get('description')
    return value if value and value.strip() else None


CONTENT_STRATEGIES: List[ContentStrategy] = [
    content_from_encoded,
    content_from_summary,
]


def extract_image(entry, fragment: str = '', raw_xml: str = '') -> Optional[str]:
    for strategy in IMAGE_STRATEGIES:
        url = _clean_image_url(strategy(entry, fragment, raw_xml))
        if url:
            return url
    return None


def extract_content(entry) -> str:
    for strategy in CONTENT_STRATEGIES:
        html_content = strategy(entry)
        if html_content:
            text = extract_text(html_content)
            if text:
                return text
    return ""


def extract_link(entry) -> str:
    link = (entry.get('link') or '').strip()
    if link:
        return link
    for candidate in entry.get('links') or []:
        if candidate.get('href'):
            return candidate['href'].strip()
    return ''


def extract_pub_date(entry, now: Optional[int] = None) -> int:
    """Entry publish time, falling back to ``now`` when nothing parses."""
    for field in ('published', 'pubDate', 'updated', 'created'):
        timestamp = parse_localized_date(entry.get(field))
        if timestamp:
            return timestamp
    for field in ('published_parsed', 'updated_parsed', 'created_parsed'):
        time_struct = entry.get(field)
        if time_struct:
            try:
                return calendar.timegm(time_struct)
            except (TypeError, ValueError, OverflowError):
                continue
    return int(now if now is not None else time())


def decode_feed(xml_text: str, source_id: Optional[str] = None):
    """Decode a feed document, raising FeedParseError when it is not a usable feed."""
    if not xml_text or ('<item' not in xml_text and '<entry' not in xml_text):
        raise FeedParseError("No items in feed", source_id=source_id)
    parsed = feedparser.parse(xml_text)
    if parsed.get('bozo') and not isinstance(parsed.get('bozo_exception'), _BENIGN_BOZO):
        raise FeedParseError(f"XML parse error: {parsed.get('bozo_exception')}", source_id=source_id)
    if not parsed.entries:
        raise FeedParseError("No items found", source_id=source_id)
    return parsed


def _item_fragments(xml_text: str, expected: int) -> List[str]:
    fragments = [m.group(0) for m in _ITEM_FRAGMENT_RE.finditer(xml_text)]
    if len(fragments) != expected:
        # Nested or unusual markup; skip fragment-based strategies
        return [''] * expected
    return fragments


@trace_span(
    "feed_parser.parse_feed",
    attr_from_args=lambda xml_text, source, allow_old=False, now=None: {
        "source.id": str(source.get('id')),
        "feed.allow_old": bool(allow_old),
    },
)
def parse_feed(
    xml_text: str,
    source: Dict[str, Any],
    allow_old: bool = False,
    now: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """Parse an RSS/Atom document into article records for ``source``.

    Items without a title are skipped. Unless ``allow_old`` is set, items
    older than ``config.MAX_AGE_DAYS`` are dropped. Malformed documents yield
    an empty list.
    """
    source_name = source.get('name', source.get('id'))
    try:
        parsed = decode_feed(xml_text, source.get('id'))
    except FeedParseError as e:
        logger.warning(f"Feed for {source_name} unusable: {e}")
        return []

    now = int(now if now is not None else time())
    cutoff = now - config.MAX_AGE_DAYS * DAY_IN_SECONDS
    fragments = _item_fragments(xml_text, len(parsed.entries))

    articles = []
    for entry, fragment in zip(parsed.entries, fragments):
        title = nfc((entry.get('title') or '').strip())
        if not title:
            continue

        pub_date = extract_pub_date(entry, now)
        if not allow_old and pub_date < cutoff:
            continue

        content = extract_content(entry)
        articles.append(new_article(
            title=title,
            link=extract_link(entry),
            pub_date=pub_date,
            source=source,
            content=content,
            image=extract_image(entry, fragment, xml_text),
            category=classify(f"{title} {content}"),
            sentiment=sentiment(f"{title} {content}"),
        ))

    logger.info(f"Feed {source_name} parsed: {len(articles)} items")
    return articles
