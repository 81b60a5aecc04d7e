#!/usr/bin/env python3
"""
Record layouts for articles, revisions and story clusters.

Records are plain dicts so they serialize straight to JSON for the snapshot
cache. Article keys:

    id, title, link, pub_date (Unix seconds), content, short_content, image,
    source, source_id, source_color, category, sentiment,
    is_new, is_cached, is_updated, revisions

A revision is ``{title, content, updated_at}``. A story cluster is
``{id, primary, related, count, sources, is_cluster}``.
"""

from copy import deepcopy
from typing import Any, Dict, List, Optional
from uuid import uuid4

from config import config
from utils import truncate_string

CATEGORIES = (
    'Sports',
    'Politics',
    'Entertainment',
    'Business',
    'Technology',
    'Health',
    'World',
    'Lifestyle',
    'General',
)

DEFAULT_CATEGORY = 'General'

# Shown when a feed item carries no body at all
CONTENT_PLACEHOLDER = 'বিস্তারিত পড়তে মূল সাইটে যান।'


def article_id_for(link: Optional[str]) -> str:
    """Stable identity for an article: its link, or a random token when there is none."""
    link = (link or "").strip()
    if link:
        return link
    return uuid4().hex


def make_short_content(content: str, limit: Optional[int] = None) -> str:
    """Preview text: the first ``limit`` characters followed by an ellipsis."""
    limit = limit or config.SHORT_CONTENT_LENGTH
    return truncate_string(content or "", limit + 3)


def new_article(
    *,
    title: str,
    link: str,
    pub_date: int,
    source: Dict[str, Any],
    content: str = "",
    image: Optional[str] = None,
    category: str = DEFAULT_CATEGORY,
    sentiment: str = 'neutral',
) -> Dict[str, Any]:
    """Build a freshly discovered article record for ``source``."""
    content = content or CONTENT_PLACEHOLDER
    return {
        'id': article_id_for(link),
        'title': title,
        'link': link,
        'pub_date': int(pub_date),
        'content': content,
        'short_content': make_short_content(content),
        'image': image or None,
        'source': source['name'],
        'source_id': source['id'],
        'source_color': source.get('color'),
        'category': category,
        'sentiment': sentiment,
        'is_new': True,
        'is_cached': False,
        'is_updated': False,
        'revisions': [],
    }


def new_revision(title: str, content: str, updated_at: int) -> Dict[str, Any]:
    return {'title': title, 'content': content, 'updated_at': int(updated_at)}


def copy_article(article: Dict[str, Any]) -> Dict[str, Any]:
    """Independent copy of an article, revisions included."""
    return deepcopy(article)


def new_cluster(members: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Story cluster from members already ordered newest first."""
    primary = members[0]
    sources: List[str] = []
    for item in members:
        if item.get('source') not in sources:
            sources.append(item.get('source'))
    return {
        'id': primary['id'],
        'primary': primary,
        'related': members[1:],
        'count': len(members),
        'sources': sources,
        'is_cluster': len(members) > 1,
    }
