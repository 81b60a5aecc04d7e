#!/usr/bin/env python3
"""
Reconciliation of freshly fetched articles against the previous snapshot.

Article identity is the ``id`` (the canonical link). For an article seen
before, the first-sighting publish time and any known image are kept, read
state is carried forward, and title/content changes are recorded as
revisions. The result is a new list; inputs are never mutated.
"""

from time import time
from typing import Any, Dict, Iterable, List, MutableSet, Optional

from config import get_logger
from models import copy_article, new_revision
from telemetry import trace_span

logger = get_logger("merge")


def _has_changed(prior: Dict[str, Any], incoming: Dict[str, Any]) -> bool:
    return (prior.get('content') or '') != (incoming.get('content') or '') or \
        (prior.get('title') or '') != (incoming.get('title') or '')


def _record_revision(prior: Dict[str, Any], article: Dict[str, Any], now: int) -> List[Dict[str, Any]]:
    """Prior revisions, plus a snapshot of ``prior`` when it is not a duplicate of the last one."""
    revisions = [dict(r) for r in prior.get('revisions') or []]
    last = revisions[-1] if revisions else None
    if last is not None:
        if last.get('content') == article.get('content'):
            return revisions
        if last.get('title') == prior.get('title') and last.get('content') == prior.get('content'):
            return revisions
    updated_at = max(now, int(last.get('updated_at') or 0)) if last else now
    revisions.append(new_revision(prior.get('title') or '', prior.get('content') or '', updated_at))
    return revisions


def _merge_existing(
    prior: Dict[str, Any],
    article: Dict[str, Any],
    was_read: bool,
    is_auto_refresh: bool,
    now: int,
) -> Dict[str, Any]:
    article['image'] = prior.get('image') or article.get('image')
    article['pub_date'] = prior.get('pub_date', article.get('pub_date'))
    article['is_cached'] = True

    if _has_changed(prior, article):
        article['is_updated'] = True
        article['revisions'] = _record_revision(prior, article, now)
    else:
        article['is_updated'] = bool(prior.get('is_updated'))
        article['revisions'] = [dict(r) for r in prior.get('revisions') or []]

    prior_new = bool(prior.get('is_new', True))
    if is_auto_refresh:
        article['is_new'] = prior_new
    else:
        article['is_new'] = prior_new and not was_read
    return article


def sort_by_pub_date(articles: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Newest first; equal timestamps keep their relative order."""
    return sorted(articles, key=lambda a: a.get('pub_date') or 0, reverse=True)


@trace_span(
    "merge.reconcile",
    attr_from_args=lambda previous, incoming, read_ids, is_auto_refresh=False, now=None: {
        "merge.previous": len(previous or []),
        "merge.incoming": len(incoming or []),
        "merge.auto_refresh": bool(is_auto_refresh),
    },
)
def reconcile(
    previous: Optional[Iterable[Dict[str, Any]]],
    incoming: Iterable[Dict[str, Any]],
    read_ids: Iterable[str],
    is_auto_refresh: bool = False,
    now: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """Merge ``incoming`` against ``previous`` and return the new snapshot, newest first.

    Rules per article id:
      - image: prior image if any, else incoming image
      - pub_date: prior value whenever a prior record exists
      - title or content changed: ``is_updated`` and a revision of the prior
        version, unless the last revision already matches
      - is_new: auto refresh keeps the prior flag; a manual refresh also
        clears it for read ids. Articles seen for the first time are new
        unless their id is already in ``read_ids``
      - is_cached: a prior record existed

    Duplicate ids in ``incoming`` keep their first occurrence.
    """
    now = int(now if now is not None else time())
    read = set(read_ids or ())
    prior_by_id = {a['id']: a for a in previous or [] if a.get('id')}

    merged = []
    seen = set()
    updated = 0
    for item in incoming or []:
        article_id = item.get('id')
        if not article_id or article_id in seen:
            continue
        seen.add(article_id)

        article = copy_article(item)
        was_read = article_id in read
        prior = prior_by_id.get(article_id)
        if prior is None:
            article['is_cached'] = False
            article['is_updated'] = False
            article['revisions'] = []
            article['is_new'] = not was_read
        else:
            article = _merge_existing(prior, article, was_read, is_auto_refresh, now)
            if article['is_updated'] and not prior.get('is_updated'):
                updated += 1
        merged.append(article)

    logger.debug(
        f"Reconciled {len(merged)} articles ({len(merged) - len(prior_by_id.keys() & seen)} new, "
        f"{updated} newly updated, auto_refresh={is_auto_refresh})"
    )
    return sort_by_pub_date(merged)


def open_article(
    articles: List[Dict[str, Any]],
    article_id: str,
    read_ids: MutableSet[str],
) -> Optional[Dict[str, Any]]:
    """Mark one article as opened. Idempotent; returns the article or None if unknown."""
    for article in articles:
        if article.get('id') == article_id:
            article['is_new'] = False
            article['is_cached'] = True
            read_ids.add(article_id)
            return article
    return None


def apply_found_image(articles: List[Dict[str, Any]], article_id: str, image_url: str) -> bool:
    """Attach a recovered image to an article that has none. Returns True when applied."""
    if not image_url:
        return False
    for article in articles:
        if article.get('id') == article_id:
            if article.get('image'):
                return False
            article['image'] = image_url
            return True
    return False
