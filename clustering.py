#!/usr/bin/env python3
"""
Story clustering and title-word analysis.

Clustering is a greedy single pass over the articles, newest first: each
unclaimed article seeds a cluster and pulls in every later unclaimed article
whose title overlaps it enough (Jaccard index over title words). It is not a
transitive closure; two titles that each resemble a third may still land in
different clusters depending on processing order.
"""

import re
from collections import Counter
from typing import Any, Dict, List, Optional, Set

from config import config, get_logger
from models import new_cluster
from normalizer import nfc
from telemetry import trace_span

logger = get_logger("clustering")

_PUNCTUATION_RE = re.compile(r'[।॥!-/:-@\[-`{-~‘’“”…–—]')
_NUMBER_RE = re.compile(r'^[০-৯0-9]+$')

# Longest first; "দলের" -> "দল", "বাংলাদেশের" -> "বাংলাদেশ", "ক্রিকেটে" -> "ক্রিকেট"
BENGALI_SUFFIXES = sorted(
    (nfc(s) for s in (
        'গুলোর', 'গুলোতে', 'গুলো', 'গুলি', 'দের', 'েরা', 'ের', 'তে', 'কে', 'টির', 'টি', 'টা', 'রা', 'য়ে', 'ে',
    )),
    key=len,
    reverse=True,
)
MIN_STEM_LENGTH = 2

STOP_WORDS = {nfc(w) for w in (
    'ও', 'এবং', 'কিন্তু', 'অথবা', 'তবে', 'জন্য', 'কারণে', 'দ্বারা', 'থেকে', 'চেয়ে',
    'পর', 'উপরে', 'নিচে', 'মধ্যে', 'কাছে', 'দিকে', 'কি', 'কেন', 'কিভাবে', 'কবে',
    'কোথায়', 'কোন', 'কে', 'কার', 'কাকে', 'যে', 'যা', 'যিনি', 'যারা', 'যার',
    'হলো', 'হচ্ছে', 'হব', 'হতে', 'হয়ে', 'আছে', 'নেই', 'ছিল', 'থাকবে', 'নয়',
    'না', 'নি', 'এই', 'ওই', 'সেই', 'সব', 'সকল', 'কিছু', 'অনেক', 'এক', 'দুই',
    'করা', 'করে', 'করেন', 'করছে', 'করছেন', 'শুরু', 'শেষ', 'বলা', 'বলে', 'বলেন',
    'নিয়ে', 'দিয়ে', 'গেছে', 'গেল', 'যাবে', 'যায়', 'আসা', 'আসে', 'আসেন', 'দেওয়া',
    'দেয়', 'দিতে', 'নেওয়া', 'নেয়', 'নিতে', 'আজ', 'কাল', 'গতকাল', 'আগামীকাল',
    'এখন', 'তখন', 'যখন', 'গুলি', 'গুলো', 'টি', 'টা', 'খানা', 'খানি', 'জন',
    'করেছে', 'করলেন', 'রয়েছে', 'রইল', 'এর', 'তে', 'র', 'য়', 'বিষয়',
    'সাথে', 'সঙ্গে', 'উপর', 'নিচ', 'পাশ', 'সামনে', 'পিছনে', 'মত', 'মতো',
    'ভিডিও', 'ছবি', 'লাইভ', 'খবর', 'সংবাদ', 'আপডেট', 'বাংলাদেশ', 'ঢাকা',
    'দেশ', 'নতুন', 'বছর',
)}


def tokenize(text: str) -> List[str]:
    """Lowercased NFC words with punctuation (danda included) removed."""
    text = _PUNCTUATION_RE.sub(' ', nfc(text).lower())
    return text.split()


def stem(word: str) -> str:
    for suffix in BENGALI_SUFFIXES:
        if word.endswith(suffix) and len(word) - len(suffix) >= MIN_STEM_LENGTH:
            return word[:-len(suffix)]
    return word


def title_words(title: str) -> Set[str]:
    """Comparable word set for a title: stemmed words longer than two characters."""
    words = set()
    for word in tokenize(title or ''):
        stemmed = stem(word)
        if len(stemmed) > 2:
            words.add(stemmed)
    return words


def title_similarity(first: str, second: str) -> float:
    """Jaccard index of the two titles' word sets; 0 when either is empty."""
    return _jaccard(title_words(first), title_words(second))


@trace_span(
    "clustering.cluster_articles",
    attr_from_args=lambda articles, threshold=None: {"clustering.articles": len(articles or [])},
)
def cluster_articles(articles: List[Dict[str, Any]], threshold: Optional[float] = None) -> List[Dict[str, Any]]:
    """Group articles about the same story. Every input article appears in exactly one cluster."""
    if threshold is None:
        threshold = config.CLUSTER_THRESHOLD
    ordered = sorted(articles or [], key=lambda a: a.get('pub_date') or 0, reverse=True)
    words = [title_words(a.get('title') or '') for a in ordered]

    clusters = []
    processed = set()
    for i, seed in enumerate(ordered):
        if i in processed:
            continue
        processed.add(i)
        members = [seed]
        for j in range(i + 1, len(ordered)):
            if j in processed:
                continue
            if _jaccard(words[i], words[j]) >= threshold:
                members.append(ordered[j])
                processed.add(j)
        clusters.append(new_cluster(members))

    logger.debug(f"Clustered {len(ordered)} articles into {len(clusters)} stories")
    return clusters


def _jaccard(words1: Set[str], words2: Set[str]) -> float:
    if not words1 or not words2:
        return 0.0
    return len(words1 & words2) / len(words1 | words2)


def trending_topics(articles: List[Dict[str, Any]], limit: int = 8) -> List[str]:
    """Most frequent title words that appear at least twice, stop words and numbers excluded."""
    counts: Counter = Counter()
    for article in articles or []:
        for word in tokenize(article.get('title') or ''):
            if len(word) < 3 or word in STOP_WORDS or _NUMBER_RE.match(word):
                continue
            counts[word] += 1
    return [word for word, count in counts.most_common() if count > 1][:limit]


def related_articles(current: Dict[str, Any], articles: List[Dict[str, Any]], limit: int = 4) -> List[Dict[str, Any]]:
    """Articles scored by shared category, source and title keywords; best first."""
    keywords = [w for w in tokenize(current.get('title') or '') if len(w) > 4]
    scored = []
    for candidate in articles or []:
        if candidate.get('id') == current.get('id'):
            continue
        score = 0
        if candidate.get('category') == current.get('category'):
            score += 5
        if candidate.get('source') == current.get('source'):
            score += 1
        haystack = nfc(f"{candidate.get('title') or ''} {candidate.get('short_content') or ''}").lower()
        score += 3 * sum(1 for keyword in keywords if keyword in haystack)
        if score > 0:
            scored.append((score, candidate))
    scored.sort(key=lambda pair: pair[0], reverse=True)
    return [candidate for _, candidate in scored[:limit]]
