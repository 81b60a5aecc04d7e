#!/usr/bin/env python3
"""
Keyword classifier for topical category and coarse sentiment.

Each category owns a weighted keyword list. A keyword matches at the start of
a word, so inflected Bengali forms ("ক্রিকেটে", "নির্বাচনের") count while
words that merely contain it ("ইরান" for "রান") do not. Short keywords listed
in WHOLE_WORD_KEYWORDS must also end the word, bar a case ending, so "রান্না"
is not read as "রান".
"""

import re
from typing import Dict, List, Pattern, Tuple

from bs4 import BeautifulSoup

from models import DEFAULT_CATEGORY
from normalizer import nfc

# Order matters: ties go to the category listed first
CATEGORY_KEYWORDS: List[Tuple[str, Dict[str, int]]] = [
    ('Sports', {
        'খেলা': 2, 'ক্রিকেট': 3, 'ফুটবল': 3, 'টেস্ট': 1, 'ওয়ানডে': 2, 'টি-টোয়েন্টি': 2,
        'বিশ্বকাপ': 2, 'গোল': 1, 'উইকেট': 2, 'রান': 1, 'সেঞ্চুরি': 2, 'ব্যাটিং': 2,
        'বোলিং': 2, 'মেসি': 3, 'নেইমার': 3, 'রোনালদো': 3, 'সাকিব': 3, 'তামিম': 2,
        'মুশফিক': 2, 'বিসিবি': 3, 'বাফুফে': 3, 'অলিম্পিক': 2, 'sport': 2, 'cricket': 3,
        'football': 3,
    }),
    ('Politics', {
        'রাজনীতি': 3, 'রাজনৈতিক': 3, 'নির্বাচন': 3, 'সরকার': 2, 'সংসদ': 2, 'মন্ত্রী': 2,
        'প্রধানমন্ত্রী': 2, 'প্রধান উপদেষ্টা': 2, 'উপদেষ্টা': 1, 'বিএনপি': 3, 'আওয়ামী': 3,
        'জামায়াত': 3, 'এনসিপি': 3, 'দল': 1, 'ভোট': 2, 'সমাবেশ': 1, 'নেতা': 1,
        'politic': 3, 'election': 3,
    }),
    ('Entertainment', {
        'বিনোদন': 3, 'চলচ্চিত্র': 3, 'সিনেমা': 3, 'নাটক': 2, 'অভিনেতা': 3, 'অভিনেত্রী': 3,
        'অভিনয়': 2, 'নায়ক': 2, 'নায়িকা': 2, 'গান': 2, 'শিল্পী': 1, 'সংগীত': 2,
        'ওয়েব সিরিজ': 2, 'বলিউড': 3, 'হলিউড': 3, 'ঢালিউড': 3, 'entertainment': 3,
        'movie': 2,
    }),
    ('Business', {
        'অর্থনীতি': 3, 'অর্থনৈতিক': 3, 'বাজেট': 3, 'টাকা': 1, 'ব্যাংক': 2, 'ব্যবসা': 3,
        'বাণিজ্য': 3, 'রপ্তানি': 2, 'আমদানি': 2, 'শেয়ারবাজার': 3, 'পুঁজিবাজার': 3,
        'মূল্যস্ফীতি': 3, 'ডলার': 2, 'রেমিট্যান্স': 2, 'বিনিয়োগ': 2, 'দাম': 1,
        'business': 3, 'economy': 3,
    }),
    ('Technology', {
        'প্রযুক্তি': 3, 'স্মার্টফোন': 3, 'মোবাইল': 1, 'কম্পিউটার': 3, 'ইন্টারনেট': 2,
        'সফটওয়্যার': 3, 'অ্যাপ': 2, 'কৃত্রিম বুদ্ধিমত্তা': 3, 'এআই': 3, 'সাইবার': 2,
        'ফেসবুক': 1, 'গুগল': 2, 'অ্যাপল': 2, 'স্যামসাং': 2, 'tech': 3,
    }),
    ('Health', {
        'স্বাস্থ্য': 3, 'হাসপাতাল': 2, 'চিকিৎসা': 3, 'চিকিৎসক': 2, 'ডাক্তার': 2, 'রোগ': 2,
        'রোগী': 2, 'ডেঙ্গু': 3, 'করোনা': 3, 'টিকা': 2, 'ভাইরাস': 2, 'ওষুধ': 2, 'health': 3,
    }),
    ('World', {
        'আন্তর্জাতিক': 3, 'বিশ্ব': 1, 'যুক্তরাষ্ট্র': 2, 'ভারত': 1, 'চীন': 2, 'রাশিয়া': 2,
        'ইউক্রেন': 2, 'ইসরায়েল': 2, 'গাজা': 2, 'ফিলিস্তিন': 2, 'ইরান': 2, 'পাকিস্তান': 2,
        'মিয়ানমার': 2, 'জাতিসংঘ': 3, 'ট্রাম্প': 2, 'world': 2,
    }),
    ('Lifestyle', {
        'লাইফস্টাইল': 3, 'জীবনযাপন': 3, 'রান্না': 2, 'রেসিপি': 3, 'ফ্যাশন': 3, 'সৌন্দর্য': 2,
        'ত্বক': 2, 'চুল': 1, 'ভ্রমণ': 2, 'খাবার': 1, 'lifestyle': 3, 'fashion': 3,
    }),
]

# Short keywords that begin unrelated words ("রান" in "রান্না") match whole words only
WHOLE_WORD_KEYWORDS = frozenset({'রান', 'গোল'})

POSITIVE_KEYWORDS = [
    'জয়', 'বিজয়', 'সাফল্য', 'সফল', 'উন্নয়ন', 'অর্জন', 'আনন্দ', 'খুশি', 'পুরস্কার',
    'শান্তি', 'রেকর্ড', 'স্বীকৃতি', 'উদ্বোধন', 'win', 'success',
]

NEGATIVE_KEYWORDS = [
    'নিহত', 'মৃত্যু', 'হত্যা', 'খুন', 'দুর্ঘটনা', 'আহত', 'হামলা', 'সংঘর্ষ', 'গ্রেপ্তার',
    'গ্রেফতার', 'ধর্ষণ', 'অগ্নিকাণ্ড', 'আগুন', 'বন্যা', 'পরাজয়', 'সংকট', 'দুর্নীতি',
    'বিক্ষোভ', 'killed', 'dead', 'attack', 'crisis',
]

# ASCII punctuation plus the danda and typographic quotes
_PUNCTUATION_RE = re.compile(r'[।॥!-/:-@\[-`{-~‘’“”…–—]')
_WORD_START = r'(?<![\wঀ-৿])'
_WORD_END = r'(?![\wঀ-৿])'
# Locative, genitive and plural endings a whole-word keyword may still take
_CASE_ENDINGS = '(?:ে|ের|েরা|গুলো)?'


def normalize_text(text: str) -> str:
    """Lowercase, NFC, markup and punctuation stripped, whitespace collapsed."""
    if not text:
        return ""
    if "<" in text:
        text = BeautifulSoup(text, "html.parser").get_text(" ")
    text = nfc(text).lower()
    text = _PUNCTUATION_RE.sub(" ", text)
    return re.sub(r"\s+", " ", text).strip()


def _keyword_pattern(keyword: str) -> Pattern:
    pattern = _WORD_START + re.escape(normalize_text(keyword))
    if keyword in WHOLE_WORD_KEYWORDS:
        pattern += _CASE_ENDINGS + _WORD_END
    return re.compile(pattern)


_CATEGORY_PATTERNS: List[Tuple[str, List[Tuple[Pattern, int]]]] = [
    (category, [(_keyword_pattern(k), w) for k, w in keywords.items()])
    for category, keywords in CATEGORY_KEYWORDS
]
_POSITIVE_PATTERNS = [_keyword_pattern(k) for k in POSITIVE_KEYWORDS]
_NEGATIVE_PATTERNS = [_keyword_pattern(k) for k in NEGATIVE_KEYWORDS]


def category_scores(text: str) -> Dict[str, int]:
    normalized = normalize_text(text)
    scores = {}
    for category, patterns in _CATEGORY_PATTERNS:
        scores[category] = sum(weight * len(pattern.findall(normalized)) for pattern, weight in patterns)
    return scores


def classify(text: str) -> str:
    """Pick the highest-scoring category, or ``General`` when nothing matches."""
    scores = category_scores(text)
    best_category = DEFAULT_CATEGORY
    best_score = 0
    for category, _ in CATEGORY_KEYWORDS:
        if scores[category] > best_score:
            best_category = category
            best_score = scores[category]
    return best_category


def sentiment(text: str) -> str:
    normalized = normalize_text(text)
    if not normalized:
        return 'neutral'
    score = sum(1 for p in _POSITIVE_PATTERNS if p.search(normalized))
    score -= sum(1 for p in _NEGATIVE_PATTERNS if p.search(normalized))
    if score > 0:
        return 'positive'
    if score < 0:
        return 'negative'
    return 'neutral'
