#!/usr/bin/env python3
"""
Date and text normalization for Bengali news content.

Bengali outlets print dates with Bengali digits and month names
("১৯ অক্টোবর ২০২৬, ১০:৩০ পিএম") and wrap bodies in markup full of sharing
prompts and bylines. This module turns both into something the rest of the
pipeline can compare and display.
"""

import calendar
import re
import unicodedata
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import List, Optional, Pattern, Tuple
from zoneinfo import ZoneInfo

import feedparser
from bs4 import BeautifulSoup

from config import config, get_logger

logger = get_logger("normalizer")

BENGALI_DIGITS = '০১২৩৪৫৬৭৮৯'
_TO_ASCII_DIGITS = str.maketrans(BENGALI_DIGITS, '0123456789')
_TO_BENGALI_DIGITS = str.maketrans('0123456789', BENGALI_DIGITS)

_BENGALI_BLOCK = 'ঀ-৿'


def nfc(text: str) -> str:
    return unicodedata.normalize('NFC', text or '')


def _compile(pattern: str, flags: int = 0) -> Pattern:
    # Source literals may carry precomposed nukta forms; inputs are NFC
    return re.compile(nfc(pattern), flags)


# Full names first so abbreviations never eat a prefix of a longer name
_MONTHS = {
    'জানুয়ারি': 'Jan', 'জানুয়ারী': 'Jan', 'জানু': 'Jan',
    'ফেব্রুয়ারি': 'Feb', 'ফেব্রুয়ারী': 'Feb', 'ফেব্রু': 'Feb',
    'মার্চ': 'Mar',
    'এপ্রিল': 'Apr',
    'মে': 'May',
    'জুন': 'Jun',
    'জুলাই': 'Jul',
    'আগস্ট': 'Aug', 'আগষ্ট': 'Aug',
    'সেপ্টেম্বর': 'Sep', 'সেপ্টে': 'Sep',
    'অক্টোবর': 'Oct', 'অক্টো': 'Oct',
    'নভেম্বর': 'Nov', 'নভে': 'Nov',
    'ডিসেম্বর': 'Dec', 'ডিসে': 'Dec',
}
_MONTH_LOOKUP = {nfc(k): v for k, v in _MONTHS.items()}
_MONTH_RE = re.compile(
    '(?<![' + _BENGALI_BLOCK + '])('
    + '|'.join(re.escape(name) for name in sorted(_MONTH_LOOKUP, key=len, reverse=True))
    + ')(?![' + _BENGALI_BLOCK + '])'
)

_MERIDIEM = [
    (_compile('(এএম|পূর্বাহ্ণ|পূর্বাহ্ন)'), 'AM'),
    (_compile('(পিএম|অপরাহ্ণ|অপরাহ্ন)'), 'PM'),
]
# Time-of-day words printed before the clock time ("রাত ১০:৩০")
_DAY_PERIOD_RE = _compile(
    '(?<![' + _BENGALI_BLOCK + '])(ভোর|সকাল|দুপুর|বিকাল|বিকেল|সন্ধ্যা|রাত)'
    r'\s*(\d{1,2})(:\d{2}(?::\d{2})?)'
)
_DAY_PERIOD_NAMES = {nfc(k): v for k, v in {
    'ভোর': 'morning', 'সকাল': 'morning', 'দুপুর': 'noon',
    'বিকাল': 'afternoon', 'বিকেল': 'afternoon', 'সন্ধ্যা': 'afternoon', 'রাত': 'night',
}.items()}
_WEEKDAY_RE = _compile('(শনিবার|রবিবার|রোববার|সোমবার|মঙ্গলবার|বুধবার|বৃহস্পতিবার|শুক্রবার)')
_LABEL_RE = _compile(r'^\s*(time|published|updated|প্রকাশিত|প্রকাশ|আপডেট|হালনাগাদ)\s*[:：]\s*', re.IGNORECASE)

_CUSTOM_FORMATS = (
    "%d %b %Y %H:%M:%S",
    "%d %b %Y %H:%M",
    "%d %b %Y %I:%M %p",
    "%d %b %Y %I:%M:%S %p",
    "%H:%M %d %b %Y",
    "%I:%M %p %d %b %Y",
    "%b %d %Y %H:%M",
    "%d %b %Y",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d",
    "%d/%m/%Y %H:%M",
    "%d/%m/%Y",
    "%d-%m-%Y %H:%M",
    "%d-%m-%Y",
)


def to_ascii_digits(text: str) -> str:
    return (text or '').translate(_TO_ASCII_DIGITS)


def to_bengali_digits(value) -> str:
    return str(value).translate(_TO_BENGALI_DIGITS)


def _day_period_to_meridiem(match) -> str:
    period = _DAY_PERIOD_NAMES[match.group(1)]
    hour = int(match.group(2))
    if period == 'morning':
        meridiem = 'AM'
    elif period == 'noon':
        meridiem = 'AM' if hour in (10, 11) else 'PM'
    elif period == 'afternoon':
        meridiem = 'PM'
    else:
        # রাত ১২টা and রাত ২টা are after midnight
        meridiem = 'AM' if hour == 12 or hour < 5 else 'PM'
    return f"{match.group(2)}{match.group(3)} {meridiem}"


def transliterate_date(date_str: str) -> str:
    """Rewrite a Bengali date string with ASCII digits, English month abbreviations and AM/PM."""
    text = nfc(date_str).strip()
    text = _LABEL_RE.sub('', text)
    text = to_ascii_digits(text)
    text = _MONTH_RE.sub(lambda m: _MONTH_LOOKUP[m.group(1)], text)
    text = _DAY_PERIOD_RE.sub(_day_period_to_meridiem, text)
    for pattern, replacement in _MERIDIEM:
        text = pattern.sub(replacement, text)
    return text.strip()


def _localize(dt: datetime) -> int:
    if dt.tzinfo is None:
        try:
            dt = dt.replace(tzinfo=ZoneInfo(config.SOURCE_TIMEZONE))
        except (KeyError, ValueError):
            dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp())


def _parse_iso(date_str: str) -> Optional[int]:
    try:
        return _localize(datetime.fromisoformat(date_str.replace('Z', '+00:00')))
    except (ValueError, TypeError):
        return None


def _parse_with_email_utils(date_str: str) -> Optional[int]:
    try:
        dt = parsedate_to_datetime(date_str)
    except (TypeError, ValueError, IndexError, OverflowError):
        return None
    return _localize(dt) if dt else None


def _parse_with_custom_formats(date_str: str) -> Optional[int]:
    # Commas, pipes and weekday names carry no information for these formats
    cleaned = _WEEKDAY_RE.sub(' ', date_str)
    cleaned = re.sub(r'[,|]', ' ', cleaned)
    cleaned = re.sub(r'\s+', ' ', cleaned).strip()
    for fmt in _CUSTOM_FORMATS:
        try:
            return _localize(datetime.strptime(cleaned, fmt))
        except ValueError:
            continue
    return None


def _parse_with_feedparser(date_str: str) -> Optional[int]:
    try:
        time_struct = feedparser._parse_date(date_str)
    except (ValueError, TypeError, AttributeError, OverflowError):
        return None
    if time_struct:
        return calendar.timegm(time_struct)
    return None


# Custom formats run before email.utils, which silently drops a trailing AM/PM
_DATE_PARSERS = (
    _parse_iso,
    _parse_with_custom_formats,
    _parse_with_email_utils,
    _parse_with_feedparser,
)


def parse_localized_date(date_str: Optional[str]) -> Optional[int]:
    """Parse a possibly Bengali date string into a Unix timestamp.

    Naive results are read in ``config.SOURCE_TIMEZONE``. Returns None when no
    parser produces a plausible date.
    """
    if not date_str or not isinstance(date_str, str):
        return None
    text = transliterate_date(date_str)
    if not text:
        return None
    for parser in _DATE_PARSERS:
        timestamp = parser(text)
        if timestamp is not None and timestamp > 0:
            return timestamp
    logger.debug(f"Unparseable date '{date_str}'")
    return None


# Elements that never hold article text
_STRIP_TAGS = [
    "script", "style", "noscript", "iframe", "form", "object", "embed",
    "nav", "header", "footer", "aside", "button", "svg",
]
_NOISE_CLASS_RE = re.compile(
    r'^(ad|ads|adv|advert\w*|advertisement|banner-ad|google-ad\w*|'
    r'share\w*|social\w*|related\w*|comments?|breadcrumbs?|sidebar|menu|nav\w*)$',
    re.IGNORECASE,
)

# Applied in order after HTML-to-text conversion
BOILERPLATE_PATTERNS: List[Tuple[Pattern, str]] = [
    # Sharing prompts
    (_compile(r'^\s*(শেয়ার করুন|শেয়ার|share( this)?( on \w+)?|follow us.*)\s*:?\s*$', re.IGNORECASE | re.MULTILINE), ''),
    # "Related news" / "read more" labels, with or without a trailing headline
    (_compile(r'^\s*(আরও পড়ুন|আরো পড়ুন|আরও পড়ুন|সম্পর্কিত খবর|সম্পর্কিত সংবাদ|related news|read more).*$', re.IGNORECASE | re.MULTILINE), ''),
    # Outlet recruitment and subscription footers
    (_compile(r'^.*(সংবাদ পাঠাতে|লেখা পাঠাতে|নিয়োগ বিজ্ঞপ্তি|ইউটিউব চ্যানেলে সাবস্ক্রাইব|আমাদের সঙ্গে যুক্ত হন|গুগল নিউজ চ্যানেল).*$', re.MULTILINE), ''),
    # Staff initials bylines such as "এমএইচআর/জিকেএস"
    (_compile(r'^\s*[' + _BENGALI_BLOCK + r'A-Za-z]{1,8}(/[' + _BENGALI_BLOCK + r'A-Za-z]{1,8}){1,3}\s*$', re.MULTILINE), ''),
    (re.compile(r'[ \t]+\n'), '\n'),
    (re.compile(r'\n{3,}'), '\n\n'),
]


def _is_noise(tag) -> bool:
    classes = tag.get('class') or []
    if isinstance(classes, str):
        classes = classes.split()
    return any(_NOISE_CLASS_RE.match(c) for c in classes) or bool(_NOISE_CLASS_RE.match(tag.get('id') or ''))


def html_to_text(html_content: Optional[str]) -> str:
    """Convert an HTML fragment to plain text, keeping paragraph breaks.

    ``</p>`` becomes a blank line and ``<br>`` a single newline; entities are
    decoded and runs of three or more newlines collapse to two.
    """
    if not html_content:
        return ""
    soup = BeautifulSoup(html_content, 'html.parser')

    for tag in soup(_STRIP_TAGS):
        tag.decompose()
    for tag in soup.find_all(_is_noise):
        tag.decompose()

    for br in soup.find_all('br'):
        br.replace_with('\n')
    for p in soup.find_all('p'):
        p.append('\n\n')

    text = soup.get_text()
    text = text.replace('\xa0', ' ').replace('\r\n', '\n')
    text = re.sub(r'[ \t]+', ' ', text)
    text = re.sub(r'\n[ \t]+', '\n', text)
    text = re.sub(r'\n{3,}', '\n\n', text)
    return nfc(text).strip()


def clean_content(text: str) -> str:
    """Remove sharing prompts, related-news labels and outlet footers from plain text."""
    if not text:
        return ""
    for pattern, replacement in BOILERPLATE_PATTERNS:
        text = pattern.sub(replacement, text)
    return text.strip()


def extract_text(html_content: Optional[str]) -> str:
    """HTML fragment to cleaned, paragraph-delimited plain text."""
    return clean_content(html_to_text(html_content))


BENGALI_WPM = 150


def estimate_reading_time(text: Optional[str]) -> Tuple[int, str]:
    """Reading time for Bengali text at ~150 words per minute.

    Returns ``(minutes, label)``; empty text yields ``(0, "")``.
    """
    if not text or not text.strip():
        return 0, ""
    word_count = len(text.split())
    minutes = max(1, int(word_count / BENGALI_WPM + 0.5))
    return minutes, f"পড়তে {to_bengali_digits(minutes)} মিনিট"
