#!/usr/bin/env python3
"""
Utility functions for the news aggregator.

This module contains shared helpers used by the fetch, scrape and merge
layers, including URL normalization and string formatting.
"""

from typing import Optional
from urllib.parse import urljoin, urlparse


def url_origin(url: str) -> str:
    """Return ``scheme://host[:port]`` for a URL, or an empty string."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return ""
    if not parsed.scheme or not parsed.netloc:
        return ""
    return f"{parsed.scheme}://{parsed.netloc}"


def resolve_url(href: Optional[str], base_url: str) -> Optional[str]:
    """Resolve a possibly relative or protocol-relative href against ``base_url``.

    Returns None for javascript:, mailto: and fragment-only links.
    """
    if not href:
        return None
    href = href.strip()
    if not href or href.startswith('#') or href.lower().startswith(('javascript:', 'mailto:', 'tel:')):
        return None
    if href.startswith('//'):
        return 'https:' + href
    try:
        resolved = urljoin(base_url, href)
    except ValueError:
        return None
    return resolved if resolved.startswith(('http://', 'https://')) else None


def normalize_url_key(url: str) -> str:
    """Deduplication key for a URL: origin plus path, query and fragment dropped.

    Trailing slashes are ignored so ``/a/`` and ``/a`` collapse together.
    """
    if not url:
        return ""
    try:
        parsed = urlparse(url.strip())
    except ValueError:
        return url.strip()
    if not parsed.netloc:
        return url.strip()
    path = parsed.path.rstrip('/') or '/'
    return f"{parsed.scheme.lower()}://{parsed.netloc.lower()}{path}"


def format_duration(seconds: float) -> str:
    """Format a duration in seconds to a human-readable string.

    Args:
        seconds: Duration in seconds

    Returns:
        Formatted duration string (e.g., "1h 23m 45s")
    """
    if seconds < 0:
        return "0s"

    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = int(seconds % 60)

    parts = []
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")
    if secs > 0 or not parts:  # Always show seconds if nothing else
        parts.append(f"{secs}s")

    return " ".join(parts)


def truncate_string(text: str, max_length: int, suffix: str = "...") -> str:
    """Truncate a string to a maximum length, adding a suffix if truncated.

    Args:
        text: The text to potentially truncate
        max_length: Maximum allowed length (including suffix)
        suffix: Suffix to add when truncating

    Returns:
        The original text or truncated version with suffix
    """
    if not text or len(text) <= max_length:
        return text

    if len(suffix) >= max_length:
        return text[:max_length]

    return text[:max_length - len(suffix)].rstrip() + suffix
