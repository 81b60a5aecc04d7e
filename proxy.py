#!/usr/bin/env python3
"""
Relay-based HTTP fetch layer.

News sites are fetched through a prioritized list of public relay services
(optionally preceded by a direct request). Every attempt has its own timeout
and any failure falls through to the next relay; callers get the body text or
None, never an exception.
"""

from asyncio import TimeoutError
from typing import List, Optional
from urllib.parse import quote, urlparse

from aiohttp import ClientError, ClientSession, ClientTimeout

from config import config, get_logger
from telemetry import trace_span

logger = get_logger("proxy")

HTTP_OK = 200
ACCEPT_HEADER = 'application/rss+xml, application/xml, text/xml, text/html;q=0.9, */*;q=0.8'


class ProxyFetcher:
    """Fetch URLs through relay prefixes with silent fallthrough.

    A session may be injected (tests pass stubs); otherwise one is created on
    first use and closed by :meth:`close`.
    """

    def __init__(
        self,
        relays: Optional[List[str]] = None,
        session: Optional[ClientSession] = None,
        direct: Optional[bool] = None,
    ) -> None:
        self.relays = list(config.RELAYS if relays is None else relays)
        self.direct = config.DIRECT_FETCH if direct is None else direct
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> "ProxyFetcher":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _get_session(self) -> ClientSession:
        if self._session is None:
            self._session = ClientSession(headers={'User-Agent': config.USER_AGENT})
        return self._session

    async def close(self) -> None:
        """Close the session if this fetcher created it."""
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    def candidate_urls(self, url: str) -> List[str]:
        """Request URLs in the order they are tried."""
        candidates = [url] if self.direct else []
        candidates.extend(relay + quote(url, safe='') for relay in self.relays)
        return candidates

    @trace_span(
        "proxy.fetch_text",
        attr_from_args=lambda self, url, timeout=None: {"http.url": str(url)},
    )
    async def fetch_text(self, url: str, timeout: Optional[int] = None) -> Optional[str]:
        """Return the first usable response body for ``url``, or None."""
        if not url:
            return None
        timeout_seconds = timeout or config.HTTP_TIMEOUT
        for request_url in self.candidate_urls(url):
            body = await self._attempt(request_url, timeout_seconds)
            if body is not None:
                return body
        logger.warning(f"All relays failed for {url}")
        return None

    async def _attempt(self, request_url: str, timeout_seconds: int) -> Optional[str]:
        label = self._summarize_relay(request_url)
        try:
            session = self._get_session()
            async with session.get(
                request_url,
                headers={'Accept': ACCEPT_HEADER, 'User-Agent': config.USER_AGENT},
                timeout=ClientTimeout(total=timeout_seconds),
            ) as response:
                if response.status != HTTP_OK:
                    logger.debug(f"{label} returned HTTP {response.status}")
                    return None
                text = await response.text(errors='replace')
        except TimeoutError:
            logger.debug(f"{label} timed out after {timeout_seconds}s")
            return None
        except ClientError as e:
            logger.debug(f"{label} failed: {self._format_client_error(e)}")
            return None
        except (OSError, ValueError, UnicodeDecodeError) as e:
            logger.debug(f"{label} failed: {e}")
            return None

        if not self._is_usable(text):
            logger.debug(f"{label} returned an unusable body ({len(text or '')} chars)")
            return None
        return text

    @staticmethod
    def _is_usable(text: Optional[str]) -> bool:
        return bool(text) and '<' in text and len(text) >= config.MIN_RESPONSE_LENGTH

    def _summarize_relay(self, request_url: str) -> str:
        """Redacted relay identifier for logging."""
        try:
            parsed = urlparse(request_url)
            if parsed.scheme and parsed.hostname:
                return f"{parsed.scheme}://{parsed.hostname}"
        except ValueError:
            pass
        return request_url[:60]

    def _format_client_error(self, error: ClientError) -> str:
        """Describe aiohttp client errors with any available status/errno."""
        parts: List[str] = [error.__class__.__name__]
        status = getattr(error, 'status', None)
        if status is not None:
            parts.append(f"status={status}")
        os_error = getattr(error, 'os_error', None)
        if os_error is not None:
            errno = getattr(os_error, 'errno', None)
            if errno is not None:
                parts.append(f"errno={errno}")
        message = str(error)
        if message:
            parts.append(message)
        return " ".join(parts)
