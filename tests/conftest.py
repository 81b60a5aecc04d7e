import pytest

from config import config


class StubFetcher:
    """Stands in for ProxyFetcher: serves canned bodies by URL and records requests."""

    def __init__(self, pages=None):
        self.pages = dict(pages or {})
        self.calls = []

    async def fetch_text(self, url, timeout=None):
        self.calls.append((url, timeout))
        body = self.pages.get(url)
        if isinstance(body, Exception):
            raise body
        return body

    async def close(self):
        pass


@pytest.fixture
def stub_fetcher():
    return StubFetcher


@pytest.fixture
def source():
    return {
        'name': 'জাগো নিউজ',
        'id': 'jago-news',
        'url': 'https://www.jagonews24.com/rss/rss.xml',
        'homepage': 'https://www.jagonews24.com/',
        'color': '#f68b1e',
    }


@pytest.fixture
def other_source():
    return {
        'name': 'প্রথম আলো',
        'id': 'prothom-alo',
        'url': 'https://www.prothomalo.com/feed/',
        'homepage': 'https://www.prothomalo.com/',
        'color': '#ed1c24',
    }


@pytest.fixture
def utc_sources(monkeypatch):
    """Read naive source dates as UTC so expectations do not depend on tzdata."""
    monkeypatch.setattr(config, 'SOURCE_TIMEZONE', 'UTC')


@pytest.fixture
def no_delays(monkeypatch):
    monkeypatch.setattr(config, 'RATE_LIMIT_DELAY', 0)
    monkeypatch.setattr(config, 'IMAGE_SCRAPE_DELAY', 0)
