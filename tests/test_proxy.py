import asyncio

import pytest
from aiohttp import ClientConnectionError

from proxy import ProxyFetcher

GOOD_BODY = "<rss>" + "x" * 200 + "</rss>"
RELAYS = ["https://relay-one.example/?url=", "https://relay-two.example/fetch/"]
TARGET = "https://www.jagonews24.com/rss/rss.xml"


class FakeResponse:
    def __init__(self, status=200, body=GOOD_BODY):
        self.status = status
        self._body = body

    async def text(self, errors='strict'):
        return self._body

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class RaisingContext:
    def __init__(self, error):
        self.error = error

    async def __aenter__(self):
        raise self.error

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    """Serves queued outcomes per relay host, recording every requested URL."""

    def __init__(self, outcomes):
        self.outcomes = outcomes
        self.requested = []
        self.closed = False

    def get(self, url, headers=None, timeout=None):
        self.requested.append(url)
        for prefix, outcome in self.outcomes.items():
            if url.startswith(prefix):
                if isinstance(outcome, BaseException):
                    return RaisingContext(outcome)
                return outcome
        return FakeResponse(status=404, body="")

    async def close(self):
        self.closed = True


def test_candidate_urls_encode_target_and_respect_direct():
    relayed = ProxyFetcher(relays=RELAYS, session=FakeSession({}), direct=False)
    direct = ProxyFetcher(relays=RELAYS, session=FakeSession({}), direct=True)

    assert relayed.candidate_urls(TARGET) == [
        "https://relay-one.example/?url=https%3A%2F%2Fwww.jagonews24.com%2Frss%2Frss.xml",
        "https://relay-two.example/fetch/https%3A%2F%2Fwww.jagonews24.com%2Frss%2Frss.xml",
    ]
    assert direct.candidate_urls(TARGET)[0] == TARGET
    assert len(direct.candidate_urls(TARGET)) == 3


@pytest.mark.asyncio
async def test_timeout_falls_through_to_next_relay():
    session = FakeSession({
        RELAYS[0]: asyncio.TimeoutError(),
        RELAYS[1]: FakeResponse(body=GOOD_BODY),
    })
    fetcher = ProxyFetcher(relays=RELAYS, session=session, direct=False)

    assert await fetcher.fetch_text(TARGET) == GOOD_BODY
    assert len(session.requested) == 2


@pytest.mark.asyncio
async def test_first_usable_response_wins():
    session = FakeSession({
        RELAYS[0]: FakeResponse(body=GOOD_BODY),
        RELAYS[1]: FakeResponse(body="<never>" + "y" * 200),
    })
    fetcher = ProxyFetcher(relays=RELAYS, session=session, direct=False)

    assert await fetcher.fetch_text(TARGET) == GOOD_BODY
    assert len(session.requested) == 1


@pytest.mark.asyncio
async def test_all_relays_failing_returns_none():
    session = FakeSession({
        RELAYS[0]: ClientConnectionError("refused"),
        RELAYS[1]: FakeResponse(status=503),
    })
    fetcher = ProxyFetcher(relays=RELAYS, session=session, direct=False)

    assert await fetcher.fetch_text(TARGET) is None
    assert len(session.requested) == 2


@pytest.mark.asyncio
async def test_short_or_non_markup_bodies_are_unusable():
    session = FakeSession({
        RELAYS[0]: FakeResponse(body="<p>too short</p>"),
        RELAYS[1]: FakeResponse(body="z" * 500),
    })
    fetcher = ProxyFetcher(relays=RELAYS, session=session, direct=False)

    assert await fetcher.fetch_text(TARGET) is None


@pytest.mark.asyncio
async def test_direct_fetch_is_tried_first():
    session = FakeSession({
        "https://www.jagonews24.com": FakeResponse(body=GOOD_BODY),
    })
    fetcher = ProxyFetcher(relays=RELAYS, session=session, direct=True)

    assert await fetcher.fetch_text(TARGET) == GOOD_BODY
    assert session.requested == [TARGET]


@pytest.mark.asyncio
async def test_empty_url_and_injected_session_left_open():
    session = FakeSession({})
    async with ProxyFetcher(relays=RELAYS, session=session, direct=False) as fetcher:
        assert await fetcher.fetch_text("") is None

    assert session.requested == []
    assert session.closed is False
