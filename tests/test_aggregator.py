import pytest

from aggregator import NewsAggregator, merge_source_results
from models import new_article


def _article(source, link, pub_date, title="শিরোনাম"):
    return new_article(title=title, link=link, pub_date=pub_date, source=source)


def test_merge_source_results_dedups_by_normalized_url(source):
    homepage_items = [_article(source, "https://example.com/news/1/", 10, title="homepage")]
    feed_items = [
        _article(source, "https://example.com/news/1?utm_source=rss", 20, title="feed"),
        _article(source, "https://example.com/news/2", 30),
    ]

    merged = merge_source_results(homepage_items, feed_items)

    assert [a['title'] for a in merged] == ["homepage", "শিরোনাম"]


@pytest.mark.asyncio
async def test_fetch_source_puts_homepage_first(source, stub_fetcher):
    aggregator = NewsAggregator(stub_fetcher(), sources=[source])

    async def fake_feed(src, allow_old=False):
        return [_article(src, "https://example.com/a", 100, title="feed")]

    async def fake_homepage(src):
        return [_article(src, "https://example.com/a/", 50, title="homepage")]

    aggregator.fetch_feed = fake_feed
    aggregator.fetch_homepage = fake_homepage

    articles = await aggregator.fetch_source(source)

    assert [a['title'] for a in articles] == ["homepage"]


@pytest.mark.asyncio
async def test_failing_extractor_only_costs_its_own_items(source, stub_fetcher):
    aggregator = NewsAggregator(stub_fetcher(), sources=[source])

    async def fake_feed(src, allow_old=False):
        return [_article(src, "https://example.com/feed-item", 100)]

    async def broken_homepage(src):
        raise ValueError("markup exploded")

    aggregator.fetch_feed = fake_feed
    aggregator.fetch_homepage = broken_homepage

    articles = await aggregator.fetch_source(source)

    assert [a['link'] for a in articles] == ["https://example.com/feed-item"]


@pytest.mark.asyncio
async def test_fetch_news_isolates_sources_and_reports_progress(source, other_source, stub_fetcher, no_delays):
    aggregator = NewsAggregator(stub_fetcher(), sources=[source, other_source])

    async def flaky_source(src, allow_old=False):
        if src['id'] == source['id']:
            raise RuntimeError("relay meltdown")
        return [
            _article(src, "https://example.com/old", 100),
            _article(src, "https://example.com/new", 300),
        ]

    aggregator.fetch_source = flaky_source
    progress = []

    articles = await aggregator.fetch_news(on_progress=lambda done, total: progress.append((done, total)))

    assert progress == [(1, 2), (2, 2)]
    assert [a['link'] for a in articles] == ["https://example.com/new", "https://example.com/old"]


@pytest.mark.asyncio
async def test_fetch_news_with_no_sources(stub_fetcher):
    aggregator = NewsAggregator(stub_fetcher(), sources=[])

    assert await aggregator.fetch_news() == []


@pytest.mark.asyncio
async def test_fetch_feed_uses_fetcher_and_parser(source, stub_fetcher):
    rss = """<?xml version="1.0"?><rss version="2.0"><channel><title>t</title>
      <item><title>ফিডের খবর</title><link>https://example.com/f/1</link></item>
    </channel></rss>"""
    aggregator = NewsAggregator(stub_fetcher({source['url']: rss}), sources=[source])

    articles = await aggregator.fetch_feed(source)

    assert [a['link'] for a in articles] == ["https://example.com/f/1"]
    assert await aggregator.fetch_feed(dict(source, url=None)) == []
    assert await aggregator.fetch_feed(dict(source, url="https://example.com/missing.xml")) == []


@pytest.mark.asyncio
async def test_search_news_ignores_age_and_matches_title_or_source(source, other_source, stub_fetcher, no_delays):
    aggregator = NewsAggregator(stub_fetcher(), sources=[source, other_source])
    seen_allow_old = []

    async def fake_source(src, allow_old=False):
        seen_allow_old.append(allow_old)
        return [_article(src, f"https://example.com/{src['id']}", 100, title=f"Budget debate {src['id']}")]

    aggregator.fetch_source = fake_source

    by_title = await aggregator.search_news("BUDGET")
    by_source = await aggregator.search_news(other_source['name'])

    assert len(by_title) == 2
    assert [a['source_id'] for a in by_source] == [other_source['id']]
    assert all(seen_allow_old)
    assert await aggregator.search_news("   ") == []
