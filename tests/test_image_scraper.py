import pytest

from image_scraper import ImageCache, ImageScraper, extract_lead_image, is_acceptable_image
from storage import IMAGE_CACHE_KEY


class FakeClock:
    def __init__(self, now=1_000_000):
        self.now = now

    def __call__(self):
        return self.now


class MemoryStore:
    """Just enough of NewsStore.execute for cache persistence."""

    def __init__(self, values=None):
        self.values = dict(values or {})

    async def execute(self, operation_name, **params):
        if operation_name == 'get_value':
            return self.values.get(params['key'])
        if operation_name == 'set_value':
            self.values[params['key']] = params['value']
            return True
        raise AssertionError(f"unexpected operation {operation_name}")


def test_og_image_preferred():
    html = """<html><head>
      <meta property="og:image" content="https://cdn.example.com/og.jpg">
    </head><body><article><img src="https://cdn.example.com/body.jpg"></article></body></html>"""

    assert extract_lead_image(html) == "https://cdn.example.com/og.jpg"


def test_rejected_images_fall_through_to_next_selector():
    html = """<html><head>
      <meta property="og:image" content="https://cdn.example.com/site-logo.png">
    </head><body>
      <div class="featured-image"><img data-src="//cdn.example.com/lead.jpg"></div>
    </body></html>"""

    assert extract_lead_image(html) == "https://cdn.example.com/lead.jpg"


def test_no_image():
    assert extract_lead_image("<html><body><p>শুধু লেখা</p></body></html>") is None
    assert extract_lead_image("") is None
    assert not is_acceptable_image("https://cdn.example.com/avatar/1.png")
    assert is_acceptable_image("https://cdn.example.com/photo.jpg")


def test_cache_entries_expire_after_ttl():
    clock = FakeClock()
    cache = ImageCache(ttl_seconds=60, clock=clock)
    cache.set("https://example.com/a", "https://cdn.example.com/a.jpg")
    cache.set("https://example.com/b", None)

    assert cache.get("https://example.com/a") == "https://cdn.example.com/a.jpg"
    # A cached miss is still a known answer
    assert cache.has("https://example.com/b")
    assert cache.get("https://example.com/b") is None

    clock.now += 61
    assert not cache.has("https://example.com/a")
    assert cache.get("https://example.com/a") is None
    assert len(cache) == 1

    cache.clear()
    assert len(cache) == 0


def test_cache_update_from_skips_expired_and_malformed():
    clock = FakeClock()
    cache = ImageCache(ttl_seconds=60, clock=clock)

    kept = cache.update_from({
        "fresh": {'image': "f.jpg", 'stored_at': clock.now - 10},
        "stale": {'image': "s.jpg", 'stored_at': clock.now - 600},
        "broken": "not a dict",
    })

    assert kept == 1
    assert cache.to_dict() == {"fresh": {'image': "f.jpg", 'stored_at': clock.now - 10}}


@pytest.mark.asyncio
async def test_cache_load_and_persist():
    clock = FakeClock()
    store = MemoryStore({IMAGE_CACHE_KEY: {"a": {'image': "a.jpg", 'stored_at': clock.now}}})
    cache = ImageCache(ttl_seconds=60, clock=clock)

    assert await cache.load(store) == 1
    cache.set("b", "b.jpg")
    await cache.persist(store)

    assert set(store.values[IMAGE_CACHE_KEY]) == {"a", "b"}


@pytest.mark.asyncio
async def test_scrape_image_caches_results_but_not_fetch_failures(stub_fetcher):
    page = '<html><head><meta property="og:image" content="https://cdn.example.com/x.jpg"></head></html>'
    fetcher = stub_fetcher({"https://example.com/x": page, "https://example.com/empty": "<html></html>"})
    scraper = ImageScraper(fetcher, ImageCache(ttl_seconds=3600))

    assert await scraper.scrape_image("https://example.com/x") == "https://cdn.example.com/x.jpg"
    assert await scraper.scrape_image("https://example.com/x") == "https://cdn.example.com/x.jpg"
    assert await scraper.scrape_image("https://example.com/empty") is None
    assert await scraper.scrape_image("https://example.com/empty") is None
    assert await scraper.scrape_image("https://example.com/down") is None
    assert await scraper.scrape_image("https://example.com/down") is None

    urls = [url for url, _ in fetcher.calls]
    assert urls.count("https://example.com/x") == 1
    assert urls.count("https://example.com/empty") == 1
    assert urls.count("https://example.com/down") == 2


@pytest.mark.asyncio
async def test_scrape_images_for_articles(stub_fetcher, no_delays):
    page = '<html><head><meta property="og:image" content="https://cdn.example.com/{}.jpg"></head></html>'
    fetcher = stub_fetcher({
        "https://example.com/1": page.format(1),
        "https://example.com/2": page.format(2),
    })
    cache = ImageCache(ttl_seconds=3600)
    cache.set("https://example.com/cached", "https://cdn.example.com/cached.jpg")
    store = MemoryStore()
    scraper = ImageScraper(fetcher, cache, store)
    articles = [
        {'id': "1", 'link': "https://example.com/1", 'image': None},
        {'id': "2", 'link': "https://example.com/2", 'image': None},
        {'id': "has", 'link': "https://example.com/has", 'image': "https://cdn.example.com/has.jpg"},
        {'id': "cached", 'link': "https://example.com/cached", 'image': None},
        {'id': "nolink", 'link': "", 'image': None},
    ]
    found = {}

    count = await scraper.scrape_images_for_articles(articles, lambda article_id, url: found.__setitem__(article_id, url))

    assert count == 3
    assert found == {
        "1": "https://cdn.example.com/1.jpg",
        "2": "https://cdn.example.com/2.jpg",
        "cached": "https://cdn.example.com/cached.jpg",
    }
    # Articles are reported through the callback, never patched in place
    assert articles[0]['image'] is None
    assert [url for url, _ in fetcher.calls] == ["https://example.com/1", "https://example.com/2"]
    assert "https://example.com/1" in store.values[IMAGE_CACHE_KEY]
