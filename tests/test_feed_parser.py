from datetime import datetime, timezone

import feedparser
import pytest

from config import config
from feed_parser import (
    decode_feed,
    extract_content,
    extract_image,
    extract_link,
    extract_pub_date,
    parse_feed,
)
from errors import FeedParseError
from normalizer import nfc

NOW = int(datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc).timestamp())

RSS = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0"
     xmlns:media="http://search.yahoo.com/mrss/"
     xmlns:content="http://purl.org/rss/1.0/modules/content/">
<channel>
  <title>Example</title>
  <link>https://example.com/</link>
  <description>Example feed</description>
  <item>
    <title>বাংলাদেশ ক্রিকেট দলের জয়</title>
    <link>https://example.com/news/1</link>
    <pubDate>Mon, 19 Oct 2026 10:00:00 +0000</pubDate>
    <description>সংক্ষেপ</description>
    <content:encoded><![CDATA[<p>পূর্ণ লেখা</p><p>আরও পড়ুন: অন্য খবর</p>]]></content:encoded>
    <enclosure url="https://cdn.example.com/a.jpg" type="image/jpeg" length="0"/>
    <media:content url="https://cdn.example.com/media.jpg" medium="image"/>
  </item>
  <item>
    <link>https://example.com/news/untitled</link>
    <pubDate>Mon, 19 Oct 2026 09:00:00 +0000</pubDate>
    <description>শিরোনাম ছাড়া</description>
  </item>
  <item>
    <title>বাজেট নিয়ে আলোচনা</title>
    <link>https://example.com/news/3</link>
    <pubDate>Mon, 19 Oct 2026 08:00:00 +0000</pubDate>
    <description><![CDATA[<p><img src="https://cdn.example.com/b.jpg"> বিবরণ</p>]]></description>
  </item>
  <item>
    <title>ওয়ার্ডপ্রেস থাম্বনেইল</title>
    <link>https://example.com/news/4</link>
    <pubDate>Mon, 19 Oct 2026 07:00:00 +0000</pubDate>
    <description>সাধারণ লেখা</description>
    <post-thumbnail><url>https://cdn.example.com/thumb.jpg</url></post-thumbnail>
  </item>
</channel>
</rss>"""

OLD_ITEM_RSS = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0"><channel><title>Example</title>
  <item>
    <title>পুরোনো খবর</title>
    <link>https://example.com/news/old</link>
    <pubDate>Wed, 14 Oct 2026 10:00:00 +0000</pubDate>
    <description>পাঁচ দিন আগের খবর</description>
  </item>
</channel></rss>"""

ATOM = """<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Example Atom</title>
  <entry>
    <title>অ্যাটম এন্ট্রি</title>
    <link href="https://example.com/atom/1"/>
    <id>urn:example:1</id>
    <updated>2026-10-19T09:00:00Z</updated>
    <summary>অ্যাটম সারাংশ</summary>
  </entry>
</feed>"""


@pytest.fixture
def three_day_window(monkeypatch):
    monkeypatch.setattr(config, 'MAX_AGE_DAYS', 3)


def test_parse_feed_builds_articles(source, three_day_window):
    articles = parse_feed(RSS, source, now=NOW)

    assert [a['link'] for a in articles] == [
        "https://example.com/news/1",
        "https://example.com/news/3",
        "https://example.com/news/4",
    ]
    first = articles[0]
    assert first['id'] == "https://example.com/news/1"
    assert first['title'] == nfc("বাংলাদেশ ক্রিকেট দলের জয়")
    assert first['pub_date'] == int(datetime(2026, 10, 19, 10, 0, tzinfo=timezone.utc).timestamp())
    assert first['category'] == 'Sports'
    assert first['source'] == source['name']
    assert first['source_id'] == source['id']
    assert first['source_color'] == source['color']
    assert first['is_new'] is True
    assert first['revisions'] == []


def test_content_encoded_preferred_over_description(source, three_day_window):
    first = parse_feed(RSS, source, now=NOW)[0]

    # Boilerplate lines are stripped from the body
    assert first['content'] == nfc("পূর্ণ লেখা")
    assert first['short_content'] == nfc("পূর্ণ লেখা")


def test_image_cascade(source, three_day_window):
    images = [a['image'] for a in parse_feed(RSS, source, now=NOW)]

    assert images == [
        # Enclosure beats media:content
        "https://cdn.example.com/a.jpg",
        # <img> inside the CDATA description
        "https://cdn.example.com/b.jpg",
        # WordPress post-thumbnail extension in the raw item
        "https://cdn.example.com/thumb.jpg",
    ]


def test_old_items_only_with_allow_old(source, three_day_window):
    assert parse_feed(OLD_ITEM_RSS, source, now=NOW) == []

    articles = parse_feed(OLD_ITEM_RSS, source, allow_old=True, now=NOW)
    assert [a['link'] for a in articles] == ["https://example.com/news/old"]


def test_atom_entries(source, three_day_window):
    articles = parse_feed(ATOM, source, now=NOW)

    assert len(articles) == 1
    assert articles[0]['link'] == "https://example.com/atom/1"
    assert articles[0]['content'] == nfc("অ্যাটম সারাংশ")
    assert articles[0]['pub_date'] == int(datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc).timestamp())


def test_malformed_or_empty_documents_yield_nothing(source):
    assert parse_feed("<rss><channel><item><title>ভাঙা</title></channel>", source, now=NOW) == []
    assert parse_feed("<html><body>not a feed</body></html>", source, now=NOW) == []
    assert parse_feed("", source, now=NOW) == []


def test_decode_feed_raises_for_non_feeds():
    with pytest.raises(FeedParseError) as excinfo:
        decode_feed("<html></html>", source_id="jago-news")

    assert excinfo.value.source_id == "jago-news"


def test_image_strategies_in_isolation():
    entry = feedparser.FeedParserDict({
        'enclosures': [{'href': 'https://cdn.example.com/audio.mp3', 'type': 'audio/mpeg'}],
        'media_thumbnail': [{'url': '//cdn.example.com/thumb.png'}],
    })
    assert extract_image(entry) == "https://cdn.example.com/thumb.png"

    entry = feedparser.FeedParserDict({
        'summary': '<p>no image</p>',
    })
    raw = '<meta property="og:image" content="https://cdn.example.com/og.jpg">'
    assert extract_image(entry, '', raw) == "https://cdn.example.com/og.jpg"
    assert extract_image(entry) is None


def test_extract_content_falls_back_to_summary():
    entry = feedparser.FeedParserDict({
        'content': [{'value': '   '}],
        'summary': '<p>সারাংশ</p>',
    })

    assert extract_content(entry) == nfc("সারাংশ")
    assert extract_content(feedparser.FeedParserDict({})) == ""


def test_extract_link_uses_links_list():
    entry = feedparser.FeedParserDict({'links': [{'href': ' https://example.com/x '}]})

    assert extract_link(entry) == "https://example.com/x"


def test_extract_pub_date_fallbacks(utc_sources):
    entry = feedparser.FeedParserDict({'published': "১৯ অক্টোবর ২০২৬, ১০:৩০ পিএম"})
    assert extract_pub_date(entry, NOW) == int(datetime(2026, 10, 19, 22, 30, tzinfo=timezone.utc).timestamp())

    entry = feedparser.FeedParserDict({
        'published': 'garbage',
        'updated_parsed': datetime(2026, 10, 18, 6, 0).timetuple(),
    })
    assert extract_pub_date(entry, NOW) == int(datetime(2026, 10, 18, 6, 0, tzinfo=timezone.utc).timestamp())

    assert extract_pub_date(feedparser.FeedParserDict({}), NOW) == NOW
