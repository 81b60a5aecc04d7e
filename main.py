#!/usr/bin/env python3
"""
Bangla News command line.

Modes:
  fetch     one manual refresh, then image recovery and a summary
  watch     silent auto refresh every AUTO_REFRESH_INTERVAL seconds
  clusters  story clusters over the cached snapshot
  trending  trending title words over the cached snapshot
  search    fetch ignoring the retention horizon and match a query
  read      open one article by id and print its full text
"""

import argparse
import asyncio
import signal
import sys
from datetime import datetime, timezone
from typing import Any, Dict, List

from config import config, get_logger
from errors import StorageError
from models import CATEGORIES
from normalizer import estimate_reading_time
from service import NewsService
from telemetry import init_telemetry
from utils import format_duration, truncate_string

logger = get_logger("main")
init_telemetry("bangla-news")


def _format_time(timestamp: int) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).astimezone().strftime('%Y-%m-%d %H:%M')


def print_articles(articles: List[Dict[str, Any]], limit: int = 20) -> None:
    for article in articles[:limit]:
        flags = ''.join([
            '*' if article.get('is_new') else ' ',
            'U' if article.get('is_updated') else ' ',
        ])
        print(f"{flags} [{_format_time(article['pub_date'])}] {article['source']} | "
              f"{article['category']} | {truncate_string(article['title'], 90)}")
    if len(articles) > limit:
        print(f"   ... and {len(articles) - limit} more")


def print_clusters(clusters: List[Dict[str, Any]], limit: int = 20) -> None:
    shown = [c for c in clusters if c['is_cluster']][:limit]
    if not shown:
        print("No multi-source stories right now")
        return
    for cluster in shown:
        print(f"\n📰 {cluster['primary']['title']}")
        print(f"   {cluster['count']} reports from {', '.join(cluster['sources'])}")
        for article in cluster['related']:
            print(f"   - {article['source']}: {truncate_string(article['title'], 80)}")


def _progress(completed: int, total: int) -> None:
    logger.info(f"Fetched {completed}/{total} sources")


async def run_fetch(service: NewsService) -> bool:
    started = asyncio.get_running_loop().time()
    articles = await service.refresh(on_progress=_progress)
    found = await service.recover_images()
    elapsed = asyncio.get_running_loop().time() - started
    new_count = sum(1 for a in articles if a.get('is_new'))
    logger.info(f"✅ {len(articles)} articles ({new_count} new, {found} images recovered) in {format_duration(elapsed)}")
    print_articles(articles)
    return bool(articles)


async def run_watch(service: NewsService) -> None:
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except (NotImplementedError, RuntimeError):
            # Not available on this platform; KeyboardInterrupt still ends the loop
            pass
    await service.refresh(on_progress=_progress)
    await service.run_auto_refresh(stop_event)


async def run_read(service: NewsService, article_id: str) -> bool:
    article = await service.read_full_article(article_id)
    if article is None:
        logger.error(f"No article with id {article_id} in the cached snapshot")
        return False
    _, reading_label = estimate_reading_time(article.get('content'))
    print(f"{article['title']}\n{article['source']} | {_format_time(article['pub_date'])} | {reading_label}\n")
    print(article.get('content') or '')
    related = service.related(article_id)
    if related:
        print("\nRelated:")
        for item in related:
            print(f" - {item['source']}: {item['title']}")
    return True


async def run_mode(args) -> bool:
    async with NewsService() as service:
        if args.mode == 'fetch':
            return await run_fetch(service)
        if args.mode == 'watch':
            await run_watch(service)
            return True
        if args.mode == 'clusters':
            print_clusters(service.clusters(service.filter_articles(args.category, args.query)))
            return True
        if args.mode == 'trending':
            topics = service.trending()
            print(' · '.join(topics) if topics else "Nothing trending yet")
            return True
        if args.mode == 'search':
            results = await service.search(args.target)
            print_articles(results)
            return bool(results)
        if args.mode == 'read':
            return await run_read(service, args.target)
    return False


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description='Bangla news aggregator')
    parser.add_argument('mode', choices=['fetch', 'watch', 'clusters', 'trending', 'search', 'read'],
                        help='Operation mode')
    parser.add_argument('target', nargs='?',
                        help='Search query (search) or article id (read)')
    parser.add_argument('--category', default='All', choices=['All', *CATEGORIES],
                        help='Category filter for clusters (default: All)')
    parser.add_argument('--query', default='',
                        help='Title/source filter for clusters')
    args = parser.parse_args()

    if args.mode in ('search', 'read') and not args.target:
        parser.error(f"{args.mode} needs a target argument")

    logger.debug(f"Configuration: {config.get_config_summary()}")
    try:
        success = asyncio.run(run_mode(args))
        sys.exit(0 if success else 1)
    except KeyboardInterrupt:
        logger.info("👋 Shutting down")
    except StorageError as e:
        logger.error(f"💥 Storage error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
