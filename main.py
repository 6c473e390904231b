#!/usr/bin/env python3
"""
Book Source Engine - Main Entry Point

Search every enabled book source, validate source rules, or read one book from
the command line.
"""

import argparse
import json
import sys

import config
from book_scraper.errors import BookScraperError
from book_scraper.fetcher import RateLimiter, RequestsFetcher
from book_scraper.searcher import BookSearcher, sort_results
from book_scraper.source_client import SourceClient
from book_scraper.source_manager import SourceManager
from book_scraper.validator import RuleSetValidator
from utils.logger import setup_logger


def run_search(manager, fetcher, keyword, logger):
    searcher = BookSearcher(fetcher, logger_instance=logger)
    results = sort_results(searcher.search(keyword, manager.get_enabled_sources()))

    print(f"\n🎯 {len(results)} results for '{keyword}'")
    for result in results:
        print(f"  • {result.title} / {result.author or '?'}  [{result.source_name}]")
        print(f"    {result.book_url}")
    if searcher.last_metrics:
        logger.info(f"📈 Search metrics: {json.dumps(searcher.last_metrics.to_dict(), ensure_ascii=False)}")
    return 0


def run_validation(manager, fetcher, source_name, logger):
    if source_name:
        source = manager.get_source_by_name(source_name)
        if source is None:
            print(f"❌ Unknown source: {source_name}")
            return 1
        sources = [source]
    else:
        sources = list(manager.get_sources())

    validator = RuleSetValidator(fetcher, logger_instance=logger, rate_limiter=RateLimiter())
    verdicts = validator.validate_all(sources)
    for verdict in verdicts:
        marker = "✅" if verdict.is_successful else "❌"
        print(f"\n{marker} {verdict.source_name}  ({verdict.source_url})")
        for stage, report in verdict.stages.items():
            line = f"    {stage.value:<13} {report.status.value:<14} {report.detail}"
            if report.error_message:
                line += f"  ({report.error_message})"
            print(line)
    return 0 if all(v.is_successful for v in verdicts) else 1


def run_book_info(manager, fetcher, source_name, book_url, logger):
    source = manager.get_source_by_name(source_name) if source_name else None
    if source is None:
        print("❌ --source must name a known book source")
        return 1
    client = SourceClient(fetcher, logger_instance=logger)
    info, chapters = client.get_book(book_url, source)
    print(f"\n📖 {info.title} / {info.author}")
    if info.intro:
        print(f"   {info.intro[:200]}")
    print(f"   {len(chapters)} chapters, latest: {info.last_chapter or '?'}")
    for chapter in chapters[:10]:
        print(f"    - {chapter.title}  {chapter.url}")
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(description="Book Source Engine - rule driven book search")
    parser.add_argument("--version", action="version", version=f"%(prog)s {config.VERSION}")
    parser.add_argument("--mode", choices=["search", "test", "info"], default="search",
                        help="search: query all enabled sources, test: validate source rules, info: read one book")
    parser.add_argument("--sources", type=str, default=config.DEFAULT_SOURCES_PATH,
                        help="JSON or YAML file with book sources")
    parser.add_argument("--query", type=str, help="Keyword for search mode, book URL for info mode")
    parser.add_argument("--source", type=str, help="Source name for test or info mode")

    args = parser.parse_args(argv)
    logger = setup_logger(name=config.APP_NAME)

    manager = SourceManager(logger_instance=logger)
    if not manager.load_sources(args.sources):
        print(f"❌ {manager.last_error}")
        return 1

    fetcher = RequestsFetcher(logger_instance=logger)
    try:
        if args.mode == "search":
            if not args.query:
                print("❌ search mode requires --query")
                return 1
            return run_search(manager, fetcher, args.query, logger)
        elif args.mode == "test":
            return run_validation(manager, fetcher, args.source, logger)
        elif args.mode == "info":
            if not args.query:
                print("❌ info mode requires --query with the book URL")
                return 1
            return run_book_info(manager, fetcher, args.source, args.query, logger)
    except BookScraperError as e:
        print(f"❌ {e}")
        return 1
    finally:
        fetcher.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
