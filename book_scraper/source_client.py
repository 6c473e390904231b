# book_scraper/source_client.py
import logging
from typing import List, Optional, Tuple

import config
from .book_models import BookInfo, Chapter, ExtractedContent
from .document import Document, parse
from .extractor import (
    SourceContext,
    UrlResolution,
    extract_book_info,
    extract_chapter_list,
    extract_chapter_next_page,
    extract_content,
)
from .fetcher import FetchGateway, RateLimiter
from .source_models import RuleSet

logger = logging.getLogger(__name__)


class SourceClient:
    """Reads one book through one rule set: detail page, (paginated) catalog and chapter text."""

    def __init__(self, fetcher: FetchGateway, logger_instance=None, rate_limiter: Optional[RateLimiter] = None,
                 url_strategy: Optional[UrlResolution] = None, max_pages: Optional[int] = None):
        self.fetcher = fetcher
        self.logger = logger_instance if logger_instance else logger
        self.rate_limiter = rate_limiter if rate_limiter else RateLimiter()
        self.url_strategy = url_strategy
        self.max_pages = max_pages if max_pages is not None else config.MAX_FOLLOW_PAGES

    def context_for(self, rule_set: RuleSet) -> SourceContext:
        return SourceContext.for_source(rule_set, self.url_strategy)

    def fetch_document(self, url: str, rule_set: RuleSet, encoding: Optional[str] = None) -> Document:
        """Fetches url with the source's headers, rate limit and encoding hint and parses it."""
        self.rate_limiter.wait(rule_set.name, rule_set.rate_limit)
        page = self.fetcher.fetch_markup(url, headers=rule_set.request_headers() or None,
                                         encoding=encoding or rule_set.charset)
        return parse(page.text, url=page.final_url)

    def get_book_info(self, book_url: str, rule_set: RuleSet) -> BookInfo:
        document = self.fetch_document(book_url, rule_set)
        return extract_book_info(document, rule_set.book_info_rule, self.context_for(rule_set))

    def get_book(self, book_url: str, rule_set: RuleSet) -> Tuple[BookInfo, List[Chapter]]:
        """Book info plus chapter list. Uses the catalog page when the detail page links to one."""
        document = self.fetch_document(book_url, rule_set)
        context = self.context_for(rule_set)
        info = extract_book_info(document, rule_set.book_info_rule, context)
        if info.catalog_url and info.catalog_url != document.url:
            self.logger.debug(f"'{info.title}' has a separate catalog at {info.catalog_url}")
            return info, self.get_chapter_list(info.catalog_url, rule_set)
        return info, self._collect_chapters(document, rule_set, context)

    def get_chapter_list(self, url: str, rule_set: RuleSet, book_info: Optional[BookInfo] = None) -> List[Chapter]:
        if book_info is not None and book_info.catalog_url:
            url = book_info.catalog_url
        document = self.fetch_document(url, rule_set)
        return self._collect_chapters(document, rule_set, self.context_for(rule_set))

    def _collect_chapters(self, document: Document, rule_set: RuleSet, context: SourceContext) -> List[Chapter]:
        rule = rule_set.chapter_list_rule
        chapters = extract_chapter_list(document, rule, context)
        seen_pages = {document.url}
        seen_chapters = {c.url for c in chapters}
        next_url = extract_chapter_next_page(document, rule, context)
        pages = 1
        while next_url and next_url not in seen_pages and pages < self.max_pages:
            seen_pages.add(next_url)
            document = self.fetch_document(next_url, rule_set)
            for chapter in extract_chapter_list(document, rule, context):
                if chapter.url not in seen_chapters:
                    seen_chapters.add(chapter.url)
                    chapters.append(chapter)
            next_url = extract_chapter_next_page(document, rule, context)
            pages += 1
        self.logger.info(f"Collected {len(chapters)} chapters over {pages} catalog page(s) from '{rule_set.name}'")
        return chapters

    def get_chapter_content(self, url: str, rule_set: RuleSet) -> ExtractedContent:
        document = self.fetch_document(url, rule_set, encoding=rule_set.content_encoding)
        return extract_content(document, rule_set.content_rule, self.context_for(rule_set))

    def get_full_chapter_text(self, url: str, rule_set: RuleSet) -> str:
        """Follows the content rule's next-page links and joins every part with a newline."""
        parts: List[str] = []
        visited = set()
        next_url: Optional[str] = url
        while next_url and next_url not in visited and len(visited) < self.max_pages:
            visited.add(next_url)
            content = self.get_chapter_content(next_url, rule_set)
            if content.text:
                parts.append(content.text)
            next_url = content.next_page_url
        if next_url and next_url not in visited:
            self.logger.warning(f"Stopped following chapter pages of {url} after {self.max_pages} pages")
        return "\n".join(parts)
