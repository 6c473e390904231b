# book_scraper/searcher.py
import logging
import threading
from concurrent.futures import CancelledError, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional

import config
from .book_models import SearchResult
from .document import parse
from .errors import BookScraperError
from .extractor import SourceContext, UrlResolution, extract_search_results
from .fetcher import FetchGateway, RateLimiter
from .source_models import RuleSet

logger = logging.getLogger(__name__)


class SearchState(str, Enum):
    IDLE = "idle"
    SEARCHING = "searching"


class SearchCancelled(Exception):
    """Raised inside a per-source task once its search has been abandoned."""


@dataclass
class SearchMetrics:
    keyword: str
    start_time: datetime
    end_time: Optional[datetime] = None
    total_sources: int = 0
    skipped_disabled: int = 0
    successful_sources: int = 0
    failed_sources: int = 0
    result_count: int = 0
    cancelled: bool = False
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def duration(self):
        end = self.end_time or datetime.now()
        return end - self.start_time

    @property
    def success_rate(self) -> float:
        if self.total_sources == 0:
            return 0.0
        return (self.successful_sources / self.total_sources) * 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            'keyword': self.keyword,
            'duration_seconds': self.duration.total_seconds(),
            'total_sources': self.total_sources,
            'skipped_disabled': self.skipped_disabled,
            'success_rate': f"{self.success_rate:.1f}%",
            'successful_sources': self.successful_sources,
            'failed_sources': self.failed_sources,
            'result_count': self.result_count,
            'cancelled': self.cancelled,
            'error_count': len(self.errors),
        }


def sort_results(results: Iterable[SearchResult]) -> List[SearchResult]:
    """Stable ordering for callers: higher weight first, then source name, then document order."""
    return sorted(results, key=lambda r: (-r.source.weight, r.source.name, r.rank))


class BookSearcher:
    """
    Fans one keyword out over every enabled rule set and merges the hits.

    Each source runs in its own worker; a failing source contributes nothing and
    never affects the others. Results come back in completion order.
    """

    def __init__(self, fetcher: FetchGateway, max_workers: Optional[int] = None, logger_instance=None,
                 rate_limiter: Optional[RateLimiter] = None, url_strategy: Optional[UrlResolution] = None,
                 state_callback: Optional[Callable[[SearchState], None]] = None):
        self.fetcher = fetcher
        self.max_workers = max_workers if max_workers else config.MAX_CONCURRENT_FETCHERS
        self.logger = logger_instance if logger_instance else logger
        self.rate_limiter = rate_limiter if rate_limiter else RateLimiter()
        self.url_strategy = url_strategy
        self.state_callback = state_callback
        # metrics of the most recently started search; concurrent calls on one searcher overwrite it
        self.last_metrics: Optional[SearchMetrics] = None

        self._lock = threading.Lock()
        self._in_flight = 0
        self._current_cancel: Optional[threading.Event] = None

    @property
    def state(self) -> SearchState:
        return SearchState.SEARCHING if self._in_flight > 0 else SearchState.IDLE

    @property
    def is_searching(self) -> bool:
        return self.state == SearchState.SEARCHING

    def _enter(self, cancel_event: threading.Event):
        with self._lock:
            # a newer query supersedes whatever is still running
            if self._current_cancel is not None and self._current_cancel is not cancel_event:
                self._current_cancel.set()
            self._current_cancel = cancel_event
            self._in_flight += 1
            became_busy = self._in_flight == 1
        if became_busy:
            self._notify(SearchState.SEARCHING)

    def _leave(self, cancel_event: threading.Event):
        with self._lock:
            self._in_flight -= 1
            if self._current_cancel is cancel_event:
                self._current_cancel = None
            became_idle = self._in_flight == 0
        if became_idle:
            self._notify(SearchState.IDLE)

    def _notify(self, state: SearchState):
        if self.state_callback:
            try:
                self.state_callback(state)
            except Exception as e:
                self.logger.error(f"Search state callback failed: {e}", exc_info=True)

    def cancel(self):
        """Abandons the in-flight search; its partial results are discarded."""
        with self._lock:
            if self._current_cancel is not None:
                self._current_cancel.set()

    def search_source(self, rule_set: RuleSet, keyword: str,
                      cancel_event: Optional[threading.Event] = None) -> List[SearchResult]:
        """Searches a single source. Failures propagate to the caller."""
        search_url = rule_set.build_search_url(keyword)
        if cancel_event is not None and cancel_event.is_set():
            raise SearchCancelled(rule_set.name)
        self.rate_limiter.wait(rule_set.name, rule_set.rate_limit)
        page = self.fetcher.fetch_markup(search_url, headers=rule_set.request_headers() or None,
                                         encoding=rule_set.search_encoding)
        if cancel_event is not None and cancel_event.is_set():
            raise SearchCancelled(rule_set.name)
        document = parse(page.text, url=page.final_url)
        return extract_search_results(document, rule_set.search_rule,
                                      SourceContext.for_source(rule_set, self.url_strategy))

    def search(self, keyword: str, rule_sets: Iterable[RuleSet],
               cancel_event: Optional[threading.Event] = None) -> List[SearchResult]:
        """
        Searches every enabled rule set. Afterwards last_metrics describes this call, unless another
        search on the same searcher started since; use one searcher per caller for exact metrics.
        """
        keyword = (keyword or "").strip()
        metrics = SearchMetrics(keyword=keyword, start_time=datetime.now())
        self.last_metrics = metrics
        if not keyword:
            self.logger.warning("❌ Empty keyword, nothing to search.")
            metrics.end_time = datetime.now()
            return []

        snapshot = tuple(rule_sets)
        enabled = [rs for rs in snapshot if rs.enabled]
        metrics.total_sources = len(enabled)
        metrics.skipped_disabled = len(snapshot) - len(enabled)
        cancel_event = cancel_event if cancel_event is not None else threading.Event()

        self.logger.info(f"🔍 Searching '{keyword}' across {len(enabled)} enabled sources "
                         f"({metrics.skipped_disabled} disabled skipped)")
        self._enter(cancel_event)
        try:
            results = self._fan_out(keyword, enabled, cancel_event, metrics)
        finally:
            self._leave(cancel_event)
            metrics.end_time = datetime.now()

        if cancel_event.is_set():
            metrics.cancelled = True
            metrics.result_count = 0
            self.logger.info(f"🛑 Search for '{keyword}' was cancelled, partial results discarded.")
            return []

        metrics.result_count = len(results)
        self.logger.info(f"✅ Search '{keyword}' finished: {len(results)} results from "
                         f"{metrics.successful_sources}/{metrics.total_sources} sources "
                         f"in {metrics.duration.total_seconds():.1f}s")
        return results

    def _fan_out(self, keyword: str, enabled: List[RuleSet], cancel_event: threading.Event,
                 metrics: SearchMetrics) -> List[SearchResult]:
        results: List[SearchResult] = []
        if not enabled:
            return results
        workers = max(1, min(self.max_workers, len(enabled)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="book-search") as executor:
            futures = {executor.submit(self.search_source, rs, keyword, cancel_event): rs for rs in enabled}
            for future in as_completed(futures):
                rule_set = futures[future]
                if cancel_event.is_set():
                    for pending in futures:
                        pending.cancel()
                try:
                    source_results = future.result()
                except (SearchCancelled, CancelledError):
                    continue
                except BookScraperError as e:
                    metrics.failed_sources += 1
                    metrics.errors[rule_set.name] = str(e)
                    self.logger.warning(f"⚠️ Source '{rule_set.name}' failed: {e}")
                    continue
                except Exception as e:
                    # a bug in one source must not take the whole search down
                    metrics.failed_sources += 1
                    metrics.errors[rule_set.name] = f"{type(e).__name__}: {e}"
                    self.logger.error(f"💥 Unexpected error searching source '{rule_set.name}': {e}", exc_info=True)
                    continue
                metrics.successful_sources += 1
                self.logger.debug(f"Source '{rule_set.name}' returned {len(source_results)} results")
                results.extend(source_results)
        return results
