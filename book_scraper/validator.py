# book_scraper/validator.py
"""
End-to-end self test of a rule set: search -> book info -> chapter list -> content.

Each stage runs only when the previous one produced something to work with. A stage
that raises is recorded as failed and ends the run; stages never reached are reported
as not attempted, which is distinct from failed.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional

import config
from .extractor import UrlResolution, extract_book_info, extract_chapter_list
from .fetcher import FetchGateway, RateLimiter
from .searcher import BookSearcher
from .source_client import SourceClient
from .source_models import RuleSet

logger = logging.getLogger(__name__)


class ValidationStage(str, Enum):
    SEARCH = "search"
    BOOK_INFO = "book_info"
    CHAPTER_LIST = "chapter_list"
    CONTENT = "content"


class StageStatus(str, Enum):
    PASSED = "passed"
    FAILED = "failed"
    NOT_ATTEMPTED = "not_attempted"


@dataclass
class StageReport:
    stage: ValidationStage
    status: StageStatus = StageStatus.NOT_ATTEMPTED
    detail: str = ""
    sample_values: List[str] = field(default_factory=list)
    error_message: Optional[str] = None

    @property
    def attempted(self) -> bool:
        return self.status != StageStatus.NOT_ATTEMPTED


@dataclass
class TestVerdict:
    __test__ = False  # not a pytest class

    source_name: str
    source_url: Optional[str] = None
    stages: Dict[ValidationStage, StageReport] = field(
        default_factory=lambda: {stage: StageReport(stage) for stage in ValidationStage})

    def status_of(self, stage: ValidationStage) -> StageStatus:
        return self.stages[stage].status

    @property
    def is_successful(self) -> bool:
        attempted = [report for report in self.stages.values() if report.attempted]
        if not self.stages[ValidationStage.SEARCH].attempted:
            return False
        return all(report.status == StageStatus.PASSED for report in attempted)

    @property
    def failed_stage(self) -> Optional[ValidationStage]:
        for stage in ValidationStage:
            if self.stages[stage].status == StageStatus.FAILED:
                return stage
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'source': self.source_name,
            'url': self.source_url,
            'successful': self.is_successful,
            'stages': {
                stage.value: {
                    'status': report.status.value,
                    'detail': report.detail,
                    'samples': report.sample_values,
                    'error': report.error_message,
                }
                for stage, report in self.stages.items()
            },
        }


class RuleSetValidator:
    def __init__(self, fetcher: FetchGateway, probe_keyword: Optional[str] = None, logger_instance=None,
                 rate_limiter: Optional[RateLimiter] = None, url_strategy: Optional[UrlResolution] = None,
                 progress_callback: Optional[Callable[[str, int], None]] = None):
        self.fetcher = fetcher
        self.probe_keyword = probe_keyword if probe_keyword else config.VALIDATION_PROBE_KEYWORD
        self.logger = logger_instance if logger_instance else logger
        self.rate_limiter = rate_limiter if rate_limiter else RateLimiter()
        self.progress_callback = progress_callback
        self.searcher = BookSearcher(fetcher, max_workers=1, logger_instance=self.logger,
                                     rate_limiter=self.rate_limiter, url_strategy=url_strategy)
        self.client = SourceClient(fetcher, logger_instance=self.logger, rate_limiter=self.rate_limiter,
                                   url_strategy=url_strategy)

    def _progress(self, message: str, percent: int):
        if self.progress_callback:
            self.progress_callback(message, percent)
        self.logger.debug(f"Validation progress: {message} - {percent}%")

    def _fail(self, report: StageReport, error: Exception):
        report.status = StageStatus.FAILED
        report.error_message = f"{type(error).__name__}: {error}"
        self.logger.warning(f"❌ Stage '{report.stage.value}' failed: {report.error_message}")

    def validate(self, rule_set: RuleSet) -> TestVerdict:
        verdict = TestVerdict(source_name=rule_set.name, source_url=rule_set.url)
        stages = verdict.stages
        context = self.client.context_for(rule_set)
        self.logger.info(f"🧪 Validating source '{rule_set.name}' with probe keyword '{self.probe_keyword}'")

        # 1. search
        self._progress(f"Searching '{self.probe_keyword}'", 10)
        report = stages[ValidationStage.SEARCH]
        try:
            results = self.searcher.search_source(rule_set, self.probe_keyword)
        except Exception as e:
            self._fail(report, e)
            return self._finish(verdict)
        report.status = StageStatus.PASSED if results else StageStatus.FAILED
        report.detail = f"{len(results)} results"
        report.sample_values = [r.title for r in results[:5]]
        if not results:
            return self._finish(verdict)

        # 2. book info
        first_book = results[0]
        self._progress(f"Fetching book info: {first_book.title}", 35)
        report = stages[ValidationStage.BOOK_INFO]
        try:
            book_document = self.client.fetch_document(first_book.book_url, rule_set)
            info = extract_book_info(book_document, rule_set.book_info_rule, context)
        except Exception as e:
            self._fail(report, e)
            return self._finish(verdict)
        report.status = StageStatus.PASSED
        report.detail = first_book.book_url
        report.sample_values = [v for v in (info.title, info.author, info.last_chapter) if v]

        # 3. chapter list, from the same document
        self._progress("Extracting chapter list", 60)
        report = stages[ValidationStage.CHAPTER_LIST]
        try:
            chapters = extract_chapter_list(book_document, rule_set.chapter_list_rule, context)
        except Exception as e:
            self._fail(report, e)
            return self._finish(verdict)
        report.status = StageStatus.PASSED if chapters else StageStatus.FAILED
        report.detail = f"{len(chapters)} chapters"
        report.sample_values = [c.title for c in chapters[:5]]
        if not chapters:
            return self._finish(verdict)

        # 4. content of the first chapter
        first_chapter = chapters[0]
        self._progress(f"Fetching chapter content: {first_chapter.title}", 85)
        report = stages[ValidationStage.CONTENT]
        try:
            content = self.client.get_chapter_content(first_chapter.url, rule_set)
        except Exception as e:
            self._fail(report, e)
            return self._finish(verdict)
        report.status = StageStatus.PASSED if content.text else StageStatus.FAILED
        report.detail = f"{len(content.text)} characters from {first_chapter.url}"
        if content.text:
            report.sample_values = [content.text[:80]]
        return self._finish(verdict)

    def _finish(self, verdict: TestVerdict) -> TestVerdict:
        self._progress("Validation complete", 100)
        if verdict.is_successful:
            self.logger.info(f"✅ Source '{verdict.source_name}' passed validation")
        else:
            summary = ", ".join(f"{s.value}={r.status.value}" for s, r in verdict.stages.items())
            self.logger.warning(f"⚠️ Source '{verdict.source_name}' failed validation ({summary})")
        return verdict

    def validate_all(self, rule_sets: Iterable[RuleSet], max_workers: Optional[int] = None) -> List[TestVerdict]:
        """One verdict per rule set, in input order. Sources may share a name, so results are not keyed by it."""
        snapshot = tuple(rule_sets)
        if not snapshot:
            return []
        workers = max(1, min(max_workers or config.MAX_CONCURRENT_FETCHERS, len(snapshot)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="rule-validate") as executor:
            return list(executor.map(self.validate, snapshot))
