# book_scraper/errors.py
"""
Error taxonomy for the book source engine.

Every failure raised by the engine derives from BookScraperError so callers at a
per-source boundary (aggregation task, validation stage) can catch exactly the
failures a misbehaving source may produce.
"""
from typing import Optional


class BookScraperError(Exception):
    """Base class for all engine failures."""


class MalformedMarkup(BookScraperError):
    """The fetched markup could not be tokenized at all."""


class RuleMismatch(BookScraperError):
    """A required field's selector produced no match (or the rule is unusable)."""

    def __init__(self, message: str, field_name: Optional[str] = None, selector: Optional[str] = None):
        super().__init__(message)
        self.field_name = field_name
        self.selector = selector


class InvalidSelector(RuleMismatch):
    """The selector expression itself could not be parsed."""


class FetchFailure(BookScraperError):
    """Network, transport, decoding or HTTP status failure."""

    def __init__(self, message: str, url: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class RedirectFailure(FetchFailure):
    """Redirect without a usable Location header, a redirect loop, or too many hops."""


class ImportValidationFailure(BookScraperError):
    """A required rule set field is absent or empty during deserialization."""

    def __init__(self, message: str, field_name: Optional[str] = None):
        super().__init__(message)
        self.field_name = field_name
