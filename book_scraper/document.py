# book_scraper/document.py
"""
Queryable markup tree used by the extraction engine.

Thin wrapper over BeautifulSoup (lxml tree builder) and its soupsieve CSS engine.
Only the primitives the rule language needs are exposed: selection, text and
attribute access, and in-place removal of matched nodes.
"""
import logging
import re
from typing import List, Optional, Union
from urllib.parse import urljoin

import soupsieve
from bs4 import BeautifulSoup, ParserRejectedMarkup, Tag

from .errors import InvalidSelector, MalformedMarkup

logger = logging.getLogger(__name__)

PARSER_FEATURES = "lxml"


def _clean_block_text(text: Optional[str]) -> str:
    """Strips and condenses all whitespace runs (including newlines) into a single space."""
    if not text:
        return ""
    return re.sub(r'\s+', ' ', str(text)).strip()


def _select(tag: Tag, selector: str) -> List[Tag]:
    try:
        return tag.select(selector)
    except (soupsieve.SelectorSyntaxError, NotImplementedError, ValueError) as e:
        raise InvalidSelector(f"Invalid selector '{selector}': {e}", selector=selector) from e


class Node:
    """One element of a parsed document."""

    def __init__(self, tag: Tag):
        self._tag = tag

    @property
    def name(self) -> Optional[str]:
        return self._tag.name

    def text(self) -> str:
        return _clean_block_text(self._tag.get_text(separator=" ", strip=True))

    def attr(self, name: str) -> Optional[str]:
        value = self._tag.get(name)
        if value is None:
            return None
        # class, rel, etc. come back as lists
        if isinstance(value, list):
            return " ".join(value)
        return str(value)

    def html(self) -> str:
        return str(self._tag)

    def select(self, selector: str) -> List["Node"]:
        return [Node(t) for t in _select(self._tag, selector)]

    def __repr__(self):
        return f"Node(<{self.name}>)"


class Document:
    def __init__(self, soup: BeautifulSoup, url: Optional[str] = None):
        self._soup = soup
        self.url = url

    @property
    def root(self) -> Node:
        return Node(self._soup)

    def select(self, selector: str) -> List[Node]:
        return self.root.select(selector)

    def remove(self, selector: str) -> int:
        """Deletes every node matched by selector, with its subtree. Returns the number removed."""
        removed = 0
        for tag in _select(self._soup, selector):
            # a match nested inside an already removed match is gone with its ancestor
            if tag.decomposed:
                continue
            tag.decompose()
            removed += 1
        return removed

    def base_url(self) -> Optional[str]:
        base_tag = self._soup.find("base", href=True)
        if base_tag:
            href = str(base_tag["href"]).strip()
            if href:
                return urljoin(self.url, href) if self.url else href
        return self.url

    def html(self) -> str:
        return str(self._soup)


def parse(markup: Union[str, bytes], url: Optional[str] = None) -> Document:
    """Parses markup leniently. Raises MalformedMarkup only for input that cannot be tokenized."""
    if not isinstance(markup, (str, bytes)):
        raise MalformedMarkup(f"Cannot parse markup of type {type(markup).__name__}")
    try:
        soup = BeautifulSoup(markup, PARSER_FEATURES)
    except ParserRejectedMarkup as e:
        raise MalformedMarkup(f"Markup from {url or 'input'} was rejected by the parser: {e}") from e
    logger.debug(f"Parsed document from {url or 'input'} ({len(markup)} chars/bytes)")
    return Document(soup, url=url)
