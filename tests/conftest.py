"""Shared fixtures: an in-memory fetch gateway and small book source rule sets."""

import threading
from typing import Callable, Dict, List, Optional, Union

import pytest

from book_scraper.book_models import FetchedPage
from book_scraper.errors import FetchFailure
from book_scraper.source_models import RuleSet

SEARCH_PAGE = """
<html><body>
  <ul class="result-list">
    <li>
      <h3><a href="/book/1/">Alpha</a></h3>
      <span class="author">Ann</span>
      <p class="intro">The first book</p>
      <img class="cover" src="/img/1.jpg">
    </li>
    <li>
      <h3><a href="https://other.example.org/book/2">Beta</a></h3>
      <span class="author">Bob</span>
    </li>
    <li><h3><a>No link at all</a></h3></li>
  </ul>
</body></html>
"""

BOOK_PAGE = """
<html><body>
  <div id="info">
    <h1>Alpha</h1>
    <p class="author">Ann</p>
    <p class="latest"><a href="3.html">Chapter 3</a></p>
  </div>
  <div id="intro">  The first
     book  </div>
  <dl id="list">
    <dd><a href="1.html">Chapter 1</a></dd>
    <dd><a href="2.html">Chapter 2</a></dd>
    <dd><a href="3.html">Chapter 3</a></dd>
  </dl>
</body></html>
"""

CHAPTER_PAGE = """
<html><body>
  <h1 class="title">Chapter 1</h1>
  <div id="content">
    <p>It was a dark night.</p>
    <div class="ad">BUY NOW</div>
    <p>Remember our domain: example.com</p>
  </div>
  <a class="next" href="1_2.html">Next page</a>
</body></html>
"""

EMPTY_SEARCH_PAGE = "<html><body><ul class='result-list'></ul></body></html>"


class FakeFetcher:
    """FetchGateway stand-in. Values are markup, an exception to raise, or a callable returning markup."""

    def __init__(self, pages: Optional[Dict[str, Union[str, Exception, Callable[[], str]]]] = None,
                 redirects: Optional[Dict[str, str]] = None):
        self.pages = dict(pages or {})
        self.redirects = dict(redirects or {})
        self.calls: List[str] = []
        self.headers_seen: List[Optional[Dict[str, str]]] = []
        self.encodings_seen: List[Optional[str]] = []
        self._lock = threading.Lock()

    def fetch_markup(self, url, headers=None, encoding=None):
        with self._lock:
            self.calls.append(url)
            self.headers_seen.append(headers)
            self.encodings_seen.append(encoding)
        if url not in self.pages:
            raise FetchFailure(f"HTTP error 404 fetching {url}", url=url, status_code=404)
        value = self.pages[url]
        if isinstance(value, Exception):
            raise value
        if callable(value):
            value = value()
        return FetchedPage(url=url, final_url=self.redirects.get(url, url), text=value,
                           content=value.encode("utf-8"), encoding="utf-8")

    def fetch_bytes(self, url, headers=None):
        return self.fetch_markup(url, headers).content


def build_rule_set(name="Alpha Source", url="https://a.example.com", **overrides) -> RuleSet:
    data = {
        "name": name,
        "url": url,
        "searchUrl": f"{url}/search?q={{keyword}}",
        "searchRule": {
            "list": "ul.result-list > li",
            "name": "h3 a",
            "author": ".author",
            "intro": ".intro",
            "coverUrl": "img.cover@src",
            "bookUrl": "h3 a@href",
        },
        "bookInfoRule": {
            "name": "#info h1",
            "author": "#info .author",
            "intro": "#intro",
            "lastChapter": "#info .latest a",
        },
        "chapterListRule": {
            "list": "#list dd a",
            "name": "@text",
            "url": "@href",
        },
        "contentRule": {
            "content": "#content p",
            "next": "a.next@href",
            "title": "h1.title",
            "ads": [".ad"],
            "purify": ["Remember our domain: \\S+"],
        },
    }
    data.update(overrides)
    return RuleSet.model_validate(data)


@pytest.fixture
def rule_set() -> RuleSet:
    return build_rule_set()


@pytest.fixture
def fake_fetcher() -> FakeFetcher:
    return FakeFetcher()
