# book_scraper/fetcher.py
import logging
import threading
import time
from typing import Dict, Optional, Protocol, Tuple
from urllib.parse import urljoin

import requests

import config
from .book_models import FetchedPage
from .errors import FetchFailure, RedirectFailure

logger = logging.getLogger(__name__)

REDIRECT_STATUS_CODES = (301, 302, 303, 307, 308)


class FetchGateway(Protocol):
    """Boundary contract: resolve a URL to markup (or raw bytes)."""

    def fetch_markup(self, url: str, headers: Optional[Dict[str, str]] = None,
                     encoding: Optional[str] = None) -> FetchedPage:
        ...

    def fetch_bytes(self, url: str, headers: Optional[Dict[str, str]] = None) -> bytes:
        ...


def decode_body(content: bytes, encoding_hint: Optional[str] = None, declared: Optional[str] = None,
                detected: Optional[str] = None) -> Optional[Tuple[str, str]]:
    """
    Decodes as UTF-8 first, then with the caller's hint, the charset the server declared,
    and finally the detected encoding. Returns (text, encoding), or None if nothing fits.
    """
    candidates = []
    for candidate in (config.DEFAULT_ENCODING, encoding_hint, declared, detected):
        if candidate and candidate.lower() not in candidates:
            candidates.append(candidate.lower())
    for candidate in candidates:
        try:
            return content.decode(candidate), candidate
        except (UnicodeDecodeError, LookupError):
            logger.debug(f"Content does not decode as {candidate}")
    return None


class RateLimiter:
    """Keeps at least interval_ms between two requests sharing a key. Thread-safe."""

    def __init__(self):
        self._lock = threading.Lock()
        self._next_slot: Dict[str, float] = {}

    def wait(self, key: str, interval_ms: int):
        if interval_ms <= 0:
            return
        interval = interval_ms / 1000.0
        with self._lock:
            now = time.monotonic()
            slot = max(now, self._next_slot.get(key, now))
            self._next_slot[key] = slot + interval
        delay = slot - now
        if delay > 0:
            logger.debug(f"Rate limit for '{key}': sleeping {delay:.2f}s")
            time.sleep(delay)


class RequestsFetcher:
    def __init__(self, logger_instance=None, timeout: Optional[float] = None, max_redirects: Optional[int] = None,
                 session: Optional[requests.Session] = None):
        self.logger = logger_instance if logger_instance else logger
        self.timeout = timeout if timeout is not None else config.DEFAULT_REQUEST_TIMEOUT
        self.max_redirects = max_redirects if max_redirects is not None else config.MAX_REDIRECTS
        if session is None:
            session = requests.Session()
            session.headers.update({"User-Agent": config.USER_AGENT})
        self.session = session

    def _get(self, url: str, headers: Optional[Dict[str, str]]) -> Tuple[requests.Response, str]:
        """GET following redirects by hand so loops and missing Location headers surface distinctly."""
        current_url = url
        visited = {current_url}
        for _ in range(self.max_redirects + 1):
            try:
                response = self.session.get(current_url, headers=headers, timeout=self.timeout,
                                            allow_redirects=False)
            except requests.exceptions.Timeout as e:
                raise FetchFailure(f"Timeout fetching {current_url} after {self.timeout}s", url=current_url) from e
            except requests.exceptions.RequestException as e:
                raise FetchFailure(f"Request error fetching {current_url}: {e}", url=current_url) from e

            if response.status_code not in REDIRECT_STATUS_CODES:
                if not 200 <= response.status_code < 300:
                    raise FetchFailure(f"HTTP error {response.status_code} fetching {current_url}",
                                       url=current_url, status_code=response.status_code)
                return response, current_url

            location = response.headers.get("Location")
            if not location or not location.strip():
                raise RedirectFailure(f"Redirect {response.status_code} from {current_url} without Location",
                                      url=current_url, status_code=response.status_code)
            next_url = urljoin(current_url, location.strip())
            if next_url in visited:
                raise RedirectFailure(f"Redirect loop detected at {next_url}", url=url,
                                      status_code=response.status_code)
            self.logger.debug(f"Redirect {response.status_code}: {current_url} -> {next_url}")
            visited.add(next_url)
            current_url = next_url

        raise RedirectFailure(f"Too many redirects (>{self.max_redirects}) starting at {url}", url=url)

    def fetch_markup(self, url: str, headers: Optional[Dict[str, str]] = None,
                     encoding: Optional[str] = None) -> FetchedPage:
        self.logger.info(f"Fetching URL: {url}")
        response, final_url = self._get(url, headers)
        content_bytes = response.content or b""
        content_type = response.headers.get('Content-Type', '').lower()
        declared = response.encoding if 'charset' in content_type else None

        decoded = decode_body(content_bytes, encoding, declared)
        if decoded is None:
            detected = response.apparent_encoding
            decoded = decode_body(content_bytes, encoding, declared, detected)
            if decoded is None:
                raise FetchFailure(f"Could not decode content from {final_url} (hint: {encoding}, "
                                   f"detected: {detected})", url=final_url, status_code=response.status_code)
        text, used_encoding = decoded
        self.logger.debug(f"Decoded {len(content_bytes)} bytes from {final_url} as {used_encoding}")
        return FetchedPage(
            url=url,
            final_url=final_url,
            status_code=response.status_code,
            text=text,
            content=content_bytes,
            encoding=used_encoding,
        )

    def fetch_bytes(self, url: str, headers: Optional[Dict[str, str]] = None) -> bytes:
        self.logger.info(f"Fetching raw bytes: {url}")
        response, _ = self._get(url, headers)
        return response.content or b""

    def close(self):
        self.logger.info("Closing RequestsFetcher session.")
        self.session.close()
