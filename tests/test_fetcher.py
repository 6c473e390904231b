from typing import Dict, Optional
from unittest.mock import MagicMock

import pytest
import requests
from requests.structures import CaseInsensitiveDict

import config
from book_scraper import fetcher as fetcher_module
from book_scraper.errors import FetchFailure, RedirectFailure
from book_scraper.fetcher import RateLimiter, RequestsFetcher, decode_body


def make_response(status_code: int = 200, body: bytes = b"", headers: Optional[Dict[str, str]] = None,
                  url: str = "") -> requests.Response:
    response = requests.Response()
    response.status_code = status_code
    response._content = body
    response.headers = CaseInsensitiveDict(headers or {})
    response.url = url
    response.encoding = requests.utils.get_encoding_from_headers(response.headers)
    return response


@pytest.fixture
def session():
    mock_session = MagicMock(spec=requests.Session)
    mock_session.headers = {}
    return mock_session


class TestFetchMarkup:
    def test_plain_page(self, session) -> None:
        session.get.return_value = make_response(body=b"<p>ok</p>", headers={"Content-Type": "text/html"})
        page = RequestsFetcher(session=session).fetch_markup("https://x.com/a")

        assert page.text == "<p>ok</p>"
        assert page.final_url == "https://x.com/a"
        assert page.status_code == 200
        assert page.encoding == "utf-8"

    def test_headers_and_timeout_are_passed(self, session) -> None:
        session.get.return_value = make_response(body=b"ok")
        RequestsFetcher(session=session, timeout=5).fetch_markup("https://x.com/a", headers={"Cookie": "a=1"})

        _, kwargs = session.get.call_args
        assert kwargs["headers"] == {"Cookie": "a=1"}
        assert kwargs["timeout"] == 5
        assert kwargs["allow_redirects"] is False

    def test_own_session_gets_default_user_agent(self) -> None:
        fetcher = RequestsFetcher()
        assert fetcher.session.headers["User-Agent"] == config.USER_AGENT
        fetcher.close()

    def test_caller_session_headers_are_left_alone(self, session) -> None:
        session.headers = {"User-Agent": "my-reader/2.0"}
        RequestsFetcher(session=session)
        assert session.headers == {"User-Agent": "my-reader/2.0"}

    def test_gbk_hint(self, session) -> None:
        session.get.return_value = make_response(body="中文测试".encode("gbk"), headers={"Content-Type": "text/html"})
        page = RequestsFetcher(session=session).fetch_markup("https://x.com/a", encoding="gbk")

        assert page.text == "中文测试"
        assert page.encoding == "gbk"

    def test_declared_charset_is_used(self, session) -> None:
        session.get.return_value = make_response(body="中文测试".encode("gbk"),
                                                 headers={"Content-Type": "text/html; charset=GBK"})
        page = RequestsFetcher(session=session).fetch_markup("https://x.com/a")
        assert page.text == "中文测试"

    def test_http_error_status(self, session) -> None:
        session.get.return_value = make_response(status_code=404)
        with pytest.raises(FetchFailure) as exc_info:
            RequestsFetcher(session=session).fetch_markup("https://x.com/missing")
        assert exc_info.value.status_code == 404
        assert exc_info.value.url == "https://x.com/missing"

    def test_connection_error(self, session) -> None:
        session.get.side_effect = requests.exceptions.ConnectionError("refused")
        with pytest.raises(FetchFailure):
            RequestsFetcher(session=session).fetch_markup("https://x.com/a")

    def test_timeout(self, session) -> None:
        session.get.side_effect = requests.exceptions.Timeout()
        with pytest.raises(FetchFailure) as exc_info:
            RequestsFetcher(session=session, timeout=3).fetch_markup("https://x.com/a")
        assert "Timeout" in str(exc_info.value)

    def test_fetch_bytes(self, session) -> None:
        session.get.return_value = make_response(body=b"\x89PNG")
        assert RequestsFetcher(session=session).fetch_bytes("https://x.com/cover.png") == b"\x89PNG"


class TestRedirects:
    def test_redirect_is_followed(self, session) -> None:
        session.get.side_effect = [
            make_response(status_code=302, headers={"Location": "/b"}),
            make_response(body=b"<p>moved</p>"),
        ]
        page = RequestsFetcher(session=session).fetch_markup("https://x.com/a")

        assert page.text == "<p>moved</p>"
        assert page.url == "https://x.com/a"
        assert page.final_url == "https://x.com/b"
        assert session.get.call_args_list[1].args[0] == "https://x.com/b"

    def test_missing_location(self, session) -> None:
        session.get.return_value = make_response(status_code=301)
        with pytest.raises(RedirectFailure) as exc_info:
            RequestsFetcher(session=session).fetch_markup("https://x.com/a")
        assert exc_info.value.status_code == 301

    def test_redirect_loop(self, session) -> None:
        session.get.side_effect = [
            make_response(status_code=302, headers={"Location": "https://x.com/b"}),
            make_response(status_code=302, headers={"Location": "https://x.com/a"}),
        ]
        with pytest.raises(RedirectFailure, match="loop"):
            RequestsFetcher(session=session).fetch_markup("https://x.com/a")

    def test_too_many_redirects(self, session) -> None:
        session.get.side_effect = [
            make_response(status_code=302, headers={"Location": f"https://x.com/{i}"}) for i in range(5)
        ]
        with pytest.raises(RedirectFailure, match="Too many"):
            RequestsFetcher(session=session, max_redirects=2).fetch_markup("https://x.com/a")
        assert session.get.call_count == 3

    def test_redirect_failure_is_fetch_failure(self) -> None:
        assert issubclass(RedirectFailure, FetchFailure)


class TestDecodeBody:
    def test_utf8_first(self) -> None:
        assert decode_body("é".encode("utf-8"), encoding_hint="latin-1") == ("é", "utf-8")

    def test_falls_back_to_hint(self) -> None:
        assert decode_body("中文".encode("gb18030"), encoding_hint="gb18030") == ("中文", "gb18030")

    def test_unknown_codec_is_skipped(self) -> None:
        assert decode_body(b"abc", encoding_hint="no-such-codec") == ("abc", "utf-8")

    def test_nothing_fits(self) -> None:
        assert decode_body(b"\xff\xfe\xfa") is None


class TestRateLimiter:
    def test_second_call_waits(self, monkeypatch) -> None:
        sleeps = []
        monkeypatch.setattr(fetcher_module.time, "monotonic", lambda: 100.0)
        monkeypatch.setattr(fetcher_module.time, "sleep", sleeps.append)

        limiter = RateLimiter()
        limiter.wait("source", 500)
        limiter.wait("source", 500)

        assert sleeps == [pytest.approx(0.5)]

    def test_keys_are_independent(self, monkeypatch) -> None:
        sleeps = []
        monkeypatch.setattr(fetcher_module.time, "monotonic", lambda: 100.0)
        monkeypatch.setattr(fetcher_module.time, "sleep", sleeps.append)

        limiter = RateLimiter()
        limiter.wait("a", 500)
        limiter.wait("b", 500)

        assert sleeps == []

    def test_zero_interval_never_sleeps(self, monkeypatch) -> None:
        sleep = MagicMock()
        monkeypatch.setattr(fetcher_module.time, "sleep", sleep)
        RateLimiter().wait("source", 0)
        sleep.assert_not_called()
