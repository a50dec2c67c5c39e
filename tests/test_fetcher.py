import httpx
import pytest

from group_harvest.config import Settings
from group_harvest.errors import HTTPStatusError, NetworkError, SessionError
from group_harvest.fetcher import PageFetcher, page_title
from html_pages import listing_page, login_page


def _fetcher(handler, **overrides) -> PageFetcher:
    settings = Settings(forum_id="g1", fetch_retry_delay_seconds=0.0, **overrides)
    return PageFetcher(settings, client=httpx.Client(transport=httpx.MockTransport(handler)))


def test_fetch_listing_requests_templated_url() -> None:
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200, text=listing_page([]))

    with _fetcher(handler) as fetcher:
        html = fetcher.fetch_listing(fetcher.listing_ref(2))

    assert seen == ["https://www.douban.com/group/g1/discussion?start=51"]
    assert page_title(html) == "Renting group"


def test_non_success_status_is_http_status_error() -> None:
    fetcher = _fetcher(lambda request: httpx.Response(403, text="forbidden"))
    with pytest.raises(HTTPStatusError) as excinfo:
        fetcher.fetch_listing(fetcher.listing_ref(0))
    assert excinfo.value.status_code == 403
    assert excinfo.value.page_offset == 0


def test_login_placeholder_title_is_session_error() -> None:
    fetcher = _fetcher(lambda request: httpx.Response(200, text=login_page()))
    with pytest.raises(SessionError):
        fetcher.fetch_url("https://www.douban.com/group/topic/1/")


def test_transport_failure_is_network_error_without_retry() -> None:
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        raise httpx.ConnectError("connection refused", request=request)

    fetcher = _fetcher(handler)
    with pytest.raises(NetworkError):
        fetcher.fetch_url("https://www.douban.com/group/topic/1/")
    assert calls["count"] == 1


def test_opt_in_retry_covers_transport_failures_only() -> None:
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        if calls["count"] == 1:
            raise httpx.ReadTimeout("timed out", request=request)
        return httpx.Response(200, text=listing_page([]))

    fetcher = _fetcher(handler, fetch_attempts=3)
    fetcher.fetch_url("https://www.douban.com/group/g1/discussion?start=1")
    assert calls["count"] == 2

    statuses = {"count": 0}

    def failing(request: httpx.Request) -> httpx.Response:
        statuses["count"] += 1
        return httpx.Response(500)

    with pytest.raises(HTTPStatusError):
        _fetcher(failing, fetch_attempts=3).fetch_url("https://www.douban.com/")
    assert statuses["count"] == 1


def test_redirect_loop_is_network_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(302, headers={"Location": str(request.url)})

    settings = Settings(forum_id="g1")
    client = httpx.Client(transport=httpx.MockTransport(handler), follow_redirects=True)
    fetcher = PageFetcher(settings, client=client)

    with pytest.raises(NetworkError, match="redirects"):
        fetcher.fetch_listing(fetcher.listing_ref(1))
