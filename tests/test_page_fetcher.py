"""Lightweight-first fetching and the single browser escalation."""
import pytest
import requests

from cardpop.errors import NetworkError
from cardpop.scanners.browser import BrowserState
from cardpop.scanners.page_fetcher import BROWSER, LIGHTWEIGHT, PageFetcher

from fakes import FakeResponse, card_rows, checklist_table

URL = "https://shop.example.com/checklist/"
FULL_PAGE = checklist_table(card_rows(1, 40))


@pytest.fixture
def fetcher():
    return PageFetcher(browser_first_hosts=["www.tcdb.com"])


def test_usable_page_never_launches_browser(ctx, fake_http, driver_factory, fetcher):
    fake_http.add("GET", URL, FakeResponse(200, FULL_PAGE))

    result = fetcher.fetch(ctx, URL)

    assert result.mode == LIGHTWEIGHT
    assert result.text == FULL_PAGE
    assert driver_factory.launches == 0
    assert ctx.last_referer == URL


def test_short_html_escalates_and_shares_cookies(ctx, fake_http, fake_driver, driver_factory, fetcher):
    fake_http.add("GET", URL, FakeResponse(200, "<html>Just a moment...</html>"))
    fake_driver.pages[URL] = [FULL_PAGE]

    result = fetcher.fetch(ctx, URL)

    assert result.mode == BROWSER
    assert result.text == FULL_PAGE
    assert driver_factory.launches == 1
    assert fake_driver.visited == [URL]
    assert ctx.http.cookies.get("sid") == "browser-cookie"


def test_blocked_status_escalates(ctx, fake_http, fake_driver, fetcher):
    fake_http.add("GET", URL, FakeResponse(403, "<html>Forbidden</html>"))
    fake_driver.pages[URL] = [FULL_PAGE]

    assert fetcher.fetch(ctx, URL).mode == BROWSER


@pytest.mark.parametrize("status", [404, 410])
def test_definitive_status_is_not_escalated(ctx, fake_http, driver_factory, fetcher, status):
    fake_http.add("GET", URL, FakeResponse(status, "<html>gone</html>"))

    result = fetcher.fetch(ctx, URL)

    assert result.status == status
    assert result.mode == LIGHTWEIGHT
    assert driver_factory.launches == 0


def test_connection_error_escalates(ctx, fake_http, fake_driver, fetcher):
    fake_http.add("GET", URL, requests.exceptions.ConnectionError("reset by peer"))
    fake_driver.pages[URL] = [FULL_PAGE]

    assert fetcher.fetch(ctx, URL).mode == BROWSER


def test_small_json_is_not_escalated(ctx, fake_http, driver_factory, fetcher):
    fake_http.add("GET", URL, FakeResponse(json_data={"ok": True}))

    result = fetcher.fetch(ctx, URL, kind="xhr")

    assert result.mode == LIGHTWEIGHT
    assert result.json() == {"ok": True}
    assert driver_factory.launches == 0


def test_blocking_host_goes_straight_to_browser(ctx, fake_http, fake_driver, fetcher):
    url = "https://www.tcdb.com/Checklist.cfm/sid/482758"
    fake_driver.pages[url] = [FULL_PAGE]

    result = fetcher.fetch(ctx, url)

    assert result.mode == BROWSER
    assert fake_http.calls == []


def test_pinned_lightweight_mode_never_escalates(ctx, fake_http, driver_factory, fetcher):
    fake_http.add("GET", URL, FakeResponse(403, "<html>Forbidden</html>"))

    result = fetcher.fetch(ctx, URL, mode=LIGHTWEIGHT)

    assert result.status == 403
    assert driver_factory.launches == 0


# =============================================================================
# BROWSER UNAVAILABLE
# =============================================================================

def test_unavailable_browser_keeps_lightweight_response(ctx_no_browser, fake_http, fetcher):
    fake_http.add("GET", URL, FakeResponse(403, "<html>Forbidden</html>"))

    result = fetcher.fetch(ctx_no_browser, URL)

    assert result.status == 403
    assert result.mode == LIGHTWEIGHT
    assert ctx_no_browser.browser.state == BrowserState.DISABLED


def test_unavailable_browser_surfaces_network_error(ctx_no_browser, fake_http, fetcher):
    fake_http.add("GET", URL, requests.exceptions.Timeout("read timed out"))

    with pytest.raises(NetworkError) as excinfo:
        fetcher.fetch(ctx_no_browser, URL)

    assert excinfo.value.url == URL
    assert excinfo.value.strategy == LIGHTWEIGHT
    assert ctx_no_browser.browser.driver_factory.launches == 0


# =============================================================================
# POST
# =============================================================================

def test_post_json_escalates_to_in_page_fetch(ctx, fake_http, fake_driver, fetcher):
    url = "https://api.example.com/universal-search-query"
    fake_http.add("POST", url, FakeResponse(403, "denied"))
    fake_driver.post_response = {"status": 200, "text": '[{"id": "1"}]', "type": "application/json"}

    result = fetcher.post_json(ctx, url, {"query": "holliday"})

    assert result.mode == BROWSER
    assert result.json() == [{"id": "1"}]
    assert fake_driver.visited == ["https://api.example.com/"]


def test_post_json_without_browser_fallback(ctx, fake_http, driver_factory, fetcher):
    url = "https://api.example.com/universal-search-query"
    fake_http.add("POST", url, requests.exceptions.ConnectionError("refused"))

    with pytest.raises(NetworkError):
        fetcher.post_json(ctx, url, {"query": "holliday"}, allow_browser=False)
    assert driver_factory.launches == 0
