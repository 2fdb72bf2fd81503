"""Cookie warm-up, token capture and entity page warming."""
import pytest
import requests

from cardpop.scanners.page_fetcher import PageFetcher
from cardpop.stealth.session_manager import SessionManager

from fakes import FakeResponse

BASE = "https://gemrate.test"


def html(body=""):
    return FakeResponse(200, "<html><body>" + body + "<p>" + "Population counts. " * 40 + "</p></body></html>")


@pytest.fixture
def manager():
    return SessionManager(PageFetcher(), BASE)


def test_ensure_session_visits_root_once(ctx_no_browser, fake_http, manager):
    fake_http.add("GET", BASE + "/", html())

    assert manager.ensure_session(ctx_no_browser) is True
    assert manager.ensure_session(ctx_no_browser) is True

    assert fake_http.urls("GET") == [BASE + "/"]
    assert manager.origin in ctx_no_browser.warmed_origins
    assert ctx_no_browser.warmed


def test_ensure_session_never_raises(ctx_no_browser, fake_http, manager):
    fake_http.add("GET", BASE + "/", requests.exceptions.ConnectionError("no route to host"))

    assert manager.ensure_session(ctx_no_browser) is False
    assert not ctx_no_browser.warmed


def test_ensure_session_blocked(ctx_no_browser, fake_http, manager):
    fake_http.add("GET", BASE + "/", FakeResponse(503, "<html>unavailable</html>"))

    assert manager.ensure_session(ctx_no_browser) is False
    assert not ctx_no_browser.warmed


def test_root_page_token_is_captured(ctx_no_browser, fake_http, manager):
    fake_http.add("GET", BASE + "/", html('<script>var app = {apiToken: "tok-abcdefghijklmnop"};</script>'))

    manager.ensure_session(ctx_no_browser)

    assert ctx_no_browser.auth_token == "tok-abcdefghijklmnop"


def test_entity_paths_are_ordered_and_unique(manager):
    paths = manager.entity_paths("42", "holliday", ["/item-details/holliday", "/custom/path"])

    assert paths == [
        "/item-details/holliday",
        "/universal-search/card/holliday",
        "/item-details?gemrate_id=42",
        "/custom/path",
    ]
    assert manager.entity_paths("42") == ["/item-details?gemrate_id=42"]


def test_warm_entity_page_skips_missing_paths(ctx_no_browser, fake_http, manager):
    fake_http.add("GET", BASE + "/universal-search/card/holliday", html())

    url = manager.warm_entity_page(ctx_no_browser, "42", "holliday")

    assert url == BASE + "/universal-search/card/holliday"
    assert fake_http.urls("GET") == [
        BASE + "/item-details/holliday",
        BASE + "/universal-search/card/holliday",
    ]
    assert ctx_no_browser.last_referer == url


def test_warm_entity_page_keeps_going_after_errors(ctx_no_browser, fake_http, manager):
    fake_http.add("GET", BASE + "/item-details/holliday", requests.exceptions.Timeout("slow"))
    fake_http.add("GET", BASE + "/item-details?gemrate_id=42", html('<script>authToken = "entity-token-abcdefgh";</script>'))

    url = manager.warm_entity_page(ctx_no_browser, "42", "holliday")

    assert url == BASE + "/item-details?gemrate_id=42"
    assert ctx_no_browser.auth_token == "entity-token-abcdefgh"


def test_warm_entity_page_without_success(ctx_no_browser, fake_http, manager):
    assert manager.warm_entity_page(ctx_no_browser, "42", "holliday") is None
    assert len(fake_http.urls("GET")) == 3
