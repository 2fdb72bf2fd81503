"""Query sanitizing, candidate selection and the search -> details flow."""
import pytest

from cardpop.errors import NetworkError, NotFoundError, ParseError
from cardpop.market.search_resolver import (
    SearchResolver,
    sanitize_query,
    search_entries,
    select_candidate,
)
from cardpop.scanners.page_fetcher import PageFetcher

from fakes import FakeResponse

BASE = "https://gemrate.test"
PRIORITY = ["universal", "psa"]

DETAILS = {
    "data": {
        "population": {"total_population": "120", "gems_plus": 42, "gem_rate": "35%"},
        "card": {"name": "Holliday", "set_name": "Topps Update", "year": "2024", "card_number": "US50"},
    }
}


def html(body=""):
    padding = "<p>" + "Card population data. " * 40 + "</p>"
    return FakeResponse(200, f"<html><head><title>GemRate</title></head><body>{body}{padding}</body></html>")


@pytest.fixture
def resolver():
    return SearchResolver(PageFetcher(), base_url=BASE, priority=PRIORITY)


# =============================================================================
# SANITIZING
# =============================================================================

@pytest.mark.parametrize("query,expected", [
    ("2024 topps chrome holliday -(auto, refractor) -lot", "2024 topps chrome holliday"),
    ("holliday -auto", "holliday"),
    ("  topps   update  ", "topps update"),
    ("holliday -(auto", "holliday"),
    ("t-rex card", "t-rex card"),
    ("Holliday US50", "Holliday US50"),
    ("-(auto)", ""),
])
def test_sanitize_query(query, expected):
    assert sanitize_query(query) == expected


@pytest.mark.parametrize("base", ["2024 topps update us50", "bowman chrome -(auto)", "wembanyama"])
def test_sanitize_ignores_trailing_exclusions(base):
    assert sanitize_query(base + " -(numbered, lot)") == sanitize_query(base)
    assert sanitize_query(base + " -reprint") == sanitize_query(base)


# =============================================================================
# CANDIDATES
# =============================================================================

@pytest.mark.parametrize("entries", [
    [{"id": "psa-1", "grader": "psa"}, {"id": "u-1", "grader": "universal"}],
    [{"id": "u-1", "grader": "Universal"}, {"id": "psa-1", "grader": "PSA"}],
])
def test_top_authority_wins_regardless_of_order(entries):
    candidate = select_candidate(entries, PRIORITY)
    assert candidate.id == "u-1"
    assert candidate.authority == "universal"
    assert candidate.authority_rank == 0


def test_second_authority_used_when_first_missing():
    candidate = select_candidate([{"id": "s-1", "grader": "sgc"}, {"id": "psa-1", "grader": "psa"}], PRIORITY)
    assert candidate.id == "psa-1"
    assert candidate.authority_rank == 1


def test_unknown_authorities_fall_back_to_first_entry():
    candidate = select_candidate([{"id": "7", "grader": "sgc"}, {"id": "8", "grader": "cgc"}], PRIORITY)
    assert candidate.id == "7"
    assert candidate.authority_rank == len(PRIORITY)


def test_entries_without_ids_are_unusable():
    with pytest.raises(NotFoundError):
        select_candidate([{"grader": "psa"}, {"name": "no id"}], PRIORITY)


def test_search_entries_shapes():
    assert search_entries([{"id": 1}, "junk"]) == [{"id": 1}]
    assert search_entries({"results": [{"id": 2}]}) == [{"id": 2}]
    assert search_entries({"data": {"cards": [{"id": 3}]}}) == [{"id": 3}]
    assert search_entries({"message": "nothing"}) == []


# =============================================================================
# FLOW
# =============================================================================

def test_full_search_flow(ctx, fake_http, resolver):
    warm_url = BASE + "/item-details/2024-topps-update-us50-holliday"
    fake_http.add("GET", BASE + "/", html('<script>var cfg = {authToken: "root-token-0000000000"};</script>'))
    fake_http.add("POST", BASE + "/universal-search-query", FakeResponse(json_data={"results": [
        {"gemrate_id": "psa-9", "grader": "psa", "slug": "psa-slug"},
        {"gemrate_id": "u-999", "grader": "universal", "slug": "2024-topps-update-us50-holliday"},
    ]}))
    fake_http.add("GET", warm_url, html('<script>window.authToken = "entity-token-1111111111";</script>'))
    fake_http.add("GET", BASE + "/card-details?gemrate_id=u-999", FakeResponse(json_data=DETAILS))

    result = resolver.search(ctx, "2024 topps update us50 holliday -(auto)")

    assert result.sanitized_query == "2024 topps update us50 holliday"
    assert result.candidate.id == "u-999"
    assert result.partial is False
    assert result.referer == warm_url
    assert result.population.total == 120
    assert result.population.gem_rate_percent == 35.0
    assert result.population.identity.number == "US50"
    assert ctx.auth_token == "entity-token-1111111111"

    method, url, kwargs = [c for c in fake_http.calls if c[0] == "POST"][0]
    assert kwargs["json"] == {"query": "2024 topps update us50 holliday"}
    assert kwargs["headers"]["Authorization"] == "Bearer root-token-0000000000"

    details_call = fake_http.calls[-1]
    assert details_call[1] == BASE + "/card-details?gemrate_id=u-999"
    assert details_call[2]["headers"]["Referer"] == warm_url
    assert details_call[2]["headers"]["Authorization"] == "Bearer entity-token-1111111111"

    assert result.to_dict()["candidate"]["authority"] == "universal"


def test_slug_discovered_from_results_page(ctx, fake_http, resolver):
    fake_http.add("GET", BASE + "/", html())
    fake_http.add("POST", BASE + "/universal-search-query", FakeResponse(json_data=[
        {"id": "555", "grader": "universal"},
    ]))
    fake_http.add(
        "GET", BASE + "/universal-search?query=2024+topps+update+holliday",
        html('<a href="/item-details/2024-topps-update-holliday-us50">Jackson Holliday</a>'),
    )
    fake_http.add("GET", BASE + "/item-details/2024-topps-update-holliday-us50", html())
    fake_http.add("GET", BASE + "/card-details?gemrate_id=555", FakeResponse(json_data=DETAILS))

    result = resolver.search(ctx, "2024 topps update holliday")

    assert result.candidate.slug == "2024-topps-update-holliday-us50"
    assert fake_http.urls("GET") == [
        BASE + "/",
        BASE + "/universal-search?query=2024+topps+update+holliday",
        BASE + "/item-details/2024-topps-update-holliday-us50",
        BASE + "/card-details?gemrate_id=555",
    ]


def test_details_failure_falls_back_to_search_entry(ctx_no_browser, fake_http, resolver):
    fake_http.add("GET", BASE + "/", html())
    fake_http.add("POST", BASE + "/universal-search-query", FakeResponse(json_data=[
        {"id": "555", "grader": "universal", "slug": "holliday", "total": 50, "gemsPlus": 10},
    ]))
    fake_http.add("GET", BASE + "/item-details/holliday", html())
    fake_http.add("GET", BASE + "/card-details?gemrate_id=555", FakeResponse(503, "Service Unavailable"))

    result = resolver.search(ctx_no_browser, "holliday")

    assert result.partial is True
    assert result.population.total == 50
    assert result.population.gem_rate_percent == 20.0


def test_details_failure_without_census_raises(ctx_no_browser, fake_http, resolver):
    fake_http.add("GET", BASE + "/", html())
    fake_http.add("POST", BASE + "/universal-search-query", FakeResponse(json_data=[
        {"id": "555", "grader": "universal", "slug": "holliday"},
    ]))
    fake_http.add("GET", BASE + "/card-details?gemrate_id=555", FakeResponse(503, "Service Unavailable"))

    with pytest.raises(NetworkError):
        resolver.search(ctx_no_browser, "holliday")


def test_no_search_results(ctx_no_browser, fake_http, resolver):
    fake_http.add("GET", BASE + "/", html())
    fake_http.add("POST", BASE + "/universal-search-query", FakeResponse(json_data={"results": []}))

    with pytest.raises(NotFoundError):
        resolver.search(ctx_no_browser, "nothing matches this")


def test_query_empty_after_sanitizing(ctx, fake_http, resolver):
    with pytest.raises(ParseError):
        resolver.search(ctx, "-(auto, refractor)")
    assert fake_http.calls == []
