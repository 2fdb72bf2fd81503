"""WordPress catalog discovery: sports, years, sets."""
import pytest
import requests

from cardpop.checklist.catalog import ChecklistCatalog, clean_title, sport_term
from cardpop.errors import NetworkError, ParseError

from fakes import FakeHttp, FakeResponse

BASE = "https://checklist.test"
API = BASE + "/ci-api/wp/v2"


def route(path, **expected):
    """Match an API path plus the given query parameters."""
    def match(url, kwargs):
        params = kwargs.get("params") or {}
        return url == API + path and all(params.get(k) == v for k, v in expected.items())
    return match


def posts(*titles, start=100):
    return [{"id": start + i, "title": {"rendered": t}, "slug": f"post-{start + i}"} for i, t in enumerate(titles)]


@pytest.fixture
def http():
    return FakeHttp()


@pytest.fixture
def catalog(http):
    return ChecklistCatalog(http=http, base_url=BASE, sleep=lambda s: None)


def test_helpers():
    assert clean_title("2024 Topps &amp; Chrome <em>Checklist</em>") == "2024 Topps & Chrome Checklist"
    assert sport_term("Baseball Cards") == "baseball"


def test_sports_filtered_and_cached(http, catalog):
    http.add("GET", None, FakeResponse(json_data=[
        {"id": 1, "name": "Baseball Cards", "slug": "baseball-cards", "count": 10},
        {"id": 2, "name": "News", "slug": "news", "count": 3},
        {"id": 3, "name": "NFL", "slug": "football", "count": 7},
    ]), match=route("/categories", parent=0))

    sports = catalog.get_sports()
    assert [s["id"] for s in sports] == [1, 3]
    assert sports[0] == {"id": 1, "name": "Baseball Cards", "slug": "baseball-cards", "count": 10}

    catalog.get_sports()
    assert len(http.calls) == 1


def test_years_from_category_and_subcategories(http, catalog):
    http.add("GET", None, FakeResponse(json_data=[{"id": 11, "name": "Topps"}]), match=route("/categories", parent=1))
    http.add("GET", None, FakeResponse(json_data=posts(
        "2024 Topps Update Baseball Checklist",
        "2099 Future Baseball Preview",
    )), match=route("/posts", categories=1))
    http.add("GET", None, FakeResponse(json_data=posts(
        "2024 Topps Update Baseball Checklist",
        "2023 Bowman &#8211; Baseball",
        start=200,
    )), match=route("/posts", categories=11))

    assert catalog.get_years(1, "Baseball Cards") == [2024, 2023]


def test_years_from_search(http, catalog):
    http.add("GET", None, FakeResponse(json_data=[]), match=route("/posts", categories=1))
    http.add("GET", None, FakeResponse(json_data=posts("2021 Topps Chrome Baseball")), match=route("/posts", search="baseball"))

    assert catalog.get_years(1, "Baseball Cards") == [2021]


def test_years_from_recent_posts(http, catalog):
    def unfiltered(url, kwargs):
        params = kwargs.get("params") or {}
        return url == API + "/posts" and "categories" not in params and "search" not in params

    http.add("GET", None, FakeResponse(json_data=[]), match=route("/posts", categories=1))
    http.add("GET", None, FakeResponse(json_data=[]), match=route("/posts", search="baseball"))
    http.add("GET", None, FakeResponse(json_data=posts("2019 Baseball Heritage", "2018 Hockey Series One")), match=unfiltered)

    assert catalog.get_years(1, "Baseball Cards") == [2019]


def test_sets_for_year(http, catalog):
    http.add("GET", None, FakeResponse(json_data=[{
        "id": 321,
        "slug": "2024-topps-update-baseball-checklist",
        "link": BASE + "/2024-topps-update-baseball-checklist/",
        "title": {"rendered": "2024 Topps Update &amp; Chrome <em>Checklist</em>"},
    }]), match=route("/posts", categories=1, search="2024"))

    sets = catalog.get_sets(1, 2024, category="baseball")

    assert len(sets) == 1
    ref = sets[0]
    assert ref.set_id == "321"
    assert ref.name == "2024 Topps Update & Chrome Checklist"
    assert ref.url == BASE + "/2024-topps-update-baseball-checklist/"
    assert (ref.category, ref.year) == ("baseball", 2024)


def test_network_errors_are_retried(http):
    sleeps = []
    catalog = ChecklistCatalog(http=http, base_url=BASE, max_retries=2, sleep=sleeps.append)
    http.add(
        "GET", None,
        requests.exceptions.ConnectionError("reset"),
        requests.exceptions.ConnectionError("reset"),
        FakeResponse(json_data=[{"id": 1, "name": "Baseball", "slug": "baseball"}]),
        match=route("/categories"),
    )

    assert len(catalog.get_sports()) == 1
    assert len(sleeps) == 2


def test_retries_exhausted(http):
    catalog = ChecklistCatalog(http=http, base_url=BASE, max_retries=1, sleep=lambda s: None)
    http.add("GET", None, requests.exceptions.Timeout("slow"), match=route("/categories"))

    with pytest.raises(NetworkError):
        catalog.get_sports()
    assert len(http.calls) == 2


def test_unexpected_body(http, catalog):
    http.add("GET", None, FakeResponse(json_data={"code": "rest_no_route"}), match=route("/categories"))

    with pytest.raises(ParseError):
        catalog.get_sports()


def test_unreachable_subcategories_count_as_none(catalog):
    assert catalog.get_subcategories(1) == []


def test_throttled_answers_are_retried(http):
    sleeps = []
    catalog = ChecklistCatalog(http=http, base_url=BASE, max_retries=2, sleep=sleeps.append)
    throttled = FakeResponse(429, "slow down")
    throttled.headers["Retry-After"] = "3"
    http.add(
        "GET", None,
        throttled,
        FakeResponse(503, "busy"),
        FakeResponse(json_data=[{"id": 1, "name": "Baseball", "slug": "baseball"}]),
        match=route("/categories"),
    )

    assert len(catalog.get_sports()) == 1
    assert sleeps[0] == 3.0
    assert len(sleeps) == 2


def test_persistent_server_errors(http):
    catalog = ChecklistCatalog(http=http, base_url=BASE, max_retries=1, sleep=lambda s: None)
    http.add("GET", None, FakeResponse(502, "bad gateway"), match=route("/categories"))

    with pytest.raises(NetworkError) as excinfo:
        catalog.get_sports()
    assert "502" in str(excinfo.value)
    assert excinfo.value.strategy == "catalog"
    assert len(http.calls) == 2
