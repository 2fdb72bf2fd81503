import pytest

from cardpop.errors import CardPopError, ParseError
from cardpop.models import CardRecord, Failure, FetchResult, LookupResult, SetReference


def test_card_record_needs_number_or_player():
    with pytest.raises(ValueError):
        CardRecord(number="  ", player="")

    record = CardRecord(number=" US50 ", player=" Jackson Holliday ", team=" Orioles ")
    assert (record.number, record.player, record.team) == ("US50", "Jackson Holliday", "Orioles")
    assert record.key == ("us50", "jackson holliday")


def test_error_string_includes_context():
    error = ParseError(url="https://x.test/set/", strategy="html_table,loose_text")
    assert str(error) == "No data found | strategy=html_table,loose_text | url=https://x.test/set/"
    assert isinstance(error, CardPopError)


def test_failure_from_errors():
    failure = Failure.from_error(ParseError(url="https://x.test/", strategy="html_table"))
    assert (failure.kind, failure.url, failure.strategy) == ("parse", "https://x.test/", "html_table")

    assert Failure.from_error(RuntimeError()).to_dict() == {
        "kind": "internal",
        "message": "RuntimeError",
        "url": None,
        "strategy": None,
    }


def test_lookup_result_dicts():
    ok = LookupResult.ok(SetReference(slug="2024-topps-update"), source="checklistinsider").to_dict()
    assert ok["success"] is True
    assert ok["data"]["slug"] == "2024-topps-update"
    assert "timestamp" in ok

    plain = LookupResult.ok([2024, 2023]).to_dict()
    assert plain["data"] == [2024, 2023]


def test_fetch_result_ok_range():
    assert FetchResult(url="u", status=204, text="", mode="lightweight").ok
    assert not FetchResult(url="u", status=302, text="", mode="lightweight").ok
