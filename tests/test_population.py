"""Census normalization across payload shapes."""
import pytest

from cardpop.errors import ParseError
from cardpop.market.population import GRADE_LABELS, PopulationParser, PopulationRecord

FLAT = {
    "total": 120,
    "gemsPlus": 42,
    "gemRate": 0.35,
    "gemMint": 40,
    "pristine": 2,
    "grade9": 50,
    "cardName": "Holliday",
    "set": "Topps Update",
    "year": 2024,
    "number": "US50",
}

NESTED = {
    "data": {
        "population": {
            "total_population": "120",
            "gems_plus": 42,
            "gem_rate": "35%",
            "grades": [
                {"grade": "10", "count": 40},
                {"grade": "Pristine", "count": 2},
                {"grade": "9", "count": 50},
            ],
        },
        "card": {"name": "Holliday", "set_name": "Topps Update", "year": "2024", "card_number": "US50"},
    }
}


@pytest.fixture
def parser():
    return PopulationParser()


def test_flat_payload(parser):
    record = parser.normalize(FLAT)

    assert record.total == 120
    assert record.gems_plus == 42
    assert record.gem_rate_percent == 35.0
    assert record.per_grade_counts["gem_mint"] == 40
    assert record.per_grade_counts["pristine"] == 2
    assert record.per_grade_counts["grade_9"] == 50
    assert record.identity.name == "Holliday"
    assert record.identity.year == "2024"


def test_equivalent_nestings_serialize_identically(parser):
    assert parser.normalize(FLAT).to_json() == parser.normalize(NESTED).to_json()


def test_normalize_is_idempotent(parser):
    record = parser.normalize(NESTED)
    assert parser.normalize(record.to_dict()) == record
    assert parser.normalize(record) == record


def test_small_percentages_survive_renormalizing(parser):
    record = PopulationRecord(total=200, gems_plus=1, gem_rate_percent=0.5)
    again = parser.normalize(record.to_dict())
    assert again.gem_rate_percent == 0.5
    assert again == record


@pytest.mark.parametrize("raw_rate,expected", [
    (0.125, 12.5),
    (35.5, 35.5),
    ("12.5%", 12.5),
    ("0.25", 25.0),
])
def test_rate_scaling(parser, raw_rate, expected):
    assert parser.normalize({"total": 8, "gemRate": raw_rate}).gem_rate_percent == expected


def test_every_grade_bucket_present(parser):
    record = parser.normalize({"total": 5, "grade10": 5})
    counts = record.to_dict()["per_grade_counts"]

    assert list(counts) == GRADE_LABELS
    assert counts["gem_mint"] == 5
    assert sum(counts.values()) == 5


def test_derived_totals(parser):
    record = parser.normalize({"grades": {"10": 30, "9": 60, "8": 10}})

    assert record.total == 100
    assert record.gems_plus == 30
    assert record.gem_rate_percent == 30.0


def test_ranked_nesting_paths(parser):
    raw = {"psa": {"total": 10, "gem_pct": 40}, "result": {"note": "no census here"}}
    record = parser.normalize(raw)

    assert record.total == 10
    assert record.gem_rate_percent == 40.0


def test_string_payload(parser):
    assert parser.normalize('{"population": {"total": "1,250"}}').total == 1250


def test_missing_census(parser):
    with pytest.raises(ParseError):
        parser.normalize({"card": {"name": "Holliday"}})
    with pytest.raises(ParseError):
        parser.normalize("<html>blocked</html>")
