from cardpop.extraction.validator import RawRow, RowValidator, is_header, plausible_name, plausible_number


def test_header_detection():
    assert is_header(RawRow(cells=["Card #", "Player", "Team"]))
    assert is_header(RawRow(cells=["No.", "Name:", ""]))
    assert not is_header(RawRow(cells=["1", "Player", "Team"]))


def test_plausibility():
    assert plausible_number("#US50")
    assert plausible_number("BDC-12")
    assert plausible_number("150")
    assert plausible_number("RA-JH")
    assert plausible_number("#FSA-JH")
    assert plausible_number("CPA-PS")
    assert not plausible_number("Ichiro")
    assert not plausible_number("-JH")
    assert not plausible_number("2024-25 Panini Prizm")
    assert plausible_name("Jackson Holliday")
    assert not plausible_name("7")
    assert not plausible_name("x" * 81)


def test_validate_strips_hash_and_blanks_implausible_fields():
    validator = RowValidator()

    record = validator.validate(RawRow(number="#US50", player="Jackson Holliday", team="7"))
    assert (record.number, record.player, record.team) == ("US50", "Jackson Holliday", "")

    record = validator.validate(RawRow(number="2024-25 Panini Prizm", player="Victor Wembanyama"))
    assert record.number == ""
    assert record.player == "Victor Wembanyama"


def test_validate_rejects_noise():
    validator = RowValidator()
    assert validator.validate(RawRow(player="View all checklists")) is None
    assert validator.validate(RawRow(number="???", player="1")) is None
    assert validator.validate(RawRow(number="12", player="Page 2 of 9")) is None


def test_validate_all_dedupes_case_insensitively():
    rows = [
        RawRow(number="1", player="Aaron Judge", team="Yankees"),
        RawRow(number="1", player="AARON JUDGE", team="Yankees"),
        RawRow(number="2", player="Juan Soto", team="Mets"),
    ]
    records = RowValidator().validate_all(rows)
    assert [r.player for r in records] == ["Aaron Judge", "Juan Soto"]
