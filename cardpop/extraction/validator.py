#!/usr/bin/env python3
"""
Row validation shared by every extraction strategy.

A raw row becomes a CardRecord only if it:
- is not a header row,
- does not match the navigational/statistical denylist,
- carries a plausible card number or player name.
"""
import re
from dataclasses import dataclass, field
from typing import List, Optional

from cardpop.models import CardRecord

# =============================================================================
# DENYLIST - navigation, statistics and comment-section boilerplate
# =============================================================================

DENYLIST_PATTERNS = [
    r"\btotals?\b",
    r"\btrend(?:s|ing)?\b",
    r"\bsearch\b",
    r"\bcomments?\b",
    r"\bleave a (?:reply|comment)\b",
    r"\breply\b",
    r"\bsign (?:in|up)\b",
    r"\blog ?in\b",
    r"\bsubscribe\b",
    r"\bnewsletter\b",
    r"\bview all\b",
    r"\b(?:next|previous|prev) page\b",
    r"\b(?:load|show) more\b",
    r"\bpopulation report\b",
    r"\bgem rate\b",
    r"\bpercentage\b",
    r"\baverage\b",
    r"\bstatistics?\b",
    r"\bcards? in (?:the )?set\b",
    r"\bpage \d+ of \d+\b",
    r"\bshare (?:this|on)\b",
    r"\bclick here\b",
    r"\bprivacy policy\b",
    r"\bterms of (?:use|service)\b",
    r"\bcopyright\b",
    r"©",
]
DENYLIST = re.compile("|".join(DENYLIST_PATTERNS), re.IGNORECASE)

HEADER_WORDS = {
    "#", "no", "no.", "num", "number", "card", "card #", "card no", "card no.", "card number",
    "player", "players", "name", "card name", "player name", "team", "team name", "club",
    "subset", "set", "notes", "print run", "parallel", "rc", "position", "pos",
}

NUMBER_PATTERN = re.compile(r"^#?[A-Za-z]{0,6}[-\s]?\d{1,4}[A-Za-z]{0,3}$")
# Insert/autograph codes: alphanumeric segments joined by hyphens (RA-JH, FSA-JH, CPA-PS)
CODE_PATTERN = re.compile(r"^#?[A-Za-z0-9]{1,8}(?:-[A-Za-z0-9]{1,8}){0,2}$")
MAX_NAME_LENGTH = 80


@dataclass
class RawRow:
    """Strategy output before validation."""
    number: str = ""
    player: str = ""
    team: str = ""
    source_id: Optional[str] = None
    detail_url: Optional[str] = None
    cells: List[str] = field(default_factory=list)

    @property
    def text(self) -> str:
        parts = self.cells or [self.number, self.player, self.team]
        return " ".join(p for p in parts if p)


def is_header(row: RawRow) -> bool:
    cells = [c.strip().lower().rstrip(":") for c in (row.cells or [row.number, row.player, row.team]) if c and c.strip()]
    return bool(cells) and all(c in HEADER_WORDS for c in cells)


def is_denylisted(text: str) -> bool:
    return bool(DENYLIST.search(text or ""))


def plausible_number(value: str) -> bool:
    value = (value or "").strip()
    if not value:
        return False
    if NUMBER_PATTERN.match(value):
        return True
    # a bare word is a name, not a code
    return bool(CODE_PATTERN.match(value)) and ("-" in value or any(ch.isdigit() for ch in value))


def plausible_name(value: str) -> bool:
    value = (value or "").strip()
    if len(value) < 2 or len(value) > MAX_NAME_LENGTH:
        return False
    return sum(ch.isalpha() for ch in value) >= 2


class RowValidator:
    """Turns raw rows into CardRecords, dropping anything that isn't a card."""

    def validate(self, row: RawRow) -> Optional[CardRecord]:
        if is_header(row) or is_denylisted(row.text):
            return None

        number = row.number.strip().lstrip("#").strip() if plausible_number(row.number) else ""
        player = row.player.strip() if plausible_name(row.player) else ""
        if not number and not player:
            return None

        team = row.team.strip() if plausible_name(row.team) else ""
        return CardRecord(
            number=number,
            player=player,
            team=team,
            source_id=row.source_id or None,
            detail_url=row.detail_url or None,
        )

    def validate_all(self, rows: List[RawRow]) -> List[CardRecord]:
        records = []
        seen = set()
        for row in rows:
            record = self.validate(row)
            if record is None or record.key in seen:
                continue
            seen.add(record.key)
            records.append(record)
        return records
