#!/usr/bin/env python3
"""
Extraction Strategies

Each strategy turns one page (rendered markup plus captured background
responses) into raw rows, runs them through the shared RowValidator and
returns the records, or None when it found nothing usable.

Priority order (see DataExtractor):
1. EmbeddedScriptJson - arrays assigned in inline <script> blocks
2. CapturedPayload    - JSON responses buffered during browser navigation
3. HtmlTable          - structural table rows
4. LooseText          - "#<number> <text>" lines in list/div elements
"""
import json
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional
from urllib.parse import urljoin, urlsplit

from bs4 import BeautifulSoup

from cardpop.models import CapturedResponse, CardRecord
from cardpop.extraction.validator import RawRow, RowValidator
from cardpop.scanners.browser import TELEMETRY_HOSTS
from cardpop.utils.logger import get_logger

logger = get_logger("strategies")

# =============================================================================
# KEY ALIASES - field names seen across checklist / population payloads
# =============================================================================

NUMBER_KEYS = ("number", "card_number", "cardNumber", "card_no", "cardNo", "num", "no", "card_num")
PLAYER_KEYS = ("player", "player_name", "playerName", "name", "card_name", "cardName", "subject", "title")
TEAM_KEYS = ("team", "team_name", "teamName", "club")
ID_KEYS = ("id", "card_id", "cardId", "gemrate_id", "source_id")
URL_KEYS = ("url", "link", "href", "detail_url", "detailUrl", "permalink")

CARD_KEYS = set(NUMBER_KEYS) | (set(PLAYER_KEYS) - {"title", "name"})
# "name"/"title" alone also describe categories, products and events;
# they only count next to a number or team field.
WEAK_NAME_KEYS = {"name", "title"}
COMPANION_KEYS = set(NUMBER_KEYS) | set(TEAM_KEYS)


def looks_like_card(item: dict) -> bool:
    keys = set(item.keys())
    if CARD_KEYS & keys:
        return True
    return bool(WEAK_NAME_KEYS & keys) and bool(COMPANION_KEYS & keys)


def _first(item: dict, keys: Iterable[str]) -> Any:
    for key in keys:
        value = item.get(key)
        if value not in (None, ""):
            return value
    return None


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, dict):
        value = _first(value, ("name", "full_name", "title", "value")) or ""
    return str(value).strip()


def row_from_item(item: Any, base_url: Optional[str] = None) -> Optional[RawRow]:
    """Map a dict (or positional list) from a JSON payload to a RawRow."""
    if isinstance(item, (list, tuple)):
        cells = [_text(v) for v in item]
        return row_from_cells(cells)
    if not isinstance(item, dict):
        return None

    detail_url = _text(_first(item, URL_KEYS)) or None
    if detail_url and base_url:
        detail_url = urljoin(base_url, detail_url)
    source_id = _first(item, ID_KEYS)
    return RawRow(
        number=_text(_first(item, NUMBER_KEYS)),
        player=_text(_first(item, PLAYER_KEYS)),
        team=_text(_first(item, TEAM_KEYS)),
        source_id=str(source_id) if source_id is not None else None,
        detail_url=detail_url,
    )


# Table cell rules: number is a short alphanumeric token in the first cell;
# player is the first following non-numeric cell under 50 chars; team the next.
CELL_NUMBER = re.compile(r"^#?[\w-]{1,12}$")
MAX_CELL_NAME = 50


def row_from_cells(cells: List[str], detail_url: Optional[str] = None, source_id: Optional[str] = None) -> Optional[RawRow]:
    cells = [c.strip() for c in cells]
    if len([c for c in cells if c]) < 2:
        return None

    number = ""
    rest = cells
    if CELL_NUMBER.match(cells[0]):
        number = cells[0]
        rest = cells[1:]

    names = [c for c in rest if c and not c.replace(",", "").isdigit() and len(c) < MAX_CELL_NAME]
    return RawRow(
        number=number,
        player=names[0] if names else "",
        team=names[1] if len(names) > 1 else "",
        source_id=source_id,
        detail_url=detail_url,
        cells=cells,
    )


# =============================================================================
# INPUT / BASE
# =============================================================================

@dataclass
class ExtractionInput:
    """One page as seen by the strategies."""
    markup: str = ""
    captured: List[CapturedResponse] = field(default_factory=list)
    url: Optional[str] = None
    _soup: Optional[BeautifulSoup] = field(default=None, repr=False)

    @property
    def soup(self) -> BeautifulSoup:
        if self._soup is None:
            self._soup = BeautifulSoup(self.markup or "", "html.parser")
        return self._soup


class Strategy:
    """One way of finding card rows on a page."""

    name = "strategy"

    def __init__(self, validator: Optional[RowValidator] = None):
        self.validator = validator or RowValidator()

    def try_extract(self, page: ExtractionInput) -> Optional[List[CardRecord]]:
        raise NotImplementedError

    def _accept(self, rows: List[RawRow]) -> Optional[List[CardRecord]]:
        records = self.validator.validate_all([r for r in rows if r is not None])
        return records or None


# =============================================================================
# 1. EMBEDDED SCRIPT JSON
# =============================================================================

ARRAY_NAMES = ("checklistData", "checklist", "cardData", "cards", "cardList", "tableData", "rows")
FUNCTION_NAMES = ("renderChecklist", "initChecklist", "loadCards", "setCards")
NAIVE_MAX_LENGTH = 20000

_NAMES_RE = "|".join(ARRAY_NAMES)
_FUNCS_RE = "|".join(FUNCTION_NAMES)

ASSIGNMENT = re.compile(
    rf"(?:\b(?:var|let|const)\s+|window\.|[\"']?)(?:{_NAMES_RE})[\"']?\s*[=:]\s*(?=\[)"
)
CALL = re.compile(rf"\b(?:{_FUNCS_RE})\s*\(\s*(?=\[)")
NAIVE_ARRAY = re.compile(r"(\[.{0,%d}?\])\s*[;,)\n]" % NAIVE_MAX_LENGTH, re.DOTALL)


def find_balanced(text: str, start: int) -> Optional[str]:
    """Return text[start:end] where end closes the bracket opened at start."""
    if start >= len(text) or text[start] not in "[{":
        return None
    depth = 0
    quote = None
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if quote:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == quote:
                quote = None
            continue
        if ch in "\"'`":
            quote = ch
        elif ch in "[{":
            depth += 1
        elif ch in "]}":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return None


_UNQUOTED_KEY = re.compile(r"([{,]\s*)([A-Za-z_$][\w$]*)\s*:")
_TRAILING_COMMA = re.compile(r",\s*([\]}])")


def loads_lenient(text: str) -> Any:
    """json.loads, retrying once with JS object-literal quirks smoothed over."""
    try:
        return json.loads(text)
    except ValueError:
        pass
    fixed = _UNQUOTED_KEY.sub(r'\1"\2":', text)
    fixed = _TRAILING_COMMA.sub(r"\1", fixed)
    if '"' not in text:
        fixed = fixed.replace("'", '"')
    return json.loads(fixed)


class EmbeddedScriptJson(Strategy):
    name = "embedded_script_json"

    def try_extract(self, page: ExtractionInput) -> Optional[List[CardRecord]]:
        for script in page.soup.find_all("script"):
            body = script.string or script.get_text() or ""
            if "[" not in body:
                continue
            for match in list(ASSIGNMENT.finditer(body)) + list(CALL.finditer(body)):
                items = self._parse_array(body, match.end())
                if not isinstance(items, list) or not items:
                    continue
                records = self._accept([row_from_item(i, page.url) for i in items])
                if records:
                    return records
        return None

    def _parse_array(self, body: str, start: int) -> Any:
        naive = NAIVE_ARRAY.match(body, start)
        if naive:
            try:
                return loads_lenient(naive.group(1))
            except ValueError:
                logger.debug("Bounded match failed to parse, scanning brackets")
        balanced = find_balanced(body, start)
        if balanced is None:
            return None
        try:
            return loads_lenient(balanced)
        except ValueError:
            return None


# =============================================================================
# 2. CAPTURED NETWORK PAYLOADS
# =============================================================================

MAX_SEARCH_DEPTH = 4


def card_arrays(data: Any, depth: int = 0) -> Iterable[list]:
    """Yield arrays of dicts that carry at least one card-identifying key."""
    if depth > MAX_SEARCH_DEPTH:
        return
    if isinstance(data, list):
        dicts = [d for d in data if isinstance(d, dict)]
        if dicts and any(looks_like_card(d) for d in dicts[:5]):
            yield data
            return
        for value in data[:5]:
            yield from card_arrays(value, depth + 1)
    elif isinstance(data, dict):
        for value in data.values():
            yield from card_arrays(value, depth + 1)


class CapturedPayload(Strategy):
    name = "captured_payload"

    def try_extract(self, page: ExtractionInput) -> Optional[List[CardRecord]]:
        for response in page.captured:
            host = urlsplit(response.url).netloc.lower()
            if any(t in host for t in TELEMETRY_HOSTS):
                continue
            try:
                data = response.json()
            except ValueError:
                continue
            for items in card_arrays(data):
                records = self._accept([row_from_item(i, page.url) for i in items])
                if records:
                    logger.debug(f"Using captured payload from {response.url}")
                    return records
        return None


# =============================================================================
# 3. HTML TABLES
# =============================================================================

ROW_SELECTORS = [
    "table.checklist tbody tr",
    "table.checklist tr",
    "#checklist table tr",
    ".checklist-table tr",
    "table.wp-block-table tr",
    ".entry-content table tr",
    "table tbody tr",
    "table tr",
]
MIN_TABLE_ROWS = 3


class HtmlTable(Strategy):
    name = "html_table"

    def __init__(self, validator: Optional[RowValidator] = None, selectors: List[str] = None, min_rows: int = MIN_TABLE_ROWS):
        super().__init__(validator)
        self.selectors = selectors or ROW_SELECTORS
        self.min_rows = min_rows

    def try_extract(self, page: ExtractionInput) -> Optional[List[CardRecord]]:
        for selector in self.selectors:
            rows = page.soup.select(selector)
            if len(rows) < self.min_rows:
                continue
            records = self._accept([self._row(tr, page.url) for tr in rows])
            if records:
                logger.debug(f"Table selector '{selector}' matched {len(rows)} rows")
                return records
        return None

    def _row(self, tr, base_url: Optional[str]) -> Optional[RawRow]:
        cells = [cell.get_text(" ", strip=True) for cell in tr.find_all(["td", "th"])]
        link = tr.find("a", href=True)
        detail_url = urljoin(base_url or "", link["href"]) if link else None
        source_id = tr.get("data-id") or tr.get("data-card-id")
        return row_from_cells(cells, detail_url=detail_url, source_id=source_id)


# =============================================================================
# 4. LOOSE TEXT
# =============================================================================

HASH_LINE = re.compile(r"^#\s?(?P<number>[A-Za-z0-9][\w-]*)\s+(?P<player>.+?)(?:\s+[-–—]\s+(?P<team>.+))?$")
NUMBERED_LINE = re.compile(r"^(?P<number>\d+[A-Za-z]?)[.)]?\s+(?P<player>.+?)(?:\s+[-–—]\s+(?P<team>.+))?$")


class LooseText(Strategy):
    name = "loose_text"

    def try_extract(self, page: ExtractionInput) -> Optional[List[CardRecord]]:
        rows = []
        for element in page.soup.find_all(["li", "p", "div"]):
            if element.name == "div" and element.find(["div", "li", "p", "table"]):
                continue
            for line in element.get_text("\n", strip=True).splitlines():
                match = HASH_LINE.match(line.strip())
                if not match and element.name == "li":
                    match = NUMBERED_LINE.match(line.strip())
                if match:
                    rows.append(RawRow(
                        number=match.group("number"),
                        player=match.group("player"),
                        team=match.group("team") or "",
                    ))
        return self._accept(rows)


def default_strategies(validator: Optional[RowValidator] = None) -> List[Strategy]:
    validator = validator or RowValidator()
    return [
        EmbeddedScriptJson(validator),
        CapturedPayload(validator),
        HtmlTable(validator),
        LooseText(validator),
    ]
