#!/usr/bin/env python3
"""
Population Parser - grading census normalization

Different grading authorities (and different endpoints of the same site)
return population data in different shapes:

    {"total": 120, "gemRate": 0.35, "grade9": 40, ...}
    {"data": {"population": {"population": 120, "grades": [{"grade": "10", "count": 42}]}}}
    {"psa": {"total_population": 120, "gem_rate": "35%", ...}}

PopulationParser.normalize() finds the census node under a ranked list of
nesting paths and produces one PopulationRecord:
- gem_rate_percent is always 0-100, rounded to 2 places
- every grade bucket is present, missing ones default to 0
- normalize(record.to_dict()) == record
"""
import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from cardpop.errors import ParseError
from cardpop.utils.logger import get_logger

logger = get_logger("population")

# =============================================================================
# GRADE LABELS
# =============================================================================

GRADE_LABELS = [
    "perfect", "pristine", "gem_mint", "mint_plus",
    "grade_9", "grade_8", "grade_7", "grade_6", "grade_5",
    "grade_4", "grade_3", "grade_2", "grade_1",
]

# Normalized alias (lowercase, alphanumerics only) -> canonical label
GRADE_ALIASES: Dict[str, str] = {
    "perfect": "perfect", "blacklabel": "perfect", "perfect10": "perfect",
    "pristine": "pristine", "pristine10": "pristine",
    "gemmint": "gem_mint", "gem": "gem_mint", "gemmint10": "gem_mint", "10": "gem_mint", "grade10": "gem_mint",
    "mintplus": "mint_plus", "95": "mint_plus", "grade95": "mint_plus", "mint95": "mint_plus",
}
for _n in range(1, 10):
    for _alias in (f"grade{_n}", str(_n), f"psa{_n}", f"bgs{_n}", f"sgc{_n}", f"cgc{_n}"):
        GRADE_ALIASES.setdefault(_alias, f"grade_{_n}")
GRADE_ALIASES.update({"psa10": "gem_mint", "sgc10": "gem_mint", "mint9": "grade_9", "mint": "grade_9"})

TOTAL_KEYS = ("total", "totalpopulation", "population", "totalgraded", "pop", "graded")
GEMS_PLUS_KEYS = ("gemsplus", "gemplus", "gems", "gemcount", "totalgems")
RATE_PERCENT_KEYS = ("gemratepercent", "gempercent", "gempct")
RATE_KEYS = ("gemrate", "gempercentage", "rate")
GRADE_CONTAINERS = ("pergradecounts", "grades", "gradecounts", "gradebreakdown", "counts", "populationbygrade")

IDENTITY_ALIASES = {
    "name": ("name", "cardname", "title", "description", "player", "athlete"),
    "set": ("set", "setname", "cardset", "release"),
    "year": ("year", "cardyear", "releaseyear"),
    "number": ("number", "cardnumber", "cardno", "num"),
    "parallel": ("parallel", "variation", "variety", "parallelname"),
}
IDENTITY_CONTAINERS = ("identity", "card", "carddetails", "item")

# Ranked nesting paths; the first one that resolves to a census node is used.
NESTING_PATHS: List[Tuple] = [
    ("population",),
    ("data", "population"),
    ("data", "universal"),
    ("data",),
    ("card", "population"),
    ("result", "population"),
    ("result",),
    ("results", 0),
    ("universal",),
    ("psa",),
    ("populationData",),
    (),
]

_NON_ALNUM = re.compile(r"[^a-z0-9]")


def _norm(key: Any) -> str:
    return _NON_ALNUM.sub("", str(key).lower())


def _index(node: dict) -> Dict[str, Any]:
    return {_norm(k): v for k, v in node.items()}


def _count(value: Any) -> int:
    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    try:
        return int(float(str(value).replace(",", "").strip()))
    except ValueError:
        return 0


def _rate(value: Any, already_percent: bool = False) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        text = value.replace(",", "").strip()
        if text.endswith("%"):
            already_percent = True
            text = text[:-1].strip()
        try:
            value = float(text)
        except ValueError:
            return None
    value = float(value)
    if not already_percent and 0 <= value <= 1:
        value *= 100
    return round(value, 2)


# =============================================================================
# RECORD
# =============================================================================

@dataclass
class CardIdentity:
    name: str = ""
    set: str = ""
    year: str = ""
    number: str = ""
    parallel: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {
            "name": self.name,
            "set": self.set,
            "year": self.year,
            "number": self.number,
            "parallel": self.parallel,
        }


@dataclass
class PopulationRecord:
    total: int = 0
    gems_plus: int = 0
    gem_rate_percent: float = 0.0
    per_grade_counts: Dict[str, int] = field(default_factory=lambda: {label: 0 for label in GRADE_LABELS})
    identity: CardIdentity = field(default_factory=CardIdentity)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "gems_plus": self.gems_plus,
            "gem_rate_percent": self.gem_rate_percent,
            "per_grade_counts": {label: self.per_grade_counts.get(label, 0) for label in GRADE_LABELS},
            "identity": self.identity.to_dict(),
        }

    def to_json(self) -> str:
        """Canonical serialization; identical census data gives identical bytes."""
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))


# =============================================================================
# PARSER
# =============================================================================

class PopulationParser:
    """Normalizes raw population payloads into PopulationRecord."""

    def __init__(self, nesting_paths: Sequence[Tuple] = None):
        self.nesting_paths = list(nesting_paths) if nesting_paths is not None else NESTING_PATHS

    def normalize(self, raw: Any) -> PopulationRecord:
        if isinstance(raw, PopulationRecord):
            raw = raw.to_dict()
        if isinstance(raw, str):
            try:
                raw = json.loads(raw)
            except ValueError as e:
                raise ParseError("Population payload is not JSON") from e

        node, path = self.find_census(raw)
        if node is None:
            raise ParseError("No population data found")
        logger.debug(f"Census node found at path {path or '(root)'}")

        indexed = _index(node)
        grades = self._grades(indexed)

        total = self._first_count(indexed, TOTAL_KEYS)
        if total is None:
            total = sum(grades.values())

        gems_plus = self._first_count(indexed, GEMS_PLUS_KEYS)
        if gems_plus is None:
            gems_plus = grades["perfect"] + grades["pristine"] + grades["gem_mint"]

        rate = self._gem_rate(indexed)
        if rate is None:
            rate = round(gems_plus * 100.0 / total, 2) if total else 0.0

        return PopulationRecord(
            total=total,
            gems_plus=gems_plus,
            gem_rate_percent=rate,
            per_grade_counts=grades,
            identity=self._identity(raw, path),
        )

    def find_census(self, raw: Any) -> Tuple[Optional[dict], Optional[Tuple]]:
        for path in self.nesting_paths:
            node = _walk(raw, path)
            if isinstance(node, dict) and _is_census(node):
                return node, path
        return None, None

    # ------------------------------------------------------------------
    # fields
    # ------------------------------------------------------------------

    def _first_count(self, indexed: Dict[str, Any], keys: Sequence[str]) -> Optional[int]:
        for key in keys:
            value = indexed.get(key)
            if value is not None and not isinstance(value, (dict, list)):
                return _count(value)
        return None

    def _gem_rate(self, indexed: Dict[str, Any]) -> Optional[float]:
        for key in RATE_PERCENT_KEYS:
            rate = _rate(indexed.get(key), already_percent=True)
            if rate is not None:
                return rate
        for key in RATE_KEYS:
            rate = _rate(indexed.get(key))
            if rate is not None:
                return rate
        return None

    def _grades(self, indexed: Dict[str, Any]) -> Dict[str, int]:
        grades = {label: 0 for label in GRADE_LABELS}

        sources = [indexed]
        for key in GRADE_CONTAINERS:
            container = indexed.get(key)
            if isinstance(container, dict):
                sources.append(_index(container))
            elif isinstance(container, list):
                sources.append(_index(_grade_list(container)))

        for source in sources:
            for alias, value in source.items():
                label = GRADE_ALIASES.get(alias)
                if label and not isinstance(value, (dict, list)) and grades[label] == 0:
                    grades[label] = _count(value)
        return grades

    def _identity(self, raw: Any, path: Tuple) -> CardIdentity:
        """Identity fields from the census node, then each enclosing node up to the root."""
        candidates = []
        ancestors = [_walk(raw, path[:depth]) for depth in range(len(path), -1, -1)]
        for source in (a for a in ancestors if isinstance(a, dict)):
            indexed = _index(source)
            for key in IDENTITY_CONTAINERS:
                if isinstance(indexed.get(key), dict):
                    candidates.append(_index(indexed[key]))
            candidates.append(indexed)

        values = {}
        for field_name, aliases in IDENTITY_ALIASES.items():
            values[field_name] = ""
            for indexed in candidates:
                found = next((indexed[a] for a in aliases if isinstance(indexed.get(a), (str, int, float)) and str(indexed[a]).strip()), None)
                if found is not None:
                    values[field_name] = _identity_text(found)
                    break
        return CardIdentity(**values)


# =============================================================================
# HELPERS
# =============================================================================

def _walk(data: Any, path: Tuple) -> Any:
    node = data
    for step in path:
        if isinstance(step, int):
            if not isinstance(node, list) or len(node) <= step:
                return None
            node = node[step]
        else:
            if not isinstance(node, dict) or step not in node:
                return None
            node = node[step]
    return node


def _is_census(node: dict) -> bool:
    indexed = _index(node)
    for key in TOTAL_KEYS + GEMS_PLUS_KEYS + RATE_PERCENT_KEYS + RATE_KEYS:
        if key in indexed and not isinstance(indexed[key], (dict, list)):
            return True
    if any(k in indexed for k in GRADE_CONTAINERS):
        return True
    return any(alias in GRADE_ALIASES and alias.startswith(("grade", "gem", "mint", "perfect", "pristine")) for alias in indexed)


def _grade_list(items: List[Any]) -> Dict[str, Any]:
    """[{"grade": "10", "count": 42}, ...] -> {"10": 42, ...}"""
    result = {}
    for item in items:
        if not isinstance(item, dict):
            continue
        indexed = _index(item)
        label = next((indexed[k] for k in ("grade", "label", "name") if k in indexed), None)
        count = next((indexed[k] for k in ("count", "population", "pop", "total", "value") if k in indexed), None)
        if label is not None and count is not None:
            result[str(label)] = count
    return result


def _identity_text(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()
