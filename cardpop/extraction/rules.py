#!/usr/bin/env python3
"""
Declarative extraction rules for slugs, entity paths and auth tokens.

Each rule names a source (where to look), a pattern and the field it fills.
Rules are grouped into ordered stages; a stage only fills fields that earlier
stages left empty, and within a stage the first non-empty match wins.

Sources:
    canonical - href of <link rel="canonical">
    anchor    - href of every <a>
    meta      - content of <meta name=...> tags, as "name=content"
    markup    - the raw markup / script text
"""
import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

from bs4 import BeautifulSoup

ENTITY_PATH_PREFIXES = ("item-details", "card-details", "universal-search/card")
_PREFIX_RE = "|".join(re.escape(p) for p in ENTITY_PATH_PREFIXES)

SLUG_FROM_PATH = re.compile(rf"/(?:{_PREFIX_RE})/([A-Za-z0-9][A-Za-z0-9_-]*)")
PATH_FROM_URL = re.compile(rf"(/(?:{_PREFIX_RE})/[^?#\"'\s]+)")


@dataclass(frozen=True)
class ExtractionRule:
    name: str
    field: str
    source: str
    pattern: "re.Pattern"
    group: int = 1

    def match(self, text: str) -> Optional[str]:
        found = self.pattern.search(text or "")
        if not found:
            return None
        value = (found.group(self.group) or "").strip()
        return value or None


# =============================================================================
# RULE TABLES
# =============================================================================

CANONICAL_RULES = [
    ExtractionRule("canonical_slug", "slug", "canonical", SLUG_FROM_PATH),
    ExtractionRule("canonical_path", "path", "canonical", PATH_FROM_URL),
]

ANCHOR_RULES = [
    ExtractionRule("anchor_slug", "slug", "anchor", SLUG_FROM_PATH),
    ExtractionRule("anchor_path", "path", "anchor", PATH_FROM_URL),
]

EMBEDDED_JSON_RULES = [
    ExtractionRule("json_slug", "slug", "markup", re.compile(r'["\']?(?:slug|card_slug|cardSlug)["\']?\s*:\s*["\']([A-Za-z0-9][\w-]*)["\']')),
    ExtractionRule("json_path", "path", "markup", re.compile(rf'["\']?(?:path|url|href|link)["\']?\s*:\s*["\']((?:https?://[^/"\']+)?/(?:{_PREFIX_RE})/[^"\']+)["\']')),
    ExtractionRule("json_token", "token", "markup", re.compile(r'["\']?(?:token|details_token|detailsToken)["\']?\s*:\s*["\']([A-Za-z0-9._~+/=-]{8,})["\']')),
]

TOKEN_RULES = [
    ExtractionRule("inline_auth_token", "token", "markup", re.compile(
        r'(?:authToken|apiToken|cardDetailsToken|accessToken|x-auth-token)["\']?\s*[:=]\s*["\']([A-Za-z0-9._~+/=-]{16,})["\']'
    )),
    ExtractionRule("meta_csrf_token", "token", "meta", re.compile(r'^(?:csrf-token|csrf_token|auth-token)=(.+)$')),
]

SLUG_STAGES: List[Sequence[ExtractionRule]] = [CANONICAL_RULES, ANCHOR_RULES, EMBEDDED_JSON_RULES]


# =============================================================================
# APPLICATION
# =============================================================================

class RuleInput:
    """Lazily parsed views of one page, shared by all rules applied to it."""

    def __init__(self, markup: str):
        self.markup = markup or ""
        self._soup: Optional[BeautifulSoup] = None

    @property
    def soup(self) -> BeautifulSoup:
        if self._soup is None:
            self._soup = BeautifulSoup(self.markup, "html.parser")
        return self._soup

    def texts(self, source: str) -> Iterable[str]:
        if source == "markup":
            return [self.markup]
        if source == "canonical":
            return [link.get("href", "") for link in self.soup.find_all("link", rel="canonical")]
        if source == "anchor":
            return [a.get("href", "") for a in self.soup.find_all("a", href=True)]
        if source == "meta":
            return [
                f"{meta.get('name')}={meta.get('content', '')}"
                for meta in self.soup.find_all("meta", attrs={"name": True})
            ]
        raise ValueError(f"Unknown rule source: {source}")


def apply_rules(page: RuleInput, rules: Sequence[ExtractionRule], wanted: Iterable[str]) -> Dict[str, str]:
    """Apply one stage; return the first non-empty value for each wanted field."""
    wanted = set(wanted)
    found: Dict[str, str] = {}
    for rule in rules:
        if rule.field not in wanted or rule.field in found:
            continue
        for text in page.texts(rule.source):
            value = rule.match(text)
            if value:
                found[rule.field] = value
                break
    return found


def apply_stages(
    markup: str,
    stages: Sequence[Sequence[ExtractionRule]] = None,
    fields: Sequence[str] = ("slug", "path", "token"),
) -> Dict[str, str]:
    """Run stages in order, each filling only the fields still missing."""
    page = RuleInput(markup)
    result: Dict[str, str] = {}
    for stage in stages if stages is not None else SLUG_STAGES:
        missing = [f for f in fields if f not in result]
        if not missing:
            break
        result.update(apply_rules(page, stage, missing))
    return result


def find_token(markup: str) -> Optional[str]:
    """Most recent (last) auth token literal in the markup, if any."""
    page = RuleInput(markup)
    for rule in TOKEN_RULES:
        if rule.source == "markup":
            matches = [m.group(rule.group) for m in rule.pattern.finditer(page.markup)]
            if matches:
                return matches[-1].strip()
        else:
            for text in page.texts(rule.source):
                value = rule.match(text)
                if value:
                    return value
    return None
