#!/usr/bin/env python3
"""
Search Resolver - free-text query to one population record

Flow:
1. sanitize the query (strip " -(a, b)" / " -word" exclusion suffixes)
2. warm the session, POST the universal search endpoint
3. pick exactly one candidate by authority priority
4. resolve a slug from the secondary results page when the hit lacks one
5. warm the entity page, fetch details, normalize the census
"""
import json
import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote, urlencode

from bs4 import BeautifulSoup

from cardpop.errors import CardPopError, NetworkError, NotFoundError, ParseError
from cardpop.extraction.rules import apply_stages
from cardpop.market.population import PopulationParser, PopulationRecord
from cardpop.models import FetchResult, SearchCandidate
from cardpop.scanners.page_fetcher import PageFetcher
from cardpop.session import SessionContext
from cardpop.stealth.session_manager import SessionManager
from cardpop.utils.logger import get_logger

logger = get_logger("search_resolver")

# =============================================================================
# CONFIGURATION
# =============================================================================

GEMRATE_BASE_URL = os.environ.get("GEMRATE_BASE_URL", "https://www.gemrate.com").rstrip("/")
SEARCH_PATH = "/universal-search-query"
SEARCH_PAGE_PATH = "/universal-search"
DETAILS_PATH = "/card-details"

# Highest priority first; unlisted authorities fall back to the first entry.
AUTHORITY_PRIORITY = [
    a.strip().lower() for a in os.environ.get("AUTHORITY_PRIORITY", "universal,psa").split(",") if a.strip()
]

ID_KEYS = ("gemrate_id", "gemrateId", "id", "card_id", "cardId")
SLUG_KEYS = ("slug", "card_slug", "cardSlug", "url_slug")
AUTHORITY_KEYS = ("grader", "authority", "grading_company", "gradingCompany", "category", "type", "source")
RESULT_LIST_KEYS = ("results", "data", "cards", "items", "hits")


# =============================================================================
# QUERY SANITIZING
# =============================================================================

EXCLUSION_GROUP = re.compile(r"(?:^|\s+)-\([^)]*\)?\s*$")
EXCLUSION_WORD = re.compile(r"(?:^|\s+)-[^\s()]+\s*$")


def sanitize_query(query: str) -> str:
    """
    Strip trailing exclusion hints the upstream search does not understand.

    "2024 topps chrome holliday -(auto, refractor) -lot" -> "2024 topps chrome holliday"
    """
    text = " ".join((query or "").split())
    while True:
        stripped = EXCLUSION_WORD.sub("", EXCLUSION_GROUP.sub("", text)).strip()
        if stripped == text:
            return text
        text = stripped


# =============================================================================
# CANDIDATE SELECTION
# =============================================================================

def _field(entry: Dict[str, Any], keys: Sequence[str]) -> Optional[str]:
    for key in keys:
        value = entry.get(key)
        if value not in (None, ""):
            return str(value).strip()
    return None


def search_entries(data: Any) -> List[Dict[str, Any]]:
    """Pull the list of result dicts out of a search response."""
    if isinstance(data, list):
        return [e for e in data if isinstance(e, dict)]
    if isinstance(data, dict):
        for key in RESULT_LIST_KEYS:
            value = data.get(key)
            if isinstance(value, list):
                return [e for e in value if isinstance(e, dict)]
            if isinstance(value, dict):
                nested = search_entries(value)
                if nested:
                    return nested
    return []


def select_candidate(entries: Sequence[Dict[str, Any]], priority: Sequence[str] = None) -> SearchCandidate:
    """
    Pick exactly one entry: first one from the top-ranked authority, else
    the next-ranked authority, else the first entry returned.
    """
    entries = [e for e in entries if _field(e, ID_KEYS)]
    if not entries:
        raise NotFoundError("Search returned no usable candidates", strategy="search")

    priority = [p.lower() for p in (priority if priority is not None else AUTHORITY_PRIORITY)]
    chosen, rank = entries[0], len(priority)
    for index, authority in enumerate(priority):
        match = next((e for e in entries if (_field(e, AUTHORITY_KEYS) or "").lower() == authority), None)
        if match is not None:
            chosen, rank = match, index
            break

    return SearchCandidate(
        id=_field(chosen, ID_KEYS),
        slug=_field(chosen, SLUG_KEYS),
        authority_rank=rank,
        authority=(_field(chosen, AUTHORITY_KEYS) or "").lower(),
        raw_entry=dict(chosen),
    )


# =============================================================================
# RESULT
# =============================================================================

@dataclass
class PopulationResult:
    query: str
    sanitized_query: str
    candidate: SearchCandidate
    population: PopulationRecord
    partial: bool = False
    referer: Optional[str] = None
    extra_paths: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "query": self.query,
            "sanitized_query": self.sanitized_query,
            "candidate": self.candidate.to_dict(),
            "population": self.population.to_dict(),
            "partial": self.partial,
        }


# =============================================================================
# RESOLVER
# =============================================================================

class SearchResolver:
    """Resolves a query to one candidate and its normalized census."""

    def __init__(
        self,
        fetcher: PageFetcher,
        session_manager: Optional[SessionManager] = None,
        parser: Optional[PopulationParser] = None,
        base_url: str = GEMRATE_BASE_URL,
        priority: Sequence[str] = None,
    ):
        self.fetcher = fetcher
        self.base_url = base_url.rstrip("/")
        self.session_manager = session_manager or SessionManager(fetcher, self.base_url)
        self.parser = parser or PopulationParser()
        self.priority = list(priority) if priority is not None else AUTHORITY_PRIORITY

    def search(self, ctx: SessionContext, query: str, options: Optional[Dict[str, Any]] = None) -> PopulationResult:
        sanitized = sanitize_query(query)
        if not sanitized:
            raise ParseError("Query is empty after removing exclusions", strategy="search")
        if sanitized != (query or "").strip():
            logger.debug(f"Sanitized query '{query}' -> '{sanitized}'")

        self.session_manager.ensure_session(ctx)

        candidate = select_candidate(self._search(ctx, sanitized, options or {}), self.priority)
        logger.info(
            f"Selected candidate {candidate.id} ({candidate.authority or 'unknown authority'})",
            extra={"query": sanitized},
        )

        extra_paths: List[str] = []
        if not candidate.slug:
            discovered = self.resolve_slug(ctx, sanitized)
            candidate.slug = discovered.get("slug")
            if discovered.get("path"):
                extra_paths.append(discovered["path"])

        referer = self.session_manager.warm_entity_page(ctx, candidate.id, candidate.slug, extra_paths)

        try:
            population = self.fetch_details(ctx, candidate, referer)
            partial = False
        except CardPopError as e:
            population = self._fallback(candidate, e)
            partial = True

        return PopulationResult(
            query=query,
            sanitized_query=sanitized,
            candidate=candidate,
            population=population,
            partial=partial,
            referer=referer,
            extra_paths=extra_paths,
        )

    # ------------------------------------------------------------------
    # steps
    # ------------------------------------------------------------------

    def _search(self, ctx: SessionContext, query: str, options: Dict[str, Any]) -> List[Dict[str, Any]]:
        url = self.base_url + SEARCH_PATH
        payload = dict(options)
        payload["query"] = query
        result = self.fetcher.post_json(ctx, url, payload, referer=self.base_url + SEARCH_PAGE_PATH)
        _raise_for_status(result, "Search")

        entries = search_entries(_json_body(result))
        if not entries:
            raise NotFoundError(f"No search results for '{query}'", url=url, strategy="search")
        return entries

    def resolve_slug(self, ctx: SessionContext, query: str) -> Dict[str, str]:
        """Fetch the secondary results page and run the slug/path/token rule stages."""
        url = f"{self.base_url}{SEARCH_PAGE_PATH}?{urlencode({'query': query})}"
        try:
            result = self.fetcher.fetch(ctx, url)
        except CardPopError as e:
            logger.warning(f"Slug discovery failed: {e}")
            return {}

        found = apply_stages(result.text)
        if found.get("token"):
            ctx.auth_token = found["token"]
        if not found.get("slug"):
            logger.debug("No slug found on results page", extra={"url": url})
        return found

    def fetch_details(self, ctx: SessionContext, candidate: SearchCandidate, referer: Optional[str]) -> PopulationRecord:
        url = f"{self.base_url}{DETAILS_PATH}?gemrate_id={quote(candidate.id, safe='')}"
        result = self.fetcher.fetch(ctx, url, kind="xhr", referer=referer)
        _raise_for_status(result, "Details")
        return self.parser.normalize(_json_body(result))

    def _fallback(self, candidate: SearchCandidate, error: CardPopError) -> PopulationRecord:
        try:
            population = self.parser.normalize(candidate.raw_entry)
        except ParseError:
            raise error
        logger.warning(f"Details unavailable ({error.kind}), using search entry census", extra={"candidate": candidate.id})
        return population


# =============================================================================
# HELPERS
# =============================================================================

def _raise_for_status(result: FetchResult, what: str):
    if result.ok:
        return
    if result.status in (404, 410):
        raise NotFoundError(f"{what} returned {result.status}", url=result.url, strategy=result.mode)
    raise NetworkError(f"{what} returned {result.status}", url=result.url, strategy=result.mode)


def _json_body(result: FetchResult) -> Any:
    """Decode a JSON body, including one rendered inside a browser <pre>."""
    try:
        return result.json()
    except ValueError:
        pass
    text = BeautifulSoup(result.text or "", "html.parser").get_text().strip()
    try:
        return json.loads(text)
    except ValueError:
        pass
    for response in result.captured:
        try:
            return response.json()
        except ValueError:
            continue
    raise ParseError("Response is not JSON", url=result.url, strategy=result.mode)
