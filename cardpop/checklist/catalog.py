#!/usr/bin/env python3
"""
Checklist Catalog - sports / years / sets discovery

Reads the checklist site's WordPress REST API (/ci-api/wp/v2/) to build
SetReferences for the paginator:

    catalog = ChecklistCatalog()
    sport = catalog.get_sports()[0]
    year = catalog.get_years(sport["id"], sport["name"])[0]
    sets = catalog.get_sets(sport["id"], year)

Results are cached in memory; network errors are retried with backoff.
"""
import re
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import requests
from bs4 import BeautifulSoup

from cardpop.checklist.paginator import CHECKLIST_BASE_URL
from cardpop.errors import CardPopError, NetworkError, NotFoundError, ParseError
from cardpop.models import SetReference
from cardpop.stealth.anti_detect import get_stealth_headers
from cardpop.utils.cache import ResultCache
from cardpop.utils.logger import get_logger
from cardpop.utils.retry import RetryableStatus, raise_for_retryable, retry_on_network_error

logger = get_logger("catalog")

API_PATH = "/ci-api/wp/v2"
CATALOG_TIMEOUT = 15
CATALOG_CACHE_TTL = 3600  # 1 hour
PER_PAGE = 100

SPORT_KEYWORDS = ("baseball", "football", "basketball", "hockey", "soccer", "racing", "golf", "wrestling")
YEAR_PATTERN = re.compile(r"\b(?:19|20)\d{2}\b")
CARDS_SUFFIX = re.compile(r"\s+cards?$", re.IGNORECASE)


def clean_title(rendered: str) -> str:
    """Strip markup and entities from a WordPress rendered title."""
    return BeautifulSoup(rendered or "", "html.parser").get_text().strip()


def sport_term(sport_name: str) -> str:
    """'Baseball Cards' -> 'baseball'"""
    return CARDS_SUFFIX.sub("", (sport_name or "").strip()).lower()


class ChecklistCatalog:
    """WordPress-backed discovery of checklist sets."""

    def __init__(
        self,
        http: Optional[requests.Session] = None,
        base_url: str = CHECKLIST_BASE_URL,
        cache: Optional[ResultCache] = None,
        timeout: int = CATALOG_TIMEOUT,
        max_retries: int = 2,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.http = http if http is not None else requests.Session()
        self.base_url = base_url.rstrip("/")
        self.api_url = self.base_url + API_PATH
        self.cache = cache if cache is not None else ResultCache(ttl_seconds=CATALOG_CACHE_TTL)
        self.timeout = timeout
        self._get_with_retry = retry_on_network_error(max_retries=max_retries, sleep=sleep)(self._get_once)

    # ------------------------------------------------------------------
    # public
    # ------------------------------------------------------------------

    def get_sports(self) -> List[Dict[str, Any]]:
        """Top-level categories that look like sports."""
        key = ResultCache.key("sports")
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        categories = self._get("/categories", {"per_page": PER_PAGE, "parent": 0, "orderby": "name", "order": "asc"})
        sports = [
            _category(c) for c in categories
            if any(k in (c.get("name", "") + " " + c.get("slug", "")).lower() for k in SPORT_KEYWORDS)
        ]
        logger.info(f"Found {len(sports)} sports")
        self.cache.set(key, sports)
        return sports

    def get_subcategories(self, parent_id: int) -> List[Dict[str, Any]]:
        """Child categories; an unreachable listing counts as none."""
        try:
            categories = self._get("/categories", {"parent": parent_id, "per_page": PER_PAGE})
        except CardPopError as e:
            logger.warning(f"Could not list subcategories of {parent_id}: {e}")
            return []
        return [_category(c) for c in categories]

    def get_years(self, sport_id: int, sport_name: str) -> List[int]:
        """
        Years mentioned in post titles for a sport, most recent first.

        Posts are gathered by the first of these that returns anything:
        1. the sport category and its subcategories
        2. a search for the sport name
        3. all recent posts, filtered locally on the sport name
        """
        key = ResultCache.key("years", sport_id)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        term = sport_term(sport_name)
        posts = self._posts_by_category(sport_id)
        if not posts:
            logger.debug(f"No category posts for {sport_name}, searching by name")
            posts = self._recent_posts({"search": term})
        if not posts:
            logger.debug(f"No search posts for {sport_name}, filtering recent posts")
            posts = [
                p for p in self._recent_posts({})
                if term in _rendered(p, "title").lower() or term in _rendered(p, "content").lower()
            ]
        if not posts:
            logger.warning(f"No posts found for {sport_name} (category {sport_id})")

        latest = datetime.now().year + 1
        years = set()
        for post in posts:
            for match in YEAR_PATTERN.findall(clean_title(_rendered(post, "title"))):
                year = int(match)
                if 1900 <= year <= latest:
                    years.add(year)

        result = sorted(years, reverse=True)
        logger.info(f"Found {len(result)} years for {sport_name}")
        self.cache.set(key, result)
        return result

    def get_sets(self, sport_id: int, year: int, category: str = "") -> List[SetReference]:
        """Posts of one sport/year as SetReferences."""
        key = ResultCache.key("sets", sport_id, year)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        posts = self._get("/posts", {
            "categories": sport_id,
            "search": str(year),
            "per_page": PER_PAGE,
            "orderby": "date",
            "order": "desc",
        })
        sets = [
            SetReference(
                category=category or str(sport_id),
                year=year,
                set_id=str(post.get("id")) if post.get("id") is not None else None,
                slug=post.get("slug"),
                name=clean_title(_rendered(post, "title")),
                url=post.get("link"),
            )
            for post in posts
        ]
        logger.info(f"Found {len(sets)} sets for {year}")
        self.cache.set(key, sets)
        return sets

    # ------------------------------------------------------------------
    # post queries
    # ------------------------------------------------------------------

    def _posts_by_category(self, sport_id: int) -> List[Dict[str, Any]]:
        category_ids = [int(sport_id)] + [c["id"] for c in self.get_subcategories(sport_id)]
        posts: Dict[Any, Dict[str, Any]] = {}
        for category_id in category_ids:
            for post in self._recent_posts({"categories": category_id}):
                posts.setdefault(post.get("id"), post)
        return list(posts.values())

    def _recent_posts(self, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        query = {"per_page": PER_PAGE, "orderby": "date", "order": "desc"}
        query.update(params)
        try:
            return self._get("/posts", query)
        except CardPopError as e:
            logger.debug(f"Post query {params} failed: {e}")
            return []

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    def _get_once(self, url: str, params: Dict[str, Any]) -> requests.Response:
        response = self.http.get(url, params=params, headers=get_stealth_headers(kind="xhr"), timeout=self.timeout)
        return raise_for_retryable(response, url=url)

    def _get(self, path: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        url = self.api_url + path
        try:
            response = self._get_with_retry(url, params)
        except requests.exceptions.RequestException as e:
            raise NetworkError(f"Catalog request failed: {e}", url=url, strategy="catalog") from e
        except RetryableStatus as e:
            raise NetworkError(f"Catalog returned {e.status_code}", url=url, strategy="catalog") from e

        if response.status_code in (404, 410):
            raise NotFoundError(f"Catalog returned {response.status_code}", url=url, strategy="catalog")
        if not 200 <= response.status_code < 300:
            raise NetworkError(f"Catalog returned {response.status_code}", url=url, strategy="catalog")
        try:
            data = response.json()
        except ValueError as e:
            raise ParseError("Catalog response is not JSON", url=url, strategy="catalog") from e
        if not isinstance(data, list):
            raise ParseError("Catalog response is not a list", url=url, strategy="catalog")
        return data


def _category(raw: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": raw.get("id"),
        "name": raw.get("name", ""),
        "slug": raw.get("slug", ""),
        "count": raw.get("count", 0),
    }


def _rendered(post: Dict[str, Any], field: str) -> str:
    value = post.get(field)
    if isinstance(value, dict):
        return value.get("rendered") or ""
    return value or ""
