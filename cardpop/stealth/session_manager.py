#!/usr/bin/env python3
"""
Session Manager - cookie/token warm-up before privileged requests

- ensure_session: one best-effort visit to the site root for baseline cookies
- warm_entity_page: visit the entity's own page so the details request
  carries a plausible referer and whatever cookies that page sets
- capture_token: keep the most recent auth token embedded in page markup
"""
from typing import Iterable, List, Optional
from urllib.parse import quote, urlsplit

from cardpop.errors import CardPopError, NotFoundError
from cardpop.extraction.rules import find_token
from cardpop.models import FetchResult
from cardpop.scanners.page_fetcher import PageFetcher
from cardpop.session import SessionContext
from cardpop.utils.logger import get_logger

logger = get_logger("session_manager")

# Slug paths first, then id paths. Formatted with slug= / id=.
SLUG_PATHS = ["/item-details/{slug}", "/universal-search/card/{slug}"]
ID_PATHS = ["/item-details?gemrate_id={id}"]


class SessionManager:
    """Warms cookies and captures tokens for one target origin."""

    def __init__(self, fetcher: PageFetcher, base_url: str):
        self.fetcher = fetcher
        self.base_url = base_url.rstrip("/")
        self.origin = "{0.scheme}://{0.netloc}".format(urlsplit(self.base_url))

    def ensure_session(self, ctx: SessionContext) -> bool:
        """
        Visit the site root once per context. Never raises.

        Returns True when the context holds a warm session afterwards.
        """
        if self.origin in ctx.warmed_origins:
            return True
        try:
            result = self.fetcher.fetch(ctx, self.base_url + "/")
        except CardPopError as e:
            logger.warning(f"Session warm-up failed, continuing cold: {e}")
            return False

        if not result.ok:
            logger.warning(f"Session warm-up returned {result.status}, continuing cold", extra={"url": result.url})
            return False

        self.capture_token(ctx, result.text)
        ctx.warmed_origins.add(self.origin)
        logger.debug(f"Session warmed for {self.origin} ({len(ctx.http.cookies)} cookies)")
        return True

    def entity_paths(self, candidate_id: str, slug: Optional[str] = None, extra_paths: Iterable[str] = ()) -> List[str]:
        """Prioritized, de-duplicated warm-up path list."""
        paths = []
        if slug:
            paths.extend(p.format(slug=quote(slug, safe="-_")) for p in SLUG_PATHS)
        if candidate_id:
            paths.extend(p.format(id=quote(str(candidate_id), safe="")) for p in ID_PATHS)
        paths.extend(extra_paths or ())

        ordered = []
        for path in paths:
            if path and path not in ordered:
                ordered.append(path)
        return ordered

    def warm_entity_page(
        self,
        ctx: SessionContext,
        candidate_id: str,
        slug: Optional[str] = None,
        extra_paths: Iterable[str] = (),
    ) -> Optional[str]:
        """
        Visit candidate paths until one answers 200.

        Returns the winning URL (to be used as the next referer), or None.
        """
        for path in self.entity_paths(candidate_id, slug, extra_paths):
            url = path if path.startswith("http") else self.origin + path
            try:
                result = self._visit(ctx, url)
            except NotFoundError:
                logger.debug(f"Warm-up path not found: {url}")
                continue
            except CardPopError as e:
                logger.debug(f"Warm-up path failed: {e}")
                continue

            if result.status == 200:
                self.capture_token(ctx, result.text)
                logger.debug(f"Warmed entity page {url}")
                return url
            logger.debug(f"Warm-up path returned {result.status}: {url}")

        logger.warning(f"No warm-up path succeeded for candidate {candidate_id}")
        return None

    def capture_token(self, ctx: SessionContext, markup: str) -> Optional[str]:
        token = find_token(markup or "")
        if token:
            ctx.auth_token = token
            logger.debug("Captured auth token from page markup")
        return ctx.auth_token

    def _visit(self, ctx: SessionContext, url: str) -> FetchResult:
        result = self.fetcher.fetch(ctx, url, referer=ctx.last_referer)
        if result.status in (404, 410):
            raise NotFoundError(f"{result.status} on warm-up path", url=url, strategy=result.mode)
        return result
