#!/usr/bin/env python3
"""
Page Fetcher - requests first, browser fallback

Two fetch modes:
1. lightweight - a direct requests call with session cookies and stealth
   headers, short timeout
2. browser - headless navigation through the context's BrowserSession,
   with an optional bounded DOM wait and background response capture

Escalation policy (mode=None):
- hosts known to always block lightweight requests go straight to browser
- everything else tries lightweight first and escalates once, on a network
  error, a non-success status, or an HTML payload too short to be real
  content. 404/410 are answers, not blocks, and are never escalated.
"""
import os
from typing import Dict, Iterable, Optional
from urllib.parse import urlsplit

import requests

from cardpop.errors import BrowserUnavailableError, NetworkError
from cardpop.models import FetchResult
from cardpop.scanners.browser import WaitCondition
from cardpop.session import SessionContext
from cardpop.utils.logger import get_logger

logger = get_logger("page_fetcher")

# =============================================================================
# CONFIGURATION
# =============================================================================

LIGHTWEIGHT = "lightweight"
BROWSER = "browser"

LIGHTWEIGHT_TIMEOUT = int(os.environ.get("LIGHTWEIGHT_TIMEOUT", "10"))
MIN_CONTENT_LENGTH = int(os.environ.get("MIN_CONTENT_LENGTH", "500"))
BROWSER_FIRST_HOSTS = [
    h.strip().lower() for h in os.environ.get("BROWSER_FIRST_HOSTS", "www.tcdb.com").split(",") if h.strip()
]

DEFINITIVE_STATUSES = {404, 410}


class PageFetcher:
    """Fetches pages in lightweight or browser mode with one escalation step."""

    def __init__(
        self,
        lightweight_timeout: int = LIGHTWEIGHT_TIMEOUT,
        min_content_length: int = MIN_CONTENT_LENGTH,
        browser_first_hosts: Iterable[str] = None,
    ):
        self.lightweight_timeout = lightweight_timeout
        self.min_content_length = min_content_length
        self.browser_first_hosts = set(
            h.lower() for h in (browser_first_hosts if browser_first_hosts is not None else BROWSER_FIRST_HOSTS)
        )

    # ------------------------------------------------------------------
    # policy
    # ------------------------------------------------------------------

    def always_blocks(self, url: str) -> bool:
        return urlsplit(url).netloc.lower() in self.browser_first_hosts

    def too_short(self, result: FetchResult) -> bool:
        """Whether an HTML payload is too small to be the real page."""
        if "html" not in (result.content_type or "").lower():
            return False
        return len(result.text.strip()) < self.min_content_length

    def needs_escalation(self, result: FetchResult) -> bool:
        if result.status in DEFINITIVE_STATUSES:
            return False
        return not result.ok or self.too_short(result)

    # ------------------------------------------------------------------
    # GET
    # ------------------------------------------------------------------

    def fetch(
        self,
        ctx: SessionContext,
        url: str,
        mode: Optional[str] = None,
        wait_for: Optional[WaitCondition] = None,
        referer: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        kind: str = "document",
    ) -> FetchResult:
        """
        Fetch url.

        mode=LIGHTWEIGHT or BROWSER pins the mode; mode=None applies the
        escalation policy.
        """
        if mode == BROWSER:
            return self._browser(ctx, url, wait_for, referer)
        if mode == LIGHTWEIGHT:
            return self._lightweight(ctx, url, referer, headers, kind)

        if self.always_blocks(url):
            logger.debug(f"Skipping lightweight mode for blocking host: {url}")
            return self._browser(ctx, url, wait_for, referer)

        try:
            result = self._lightweight(ctx, url, referer, headers, kind)
        except NetworkError as e:
            logger.warning(f"Lightweight fetch failed, escalating to browser: {e}")
            return self._escalate(ctx, url, wait_for, referer, cause=e)

        if not self.needs_escalation(result):
            return result

        reason = f"status {result.status}" if not result.ok else f"{len(result.text)} byte payload"
        logger.warning(f"Lightweight fetch unusable ({reason}), escalating to browser", extra={"url": url})
        return self._escalate(ctx, url, wait_for, referer, fallback=result)

    # ------------------------------------------------------------------
    # POST (search endpoints)
    # ------------------------------------------------------------------

    def post_json(
        self,
        ctx: SessionContext,
        url: str,
        payload: dict,
        referer: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        allow_browser: bool = True,
    ) -> FetchResult:
        """POST a JSON body; escalate once to an in-page fetch when blocked."""
        request_headers = ctx.headers("xhr", referer)
        request_headers["Content-Type"] = "application/json"
        if headers:
            request_headers.update(headers)

        try:
            response = ctx.http.post(url, json=payload, headers=request_headers, timeout=self.lightweight_timeout)
            result = _to_result(response, url, LIGHTWEIGHT)
        except requests.exceptions.RequestException as e:
            error = _network_error(e, url)
            if not allow_browser:
                raise error from e
            logger.warning(f"Search POST failed, retrying in browser: {error}")
            return self._browser_post(ctx, url, payload, headers, cause=error)

        if result.ok or result.status in DEFINITIVE_STATUSES or not allow_browser:
            return result

        logger.warning(f"Search POST returned {result.status}, retrying in browser", extra={"url": url})
        return self._browser_post(ctx, url, payload, headers, fallback=result)

    # ------------------------------------------------------------------
    # modes
    # ------------------------------------------------------------------

    def _lightweight(
        self,
        ctx: SessionContext,
        url: str,
        referer: Optional[str],
        headers: Optional[Dict[str, str]],
        kind: str,
    ) -> FetchResult:
        request_headers = ctx.headers(kind, referer)
        if headers:
            request_headers.update(headers)
        try:
            response = ctx.http.get(url, headers=request_headers, timeout=self.lightweight_timeout)
        except requests.exceptions.RequestException as e:
            raise _network_error(e, url) from e

        result = _to_result(response, url, LIGHTWEIGHT)
        if result.ok:
            ctx.remember(url)
        return result

    def _browser(
        self,
        ctx: SessionContext,
        url: str,
        wait_for: Optional[WaitCondition],
        referer: Optional[str],
    ) -> FetchResult:
        result = ctx.browser.navigate(url, wait_for=wait_for, referer=referer or ctx.last_referer)
        ctx.absorb_browser_cookies()
        if result.ok:
            ctx.remember(url)
        return result

    def _escalate(
        self,
        ctx: SessionContext,
        url: str,
        wait_for: Optional[WaitCondition],
        referer: Optional[str],
        cause: Optional[NetworkError] = None,
        fallback: Optional[FetchResult] = None,
    ) -> FetchResult:
        try:
            return self._browser(ctx, url, wait_for, referer)
        except BrowserUnavailableError:
            if fallback is not None:
                logger.warning("Browser unavailable, keeping lightweight response", extra={"url": url})
                return fallback
            raise cause

    def _browser_post(
        self,
        ctx: SessionContext,
        url: str,
        payload: dict,
        headers: Optional[Dict[str, str]],
        cause: Optional[NetworkError] = None,
        fallback: Optional[FetchResult] = None,
    ) -> FetchResult:
        try:
            return ctx.browser.post_json(url, payload, headers)
        except BrowserUnavailableError:
            if fallback is not None:
                return fallback
            raise cause


# =============================================================================
# HELPERS
# =============================================================================

def _to_result(response, url: str, mode: str) -> FetchResult:
    return FetchResult(
        url=getattr(response, "url", None) or url,
        status=response.status_code,
        text=response.text or "",
        mode=mode,
        content_type=response.headers.get("Content-Type", ""),
    )


def _network_error(error: Exception, url: str) -> NetworkError:
    if isinstance(error, requests.exceptions.Timeout):
        return NetworkError("Request timed out", url=url, strategy=LIGHTWEIGHT)
    if isinstance(error, requests.exceptions.ConnectionError):
        return NetworkError("Connection failed", url=url, strategy=LIGHTWEIGHT)
    return NetworkError(f"Request failed: {error}", url=url, strategy=LIGHTWEIGHT)
