#!/usr/bin/env python3
"""
Session Context

One explicit, caller-owned bundle of browsing state: the HTTP session and
its cookie jar, the lazily launched browser, the warm-up record, the most
recent auth token and the referer chain. Every extraction call receives it;
nothing lives in module globals.

Usage:
    with SessionContext() as ctx:
        service.search("2024 topps update us50 holliday", ctx=ctx)
"""
import random
from typing import Dict, List, Optional, Set

import requests

from cardpop.scanners.browser import BrowserSession
from cardpop.stealth.anti_detect import ACCEPT_LANGUAGES, get_stealth_headers, random_user_agent
from cardpop.utils.logger import get_logger

logger = get_logger("session")


class SessionContext:
    """Cookies, tokens and browser for one service instance."""

    def __init__(
        self,
        http: Optional[requests.Session] = None,
        browser: Optional[BrowserSession] = None,
        user_agent: Optional[str] = None,
    ):
        self.http = http if http is not None else requests.Session()
        self.browser = browser if browser is not None else BrowserSession()
        self.user_agent = user_agent or random_user_agent()
        self.accept_language = random.choice(ACCEPT_LANGUAGES)

        self.warmed_origins: Set[str] = set()
        self.auth_token: Optional[str] = None
        self.referer_chain: List[str] = []
        self.is_open = False

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------

    def open(self) -> "SessionContext":
        self.is_open = True
        return self

    def close(self):
        """Release the browser and HTTP connections."""
        self.browser.close()
        self.http.close()
        self.is_open = False

    def __enter__(self) -> "SessionContext":
        return self.open()

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    # ------------------------------------------------------------------
    # state
    # ------------------------------------------------------------------

    @property
    def warmed(self) -> bool:
        return bool(self.warmed_origins)

    @property
    def last_referer(self) -> Optional[str]:
        return self.referer_chain[-1] if self.referer_chain else None

    def remember(self, url: str):
        """Append a successfully visited URL to the referer chain (keep last 5)."""
        self.referer_chain.append(url)
        if len(self.referer_chain) > 5:
            self.referer_chain.pop(0)

    def headers(self, kind: str = "document", referer: Optional[str] = None) -> Dict[str, str]:
        headers = get_stealth_headers(
            self.user_agent,
            kind=kind,
            referer=referer or self.last_referer,
            accept_language=self.accept_language,
        )
        if kind == "xhr" and self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"
        return headers

    def absorb_browser_cookies(self):
        """Copy browser cookies into the HTTP jar so both modes share one session."""
        for cookie in self.browser.cookies():
            name = cookie.get("name")
            if not name:
                continue
            self.http.cookies.set(
                name,
                cookie.get("value", ""),
                domain=cookie.get("domain", ""),
                path=cookie.get("path", "/"),
            )
