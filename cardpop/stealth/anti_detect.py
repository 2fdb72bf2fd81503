#!/usr/bin/env python3
"""
Anti-Detection Headers

Builds browser-mimicking request headers for lightweight requests:
1. Realistic Chrome user agents (matches the headless browser we escalate to)
2. Accept headers consistent with the request kind (page vs. XHR)
3. Referer chained from the warm-up sequence

Usage:
    from cardpop.stealth.anti_detect import get_stealth_headers

    headers = get_stealth_headers(user_agent, kind="xhr", referer=warm_url)
"""
import random
from typing import Dict, Optional
from urllib.parse import urlsplit

# =============================================================================
# USER AGENTS - Chrome only, so lightweight and browser requests agree
# =============================================================================

USER_AGENTS = [
    # Chrome on Windows
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/141.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/139.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/138.0.0.0 Safari/537.36",

    # Chrome on Mac
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/141.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/139.0.0.0 Safari/537.36",

    # Chrome on Linux
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/141.0.0.0 Safari/537.36",

    # Edge on Windows
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/141.0.0.0 Safari/537.36 Edg/141.0.0.0",
]

ACCEPT_LANGUAGES = [
    "en-US,en;q=0.9",
    "en-US,en;q=0.9,es;q=0.8",
    "en-US,en;q=0.8",
    "en-GB,en-US;q=0.9,en;q=0.8",
]

DOCUMENT_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,image/apng,*/*;q=0.8"
XHR_ACCEPT = "application/json, text/plain, */*"


def random_user_agent() -> str:
    return random.choice(USER_AGENTS)


def origin_of(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}"


def get_stealth_headers(
    user_agent: Optional[str] = None,
    kind: str = "document",
    referer: Optional[str] = None,
    accept_language: Optional[str] = None,
) -> Dict[str, str]:
    """
    Generate realistic headers for one request.

    Args:
        user_agent: Session user agent; keep it stable for the whole session
        kind: "document" for page navigations, "xhr" for API calls
        referer: Previous page in the browsing chain
        accept_language: Session Accept-Language; random when omitted
    """
    headers = {
        "User-Agent": user_agent or random_user_agent(),
        "Accept-Language": accept_language or random.choice(ACCEPT_LANGUAGES),
        "Accept-Encoding": "gzip, deflate, br",
        "Connection": "keep-alive",
    }

    if kind == "xhr":
        headers.update({
            "Accept": XHR_ACCEPT,
            "X-Requested-With": "XMLHttpRequest",
            "Sec-Fetch-Dest": "empty",
            "Sec-Fetch-Mode": "cors",
            "Sec-Fetch-Site": "same-origin",
        })
        if referer:
            headers["Origin"] = origin_of(referer)
    else:
        headers.update({
            "Accept": DOCUMENT_ACCEPT,
            "Upgrade-Insecure-Requests": "1",
            "Sec-Fetch-Dest": "document",
            "Sec-Fetch-Mode": "navigate",
            "Sec-Fetch-Site": "same-origin" if referer else "none",
            "Sec-Fetch-User": "?1",
            "Cache-Control": "max-age=0",
        })

    if referer:
        headers["Referer"] = referer

    return headers
