"""
Error taxonomy for the extraction core.

Internal layers raise these; the public entry points in cardpop.service turn
them into tagged Failure results, so none of them escape to the caller.
"""
from typing import Optional


class CardPopError(Exception):
    """Base error. Carries the attempted URL and the strategy that failed."""

    kind = "error"

    def __init__(self, message: str, url: Optional[str] = None, strategy: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.url = url
        self.strategy = strategy

    def __str__(self) -> str:
        parts = [self.message]
        if self.strategy:
            parts.append(f"strategy={self.strategy}")
        if self.url:
            parts.append(f"url={self.url}")
        return " | ".join(parts)


class NetworkError(CardPopError):
    """Timeout or connection failure."""

    kind = "network"


class NavigationTimeout(NetworkError):
    """A browser navigation or DOM wait exceeded its bound."""

    kind = "timeout"


class NotFoundError(CardPopError):
    """Expected 404 on one candidate path."""

    kind = "not_found"


class ParseError(CardPopError):
    """No extraction strategy produced a schema-valid result."""

    kind = "parse"

    def __init__(self, message: str = "No data found", url: Optional[str] = None, strategy: Optional[str] = None):
        super().__init__(message, url=url, strategy=strategy)


class BrowserUnavailableError(CardPopError):
    """No usable browser executable; cached for the life of the session."""

    kind = "browser_unavailable"
