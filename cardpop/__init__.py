"""
CardPop - population and checklist extraction for collectible trading cards.

    from cardpop import CardPopService

    with CardPopService() as service:
        print(service.search("2024 topps update us50 holliday").to_dict())
"""
from cardpop.errors import (
    BrowserUnavailableError,
    CardPopError,
    NavigationTimeout,
    NetworkError,
    NotFoundError,
    ParseError,
)
from cardpop.models import CardRecord, LookupResult, SearchCandidate, SetReference
from cardpop.service import CardPopService
from cardpop.session import SessionContext

__version__ = "0.1.0"

__all__ = [
    "CardPopService",
    "SessionContext",
    "CardRecord",
    "SearchCandidate",
    "SetReference",
    "LookupResult",
    "CardPopError",
    "NetworkError",
    "NavigationTimeout",
    "NotFoundError",
    "ParseError",
    "BrowserUnavailableError",
]
