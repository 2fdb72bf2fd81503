#!/usr/bin/env python3
"""
Data classes shared across the extraction core.

All of these are transient per request; persistence belongs to the caller.
"""
import json
from datetime import datetime
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

from cardpop.errors import CardPopError


# =============================================================================
# RECORDS
# =============================================================================

@dataclass
class CardRecord:
    """One checklist row. At least one of number/player is non-empty."""
    number: str = ""
    player: str = ""
    team: str = ""
    source_id: Optional[str] = None
    detail_url: Optional[str] = None

    def __post_init__(self):
        self.number = (self.number or "").strip()
        self.player = (self.player or "").strip()
        self.team = (self.team or "").strip()
        if not self.number and not self.player:
            raise ValueError("CardRecord needs a number or a player")

    @property
    def key(self) -> tuple:
        """De-duplication key across pages."""
        return (self.number.lower(), self.player.lower())

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SearchCandidate:
    """One upstream search hit, chosen by authority rank."""
    id: str
    slug: Optional[str] = None
    authority_rank: int = 0
    authority: str = ""
    raw_entry: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "slug": self.slug,
            "authority": self.authority,
            "authority_rank": self.authority_rank,
        }


@dataclass
class SetReference:
    """A release/set as supplied by the catalog."""
    category: str = ""
    year: Optional[int] = None
    set_id: Optional[str] = None
    slug: Optional[str] = None
    name: str = ""
    url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# =============================================================================
# FETCH RESULTS
# =============================================================================

@dataclass
class CapturedResponse:
    """A background network response buffered during browser navigation."""
    url: str
    content_type: str = ""
    body: str = ""
    status: int = 200

    def json(self) -> Any:
        return json.loads(self.body)


@dataclass
class FetchResult:
    """Outcome of one PageFetcher call."""
    url: str
    status: int
    text: str
    mode: str
    content_type: str = ""
    captured: List[CapturedResponse] = field(default_factory=list)
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def json(self) -> Any:
        return json.loads(self.text)


# =============================================================================
# TAGGED RESULTS
# =============================================================================

@dataclass
class Failure:
    """Typed failure returned across the core boundary."""
    kind: str
    message: str
    url: Optional[str] = None
    strategy: Optional[str] = None

    @classmethod
    def from_error(cls, error: Exception) -> "Failure":
        if isinstance(error, CardPopError):
            return cls(kind=error.kind, message=error.message, url=error.url, strategy=error.strategy)
        return cls(kind="internal", message=str(error) or type(error).__name__)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class LookupResult:
    """Success-or-failure envelope returned by every public entry point."""
    success: bool
    data: Any = None
    failure: Optional[Failure] = None
    source: str = ""
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    @classmethod
    def ok(cls, data: Any, source: str = "") -> "LookupResult":
        return cls(success=True, data=data, source=source)

    @classmethod
    def fail(cls, error: Exception, source: str = "") -> "LookupResult":
        return cls(success=False, failure=Failure.from_error(error), source=source)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "success": self.success,
            "source": self.source,
            "timestamp": self.timestamp,
        }
        if self.success:
            result["data"] = self.data.to_dict() if hasattr(self.data, "to_dict") else self.data
        else:
            result["error"] = self.failure.to_dict()
        return result
