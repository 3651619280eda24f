"""Data models for the fallback chain.

Request context (location, origin, query), per-tier failure records,
the invoker's discriminated `ApiResponse` and the final `FallbackResult`.
"""

import time
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Generic, List, Literal, Optional, TypeVar

from destiq.domain.models.common import CacheKey, SourceTag
from destiq.domain.models.errors import ExternalApiError

T = TypeVar("T")

TargetData = Literal["housing", "costs", "cultural", "safety", "flights", "full"]

# Cache TTL (seconds) of a successful result, per live tier
DEFAULT_TIER_TTLS: Dict[int, float] = {1: 6 * 3600, 2: 3 * 3600, 3: 1 * 3600}


@dataclass
class ParsedLocation:
    """Destination as parsed from the user's request."""
    city: str
    country: str
    primary_language: str = "English"
    currency: Optional[str] = None  # Local currency code, e.g. 'BRL'


@dataclass
class UserOrigin:
    """Where the traveller is coming from."""
    country: str
    city: Optional[str] = None


@dataclass
class DestinationQuery:
    """What the traveller wants to know."""
    budget: float
    duration_months: int
    interests: List[str] = field(default_factory=list)
    currency: str = "USD"


@dataclass
class FallbackContext:
    """Everything a tier needs to fetch data for one request."""
    location: ParsedLocation
    origin: UserOrigin
    query: DestinationQuery
    target_data: TargetData = "full"

    @property
    def destination_label(self) -> str:
        return f"{self.location.city},{self.location.country}"

    @property
    def origin_label(self) -> str:
        return f"{self.origin.city or ''},{self.origin.country}"


@dataclass
class TierAttempt:
    """Record of a failed tier, kept for observability."""
    tier: int
    source: SourceTag
    kind: str
    message: str
    provider: Optional[str] = None


@dataclass
class ApiResponse(Generic[T]):
    """Discriminated result of a retried call: either data or an error."""
    success: bool
    source: str
    attempts: int
    data: Optional[T] = None
    error: Optional[ExternalApiError] = None
    timestamp: float = field(default_factory=time.time)


@dataclass
class FallbackResult(Generic[T]):
    """Confidence-scored outcome of the fallback chain."""
    data: T
    source: SourceTag
    tier: int
    confidence: float
    timestamp: float = field(default_factory=time.time)
    fallback_reason: Optional[str] = None
    cache_key: Optional[CacheKey] = None
    attempts: List[TierAttempt] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly representation for the serialization boundary."""
        return asdict(self)
