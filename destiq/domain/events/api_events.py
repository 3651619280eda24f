"""Domain Events related to provider calls and resilience.

Examples include events for when calls are retried, fail or succeed, when a
fallback tier is abandoned, and when the scraper pool fails over.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Optional

logger = logging.getLogger(__name__)


@dataclass
class DomainEvent:
    """Base class for domain events."""
    pass


# --- Provider Call Events ---

@dataclass
class ApiCallInitiated(DomainEvent):
    """Event triggered when a provider call attempt is about to be made."""
    source: str
    attempt_number: int
    timestamp: float = field(default_factory=time.time)

@dataclass
class ApiCallSucceeded(DomainEvent):
    """Event triggered when a provider call succeeds."""
    source: str
    attempts: int
    latency_ms: float
    timestamp: float = field(default_factory=time.time)

@dataclass
class ApiCallFailed(DomainEvent):
    """Event triggered when a provider call fails definitively (after retries)."""
    source: str
    error_kind: str
    error_message: str
    attempts: int
    timestamp: float = field(default_factory=time.time)

@dataclass
class RetryScheduled(DomainEvent):
    """Event triggered when a retry is scheduled for a failed call."""
    source: str
    attempt_number: int
    delay_seconds: float
    error_kind: str
    timestamp: float = field(default_factory=time.time)

# --- Fallback Chain Events ---

@dataclass
class TierFailed(DomainEvent):
    """Event triggered when a tier fails and the chain moves on."""
    tier: int
    source: str
    error_kind: str
    reason: str
    timestamp: float = field(default_factory=time.time)

@dataclass
class TierResolved(DomainEvent):
    """Event triggered when a tier produces the final result."""
    tier: int
    source: str
    confidence: float
    fallback_reason: Optional[str] = None
    timestamp: float = field(default_factory=time.time)

# --- Credit Pool Events ---

@dataclass
class CreditsConsumed(DomainEvent):
    """Event triggered when an attempt reaches a credit-limited provider."""
    provider: str
    remaining: int
    total: int
    timestamp: float = field(default_factory=time.time)

@dataclass
class ProviderFailover(DomainEvent):
    """Event triggered when the scraper pool moves to the next provider."""
    from_provider: str
    reason: str
    to_provider: Optional[str] = None
    timestamp: float = field(default_factory=time.time)


def dispatch_event(event: Any) -> None:
    """Publishes an event. Events are currently only logged."""
    logger.debug(f"EVENT: {event}")
