"""Scraping and provider credit models."""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Union

from destiq.domain.models.common import CreditSnapshot, ProviderName

ScrapeFormat = Literal["html", "markdown", "text", "structured"]


@dataclass
class ExtractionRules:
    """Optional post-processing hints for a scrape."""
    remove_elements: List[str] = field(default_factory=list)
    wait_for_selector: Optional[str] = None


@dataclass
class ScrapeRequest:
    """A single page to scrape."""
    url: str
    format: ScrapeFormat = "markdown"
    provider: Optional[ProviderName] = None  # Preferred provider, tried first when funded
    extraction_rules: Optional[ExtractionRules] = None


@dataclass
class ScrapeResult:
    """Content returned by a scraping backend."""
    provider: ProviderName
    url: str
    data: Union[str, Dict[str, Any]]
    format: ScrapeFormat
    credits_used: int = 1  # Billed against the provider after a successful scrape
    processing_time_ms: float = 0.0
    scraped_at: float = field(default_factory=time.time)


class ProviderCredit:
    """Consumable quota of one provider.

    Invariant: ``used + remaining == total`` and neither counter is negative.
    """

    def __init__(self, total: int):
        if total < 0:
            raise ValueError(f"Credit total must be non-negative, got {total}")
        self.total = total
        self.used = 0

    @property
    def remaining(self) -> int:
        return self.total - self.used

    def consume(self, amount: int = 1) -> bool:
        """Consumes credits; returns False (and changes nothing) if not enough remain."""
        if amount <= 0 or amount > self.remaining:
            return False
        self.used += amount
        return True

    def reset(self) -> None:
        self.used = 0

    def snapshot(self) -> CreditSnapshot:
        return CreditSnapshot(remaining=self.remaining, total=self.total, used=self.used)

    def __repr__(self) -> str:
        return f"ProviderCredit(remaining={self.remaining}, total={self.total}, used={self.used})"
