"""Interfaces for the external data providers consumed by the fallback chain.

Each tier talks to its providers only through these contracts, so the
coordinator can be exercised with in-memory fakes.
"""

import abc
from typing import Any, Dict, Optional

from ..models.common import ProviderName
from ..models.fallback import DestinationQuery, FallbackContext, ParsedLocation, UserOrigin
from ..models.scraper import ExtractionRules, ScrapeFormat, ScrapeResult


class ResearchProvider(abc.ABC):
    """Tier 1: premium research provider returning freeform or partial results."""

    name: str = "research"

    async def close(self) -> None:
        """Releases network resources. No-op by default."""
        return None

    @abc.abstractmethod
    def is_configured(self) -> bool:
        """Whether credentials are present so a call can be attempted."""
        pass

    @abc.abstractmethod
    async def research(
        self, location: ParsedLocation, origin: UserOrigin, query: DestinationQuery
    ) -> Dict[str, Any]:
        """Researches a destination. May fail with any error shape."""
        pass


class SubSource(abc.ABC):
    """Tier 2: one independently failable free API (news, currency, video...)."""

    name: str = "sub-source"

    async def close(self) -> None:
        return None

    @abc.abstractmethod
    def is_configured(self) -> bool:
        pass

    @abc.abstractmethod
    async def fetch(self, context: FallbackContext) -> Dict[str, Any]:
        """Returns a typed partial result for the destination."""
        pass


class ScraperBackend(abc.ABC):
    """Tier 3: quota-limited scraping backend."""

    name: ProviderName

    async def close(self) -> None:
        return None

    @abc.abstractmethod
    def is_configured(self) -> bool:
        pass

    @abc.abstractmethod
    async def scrape(
        self,
        url: str,
        format: ScrapeFormat = "markdown",
        extraction_rules: Optional[ExtractionRules] = None,
    ) -> ScrapeResult:
        """Scrapes a page. Raises rate-limit/quota errors as HTTP-status-bearing errors."""
        pass
