"""Credit accounting and failover for quota-limited scraping providers.

`CreditPool` owns one `ProviderCredit` per provider and is the single
source of truth for quotas; build one per process and share it.
`ScraperPool` walks the providers in priority order, charging a credit
for every attempt that reaches a provider (plus any extra the provider
reports), and fails over on any error.
"""

import asyncio
import logging
from typing import Dict, List, Mapping, Optional, Sequence

from destiq.domain.events.api_events import CreditsConsumed, ProviderFailover, dispatch_event
from destiq.domain.interfaces.cache import CacheService
from destiq.domain.interfaces.providers import ScraperBackend
from destiq.domain.models.common import SCRAPER_NAMESPACE, CreditSnapshot
from destiq.domain.models.errors import (
    FAILOVER_KINDS, AllProvidersExhausted, ApiErrorKind, CacheError, ExternalApiError,
)
from destiq.domain.models.scraper import ProviderCredit, ScrapeRequest, ScrapeResult
from destiq.infrastructure.cache.keys import CacheKeyGenerator
from destiq.infrastructure.resilience.error_normalizer import normalize_error

logger = logging.getLogger(__name__)


class CreditPool:
    """Per-provider credit counters."""

    def __init__(self, totals: Mapping[str, int]):
        self._credits: Dict[str, ProviderCredit] = {
            name: ProviderCredit(total) for name, total in totals.items()
        }
        logger.info(f"CreditPool initialized: {self.snapshot()}")

    def providers(self) -> List[str]:
        return list(self._credits)

    def has_credits(self, provider: str) -> bool:
        credit = self._credits.get(provider)
        return credit is not None and credit.remaining > 0

    def consume(self, provider: str, amount: int = 1) -> bool:
        """Charges `amount` credits; False when the provider is unknown or short."""
        credit = self._credits.get(provider)
        if credit is None or not credit.consume(amount):
            return False
        dispatch_event(CreditsConsumed(provider=provider, remaining=credit.remaining, total=credit.total))
        logger.debug(f"[CreditPool] {provider} credits: {credit.remaining}/{credit.total}")
        return True

    def charge(self, provider: str, amount: int) -> None:
        """Bills credits reported after a call; remaining never drops below zero."""
        credit = self._credits.get(provider)
        if credit is None:
            return
        amount = min(amount, credit.remaining)
        if amount > 0:
            self.consume(provider, amount)

    def snapshot(self) -> Dict[str, CreditSnapshot]:
        return {name: credit.snapshot() for name, credit in self._credits.items()}

    def reset_credits(self, provider: Optional[str] = None) -> None:
        """Administrative reset of one provider (or all) back to its total."""
        if provider is not None:
            if provider not in self._credits:
                raise KeyError(f"Unknown provider: {provider}")
            self._credits[provider].reset()
            logger.info(f"[CreditPool] Reset credits for {provider}")
            return
        for credit in self._credits.values():
            credit.reset()
        logger.info("[CreditPool] Reset credits for all providers")


class ScraperPool:
    """Selects and fails over among credit-limited scraping backends."""

    def __init__(
        self,
        backends: Sequence[ScraperBackend],
        credits: CreditPool,
        cache: Optional[CacheService] = None,
        cache_ttl: Optional[float] = None,
        timeout: Optional[float] = 45.0,
    ):
        """Initializes the pool.

        Args:
            backends: Scraping backends in priority order.
            credits: Shared credit pool; every backend needs an entry.
            cache: Cache for successful scrapes (scraper namespace).
            cache_ttl: TTL for cached scrapes (namespace default if None).
            timeout: Per-attempt timeout in seconds.
        """
        self.backends: Dict[str, ScraperBackend] = {b.name: b for b in backends}
        self.credits = credits
        self.cache = cache
        self.cache_ttl = cache_ttl
        self.timeout = timeout
        missing = [name for name in self.backends if name not in credits.providers()]
        if missing:
            raise ValueError(f"No credit entry for scraping providers: {missing}")

    def is_configured(self) -> bool:
        """True iff at least one backend has credentials, funded or not."""
        return any(backend.is_configured() for backend in self.backends.values())

    def is_available(self) -> bool:
        """True iff at least one configured provider has credits left."""
        return any(
            backend.is_configured() and self.credits.has_credits(name)
            for name, backend in self.backends.items()
        )

    def provider_order(self, preferred: Optional[str] = None) -> List[str]:
        """Funded, configured providers in priority order; `preferred` first when usable."""
        usable = [
            name for name, backend in self.backends.items()
            if backend.is_configured() and self.credits.has_credits(name)
        ]
        if preferred in usable:
            usable.remove(preferred)
            usable.insert(0, preferred)
        return usable

    async def scrape(self, request: ScrapeRequest) -> ScrapeResult:
        """Scrapes a URL through the first provider that succeeds.

        Raises:
            AllProvidersExhausted: No provider could serve the request.
        """
        cache_key = CacheKeyGenerator.scraper_key(request.url, request.provider)
        cached = self._cache_get(cache_key)
        if cached is not None:
            logger.info(f"[Scraper] Cache hit for {request.url}")
            return cached

        order = self.provider_order(request.provider)
        if not order:
            raise AllProvidersExhausted(
                f"No scraping provider with credits available for {request.url}",
                [self._out_of_credits(name) for name, backend in self.backends.items() if backend.is_configured()],
            )

        failures: List[ExternalApiError] = []
        for index, name in enumerate(order):
            # Credits may have run out while an earlier provider was being tried
            if not self.credits.consume(name):
                logger.warning(f"[Scraper] {name} has no credits remaining")
                failures.append(self._out_of_credits(name))
                continue

            backend = self.backends[name]
            logger.info(f"[Scraper] Attempting scrape with {name}: {request.url}")
            try:
                call = backend.scrape(request.url, request.format, request.extraction_rules)
                if self.timeout is not None:
                    result = await asyncio.wait_for(call, timeout=self.timeout)
                else:
                    result = await call
            except asyncio.CancelledError:
                raise
            except Exception as e:
                error = normalize_error(e, name)
                error.details.setdefault("provider", name)
                failures.append(error)
                next_provider = order[index + 1] if index + 1 < len(order) else None
                if error.kind in FAILOVER_KINDS:
                    logger.warning(f"[Scraper] {name} {error.kind.value}, failing over to {next_provider or 'nothing'}")
                else:
                    logger.warning(f"[Scraper] {name} failed: {error.message}")
                dispatch_event(ProviderFailover(from_provider=name, reason=error.kind.value, to_provider=next_provider))
                continue

            # One credit was taken up front; bill whatever else the provider reported
            self.credits.charge(name, result.credits_used - 1)
            self._cache_set(cache_key, result)
            return result

        raise AllProvidersExhausted(f"All scraper providers failed for {request.url}", failures)

    @staticmethod
    def _out_of_credits(name: str) -> ExternalApiError:
        return ExternalApiError(
            ApiErrorKind.QUOTA_EXCEEDED, f"{name} has no credits remaining", details={"provider": name},
        )

    def _cache_get(self, key: str) -> Optional[ScrapeResult]:
        if self.cache is None:
            return None
        try:
            return self.cache.get(SCRAPER_NAMESPACE, key)
        except CacheError as e:
            logger.warning(f"Scraper cache read failed, treating as miss: {e}")
            return None

    def _cache_set(self, key: str, result: ScrapeResult) -> None:
        if self.cache is None:
            return
        try:
            self.cache.set(SCRAPER_NAMESPACE, key, result, self.cache_ttl)
        except CacheError as e:
            logger.warning(f"Scraper cache write failed: {e}")

    async def close(self) -> None:
        for backend in self.backends.values():
            await backend.close()
