"""Core service orchestrating the four-tier data acquisition fallback chain.

Tiers are tried strictly in order of cost and expected quality:

1. Premium research provider
2. Free APIs (sub-sources queried concurrently, partial results merged)
3. Credit-limited web scrapers
4. Cached data, then synthetic mock data

Every request produces a confidence-scored `FallbackResult`; no tier or
provider failure ever escapes `get_data`.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from destiq.core.services.mock_data import build_mock_payload
from destiq.domain.events.api_events import TierFailed, TierResolved, dispatch_event
from destiq.domain.interfaces.cache import CacheService
from destiq.domain.interfaces.providers import ResearchProvider, SubSource
from destiq.domain.models.common import (
    DESTINATION_NAMESPACE, SOURCE_API, SOURCE_CACHE, SOURCE_MOCK, SOURCE_RESEARCH, SOURCE_SCRAPER,
    CacheKey, Namespace, SourceTag,
)
from destiq.domain.models.errors import (
    AllProvidersExhausted, ApiErrorKind, CacheError, ExternalApiError, NoDataFound, SourcesFailed,
)
from destiq.domain.models.fallback import (
    DEFAULT_TIER_TTLS, FallbackContext, FallbackResult, TargetData, TierAttempt,
)
from destiq.domain.models.scraper import ScrapeRequest
from destiq.infrastructure.cache.keys import generate_key
from destiq.infrastructure.providers.credit_pool import ScraperPool
from destiq.infrastructure.resilience.api_retry import ApiRetryService, RetryPolicy
from destiq.infrastructure.resilience.error_normalizer import normalize_error

logger = logging.getLogger(__name__)

# Fixed confidence ceilings, strictly decreasing with fallback depth
TIER_CONFIDENCE: Dict[int, float] = {1: 0.95, 2: 0.80, 3: 0.70}
CACHE_CONFIDENCE = 0.60
MOCK_CONFIDENCE = 0.50
CORROBORATION_BONUS = 0.03
MAX_CONFIDENCE = 0.95

NOT_CONFIGURED = "NotConfigured"

TierFetch = Callable[[FallbackContext], Awaitable[Tuple[Dict[str, Any], int]]]


def tier_confidence(tier: int, corroborating_sources: int = 1) -> float:
    """Confidence for a result from `tier` backed by `corroborating_sources` sub-sources.

    Each extra sub-source adds a small bonus, capped just below the ceiling
    of the tier above so tier ordering is never inverted.
    """
    base = TIER_CONFIDENCE[tier]
    bonus = CORROBORATION_BONUS * max(0, corroborating_sources - 1)
    cap = TIER_CONFIDENCE[tier - 1] - 0.01 if tier > 1 else MAX_CONFIDENCE
    return round(min(base + bonus, cap), 2)


def get_scraper_targets(city: str, target_data: TargetData) -> List[Dict[str, str]]:
    """Pages worth scraping for the requested kind of data."""
    slug = "-".join(city.strip().split()).title()
    cost_page = {"url": f"https://www.numbeo.com/cost-of-living/in/{slug}", "type": "cost_of_living"}
    safety_page = {"url": f"https://www.numbeo.com/crime/in/{slug}", "type": "safety"}
    culture_page = {"url": f"https://en.wikivoyage.org/wiki/{slug.replace('-', '_')}", "type": "cultural"}

    if target_data == "housing":
        return [{**cost_page, "type": "housing_costs"}]
    if target_data == "costs":
        return [cost_page]
    if target_data == "safety":
        return [safety_page]
    if target_data == "cultural":
        return [culture_page]
    if target_data == "full":
        return [cost_page, safety_page, culture_page]
    return []


class FallbackChainCoordinator:
    """Runs a request through the tiers and scores the outcome."""

    def __init__(
        self,
        cache: CacheService,
        invoker: ApiRetryService,
        research_provider: Optional[ResearchProvider] = None,
        sub_sources: Sequence[SubSource] = (),
        scraper_pool: Optional[ScraperPool] = None,
        tier_ttls: Optional[Mapping[int, float]] = None,
        timeouts: Optional[Mapping[str, float]] = None,
        namespace: Namespace = DESTINATION_NAMESPACE,
    ):
        """Initializes the coordinator.

        Args:
            cache: Shared cache engine.
            invoker: Shared retrying invoker.
            research_provider: Tier 1 provider.
            sub_sources: Tier 2 free API sub-sources.
            scraper_pool: Tier 3 credit-limited scraper pool.
            tier_ttls: Cache TTL (seconds) per live tier.
            timeouts: Per-attempt timeouts for 'research' and 'api' calls.
            namespace: Cache namespace for resolved results.
        """
        self.cache = cache
        self.invoker = invoker
        self.research_provider = research_provider
        self.sub_sources = list(sub_sources)
        self.scraper_pool = scraper_pool
        self.tier_ttls = {**DEFAULT_TIER_TTLS, **dict(tier_ttls or {})}
        self.timeouts = dict(timeouts or {})
        self.namespace = namespace
        logger.info(
            f"FallbackChainCoordinator initialized: research={'yes' if research_provider else 'no'}, "
            f"sub_sources={[s.name for s in self.sub_sources]}, scrapers={'yes' if scraper_pool else 'no'}"
        )

    # --- Public API ---

    async def get_data(self, context: FallbackContext, cache_key: Optional[CacheKey] = None) -> FallbackResult:
        """Resolves a request through the tiers. Never raises."""
        key = cache_key or generate_key(
            context.destination_label,
            context.origin_label,
            context.query.budget,
            context.query.interests,
            context.query.duration_months,
        )
        attempts: List[TierAttempt] = []
        try:
            for tier, source, fetch, available in self._live_tiers():
                result = await self._run_tier(tier, source, fetch, available, context, key, attempts)
                if result is not None:
                    return result
            return self._from_cache_or_mock(context, key, attempts)
        except Exception as e:
            # Last line of defence: the chain itself must stay total
            logger.error(f"[FallbackChain] Unexpected failure, using mock data: {e}", exc_info=True)
            attempts.append(TierAttempt(tier=0, source=SOURCE_MOCK, kind=ApiErrorKind.UNKNOWN.value, message=str(e)))
            return self._mock_result(context, key, attempts)

    def check_tier_availability(self) -> Dict[str, bool]:
        """Which tiers could currently serve a request."""
        return {
            "tier1_research": bool(self.research_provider and self.research_provider.is_configured()),
            "tier2_api": any(s.is_configured() for s in self.sub_sources),
            "tier3_scraper": bool(self.scraper_pool and self.scraper_pool.is_available()),
            "tier4_cache": True,
        }

    async def close(self) -> None:
        """Releases provider network resources."""
        if self.research_provider is not None:
            await self.research_provider.close()
        for source in self.sub_sources:
            await source.close()
        if self.scraper_pool is not None:
            await self.scraper_pool.close()

    # --- Tier sequencing ---

    def _live_tiers(self) -> List[Tuple[int, SourceTag, TierFetch, Callable[[], bool]]]:
        availability = self.check_tier_availability
        return [
            (1, SOURCE_RESEARCH, self._fetch_research, lambda: availability()["tier1_research"]),
            (2, SOURCE_API, self._fetch_free_apis, lambda: availability()["tier2_api"]),
            (3, SOURCE_SCRAPER, self._fetch_scrapers, self._scrapers_configured),
        ]

    def _scrapers_configured(self) -> bool:
        # Configured but unfunded scrapers still run, so exhaustion is recorded as such
        return bool(self.scraper_pool and self.scraper_pool.is_configured())

    async def _run_tier(
        self,
        tier: int,
        source: SourceTag,
        fetch: TierFetch,
        available: Callable[[], bool],
        context: FallbackContext,
        key: CacheKey,
        attempts: List[TierAttempt],
    ) -> Optional[FallbackResult]:
        logger.info(f"[FallbackChain] Attempting Tier {tier}: {source}")
        if not available():
            self._record_failure(attempts, tier, source, NOT_CONFIGURED, f"Tier {tier} ({source}) not available")
            return None

        if tier == 2:
            # Sub-sources are retried individually inside the tier
            try:
                data, corroborating = await fetch(context)
            except Exception as e:
                self._record_error(attempts, tier, source, normalize_error(e, source))
                return None
        else:
            response = await self.invoker.invoke(fetch, context, source=source, policy=self._policy_for(tier))
            if not response.success:
                provider = self.research_provider.name if tier == 1 else None
                self._record_error(attempts, tier, source, response.error, provider)
                return None
            data, corroborating = response.data

        confidence = tier_confidence(tier, corroborating)
        fallback_reason = None
        if tier > 1:
            failed = ", ".join(
                f"tier {a.tier} {a.provider} ({a.kind})" if a.provider else f"tier {a.tier} ({a.kind})"
                for a in attempts
            )
            fallback_reason = f"higher-priority tiers failed: {failed}"
        self._cache_put(key, {"data": data, "source": source, "tier": tier}, self.tier_ttls.get(tier))
        dispatch_event(TierResolved(tier=tier, source=source, confidence=confidence, fallback_reason=fallback_reason))
        logger.info(f"[FallbackChain] Tier {tier} ({source}) succeeded with confidence {confidence}")
        return FallbackResult(
            data=data,
            source=source,
            tier=tier,
            confidence=confidence,
            fallback_reason=fallback_reason,
            cache_key=key,
            attempts=list(attempts),
        )

    def _policy_for(self, tier: int) -> RetryPolicy:
        base = self.invoker.policy
        if tier == 1:
            return base.with_timeout(self.timeouts.get("research", base.timeout))
        # The scraper pool enforces its own per-provider timeouts and fails over itself
        return RetryPolicy(
            max_retries=0,
            base_delay=base.base_delay,
            max_delay=base.max_delay,
            backoff_multiplier=base.backoff_multiplier,
            retryable_kinds=base.retryable_kinds,
            timeout=None,
        )

    def _record_error(
        self,
        attempts: List[TierAttempt],
        tier: int,
        source: SourceTag,
        error: ExternalApiError,
        provider: Optional[str] = None,
    ) -> None:
        """Records one attempt per failed provider when the error carries them."""
        failures = getattr(error, "failures", None)
        if not failures:
            self._record_failure(attempts, tier, source, error.kind.value, error.message,
                                 error.details.get("provider", provider))
            return
        seen = set()
        for failure in failures:
            name = failure.details.get("provider")
            # Several targets can fail the same way on the same provider
            if (name, failure.kind) in seen:
                continue
            seen.add((name, failure.kind))
            self._record_failure(attempts, tier, source, failure.kind.value, failure.message, name)

    def _record_failure(
        self,
        attempts: List[TierAttempt],
        tier: int,
        source: SourceTag,
        kind: str,
        message: str,
        provider: Optional[str] = None,
    ) -> None:
        attempts.append(TierAttempt(tier=tier, source=source, kind=kind, message=message, provider=provider))
        dispatch_event(TierFailed(tier=tier, source=source, error_kind=kind, reason=message))
        label = f"{source}/{provider}" if provider else source
        logger.warning(f"[FallbackChain] Tier {tier} ({label}) failed: {kind}: {message}")

    # --- Tier fetchers ---

    async def _fetch_research(self, context: FallbackContext) -> Tuple[Dict[str, Any], int]:
        data = await self.research_provider.research(context.location, context.origin, context.query)
        if not data:
            raise NoDataFound(f"Research provider returned nothing for {context.destination_label}")
        return data, 1

    async def _fetch_free_apis(self, context: FallbackContext) -> Tuple[Dict[str, Any], int]:
        sources = [s for s in self.sub_sources if s.is_configured()]
        api_policy = self.invoker.policy.with_timeout(self.timeouts.get("api", self.invoker.policy.timeout))
        responses = await asyncio.gather(
            *(self.invoker.invoke(s.fetch, context, source=s.name, policy=api_policy) for s in sources),
            return_exceptions=True,
        )

        merged: Dict[str, Any] = {}
        failures: List[ExternalApiError] = []
        for sub_source, response in zip(sources, responses):
            if isinstance(response, BaseException):
                error = normalize_error(response, sub_source.name)
            elif response.success and response.data:
                merged[sub_source.name] = response.data
                continue
            else:
                error = response.error or NoDataFound(f"{sub_source.name} returned no data")
            error.details.setdefault("provider", sub_source.name)
            failures.append(error)

        if not merged:
            raise SourcesFailed(f"No free API returned data for {context.destination_label}", failures)
        if failures:
            failed = {f.details["provider"]: f.kind.value for f in failures}
            logger.info(f"[FallbackChain] Tier 2 partial success: ok={sorted(merged)}, failed={failed}")
        merged["sources"] = sorted(merged)
        return merged, len(merged["sources"])

    async def _fetch_scrapers(self, context: FallbackContext) -> Tuple[Dict[str, Any], int]:
        targets = get_scraper_targets(context.location.city, context.target_data)
        if not targets:
            raise NoDataFound(f"No scraper targets defined for '{context.target_data}'")

        results = await asyncio.gather(
            *(self.scraper_pool.scrape(ScrapeRequest(url=t["url"], format="markdown")) for t in targets),
            return_exceptions=True,
        )
        scraped: Dict[str, Any] = {}
        for target, result in zip(targets, results):
            if isinstance(result, BaseException):
                logger.warning(f"[FallbackChain] Scrape of {target['url']} failed: {result}")
                continue
            scraped[target["type"]] = {
                "url": result.url,
                "provider": result.provider,
                "content": result.data,
                "processing_time_ms": result.processing_time_ms,
            }

        if not scraped:
            failures: List[ExternalApiError] = []
            for result in results:
                if isinstance(result, AllProvidersExhausted) and result.failures:
                    failures.extend(result.failures)
                elif isinstance(result, BaseException):
                    failures.append(normalize_error(result, SOURCE_SCRAPER))
            if failures:
                raise AllProvidersExhausted(f"No page could be scraped for {context.destination_label}", failures)
            raise NoDataFound("All scraper attempts failed")
        return {"scraped": scraped, "sources": sorted(scraped)}, len(scraped)

    # --- Tier 4 ---

    def _from_cache_or_mock(self, context: FallbackContext, key: CacheKey, attempts: List[TierAttempt]) -> FallbackResult:
        logger.info("[FallbackChain] Attempting Tier 4: cache + mock data")
        cached = self._cache_get(key)
        if cached is not None:
            if not (isinstance(cached, dict) and {"data", "source", "tier"} <= cached.keys()):
                cached = {"data": cached, "source": SOURCE_CACHE, "tier": 4}
            dispatch_event(TierResolved(tier=4, source=SOURCE_CACHE, confidence=CACHE_CONFIDENCE))
            return FallbackResult(
                data=cached["data"],
                source=SOURCE_CACHE,
                tier=4,
                confidence=CACHE_CONFIDENCE,
                fallback_reason=f"All live sources failed, using cached data from tier {cached['tier']} ({cached['source']})",
                cache_key=key,
                attempts=list(attempts),
            )
        return self._mock_result(context, key, attempts)

    def _mock_result(self, context: FallbackContext, key: CacheKey, attempts: List[TierAttempt]) -> FallbackResult:
        logger.warning(f"[FallbackChain] Using mock data for {context.location.city}, {context.location.country}")
        dispatch_event(TierResolved(tier=4, source=SOURCE_MOCK, confidence=MOCK_CONFIDENCE))
        return FallbackResult(
            data=build_mock_payload(context),
            source=SOURCE_MOCK,
            tier=4,
            confidence=MOCK_CONFIDENCE,
            fallback_reason="All sources failed, using mock data",
            cache_key=key,
            attempts=list(attempts),
        )

    def _cache_get(self, key: CacheKey) -> Optional[Dict[str, Any]]:
        try:
            return self.cache.get(self.namespace, key)
        except CacheError as e:
            logger.warning(f"[FallbackChain] Cache read failed, treating as miss: {e}")
            return None

    def _cache_put(self, key: CacheKey, value: Dict[str, Any], ttl: Optional[float]) -> None:
        try:
            self.cache.set(self.namespace, key, value, ttl)
        except CacheError as e:
            logger.warning(f"[FallbackChain] Cache write failed: {e}")
