"""Tier 2 sub-sources: free public APIs queried concurrently.

Each sub-source returns a typed partial result for the destination or
raises. Raw API responses are cached per sub-source namespace through
`with_cache`, so repeated requests for the same destination stay free.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from destiq.domain.interfaces.cache import CacheService
from destiq.domain.interfaces.providers import SubSource
from destiq.domain.models.common import CURRENCY_NAMESPACE, NEWS_NAMESPACE, VIDEO_NAMESPACE
from destiq.domain.models.errors import ApiErrorKind, ExternalApiError, NoDataFound
from destiq.domain.models.fallback import FallbackContext
from destiq.infrastructure.cache.caching_service import with_cache
from destiq.infrastructure.cache.keys import CacheKeyGenerator
from destiq.infrastructure.providers.http_client import HttpClientMixin

logger = logging.getLogger(__name__)

OPENEXCHANGERATES_URL = "https://openexchangerates.org/api/latest.json"
NEWSAPI_URL = "https://newsapi.org/v2/everything"
YOUTUBE_SEARCH_URL = "https://www.googleapis.com/youtube/v3/search"

SAFETY_KEYWORDS = ("crime", "robbery", "protest", "strike", "violence", "theft", "unrest", "scam")


class CurrencySource(HttpClientMixin, SubSource):
    """Exchange rate between the traveller's budget currency and the local currency."""

    name = "currency"

    def __init__(
        self,
        app_id: Optional[str],
        cache: Optional[CacheService] = None,
        ttl: Optional[float] = None,
        timeout: float = 10.0,
    ):
        self.app_id = app_id
        self.timeout = timeout
        self._latest = self._fetch_rates
        if cache is not None:
            self._latest = with_cache(
                cache, CURRENCY_NAMESPACE, ttl, self._fetch_rates,
                key_fn=lambda base, target: CacheKeyGenerator.currency_key(base, target),
            )

    def is_configured(self) -> bool:
        return bool(self.app_id)

    async def _fetch_rates(self, base: str, target: str) -> Dict[str, float]:
        # Free tier only supports USD as the base currency
        response = await self._get_client().get(
            OPENEXCHANGERATES_URL,
            params={"app_id": self.app_id, "symbols": f"{base},{target}"},
        )
        response.raise_for_status()
        rates = response.json().get("rates") or {}
        if not rates:
            raise NoDataFound(f"No rates in exchange rate response for {base}->{target}")
        return rates

    async def fetch(self, context: FallbackContext) -> Dict[str, Any]:
        if not self.app_id:
            raise ExternalApiError(ApiErrorKind.AUTH_FAILED, "OpenExchangeRates app id not configured")
        base = context.query.currency.upper()
        target = (context.location.currency or base).upper()
        rate = cross_rate(await self._latest(base, target), base, target)
        logger.debug(f"[CurrencySource] {base}->{target} = {rate}")
        return {
            "from": base,
            "to": target,
            "rate": rate,
            "budget_local": round(context.query.budget * rate, 2),
        }


def cross_rate(rates: Dict[str, float], base: str, target: str) -> float:
    """Rate from `base` to `target` given USD-based rates."""
    if base == target:
        return 1.0
    usd_rates = dict(rates)
    usd_rates.setdefault("USD", 1.0)
    if base not in usd_rates or target not in usd_rates or not usd_rates[base]:
        raise NoDataFound(f"Exchange rates not found for {base} and {target}")
    return usd_rates[target] / usd_rates[base]


class NewsSource(HttpClientMixin, SubSource):
    """Recent news and a coarse safety level for the destination."""

    name = "news"

    def __init__(
        self,
        api_key: Optional[str],
        cache: Optional[CacheService] = None,
        ttl: Optional[float] = None,
        timeout: float = 10.0,
        page_size: int = 20,
        days_back: int = 30,
    ):
        self.api_key = api_key
        self.timeout = timeout
        self.page_size = page_size
        self.days_back = days_back
        self._search = self._search_articles
        if cache is not None:
            self._search = with_cache(
                cache, NEWS_NAMESPACE, ttl, self._search_articles,
                key_fn=lambda query, country=None: CacheKeyGenerator.news_key(query, country),
            )

    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def _search_articles(self, query: str, country: Optional[str] = None) -> List[Dict[str, Any]]:
        since = (datetime.now(timezone.utc) - timedelta(days=self.days_back)).date().isoformat()
        response = await self._get_client().get(
            NEWSAPI_URL,
            params={
                "q": query,
                "apiKey": self.api_key,
                "sortBy": "publishedAt",
                "language": "en",
                "pageSize": self.page_size,
                "from": since,
            },
        )
        response.raise_for_status()
        return [
            {
                "title": a.get("title") or "",
                "description": a.get("description") or "",
                "url": a.get("url"),
                "source": (a.get("source") or {}).get("name"),
                "published_at": a.get("publishedAt"),
            }
            for a in response.json().get("articles", [])
        ]

    async def fetch(self, context: FallbackContext) -> Dict[str, Any]:
        if not self.api_key:
            raise ExternalApiError(ApiErrorKind.AUTH_FAILED, "NewsAPI key not configured")
        city, country = context.location.city, context.location.country
        articles = await self._search(f"{city} {country}", country)
        if not articles:
            raise NoDataFound(f"No news articles found for {city}, {country}")
        safety_level = assess_safety_level(articles)
        return {
            "articles": articles[:15],
            "safety_level": safety_level,
            "summary": f"{len(articles)} recent articles about {city}; safety level: {safety_level}",
        }


def assess_safety_level(articles: List[Dict[str, Any]]) -> str:
    """'safe', 'caution' or 'warning' by how many articles mention safety keywords."""
    flagged = sum(
        1 for a in articles
        if any(k in f"{a.get('title', '')} {a.get('description', '')}".lower() for k in SAFETY_KEYWORDS)
    )
    if flagged >= 5:
        return "warning"
    if flagged >= 2:
        return "caution"
    return "safe"


class VideoSource(HttpClientMixin, SubSource):
    """YouTube videos about living in the destination."""

    name = "video"

    def __init__(
        self,
        api_key: Optional[str],
        cache: Optional[CacheService] = None,
        ttl: Optional[float] = None,
        timeout: float = 10.0,
        max_results: int = 5,
    ):
        self.api_key = api_key
        self.timeout = timeout
        self.max_results = max_results
        self._search = self._search_videos
        if cache is not None:
            self._search = with_cache(
                cache, VIDEO_NAMESPACE, ttl, self._search_videos,
                key_fn=lambda query, max_results: CacheKeyGenerator.video_key(query, max_results),
            )

    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def _search_videos(self, query: str, max_results: int) -> List[Dict[str, Any]]:
        response = await self._get_client().get(
            YOUTUBE_SEARCH_URL,
            params={
                "part": "snippet",
                "q": query,
                "type": "video",
                "maxResults": max_results,
                "order": "relevance",
                "key": self.api_key,
            },
        )
        response.raise_for_status()
        videos = []
        for item in response.json().get("items", []):
            video_id = (item.get("id") or {}).get("videoId")
            snippet = item.get("snippet") or {}
            if not video_id:
                continue
            videos.append({
                "id": video_id,
                "title": snippet.get("title"),
                "channel": snippet.get("channelTitle"),
                "published_at": snippet.get("publishedAt"),
                "url": f"https://www.youtube.com/watch?v={video_id}",
            })
        return videos

    async def fetch(self, context: FallbackContext) -> Dict[str, Any]:
        if not self.api_key:
            raise ExternalApiError(ApiErrorKind.AUTH_FAILED, "YouTube API key not configured")
        city, country = context.location.city, context.location.country
        topic = context.query.interests[0] if context.query.interests else "cost of living"
        videos = await self._search(f"{topic} {city} {country}", self.max_results)
        if not videos:
            raise NoDataFound(f"No videos found for {city}, {country}")
        return {"videos": videos, "query_topic": topic}
