"""Cache key generation.

Keys are built from normalized inputs (trimmed, lower-cased, interests
sorted) so that equivalent requests always share one cache entry.
"""

from typing import Iterable, Optional

from destiq.domain.models.common import CacheKey, Namespace


def _norm(value: Optional[str]) -> str:
    return (value or "").strip().lower()


def generate_key(
    destination: str,
    origin: str,
    budget: float,
    interests: Iterable[str],
    duration: int,
    namespace: Optional[Namespace] = None,
) -> CacheKey:
    """Generates the canonical key for a destination query.

    Invariant under case, surrounding whitespace and interest order:
    ``generate_key("Paris", "VA", 100, ["art", "food"], 1) ==
    generate_key("paris", "va", 100, ["food", "Art"], 1)``.

    Args:
        destination: Destination label, e.g. "Paris,France".
        origin: Origin label, e.g. "Richmond,USA".
        budget: Budget amount (rounded to a whole number).
        interests: Traveller interests in any order.
        duration: Duration in months.
        namespace: Optional namespace prefix.

    Returns:
        A deterministic cache key.
    """
    normalized_interests = ",".join(sorted(_norm(i) for i in interests if _norm(i)))
    parts = [
        "dest",
        _norm(destination),
        _norm(origin),
        str(int(round(budget))),
        normalized_interests,
        str(duration),
    ]
    key = ":".join(parts)
    if namespace:
        key = f"{_norm(namespace)}|{key}"
    return CacheKey(key)


class CacheKeyGenerator:
    """Key builders for the individual sub-source caches."""

    @staticmethod
    def currency_key(from_currency: str, to_currency: str) -> CacheKey:
        return CacheKey(f"currency:{from_currency.strip().upper()}:{to_currency.strip().upper()}")

    @staticmethod
    def news_key(query: str, country: Optional[str] = None) -> CacheKey:
        parts = ["news", _norm(query)]
        if country:
            parts.append(_norm(country))
        return CacheKey(":".join(parts))

    @staticmethod
    def video_key(query: str, max_results: int = 10) -> CacheKey:
        return CacheKey(f"video:{_norm(query)}:{max_results}")

    @staticmethod
    def scraper_key(url: str, provider: Optional[str] = None) -> CacheKey:
        return CacheKey(f"scraper:{url.strip()}:{provider or 'auto'}")

    @staticmethod
    def reddit_key(query: str, subreddits: Iterable[str]) -> CacheKey:
        return CacheKey(f"reddit:{_norm(query)}:{','.join(sorted(s.strip().lower() for s in subreddits))}")
