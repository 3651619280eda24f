"""Defines common Value Objects used across different domain contexts.

These objects represent simple values or concepts like cache keys,
namespaces, source tags and credit snapshots, ensuring consistency and
type safety.
"""

from typing import NewType, TypedDict, Optional

# === Caching Context ===
CacheKey = NewType("CacheKey", str)            # Unique key for a cache entry
Namespace = NewType("Namespace", str)          # Isolated cache partition (e.g., 'currency')

# === Data Acquisition Context ===
SourceTag = NewType("SourceTag", str)          # 'research', 'api', 'scraper', 'cache', 'mock'
ProviderName = NewType("ProviderName", str)    # e.g., 'firecrawl', 'scraperapi'

# Well-known namespaces
DESTINATION_NAMESPACE = Namespace("destination-intelligence")
CURRENCY_NAMESPACE = Namespace("currency")
NEWS_NAMESPACE = Namespace("news")
VIDEO_NAMESPACE = Namespace("video")
SCRAPER_NAMESPACE = Namespace("scraper")
REDDIT_NAMESPACE = Namespace("reddit")

# Source tags per tier
SOURCE_RESEARCH = SourceTag("research")
SOURCE_API = SourceTag("api")
SOURCE_SCRAPER = SourceTag("scraper")
SOURCE_CACHE = SourceTag("cache")
SOURCE_MOCK = SourceTag("mock")

# --- Structured Data ---
class CacheStats(TypedDict):
    """Statistics for a single cache namespace."""
    size: int
    capacity: int
    hits: int
    misses: int
    hit_rate: float
    oldest_key: Optional[str]
    newest_key: Optional[str]

class CreditSnapshot(TypedDict):
    """Point-in-time view of a provider's credits."""
    remaining: int
    total: int
    used: int

class NamespaceConfig(TypedDict):
    """Capacity and default TTL (seconds) of a cache namespace."""
    capacity: int
    default_ttl: float
