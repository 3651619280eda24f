"""Interface for caching mechanisms.

Defines the contract for storing, retrieving, and managing cached data,
partitioned into namespaces with per-entry TTL and LRU eviction.

All methods are synchronous on purpose: implementations are driven from
the event loop and a structural mutation must never be interrupted by an
``await``.
"""

import abc
from typing import Any, Dict, Optional

from ..models.common import CacheKey, CacheStats, Namespace


class CacheService(abc.ABC):
    """Abstract Base Class for caching operations."""

    @abc.abstractmethod
    def get(self, namespace: Namespace, key: CacheKey) -> Optional[Any]:
        """Retrieves an item and marks it most-recently-used.

        Args:
            namespace: The cache partition to read from.
            key: The cache key to retrieve.

        Returns:
            The cached item if found and not expired, otherwise None.
        """
        pass

    @abc.abstractmethod
    def set(
        self,
        namespace: Namespace,
        key: CacheKey,
        value: Any,
        ttl: Optional[float] = None,
    ) -> None:
        """Stores an item, evicting the least-recently-used entry on overflow.

        Args:
            namespace: The cache partition to write to.
            key: The cache key to store the item under.
            value: The item to store.
            ttl: Time-to-live in seconds (uses the namespace default if None).
        """
        pass

    @abc.abstractmethod
    def has(self, namespace: Namespace, key: CacheKey) -> bool:
        """Reports non-expired existence without changing recency order."""
        pass

    @abc.abstractmethod
    def delete(self, namespace: Namespace, key: CacheKey) -> bool:
        """Deletes an item. Returns True if it existed."""
        pass

    @abc.abstractmethod
    def clear(self, namespace: Optional[Namespace] = None, key: Optional[CacheKey] = None) -> None:
        """Clears one key, one namespace, or everything.

        Args:
            namespace: Namespace to clear (all namespaces if None).
            key: Single key to clear within the namespace.
        """
        pass

    @abc.abstractmethod
    def cleanup_expired(self) -> int:
        """Removes expired entries from every namespace. Returns the count removed."""
        pass

    @abc.abstractmethod
    def stats(self, namespace: Optional[Namespace] = None) -> Dict[str, CacheStats]:
        """Hit/miss statistics keyed by namespace."""
        pass
