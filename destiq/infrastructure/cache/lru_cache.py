"""In-memory LRU cache with per-entry TTL.

A dict gives O(1) lookup and an intrusive doubly linked list keeps access
order (head = most recently used, tail = least recently used). The dict's
key set and the list's node set are always identical.

None of the methods here await anything, so a mutation driven from the
event loop always completes before another coroutine can observe the cache.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional

from destiq.domain.models.common import CacheStats

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 100
DEFAULT_TTL_SECONDS = 6 * 60 * 60  # 6 hours


@dataclass
class CacheEntry:
    """Internal representation of a cache entry with expiry."""
    value: Any
    created_at: float
    ttl: float

    @property
    def expires_at(self) -> float:
        return self.created_at + self.ttl

    def is_expired(self, now: float) -> bool:
        return now - self.created_at > self.ttl


class _Node:
    __slots__ = ("key", "entry", "prev", "next")

    def __init__(self, key: str, entry: CacheEntry):
        self.key = key
        self.entry = entry
        self.prev: Optional["_Node"] = None
        self.next: Optional["_Node"] = None


class LRUCache:
    """Bounded LRU cache for a single namespace."""

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initializes the cache.

        Args:
            capacity: Maximum number of entries before LRU eviction.
            default_ttl: TTL in seconds used when `set` gets none.
            clock: Monotonic time source (injectable for tests).
        """
        if capacity < 1:
            raise ValueError(f"Cache capacity must be at least 1, got {capacity}")
        self.capacity = capacity
        self.default_ttl = default_ttl
        self._clock = clock
        self._map: Dict[str, _Node] = {}
        self._head: Optional[_Node] = None
        self._tail: Optional[_Node] = None
        self.hits = 0
        self.misses = 0

    # --- Public API ---

    def get(self, key: str) -> Optional[Any]:
        """Returns the payload and promotes the entry, or None on miss/expiry."""
        node = self._map.get(key)
        if node is None:
            self.misses += 1
            return None

        if node.entry.is_expired(self._clock()):
            self._remove(node)
            self.misses += 1
            logger.debug(f"Cache EXPIRED key: {key}")
            return None

        self._move_to_head(node)
        self.hits += 1
        return node.entry.value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Inserts or updates an entry, evicting the LRU entry on overflow."""
        effective_ttl = self.default_ttl if ttl is None else ttl
        entry = CacheEntry(value=value, created_at=self._clock(), ttl=effective_ttl)

        node = self._map.get(key)
        if node is not None:
            node.entry = entry
            self._move_to_head(node)
            return

        node = _Node(key, entry)
        self._map[key] = node
        self._add_to_head(node)

        if len(self._map) > self.capacity:
            evicted = self._tail
            if evicted is not None:
                self._remove(evicted)
                logger.debug(f"Cache EVICTED key (LRU): {evicted.key}")

    def has(self, key: str) -> bool:
        """Non-expired existence check.

        Does not promote the entry: only `get` and `set` change recency.
        An expired entry found here is deleted.
        """
        node = self._map.get(key)
        if node is None:
            return False
        if node.entry.is_expired(self._clock()):
            self._remove(node)
            return False
        return True

    def delete(self, key: str) -> bool:
        node = self._map.get(key)
        if node is None:
            return False
        self._remove(node)
        return True

    def clear(self, key: Optional[str] = None) -> None:
        """Clears a single key, or every entry and the hit/miss counters."""
        if key is not None:
            self.delete(key)
            return
        self._map.clear()
        self._head = None
        self._tail = None
        self.hits = 0
        self.misses = 0

    def expired_keys(self) -> List[str]:
        """Snapshot of keys whose TTL has elapsed."""
        now = self._clock()
        return [k for k, node in self._map.items() if node.entry.is_expired(now)]

    def delete_if_expired(self, key: str) -> bool:
        """Deletes `key` only if it is still present and expired."""
        node = self._map.get(key)
        if node is None or not node.entry.is_expired(self._clock()):
            return False
        self._remove(node)
        return True

    def cleanup_expired(self) -> int:
        """Scans all entries and removes the expired ones. Returns the count."""
        removed = 0
        for key in self.expired_keys():
            if self.delete_if_expired(key):
                removed += 1
        return removed

    def keys(self) -> List[str]:
        """Keys in recency order, most recently used first."""
        return [node.key for node in self._iter_nodes()]

    def __len__(self) -> int:
        return len(self._map)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.has(key)

    @property
    def size(self) -> int:
        return len(self._map)

    def stats(self) -> CacheStats:
        total = self.hits + self.misses
        hit_rate = round(self.hits / total, 4) if total else 0.0
        return CacheStats(
            size=len(self._map),
            capacity=self.capacity,
            hits=self.hits,
            misses=self.misses,
            hit_rate=hit_rate,
            oldest_key=self._tail.key if self._tail else None,
            newest_key=self._head.key if self._head else None,
        )

    # --- Linked list helpers ---

    def _iter_nodes(self) -> Iterator[_Node]:
        node = self._head
        while node is not None:
            yield node
            node = node.next

    def _add_to_head(self, node: _Node) -> None:
        node.prev = None
        node.next = self._head
        if self._head is not None:
            self._head.prev = node
        self._head = node
        if self._tail is None:
            self._tail = node

    def _unlink(self, node: _Node) -> None:
        if node.prev is not None:
            node.prev.next = node.next
        else:
            self._head = node.next
        if node.next is not None:
            node.next.prev = node.prev
        else:
            self._tail = node.prev
        node.prev = None
        node.next = None

    def _move_to_head(self, node: _Node) -> None:
        if node is self._head:
            return
        self._unlink(node)
        self._add_to_head(node)

    def _remove(self, node: _Node) -> None:
        """Unlinks a node and drops it from the map in one step."""
        self._unlink(node)
        del self._map[node.key]
