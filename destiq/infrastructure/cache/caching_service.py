"""Concrete implementation of the namespaced Caching Service.

Holds one `LRUCache` per namespace, each with its own capacity and default
TTL, and provides `with_cache`, a higher-order helper that wraps a function
with read-through caching.
"""

import functools
import inspect
import json
import logging
import time
from typing import Any, Callable, Dict, Mapping, Optional

from destiq.domain.interfaces.cache import CacheService
from destiq.domain.models.common import CacheKey, CacheStats, Namespace, NamespaceConfig
from destiq.domain.models.errors import CacheError
from destiq.infrastructure.cache.lru_cache import DEFAULT_CAPACITY, DEFAULT_TTL_SECONDS, LRUCache

logger = logging.getLogger(__name__)


class CacheEngine(CacheService):
    """Namespace-partitioned LRU/TTL cache (in-memory only)."""

    def __init__(
        self,
        namespace_configs: Optional[Mapping[str, NamespaceConfig]] = None,
        default_capacity: int = DEFAULT_CAPACITY,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initializes the cache engine.

        Args:
            namespace_configs: Capacity/default TTL per known namespace.
            default_capacity: Capacity for namespaces without explicit config.
            default_ttl: Default TTL (seconds) for namespaces without explicit config.
            clock: Monotonic time source shared by every namespace.
        """
        self._configs: Dict[str, NamespaceConfig] = dict(namespace_configs or {})
        self.default_capacity = default_capacity
        self.default_ttl = default_ttl
        self._clock = clock
        self._caches: Dict[str, LRUCache] = {}
        logger.info(
            f"CacheEngine initialized: {len(self._configs)} configured namespaces, "
            f"default capacity={default_capacity}, default ttl={default_ttl}s"
        )

    def namespace(self, namespace: Namespace) -> LRUCache:
        """Gets or creates the cache for a namespace."""
        cache = self._caches.get(namespace)
        if cache is None:
            config = self._configs.get(namespace)
            capacity = config["capacity"] if config else self.default_capacity
            ttl = config["default_ttl"] if config else self.default_ttl
            cache = LRUCache(capacity=capacity, default_ttl=ttl, clock=self._clock)
            self._caches[namespace] = cache
            logger.debug(f"Created cache namespace '{namespace}' (capacity={capacity}, ttl={ttl}s)")
        return cache

    @property
    def namespaces(self) -> Dict[str, LRUCache]:
        return dict(self._caches)

    # --- CacheService Interface Implementation ---

    def get(self, namespace: Namespace, key: CacheKey) -> Optional[Any]:
        self._check_key(key)
        cache = self._caches.get(namespace)
        # Reads never create a namespace
        value = cache.get(key) if cache is not None else None
        logger.debug(f"Cache {'HIT' if value is not None else 'MISS'} [{namespace}] {key}")
        return value

    def set(
        self, namespace: Namespace, key: CacheKey, value: Any, ttl: Optional[float] = None
    ) -> None:
        self._check_key(key)
        self.namespace(namespace).set(key, value, ttl)
        logger.debug(f"Cache PUT [{namespace}] {key} ttl={ttl if ttl is not None else 'default'}")

    def has(self, namespace: Namespace, key: CacheKey) -> bool:
        self._check_key(key)
        cache = self._caches.get(namespace)
        return cache.has(key) if cache is not None else False

    def delete(self, namespace: Namespace, key: CacheKey) -> bool:
        self._check_key(key)
        cache = self._caches.get(namespace)
        return cache.delete(key) if cache is not None else False

    def clear(self, namespace: Optional[Namespace] = None, key: Optional[CacheKey] = None) -> None:
        if namespace is None:
            if key is not None:
                for cache in self._caches.values():
                    cache.delete(key)
                logger.info(f"Cleared key '{key}' from all namespaces.")
                return
            for cache in self._caches.values():
                cache.clear()
            logger.info("Cleared all cache namespaces.")
            return

        cache = self._caches.get(namespace)
        if cache is None:
            logger.debug(f"Namespace '{namespace}' does not exist, nothing to clear.")
            return
        cache.clear(key)
        if key is None:
            logger.info(f"Cleared cache namespace '{namespace}'.")

    def cleanup_expired(self) -> int:
        removed = sum(cache.cleanup_expired() for cache in self._caches.values())
        if removed:
            logger.info(f"Cache cleanup removed {removed} expired entries")
        return removed

    def stats(self, namespace: Optional[Namespace] = None) -> Dict[str, CacheStats]:
        if namespace is not None:
            cache = self._caches.get(namespace)
            return {namespace: cache.stats()} if cache is not None else {}
        return {name: cache.stats() for name, cache in self._caches.items()}

    @staticmethod
    def _check_key(key: Any) -> None:
        if not isinstance(key, str) or not key:
            raise CacheError(f"Invalid cache key: {key!r}")


# --- Caching wrapper ---

def _default_key(fn_name: str, args: tuple, kwargs: dict) -> CacheKey:
    payload = json.dumps({"args": args, "kwargs": kwargs}, sort_keys=True, default=str)
    return CacheKey(f"{fn_name}:{payload}")


def with_cache(
    cache: CacheService,
    namespace: Namespace,
    ttl: Optional[float],
    inner: Callable[..., Any],
    key_fn: Optional[Callable[..., str]] = None,
) -> Callable[..., Any]:
    """Wraps `inner` with read-through caching.

    Works for both plain functions and coroutine functions. The cache key is
    built by `key_fn(*args, **kwargs)` when given, otherwise from the
    function name and the JSON-encoded arguments. None results are not cached.

    Args:
        cache: Cache service to read from and write to.
        namespace: Namespace the results are stored in.
        ttl: TTL in seconds for stored results (namespace default if None).
        inner: The function to wrap.
        key_fn: Optional custom key builder.

    Returns:
        A wrapper with the same call signature as `inner`.
    """
    fn_name = getattr(inner, "__qualname__", getattr(inner, "__name__", "fn"))

    def build_key(args: tuple, kwargs: dict) -> CacheKey:
        if key_fn is not None:
            return CacheKey(key_fn(*args, **kwargs))
        return _default_key(fn_name, args, kwargs)

    def lookup(key: CacheKey) -> Optional[Any]:
        try:
            return cache.get(namespace, key)
        except CacheError as e:
            logger.warning(f"Cache read failed for {fn_name}, treating as miss: {e}")
            return None

    def store(key: CacheKey, value: Any) -> None:
        if value is None:
            return
        try:
            cache.set(namespace, key, value, ttl)
        except CacheError as e:
            logger.warning(f"Cache write failed for {fn_name}: {e}")

    if inspect.iscoroutinefunction(inner):
        @functools.wraps(inner)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            key = build_key(args, kwargs)
            cached = lookup(key)
            if cached is not None:
                logger.debug(f"[Cache Hit] {namespace}:{key}")
                return cached
            logger.debug(f"[Cache Miss] {namespace}:{key}")
            result = await inner(*args, **kwargs)
            store(key, result)
            return result
        return async_wrapper

    @functools.wraps(inner)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        key = build_key(args, kwargs)
        cached = lookup(key)
        if cached is not None:
            logger.debug(f"[Cache Hit] {namespace}:{key}")
            return cached
        logger.debug(f"[Cache Miss] {namespace}:{key}")
        result = inner(*args, **kwargs)
        store(key, result)
        return result
    return wrapper
