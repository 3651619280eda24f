import pytest

from destiq.domain.models.errors import CacheError
from destiq.infrastructure.cache.caching_service import CacheEngine, with_cache


def test_namespaces_are_isolated(cache_engine: CacheEngine):
    cache_engine.set("currency", "k", 1)
    cache_engine.set("news", "k", 2)

    assert cache_engine.get("currency", "k") == 1
    assert cache_engine.get("news", "k") == 2
    assert cache_engine.get("video", "k") is None


def test_namespace_config_applies_capacity_and_ttl(clock):
    engine = CacheEngine(
        namespace_configs={"currency": {"capacity": 2, "default_ttl": 5}},
        default_capacity=10,
        default_ttl=60,
        clock=clock,
    )
    engine.set("currency", "a", 1)
    engine.set("currency", "b", 2)
    engine.set("currency", "c", 3)
    assert engine.has("currency", "a") is False

    clock.advance(6)
    assert engine.get("currency", "c") is None
    assert engine.namespace("other").capacity == 10


@pytest.mark.parametrize("bad_key", ["", None, 42])
def test_invalid_key_raises_cache_error(cache_engine: CacheEngine, bad_key):
    with pytest.raises(CacheError):
        cache_engine.get("currency", bad_key)
    with pytest.raises(CacheError):
        cache_engine.set("currency", bad_key, "v")


def test_clear_namespace_key_and_all(cache_engine: CacheEngine):
    cache_engine.set("a", "k1", 1)
    cache_engine.set("a", "k2", 2)
    cache_engine.set("b", "k1", 3)

    cache_engine.clear("a", "k1")
    assert cache_engine.has("a", "k1") is False
    assert cache_engine.has("a", "k2") is True

    cache_engine.clear("b")
    assert cache_engine.has("b", "k1") is False
    assert cache_engine.has("a", "k2") is True

    cache_engine.clear()
    assert cache_engine.has("a", "k2") is False


def test_clear_unknown_namespace_is_noop(cache_engine: CacheEngine):
    cache_engine.clear("never-created")
    assert "never-created" not in cache_engine.namespaces


def test_stats_per_namespace(cache_engine: CacheEngine):
    cache_engine.set("a", "k", 1)
    cache_engine.get("a", "k")
    cache_engine.get("a", "missing")
    cache_engine.set("b", "k", 1)

    stats = cache_engine.stats()
    assert set(stats) == {"a", "b"}
    assert stats["a"]["hits"] == 1
    assert stats["a"]["misses"] == 1
    assert cache_engine.stats("b")["b"]["size"] == 1


def test_reads_do_not_create_namespaces(cache_engine: CacheEngine):
    assert cache_engine.get("typo", "k") is None
    assert cache_engine.has("typo", "k") is False
    assert cache_engine.stats("typo") == {}
    assert "typo" not in cache_engine.namespaces
    assert cache_engine.stats() == {}


def test_cleanup_expired_across_namespaces(cache_engine: CacheEngine, clock):
    cache_engine.set("a", "k", 1, ttl=1)
    cache_engine.set("b", "k", 1, ttl=1)
    cache_engine.set("b", "keep", 1, ttl=100)
    clock.advance(5)

    assert cache_engine.cleanup_expired() == 2
    assert cache_engine.has("b", "keep")


def test_with_cache_sync_calls_inner_once(cache_engine: CacheEngine):
    calls = []

    def fetch_rate(base, target):
        calls.append((base, target))
        return {"rate": 0.9}

    cached = with_cache(cache_engine, "currency", 60, fetch_rate)

    assert cached("USD", "EUR") == {"rate": 0.9}
    assert cached("USD", "EUR") == {"rate": 0.9}
    assert calls == [("USD", "EUR")]


async def test_with_cache_async_calls_inner_once(cache_engine: CacheEngine):
    calls = []

    async def fetch(query):
        calls.append(query)
        return [query.upper()]

    cached = with_cache(cache_engine, "news", 60, fetch, key_fn=lambda q: f"news:{q}")

    assert await cached("lisbon") == ["LISBON"]
    assert await cached("lisbon") == ["LISBON"]
    assert calls == ["lisbon"]
    assert cache_engine.has("news", "news:lisbon")


async def test_with_cache_does_not_store_none(cache_engine: CacheEngine):
    calls = []

    async def fetch():
        calls.append(1)
        return None

    cached = with_cache(cache_engine, "news", 60, fetch)
    await cached()
    await cached()
    assert len(calls) == 2


def test_with_cache_refetches_after_ttl(cache_engine: CacheEngine, clock):
    values = iter([1, 2])

    def counter():
        return next(values)

    cached = with_cache(cache_engine, "misc", 10, counter)

    assert cached() == 1
    clock.advance(11)
    assert cached() == 2
