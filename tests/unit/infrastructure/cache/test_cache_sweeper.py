import asyncio

import pytest

from destiq.infrastructure.cache.sweeper import CacheSweeper


async def test_sweep_once_removes_only_expired(cache_engine, clock):
    for i in range(7):
        cache_engine.set("a", f"old{i}", i, ttl=1)
    cache_engine.set("a", "fresh", "x", ttl=100)
    cache_engine.set("b", "old", "y", ttl=1)
    clock.advance(2)

    sweeper = CacheSweeper(cache_engine, interval_seconds=60, batch_size=3)
    assert await sweeper.sweep_once() == 8
    assert cache_engine.namespace("a").keys() == ["fresh"]
    assert len(cache_engine.namespace("b")) == 0


async def test_start_and_stop(cache_engine):
    sweeper = CacheSweeper(cache_engine, interval_seconds=3600)
    sweeper.start()
    assert sweeper.running
    await asyncio.sleep(0)
    await sweeper.stop()
    assert not sweeper.running


async def test_background_sweep_runs_on_interval(cache_engine, clock):
    cache_engine.set("a", "k", 1, ttl=1)
    clock.advance(2)
    sweeper = CacheSweeper(cache_engine, interval_seconds=0.01)
    sweeper.start()
    await asyncio.sleep(0.05)
    await sweeper.stop()
    assert len(cache_engine.namespace("a")) == 0


def test_rejects_non_positive_interval(cache_engine):
    with pytest.raises(ValueError):
        CacheSweeper(cache_engine, interval_seconds=0)
