"""Background expiry sweeping for the cache engine.

Runs a batched cleanup pass on a fixed interval. Each batch is a handful of
synchronous deletions; the sweeper yields to the event loop between batches
so foreground `get`/`set` calls are never blocked for long.
"""

import asyncio
import logging
from typing import Optional

from destiq.infrastructure.cache.caching_service import CacheEngine

logger = logging.getLogger(__name__)

DEFAULT_CLEANUP_INTERVAL_SECONDS = 30 * 60  # 30 minutes
DEFAULT_BATCH_SIZE = 50


class CacheSweeper:
    """Periodically removes expired entries from every namespace."""

    def __init__(
        self,
        engine: CacheEngine,
        interval_seconds: float = DEFAULT_CLEANUP_INTERVAL_SECONDS,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        if interval_seconds <= 0:
            raise ValueError(f"Cleanup interval must be positive, got {interval_seconds}")
        self.engine = engine
        self.interval_seconds = interval_seconds
        self.batch_size = max(1, batch_size)
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def sweep_once(self) -> int:
        """One batched pass over all namespaces. Returns the number removed."""
        removed = 0
        for name, cache in self.engine.namespaces.items():
            expired = cache.expired_keys()
            for start in range(0, len(expired), self.batch_size):
                for key in expired[start:start + self.batch_size]:
                    # Re-checked: the key may have been refreshed since the snapshot
                    if cache.delete_if_expired(key):
                        removed += 1
                await asyncio.sleep(0)
            if expired:
                logger.debug(f"Sweeper checked {len(expired)} expired keys in '{name}'")
        if removed:
            logger.info(f"[CacheSweeper] Cleaned up {removed} expired entries")
        return removed

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.sweep_once()
            except Exception as e:
                logger.error(f"Cache sweep failed: {e}", exc_info=True)

    def start(self) -> None:
        """Schedules the sweeper on the running event loop."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info(f"CacheSweeper started (interval={self.interval_seconds}s, batch={self.batch_size})")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("CacheSweeper stopped")
