"""
Read-through access to the TTL cache.

A fresh cached value is returned as-is.  On a miss the key's compute chain
runs, its result is stored with the cache's default TTL and returned.  A
failed compute writes nothing: whatever the cache held before the call is
still there afterwards.

Concurrent misses on the same key can optionally share one compute
("single-flight").  Waiters then receive the same value, or the same failure.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable

from glowstats.cache import TTLCache
from glowstats.errors import ComputeError, DataUnavailableError, GlowStatsError

logger = logging.getLogger(__name__)


class ReadThroughCache:
    """Cache-first access with compute-on-miss for a shared ``TTLCache``."""

    def __init__(self, cache: TTLCache, coalesce: bool = True) -> None:
        self.cache = cache
        self.coalesce = coalesce
        self._in_flight: dict[str, asyncio.Task] = {}

    async def get_or_compute(
        self,
        key: str,
        compute: Callable[[], Awaitable[Any]],
    ) -> Any:
        """
        Return the cached value for *key*, computing and storing it on a miss.

        Raises:
            DataUnavailableError: When the value is not cached and *compute*
                fails or returns ``None``.
        """
        cached = await self.cache.get(key)
        if cached is not None:
            return cached

        if not self.coalesce:
            return await self._compute_and_store(key, compute)

        task = self._in_flight.get(key)
        if task is None:
            logger.debug("Cache miss for %r — starting compute", key)
            task = asyncio.create_task(self._compute_and_store(key, compute))
            self._in_flight[key] = task
            task.add_done_callback(lambda t: self._forget(key, t))
        else:
            logger.debug("Cache miss for %r — joining in-flight compute", key)

        # One waiter going away must not cancel the compute for the others.
        return await asyncio.shield(task)

    def _forget(self, key: str, task: asyncio.Task) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        # Mark the failure retrieved even if every waiter has gone away.
        if not task.cancelled():
            task.exception()

    async def _compute_and_store(
        self,
        key: str,
        compute: Callable[[], Awaitable[Any]],
    ) -> Any:
        try:
            value = await compute()
        except GlowStatsError as exc:
            logger.error("Compute for %r failed: %s", key, exc)
            raise DataUnavailableError(key) from exc
        except Exception as exc:
            logger.error("Compute for %r failed unexpectedly: %s", key, exc, exc_info=True)
            raise DataUnavailableError(key) from ComputeError(key, exc)

        if value is None:
            logger.error("Compute for %r returned no data", key)
            raise DataUnavailableError(key)

        await self.cache.set(key, value)
        return value
