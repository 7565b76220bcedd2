"""
Background scheduler that revalidates every cached payload.

One background task runs a revalidation pass immediately on start and then
on fixed deadlines (``start + n * interval``).  A pass recomputes every key
regardless of freshness and overwrites the cache.  Each key is refreshed
inside its own failure boundary: a failing key is logged and keeps its
previous (stale but valid) value, and the remaining keys are still refreshed.

Overlap policy: a pass is never started while another is in progress.  Timer
ticks that fall inside a pass that overran its interval are dropped, and a
manual ``revalidate_all()`` issued during a pass returns ``None`` without
doing any work.
"""

import asyncio
import logging
import math
from typing import Awaitable, Callable, Mapping, Optional

from glowstats.cache import TTLCache

logger = logging.getLogger(__name__)


class RevalidationScheduler:
    """
    Periodically recomputes every cache key and writes the results back.

    The scheduler holds no data of its own; it shares the ``TTLCache`` used by
    the request handlers and the compute chains built by ``GlowAggregator``.
    """

    def __init__(
        self,
        cache: TTLCache,
        compute_functions: Mapping[str, Callable[[], Awaitable[object]]],
        interval_seconds: float,
    ) -> None:
        """
        Initialize the scheduler.

        Args:
            cache: Cache shared with the read-through layer
            compute_functions: Cache key -> compute chain, refreshed in order
            interval_seconds: Seconds between revalidation passes
        """
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.cache = cache
        self.compute_functions = dict(compute_functions)
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None
        self._running = False
        self._revalidating = False

    @property
    def is_revalidating(self) -> bool:
        return self._revalidating

    async def start(self) -> None:
        """Start the background revalidation task."""
        if self._running:
            logger.warning("Scheduler already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run_periodic())
        logger.info(
            "Scheduler started: %d keys every %ss",
            len(self.compute_functions),
            self.interval_seconds,
        )

    async def stop(self) -> None:
        """Stop the background task, abandoning any pass in progress."""
        if not self._running:
            logger.warning("Scheduler not running")
            return

        self._running = False
        logger.info("Stopping revalidation scheduler")

        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None

        logger.info("Scheduler stopped")

    async def revalidate_all(self) -> Optional[dict[str, bool]]:
        """
        Recompute every key and overwrite the cache.

        Returns:
            Mapping of key -> whether it was refreshed, or ``None`` when the
            call was dropped because a pass was already in progress.
        """
        if self._revalidating:
            logger.warning("Revalidation already in progress — dropping request")
            return None

        self._revalidating = True
        try:
            results: dict[str, bool] = {}
            for key, compute in self.compute_functions.items():
                results[key] = await self._refresh_key(key, compute)
        finally:
            self._revalidating = False

        failed = [key for key, ok in results.items() if not ok]
        if failed:
            logger.warning(
                "Revalidation finished: %d/%d keys refreshed, failed: %s",
                len(results) - len(failed),
                len(results),
                ", ".join(failed),
            )
        else:
            logger.info("Revalidation finished: all %d keys refreshed", len(results))
        return results

    async def _refresh_key(
        self,
        key: str,
        compute: Callable[[], Awaitable[object]],
    ) -> bool:
        """Recompute one key; on any failure leave its cached value untouched."""
        logger.debug("Refreshing %r", key)
        try:
            value = await compute()
        except Exception as e:
            logger.error("Failed to refresh %r: %s", key, str(e))
            return False

        if value is None:
            logger.error("Failed to refresh %r: compute returned no data", key)
            return False

        await self.cache.set(key, value)
        logger.debug("Refreshed %r", key)
        return True

    async def _run_periodic(self) -> None:
        """Run a pass now, then once per interval on fixed deadlines."""
        loop = asyncio.get_running_loop()
        started_at = loop.time()
        tick = 0

        while self._running:
            try:
                await self.revalidate_all()
            except Exception as e:
                logger.error("Error in revalidation pass: %s", str(e), exc_info=True)

            elapsed = loop.time() - started_at
            next_tick = math.floor(elapsed / self.interval_seconds) + 1
            if next_tick > tick + 1:
                logger.warning(
                    "Revalidation pass overran its interval — dropped %d tick(s)",
                    next_tick - tick - 1,
                )
            tick = next_tick

            delay = started_at + tick * self.interval_seconds - loop.time()
            try:
                await asyncio.sleep(max(0.0, delay))
            except asyncio.CancelledError:
                logger.info("Revalidation task cancelled")
                break
