"""
In-memory TTL cache with an async interface.

Sits between the upstream clients and the request handlers. One instance is
built at application startup and handed to both the read-through layer and
the revalidation scheduler; there is no module-level singleton.

Expiration is passive: a stale entry is reported as absent but stays in the
store until the next ``set()`` for its key overwrites it.
"""

import logging
import time
from enum import Enum
from typing import Any, Optional

logger = logging.getLogger(__name__)


class CacheKey(str, Enum):
    """The fixed set of keys the service caches."""

    WELCOME = "welcome"
    TOKEN_STATS = "tokenStats"
    ALL_DATA = "allData"
    FARM_COUNT = "farmCount"
    WEEKLY_FARM_COUNT = "weeklyFarmCount"


class TTLCache:
    """Async-compatible in-memory key-value store with per-entry TTL.

    Storage layout:
        _store: dict[str, tuple[Any, float]]
            key -> (value, expiry_timestamp)

    All access happens on the event loop thread and neither method awaits
    between reading and writing ``_store``, so a read can never observe a
    half-written entry.
    """

    def __init__(self, default_ttl: float) -> None:
        self.default_ttl = default_ttl
        self._store: dict[str, tuple[Any, float]] = {}

    async def get(self, key: str) -> Optional[Any]:
        """Return the cached value for *key* if it exists and has not expired.

        Args:
            key: Cache key to look up.

        Returns:
            The cached value, or ``None`` if the key is absent or expired.
        """
        entry = self._store.get(key)
        if entry is None:
            logger.debug("Cache miss (not found): key=%r", key)
            return None

        value, expiry = entry
        if time.time() < expiry:
            logger.debug("Cache hit: key=%r", key)
            return value

        logger.debug("Cache miss (expired): key=%r", key)
        return None

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Store *value* under *key*, expiring after *ttl* seconds.

        Overwrites any existing entry for *key* and restarts its TTL.

        Args:
            key:   Cache key.
            value: JSON-serializable payload.
            ttl:   Seconds until the entry expires.  Defaults to the cache's
                   ``default_ttl``.
        """
        if ttl is None:
            ttl = self.default_ttl
        expiry: float = time.time() + ttl
        self._store[key] = (value, expiry)
        logger.debug("Cache set: key=%r  ttl=%ss  expires_at=%.3f", key, ttl, expiry)

    def size(self) -> int:
        """Return the number of entries held, stale ones included."""
        return len(self._store)
