"""
Tests for glowstats.cache.TTLCache.

Each test creates a fresh TTLCache instance so tests remain fully isolated.

Run with:
    pytest glowstats/tests/test_cache.py -v
"""

import asyncio
from unittest.mock import patch

import pytest

from glowstats.cache import CacheKey, TTLCache


# ---------------------------------------------------------------------------
# 1. Basic set / get round-trip
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_set_and_get() -> None:
    """A value stored with set() must be retrievable with get()."""
    c = TTLCache(default_ttl=60)
    await c.set("farmCount", {"farmCount": 7}, ttl=60)
    result = await c.get("farmCount")
    assert result == {"farmCount": 7}


# ---------------------------------------------------------------------------
# 2. Missing key returns None
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_get_missing_key() -> None:
    """get() on a key that was never set must return None."""
    c = TTLCache(default_ttl=60)
    result = await c.get("does_not_exist")
    assert result is None


# ---------------------------------------------------------------------------
# 3. Expired entry returns None
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_expired_entry_returns_none() -> None:
    """After TTL elapses, get() must return None for the expired key."""
    c = TTLCache(default_ttl=60)
    await c.set("short_lived", "temporary", ttl=1)
    await asyncio.sleep(1.1)
    result = await c.get("short_lived")
    assert result is None


# ---------------------------------------------------------------------------
# 4. Expiry boundary: now == expires_at counts as expired
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_entry_expires_exactly_at_ttl() -> None:
    """get() returns the value before expires_at and None from expires_at on."""
    c = TTLCache(default_ttl=60)
    with patch("glowstats.cache.time.time", return_value=1000.0):
        await c.set("tokenStats", {"GlowMetrics": {}}, ttl=10)

    with patch("glowstats.cache.time.time", return_value=1009.999):
        assert await c.get("tokenStats") == {"GlowMetrics": {}}

    with patch("glowstats.cache.time.time", return_value=1010.0):
        assert await c.get("tokenStats") is None


# ---------------------------------------------------------------------------
# 5. Overwriting an existing key
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_overwrite_existing_key() -> None:
    """set() called twice on the same key must return the second value."""
    c = TTLCache(default_ttl=60)
    await c.set("farmCount", {"farmCount": 1}, ttl=60)
    await c.set("farmCount", {"farmCount": 2}, ttl=60)
    result = await c.get("farmCount")
    assert result == {"farmCount": 2}


# ---------------------------------------------------------------------------
# 6. set() restarts the TTL of a stale entry
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_set_resets_expiry_of_stale_entry() -> None:
    """Overwriting an expired entry makes it fresh again."""
    c = TTLCache(default_ttl=60)
    with patch("glowstats.cache.time.time", return_value=1000.0):
        await c.set("allData", "old", ttl=5)

    with patch("glowstats.cache.time.time", return_value=2000.0):
        assert await c.get("allData") is None
        await c.set("allData", "new", ttl=5)
        assert await c.get("allData") == "new"


# ---------------------------------------------------------------------------
# 7. Default TTL is used when none is given
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_default_ttl_applied() -> None:
    """set() without ttl uses the cache's default_ttl."""
    c = TTLCache(default_ttl=30)
    with patch("glowstats.cache.time.time", return_value=500.0):
        await c.set("welcome", {"message": "Glow morning!"})

    with patch("glowstats.cache.time.time", return_value=529.0):
        assert await c.get("welcome") == {"message": "Glow morning!"}

    with patch("glowstats.cache.time.time", return_value=530.0):
        assert await c.get("welcome") is None


# ---------------------------------------------------------------------------
# 8. Stale entries are not deleted by get()
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_stale_entry_stays_in_store() -> None:
    """A stale entry is reported absent but is only replaced by the next set()."""
    c = TTLCache(default_ttl=60)
    with patch("glowstats.cache.time.time", return_value=0.0):
        await c.set("weeklyFarmCount", [], ttl=1)

    with patch("glowstats.cache.time.time", return_value=100.0):
        assert await c.get("weeklyFarmCount") is None

    assert c.size() == 1


# ---------------------------------------------------------------------------
# 9. size() reflects the number of stored entries
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_size() -> None:
    """size() must return the number of entries currently held in the store."""
    c = TTLCache(default_ttl=60)
    assert c.size() == 0

    for key in CacheKey:
        await c.set(key.value, key.name, ttl=60)

    assert c.size() == len(CacheKey)

