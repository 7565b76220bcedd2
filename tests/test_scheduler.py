"""
Tests for the revalidation scheduler.

Verifies scheduler initialization, task lifecycle, per-key failure isolation,
the overlap policy, and that every compute chain's result is cached under the
correct key.
"""

import asyncio
import logging
from unittest.mock import AsyncMock, patch

import pytest

from glowstats.cache import CacheKey, TTLCache
from glowstats.errors import ParseError, UpstreamFetchError
from glowstats.scheduler import RevalidationScheduler

PAYLOADS: dict[str, object] = {
    "welcome": {"message": "Glow morning!"},
    "tokenStats": {"GlowMetrics": {"price": 0.5}},
    "allData": {"farmsWeeklyMetrics": [{"week": 3}]},
    "farmCount": {"farmCount": 7},
    "weeklyFarmCount": [{"week": 0, "value": 7}],
}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cache() -> TTLCache:
    return TTLCache(default_ttl=7200)


@pytest.fixture
def compute_functions() -> dict[str, AsyncMock]:
    """One AsyncMock compute chain per cache key, in refresh order."""
    return {key: AsyncMock(return_value=value) for key, value in PAYLOADS.items()}


@pytest.fixture
def scheduler(cache: TTLCache, compute_functions: dict[str, AsyncMock]) -> RevalidationScheduler:
    return RevalidationScheduler(cache, compute_functions, interval_seconds=3600)


# ---------------------------------------------------------------------------
# Initialization
# ---------------------------------------------------------------------------


def test_scheduler_initialization(cache: TTLCache, compute_functions: dict) -> None:
    """Scheduler stores its collaborators and starts idle."""
    sched = RevalidationScheduler(cache, compute_functions, interval_seconds=60)

    assert sched.cache is cache
    assert list(sched.compute_functions) == list(PAYLOADS)
    assert sched._running is False
    assert sched._task is None
    assert sched.is_revalidating is False


def test_non_positive_interval_rejected(cache: TTLCache, compute_functions: dict) -> None:
    with pytest.raises(ValueError):
        RevalidationScheduler(cache, compute_functions, interval_seconds=0)


# ---------------------------------------------------------------------------
# Start / stop lifecycle
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_start_revalidates_immediately(
    scheduler: RevalidationScheduler, cache: TTLCache, compute_functions: dict
) -> None:
    """start() runs a full pass right away, without waiting for the first interval."""
    await scheduler.start()
    await asyncio.sleep(0.05)

    assert scheduler._running is True
    for key, compute in compute_functions.items():
        compute.assert_awaited_once()
        assert await cache.get(key) == PAYLOADS[key]

    await scheduler.stop()


@pytest.mark.asyncio
async def test_scheduler_stop_cancels_task(scheduler: RevalidationScheduler) -> None:
    """stop() ends the background task and sets _running=False."""
    await scheduler.start()
    task = scheduler._task
    await asyncio.sleep(0.01)

    await scheduler.stop()

    assert scheduler._running is False
    assert task is not None and task.done()
    assert scheduler._task is None


@pytest.mark.asyncio
async def test_stop_during_pass_abandons_it(cache: TTLCache) -> None:
    """Stopping while a compute is in flight cancels it and writes nothing for that key."""
    gate = asyncio.Event()

    async def never_finishes() -> object:
        await gate.wait()
        return {"farmCount": 1}

    sched = RevalidationScheduler(cache, {"farmCount": never_finishes}, interval_seconds=60)
    await sched.start()
    await asyncio.sleep(0.01)
    assert sched.is_revalidating is True

    await sched.stop()

    assert cache.size() == 0
    assert sched.is_revalidating is False


@pytest.mark.asyncio
async def test_scheduler_double_start_warning(
    scheduler: RevalidationScheduler, caplog: pytest.LogCaptureFixture
) -> None:
    """A second call to start() while already running logs an 'already running' warning."""
    await scheduler.start()

    with caplog.at_level(logging.WARNING, logger="glowstats.scheduler"):
        await scheduler.start()

    assert "already running" in caplog.text

    await scheduler.stop()


@pytest.mark.asyncio
async def test_scheduler_stop_when_not_running(
    scheduler: RevalidationScheduler, caplog: pytest.LogCaptureFixture
) -> None:
    """Calling stop() on a scheduler that was never started logs a 'not running' warning."""
    with caplog.at_level(logging.WARNING, logger="glowstats.scheduler"):
        await scheduler.stop()

    assert "not running" in caplog.text


@pytest.mark.asyncio
async def test_periodic_passes_repeat(cache: TTLCache) -> None:
    """With a short interval the pass runs again on each tick."""
    compute = AsyncMock(return_value={"farmCount": 1})
    sched = RevalidationScheduler(cache, {"farmCount": compute}, interval_seconds=0.02)

    await sched.start()
    await asyncio.sleep(0.15)
    await sched.stop()

    assert compute.await_count >= 3


# ---------------------------------------------------------------------------
# revalidate_all
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_revalidate_all_refreshes_every_key_in_order(
    scheduler: RevalidationScheduler, cache: TTLCache
) -> None:
    with patch.object(cache, "set", wraps=cache.set) as spy:
        report = await scheduler.revalidate_all()

    assert report == {key: True for key in PAYLOADS}
    assert [c.args[0] for c in spy.call_args_list] == list(PAYLOADS)
    assert [c.args[1] for c in spy.call_args_list] == list(PAYLOADS.values())


@pytest.mark.asyncio
async def test_revalidate_ignores_freshness(
    scheduler: RevalidationScheduler, cache: TTLCache, compute_functions: dict
) -> None:
    """A still-fresh entry is recomputed and overwritten anyway."""
    await cache.set("farmCount", {"farmCount": 1})

    await scheduler.revalidate_all()

    compute_functions["farmCount"].assert_awaited_once()
    assert await cache.get("farmCount") == {"farmCount": 7}


@pytest.mark.asyncio
async def test_all_data_failure_does_not_block_farm_counts(
    scheduler: RevalidationScheduler,
    cache: TTLCache,
    compute_functions: dict,
    caplog: pytest.LogCaptureFixture,
) -> None:
    """A failing allData is logged; farmCount and weeklyFarmCount are still stored."""
    compute_functions["allData"].side_effect = UpstreamFetchError("postgres", "query failed")

    with caplog.at_level(logging.ERROR, logger="glowstats.scheduler"):
        report = await scheduler.revalidate_all()

    assert report["allData"] is False
    assert report["farmCount"] is True
    assert report["weeklyFarmCount"] is True
    assert await cache.get("allData") is None
    assert await cache.get("farmCount") == PAYLOADS["farmCount"]
    assert await cache.get("weeklyFarmCount") == PAYLOADS["weeklyFarmCount"]
    assert "Failed to refresh 'allData'" in caplog.text


@pytest.mark.asyncio
async def test_audit_failures_do_not_block_other_keys(
    scheduler: RevalidationScheduler, cache: TTLCache, compute_functions: dict
) -> None:
    """Audit-derived keys failing still lets welcome, tokenStats and allData refresh."""
    compute_functions["farmCount"].side_effect = UpstreamFetchError("audits", "HTTP 500", 500)
    compute_functions["weeklyFarmCount"].side_effect = ParseError("Unparseable audit date")

    report = await scheduler.revalidate_all()

    assert report == {
        "welcome": True,
        "tokenStats": True,
        "allData": True,
        "farmCount": False,
        "weeklyFarmCount": False,
    }
    for key in ("welcome", "tokenStats", "allData"):
        assert await cache.get(key) == PAYLOADS[key]


@pytest.mark.asyncio
async def test_failed_refresh_keeps_previous_value(
    scheduler: RevalidationScheduler, cache: TTLCache, compute_functions: dict
) -> None:
    """A failing key keeps its earlier (stale but valid) value untouched."""
    with patch("glowstats.cache.time.time", return_value=0.0):
        await cache.set("tokenStats", {"GlowMetrics": {"price": 0.1}}, ttl=10)
    before = cache._store["tokenStats"]

    compute_functions["tokenStats"].side_effect = Exception("dune down")
    await scheduler.revalidate_all()

    assert cache._store["tokenStats"] is before


@pytest.mark.asyncio
async def test_none_result_is_not_cached(
    scheduler: RevalidationScheduler, cache: TTLCache, compute_functions: dict
) -> None:
    compute_functions["allData"].return_value = None

    report = await scheduler.revalidate_all()

    assert report["allData"] is False
    assert "allData" not in cache._store


@pytest.mark.asyncio
async def test_overlapping_revalidation_is_dropped(
    cache: TTLCache, caplog: pytest.LogCaptureFixture
) -> None:
    """A pass requested while another is running returns None and does no work."""
    gate = asyncio.Event()
    calls = 0

    async def slow() -> object:
        nonlocal calls
        calls += 1
        await gate.wait()
        return {"farmCount": calls}

    sched = RevalidationScheduler(cache, {"farmCount": slow}, interval_seconds=60)
    first = asyncio.create_task(sched.revalidate_all())
    await asyncio.sleep(0)

    with caplog.at_level(logging.WARNING, logger="glowstats.scheduler"):
        second = await sched.revalidate_all()

    gate.set()
    assert await first == {"farmCount": True}
    assert second is None
    assert calls == 1
    assert "already in progress" in caplog.text


@pytest.mark.asyncio
async def test_overrunning_pass_drops_missed_ticks(
    cache: TTLCache, caplog: pytest.LogCaptureFixture
) -> None:
    """A pass longer than the interval logs the ticks it swallowed."""

    async def slow() -> object:
        await asyncio.sleep(0.05)
        return {"farmCount": 1}

    sched = RevalidationScheduler(cache, {"farmCount": slow}, interval_seconds=0.01)
    with caplog.at_level(logging.WARNING, logger="glowstats.scheduler"):
        await sched.start()
        await asyncio.sleep(0.08)
        await sched.stop()

    assert "dropped" in caplog.text


@pytest.mark.asyncio
async def test_periodic_loop_survives_unexpected_errors(
    scheduler: RevalidationScheduler, caplog: pytest.LogCaptureFixture
) -> None:
    """An exception escaping revalidate_all() is logged and the loop keeps running."""
    scheduler.interval_seconds = 0.01
    with patch.object(
        scheduler, "revalidate_all", AsyncMock(side_effect=RuntimeError("pass exploded"))
    ) as failing:
        await scheduler.start()
        await asyncio.sleep(0.05)
        await scheduler.stop()

    assert "Error in revalidation pass" in caplog.text
    assert failing.await_count >= 2


@pytest.mark.asyncio
async def test_every_cache_key_can_be_scheduled(cache: TTLCache) -> None:
    computes = {key.value: AsyncMock(return_value={"key": key.value}) for key in CacheKey}
    sched = RevalidationScheduler(cache, computes, interval_seconds=60)

    report = await sched.revalidate_all()

    assert set(report) == {key.value for key in CacheKey}
    assert all(report.values())
