"""
Stats routes for the Glowstats API.

Endpoints:
  GET /                 — Welcome message
  GET /tokenStats       — GLW token metrics (headline stats, holders, on-chain price)
  GET /allData          — Weekly farm metrics rollup, newest week first
  GET /farmCount        — Number of audited farms
  GET /weeklyFarmCount  — Cumulative audited farm count per protocol week

Every endpoint is cache-first: a fresh cached payload is returned unchanged,
otherwise the key's compute chain runs and its result is cached.  When that
fails the ``DataUnavailableError`` handler answers with HTTP 500.
"""

import logging
from typing import Any

from fastapi import APIRouter, Request

from glowstats.cache import CacheKey

logger = logging.getLogger(__name__)

router = APIRouter()


async def _serve(request: Request, key: CacheKey) -> Any:
    read_through = request.app.state.read_through
    compute = request.app.state.compute_functions[key.value]
    return await read_through.get_or_compute(key.value, compute)


@router.get("/", summary="Welcome message")
async def get_welcome(request: Request) -> dict:
    """Return a static welcome message."""
    return await _serve(request, CacheKey.WELCOME)


@router.get("/tokenStats", summary="Token statistics")
async def get_token_stats(request: Request) -> dict:
    """
    Return ``{"GlowMetrics": {...}}`` with price, circulatingSupply,
    totalSupply, marketCap, holders and glowPriceFromContract.
    """
    return await _serve(request, CacheKey.TOKEN_STATS)


@router.get("/allData", summary="Weekly metrics across farms")
async def get_all_data(request: Request) -> dict:
    """Return ``{"farmsWeeklyMetrics": [...]}`` sorted newest week first."""
    return await _serve(request, CacheKey.ALL_DATA)


@router.get("/farmCount", summary="Audited farm count")
async def get_farm_count(request: Request) -> dict:
    return await _serve(request, CacheKey.FARM_COUNT)


@router.get("/weeklyFarmCount", summary="Cumulative farm count per week")
async def get_weekly_farm_count(request: Request) -> list:
    """Return ``[{"week": int, "value": int}, ...]`` from week 0 to the current week."""
    return await _serve(request, CacheKey.WEEKLY_FARM_COUNT)
