"""
Compute chains for every cached payload.

Each public coroutine fetches from its upstream clients, shapes the result
into the JSON body served by its endpoint, and either returns that body or
raises.  None of them touch the cache: the read-through layer and the
revalidation scheduler decide where results go.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

from glowstats.audits_client import AuditsClient
from glowstats.cache import CacheKey
from glowstats.contract_client import GlowContractClient
from glowstats.dune_client import DuneClient
from glowstats.engines.farm_aggregation import (
    WeeklyFarmRecord,
    calculate_farm_count_weekly,
    get_new_farms_weekly,
)
from glowstats.glow_green_client import GlowGreenClient
from glowstats.metrics_repository import WeeklyMetricsRepository

logger = logging.getLogger(__name__)

WELCOME_MESSAGE: str = "Glow morning!"

ComputeFn = Callable[[], Awaitable[Any]]


class GlowAggregator:
    """Builds the payload for each ``CacheKey`` from the upstream sources."""

    def __init__(
        self,
        audits_client: AuditsClient,
        glow_green_client: GlowGreenClient,
        dune_client: DuneClient,
        contract_client: GlowContractClient,
        metrics_repository: WeeklyMetricsRepository,
        genesis_timestamp: int,
        dune_holders_query_id: int,
        skip_malformed_audit_dates: bool = False,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.audits_client = audits_client
        self.glow_green_client = glow_green_client
        self.dune_client = dune_client
        self.contract_client = contract_client
        self.metrics_repository = metrics_repository
        self.genesis_timestamp = genesis_timestamp
        self.dune_holders_query_id = dune_holders_query_id
        self.skip_malformed_audit_dates = skip_malformed_audit_dates
        self._clock = clock

    def compute_functions(self) -> dict[str, ComputeFn]:
        """Map every cache key to its compute chain, in refresh order."""
        return {
            CacheKey.WELCOME.value: self.welcome,
            CacheKey.TOKEN_STATS.value: self.token_stats,
            CacheKey.ALL_DATA.value: self.all_data,
            CacheKey.FARM_COUNT.value: self.farm_count,
            CacheKey.WEEKLY_FARM_COUNT.value: self.weekly_farm_count,
        }

    async def welcome(self) -> dict[str, str]:
        return {"message": WELCOME_MESSAGE}

    async def token_stats(self) -> dict[str, dict[str, Any]]:
        """
        Combine headline stats, holder count and on-chain price.

        The three sources are queried concurrently; if any of them fails the
        whole payload fails rather than being served with placeholder zeros.
        """
        headline, holders, contract_price = await asyncio.gather(
            self.glow_green_client.get_headline_stats(),
            self.dune_client.get_latest_holder_count(self.dune_holders_query_id),
            self.contract_client.get_current_price(),
        )
        return {
            "GlowMetrics": {
                **headline,
                "holders": holders,
                "glowPriceFromContract": contract_price,
            }
        }

    async def all_data(self) -> dict[str, list[dict[str, Any]]]:
        rows = await self.metrics_repository.fetch_farms_weekly_metrics()
        return {"farmsWeeklyMetrics": rows}

    async def farm_count(self) -> dict[str, int]:
        audits = await self.audits_client.fetch_audits()
        return {"farmCount": len(audits)}

    async def new_farms_weekly(self) -> list[WeeklyFarmRecord]:
        """Fetch audits and bucket them by protocol week."""
        audits = await self.audits_client.fetch_audits()
        now = self._clock() if self._clock is not None else None
        return get_new_farms_weekly(
            audits,
            self.genesis_timestamp,
            now=now,
            skip_malformed=self.skip_malformed_audit_dates,
        )

    async def weekly_farm_count(self) -> list[dict[str, int]]:
        weekly = await self.new_farms_weekly()
        return [
            count.model_dump(by_alias=True)
            for count in calculate_farm_count_weekly(weekly)
        ]
