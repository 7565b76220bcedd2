"""
Read access to the ``farms_weekly_metrics`` rollup table.

Uses an asyncpg pool opened lazily on first query and closed at shutdown.
"""

import asyncio
import datetime
import decimal
import logging
import uuid
from typing import Any, Optional

import asyncpg

from glowstats.config import get_settings
from glowstats.errors import UpstreamFetchError

logger = logging.getLogger(__name__)

_SOURCE: str = "postgres"

_WEEKLY_METRICS_QUERY: str = "SELECT * FROM farms_weekly_metrics"


def _json_safe(value: Any) -> Any:
    """Convert asyncpg column values into JSON-serializable equivalents."""
    if isinstance(value, decimal.Decimal):
        return float(value)
    if isinstance(value, (datetime.datetime, datetime.date)):
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    return value


def _week_sort_key(row: dict[str, Any]) -> Any:
    """Rows sort on ``week``; rows without one sort last."""
    week = row.get("week")
    return (week is not None, week if week is not None else 0)


class WeeklyMetricsRepository:
    """Async repository over the weekly metrics table."""

    def __init__(
        self,
        dsn: Optional[str] = None,
        command_timeout: Optional[float] = None,
    ) -> None:
        settings = get_settings()
        self._dsn: str = dsn or settings.postgres_url
        self._command_timeout: float = command_timeout or settings.upstream_timeout
        self._pool: Optional[asyncpg.Pool] = None
        self._pool_lock = asyncio.Lock()

    async def _get_pool(self) -> asyncpg.Pool:
        if self._pool is not None:
            return self._pool
        async with self._pool_lock:
            # Another caller may have opened the pool while we waited.
            if self._pool is None:
                self._pool = await asyncpg.create_pool(
                    dsn=self._dsn,
                    min_size=1,
                    max_size=5,
                    command_timeout=self._command_timeout,
                )
                logger.info("PostgreSQL pool initialized")
        return self._pool

    async def fetch_farms_weekly_metrics(self) -> list[dict[str, Any]]:
        """
        Return every weekly metrics row, newest week first.

        Raises:
            UpstreamFetchError: When the pool cannot be opened or the query fails.
        """
        try:
            pool = await self._get_pool()
            rows = await pool.fetch(_WEEKLY_METRICS_QUERY)
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError) as exc:
            logger.error("Weekly metrics query failed: %s", exc)
            raise UpstreamFetchError(_SOURCE, f"query failed: {exc}") from exc

        records = [
            {column: _json_safe(value) for column, value in row.items()}
            for row in rows
        ]
        records.sort(key=_week_sort_key, reverse=True)
        logger.debug("Fetched %d weekly metrics rows", len(records))
        return records

    async def close(self) -> None:
        """Close the connection pool if it was opened."""
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            logger.info("PostgreSQL pool closed")
