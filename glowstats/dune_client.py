"""
Dune Analytics API client.

Reads the latest cached result of a saved query; the service never triggers
query executions.

Auth: ``X-Dune-API-Key`` header.
"""

import logging
from typing import Optional

import httpx

from glowstats.config import get_settings
from glowstats.errors import ParseError
from glowstats.upstream import get_json

logger = logging.getLogger(__name__)

_SOURCE: str = "dune"


class DuneClient:
    """Async HTTP client for Dune query results."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        settings = get_settings()
        self._client = httpx.AsyncClient(
            base_url=(base_url or settings.dune_base_url).rstrip("/") + "/",
            headers={
                "X-Dune-API-Key": api_key or settings.dune_api_key,
                "Accept": "application/json",
            },
            timeout=httpx.Timeout(timeout or settings.upstream_timeout),
            transport=transport,
        )

    async def get_latest_result_rows(self, query_id: int) -> list[dict]:
        """
        Return ``result.rows`` of the latest result for *query_id*.

        Raises:
            UpstreamFetchError: When the API cannot be reached.
            ParseError: When the payload has no ``result.rows`` list.
        """
        payload = await get_json(self._client, f"query/{query_id}/results", _SOURCE)
        try:
            rows = payload["result"]["rows"]
        except (KeyError, TypeError) as exc:
            raise ParseError(f"{_SOURCE}: query {query_id} result has no rows") from exc
        if not isinstance(rows, list):
            raise ParseError(f"{_SOURCE}: query {query_id} rows is not a list")
        return rows

    async def get_latest_holder_count(self, query_id: int) -> int:
        """
        Return ``latest_holder_count`` from the first row of *query_id*.

        A null count is reported as ``0``.

        Raises:
            UpstreamFetchError: When the API cannot be reached.
            ParseError: When the result is empty or the count is not an integer.
        """
        rows = await self.get_latest_result_rows(query_id)
        if not rows or not isinstance(rows[0], dict):
            raise ParseError(f"{_SOURCE}: query {query_id} returned no rows")

        count = rows[0].get("latest_holder_count")
        if count is None:
            logger.warning("Dune query %d returned a null holder count", query_id)
            return 0
        try:
            return int(count)
        except (TypeError, ValueError) as exc:
            raise ParseError(
                f"{_SOURCE}: latest_holder_count {count!r} is not an integer"
            ) from exc

    async def close(self) -> None:
        """Close the underlying HTTP client and release connections."""
        await self._client.aclose()
