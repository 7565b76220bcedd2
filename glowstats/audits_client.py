"""
Client for the public Glow farm audits endpoint.

Returns the raw audit list unchanged; shaping into weekly buckets happens in
``glowstats.engines.farm_aggregation``.
"""

import logging
from typing import Any, Optional

import httpx

from glowstats.config import get_settings
from glowstats.errors import ParseError
from glowstats.upstream import get_json

logger = logging.getLogger(__name__)

_SOURCE: str = "audits"


class AuditsClient:
    """Async HTTP client for the farm audits API."""

    def __init__(
        self,
        url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        settings = get_settings()
        self._url: str = url or settings.audits_url
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout or settings.upstream_timeout),
            headers={"Accept": "application/json"},
            transport=transport,
        )

    async def fetch_audits(self) -> list[dict[str, Any]]:
        """
        Fetch every published farm audit.

        Raises:
            UpstreamFetchError: When the endpoint cannot be reached.
            ParseError: When the payload is not a JSON array.
        """
        payload = await get_json(self._client, self._url, _SOURCE)
        if not isinstance(payload, list):
            raise ParseError(
                f"{_SOURCE}: expected a JSON array, got {type(payload).__name__}"
            )
        logger.debug("Fetched %d audits", len(payload))
        return payload

    async def close(self) -> None:
        """Close the underlying HTTP client and release connections."""
        await self._client.aclose()
