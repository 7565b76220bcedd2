"""
Glow Green stats API client.

Auth: none.
Endpoint used:
  GET {GLOW_GREEN_API}/headline-stats   — price, supply and market cap
"""

import logging
from typing import Optional

import httpx

from glowstats.config import get_settings
from glowstats.errors import ParseError
from glowstats.upstream import get_json

logger = logging.getLogger(__name__)

_SOURCE: str = "glow-green"

# Upstream field -> field exposed in GlowMetrics
_HEADLINE_FIELDS: dict[str, str] = {
    "glowPrice": "price",
    "circulatingSupply": "circulatingSupply",
    "totalSupply": "totalSupply",
    "marketCap": "marketCap",
}


class GlowGreenClient:
    """Async HTTP client for the Glow Green headline stats API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        settings = get_settings()
        self._client = httpx.AsyncClient(
            base_url=(base_url or settings.glow_green_api).rstrip("/") + "/",
            timeout=httpx.Timeout(timeout or settings.upstream_timeout),
            headers={"Accept": "application/json"},
            transport=transport,
        )

    async def get_headline_stats(self) -> dict[str, float]:
        """
        Fetch the token headline stats.

        Returns:
            ``{"price", "circulatingSupply", "totalSupply", "marketCap"}``

        Raises:
            UpstreamFetchError: When the endpoint cannot be reached.
            ParseError: When a required field is missing or not numeric.
        """
        payload = await get_json(self._client, "headline-stats", _SOURCE)
        if not isinstance(payload, dict):
            raise ParseError(f"{_SOURCE}: headline-stats is not a JSON object")

        stats: dict[str, float] = {}
        for upstream_name, name in _HEADLINE_FIELDS.items():
            value = payload.get(upstream_name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ParseError(
                    f"{_SOURCE}: headline-stats field {upstream_name!r} missing or not numeric"
                )
            stats[name] = value
        return stats

    async def close(self) -> None:
        """Close the underlying HTTP client and release connections."""
        await self._client.aclose()
