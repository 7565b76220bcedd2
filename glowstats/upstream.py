"""
Shared JSON GET helper for the httpx-based upstream clients.

Translates every transport or decoding failure into the service's error
types so that callers never have to inspect ``None`` sentinels.
"""

import logging
from typing import Any, Optional

import httpx

from glowstats.errors import ParseError, UpstreamFetchError

logger = logging.getLogger(__name__)


async def get_json(
    client: httpx.AsyncClient,
    url: str,
    source: str,
    headers: Optional[dict[str, str]] = None,
) -> Any:
    """
    GET *url* and return the decoded JSON body.

    Args:
        client: Open ``httpx.AsyncClient`` to issue the request with.
        url: Absolute URL, or a path relative to the client's ``base_url``.
        source: Upstream name used in logs and error messages.
        headers: Extra request headers (never logged).

    Raises:
        UpstreamFetchError: On timeout, network error or a non-2xx status.
        ParseError: When the body is not valid JSON.
    """
    logger.debug("%s request: GET %s", source, url)
    try:
        response = await client.get(url, headers=headers)
    except httpx.TimeoutException as exc:
        logger.error("%s request timed out: GET %s — %s", source, url, exc)
        raise UpstreamFetchError(source, f"timed out: {exc}") from exc
    except httpx.RequestError as exc:
        logger.error("%s network error: GET %s — %s", source, url, exc)
        raise UpstreamFetchError(source, f"network error: {exc}") from exc

    if response.is_error:
        body_snippet = response.text[:200] if response.text else "<empty body>"
        logger.error(
            "%s HTTP error %d on GET %s — body: %s",
            source,
            response.status_code,
            url,
            body_snippet,
        )
        raise UpstreamFetchError(
            source,
            f"HTTP {response.status_code}",
            status_code=response.status_code,
        )

    try:
        return response.json()
    except ValueError as exc:
        logger.error("%s JSON decode error on GET %s — %s", source, url, exc)
        raise ParseError(f"{source}: response is not valid JSON") from exc
