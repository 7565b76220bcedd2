"""
Per-client fixed-window rate limiting middleware.

Every response carries the standard ``RateLimit-Limit``,
``RateLimit-Remaining`` and ``RateLimit-Reset`` headers.  Requests beyond the
limit get a 429 with ``Retry-After`` and a plain-text message.  Counters live
in process memory only.
"""

import logging
import math
import time
from typing import Iterable

from fastapi import Request
from fastapi.responses import PlainTextResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response
from starlette.types import ASGIApp

logger = logging.getLogger(__name__)

REJECTION_MESSAGE: str = "Too many requests, please try again later."

# Expired windows are pruned once the table grows past this many clients.
_PRUNE_THRESHOLD: int = 10_000


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Allow ``max_requests`` per client address in each ``window_seconds``."""

    def __init__(
        self,
        app: ASGIApp,
        max_requests: int,
        window_seconds: float,
        exempt_paths: Iterable[str] = (),
    ) -> None:
        super().__init__(app)
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.exempt_paths = frozenset(exempt_paths)
        # client address -> (hits in current window, window reset timestamp)
        self._windows: dict[str, tuple[int, float]] = {}

    def _hit(self, client: str, now: float) -> tuple[int, float]:
        count, reset_at = self._windows.get(client, (0, now + self.window_seconds))
        if now >= reset_at:
            count, reset_at = 0, now + self.window_seconds
        count += 1
        self._windows[client] = (count, reset_at)
        if len(self._windows) > _PRUNE_THRESHOLD:
            self._prune(now)
        return count, reset_at

    def _prune(self, now: float) -> None:
        expired = [c for c, (_, reset_at) in self._windows.items() if now >= reset_at]
        for client in expired:
            del self._windows[client]
        logger.debug("Pruned %d expired rate limit windows", len(expired))

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in self.exempt_paths:
            return await call_next(request)

        client = request.client.host if request.client else "unknown"
        now = time.time()
        count, reset_at = self._hit(client, now)

        headers = {
            "RateLimit-Limit": str(self.max_requests),
            "RateLimit-Remaining": str(max(0, self.max_requests - count)),
            "RateLimit-Reset": str(max(0, math.ceil(reset_at - now))),
        }

        if count > self.max_requests:
            logger.warning("Rate limit exceeded for %s on %s", client, request.url.path)
            headers["Retry-After"] = headers["RateLimit-Reset"]
            return PlainTextResponse(REJECTION_MESSAGE, status_code=429, headers=headers)

        response = await call_next(request)
        response.headers.update(headers)
        return response
