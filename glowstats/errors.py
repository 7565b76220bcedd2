"""
Exception types shared by the upstream clients, the compute chains and the
request layer.

Nothing in this module is ever written into the cache: every failure either
surfaces to the caller or is logged by the scheduler.
"""

from typing import Optional


class GlowStatsError(Exception):
    """Base exception for the service."""


class UpstreamFetchError(GlowStatsError):
    """Network failure, timeout or non-2xx status from an upstream source."""

    def __init__(self, source: str, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(f"{source}: {message}")
        self.source = source
        self.status_code = status_code


class ParseError(GlowStatsError):
    """Upstream payload had an unexpected shape or an unparseable value."""


class ComputeError(GlowStatsError):
    """Any other exception escaping a cache key's compute chain."""

    def __init__(self, key: str, cause: BaseException) -> None:
        super().__init__(f"Compute for {key!r} failed: {cause}")
        self.key = key
        self.cause = cause


class DataUnavailableError(GlowStatsError):
    """A read-through miss could not be filled; mapped to HTTP 500."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Data for {key!r} is unavailable")
        self.key = key
