"""
FastAPI application entry point for the Glowstats API.

Wires together all application components: CORS and rate limit middleware,
route registration, upstream clients, the shared TTL cache, the read-through
layer and the background revalidation scheduler.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from glowstats.aggregator import GlowAggregator
from glowstats.audits_client import AuditsClient
from glowstats.cache import TTLCache
from glowstats.config import Settings, settings
from glowstats.contract_client import GlowContractClient
from glowstats.dune_client import DuneClient
from glowstats.errors import DataUnavailableError
from glowstats.glow_green_client import GlowGreenClient
from glowstats.metrics_repository import WeeklyMetricsRepository
from glowstats.rate_limit import RateLimitMiddleware
from glowstats.read_through import ReadThroughCache
from glowstats.routes.stats import router as stats_router
from glowstats.scheduler import RevalidationScheduler

# ---------------------------------------------------------------------------
# Logging — configured at module level before anything else runs
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

ERROR_BODY: dict[str, str] = {"error": "Failed to retrieve data"}


# ---------------------------------------------------------------------------
# Lifespan — manages startup and shutdown of long-lived resources
# ---------------------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Manage application lifecycle: initialise shared resources on startup,
    tear them down cleanly on shutdown.

    Startup sequence:
      1. Create the upstream clients and the weekly metrics repository.
      2. Build the TTL cache, the aggregator and the read-through layer and
         store them on ``app.state``.
      3. Start the revalidation scheduler; its first pass runs immediately
         in the background so startup is not blocked by upstream latency.

    Shutdown sequence:
      1. Stop the scheduler, cancelling any pass in progress.
      2. Close every HTTP client and the database pool.
    """
    cfg: Settings = app.state.settings
    logger.info("Starting Glowstats API …")

    timeout = cfg.upstream_timeout
    audits_client = AuditsClient(url=cfg.audits_url, timeout=timeout)
    glow_green_client = GlowGreenClient(base_url=cfg.glow_green_api, timeout=timeout)
    dune_client = DuneClient(
        api_key=cfg.dune_api_key,
        base_url=cfg.dune_base_url,
        timeout=timeout,
    )
    contract_client = GlowContractClient(
        node_url=cfg.infura_url,
        contract_address=cfg.glow_price_contract_address,
        timeout=timeout,
    )
    metrics_repository = WeeklyMetricsRepository(dsn=cfg.postgres_url, command_timeout=timeout)

    cache = TTLCache(default_ttl=cfg.cache_ttl)
    aggregator = GlowAggregator(
        audits_client=audits_client,
        glow_green_client=glow_green_client,
        dune_client=dune_client,
        contract_client=contract_client,
        metrics_repository=metrics_repository,
        genesis_timestamp=cfg.genesis_timestamp,
        dune_holders_query_id=cfg.dune_holders_query_id,
        skip_malformed_audit_dates=cfg.skip_malformed_audit_dates,
    )
    compute_functions = aggregator.compute_functions()

    app.state.cache = cache
    app.state.compute_functions = compute_functions
    app.state.read_through = ReadThroughCache(cache, coalesce=cfg.coalesce_cache_misses)

    scheduler = RevalidationScheduler(cache, compute_functions, cfg.refresh_interval)
    app.state.scheduler = scheduler
    await scheduler.start()

    logger.info("Glowstats API startup complete — serving requests")

    yield  # application runs here

    logger.info("Shutting down Glowstats API …")

    await scheduler.stop()
    for name, resource in (
        ("audits client", audits_client),
        ("glow green client", glow_green_client),
        ("dune client", dune_client),
        ("metrics repository", metrics_repository),
    ):
        try:
            await resource.close()
        except Exception as exc:
            logger.error("Failed to close %s: %s", name, exc)

    logger.info("Glowstats API shutdown complete")


async def data_unavailable_handler(request: Request, exc: DataUnavailableError) -> JSONResponse:
    logger.error("Returning 500 for %s: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content=ERROR_BODY)


def create_app(cfg: Optional[Settings] = None) -> FastAPI:
    """Build the FastAPI application; *cfg* defaults to the environment settings."""
    cfg = cfg or settings

    app = FastAPI(
        title="Glowstats API",
        description="API for retrieving solar farm and token statistics",
        version="1.0.0",
        docs_url="/api-docs",
        lifespan=lifespan,
    )
    app.state.settings = cfg

    app.add_exception_handler(DataUnavailableError, data_unavailable_handler)

    app.add_middleware(
        RateLimitMiddleware,
        max_requests=cfg.rate_limit_max_requests,
        window_seconds=cfg.rate_limit_window_seconds,
        exempt_paths=("/health",),
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    app.include_router(stats_router, tags=["stats"])

    @app.get("/health", tags=["health"])
    async def health_check() -> dict[str, str]:
        """Return service liveness status."""
        return {"status": "ok", "service": "glowstats"}

    return app


app = create_app()


def run() -> None:
    """Serve the application with uvicorn on the configured port."""
    uvicorn.run(app, host="0.0.0.0", port=settings.port, log_level=settings.log_level.lower())
