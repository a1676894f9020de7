"""Skywatch API — FastAPI application entry point.

Run locally:
    uvicorn skywatch.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from skywatch.clients import build_fetchers, build_http_client
from skywatch.config import get_settings
from skywatch.middleware.rate_limit import RateLimitMiddleware, SlidingWindowRateLimiter
from skywatch.routers import feeds, health
from skywatch.services.cache import close_redis, init_redis
from skywatch.services.database import close_pool, init_pool
from skywatch.storage import build_targets
from skywatch.sync.locks import build_lock_coordinator
from skywatch.sync.scheduler import SyncScheduler
from skywatch.sync.sources import build_descriptors, load_source_config
from skywatch.sync.store import CacheAsideStore

# ---------- Logging ----------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    stream=sys.stdout,
)
logger = logging.getLogger("skywatch")


# ---------- Lifespan ----------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup / shutdown hooks.

    Any failure during startup (database or Redis unreachable, invalid
    source config) propagates and the app refuses to start, after closing
    whatever was already opened.
    """
    settings = get_settings()
    logging.getLogger("skywatch").setLevel(settings.log_level.upper())
    logger.info(
        "Starting %s v%s [%s]",
        settings.app_name,
        settings.app_version,
        settings.environment,
    )

    http_client = None
    scheduler = None
    try:
        pool = await init_pool(settings)
        cache = await init_redis(settings)
        http_client = build_http_client(settings)

        targets = build_targets(pool, acquire_timeout=settings.db_acquire_timeout)
        for target in targets.values():
            await target.init_tables()

        specs = load_source_config(settings=settings)
        descriptors = build_descriptors(specs, build_fetchers(settings, http_client), targets)
        locks = build_lock_coordinator(settings, pool, cache, source_count=len(descriptors))
        scheduler = SyncScheduler(descriptors, locks, CacheAsideStore(cache))
        scheduler.start()
        app.state.scheduler = scheduler
        logger.info("Sync scheduler started with %d sources", len(descriptors))

        yield
    finally:
        if scheduler is not None:
            await scheduler.stop()
        if http_client is not None:
            await http_client.aclose()
        # Both are no-ops when their init never ran or already failed
        await close_redis()
        await close_pool()
        logger.info("%s shut down", settings.app_name)


# ---------- App factory ----------

def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title="Skywatch API",
        description=(
            "Space data aggregation: ISS position, NASA OSDR, APOD, NEO, "
            "DONKI and SpaceX feeds, kept fresh by background sync tasks."
        ),
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ---------- Middleware (outermost first) ----------

    limiter = SlidingWindowRateLimiter(
        max_requests=settings.rate_limit_per_minute,
        window_seconds=settings.rate_limit_window_seconds,
    )
    app.add_middleware(RateLimitMiddleware, limiter=limiter)

    # CORS must be innermost so it can handle preflight
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-RateLimit-Limit", "X-RateLimit-Remaining", "Retry-After"],
    )

    # ---------- Health check (always at /health) ----------
    app.include_router(health.router)

    # ---------- API v1 routes ----------
    app.include_router(feeds.router, prefix="/api/v1")

    return app


app = create_app()
