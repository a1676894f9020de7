"""Health check endpoint — public, no auth required."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Request

from skywatch.config import get_settings
from skywatch.models.base import HealthResponse
from skywatch.services import database
from skywatch.services.cache import get_redis

router = APIRouter(tags=["system"])
logger = logging.getLogger("skywatch.health")


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Liveness probe. Returns 200 if the API process is up.

    Also pings the database and Redis and reports how many sync tasks are
    running; any failed probe marks the service ``degraded``.
    """
    settings = get_settings()

    db_ok = False
    try:
        await database.ping()
        db_ok = True
    except Exception as exc:
        logger.warning("Health check DB probe failed: %s", exc)

    cache_ok = False
    try:
        await get_redis().ping()
        cache_ok = True
    except Exception as exc:
        logger.warning("Health check Redis probe failed: %s", exc)

    scheduler = getattr(request.app.state, "scheduler", None)
    sync_tasks = scheduler.running if scheduler is not None else 0

    return HealthResponse(
        status="healthy" if db_ok and cache_ok and sync_tasks else "degraded",
        version=settings.app_version,
        environment=settings.environment,
        database="connected" if db_ok else "unreachable",
        cache="connected" if cache_ok else "unreachable",
        sync_tasks=sync_tasks,
        timestamp=datetime.now(timezone.utc),
    )
