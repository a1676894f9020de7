"""Shared FastAPI dependencies injected into route handlers."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from skywatch.sync.scheduler import SyncScheduler


async def get_scheduler(request: Request) -> SyncScheduler:
    """Return the scheduler the lifespan stored on ``app.state``."""
    scheduler: SyncScheduler | None = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        raise HTTPException(status_code=503, detail="Sync scheduler not running")
    return scheduler


# Annotated shortcuts for route signatures
Scheduler = Annotated[SyncScheduler, Depends(get_scheduler)]
