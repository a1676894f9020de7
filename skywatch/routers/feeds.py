"""Feeds — latest synced data per source, sync status and manual sync."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException

from skywatch.dependencies import Scheduler
from skywatch.errors import UnknownSourceError
from skywatch.models.base import FeedEntry, FeedsResponse, SourceStatus, SyncResponse

router = APIRouter(prefix="/feeds", tags=["feeds"])
logger = logging.getLogger("skywatch.feeds")


@router.get("", response_model=FeedsResponse)
async def list_feeds(scheduler: Scheduler) -> FeedsResponse:
    """Latest entry for every source (``null`` for sources never synced)."""
    entries = await scheduler.latest_all()
    return FeedsResponse(
        feeds={
            name: FeedEntry.from_entry(entry) if entry is not None else None
            for name, entry in entries.items()
        }
    )


@router.get("/status", response_model=list[SourceStatus])
async def sync_status(scheduler: Scheduler) -> list[SourceStatus]:
    return [SourceStatus(**row) for row in scheduler.status()]


@router.get("/{source}/latest", response_model=FeedEntry)
async def latest_feed(source: str, scheduler: Scheduler) -> FeedEntry:
    try:
        entry = await scheduler.latest(source)
    except UnknownSourceError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    if entry is None:
        raise HTTPException(status_code=404, detail=f"No data yet for '{source}'")
    return FeedEntry.from_entry(entry)


@router.post("/{source}/sync", response_model=SyncResponse)
async def sync_feed(source: str, scheduler: Scheduler) -> SyncResponse:
    """Run one sync cycle for ``source`` now.

    The cycle still takes the source lock; if another replica holds it the
    response reports ``lock_denied`` rather than waiting.
    """
    try:
        result = await scheduler.trigger(source)
    except UnknownSourceError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    if not result.ok:
        logger.warning("Manual sync of %s ended with %s", source, result.outcome.value)
    return SyncResponse.from_result(result)
