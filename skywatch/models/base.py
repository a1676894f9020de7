"""Shared Pydantic base models and API response schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict

from skywatch.sync.base import CacheEntry
from skywatch.sync.task import CycleResult


class SkywatchBase(BaseModel):
    """Base model with shared config for all Skywatch schemas."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


# ---------- Feeds ----------


class FeedEntry(SkywatchBase):
    source: str
    payload: Any = None
    fetched_at: datetime

    @classmethod
    def from_entry(cls, entry: CacheEntry) -> "FeedEntry":
        return cls(source=entry.source, payload=entry.payload, fetched_at=entry.fetched_at)


class FeedsResponse(SkywatchBase):
    feeds: dict[str, FeedEntry | None]


class SyncResponse(SkywatchBase):
    source: str
    cycle: int
    outcome: str
    ok: bool
    records_written: int = 0
    error: str | None = None
    started_at: datetime
    finished_at: datetime | None = None

    @classmethod
    def from_result(cls, result: CycleResult) -> "SyncResponse":
        return cls(
            source=result.source,
            cycle=result.cycle,
            outcome=result.outcome.value,
            ok=result.ok,
            records_written=result.records_written,
            error=result.error,
            started_at=result.started_at,
            finished_at=result.finished_at,
        )


# ---------- System ----------


class SourceStatus(SkywatchBase):
    source: str
    lock_id: int
    interval: float
    state: str
    cycles: int
    last_outcome: str | None = None
    last_error: str | None = None
    last_finished_at: datetime | None = None


class HealthResponse(SkywatchBase):
    status: str
    version: str
    environment: str
    database: str
    cache: str
    sync_tasks: int
    timestamp: datetime
