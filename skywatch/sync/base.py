"""Core data types shared by the sync machinery.

These are the values that flow through one sync cycle: a source's static
descriptor, the result of a fetch, the entry written to cache and durable
store, and the handle for the lock guarding the cycle.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Awaitable, Callable

if TYPE_CHECKING:
    from skywatch.storage.base import DurableTarget

#: A zero-argument coroutine function that performs one upstream request.
FetchOperation = Callable[[], Awaitable[Any]]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Source descriptor
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SourceDescriptor:
    """Static configuration for one polled source.

    Built once at startup and never mutated.  ``lock_id`` is shared by every
    replica of the service: it is the only thing that keeps two replicas from
    polling the same source in the same interval, so it must be unique across
    all sources.

    Attributes:
        name:      Unique source slug ('iss', 'osdr', 'apod', ...).
        lock_id:   Distributed lock identifier (64-bit signed integer).
        interval:  Seconds to sleep between cycles.
        fetch:     Zero-argument coroutine function returning the payload.
        cache_key: Redis key holding the latest entry.
        cache_ttl: Redis expiry in seconds.
        target:    Durable persistence target for this source.
    """

    name: str
    lock_id: int
    interval: float
    fetch: FetchOperation = field(compare=False)
    cache_key: str
    cache_ttl: int
    target: "DurableTarget" = field(compare=False)


# ---------------------------------------------------------------------------
# Per-cycle values
# ---------------------------------------------------------------------------


@dataclass
class FetchResult:
    """Payload returned by an upstream API and when it was retrieved."""

    payload: Any
    fetched_at: datetime = field(default_factory=utc_now)


@dataclass
class CacheEntry:
    """Latest known value for a source.

    Written to Redis as JSON and to the durable target on every successful
    fetch.  Superseded, never deleted, by the next write.
    """

    source: str
    payload: Any
    fetched_at: datetime

    @classmethod
    def from_fetch(cls, source: str, result: FetchResult) -> "CacheEntry":
        return cls(source=source, payload=result.payload, fetched_at=result.fetched_at)

    def to_json(self) -> str:
        return json.dumps(
            {
                "source": self.source,
                "payload": self.payload,
                "fetched_at": self.fetched_at.isoformat(),
            }
        )

    @classmethod
    def from_json(cls, raw: str | bytes) -> "CacheEntry":
        """Decode a cached entry.

        Raises:
            ValueError: If ``raw`` is not a JSON object with the expected keys.
        """
        try:
            data = json.loads(raw)
            return cls(
                source=data["source"],
                payload=data["payload"],
                fetched_at=datetime.fromisoformat(data["fetched_at"]),
            )
        except (KeyError, TypeError) as exc:
            raise ValueError(f"Malformed cache entry: {exc}") from exc


@dataclass
class LockHandle:
    """One acquire/release bracket within a single cycle."""

    lock_id: int
    held: bool = False
