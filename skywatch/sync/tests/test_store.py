"""Tests for the cache-aside store."""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from skywatch.errors import MalformedPayloadError, PersistenceError
from skywatch.storage.catalog import CatalogRepo
from skywatch.sync.base import CacheEntry
from skywatch.sync.store import CacheAsideStore
from skywatch.sync.tests.fakes import FakeCache, FakeTarget

FETCHED_AT = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _entry(payload: object = None, source: str = "iss") -> CacheEntry:
    return CacheEntry(source=source, payload=payload or {"lat": 1.5}, fetched_at=FETCHED_AT)


class TestCacheEntry:
    def test_json_round_trip_keeps_timestamp(self) -> None:
        entry = _entry()
        assert CacheEntry.from_json(entry.to_json()) == entry

    @pytest.mark.parametrize("raw", ["not json", "[]", '{"source": "iss"}'])
    def test_from_json_rejects_malformed(self, raw: str) -> None:
        with pytest.raises(ValueError):
            CacheEntry.from_json(raw)


class TestStoreSet:
    @pytest.mark.asyncio
    async def test_writes_cache_with_ttl_and_target(
        self, store: CacheAsideStore, cache: FakeCache, target: FakeTarget
    ) -> None:
        written = await store.set("iss:last", _entry(), ttl=60, target=target)
        assert written == 1
        assert cache.ttls["iss:last"] == 60
        assert CacheEntry.from_json(cache.data["iss:last"]) == _entry()
        assert target.entries == [_entry()]

    @pytest.mark.asyncio
    async def test_cache_failure_still_writes_target(
        self, store: CacheAsideStore, cache: FakeCache, target: FakeTarget
    ) -> None:
        cache.fail_set = True
        written = await store.set("iss:last", _entry(), ttl=60, target=target)
        assert written == 1
        assert target.entries == [_entry()]

    @pytest.mark.asyncio
    async def test_target_failure_raises_persistence_error(
        self, store: CacheAsideStore, target: FakeTarget
    ) -> None:
        target.fail_writes = True
        with pytest.raises(PersistenceError, match="fake_log"):
            await store.set("iss:last", _entry(), ttl=60, target=target)

    @pytest.mark.asyncio
    async def test_malformed_payload_passes_through(self, store: CacheAsideStore) -> None:
        class Rejecting(FakeTarget):
            async def write(self, entry: CacheEntry) -> int:
                raise MalformedPayloadError("no items")

        with pytest.raises(MalformedPayloadError):
            await store.set("nasa:osdr", _entry(), ttl=60, target=Rejecting())

    @pytest.mark.asyncio
    async def test_rejected_payload_is_not_cached(
        self, store: CacheAsideStore, cache: FakeCache
    ) -> None:
        pool = MagicMock()
        repo = CatalogRepo(pool)
        entry = _entry({"items": [{"title": "no dataset id"}]}, source="osdr")

        with pytest.raises(MalformedPayloadError):
            await store.set("nasa:osdr", entry, ttl=600, target=repo)

        assert cache.data == {}
        pool.acquire.assert_not_called()
        # Nothing stale to serve on the next read either
        assert await store.get("nasa:osdr", FakeTarget(), "osdr") is None


class TestStoreGet:
    @pytest.mark.asyncio
    async def test_hit_skips_database(
        self, store: CacheAsideStore, cache: FakeCache, target: FakeTarget
    ) -> None:
        cache.data["iss:last"] = _entry({"lat": 9.0}).to_json()
        result = await store.get("iss:last", target, "iss")
        assert result is not None
        assert result.payload == {"lat": 9.0}
        assert target.latest_calls == 0

    @pytest.mark.asyncio
    async def test_miss_falls_back_to_database(
        self, store: CacheAsideStore, target: FakeTarget
    ) -> None:
        target.entries.append(_entry({"lat": 2.0}))
        result = await store.get("iss:last", target, "iss")
        assert result is not None
        assert result.payload == {"lat": 2.0}
        assert target.latest_calls == 1

    @pytest.mark.asyncio
    async def test_cache_error_falls_back_to_database(
        self, store: CacheAsideStore, cache: FakeCache, target: FakeTarget
    ) -> None:
        cache.fail_get = True
        target.entries.append(_entry())
        assert await store.get("iss:last", target, "iss") == _entry()

    @pytest.mark.asyncio
    async def test_undecodable_cache_entry_falls_back(
        self, store: CacheAsideStore, cache: FakeCache, target: FakeTarget
    ) -> None:
        cache.data["iss:last"] = "{{garbage"
        target.entries.append(_entry())
        assert await store.get("iss:last", target, "iss") == _entry()

    @pytest.mark.asyncio
    async def test_nothing_anywhere_returns_none(
        self, store: CacheAsideStore, target: FakeTarget
    ) -> None:
        assert await store.get("iss:last", target, "iss") is None

    @pytest.mark.asyncio
    async def test_set_then_get_without_cache(
        self, store: CacheAsideStore, cache: FakeCache, target: FakeTarget
    ) -> None:
        await store.set("iss:last", _entry(), ttl=60, target=target)
        cache.data.clear()
        assert await store.get("iss:last", target, "iss") == _entry()
