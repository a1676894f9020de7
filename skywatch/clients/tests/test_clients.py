"""Tests for the upstream API clients using httpx's mock transport."""

from __future__ import annotations

from datetime import date

import httpx
import pytest

from skywatch.clients import IssClient, NasaClient, SpaceXClient, build_fetchers
from skywatch.config import Settings
from skywatch.errors import FetchError

TODAY = date(2026, 3, 1)


class Recorder:
    """Mock transport handler that records requests and replies with JSON."""

    def __init__(self, status: int = 200, body: object = None, text: str | None = None) -> None:
        self.status = status
        self.body = body if body is not None else {"ok": True}
        self.text = text
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.text is not None:
            return httpx.Response(self.status, text=self.text)
        return httpx.Response(self.status, json=self.body)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


def _http(handler: Recorder) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _nasa(handler: Recorder) -> NasaClient:
    return NasaClient(
        "test-key",
        api_base="https://api.nasa.test",
        osdr_url="https://osdr.nasa.test/datasets/?format=json",
        http_client=_http(handler),
        today=lambda: TODAY,
    )


class TestIssClient:
    @pytest.mark.asyncio
    async def test_fetch_position(self) -> None:
        handler = Recorder(body={"latitude": 51.6, "longitude": -0.1, "velocity": 27600})
        client = IssClient("https://iss.test/v1/satellites/25544", http_client=_http(handler))

        payload = await client.fetch_position()

        assert payload["latitude"] == 51.6
        assert str(handler.last.url) == "https://iss.test/v1/satellites/25544"

    @pytest.mark.asyncio
    async def test_server_error_raises_fetch_error(self) -> None:
        client = IssClient("https://iss.test/pos", http_client=_http(Recorder(status=503)))
        with pytest.raises(FetchError, match="503"):
            await client.fetch_position()

    @pytest.mark.asyncio
    async def test_invalid_json_raises_fetch_error(self) -> None:
        client = IssClient("https://iss.test/pos", http_client=_http(Recorder(text="<html>")))
        with pytest.raises(FetchError, match="invalid JSON"):
            await client.fetch_position()

    @pytest.mark.asyncio
    async def test_transport_error_raises_fetch_error(self) -> None:
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = IssClient(
            "https://iss.test/pos",
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(refuse)),
        )
        with pytest.raises(FetchError, match="connection refused"):
            await client.fetch_position()


class TestNasaClient:
    @pytest.mark.asyncio
    async def test_osdr_keeps_configured_query(self) -> None:
        handler = Recorder(body={"items": []})
        await _nasa(handler).fetch_osdr()
        params = handler.last.url.params
        assert handler.last.url.host == "osdr.nasa.test"
        assert params["format"] == "json"
        assert params["api_key"] == "test-key"

    @pytest.mark.asyncio
    async def test_apod(self) -> None:
        handler = Recorder(body={"title": "M31"})
        assert await _nasa(handler).fetch_apod() == {"title": "M31"}
        assert handler.last.url.path == "/planetary/apod"

    @pytest.mark.asyncio
    async def test_neo_feed_covers_next_seven_days(self) -> None:
        handler = Recorder()
        await _nasa(handler).fetch_neo_feed()
        params = handler.last.url.params
        assert handler.last.url.path == "/neo/rest/v1/feed"
        assert params["start_date"] == "2026-03-01"
        assert params["end_date"] == "2026-03-08"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("kind", ["FLR", "CME"])
    async def test_donki_covers_last_thirty_days(self, kind: str) -> None:
        handler = Recorder(body=[])
        client = _nasa(handler)
        fetch = client.fetch_donki_flr if kind == "FLR" else client.fetch_donki_cme

        assert await fetch() == []

        params = handler.last.url.params
        assert handler.last.url.path == f"/DONKI/{kind}"
        assert params["startDate"] == "2026-01-30"
        assert params["endDate"] == "2026-03-01"


class TestSpaceXClient:
    @pytest.mark.asyncio
    async def test_next_launch(self) -> None:
        handler = Recorder(body={"name": "Starlink"})
        client = SpaceXClient("https://spacex.test/", http_client=_http(handler))
        assert await client.fetch_next_launch() == {"name": "Starlink"}
        assert str(handler.last.url) == "https://spacex.test/v5/launches/next"


class TestBuildFetchers:
    @pytest.mark.asyncio
    async def test_registry_names_and_shared_client(self) -> None:
        handler = Recorder()
        settings = Settings(
            database_url="postgresql://localhost/skywatch",
            iss_url="https://iss.test/pos",
        )

        fetchers = build_fetchers(settings, _http(handler))

        assert set(fetchers) == {
            "iss_position",
            "osdr_datasets",
            "apod",
            "neo_feed",
            "donki_flr",
            "donki_cme",
            "spacex_next_launch",
        }
        await fetchers["iss_position"]()
        assert str(handler.last.url) == "https://iss.test/pos"
