"""Upstream API clients for Skywatch.

Each client performs one HTTP request per call and raises ``FetchError`` on
failure; retrying is left to the sync task.

Available clients:
    IssClient    — ISS position (wheretheiss.at)
    NasaClient   — OSDR, APOD, NEO, DONKI FLR/CME (api.nasa.gov)
    SpaceXClient — next launch (api.spacexdata.com)
"""

from __future__ import annotations

import httpx

from skywatch.clients.base import JsonClient, build_http_client
from skywatch.clients.iss import IssClient
from skywatch.clients.nasa import NasaClient
from skywatch.clients.spacex import SpaceXClient
from skywatch.config import Settings
from skywatch.sync.base import FetchOperation

__all__ = [
    "IssClient",
    "JsonClient",
    "NasaClient",
    "SpaceXClient",
    "build_fetchers",
    "build_http_client",
]


def build_fetchers(
    settings: Settings, http_client: httpx.AsyncClient
) -> dict[str, FetchOperation]:
    """Return fetcher name → zero-argument fetch operation.

    The names are what ``sources.yaml`` refers to in its ``fetcher`` keys.
    """
    iss = IssClient(settings.iss_url, http_client=http_client)
    nasa = NasaClient(
        settings.nasa_api_key,
        api_base=settings.nasa_api_base,
        osdr_url=settings.nasa_osdr_url,
        http_client=http_client,
    )
    spacex = SpaceXClient(settings.spacex_api_base, http_client=http_client)
    return {
        "iss_position": iss.fetch_position,
        "osdr_datasets": nasa.fetch_osdr,
        "apod": nasa.fetch_apod,
        "neo_feed": nasa.fetch_neo_feed,
        "donki_flr": nasa.fetch_donki_flr,
        "donki_cme": nasa.fetch_donki_cme,
        "spacex_next_launch": spacex.fetch_next_launch,
    }
