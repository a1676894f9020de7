"""NASA open API client.

Endpoints used:
    OSDR dataset listing          — configurable URL (``nasa_osdr_url``)
    /planetary/apod               — Astronomy Picture of the Day
    /neo/rest/v1/feed             — Near-Earth objects, next 7 days
    /DONKI/FLR                    — Solar flares, last 30 days
    /DONKI/CME                    — Coronal mass ejections, last 30 days

All endpoints take the ``api_key`` query parameter (``DEMO_KEY`` works with a
low rate limit).
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Any, Callable

import httpx

from skywatch.clients.base import JsonClient

logger = logging.getLogger("skywatch.clients.nasa")

NEO_WINDOW_DAYS = 7
DONKI_WINDOW_DAYS = 30


class NasaClient(JsonClient):
    NAME = "nasa"

    def __init__(
        self,
        api_key: str,
        api_base: str = "https://api.nasa.gov",
        osdr_url: str = "https://visualization.osdr.nasa.gov/biodata/api/v2/datasets/?format=json",
        http_client: httpx.AsyncClient | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        """Initialize the NASA client.

        Args:
            api_key:     NASA API key.
            api_base:    Base URL for api.nasa.gov endpoints.
            osdr_url:    Full OSDR dataset listing URL.
            http_client: Shared httpx client.
            today:       Returns the reference date for windowed feeds.
        """
        super().__init__(http_client)
        self._api_key = api_key
        self._api_base = api_base.rstrip("/")
        self._osdr_url = osdr_url
        self._today = today

    async def fetch_osdr(self) -> Any:
        logger.info("Fetching OSDR datasets from %s", self._osdr_url)
        return await self._get(self._osdr_url, params={"api_key": self._api_key})

    async def fetch_apod(self) -> Any:
        logger.info("Fetching APOD")
        return await self._get(
            f"{self._api_base}/planetary/apod", params={"api_key": self._api_key}
        )

    async def fetch_neo_feed(self) -> Any:
        start = self._today()
        end = start + timedelta(days=NEO_WINDOW_DAYS)
        logger.info("Fetching NEO feed from %s to %s", start, end)
        return await self._get(
            f"{self._api_base}/neo/rest/v1/feed",
            params={
                "api_key": self._api_key,
                "start_date": start.isoformat(),
                "end_date": end.isoformat(),
            },
        )

    async def fetch_donki_flr(self) -> Any:
        return await self._fetch_donki("FLR")

    async def fetch_donki_cme(self) -> Any:
        return await self._fetch_donki("CME")

    async def _fetch_donki(self, kind: str) -> Any:
        end = self._today()
        start = end - timedelta(days=DONKI_WINDOW_DAYS)
        logger.info("Fetching DONKI %s events from %s to %s", kind, start, end)
        return await self._get(
            f"{self._api_base}/DONKI/{kind}",
            params={
                "api_key": self._api_key,
                "startDate": start.isoformat(),
                "endDate": end.isoformat(),
            },
        )
