"""SpaceX public API client."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from skywatch.clients.base import JsonClient

logger = logging.getLogger("skywatch.clients.spacex")


class SpaceXClient(JsonClient):
    NAME = "spacex"

    def __init__(
        self,
        api_base: str = "https://api.spacexdata.com",
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(http_client)
        self._api_base = api_base.rstrip("/")

    async def fetch_next_launch(self) -> Any:
        url = f"{self._api_base}/v5/launches/next"
        logger.info("Fetching next SpaceX launch from %s", url)
        return await self._get(url)
