"""ISS position client (wheretheiss.at)."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from skywatch.clients.base import JsonClient

logger = logging.getLogger("skywatch.clients.iss")


class IssClient(JsonClient):
    NAME = "iss"

    def __init__(self, url: str, http_client: httpx.AsyncClient | None = None) -> None:
        super().__init__(http_client)
        self._url = url

    async def fetch_position(self) -> Any:
        logger.info("Fetching ISS position from %s", self._url)
        return await self._get(self._url)
