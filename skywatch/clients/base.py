"""Shared plumbing for upstream JSON APIs."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from skywatch.config import Settings
from skywatch.errors import FetchError

logger = logging.getLogger("skywatch.clients")


def build_http_client(settings: Settings) -> httpx.AsyncClient:
    """Create the ``httpx.AsyncClient`` shared by every upstream client."""
    return httpx.AsyncClient(
        timeout=settings.http_timeout_seconds,
        headers={"User-Agent": settings.http_user_agent},
        follow_redirects=True,
    )


class JsonClient:
    """Base class for clients that GET a JSON document.

    A single attempt per call: retries belong to the caller (see
    ``skywatch.sync.retry``).
    """

    #: Short name for logging.
    NAME: str = "upstream"

    def __init__(self, http_client: httpx.AsyncClient | None = None) -> None:
        """Initialize the client.

        Args:
            http_client: Shared pre-configured httpx client. When omitted a
                         short-lived client is opened per request.
        """
        self._http_client = http_client

    async def _get(self, url: str, params: dict | None = None) -> Any:
        """GET ``url`` and decode the JSON body.

        Args:
            url:    Full endpoint URL.
            params: Query parameters.

        Returns:
            Decoded JSON value.

        Raises:
            FetchError: On transport errors, non-2xx responses or a body
                that is not JSON.
        """
        logger.debug("%s: GET %s", self.NAME, url)
        try:
            if self._http_client:
                response = await self._http_client.get(url, params=params)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.get(url, params=params)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as exc:
            raise FetchError(f"{self.NAME}: GET {url} failed: {exc}") from exc
        except ValueError as exc:
            raise FetchError(f"{self.NAME}: GET {url} returned invalid JSON: {exc}") from exc
