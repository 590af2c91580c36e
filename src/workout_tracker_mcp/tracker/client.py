"""Key-value storage API client."""

import logging
from typing import Any
from urllib.parse import quote

import httpx

from workout_tracker_mcp.tracker.exceptions import APIError, NotFound, RemoteUnavailable

logger = logging.getLogger(__name__)

STORAGE_PATH = "/api/storage"


class KeyValueStoreClient:
    """Client for the workout tracker's flat JSON key-value storage API."""

    def __init__(
        self,
        base_url: str = "http://localhost:3000",
        timeout: float = 30,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _url(self, key: str) -> str:
        return f"{self.base_url}{STORAGE_PATH}/{quote(key, safe='')}"

    async def _request(self, method: str, key: str, **kwargs) -> dict:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(method, self._url(key), **kwargs)
        except httpx.HTTPError as exc:
            raise RemoteUnavailable(f"{method} {key!r} failed: {exc}") from exc

        if response.status_code == 404 and method == "GET":
            raise NotFound(key)

        if response.status_code >= 400:
            raise APIError(
                f"Storage request failed: {response.text}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as exc:
            raise APIError(
                f"Storage returned invalid JSON for {key!r}",
                status_code=response.status_code,
            ) from exc

    async def get(self, key: str) -> Any:
        """Fetch the value stored under ``key``; raises NotFound when absent."""
        data = await self._request("GET", key)
        if "value" not in data:
            raise NotFound(key)
        logger.debug("Fetched %r from storage", key)
        return data["value"]

    async def put(self, key: str, value: Any) -> None:
        await self._request("PUT", key, json={"value": value})
        logger.debug("Stored %r", key)

    async def delete(self, key: str) -> None:
        await self._request("DELETE", key)
        logger.debug("Deleted %r", key)
