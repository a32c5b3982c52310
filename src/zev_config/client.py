"""ZEV backend REST API client."""

from __future__ import annotations

from types import TracebackType
from typing import Any

import aiohttp

REQUEST_TIMEOUT = 30.0


class ZEVClientError(Exception):
    """Error from the ZEV backend API."""


class ZEVClient:
    """Async context manager for the ZEV backend REST API.

    Usage::

        async with ZEVClient("http://zev.local:8080", "token") as client:
            meters = await client.get("/meters")

    A *session* may be passed in; it is then left open on exit.
    """

    def __init__(
        self,
        url: str,
        token: str | None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._url = url.rstrip("/")
        self._token = token
        self._session = session
        self._owns_session = session is None

    @property
    def _api_url(self) -> str:
        base = self._url
        return base if base.endswith("/api") else f"{base}/api"

    @property
    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def __aenter__(self) -> ZEVClient:
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=REQUEST_TIMEOUT)
            )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._session and self._owns_session:
            await self._session.close()
            self._session = None

    async def request(self, method: str, path: str, payload: Any = None) -> Any:
        """Send a request and return the decoded JSON body (None if empty)."""
        if not self._session:
            raise ZEVClientError("Not connected")

        url = f"{self._api_url}/{path.lstrip('/')}"
        try:
            async with self._session.request(
                method, url, json=payload, headers=self._headers
            ) as resp:
                if resp.status == 401:
                    raise ZEVClientError("Auth failed: invalid or expired token")
                if resp.status >= 400:
                    text = await resp.text()
                    raise ZEVClientError(f"{method} {path} failed ({resp.status}): {text.strip()}")
                if resp.status == 204:
                    return None
                return await resp.json(content_type=None)
        except ZEVClientError:
            raise
        except TimeoutError:
            raise ZEVClientError(
                f"Request '{method} {path}' timed out after {REQUEST_TIMEOUT:.0f}s"
            ) from None
        except aiohttp.ClientError as exc:
            raise ZEVClientError(f"Cannot reach {self._url}: {exc}") from None

    async def get(self, path: str) -> Any:
        return await self.request("GET", path)

    async def post(self, path: str, payload: Any) -> Any:
        return await self.request("POST", path, payload)

    async def put(self, path: str, payload: Any) -> Any:
        return await self.request("PUT", path, payload)
