"""Shared async JSON-over-HTTP plumbing for the backend and prover clients."""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from .errors import NetworkError
from .wire import deserialize, serialize


logger = logging.getLogger(__name__)


class ServiceClient:
    """Thin httpx wrapper: wire-safe JSON bodies, optional ``api-key`` header, typed errors."""

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout_seconds: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._http = httpx.AsyncClient(timeout=timeout_seconds, transport=transport)

    def _headers(self, has_body: bool) -> dict[str, str]:
        headers: dict[str, str] = {"Accept": "application/json"}
        if has_body:
            headers["Content-Type"] = "application/json"
        if self._api_key:
            headers["api-key"] = self._api_key
        return headers

    async def _request(self, method: str, path: str, payload: Any = None) -> Any:
        url = f"{self.base_url}{path}"
        content = serialize(payload) if payload is not None else None
        try:
            response = await self._http.request(
                method,
                url,
                content=content,
                headers=self._headers(content is not None),
            )
        except httpx.TimeoutException as e:
            raise NetworkError(f"Request timeout: {method} {path}: {e}") from e
        except httpx.TransportError as e:
            raise NetworkError(f"Connection failed: {method} {path}: {e}") from e
        except httpx.HTTPError as e:
            raise NetworkError(f"HTTP error: {method} {path}: {e}") from e

        if response.status_code >= 400:
            raise NetworkError(
                f"{method} {path} failed ({response.status_code}): {response.text[:200]}",
                status_code=response.status_code,
            )
        return deserialize(response.content)

    async def _get(self, path: str) -> Any:
        return await self._request("GET", path)

    async def _post(self, path: str, payload: Any) -> Any:
        return await self._request("POST", path, payload)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.aclose()


def is_transient(error: NetworkError) -> bool:
    """Transport failures and 5xx answers are worth retrying; 4xx are not."""
    return error.status_code is None or error.status_code >= 500
