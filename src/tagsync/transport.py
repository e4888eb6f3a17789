"""Transport collaborators: the literal network call."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable

import httpx

from tagsync.errors import NetworkError
from tagsync.types import TransportResponse


@runtime_checkable
class Transport(Protocol):
    """Performs one HTTP exchange.

    Returns the status and decoded body for any HTTP response (including
    4xx/5xx) and raises ``NetworkError`` when no response was obtained.
    """

    async def send(
        self,
        method: str,
        path: str,
        body: Any = None,
        headers: Mapping[str, str] | None = None,
        params: Mapping[str, Any] | None = None,
    ) -> TransportResponse: ...

    async def close(self) -> None: ...


def _decode(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


class HttpxTransport:
    """Transport backed by ``httpx.AsyncClient``."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            headers={"Content-Type": "application/json"},
            timeout=timeout,
        )

    async def send(
        self,
        method: str,
        path: str,
        body: Any = None,
        headers: Mapping[str, str] | None = None,
        params: Mapping[str, Any] | None = None,
    ) -> TransportResponse:
        try:
            response = await self._client.request(
                method,
                path,
                json=body,
                headers=dict(headers or {}),
                params=dict(params) if params else None,
            )
        except httpx.TransportError as e:
            raise NetworkError(f"{method} {path} failed: {e}") from e
        return TransportResponse(status=response.status_code, body=_decode(response))

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()
