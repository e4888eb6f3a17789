"""Credential store and token refresh collaborators."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

import structlog

from tagsync.transport import Transport

log = structlog.get_logger(__name__)


@runtime_checkable
class CredentialStore(Protocol):
    """Holds the bearer token and, optionally, a refresh credential."""

    def get_token(self) -> str | None: ...

    def set_token(self, token: str | None) -> None: ...

    def clear_token(self) -> None: ...

    def get_refresh_token(self) -> str | None: ...


class MemoryCredentialStore:
    """In-process credential store."""

    def __init__(
        self, token: str | None = None, refresh_token: str | None = None
    ) -> None:
        self._token = token
        self._refresh_token = refresh_token

    def get_token(self) -> str | None:
        return self._token

    def set_token(self, token: str | None) -> None:
        self._token = token

    def clear_token(self) -> None:
        self._token = None
        self._refresh_token = None

    def get_refresh_token(self) -> str | None:
        return self._refresh_token

    def set_refresh_token(self, token: str | None) -> None:
        self._refresh_token = token


class TokenRefresher(Protocol):
    async def __call__(self, credentials: CredentialStore) -> bool:
        """Obtain a new access token and store it. Return True on success."""
        ...


class HttpTokenRefresher:
    """Exchange the refresh token for a new access token over the transport.

    Expects the backend envelope ``{"data": {"accessToken": ...}}``.
    """

    def __init__(
        self,
        transport: Transport,
        path: str = "/auth/refresh-token",
        *,
        token_field: str = "accessToken",
    ) -> None:
        self._transport = transport
        self._path = path
        self._token_field = token_field

    async def __call__(self, credentials: CredentialStore) -> bool:
        refresh_token = credentials.get_refresh_token()
        if not refresh_token:
            return False
        response = await self._transport.send(
            "POST", self._path, body={"refreshToken": refresh_token}
        )
        if not response.is_success or not isinstance(response.body, dict):
            log.info("auth.refresh", ok=False, status=response.status)
            return False
        payload = response.body.get("data", response.body)
        token = payload.get(self._token_field) if isinstance(payload, dict) else None
        if not token:
            log.info("auth.refresh", ok=False, status=response.status)
            return False
        credentials.set_token(token)
        log.info("auth.refresh", ok=True)
        return True
