"""Request execution: one network call per invocation, classified."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from tagsync.credentials import CredentialStore, MemoryCredentialStore, TokenRefresher
from tagsync.errors import (
    ClientError,
    ServerUnavailable,
    TransientError,
    Unauthenticated,
)
from tagsync.registry import EndpointDefinition
from tagsync.transport import Transport
from tagsync.types import RequestSpec, TransportResponse

log = structlog.get_logger(__name__)


def _error_message(response: TransportResponse) -> str:
    body = response.body
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return f"HTTP {response.status}"


class RequestExecutor:
    """Sends endpoint requests through the transport and classifies outcomes.

    ``execute`` raises an ``ExecutionError`` subclass for anything but a
    2xx response. A 401 gets exactly one silent refresh-and-retry when a
    refresher is configured; a 401 that survives it clears the stored
    credential and fires the session-expired listeners. Endpoints declared
    with ``authenticated=False`` get their 401 back as a ClientError.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        credentials: CredentialStore | None = None,
        refresher: TokenRefresher | None = None,
        max_attempts: int = 3,
        retry_base_delay: float = 0.25,
        retry_max_delay: float = 5.0,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._transport = transport
        self._credentials = credentials or MemoryCredentialStore()
        self._refresher = refresher
        self._max_attempts = max_attempts
        self._retry_base_delay = retry_base_delay
        self._retry_max_delay = retry_max_delay
        self._refresh_lock = asyncio.Lock()
        self._session_expired_listeners: list[Callable[[], None]] = []

    @property
    def credentials(self) -> CredentialStore:
        return self._credentials

    def on_session_expired(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register a listener; returns a function that removes it."""
        self._session_expired_listeners.append(callback)

        def remove() -> None:
            if callback in self._session_expired_listeners:
                self._session_expired_listeners.remove(callback)

        return remove

    async def execute(self, endpoint: EndpointDefinition, args: Any) -> Any:
        """Run one invocation of *endpoint* and return the raw response body."""
        request = endpoint.request_for(args)
        token = self._credentials.get_token()
        response = await self._send(request, token)

        if response.status == 401 and endpoint.authenticated:
            if await self._refresh(token):
                response = await self._send(request, self._credentials.get_token())
            if response.status == 401:
                self._expire_session(endpoint.name)
                raise Unauthenticated()

        if response.is_success:
            return response.body
        if response.status >= 500:
            raise TransientError(f"HTTP {response.status}", status=response.status)
        raise ClientError(response.status, _error_message(response), response.body)

    async def execute_with_retry(self, endpoint: EndpointDefinition, args: Any) -> Any:
        """Like ``execute`` but retries transient failures with exponential backoff.

        Raises ``ServerUnavailable`` once the attempt cap is reached.
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(
                multiplier=self._retry_base_delay, max=self._retry_max_delay
            ),
            retry=retry_if_exception_type(TransientError),
            before_sleep=self._log_retry(endpoint.name),
            reraise=True,
        )
        try:
            return await retrying(self.execute, endpoint, args)
        except TransientError as e:
            raise ServerUnavailable(self._max_attempts, e) from e

    async def _send(self, request: RequestSpec, token: str | None) -> TransportResponse:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        return await self._transport.send(
            request.method,
            request.path,
            body=request.body,
            headers=headers,
            params=request.params,
        )

    async def _refresh(self, used_token: str | None) -> bool:
        if self._refresher is None:
            return False
        async with self._refresh_lock:
            current = self._credentials.get_token()
            if current and current != used_token:
                # Another call refreshed while this one waited
                return True
            return await self._refresher(self._credentials)

    def _expire_session(self, endpoint: str) -> None:
        log.warning("auth.session_expired", endpoint=endpoint)
        self._credentials.clear_token()
        for listener in list(self._session_expired_listeners):
            listener()

    @staticmethod
    def _log_retry(endpoint: str) -> Callable[[RetryCallState], None]:
        def before_sleep(state: RetryCallState) -> None:
            error = state.outcome.exception() if state.outcome else None
            log.info(
                "retry.transient",
                endpoint=endpoint,
                attempt=state.attempt_number,
                error=str(error),
            )

        return before_sleep
