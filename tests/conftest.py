"""Shared pytest fixtures."""

from __future__ import annotations

import inspect
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import pytest

from tagsync import (
    ApiClient,
    CacheStore,
    ClientSettings,
    EndpointRegistry,
    HttpTokenRefresher,
    ManualScheduler,
    MemoryCredentialStore,
    RequestExecutor,
    SubscriptionManager,
    TransportResponse,
)
from tagsync.tour_api import register_tour_api


def ok(data: Any = None, message: str = "ok") -> TransportResponse:
    """A 200 response in the backend's envelope."""
    return TransportResponse(200, {"success": True, "message": message, "data": data})


def fail(status: int, message: str = "failed") -> TransportResponse:
    return TransportResponse(status, {"success": False, "message": message})


@dataclass
class SentRequest:
    method: str
    path: str
    body: Any
    headers: dict[str, str]
    params: dict[str, Any] | None


class FakeTransport:
    """Scripted transport.

    ``reply(method, path, *responses)`` queues responses for a route; the
    last one keeps answering once the queue is drained. A response may be
    a TransportResponse, an exception to raise, or a (possibly async)
    callable receiving the SentRequest.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], list[Any]] = {}
        self.calls: list[SentRequest] = []
        self.closed = False

    def reply(self, method: str, path: str, *responses: Any) -> None:
        self.routes.setdefault((method.upper(), path), []).extend(responses)

    def calls_to(self, method: str, path: str) -> list[SentRequest]:
        return [c for c in self.calls if c.method == method and c.path == path]

    async def send(
        self,
        method: str,
        path: str,
        body: Any = None,
        headers: Mapping[str, str] | None = None,
        params: Mapping[str, Any] | None = None,
    ) -> TransportResponse:
        call = SentRequest(
            method, path, body, dict(headers or {}), dict(params) if params else None
        )
        self.calls.append(call)
        queue = self.routes.get((method, path))
        if not queue:
            raise AssertionError(f"Unexpected request: {method} {path}")
        response = queue.pop(0) if len(queue) > 1 else queue[0]
        if callable(response) and not isinstance(response, BaseException):
            response = response(call)
            if inspect.isawaitable(response):
                response = await response
        if isinstance(response, BaseException):
            raise response
        return response

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def credentials() -> MemoryCredentialStore:
    return MemoryCredentialStore(token="access-1", refresh_token="refresh-1")


@pytest.fixture
def registry() -> EndpointRegistry:
    """Registry with the tour management endpoints."""
    return register_tour_api(EndpointRegistry())


@pytest.fixture
def executor(
    transport: FakeTransport, credentials: MemoryCredentialStore
) -> RequestExecutor:
    return RequestExecutor(
        transport,
        credentials=credentials,
        refresher=HttpTokenRefresher(transport),
        max_attempts=3,
        retry_base_delay=0,
    )


@pytest.fixture
def store(registry: EndpointRegistry, executor: RequestExecutor) -> CacheStore:
    return CacheStore(registry, executor)


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def subscriptions(store: CacheStore, scheduler: ManualScheduler) -> SubscriptionManager:
    return SubscriptionManager(store, scheduler, eviction_grace="60s")


@pytest.fixture
def client(
    registry: EndpointRegistry,
    transport: FakeTransport,
    credentials: MemoryCredentialStore,
    scheduler: ManualScheduler,
) -> ApiClient:
    return ApiClient(
        registry,
        transport,
        settings=ClientSettings(retry_base_delay=0, eviction_grace="60s"),
        credentials=credentials,
        scheduler=scheduler,
    )
