"""ApiClient - the boundary the presentation layer talks to."""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from types import TracebackType
from typing import Any

from tagsync.config import ClientSettings
from tagsync.credentials import CredentialStore, HttpTokenRefresher, TokenRefresher
from tagsync.executor import RequestExecutor
from tagsync.registry import EndpointRegistry
from tagsync.scheduler import AsyncioScheduler, Scheduler
from tagsync.store import CacheStore
from tagsync.subscriptions import Listener, Subscription, SubscriptionManager
from tagsync.tags import TagLike
from tagsync.transport import HttpxTransport, Transport
from tagsync.types import MutationResult, QueryResult
from tagsync.verification import Notifier, VerificationFlow


class ApiClient:
    """Wires registry, executor, store and subscriptions together.

    Usage:
        api = EndpointRegistry()
        register_tour_api(api)

        async with ApiClient(api, settings=ClientSettings(base_url=...)) as client:
            result = await client.invoke_query("getDivisions")
            await client.invoke_mutation("removeDivision", "d1")

    Creating the client seals the registry.
    """

    def __init__(
        self,
        registry: EndpointRegistry,
        transport: Transport | None = None,
        *,
        settings: ClientSettings | None = None,
        credentials: CredentialStore | None = None,
        refresher: TokenRefresher | None = None,
        scheduler: Scheduler | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._settings = settings or ClientSettings()
        self._transport = transport or HttpxTransport(
            self._settings.base_url, timeout=self._settings.timeout_seconds
        )
        if refresher is None and self._settings.refresh_path:
            refresher = HttpTokenRefresher(self._transport, self._settings.refresh_path)
        self._registry = registry
        self._registry.seal()
        self._scheduler = scheduler or AsyncioScheduler()
        self.executor = RequestExecutor(
            self._transport,
            credentials=credentials,
            refresher=refresher,
            max_attempts=self._settings.max_attempts,
            retry_base_delay=self._settings.retry_base_seconds,
            retry_max_delay=self._settings.retry_max_seconds,
        )
        self.store = CacheStore(registry, self.executor, clock=clock)
        self.subscriptions = SubscriptionManager(
            self.store,
            self._scheduler,
            eviction_grace=self._settings.eviction_grace,
        )

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    @property
    def registry(self) -> EndpointRegistry:
        return self._registry

    async def invoke_query(
        self, endpoint: str, args: Any = None, *, force_refresh: bool = False
    ) -> QueryResult[Any]:
        """Fetch through the cache. Errors are reported in the result.

        The entry stays cached for the eviction grace period afterwards.
        """
        entry = await self.subscriptions.fetch(
            endpoint, args, force_refresh=force_refresh
        )
        return entry.snapshot()

    def subscribe(
        self, endpoint: str, args: Any = None, listener: Listener | None = None
    ) -> Subscription:
        """Register interest in a query; *listener* receives every change."""
        return self.subscriptions.subscribe(endpoint, args, listener)

    def unsubscribe(self, handle: Subscription) -> None:
        self.subscriptions.unsubscribe(handle)

    async def invoke_mutation(
        self, endpoint: str, args: Any = None
    ) -> MutationResult[Any]:
        return await self.store.run_mutation(endpoint, args)

    def invalidate(self, tags: Iterable[TagLike]) -> set[str]:
        """Manually invalidate cache entries by tags."""
        return self.store.bus.invalidate(tags)

    def reset_cache(self) -> None:
        """Drop every entry (e.g. on logout)."""
        self.subscriptions.reset()
        self.store.reset()

    def on_session_expired(self, callback: Callable[[], None]) -> Callable[[], None]:
        return self.executor.on_session_expired(callback)

    def verification_flow(
        self,
        subject: str,
        *,
        notifier: Notifier | None = None,
        **options: Any,
    ) -> VerificationFlow:
        """Start an OTP flow for *subject* using the client's settings."""
        options.setdefault("cooldown", self._settings.cooldown)
        options.setdefault("tick", self._settings.tick)
        options.setdefault("max_attempts", self._settings.max_verify_attempts)
        return VerificationFlow(
            self.store,
            subject,
            scheduler=self._scheduler,
            notifier=notifier,
            **options,
        )

    async def close(self) -> None:
        """Reset the cache and close the transport."""
        self.reset_cache()
        await self._transport.close()

    async def __aenter__(self) -> ApiClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()
