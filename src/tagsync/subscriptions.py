"""Subscription tracking, fetch-on-subscribe and grace-period eviction."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable
from typing import Any

import structlog

from tagsync.duration import parse_duration
from tagsync.scheduler import Scheduler, Timer
from tagsync.store import CacheStore
from tagsync.types import CacheEntry, Duration, EntryStatus, QueryResult

log = structlog.get_logger(__name__)

Listener = Callable[[QueryResult[Any]], None]


class Subscription:
    """Handle returned by ``SubscriptionManager.subscribe``."""

    __slots__ = ("_active", "_listener", "_manager", "args", "endpoint", "key")

    def __init__(
        self,
        manager: SubscriptionManager,
        key: str,
        endpoint: str,
        args: Any,
        listener: Listener | None,
    ) -> None:
        self._manager = manager
        self._listener = listener
        self._active = True
        self.key = key
        self.endpoint = endpoint
        self.args = args

    @property
    def active(self) -> bool:
        return self._active

    def snapshot(self) -> QueryResult[Any]:
        """Current state of the subscribed entry."""
        return self._manager.snapshot(self.key)

    def unsubscribe(self) -> None:
        self._manager.unsubscribe(self)

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc: object) -> None:
        self.unsubscribe()

    def __repr__(self) -> str:
        state = "active" if self._active else "closed"
        return f"Subscription({self.key}, {state})"


class SubscriptionManager:
    """Counts consumers per cache key.

    The first subscriber of an entry that is neither loading nor
    successful triggers a fetch. When the last one leaves, a grace timer
    starts; if nobody subscribes again before it fires the entry is
    evicted. Eviction of an entry with a fetch in flight is deferred by
    another grace period.
    """

    def __init__(
        self,
        store: CacheStore,
        scheduler: Scheduler,
        *,
        eviction_grace: Duration = "60s",
    ) -> None:
        self._store = store
        self._scheduler = scheduler
        self._grace = parse_duration(eviction_grace)
        self._handles: defaultdict[str, list[Subscription]] = defaultdict(list)
        self._eviction_timers: dict[str, Timer] = {}
        store.add_observer(self._dispatch)

    def subscribe(
        self, endpoint: str, args: Any = None, listener: Listener | None = None
    ) -> Subscription:
        entry = self._store.ensure_entry(endpoint, args)
        self._cancel_eviction(entry.key)
        handle = Subscription(self, entry.key, entry.endpoint, args, listener)
        self._handles[entry.key].append(handle)
        count = self._store.add_subscriber(entry.key)
        if (
            count == 1
            and not entry.is_loading
            and entry.status is not EntryStatus.SUCCESS
        ):
            self._store.start_fetch(entry.key)
        return handle

    async def fetch(
        self, endpoint: str, args: Any = None, *, force_refresh: bool = False
    ) -> CacheEntry:
        """One-shot read through the store.

        Interest is held only while the call is in flight, so an entry read
        this way is evicted after the grace period like any other entry
        whose last subscriber left.
        """
        entry = self._store.ensure_entry(endpoint, args)
        self._cancel_eviction(entry.key)
        self._store.add_subscriber(entry.key)
        try:
            return await self._store.get_or_fetch(
                endpoint, args, force_refresh=force_refresh
            )
        finally:
            if self._store.remove_subscriber(entry.key) == 0:
                self._schedule_eviction(entry.key)

    def unsubscribe(self, handle: Subscription) -> None:
        if not handle._active:
            return
        handle._active = False
        handles = self._handles.get(handle.key)
        if handles is not None and handle in handles:
            handles.remove(handle)
            if not handles:
                del self._handles[handle.key]
        if self._store.remove_subscriber(handle.key) == 0:
            self._schedule_eviction(handle.key)

    def subscriber_count(self, key: str) -> int:
        entry = self._store.get(key)
        return entry.subscriber_count if entry else 0

    def snapshot(self, key: str) -> QueryResult[Any]:
        entry = self._store.get(key)
        if entry is None:
            return QueryResult(status=EntryStatus.UNINITIALIZED)
        return entry.snapshot()

    def reset(self) -> None:
        """Cancel pending evictions and detach every handle."""
        for timer in self._eviction_timers.values():
            timer.cancel()
        self._eviction_timers.clear()
        for handles in self._handles.values():
            for handle in handles:
                handle._active = False
        self._handles.clear()

    @property
    def pending_evictions(self) -> int:
        return len(self._eviction_timers)

    def _schedule_eviction(self, key: str) -> None:
        self._cancel_eviction(key)
        if key not in self._store:
            return
        self._eviction_timers[key] = self._scheduler.call_later(
            self._grace, lambda: self._expire(key)
        )

    def _cancel_eviction(self, key: str) -> None:
        timer = self._eviction_timers.pop(key, None)
        if timer is not None:
            timer.cancel()

    def _expire(self, key: str) -> None:
        self._eviction_timers.pop(key, None)
        entry = self._store.get(key)
        if entry is None or entry.subscriber_count > 0:
            return
        if not self._store.evict(key):
            log.debug("eviction.deferred", key=key)
            self._schedule_eviction(key)

    def _dispatch(self, entry: CacheEntry) -> None:
        handles = self._handles.get(entry.key)
        if not handles:
            return
        snapshot = entry.snapshot()
        for handle in list(handles):
            if handle._listener is None:
                continue
            try:
                handle._listener(snapshot)
            except Exception:
                log.exception("subscription.listener_failed", key=entry.key)
