"""CacheStore - the in-memory table of query results.

Every bookkeeping step runs synchronously on the event loop; the only
suspension points are the network calls inside fetch tasks. In-flight
fetches are tracked per key so concurrent callers share one request,
and each fetch carries a fencing token so a superseded response can
never overwrite the result of a newer request.
"""

from __future__ import annotations

import asyncio
import copy
import itertools
import time
from collections.abc import Callable, Iterator
from typing import Any

import structlog

from tagsync.errors import ExecutionError, InvalidEndpoint, ResponseTransformError
from tagsync.executor import RequestExecutor
from tagsync.invalidation import InvalidationBus, InvalidationIndex
from tagsync.keys import make_cache_key
from tagsync.registry import EndpointDefinition, EndpointRegistry
from tagsync.types import CacheEntry, EntryStatus, MutationResult, TagRef

log = structlog.get_logger(__name__)

Observer = Callable[[CacheEntry], None]


class CacheStore:
    """Owns every CacheEntry, the invalidation index and in-flight fetches."""

    def __init__(
        self,
        registry: EndpointRegistry,
        executor: RequestExecutor,
        *,
        index: InvalidationIndex | None = None,
        bus: InvalidationBus | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._registry = registry
        self._executor = executor
        self._index = index or InvalidationIndex()
        self._bus = bus or InvalidationBus(self._index)
        self._bus.bind(self)
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._request_ids = itertools.count(1)
        self._observers: list[Observer] = []

    @property
    def index(self) -> InvalidationIndex:
        return self._index

    @property
    def bus(self) -> InvalidationBus:
        return self._bus

    # -- lookup -----------------------------------------------------------

    def key_for(self, endpoint: str, args: Any = None) -> str:
        return make_cache_key(endpoint, args)

    def get(self, key: str) -> CacheEntry | None:
        return self._entries.get(key)

    def ensure_entry(self, endpoint: str, args: Any = None) -> CacheEntry:
        """Return the entry for (endpoint, args), creating it uninitialized.

        A new entry keeps its own copy of *args*; later refetches must not
        see changes the caller makes to the object it passed in.
        """
        definition = self._query(endpoint)
        key = make_cache_key(definition.name, args)
        entry = self._entries.get(key)
        if entry is None:
            entry = CacheEntry(
                key=key, endpoint=definition.name, args=copy.deepcopy(args)
            )
            self._entries[key] = entry
        return entry

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __iter__(self) -> Iterator[CacheEntry]:
        return iter(list(self._entries.values()))

    def __len__(self) -> int:
        return len(self._entries)

    def add_observer(self, observer: Observer) -> None:
        """Observers are called with the entry after every state change."""
        self._observers.append(observer)

    # -- queries ----------------------------------------------------------

    async def get_or_fetch(
        self, endpoint: str, args: Any = None, *, force_refresh: bool = False
    ) -> CacheEntry:
        """Return the entry for (endpoint, args), fetching if needed.

        A ``success`` entry is returned without a network call unless
        *force_refresh* is set. A ``loading`` entry is joined rather than
        fetched again.
        """
        entry = self.ensure_entry(endpoint, args)
        if force_refresh or (
            not entry.is_loading and entry.status is not EntryStatus.SUCCESS
        ):
            self.start_fetch(entry.key)
        await self.wait_settled(entry)
        return entry

    async def refetch(self, key: str) -> CacheEntry:
        entry = self._entries.get(key)
        if entry is None:
            raise KeyError(key)
        self.start_fetch(key)
        await self.wait_settled(entry)
        return entry

    def start_fetch(self, key: str) -> None:
        """Issue a fetch for *key*, superseding any fetch already in flight."""
        entry = self._entries[key]
        definition = self._query(entry.endpoint)
        request_id = next(self._request_ids)
        if entry.in_flight_request_id is not None:
            log.debug(
                "fetch.superseded",
                key=key,
                old=entry.in_flight_request_id,
                new=request_id,
            )
        entry.in_flight_request_id = request_id
        entry.status = EntryStatus.LOADING
        task = asyncio.create_task(self._run_fetch(definition, entry, request_id))
        self._tasks[key] = task
        task.add_done_callback(lambda t, k=key: self._forget_task(k, t))
        self._notify(entry)

    async def wait_settled(self, entry: CacheEntry) -> None:
        """Wait until *entry* has no request in flight.

        Follows supersession: when the awaited request is replaced by a
        newer one, waits on the newer one.
        """
        while entry.in_flight_request_id is not None:
            task = self._tasks.get(entry.key)
            if task is None:
                return
            try:
                await asyncio.shield(task)
            except asyncio.CancelledError:
                if not task.cancelled():
                    raise

    async def _run_fetch(
        self, definition: EndpointDefinition, entry: CacheEntry, request_id: int
    ) -> None:
        log.debug("fetch.start", key=entry.key, request_id=request_id)
        try:
            try:
                raw = await self._executor.execute_with_retry(definition, entry.args)
            except ExecutionError as e:
                self._settle_error(entry, request_id, e)
                return
            try:
                data = definition.transform_response(raw)
                tags = definition.tags_for(data, entry.args)
            except Exception as e:
                self._settle_error(
                    entry, request_id, ResponseTransformError(definition.name, e)
                )
                return
            self._settle_success(entry, request_id, data, tags)
        finally:
            if entry.in_flight_request_id == request_id:
                # Unexpected error or cancellation: release the fence
                entry.in_flight_request_id = None
                if entry.status is EntryStatus.LOADING:
                    entry.status = EntryStatus.ERROR

    def _settle_success(
        self,
        entry: CacheEntry,
        request_id: int,
        data: Any,
        tags: frozenset[TagRef],
    ) -> None:
        if entry.in_flight_request_id != request_id:
            log.debug("fetch.discarded", key=entry.key, request_id=request_id)
            return
        entry.in_flight_request_id = None
        entry.data = data
        entry.error = None
        entry.tags = tags
        entry.status = EntryStatus.SUCCESS
        entry.last_fetched_at = self._clock()
        if self._entries.get(entry.key) is entry:
            self._index.update(entry.key, tags)
        log.debug("fetch.success", key=entry.key, tags=len(tags))
        self._notify(entry)

    def _settle_error(
        self, entry: CacheEntry, request_id: int, error: ExecutionError
    ) -> None:
        if entry.in_flight_request_id != request_id:
            log.debug("fetch.discarded", key=entry.key, request_id=request_id)
            return
        entry.in_flight_request_id = None
        entry.error = error
        entry.status = EntryStatus.ERROR
        log.info("fetch.error", key=entry.key, error=str(error))
        self._notify(entry)

    def _forget_task(self, key: str, task: asyncio.Task[None]) -> None:
        if self._tasks.get(key) is task:
            del self._tasks[key]
        if not task.cancelled() and task.exception() is not None:
            log.error("fetch.crashed", key=key, exc_info=task.exception())

    # -- invalidation -----------------------------------------------------

    def mark_stale(self, key: str) -> None:
        """Mark an entry stale; refetch at once if anyone is subscribed.

        ``data`` is kept so consumers keep rendering it until the refetch
        lands. A fetch already in flight may carry pre-invalidation data,
        so it is superseded.
        """
        entry = self._entries.get(key)
        if entry is None:
            return
        if entry.is_loading:
            self.start_fetch(key)
            return
        if entry.status not in (EntryStatus.SUCCESS, EntryStatus.ERROR):
            return
        entry.status = EntryStatus.STALE
        self._notify(entry)
        if entry.subscriber_count > 0:
            self.start_fetch(key)

    # -- mutations --------------------------------------------------------

    async def run_mutation(
        self, endpoint: str, args: Any = None
    ) -> MutationResult[Any]:
        """Execute a mutation; on success invalidate its declared tags.

        Execution errors are returned, never raised.
        """
        definition = self._registry.resolve(endpoint)
        if definition.is_query:
            raise InvalidEndpoint(f"{endpoint!r} is a query, not a mutation")
        try:
            raw = await self._executor.execute(definition, args)
        except ExecutionError as e:
            log.info("mutation.error", endpoint=endpoint, error=str(e))
            return MutationResult(success=False, error=e)

        stale = self._bus.invalidate(definition.invalidations_for(args))
        log.info("mutation.success", endpoint=endpoint, invalidated=len(stale))
        try:
            data = definition.transform_response(raw)
        except Exception as e:
            return MutationResult(
                success=False, error=ResponseTransformError(endpoint, e)
            )
        return MutationResult(success=True, data=data)

    # -- lifecycle --------------------------------------------------------

    def add_subscriber(self, key: str) -> int:
        entry = self._entries[key]
        entry.subscriber_count += 1
        return entry.subscriber_count

    def remove_subscriber(self, key: str) -> int:
        entry = self._entries.get(key)
        if entry is None:
            return 0
        entry.subscriber_count = max(0, entry.subscriber_count - 1)
        return entry.subscriber_count

    def evict(self, key: str) -> bool:
        """Remove an idle entry. Refuses entries that are subscribed or loading."""
        entry = self._entries.get(key)
        if entry is None:
            return False
        if entry.subscriber_count > 0 or entry.is_loading:
            return False
        del self._entries[key]
        self._index.remove(key)
        log.debug("entry.evicted", key=key)
        return True

    def reset(self) -> None:
        """Drop every entry and cancel every in-flight fetch."""
        for task in list(self._tasks.values()):
            task.cancel()
        self._tasks.clear()
        for entry in self._entries.values():
            if entry.in_flight_request_id is not None:
                entry.in_flight_request_id = None
                entry.status = EntryStatus.UNINITIALIZED
        self._entries.clear()
        self._index.clear()
        log.info("cache.reset")

    def _query(self, endpoint: str) -> EndpointDefinition:
        definition = self._registry.resolve(endpoint)
        if not definition.is_query:
            raise InvalidEndpoint(f"{endpoint!r} is a mutation, not a query")
        return definition

    def _notify(self, entry: CacheEntry) -> None:
        for observer in list(self._observers):
            observer(entry)
