"""Core types for the tagsync query cache."""

from __future__ import annotations

import enum
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Generic, TypeVar

if TYPE_CHECKING:
    from tagsync.errors import ExecutionError

T = TypeVar("T")

# Duration type alias
Duration = str | int  # "30s", "5m", "2h", "1d" or milliseconds

# Wildcard id: matches every entry of a tag type
LIST = "LIST"


@dataclass(frozen=True, slots=True)
class TagRef:
    """A (tag_type, id) pair attached to cached data.

    ``TagRef("Division", LIST)`` is the wildcard form: invalidating it
    invalidates every entry tagged with any ``Division`` ref.
    """

    tag_type: str
    id: str = LIST

    @property
    def is_wildcard(self) -> bool:
        return self.id == LIST

    def __repr__(self) -> str:
        return f"Tag({self.tag_type}:{self.id})"


class EndpointKind(enum.Enum):
    QUERY = "query"
    MUTATION = "mutation"


class EntryStatus(enum.Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"
    STALE = "stale"


@dataclass(frozen=True, slots=True)
class RequestSpec:
    """A request built from endpoint arguments."""

    method: str
    path: str
    body: Any = None
    params: Mapping[str, Any] | None = None


@dataclass(frozen=True, slots=True)
class TransportResponse:
    """What the transport hands back: status code plus decoded body."""

    status: int
    body: Any = None

    @property
    def is_success(self) -> bool:
        return 200 <= self.status < 300


@dataclass(slots=True)
class CacheEntry:
    """A cache slot owned by CacheStore.

    ``in_flight_request_id`` is the fencing token of the request whose
    response is allowed to land; it is not None exactly while loading.
    """

    key: str
    endpoint: str
    args: Any = None
    status: EntryStatus = EntryStatus.UNINITIALIZED
    data: Any = None
    error: ExecutionError | None = None
    tags: frozenset[TagRef] = field(default_factory=frozenset)
    subscriber_count: int = 0
    last_fetched_at: float | None = None
    in_flight_request_id: int | None = None

    @property
    def is_loading(self) -> bool:
        return self.in_flight_request_id is not None

    def snapshot(self) -> QueryResult[Any]:
        return QueryResult(
            status=self.status,
            data=self.data,
            error=self.error,
            is_fetching=self.is_loading,
        )


@dataclass(frozen=True, slots=True)
class QueryResult(Generic[T]):
    """Read-only view of a cache entry handed to consumers."""

    status: EntryStatus
    data: T | None = None
    error: ExecutionError | None = None
    is_fetching: bool = False

    @property
    def is_success(self) -> bool:
        return self.status is EntryStatus.SUCCESS


@dataclass(frozen=True, slots=True)
class MutationResult(Generic[T]):
    """Outcome of a mutation invocation."""

    success: bool
    data: T | None = None
    error: ExecutionError | None = None
