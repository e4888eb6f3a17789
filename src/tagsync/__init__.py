"""tagsync - Client-side query cache with tag-based invalidation."""

from tagsync.client import ApiClient
from tagsync.config import ClientSettings
from tagsync.credentials import (
    CredentialStore,
    HttpTokenRefresher,
    MemoryCredentialStore,
)

# Duration parsing
from tagsync.duration import parse_duration

# Errors
from tagsync.errors import (
    ClientError,
    DuplicateEndpoint,
    ExecutionError,
    InvalidEndpoint,
    NetworkError,
    RegistrySealed,
    ResponseTransformError,
    ServerUnavailable,
    TagSyncError,
    TransientError,
    Unauthenticated,
    UnknownEndpoint,
)
from tagsync.executor import RequestExecutor
from tagsync.invalidation import InvalidationBus, InvalidationIndex
from tagsync.keys import canonicalize, make_cache_key
from tagsync.registry import (
    EndpointDefinition,
    EndpointRegistry,
    mutation_endpoint,
    query_endpoint,
    unwrap_data,
)
from tagsync.scheduler import AsyncioScheduler, ManualScheduler, Scheduler, Timer
from tagsync.store import CacheStore
from tagsync.subscriptions import Subscription, SubscriptionManager
from tagsync.tags import as_tag_ref, serialize_tag, tag_matches
from tagsync.transport import HttpxTransport, Transport

# Core types
from tagsync.types import (
    LIST,
    CacheEntry,
    Duration,
    EndpointKind,
    EntryStatus,
    MutationResult,
    QueryResult,
    RequestSpec,
    TagRef,
    TransportResponse,
)
from tagsync.verification import (
    ActionPending,
    CooldownActive,
    FlowOutcome,
    FlowState,
    InvalidAction,
    LogNotifier,
    Notifier,
    Rejection,
    VerificationExhausted,
    VerificationFlow,
    VerificationSession,
)

__version__ = "0.1.0"

__all__ = [
    "LIST",
    "ActionPending",
    "ApiClient",
    "AsyncioScheduler",
    "CacheEntry",
    "CacheStore",
    "ClientError",
    "ClientSettings",
    "CooldownActive",
    "CredentialStore",
    "DuplicateEndpoint",
    "Duration",
    "EndpointDefinition",
    "EndpointKind",
    "EndpointRegistry",
    "EntryStatus",
    "ExecutionError",
    "FlowOutcome",
    "FlowState",
    "HttpTokenRefresher",
    "HttpxTransport",
    "InvalidAction",
    "InvalidEndpoint",
    "InvalidationBus",
    "InvalidationIndex",
    "LogNotifier",
    "ManualScheduler",
    "MemoryCredentialStore",
    "MutationResult",
    "NetworkError",
    "Notifier",
    "QueryResult",
    "RegistrySealed",
    "Rejection",
    "RequestExecutor",
    "RequestSpec",
    "ResponseTransformError",
    "Scheduler",
    "ServerUnavailable",
    "Subscription",
    "SubscriptionManager",
    "TagRef",
    "TagSyncError",
    "Timer",
    "Transport",
    "TransportResponse",
    "TransientError",
    "Unauthenticated",
    "UnknownEndpoint",
    "VerificationExhausted",
    "VerificationFlow",
    "VerificationSession",
    "as_tag_ref",
    "canonicalize",
    "make_cache_key",
    "mutation_endpoint",
    "parse_duration",
    "query_endpoint",
    "serialize_tag",
    "tag_matches",
    "unwrap_data",
]
