"""Error taxonomy.

Registry errors are programmer errors and are raised immediately.
``ExecutionError`` subclasses describe failed requests; the cache stores
them on entries and mutations return them, so they rarely escape.
"""

from __future__ import annotations

from typing import Any


class TagSyncError(Exception):
    """Base class for all tagsync errors."""


class UnknownEndpoint(TagSyncError, LookupError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown endpoint: {name!r}")
        self.name = name


class DuplicateEndpoint(TagSyncError, ValueError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Endpoint already registered: {name!r}")
        self.name = name


class RegistrySealed(TagSyncError, RuntimeError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Registry is sealed; cannot register {name!r}")
        self.name = name


class InvalidEndpoint(TagSyncError, TypeError):
    """An endpoint definition that is inconsistent with its kind."""


class ExecutionError(TagSyncError):
    """A request that did not produce usable data."""


class Unauthenticated(ExecutionError):
    def __init__(self, message: str = "Session expired") -> None:
        super().__init__(message)


class ClientError(ExecutionError):
    """A 4xx response other than 401. Never retried."""

    def __init__(self, status: int, message: str, body: Any = None) -> None:
        super().__init__(f"HTTP {status}: {message}")
        self.status = status
        self.message = message
        self.body = body


class TransientError(ExecutionError):
    """A 5xx response or a network failure. Retryable."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class NetworkError(TransientError):
    """The transport could not complete the exchange (timeout, refused...)."""


class ServerUnavailable(ExecutionError):
    """Transient failures persisted past the attempt cap."""

    def __init__(self, attempts: int, last_error: TransientError) -> None:
        super().__init__(f"Server unavailable after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


class ResponseTransformError(ExecutionError):
    """transform_response or provides_tags failed on a payload."""

    def __init__(self, endpoint: str, cause: Exception) -> None:
        super().__init__(f"Could not transform response of {endpoint!r}: {cause}")
        self.endpoint = endpoint


__all__ = [
    "ClientError",
    "DuplicateEndpoint",
    "ExecutionError",
    "InvalidEndpoint",
    "NetworkError",
    "RegistrySealed",
    "ResponseTransformError",
    "ServerUnavailable",
    "TagSyncError",
    "TransientError",
    "Unauthenticated",
    "UnknownEndpoint",
]
