"""Cache key derivation."""

from __future__ import annotations

import dataclasses
import hashlib
import json
from collections.abc import Mapping
from typing import Any


def _normalize(value: Any) -> Any:
    """Reduce an argument object to JSON-ready data with a stable shape."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        value = dataclasses.asdict(value)
    if isinstance(value, Mapping):
        return {str(k): _normalize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalize(v) for v in value]
    if isinstance(value, (set, frozenset)):
        return sorted((_normalize(v) for v in value), key=_canonical_json)
    return value


def _canonical_json(value: Any) -> str:
    return json.dumps(
        value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str
    )


def canonicalize(args: Any) -> str:
    """Serialize *args* so deeply-equal objects give identical strings.

    Mapping key order is irrelevant, and "no arguments" (None) is its
    own canonical form.
    """
    return _canonical_json(_normalize(args))


def make_cache_key(endpoint: str, args: Any = None) -> str:
    """Generate a cache key from an endpoint name and its arguments."""
    args_hash = hashlib.sha256(canonicalize(args).encode()).hexdigest()[:16]
    return f"{endpoint}:{args_hash}"
