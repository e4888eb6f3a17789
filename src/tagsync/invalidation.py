"""Tag index and the bus that fans invalidations out to the store."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from typing import TYPE_CHECKING

import structlog

from tagsync.tags import TagLike, as_tag_set, serialize_tag, tag_matches
from tagsync.types import TagRef

if TYPE_CHECKING:
    from tagsync.store import CacheStore

log = structlog.get_logger(__name__)


class InvalidationIndex:
    """Reverse index tag type -> cache keys, plus the tags of each key.

    Derived from the ``tags`` of live entries and updated on every
    tag change; never persisted.
    """

    def __init__(self) -> None:
        self._by_type: defaultdict[str, set[str]] = defaultdict(set)
        self._tags_of: dict[str, frozenset[TagRef]] = {}

    def update(self, key: str, tags: frozenset[TagRef]) -> None:
        """Replace the tags indexed for *key*."""
        self.remove(key)
        if not tags:
            return
        self._tags_of[key] = tags
        for tag in tags:
            self._by_type[tag.tag_type].add(key)

    def remove(self, key: str) -> None:
        old = self._tags_of.pop(key, frozenset())
        for tag in old:
            type_keys = self._by_type.get(tag.tag_type)
            if type_keys is not None:
                type_keys.discard(key)
                if not type_keys:
                    del self._by_type[tag.tag_type]

    def lookup(self, tag: TagRef) -> set[str]:
        """Keys reached by invalidating *tag* (all keys of the type for LIST)."""
        return {
            key
            for key in self._by_type.get(tag.tag_type, ())
            if any(tag_matches(tag, provided) for provided in self._tags_of[key])
        }

    def tags_of(self, key: str) -> frozenset[TagRef]:
        return self._tags_of.get(key, frozenset())

    def clear(self) -> None:
        self._by_type.clear()
        self._tags_of.clear()

    def __len__(self) -> int:
        return len(self._tags_of)


class InvalidationBus:
    """Marks every entry tagged with an invalidated tag as stale."""

    def __init__(self, index: InvalidationIndex) -> None:
        self._index = index
        self._store: CacheStore | None = None

    def bind(self, store: CacheStore) -> None:
        self._store = store

    def invalidate(self, tags: Iterable[TagLike]) -> set[str]:
        """Mark matching entries stale synchronously; returns the keys reached."""
        if self._store is None:
            raise RuntimeError("InvalidationBus is not bound to a CacheStore")
        refs = as_tag_set(tags)
        keys: set[str] = set()
        for tag in refs:
            keys |= self._index.lookup(tag)
        if refs:
            log.debug(
                "invalidate",
                tags=sorted(serialize_tag(t) for t in refs),
                keys=len(keys),
            )
        for key in sorted(keys):
            self._store.mark_stale(key)
        return keys
