"""Tag coercion, matching and serialization."""

from __future__ import annotations

from collections.abc import Iterable

from tagsync.types import LIST, TagRef

_ESCAPE_MAP = {"\\": "\\\\", ":": "\\:"}

TagLike = TagRef | str | tuple[str, str]


def as_tag_ref(tag: TagLike) -> TagRef:
    """Coerce shorthand forms into a TagRef.

    A bare string ``"TOUR"`` is the wildcard ``TagRef("TOUR", LIST)``;
    a pair ``("Division", "d1")`` pins one id.
    """
    if isinstance(tag, TagRef):
        return tag
    if isinstance(tag, str):
        if not tag:
            raise ValueError("Tag type must not be empty")
        return TagRef(tag, LIST)
    if isinstance(tag, tuple) and len(tag) == 2:
        tag_type, tag_id = tag
        return TagRef(str(tag_type), str(tag_id))
    raise TypeError(f"Expected TagRef, str or (type, id) pair, got {tag!r}")


def as_tag_set(tags: Iterable[TagLike] | None) -> frozenset[TagRef]:
    if tags is None:
        return frozenset()
    if isinstance(tags, (str, TagRef)):
        return frozenset((as_tag_ref(tags),))
    return frozenset(as_tag_ref(t) for t in tags)


def tag_matches(invalidated: TagRef, provided: TagRef) -> bool:
    """Check if invalidating *invalidated* reaches an entry providing *provided*."""
    if invalidated.tag_type != provided.tag_type:
        return False
    return invalidated.is_wildcard or invalidated.id == provided.id


def serialize_tag(tag: TagRef) -> str:
    """Serialize tag to a single string for logs and debugging."""

    def escape(part: str) -> str:
        result = part
        for char, escaped in _ESCAPE_MAP.items():
            result = result.replace(char, escaped)
        return result

    return f"{escape(tag.tag_type)}:{escape(tag.id)}"
