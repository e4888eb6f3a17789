"""Endpoint declarations and the registry that holds them.

Endpoints are declared once at startup, either with the ``query_endpoint``
and ``mutation_endpoint`` factories or with the registry decorators:

    api = EndpointRegistry()

    @api.query(provides_tags=["DIVISION"], transform_response=unwrap_data)
    def get_divisions(args: None) -> RequestSpec:
        return RequestSpec("GET", "/division")

    @api.mutation(invalidates_tags=["DIVISION"])
    def remove_division(division_id: str) -> RequestSpec:
        return RequestSpec("DELETE", f"/division/{division_id}")

Tag declarations may be static sequences or callables; both are
normalized to callables at declaration time so nothing is inspected
at call time.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass
from typing import Any

from tagsync.errors import (
    DuplicateEndpoint,
    InvalidEndpoint,
    RegistrySealed,
    UnknownEndpoint,
)
from tagsync.tags import TagLike, as_tag_set
from tagsync.types import EndpointKind, RequestSpec, TagRef

RequestBuilder = Callable[[Any], "RequestSpec | Mapping[str, Any]"]
ProvidesTags = Callable[[Any, Any], frozenset[TagRef]]
InvalidatesTags = Callable[[Any], frozenset[TagRef]]


def _identity(raw: Any) -> Any:
    return raw


def unwrap_data(response: Any) -> Any:
    """Unwrap the backend ``{"success", "message", "data"}`` envelope."""
    return response["data"]


@dataclass(frozen=True, slots=True)
class EndpointDefinition:
    """A registered query or mutation. Immutable."""

    name: str
    kind: EndpointKind
    build_request: RequestBuilder
    transform_response: Callable[[Any], Any] = _identity
    provides_tags: ProvidesTags | None = None
    invalidates_tags: InvalidatesTags | None = None
    authenticated: bool = True

    @property
    def is_query(self) -> bool:
        return self.kind is EndpointKind.QUERY

    def request_for(self, args: Any) -> RequestSpec:
        """Build the request for *args*.

        Builders may return a RequestSpec or a ``{"url", "method", "data",
        "params"}`` mapping.
        """
        spec = self.build_request(args)
        if isinstance(spec, RequestSpec):
            return spec
        if isinstance(spec, Mapping):
            path = spec.get("url", spec.get("path"))
            if path is None:
                raise InvalidEndpoint(f"{self.name}: request has no url/path")
            return RequestSpec(
                method=str(spec.get("method", "GET")).upper(),
                path=path,
                body=spec.get("data", spec.get("body")),
                params=spec.get("params"),
            )
        raise InvalidEndpoint(
            f"{self.name}: build_request returned {type(spec).__name__}, "
            "expected RequestSpec or mapping"
        )

    def tags_for(self, data: Any, args: Any) -> frozenset[TagRef]:
        if self.provides_tags is None:
            return frozenset()
        return self.provides_tags(data, args)

    def invalidations_for(self, args: Any) -> frozenset[TagRef]:
        if self.invalidates_tags is None:
            return frozenset()
        return self.invalidates_tags(args)


TagDeclaration = Iterable[TagLike] | TagLike | Callable[..., Any] | None


def _provides(declared: TagDeclaration) -> ProvidesTags | None:
    if declared is None:
        return None
    if callable(declared):
        fn = declared
        return lambda data, args: as_tag_set(fn(data, args))
    static = as_tag_set(declared)  # type: ignore[arg-type]
    return lambda data, args: static


def _invalidates(declared: TagDeclaration) -> InvalidatesTags | None:
    if declared is None:
        return None
    if callable(declared):
        fn = declared
        return lambda args: as_tag_set(fn(args))
    static = as_tag_set(declared)  # type: ignore[arg-type]
    return lambda args: static


def query_endpoint(
    name: str,
    build_request: RequestBuilder,
    *,
    transform_response: Callable[[Any], Any] | None = None,
    provides_tags: TagDeclaration = None,
    authenticated: bool = True,
) -> EndpointDefinition:
    """Declare a query. *provides_tags* is a tag list or ``fn(data, args)``."""
    return EndpointDefinition(
        name=name,
        kind=EndpointKind.QUERY,
        build_request=build_request,
        transform_response=transform_response or _identity,
        provides_tags=_provides(provides_tags),
        authenticated=authenticated,
    )


def mutation_endpoint(
    name: str,
    build_request: RequestBuilder,
    *,
    transform_response: Callable[[Any], Any] | None = None,
    invalidates_tags: TagDeclaration = None,
    authenticated: bool = True,
) -> EndpointDefinition:
    """Declare a mutation. *invalidates_tags* is a tag list or ``fn(args)``.

    Endpoints with ``authenticated=False`` (login, OTP) report a 401 as a
    plain ClientError instead of attempting a token refresh.
    """
    return EndpointDefinition(
        name=name,
        kind=EndpointKind.MUTATION,
        build_request=build_request,
        transform_response=transform_response or _identity,
        invalidates_tags=_invalidates(invalidates_tags),
        authenticated=authenticated,
    )


class EndpointRegistry:
    """Static table of every endpoint. Performs no I/O."""

    def __init__(self) -> None:
        self._endpoints: dict[str, EndpointDefinition] = {}
        self._sealed = False

    def register(self, definition: EndpointDefinition) -> EndpointDefinition:
        self._validate(definition)
        if self._sealed:
            raise RegistrySealed(definition.name)
        if definition.name in self._endpoints:
            raise DuplicateEndpoint(definition.name)
        self._endpoints[definition.name] = definition
        return definition

    def resolve(self, name: str) -> EndpointDefinition:
        try:
            return self._endpoints[name]
        except KeyError:
            raise UnknownEndpoint(name) from None

    def seal(self) -> None:
        """Refuse further registrations."""
        self._sealed = True

    @property
    def sealed(self) -> bool:
        return self._sealed

    def names(self) -> list[str]:
        return sorted(self._endpoints)

    def __contains__(self, name: object) -> bool:
        return name in self._endpoints

    def __iter__(self) -> Iterator[EndpointDefinition]:
        return iter(self._endpoints.values())

    def __len__(self) -> int:
        return len(self._endpoints)

    def query(
        self,
        name: str | None = None,
        *,
        transform_response: Callable[[Any], Any] | None = None,
        provides_tags: TagDeclaration = None,
        authenticated: bool = True,
    ) -> Callable[[RequestBuilder], EndpointDefinition]:
        """Decorator that registers a request builder as a query."""

        def decorator(fn: RequestBuilder) -> EndpointDefinition:
            return self.register(
                query_endpoint(
                    name or fn.__name__,
                    fn,
                    transform_response=transform_response,
                    provides_tags=provides_tags,
                    authenticated=authenticated,
                )
            )

        return decorator

    def mutation(
        self,
        name: str | None = None,
        *,
        transform_response: Callable[[Any], Any] | None = None,
        invalidates_tags: TagDeclaration = None,
        authenticated: bool = True,
    ) -> Callable[[RequestBuilder], EndpointDefinition]:
        """Decorator that registers a request builder as a mutation."""

        def decorator(fn: RequestBuilder) -> EndpointDefinition:
            return self.register(
                mutation_endpoint(
                    name or fn.__name__,
                    fn,
                    transform_response=transform_response,
                    invalidates_tags=invalidates_tags,
                    authenticated=authenticated,
                )
            )

        return decorator

    @staticmethod
    def _validate(definition: EndpointDefinition) -> None:
        if not isinstance(definition, EndpointDefinition):
            raise InvalidEndpoint(f"Expected EndpointDefinition, got {definition!r}")
        if not isinstance(definition.name, str) or not definition.name:
            raise InvalidEndpoint("Endpoint name must be a non-empty string")
        if not callable(definition.build_request):
            raise InvalidEndpoint(f"{definition.name}: build_request is not callable")
        if not callable(definition.transform_response):
            raise InvalidEndpoint(
                f"{definition.name}: transform_response is not callable"
            )
        if definition.kind is EndpointKind.QUERY and definition.invalidates_tags:
            raise InvalidEndpoint(f"{definition.name}: queries cannot invalidate tags")
        if definition.kind is EndpointKind.MUTATION and definition.provides_tags:
            raise InvalidEndpoint(f"{definition.name}: mutations cannot provide tags")
