"""Endpoint catalogue of the tour management backend."""

from __future__ import annotations

from typing import Any

from tagsync.registry import (
    EndpointRegistry,
    mutation_endpoint,
    query_endpoint,
    unwrap_data,
)
from tagsync.types import LIST, RequestSpec, TagRef

TOUR = "TOUR"
DIVISION = "DIVISION"
BOOKING = "BOOKING"
USER = "USER"


def _division_tags(data: Any, args: Any) -> list[TagRef]:
    tags = [TagRef(DIVISION, LIST)]
    if isinstance(data, list):
        tags.extend(
            TagRef(DIVISION, str(item["_id"]))
            for item in data
            if isinstance(item, dict) and "_id" in item
        )
    return tags


def register_tour_api(registry: EndpointRegistry) -> EndpointRegistry:
    """Register every tour/division/booking/auth endpoint on *registry*."""
    endpoints = [
        # tour types
        query_endpoint(
            "getTourTypes",
            lambda args: RequestSpec("GET", "/tour/tour-type", params=args),
            transform_response=unwrap_data,
            provides_tags=[TOUR],
        ),
        mutation_endpoint(
            "addTourType",
            lambda payload: RequestSpec("POST", "/tour/add-tour-type", body=payload),
            invalidates_tags=[TOUR],
        ),
        mutation_endpoint(
            "removeTourType",
            lambda type_id: RequestSpec("DELETE", f"/tour/tour-type/{type_id}"),
            invalidates_tags=[TOUR],
        ),
        # tours
        mutation_endpoint(
            "addTour",
            lambda tour: RequestSpec("POST", "/tour/add-tour", body=tour),
            invalidates_tags=[TOUR],
        ),
        query_endpoint(
            "getAllTours",
            lambda params: RequestSpec("GET", "/tour", params=params),
            transform_response=unwrap_data,
            provides_tags=[BOOKING],
        ),
        # divisions
        query_endpoint(
            "getDivisions",
            lambda args: RequestSpec("GET", "/division", params=args),
            transform_response=unwrap_data,
            provides_tags=_division_tags,
        ),
        mutation_endpoint(
            "addDivision",
            lambda division: RequestSpec("POST", "/division/create", body=division),
            invalidates_tags=[DIVISION],
        ),
        mutation_endpoint(
            "removeDivision",
            lambda division_id: RequestSpec("DELETE", f"/division/{division_id}"),
            invalidates_tags=[TagRef(DIVISION, LIST)],
        ),
        # bookings
        mutation_endpoint(
            "createBooking",
            lambda booking: RequestSpec("POST", "/booking", body=booking),
            invalidates_tags=[BOOKING],
        ),
        # auth
        mutation_endpoint(
            "login",
            lambda credentials: RequestSpec("POST", "/auth/login", body=credentials),
            invalidates_tags=[USER],
            authenticated=False,
        ),
        mutation_endpoint(
            "logout",
            lambda args: RequestSpec("POST", "/auth/logout"),
            invalidates_tags=[USER],
        ),
        query_endpoint(
            "userInfo",
            lambda args: RequestSpec("GET", "/user/me"),
            transform_response=unwrap_data,
            provides_tags=[USER],
        ),
        mutation_endpoint(
            "sendOtp",
            lambda payload: RequestSpec("POST", "/otp/send", body=payload),
            authenticated=False,
        ),
        mutation_endpoint(
            "verifyOtp",
            lambda payload: RequestSpec("POST", "/otp/verify", body=payload),
            invalidates_tags=[USER],
            authenticated=False,
        ),
    ]
    for endpoint in endpoints:
        registry.register(endpoint)
    return registry
