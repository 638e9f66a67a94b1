"""Shared cache policy metadata for API documentation."""

from __future__ import annotations

from typing import Final, Mapping

_NOT_MODIFIED_DESCRIPTION: Final[str] = (
    "The client copy is still valid; the response carries validators but no body."
)

_CACHE_POLICY_HEADERS: Final[Mapping[str, Mapping[str, object]]] = {
    "Cache-Control": {
        "description": "Cache directives for the representation.",
        "schema": {"type": "string"},
    },
    "ETag": {
        "description": "Entity tag identifying the representation.",
        "schema": {"type": "string"},
    },
    "Last-Modified": {
        "description": "Timestamp of the most recent modification.",
        "schema": {"type": "string", "format": "date-time"},
    },
    "Vary": {
        "description": "Request headers that partition the cached representations.",
        "schema": {"type": "string"},
    },
    "Expires": {
        "description": "Date after which the representation is considered stale.",
        "schema": {"type": "string", "format": "date-time"},
    },
}

CACHEABLE_RESPONSES: Final[Mapping[int | str, Mapping[str, object]]] = {
    200: {
        "description": "Fresh representation with its cache validators.",
        "headers": _CACHE_POLICY_HEADERS,
    },
    304: {
        "description": _NOT_MODIFIED_DESCRIPTION,
        "headers": {
            key: value for key, value in _CACHE_POLICY_HEADERS.items() if key != "Expires"
        },
    },
}

__all__ = ["CACHEABLE_RESPONSES"]
