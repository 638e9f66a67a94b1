"""Helpers for HTTP validators and conditional request evaluation."""

from __future__ import annotations

from datetime import datetime, timezone
from email.utils import format_datetime, parsedate_to_datetime
import re
from typing import Mapping

from fastapi import Request, status
from starlette.responses import Response

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_SAFE_METHODS = frozenset({"GET", "HEAD"})
_ETAG_TOKEN = re.compile(r'\s*((?:W/)?"[^"]*"|\*|[^,\s]+)\s*(?:,|$)')

# Representation headers a 304 must not carry.
_NOT_MODIFIED_STRIPPED = frozenset(
    {
        "allow",
        "content-encoding",
        "content-language",
        "content-length",
        "content-md5",
        "content-type",
    }
)


def ensure_utc(value: datetime | None) -> datetime:
    if value is None:
        return _EPOCH
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_http_datetime(value: datetime) -> str:
    """Format a datetime instance as an RFC 7231 compliant string."""

    return format_datetime(ensure_utc(value).replace(microsecond=0), usegmt=True)


def parse_http_datetime(value: str | None) -> datetime | None:
    """Parse an HTTP date, returning ``None`` for missing or malformed values."""

    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if parsed is None:
        return None
    return ensure_utc(parsed).replace(microsecond=0)


def normalize_etag(value: str) -> str:
    """Return ``value`` as an entity tag, quoting bare opaque strings."""

    candidate = value.strip()
    if candidate.startswith('W/"') or candidate.startswith('"'):
        return candidate
    return f'"{candidate}"'


def parse_etag_list(header_value: str | None) -> list[str]:
    """Split an ``If-None-Match`` value into its entity tags."""

    if not header_value:
        return []
    return [match.group(1) for match in _ETAG_TOKEN.finditer(header_value)]


def _opaque_tag(etag: str) -> str:
    return etag[2:] if etag.startswith("W/") else etag


def etags_match_weak(left: str, right: str) -> bool:
    """Weak comparison: opaque tags equal, ignoring the ``W/`` prefix."""

    return _opaque_tag(left) == _opaque_tag(right)


def is_request_not_modified(
    request: Request,
    *,
    etag: str | None,
    last_modified: datetime | None,
) -> bool:
    """Return ``True`` when the client cache validators match the response metadata.

    ``If-None-Match`` takes priority: when present, ``If-Modified-Since`` is
    ignored. Only safe methods may yield a match.
    """

    if request.method.upper() not in _SAFE_METHODS:
        return False

    if_none_match = request.headers.get("if-none-match")
    if if_none_match:
        if not etag:
            return False
        for candidate in parse_etag_list(if_none_match):
            if candidate == "*" or etags_match_weak(candidate, etag):
                return True
        return False

    if last_modified is None:
        return False
    since = parse_http_datetime(request.headers.get("if-modified-since"))
    if since is None:
        return False
    return ensure_utc(last_modified).replace(microsecond=0) <= since


def is_response_not_modified(request: Request, response: Response) -> bool:
    """Evaluate the conditional request against the validators ``response`` carries."""

    return is_request_not_modified(
        request,
        etag=response.headers.get("etag"),
        last_modified=parse_http_datetime(response.headers.get("last-modified")),
    )


def validator_headers(
    *,
    etag: str | None,
    last_modified: datetime | None,
    cache_control: str | None = None,
) -> dict[str, str]:
    headers: dict[str, str] = {}
    if etag:
        headers["ETag"] = etag
    if last_modified is not None:
        headers["Last-Modified"] = format_http_datetime(last_modified)
    if cache_control:
        headers["Cache-Control"] = cache_control
    return headers


def not_modified_response(headers: Mapping[str, str]) -> Response:
    """Build a body-less 304 keeping only the headers allowed on it."""

    kept = {
        name: value
        for name, value in headers.items()
        if name.lower() not in _NOT_MODIFIED_STRIPPED
    }
    return Response(status_code=status.HTTP_304_NOT_MODIFIED, headers=kept)


def strip_body(response: Response) -> Response:
    """Drop the payload of a ``HEAD`` response while keeping its headers."""

    response.body = b""
    return response


__all__ = [
    "ensure_utc",
    "etags_match_weak",
    "format_http_datetime",
    "is_request_not_modified",
    "is_response_not_modified",
    "normalize_etag",
    "not_modified_response",
    "parse_etag_list",
    "parse_http_datetime",
    "strip_body",
    "validator_headers",
]
