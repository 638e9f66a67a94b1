"""Deterministic request fingerprints used as cache key roots."""

from __future__ import annotations

import hashlib
import json
from typing import Any, Iterable, Mapping, Sequence
from urllib.parse import parse_qsl

from fastapi import Request


def normalize_path(path: str) -> str:
    trimmed = (path or "").strip()
    if not trimmed or trimmed == "/":
        return "/"
    if not trimmed.startswith("/"):
        trimmed = f"/{trimmed}"
    return trimmed.rstrip("/")


def normalize_method(method: str) -> str:
    """``HEAD`` shares validators with ``GET``."""

    upper = method.upper()
    return "GET" if upper == "HEAD" else upper


def query_pairs(raw_query: str) -> list[tuple[str, str]]:
    if not raw_query:
        return []
    return sorted(parse_qsl(raw_query, keep_blank_values=True))


def vary_pairs(
    headers: Iterable[tuple[str, str]], vary: Sequence[str]
) -> list[tuple[str, str]]:
    """Return the request headers listed in ``vary``, names lower-cased."""

    wanted = {name.strip().lower() for name in vary if name and name.strip()}
    if not wanted:
        return []
    selected = [
        (name.lower(), value) for name, value in headers if name.lower() in wanted
    ]
    return sorted(selected)


def build_fingerprint(
    *,
    method: str,
    path: str,
    query_string: str = "",
    params: Mapping[str, Any] | None = None,
    headers: Iterable[tuple[str, str]] = (),
    vary: Sequence[str] = (),
    identity: Any = None,
    locale: str | None = None,
) -> str:
    """Digest every cache-relevant attribute of a request into a stable key."""

    document = {
        "method": normalize_method(method),
        "path": normalize_path(path),
        "query": query_pairs(query_string),
        "params": dict(params or {}),
        "headers": vary_pairs(headers, vary),
        "identity": None if identity is None else str(identity),
        "locale": locale,
    }
    serialised = json.dumps(
        document,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )
    return hashlib.md5(serialised.encode("utf-8")).hexdigest()  # noqa: S324


def fingerprint_request(
    request: Request,
    *,
    vary: Sequence[str] = (),
    identity: Any = None,
    locale: str | None = None,
    params: Mapping[str, Any] | None = None,
) -> str:
    return build_fingerprint(
        method=request.method,
        path=request.url.path,
        query_string=request.url.query,
        params=params,
        headers=request.headers.items(),
        vary=vary,
        identity=identity,
        locale=locale,
    )


__all__ = [
    "build_fingerprint",
    "fingerprint_request",
    "normalize_method",
    "normalize_path",
    "query_pairs",
    "vary_pairs",
]
