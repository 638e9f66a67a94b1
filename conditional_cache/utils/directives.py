"""Cache-Control directive model and serializer."""

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import datetime, timedelta, timezone
import time
from typing import Any, Callable, Mapping, Union

Duration = Union[int, timedelta, datetime]

_DURATION_DIRECTIVES = (
    "max_age",
    "s_maxage",
    "stale_while_revalidate",
    "stale_if_error",
)
_DIRECTIVE_ORDER = (
    "public",
    "private",
    *_DURATION_DIRECTIVES,
    "must_revalidate",
    "proxy_revalidate",
    "no_cache",
    "no_store",
    "no_transform",
    "immutable",
    "must_understand",
)


def duration_seconds(value: Duration, *, now: Callable[[], float] = time.time) -> int:
    """Return ``value`` as whole seconds from now.

    ``timedelta`` values are taken as relative, ``datetime`` values as absolute
    points in time (naive values are UTC).
    """

    if isinstance(value, bool):
        raise TypeError("Duration directives do not accept booleans")
    if isinstance(value, timedelta):
        return int(value.total_seconds())
    if isinstance(value, datetime):
        moment = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
        return int(moment.timestamp() - now())
    return int(value)


@dataclass(slots=True)
class CacheControlDirectives:
    """Typed ``Cache-Control`` directives; ``None`` means the directive is unset.

    ``max_age``, ``s_maxage``, ``stale_while_revalidate`` and ``stale_if_error``
    accept seconds, a ``timedelta`` or an absolute ``datetime``. The remaining
    fields are flags.
    """

    max_age: Duration | None = None
    s_maxage: Duration | None = None
    stale_while_revalidate: Duration | None = None
    stale_if_error: Duration | None = None
    public: bool | None = None
    private: bool | None = None
    must_revalidate: bool | None = None
    no_cache: bool | None = None
    no_store: bool | None = None
    no_transform: bool | None = None
    proxy_revalidate: bool | None = None
    immutable: bool | None = None
    must_understand: bool | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        for field in fields(self):
            value = getattr(self, field.name)
            if value is None:
                continue
            if field.name in _DURATION_DIRECTIVES:
                value = duration_seconds(value)
            payload[field.name] = value
        return payload


def directive_name(key: str) -> str:
    return key.replace("_", "-")


def render_cache_control(directives: Mapping[str, Any]) -> str | None:
    """Render a directive mapping as a ``Cache-Control`` header value.

    ``public=False`` is rendered as ``private`` (and ``private=False`` as
    ``public``); other false flags are omitted.
    """

    resolved: dict[str, Any] = {}
    for key, value in directives.items():
        if value is None:
            continue
        resolved[key.replace("-", "_")] = value

    public = resolved.pop("public", None)
    private = resolved.pop("private", None)
    if public is True or private is False:
        resolved["public"] = True
    elif private is True or public is False:
        resolved["private"] = True

    ordered = sorted(
        resolved,
        key=lambda name: (
            _DIRECTIVE_ORDER.index(name) if name in _DIRECTIVE_ORDER else len(_DIRECTIVE_ORDER),
            name,
        ),
    )
    parts: list[str] = []
    for key in ordered:
        value = resolved[key]
        if value is True:
            parts.append(directive_name(key))
        elif value is False:
            continue
        elif key in _DURATION_DIRECTIVES:
            parts.append(f"{directive_name(key)}={max(0, duration_seconds(value))}")
        else:
            parts.append(f"{directive_name(key)}={value}")
    return ", ".join(parts) or None


__all__ = [
    "CacheControlDirectives",
    "Duration",
    "directive_name",
    "duration_seconds",
    "render_cache_control",
]
