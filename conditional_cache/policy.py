"""Per-endpoint caching policy."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from types import MappingProxyType
from typing import Any, Callable, Literal, Mapping, Union

from fastapi import Request
from starlette.responses import Response

from conditional_cache.services.store import TTL

EtagResolver = Callable[[Response], str | None]
LastModifiedResolver = Callable[[Response], Union[int, datetime, None]]
RequestResolver = Callable[[Request], Any]


@dataclass(slots=True, frozen=True)
class Public:
    """Responses are shared between users; identity never reaches the key."""

    def identity_for(self, request: Request) -> Any:
        return None


@dataclass(slots=True, frozen=True)
class PrivateTo:
    """Responses belong to one user; ``identity`` may be a value or a resolver."""

    identity: Any

    def identity_for(self, request: Request) -> Any:
        if callable(self.identity):
            return self.identity(request)
        return self.identity


Scope = Union[Public, PrivateTo]


@dataclass(slots=True, frozen=True)
class CachingPolicy:
    """Immutable description of what the engine tracks for one endpoint.

    ``etag`` is ``False`` (off), ``True`` (digest of the body) or a resolver
    called with the fresh response. ``last_modified`` is ``None`` or a resolver
    returning epoch seconds or a ``datetime``. Without an explicit ``scope`` the
    ``identity`` resolver, if any, partitions the cache per user.
    """

    etag: bool | EtagResolver = False
    last_modified: LastModifiedResolver | None = None
    remember: bool = False
    ttl: TTL = None
    vary: tuple[str, ...] = ()
    scope: Scope | None = None
    identity: RequestResolver | None = None
    locale: RequestResolver | None = None
    directives: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    expires: datetime | timedelta | None = None

    @property
    def etag_mode(self) -> Literal["off", "implicit", "explicit"]:
        if self.etag is True:
            return "implicit"
        if callable(self.etag):
            return "explicit"
        return "off"

    @property
    def tracks_etag(self) -> bool:
        return self.etag_mode != "off"

    @property
    def tracks_last_modified(self) -> bool:
        return self.last_modified is not None

    @property
    def has_validators(self) -> bool:
        return self.tracks_etag or self.tracks_last_modified

    @property
    def is_public(self) -> bool:
        return isinstance(self.scope, Public)

    def identity_for(self, request: Request) -> Any:
        if self.scope is not None:
            return self.scope.identity_for(request)
        if self.identity is not None:
            return self.identity(request)
        return None

    def locale_for(self, request: Request) -> str | None:
        if self.locale is None:
            return None
        value = self.locale(request)
        return None if value is None else str(value)

    def scoped_directives(self) -> dict[str, Any]:
        """Return the directives with ``public``/``private`` aligned to the scope."""

        directives = dict(self.directives)
        if isinstance(self.scope, Public):
            directives.pop("private", None)
            directives["public"] = True
        elif isinstance(self.scope, PrivateTo):
            directives.pop("public", None)
            directives["private"] = True
        return directives


__all__ = [
    "CachingPolicy",
    "EtagResolver",
    "LastModifiedResolver",
    "PrivateTo",
    "Public",
    "RequestResolver",
    "Scope",
]
