"""Tag-scoped cache namespaces with bulk invalidation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Iterable

from sqlalchemy import inspect
from sqlalchemy.orm import InstanceState

from conditional_cache.config import get_settings
from conditional_cache.errors import ConfigurationError
from conditional_cache.logging import get_logger
from conditional_cache.logging_events import log_event
from conditional_cache.services.store import (
    TTL,
    CacheStore,
    PrefixScanCapable,
    TagFlushCapable,
)

logger = get_logger(__name__)


def _entity_identifier(entity: Any) -> Any:
    state = inspect(entity, raiseerr=False)
    if isinstance(state, InstanceState):
        values = state.identity or state.mapper.primary_key_from_instance(entity)
        if values is None or any(value is None for value in values):
            raise ConfigurationError(
                f"{type(entity).__name__} has no primary key to build a cache key from",
                meta={"entity": type(entity).__name__},
            )
        return values[0] if len(values) == 1 else "-".join(str(value) for value in values)
    return getattr(entity, "id")


@dataclass(slots=True, frozen=True)
class IdentityRef:
    """Reference to a cached entity, rendered as ``tag#identifier``.

    Mapped SQLAlchemy instances are identified by their primary key (composite
    keys are joined with ``-``); other entities by their ``id`` attribute.
    """

    tag: str
    identifier: Any

    @classmethod
    def of(cls, entity: Any) -> "IdentityRef":
        tag = getattr(type(entity), "cache_tag", None) or type(entity).__name__
        return cls(tag=str(tag), identifier=_entity_identifier(entity))

    def __str__(self) -> str:
        return f"{self.tag}#{self.identifier}"


def _is_entity(token: Any) -> bool:
    if isinstance(inspect(token, raiseerr=False), InstanceState):
        return True
    return hasattr(type(token), "cache_tag") and hasattr(token, "id")


def prefix_token(token: Any) -> str | None:
    """Render one prefix token; ``None``, ``False`` and ``""`` yield ``None``."""

    if token is None or token is False or token == "":
        return None
    if token is True:
        return "1"
    if isinstance(token, IdentityRef):
        return str(token)
    if _is_entity(token):
        return str(IdentityRef.of(token))
    return str(token)


class TaggedNamespace(CacheStore):
    """Cache keys scoped by tags and a prefix over an opaque backend.

    Keys are stored as ``tags[0]/prefix/local_key``. Invalidation flushes the
    whole tag set on backends with tag support, falls back to deleting the
    primary tag prefix, and is a no-op otherwise.
    """

    def __init__(
        self,
        backend: CacheStore,
        tags: Iterable[str] | str,
        *,
        ttl: TTL | None = None,
    ) -> None:
        if not isinstance(backend, CacheStore):
            raise ConfigurationError(
                "Tagged namespaces require a CacheStore backend",
                meta={"backend": type(backend).__name__},
            )
        self._backend = backend
        self._tags: list[str] = []
        self._prefix = ""
        self.ttl: TTL = get_settings().namespace_ttl if ttl is None else ttl
        self.depends_on(*([tags] if isinstance(tags, str) else tags))
        if not self._tags:
            raise ConfigurationError("Tagged namespaces require at least one tag")

    @classmethod
    def for_subject(
        cls, backend: CacheStore, subject: str, *, ttl: TTL | None = None
    ) -> "TaggedNamespace":
        return cls(backend, [subject], ttl=ttl)

    @property
    def tags(self) -> tuple[str, ...]:
        return tuple(self._tags)

    @property
    def prefix(self) -> str:
        return self._prefix

    @property
    def backend(self) -> CacheStore:
        return self._backend

    def clone(self) -> "TaggedNamespace":
        copy = TaggedNamespace(self._backend, self._tags, ttl=self.ttl)
        copy._prefix = self._prefix
        return copy

    def with_prefix(self, tokens: Iterable[Any] | Any) -> "TaggedNamespace":
        if isinstance(tokens, (str, bytes)) or not isinstance(tokens, Iterable):
            tokens = [tokens]
        rendered = [prefix_token(token) for token in tokens]
        self._prefix = "/".join(token for token in rendered if token)
        return self

    def prepend_prefix(self, token: Any) -> "TaggedNamespace":
        segments = [prefix_token(token), self._prefix]
        self._prefix = "/".join(segment for segment in segments if segment)
        return self

    def depends_on(self, *tags: str) -> "TaggedNamespace":
        for tag in tags:
            if tag and tag not in self._tags:
                self._tags.append(tag)
        return self

    def prepend_tag(self, tag: str) -> "TaggedNamespace":
        if tag in self._tags:
            self._tags.remove(tag)
        self._tags.insert(0, tag)
        return self

    def set_ttl(self, ttl: TTL) -> "TaggedNamespace":
        self.ttl = ttl
        return self

    def caching_key(self, key: str) -> str:
        segments = [self._tags[0], self._prefix, key]
        return "/".join(segment for segment in segments if segment)

    def _writer(self) -> Any:
        if isinstance(self._backend, TagFlushCapable):
            return self._backend.tags(self._tags)
        return self._backend

    def get(self, key: str, default: Any = None) -> Any:
        return self._backend.get(self.caching_key(key), default)

    def set(self, key: str, value: Any, ttl: TTL = None) -> bool:
        return self._writer().set(
            self.caching_key(key), value, self.ttl if ttl is None else ttl
        )

    def put(self, key: str, value: Any) -> bool:
        return self.set(key, value)

    def delete(self, key: str) -> bool:
        return self._backend.delete(self.caching_key(key))

    def forget(self, key: str) -> bool:
        return self.delete(key)

    def remember(self, key: str, producer: Callable[[str], Any]) -> Any:
        """Return the cached value or compute, store and return it.

        Concurrent callers may each run ``producer``; the last write wins.
        """

        sentinel = object()
        cached = self.get(key, sentinel)
        if cached is not sentinel:
            return cached
        value = producer(key)
        self.set(key, value)
        return value

    def invalidate(self) -> int:
        try:
            if isinstance(self._backend, TagFlushCapable):
                count = self._backend.tags(self._tags).flush()
            elif isinstance(self._backend, PrefixScanCapable):
                count = self._backend.delete_prefix(f"{self._tags[0]}/")
            else:
                log_event(
                    logger,
                    "cache.invalidate",
                    component="service.tagged",
                    status="unsupported",
                    tags=",".join(self._tags),
                )
                return 0
        except Exception:
            logger.warning(
                "Cache invalidation failed",
                extra={"event": "cache.error", "tags": ",".join(self._tags)},
                exc_info=True,
            )
            return 0
        return count

    def clear(self) -> bool:
        self.invalidate()
        return True

    def __repr__(self) -> str:
        return f"TaggedNamespace(tags={self._tags!r}, prefix={self._prefix!r})"


__all__ = ["IdentityRef", "TaggedNamespace", "prefix_token"]
