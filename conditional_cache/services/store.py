"""Key-value cache stores with TTL support."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import threading
import time
from typing import Any, Callable, Iterable, Mapping, Protocol, Union, runtime_checkable

from conditional_cache.config import get_settings
from conditional_cache.logging import get_logger
from conditional_cache.logging_events import log_event

logger = get_logger(__name__)

TimeProvider = Callable[[], float]
TTL = Union[int, float, timedelta, datetime, None]

_MISSING = object()


def ttl_seconds(ttl: TTL, *, now: float) -> float | None:
    """Return the remaining lifetime in seconds, ``None`` meaning forever."""

    if ttl is None:
        return None
    if isinstance(ttl, bool):
        raise TypeError("ttl must be a number of seconds, a timedelta or a datetime")
    if isinstance(ttl, timedelta):
        return ttl.total_seconds()
    if isinstance(ttl, datetime):
        moment = ttl if ttl.tzinfo else ttl.replace(tzinfo=timezone.utc)
        return moment.timestamp() - now
    return float(ttl)


class CacheStore(ABC):
    """Opaque key-value store contract used by the cache layer."""

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        """Return the value stored under ``key`` or ``default``."""

    @abstractmethod
    def set(self, key: str, value: Any, ttl: TTL = None) -> bool:
        """Store ``value``; a ``None`` ttl never expires."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove ``key`` if present."""

    @abstractmethod
    def clear(self) -> bool:
        """Remove every entry."""

    def has(self, key: str) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def get_many(self, keys: Iterable[str], default: Any = None) -> dict[str, Any]:
        return {key: self.get(key, default) for key in keys}

    def set_many(self, values: Mapping[str, Any], ttl: TTL = None) -> bool:
        results = [self.set(key, value, ttl) for key, value in values.items()]
        return all(results)

    def delete_many(self, keys: Iterable[str]) -> bool:
        results = [self.delete(key) for key in keys]
        return all(results)


class TaggedView(ABC):
    """Store view whose writes are grouped under a set of tags."""

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        """Return the value stored under ``key`` or ``default``."""

    @abstractmethod
    def set(self, key: str, value: Any, ttl: TTL = None) -> bool:
        """Store ``value`` and associate it with the view tags."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove ``key`` if present."""

    @abstractmethod
    def flush(self) -> int:
        """Remove every entry associated with any of the view tags."""


class TagFlushCapable(ABC):
    """Stores able to group entries by tag and flush a whole group."""

    @abstractmethod
    def tags(self, names: Iterable[str]) -> TaggedView:
        """Return a view scoped to ``names``."""


class PrefixScanCapable(ABC):
    """Stores able to remove every key sharing a prefix."""

    @abstractmethod
    def delete_prefix(self, prefix: str) -> int:
        """Remove every key starting with ``prefix`` and return the count."""


@runtime_checkable
class Cacheable(Protocol):
    """Object owning the cache its responses are stored in."""

    def cache(self) -> CacheStore:  # pragma: no cover - protocol
        ...


@dataclass(slots=True)
class StoredValue:
    value: Any
    expires_at: float | None
    tags: tuple[str, ...] = ()

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at


class InMemoryStore(CacheStore, TagFlushCapable, PrefixScanCapable):
    """In-memory TTL store with LRU eviction and tag bookkeeping."""

    def __init__(
        self,
        *,
        max_items: int | None = None,
        time_func: TimeProvider | None = None,
        log_events: bool | None = None,
    ) -> None:
        if max_items is None or log_events is None:
            settings = get_settings()
            max_items = settings.max_items if max_items is None else max_items
            log_events = settings.log_events if log_events is None else log_events
        if max_items <= 0:
            raise ValueError("max_items must be positive")
        self._max_items = max_items
        self._entries: "OrderedDict[str, StoredValue]" = OrderedDict()
        self._tag_index: dict[str, set[str]] = {}
        self._lock = threading.RLock()
        self._now: TimeProvider = time_func or time.time
        self._log_events = log_events

    def __len__(self) -> int:
        with self._lock:
            self._purge_expired(self._now())
            return len(self._entries)

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._log_operation("miss", "miss", key=key)
                return default
            if entry.is_expired(self._now()):
                self._drop(key)
                self._log_operation("expired", "expired", key=key)
                return default
            self._entries.move_to_end(key)
        self._log_operation("hit", "hit", key=key)
        return entry.value

    def set(self, key: str, value: Any, ttl: TTL = None) -> bool:
        return self._store(key, value, ttl, tags=())

    def delete(self, key: str) -> bool:
        with self._lock:
            removed = self._drop(key)
        if removed:
            self._log_operation("invalidate", "invalidated", key=key)
        return True

    def clear(self) -> bool:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            self._tag_index.clear()
        self._log_operation("clear", "cleared", count=count)
        return True

    def delete_prefix(self, prefix: str) -> int:
        with self._lock:
            keys = [key for key in self._entries if key.startswith(prefix)]
            for key in keys:
                self._drop(key)
        self._log_operation(
            "invalidate", "invalidated" if keys else "noop", prefix=prefix, count=len(keys)
        )
        return len(keys)

    def tags(self, names: Iterable[str]) -> TaggedView:
        return _InMemoryTaggedView(self, tuple(dict.fromkeys(names)))

    def _store(self, key: str, value: Any, ttl: TTL, *, tags: tuple[str, ...]) -> bool:
        with self._lock:
            now = self._now()
            lifetime = ttl_seconds(ttl, now=now)
            self._drop(key)
            if lifetime is not None and lifetime <= 0:
                return True
            expires_at = None if lifetime is None else now + lifetime
            self._entries[key] = StoredValue(value=value, expires_at=expires_at, tags=tags)
            for tag in tags:
                self._tag_index.setdefault(tag, set()).add(key)
            self._enforce_limit()
        self._log_operation("store", "stored", key=key, ttl_s=lifetime)
        return True

    def _flush_tags(self, tags: tuple[str, ...]) -> int:
        with self._lock:
            keys: set[str] = set()
            for tag in tags:
                keys.update(self._tag_index.pop(tag, set()))
            for key in keys:
                self._drop(key)
        self._log_operation(
            "invalidate",
            "invalidated" if keys else "noop",
            tags=",".join(tags),
            count=len(keys),
        )
        return len(keys)

    def _drop(self, key: str) -> bool:
        entry = self._entries.pop(key, None)
        if entry is None:
            return False
        for tag in entry.tags:
            members = self._tag_index.get(tag)
            if members is None:
                continue
            members.discard(key)
            if not members:
                del self._tag_index[tag]
        return True

    def _purge_expired(self, now: float) -> None:
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            self._drop(key)

    def _enforce_limit(self) -> None:
        while len(self._entries) > self._max_items:
            key = next(iter(self._entries))
            self._drop(key)
            self._log_operation("evict", "evicted", key=key)

    def _log_operation(self, operation: str, status: str, **fields: object) -> None:
        if not self._log_events:
            return
        log_event(
            logger,
            f"cache.{operation}",
            component="service.cache",
            status=status,
            **fields,
        )


class _InMemoryTaggedView(TaggedView):
    def __init__(self, store: InMemoryStore, tags: tuple[str, ...]) -> None:
        self._store = store
        self._tags = tags

    def get(self, key: str, default: Any = None) -> Any:
        return self._store.get(key, default)

    def set(self, key: str, value: Any, ttl: TTL = None) -> bool:
        return self._store._store(key, value, ttl, tags=self._tags)

    def delete(self, key: str) -> bool:
        return self._store.delete(key)

    def flush(self) -> int:
        return self._store._flush_tags(self._tags)


__all__ = [
    "CacheStore",
    "Cacheable",
    "InMemoryStore",
    "PrefixScanCapable",
    "StoredValue",
    "TTL",
    "TagFlushCapable",
    "TaggedView",
    "TimeProvider",
    "ttl_seconds",
]
