"""Invalidate cached responses when their owning entity changes."""

from __future__ import annotations

from typing import Any

from sqlalchemy import event

from conditional_cache.logging import get_logger
from conditional_cache.logging_events import log_event
from conditional_cache.services.store import Cacheable

logger = get_logger(__name__)

_MAPPER_EVENTS = ("after_insert", "after_update", "after_delete")


class InvalidatesCache:
    """Clear the owner's cache on every lifecycle event.

    Failures are logged and swallowed so persistence never aborts because a
    cache backend is unavailable.
    """

    def created(self, cacheable: Cacheable) -> None:
        self._invalidate(cacheable, "created")

    def updated(self, cacheable: Cacheable) -> None:
        self._invalidate(cacheable, "updated")

    def deleted(self, cacheable: Cacheable) -> None:
        self._invalidate(cacheable, "deleted")

    def restored(self, cacheable: Cacheable) -> None:
        self._invalidate(cacheable, "restored")

    def force_deleted(self, cacheable: Cacheable) -> None:
        self._invalidate(cacheable, "force_deleted")

    def _invalidate(self, cacheable: Cacheable, reason: str) -> None:
        try:
            cacheable.cache().clear()
        except Exception:
            logger.warning(
                "Cache invalidation failed",
                extra={"event": "cache.error", "reason": reason},
                exc_info=True,
            )
            return
        log_event(
            logger,
            "cache.invalidate",
            component="service.invalidation",
            status="invalidated",
            reason=reason,
            entity=type(cacheable).__name__,
        )


_OBSERVER = InvalidatesCache()
_HANDLERS = {
    "after_insert": _OBSERVER.created,
    "after_update": _OBSERVER.updated,
    "after_delete": _OBSERVER.deleted,
}


def _mapper_listener(name: str) -> Any:
    handler = _HANDLERS[name]

    def _listener(_mapper: Any, _connection: Any, target: Cacheable) -> None:
        handler(target)

    _listener.__name__ = f"_invalidate_on_{name}"
    return _listener


_LISTENERS = {name: _mapper_listener(name) for name in _MAPPER_EVENTS}


def bind_model_events(model: type) -> type:
    """Register cache invalidation on the SQLAlchemy mapper events of ``model``.

    Usable as a class decorator. Subclasses inherit the listeners.
    """

    for name, listener in _LISTENERS.items():
        if not event.contains(model, name, listener):
            event.listen(model, name, listener, propagate=True)
    return model


def unbind_model_events(model: type) -> None:
    for name, listener in _LISTENERS.items():
        if event.contains(model, name, listener):
            event.remove(model, name, listener)


__all__ = ["InvalidatesCache", "bind_model_events", "unbind_model_events"]
