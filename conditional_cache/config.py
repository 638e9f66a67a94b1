"""Runtime configuration for the conditional cache layer."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
import os
from typing import Any, Mapping

DEFAULT_NAMESPACE_TTL_S = 604_800
DEFAULT_MAX_RESOLVE_DEPTH = 16
DEFAULT_MAX_ITEMS = 10_000


@dataclass(slots=True, frozen=True)
class CacheControlSettings:
    default_ttl: int | None
    namespace_ttl: int
    max_resolve_depth: int
    max_items: int
    log_events: bool


def _env_value(env: Mapping[str, Any], key: str) -> str | None:
    value = env.get(key)
    if value is None:
        return None
    return str(value)


def _as_bool(value: str | None, *, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _as_int(value: str | None, *, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _parse_optional_duration(value: str | None) -> int | None:
    if value is None or not value.strip():
        return None
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return None
    return max(0, parsed)


def load_settings(env: Mapping[str, Any] | None = None) -> CacheControlSettings:
    """Return cache settings resolved from ``env`` (defaults to ``os.environ``)."""

    env = os.environ if env is None else env
    return CacheControlSettings(
        default_ttl=_parse_optional_duration(_env_value(env, "HTTP_CACHE_DEFAULT_TTL_S")),
        namespace_ttl=max(
            0,
            _as_int(
                _env_value(env, "HTTP_CACHE_NAMESPACE_TTL_S"),
                default=DEFAULT_NAMESPACE_TTL_S,
            ),
        ),
        max_resolve_depth=max(
            1,
            _as_int(
                _env_value(env, "HTTP_CACHE_MAX_RESOLVE_DEPTH"),
                default=DEFAULT_MAX_RESOLVE_DEPTH,
            ),
        ),
        max_items=max(
            1, _as_int(_env_value(env, "HTTP_CACHE_MAX_ITEMS"), default=DEFAULT_MAX_ITEMS)
        ),
        log_events=_as_bool(_env_value(env, "HTTP_CACHE_LOG_EVENTS"), default=True),
    )


@lru_cache(maxsize=1)
def get_settings() -> CacheControlSettings:
    """Return the process wide settings, loaded once from the environment."""

    return load_settings()


def reset_settings_cache() -> None:
    """Forget cached settings (primarily for testing)."""

    get_settings.cache_clear()


__all__ = [
    "CacheControlSettings",
    "DEFAULT_MAX_ITEMS",
    "DEFAULT_MAX_RESOLVE_DEPTH",
    "DEFAULT_NAMESPACE_TTL_S",
    "get_settings",
    "load_settings",
    "reset_settings_cache",
]
