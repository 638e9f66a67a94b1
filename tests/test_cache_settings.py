from __future__ import annotations

import pytest

from conditional_cache.config import (
    DEFAULT_MAX_ITEMS,
    DEFAULT_MAX_RESOLVE_DEPTH,
    DEFAULT_NAMESPACE_TTL_S,
    get_settings,
    load_settings,
    reset_settings_cache,
)


def test_defaults_without_environment() -> None:
    settings = load_settings({})

    assert settings.default_ttl is None
    assert settings.namespace_ttl == DEFAULT_NAMESPACE_TTL_S == 604_800
    assert settings.max_resolve_depth == DEFAULT_MAX_RESOLVE_DEPTH
    assert settings.max_items == DEFAULT_MAX_ITEMS
    assert settings.log_events is True


def test_values_are_read_from_environment() -> None:
    settings = load_settings(
        {
            "HTTP_CACHE_DEFAULT_TTL_S": "120",
            "HTTP_CACHE_NAMESPACE_TTL_S": "60",
            "HTTP_CACHE_MAX_RESOLVE_DEPTH": "3",
            "HTTP_CACHE_MAX_ITEMS": "50",
            "HTTP_CACHE_LOG_EVENTS": "off",
        }
    )

    assert settings.default_ttl == 120
    assert settings.namespace_ttl == 60
    assert settings.max_resolve_depth == 3
    assert settings.max_items == 50
    assert settings.log_events is False


@pytest.mark.parametrize("raw", ["", "  ", "soon"])
def test_blank_or_invalid_default_ttl_means_forever(raw: str) -> None:
    assert load_settings({"HTTP_CACHE_DEFAULT_TTL_S": raw}).default_ttl is None


def test_invalid_numbers_fall_back_and_are_clamped() -> None:
    settings = load_settings(
        {
            "HTTP_CACHE_NAMESPACE_TTL_S": "-5",
            "HTTP_CACHE_MAX_RESOLVE_DEPTH": "0",
            "HTTP_CACHE_MAX_ITEMS": "many",
        }
    )

    assert settings.namespace_ttl == 0
    assert settings.max_resolve_depth == 1
    assert settings.max_items == DEFAULT_MAX_ITEMS


def test_get_settings_is_cached_until_reset(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("HTTP_CACHE_MAX_ITEMS", "7")
    first = get_settings()
    monkeypatch.setenv("HTTP_CACHE_MAX_ITEMS", "9")

    assert get_settings() is first

    reset_settings_cache()
    assert get_settings().max_items == 9
