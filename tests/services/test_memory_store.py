from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from conditional_cache.services.store import InMemoryStore, ttl_seconds
from tests.helpers import TimeStub


def test_get_set_delete_clear(store: InMemoryStore) -> None:
    assert store.get("foo") is None
    assert not store.has("foo")

    store.set("foo", "fighters")
    assert store.get("foo") == "fighters"
    assert store.has("foo")

    store.delete("foo")
    assert store.get("foo") is None

    store.set("foo", "fighters")
    store.clear()
    assert not store.has("foo")


def test_entries_expire_after_ttl(store: InMemoryStore, clock: TimeStub) -> None:
    store.set("foo", "fighters", 3)

    clock.advance(2)
    assert store.get("foo") == "fighters"

    clock.advance(2)
    assert store.get("foo") is None


def test_ttl_none_never_expires(store: InMemoryStore, clock: TimeStub) -> None:
    store.set("foo", "fighters")

    clock.advance(10 * 365 * 86_400)

    assert store.get("foo") == "fighters"


def test_timedelta_and_datetime_ttls(store: InMemoryStore, clock: TimeStub) -> None:
    store.set("relative", 1, timedelta(seconds=5))
    store.set("absolute", 2, datetime.fromtimestamp(clock() + 5, tz=timezone.utc))

    clock.advance(6)

    assert store.get("relative") is None
    assert store.get("absolute") is None


def test_non_positive_ttl_removes_entry(store: InMemoryStore) -> None:
    store.set("foo", "fighters")
    store.set("foo", "other", 0)

    assert not store.has("foo")


def test_rewriting_refreshes_ttl(store: InMemoryStore, clock: TimeStub) -> None:
    store.set("foo", "fighters", 5)
    clock.advance(4)
    store.set("foo", "fighters", 5)
    clock.advance(4)

    assert store.get("foo") == "fighters"


def test_lru_eviction_discards_oldest_entries(clock: TimeStub) -> None:
    store = InMemoryStore(max_items=2, time_func=clock)
    store.set("one", 1)
    store.set("two", 2)
    assert store.get("one") == 1

    store.set("three", 3)

    assert store.get("two") is None
    assert store.get("one") == 1
    assert store.get("three") == 3


def test_batch_operations(store: InMemoryStore) -> None:
    store.set_many({"a": 1, "b": 2})

    assert store.get_many(["a", "b", "c"], default=0) == {"a": 1, "b": 2, "c": 0}

    store.delete_many(["a", "b"])
    assert len(store) == 0


def test_delete_prefix(store: InMemoryStore) -> None:
    store.set("articles/1", 1)
    store.set("articles/2", 2)
    store.set("authors/1", 3)

    assert store.delete_prefix("articles/") == 2
    assert store.get("authors/1") == 3


def test_tag_flush_removes_entries_sharing_any_tag(store: InMemoryStore) -> None:
    store.tags(["request", "articles"]).set("request/a", 1)
    store.tags(["articles"]).set("articles/b", 2)
    store.tags(["authors"]).set("authors/c", 3)

    assert store.tags(["articles"]).flush() == 2

    assert store.get("request/a") is None
    assert store.get("articles/b") is None
    assert store.get("authors/c") == 3


def test_operations_emit_cache_events(
    store: InMemoryStore, captured_events: list[tuple[str, dict[str, object]]]
) -> None:
    store.get("missing")
    store.set("key", "value", 5)
    store.get("key")

    events = [event for event, _ in captured_events]
    assert events == ["cache.miss", "cache.store", "cache.hit"]
    assert captured_events[1][1]["ttl_s"] == 5.0


def test_rejects_invalid_capacity() -> None:
    with pytest.raises(ValueError):
        InMemoryStore(max_items=0)


def test_ttl_seconds_rejects_booleans() -> None:
    with pytest.raises(TypeError):
        ttl_seconds(True, now=0.0)


def test_defaults_come_from_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("HTTP_CACHE_MAX_ITEMS", "1")
    store = InMemoryStore()

    store.set("one", 1)
    store.set("two", 2)

    assert len(store) == 1
