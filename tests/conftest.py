from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path
import sys

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from conditional_cache.config import CacheControlSettings, reset_settings_cache  # noqa: E402
from conditional_cache.services.store import InMemoryStore  # noqa: E402
from tests.helpers import TimeStub  # noqa: E402


@pytest.fixture(autouse=True)
def _fresh_settings() -> Iterator[None]:
    reset_settings_cache()
    yield
    reset_settings_cache()


@pytest.fixture
def clock() -> TimeStub:
    return TimeStub()


@pytest.fixture
def store(clock: TimeStub) -> InMemoryStore:
    return InMemoryStore(max_items=128, time_func=clock, log_events=True)


@pytest.fixture
def settings() -> CacheControlSettings:
    return CacheControlSettings(
        default_ttl=None,
        namespace_ttl=3_600,
        max_resolve_depth=4,
        max_items=128,
        log_events=True,
    )


@pytest.fixture
def captured_events(monkeypatch: pytest.MonkeyPatch) -> list[tuple[str, dict[str, object]]]:
    captured: list[tuple[str, dict[str, object]]] = []

    def _capture(logger, event: str, /, **fields: object) -> None:
        captured.append((event, fields))

    for module in (
        "conditional_cache.services.store",
        "conditional_cache.services.tagged",
        "conditional_cache.services.cache_control",
        "conditional_cache.services.invalidation",
    ):
        monkeypatch.setattr(f"{module}.log_event", _capture)
    return captured
