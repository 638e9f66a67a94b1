from __future__ import annotations

from collections.abc import Mapping

from fastapi import Request


class TimeStub:
    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self._value = start

    def advance(self, seconds: float) -> None:
        self._value += seconds

    def __call__(self) -> float:
        return self._value


def make_request(
    method: str = "GET",
    path: str = "/articles",
    *,
    query: str = "",
    headers: Mapping[str, str] | None = None,
) -> Request:
    scope = {
        "type": "http",
        "method": method,
        "scheme": "http",
        "server": ("testserver", 80),
        "root_path": "",
        "path": path,
        "query_string": query.encode("latin-1"),
        "headers": [
            (key.lower().encode("latin-1"), value.encode("latin-1"))
            for key, value in (headers or {}).items()
        ],
    }
    return Request(scope)
