from __future__ import annotations

import json

from conditional_cache.errors import (
    CacheControlError,
    ConfigurationError,
    ErrorCode,
    ResolutionDepthError,
    ValidatorResolutionError,
)


def test_envelope_contains_code_message_and_meta() -> None:
    error = ConfigurationError("bad source", meta={"source": "str"})

    response = error.as_response(request_path="/articles", method="GET")

    assert response.status_code == 500
    assert json.loads(response.body) == {
        "ok": False,
        "error": {
            "code": "CONFIGURATION_ERROR",
            "message": "bad source",
            "meta": {"source": "str"},
        },
    }
    assert len(response.headers["x-debug-id"]) == 32


def test_envelope_omits_empty_meta() -> None:
    error = CacheControlError("boom", code=ErrorCode.RESOLUTION_ERROR, http_status=503)

    response = error.as_response(request_path="/", method="HEAD")

    assert response.status_code == 503
    assert "meta" not in json.loads(response.body)["error"]


def test_validator_error_is_a_value_error() -> None:
    error = ValidatorResolutionError()

    assert isinstance(error, ValueError)
    assert error.code is ErrorCode.VALIDATOR_ERROR
    assert str(error) == "Last-Modified must be a timestamp or a datetime instance."


def test_resolution_depth_error_reports_the_limit() -> None:
    error = ResolutionDepthError(16)

    assert error.code is ErrorCode.RESOLUTION_ERROR
    assert error.meta == {"max_depth": 16}
    assert "16" in error.message
