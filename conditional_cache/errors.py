"""Error types raised by the conditional cache layer."""

from __future__ import annotations

from collections.abc import Mapping, MutableMapping
from enum import Enum
import logging
from typing import Any
from uuid import uuid4

from fastapi import status
from fastapi.responses import JSONResponse

from conditional_cache.logging import get_logger


class ErrorCode(str, Enum):
    """Machine readable codes attached to cache control errors."""

    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    VALIDATOR_ERROR = "VALIDATOR_ERROR"
    RESOLUTION_ERROR = "RESOLUTION_ERROR"


_logger = get_logger(__name__)


class CacheControlError(Exception):
    """Base exception for failures inside the conditional cache layer."""

    __slots__ = ("message", "code", "http_status", "meta")

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode,
        http_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        meta: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.http_status = http_status
        self.meta = meta

    def as_response(self, *, request_path: str, method: str) -> JSONResponse:
        """Serialise the exception into the canonical error envelope."""

        debug_id = uuid4().hex
        payload: MutableMapping[str, Any] = {
            "ok": False,
            "error": {"code": self.code.value, "message": self.message},
        }
        if self.meta:
            payload["error"]["meta"] = dict(self.meta)
        response = JSONResponse(status_code=self.http_status, content=payload)
        response.headers["X-Debug-Id"] = debug_id

        _logger.log(
            logging.ERROR if self.http_status >= 500 else logging.WARNING,
            "Cache control failed",
            extra={
                "event": "cache_control.error",
                "code": self.code.value,
                "status": self.http_status,
                "path": request_path,
                "method": method,
                "debug_id": debug_id,
            },
        )
        return response


class ConfigurationError(CacheControlError):
    """Raised when a cache source or option cannot be used at construction time."""

    def __init__(self, message: str, *, meta: Mapping[str, Any] | None = None) -> None:
        super().__init__(message, code=ErrorCode.CONFIGURATION_ERROR, meta=meta)


class ValidatorResolutionError(CacheControlError, ValueError):
    """Raised when a Last-Modified resolver returns an unusable value."""

    def __init__(
        self,
        message: str = "Last-Modified must be a timestamp or a datetime instance.",
        *,
        meta: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.VALIDATOR_ERROR, meta=meta)


class ResolutionDepthError(CacheControlError):
    """Raised when a producer result keeps resolving into further indirections."""

    def __init__(self, depth: int) -> None:
        super().__init__(
            f"Response did not resolve after {depth} indirections.",
            code=ErrorCode.RESOLUTION_ERROR,
            meta={"max_depth": depth},
        )


__all__ = [
    "CacheControlError",
    "ConfigurationError",
    "ErrorCode",
    "ResolutionDepthError",
    "ValidatorResolutionError",
]
