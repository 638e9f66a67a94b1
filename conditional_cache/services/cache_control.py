"""Conditional response caching engine.

The engine answers one request at a time:

1. fingerprint the request and read the stored validators (and body);
2. if the client copy is still valid, refresh the stored values and answer
   ``304 Not Modified`` without producing content;
3. otherwise produce fresh content, recompute the validators, check the
   conditional headers once more against them, persist and respond.

Reads and writes are not atomic: concurrent requests for one fingerprint may
each produce content and the last write wins.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from functools import wraps
import hashlib
from typing import Any, Callable, Iterable, Mapping, Protocol, runtime_checkable

from fastapi import Request
from starlette.responses import JSONResponse, Response

from conditional_cache.config import CacheControlSettings, get_settings
from conditional_cache.errors import (
    ConfigurationError,
    ResolutionDepthError,
    ValidatorResolutionError,
)
from conditional_cache.logging import get_logger
from conditional_cache.logging_events import log_event
from conditional_cache.policy import (
    CachingPolicy,
    EtagResolver,
    LastModifiedResolver,
    PrivateTo,
    Public,
    RequestResolver,
)
from conditional_cache.services.store import TTL, Cacheable, CacheStore, TagFlushCapable
from conditional_cache.services.tagged import TaggedNamespace
from conditional_cache.utils.directives import CacheControlDirectives, render_cache_control
from conditional_cache.utils.fingerprint import fingerprint_request
from conditional_cache.utils.http_cache import (
    format_http_datetime,
    is_response_not_modified,
    normalize_etag,
    not_modified_response,
    strip_body,
    validator_headers,
)

logger = get_logger(__name__)

ETAG_KEY = "etag"
LAST_MODIFIED_KEY = "last_modified"
CONTENT_KEY = "content"
REQUEST_TAG = "request"

Producer = Callable[[Request, bytes | None], Any]


@runtime_checkable
class Resolvable(Protocol):
    """A producer result that needs one more step to become a response."""

    def to_response(self, request: Request) -> Any:  # pragma: no cover - protocol
        ...


@dataclass(slots=True)
class ValidatorRecord:
    etag: str | None = None
    last_modified: int | None = None
    body: bytes | None = None

    @property
    def last_modified_at(self) -> datetime | None:
        if self.last_modified is None:
            return None
        return datetime.fromtimestamp(self.last_modified, tz=timezone.utc)


@dataclass(slots=True, frozen=True)
class CacheKeys:
    etag: str
    last_modified: str
    content: str

    @classmethod
    def for_fingerprint(cls, fingerprint: str) -> "CacheKeys":
        return cls(
            etag=f"{fingerprint}/{ETAG_KEY}",
            last_modified=f"{fingerprint}/{LAST_MODIFIED_KEY}",
            content=f"{fingerprint}/{CONTENT_KEY}",
        )


def resolve_store(source: Any) -> CacheStore:
    """Return the store behind ``source`` (a store or a :class:`Cacheable`)."""

    if isinstance(source, CacheStore):
        return source
    if isinstance(source, (str, type)):
        raise ConfigurationError(
            "Cache sources must be store or Cacheable instances, not names or classes",
            meta={"source": str(source)},
        )
    if isinstance(source, Cacheable):
        store = source.cache()
        if isinstance(store, CacheStore):
            return store
        raise ConfigurationError(
            f"{type(source).__name__}.cache() must return a CacheStore",
            meta={"source": type(source).__name__},
        )
    raise ConfigurationError(
        f"{type(source).__name__} should implement Cacheable",
        meta={"source": type(source).__name__},
    )


def coerce_last_modified(value: Any) -> int:
    """Return a Last-Modified resolver result as epoch seconds."""

    if isinstance(value, bool):
        raise ValidatorResolutionError(meta={"type": "bool"})
    if isinstance(value, int):
        return value
    if isinstance(value, datetime):
        moment = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
        return int(moment.timestamp())
    raise ValidatorResolutionError(meta={"type": type(value).__name__})


def _constant(value: str) -> RequestResolver:
    def _resolve(_request: Request) -> str:
        return value

    return _resolve


def reuse_cached_body(
    producer: Callable[[Request], Any], *, media_type: str | None = None
) -> Producer:
    """Adapt a one-argument producer so a cached body short-circuits it."""

    @wraps(producer)
    def _produce(request: Request, cached_body: bytes | None) -> Any:
        if cached_body is not None:
            return Response(content=cached_body, media_type=media_type)
        return producer(request)

    return _produce


class CacheControl:
    """Serve responses through stored validators and optional body caching."""

    def __init__(
        self,
        store: CacheStore,
        producer: Producer,
        *,
        policy: CachingPolicy | None = None,
        settings: CacheControlSettings | None = None,
    ) -> None:
        if not isinstance(store, CacheStore):
            raise ConfigurationError(
                "CacheControl requires a CacheStore; use CacheControl.make for Cacheable owners",
                meta={"store": type(store).__name__},
            )
        if not callable(producer):
            raise ConfigurationError("CacheControl requires a callable producer")
        self._settings = settings or get_settings()
        if isinstance(store, TaggedNamespace):
            store = store.clone()
            # Prefix-only backends invalidate by the primary tag, so it stays first.
            if isinstance(store.backend, TagFlushCapable):
                store.prepend_tag(REQUEST_TAG)
            else:
                store.prepend_prefix(REQUEST_TAG)
        self._store = store
        self._producer = producer
        self._policy = policy or CachingPolicy(ttl=self._settings.default_ttl)

    @classmethod
    def make(
        cls,
        source: CacheStore | Cacheable,
        producer: Producer,
        *,
        policy: CachingPolicy | None = None,
        settings: CacheControlSettings | None = None,
    ) -> "CacheControl":
        return cls(resolve_store(source), producer, policy=policy, settings=settings)

    @property
    def policy(self) -> CachingPolicy:
        return self._policy

    @property
    def store(self) -> CacheStore:
        return self._store

    def _configure(self, **changes: Any) -> "CacheControl":
        self._policy = replace(self._policy, **changes)
        return self

    def etag(self, resolver: bool | EtagResolver = True) -> "CacheControl":
        """Track an ETag: ``True`` digests the body, a callable computes it."""

        return self._configure(etag=resolver)

    def last_modified(self, resolver: LastModifiedResolver | None) -> "CacheControl":
        return self._configure(last_modified=resolver)

    def remember(self, content: bool = True) -> "CacheControl":
        """Cache the entire response body and hand it back to the producer."""

        return self._configure(remember=content)

    def ttl(self, ttl: TTL) -> "CacheControl":
        return self._configure(ttl=ttl)

    def vary(self, *headers: str | Iterable[str]) -> "CacheControl":
        names: list[str] = []
        for header in headers:
            if isinstance(header, str):
                names.append(header)
            else:
                names.extend(header)
        return self._configure(vary=tuple(dict.fromkeys(names)))

    def public(self) -> "CacheControl":
        return self._configure(scope=Public())

    def private(self, identity: Any) -> "CacheControl":
        if identity is None:
            return self
        return self._configure(scope=PrivateTo(identity))

    def identity(self, resolver: RequestResolver | None) -> "CacheControl":
        return self._configure(identity=resolver)

    def locale(self, resolver: RequestResolver | str | None) -> "CacheControl":
        if isinstance(resolver, str):
            return self._configure(locale=_constant(resolver))
        return self._configure(locale=resolver)

    def cache_control(
        self, directives: CacheControlDirectives | Mapping[str, Any]
    ) -> "CacheControl":
        if isinstance(directives, CacheControlDirectives):
            directives = directives.to_dict()
        return self._configure(directives=dict(directives))

    def expires(self, expires: datetime | timedelta | None) -> "CacheControl":
        return self._configure(expires=expires)

    def depends_on(self, *tags: str) -> "CacheControl":
        if not isinstance(self._store, TaggedNamespace):
            raise ConfigurationError(
                "Tags require a TaggedNamespace store",
                meta={"store": type(self._store).__name__},
            )
        self._store.depends_on(*tags)
        return self

    def handle(
        self, request: Request, *, params: Mapping[str, Any] | None = None
    ) -> Response:
        """Answer ``request``, producing fresh content only when needed.

        ``params`` carries body parameters that partition the cache in addition
        to the query string.
        """

        policy = self._policy
        fingerprint = fingerprint_request(
            request,
            vary=policy.vary,
            identity=policy.identity_for(request),
            locale=policy.locale_for(request),
            params=params,
        )
        keys = CacheKeys.for_fingerprint(fingerprint)
        cache_control = render_cache_control(policy.scoped_directives())

        stored = self._read(policy, keys)
        bare = Response(
            headers=validator_headers(
                etag=stored.etag,
                last_modified=stored.last_modified_at,
                cache_control=cache_control,
            )
        )
        if is_response_not_modified(request, bare):
            self._persist(policy, keys, stored, touch=True)
            self._log("cache_control.not_modified", fingerprint, stage="stored")
            return not_modified_response(bare.headers)

        response = self._produce(request, stored.body if policy.remember else None)
        fresh = self._fresh_record(policy, response)
        self._decorate(policy, response, fresh, cache_control)
        not_modified = is_response_not_modified(request, response)
        self._persist(policy, keys, fresh, touch=False)

        if not_modified:
            self._log("cache_control.not_modified", fingerprint, stage="fresh")
            return not_modified_response(response.headers)
        self._log(
            "cache_control.produced",
            fingerprint,
            status_code=response.status_code,
        )
        if request.method.upper() == "HEAD":
            return strip_body(response)
        return response

    def _read(self, policy: CachingPolicy, keys: CacheKeys) -> ValidatorRecord:
        record = ValidatorRecord()
        if policy.tracks_etag:
            record.etag = self._store.get(keys.etag)
        if policy.tracks_last_modified:
            record.last_modified = self._store.get(keys.last_modified)
        if policy.remember:
            record.body = self._store.get(keys.content)
        return record

    def _persist(
        self,
        policy: CachingPolicy,
        keys: CacheKeys,
        record: ValidatorRecord,
        *,
        touch: bool,
    ) -> None:
        if policy.tracks_etag:
            self._write(keys.etag, record.etag, policy.ttl, touch=touch)
        if policy.tracks_last_modified:
            self._write(keys.last_modified, record.last_modified, policy.ttl, touch=touch)
        if policy.remember:
            self._write(keys.content, record.body, policy.ttl, touch=touch)

    def _write(self, key: str, value: Any, ttl: TTL, *, touch: bool) -> None:
        if value is not None:
            self._store.set(key, value, ttl)
        elif not touch:
            self._store.delete(key)

    def _produce(self, request: Request, cached_body: bytes | None) -> Response:
        result = self._producer(request, cached_body)
        depth = 0
        while not isinstance(result, Response):
            if not isinstance(result, Resolvable):
                return self._coerce(result)
            if depth >= self._settings.max_resolve_depth:
                raise ResolutionDepthError(self._settings.max_resolve_depth)
            depth += 1
            result = result.to_response(request)
        return result

    @staticmethod
    def _coerce(result: Any) -> Response:
        if result is None:
            return Response()
        if isinstance(result, str):
            return Response(content=result)
        if isinstance(result, (bytes, bytearray, memoryview)):
            return Response(content=bytes(result))
        if isinstance(result, (Mapping, list, tuple)):
            return JSONResponse(result)
        raise ConfigurationError(
            f"Producer returned an unsupported value: {type(result).__name__}",
            meta={"type": type(result).__name__},
        )

    def _fresh_record(self, policy: CachingPolicy, response: Response) -> ValidatorRecord:
        body = getattr(response, "body", None)
        if body is not None:
            body = bytes(body)
        record = ValidatorRecord(body=body)

        if policy.etag_mode == "implicit":
            if body is None:
                logger.warning(
                    "Cannot derive an ETag from a streamed response",
                    extra={"event": "cache_control.etag_skipped"},
                )
            else:
                record.etag = normalize_etag(hashlib.md5(body).hexdigest())  # noqa: S324
        elif policy.etag_mode == "explicit":
            value = policy.etag(response)  # type: ignore[operator]
            if value is not None and str(value).strip():
                record.etag = normalize_etag(str(value))

        if policy.last_modified is not None:
            record.last_modified = coerce_last_modified(policy.last_modified(response))
        return record

    @staticmethod
    def _decorate(
        policy: CachingPolicy,
        response: Response,
        record: ValidatorRecord,
        cache_control: str | None,
    ) -> None:
        headers = validator_headers(
            etag=record.etag,
            last_modified=record.last_modified_at,
            cache_control=cache_control,
        )
        if policy.vary:
            headers["Vary"] = ", ".join(policy.vary)
        if policy.expires is not None:
            expires = policy.expires
            if isinstance(expires, timedelta):
                expires = datetime.now(timezone.utc) + expires
            headers["Expires"] = format_http_datetime(expires)
        for name, value in headers.items():
            response.headers[name] = value

    def _log(self, event: str, fingerprint: str, **fields: object) -> None:
        if not self._settings.log_events:
            return
        log_event(
            logger,
            event,
            component="service.cache_control",
            fingerprint=fingerprint,
            **fields,
        )


__all__ = [
    "CONTENT_KEY",
    "CacheControl",
    "CacheKeys",
    "ETAG_KEY",
    "LAST_MODIFIED_KEY",
    "Producer",
    "REQUEST_TAG",
    "Resolvable",
    "ValidatorRecord",
    "coerce_last_modified",
    "resolve_store",
    "reuse_cached_body",
]
