"""Conditional HTTP response caching with tag-scoped invalidation."""

from conditional_cache.api.cache_policy import CACHEABLE_RESPONSES
from conditional_cache.errors import (
    CacheControlError,
    ConfigurationError,
    ResolutionDepthError,
    ValidatorResolutionError,
)
from conditional_cache.policy import CachingPolicy, PrivateTo, Public
from conditional_cache.services.cache_control import CacheControl, reuse_cached_body
from conditional_cache.services.store import Cacheable, CacheStore, InMemoryStore
from conditional_cache.services.tagged import IdentityRef, TaggedNamespace
from conditional_cache.utils.directives import CacheControlDirectives

__all__ = [
    "CACHEABLE_RESPONSES",
    "CacheControl",
    "CacheControlDirectives",
    "CacheControlError",
    "CacheStore",
    "Cacheable",
    "CachingPolicy",
    "ConfigurationError",
    "IdentityRef",
    "InMemoryStore",
    "PrivateTo",
    "Public",
    "ResolutionDepthError",
    "TaggedNamespace",
    "ValidatorResolutionError",
    "reuse_cached_body",
]
