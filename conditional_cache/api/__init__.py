"""Helpers for documenting routes served through the cache engine."""

from .cache_policy import CACHEABLE_RESPONSES

__all__ = ["CACHEABLE_RESPONSES"]
