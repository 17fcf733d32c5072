"""Speculative prefetch caching."""

from .prefetch import (
    CACHE_TTL_SECONDS,
    HOVER_DELAY_SECONDS,
    MAX_CACHE_SIZE,
    CacheEntry,
    PrefetchCache,
    TTLCache,
)

__all__ = [
    "PrefetchCache",
    "TTLCache",
    "CacheEntry",
    "MAX_CACHE_SIZE",
    "CACHE_TTL_SECONDS",
    "HOVER_DELAY_SECONDS",
]
