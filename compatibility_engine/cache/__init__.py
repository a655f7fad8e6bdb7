"""Result cache module."""

from .result_cache import (
    ResultCache,
    CacheConfig,
    CacheEntry,
    MemoryCacheBackend,
    JoblibCacheBackend,
    make_cache_key,
)

__all__ = [
    "ResultCache",
    "CacheConfig",
    "CacheEntry",
    "MemoryCacheBackend",
    "JoblibCacheBackend",
    "make_cache_key",
]
