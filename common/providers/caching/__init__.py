from .memory_cache import CacheEntry, TimedCache

__all__ = [
    "CacheEntry",
    "TimedCache",
]
