import time
from typing import Callable, Dict, Generic, Hashable, Optional, TypeVar
from dataclasses import dataclass

from common.core.telemetry import get_logger

logger = get_logger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


@dataclass
class CacheEntry(Generic[V]):
    """A cached value and the moment it was inserted."""

    value: V
    inserted_at: float

    def is_expired(self, now: float, ttl: float) -> bool:
        """Check if this entry is older than the TTL window."""
        return now - self.inserted_at >= ttl


class TimedCache(Generic[K, V]):
    """
    In-process cache keyed by ``key -> (value, inserted_at)``.

    Values are stored by reference, so a hit returns the very object that was
    inserted. Expiry is checked on read; there is no background sweeper.

    Args:
        ttl_seconds: Lifetime of an entry measured from insertion
        clock: Monotonic time source, injectable for tests
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._cache: Dict[K, CacheEntry[V]] = {}

    def get(self, key: K) -> Optional[V]:
        """Get a value if present and still inside the TTL window."""
        entry = self._cache.get(key)

        if entry is None:
            return None

        if entry.is_expired(self._clock(), self.ttl_seconds):
            del self._cache[key]
            logger.debug(f"Cache entry expired for key {key}")
            return None

        return entry.value

    def set(self, key: K, value: V) -> None:
        """Insert or refresh a value, stamping it with the current time."""
        self._cache[key] = CacheEntry(value=value, inserted_at=self._clock())

    def invalidate(self, key: K) -> bool:
        """Delete a specific key. Returns True if it existed."""
        if key in self._cache:
            del self._cache[key]
            logger.debug(f"Invalidated cache key {key}")
            return True
        return False

    def clear(self) -> None:
        """Clear all cached data."""
        self._cache.clear()

    def __contains__(self, key: object) -> bool:
        entry = self._cache.get(key)  # type: ignore[arg-type]
        return entry is not None and not entry.is_expired(self._clock(), self.ttl_seconds)

    def __len__(self) -> int:
        return len(self._cache)
