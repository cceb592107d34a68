"""Base interface for the local cache tier."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Any, List


@dataclass
class CacheStats:
    """Statistics for cache performance monitoring."""

    hits: int = 0
    misses: int = 0
    errors: int = 0
    evictions: int = 0

    @property
    def total_requests(self) -> int:
        """Total number of cache requests."""
        return self.hits + self.misses

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate."""
        if self.total_requests == 0:
            return 0.0
        return self.hits / self.total_requests

    def record_hit(self) -> None:
        """Record a cache hit."""
        self.hits += 1

    def record_miss(self) -> None:
        """Record a cache miss."""
        self.misses += 1

    def record_error(self) -> None:
        """Record a cache error."""
        self.errors += 1

    def to_dict(self) -> dict:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "errors": self.errors,
            "evictions": self.evictions,
            "hit_rate": round(self.hit_rate, 4),
        }


class ICacheBackend(ABC):
    """Abstract base class for the in-process cache tier.

    Access is synchronous: the local tier never suspends the event loop.
    """

    @property
    @abstractmethod
    def stats(self) -> CacheStats:
        """Get cache statistics."""
        ...

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Get a value from the cache.

        Args:
            key: The cache key.

        Returns:
            The cached value, or None if missing or expired.
        """
        ...

    @abstractmethod
    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """Set a value in the cache.

        Args:
            key: The cache key.
            value: The value to cache.
            ttl: Time-to-live in seconds (None for no expiration).
        """
        ...

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Delete a key from the cache.

        Returns:
            True if deleted, False if key didn't exist.
        """
        ...

    @abstractmethod
    def clear_all(self) -> None:
        """Clear all keys from the cache."""
        ...

    @abstractmethod
    def keys(self) -> List[str]:
        """Live (unexpired) keys, oldest first."""
        ...
