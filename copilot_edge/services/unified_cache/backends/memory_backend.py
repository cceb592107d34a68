"""In-memory local cache tier."""

import time
from typing import Optional, Any, Callable, Dict, List
from dataclasses import dataclass

from copilot_edge.services.unified_cache.backends.base import ICacheBackend, CacheStats


@dataclass
class CacheEntry:
    """A cache entry with optional expiration."""

    value: Any
    created_at: float
    expires_at: Optional[float] = None

    def is_expired(self, now: float) -> bool:
        """Check if the entry has expired."""
        if self.expires_at is None:
            return False
        return now >= self.expires_at


class MemoryBackend(ICacheBackend):
    """Bounded in-memory cache.

    Features:
    - TTL support with expiration checked on access
    - Oldest-first eviction once ``max_entries`` is reached
    - Statistics tracking
    """

    def __init__(
        self,
        max_entries: Optional[int] = 100,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize memory backend.

        Args:
            max_entries: Capacity; None disables capacity eviction.
            clock: Time source in seconds, replaceable in tests.
        """
        self._storage: Dict[str, CacheEntry] = {}
        self._stats = CacheStats()
        self._max_entries = max_entries
        self._clock = clock

    @property
    def stats(self) -> CacheStats:
        """Get cache statistics."""
        return self._stats

    @property
    def max_entries(self) -> Optional[int]:
        return self._max_entries

    def _cleanup_expired(self) -> None:
        """Remove expired entries from storage."""
        now = self._clock()
        expired_keys = [
            key for key, entry in self._storage.items()
            if entry.is_expired(now)
        ]

        for key in expired_keys:
            del self._storage[key]
            self._stats.evictions += 1

    def get(self, key: str) -> Optional[Any]:
        """Get a value from the cache."""
        entry = self._storage.get(key)
        if entry is None:
            self._stats.record_miss()
            return None

        if entry.is_expired(self._clock()):
            del self._storage[key]
            self._stats.evictions += 1
            self._stats.record_miss()
            return None

        self._stats.record_hit()
        return entry.value

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """Set a value in the cache, evicting the oldest entries if full."""
        now = self._clock()
        expires_at = now + ttl if ttl is not None else None

        # Re-inserting moves the key to the newest position
        self._storage.pop(key, None)

        if self._max_entries is not None and len(self._storage) >= self._max_entries:
            self._cleanup_expired()
            while len(self._storage) >= self._max_entries:
                oldest = next(iter(self._storage))
                del self._storage[oldest]
                self._stats.evictions += 1

        self._storage[key] = CacheEntry(value=value, created_at=now, expires_at=expires_at)

    def delete(self, key: str) -> bool:
        """Delete a key from the cache."""
        if key in self._storage:
            del self._storage[key]
            return True
        return False

    def clear_all(self) -> None:
        """Clear all keys from the cache."""
        self._storage.clear()

    def keys(self) -> List[str]:
        self._cleanup_expired()
        return list(self._storage.keys())

    # Testing utilities

    def get_entry_count(self) -> int:
        """Get the number of live entries in the cache (testing utility)."""
        self._cleanup_expired()
        return len(self._storage)

    def get_raw_entry(self, key: str) -> Optional[CacheEntry]:
        """Get a raw cache entry (testing utility)."""
        return self._storage.get(key)
