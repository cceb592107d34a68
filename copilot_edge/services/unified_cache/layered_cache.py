"""Two-tier response cache.

- Local tier: bounded in-process memory, checked first, synchronous
- Durable tier: optional shared store, checked only on a local miss

Reads backfill the local tier from durable hits. Writes go to the local
tier unconditionally and to the durable tier best-effort. Durable failures
are logged and treated as a miss or a no-op; they never reach the caller.
"""

import json
import time
from dataclasses import dataclass, field
from typing import Optional, Any, Dict

from copilot_edge.core.errors import CacheTierError
from copilot_edge.core.interfaces import IDurableStore
from copilot_edge.core.logging import get_logger
from copilot_edge.models.chat import CacheTier
from copilot_edge.services.encryption import EncryptionService
from copilot_edge.services.unified_cache.backends.base import ICacheBackend, CacheStats
from copilot_edge.services.unified_cache.key_generator import CacheKeyGenerator

logger = get_logger(__name__)


@dataclass
class CacheConfig:
    """Configuration for cache TTLs and behavior."""

    ttl: int = 60  # seconds, both tiers
    key_prefix: str = "copilotedge:"


@dataclass
class CacheLookup:
    """A cache hit and the tier that served it."""

    value: Dict[str, Any]
    tier: CacheTier


@dataclass
class TwoTierCacheStats:
    """Statistics for both tiers."""

    local: CacheStats = field(default_factory=CacheStats)
    durable: CacheStats = field(default_factory=CacheStats)

    @property
    def total_hits(self) -> int:
        return self.local.hits + self.durable.hits

    @property
    def overall_hit_rate(self) -> float:
        """Hits over lookups; a durable lookup only follows a local miss."""
        total = self.local.total_requests
        if total == 0:
            return 0.0
        return self.total_hits / total

    def to_dict(self) -> Dict[str, Any]:
        return {
            "local": self.local.to_dict(),
            "durable": self.durable.to_dict(),
            "total_hits": self.total_hits,
            "overall_hit_rate": round(self.overall_hit_rate, 4),
        }


class TwoTierCache:
    """Read-through, write-through cache over a local and a durable tier.

    Usage:
        cache = TwoTierCache(MemoryBackend(max_entries=100), RedisDurableStore(url))

        hit = await cache.get(key)
        if hit is None:
            await cache.put(key, {"text": "...", "model": "..."})
    """

    def __init__(
        self,
        local: ICacheBackend,
        durable: Optional[IDurableStore] = None,
        config: Optional[CacheConfig] = None,
        encryption: Optional[EncryptionService] = None,
    ):
        """Initialize the cache.

        Args:
            local: In-process tier.
            durable: Optional shared tier.
            config: TTL and key prefix.
            encryption: Optional cipher applied to durable values.
        """
        self.local = local
        self.durable = durable
        self.config = config or CacheConfig()
        self.encryption = encryption
        self._stats = TwoTierCacheStats()

    @property
    def stats(self) -> TwoTierCacheStats:
        return self._stats

    @property
    def durable_enabled(self) -> bool:
        return self.durable is not None

    async def get(self, key: str) -> Optional[CacheLookup]:
        """Look a key up, local tier first.

        Returns:
            The hit and its tier, or None on a miss in both tiers.
        """
        value = self.local.get(key)
        if value is not None:
            self._stats.local.record_hit()
            return CacheLookup(value=value, tier=CacheTier.LOCAL)
        self._stats.local.record_miss()

        if self.durable is None:
            return None

        try:
            value = await self._durable_get(key)
        except CacheTierError as e:
            logger.warning(f"Durable cache read failed for {CacheKeyGenerator.display(key)}: {e.message}")
            self._stats.durable.record_error()
            return None

        if value is None:
            self._stats.durable.record_miss()
            return None

        self._stats.durable.record_hit()
        self.local.set(key, value, self.config.ttl)
        return CacheLookup(value=value, tier=CacheTier.DURABLE)

    async def put(self, key: str, value: Dict[str, Any], ttl: Optional[int] = None) -> None:
        """Write to the local tier, then best-effort to the durable tier."""
        ttl = ttl or self.config.ttl
        self.local.set(key, value, ttl)

        if self.durable is None:
            return

        metadata = {
            "timestamp": int(time.time() * 1000),
            "model": value.get("model"),
        }
        try:
            await self._durable_put(key, value, ttl, metadata)
        except CacheTierError as e:
            logger.warning(f"Durable cache write failed for {CacheKeyGenerator.display(key)}: {e.message}")
            self._stats.durable.record_error()

    async def clear(self, include_durable: bool = False) -> int:
        """Empty the local tier and optionally the durable tier.

        Returns:
            Number of durable keys deleted.
        """
        self.local.clear_all()
        logger.info("Local cache cleared")

        if not include_durable or self.durable is None:
            return 0

        try:
            keys = await self.durable.list(f"{self.config.key_prefix}{CacheKeyGenerator.VERSION}:")
        except Exception as e:
            logger.warning(f"Listing durable cache keys failed: {e}")
            self._stats.durable.record_error()
            return 0

        deleted = 0
        for key in keys:
            try:
                await self.durable.delete(key)
                deleted += 1
            except Exception as e:
                logger.warning(f"Deleting durable key {CacheKeyGenerator.display(key)} failed: {e}")
                self._stats.durable.record_error()

        logger.info(f"Cleared {deleted} durable cache entries")
        return deleted

    async def _durable_get(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            raw = await self.durable.get(key)
        except CacheTierError:
            raise
        except Exception as e:
            raise CacheTierError(str(e), operation="get") from e

        if raw is None:
            return None
        if self.encryption is not None:
            raw = self.encryption.decrypt_text(raw)
        try:
            value = json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            raise CacheTierError(f"Corrupt durable value: {e}", operation="get") from e
        if not isinstance(value, dict):
            raise CacheTierError("Corrupt durable value", operation="get")
        return value

    async def _durable_put(
        self,
        key: str,
        value: Dict[str, Any],
        ttl: int,
        metadata: Dict[str, Any],
    ) -> None:
        payload = json.dumps(value)
        if self.encryption is not None:
            payload = self.encryption.encrypt_text(payload)
        try:
            await self.durable.put(key, payload, ttl, metadata)
        except CacheTierError:
            raise
        except Exception as e:
            raise CacheTierError(str(e), operation="put") from e
