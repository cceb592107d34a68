"""Response cache for the chat pipeline.

Tiers:
- Local: bounded in-memory entries with a short TTL
- Durable: optional Redis tier shared across instances

Usage:
    from copilot_edge.services.unified_cache import TwoTierCache, CacheKeyGenerator

    keys = CacheKeyGenerator(prefix="copilotedge:")
    cache = TwoTierCache(MemoryBackend(), durable_store)

    key = keys.chat(model, messages, params)
    hit = await cache.get(key)
"""

from copilot_edge.services.unified_cache.key_generator import CacheKeyGenerator
from copilot_edge.services.unified_cache.layered_cache import (
    CacheConfig,
    CacheLookup,
    TwoTierCache,
)

__all__ = [
    "CacheKeyGenerator",
    "CacheConfig",
    "CacheLookup",
    "TwoTierCache",
]
