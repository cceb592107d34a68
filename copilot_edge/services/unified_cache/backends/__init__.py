"""Cache tier backends.

- MemoryBackend: bounded in-process tier
- RedisDurableStore: durable tier shared across instances
"""

from copilot_edge.services.unified_cache.backends.base import ICacheBackend, CacheStats
from copilot_edge.services.unified_cache.backends.memory_backend import MemoryBackend
from copilot_edge.services.unified_cache.backends.redis_backend import RedisDurableStore

__all__ = [
    "ICacheBackend",
    "CacheStats",
    "MemoryBackend",
    "RedisDurableStore",
]
