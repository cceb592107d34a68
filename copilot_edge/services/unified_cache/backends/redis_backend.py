"""Redis implementation of the durable cache tier."""

import json
from typing import Optional, Any, Dict, List
from datetime import timedelta

import redis.asyncio as redis

from copilot_edge.core.errors import CacheTierError
from copilot_edge.core.logging import get_logger

logger = get_logger(__name__)


class RedisDurableStore:
    """Durable key/value tier shared by every instance of the service.

    Values are stored as a small JSON document holding the payload and its
    write metadata. Every failure is raised as :class:`CacheTierError`;
    deciding to degrade is the caller's job.
    """

    def __init__(self, redis_url: Optional[str] = None, client: Optional[Any] = None):
        """Initialize the store.

        Args:
            redis_url: Redis connection URL used by :meth:`connect`.
            client: Pre-built ``redis.asyncio`` client (tests).
        """
        self._redis_url = redis_url
        self._client = client

    @property
    def enabled(self) -> bool:
        """Check if a client is available."""
        return self._client is not None

    @property
    def client(self) -> Optional[redis.Redis]:
        return self._client

    async def connect(self) -> None:
        """Connect to Redis."""
        if self._client is not None:
            return
        if not self._redis_url:
            logger.info("Redis URL not configured, durable tier disabled")
            return

        try:
            self._client = redis.from_url(
                self._redis_url,
                encoding="utf-8",
                decode_responses=True
            )
            # Test connection
            await self._client.ping()
            logger.info("Connected to Redis durable tier")
        except Exception as e:
            logger.error(f"Failed to connect to Redis: {e}")
            self._client = None

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self._client:
            await self._client.close()
            self._client = None
            logger.info("Disconnected from Redis durable tier")

    def _require_client(self, operation: str):
        if self._client is None:
            raise CacheTierError("Durable tier is not connected", operation=operation)
        return self._client

    async def get(self, key: str) -> Optional[str]:
        """Return the stored payload or None."""
        client = self._require_client("get")
        try:
            raw = await client.get(key)
        except Exception as e:
            raise CacheTierError(f"Redis GET failed: {e}", operation="get") from e

        if raw is None:
            return None
        try:
            document = json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            raise CacheTierError(f"Corrupt durable entry: {e}", operation="get") from e
        if not isinstance(document, dict) or not isinstance(document.get("value"), str):
            raise CacheTierError("Corrupt durable entry", operation="get")
        return document["value"]

    async def put(
        self,
        key: str,
        value: str,
        ttl_seconds: int,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Store ``value`` with an expiry."""
        client = self._require_client("put")
        document = json.dumps({"value": value, "metadata": metadata or {}})
        try:
            await client.setex(key, timedelta(seconds=ttl_seconds), document)
        except Exception as e:
            raise CacheTierError(f"Redis SETEX failed: {e}", operation="put") from e

    async def list(self, prefix: str) -> List[str]:
        """List keys under ``prefix`` with SCAN."""
        client = self._require_client("list")
        try:
            return [key async for key in client.scan_iter(match=f"{prefix}*")]
        except Exception as e:
            raise CacheTierError(f"Redis SCAN failed: {e}", operation="list") from e

    async def delete(self, key: str) -> None:
        client = self._require_client("delete")
        try:
            await client.delete(key)
        except Exception as e:
            raise CacheTierError(f"Redis DELETE failed: {e}", operation="delete") from e
