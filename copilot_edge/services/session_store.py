"""Conversation persistence.

An append-only message log per conversation id. The pipeline writes to
it only when conversation persistence is enabled and never lets a store
failure affect the response.
"""

import json
import time
from typing import Any, Callable, Dict, List, Optional

from copilot_edge.core.logging import get_logger

logger = get_logger(__name__)


def make_entry(role: str, content: str) -> Dict[str, Any]:
    return {"role": role, "content": content, "timestamp": int(time.time() * 1000)}


class InMemorySessionStore:
    """Process-local conversation log, capped per conversation.

    Conversations idle for ``ttl_seconds`` are dropped, matching the expiry
    the Redis store gets from ``EXPIRE``.
    """

    def __init__(
        self,
        max_messages: int = 200,
        ttl_seconds: int = 86400,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_messages = max_messages
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._conversations: Dict[str, List[Dict[str, Any]]] = {}
        self._last_append: Dict[str, float] = {}

    @property
    def conversation_count(self) -> int:
        return len(self._conversations)

    async def get(self, conversation_id: str) -> List[Dict[str, Any]]:
        self._prune(self._clock())
        return list(self._conversations.get(conversation_id, []))

    async def append(self, conversation_id: str, message: Dict[str, Any]) -> None:
        now = self._clock()
        self._prune(now)
        log = self._conversations.setdefault(conversation_id, [])
        log.append(message)
        if len(log) > self.max_messages:
            del log[: len(log) - self.max_messages]
        self._last_append[conversation_id] = now

    async def clear(self, conversation_id: str) -> None:
        self._conversations.pop(conversation_id, None)
        self._last_append.pop(conversation_id, None)

    def _prune(self, now: float) -> None:
        expired = [
            conversation_id
            for conversation_id, last in self._last_append.items()
            if now - last >= self.ttl_seconds
        ]
        for conversation_id in expired:
            self._conversations.pop(conversation_id, None)
            self._last_append.pop(conversation_id, None)
        if expired:
            logger.debug(f"Expired {len(expired)} idle conversations")


class RedisSessionStore:
    """Conversation log kept in a Redis list per conversation."""

    KEY_PREFIX = "copilotedge-conversation:"

    def __init__(self, client: Any, ttl_seconds: int = 86400, max_messages: int = 200):
        """
        Args:
            client: ``redis.asyncio`` client with ``decode_responses=True``.
            ttl_seconds: Idle expiry, refreshed on every append.
            max_messages: Oldest messages beyond this are trimmed.
        """
        self._client = client
        self.ttl_seconds = ttl_seconds
        self.max_messages = max_messages

    def _key(self, conversation_id: str) -> str:
        return f"{self.KEY_PREFIX}{conversation_id}"

    async def get(self, conversation_id: str) -> List[Dict[str, Any]]:
        raw_items = await self._client.lrange(self._key(conversation_id), 0, -1)
        messages = []
        for raw in raw_items:
            try:
                messages.append(json.loads(raw))
            except (json.JSONDecodeError, TypeError):
                logger.warning(f"Skipping corrupt message in conversation {conversation_id}")
        return messages

    async def append(self, conversation_id: str, message: Dict[str, Any]) -> None:
        key = self._key(conversation_id)
        async with self._client.pipeline(transaction=True) as pipe:
            pipe.rpush(key, json.dumps(message))
            pipe.ltrim(key, -self.max_messages, -1)
            pipe.expire(key, self.ttl_seconds)
            await pipe.execute()

    async def clear(self, conversation_id: str) -> None:
        await self._client.delete(self._key(conversation_id))


def conversation_summary(conversation_id: str, messages: List[Dict[str, Any]]) -> Dict[str, Any]:
    last: Optional[int] = messages[-1].get("timestamp") if messages else None
    return {
        "conversation_id": conversation_id,
        "message_count": len(messages),
        "last_activity": last,
        "messages": messages,
    }
