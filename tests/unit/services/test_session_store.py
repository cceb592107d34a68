"""Tests for conversation persistence."""

import json

import pytest

from copilot_edge.services.session_store import (
    InMemorySessionStore,
    RedisSessionStore,
    conversation_summary,
    make_entry,
)


class TestInMemorySessionStore:
    """Tests for the process-local store."""

    @pytest.mark.asyncio
    async def test_append_and_get(self):
        """Test messages come back in order."""
        store = InMemorySessionStore()
        await store.append("c1", make_entry("user", "Hi"))
        await store.append("c1", make_entry("assistant", "Hello"))

        messages = await store.get("c1")
        assert [m["role"] for m in messages] == ["user", "assistant"]
        assert all(isinstance(m["timestamp"], int) for m in messages)

    @pytest.mark.asyncio
    async def test_cap_drops_oldest(self):
        """Test the log keeps only the newest messages."""
        store = InMemorySessionStore(max_messages=2)
        for i in range(3):
            await store.append("c1", make_entry("user", str(i)))

        assert [m["content"] for m in await store.get("c1")] == ["1", "2"]

    @pytest.mark.asyncio
    async def test_clear(self):
        """Test clearing forgets the conversation."""
        store = InMemorySessionStore()
        await store.append("c1", make_entry("user", "Hi"))
        await store.clear("c1")

        assert await store.get("c1") == []

    @pytest.mark.asyncio
    async def test_idle_conversations_expire(self):
        """Test conversations idle past the TTL are evicted."""
        now = [1000.0]
        store = InMemorySessionStore(ttl_seconds=60, clock=lambda: now[0])
        await store.append("old", make_entry("user", "a"))
        now[0] += 30
        await store.append("recent", make_entry("user", "b"))

        now[0] += 40
        await store.append("new", make_entry("user", "c"))

        assert store.conversation_count == 2
        assert await store.get("old") == []
        assert [m["content"] for m in await store.get("recent")] == ["b"]

    @pytest.mark.asyncio
    async def test_append_refreshes_idle_timer(self):
        """Test an active conversation outlives the TTL."""
        now = [0.0]
        store = InMemorySessionStore(ttl_seconds=60, clock=lambda: now[0])
        for _ in range(3):
            await store.append("c1", make_entry("user", "x"))
            now[0] += 50

        assert len(await store.get("c1")) == 3


class TestRedisSessionStore:
    """Tests for the Redis list store."""

    @pytest.mark.asyncio
    async def test_append_sets_expiry_and_trims(self, fake_redis):
        """Test appends push, trim and refresh the TTL."""
        store = RedisSessionStore(fake_redis, ttl_seconds=3600, max_messages=2)
        for i in range(3):
            await store.append("c1", make_entry("user", str(i)))

        key = "copilotedge-conversation:c1"
        assert [json.loads(raw)["content"] for raw in fake_redis.lists[key]] == ["1", "2"]
        assert fake_redis.expiries[key] == 3600

    @pytest.mark.asyncio
    async def test_get_skips_corrupt_entries(self, fake_redis):
        """Test unreadable entries are skipped."""
        fake_redis.lists["copilotedge-conversation:c1"] = [
            json.dumps(make_entry("user", "Hi")),
            "{not json",
        ]
        store = RedisSessionStore(fake_redis)

        messages = await store.get("c1")
        assert [m["content"] for m in messages] == ["Hi"]

    @pytest.mark.asyncio
    async def test_clear(self, fake_redis):
        """Test clearing deletes the list."""
        store = RedisSessionStore(fake_redis)
        await store.append("c1", make_entry("user", "Hi"))
        await store.clear("c1")

        assert await store.get("c1") == []


class TestSummary:
    """Tests for the conversation summary shape."""

    def test_summary(self):
        """Test counts and last activity."""
        messages = [
            {"role": "user", "content": "a", "timestamp": 1},
            {"role": "assistant", "content": "b", "timestamp": 2},
        ]
        summary = conversation_summary("c1", messages)

        assert summary["message_count"] == 2
        assert summary["last_activity"] == 2

    def test_empty_summary(self):
        """Test an unknown conversation summarizes as empty."""
        assert conversation_summary("c1", [])["last_activity"] is None
