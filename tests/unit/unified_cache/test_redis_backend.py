"""Tests for the Redis durable tier."""

import json
from datetime import timedelta

import pytest
from unittest.mock import AsyncMock

from copilot_edge.core.errors import CacheTierError
from copilot_edge.services.unified_cache.backends.redis_backend import RedisDurableStore


class TestRedisDurableStore:
    """Tests for get/put/list/delete against a fake client."""

    @pytest.mark.asyncio
    async def test_put_then_get(self, fake_redis):
        """Test values round-trip with metadata stored alongside."""
        store = RedisDurableStore(client=fake_redis)
        await store.put("copilotedge:v1:a", "payload", 60, {"model": "m"})

        assert await store.get("copilotedge:v1:a") == "payload"
        document = json.loads(fake_redis.strings["copilotedge:v1:a"])
        assert document["metadata"] == {"model": "m"}
        assert fake_redis.expiries["copilotedge:v1:a"] == timedelta(seconds=60)

    @pytest.mark.asyncio
    async def test_missing_key(self, fake_redis):
        """Test a missing key reads as None."""
        assert await RedisDurableStore(client=fake_redis).get("nope") is None

    @pytest.mark.asyncio
    async def test_list_by_prefix(self, fake_redis):
        """Test SCAN listing respects the prefix."""
        store = RedisDurableStore(client=fake_redis)
        await store.put("copilotedge:v1:a", "1", 60)
        await store.put("copilotedge:v1:b", "2", 60)
        await store.put("other:c", "3", 60)

        assert sorted(await store.list("copilotedge:")) == ["copilotedge:v1:a", "copilotedge:v1:b"]

    @pytest.mark.asyncio
    async def test_delete(self, fake_redis):
        """Test deleted keys are gone."""
        store = RedisDurableStore(client=fake_redis)
        await store.put("copilotedge:v1:a", "1", 60)
        await store.delete("copilotedge:v1:a")

        assert await store.get("copilotedge:v1:a") is None

    @pytest.mark.asyncio
    async def test_corrupt_entry_raises(self, fake_redis):
        """Test a value that is not our document raises."""
        fake_redis.strings["copilotedge:v1:a"] = "garbage"

        with pytest.raises(CacheTierError):
            await RedisDurableStore(client=fake_redis).get("copilotedge:v1:a")

    @pytest.mark.asyncio
    async def test_client_errors_wrapped(self):
        """Test client failures surface as cache tier errors."""
        client = AsyncMock()
        client.get = AsyncMock(side_effect=ConnectionError("down"))
        client.setex = AsyncMock(side_effect=ConnectionError("down"))

        store = RedisDurableStore(client=client)
        with pytest.raises(CacheTierError):
            await store.get("k")
        with pytest.raises(CacheTierError):
            await store.put("k", "v", 60)

    @pytest.mark.asyncio
    async def test_not_connected(self):
        """Test operations without a client raise."""
        store = RedisDurableStore()
        await store.connect()

        assert not store.enabled
        with pytest.raises(CacheTierError):
            await store.get("k")

    @pytest.mark.asyncio
    async def test_disconnect_closes_client(self, fake_redis):
        """Test disconnect closes and drops the client."""
        store = RedisDurableStore(client=fake_redis)
        await store.disconnect()

        fake_redis.close.assert_awaited_once()
        assert not store.enabled
