"""Tests for request coalescing."""

import asyncio

import pytest

from copilot_edge.core.errors import UpstreamError
from copilot_edge.services.single_flight import SingleFlight


class TestSingleFlight:
    """Tests for one in-flight call per key."""

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_result(self):
        """Test concurrent calls for one key run the function once."""
        flight = SingleFlight()
        release = asyncio.Event()
        calls = 0

        async def work():
            nonlocal calls
            calls += 1
            await release.wait()
            return {"text": "shared"}

        tasks = [asyncio.create_task(flight.run("k", work)) for _ in range(5)]
        await asyncio.sleep(0)
        release.set()
        results = await asyncio.gather(*tasks)

        assert calls == 1
        assert all(result == {"text": "shared"} for result in results)
        assert flight.inflight_count == 0

    @pytest.mark.asyncio
    async def test_failure_shared_then_cleared(self):
        """Test followers see the leader's error and later calls start fresh."""
        flight = SingleFlight()
        release = asyncio.Event()

        async def boom():
            await release.wait()
            raise ValueError("provider down")

        tasks = [asyncio.create_task(flight.run("k", boom)) for _ in range(3)]
        await asyncio.sleep(0)
        release.set()
        results = await asyncio.gather(*tasks, return_exceptions=True)

        assert all(isinstance(result, ValueError) for result in results)

        async def ok():
            return "fresh"

        assert await flight.run("k", ok) == "fresh"

    @pytest.mark.asyncio
    async def test_distinct_keys_run_separately(self):
        """Test different keys do not coalesce."""
        flight = SingleFlight()
        calls = []

        async def work(key):
            calls.append(key)
            return key

        results = await asyncio.gather(
            flight.run("a", lambda: work("a")),
            flight.run("b", lambda: work("b")),
        )

        assert sorted(results) == ["a", "b"]
        assert sorted(calls) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_cancelled_leader_fails_followers_cleanly(self):
        """Test followers get an upstream error, not a cancellation, when the leader goes away."""
        flight = SingleFlight()
        started = asyncio.Event()

        async def slow():
            started.set()
            await asyncio.sleep(60)
            return "never"

        leader = asyncio.create_task(flight.run("k", slow))
        await started.wait()
        follower = asyncio.create_task(flight.run("k", slow))
        await asyncio.sleep(0)

        leader.cancel()

        with pytest.raises(asyncio.CancelledError):
            await leader
        with pytest.raises(UpstreamError, match="cancelled"):
            await follower
        assert not follower.cancelled()
        assert flight.inflight_count == 0
