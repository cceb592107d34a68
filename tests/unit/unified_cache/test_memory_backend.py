"""Tests for the in-memory local tier."""

from copilot_edge.services.unified_cache.backends.memory_backend import MemoryBackend


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestExpiry:
    """Tests for TTL handling."""

    def test_value_available_before_ttl(self):
        """Test a fresh entry is returned."""
        clock = FakeClock()
        backend = MemoryBackend(clock=clock)
        backend.set("k", {"text": "v"}, ttl=60)

        clock.now += 59
        assert backend.get("k") == {"text": "v"}

    def test_value_expires_at_ttl(self):
        """Test an entry is gone once its TTL has elapsed."""
        clock = FakeClock()
        backend = MemoryBackend(clock=clock)
        backend.set("k", {"text": "v"}, ttl=60)

        clock.now += 60
        assert backend.get("k") is None
        assert backend.get_raw_entry("k") is None
        assert backend.stats.evictions == 1

    def test_no_ttl_never_expires(self):
        """Test entries without TTL persist."""
        clock = FakeClock()
        backend = MemoryBackend(clock=clock)
        backend.set("k", "v")

        clock.now += 10 ** 6
        assert backend.get("k") == "v"


class TestCapacity:
    """Tests for bounded capacity."""

    def test_oldest_entry_evicted(self):
        """Test inserting past capacity drops the oldest key."""
        backend = MemoryBackend(max_entries=2)
        backend.set("a", 1, ttl=60)
        backend.set("b", 2, ttl=60)
        backend.set("c", 3, ttl=60)

        assert backend.get("a") is None
        assert backend.get("b") == 2
        assert backend.get("c") == 3
        assert backend.get_entry_count() == 2

    def test_rewrite_refreshes_position(self):
        """Test overwriting a key makes it the newest."""
        backend = MemoryBackend(max_entries=2)
        backend.set("a", 1, ttl=60)
        backend.set("b", 2, ttl=60)
        backend.set("a", 10, ttl=60)
        backend.set("c", 3, ttl=60)

        assert backend.get("a") == 10
        assert backend.get("b") is None

    def test_expired_entries_evicted_first(self):
        """Test expired entries make room before live ones."""
        clock = FakeClock()
        backend = MemoryBackend(max_entries=2, clock=clock)
        backend.set("old", 1, ttl=60)
        backend.set("short", 2, ttl=1)
        clock.now += 5
        backend.set("new", 3, ttl=60)

        assert backend.get("old") == 1
        assert backend.get("new") == 3


class TestStats:
    """Tests for statistics tracking."""

    def test_hits_and_misses(self):
        """Test hit/miss accounting."""
        backend = MemoryBackend()
        backend.set("k", "v", ttl=60)
        backend.get("k")
        backend.get("missing")

        assert backend.stats.hits == 1
        assert backend.stats.misses == 1
        assert backend.stats.hit_rate == 0.5

    def test_delete_and_clear(self):
        """Test delete and clear_all."""
        backend = MemoryBackend()
        backend.set("a", 1)
        backend.set("b", 2)

        assert backend.delete("a") is True
        assert backend.delete("a") is False
        backend.clear_all()
        assert backend.keys() == []
