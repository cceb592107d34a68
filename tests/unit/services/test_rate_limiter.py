"""Tests for fixed-window rate limiting."""

from copilot_edge.services.rate_limiter import FixedWindowRateLimiter


class FakeClock:
    def __init__(self, now: float = 600.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestFixedWindow:
    """Tests for per-minute windows."""

    def test_allows_up_to_limit(self):
        """Test exactly ``limit`` requests pass in a window."""
        limiter = FixedWindowRateLimiter(limit=3, clock=FakeClock())

        assert [limiter.check_and_increment() for _ in range(4)] == [True, True, True, False]

    def test_new_window_resets(self):
        """Test the budget refills in the next minute."""
        clock = FakeClock()
        limiter = FixedWindowRateLimiter(limit=1, clock=clock)
        assert limiter.check_and_increment()
        assert not limiter.check_and_increment()

        clock.now += 60
        assert limiter.check_and_increment()

    def test_buckets_are_independent(self):
        """Test each client key has its own budget."""
        limiter = FixedWindowRateLimiter(limit=1, clock=FakeClock())

        assert limiter.check_and_increment("10.0.0.1")
        assert limiter.check_and_increment("10.0.0.2")
        assert not limiter.check_and_increment("10.0.0.1")

    def test_rejection_does_not_count(self):
        """Test refused requests do not consume budget."""
        limiter = FixedWindowRateLimiter(limit=2, clock=FakeClock())
        limiter.check_and_increment()
        limiter.check_and_increment()
        limiter.check_and_increment()

        assert limiter.remaining() == 0

    def test_retry_after_counts_to_window_end(self):
        """Test retry_after is the time left in the window."""
        clock = FakeClock(now=600.0 + 45)
        limiter = FixedWindowRateLimiter(limit=1, clock=clock)

        assert limiter.retry_after() == 15

    def test_stale_windows_collected(self):
        """Test windows older than the previous minute are dropped."""
        clock = FakeClock()
        limiter = FixedWindowRateLimiter(limit=5, clock=clock)
        limiter.check_and_increment("a")

        clock.now += 180
        limiter.check_and_increment("b")

        assert limiter._buckets == {("b", limiter.current_window()): 1}
