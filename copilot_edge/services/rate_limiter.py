"""Fixed-window request rate limiting."""

import time
from typing import Callable, Dict, Tuple

from copilot_edge.core.logging import get_logger

logger = get_logger(__name__)

WINDOW_SECONDS = 60


class FixedWindowRateLimiter:
    """Counts requests per (bucket key, unix minute).

    A window's count only ever grows; windows older than the previous
    minute are dropped on the next check.
    """

    def __init__(
        self,
        limit: int = 60,
        window_seconds: int = WINDOW_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._buckets: Dict[Tuple[str, int], int] = {}

    def current_window(self) -> int:
        return int(self._clock() // self.window_seconds)

    def check_and_increment(self, bucket_key: str = "default") -> bool:
        """Count one request if the current window has room.

        Returns:
            False when the limit for the current window is already reached.
        """
        window = self.current_window()
        self._collect(window)

        slot = (bucket_key, window)
        count = self._buckets.get(slot, 0)
        if count >= self.limit:
            logger.warning(f"Rate limit of {self.limit}/min reached for '{bucket_key}'")
            return False

        self._buckets[slot] = count + 1
        return True

    def remaining(self, bucket_key: str = "default") -> int:
        used = self._buckets.get((bucket_key, self.current_window()), 0)
        return max(0, self.limit - used)

    def retry_after(self) -> int:
        """Seconds until the current window closes."""
        now = self._clock()
        return max(1, int(self.window_seconds - (now % self.window_seconds)))

    def reset(self) -> None:
        self._buckets.clear()

    def _collect(self, window: int) -> None:
        stale = [slot for slot in self._buckets if slot[1] < window - 1]
        for slot in stale:
            del self._buckets[slot]
