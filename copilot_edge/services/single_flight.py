"""Request coalescing: one in-flight call per key."""

import asyncio
from typing import Any, Awaitable, Callable, Dict

from copilot_edge.core.errors import UpstreamError
from copilot_edge.core.logging import get_logger

logger = get_logger(__name__)


class SingleFlight:
    """Runs at most one coroutine per key at a time.

    Concurrent callers for a key that is already running await the same
    result (or exception). The entry is removed once the call settles, so
    a later call starts fresh.
    """

    def __init__(self):
        self._inflight: Dict[str, asyncio.Future] = {}
        self._lock = asyncio.Lock()

    @property
    def inflight_count(self) -> int:
        return len(self._inflight)

    async def run(self, key: str, func: Callable[[], Awaitable[Any]]) -> Any:
        async with self._lock:
            future = self._inflight.get(key)
            leader = future is None
            if leader:
                future = asyncio.get_running_loop().create_future()
                self._inflight[key] = future

        if not leader:
            logger.debug("Joining in-flight request")
            return await asyncio.shield(future)

        try:
            result = await func()
        except asyncio.CancelledError:
            # Followers were not cancelled; they get a classified failure instead
            self._fail(future, UpstreamError("Upstream request was cancelled"))
            raise
        except Exception as e:
            self._fail(future, e)
            raise
        else:
            future.set_result(result)
            return result
        finally:
            async with self._lock:
                self._inflight.pop(key, None)

    @staticmethod
    def _fail(future: asyncio.Future, error: BaseException) -> None:
        if not future.done():
            future.set_exception(error)
            # Mark retrieved so an unawaited failure is not reported
            future.exception()
