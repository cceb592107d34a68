"""Server-sent event parsing and stream accumulation.

The provider streams ``data: {...}`` lines terminated by ``data: [DONE]``.
:class:`SSEParser` turns arbitrary text slices into frames, buffering any
partial line between reads. :class:`StreamAccumulator` exposes the text
deltas as a one-shot async iterator while building the full answer for
the cache.
"""

import json
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, List, Optional

import httpx

from copilot_edge.core.errors import StreamInterruptedError
from copilot_edge.core.logging import get_logger
from copilot_edge.utils.streaming_utils import extract_delta

logger = get_logger(__name__)

DONE_SENTINEL = "[DONE]"


@dataclass
class SSEEvent:
    """One decoded ``data:`` frame."""

    data: Any = None
    done: bool = False


class SSEParser:
    """Incremental ``text/event-stream`` parser."""

    def __init__(self):
        self._buffer = ""
        self.done = False
        self.skipped = 0

    def feed(self, text: str) -> List[SSEEvent]:
        """Consume a slice of the stream and return the complete frames in it.

        Nothing after the terminal sentinel is returned.
        """
        if self.done:
            return []

        self._buffer += text
        events: List[SSEEvent] = []
        while "\n" in self._buffer:
            line, self._buffer = self._buffer.split("\n", 1)
            event = self._parse_line(line)
            if event is None:
                continue
            events.append(event)
            if event.done:
                self.done = True
                self._buffer = ""
                break
        return events

    def flush(self) -> List[SSEEvent]:
        """Parse whatever is left once the stream has closed."""
        if self.done or not self._buffer:
            return []
        line, self._buffer = self._buffer, ""
        event = self._parse_line(line)
        if event is None:
            return []
        if event.done:
            self.done = True
        return [event]

    def _parse_line(self, line: str) -> Optional[SSEEvent]:
        line = line.rstrip("\r")
        if not line.startswith("data:"):
            return None

        data = line[5:]
        if data.startswith(" "):
            data = data[1:]
        if not data.strip():
            return None
        if data.strip() == DONE_SENTINEL:
            return SSEEvent(done=True)

        try:
            return SSEEvent(data=json.loads(data))
        except json.JSONDecodeError:
            self.skipped += 1
            logger.debug(f"Skipping malformed SSE frame: {data[:80]!r}")
            return None


class StreamAccumulator:
    """One-shot async iterator of text deltas.

    Completion (sentinel or clean close) calls ``on_complete`` with the full
    text. A transport failure mid-stream raises
    :class:`StreamInterruptedError` to the consumer and skips
    ``on_complete``. ``close`` always runs once iteration ends.
    """

    def __init__(
        self,
        chunks: AsyncIterator[str],
        on_complete: Optional[Callable[[str], Awaitable[None]]] = None,
        on_chunk: Optional[Callable[[str], None]] = None,
        close: Optional[Callable[[], Awaitable[None]]] = None,
    ):
        self._chunks = chunks
        self._on_complete = on_complete
        self._on_chunk = on_chunk
        self._close = close
        self._parts: List[str] = []
        self._consumed = False
        self.completed = False
        self.interrupted = False

    @property
    def text(self) -> str:
        """Text accumulated so far."""
        return "".join(self._parts)

    def __aiter__(self) -> AsyncIterator[str]:
        if self._consumed:
            raise RuntimeError("Stream has already been consumed")
        self._consumed = True
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[str]:
        parser = SSEParser()
        try:
            try:
                async for text in self._chunks:
                    for event in parser.feed(text):
                        if event.done:
                            break
                        delta = self._accept(event)
                        if delta:
                            yield delta
                    if parser.done:
                        break
                else:
                    for event in parser.flush():
                        delta = self._accept(event)
                        if delta:
                            yield delta
            except (httpx.HTTPError, OSError) as e:
                self.interrupted = True
                logger.warning(f"Provider stream interrupted after {len(self.text)} chars: {e!r}")
                raise StreamInterruptedError(
                    f"Stream interrupted: {e!r}", partial_text=self.text
                ) from e

            self.completed = True
            if self._on_complete is not None:
                await self._on_complete(self.text)
        finally:
            if self._close is not None:
                await self._close()

    def _accept(self, event: SSEEvent) -> str:
        if event.done:
            return ""
        delta = extract_delta(event.data)
        if delta:
            self._parts.append(delta)
            if self._on_chunk is not None:
                self._on_chunk(delta)
        return delta
