"""Protocol definitions for the external collaborators of the pipeline.

The pipeline only talks to storage, session persistence and telemetry
through these interfaces so each can be swapped or mocked in tests.
"""

from typing import Protocol, Optional, List, Dict, Any, runtime_checkable


@runtime_checkable
class IDurableStore(Protocol):
    """Interface for the durable (shared) cache tier."""

    async def get(self, key: str) -> Optional[str]:
        """Return the stored string or None."""
        ...

    async def put(
        self,
        key: str,
        value: str,
        ttl_seconds: int,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Store a value that expires after ``ttl_seconds``."""
        ...

    async def list(self, prefix: str) -> List[str]:
        """List keys starting with ``prefix``."""
        ...

    async def delete(self, key: str) -> None:
        """Delete a key."""
        ...


@runtime_checkable
class ISessionStore(Protocol):
    """Interface for conversation persistence."""

    async def get(self, conversation_id: str) -> List[Dict[str, Any]]:
        """Return the ordered message log of a conversation."""
        ...

    async def append(self, conversation_id: str, message: Dict[str, Any]) -> None:
        """Append one message to a conversation."""
        ...

    async def clear(self, conversation_id: str) -> None:
        """Remove a conversation."""
        ...


@runtime_checkable
class ITelemetrySink(Protocol):
    """Interface for spans, counters and measurements."""

    def start_span(self, name: str, attributes: Optional[Dict[str, Any]] = None) -> Any:
        """Open a span and return an opaque handle."""
        ...

    def end_span(self, span: Any, error: Optional[BaseException] = None) -> None:
        """Close a span, marking it failed when ``error`` is given."""
        ...

    def increment(self, name: str, value: int = 1) -> None:
        """Increase a counter."""
        ...

    def record(self, name: str, value: float) -> None:
        """Record a measurement such as a latency."""
        ...
