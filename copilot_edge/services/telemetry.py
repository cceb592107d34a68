"""Telemetry sinks.

The pipeline reports spans, counters and measurements through
:class:`~copilot_edge.core.interfaces.ITelemetrySink`. ``NullTelemetrySink``
discards everything; ``PerformanceMonitor`` keeps in-memory statistics
served by the metrics endpoint.
"""

import statistics
import time
from collections import defaultdict, deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from copilot_edge.core.logging import get_logger

logger = get_logger(__name__)

# Span names
SPAN_REQUEST = "copilotedge.request"
SPAN_CACHE_LOOKUP = "copilotedge.cache.lookup"
SPAN_DISPATCH = "copilotedge.ai.call"
SPAN_STREAM = "copilotedge.ai.stream"


@dataclass
class Span:
    """An open span handle."""

    name: str
    attributes: Dict[str, Any] = field(default_factory=dict)
    started_at: float = field(default_factory=time.perf_counter)
    ended_at: Optional[float] = None
    error: Optional[str] = None

    @property
    def duration_ms(self) -> float:
        end = self.ended_at if self.ended_at is not None else time.perf_counter()
        return (end - self.started_at) * 1000


class NullTelemetrySink:
    """Sink that records nothing."""

    def start_span(self, name: str, attributes: Optional[Dict[str, Any]] = None) -> Span:
        return Span(name=name, attributes=attributes or {})

    def end_span(self, span: Any, error: Optional[BaseException] = None) -> None:
        return None

    def increment(self, name: str, value: int = 1) -> None:
        return None

    def record(self, name: str, value: float) -> None:
        return None


class PerformanceMetric:
    """Single performance metric with history."""

    def __init__(self, name: str, window_size: int = 1000):
        """Initialize performance metric."""
        self.name = name
        self.window_size = window_size
        self.values = deque(maxlen=window_size)
        self.total_count = 0
        self.total_sum = 0.0

    def record(self, value: float):
        """Record a new value."""
        self.values.append(value)
        self.total_count += 1
        self.total_sum += value

    def get_stats(self) -> Dict[str, Any]:
        """Get statistics for this metric."""
        if not self.values:
            return {
                "count": 0,
                "mean": 0,
                "min": 0,
                "max": 0,
                "p50": 0,
                "p95": 0,
                "p99": 0,
                "window_size": 0
            }

        sorted_values = sorted(self.values)
        last_index = len(sorted_values) - 1

        def percentile_index(ratio: float) -> int:
            return min(int(len(sorted_values) * ratio), last_index)

        return {
            "count": self.total_count,
            "mean": statistics.mean(self.values),
            "min": sorted_values[0],
            "max": sorted_values[-1],
            "p50": sorted_values[percentile_index(0.5)],
            "p95": sorted_values[percentile_index(0.95)],
            "p99": sorted_values[percentile_index(0.99)],
            "window_size": len(self.values)
        }


class PerformanceMonitor:
    """In-memory telemetry sink with span latencies and counters."""

    def __init__(self, window_size: int = 1000):
        self.window_size = window_size
        self.metrics: Dict[str, PerformanceMetric] = {}
        self.counters: Dict[str, int] = defaultdict(int)
        self.start_time = datetime.now(timezone.utc)

    def start_span(self, name: str, attributes: Optional[Dict[str, Any]] = None) -> Span:
        return Span(name=name, attributes=attributes or {})

    def end_span(self, span: Any, error: Optional[BaseException] = None) -> None:
        if not isinstance(span, Span):
            return
        span.ended_at = time.perf_counter()
        self.record(f"{span.name}.latency_ms", span.duration_ms)
        if error is not None:
            span.error = type(error).__name__
            self.increment(f"{span.name}.errors")

    def increment(self, name: str, value: int = 1) -> None:
        """Increment a counter."""
        self.counters[name] += value

    def record(self, name: str, value: float) -> None:
        """Record a measurement."""
        if name not in self.metrics:
            self.metrics[name] = PerformanceMetric(name, self.window_size)
        self.metrics[name].record(value)

    def get_metrics_summary(self) -> Dict[str, Any]:
        """Get summary of all metrics."""
        uptime_seconds = (datetime.now(timezone.utc) - self.start_time).total_seconds()
        return {
            "uptime_seconds": uptime_seconds,
            "start_time": self.start_time.isoformat(),
            "counters": dict(self.counters),
            "measurements": {
                name: metric.get_stats() for name, metric in self.metrics.items()
            },
        }

    def span_names(self) -> List[str]:
        return sorted(
            name[: -len(".latency_ms")]
            for name in self.metrics
            if name.endswith(".latency_ms")
        )

    def reset_metrics(self) -> None:
        """Reset all metrics."""
        self.metrics.clear()
        self.counters.clear()
        self.start_time = datetime.now(timezone.utc)
        logger.info("Performance metrics reset")
