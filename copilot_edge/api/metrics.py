"""Metrics API endpoints."""

from fastapi import APIRouter, Depends

from copilot_edge.api.deps import get_performance_monitor, get_pipeline
from copilot_edge.services.pipeline import CopilotEdgePipeline
from copilot_edge.services.telemetry import PerformanceMonitor

router = APIRouter(prefix="/metrics", tags=["metrics"])


@router.get("")
async def metrics(pipeline: CopilotEdgePipeline = Depends(get_pipeline)) -> dict:
    """Return request, cache and dispatch counters."""
    return pipeline.get_metrics()


@router.get("/all")
async def metrics_all(monitor: PerformanceMonitor = Depends(get_performance_monitor)) -> dict:
    """Return span latencies and counters recorded by telemetry."""
    return monitor.get_metrics_summary()
