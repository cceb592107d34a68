"""Health check endpoint."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from copilot_edge.api.deps import get_pipeline
from copilot_edge.services.pipeline import CopilotEdgePipeline

router = APIRouter()


@router.get("/health")
async def health(pipeline: CopilotEdgePipeline = Depends(get_pipeline)) -> dict:
    """Liveness plus the breaker and cache tier state."""
    breaker = pipeline.dispatcher.breaker
    circuit = breaker.state.value if breaker is not None else "disabled"
    return {
        "status": "degraded" if circuit == "open" else "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "model": pipeline.model,
        "circuit": circuit,
        "durable_cache": pipeline.cache.durable_enabled,
    }
