"""Cache and conversation management endpoints."""

from fastapi import APIRouter, Depends, Query

from copilot_edge.api.deps import get_pipeline
from copilot_edge.api.security import verify_signature
from copilot_edge.core.logging import get_logger
from copilot_edge.services.pipeline import CopilotEdgePipeline
from copilot_edge.services.session_store import conversation_summary

logger = get_logger(__name__)

# Signed like /chat when a signing secret is configured
router = APIRouter(dependencies=[Depends(verify_signature)])


@router.post("/cache/clear")
async def clear_cache(
    include_durable: bool = Query(False, description="Also delete durable-tier entries"),
    pipeline: CopilotEdgePipeline = Depends(get_pipeline),
) -> dict:
    """Drop cached responses."""
    cleared = await pipeline.clear_cache(include_durable)
    logger.info(f"Cache cleared ({cleared} entries, include_durable={include_durable})")
    return {"cleared": cleared, "include_durable": include_durable}


@router.get("/conversations/{conversation_id}")
async def get_conversation(
    conversation_id: str,
    pipeline: CopilotEdgePipeline = Depends(get_pipeline),
) -> dict:
    """Return the persisted message log of a conversation."""
    messages = await pipeline.get_conversation(conversation_id)
    return conversation_summary(conversation_id, messages)


@router.delete("/conversations/{conversation_id}")
async def delete_conversation(
    conversation_id: str,
    pipeline: CopilotEdgePipeline = Depends(get_pipeline),
) -> dict:
    """Forget a conversation."""
    await pipeline.clear_conversation(conversation_id)
    return {"conversation_id": conversation_id, "cleared": True}
