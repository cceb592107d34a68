"""Chat endpoint: accepts direct and operation requests, answers JSON or SSE."""

import json
import time
from typing import AsyncGenerator

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, StreamingResponse

from copilot_edge.api.deps import get_pipeline
from copilot_edge.api.security import verify_signature
from copilot_edge.core.errors import StreamInterruptedError, ValidationError
from copilot_edge.core.logging import get_logger
from copilot_edge.services import normalizer
from copilot_edge.services.pipeline import CopilotEdgePipeline, EdgeResponse

logger = get_logger(__name__)

router = APIRouter()


def _sse(payload) -> str:
    return f"data: {json.dumps(payload)}\n\n"


def client_id_for(request: Request) -> str:
    """Rate-limit bucket for the caller."""
    forwarded = request.headers.get("cf-connecting-ip") or request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client is not None:
        return request.client.host
    return "default"


async def _stream_events(result: EdgeResponse) -> AsyncGenerator[str, None]:
    envelope = result.envelope
    chunk_id = f"chatcmpl-{int(time.time() * 1000)}"
    try:
        async for delta in envelope.stream:
            yield _sse(normalizer.to_chunk(delta, envelope.model, chunk_id))
    except StreamInterruptedError as e:
        logger.warning(f"Stream to client ended early: {e.message}")
        yield _sse({"error": e.message, "type": e.error_type})
        yield "data: [DONE]\n\n"
        return

    yield _sse(normalizer.to_chunk("", envelope.model, chunk_id, finish_reason="stop"))
    yield "data: [DONE]\n\n"


@router.post("/chat")
async def chat(
    request: Request,
    pipeline: CopilotEdgePipeline = Depends(get_pipeline),
    _signed: bool = Depends(verify_signature),
):
    """Answer a chat request, from cache when possible."""
    raw = await request.body()
    try:
        payload = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError("Request body must be valid JSON")

    result = await pipeline.handle_request(payload, client_id=client_id_for(request))

    if result.streaming:
        headers = result.headers()
        headers["Cache-Control"] = "no-cache"
        return StreamingResponse(
            _stream_events(result),
            media_type="text/event-stream",
            headers=headers,
        )

    return JSONResponse(content=result.body, headers=result.headers())
