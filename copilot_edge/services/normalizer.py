"""Response normalization.

Maps the two provider body shapes (chat-completion and single-field run
results) to plain text, and renders a :class:`ResponseEnvelope` in the
shape the caller used: OpenAI-style chat completions for direct requests,
``generateCopilotResponse`` payloads for operation requests.
"""

import json
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from copilot_edge.core.errors import UpstreamFormatError
from copilot_edge.models.chat import ResponseEnvelope
from copilot_edge.services.token_utils import estimate_tokens

DEFAULT_GREETING = "Hello! I'm powered by Cloudflare AI at the edge. How can I help you today?"
DEFAULT_THREAD_ID = "default-thread"


def extract_text(raw: Any) -> str:
    """Return the completion text from a provider response body.

    Raises:
        UpstreamFormatError: if neither recognized shape is present.
    """
    if not isinstance(raw, dict):
        raise UpstreamFormatError()

    choices = raw.get("choices")
    if isinstance(choices, list) and choices:
        first = choices[0]
        message = first.get("message") if isinstance(first, dict) else None
        content = message.get("content") if isinstance(message, dict) else None
        if isinstance(content, str):
            return content
        raise UpstreamFormatError()

    result = raw.get("result")
    if isinstance(result, dict) and isinstance(result.get("response"), str):
        return result["response"]

    if isinstance(raw.get("response"), str):
        return raw["response"]

    raise UpstreamFormatError()


def _now_ms() -> int:
    return int(time.time() * 1000)


def _cache_fields(envelope: ResponseEnvelope) -> Dict[str, Any]:
    fields: Dict[str, Any] = {"cached": envelope.cached}
    if envelope.cached and envelope.cache_tier is not None:
        fields["cache_tier"] = getattr(envelope.cache_tier, "value", envelope.cache_tier)
    return fields


def to_chat_completion(
    envelope: ResponseEnvelope,
    prompt_messages: List[Dict[str, str]],
) -> Dict[str, Any]:
    """Render an OpenAI-style ``chat.completion`` body."""
    prompt_tokens = estimate_tokens(json.dumps(prompt_messages))
    completion_tokens = estimate_tokens(envelope.text)
    body: Dict[str, Any] = {
        "id": f"chat-{_now_ms()}",
        "object": "chat.completion",
        "created": int(time.time()),
        "model": envelope.model,
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": envelope.text},
                "finish_reason": "stop",
            }
        ],
        "usage": {
            "prompt_tokens": prompt_tokens,
            "completion_tokens": completion_tokens,
            "total_tokens": prompt_tokens + completion_tokens,
        },
    }
    body.update(_cache_fields(envelope))
    return body


def to_chunk(delta: str, model: str, chunk_id: str, finish_reason: Optional[str] = None) -> Dict[str, Any]:
    """Render one streamed ``chat.completion.chunk`` frame."""
    return {
        "id": chunk_id,
        "object": "chat.completion.chunk",
        "created": int(time.time()),
        "model": model,
        "choices": [
            {
                "index": 0,
                "delta": {"content": delta} if delta else {},
                "finish_reason": finish_reason,
            }
        ],
    }


def _text_message(text: str) -> Dict[str, Any]:
    return {
        "__typename": "TextMessageOutput",
        "id": f"msg-{uuid.uuid4().hex[:12]}",
        "createdAt": datetime.now(timezone.utc).isoformat(),
        "content": [text],
        "role": "assistant",
        "parentMessageId": None,
        "status": {"code": "SUCCESS", "__typename": "SuccessMessageStatus"},
    }


def to_copilot_response(envelope: ResponseEnvelope, thread_id: Optional[str] = None) -> Dict[str, Any]:
    """Render a ``generateCopilotResponse`` GraphQL result."""
    body: Dict[str, Any] = {
        "data": {
            "generateCopilotResponse": {
                "threadId": thread_id or DEFAULT_THREAD_ID,
                "runId": f"run-{_now_ms()}",
                "extensions": {},
                "status": {"code": "SUCCESS", "__typename": "BaseResponseStatus"},
                "messages": [_text_message(envelope.text)],
                "metaEvents": [],
            }
        }
    }
    body.update(_cache_fields(envelope))
    return body


def default_copilot_response(thread_id: Optional[str] = None) -> Dict[str, Any]:
    """Greeting returned when an operation carries no usable message."""
    return {
        "data": {
            "generateCopilotResponse": {
                "threadId": thread_id or DEFAULT_THREAD_ID,
                "runId": "default-run",
                "messages": [_text_message(DEFAULT_GREETING)],
            }
        }
    }


def empty_operation_response(operation_name: str) -> Dict[str, Any]:
    """Empty success for operations the adapter does not implement."""
    if operation_name == "IntrospectionQuery":
        return {
            "data": {
                "__schema": {
                    "queryType": {"name": "Query"},
                    "mutationType": {"name": "Mutation"},
                    "subscriptionType": None,
                    "types": [],
                    "directives": [],
                }
            }
        }
    return {"data": {}}


def render(
    envelope: ResponseEnvelope,
    kind: str,
    prompt_messages: List[Dict[str, str]],
    thread_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Render a completed envelope for the request form it came from."""
    if kind == "operation":
        return to_copilot_response(envelope, thread_id)
    return to_chat_completion(envelope, prompt_messages)
