"""Helpers for interpreting streamed provider payloads."""

from __future__ import annotations

from typing import Any


def coerce_to_text(payload: Any) -> str:
    """Safely coerce a delta value into plain text."""

    if payload is None:
        return ""

    if isinstance(payload, str):
        return payload

    if isinstance(payload, (int, float)) and not isinstance(payload, bool):
        return str(payload)

    if isinstance(payload, dict):
        for key in ("content", "text", "response"):
            if key in payload:
                text_value = coerce_to_text(payload[key])
                if text_value:
                    return text_value
        return ""

    return ""


def extract_delta(frame: Any) -> str:
    """Extract the text fragment from one decoded SSE frame.

    Understands ``{"delta": "..."}``, chat-completion chunks
    (``choices[0].delta.content``) and run-endpoint chunks
    (``{"response": "..."}``). Anything else yields an empty string.
    """

    if frame is None:
        return ""

    if isinstance(frame, str):
        return frame

    if not isinstance(frame, dict):
        return ""

    if "delta" in frame:
        return coerce_to_text(frame["delta"])

    choices = frame.get("choices")
    if isinstance(choices, list) and choices:
        first = choices[0]
        if isinstance(first, dict):
            return coerce_to_text(first.get("delta"))
        return ""

    return coerce_to_text(frame.get("response"))
