"""Token counting and cost estimation."""

import math
from typing import Dict, List, Optional

import tiktoken

from copilot_edge.core.logging import get_logger

logger = get_logger(__name__)

# USD per 1M tokens
MODEL_PRICING: Dict[str, Dict[str, float]] = {
    "@cf/meta/llama-3.1-8b-instruct": {"input": 0.5, "output": 1.5},
    "@cf/meta/llama-3.1-70b-instruct": {"input": 2.7, "output": 3.5},
    "@cf/meta/llama-3-8b-instruct": {"input": 0.5, "output": 1.5},
    "@cf/mistral/mistral-7b-instruct": {"input": 0.5, "output": 1.5},
    "@cf/microsoft/phi-2": {"input": 0.3, "output": 0.9},
    "@cf/google/gemma-7b-it": {"input": 0.5, "output": 1.5},
    "@cf/qwen/qwen1.5-7b-chat-awq": {"input": 0.5, "output": 1.5},
    "@cf/tinyllama/tinyllama-1.1b-chat-v1.0": {"input": 0.2, "output": 0.6},
    "gpt-4": {"input": 30, "output": 60},
    "gpt-4-turbo": {"input": 10, "output": 30},
    "gpt-3.5-turbo": {"input": 0.5, "output": 1.5},
    "default": {"input": 1, "output": 2},
}

ENCODING_NAME = "cl100k_base"


def estimate_tokens(text: str) -> int:
    """Rule-of-thumb count of roughly four characters per token."""
    if not text:
        return 0
    return math.ceil(len(text) / 4)


def format_cost(cost: float) -> str:
    if cost < 0.01:
        return f"${cost:.6f}"
    if cost < 1:
        return f"${cost:.4f}"
    return f"${cost:.2f}"


class TokenCounter:
    """Counts tokens with ``tiktoken``.

    cl100k is used for every model; for Llama-family models it is an
    approximation. When the encoding cannot be loaded or a string cannot
    be encoded, counts fall back to :func:`estimate_tokens`.
    """

    def __init__(self, model_name: str = "default", encoding_name: str = ENCODING_NAME):
        self.model_name = model_name
        self.encoding_name = encoding_name
        self._encoder: Optional[tiktoken.Encoding] = None
        self._encoder_failed = False

    def _get_encoder(self) -> Optional[tiktoken.Encoding]:
        if self._encoder is None and not self._encoder_failed:
            try:
                self._encoder = tiktoken.get_encoding(self.encoding_name)
            except Exception as e:
                logger.warning(f"Failed to load {self.encoding_name} encoding, using estimation: {e}")
                self._encoder_failed = True
        return self._encoder

    def count_tokens(self, text: str) -> int:
        if not text:
            return 0

        encoder = self._get_encoder()
        if encoder is None:
            return estimate_tokens(text)

        try:
            return len(encoder.encode(text))
        except Exception as e:
            logger.warning(f"Failed to encode text, using estimation: {e}")
            return estimate_tokens(text)

    def count_message_tokens(self, messages: List[Dict[str, str]]) -> int:
        """Count prompt tokens including per-message overhead."""
        if not messages:
            return 0

        total = 0
        for message in messages:
            total += 1  # role
            content = message.get("content")
            if content:
                total += self.count_tokens(content)
            total += 3  # separators
        return total + 3

    def calculate_cost(
        self,
        input_tokens: int,
        output_tokens: int,
        model_name: Optional[str] = None,
    ) -> Dict[str, float]:
        model = model_name or self.model_name
        pricing = MODEL_PRICING.get(model, MODEL_PRICING["default"])

        input_cost = (input_tokens / 1_000_000) * pricing["input"]
        output_cost = (output_tokens / 1_000_000) * pricing["output"]
        return {
            "input_cost": round(input_cost, 6),
            "output_cost": round(output_cost, 6),
            "total_cost": round(input_cost + output_cost, 6),
        }
