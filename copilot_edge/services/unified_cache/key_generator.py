"""Cache key generation for chat responses.

Keys are SHA-256 digests over a canonical JSON rendering of everything
that influences the answer. When a deployment secret is configured the
digest is an HMAC, so keys cannot be inverted by hashing guessed prompts.
"""

import hashlib
import hmac
import json
from typing import Optional, Dict, Any, List


class CacheKeyGenerator:
    """Deterministic cache key generation.

    All keys include a version segment to enable cache invalidation
    when the key format or cached data structure changes.

    Key format: {prefix}{version}:{sha256 hex}

    Example:
        copilotedge:v1:9f86d081884c7d659a2feaa0c55ad015a3bf4f1b2b0b822cd15d6c15b0f00a08
    """

    VERSION = "v1"
    DISPLAY_LENGTH = 16

    def __init__(self, prefix: str = "copilotedge:", secret: Optional[str] = None):
        """Initialize the generator.

        Args:
            prefix: Namespace prepended to every key; also used to list
                durable entries when clearing.
            secret: Optional deployment-wide secret mixed in with HMAC.
        """
        self.prefix = prefix
        self._secret = secret.encode("utf-8") if secret else None

    @staticmethod
    def canonicalize(
        model: str,
        messages: List[Dict[str, str]],
        params: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Stable JSON text for the request.

        Message order is significant and preserved; object keys are sorted.
        """
        canonical = {
            "model": model,
            "messages": [
                {"role": message["role"], "content": message["content"]}
                for message in messages
            ],
            "params": params or {},
        }
        return json.dumps(canonical, sort_keys=True, separators=(",", ":"), ensure_ascii=False)

    def hash_content(self, content: str) -> str:
        """Hex digest of ``content`` (HMAC-SHA-256 when a secret is set)."""
        data = content.encode("utf-8")
        if self._secret:
            return hmac.new(self._secret, data, hashlib.sha256).hexdigest()
        return hashlib.sha256(data).hexdigest()

    def chat(
        self,
        model: str,
        messages: List[Dict[str, str]],
        params: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Generate the cache key for a chat request.

        Args:
            model: Model identity the request is dispatched to.
            messages: Ordered ``{"role", "content"}`` dicts.
            params: Generation parameters that change the answer.

        Returns:
            Cache key string.
        """
        digest = self.hash_content(self.canonicalize(model, messages, params))
        return f"{self.prefix}{self.VERSION}:{digest}"

    @classmethod
    def display(cls, key: str) -> str:
        """Shortened form of a key for log lines."""
        head, _, digest = key.rpartition(":")
        return f"{head}:{digest[:cls.DISPLAY_LENGTH]}"
