"""Request signature verification for the chat and admin endpoints."""

import base64
import hashlib
import hmac
from typing import Optional

from fastapi import Depends, Request

from copilot_edge.api.deps import get_settings
from copilot_edge.core.config import Settings
from copilot_edge.core.errors import APIError, ErrorCategory


def sign_body(secret: str, body: bytes) -> str:
    """Base64 HMAC-SHA256 of ``body``."""
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def signature_matches(secret: str, body: bytes, signature: Optional[str]) -> bool:
    if not signature:
        return False
    return hmac.compare_digest(sign_body(secret, body), signature.strip())


async def verify_signature(request: Request, settings: Settings = Depends(get_settings)) -> bool:
    """Reject unsigned or mis-signed requests when a signing secret is configured."""
    if not settings.hmac_secret:
        return True

    body = await request.body()
    if not signature_matches(settings.hmac_secret, body, request.headers.get(settings.signature_header)):
        raise APIError(
            "Invalid or missing request signature",
            status_code=401,
            category=ErrorCategory.VALIDATION,
        )
    return True
