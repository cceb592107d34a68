"""
Encryption of durable cache entries.
Values written to the shared tier are encrypted so a leaked Redis snapshot
does not expose conversation content.
"""

import base64
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from copilot_edge.core.errors import CacheTierError
from copilot_edge.core.logging import get_logger

logger = get_logger(__name__)

KDF_SALT = b"copilotedge-salt"
KDF_ITERATIONS = 100_000


def derive_key(passphrase: str, salt: bytes = KDF_SALT, iterations: int = KDF_ITERATIONS) -> bytes:
    """Derive a Fernet key from a passphrase with PBKDF2-SHA256."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=iterations,
    )
    return base64.urlsafe_b64encode(kdf.derive(passphrase.encode("utf-8")))


class EncryptionService:
    """Encrypts and decrypts durable cache payloads."""

    def __init__(self, passphrase: Optional[str] = None, key: Optional[bytes] = None):
        """
        Initialize the encryption service.

        Args:
            passphrase: Secret the Fernet key is derived from
            key: Ready-made Fernet key (takes precedence)
        """
        if key is None:
            if not passphrase:
                raise ValueError("An encryption passphrase or key is required")
            key = derive_key(passphrase)
        self._cipher = Fernet(key)

    def encrypt_text(self, text: str) -> str:
        return self._cipher.encrypt(text.encode("utf-8")).decode("ascii")

    def decrypt_text(self, token: str) -> str:
        """
        Decrypt a value written by :meth:`encrypt_text`.

        Raises:
            CacheTierError: if the token was not produced with this key
        """
        try:
            return self._cipher.decrypt(token.encode("ascii")).decode("utf-8")
        except (InvalidToken, UnicodeError) as e:
            logger.error(f"Decryption of durable entry failed: {e!r}")
            raise CacheTierError("Durable entry could not be decrypted", operation="decrypt") from e
