"""Tests for durable value encryption."""

import pytest

from copilot_edge.core.errors import CacheTierError
from copilot_edge.services.encryption import EncryptionService, derive_key


class TestEncryptionService:
    """Tests for Fernet encryption of durable payloads."""

    def test_round_trip(self):
        """Test text decrypts to the original."""
        service = EncryptionService(passphrase="passphrase")
        token = service.encrypt_text('{"text": "héllo"}')

        assert token != '{"text": "héllo"}'
        assert service.decrypt_text(token) == '{"text": "héllo"}'

    def test_key_derivation_is_stable(self):
        """Test the same passphrase always derives the same key."""
        assert derive_key("passphrase") == derive_key("passphrase")
        assert derive_key("passphrase") != derive_key("other")

    def test_other_instance_same_passphrase_decrypts(self):
        """Test instances sharing a passphrase interoperate."""
        token = EncryptionService(passphrase="shared").encrypt_text("v")
        assert EncryptionService(passphrase="shared").decrypt_text(token) == "v"

    def test_tampered_token_raises(self):
        """Test undecryptable input raises a cache tier error."""
        service = EncryptionService(passphrase="passphrase")

        with pytest.raises(CacheTierError):
            service.decrypt_text("not-a-token")

    def test_requires_secret(self):
        """Test a passphrase or key is required."""
        with pytest.raises(ValueError):
            EncryptionService()
