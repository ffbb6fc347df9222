"""Deterministic, authenticated encryption for identity lookup keys.

AES-SIV without a nonce maps equal plaintexts to equal ciphertexts, which lets
the store index accounts by encrypted email. The trade-off is that records
sharing an email are correlatable by anyone who can read the column.
"""

from __future__ import annotations

import base64
import binascii
import logging

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESSIV

from ..errors import DecryptError

logger = logging.getLogger(__name__)

KEY_LENGTH = 64


class EncryptionCodec:
    """Reversible transform of personally identifying strings."""

    def __init__(self, key: bytes) -> None:
        if len(key) not in (32, 48, 64):
            raise ValueError("AES-SIV keys must be 32, 48 or 64 bytes")
        self._aead = AESSIV(key)

    @classmethod
    def from_b64(cls, value: str) -> "EncryptionCodec":
        """Build a codec from a URL-safe base64 key, generating one when empty."""
        if not value:
            logger.warning("EMAIL_ENCRYPTION_KEY not set; generating a temporary key")
            return cls(cls.generate_key())
        try:
            key = base64.urlsafe_b64decode(value.encode("ascii"))
        except (binascii.Error, UnicodeEncodeError) as exc:
            raise ValueError(f"invalid EMAIL_ENCRYPTION_KEY format: {exc}") from exc
        return cls(key)

    @staticmethod
    def generate_key() -> bytes:
        return AESSIV.generate_key(bit_length=KEY_LENGTH * 8)

    def encrypt(self, plaintext: str) -> str:
        """Encrypt ``plaintext``; the same input always yields the same output."""
        ciphertext = self._aead.encrypt(plaintext.encode("utf-8"), None)
        return base64.urlsafe_b64encode(ciphertext).decode("ascii")

    def decrypt(self, ciphertext: str) -> str:
        """Reverse :meth:`encrypt`, rejecting malformed or tampered input."""
        try:
            raw = base64.b64decode(ciphertext.encode("ascii"), altchars=b"-_", validate=True)
            return self._aead.decrypt(raw, None).decode("utf-8")
        except (binascii.Error, UnicodeError, InvalidTag, ValueError) as exc:
            raise DecryptError() from exc
