"""Utilities for issuing and validating RS256 access/refresh token pairs."""

from __future__ import annotations

import base64
import binascii
import logging
import time
from dataclasses import dataclass
from typing import Any

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from ..config import Settings
from ..errors import TokenExpiredError, TokenMalformedError, TokenSignatureError

logger = logging.getLogger(__name__)

ALGORITHM = "RS256"
_REQUIRED_CLAIMS = ["exp", "iat", "sub"]


@dataclass(frozen=True, slots=True)
class SigningKeys:
    """PEM key pair and lifetime used for one class of token."""

    private_key: str
    public_key: str
    ttl_seconds: int


@dataclass(frozen=True, slots=True)
class TokenPair:
    """Access/refresh tokens returned to API consumers; never persisted."""

    access_token: str
    access_expires_in: int
    refresh_token: str
    refresh_expires_in: int


def load_pem(value: str) -> str:
    """Accept a PEM document either verbatim or base64 encoded."""
    value = value.strip()
    if value.startswith("-----BEGIN"):
        return value
    try:
        return base64.b64decode(value, validate=True).decode("utf-8").strip()
    except (binascii.Error, UnicodeDecodeError) as exc:
        raise ValueError("signing key is neither PEM nor base64-encoded PEM") from exc


def generate_signing_keys(ttl_seconds: int, key_size: int = 2048) -> SigningKeys:
    """Generate an RSA key pair for development or tests."""
    private = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
    private_pem = private.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")
    public_pem = private.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("utf-8")
    return SigningKeys(private_key=private_pem, public_key=public_pem, ttl_seconds=ttl_seconds)


def create_token(subject: str, keys: SigningKeys, *, issuer: str, issued_at: int | None = None) -> str:
    """Sign a JWT carrying ``subject`` that expires ``keys.ttl_seconds`` after issue."""
    now = int(time.time()) if issued_at is None else issued_at
    payload: dict[str, Any] = {
        "iss": issuer,
        "sub": subject,
        "iat": now,
        "exp": now + keys.ttl_seconds,
    }
    return jwt.encode(payload, keys.private_key, algorithm=ALGORITHM)


def validate_token(token: str, public_key: str, *, issuer: str | None = None) -> str:
    """Verify ``token`` against ``public_key`` and return its subject claim.

    When ``issuer`` is given the ``iss`` claim must be present and equal to it.

    Raises
    ------
    TokenExpiredError
        The signature is valid but ``exp`` has passed.
    TokenSignatureError
        The token was not signed by the private half of ``public_key``.
    TokenMalformedError
        The token cannot be decoded, lacks a required claim or names another issuer.
    """
    required = _REQUIRED_CLAIMS if issuer is None else [*_REQUIRED_CLAIMS, "iss"]
    try:
        claims = jwt.decode(
            token,
            public_key,
            algorithms=[ALGORITHM],
            issuer=issuer,
            options={"require": required},
        )
    except jwt.ExpiredSignatureError as exc:
        raise TokenExpiredError() from exc
    except jwt.InvalidSignatureError as exc:
        raise TokenSignatureError() from exc
    except jwt.PyJWTError as exc:
        raise TokenMalformedError(f"token malformed: {exc}") from exc

    subject = claims.get("sub")
    if not isinstance(subject, str) or not subject:
        raise TokenMalformedError("token subject missing")
    return subject


class TokenIssuer:
    """Signs token pairs with independent access and refresh keys."""

    def __init__(self, access: SigningKeys, refresh: SigningKeys, *, issuer: str) -> None:
        self._access = access
        self._refresh = refresh
        self._issuer = issuer

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenIssuer":
        """Build an issuer from configured keys, generating ephemeral ones when unset."""
        return cls(
            _keys_from_settings(
                "access",
                settings.access_token_private_key,
                settings.access_token_public_key,
                settings.access_token_ttl_seconds,
            ),
            _keys_from_settings(
                "refresh",
                settings.refresh_token_private_key,
                settings.refresh_token_public_key,
                settings.refresh_token_ttl_seconds,
            ),
            issuer=settings.jwt_issuer,
        )

    @property
    def access_public_key(self) -> str:
        return self._access.public_key

    @property
    def refresh_public_key(self) -> str:
        return self._refresh.public_key

    def issue_token_pair(self, account_id: str, *, issued_at: int | None = None) -> TokenPair:
        """Create independently signed access and refresh tokens for ``account_id``."""
        return TokenPair(
            access_token=create_token(account_id, self._access, issuer=self._issuer, issued_at=issued_at),
            access_expires_in=self._access.ttl_seconds,
            refresh_token=create_token(account_id, self._refresh, issuer=self._issuer, issued_at=issued_at),
            refresh_expires_in=self._refresh.ttl_seconds,
        )

    def resolve_subject(self, token: str) -> str:
        """Validate with the access key, falling back to the refresh key.

        The access-key failure is reported when both keys reject the token.
        """
        try:
            return validate_token(token, self._access.public_key, issuer=self._issuer)
        except (TokenExpiredError, TokenSignatureError, TokenMalformedError) as access_exc:
            try:
                return validate_token(token, self._refresh.public_key, issuer=self._issuer)
            except (TokenExpiredError, TokenSignatureError, TokenMalformedError):
                raise access_exc from None


def _keys_from_settings(name: str, private_key: str, public_key: str, ttl_seconds: int) -> SigningKeys:
    if private_key and public_key:
        return SigningKeys(load_pem(private_key), load_pem(public_key), ttl_seconds)
    logger.warning("%s token keys not configured; generating an ephemeral pair", name)
    return generate_signing_keys(ttl_seconds)
