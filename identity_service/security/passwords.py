"""Argon2id password hashing with self-describing, PHC-style encoded strings."""

from __future__ import annotations

import base64
import binascii
import hmac
import re
import secrets
from dataclasses import dataclass

from argon2.exceptions import HashingError
from argon2.low_level import ARGON2_VERSION, Type, hash_secret_raw

from ..errors import HashFormatError, IncompatibleVariantError, IncompatibleVersionError

VARIANT = "argon2id"
SEGMENT_COUNT = 6

_VERSION_RE = re.compile(r"^v=(\d+)$")
_PARAMS_RE = re.compile(r"^m=(\d+),t=(\d+),p=(\d+)$")


@dataclass(frozen=True, slots=True)
class HashParams:
    """Argon2 cost parameters; memory is expressed in KiB."""

    memory: int = 64 * 1024
    iterations: int = 4
    parallelism: int = 4
    salt_length: int = 16
    key_length: int = 32


DEFAULT_PARAMS = HashParams()


def _b64encode(raw: bytes) -> str:
    return base64.b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(value: str) -> bytes:
    # unpadded only, so every hash has a single canonical encoding
    if "=" in value:
        raise HashFormatError()
    padded = value + "=" * (-len(value) % 4)
    try:
        raw = base64.b64decode(padded.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError) as exc:
        raise HashFormatError() from exc
    if _b64encode(raw) != value:
        raise HashFormatError()
    return raw


def _derive(password: str, salt: bytes, params: HashParams) -> bytes:
    try:
        return hash_secret_raw(
            secret=password.encode("utf-8"),
            salt=salt,
            time_cost=params.iterations,
            memory_cost=params.memory,
            parallelism=params.parallelism,
            hash_len=params.key_length,
            type=Type.ID,
            version=ARGON2_VERSION,
        )
    except HashingError as exc:
        raise HashFormatError(f"argon2id: unusable parameters ({exc})") from exc


def decode_hash(encoded: str) -> tuple[HashParams, bytes, bytes]:
    """Split an encoded hash into its parameters, salt and key.

    Raises
    ------
    HashFormatError
        When the string does not have six ``$`` segments or a field is unparseable.
    IncompatibleVariantError
        When the algorithm id is not ``argon2id``.
    IncompatibleVersionError
        When the derivation version differs from the linked libargon2 version.
    """
    values = encoded.split("$")
    if len(values) != SEGMENT_COUNT:
        raise HashFormatError()
    if values[1] != VARIANT:
        raise IncompatibleVariantError()

    version_match = _VERSION_RE.match(values[2])
    if version_match is None:
        raise HashFormatError()
    if int(version_match.group(1)) != ARGON2_VERSION:
        raise IncompatibleVersionError()

    params_match = _PARAMS_RE.match(values[3])
    if params_match is None:
        raise HashFormatError()

    salt = _b64decode(values[4])
    key = _b64decode(values[5])
    params = HashParams(
        memory=int(params_match.group(1)),
        iterations=int(params_match.group(2)),
        parallelism=int(params_match.group(3)),
        salt_length=len(salt),
        key_length=len(key),
    )
    return params, salt, key


class CredentialHasher:
    """One-way password hashing and constant-time verification."""

    def __init__(self, params: HashParams = DEFAULT_PARAMS) -> None:
        self._params = params
        self._dummy_hash: str | None = None

    @property
    def params(self) -> HashParams:
        return self._params

    def hash_password(self, plaintext: str) -> str:
        """Hash ``plaintext`` with a fresh random salt and encode every parameter."""
        params = self._params
        salt = secrets.token_bytes(params.salt_length)
        key = _derive(plaintext, salt, params)
        return (
            f"${VARIANT}$v={ARGON2_VERSION}"
            f"$m={params.memory},t={params.iterations},p={params.parallelism}"
            f"${_b64encode(salt)}${_b64encode(key)}"
        )

    def verify_password(self, plaintext: str, encoded: str) -> bool:
        """Return ``True`` when ``plaintext`` derives the key stored in ``encoded``."""
        params, salt, key = decode_hash(encoded)
        other_key = _derive(plaintext, salt, params)
        if len(key) != len(other_key):
            return False
        return hmac.compare_digest(key, other_key)

    def verify_dummy(self, plaintext: str) -> None:
        """Spend the cost of a real verification when no stored hash exists."""
        if self._dummy_hash is None:
            self._dummy_hash = self.hash_password(secrets.token_urlsafe(16))
        self.verify_password(plaintext, self._dummy_hash)

    def needs_rehash(self, encoded: str) -> bool:
        """Report whether ``encoded`` was produced with other cost parameters."""
        params, _, _ = decode_hash(encoded)
        return params != self._params
