"""Cryptographically secure verification and authorisation codes."""

from __future__ import annotations

import secrets
import string

from ..errors import CodeLengthError

ALPHABET = string.ascii_letters
MIN_LENGTH = 32
MAX_LENGTH = 64


def generate_code(length: int) -> str:
    """Return ``length`` letters drawn uniformly from ``[a-zA-Z]``.

    ``secrets.choice`` draws from the OS CSPRNG with rejection sampling, so
    every symbol is equally likely.
    """
    if isinstance(length, bool) or not MIN_LENGTH <= length <= MAX_LENGTH:
        raise CodeLengthError(length, MIN_LENGTH, MAX_LENGTH)
    return "".join(secrets.choice(ALPHABET) for _ in range(length))


def generate_access_code() -> str:
    """Opaque authorisation code of the maximum length."""
    return generate_code(MAX_LENGTH)
