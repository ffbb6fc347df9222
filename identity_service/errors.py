"""Exception taxonomy shared by the identity core and its adapters."""

from __future__ import annotations


class IdentityError(Exception):
    """Base class for every error raised by the identity service."""

    def __init__(self, reason: str = "identity error") -> None:
        self.reason = reason
        super().__init__(reason)


class ValidationError(IdentityError):
    """Malformed input or a password confirmation mismatch."""

    def __init__(self, field: str, reason: str) -> None:
        self.field = field
        super().__init__(f"invalid {field}: {reason}")


class AlreadyExistsError(IdentityError):
    def __init__(self, reason: str = "account already exists") -> None:
        super().__init__(reason)


class NotFoundError(IdentityError):
    def __init__(self, reason: str = "account not found") -> None:
        super().__init__(reason)


class AlreadyActivatedError(IdentityError):
    def __init__(self, reason: str = "account already activated") -> None:
        super().__init__(reason)


class AuthenticationError(IdentityError):
    """Generic credential failure; never says which check failed."""

    def __init__(self) -> None:
        super().__init__("invalid credentials")


class TokenError(IdentityError):
    """Base class for token validation failures."""


class TokenExpiredError(TokenError):
    def __init__(self) -> None:
        super().__init__("token expired")


class TokenMalformedError(TokenError):
    def __init__(self, reason: str = "token malformed") -> None:
        super().__init__(reason)


class TokenSignatureError(TokenError):
    def __init__(self) -> None:
        super().__init__("token signature invalid")


class PasswordHashError(IdentityError):
    """Base class for password-hash decoding failures."""


class HashFormatError(PasswordHashError):
    def __init__(self, reason: str = "argon2id: hash is not in the correct format") -> None:
        super().__init__(reason)


class IncompatibleVariantError(PasswordHashError):
    def __init__(self) -> None:
        super().__init__("argon2id: incompatible variant of argon2")


class IncompatibleVersionError(PasswordHashError):
    def __init__(self) -> None:
        super().__init__("argon2id: incompatible version of argon2")


class CodeLengthError(IdentityError):
    def __init__(self, length: int, minimum: int, maximum: int) -> None:
        self.length = length
        super().__init__(f"code length must be between {minimum} and {maximum}, got {length}")


class DecryptError(IdentityError):
    def __init__(self, reason: str = "ciphertext could not be decrypted") -> None:
        super().__init__(reason)


class OperationCancelledError(IdentityError):
    """Raised when a request deadline passes or the caller cancels."""

    def __init__(self, step: str) -> None:
        self.step = step
        super().__init__(f"operation cancelled before {step}")


class DependencyError(IdentityError):
    """Store or message bus failure, surfaced verbatim to the caller."""

    def __init__(self, dependency: str, reason: str) -> None:
        self.dependency = dependency
        super().__init__(f"{dependency} failure: {reason}")


class ConflictError(DependencyError):
    """Uniqueness violation reported by the identity store."""

    def __init__(self, reason: str = "unique constraint violated") -> None:
        super().__init__("store", reason)


class DeliveryError(DependencyError):
    """The message bus rejected a publish."""

    def __init__(self, reason: str) -> None:
        super().__init__("message bus", reason)
