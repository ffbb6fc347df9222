"""Domain-level request and response contracts shared by multiple layers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from .account import Account, AccountState
from ..security.tokens import TokenPair


@dataclass(slots=True)
class SignUpInput:
    """Raw inputs for creating a pending account."""

    email: str
    password: str
    password_confirmation: str


@dataclass(slots=True)
class SignInInput:
    email: str
    password: str


@dataclass(slots=True)
class SignInResult:
    """Authenticated account together with its freshly issued tokens."""

    account: Account
    tokens: TokenPair


@dataclass(frozen=True, slots=True)
class AccountFilter:
    """Equality filter over the store's lookup columns; unset fields are ignored."""

    identity_ciphertext: str | None = None
    account_id: str | None = None
    verification_code: str | None = None

    def is_empty(self) -> bool:
        return self.identity_ciphertext is None and self.account_id is None and self.verification_code is None

    def matches(self, account: Account) -> bool:
        if self.identity_ciphertext is not None and account.identity_ciphertext != self.identity_ciphertext:
            return False
        if self.account_id is not None and account.account_id != self.account_id:
            return False
        if self.verification_code is not None and account.verification_code != self.verification_code:
            return False
        return True


@dataclass(frozen=True, slots=True)
class AccountUpdate:
    """Columns to write on one account; unset fields are left as stored.

    ``activate`` raises both state flags and only applies to a pending
    account. When ``expected_password_hash`` is set the new hash is written
    only if the stored hash still equals it.
    """

    password_hash: str | None = None
    expected_password_hash: str | None = None
    activate: bool = False
    last_login: datetime | None = None

    def is_empty(self) -> bool:
        return self.password_hash is None and not self.activate and self.last_login is None


@dataclass(frozen=True, slots=True)
class AccountProfile:
    """Display projection of an account with its email decrypted."""

    account_id: str
    email: str
    state: AccountState
    verified: bool
    active: bool
    created_at: datetime
    last_login: datetime | None = None
