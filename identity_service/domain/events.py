"""Event contracts published on the message bus."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from .account import Account


class AccountCreated(BaseModel):
    """Announces a pending account so a mailer can deliver its verification code.

    The email travels encrypted; consumers decrypt it with the shared codec key.
    """

    account_id: str
    email_ciphertext: str
    verification_code: str
    created_at: datetime
    version: str = "v1"

    @classmethod
    def from_account(cls, account: Account) -> "AccountCreated":
        return cls(
            account_id=account.account_id or "",
            email_ciphertext=account.identity_ciphertext,
            verification_code=account.verification_code,
            created_at=account.created_at,
        )
