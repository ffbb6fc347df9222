from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class AccountState(str, Enum):
    pending = "pending"
    active = "active"


@dataclass(slots=True)
class Account:
    """Aggregate root for one registered identity.

    ``identity_ciphertext`` is the encrypted, normalised email and doubles as
    the equality-lookup key. ``verified`` and ``active`` only ever move from
    ``False`` to ``True`` together.
    """

    identity_ciphertext: str
    password_hash: str
    verification_code: str
    created_at: datetime
    account_id: str | None = None
    verified: bool = False
    active: bool = False
    last_login: datetime | None = None

    @property
    def state(self) -> AccountState:
        if self.verified and self.active:
            return AccountState.active
        return AccountState.pending

    @property
    def is_active(self) -> bool:
        return self.state is AccountState.active
