"""Identity store contract and its Postgres and in-memory implementations."""

from __future__ import annotations

import logging
import threading
import uuid
from contextlib import contextmanager
from dataclasses import replace
from typing import Any, Iterator, Protocol

import psycopg
from psycopg import errors as pg_errors
from psycopg.rows import tuple_row
from psycopg_pool import ConnectionPool

from .config import Settings
from .context import RequestContext
from .domain.account import Account
from .domain.contracts import AccountFilter, AccountUpdate
from .errors import ConflictError, DependencyError, ValidationError

logger = logging.getLogger(__name__)

_COLUMNS = (
    "account_id, identity_ciphertext, password_hash, verification_code, "
    "verified, active, created_at, last_login"
)


class IdentityStore(Protocol):
    """Narrow persistence contract consumed by the account lifecycle.

    ``find_one`` returns ``None`` for zero matches. ``save`` assigns the
    account id and raises ``ConflictError`` on a duplicate identity.
    ``update`` writes only the fields set on ``changes`` in one atomic
    statement and returns ``False`` when no row qualified: the account is
    missing, or ``changes.activate`` was requested on an active account.
    Both writes raise ``DependencyError`` when the backend fails.
    """

    def find_one(self, account_filter: AccountFilter, *, ctx: RequestContext | None = None) -> Account | None:
        ...

    def save(self, account: Account, *, ctx: RequestContext | None = None) -> Account:
        ...

    def update(self, account_id: str, changes: AccountUpdate, *, ctx: RequestContext | None = None) -> bool:
        ...


def _require_filter(account_filter: AccountFilter) -> None:
    if account_filter.is_empty():
        raise ValidationError("filter", "at least one lookup field is required")


def _require_changes(account_id: str, changes: AccountUpdate) -> None:
    if not account_id:
        raise ValidationError("account_id", "cannot update an unsaved account")
    if changes.is_empty():
        raise ValidationError("changes", "at least one field to update is required")


class PostgresIdentityStore:
    """Postgres-backed account persistence built on a psycopg connection pool."""

    def __init__(self, pool: ConnectionPool) -> None:
        """Store the connection pool used for all database interactions."""
        self._pool = pool

    def find_one(self, account_filter: AccountFilter, *, ctx: RequestContext | None = None) -> Account | None:
        """Return the first account matching every set field of ``account_filter``."""
        _require_filter(account_filter)
        clauses: list[str] = []
        params: list[Any] = []
        if account_filter.identity_ciphertext is not None:
            clauses.append("identity_ciphertext = %s")
            params.append(account_filter.identity_ciphertext)
        if account_filter.account_id is not None:
            clauses.append("account_id = %s")
            params.append(account_filter.account_id)
        if account_filter.verification_code is not None:
            clauses.append("verification_code = %s")
            params.append(account_filter.verification_code)

        query = f"SELECT {_COLUMNS} FROM accounts WHERE {' AND '.join(clauses)} LIMIT 1"
        with self._cursor(ctx, "find_one") as (_, cur):
            cur.execute(query, params)
            row = cur.fetchone()
        if not row:
            return None
        return self._map_record(row)

    def save(self, account: Account, *, ctx: RequestContext | None = None) -> Account:
        """Insert a new account and return it with its assigned identifier."""
        account_id = str(uuid.uuid4())
        with self._cursor(ctx, "save") as (conn, cur):
            cur.execute(
                f"""
                INSERT INTO accounts ({_COLUMNS})
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                RETURNING {_COLUMNS}
                """,
                (
                    account_id,
                    account.identity_ciphertext,
                    account.password_hash,
                    account.verification_code,
                    account.verified,
                    account.active,
                    account.created_at,
                    account.last_login,
                ),
            )
            row = cur.fetchone()
            conn.commit()
        return self._map_record(row)

    def update(self, account_id: str, changes: AccountUpdate, *, ctx: RequestContext | None = None) -> bool:
        """Write the fields set on ``changes``; the state flags can only be raised."""
        _require_changes(account_id, changes)
        assignments: list[str] = []
        params: list[Any] = []
        if changes.password_hash is not None:
            if changes.expected_password_hash is not None:
                assignments.append("password_hash = CASE WHEN password_hash = %s THEN %s ELSE password_hash END")
                params.extend([changes.expected_password_hash, changes.password_hash])
            else:
                assignments.append("password_hash = %s")
                params.append(changes.password_hash)
        if changes.activate:
            assignments.extend(["verified = TRUE", "active = TRUE"])
        if changes.last_login is not None:
            assignments.append("last_login = %s")
            params.append(changes.last_login)

        query = f"UPDATE accounts SET {', '.join(assignments)} WHERE account_id = %s"
        params.append(account_id)
        if changes.activate:
            query += " AND NOT active"
        with self._cursor(ctx, "update") as (conn, cur):
            cur.execute(query, params)
            updated = cur.rowcount
            conn.commit()
        return updated > 0

    @contextmanager
    def _cursor(self, ctx: RequestContext | None, operation: str) -> Iterator[tuple[psycopg.Connection, psycopg.Cursor]]:
        """Yield a cursor bounded by the request deadline, translating driver errors."""
        remaining = ctx.remaining() if ctx is not None else None
        try:
            with self._pool.connection(timeout=remaining) as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    if remaining is not None:
                        timeout_ms = max(1, int(remaining * 1000))
                        cur.execute("SELECT set_config('statement_timeout', %s, true)", (str(timeout_ms),))
                    yield conn, cur
        except pg_errors.UniqueViolation as exc:
            raise ConflictError(str(exc.diag.constraint_name or "accounts unique constraint")) from exc
        except psycopg.Error as exc:
            logger.error("identity store %s failed: %s", operation, exc)
            raise DependencyError("store", f"{operation} failed") from exc

    def _map_record(self, row: tuple) -> Account:
        """Convert a raw database tuple into the domain ``Account`` dataclass."""
        return Account(
            account_id=str(row[0]),
            identity_ciphertext=row[1],
            password_hash=row[2],
            verification_code=row[3],
            verified=row[4],
            active=row[5],
            created_at=row[6],
            last_login=row[7],
        )


class InMemoryIdentityStore:
    """Thread-safe store for development and tests with the same uniqueness rules."""

    def __init__(self) -> None:
        self._accounts: dict[str, Account] = {}
        self._lock = threading.Lock()

    def find_one(self, account_filter: AccountFilter, *, ctx: RequestContext | None = None) -> Account | None:
        _require_filter(account_filter)
        with self._lock:
            for account in self._accounts.values():
                if account_filter.matches(account):
                    return replace(account)
        return None

    def save(self, account: Account, *, ctx: RequestContext | None = None) -> Account:
        with self._lock:
            if any(a.identity_ciphertext == account.identity_ciphertext for a in self._accounts.values()):
                raise ConflictError("accounts_identity_ciphertext_key")
            stored = replace(account, account_id=str(uuid.uuid4()))
            self._accounts[stored.account_id] = stored
            return replace(stored)

    def update(self, account_id: str, changes: AccountUpdate, *, ctx: RequestContext | None = None) -> bool:
        _require_changes(account_id, changes)
        with self._lock:
            current = self._accounts.get(account_id)
            if current is None or (changes.activate and current.active):
                return False
            password_hash = current.password_hash
            if changes.password_hash is not None and changes.expected_password_hash in (None, password_hash):
                password_hash = changes.password_hash
            self._accounts[account_id] = replace(
                current,
                password_hash=password_hash,
                verified=current.verified or changes.activate,
                active=current.active or changes.activate,
                last_login=changes.last_login or current.last_login,
            )
            return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._accounts)


def build_identity_store(settings: Settings, pool: ConnectionPool | None = None) -> IdentityStore:
    """Bind the configured store implementation at process composition time."""
    if settings.store_backend == "memory":
        logger.info("identity store using in-memory backend")
        return InMemoryIdentityStore()
    if settings.store_backend == "postgres":
        if pool is None:
            raise ValueError("postgres identity store requires a connection pool")
        logger.info("identity store using postgres backend")
        return PostgresIdentityStore(pool)
    raise ValueError(f"unsupported identity store backend: {settings.store_backend}")
