"""Account lifecycle orchestrating encryption, persistence, hashing, tokens and events."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone

from email_validator import EmailNotValidError, validate_email

from .account import Account, AccountState
from .contracts import (
    AccountFilter,
    AccountProfile,
    AccountUpdate,
    SignInInput,
    SignInResult,
    SignUpInput,
)
from .events import AccountCreated
from ..context import RequestContext, ensure_context
from ..errors import (
    AlreadyActivatedError,
    AlreadyExistsError,
    AuthenticationError,
    ConflictError,
    NotFoundError,
    PasswordHashError,
    ValidationError,
)
from ..messaging import MessageBus
from ..repository import IdentityStore
from ..security.codes import MAX_LENGTH, generate_code
from ..security.encryption import EncryptionCodec
from ..security.passwords import CredentialHasher
from ..security.tokens import TokenIssuer


def normalize_email(email: str) -> str:
    """Validate email syntax and return the canonical form used for lookups."""
    try:
        validated = validate_email(email.strip(), check_deliverability=False)
    except EmailNotValidError as exc:
        raise ValidationError("email", str(exc)) from exc
    return validated.normalized.lower()


def _require_password(password: str, field: str = "password") -> None:
    if not password:
        raise ValidationError(field, "must not be empty")


class AccountLifecycle:
    """Sign-up, confirmation, sign-in and password workflows.

    The lifecycle holds no locks. Duplicate identities racing through
    :meth:`sign_up` are settled by the store's uniqueness constraint, and
    racing confirmations by its conditional activation.
    """

    def __init__(
        self,
        store: IdentityStore,
        bus: MessageBus,
        *,
        hasher: CredentialHasher,
        tokens: TokenIssuer,
        codec: EncryptionCodec,
        events_topic: str,
        code_length: int = MAX_LENGTH,
    ) -> None:
        """Store dependencies used to orchestrate the account workflows."""
        self._store = store
        self._bus = bus
        self._hasher = hasher
        self._tokens = tokens
        self._codec = codec
        self._events_topic = events_topic
        self._code_length = code_length

    def sign_up(self, payload: SignUpInput, ctx: RequestContext | None = None) -> Account:
        """Create a pending account and announce it for verification-code delivery.

        A publish failure surfaces as ``DeliveryError`` after the account has
        been committed; the account is not rolled back.
        """
        ctx = ensure_context(ctx)
        email = normalize_email(payload.email)
        _require_password(payload.password)
        identity = self._codec.encrypt(email)

        ctx.check("identity lookup")
        if self._store.find_one(AccountFilter(identity_ciphertext=identity), ctx=ctx) is not None:
            raise AlreadyExistsError()
        if payload.password != payload.password_confirmation:
            raise ValidationError("password_confirmation", "passwords do not match")

        pending = Account(
            identity_ciphertext=identity,
            password_hash=self._hasher.hash_password(payload.password),
            verification_code=generate_code(self._code_length),
            created_at=datetime.now(timezone.utc),
        )

        ctx.check("account save")
        try:
            account = self._store.save(pending, ctx=ctx)
        except ConflictError as exc:
            raise AlreadyExistsError() from exc
        ctx.logger.info("account %s created", account.account_id)

        self._announce(account, ctx)
        return account

    def sign_in(self, payload: SignInInput, ctx: RequestContext | None = None) -> SignInResult:
        """Authenticate an active account and issue a token pair.

        Unknown identities, inactive accounts and wrong passwords all raise the
        same ``AuthenticationError``.
        """
        ctx = ensure_context(ctx)
        try:
            email = normalize_email(payload.email)
        except ValidationError as exc:
            raise AuthenticationError() from exc

        ctx.check("identity lookup")
        account = self._store.find_one(
            AccountFilter(identity_ciphertext=self._codec.encrypt(email)), ctx=ctx
        )
        if account is None:
            self._hasher.verify_dummy(payload.password)
            ctx.logger.info("sign-in rejected")
            raise AuthenticationError()

        try:
            matched = self._hasher.verify_password(payload.password, account.password_hash)
        except PasswordHashError:
            ctx.logger.error("account %s has an undecodable password hash", account.account_id)
            matched = False
        if not matched or not account.is_active:
            ctx.logger.info("sign-in rejected")
            raise AuthenticationError()

        tokens = self._tokens.issue_token_pair(account.account_id)
        changes = AccountUpdate(last_login=datetime.now(timezone.utc))
        if self._hasher.needs_rehash(account.password_hash):
            # only replaces the hash that was just verified
            changes = replace(
                changes,
                password_hash=self._hasher.hash_password(payload.password),
                expected_password_hash=account.password_hash,
            )
        ctx.check("last login update")
        if not self._store.update(account.account_id, changes, ctx=ctx):
            ctx.logger.warning("account %s vanished during sign-in", account.account_id)
            raise AuthenticationError()
        if changes.password_hash is not None:
            ctx.logger.info("account %s password rehashed with current parameters", account.account_id)
        account = replace(account, last_login=changes.last_login)
        ctx.logger.info("account %s signed in", account.account_id)
        return SignInResult(account=account, tokens=tokens)

    def confirm(self, code: str, ctx: RequestContext | None = None) -> Account:
        """Move the account holding ``code`` from pending to active, exactly once."""
        ctx = ensure_context(ctx)
        if not code:
            raise NotFoundError("verification code not found")

        ctx.check("verification lookup")
        account = self._store.find_one(AccountFilter(verification_code=code), ctx=ctx)
        if account is None:
            raise NotFoundError("verification code not found")
        if account.verified or account.active:
            raise AlreadyActivatedError()

        ctx.check("activation update")
        if not self._store.update(account.account_id, AccountUpdate(activate=True), ctx=ctx):
            raise AlreadyActivatedError()
        activated = replace(account, verified=True, active=True)
        ctx.logger.info("account %s activated", activated.account_id)
        return activated

    def change_password(self, account_id: str, new_password: str, ctx: RequestContext | None = None) -> None:
        """Replace the password hash of an already authenticated account.

        Tokens issued before the change stay valid until they expire.
        """
        ctx = ensure_context(ctx)
        _require_password(new_password)

        ctx.check("account lookup")
        account = self._store.find_one(AccountFilter(account_id=account_id), ctx=ctx)
        if account is None:
            raise NotFoundError()

        changes = AccountUpdate(password_hash=self._hasher.hash_password(new_password))
        ctx.check("password update")
        if not self._store.update(account_id, changes, ctx=ctx):
            raise NotFoundError()
        ctx.logger.info("account %s changed password", account_id)

    def get_by_token(self, token: str, ctx: RequestContext | None = None) -> AccountProfile:
        """Resolve the account named by an access or refresh token."""
        ctx = ensure_context(ctx)
        account_id = self._tokens.resolve_subject(token)

        ctx.check("account lookup")
        account = self._store.find_one(AccountFilter(account_id=account_id), ctx=ctx)
        if account is None:
            raise NotFoundError()
        return AccountProfile(
            account_id=account.account_id,
            email=self._codec.decrypt(account.identity_ciphertext),
            state=account.state,
            verified=account.verified,
            active=account.active,
            created_at=account.created_at,
            last_login=account.last_login,
        )

    def resend_verification(self, email: str, ctx: RequestContext | None = None) -> None:
        """Republish the creation event of a pending account with its existing code."""
        ctx = ensure_context(ctx)
        identity = self._codec.encrypt(normalize_email(email))

        ctx.check("identity lookup")
        account = self._store.find_one(AccountFilter(identity_ciphertext=identity), ctx=ctx)
        if account is None:
            raise NotFoundError()
        if account.state is AccountState.active:
            raise AlreadyActivatedError()
        self._announce(account, ctx)

    def _announce(self, account: Account, ctx: RequestContext) -> None:
        event = AccountCreated.from_account(account)
        self._bus.publish(self._events_topic, event.model_dump_json(), ctx=ctx)
        ctx.logger.info("account %s announced on %s", account.account_id, self._events_topic)
