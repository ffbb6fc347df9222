"""HTTP route definitions for the identity service."""

from __future__ import annotations

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Header, HTTPException, Request, Response, status
from pydantic import BaseModel, EmailStr

from .. import metrics
from ..config import get_settings
from ..context import RequestContext
from ..domain.account import Account, AccountState
from ..domain.contracts import AccountProfile, SignInInput, SignUpInput
from ..domain.service import AccountLifecycle
from ..errors import (
    AlreadyActivatedError,
    AlreadyExistsError,
    AuthenticationError,
    DeliveryError,
    DependencyError,
    IdentityError,
    NotFoundError,
    OperationCancelledError,
    PasswordHashError,
    TokenError,
    ValidationError,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1")


class SignUpRequest(BaseModel):
    """Payload accepted when registering a new identity."""

    email: EmailStr
    password: str
    password_confirmation: str


class SignInRequest(BaseModel):
    email: str
    password: str


class ResendVerificationRequest(BaseModel):
    email: EmailStr


class ChangePasswordRequest(BaseModel):
    password: str


class AccountResponse(BaseModel):
    """Minimal account view; never exposes the hash or verification code."""

    account_id: str
    state: AccountState
    created_at: datetime

    @classmethod
    def from_domain(cls, account: Account) -> "AccountResponse":
        """Build a response model from the domain aggregate."""
        return cls(account_id=account.account_id, state=account.state, created_at=account.created_at)


class ProfileResponse(BaseModel):
    account_id: str
    email: str
    state: AccountState
    verified: bool
    active: bool
    created_at: datetime
    last_login: datetime | None = None

    @classmethod
    def from_domain(cls, profile: AccountProfile) -> "ProfileResponse":
        return cls(
            account_id=profile.account_id,
            email=profile.email,
            state=profile.state,
            verified=profile.verified,
            active=profile.active,
            created_at=profile.created_at,
            last_login=profile.last_login,
        )


class TokenResponse(BaseModel):
    """Token issuance response containing the bearer tokens and their lifetimes."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    refresh_token: str
    refresh_expires_in: int


def get_service(request: Request) -> AccountLifecycle:
    """Resolve the `AccountLifecycle` stored on the FastAPI application state."""
    service: AccountLifecycle = request.app.state.account_service
    return service


def get_context(request_id: str | None = Header(default=None, alias="X-Request-ID")) -> RequestContext:
    """Bound every request by the configured timeout."""
    return RequestContext.with_timeout(get_settings().request_timeout_seconds, request_id)


def bearer_token(authorization: str | None = Header(default=None)) -> str:
    if not authorization:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="missing bearer token")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="missing bearer token")
    return token.strip()


@router.post("/auth/signup", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
def sign_up(
    payload: SignUpRequest,
    service: AccountLifecycle = Depends(get_service),
    ctx: RequestContext = Depends(get_context),
) -> AccountResponse:
    """Register a pending account; the verification code is delivered out of band."""
    try:
        account = service.sign_up(
            SignUpInput(
                email=payload.email,
                password=payload.password,
                password_confirmation=payload.password_confirmation,
            ),
            ctx,
        )
    except IdentityError as exc:
        metrics.record("signup", type(exc).__name__)
        raise _http_error(exc) from exc
    metrics.record("signup", "ok")
    return AccountResponse.from_domain(account)


@router.post("/auth/signin", response_model=TokenResponse)
def sign_in(
    payload: SignInRequest,
    service: AccountLifecycle = Depends(get_service),
    ctx: RequestContext = Depends(get_context),
) -> TokenResponse:
    try:
        result = service.sign_in(SignInInput(email=payload.email, password=payload.password), ctx)
    except IdentityError as exc:
        metrics.record("signin", type(exc).__name__)
        raise _http_error(exc) from exc
    metrics.record("signin", "ok")
    return TokenResponse(
        access_token=result.tokens.access_token,
        expires_in=result.tokens.access_expires_in,
        refresh_token=result.tokens.refresh_token,
        refresh_expires_in=result.tokens.refresh_expires_in,
    )


@router.get("/auth/verify/{code}", response_model=AccountResponse)
def verify(
    code: str,
    service: AccountLifecycle = Depends(get_service),
    ctx: RequestContext = Depends(get_context),
) -> AccountResponse:
    """Confirm the account holding the verification code."""
    try:
        account = service.confirm(code, ctx)
    except IdentityError as exc:
        metrics.record("confirm", type(exc).__name__)
        raise _http_error(exc) from exc
    metrics.record("confirm", "ok")
    return AccountResponse.from_domain(account)


@router.post("/auth/verification/resend", status_code=status.HTTP_202_ACCEPTED)
def resend_verification(
    payload: ResendVerificationRequest,
    service: AccountLifecycle = Depends(get_service),
    ctx: RequestContext = Depends(get_context),
) -> Response:
    try:
        service.resend_verification(payload.email, ctx)
    except IdentityError as exc:
        metrics.record("resend_verification", type(exc).__name__)
        raise _http_error(exc) from exc
    metrics.record("resend_verification", "ok")
    return Response(status_code=status.HTTP_202_ACCEPTED)


@router.get("/users/me", response_model=ProfileResponse)
def me(
    token: str = Depends(bearer_token),
    service: AccountLifecycle = Depends(get_service),
    ctx: RequestContext = Depends(get_context),
) -> ProfileResponse:
    try:
        profile = service.get_by_token(token, ctx)
    except IdentityError as exc:
        metrics.record("get_profile", type(exc).__name__)
        raise _http_error(exc) from exc
    metrics.record("get_profile", "ok")
    return ProfileResponse.from_domain(profile)


@router.post("/users/change-password", status_code=status.HTTP_204_NO_CONTENT)
def change_password(
    payload: ChangePasswordRequest,
    token: str = Depends(bearer_token),
    service: AccountLifecycle = Depends(get_service),
    ctx: RequestContext = Depends(get_context),
) -> Response:
    """Replace the caller's password; the bearer token identifies the account."""
    try:
        profile = service.get_by_token(token, ctx)
        service.change_password(profile.account_id, payload.password, ctx)
    except IdentityError as exc:
        metrics.record("change_password", type(exc).__name__)
        raise _http_error(exc) from exc
    metrics.record("change_password", "ok")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


_STATUS_BY_ERROR: list[tuple[type[IdentityError], int]] = [
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (PasswordHashError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (AlreadyExistsError, status.HTTP_409_CONFLICT),
    (AlreadyActivatedError, status.HTTP_409_CONFLICT),
    (AuthenticationError, status.HTTP_401_UNAUTHORIZED),
    (TokenError, status.HTTP_401_UNAUTHORIZED),
    (OperationCancelledError, status.HTTP_504_GATEWAY_TIMEOUT),
    (DeliveryError, status.HTTP_502_BAD_GATEWAY),
    (DependencyError, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def _http_error(exc: IdentityError) -> HTTPException:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            if status_code >= 500:
                logger.warning("request failed: %s", exc)
            return HTTPException(status_code=status_code, detail=exc.reason)
    logger.error("unmapped identity error: %r", exc)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="internal error")
