"""FastAPI application exposing account registration, recovery and role endpoints."""

from datetime import datetime
from typing import List

import logging
from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from prometheus_client import Counter

from pydantic import BaseModel, Field

from sqlalchemy.orm import Session

from .accounts import AccountManager
from .auth import (
    create_access_token,
    create_refresh_token,
    get_current_user,
    get_db,
    require_admin,
    verify_user,
)
from .config import settings
from .database import init_db
from .devices import DeviceTokenService
from .errors import AccountError, AccountNotFound, InvalidToken
from .models.user import User
from .notifications import Notifier


limiter = Limiter(key_func=get_remote_address)
app = FastAPI(title=settings.api_title)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
init_db()

logger = logging.getLogger(__name__)

SENSITIVE_RATE_LIMIT = "5/minute"
SENSITIVE_HOURLY_RATE_LIMIT = "100/hour"

# Prometheus counter to track API requests by method, endpoint and status code
REQUEST_COUNTER = Counter(
    "api_requests_total",
    "Total API requests",
    ["method", "endpoint", "status"],
)

notifier = Notifier()


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log incoming requests and their outcomes while updating metrics."""
    logger.info("request %s %s", request.method, request.url.path)
    try:
        response = await call_next(request)
        REQUEST_COUNTER.labels(
            method=request.method,
            endpoint=request.url.path,
            status=str(response.status_code),
        ).inc()
        logger.info(
            "response %s %s status %s",
            request.method,
            request.url.path,
            response.status_code,
        )
        return response
    except Exception:
        REQUEST_COUNTER.labels(
            method=request.method,
            endpoint=request.url.path,
            status="500",
        ).inc()
        logger.exception(
            "error handling %s %s", request.method, request.url.path
        )
        raise


@app.exception_handler(AccountError)
async def account_error_handler(request: Request, exc: AccountError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "kind": exc.kind},
    )


def get_notifier() -> Notifier:
    return notifier


def get_account_manager(
    db: Session = Depends(get_db), channel: Notifier = Depends(get_notifier)
) -> AccountManager:
    return AccountManager(db, notifier=channel)


class UserCreate(BaseModel):
    """Request body for registering a new account."""

    username: str | None = None
    phone_number: str
    password: str
    email: str | None = None
    name: str | None = None


class UserLogin(BaseModel):
    """Request body for user login; ``username`` may also be a phone number."""

    username: str
    password: str


class TokenResponse(BaseModel):
    """JWT access and refresh tokens."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class AccountResponse(BaseModel):
    """Serialized account without credentials."""

    id: int
    username: str
    phone_number: str
    email: str | None = None
    name: str | None = None
    email_verified: bool
    roles: List[str]
    created_at: datetime


class AccountListResponse(BaseModel):
    """Paginated list of accounts."""

    total: int
    items: List[AccountResponse]


class ResetRequest(BaseModel):
    username: str


class PasswordReset(BaseModel):
    username: str
    token: str
    password: str


class VerificationRequest(BaseModel):
    email: str
    path: str | None = Field(None, description="Confirmation path appended to the API base URL")


class RoleChange(BaseModel):
    role: str


class RolesUpdate(BaseModel):
    roles: List[str] = Field(default_factory=list, description="Role display names")


class PasswordSet(BaseModel):
    password: str


class PasswordChange(BaseModel):
    current_password: str
    new_password: str


class DeviceTokenRequest(BaseModel):
    token: str


class MessageResponse(BaseModel):
    msg: str


def serialize_account(user: User) -> AccountResponse:
    return AccountResponse(
        id=user.id,
        username=user.username,
        phone_number=user.phone_number,
        email=user.email,
        name=user.name,
        email_verified=user.email_verified,
        roles=sorted(user.role_keys),
        created_at=user.created_at,
    )


def _tokens_for(user: User) -> TokenResponse:
    return TokenResponse(
        access_token=create_access_token(user),
        refresh_token=create_refresh_token(user),
    )


@app.post("/register", response_model=TokenResponse)
@limiter.limit(SENSITIVE_RATE_LIMIT)
def register(
    request: Request,
    payload: UserCreate,
    manager: AccountManager = Depends(get_account_manager),
):
    user = manager.register(
        username=payload.username,
        phone_number=payload.phone_number,
        password=payload.password,
        email=payload.email,
        name=payload.name,
        client_ip=get_remote_address(request),
    )
    return _tokens_for(user)


@app.post("/login", response_model=TokenResponse)
@limiter.limit(SENSITIVE_RATE_LIMIT)
def login(
    request: Request,
    payload: UserLogin,
    manager: AccountManager = Depends(get_account_manager),
):
    try:
        user = manager.authenticate(payload.username, payload.password)
    except AccountNotFound:
        user = None
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    return _tokens_for(user)


@app.post("/password/reset-request", response_model=MessageResponse)
@limiter.limit(SENSITIVE_RATE_LIMIT)
@limiter.limit(SENSITIVE_HOURLY_RATE_LIMIT)
def request_password_reset(
    request: Request,
    payload: ResetRequest,
    manager: AccountManager = Depends(get_account_manager),
):
    """Send a one-time password to the account's phone."""
    manager.handle_password_reset_request(payload.username)
    return MessageResponse(msg="OTP sent")


@app.post("/password/reset", response_model=AccountResponse)
@limiter.limit(SENSITIVE_RATE_LIMIT)
def reset_password(
    request: Request,
    payload: PasswordReset,
    manager: AccountManager = Depends(get_account_manager),
):
    return serialize_account(
        manager.reset_password(payload.username, payload.token, payload.password)
    )


@app.post("/verification/request", response_model=MessageResponse)
@limiter.limit(SENSITIVE_RATE_LIMIT)
def request_verification(
    request: Request,
    payload: VerificationRequest,
    manager: AccountManager = Depends(get_account_manager),
):
    manager.request_account_validation_by_email(payload.email, payload.path)
    return MessageResponse(msg="Verification email sent")


@app.get("/register/verify", response_model=AccountResponse)
@limiter.limit(SENSITIVE_RATE_LIMIT)
@limiter.limit(SENSITIVE_HOURLY_RATE_LIMIT)
def verify_account(
    request: Request,
    token: str,
    manager: AccountManager = Depends(get_account_manager),
):
    return serialize_account(manager.verify_account(token))


@app.get("/tokens/valid")
@limiter.limit(SENSITIVE_RATE_LIMIT)
@limiter.limit(SENSITIVE_HOURLY_RATE_LIMIT)
def token_valid(
    request: Request,
    token: str | None = None,
    manager: AccountManager = Depends(get_account_manager),
):
    """Report whether ``token`` can still be used."""
    try:
        return {"valid": manager.is_token_valid(token)}
    except InvalidToken:
        return {"valid": False}


@app.delete("/tokens/{token_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_token(
    token_id: int,
    admin: User = Depends(require_admin),
    manager: AccountManager = Depends(get_account_manager),
):
    manager.delete_token(token_id)


@app.get("/users/me", response_model=AccountResponse)
def get_me(current_user: User = Depends(get_current_user)):
    return serialize_account(current_user)


@app.get("/users", response_model=AccountListResponse)
def list_users(
    page: int = 0,
    role: str | None = None,
    q: str | None = None,
    admin: User = Depends(require_admin),
    manager: AccountManager = Depends(get_account_manager),
):
    """Return a page of accounts, optionally filtered by role key or search text."""
    if q:
        records, total = manager.search(q, page)
    elif role:
        records, total = manager.find_by_role(role, page)
    else:
        records, total = manager.find_all(page)
    return AccountListResponse(total=total, items=[serialize_account(u) for u in records])


@app.get("/users/{user_id}", response_model=AccountResponse, dependencies=[Depends(verify_user)])
def get_user(user_id: int, manager: AccountManager = Depends(get_account_manager)):
    return serialize_account(manager.find_one(user_id))


@app.put("/users/{user_id}/role", response_model=AccountResponse)
def change_role(
    user_id: int,
    payload: RoleChange,
    admin: User = Depends(require_admin),
    manager: AccountManager = Depends(get_account_manager),
):
    return serialize_account(manager.change_role(user_id, payload.role))


@app.put("/users/{user_id}/roles", response_model=AccountResponse)
def set_roles(
    user_id: int,
    payload: RolesUpdate,
    admin: User = Depends(require_admin),
    manager: AccountManager = Depends(get_account_manager),
):
    return serialize_account(manager.set_roles(user_id, payload.roles))


@app.put("/users/{user_id}/password", response_model=AccountResponse)
def set_password(
    user_id: int,
    payload: PasswordSet,
    current_user: User = Depends(get_current_user),
    manager: AccountManager = Depends(get_account_manager),
):
    """Set an account's password; only administrators may call this."""
    return serialize_account(manager.set_password(current_user, user_id, payload.password))


@app.post(
    "/users/{user_id}/password/change",
    response_model=AccountResponse,
    dependencies=[Depends(verify_user)],
)
def change_password(
    user_id: int,
    payload: PasswordChange,
    manager: AccountManager = Depends(get_account_manager),
):
    return serialize_account(
        manager.change_password(user_id, payload.current_password, payload.new_password)
    )


@app.post("/devices/token", response_model=MessageResponse)
def save_device_token(
    payload: DeviceTokenRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    DeviceTokenService(db).save(current_user.id, payload.token)
    return MessageResponse(msg="Token saved")
