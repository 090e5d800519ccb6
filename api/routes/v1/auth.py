"""
api/routes/v1/auth.py -- Account and sub-user REST endpoints.

Routes:
  POST   /api/v1/auth/register                      -- create account; returns token
  POST   /api/v1/auth/login                         -- username-or-email login; returns token
  POST   /api/v1/auth/logout                        -- stateless acknowledgement
  GET    /api/v1/auth/me                            -- current account + delegation claims
  PUT    /api/v1/auth/email                         -- change own email
  PUT    /api/v1/auth/password                      -- change own password (current required)
  DELETE /api/v1/auth/accounts/{account_id}         -- delete own account
  POST   /api/v1/auth/sub-users                     -- register a new sub-user under the caller
  POST   /api/v1/auth/sub-users/link                -- link an existing account as sub-user
  GET    /api/v1/auth/sub-users                     -- list the caller's sub-users
  GET    /api/v1/auth/parent                        -- the caller's parent, if any
  PUT    /api/v1/auth/sub-users/{sub_user_id}/role  -- change a sub-user's role (parent only)
  DELETE /api/v1/auth/sub-users/{sub_user_id}       -- unlink (sub-user, parent or super-admin)

Security:
  Register and login are rate-limited per IP.
  authenticate_account() equalizes timing for unknown accounts; use it, never inline.
  Cache-Control: no-store on responses that carry a token.
  IDOR guard: role changes pass the caller's id to the store as parent_account_id.
  Delegation is one level deep: a sub-user cannot have sub-users, and an
  account with sub-users cannot become one.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from api.limiter import limiter
from api.models import (
    AccountResponse,
    ApiResponse,
    EmailUpdate,
    LoginData,
    LoginRequest,
    MeResponse,
    ParentResponse,
    PasswordUpdate,
    RegisterRequest,
    RoleUpdate,
    SubUserLinkRequest,
    SubUserRegisterRequest,
    SubUserResponse,
)
from auth.dependencies import get_current_account, get_current_identity
from auth.identity import Identity, resolve_effective_account_id
from auth.models import Account, SubUserLink
from auth.permissions import PetPermissions
from auth.store import AccountStore
from auth.tokens import authenticate_account, create_access_token, hash_password, verify_password
from core.config import get_settings
from core.errors import Conflict, Forbidden, InvalidInput, NotFound, Unauthenticated

logger = logging.getLogger("petkeeper.auth")
_settings = get_settings()

# Auth policy:
# - POST   /auth/register, /auth/login:  public, rate-limited
# - POST   /auth/logout:                 public -- tokens are stateless, nothing to revoke
# - everything else:                     requires a valid bearer token
router = APIRouter()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _me_response(account: Account, link: SubUserLink | None) -> MeResponse:
    identity = Identity(
        account_id=account.id,
        username=account.username,
        parent_account_id=link.parent_account_id if link else None,
        role=link.role if link else None,
    )
    return MeResponse(
        id=account.id,
        email=account.email,
        username=account.username,
        name=account.name,
        created_at=account.created_at,
        last_activity=account.last_activity,
        parent_account_id=identity.parent_account_id,
        role=identity.role,
        effective_account_id=resolve_effective_account_id(identity),
    )


def _token_response(account: Account, link: SubUserLink | None, message: str, status_code: int) -> JSONResponse:
    """Issue a token that captures the account's current sub-user link."""
    token = create_access_token(
        account.id,
        account.username,
        parent_account_id=link.parent_account_id if link else None,
        role=link.role if link else None,
    )
    body = ApiResponse(
        message=message,
        data=LoginData(
            access_token=token,
            expires_in=_settings.token_expire_seconds,
            user=_me_response(account, link),
        ).model_dump(mode="json"),
    )
    resp = JSONResponse(status_code=status_code, content=body.model_dump(mode="json", exclude_none=True))
    resp.headers["Cache-Control"] = "no-store"
    return resp


def _ensure_identifiers_free(store: AccountStore, email: str, username: str) -> None:
    if store.get_by_email(email) is not None:
        raise Conflict("Email is already registered.")
    if store.get_by_username(username) is not None:
        raise Conflict("Username is already taken.")


def _account_from_body(body: RegisterRequest) -> Account:
    return Account(
        email=body.email,
        username=body.username,
        name=body.name,
        password_hash=hash_password(body.password),
    )


def _require_not_sub_user(store: AccountStore, account_id: str) -> None:
    if store.get_parent_link(account_id) is not None:
        raise Forbidden("Sub-users cannot manage sub-users.")


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(_settings.login_rate_limit)
@router.post("/auth/register", status_code=201)
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create an account and log it in."""
    store: AccountStore = request.app.state.account_store
    _ensure_identifiers_free(store, body.email, body.username)
    try:
        account_id = store.create_account(_account_from_body(body))
    except IntegrityError as exc:
        raise Conflict("Email or username is already registered.") from exc
    account = store.get_by_id(account_id)
    logger.info("Account registered: %s", body.username)
    return _token_response(account, None, "User registered successfully", 201)


@limiter.limit(_settings.login_rate_limit)
@router.post("/auth/login")
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with username-or-email and password.

    Uses authenticate_account() which includes timing equalization.
    Wrong identifier and wrong password produce the same response.
    """
    store: AccountStore = request.app.state.account_store
    account = authenticate_account(store, body.username, body.password)
    if account is None:
        logger.warning("Failed login for %r from %s", body.username, request.client.host if request.client else "-")
        raise Unauthenticated("Invalid username or password.")
    store.update_last_activity(account.id)
    account = store.get_by_id(account.id)
    link = store.get_parent_link(account.id)
    return _token_response(account, link, "Login successful", 200)


@router.post("/auth/logout", response_model=ApiResponse)
def logout() -> ApiResponse:
    """Tokens are stateless; the client discards its copy."""
    return ApiResponse(message="Logged out successfully")


# ---------------------------------------------------------------------------
# Own account
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=ApiResponse, response_model_exclude_none=True)
def me(request: Request, account: Account = Depends(get_current_account)) -> ApiResponse:
    """Return the caller's profile and live delegation state."""
    link = request.app.state.account_store.get_parent_link(account.id)
    return ApiResponse(message="User retrieved successfully", data=_me_response(account, link))


@router.put("/auth/email", response_model=ApiResponse, response_model_exclude_none=True)
def update_email(
    request: Request,
    body: EmailUpdate,
    account: Account = Depends(get_current_account),
) -> ApiResponse:
    store: AccountStore = request.app.state.account_store
    existing = store.get_by_email(body.email)
    if existing is not None and existing.id != account.id:
        raise Conflict("Email is already registered.")
    try:
        store.update_email(account.id, body.email)
    except IntegrityError as exc:
        raise Conflict("Email is already registered.") from exc
    updated = store.get_by_id(account.id)
    return ApiResponse(message="Email updated successfully", data=AccountResponse.model_validate(updated))


@router.put("/auth/password", response_model=ApiResponse, response_model_exclude_none=True)
def update_password(
    request: Request,
    body: PasswordUpdate,
    account: Account = Depends(get_current_account),
) -> ApiResponse:
    if not verify_password(body.current_password, account.password_hash):
        raise InvalidInput("Current password is incorrect.")
    request.app.state.account_store.update_password(account.id, hash_password(body.new_password))
    logger.info("Password changed for %s", account.username)
    return ApiResponse(message="Password updated successfully")


@router.delete("/auth/accounts/{account_id}", response_model=ApiResponse, response_model_exclude_none=True)
def delete_account(
    request: Request,
    account_id: str,
    identity: Identity = Depends(get_current_identity),
) -> ApiResponse:
    """Delete the caller's own account and, by cascade, everything it owns.

    Refused with 409 while the account is the parent of any sub-user.
    """
    if account_id != identity.account_id:
        raise Forbidden("You can only delete your own account.")
    store: AccountStore = request.app.state.account_store
    if store.get_by_id(account_id) is None:
        raise NotFound("User not found.")
    if store.has_sub_users(account_id):
        raise Conflict("Remove all sub-users before deleting this account.")
    if not store.delete_account(account_id):
        # A sub-user was linked between the check and the delete.
        raise Conflict("Remove all sub-users before deleting this account.")
    logger.info("Account deleted: %s", identity.username or account_id)
    return ApiResponse(message="User deleted successfully")


# ---------------------------------------------------------------------------
# Sub-users
# ---------------------------------------------------------------------------


@limiter.limit(_settings.login_rate_limit)
@router.post("/auth/sub-users", status_code=201, response_model=ApiResponse, response_model_exclude_none=True)
def register_sub_user(
    request: Request,
    body: SubUserRegisterRequest,
    identity: Identity = Depends(get_current_identity),
) -> ApiResponse:
    """Create a new account linked under the caller, in one transaction."""
    store: AccountStore = request.app.state.account_store
    _require_not_sub_user(store, identity.account_id)
    _ensure_identifiers_free(store, body.email, body.username)
    try:
        sub_user_id = store.create_sub_user(_account_from_body(body), identity.account_id, body.role)
    except IntegrityError as exc:
        raise Conflict("Email or username is already registered.") from exc
    logger.info("Sub-user %s registered under %s as %s", body.username, identity.account_id, body.role.value)
    sub_user = next(s for s in store.list_sub_users(identity.account_id) if s.id == sub_user_id)
    return ApiResponse(message="Sub-user registered successfully", data=SubUserResponse.model_validate(sub_user))


@router.post("/auth/sub-users/link", status_code=201, response_model=ApiResponse, response_model_exclude_none=True)
def link_sub_user(
    request: Request,
    body: SubUserLinkRequest,
    identity: Identity = Depends(get_current_identity),
) -> ApiResponse:
    """Link an existing account (by username or email) as the caller's sub-user."""
    store: AccountStore = request.app.state.account_store
    _require_not_sub_user(store, identity.account_id)
    target = store.get_by_login(body.login)
    if target is None:
        raise NotFound("User not found.")
    if target.id == identity.account_id:
        raise InvalidInput("You cannot link your own account as a sub-user.")
    if store.get_parent_link(target.id) is not None:
        raise Conflict("This user is already a sub-user of another account.")
    if store.has_sub_users(target.id):
        raise Conflict("An account with its own sub-users cannot become a sub-user.")
    link = store.link_sub_user(target.id, identity.account_id, body.role)
    if link is None:
        raise Conflict("This user is already a sub-user of another account.")
    logger.info("Account %s linked under %s as %s", target.username, identity.account_id, body.role.value)
    sub_user = next(s for s in store.list_sub_users(identity.account_id) if s.id == target.id)
    return ApiResponse(message="Sub-user linked successfully", data=SubUserResponse.model_validate(sub_user))


@router.get("/auth/sub-users", response_model=ApiResponse, response_model_exclude_none=True)
def list_sub_users(request: Request, identity: Identity = Depends(get_current_identity)) -> ApiResponse:
    subs = request.app.state.account_store.list_sub_users(identity.account_id)
    return ApiResponse(
        message="Sub-users retrieved successfully",
        data=[SubUserResponse.model_validate(s) for s in subs],
        count=len(subs),
    )


@router.get("/auth/parent", response_model=ApiResponse, response_model_exclude_none=True)
def get_parent(request: Request, identity: Identity = Depends(get_current_identity)) -> ApiResponse:
    """Return the caller's parent account, or data=null if not a sub-user."""
    parent = request.app.state.account_store.get_parent_user(identity.account_id)
    if parent is None:
        return ApiResponse(message="User has no parent account")
    return ApiResponse(message="Parent user retrieved successfully", data=ParentResponse.model_validate(parent))


@router.put("/auth/sub-users/{sub_user_id}/role", response_model=ApiResponse, response_model_exclude_none=True)
def update_sub_user_role(
    request: Request,
    sub_user_id: str,
    body: RoleUpdate,
    identity: Identity = Depends(get_current_identity),
) -> ApiResponse:
    """Change a sub-user's role. The caller must be that sub-user's parent [IDOR guard]."""
    store: AccountStore = request.app.state.account_store
    if not store.update_sub_user_role(sub_user_id, identity.account_id, body.role):
        raise NotFound("Sub-user not found.")
    logger.info("Sub-user %s role set to %s by %s", sub_user_id, body.role.value, identity.account_id)
    return ApiResponse(message="Sub-user role updated successfully", data={"id": sub_user_id, "role": body.role.value})


@router.delete("/auth/sub-users/{sub_user_id}", response_model=ApiResponse, response_model_exclude_none=True)
def remove_sub_user(
    request: Request,
    sub_user_id: str,
    account: Account = Depends(get_current_account),
) -> ApiResponse:
    """Unlink a sub-user. The account itself is kept."""
    store: AccountStore = request.app.state.account_store
    permissions: PetPermissions = request.app.state.permissions
    link = store.get_parent_link(sub_user_id)
    if link is None:
        raise NotFound("Sub-user not found.")
    if not permissions.can_manage_sub_user_link(account, link):
        raise Forbidden("You cannot remove this sub-user.")
    store.remove_sub_user_link(sub_user_id)
    logger.info("Sub-user %s unlinked from %s by %s", sub_user_id, link.parent_account_id, account.username)
    return ApiResponse(message="Sub-user removed successfully")
