"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Credentials arrive as "Authorization: Bearer <token>" only; the mobile
client keeps its token itself, so there is no cookie path.

try_get_current_identity() is the soft variant (returns None on failure).
get_current_identity() wraps it and raises Unauthenticated (401).
get_current_account() additionally loads the Account row for handlers that
need profile fields or the password hash.
get_effective_account_id() resolves whose data a list-mine read returns.

Sub-user claims:
  By default the parent_account_id/role captured in the token at login are
  used as-is until the token expires. With REVALIDATE_SUB_USER_LINKS=true the
  claims are replaced by the live sub_user_links row on every request, so an
  unlink or role change takes effect immediately. Mutation checks in
  auth/permissions.py read the live link either way.

Layer rule: no imports from api/ or pets/.
  auth/dependencies.py may import from fastapi (for Depends/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from dataclasses import replace

from fastapi import Depends, Request

from auth.identity import Identity, identity_from_claims, resolve_effective_account_id
from auth.models import Account
from auth.tokens import decode_access_token
from core.config import get_settings
from core.errors import Unauthenticated


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def try_get_current_identity(request: Request) -> Identity | None:
    """Resolve the request's bearer token to an Identity.

    Returns None when the header is missing, the token fails verification,
    or the account it names no longer exists. Never raises.
    """
    token = _bearer_token(request)
    if token is None:
        return None
    payload = decode_access_token(token)
    if payload is None:
        return None
    identity = identity_from_claims(payload)
    if identity is None:
        return None

    account_store = request.app.state.account_store
    if account_store.get_by_id(identity.account_id) is None:
        return None

    if get_settings().revalidate_sub_user_links:
        link = account_store.get_parent_link(identity.account_id)
        identity = replace(
            identity,
            parent_account_id=link.parent_account_id if link else None,
            role=link.role if link else None,
        )
    return identity


def get_current_identity(request: Request) -> Identity:
    """Require authentication. Raises Unauthenticated (401) otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(identity: Identity = Depends(get_current_identity)): ...
    """
    identity = try_get_current_identity(request)
    if identity is None:
        raise Unauthenticated("Invalid or missing access token.")
    return identity


def get_current_account(request: Request, identity: Identity = Depends(get_current_identity)) -> Account:
    """Require authentication and return the caller's Account row."""
    account = request.app.state.account_store.get_by_id(identity.account_id)
    if account is None:
        raise Unauthenticated("Invalid or missing access token.")
    return account


def get_effective_account_id(identity: Identity = Depends(get_current_identity)) -> str:
    """Return the parent's id for a sub-user, the caller's own id otherwise."""
    return resolve_effective_account_id(identity)
