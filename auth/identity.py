"""
auth/identity.py -- The authenticated actor and the effective-account rule.

Identity is what a verified login token resolves to. It is built from token
claims only; auth/dependencies.py decides whether those claims are refreshed
from the live sub_user_links table before a request uses them.

resolve_effective_account_id() answers "whose data does a list-mine read
return": a sub-user reads the parent's account, everyone else reads their
own. Mutations never use it -- they go through auth/permissions.py with the
authenticated account_id.

Layer rule: no imports from api/ or pets/.
"""

from __future__ import annotations

from dataclasses import dataclass

from auth.roles import Role, parse_role


@dataclass(frozen=True)
class Identity:
    account_id: str
    username: str = ""
    parent_account_id: str | None = None
    role: Role | None = None

    @property
    def is_sub_user(self) -> bool:
        return self.parent_account_id is not None


def identity_from_claims(payload: dict) -> Identity | None:
    """Build an Identity from a decoded access-token payload.

    Returns None when the mandatory account_id claim is missing. A parent
    claim without a recognised role is dropped entirely -- half a delegation
    claim is treated as none.
    """
    account_id = payload.get("account_id")
    if not account_id:
        return None
    parent = payload.get("parent_account_id") or None
    role = parse_role(payload.get("role"))
    if parent is None or role is None:
        parent, role = None, None
    return Identity(
        account_id=str(account_id),
        username=payload.get("sub", ""),
        parent_account_id=parent,
        role=role,
    )


def resolve_effective_account_id(identity: Identity) -> str:
    """Return the account whose data list-mine reads should return."""
    return identity.parent_account_id or identity.account_id
