"""
auth/models.py -- Domain dataclasses for accounts and account delegation.

Pattern: Data class (pure data container, zero logic). Stores and routes do
the work.

Layer rule: no imports from api/ or pets/.
"""

from __future__ import annotations

from dataclasses import dataclass

from auth.roles import Role


@dataclass
class Account:
    """A registered identity.

    id is a UUID4 string assigned by the store on insert; it is opaque to
    clients. password_hash is a bcrypt hash and never leaves the server.
    """

    email: str
    username: str
    password_hash: str
    id: str | None = None
    name: str | None = None
    is_superadmin: bool = False
    created_at: str | None = None
    last_activity: str | None = None


@dataclass
class SubUserLink:
    """Account-scoped delegation: sub_user_id acts on parent_account_id's data.

    An account appears as sub_user_id in at most one link (primary key).
    Removing the link leaves both accounts in place.
    """

    sub_user_id: str
    parent_account_id: str
    role: Role
    created_at: str | None = None


@dataclass
class SubUser:
    """A linked sub-user as seen by the parent (account fields + link role)."""

    id: str
    email: str
    username: str
    role: Role
    name: str | None = None
    created_at: str | None = None
    last_activity: str | None = None
    linked_at: str | None = None


@dataclass
class ParentAccount:
    """The parent of a sub-user as seen by the sub-user."""

    id: str
    email: str
    username: str
    role: Role
    name: str | None = None
