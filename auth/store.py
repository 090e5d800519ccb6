"""
auth/store.py -- SQLAlchemy Core persistence layer for accounts and sub-user links.

Pattern: Repository + Data Mapper. AccountStore is the repository;
_row_to_account / _row_to_link are the mappers. Route and dependency code
never touches SQL directly. The store enforces no authorization: callers
decide who may do what, the store only guarantees that what it writes is
consistent.

Security:
  All queries use bound parameters. No f-strings in SQL.

Invariants backed by the schema (core/schema.py):
  - sub_user_links.sub_user_id is the primary key, so a second link for the
    same sub-user raises IntegrityError instead of creating a second parent.
  - A CHECK constraint rejects an account linked to itself.
  - The parent-side foreign key is ON DELETE RESTRICT; delete_account() also
    guards with NOT EXISTS so the refusal is a clean False, not an error.

Layer rule: no imports from api/ or pets/.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import exists, select
from sqlalchemy.exc import IntegrityError

from auth.models import Account, ParentAccount, SubUser, SubUserLink
from auth.roles import Role
from core.database import Database
from core.schema import accounts, sub_user_links

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_account_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccountStore:
    """Repository for Account and SubUserLink entities.

    Usage:
        store = AccountStore(db)
        account_id = store.create_account(Account(email=..., username=..., password_hash=...))
        store.link_sub_user(other_id, account_id, Role.CARETAKER)
        store.get_parent_link(other_id)
    """

    def __init__(self, db: Database) -> None:
        self.engine = db.engine

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def create_account(self, account: Account) -> str:
        """Insert a new account and return its generated id.

        Raises sqlalchemy.exc.IntegrityError if the email or username is
        already registered. Callers pre-check for a friendly message and
        still catch IntegrityError for the concurrent-registration race.
        """
        account_id = _new_account_id()
        with self.engine.begin() as conn:
            conn.execute(accounts.insert().values(**_account_values(account, account_id)))
        return account_id

    def create_sub_user(self, account: Account, parent_account_id: str, role: Role) -> str:
        """Create an account and link it under parent_account_id in one transaction.

        Either both rows exist afterwards or neither does. Raises
        IntegrityError on a duplicate email/username or a missing parent.
        """
        account_id = _new_account_id()
        with self.engine.begin() as conn:
            conn.execute(accounts.insert().values(**_account_values(account, account_id)))
            conn.execute(
                sub_user_links.insert().values(
                    sub_user_id=account_id,
                    parent_account_id=parent_account_id,
                    role=role.value,
                    created_at=_now_iso(),
                )
            )
        return account_id

    def get_by_id(self, account_id: str) -> Account | None:
        with self.engine.connect() as conn:
            row = conn.execute(accounts.select().where(accounts.c.id == account_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_by_username(self, username: str) -> Account | None:
        """Look up an account by exact username (case-sensitive)."""
        with self.engine.connect() as conn:
            row = conn.execute(accounts.select().where(accounts.c.username == username)).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_by_email(self, email: str) -> Account | None:
        """Look up an account by email. Emails are stored lower-cased."""
        with self.engine.connect() as conn:
            row = conn.execute(accounts.select().where(accounts.c.email == email.strip().lower())).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_by_login(self, login: str) -> Account | None:
        """Resolve a username-or-email identifier the way login does."""
        if "@" in login:
            return self.get_by_email(login)
        return self.get_by_username(login)

    def update_email(self, account_id: str, email: str) -> bool:
        """Change an account's email. Raises IntegrityError if the email is taken."""
        with self.engine.begin() as conn:
            result = conn.execute(
                accounts.update().where(accounts.c.id == account_id).values(email=email.strip().lower())
            )
        return result.rowcount > 0

    def update_password(self, account_id: str, password_hash: str) -> bool:
        with self.engine.begin() as conn:
            result = conn.execute(
                accounts.update().where(accounts.c.id == account_id).values(password_hash=password_hash)
            )
        return result.rowcount > 0

    def update_last_activity(self, account_id: str) -> None:
        """Stamp last_activity on every successful login."""
        with self.engine.begin() as conn:
            conn.execute(accounts.update().where(accounts.c.id == account_id).values(last_activity=_now_iso()))

    def delete_account(self, account_id: str) -> bool:
        """Delete an account unless it is the parent of any sub-user.

        The NOT EXISTS guard and the delete run as one statement, so a link
        created concurrently cannot slip in between check and delete.
        Cascades (core/schema.py) remove the account's pets, their records,
        its share grants, and its own link if it is a sub-user.

        Returns True if deleted, False if the account is absent or still has
        sub-users. Callers use has_sub_users() to tell the two apart.
        """
        has_children = exists().where(sub_user_links.c.parent_account_id == account_id)
        with self.engine.begin() as conn:
            result = conn.execute(accounts.delete().where((accounts.c.id == account_id) & ~has_children))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Sub-user links
    # ------------------------------------------------------------------

    def link_sub_user(self, sub_user_id: str, parent_account_id: str, role: Role) -> SubUserLink | None:
        """Link an existing account as a sub-user.

        Returns the new link, or None if sub_user_id already has a parent
        (primary-key conflict). A self-link or an unknown account raises
        IntegrityError from the CHECK / foreign key constraints.
        """
        created_at = _now_iso()
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    sub_user_links.insert().values(
                        sub_user_id=sub_user_id,
                        parent_account_id=parent_account_id,
                        role=role.value,
                        created_at=created_at,
                    )
                )
        except IntegrityError:
            if self.get_parent_link(sub_user_id) is not None:
                return None
            raise
        return SubUserLink(
            sub_user_id=sub_user_id,
            parent_account_id=parent_account_id,
            role=role,
            created_at=created_at,
        )

    def get_parent_link(self, sub_user_id: str) -> SubUserLink | None:
        """Return the live link for a sub-user, or None if not linked."""
        with self.engine.connect() as conn:
            row = conn.execute(sub_user_links.select().where(sub_user_links.c.sub_user_id == sub_user_id)).fetchone()
        return _row_to_link(row) if row is not None else None

    def get_parent_user(self, sub_user_id: str) -> ParentAccount | None:
        """Return the parent account of a sub-user together with the link role."""
        query = (
            select(
                accounts.c.id,
                accounts.c.email,
                accounts.c.username,
                accounts.c.name,
                sub_user_links.c.role,
            )
            .select_from(accounts.join(sub_user_links, accounts.c.id == sub_user_links.c.parent_account_id))
            .where(sub_user_links.c.sub_user_id == sub_user_id)
        )
        with self.engine.connect() as conn:
            row = conn.execute(query).fetchone()
        if row is None:
            return None
        return ParentAccount(id=row.id, email=row.email, username=row.username, name=row.name, role=Role(row.role))

    def has_sub_users(self, parent_account_id: str) -> bool:
        with self.engine.connect() as conn:
            row = conn.execute(
                select(sub_user_links.c.sub_user_id)
                .where(sub_user_links.c.parent_account_id == parent_account_id)
                .limit(1)
            ).fetchone()
        return row is not None

    def list_sub_users(self, parent_account_id: str) -> list[SubUser]:
        """Return a parent's sub-users, most recently linked first."""
        query = (
            select(
                accounts.c.id,
                accounts.c.email,
                accounts.c.username,
                accounts.c.name,
                accounts.c.created_at,
                accounts.c.last_activity,
                sub_user_links.c.role,
                sub_user_links.c.created_at.label("linked_at"),
            )
            .select_from(accounts.join(sub_user_links, accounts.c.id == sub_user_links.c.sub_user_id))
            .where(sub_user_links.c.parent_account_id == parent_account_id)
            .order_by(sub_user_links.c.created_at.desc())
        )
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [
            SubUser(
                id=r.id,
                email=r.email,
                username=r.username,
                name=r.name,
                role=Role(r.role),
                created_at=r.created_at,
                last_activity=r.last_activity,
                linked_at=r.linked_at,
            )
            for r in rows
        ]

    def update_sub_user_role(self, sub_user_id: str, parent_account_id: str, role: Role) -> bool:
        """Change a sub-user's role.

        parent_account_id is part of the WHERE clause, so a caller can only
        change roles of their own sub-users even if they know another id.
        """
        with self.engine.begin() as conn:
            result = conn.execute(
                sub_user_links.update()
                .where(
                    (sub_user_links.c.sub_user_id == sub_user_id)
                    & (sub_user_links.c.parent_account_id == parent_account_id)
                )
                .values(role=role.value)
            )
        return result.rowcount > 0

    def remove_sub_user_link(self, sub_user_id: str) -> bool:
        """Unlink a sub-user. The account itself is left untouched."""
        with self.engine.begin() as conn:
            result = conn.execute(sub_user_links.delete().where(sub_user_links.c.sub_user_id == sub_user_id))
        return result.rowcount > 0


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _account_values(account: Account, account_id: str) -> dict:
    return {
        "id": account_id,
        "email": account.email.strip().lower(),
        "username": account.username,
        "name": account.name,
        "password_hash": account.password_hash,
        "is_superadmin": 1 if account.is_superadmin else 0,
        "created_at": _now_iso(),
    }


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        email=row.email,
        username=row.username,
        name=row.name,
        password_hash=row.password_hash,
        is_superadmin=bool(row.is_superadmin),
        created_at=row.created_at,
        last_activity=row.last_activity,
    )


def _row_to_link(row) -> SubUserLink:
    return SubUserLink(
        sub_user_id=row.sub_user_id,
        parent_account_id=row.parent_account_id,
        role=Role(row.role),
        created_at=row.created_at,
    )
