"""
tests/test_permissions.py -- Unit tests for the pet authorization gates.

Covers:
  - can_act_on_pet: owner, owner-role sub-user, caretaker sub-user, strangers
  - can_act_on_pet reads the live link (unlink / downgrade take effect at once)
  - can_access_pet / can_view_pet: ownership, grants, parent's access for sub-users
  - is_pet_owner excludes sub-users and grantees
  - can_manage_sub_user_link: sub-user, parent, super-admin, outsider
  - resolve_effective_account_id and identity_from_claims
"""

from __future__ import annotations

import pytest

from auth.identity import Identity, identity_from_claims, resolve_effective_account_id
from auth.models import Account
from auth.permissions import PetPermissions
from auth.roles import Role
from auth.store import AccountStore
from pets.models import Pet
from pets.store import PetStore


def _account(store: AccountStore, username: str, **kwargs) -> str:
    return store.create_account(
        Account(email=f"{username}@example.com", username=username, password_hash="x", **kwargs)
    )


@pytest.fixture
def stores(db):
    accounts = AccountStore(db)
    pets = PetStore(db)
    return accounts, pets, PetPermissions(pets, accounts, superadmin_usernames=["root_admin"])


# ---------------------------------------------------------------------------
# can_act_on_pet
# ---------------------------------------------------------------------------


def test_owner_can_act_on_own_pet(stores):
    accounts, _, perms = stores
    owner = _account(accounts, "owner")
    assert perms.can_act_on_pet(owner, owner) is True


def test_owner_role_sub_user_can_act_on_parent_pet(stores):
    accounts, _, perms = stores
    parent = _account(accounts, "parent")
    sub = _account(accounts, "sub")
    accounts.link_sub_user(sub, parent, Role.OWNER)
    assert perms.can_act_on_pet(sub, parent) is True


@pytest.mark.parametrize("role", [Role.CARETAKER, Role.VETERINARIAN])
def test_non_owner_role_sub_user_cannot_act(stores, role):
    accounts, _, perms = stores
    parent = _account(accounts, "parent")
    sub = _account(accounts, "sub")
    accounts.link_sub_user(sub, parent, role)
    assert perms.can_act_on_pet(sub, parent) is False


def test_owner_role_sub_user_cannot_act_on_other_accounts_pets(stores):
    accounts, _, perms = stores
    parent = _account(accounts, "parent")
    other = _account(accounts, "other")
    sub = _account(accounts, "sub")
    accounts.link_sub_user(sub, parent, Role.OWNER)
    assert perms.can_act_on_pet(sub, other) is False


def test_parent_cannot_act_on_sub_user_pets(stores):
    """Delegation runs one way: the parent gains nothing over the sub-user's own pets."""
    accounts, _, perms = stores
    parent = _account(accounts, "parent")
    sub = _account(accounts, "sub")
    accounts.link_sub_user(sub, parent, Role.OWNER)
    assert perms.can_act_on_pet(parent, sub) is False


def test_missing_owner_is_denied(stores):
    accounts, _, perms = stores
    actor = _account(accounts, "actor")
    assert perms.can_act_on_pet(actor, None) is False
    assert perms.can_act_on_pet("", actor) is False


def test_unlink_revokes_mutation_immediately(stores):
    accounts, _, perms = stores
    parent = _account(accounts, "parent")
    sub = _account(accounts, "sub")
    accounts.link_sub_user(sub, parent, Role.OWNER)
    assert perms.can_act_on_pet(sub, parent) is True

    accounts.remove_sub_user_link(sub)
    assert perms.can_act_on_pet(sub, parent) is False


def test_role_downgrade_revokes_mutation_immediately(stores):
    accounts, _, perms = stores
    parent = _account(accounts, "parent")
    sub = _account(accounts, "sub")
    accounts.link_sub_user(sub, parent, Role.OWNER)

    assert accounts.update_sub_user_role(sub, parent, Role.CARETAKER) is True
    assert perms.can_act_on_pet(sub, parent) is False


# ---------------------------------------------------------------------------
# Read gates
# ---------------------------------------------------------------------------


def test_grantee_can_access_but_is_not_owner(stores):
    accounts, pets, perms = stores
    owner = _account(accounts, "owner")
    friend = _account(accounts, "friend")
    pet_id = pets.create(Pet(owner_id=owner, name="Rex"))
    pets.add_share_grant(pet_id, friend)

    assert perms.can_access_pet(pet_id, friend) is True
    assert perms.is_pet_owner(pet_id, friend) is False
    assert perms.is_pet_owner(pet_id, owner) is True
    # A grant never confers mutation rights.
    assert perms.can_act_on_pet(friend, owner) is False


def test_stranger_cannot_access(stores):
    accounts, pets, perms = stores
    owner = _account(accounts, "owner")
    stranger = _account(accounts, "stranger")
    pet_id = pets.create(Pet(owner_id=owner, name="Rex"))
    assert perms.can_access_pet(pet_id, stranger) is False
    assert perms.can_view_pet(pet_id, Identity(account_id=stranger)) is False


def test_unknown_pet_is_not_accessible(stores):
    accounts, _, perms = stores
    owner = _account(accounts, "owner")
    assert perms.can_access_pet(9999, owner) is False
    assert perms.is_pet_owner(9999, owner) is False


def test_sub_user_views_parent_pets_and_parent_grants(stores):
    accounts, pets, perms = stores
    parent = _account(accounts, "parent")
    other = _account(accounts, "other")
    sub = _account(accounts, "sub")
    accounts.link_sub_user(sub, parent, Role.VETERINARIAN)

    own_pet = pets.create(Pet(owner_id=parent, name="Rex"))
    shared_pet = pets.create(Pet(owner_id=other, name="Tom"))
    pets.add_share_grant(shared_pet, parent)

    identity = Identity(account_id=sub, username="sub", parent_account_id=parent, role=Role.VETERINARIAN)
    assert perms.can_view_pet(own_pet, identity) is True
    assert perms.can_view_pet(shared_pet, identity) is True
    # The sub-user itself holds nothing directly.
    assert perms.can_access_pet(own_pet, sub) is False


def test_is_pet_owner_excludes_owner_role_sub_user(stores):
    accounts, pets, perms = stores
    parent = _account(accounts, "parent")
    sub = _account(accounts, "sub")
    accounts.link_sub_user(sub, parent, Role.OWNER)
    pet_id = pets.create(Pet(owner_id=parent, name="Rex"))
    assert perms.is_pet_owner(pet_id, sub) is False


# ---------------------------------------------------------------------------
# Sub-user link management
# ---------------------------------------------------------------------------


def test_manage_link_allowed_for_parties_and_superadmin(stores):
    accounts, _, perms = stores
    parent = _account(accounts, "parent")
    sub = _account(accounts, "sub")
    outsider = _account(accounts, "outsider")
    admin_by_name = _account(accounts, "root_admin")
    admin_by_flag = _account(accounts, "flagged", is_superadmin=True)
    link = accounts.link_sub_user(sub, parent, Role.CARETAKER)

    assert perms.can_manage_sub_user_link(accounts.get_by_id(sub), link) is True
    assert perms.can_manage_sub_user_link(accounts.get_by_id(parent), link) is True
    assert perms.can_manage_sub_user_link(accounts.get_by_id(admin_by_name), link) is True
    assert perms.can_manage_sub_user_link(accounts.get_by_id(admin_by_flag), link) is True
    assert perms.can_manage_sub_user_link(accounts.get_by_id(outsider), link) is False


# ---------------------------------------------------------------------------
# Identity resolution
# ---------------------------------------------------------------------------


def test_effective_account_is_parent_for_sub_user():
    identity = Identity(account_id="sub", parent_account_id="parent", role=Role.CARETAKER)
    assert resolve_effective_account_id(identity) == "parent"
    assert identity.is_sub_user is True


def test_effective_account_is_self_without_parent():
    identity = Identity(account_id="solo")
    assert resolve_effective_account_id(identity) == "solo"
    assert identity.is_sub_user is False


def test_identity_from_claims_requires_account_id():
    assert identity_from_claims({"sub": "someone"}) is None


def test_identity_from_claims_drops_half_delegation_claim():
    identity = identity_from_claims({"sub": "u", "account_id": "a1", "parent_account_id": "p1", "role": "bogus"})
    assert identity is not None
    assert identity.parent_account_id is None
    assert identity.role is None


def test_identity_from_claims_reads_delegation():
    identity = identity_from_claims({"sub": "u", "account_id": "a1", "parent_account_id": "p1", "role": "owner"})
    assert identity == Identity(account_id="a1", username="u", parent_account_id="p1", role=Role.OWNER)
