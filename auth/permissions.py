"""
auth/permissions.py -- Authorization engine for pet-scoped operations.

Every "may this actor touch this pet's data" decision goes through
PetPermissions. Record types (medications, vaccinations, vet visits,
weights, calendar events, routes) do not re-derive ownership themselves;
the route layer resolves the record's pet owner once and asks here.

Two checks with different strictness:

  can_act_on_pet(actor_id, pet_owner_id)
      Mutation gate. True for the owner, and for a sub-user whose live link
      points at the owner with the owner-equivalent role. Caretaker and
      veterinarian sub-users are refused. Share grants do not count.

  can_access_pet(pet_id, actor_id)
      Read gate, also used for calendar-event create/update. True for the
      owner and for any account holding a share grant on the pet.

Both return booleans and never raise for a "no" answer; the caller picks
403 or 404. Infrastructure failures (lost connection) propagate.

The pet and link lookups are injected as Protocols so this module never
imports pets/. PetStore and AccountStore satisfy them structurally.

Layer rule: no imports from api/ or pets/.
"""

from __future__ import annotations

import logging
from typing import Protocol

from auth.identity import Identity
from auth.models import Account, SubUserLink
from auth.roles import OWNER_EQUIVALENT

logger = logging.getLogger("petkeeper.permissions")


# ---------------------------------------------------------------------------
# Collaborator protocols
# ---------------------------------------------------------------------------


class PetOwnershipLookup(Protocol):
    """Read-only view of pet ownership and per-pet share grants."""

    def get_owner_account_id(self, pet_id: int) -> str | None:
        """Return the owning account id, or None if the pet does not exist."""
        ...

    def has_share_grant(self, pet_id: int, account_id: str) -> bool:
        """Return True if account_id holds a share grant on pet_id."""
        ...


class SubUserLinkLookup(Protocol):
    """Read-only view of the live sub-user links."""

    def get_parent_link(self, sub_user_id: str) -> SubUserLink | None:
        """Return the link naming sub_user_id, or None if it has no parent."""
        ...


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class PetPermissions:
    """Decides pet-scoped access from ownership, sub-user links and share grants.

    Usage:
        perms = PetPermissions(pet_store, account_store)
        owner_id = pet_store.get_owner_account_id(pet_id)
        if owner_id is None:
            raise NotFound("Pet not found.")
        if not perms.can_act_on_pet(identity.account_id, owner_id):
            raise Forbidden()
    """

    def __init__(
        self,
        pets: PetOwnershipLookup,
        links: SubUserLinkLookup,
        superadmin_usernames: list[str] | tuple[str, ...] = (),
    ) -> None:
        self._pets = pets
        self._links = links
        self._superadmins = frozenset(superadmin_usernames)

    # ------------------------------------------------------------------
    # Mutation gate
    # ------------------------------------------------------------------

    def can_act_on_pet(self, actor_id: str, pet_owner_id: str | None) -> bool:
        """Return True if actor_id may create, update or delete data of a pet owned by pet_owner_id.

        The sub-user branch reads the live link, not the token claims, so an
        unlinked or downgraded sub-user loses mutation rights immediately.
        """
        if not actor_id or not pet_owner_id:
            return False
        if actor_id == pet_owner_id:
            return True
        link = self._links.get_parent_link(actor_id)
        if link is None:
            return False
        return link.parent_account_id == pet_owner_id and link.role == OWNER_EQUIVALENT

    # ------------------------------------------------------------------
    # Read gates
    # ------------------------------------------------------------------

    def is_pet_owner(self, pet_id: int, actor_id: str) -> bool:
        """Return True only for the pet's direct owner. Sub-users do not qualify."""
        owner_id = self._pets.get_owner_account_id(pet_id)
        return owner_id is not None and owner_id == actor_id

    def can_access_pet(self, pet_id: int, actor_id: str) -> bool:
        """Return True if actor_id owns pet_id or holds a share grant on it."""
        owner_id = self._pets.get_owner_account_id(pet_id)
        if owner_id is None:
            return False
        if owner_id == actor_id:
            return True
        return self._pets.has_share_grant(pet_id, actor_id)

    def can_view_pet(self, pet_id: int, identity: Identity) -> bool:
        """Return True if the identity may read pet_id's data.

        The actor's own access counts first. A sub-user additionally sees
        whatever its parent (the effective account) can access, mirroring
        what the list endpoints return for that sub-user.
        """
        if self.can_access_pet(pet_id, identity.account_id):
            return True
        if identity.parent_account_id is not None:
            return self.can_access_pet(pet_id, identity.parent_account_id)
        return False

    # ------------------------------------------------------------------
    # Sub-user link management
    # ------------------------------------------------------------------

    def is_superadmin(self, account: Account) -> bool:
        return account.is_superadmin or account.username in self._superadmins

    def can_manage_sub_user_link(self, actor: Account, link: SubUserLink) -> bool:
        """Return True if actor may remove link: the sub-user, its parent, or a super-admin."""
        if actor.id in (link.sub_user_id, link.parent_account_id):
            return True
        if self.is_superadmin(actor):
            logger.info("Super-admin %s acting on sub-user link %s", actor.username, link.sub_user_id)
            return True
        return False
