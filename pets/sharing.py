"""
pets/sharing.py -- Pet share codes and explicit share grants.

Share codes are stateless capabilities (see auth/tokens.py): issuing one
writes nothing, and redeeming one turns it into a PetShareGrant row with the
default caretaker role. The code itself is never stored, so it cannot be
revoked; it simply stops verifying after its expiry. Rotating SECRET_KEY
voids every outstanding code at once.

Redemption outcome order:
  1. code fails verification (signature, expiry, type, malformed)
       -> InvalidInput with one generic message, whatever the reason
  2. pet no longer exists                  -> NotFound
     (also when it is deleted between this check and the insert)
  3. redeemer owns the pet                 -> InvalidInput
  4. redeemer already holds a grant        -> Conflict
  5. otherwise insert-if-absent the grant  -> aggregated pet record

Step 4 is checked twice: once up front for the common case, and again by the
UNIQUE(pet_id, account_id) constraint for two redemptions racing each other.
Either way exactly one grant row exists afterwards.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.exc import IntegrityError

from auth.roles import DEFAULT_SHARE_ROLE, Role
from auth.tokens import create_share_code, decode_share_code
from core.config import Settings, get_settings
from core.errors import Conflict, Forbidden, InvalidInput, NotFound
from pets.models import CompletePetRecord, PetShareGrant
from pets.store import PetStore

logger = logging.getLogger("petkeeper.sharing")

INVALID_CODE_MESSAGE = "Invalid or expired share code."


@dataclass
class IssuedShareCode:
    code: str
    pet_id: int
    expires_at: datetime
    ttl_seconds: int


class ShareService:
    """Issues and redeems share codes and manages explicit grants.

    Every method takes the authenticated actor's own account id. Sub-users
    cannot issue codes or manage grants for the parent's pets: only the
    direct owner can.
    """

    def __init__(self, pets: PetStore, settings: Settings | None = None) -> None:
        self._pets = pets
        self._settings = settings or get_settings()

    def _require_owner(self, pet_id: int, actor_id: str) -> None:
        owner_id = self._pets.get_owner_account_id(pet_id)
        if owner_id is None:
            raise NotFound("Pet not found.")
        if owner_id != actor_id:
            raise Forbidden("Only the pet's owner can manage sharing.")

    def _insert_grant(self, pet_id: int, grantee_id: str, role: Role) -> PetShareGrant | None:
        try:
            return self._pets.add_share_grant(pet_id, grantee_id, role)
        except IntegrityError:
            # Foreign key: the pet was deleted after the checks above.
            if self._pets.get_owner_account_id(pet_id) is None:
                raise NotFound("Pet not found.") from None
            raise

    # ------------------------------------------------------------------
    # Share codes
    # ------------------------------------------------------------------

    def issue(self, pet_id: int, actor_id: str, ttl_seconds: int | None = None) -> IssuedShareCode:
        """Mint a share code for pet_id. Raises NotFound, Forbidden or InvalidInput."""
        self._require_owner(pet_id, actor_id)
        ttl = ttl_seconds if ttl_seconds is not None else self._settings.share_code_ttl_seconds
        if ttl <= 0 or ttl > self._settings.share_code_max_ttl_seconds:
            raise InvalidInput(
                "Invalid share code lifetime.",
                errors=[f"ttl_seconds must be between 1 and {self._settings.share_code_max_ttl_seconds}"],
            )
        code, expires_at = create_share_code(pet_id, ttl)
        logger.info("Share code issued for pet %s by %s (ttl=%ds)", pet_id, actor_id, ttl)
        return IssuedShareCode(code=code, pet_id=pet_id, expires_at=expires_at, ttl_seconds=ttl)

    def redeem(self, code: str, grantee_id: str) -> CompletePetRecord:
        """Turn a share code into a caretaker grant for grantee_id.

        Returns the pet's aggregated record. Raises InvalidInput, NotFound or
        Conflict as described in the module docstring.
        """
        pet_id = decode_share_code(code)
        if pet_id is None:
            logger.warning("Share code rejected for %s", grantee_id)
            raise InvalidInput(INVALID_CODE_MESSAGE)

        owner_id = self._pets.get_owner_account_id(pet_id)
        if owner_id is None:
            raise NotFound("Pet not found.")
        if owner_id == grantee_id:
            raise InvalidInput("You cannot redeem a share code for your own pet.")
        if self._pets.has_share_grant(pet_id, grantee_id):
            raise Conflict("You already have access to this pet.")

        grant = self._insert_grant(pet_id, grantee_id, DEFAULT_SHARE_ROLE)
        if grant is None:
            raise Conflict("You already have access to this pet.")
        logger.info("Share code redeemed: pet %s granted to %s", pet_id, grantee_id)

        record = self._pets.get_complete_record(pet_id)
        if record is None:
            # Pet deleted between grant and read; the grant went with it.
            raise NotFound("Pet not found.")
        return record

    # ------------------------------------------------------------------
    # Explicit grants
    # ------------------------------------------------------------------

    def grant(self, pet_id: int, actor_id: str, grantee_id: str, role: Role = DEFAULT_SHARE_ROLE) -> PetShareGrant:
        """Owner grants grantee_id access to pet_id directly, without a code."""
        self._require_owner(pet_id, actor_id)
        if grantee_id == actor_id:
            raise InvalidInput("You cannot share a pet with yourself.")
        grant = self._insert_grant(pet_id, grantee_id, role)
        if grant is None:
            raise Conflict("This user already has access to the pet.")
        logger.info("Pet %s shared with %s as %s by %s", pet_id, grantee_id, role.value, actor_id)
        return grant

    def list_grants(self, pet_id: int, actor_id: str) -> list[PetShareGrant]:
        self._require_owner(pet_id, actor_id)
        return self._pets.list_share_grants(pet_id)

    def revoke(self, pet_id: int, actor_id: str, grantee_id: str) -> None:
        """Owner removes a grant. Raises NotFound if there is none."""
        self._require_owner(pet_id, actor_id)
        if not self._pets.remove_share_grant(pet_id, grantee_id):
            raise NotFound("Shared user not found for this pet.")
        logger.info("Share grant on pet %s for %s revoked by %s", pet_id, grantee_id, actor_id)
