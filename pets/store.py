"""
pets/store.py -- SQLAlchemy Core persistence layer for pets and share grants.

Pattern: Repository + Data Mapper. PetStore is the repository for Pet and
PetShareGrant; _row_to_pet / _row_to_grant are the mappers. Record tables
are handled by pets/records.py and routes by pets/route_store.py.

PetStore also satisfies auth.permissions.PetOwnershipLookup
(get_owner_account_id, has_share_grant), which is how the authorization
engine reads ownership without importing this package.

Security:
  All queries use bound parameters. No f-strings in SQL.
  IDOR guard: update_owned() and delete_owned() put owner_id in the WHERE
  clause, so a caller who knows another account's pet id still changes
  nothing.

Share grants are insert-if-absent: UNIQUE(pet_id, account_id) makes the
database the arbiter when two redemptions race, and add_share_grant() turns
the losing insert into None instead of an exception.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError

from auth.roles import Role
from core.database import Database
from core.schema import accounts, pet_share_grants, pets
from pets.models import AccessiblePet, CompletePetRecord, Pet, PetShareGrant
from pets.records import MEDICATIONS, VACCINATIONS, VET_VISITS, WEIGHTS, RecordStore

logger = logging.getLogger("petkeeper.pets")

# Columns a pet update may change. owner_id and created_at are fixed.
_UPDATABLE_COLUMNS = ("name", "species", "breed", "sex", "birthdate", "notes")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class PetStore:
    """Repository for Pet and PetShareGrant entities.

    Usage:
        store = PetStore(db)
        pet_id = store.create(Pet(owner_id=account_id, name="Musti"))
        store.add_share_grant(pet_id, other_id, Role.CARETAKER)
        store.list_for_account(account_id, account_id)
    """

    def __init__(self, db: Database) -> None:
        self.engine = db.engine
        self._records = RecordStore(db)

    # ------------------------------------------------------------------
    # Pets
    # ------------------------------------------------------------------

    def create(self, pet: Pet) -> int:
        """Insert a pet and return its id. created_at is set here."""
        with self.engine.begin() as conn:
            result = conn.execute(
                pets.insert().values(
                    owner_id=pet.owner_id,
                    name=pet.name,
                    species=pet.species,
                    breed=pet.breed,
                    sex=pet.sex,
                    birthdate=pet.birthdate,
                    notes=pet.notes,
                    created_at=_now_iso(),
                )
            )
        return result.inserted_primary_key[0]

    def get(self, pet_id: int) -> Pet | None:
        with self.engine.connect() as conn:
            row = conn.execute(pets.select().where(pets.c.id == pet_id)).fetchone()
        return _row_to_pet(row) if row is not None else None

    def get_owner_account_id(self, pet_id: int) -> str | None:
        with self.engine.connect() as conn:
            return conn.execute(select(pets.c.owner_id).where(pets.c.id == pet_id)).scalar()

    def list_for_account(self, effective_account_id: str, actor_id: str) -> list[AccessiblePet]:
        """Return every pet the actor may list.

        That is the effective account's own pets plus pets shared with either
        the effective account or the actor. A pet reachable both ways appears
        once; ownership wins over a grant.
        """
        grantees = {effective_account_id, actor_id}
        query = (
            select(pets, pet_share_grants.c.role.label("grant_role"))
            .select_from(
                pets.outerjoin(
                    pet_share_grants,
                    (pet_share_grants.c.pet_id == pets.c.id) & pet_share_grants.c.account_id.in_(grantees),
                )
            )
            .where(or_(pets.c.owner_id == effective_account_id, pet_share_grants.c.account_id.is_not(None)))
            .order_by(pets.c.created_at.desc(), pets.c.id.desc())
        )
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()

        seen: dict[int, AccessiblePet] = {}
        for row in rows:
            if row.id in seen:
                continue
            is_owner = row.owner_id == effective_account_id
            role = None if is_owner or row.grant_role is None else Role(row.grant_role)
            seen[row.id] = AccessiblePet(pet=_row_to_pet(row), is_owner=is_owner, role=role)
        return list(seen.values())

    def list_accessible_pet_ids(self, effective_account_id: str, actor_id: str) -> list[int]:
        """Pet ids for list-mine record reads. Same scope as list_for_account()."""
        return [p.pet.id for p in self.list_for_account(effective_account_id, actor_id)]

    def update_owned(self, pet_id: int, owner_id: str, **fields) -> bool:
        """Apply a partial update to a pet owned by owner_id.

        Keys outside the updatable set and None values are ignored, so
        omitted fields keep their stored value. Returns False if the pet does
        not exist or is owned by someone else.
        """
        values = {k: v for k, v in fields.items() if k in _UPDATABLE_COLUMNS and v is not None}
        if not values:
            return self.get_owner_account_id(pet_id) == owner_id
        with self.engine.begin() as conn:
            result = conn.execute(
                pets.update().where((pets.c.id == pet_id) & (pets.c.owner_id == owner_id)).values(**values)
            )
        return result.rowcount > 0

    def delete_owned(self, pet_id: int, owner_id: str) -> bool:
        """Delete a pet owned by owner_id. Records and grants go with it via cascade."""
        with self.engine.begin() as conn:
            result = conn.execute(pets.delete().where((pets.c.id == pet_id) & (pets.c.owner_id == owner_id)))
        return result.rowcount > 0

    def get_complete_record(self, pet_id: int) -> CompletePetRecord | None:
        """Return the pet with its medications, vaccinations, weights and vet visits."""
        pet = self.get(pet_id)
        if pet is None:
            return None
        return CompletePetRecord(
            pet=pet,
            medications=self._records.list_for_pet(MEDICATIONS, pet_id),
            vaccinations=self._records.list_for_pet(VACCINATIONS, pet_id),
            weights=self._records.list_for_pet(WEIGHTS, pet_id),
            vet_visits=self._records.list_for_pet(VET_VISITS, pet_id),
        )

    # ------------------------------------------------------------------
    # Share grants
    # ------------------------------------------------------------------

    def has_share_grant(self, pet_id: int, account_id: str) -> bool:
        with self.engine.connect() as conn:
            row = conn.execute(
                select(pet_share_grants.c.id).where(
                    (pet_share_grants.c.pet_id == pet_id) & (pet_share_grants.c.account_id == account_id)
                )
            ).fetchone()
        return row is not None

    def add_share_grant(self, pet_id: int, account_id: str, role: Role = Role.CARETAKER) -> PetShareGrant | None:
        """Grant account_id access to pet_id.

        Returns the new grant, or None if account_id already holds one. A
        missing pet or account still raises IntegrityError (foreign key).
        """
        created_at = _now_iso()
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    pet_share_grants.insert().values(
                        pet_id=pet_id,
                        account_id=account_id,
                        role=role.value,
                        created_at=created_at,
                    )
                )
        except IntegrityError:
            if self.has_share_grant(pet_id, account_id):
                logger.info("Share grant for pet %s to %s already exists", pet_id, account_id)
                return None
            raise
        return PetShareGrant(
            id=result.inserted_primary_key[0],
            pet_id=pet_id,
            account_id=account_id,
            role=role,
            created_at=created_at,
        )

    def list_share_grants(self, pet_id: int) -> list[PetShareGrant]:
        """Return grants on a pet with each grantee's username, email and name."""
        query = (
            select(
                pet_share_grants,
                accounts.c.username,
                accounts.c.email,
                accounts.c.name,
            )
            .select_from(pet_share_grants.join(accounts, accounts.c.id == pet_share_grants.c.account_id))
            .where(pet_share_grants.c.pet_id == pet_id)
            .order_by(pet_share_grants.c.created_at)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_grant(r) for r in rows]

    def remove_share_grant(self, pet_id: int, account_id: str) -> bool:
        with self.engine.begin() as conn:
            result = conn.execute(
                pet_share_grants.delete().where(
                    (pet_share_grants.c.pet_id == pet_id) & (pet_share_grants.c.account_id == account_id)
                )
            )
        return result.rowcount > 0


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_pet(row) -> Pet:
    return Pet(
        id=row.id,
        owner_id=row.owner_id,
        name=row.name,
        species=row.species,
        breed=row.breed,
        sex=row.sex,
        birthdate=row.birthdate,
        notes=row.notes,
        created_at=row.created_at,
    )


def _row_to_grant(row) -> PetShareGrant:
    return PetShareGrant(
        id=row.id,
        pet_id=row.pet_id,
        account_id=row.account_id,
        role=Role(row.role),
        created_at=row.created_at,
        username=row.username,
        email=row.email,
        name=row.name,
    )
