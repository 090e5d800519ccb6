"""
pets/models.py -- Domain dataclasses for pets, share grants and pet records.

These are pure data containers with zero logic. Ownership and access rules
live in auth/permissions.py; persistence lives in pets/store.py,
pets/records.py and pets/route_store.py.

id is None before the record is written to the database. Dates are ISO 8601
strings: YYYY-MM-DD for calendar dates, full timestamps for created_at and
GPS samples.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from auth.roles import Role


@dataclass
class Pet:
    """A pet owned by exactly one account (owner_id)."""

    owner_id: str
    name: str
    id: Optional[int] = None
    species: Optional[str] = None
    breed: Optional[str] = None
    sex: Optional[str] = None
    birthdate: Optional[str] = None
    notes: Optional[str] = None
    created_at: str = ""


@dataclass
class AccessiblePet:
    """A pet as listed for an actor: the pet plus how the actor reaches it.

    is_owner is True when the pet belongs to the effective account. role is
    the share-grant role for pets reached through a grant, None otherwise.
    """

    pet: Pet
    is_owner: bool
    role: Optional[Role] = None


@dataclass
class PetShareGrant:
    """Pet-scoped delegation: account_id may access pet_id's data."""

    pet_id: int
    account_id: str
    role: Role = Role.CARETAKER
    id: Optional[int] = None
    created_at: str = ""
    # Grantee profile, populated by list_share_grants() only.
    username: Optional[str] = None
    email: Optional[str] = None
    name: Optional[str] = None


@dataclass
class PetRecord:
    """One medication, vaccination, vet visit, weight or calendar entry.

    The record types differ only in their data columns, so they share one
    container: fields maps column name to value for everything except id
    and pet_id.
    """

    kind: str
    pet_id: int
    fields: dict[str, Any] = field(default_factory=dict)
    id: Optional[int] = None
    pet_name: Optional[str] = None


@dataclass
class VetVisitType:
    id: int
    name: str


@dataclass
class CompletePetRecord:
    """A pet with every medical record attached. Returned by detail and share redemption."""

    pet: Pet
    medications: list[PetRecord] = field(default_factory=list)
    vaccinations: list[PetRecord] = field(default_factory=list)
    weights: list[PetRecord] = field(default_factory=list)
    vet_visits: list[PetRecord] = field(default_factory=list)


@dataclass
class RouteCoordinate:
    """One GPS sample. recorded_at orders the samples within a route."""

    latitude: float
    longitude: float
    recorded_at: str
    altitude: Optional[float] = None
    accuracy: Optional[float] = None
    speed_mps: Optional[float] = None
    id: Optional[int] = None


@dataclass
class Route:
    """A recorded walk. user_id is the account that recorded it, never the effective account."""

    pet_id: int
    user_id: str
    started_at: str
    ended_at: str
    id: Optional[int] = None
    distance_m: Optional[int] = None
    duration_s: Optional[int] = None
    avg_speed_mps: Optional[float] = None
    pet_name: Optional[str] = None
    coordinates: list[RouteCoordinate] = field(default_factory=list)
