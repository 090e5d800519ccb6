"""
tests/test_stores.py -- Unit tests for AccountStore, PetStore, RecordStore and RouteStore.

Covers:
  - Account lookups (username, case-insensitive email, login dispatch)
  - Sub-user linking: one parent per sub-user, self-link rejected, unlink keeps the account
  - delete_account refuses while the account has sub-users; cascades otherwise
  - Pet listing: effective account's pets + grants, ownership wins, no duplicates
  - IDOR guard on update_owned / delete_owned
  - Record partial update keeps omitted columns
  - Route creation is atomic; coordinates come back in recorded_at order
"""

from __future__ import annotations

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from auth.models import Account
from auth.roles import Role
from auth.store import AccountStore
from core import schema
from pets.models import Pet, Route, RouteCoordinate
from pets.records import CALENDAR_EVENTS, MEDICATIONS, VACCINATIONS, VET_VISITS, WEIGHTS, RecordStore
from pets.route_store import RouteStore
from pets.store import PetStore


def _account(store: AccountStore, username: str, email: str | None = None) -> str:
    return store.create_account(
        Account(email=email or f"{username}@example.com", username=username, password_hash="x")
    )


@pytest.fixture
def accounts(db):
    return AccountStore(db)


@pytest.fixture
def pets(db):
    return PetStore(db)


# ---------------------------------------------------------------------------
# AccountStore
# ---------------------------------------------------------------------------


def test_lookup_by_username_email_and_login(accounts):
    uid = _account(accounts, "alice", "Alice@Example.com")
    assert accounts.get_by_username("alice").id == uid
    assert accounts.get_by_email("ALICE@example.com").id == uid
    assert accounts.get_by_login("alice@example.com").id == uid
    assert accounts.get_by_login("alice").id == uid
    assert accounts.get_by_login("nobody") is None


def test_duplicate_username_raises(accounts):
    _account(accounts, "alice")
    with pytest.raises(IntegrityError):
        _account(accounts, "alice", "other@example.com")


def test_sub_user_has_at_most_one_parent(accounts):
    parent = _account(accounts, "parent")
    other = _account(accounts, "other")
    sub = _account(accounts, "sub")

    link = accounts.link_sub_user(sub, parent, Role.CARETAKER)
    assert link is not None
    assert link.role == Role.CARETAKER
    assert accounts.link_sub_user(sub, other, Role.OWNER) is None
    assert accounts.get_parent_link(sub).parent_account_id == parent


def test_self_link_is_rejected(accounts):
    uid = _account(accounts, "solo")
    with pytest.raises(IntegrityError):
        accounts.link_sub_user(uid, uid, Role.OWNER)


def test_create_sub_user_links_in_one_step(accounts):
    parent = _account(accounts, "parent")
    sub = accounts.create_sub_user(
        Account(email="kid@example.com", username="kid", password_hash="x"), parent, Role.VETERINARIAN
    )
    parent_user = accounts.get_parent_user(sub)
    assert parent_user.id == parent
    assert parent_user.role == Role.VETERINARIAN
    assert [s.id for s in accounts.list_sub_users(parent)] == [sub]


def test_create_sub_user_rolls_back_on_unknown_parent(accounts):
    with pytest.raises(IntegrityError):
        accounts.create_sub_user(
            Account(email="kid@example.com", username="kid", password_hash="x"), "missing", Role.CARETAKER
        )
    assert accounts.get_by_username("kid") is None


def test_unlink_keeps_account(accounts):
    parent = _account(accounts, "parent")
    sub = _account(accounts, "sub")
    accounts.link_sub_user(sub, parent, Role.CARETAKER)

    assert accounts.remove_sub_user_link(sub) is True
    assert accounts.get_by_id(sub) is not None
    assert accounts.get_parent_user(sub) is None
    assert accounts.has_sub_users(parent) is False
    assert accounts.remove_sub_user_link(sub) is False


def test_role_update_scoped_to_parent(accounts):
    parent = _account(accounts, "parent")
    intruder = _account(accounts, "intruder")
    sub = _account(accounts, "sub")
    accounts.link_sub_user(sub, parent, Role.CARETAKER)

    assert accounts.update_sub_user_role(sub, intruder, Role.OWNER) is False
    assert accounts.get_parent_link(sub).role == Role.CARETAKER
    assert accounts.update_sub_user_role(sub, parent, Role.OWNER) is True
    assert accounts.get_parent_link(sub).role == Role.OWNER


def test_delete_refused_while_parent_of_sub_users(accounts):
    parent = _account(accounts, "parent")
    sub = _account(accounts, "sub")
    accounts.link_sub_user(sub, parent, Role.CARETAKER)

    assert accounts.delete_account(parent) is False
    assert accounts.get_by_id(parent) is not None


def test_delete_sub_user_removes_its_link(accounts):
    parent = _account(accounts, "parent")
    sub = _account(accounts, "sub")
    accounts.link_sub_user(sub, parent, Role.CARETAKER)

    assert accounts.delete_account(sub) is True
    assert accounts.has_sub_users(parent) is False


def test_delete_account_cascades_owned_data(db, accounts, pets):
    records = RecordStore(db)
    route_store = RouteStore(db)
    owner = _account(accounts, "owner")
    friend = _account(accounts, "friend")
    pet_id = pets.create(Pet(owner_id=owner, name="Rex"))
    visit_type = records.list_vet_visit_types()[0].id
    med = records.create(MEDICATIONS, pet_id, {"med_name": "Drops", "medication_date": "2024-01-01"})
    records.create(VACCINATIONS, pet_id, {"vac_name": "Rabies", "vaccination_date": "2024-01-02"})
    records.create(VET_VISITS, pet_id, {"visit_date": "2024-01-03", "type_id": visit_type})
    records.create(WEIGHTS, pet_id, {"weight": 10.0, "date": "2024-01-04"})
    records.create(CALENDAR_EVENTS, pet_id, {"title": "Checkup", "start_date": "2024-01-05"})
    route_id = route_store.create(
        Route(pet_id=pet_id, user_id=owner, started_at="2024-01-01T10:00:00Z", ended_at="2024-01-01T10:30:00Z"),
        [RouteCoordinate(latitude=1.0, longitude=2.0, recorded_at="2024-01-01T10:00:00Z")],
    )
    pets.add_share_grant(pet_id, friend)

    assert accounts.delete_account(owner) is True

    assert pets.get(pet_id) is None
    assert records.get(MEDICATIONS, med.id) is None
    assert route_store.get(route_id) is None
    assert pets.has_share_grant(pet_id, friend) is False
    assert accounts.get_by_id(friend) is not None
    owned_tables = (
        schema.pets,
        schema.pet_share_grants,
        schema.medications,
        schema.vaccinations,
        schema.vet_visits,
        schema.weights,
        schema.calendar_events,
        schema.routes,
        schema.route_coordinates,
    )
    with db.engine.connect() as conn:
        for table in owned_tables:
            assert conn.execute(select(func.count()).select_from(table)).scalar_one() == 0, table.name


# ---------------------------------------------------------------------------
# PetStore
# ---------------------------------------------------------------------------


def test_list_for_account_merges_owned_and_shared(accounts, pets):
    parent = _account(accounts, "parent")
    other = _account(accounts, "other")
    sub = _account(accounts, "sub")
    accounts.link_sub_user(sub, parent, Role.CARETAKER)

    own = pets.create(Pet(owner_id=parent, name="Rex"))
    to_parent = pets.create(Pet(owner_id=other, name="Tom"))
    to_sub = pets.create(Pet(owner_id=other, name="Kit"))
    hidden = pets.create(Pet(owner_id=other, name="Max"))
    pets.add_share_grant(to_parent, parent, Role.VETERINARIAN)
    pets.add_share_grant(to_sub, sub)
    # Shared with both: still listed once.
    pets.add_share_grant(to_parent, sub)

    listed = {p.pet.id: p for p in pets.list_for_account(parent, sub)}

    assert set(listed) == {own, to_parent, to_sub}
    assert hidden not in listed
    assert listed[own].is_owner is True
    assert listed[own].role is None
    assert listed[to_parent].is_owner is False
    assert listed[to_sub].role == Role.CARETAKER


def test_update_and_delete_require_owner(accounts, pets):
    owner = _account(accounts, "owner")
    other = _account(accounts, "other")
    pet_id = pets.create(Pet(owner_id=owner, name="Rex", species="dog"))

    assert pets.update_owned(pet_id, other, name="Stolen") is False
    assert pets.delete_owned(pet_id, other) is False
    assert pets.update_owned(pet_id, owner, name="Rexy", species=None) is True

    pet = pets.get(pet_id)
    assert pet.name == "Rexy"
    assert pet.species == "dog"


def test_add_share_grant_is_unique(accounts, pets):
    owner = _account(accounts, "owner")
    friend = _account(accounts, "friend")
    pet_id = pets.create(Pet(owner_id=owner, name="Rex"))

    assert pets.add_share_grant(pet_id, friend) is not None
    assert pets.add_share_grant(pet_id, friend, Role.OWNER) is None
    grants = pets.list_share_grants(pet_id)
    assert len(grants) == 1
    assert grants[0].username == "friend"


# ---------------------------------------------------------------------------
# RecordStore
# ---------------------------------------------------------------------------


def test_record_partial_update(db, accounts, pets):
    records = RecordStore(db)
    owner = _account(accounts, "owner")
    pet_id = pets.create(Pet(owner_id=owner, name="Rex"))
    rec = records.create(WEIGHTS, pet_id, {"weight": 12.4, "date": "2024-05-01"})

    updated = records.update(WEIGHTS, rec.id, {"weight": 12.9})

    assert updated.fields["weight"] == 12.9
    assert updated.fields["date"] == "2024-05-01"
    assert updated.pet_name == "Rex"
    assert records.update(WEIGHTS, 9999, {"weight": 1.0}) is None


def test_vet_visit_type_name_is_joined(db, accounts, pets):
    records = RecordStore(db)
    owner = _account(accounts, "owner")
    pet_id = pets.create(Pet(owner_id=owner, name="Rex"))
    checkup = records.list_vet_visit_types()[0]

    visit = records.create(VET_VISITS, pet_id, {"visit_date": "2024-02-02", "type_id": checkup.id})
    event = records.create(CALENDAR_EVENTS, pet_id, {"title": "Walk", "start_date": "2024-02-03"})

    assert visit.fields["type_name"] == checkup.name
    assert event.fields["type_name"] is None


def test_vet_visit_types_are_seeded(db):
    records = RecordStore(db)
    names = [t.name for t in records.list_vet_visit_types()]
    assert "Checkup" in names
    assert records.vet_visit_type_exists(9999) is False


# ---------------------------------------------------------------------------
# RouteStore
# ---------------------------------------------------------------------------


def test_route_creation_is_atomic(db, accounts, pets):
    route_store = RouteStore(db)
    owner = _account(accounts, "owner")
    pet_id = pets.create(Pet(owner_id=owner, name="Rex"))
    route = Route(pet_id=pet_id, user_id=owner, started_at="2024-01-01T10:00:00Z", ended_at="2024-01-01T11:00:00Z")
    coords = [
        RouteCoordinate(latitude=1.0, longitude=2.0, recorded_at="2024-01-01T10:00:00Z"),
        RouteCoordinate(latitude=None, longitude=2.0, recorded_at="2024-01-01T10:01:00Z"),
    ]

    with pytest.raises(IntegrityError):
        route_store.create(route, coords)

    assert route_store.list_for_pet(pet_id) == []


def test_coordinates_ordered_by_recorded_at(db, accounts, pets):
    route_store = RouteStore(db)
    owner = _account(accounts, "owner")
    pet_id = pets.create(Pet(owner_id=owner, name="Rex"))
    route_id = route_store.create(
        Route(pet_id=pet_id, user_id=owner, started_at="2024-01-01T10:00:00Z", ended_at="2024-01-01T11:00:00Z"),
        [RouteCoordinate(latitude=3.0, longitude=3.0, recorded_at="2024-01-01T10:03:00Z")],
    )
    added = route_store.add_coordinates(
        route_id,
        [
            RouteCoordinate(latitude=1.0, longitude=1.0, recorded_at="2024-01-01T10:01:00Z"),
            RouteCoordinate(latitude=2.0, longitude=2.0, recorded_at="2024-01-01T10:02:00Z"),
        ],
    )

    assert added == 2
    route = route_store.get(route_id)
    assert [c.latitude for c in route.coordinates] == [1.0, 2.0, 3.0]
    assert route.pet_name == "Rex"


def test_route_stats_partial_update(db, accounts, pets):
    route_store = RouteStore(db)
    owner = _account(accounts, "owner")
    pet_id = pets.create(Pet(owner_id=owner, name="Rex"))
    route_id = route_store.create(
        Route(
            pet_id=pet_id,
            user_id=owner,
            started_at="2024-01-01T10:00:00Z",
            ended_at="2024-01-01T11:00:00Z",
            distance_m=100,
        )
    )

    updated = route_store.update_stats(route_id, duration_s=3600, distance_m=None)

    assert updated.duration_s == 3600
    assert updated.distance_m == 100
    assert route_store.delete(route_id) is True
    assert route_store.get(route_id) is None
