"""
tests/test_api_records.py -- Integration tests for the per-pet record endpoints.

Covers:
  - Medication CRUD by the owner, grouped list-mine response
  - Owner-role sub-user may mutate; caretaker / veterinarian sub-users may not
  - Grantees read but cannot mutate
  - Calendar events: viewers may create and update, only can_act_on_pet may delete
  - fetch -> 404 -> 403 ordering on record ids
  - Unknown visit type -> 400; vet visit type list
"""

from __future__ import annotations

import pytest

from tests.conftest import add_sub_user, auth_header, create_pet, register_user

MEDICATION = {"med_name": "Drops", "medication_date": "2024-03-01", "costs": 12.5}


def _create(client, token, path, body):
    return client.post(f"/api/v1/{path}", json=body, headers=auth_header(token))


@pytest.fixture(scope="module")
def family(api_client):
    """An owner with one pet, three sub-users (one per role) and one grantee."""
    client, _, _ = api_client
    parent, parent_id = register_user(client, "rec_parent")
    pet_id = create_pet(client, parent, "Recorded")
    owner_sub, _ = add_sub_user(client, parent, "rec_owner_kid", "owner")
    caretaker_sub, _ = add_sub_user(client, parent, "rec_care_kid", "caretaker")
    vet_sub, _ = add_sub_user(client, parent, "rec_vet_kid", "veterinarian")
    grantee, _ = register_user(client, "rec_grantee")
    client.post(f"/api/v1/pets/{pet_id}/shared-users", json={"login": "rec_grantee"}, headers=auth_header(parent))
    stranger, _ = register_user(client, "rec_stranger")
    return {
        "client": client,
        "pet_id": pet_id,
        "parent": parent,
        "parent_id": parent_id,
        "owner_sub": owner_sub,
        "caretaker_sub": caretaker_sub,
        "vet_sub": vet_sub,
        "grantee": grantee,
        "stranger": stranger,
    }


# ---------------------------------------------------------------------------
# Medications (representative of the can_act_on_pet record types)
# ---------------------------------------------------------------------------


def test_owner_medication_crud(family):
    client, parent, pet_id = family["client"], family["parent"], family["pet_id"]

    created = _create(client, parent, "medications", {"pet_id": pet_id, **MEDICATION})
    assert created.status_code == 201
    med = created.json()["data"]
    assert med["pet_id"] == pet_id
    assert med["med_name"] == "Drops"

    updated = client.put(f"/api/v1/medications/{med['id']}", json={"notes": "with food"}, headers=auth_header(parent))
    assert updated.status_code == 200
    assert updated.json()["data"]["notes"] == "with food"
    assert updated.json()["data"]["med_name"] == "Drops"

    one = client.get(f"/api/v1/medications/{med['id']}", headers=auth_header(parent))
    assert one.status_code == 200

    deleted = client.delete(f"/api/v1/medications/{med['id']}", headers=auth_header(parent))
    assert deleted.status_code == 200
    assert client.get(f"/api/v1/medications/{med['id']}", headers=auth_header(parent)).status_code == 404


def test_list_mine_groups_by_pet(family):
    client, parent, pet_id = family["client"], family["parent"], family["pet_id"]
    _create(client, parent, "medications", {"pet_id": pet_id, **MEDICATION})
    _create(client, parent, "medications", {"pet_id": pet_id, **MEDICATION, "medication_date": "2024-04-01"})

    for token in (parent, family["vet_sub"], family["grantee"]):
        body = client.get("/api/v1/medications", headers=auth_header(token)).json()
        group = next(g for g in body["data"] if g["pet_id"] == pet_id)
        assert group["pet_name"] == "Recorded"
        assert len(group["medications"]) >= 2
        assert body["count"] >= 2

    stranger_body = client.get("/api/v1/medications", headers=auth_header(family["stranger"])).json()
    assert stranger_body["data"] == []
    assert stranger_body["count"] == 0


def test_owner_role_sub_user_may_mutate(family):
    client, pet_id = family["client"], family["pet_id"]
    resp = _create(client, family["owner_sub"], "weights", {"pet_id": pet_id, "weight": 11.2, "date": "2024-03-02"})
    assert resp.status_code == 201
    weight_id = resp.json()["data"]["id"]
    assert client.delete(f"/api/v1/weights/{weight_id}", headers=auth_header(family["owner_sub"])).status_code == 200


@pytest.mark.parametrize("who", ["caretaker_sub", "vet_sub", "grantee"])
def test_non_owner_roles_cannot_mutate(family, who):
    client, parent, pet_id = family["client"], family["parent"], family["pet_id"]
    token = family[who]

    denied = _create(client, token, "vaccinations", {"pet_id": pet_id, "vac_name": "Rabies", "vaccination_date": "2024-01-01"})
    assert denied.status_code == 403

    existing = _create(client, parent, "vaccinations", {"pet_id": pet_id, "vac_name": "Rabies", "vaccination_date": "2024-01-01"})
    vac_id = existing.json()["data"]["id"]
    assert client.put(f"/api/v1/vaccinations/{vac_id}", json={"notes": "x"}, headers=auth_header(token)).status_code == 403
    assert client.delete(f"/api/v1/vaccinations/{vac_id}", headers=auth_header(token)).status_code == 403
    # Reading is still allowed.
    assert client.get(f"/api/v1/vaccinations/{vac_id}", headers=auth_header(token)).status_code == 200


def test_record_id_ordering_404_then_403(family):
    client, parent, pet_id = family["client"], family["parent"], family["pet_id"]
    med_id = _create(client, parent, "medications", {"pet_id": pet_id, **MEDICATION}).json()["data"]["id"]
    stranger = auth_header(family["stranger"])

    assert client.get("/api/v1/medications/999999", headers=stranger).status_code == 404
    assert client.get(f"/api/v1/medications/{med_id}", headers=stranger).status_code == 403
    assert client.put(f"/api/v1/medications/{med_id}", json={"notes": "x"}, headers=stranger).status_code == 403


def test_pet_scoped_list_is_masked(family):
    client, pet_id = family["client"], family["pet_id"]
    assert client.get(f"/api/v1/weights/pet/{pet_id}", headers=auth_header(family["stranger"])).status_code == 404
    assert client.get(f"/api/v1/weights/pet/{pet_id}", headers=auth_header(family["grantee"])).status_code == 200


def test_create_for_unknown_pet(family):
    resp = _create(family["client"], family["parent"], "medications", {"pet_id": 999999, **MEDICATION})
    assert resp.status_code == 404


def test_create_validation(family):
    client, parent, pet_id = family["client"], family["parent"], family["pet_id"]
    resp = _create(client, parent, "medications", {"pet_id": pet_id, "med_name": "Drops", "medication_date": "March"})
    assert resp.status_code == 400
    assert resp.json()["errors"]


# ---------------------------------------------------------------------------
# Calendar events
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("who", ["vet_sub", "caretaker_sub", "grantee"])
def test_viewers_may_create_and_update_calendar_events(family, who):
    client, pet_id = family["client"], family["pet_id"]
    token = family[who]

    created = _create(client, token, "calendar-events", {"pet_id": pet_id, "title": "Checkup", "start_date": "2024-06-01"})
    assert created.status_code == 201
    event_id = created.json()["data"]["id"]

    updated = client.put(f"/api/v1/calendar-events/{event_id}", json={"title": "Moved"}, headers=auth_header(token))
    assert updated.status_code == 200
    assert updated.json()["data"]["title"] == "Moved"

    # Deleting needs owner-level rights.
    assert client.delete(f"/api/v1/calendar-events/{event_id}", headers=auth_header(token)).status_code == 403
    assert client.delete(f"/api/v1/calendar-events/{event_id}", headers=auth_header(family["owner_sub"])).status_code == 200


def test_stranger_cannot_create_calendar_event(family):
    resp = _create(
        family["client"],
        family["stranger"],
        "calendar-events",
        {"pet_id": family["pet_id"], "title": "Sneaky", "start_date": "2024-06-01"},
    )
    assert resp.status_code == 403


# ---------------------------------------------------------------------------
# Vet visits and types
# ---------------------------------------------------------------------------


def test_vet_visit_types_listed(family):
    body = family["client"].get("/api/v1/vet-visit-types", headers=auth_header(family["parent"])).json()
    assert body["count"] >= 1
    assert {"id", "name"} <= set(body["data"][0])


def test_vet_visit_with_type(family):
    client, parent, pet_id = family["client"], family["parent"], family["pet_id"]
    types = client.get("/api/v1/vet-visit-types", headers=auth_header(parent)).json()["data"]

    ok = _create(client, parent, "vet-visits", {"pet_id": pet_id, "visit_date": "2024-05-05", "type_id": types[0]["id"]})
    assert ok.status_code == 201
    assert ok.json()["data"]["type_name"] == types[0]["name"]

    bad = _create(client, parent, "vet-visits", {"pet_id": pet_id, "visit_date": "2024-05-05", "type_id": 999999})
    assert bad.status_code == 400

    grouped = client.get("/api/v1/vet-visits", headers=auth_header(parent)).json()["data"]
    assert any("vet_visits" in g for g in grouped)


def test_pet_detail_includes_records(family):
    client, parent, pet_id = family["client"], family["parent"], family["pet_id"]
    _create(client, parent, "weights", {"pet_id": pet_id, "weight": 9.5, "date": "2024-02-02"})
    detail = client.get(f"/api/v1/pets/{pet_id}", headers=auth_header(parent)).json()["data"]
    assert any(w["weight"] == 9.5 for w in detail["weights"])
