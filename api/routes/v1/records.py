"""
api/routes/v1/records.py -- REST endpoints for per-pet medical and activity records.

One router factory serves every record table in pets/records.py. Each
generated router exposes:

  GET    /api/v1/{path}                  -- records of every listable pet, grouped by pet
  GET    /api/v1/{path}/pet/{pet_id}     -- records of one pet (view check, 404-masked)
  GET    /api/v1/{path}/{record_id}      -- one record (404 if absent, 403 if not viewable)
  POST   /api/v1/{path}                  -- create
  PUT    /api/v1/{path}/{record_id}      -- partial update
  DELETE /api/v1/{path}/{record_id}      -- delete

plus GET /api/v1/vet-visit-types.

Write checks:
  Medications, vaccinations, vet visits and weights: create, update and
  delete all require PetPermissions.can_act_on_pet (owner or owner-equivalent
  sub-user).
  Calendar events: create and update only require that the caller can view
  the pet (owner, grantee, or any sub-user of either); delete requires
  can_act_on_pet like the other record types.

Record handlers follow "fetch -> 404 if absent -> 403 if unauthorized".

No `from __future__ import annotations` here: the handlers are defined inside
build_record_router() and FastAPI must resolve their body model annotations
from the enclosing scope at definition time.
"""

import logging

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from api.models import (
    ApiResponse,
    CalendarEventCreate,
    CalendarEventUpdate,
    MedicationCreate,
    MedicationUpdate,
    VaccinationCreate,
    VaccinationUpdate,
    VetVisitCreate,
    VetVisitUpdate,
    WeightCreate,
    WeightUpdate,
    group_records_by_pet,
    record_payload,
)
from auth.dependencies import get_current_identity
from auth.identity import Identity, resolve_effective_account_id
from auth.permissions import PetPermissions
from core.errors import Forbidden, InvalidInput, NotFound
from pets.records import CALENDAR_EVENTS, MEDICATIONS, VACCINATIONS, VET_VISITS, WEIGHTS, RecordKind, RecordStore
from pets.store import PetStore

logger = logging.getLogger("petkeeper.records")


def _check_type_id(records: RecordStore, kind: RecordKind, values: dict) -> None:
    type_id = values.get("type_id")
    if kind.has_visit_type and type_id is not None and not records.vet_visit_type_exists(type_id):
        raise InvalidInput("Validation failed.", errors=[f"type_id: unknown visit type {type_id}"])


def build_record_router(
    kind: RecordKind,
    path: str,
    label: str,
    group_key: str,
    create_model: type[BaseModel],
    update_model: type[BaseModel],
    viewers_may_write: bool = False,
) -> APIRouter:
    """Return a router with list/detail/create/update/delete endpoints for one record kind.

    label is the singular human name used in messages ("Medication");
    group_key names the per-pet list in grouped responses ("medications").
    viewers_may_write relaxes create/update to the pet view check.
    """
    router = APIRouter()
    plural = group_key.replace("_", " ")

    def _require_write(request: Request, pet_id: int, owner_id: str, identity: Identity, delete: bool) -> None:
        permissions: PetPermissions = request.app.state.permissions
        if viewers_may_write and not delete:
            allowed = permissions.can_view_pet(pet_id, identity)
        else:
            allowed = permissions.can_act_on_pet(identity.account_id, owner_id)
        if not allowed:
            logger.warning("%s on pet %s denied for %s", kind.name, pet_id, identity.account_id)
            raise Forbidden(f"You do not have permission to modify {plural} for this pet.")

    def _fetch(request: Request, record_id: int):
        records: RecordStore = request.app.state.record_store
        found = records.get_with_owner(kind, record_id)
        if found is None:
            raise NotFound(f"{label} not found.")
        return found

    @router.get(f"/{path}", response_model=ApiResponse, response_model_exclude_none=True)
    def list_records(request: Request, identity: Identity = Depends(get_current_identity)) -> ApiResponse:
        pet_store: PetStore = request.app.state.pet_store
        records: RecordStore = request.app.state.record_store
        pet_ids = pet_store.list_accessible_pet_ids(resolve_effective_account_id(identity), identity.account_id)
        rows = records.list_for_pets(kind, pet_ids)
        grouped = group_records_by_pet(rows, group_key)
        return ApiResponse(message=f"{label}s retrieved successfully", data=grouped, count=len(rows))

    @router.get(f"/{path}/pet/{{pet_id}}", response_model=ApiResponse, response_model_exclude_none=True)
    def list_for_pet(
        request: Request,
        pet_id: int,
        identity: Identity = Depends(get_current_identity),
    ) -> ApiResponse:
        permissions: PetPermissions = request.app.state.permissions
        if not permissions.can_view_pet(pet_id, identity):
            raise NotFound("Pet not found.")
        rows = request.app.state.record_store.list_for_pet(kind, pet_id)
        return ApiResponse(
            message=f"{label}s retrieved successfully",
            data=[record_payload(r) for r in rows],
            count=len(rows),
        )

    @router.get(f"/{path}/{{record_id}}", response_model=ApiResponse, response_model_exclude_none=True)
    def get_record(
        request: Request,
        record_id: int,
        identity: Identity = Depends(get_current_identity),
    ) -> ApiResponse:
        record, _owner_id = _fetch(request, record_id)
        permissions: PetPermissions = request.app.state.permissions
        if not permissions.can_view_pet(record.pet_id, identity):
            raise Forbidden(f"You do not have access to this {label.lower()}.")
        return ApiResponse(message=f"{label} retrieved successfully", data=record_payload(record))

    @router.post(f"/{path}", status_code=201, response_model=ApiResponse, response_model_exclude_none=True)
    def create_record(
        request: Request,
        body: create_model,
        identity: Identity = Depends(get_current_identity),
    ) -> ApiResponse:
        pet_store: PetStore = request.app.state.pet_store
        records: RecordStore = request.app.state.record_store
        values = body.model_dump()
        pet_id = values.pop("pet_id")
        owner_id = pet_store.get_owner_account_id(pet_id)
        if owner_id is None:
            raise NotFound("Pet not found.")
        _require_write(request, pet_id, owner_id, identity, delete=False)
        _check_type_id(records, kind, values)
        record = records.create(kind, pet_id, values)
        logger.info("%s %s created for pet %s by %s", kind.name, record.id, pet_id, identity.account_id)
        return ApiResponse(message=f"{label} added successfully", data=record_payload(record))

    @router.put(f"/{path}/{{record_id}}", response_model=ApiResponse, response_model_exclude_none=True)
    def update_record(
        request: Request,
        record_id: int,
        body: update_model,
        identity: Identity = Depends(get_current_identity),
    ) -> ApiResponse:
        records: RecordStore = request.app.state.record_store
        record, owner_id = _fetch(request, record_id)
        _require_write(request, record.pet_id, owner_id, identity, delete=False)
        values = body.model_dump(exclude_unset=True)
        _check_type_id(records, kind, values)
        updated = records.update(kind, record_id, values)
        if updated is None:
            raise NotFound(f"{label} not found.")
        return ApiResponse(message=f"{label} updated successfully", data=record_payload(updated))

    @router.delete(f"/{path}/{{record_id}}", response_model=ApiResponse, response_model_exclude_none=True)
    def delete_record(
        request: Request,
        record_id: int,
        identity: Identity = Depends(get_current_identity),
    ) -> ApiResponse:
        record, owner_id = _fetch(request, record_id)
        _require_write(request, record.pet_id, owner_id, identity, delete=True)
        if not request.app.state.record_store.delete(kind, record_id):
            raise NotFound(f"{label} not found.")
        logger.info("%s %s deleted by %s", kind.name, record_id, identity.account_id)
        return ApiResponse(message=f"{label} deleted successfully")

    return router


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

medications_router = build_record_router(
    MEDICATIONS, "medications", "Medication", "medications", MedicationCreate, MedicationUpdate
)
vaccinations_router = build_record_router(
    VACCINATIONS, "vaccinations", "Vaccination", "vaccinations", VaccinationCreate, VaccinationUpdate
)
vet_visits_router = build_record_router(VET_VISITS, "vet-visits", "Vet visit", "vet_visits", VetVisitCreate, VetVisitUpdate)
weights_router = build_record_router(WEIGHTS, "weights", "Weight", "weights", WeightCreate, WeightUpdate)
calendar_router = build_record_router(
    CALENDAR_EVENTS,
    "calendar-events",
    "Calendar event",
    "calendar_events",
    CalendarEventCreate,
    CalendarEventUpdate,
    viewers_may_write=True,
)

vet_visit_types_router = APIRouter()


@vet_visit_types_router.get("/vet-visit-types", response_model=ApiResponse, response_model_exclude_none=True)
def list_vet_visit_types(request: Request, identity: Identity = Depends(get_current_identity)) -> ApiResponse:
    types = request.app.state.record_store.list_vet_visit_types()
    return ApiResponse(
        message="Vet visit types retrieved successfully",
        data=[{"id": t.id, "name": t.name} for t in types],
        count=len(types),
    )
