"""
api/routes/v1/gps_routes.py -- Recorded walk (GPS route) REST endpoints.

Routes:
  POST   /api/v1/routes                          -- create route + coordinate batch (atomic)
  GET    /api/v1/routes                          -- routes of listable pets + routes the caller recorded
  GET    /api/v1/routes/pet/{pet_id}             -- routes of one pet (view check, 404-masked)
  GET    /api/v1/routes/{route_id}               -- route with ordered coordinates
  POST   /api/v1/routes/{route_id}/coordinates   -- append a coordinate batch (atomic)
  PATCH  /api/v1/routes/{route_id}               -- update end time / statistics
  DELETE /api/v1/routes/{route_id}               -- delete route and its coordinates

A route is always attributed to the authenticated account (user_id), never
the effective account. Creating one requires can_act_on_pet on the pet.
Changing or deleting one is allowed for whoever recorded it and for anyone
who passes can_act_on_pet on its pet.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request

from api.models import (
    ApiResponse,
    CoordinatesAppend,
    RouteCreate,
    RouteDetailResponse,
    RouteResponse,
    RouteStatsUpdate,
)
from auth.dependencies import get_current_identity
from auth.identity import Identity, resolve_effective_account_id
from auth.permissions import PetPermissions
from core.errors import Forbidden, NotFound
from pets.models import Route, RouteCoordinate
from pets.route_store import RouteStore
from pets.store import PetStore

logger = logging.getLogger("petkeeper.routes")

router = APIRouter()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _fetch(request: Request, route_id: int) -> tuple[Route, str]:
    found = request.app.state.route_store.get_with_owner(route_id)
    if found is None:
        raise NotFound("Route not found.")
    return found


def _require_route_write(request: Request, route: Route, owner_id: str, identity: Identity) -> None:
    permissions: PetPermissions = request.app.state.permissions
    if route.user_id == identity.account_id:
        return
    if not permissions.can_act_on_pet(identity.account_id, owner_id):
        raise Forbidden("You do not have permission to modify this route.")


def _to_coordinates(body_coords) -> list[RouteCoordinate]:
    return [RouteCoordinate(**c.model_dump()) for c in body_coords]


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post("/routes", status_code=201, response_model=ApiResponse, response_model_exclude_none=True)
def create_route(
    request: Request,
    body: RouteCreate,
    identity: Identity = Depends(get_current_identity),
) -> ApiResponse:
    pet_store: PetStore = request.app.state.pet_store
    route_store: RouteStore = request.app.state.route_store
    permissions: PetPermissions = request.app.state.permissions

    owner_id = pet_store.get_owner_account_id(body.pet_id)
    if owner_id is None:
        raise NotFound("Pet not found.")
    if not permissions.can_act_on_pet(identity.account_id, owner_id):
        raise Forbidden("You do not have permission to record routes for this pet.")

    route = Route(
        pet_id=body.pet_id,
        user_id=identity.account_id,
        started_at=body.started_at,
        ended_at=body.ended_at,
        distance_m=body.distance_m,
        duration_s=body.duration_s,
        avg_speed_mps=body.avg_speed_mps,
    )
    route_id = route_store.create(route, _to_coordinates(body.coordinates))
    created = route_store.get(route_id)
    return ApiResponse(message="Route created successfully", data=RouteDetailResponse.model_validate(created))


@router.get("/routes", response_model=ApiResponse, response_model_exclude_none=True)
def list_routes(request: Request, identity: Identity = Depends(get_current_identity)) -> ApiResponse:
    pet_store: PetStore = request.app.state.pet_store
    pet_ids = pet_store.list_accessible_pet_ids(resolve_effective_account_id(identity), identity.account_id)
    found = request.app.state.route_store.list_for_account(pet_ids, identity.account_id)
    return ApiResponse(
        message="Routes retrieved successfully",
        data=[RouteResponse.model_validate(r) for r in found],
        count=len(found),
    )


@router.get("/routes/pet/{pet_id}", response_model=ApiResponse, response_model_exclude_none=True)
def list_routes_for_pet(
    request: Request,
    pet_id: int,
    identity: Identity = Depends(get_current_identity),
) -> ApiResponse:
    permissions: PetPermissions = request.app.state.permissions
    if not permissions.can_view_pet(pet_id, identity):
        raise NotFound("Pet not found.")
    found = request.app.state.route_store.list_for_pet(pet_id)
    return ApiResponse(
        message="Routes retrieved successfully",
        data=[RouteResponse.model_validate(r) for r in found],
        count=len(found),
    )


@router.get("/routes/{route_id}", response_model=ApiResponse, response_model_exclude_none=True)
def get_route(request: Request, route_id: int, identity: Identity = Depends(get_current_identity)) -> ApiResponse:
    route, _owner_id = _fetch(request, route_id)
    permissions: PetPermissions = request.app.state.permissions
    if route.user_id != identity.account_id and not permissions.can_view_pet(route.pet_id, identity):
        raise Forbidden("You do not have access to this route.")
    detail = request.app.state.route_store.get(route_id)
    if detail is None:
        raise NotFound("Route not found.")
    return ApiResponse(message="Route retrieved successfully", data=RouteDetailResponse.model_validate(detail))


@router.post("/routes/{route_id}/coordinates", response_model=ApiResponse, response_model_exclude_none=True)
def add_coordinates(
    request: Request,
    route_id: int,
    body: CoordinatesAppend,
    identity: Identity = Depends(get_current_identity),
) -> ApiResponse:
    route, owner_id = _fetch(request, route_id)
    _require_route_write(request, route, owner_id, identity)
    added = request.app.state.route_store.add_coordinates(route_id, _to_coordinates(body.coordinates))
    return ApiResponse(message="Coordinates added successfully", count=added)


@router.patch("/routes/{route_id}", response_model=ApiResponse, response_model_exclude_none=True)
def update_route_stats(
    request: Request,
    route_id: int,
    body: RouteStatsUpdate,
    identity: Identity = Depends(get_current_identity),
) -> ApiResponse:
    route, owner_id = _fetch(request, route_id)
    _require_route_write(request, route, owner_id, identity)
    updated = request.app.state.route_store.update_stats(route_id, **body.model_dump(exclude_unset=True))
    if updated is None:
        raise NotFound("Route not found.")
    return ApiResponse(message="Route updated successfully", data=RouteResponse.model_validate(updated))


@router.delete("/routes/{route_id}", response_model=ApiResponse, response_model_exclude_none=True)
def delete_route(request: Request, route_id: int, identity: Identity = Depends(get_current_identity)) -> ApiResponse:
    route, owner_id = _fetch(request, route_id)
    _require_route_write(request, route, owner_id, identity)
    if not request.app.state.route_store.delete(route_id):
        raise NotFound("Route not found.")
    logger.info("Route %s deleted by %s", route_id, identity.account_id)
    return ApiResponse(message="Route deleted successfully")
