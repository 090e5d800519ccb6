"""
api/routes/v1/pets.py -- Pet CRUD and pet sharing REST endpoints.

Routes:
  GET    /api/v1/pets                                     -- pets of the effective account + shared pets
  POST   /api/v1/pets                                     -- create (owner = caller)
  GET    /api/v1/pets/{pet_id}                            -- aggregated record (view check)
  PUT    /api/v1/pets/{pet_id}                            -- partial update (direct owner only)
  DELETE /api/v1/pets/{pet_id}                            -- delete with all records (direct owner only)
  POST   /api/v1/pets/{pet_id}/share                      -- issue a share code (direct owner only)
  POST   /api/v1/pets/share/redeem                        -- redeem a share code
  GET    /api/v1/pets/{pet_id}/shared-users               -- list grants (direct owner only)
  POST   /api/v1/pets/{pet_id}/shared-users               -- explicit grant (direct owner only)
  DELETE /api/v1/pets/{pet_id}/shared-users/{account_id}  -- revoke a grant (direct owner only)

Existence masking: an actor who cannot see a pet at all gets 404 for every
pet-scoped route, exactly as if the id did not exist. 403 is reserved for
actors who can see the pet but are not its owner.

Security:
  Share-code redemption is rate-limited per IP.
  IDOR guard: pet update/delete pass the caller's id to the store as owner_id.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Body, Depends, Request

from api.limiter import limiter
from api.models import (
    ApiResponse,
    PetCreate,
    PetListItem,
    PetResponse,
    PetUpdate,
    RedeemRequest,
    ShareCodeRequest,
    ShareCodeResponse,
    ShareGrantCreate,
    ShareGrantResponse,
    complete_record_payload,
)
from auth.dependencies import get_current_identity
from auth.identity import Identity, resolve_effective_account_id
from auth.permissions import PetPermissions
from core.config import get_settings
from core.errors import Forbidden, NotFound
from pets.models import Pet
from pets.sharing import ShareService
from pets.store import PetStore

logger = logging.getLogger("petkeeper.pets")
_settings = get_settings()

router = APIRouter()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _require_visible(request: Request, pet_id: int, identity: Identity) -> None:
    """404 unless the identity can see the pet at all."""
    permissions: PetPermissions = request.app.state.permissions
    if not permissions.can_view_pet(pet_id, identity):
        raise NotFound("Pet not found.")


def _require_owner(request: Request, pet_id: int, identity: Identity) -> None:
    """404 if invisible, 403 if visible but not owned by the caller."""
    _require_visible(request, pet_id, identity)
    permissions: PetPermissions = request.app.state.permissions
    if not permissions.is_pet_owner(pet_id, identity.account_id):
        raise Forbidden("Only the pet's owner can do this.")


# ---------------------------------------------------------------------------
# Pets
# ---------------------------------------------------------------------------


@router.get("/pets", response_model=ApiResponse, response_model_exclude_none=True)
def list_pets(request: Request, identity: Identity = Depends(get_current_identity)) -> ApiResponse:
    store: PetStore = request.app.state.pet_store
    items = store.list_for_account(resolve_effective_account_id(identity), identity.account_id)
    data = [
        PetListItem(**PetResponse.model_validate(i.pet).model_dump(), is_owner=i.is_owner, role=i.role)
        for i in items
    ]
    return ApiResponse(message="Pets retrieved successfully", data=data, count=len(data))


@router.post("/pets", status_code=201, response_model=ApiResponse, response_model_exclude_none=True)
def create_pet(
    request: Request,
    body: PetCreate,
    identity: Identity = Depends(get_current_identity),
) -> ApiResponse:
    store: PetStore = request.app.state.pet_store
    pet_id = store.create(Pet(owner_id=identity.account_id, **body.model_dump()))
    logger.info("Pet %s created by %s", pet_id, identity.account_id)
    return ApiResponse(message="Pet added successfully", data=PetResponse.model_validate(store.get(pet_id)))


@router.get("/pets/{pet_id}", response_model=ApiResponse, response_model_exclude_none=True)
def get_pet(request: Request, pet_id: int, identity: Identity = Depends(get_current_identity)) -> ApiResponse:
    _require_visible(request, pet_id, identity)
    record = request.app.state.pet_store.get_complete_record(pet_id)
    if record is None:
        raise NotFound("Pet not found.")
    return ApiResponse(message="Pet retrieved successfully", data=complete_record_payload(record))


@router.put("/pets/{pet_id}", response_model=ApiResponse, response_model_exclude_none=True)
def update_pet(
    request: Request,
    pet_id: int,
    body: PetUpdate,
    identity: Identity = Depends(get_current_identity),
) -> ApiResponse:
    _require_owner(request, pet_id, identity)
    store: PetStore = request.app.state.pet_store
    if not store.update_owned(pet_id, identity.account_id, **body.model_dump(exclude_unset=True)):
        raise NotFound("Pet not found.")
    return ApiResponse(message="Pet updated successfully", data=PetResponse.model_validate(store.get(pet_id)))


@router.delete("/pets/{pet_id}", response_model=ApiResponse, response_model_exclude_none=True)
def delete_pet(request: Request, pet_id: int, identity: Identity = Depends(get_current_identity)) -> ApiResponse:
    _require_owner(request, pet_id, identity)
    if not request.app.state.pet_store.delete_owned(pet_id, identity.account_id):
        raise NotFound("Pet not found.")
    logger.info("Pet %s deleted by %s", pet_id, identity.account_id)
    return ApiResponse(message="Pet deleted successfully")


# ---------------------------------------------------------------------------
# Share codes
# ---------------------------------------------------------------------------


@router.post("/pets/{pet_id}/share", status_code=201, response_model=ApiResponse, response_model_exclude_none=True)
def issue_share_code(
    request: Request,
    pet_id: int,
    body: ShareCodeRequest | None = Body(default=None),
    identity: Identity = Depends(get_current_identity),
) -> ApiResponse:
    _require_visible(request, pet_id, identity)
    sharing: ShareService = request.app.state.share_service
    issued = sharing.issue(pet_id, identity.account_id, body.ttl_seconds if body else None)
    return ApiResponse(
        message="Share code generated successfully",
        data=ShareCodeResponse(
            share_code=issued.code,
            pet_id=issued.pet_id,
            expires_at=issued.expires_at.isoformat(),
            ttl_seconds=issued.ttl_seconds,
        ),
    )


@limiter.limit(_settings.redeem_rate_limit)
@router.post("/pets/share/redeem", response_model=ApiResponse, response_model_exclude_none=True)
def redeem_share_code(
    request: Request,
    body: RedeemRequest,
    identity: Identity = Depends(get_current_identity),
) -> ApiResponse:
    """Redeem a share code as the authenticated account (never the effective account)."""
    sharing: ShareService = request.app.state.share_service
    record = sharing.redeem(body.share_code, identity.account_id)
    return ApiResponse(message="Pet shared successfully", data=complete_record_payload(record))


# ---------------------------------------------------------------------------
# Explicit grants
# ---------------------------------------------------------------------------


@router.get("/pets/{pet_id}/shared-users", response_model=ApiResponse, response_model_exclude_none=True)
def list_shared_users(
    request: Request,
    pet_id: int,
    identity: Identity = Depends(get_current_identity),
) -> ApiResponse:
    _require_visible(request, pet_id, identity)
    grants = request.app.state.share_service.list_grants(pet_id, identity.account_id)
    return ApiResponse(
        message="Shared users retrieved successfully",
        data=[ShareGrantResponse.model_validate(g) for g in grants],
        count=len(grants),
    )


@router.post(
    "/pets/{pet_id}/shared-users", status_code=201, response_model=ApiResponse, response_model_exclude_none=True
)
def add_shared_user(
    request: Request,
    pet_id: int,
    body: ShareGrantCreate,
    identity: Identity = Depends(get_current_identity),
) -> ApiResponse:
    _require_visible(request, pet_id, identity)
    grantee = request.app.state.account_store.get_by_login(body.login)
    if grantee is None:
        raise NotFound("User not found.")
    grant = request.app.state.share_service.grant(pet_id, identity.account_id, grantee.id, body.role)
    grant.username, grant.email, grant.name = grantee.username, grantee.email, grantee.name
    return ApiResponse(message="Pet shared successfully", data=ShareGrantResponse.model_validate(grant))


@router.delete(
    "/pets/{pet_id}/shared-users/{account_id}", response_model=ApiResponse, response_model_exclude_none=True
)
def remove_shared_user(
    request: Request,
    pet_id: int,
    account_id: str,
    identity: Identity = Depends(get_current_identity),
) -> ApiResponse:
    _require_visible(request, pet_id, identity)
    request.app.state.share_service.revoke(pet_id, identity.account_id, account_id)
    return ApiResponse(message="Shared user removed successfully")
