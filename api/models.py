"""
API request and response models for PetKeeper REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
pets/models.py, which own the internal domain representation. Route handlers
map between the two.

Every response uses one envelope:
    success  -- bool
    message  -- human-readable outcome
    data     -- payload (omitted on errors)
    errors   -- list of strings (validation failures only)

Separation of concerns: domain dataclasses = domain truth; api/ models = API contract.
"""

from __future__ import annotations

from typing import Annotated, Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.roles import DEFAULT_SHARE_ROLE, DEFAULT_SUB_USER_ROLE, Role
from pets.models import CompletePetRecord, PetRecord

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
USERNAME_PATTERN = r"^[A-Za-z0-9_]+$"
DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"

_Email = Annotated[str, Field(max_length=255, pattern=EMAIL_PATTERN)]
_Username = Annotated[str, Field(min_length=3, max_length=30, pattern=USERNAME_PATTERN)]
_Password = Annotated[str, Field(min_length=8, max_length=128)]
_IsoDate = Annotated[str, Field(pattern=DATE_PATTERN)]
_Cost = Annotated[float, Field(ge=0)]


def _check_password_strength(value: str) -> str:
    if not (any(c.islower() for c in value) and any(c.isupper() for c in value) and any(c.isdigit() for c in value)):
        raise ValueError("Password must contain at least one uppercase letter, one lowercase letter, and one number")
    return value


# ---------------------------------------------------------------------------
# Envelopes
# ---------------------------------------------------------------------------


class ApiResponse(BaseModel):
    """Success envelope returned by every endpoint."""

    success: bool = True
    message: str
    data: Any = None
    count: Optional[int] = None


class ErrorResponse(BaseModel):
    """Error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    success: bool = False
    message: str
    errors: Optional[list[str]] = None


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str
    version: str
    components: dict[str, str]


# ---------------------------------------------------------------------------
# Auth -- request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: _Email
    username: _Username
    password: _Password
    name: Optional[str] = Field(default=None, max_length=100)

    @field_validator("password")
    @classmethod
    def password_strength(cls, value: str) -> str:
        return _check_password_strength(value)


class SubUserRegisterRequest(RegisterRequest):
    """Request body for POST /api/v1/auth/sub-users. role defaults to caretaker."""

    role: Role = DEFAULT_SUB_USER_ROLE


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login. username may also be an email."""

    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=128)


class EmailUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: _Email


class PasswordUpdate(BaseModel):
    current_password: str = Field(min_length=1, max_length=128)
    new_password: _Password

    @field_validator("new_password")
    @classmethod
    def password_strength(cls, value: str) -> str:
        return _check_password_strength(value)


class SubUserLinkRequest(BaseModel):
    """Request body for POST /api/v1/auth/sub-users/link. login is a username or email."""

    model_config = ConfigDict(str_strip_whitespace=True)

    login: str = Field(min_length=1, max_length=255)
    role: Role = DEFAULT_SUB_USER_ROLE


class RoleUpdate(BaseModel):
    role: Role


# ---------------------------------------------------------------------------
# Auth -- response models
# ---------------------------------------------------------------------------


class AccountResponse(BaseModel):
    """Public view of an account. Never includes the password hash."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    username: str
    name: Optional[str] = None
    created_at: Optional[str] = None
    last_activity: Optional[str] = None


class MeResponse(AccountResponse):
    parent_account_id: Optional[str] = None
    role: Optional[Role] = None
    effective_account_id: str


class LoginData(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: MeResponse


class SubUserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    username: str
    role: Role
    name: Optional[str] = None
    created_at: Optional[str] = None
    last_activity: Optional[str] = None
    linked_at: Optional[str] = None


class ParentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    username: str
    role: Role
    name: Optional[str] = None


# ---------------------------------------------------------------------------
# Pets
# ---------------------------------------------------------------------------


class PetCreate(BaseModel):
    """Request body for POST /api/v1/pets."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=255)
    species: Optional[str] = Field(default=None, max_length=100)
    breed: Optional[str] = Field(default=None, max_length=100)
    sex: Optional[str] = Field(default=None, max_length=20)
    birthdate: Optional[_IsoDate] = None
    notes: Optional[str] = Field(default=None, max_length=2000)


class PetUpdate(BaseModel):
    """Request body for PUT /api/v1/pets/{pet_id}. Omitted fields keep their value."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    species: Optional[str] = Field(default=None, max_length=100)
    breed: Optional[str] = Field(default=None, max_length=100)
    sex: Optional[str] = Field(default=None, max_length=20)
    birthdate: Optional[_IsoDate] = None
    notes: Optional[str] = Field(default=None, max_length=2000)


class PetResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    owner_id: str
    name: str
    species: Optional[str] = None
    breed: Optional[str] = None
    sex: Optional[str] = None
    birthdate: Optional[str] = None
    notes: Optional[str] = None
    created_at: str


class PetListItem(PetResponse):
    is_owner: bool
    role: Optional[Role] = None


class ShareCodeRequest(BaseModel):
    """Optional body for POST /api/v1/pets/{pet_id}/share. Omit for the default lifetime."""

    ttl_seconds: Optional[int] = Field(default=None, gt=0)


class ShareCodeResponse(BaseModel):
    share_code: str
    pet_id: int
    expires_at: str
    ttl_seconds: int


class RedeemRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    share_code: str = Field(min_length=1, max_length=4096)


class ShareGrantCreate(BaseModel):
    """Request body for POST /api/v1/pets/{pet_id}/shared-users. login is a username or email."""

    model_config = ConfigDict(str_strip_whitespace=True)

    login: str = Field(min_length=1, max_length=255)
    role: Role = DEFAULT_SHARE_ROLE


class ShareGrantResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    pet_id: int
    account_id: str
    role: Role
    created_at: str
    username: Optional[str] = None
    email: Optional[str] = None
    name: Optional[str] = None


# ---------------------------------------------------------------------------
# Medical / activity records
# ---------------------------------------------------------------------------


class MedicationCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    pet_id: int
    med_name: str = Field(min_length=1, max_length=255)
    medication_date: _IsoDate
    expire_date: Optional[_IsoDate] = None
    notes: Optional[str] = Field(default=None, max_length=2000)
    costs: Optional[_Cost] = None


class MedicationUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    med_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    medication_date: Optional[_IsoDate] = None
    expire_date: Optional[_IsoDate] = None
    notes: Optional[str] = Field(default=None, max_length=2000)
    costs: Optional[_Cost] = None


class VaccinationCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    pet_id: int
    vac_name: str = Field(min_length=1, max_length=255)
    vaccination_date: _IsoDate
    expire_date: Optional[_IsoDate] = None
    notes: Optional[str] = Field(default=None, max_length=2000)
    costs: Optional[_Cost] = None


class VaccinationUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    vac_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    vaccination_date: Optional[_IsoDate] = None
    expire_date: Optional[_IsoDate] = None
    notes: Optional[str] = Field(default=None, max_length=2000)
    costs: Optional[_Cost] = None


class VetVisitCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    pet_id: int
    visit_date: _IsoDate
    vet_name: Optional[str] = Field(default=None, max_length=255)
    location: Optional[str] = Field(default=None, max_length=255)
    type_id: Optional[int] = None
    notes: Optional[str] = Field(default=None, max_length=2000)
    costs: Optional[_Cost] = None


class VetVisitUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    visit_date: Optional[_IsoDate] = None
    vet_name: Optional[str] = Field(default=None, max_length=255)
    location: Optional[str] = Field(default=None, max_length=255)
    type_id: Optional[int] = None
    notes: Optional[str] = Field(default=None, max_length=2000)
    costs: Optional[_Cost] = None


class WeightCreate(BaseModel):
    pet_id: int
    weight: float = Field(gt=0, le=1000)
    date: _IsoDate


class WeightUpdate(BaseModel):
    weight: Optional[float] = Field(default=None, gt=0, le=1000)
    date: Optional[_IsoDate] = None


class CalendarEventCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    pet_id: int
    title: str = Field(min_length=1, max_length=255)
    start_date: _IsoDate
    end_date: Optional[_IsoDate] = None
    type_id: Optional[int] = None
    description: Optional[str] = Field(default=None, max_length=2000)
    repeat_rule_min: Optional[int] = Field(default=None, ge=0)
    remind_before_min: Optional[int] = Field(default=None, ge=0)


class CalendarEventUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    start_date: Optional[_IsoDate] = None
    end_date: Optional[_IsoDate] = None
    type_id: Optional[int] = None
    description: Optional[str] = Field(default=None, max_length=2000)
    repeat_rule_min: Optional[int] = Field(default=None, ge=0)
    remind_before_min: Optional[int] = Field(default=None, ge=0)


# ---------------------------------------------------------------------------
# GPS routes
# ---------------------------------------------------------------------------


class CoordinateIn(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    recorded_at: str = Field(min_length=1, max_length=40)
    altitude: Optional[float] = None
    accuracy: Optional[float] = Field(default=None, ge=0)
    speed_mps: Optional[float] = Field(default=None, ge=0)


class RouteCreate(BaseModel):
    pet_id: int
    started_at: str = Field(min_length=1, max_length=40)
    ended_at: str = Field(min_length=1, max_length=40)
    distance_m: Optional[int] = Field(default=None, ge=0)
    duration_s: Optional[int] = Field(default=None, ge=0)
    avg_speed_mps: Optional[float] = Field(default=None, ge=0)
    coordinates: list[CoordinateIn] = Field(default_factory=list, max_length=20000)


class CoordinatesAppend(BaseModel):
    coordinates: list[CoordinateIn] = Field(min_length=1, max_length=20000)


class RouteStatsUpdate(BaseModel):
    ended_at: Optional[str] = Field(default=None, min_length=1, max_length=40)
    distance_m: Optional[int] = Field(default=None, ge=0)
    duration_s: Optional[int] = Field(default=None, ge=0)
    avg_speed_mps: Optional[float] = Field(default=None, ge=0)


class CoordinateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    latitude: float
    longitude: float
    recorded_at: str
    altitude: Optional[float] = None
    accuracy: Optional[float] = None
    speed_mps: Optional[float] = None


class RouteResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    pet_id: int
    user_id: str
    started_at: str
    ended_at: str
    distance_m: Optional[int] = None
    duration_s: Optional[int] = None
    avg_speed_mps: Optional[float] = None
    pet_name: Optional[str] = None


class RouteDetailResponse(RouteResponse):
    coordinates: list[CoordinateResponse] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Payload builders
#
# Record rows share one dataclass (pets.models.PetRecord) whose data columns
# vary by kind, so they are flattened to dicts here rather than given one
# response model per table.
# ---------------------------------------------------------------------------


def record_payload(record: PetRecord) -> dict:
    """Flatten a PetRecord into {"id", "pet_id", <data columns>}."""
    return {"id": record.id, "pet_id": record.pet_id, **record.fields}


def group_records_by_pet(records: list[PetRecord], key: str) -> list[dict]:
    """Group records under their pet: [{"pet_id", "pet_name", key: [...]}, ...].

    Input order is preserved, both for the pets and within each pet.
    """
    groups: dict[int, dict] = {}
    for rec in records:
        group = groups.setdefault(rec.pet_id, {"pet_id": rec.pet_id, "pet_name": rec.pet_name, key: []})
        group[key].append(record_payload(rec))
    return list(groups.values())


def complete_record_payload(complete: CompletePetRecord) -> dict:
    """Serialize a pet with its medical history for detail and share redemption responses."""
    return {
        **PetResponse.model_validate(complete.pet).model_dump(),
        "medications": [record_payload(r) for r in complete.medications],
        "vaccinations": [record_payload(r) for r in complete.vaccinations],
        "weights": [record_payload(r) for r in complete.weights],
        "vet_visits": [record_payload(r) for r in complete.vet_visits],
    }
