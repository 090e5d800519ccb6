"""
pets/records.py -- One repository for every per-pet record table.

Medications, vaccinations, vet visits, weights and calendar events are all
"rows hanging off a pet": same key shape, same ownership path
(record -> pet -> owner_id), same CRUD. They differ only in their data
columns and sort key, so each table is described once by a RecordKind and a
single RecordStore serves all of them.

get_with_owner() resolves the pet owner in the same query as the record. The
route layer feeds that owner id to auth.permissions.PetPermissions; this
module enforces no authorization itself.

Updates are partial: a None value means "keep the stored value", matching
the COALESCE-style updates the mobile client relies on.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import Table, select

from core.database import Database
from core.schema import calendar_events, medications, pets, vaccinations, vet_visit_types, vet_visits, weights
from pets.models import PetRecord, VetVisitType


@dataclass(frozen=True)
class RecordKind:
    """Static description of one record table."""

    name: str
    table: Table
    columns: tuple[str, ...]  # client-writable data columns
    sort_column: str  # newest first within a pet
    has_created_at: bool = False
    has_visit_type: bool = False

    @property
    def output_columns(self) -> tuple[str, ...]:
        return self.columns + ("created_at",) if self.has_created_at else self.columns


MEDICATIONS = RecordKind(
    name="medication",
    table=medications,
    columns=("med_name", "medication_date", "expire_date", "notes", "costs"),
    sort_column="medication_date",
)

VACCINATIONS = RecordKind(
    name="vaccination",
    table=vaccinations,
    columns=("vac_name", "vaccination_date", "expire_date", "notes", "costs"),
    sort_column="vaccination_date",
)

VET_VISITS = RecordKind(
    name="vet_visit",
    table=vet_visits,
    columns=("vet_name", "location", "type_id", "visit_date", "notes", "costs"),
    sort_column="visit_date",
    has_visit_type=True,
)

WEIGHTS = RecordKind(
    name="weight",
    table=weights,
    columns=("weight", "date"),
    sort_column="date",
    has_created_at=True,
)

CALENDAR_EVENTS = RecordKind(
    name="calendar_event",
    table=calendar_events,
    columns=("type_id", "title", "description", "start_date", "end_date", "repeat_rule_min", "remind_before_min"),
    sort_column="created_at",
    has_created_at=True,
    has_visit_type=True,
)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class RecordStore:
    """Repository for PetRecord rows of any RecordKind.

    Usage:
        records = RecordStore(db)
        rec = records.create(WEIGHTS, pet_id, {"weight": 12.4, "date": "2024-05-01"})
        found = records.get_with_owner(WEIGHTS, rec.id)   # (record, owner_id) or None
        records.update(WEIGHTS, rec.id, {"weight": 12.9})
    """

    def __init__(self, db: Database) -> None:
        self.engine = db.engine

    def _base_query(self, kind: RecordKind, *extra):
        t = kind.table
        cols = [t, pets.c.name.label("pet_name"), *extra]
        joined = t.join(pets, pets.c.id == t.c.pet_id)
        if kind.has_visit_type:
            cols.append(vet_visit_types.c.name.label("type_name"))
            joined = joined.outerjoin(vet_visit_types, vet_visit_types.c.id == t.c.type_id)
        return select(*cols).select_from(joined)

    def get(self, kind: RecordKind, record_id: int) -> PetRecord | None:
        found = self.get_with_owner(kind, record_id)
        return found[0] if found is not None else None

    def get_with_owner(self, kind: RecordKind, record_id: int) -> tuple[PetRecord, str] | None:
        """Return (record, pet owner account id), or None if the record does not exist."""
        query = self._base_query(kind, pets.c.owner_id.label("owner_id")).where(kind.table.c.id == record_id)
        with self.engine.connect() as conn:
            row = conn.execute(query).fetchone()
        if row is None:
            return None
        return _row_to_record(kind, row), row.owner_id

    def list_for_pet(self, kind: RecordKind, pet_id: int) -> list[PetRecord]:
        t = kind.table
        query = (
            self._base_query(kind)
            .where(t.c.pet_id == pet_id)
            .order_by(t.c[kind.sort_column].desc(), t.c.id.desc())
        )
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_record(kind, r) for r in rows]

    def list_for_pets(self, kind: RecordKind, pet_ids: list[int]) -> list[PetRecord]:
        """Records of several pets, ordered by pet name then newest first."""
        if not pet_ids:
            return []
        t = kind.table
        query = (
            self._base_query(kind)
            .where(t.c.pet_id.in_(pet_ids))
            .order_by(pets.c.name, t.c.pet_id, t.c[kind.sort_column].desc(), t.c.id.desc())
        )
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_record(kind, r) for r in rows]

    def create(self, kind: RecordKind, pet_id: int, values: dict) -> PetRecord | None:
        """Insert a record for pet_id and return it as read back. Unknown keys in values are ignored."""
        data = {k: values.get(k) for k in kind.columns}
        if kind.has_created_at:
            data["created_at"] = _now_iso()
        with self.engine.begin() as conn:
            result = conn.execute(kind.table.insert().values(pet_id=pet_id, **data))
        return self.get(kind, result.inserted_primary_key[0])

    def update(self, kind: RecordKind, record_id: int, values: dict) -> PetRecord | None:
        """Apply a partial update. Returns the updated record, or None if it does not exist."""
        data = {k: v for k, v in values.items() if k in kind.columns and v is not None}
        if data:
            with self.engine.begin() as conn:
                conn.execute(kind.table.update().where(kind.table.c.id == record_id).values(**data))
        return self.get(kind, record_id)

    def delete(self, kind: RecordKind, record_id: int) -> bool:
        with self.engine.begin() as conn:
            result = conn.execute(kind.table.delete().where(kind.table.c.id == record_id))
        return result.rowcount > 0

    def list_vet_visit_types(self) -> list[VetVisitType]:
        with self.engine.connect() as conn:
            rows = conn.execute(select(vet_visit_types).order_by(vet_visit_types.c.id)).fetchall()
        return [VetVisitType(id=r.id, name=r.name) for r in rows]

    def vet_visit_type_exists(self, type_id: int) -> bool:
        with self.engine.connect() as conn:
            row = conn.execute(select(vet_visit_types.c.id).where(vet_visit_types.c.id == type_id)).fetchone()
        return row is not None


def _row_to_record(kind: RecordKind, row) -> PetRecord:
    m = row._mapping
    fields = {c: m[c] for c in kind.output_columns}
    if kind.has_visit_type:
        fields["type_name"] = m["type_name"]
    return PetRecord(kind=kind.name, id=m["id"], pet_id=m["pet_id"], pet_name=m["pet_name"], fields=fields)
