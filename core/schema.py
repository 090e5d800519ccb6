"""
core/schema.py -- SQLAlchemy Core table definitions for PetKeeper.

All tables share one MetaData so foreign keys can cross the auth/pets
boundary: deleting an account cascades to its pets and, through the pets, to
every dependent record. Stores in auth/ and pets/ import the tables they
need from here; neither package owns the schema.

Cascade map (ON DELETE):
  accounts -> pets, pet_share_grants, routes           CASCADE
  accounts (sub-user side) -> sub_user_links           CASCADE
  accounts (parent side)   -> sub_user_links           RESTRICT
  pets -> medications, vaccinations, vet_visits,
          weights, calendar_events, routes,
          pet_share_grants                             CASCADE
  routes -> route_coordinates                          CASCADE

The RESTRICT on the parent side backs the rule that an account with
sub-users cannot be deleted until every link is removed.

Dates are stored as ISO 8601 text (YYYY-MM-DD for calendar dates, full
timestamps elsewhere), matching the string timestamps used throughout.
"""

from sqlalchemy import (
    CheckConstraint,
    Column,
    Float,
    ForeignKey,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
    UniqueConstraint,
)

metadata = MetaData()

# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------

accounts = Table(
    "accounts",
    metadata,
    Column("id", String(36), primary_key=True),  # UUID4 string
    Column("email", String(255), nullable=False, unique=True),
    Column("username", String(100), nullable=False, unique=True),
    Column("name", String(255)),
    Column("password_hash", Text, nullable=False),
    Column("is_superadmin", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
    Column("last_activity", String(32)),
)

# sub_user_id is the primary key: an account is sub-user of at most one
# parent at a time.
sub_user_links = Table(
    "sub_user_links",
    metadata,
    Column("sub_user_id", String(36), ForeignKey("accounts.id", ondelete="CASCADE"), primary_key=True),
    Column(
        "parent_account_id",
        String(36),
        ForeignKey("accounts.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    ),
    Column("role", String(20), nullable=False),
    Column("created_at", String(32), nullable=False),
    CheckConstraint("sub_user_id <> parent_account_id", name="ck_not_own_parent"),
)

# ---------------------------------------------------------------------------
# Pets and sharing
# ---------------------------------------------------------------------------

pets = Table(
    "pets",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("owner_id", String(36), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("name", String(255), nullable=False),
    Column("species", String(100)),
    Column("breed", String(100)),
    Column("sex", String(20)),
    Column("birthdate", String(10)),
    Column("notes", Text),
    Column("created_at", String(32), nullable=False),
)

pet_share_grants = Table(
    "pet_share_grants",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("pet_id", Integer, ForeignKey("pets.id", ondelete="CASCADE"), nullable=False),
    Column("account_id", String(36), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("role", String(20), nullable=False, server_default="caretaker"),
    Column("created_at", String(32), nullable=False),
    UniqueConstraint("pet_id", "account_id", name="uq_pet_grantee"),
)

# ---------------------------------------------------------------------------
# Medical / activity records
# ---------------------------------------------------------------------------

medications = Table(
    "medications",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("pet_id", Integer, ForeignKey("pets.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("med_name", String(255), nullable=False),
    Column("medication_date", String(10), nullable=False),
    Column("expire_date", String(10)),
    Column("notes", Text),
    Column("costs", Numeric(10, 2, asdecimal=False)),
)

vaccinations = Table(
    "vaccinations",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("pet_id", Integer, ForeignKey("pets.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("vac_name", String(255), nullable=False),
    Column("vaccination_date", String(10), nullable=False),
    Column("expire_date", String(10)),
    Column("notes", Text),
    Column("costs", Numeric(10, 2, asdecimal=False)),
)

vet_visit_types = Table(
    "vet_visit_types",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(100), nullable=False, unique=True),
)

vet_visits = Table(
    "vet_visits",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("pet_id", Integer, ForeignKey("pets.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("vet_name", String(255)),
    Column("location", String(255)),
    Column("type_id", Integer, ForeignKey("vet_visit_types.id")),
    Column("visit_date", String(10), nullable=False),
    Column("notes", Text),
    Column("costs", Numeric(10, 2, asdecimal=False)),
)

weights = Table(
    "weights",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("pet_id", Integer, ForeignKey("pets.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("weight", Float, nullable=False),
    Column("date", String(10), nullable=False),
    Column("created_at", String(32), nullable=False),
)

calendar_events = Table(
    "calendar_events",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("pet_id", Integer, ForeignKey("pets.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("type_id", Integer, ForeignKey("vet_visit_types.id")),
    Column("title", String(255), nullable=False),
    Column("description", Text),
    Column("start_date", String(10), nullable=False),
    Column("end_date", String(10)),
    Column("repeat_rule_min", Integer),
    Column("remind_before_min", Integer),
    Column("created_at", String(32), nullable=False),
)

# ---------------------------------------------------------------------------
# GPS routes
# ---------------------------------------------------------------------------

routes = Table(
    "routes",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("pet_id", Integer, ForeignKey("pets.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("user_id", String(36), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("started_at", String(32), nullable=False),
    Column("ended_at", String(32), nullable=False),
    Column("distance_m", Integer),
    Column("duration_s", Integer),
    Column("avg_speed_mps", Float),
)

route_coordinates = Table(
    "route_coordinates",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("route_id", Integer, ForeignKey("routes.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("latitude", Float, nullable=False),
    Column("longitude", Float, nullable=False),
    Column("altitude", Float),
    Column("accuracy", Float),
    Column("recorded_at", String(32), nullable=False),
    Column("speed_mps", Float),
)

# Seed rows for vet_visit_types. Inserted once when the table is empty.
DEFAULT_VET_VISIT_TYPES = ("Checkup", "Vaccination", "Illness", "Injury", "Surgery", "Dental", "Other")
