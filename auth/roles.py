"""
auth/roles.py -- The single role vocabulary shared by sub-user links and pet
share grants.

One closed enumeration with one textual encoding. The same three values are
stored in sub_user_links.role and pet_share_grants.role, carried in the login
token's "role" claim, and accepted by every request body that takes a role.

  owner         -- owner-equivalent. A sub-user with this role may mutate the
                   parent's pet records exactly like the parent.
  caretaker     -- day-to-day access. Default for new sub-users and for
                   share-code grants.
  veterinarian  -- read access plus calendar entries, no record mutation.

Layer rule: no imports from api/ or pets/.
"""

from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    OWNER = "owner"
    CARETAKER = "caretaker"
    VETERINARIAN = "veterinarian"


# The role that grants mutation rights equal to the pet owner's.
OWNER_EQUIVALENT = Role.OWNER

DEFAULT_SUB_USER_ROLE = Role.CARETAKER
DEFAULT_SHARE_ROLE = Role.CARETAKER


def parse_role(value: str | None) -> Role | None:
    """Return the Role for a stored or claimed string, or None if unknown.

    Tolerates surrounding whitespace and case differences; anything outside
    the closed set maps to None so callers can treat it as "no role".
    """
    if value is None:
        return None
    try:
        return Role(value.strip().lower())
    except ValueError:
        return None
