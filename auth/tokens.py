"""
auth/tokens.py -- JWT, password hashing, and share-code utilities.

Security design decisions:
  Access tokens: python-jose with HS256. Tokens are signed with SECRET_KEY and
       carry account_id, username, and -- for sub-users -- parent_account_id
       and role as they were at login time. Verification returns None on any
       failure; the dependency layer turns that into a 401.

  Share codes: the same signing key and algorithm, but a distinct "type"
       claim ("pet_share" vs "access") so neither kind of token can be
       replayed as the other. A share code is stateless: nothing is stored,
       and its validity is decided entirely by signature and expiry at
       redemption time.

  Passwords: bcrypt, called directly. The _DUMMY_HASH constant enables timing
       equalization in authenticate_account() so response time does not
       reveal whether a username or email exists.

  SECRET_KEY: sourced from core.config.get_settings(), which validates it at
       startup.

Layer rule: no imports from api/ or pets/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from core.config import get_settings

if TYPE_CHECKING:
    from auth.models import Account
    from auth.roles import Role
    from auth.store import AccountStore

logger = logging.getLogger("petkeeper.auth")

# ---------------------------------------------------------------------------
# Config -- read once at module load via the lru_cache singleton
# ---------------------------------------------------------------------------

_settings = get_settings()

_ALGORITHM = "HS256"
_ACCESS_TOKEN_TYPE = "access"
SHARE_CODE_TYPE = "pet_share"

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt only looks at the first 72 bytes. The API layer caps passwords at
    128 characters, and registration requires at least 8.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("petkeeper_timing_dummy")


# ---------------------------------------------------------------------------
# Access tokens
# ---------------------------------------------------------------------------


def create_access_token(
    account_id: str,
    username: str,
    parent_account_id: str | None = None,
    role: Role | None = None,
    expire_seconds: int = 0,
) -> str:
    """Encode a signed login token.

    parent_account_id and role are only written when both are present; a
    token for a non-sub-user carries neither. If expire_seconds is 0 the
    configured Settings.token_expire_seconds is used.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    expire = datetime.now(timezone.utc) + timedelta(seconds=duration)
    payload: dict = {
        "sub": username,
        "account_id": account_id,
        "type": _ACCESS_TOKEN_TYPE,
        "exp": expire,
    }
    if parent_account_id is not None and role is not None:
        payload["parent_account_id"] = parent_account_id
        payload["role"] = role.value
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def decode_access_token(token: str) -> dict | None:
    """Decode and verify a login token. Returns the payload dict or None on any failure.

    Share codes are signed with the same key; the type check keeps them from
    being accepted as bearer credentials.
    """
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    if payload.get("type") != _ACCESS_TOKEN_TYPE or "account_id" not in payload:
        return None
    return payload


# ---------------------------------------------------------------------------
# Share codes
# ---------------------------------------------------------------------------


def create_share_code(pet_id: int, ttl_seconds: int) -> tuple[str, datetime]:
    """Sign a share code for one pet. Returns (code, expires_at).

    The caller is responsible for bounding ttl_seconds; this function signs
    whatever it is given.
    """
    now = datetime.now(timezone.utc)
    expires_at = now + timedelta(seconds=ttl_seconds)
    payload = {
        "pet_id": pet_id,
        "type": SHARE_CODE_TYPE,
        "issued_at": now.isoformat(),
        "exp": expires_at,
    }
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM), expires_at


def decode_share_code(code: str) -> int | None:
    """Return the pet id a share code grants, or None.

    Bad signature, expiry, malformed token, wrong type and missing pet id all
    return None: callers cannot tell which check failed, and neither can the
    client they report to.
    """
    try:
        payload = jwt.decode(code, _settings.secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    if payload.get("type") != SHARE_CODE_TYPE:
        return None
    pet_id = payload.get("pet_id")
    if not isinstance(pet_id, int) or isinstance(pet_id, bool):
        return None
    return pet_id


# ---------------------------------------------------------------------------
# Account authentication (constant-time)
# ---------------------------------------------------------------------------


def authenticate_account(store: AccountStore, login: str, password: str) -> Account | None:
    """Authenticate a username-or-email login with timing equalization.

    A login containing "@" is looked up as an email, anything else as a
    username. bcrypt runs whether or not the account exists so response time
    does not reveal which identifiers are registered.

    Returns the Account on success, None on any failure.
    """
    if "@" in login:
        account = store.get_by_email(login)
    else:
        account = store.get_by_username(login)
    if account is None:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, account.password_hash):
        return None
    return account
