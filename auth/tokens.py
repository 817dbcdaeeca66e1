"""
auth/tokens.py -- JWT issuance/validation and password hashing.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       the administrator's email and role:
         sub    -- email (standard subject claim)
         Email  -- email
         Perfil -- role ("Adm" or "Editor")
         role   -- role again, under the standard claim name role checks read
         exp    -- expiry, one day by default
       Verification returns None on any failure -- the dependency layer turns
       that into a 401.

  Passwords: bcrypt, used directly. Passwords are hashed at rest and compared
       with bcrypt.checkpw, which is constant time. The _DUMMY_HASH constant
       equalizes timing in authenticate_administrator() so response time
       does not reveal whether an email is registered.

  SECRET_KEY: sourced from core.config.get_settings(), which rejects missing
       keys outside dev mode and keys shorter than 32 characters.

Layer rule: no imports from api/ or cache/. Imports from core/ and fleet/
models are allowed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from core.config import get_settings

if TYPE_CHECKING:
    from fleet.models import Administrator
    from fleet.repository import UnitOfWork

logger = logging.getLogger("fleetadmin.auth")

# ---------------------------------------------------------------------------
# Config -- read once at module load via the lru_cache singleton
# ---------------------------------------------------------------------------

_settings = get_settings()

_ALGORITHM = "HS256"

EMAIL_CLAIM = "Email"
ROLE_CLAIM = "Perfil"
STANDARD_ROLE_CLAIM = "role"

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt only accepts up to 72 bytes of input. Administrator creation
    rejects longer UTF-8 encodings before this is reached; anything that
    still gets here raises ValueError.
    """
    encoded = plain.encode("utf-8")
    if len(encoded) > 72:
        raise ValueError("password exceeds 72 bytes")
    return bcrypt.hashpw(encoded, bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed hash in storage
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("fleetadmin_timing_dummy")


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def create_access_token(email: str, role: str, expire_seconds: int = 0) -> str:
    """Encode a signed JWT carrying the administrator's email and role.

    Args:
        email:          Administrator email, stored as sub and Email.
        role:           "Adm" or "Editor", stored as Perfil and role.
        expire_seconds: Token lifetime. If 0 (default), uses
                        Settings.token_expire_seconds (one day).
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    expire = datetime.now(timezone.utc) + timedelta(seconds=duration)
    payload = {
        "sub": email,
        EMAIL_CLAIM: email,
        ROLE_CLAIM: role,
        STANDARD_ROLE_CLAIM: role,
        "exp": expire,
    }
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def decode_access_token(token: str) -> dict | None:
    """Decode and verify a JWT. Returns the payload dict or None on any failure.

    python-jose checks the signature and the exp claim. A token without the
    Email or role claim is treated as invalid.
    """
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    if EMAIL_CLAIM not in payload or STANDARD_ROLE_CLAIM not in payload:
        return None
    return payload


# ---------------------------------------------------------------------------
# Administrator authentication (constant-time)
# ---------------------------------------------------------------------------


def authenticate_administrator(uow: UnitOfWork, email: str, password: str) -> Administrator | None:
    """Authenticate an email/password login with timing equalization.

    Always runs bcrypt whether or not the administrator exists:
    - Unknown email: bcrypt runs against _DUMMY_HASH (same cost as real check)
    - Wrong password: bcrypt runs against the stored hash (same cost)

    Returns the Administrator on success, None on any failure.
    """
    administrator = uow.administrators.get_by_email(email) if email else None
    if administrator is None:
        verify_password(password or "", _DUMMY_HASH)
        return None
    if not verify_password(password or "", administrator.password_hash):
        logger.info("Failed login for administrator id=%s", administrator.id)
        return None
    return administrator
