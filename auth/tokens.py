"""
auth/tokens.py -- Credential issuing/decoding and password hashing.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry a
       snapshot of the Principal (sub, email, role, organizationId, features,
       isSuperAdmin) plus iat/exp. The snapshot is informational for clients:
       the validator re-resolves claims from the database on every request and
       only trusts sub/email from the payload.

       create_access_token() accepts only a Principal, and the auth service
       only calls it with one fresh from EntitlementResolver.resolve(). A
       client-supplied claims blob can never be signed.

  Passwords: bcrypt directly. The _DUMMY_HASH constant enables timing
       equalization in authenticate_user() so response time does not reveal
       whether an email is registered.

  SECRET_KEY: sourced from core.config.get_settings(), which refuses to start
       in production mode without one.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from auth.errors import UnauthorizedError
from auth.models import Principal, User
from core.config import get_settings

if TYPE_CHECKING:
    from auth.store import UserStore

logger = logging.getLogger("gms.auth")

# ---------------------------------------------------------------------------
# Config -- read once at module load via the lru_cache singleton
# ---------------------------------------------------------------------------

_settings = get_settings()

_ALGORITHM = "HS256"

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt truncates input at 72 bytes; the API layer caps password length
    well below that.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash -- treat as a mismatch.
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("gms_timing_dummy")


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def create_access_token(
    principal: Principal,
    expire_seconds: int = 0,
    issued_at: datetime | None = None,
) -> str:
    """Sign a JWT carrying a snapshot of the principal's claims.

    Args:
        principal:      A Principal freshly produced by EntitlementResolver.
        expire_seconds: Token lifetime. If 0 (default), uses
                        Settings.token_expire_seconds.
        issued_at:      Issue time; defaults to now. Fixing it makes the
                        output deterministic.
    """
    if not isinstance(principal, Principal):
        raise TypeError("create_access_token() only signs a resolved Principal")
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    now = issued_at or datetime.now(timezone.utc)
    payload: dict = {
        "sub": principal.id,
        "email": principal.email,
        "role": principal.role,
        "features": list(principal.features),
        "isSuperAdmin": principal.is_super_admin,
        "iat": now,
        "exp": now + timedelta(seconds=duration),
    }
    if principal.organization_id is not None:
        payload["organizationId"] = principal.organization_id
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Verify signature and expiry and return the payload.

    Raises UnauthorizedError on any failure. Expiry is checked with no leeway:
    a token one second past exp is rejected.
    """
    try:
        return jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
    except JWTError as exc:
        logger.info("Rejected token: %s", exc)
        raise UnauthorizedError("Invalid or expired token") from exc


# ---------------------------------------------------------------------------
# User authentication (constant-time)
# ---------------------------------------------------------------------------


def authenticate_user(store: UserStore, email: str, password: str) -> User | None:
    """Check an email/password pair with timing equalization.

    Always runs bcrypt whether or not the user exists:
    - Unknown email: bcrypt runs against _DUMMY_HASH (same cost as real check)
    - Wrong password: bcrypt runs against the real hash (same cost)

    Returns the User on success, None on any failure. Callers must not tell
    the two failure cases apart in their response.
    """
    user = store.get_by_email(email)
    if user is None or user.hashed_password is None:
        verify_password(password, _DUMMY_HASH)
        logger.warning("Login failed: no account for %s", email)
        return None
    if not verify_password(password, user.hashed_password):
        logger.warning("Login failed: invalid password for %s", email)
        return None
    return user
