"""
auth/tokens.py -- JWT issuance/verification and password hashing.

Security design decisions:
  JWT: python-jose with HS256. Two independent token classes:
       access tokens are signed with JWT_SECRET and live JWT_EXPIRES_IN,
       refresh tokens are signed with JWT_REFRESH_SECRET and live
       JWT_REFRESH_EXPIRES_IN. A refresh token therefore never verifies as an
       access token and vice versa. Both carry userId and email.
       Verification returns None on any failure -- the stage layer turns that
       into a 401. Tokens are stateless: there is no revocation list, so a
       token stays valid until it expires.

  Passwords: bcrypt used directly (no passlib wrapper). The _DUMMY_HASH
       constant enables timing equalization in authenticate_user() so response
       time does not reveal whether an email is registered.

Layer rule: no imports from api/, services/, rbac/, or cache/. Import from
core/ is allowed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from auth.models import Identity, TokenPair
from core.config import Settings

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("rbacapi.auth")

_ALGORITHM = "HS256"
_TOKEN_TYPE = "Bearer"

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt silently truncates inputs beyond 72 bytes; the request schemas cap
    passwords at 255 chars, which keeps typical input well below that.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed hash in the database -- treat as a mismatch.
        return False


# Computed once at import so the first login is not measurably slower.
_DUMMY_HASH: str = hash_password("rbacapi_timing_dummy")


def authenticate_user(store: UserStore, email: str, password: str) -> User | None:
    """Return the user when email + password match, None otherwise.

    bcrypt runs whether or not the email exists:
    - unknown email: checked against _DUMMY_HASH (same cost as a real check)
    - wrong password: checked against the real hash
    """
    user = store.get_by_email(email)
    if user is None or not user.hashed_password:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return user


# ---------------------------------------------------------------------------
# Token service
# ---------------------------------------------------------------------------


class TokenService:
    """Signs and verifies access/refresh tokens with the configured secrets.

    Usage:
        tokens = TokenService(get_settings())
        pair = tokens.generate_token_pair(Identity(user_id=..., email=...))
        identity = tokens.verify_access_token(pair.access_token)  # or None
    """

    def __init__(self, settings: Settings) -> None:
        self._access_secret = settings.jwt_secret
        self._refresh_secret = settings.jwt_refresh_secret
        self._access_ttl = settings.access_ttl_seconds
        self._refresh_ttl = settings.refresh_ttl_seconds
        self.expires_in = settings.jwt_expires_in

    def generate_access_token(self, identity: Identity, ttl_seconds: int | None = None) -> str:
        return _encode(identity, self._access_secret, self._access_ttl if ttl_seconds is None else ttl_seconds)

    def generate_refresh_token(self, identity: Identity, ttl_seconds: int | None = None) -> str:
        return _encode(identity, self._refresh_secret, self._refresh_ttl if ttl_seconds is None else ttl_seconds)

    def generate_token_pair(self, identity: Identity) -> TokenPair:
        return TokenPair(
            access_token=self.generate_access_token(identity),
            refresh_token=self.generate_refresh_token(identity),
            token_type=_TOKEN_TYPE,
            expires_in=self.expires_in,
        )

    def verify_access_token(self, token: str) -> Identity | None:
        return _decode(token, self._access_secret)

    def verify_refresh_token(self, token: str) -> Identity | None:
        return _decode(token, self._refresh_secret)


def _encode(identity: Identity, secret: str, ttl_seconds: int) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "userId": identity.user_id,
        "email": identity.email,
        "iat": now,
        "exp": now + timedelta(seconds=ttl_seconds),
    }
    return jwt.encode(payload, secret, algorithm=_ALGORITHM)


def _decode(token: str, secret: str) -> Identity | None:
    """Decode and verify a JWT. Returns None on any failure, never raises."""
    try:
        payload = jwt.decode(token, secret, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    user_id = payload.get("userId")
    email = payload.get("email")
    if not isinstance(user_id, str) or not isinstance(email, str):
        return None
    return Identity(user_id=user_id, email=email)
