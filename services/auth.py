"""
services/auth.py -- Registration, login, token refresh and profile lookup.

Every function is stateless: stores and the TokenService are passed in.
Failures raise ServiceError; the HTTP layer maps the kind to a status.

Login deliberately answers "Invalid credentials" for both an unknown email
and a wrong password, and authenticate_user() runs bcrypt in both cases so
timing does not reveal which one happened.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.exc import IntegrityError

from auth.models import Identity, User
from auth.store import UserStore
from auth.tokens import TokenService, authenticate_user, hash_password
from core.errors import conflict, not_found, unauthenticated

logger = logging.getLogger("rbacapi.auth")

EMAIL_TAKEN = "User with this email already exists"


def register(store: UserStore, tokens: TokenService, name: str, email: str, password: str) -> dict[str, Any]:
    """Create an account and return a token pair plus the public user."""
    if store.get_by_email(email) is not None:
        raise conflict(EMAIL_TAKEN)

    try:
        user_id = store.create_user(User(name=name, email=email, hashed_password=hash_password(password)))
    except IntegrityError:
        # Lost a race with a concurrent registration for the same email.
        raise conflict(EMAIL_TAKEN) from None

    user = store.get_by_id(user_id)
    logger.info("Registered user %s", user_id)
    return _session(tokens, user)


def login(store: UserStore, tokens: TokenService, email: str, password: str) -> dict[str, Any]:
    user = authenticate_user(store, email, password)
    if user is None:
        logger.info("Failed login for %s", email)
        raise unauthenticated("Invalid credentials")
    return _session(tokens, user)


def refresh(store: UserStore, tokens: TokenService, refresh_token: str) -> dict[str, Any]:
    """Exchange a refresh token for a fresh pair. The user must still exist."""
    identity = tokens.verify_refresh_token(refresh_token)
    if identity is None:
        raise unauthenticated("Invalid or expired refresh token")
    user = store.get_by_id(identity.user_id)
    if user is None:
        raise unauthenticated("User not found")
    return tokens.generate_token_pair(Identity(user_id=user.id, email=user.email)).to_dict()


def profile(store: UserStore, user_id: str) -> dict[str, Any]:
    user = store.get_by_id(user_id)
    if user is None:
        raise not_found("User not found")
    return user.to_public()


def _session(tokens: TokenService, user: User) -> dict[str, Any]:
    pair = tokens.generate_token_pair(Identity(user_id=user.id, email=user.email))
    return {**pair.to_dict(), "user": user.to_public()}
