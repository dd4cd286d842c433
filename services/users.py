"""
services/users.py -- Administrative user management.

List results are cached under users:list:<page>:<per_page>. The cache is a
pass-through: a miss (or a cache failure) falls back to the database, and
writes never touch it directly. Handlers register invalidate_list_cache() as
a post-commit callback on the request context, so the pattern delete runs
only once the write has succeeded.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Any, Iterable, Optional

from sqlalchemy.exc import IntegrityError

from auth.models import User
from auth.store import UserStore
from auth.tokens import hash_password
from cache.store import CacheStore
from core.errors import conflict, not_found
from core.models import Page, Pagination
from rbac.store import RBACStore

logger = logging.getLogger("rbacapi.cache")

LIST_CACHE_PATTERN = "users:list:*"
EMAIL_TAKEN = "Email already exists"


def list_cache_key(page: int, per_page: int) -> str:
    return f"users:list:{page}:{per_page}"


def list_users(
    store: UserStore, cache: CacheStore, page: int, per_page: int, ttl: int = 300
) -> tuple[dict[str, Any], bool]:
    """Return ({"data", "meta"}, cached) for one page of users."""
    key = list_cache_key(page, per_page)
    try:
        hit = cache.get(key)
    except sqlite3.Error:
        logger.exception("Cache read failed for %s", key)
        hit = None
    if hit is not None:
        return hit, True

    pagination = Pagination(page=page, per_page=per_page, total=store.count_users())
    rows = store.list_users(skip=pagination.skip, limit=per_page)
    result = Page(data=[u.to_public() for u in rows], pagination=pagination).to_dict()

    try:
        cache.set(key, result, ttl=ttl)
    except sqlite3.Error:
        logger.exception("Cache write failed for %s", key)
    return result, False


def get_user(store: UserStore, rbac: RBACStore, user_id: str) -> dict[str, Any]:
    user = _require(store, user_id)
    data = user.to_public()
    data["roles"] = [r.summary() for r in rbac.get_user_roles(user_id)]
    return data


def create_user(
    store: UserStore,
    name: str,
    email: str,
    password: str,
    email_verified_at: Optional[str] = None,
) -> dict[str, Any]:
    if store.get_by_email(email) is not None:
        raise conflict(EMAIL_TAKEN)
    user = User(
        name=name,
        email=email,
        hashed_password=hash_password(password),
        email_verified_at=email_verified_at,
    )
    try:
        user_id = store.create_user(user)
    except IntegrityError:
        raise conflict(EMAIL_TAKEN) from None
    return store.get_by_id(user_id).to_public()


def update_user(store: UserStore, user_id: str, **fields: Any) -> dict[str, Any]:
    """Apply a partial update. A new password is re-hashed; None values are ignored."""
    _require(store, user_id)
    changes = {k: v for k, v in fields.items() if v is not None}

    email = changes.get("email")
    if email is not None:
        owner = store.get_by_email(email)
        if owner is not None and owner.id != user_id:
            raise conflict(EMAIL_TAKEN)

    if "password" in changes:
        changes["hashed_password"] = hash_password(changes.pop("password"))

    if changes:
        try:
            store.update_user(user_id, **changes)
        except IntegrityError:
            raise conflict(EMAIL_TAKEN) from None
    return store.get_by_id(user_id).to_public()


def delete_user(store: UserStore, user_id: str) -> dict[str, Any]:
    user = _require(store, user_id)
    store.delete_user(user_id)
    return {"id": user.id, "name": user.name, "email": user.email}


def assign_roles(store: UserStore, rbac: RBACStore, user_id: str, role_ids: Iterable[str]) -> dict[str, Any]:
    """Replace the user's whole role set (delete-all, insert-all)."""
    _require(store, user_id)
    ids = list(dict.fromkeys(role_ids))
    if len(rbac.find_roles(ids)) != len(ids):
        raise not_found("One or more roles not found")
    rbac.replace_user_roles(user_id, ids)
    return get_user(store, rbac, user_id)


def invalidate_list_cache(cache: CacheStore) -> int:
    removed = cache.delete_pattern(LIST_CACHE_PATTERN)
    logger.debug("Invalidated %d cached user list pages", removed)
    return removed


def _require(store: UserStore, user_id: str) -> User:
    user = store.get_by_id(user_id)
    if user is None:
        raise not_found(f"User with id {user_id} not found")
    return user
