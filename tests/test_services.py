"""
tests/test_services.py -- Domain services and pagination.

Services are plain functions over stores, so they are exercised directly
against the in-memory stores and CacheStore fixtures.
"""

from __future__ import annotations

import sqlite3

import pytest

from auth.tokens import TokenService
from core.errors import ErrorKind, ServiceError
from core.models import Pagination
from services import auth as auth_service
from services import permissions as permissions_service
from services import roles as roles_service
from services import users as users_service

# ---------------------------------------------------------------------------
# Pagination
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "page, per_page, total, total_pages, has_next, has_prev",
    [
        (1, 10, 95, 10, True, False),
        (10, 10, 95, 10, False, True),
        (3, 10, 95, 10, True, True),
        (1, 10, 0, 0, False, False),
        (2, 5, 10, 2, False, True),
    ],
)
def test_pagination_meta(page, per_page, total, total_pages, has_next, has_prev):
    meta = Pagination(page=page, per_page=per_page, total=total).meta()
    assert meta == {
        "total": total,
        "page": page,
        "per_page": per_page,
        "total_pages": total_pages,
        "has_next_page": has_next,
        "has_prev_page": has_prev,
    }


def test_pagination_skip():
    assert Pagination(page=3, per_page=10).skip == 20


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


@pytest.fixture
def tokens(settings) -> TokenService:
    return TokenService(settings)


def test_register_login_refresh_profile(stores, tokens):
    users, _ = stores
    session = auth_service.register(users, tokens, "Ada", "ada@example.com", "Secret123")
    assert session["token_type"] == "Bearer"
    assert session["user"]["email"] == "ada@example.com"
    assert "password" not in session["user"]

    login = auth_service.login(users, tokens, "ada@example.com", "Secret123")
    assert login["user"]["id"] == session["user"]["id"]

    pair = auth_service.refresh(users, tokens, login["refresh_token"])
    assert set(pair) == {"access_token", "refresh_token", "token_type", "expires_in"}

    assert auth_service.profile(users, session["user"]["id"])["name"] == "Ada"


def test_register_duplicate_email_is_conflict(stores, tokens):
    users, _ = stores
    auth_service.register(users, tokens, "Ada", "ada@example.com", "Secret123")
    with pytest.raises(ServiceError) as exc:
        auth_service.register(users, tokens, "Other", "ada@example.com", "Secret123")
    assert exc.value.kind is ErrorKind.CONFLICT
    assert exc.value.status_code == 409
    assert exc.value.message == "User with this email already exists"


@pytest.mark.parametrize("email, password", [("ada@example.com", "Wrong1234"), ("nobody@example.com", "Secret123")])
def test_login_failures_share_one_message(stores, tokens, email, password):
    users, _ = stores
    auth_service.register(users, tokens, "Ada", "ada@example.com", "Secret123")
    with pytest.raises(ServiceError) as exc:
        auth_service.login(users, tokens, email, password)
    assert exc.value.kind is ErrorKind.UNAUTHENTICATED
    assert exc.value.message == "Invalid credentials"


def test_refresh_for_deleted_user(stores, tokens):
    users, _ = stores
    session = auth_service.register(users, tokens, "Ada", "ada@example.com", "Secret123")
    users.delete_user(session["user"]["id"])

    with pytest.raises(ServiceError) as exc:
        auth_service.refresh(users, tokens, session["refresh_token"])
    assert exc.value.message == "User not found"

    with pytest.raises(ServiceError) as exc:
        auth_service.refresh(users, tokens, session["access_token"])
    assert exc.value.message == "Invalid or expired refresh token"


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


def test_list_users_is_cached_until_invalidated(stores, cache):
    users, _ = stores
    users_service.create_user(users, "Ada", "ada@example.com", "Secret123")

    first, cached = users_service.list_users(users, cache, 1, 10)
    assert cached is False
    assert first["meta"]["total"] == 1

    users_service.create_user(users, "Bob", "bob@example.com", "Secret123")
    stale, cached = users_service.list_users(users, cache, 1, 10)
    assert cached is True
    assert stale == first

    assert users_service.invalidate_list_cache(cache) == 1
    fresh, cached = users_service.list_users(users, cache, 1, 10)
    assert cached is False
    assert fresh["meta"]["total"] == 2


def test_list_users_survives_cache_failure(stores):
    users, _ = stores

    class BrokenCache:
        def get(self, key):
            raise sqlite3.OperationalError("database is locked")

        def set(self, key, value, ttl=None):
            raise sqlite3.OperationalError("database is locked")

    result, cached = users_service.list_users(users, BrokenCache(), 1, 10)
    assert cached is False
    assert result["data"] == []


def test_update_user_email_conflict_excludes_self(stores):
    users, _ = stores
    ada = users_service.create_user(users, "Ada", "ada@example.com", "Secret123")
    users_service.create_user(users, "Bob", "bob@example.com", "Secret123")

    same = users_service.update_user(users, ada["id"], email="ada@example.com", name="Ada L.")
    assert same["name"] == "Ada L."

    with pytest.raises(ServiceError) as exc:
        users_service.update_user(users, ada["id"], email="bob@example.com")
    assert exc.value.message == "Email already exists"


def test_update_user_rehashes_password(stores, tokens):
    users, _ = stores
    ada = users_service.create_user(users, "Ada", "ada@example.com", "Secret123")
    users_service.update_user(users, ada["id"], password="NewSecret456")

    assert auth_service.login(users, tokens, "ada@example.com", "NewSecret456")["user"]["id"] == ada["id"]


def test_missing_user_is_not_found(stores):
    users, rbac = stores
    with pytest.raises(ServiceError) as exc:
        users_service.get_user(users, rbac, "00000000-0000-4000-8000-000000000000")
    assert exc.value.kind is ErrorKind.NOT_FOUND
    assert exc.value.message == "User with id 00000000-0000-4000-8000-000000000000 not found"


def test_assign_roles_replaces_the_set(stores):
    users, rbac = stores
    ada = users_service.create_user(users, "Ada", "ada@example.com", "Secret123")
    r1 = roles_service.create_role(rbac, "reader")["id"]
    r2 = roles_service.create_role(rbac, "writer")["id"]

    users_service.assign_roles(users, rbac, ada["id"], [r1])
    detail = users_service.assign_roles(users, rbac, ada["id"], [r2])
    assert [r["name"] for r in detail["roles"]] == ["writer"]

    with pytest.raises(ServiceError) as exc:
        users_service.assign_roles(users, rbac, ada["id"], [r1, "00000000-0000-4000-8000-000000000000"])
    assert exc.value.message == "One or more roles not found"
    assert rbac.get_user_role_names(ada["id"]) == {"writer"}


# ---------------------------------------------------------------------------
# Roles and permissions
# ---------------------------------------------------------------------------


def test_role_name_conflicts(stores):
    _, rbac = stores
    editor = roles_service.create_role(rbac, "editor")
    roles_service.create_role(rbac, "viewer")

    # Renaming to its own name is not a conflict; case differs -> distinct name
    assert roles_service.update_role(rbac, editor["id"], name="editor")["name"] == "editor"
    assert roles_service.create_role(rbac, "Editor")["name"] == "Editor"

    with pytest.raises(ServiceError) as exc:
        roles_service.update_role(rbac, editor["id"], name="viewer")
    assert exc.value.kind is ErrorKind.CONFLICT
    assert exc.value.message == "Role with this name already exists"


def test_assign_permissions_validates_every_id(stores):
    _, rbac = stores
    role = roles_service.create_role(rbac, "editor")
    read = permissions_service.create_permission(rbac, "posts.read")

    with pytest.raises(ServiceError) as exc:
        roles_service.assign_permissions(rbac, role["id"], [read["id"], "00000000-0000-4000-8000-000000000000"])
    assert exc.value.message == "One or more permissions not found"

    with pytest.raises(ServiceError) as exc:
        roles_service.assign_permissions(rbac, "00000000-0000-4000-8000-000000000000", [read["id"]])
    assert exc.value.message == "Role not found"

    detail = roles_service.assign_permissions(rbac, role["id"], [read["id"]])
    assert [p["name"] for p in detail["permissions"]] == ["posts.read"]


def test_permission_lifecycle(stores):
    _, rbac = stores
    created = permissions_service.create_permission(rbac, "posts.read", "Read posts")
    with pytest.raises(ServiceError):
        permissions_service.create_permission(rbac, "posts.read")

    updated = permissions_service.update_permission(rbac, created["id"], description="Read any post")
    assert updated["description"] == "Read any post"

    page = permissions_service.list_permissions(rbac, 1, 10)
    assert page["data"][0]["roles_count"] == 0
    assert page["meta"]["total"] == 1

    assert permissions_service.delete_permission(rbac, created["id"])["id"] == created["id"]
    with pytest.raises(ServiceError) as exc:
        permissions_service.get_permission(rbac, created["id"])
    assert exc.value.message == "Permission not found"
