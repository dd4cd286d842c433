"""
tests/test_stores.py -- UserStore and RBACStore against an in-memory database.

Covers:
  - email / name uniqueness backed by the UNIQUE constraints
  - newest-first paging
  - replacement semantics of the junction writers
  - cascading deletes leave no orphan junction rows
  - effective permissions = union over all assigned roles
  - idempotent seeding of the default catalogue
"""

from __future__ import annotations

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from auth.models import User
from core.database import role_permissions, user_roles
from rbac.models import Permission, Role
from rbac.seed import ADMIN_ROLE, DEFAULT_PERMISSIONS, seed_defaults


def _user(users, email="ada@example.com", name="Ada") -> str:
    return users.create_user(User(name=name, email=email, hashed_password="x"))


def _junction_rows(rbac) -> dict[str, int]:
    with rbac.engine.connect() as conn:
        return {
            "user_roles": conn.execute(select(func.count()).select_from(user_roles)).scalar(),
            "role_permissions": conn.execute(select(func.count()).select_from(role_permissions)).scalar(),
        }


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


def test_create_and_fetch_user(stores):
    users, _ = stores
    user_id = _user(users)

    user = users.get_by_id(user_id)
    assert user.email == "ada@example.com"
    assert user.created_at == user.updated_at
    assert "password" not in user.to_public()
    assert "hashed_password" not in user.to_public()
    assert users.get_by_email("ada@example.com").id == user_id
    assert users.get_by_email("ADA@example.com") is None


def test_duplicate_email_raises_integrity_error(stores):
    users, _ = stores
    _user(users)
    with pytest.raises(IntegrityError):
        _user(users, name="Other")


def test_list_users_newest_first(stores, monkeypatch):
    users, _ = stores
    ticks = iter(range(10))
    monkeypatch.setattr("auth.store.now_iso", lambda: f"2026-01-01T00:00:0{next(ticks)}.000000+00:00")
    ids = [_user(users, email=f"u{i}@example.com", name=f"User {i}") for i in range(5)]

    page = users.list_users(skip=0, limit=2)
    assert [u.id for u in page] == [ids[4], ids[3]]
    assert [u.id for u in users.list_users(skip=4, limit=2)] == [ids[0]]
    assert users.count_users() == 5


def test_update_user_rejects_unknown_fields(stores):
    users, _ = stores
    user_id = _user(users)
    assert users.update_user(user_id, name="Ada L.") is True
    assert users.get_by_id(user_id).name == "Ada L."
    assert users.update_user("missing", name="x") is False
    with pytest.raises(ValueError):
        users.update_user(user_id, role="admin")


# ---------------------------------------------------------------------------
# Roles and permissions
# ---------------------------------------------------------------------------


def test_replace_role_permissions_is_not_a_merge(stores):
    _, rbac = stores
    role_id = rbac.create_role(Role(name="editor"))
    p1 = rbac.create_permission(Permission(name="posts.read"))
    p2 = rbac.create_permission(Permission(name="posts.update"))

    rbac.replace_role_permissions(role_id, [p1])
    rbac.replace_role_permissions(role_id, [p2])

    assert [p.id for p in rbac.get_role(role_id).permissions] == [p2]


def test_role_name_lookup_is_case_sensitive_and_can_exclude(stores):
    _, rbac = stores
    role_id = rbac.create_role(Role(name="Editor"))
    assert rbac.get_role_by_name("editor") is None
    assert rbac.get_role_by_name("Editor").id == role_id
    assert rbac.get_role_by_name("Editor", exclude_id=role_id) is None


def test_effective_permissions_union_across_roles(stores):
    users, rbac = stores
    user_id = _user(users)
    reader = rbac.create_role(Role(name="reader"))
    writer = rbac.create_role(Role(name="writer"))
    read = rbac.create_permission(Permission(name="posts.read"))
    write = rbac.create_permission(Permission(name="posts.update"))
    rbac.replace_role_permissions(reader, [read])
    rbac.replace_role_permissions(writer, [read, write])

    rbac.replace_user_roles(user_id, [reader, writer])

    assert rbac.get_user_role_names(user_id) == {"reader", "writer"}
    assert rbac.get_user_permission_names(user_id) == {"posts.read", "posts.update"}


def test_role_detail_counts_users(stores):
    users, rbac = stores
    role_id = rbac.create_role(Role(name="reader"))
    for i in range(3):
        rbac.replace_user_roles(_user(users, email=f"u{i}@example.com"), [role_id])

    assert rbac.get_role(role_id).users_count == 3
    assert rbac.list_roles()[0].users_count == 3


def test_delete_role_cascades(stores):
    users, rbac = stores
    user_id = _user(users)
    role_id = rbac.create_role(Role(name="reader"))
    perm_id = rbac.create_permission(Permission(name="posts.read"))
    rbac.replace_role_permissions(role_id, [perm_id])
    rbac.replace_user_roles(user_id, [role_id])

    assert rbac.delete_role(role_id) is True
    assert _junction_rows(rbac) == {"user_roles": 0, "role_permissions": 0}
    assert rbac.get_user_permission_names(user_id) == set()
    assert rbac.delete_role(role_id) is False


def test_delete_permission_and_user_cascade(stores):
    users, rbac = stores
    user_id = _user(users)
    role_id = rbac.create_role(Role(name="reader"))
    perm_id = rbac.create_permission(Permission(name="posts.read"))
    rbac.replace_role_permissions(role_id, [perm_id])
    rbac.replace_user_roles(user_id, [role_id])

    rbac.delete_permission(perm_id)
    assert _junction_rows(rbac)["role_permissions"] == 0

    users.delete_user(user_id)
    assert _junction_rows(rbac)["user_roles"] == 0
    assert rbac.get_role(role_id) is not None


def test_permission_detail_lists_roles(stores):
    _, rbac = stores
    perm_id = rbac.create_permission(Permission(name="posts.read"))
    for name in ("b-role", "a-role"):
        rbac.replace_role_permissions(rbac.create_role(Role(name=name)), [perm_id])

    permission = rbac.get_permission(perm_id)
    assert [r.name for r in permission.roles] == ["a-role", "b-role"]
    assert rbac.list_permissions()[0].roles_count == 2


# ---------------------------------------------------------------------------
# Seeding
# ---------------------------------------------------------------------------


def test_seed_defaults_is_idempotent(stores):
    users, rbac = stores
    first = seed_defaults(users, rbac, admin_email="root@example.com", admin_password="RootPass123")
    second = seed_defaults(users, rbac, admin_email="root@example.com", admin_password="RootPass123")

    assert first["permissions"] == len(DEFAULT_PERMISSIONS)
    assert second["permissions"] == 0
    assert first["role_id"] == second["role_id"]
    assert first["admin_id"] == second["admin_id"]
    assert rbac.count_permissions() == len(DEFAULT_PERMISSIONS)
    assert rbac.get_user_role_names(first["admin_id"]) == {ADMIN_ROLE}
    assert rbac.get_user_permission_names(first["admin_id"]) == set(DEFAULT_PERMISSIONS)


def test_seed_without_admin_account(stores):
    users, rbac = stores
    summary = seed_defaults(users, rbac)
    assert summary["admin_id"] is None
    assert users.count_users() == 0
