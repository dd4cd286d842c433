"""
services/roles.py -- Role CRUD and permission assignment.

Name uniqueness is exact and case-sensitive. The check runs before the write
and ignores the row being updated; the UNIQUE constraint on roles.name
settles any race that slips past it (IntegrityError -> conflict).

assign_permissions() replaces the role's permission set wholesale. Assigning
[p1] and then [p2] leaves only p2.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional

from sqlalchemy.exc import IntegrityError

from core.errors import conflict, not_found
from core.models import Page, Pagination
from rbac.models import Role
from rbac.store import RBACStore

NAME_TAKEN = "Role with this name already exists"


def list_roles(store: RBACStore, page: int, per_page: int) -> dict[str, Any]:
    pagination = Pagination(page=page, per_page=per_page, total=store.count_roles())
    rows = store.list_roles(skip=pagination.skip, limit=per_page)
    return Page(data=[r.to_detail() for r in rows], pagination=pagination).to_dict()


def get_role(store: RBACStore, role_id: str) -> dict[str, Any]:
    return _require(store, role_id).to_detail()


def create_role(store: RBACStore, name: str, description: Optional[str] = None) -> dict[str, Any]:
    if store.get_role_by_name(name) is not None:
        raise conflict(NAME_TAKEN)
    try:
        role_id = store.create_role(Role(name=name, description=description))
    except IntegrityError:
        raise conflict(NAME_TAKEN) from None
    return store.get_role(role_id).to_public()


def update_role(store: RBACStore, role_id: str, **fields: Any) -> dict[str, Any]:
    _require(store, role_id)
    changes = {k: v for k, v in fields.items() if v is not None}
    name = changes.get("name")
    if name is not None and store.get_role_by_name(name, exclude_id=role_id) is not None:
        raise conflict(NAME_TAKEN)
    if changes:
        try:
            store.update_role(role_id, **changes)
        except IntegrityError:
            raise conflict(NAME_TAKEN) from None
    return store.get_role(role_id).to_public()


def delete_role(store: RBACStore, role_id: str) -> dict[str, Any]:
    role = _require(store, role_id)
    store.delete_role(role_id)
    return role.summary()


def assign_permissions(store: RBACStore, role_id: str, permission_ids: Iterable[str]) -> dict[str, Any]:
    _require(store, role_id)
    ids = list(dict.fromkeys(permission_ids))
    if len(store.find_permissions(ids)) != len(ids):
        raise not_found("One or more permissions not found")
    store.replace_role_permissions(role_id, ids)
    return store.get_role(role_id).to_detail()


def _require(store: RBACStore, role_id: str) -> Role:
    role = store.get_role(role_id)
    if role is None:
        raise not_found("Role not found")
    return role
