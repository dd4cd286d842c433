"""
services/permissions.py -- Permission CRUD. Same uniqueness rules as roles."""

from __future__ import annotations

from typing import Any, Optional

from sqlalchemy.exc import IntegrityError

from core.errors import conflict, not_found
from core.models import Page, Pagination
from rbac.models import Permission
from rbac.store import RBACStore

NAME_TAKEN = "Permission with this name already exists"


def list_permissions(store: RBACStore, page: int, per_page: int) -> dict[str, Any]:
    pagination = Pagination(page=page, per_page=per_page, total=store.count_permissions())
    rows = store.list_permissions(skip=pagination.skip, limit=per_page)
    return Page(data=[p.to_list_row() for p in rows], pagination=pagination).to_dict()


def get_permission(store: RBACStore, permission_id: str) -> dict[str, Any]:
    return _require(store, permission_id).to_detail()


def create_permission(store: RBACStore, name: str, description: Optional[str] = None) -> dict[str, Any]:
    if store.get_permission_by_name(name) is not None:
        raise conflict(NAME_TAKEN)
    try:
        permission_id = store.create_permission(Permission(name=name, description=description))
    except IntegrityError:
        raise conflict(NAME_TAKEN) from None
    return store.get_permission(permission_id).to_public()


def update_permission(store: RBACStore, permission_id: str, **fields: Any) -> dict[str, Any]:
    _require(store, permission_id)
    changes = {k: v for k, v in fields.items() if v is not None}
    name = changes.get("name")
    if name is not None and store.get_permission_by_name(name, exclude_id=permission_id) is not None:
        raise conflict(NAME_TAKEN)
    if changes:
        try:
            store.update_permission(permission_id, **changes)
        except IntegrityError:
            raise conflict(NAME_TAKEN) from None
    return store.get_permission(permission_id).to_public()


def delete_permission(store: RBACStore, permission_id: str) -> dict[str, Any]:
    permission = _require(store, permission_id)
    store.delete_permission(permission_id)
    return permission.summary()


def _require(store: RBACStore, permission_id: str) -> Permission:
    permission = store.get_permission(permission_id)
    if permission is None:
        raise not_found("Permission not found")
    return permission
