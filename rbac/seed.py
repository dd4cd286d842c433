"""
rbac/seed.py -- Default RBAC catalogue and optional first admin account.

seed_defaults() is idempotent: existing permissions, the admin role and an
existing admin user are reused, never duplicated. The admin role always ends
up holding every default permission.
"""

from __future__ import annotations

import logging
from typing import Optional

from auth.models import User
from auth.store import UserStore
from auth.tokens import hash_password
from rbac.models import Permission, Role
from rbac.store import RBACStore

logger = logging.getLogger("rbacapi.seed")

ADMIN_ROLE = "admin"

DEFAULT_PERMISSIONS: dict[str, str] = {
    f"{resource}.{action}": f"{action.capitalize()} {resource}"
    for resource in ("users", "roles", "permissions")
    for action in ("read", "create", "update", "delete")
}


def seed_defaults(
    users: UserStore,
    rbac: RBACStore,
    admin_email: Optional[str] = None,
    admin_password: Optional[str] = None,
    admin_name: str = "Administrator",
) -> dict[str, object]:
    """Create default permissions, the admin role and (optionally) an admin user.

    Returns a summary: {"permissions": created count, "role_id": ..., "admin_id": ... or None}.
    """
    permission_ids: list[str] = []
    created = 0
    for name, description in DEFAULT_PERMISSIONS.items():
        existing = rbac.get_permission_by_name(name)
        if existing is not None:
            permission_ids.append(existing.id)
            continue
        permission_ids.append(rbac.create_permission(Permission(name=name, description=description)))
        created += 1

    role = rbac.get_role_by_name(ADMIN_ROLE)
    role_id = role.id if role is not None else rbac.create_role(Role(name=ADMIN_ROLE, description="Full access"))
    granted = {p.id for p in rbac.get_role(role_id).permissions}
    rbac.replace_role_permissions(role_id, sorted(granted | set(permission_ids)))
    logger.info("Seeded %d new permissions; role %r holds %d", created, ADMIN_ROLE, len(granted | set(permission_ids)))

    admin_id: Optional[str] = None
    if admin_email and admin_password:
        admin = users.get_by_email(admin_email)
        if admin is None:
            admin_id = users.create_user(
                User(name=admin_name, email=admin_email, hashed_password=hash_password(admin_password))
            )
            logger.info("Created admin user %s", admin_email)
        else:
            admin_id = admin.id
        held = {r.id for r in rbac.get_user_roles(admin_id)}
        rbac.replace_user_roles(admin_id, sorted(held | {role_id}))

    return {"permissions": created, "role_id": role_id, "admin_id": admin_id}
