"""
rbac/models.py -- Domain dataclasses for roles and permissions.

Pure data containers. Junction rows (user_roles, role_permissions) have no
dataclass of their own: they are only ever read as id/name sets.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class Permission:
    """A single named capability, e.g. "users.read".

    roles / roles_count are filled by the detail and list queries only.
    """

    name: str
    description: Optional[str] = None
    id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    roles: list["Role"] = field(default_factory=list)
    roles_count: int = 0

    def to_public(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def to_detail(self) -> dict[str, Any]:
        data = self.to_public()
        data["roles"] = [r.summary() for r in self.roles]
        return data

    def to_list_row(self) -> dict[str, Any]:
        data = self.to_public()
        data["roles_count"] = self.roles_count
        return data

    def summary(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "description": self.description}


@dataclass
class Role:
    """A named bundle of permissions.

    permissions and users_count are only populated by the detail/list queries
    (RBACStore.get_role / list_roles); a freshly inserted Role leaves them empty.
    """

    name: str
    description: Optional[str] = None
    id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    permissions: list[Permission] = field(default_factory=list)
    users_count: int = 0

    def to_public(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def to_detail(self) -> dict[str, Any]:
        data = self.to_public()
        data["permissions"] = [p.summary() for p in self.permissions]
        data["users_count"] = self.users_count
        return data

    def summary(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "description": self.description}
