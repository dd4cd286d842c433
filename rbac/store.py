"""
rbac/store.py -- SQLAlchemy Core persistence layer for roles and permissions.

Pattern: Repository + Data Mapper (same as auth/store.py). RBACStore owns the
roles, permissions, user_roles and role_permissions tables.

Cascades:
  Deleting a role removes its user_roles and role_permissions rows; deleting a
  permission removes its role_permissions rows. The junction deletes run in
  the same transaction as the parent delete, so no orphan row is ever visible
  regardless of whether the backend enforces ON DELETE CASCADE.

Replacement semantics:
  replace_role_permissions() and replace_user_roles() delete every existing
  junction row for the owner and insert the new set inside one transaction.
  They never diff.

Security: all queries use bound parameters. No f-strings in SQL.
"""

from __future__ import annotations

from typing import Iterable, Optional

from sqlalchemy import func, select
from sqlalchemy.engine import Engine

from core.database import (
    create_db_engine,
    new_id,
    now_iso,
    permissions,
    role_permissions,
    roles,
    user_roles,
)
from rbac.models import Permission, Role

_DESCRIBED_FIELDS = {"name", "description"}


class RBACStore:
    """Repository for Role and Permission entities and their junctions.

    Usage:
        store = RBACStore(engine)
        role_id = store.create_role(Role(name="admin"))
        perm_id = store.create_permission(Permission(name="users.read"))
        store.replace_role_permissions(role_id, [perm_id])
        store.get_user_permission_names(user_id)  # {"users.read"}
    """

    def __init__(self, engine: Engine | str) -> None:
        self.engine: Engine = create_db_engine(engine) if isinstance(engine, str) else engine

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def count_roles(self) -> int:
        with self.engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(roles)).scalar() or 0

    def list_roles(self, skip: int = 0, limit: int = 10) -> list[Role]:
        """Return one page of roles, newest first, with permissions and user counts."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                roles.select().order_by(roles.c.created_at.desc(), roles.c.id.desc()).offset(skip).limit(limit)
            ).fetchall()
            result = [_row_to_role(r) for r in rows]
            self._attach_role_details(conn, result)
        return result

    def get_role(self, role_id: str) -> Optional[Role]:
        with self.engine.connect() as conn:
            row = conn.execute(roles.select().where(roles.c.id == role_id)).fetchone()
            if row is None:
                return None
            role = _row_to_role(row)
            self._attach_role_details(conn, [role])
        return role

    def get_role_by_name(self, name: str, exclude_id: Optional[str] = None) -> Optional[Role]:
        """Exact, case-sensitive name lookup. exclude_id skips the row being renamed."""
        query = roles.select().where(roles.c.name == name)
        if exclude_id is not None:
            query = query.where(roles.c.id != exclude_id)
        with self.engine.connect() as conn:
            row = conn.execute(query).fetchone()
        return _row_to_role(row) if row is not None else None

    def find_roles(self, role_ids: Iterable[str]) -> list[Role]:
        ids = list(role_ids)
        if not ids:
            return []
        with self.engine.connect() as conn:
            rows = conn.execute(roles.select().where(roles.c.id.in_(ids))).fetchall()
        return [_row_to_role(r) for r in rows]

    def create_role(self, role: Role) -> str:
        """Insert a role and return its id. Raises IntegrityError on a duplicate name."""
        role_id = new_id()
        now = now_iso()
        with self.engine.begin() as conn:
            conn.execute(
                roles.insert().values(
                    id=role_id, name=role.name, description=role.description, created_at=now, updated_at=now
                )
            )
        return role_id

    def update_role(self, role_id: str, **fields) -> bool:
        return self._update(roles, role_id, fields)

    def delete_role(self, role_id: str) -> bool:
        with self.engine.begin() as conn:
            conn.execute(role_permissions.delete().where(role_permissions.c.role_id == role_id))
            conn.execute(user_roles.delete().where(user_roles.c.role_id == role_id))
            result = conn.execute(roles.delete().where(roles.c.id == role_id))
        return result.rowcount > 0

    def replace_role_permissions(self, role_id: str, permission_ids: Iterable[str]) -> None:
        ids = list(dict.fromkeys(permission_ids))
        now = now_iso()
        with self.engine.begin() as conn:
            conn.execute(role_permissions.delete().where(role_permissions.c.role_id == role_id))
            if ids:
                conn.execute(
                    role_permissions.insert(),
                    [{"id": new_id(), "role_id": role_id, "permission_id": pid, "created_at": now} for pid in ids],
                )

    def _attach_role_details(self, conn, items: list[Role]) -> None:
        if not items:
            return
        by_id = {r.id: r for r in items}
        perm_rows = conn.execute(
            select(role_permissions.c.role_id, permissions)
            .select_from(role_permissions.join(permissions, permissions.c.id == role_permissions.c.permission_id))
            .where(role_permissions.c.role_id.in_(list(by_id)))
            .order_by(permissions.c.name)
        ).fetchall()
        for row in perm_rows:
            by_id[row.role_id].permissions.append(_row_to_permission(row))
        count_rows = conn.execute(
            select(user_roles.c.role_id, func.count().label("n"))
            .where(user_roles.c.role_id.in_(list(by_id)))
            .group_by(user_roles.c.role_id)
        ).fetchall()
        for row in count_rows:
            by_id[row.role_id].users_count = row.n

    # ------------------------------------------------------------------
    # Permissions
    # ------------------------------------------------------------------

    def count_permissions(self) -> int:
        with self.engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(permissions)).scalar() or 0

    def list_permissions(self, skip: int = 0, limit: int = 10) -> list[Permission]:
        """Return one page of permissions, newest first, with role counts."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                permissions.select()
                .order_by(permissions.c.created_at.desc(), permissions.c.id.desc())
                .offset(skip)
                .limit(limit)
            ).fetchall()
            result = [_row_to_permission(r) for r in rows]
            if result:
                by_id = {p.id: p for p in result}
                count_rows = conn.execute(
                    select(role_permissions.c.permission_id, func.count().label("n"))
                    .where(role_permissions.c.permission_id.in_(list(by_id)))
                    .group_by(role_permissions.c.permission_id)
                ).fetchall()
                for row in count_rows:
                    by_id[row.permission_id].roles_count = row.n
        return result

    def get_permission(self, permission_id: str) -> Optional[Permission]:
        with self.engine.connect() as conn:
            row = conn.execute(permissions.select().where(permissions.c.id == permission_id)).fetchone()
            if row is None:
                return None
            permission = _row_to_permission(row)
            role_rows = conn.execute(
                select(roles)
                .join(role_permissions, role_permissions.c.role_id == roles.c.id)
                .where(role_permissions.c.permission_id == permission_id)
                .order_by(roles.c.name)
            ).fetchall()
        permission.roles = [_row_to_role(r) for r in role_rows]
        permission.roles_count = len(permission.roles)
        return permission

    def get_permission_by_name(self, name: str, exclude_id: Optional[str] = None) -> Optional[Permission]:
        query = permissions.select().where(permissions.c.name == name)
        if exclude_id is not None:
            query = query.where(permissions.c.id != exclude_id)
        with self.engine.connect() as conn:
            row = conn.execute(query).fetchone()
        return _row_to_permission(row) if row is not None else None

    def find_permissions(self, permission_ids: Iterable[str]) -> list[Permission]:
        ids = list(permission_ids)
        if not ids:
            return []
        with self.engine.connect() as conn:
            rows = conn.execute(permissions.select().where(permissions.c.id.in_(ids))).fetchall()
        return [_row_to_permission(r) for r in rows]

    def create_permission(self, permission: Permission) -> str:
        permission_id = new_id()
        now = now_iso()
        with self.engine.begin() as conn:
            conn.execute(
                permissions.insert().values(
                    id=permission_id,
                    name=permission.name,
                    description=permission.description,
                    created_at=now,
                    updated_at=now,
                )
            )
        return permission_id

    def update_permission(self, permission_id: str, **fields) -> bool:
        return self._update(permissions, permission_id, fields)

    def delete_permission(self, permission_id: str) -> bool:
        with self.engine.begin() as conn:
            conn.execute(role_permissions.delete().where(role_permissions.c.permission_id == permission_id))
            result = conn.execute(permissions.delete().where(permissions.c.id == permission_id))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # User assignments and effective access
    # ------------------------------------------------------------------

    def get_user_roles(self, user_id: str) -> list[Role]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(roles)
                .join(user_roles, user_roles.c.role_id == roles.c.id)
                .where(user_roles.c.user_id == user_id)
                .order_by(roles.c.name)
            ).fetchall()
        return [_row_to_role(r) for r in rows]

    def get_user_role_names(self, user_id: str) -> set[str]:
        return {r.name for r in self.get_user_roles(user_id)}

    def get_user_permission_names(self, user_id: str) -> set[str]:
        """Union of permission names across every role assigned to user_id."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(permissions.c.name)
                .distinct()
                .select_from(
                    user_roles.join(role_permissions, role_permissions.c.role_id == user_roles.c.role_id).join(
                        permissions, permissions.c.id == role_permissions.c.permission_id
                    )
                )
                .where(user_roles.c.user_id == user_id)
            ).fetchall()
        return {row.name for row in rows}

    def replace_user_roles(self, user_id: str, role_ids: Iterable[str]) -> None:
        ids = list(dict.fromkeys(role_ids))
        now = now_iso()
        with self.engine.begin() as conn:
            conn.execute(user_roles.delete().where(user_roles.c.user_id == user_id))
            if ids:
                conn.execute(
                    user_roles.insert(),
                    [{"id": new_id(), "user_id": user_id, "role_id": rid, "created_at": now} for rid in ids],
                )

    # ------------------------------------------------------------------
    # Shared
    # ------------------------------------------------------------------

    def _update(self, table, row_id: str, fields: dict) -> bool:
        unknown = set(fields) - _DESCRIBED_FIELDS
        if unknown:
            raise ValueError(f"Unknown fields: {unknown!r}")
        values = dict(fields)
        values["updated_at"] = now_iso()
        with self.engine.begin() as conn:
            result = conn.execute(table.update().where(table.c.id == row_id).values(**values))
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _row_to_role(row) -> Role:
    return Role(
        id=row.id,
        name=row.name,
        description=row.description,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_permission(row) -> Permission:
    return Permission(
        id=row.id,
        name=row.name,
        description=row.description,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
