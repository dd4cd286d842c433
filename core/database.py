"""
core/database.py -- Relational schema and engine factory.

Uses SQLAlchemy Core (not ORM) so the dataclasses in auth/models.py and
rbac/models.py remain the authoritative domain representation. Swapping SQLite
for PostgreSQL is a connection string change.

All five tables live in one MetaData because the junction tables reference
both sides of each many-to-many relationship. UserStore and RBACStore share
one Engine built by create_db_engine().

Security: all queries elsewhere use bound parameters. No f-strings in SQL.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, ForeignKey, MetaData, String, Table, Text, UniqueConstraint, create_engine, event
from sqlalchemy.engine import Engine

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("name", String(255), nullable=False),
    Column("email", String(255), nullable=False, unique=True),
    Column("password", Text, nullable=False),  # bcrypt hash
    Column("email_verified_at", String(32)),
    Column("created_at", String(32), nullable=False, index=True),
    Column("updated_at", String(32), nullable=False),
)

roles = Table(
    "roles",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("name", String(100), nullable=False, unique=True),
    Column("description", Text),
    Column("created_at", String(32), nullable=False, index=True),
    Column("updated_at", String(32), nullable=False),
)

permissions = Table(
    "permissions",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("name", String(100), nullable=False, unique=True),
    Column("description", Text),
    Column("created_at", String(32), nullable=False, index=True),
    Column("updated_at", String(32), nullable=False),
)

user_roles = Table(
    "user_roles",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("role_id", String(36), ForeignKey("roles.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("created_at", String(32), nullable=False),
    UniqueConstraint("user_id", "role_id", name="uq_user_role"),
)

role_permissions = Table(
    "role_permissions",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("role_id", String(36), ForeignKey("roles.id", ondelete="CASCADE"), nullable=False, index=True),
    Column(
        "permission_id",
        String(36),
        ForeignKey("permissions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("created_at", String(32), nullable=False),
    UniqueConstraint("role_id", "permission_id", name="uq_role_permission"),
)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL and foreign key enforcement on every new SQLite connection.

    SQLite PRAGMAs are per-connection and are not inherited from the pool.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(db_url: str) -> Engine:
    """Create an Engine for db_url and make sure every table exists."""
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_sqlite_pragmas)
    metadata.create_all(engine)
    return engine


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def now_iso() -> str:
    # Fixed-width microseconds keep lexical and chronological order identical.
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def new_id() -> str:
    return str(uuid.uuid4())
