"""
auth/store.py -- SQLAlchemy Core persistence layer for user accounts.

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_user
is the mapper. Service and stage code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.
  The password column holds a bcrypt hash and is mapped onto
  User.hashed_password; it is never part of a public dict.

Email uniqueness is enforced by the UNIQUE constraint on users.email. The
services check first for a friendly error, and a concurrent insert that wins
the race surfaces as IntegrityError, which callers turn into a conflict.

Layer rule: no imports from api/, services/, or cache/.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.engine import Engine

from auth.models import User
from core.database import create_db_engine, new_id, now_iso, user_roles, users

_MUTABLE_FIELDS = {"name", "email", "hashed_password", "email_verified_at"}


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore(create_db_engine("sqlite:///:memory:"))
        user_id = store.create_user(User(name="Ada", email="ada@example.com", hashed_password=hash_password("x")))
        user = store.get_by_email("ada@example.com")
    """

    def __init__(self, engine: Engine | str) -> None:
        self.engine: Engine = create_db_engine(engine) if isinstance(engine, str) else engine

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_by_id(self, user_id: str) -> Optional[User]:
        with self.engine.connect() as conn:
            row = conn.execute(users.select().where(users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> Optional[User]:
        """Look up a user by exact email. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(users.select().where(users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def count_users(self) -> int:
        with self.engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(users)).scalar() or 0

    def list_users(self, skip: int = 0, limit: int = 10) -> list[User]:
        """Return one page of users, newest first (id breaks created_at ties)."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                users.select().order_by(users.c.created_at.desc(), users.c.id.desc()).offset(skip).limit(limit)
            ).fetchall()
        return [_row_to_user(r) for r in rows]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> str:
        """Insert a new user and return its generated id.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        """
        user_id = new_id()
        now = now_iso()
        with self.engine.begin() as conn:
            conn.execute(
                users.insert().values(
                    id=user_id,
                    name=user.name,
                    email=user.email,
                    password=user.hashed_password,
                    email_verified_at=user.email_verified_at,
                    created_at=now,
                    updated_at=now,
                )
            )
        return user_id

    def update_user(self, user_id: str, **fields) -> bool:
        """Update mutable fields on an existing user.

        Accepted fields: name, email, hashed_password, email_verified_at.
        Returns True if a row was updated, False if user_id was not found.
        """
        unknown = set(fields) - _MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        values = {("password" if k == "hashed_password" else k): v for k, v in fields.items()}
        values["updated_at"] = now_iso()
        with self.engine.begin() as conn:
            result = conn.execute(users.update().where(users.c.id == user_id).values(**values))
        return result.rowcount > 0

    def delete_user(self, user_id: str) -> bool:
        """Delete a user and its role assignments in one transaction."""
        with self.engine.begin() as conn:
            conn.execute(user_roles.delete().where(user_roles.c.user_id == user_id))
            result = conn.execute(users.delete().where(users.c.id == user_id))
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        name=row.name,
        email=row.email,
        hashed_password=row.password,
        email_verified_at=row.email_verified_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
