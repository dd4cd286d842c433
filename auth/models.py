"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and services do
the work; these only own the domain shape.

Layer rule: no imports from api/, services/, rbac/, or cache/.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any


@dataclass
class User:
    """A registered account.

    hashed_password is the bcrypt hash and is never serialised: use
    to_public() for anything that leaves the process.

    id / created_at / updated_at are None before the record is written.
    """

    name: str
    email: str
    hashed_password: str | None = None
    id: str | None = None
    email_verified_at: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    def to_public(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "email_verified_at": self.email_verified_at,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass(frozen=True)
class Identity:
    """The authenticated caller, as carried inside a verified token."""

    user_id: str
    email: str


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    token_type: str
    expires_in: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
