"""
API request and response models for the RBAC REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py and
rbac/models.py, which own the internal domain representation.

Request models are attached to routes through Validation(...) and checked by
the RequestValidator stage; response models only feed the generated OpenAPI
document (api/openapi.py).
"""

from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

# ---------------------------------------------------------------------------
# Shared request models
# ---------------------------------------------------------------------------


class IdParams(BaseModel):
    """Path parameters for /{id} routes. Ids are UUID4 strings."""

    id: UUID

    @property
    def value(self) -> str:
        return str(self.id)


class ListQuery(BaseModel):
    """Pagination query string shared by every list endpoint."""

    model_config = ConfigDict(extra="ignore")

    page: int = Field(default=1, ge=1, le=2**31 - 1, description="Page number, starting at 1.")
    per_page: int = Field(default=10, ge=1, le=100, description="Items per page (1-100).")


def _check_password_strength(value: str) -> str:
    if not any(c.isupper() for c in value):
        raise ValueError("Password must contain at least one uppercase letter")
    if not any(c.islower() for c in value):
        raise ValueError("Password must contain at least one lowercase letter")
    if not any(c.isdigit() for c in value):
        raise ValueError("Password must contain at least one number")
    return value


def _reject_null(value: Any) -> Any:
    if value is None:
        raise ValueError("Field may be omitted but not null")
    return value


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=2, max_length=255, examples=["John Doe"])
    email: EmailStr = Field(examples=["john.doe@example.com"])
    password: str = Field(
        min_length=8,
        max_length=255,
        description="Min 8 chars with at least one uppercase letter, one lowercase letter and one number.",
        examples=["SecurePass123"],
    )

    @field_validator("password")
    @classmethod
    def strong_password(cls, value: str) -> str:
        return _check_password_strength(value)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=255)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(min_length=1)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=2, max_length=255)
    email: EmailStr
    password: str = Field(min_length=8, max_length=255)
    email_verified_at: Optional[str] = Field(default=None, description="ISO-8601 timestamp.")

    @field_validator("password")
    @classmethod
    def strong_password(cls, value: str) -> str:
        return _check_password_strength(value)


class UserUpdate(BaseModel):
    """Partial update. Omitted fields are left unchanged, explicit nulls are rejected."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=2, max_length=255)
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(default=None, min_length=8, max_length=255)
    email_verified_at: Optional[str] = None

    @field_validator("name", "email", "password", "email_verified_at", mode="before")
    @classmethod
    def not_null(cls, value: Any) -> Any:
        return _reject_null(value)

    @field_validator("password")
    @classmethod
    def strong_password(cls, value: Optional[str]) -> Optional[str]:
        return value if value is None else _check_password_strength(value)


class AssignRoles(BaseModel):
    role_ids: list[UUID] = Field(default_factory=list, description="Complete new role set (may be empty).")


# ---------------------------------------------------------------------------
# Roles and permissions
# ---------------------------------------------------------------------------


class RoleCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=100, examples=["editor"])
    description: Optional[str] = Field(default=None, max_length=1000)


class RoleUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=1000)

    @field_validator("name", "description", mode="before")
    @classmethod
    def not_null(cls, value: Any) -> Any:
        return _reject_null(value)


class AssignPermissions(BaseModel):
    permission_ids: list[UUID] = Field(min_length=1, description="Complete new permission set.")


class PermissionCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=100, examples=["users.read"])
    description: Optional[str] = Field(default=None, max_length=1000)


class PermissionUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=1000)

    @field_validator("name", "description", mode="before")
    @classmethod
    def not_null(cls, value: Any) -> Any:
        return _reject_null(value)


# ---------------------------------------------------------------------------
# Response models (documentation only)
# ---------------------------------------------------------------------------


class UserOut(BaseModel):
    id: str
    name: str
    email: str
    email_verified_at: Optional[str] = None
    created_at: str
    updated_at: str


class Summary(BaseModel):
    id: str
    name: str
    description: Optional[str] = None


class RoleOut(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    created_at: str
    updated_at: str
    permissions: list[Summary] = Field(default_factory=list)
    users_count: int = 0


class PermissionOut(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    created_at: str
    updated_at: str
    roles: list[Summary] = Field(default_factory=list)


class PaginationMeta(BaseModel):
    total: int
    page: int
    per_page: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool


class TokenPairOut(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: str = Field(examples=["7d"])


class SessionOut(TokenPairOut):
    user: UserOut


class Envelope(BaseModel):
    success: bool = True
    message: str
    data: Any = None


class SessionEnvelope(Envelope):
    data: SessionOut


class TokenPairEnvelope(Envelope):
    data: TokenPairOut


class UserEnvelope(Envelope):
    data: UserOut


class UserListEnvelope(Envelope):
    data: list[UserOut]
    meta: PaginationMeta
    cached: bool


class RoleEnvelope(Envelope):
    data: RoleOut


class RoleListEnvelope(Envelope):
    data: list[RoleOut]
    meta: PaginationMeta


class PermissionEnvelope(Envelope):
    data: PermissionOut


class PermissionListEnvelope(Envelope):
    data: list[PermissionOut]
    meta: PaginationMeta


class FailureEnvelope(BaseModel):
    success: bool = False
    message: str
    data: None = None


class ValidationIssue(BaseModel):
    where: str
    path: str
    message: str


class ValidationErrorEnvelope(BaseModel):
    status: str = "error"
    message: str = "Validation error"
    errors: list[ValidationIssue]


class InternalErrorEnvelope(BaseModel):
    status: str = "error"
    message: str = "Internal Server Error"
    errors: list[dict[str, str]]
    stack: Optional[str] = None


class RateLimitedEnvelope(BaseModel):
    message: str
    retryAfter: int


class HealthData(BaseModel):
    status: str = "ok"
    timestamp: str
    uptime: float


class HealthEnvelope(BaseModel):
    status: str = "success"
    data: HealthData
