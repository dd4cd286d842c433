"""
api/routes/v1/users.py -- User administration endpoints.

Routes (all require auth):
  GET    /users              users.read    paginated, cached for USERS_CACHE_TTL
  GET    /users/{id}         users.read
  POST   /users              users.create
  PUT    /users/{id}         users.update
  DELETE /users/{id}         users.delete
  POST   /users/{id}/roles   users.update  replaces the user's role set

Every successful write registers a post-commit callback that drops the
cached list pages (users:list:*).
"""

from __future__ import annotations

from starlette.responses import Response

from api.limiter import Limiters
from api.models import (
    AssignRoles,
    Envelope,
    FailureEnvelope,
    IdParams,
    ListQuery,
    UserCreate,
    UserEnvelope,
    UserListEnvelope,
    UserUpdate,
    ValidationErrorEnvelope,
)
from api.responses import success
from api.routing import RequestContext, RouteRegistry, RouteSpec, Validation
from services import users as users_service

BASE_PATH = "/users"
TAGS = ["Users"]

_DENIED = {401: FailureEnvelope, 403: FailureEnvelope}


def _invalidate_on_commit(ctx: RequestContext) -> None:
    cache = ctx.state.cache
    ctx.after_commit(lambda: users_service.invalidate_list_cache(cache))


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def index(ctx: RequestContext) -> Response:
    query: ListQuery = ctx.validated["query"]
    result, cached = users_service.list_users(
        ctx.state.users,
        ctx.state.cache,
        query.page,
        query.per_page,
        ttl=ctx.state.settings.users_cache_ttl,
    )
    return success("Users retrieved successfully", result["data"], meta=result["meta"], cached=cached)


def show(ctx: RequestContext) -> Response:
    params: IdParams = ctx.validated["params"]
    data = users_service.get_user(ctx.state.users, ctx.state.rbac, params.value)
    return success("User retrieved successfully", data)


def store(ctx: RequestContext) -> Response:
    body: UserCreate = ctx.validated["body"]
    data = users_service.create_user(
        ctx.state.users, body.name, body.email, body.password, email_verified_at=body.email_verified_at
    )
    _invalidate_on_commit(ctx)
    return success("User created successfully", data, status_code=201)


def update(ctx: RequestContext) -> Response:
    params: IdParams = ctx.validated["params"]
    body: UserUpdate = ctx.validated["body"]
    data = users_service.update_user(ctx.state.users, params.value, **body.model_dump(exclude_unset=True))
    _invalidate_on_commit(ctx)
    return success("User updated successfully", data)


def destroy(ctx: RequestContext) -> Response:
    params: IdParams = ctx.validated["params"]
    data = users_service.delete_user(ctx.state.users, params.value)
    _invalidate_on_commit(ctx)
    return success("User deleted successfully", data)


def assign_roles(ctx: RequestContext) -> Response:
    params: IdParams = ctx.validated["params"]
    body: AssignRoles = ctx.validated["body"]
    data = users_service.assign_roles(
        ctx.state.users, ctx.state.rbac, params.value, [str(role_id) for role_id in body.role_ids]
    )
    return success("Roles assigned successfully", data)


# ---------------------------------------------------------------------------
# Route table
# ---------------------------------------------------------------------------


def register(registry: RouteRegistry, limiters: Limiters) -> None:
    registry.add(
        BASE_PATH,
        RouteSpec(
            name="users.index",
            method="GET",
            path="/",
            description="List users (paginated, cached)",
            authenticated=True,
            permission="users.read",
            validation=Validation(query=ListQuery),
            responses={200: UserListEnvelope, 422: ValidationErrorEnvelope, **_DENIED},
            tags=TAGS,
        ),
        index,
    )
    registry.add(
        BASE_PATH,
        RouteSpec(
            name="users.show",
            method="GET",
            path="/{id}",
            description="Get a user by id",
            authenticated=True,
            permission="users.read",
            validation=Validation(params=IdParams),
            responses={200: UserEnvelope, 404: FailureEnvelope, 422: ValidationErrorEnvelope, **_DENIED},
            tags=TAGS,
        ),
        show,
    )
    registry.add(
        BASE_PATH,
        RouteSpec(
            name="users.store",
            method="POST",
            path="/",
            description="Create a user",
            authenticated=True,
            permission="users.create",
            validation=Validation(body=UserCreate),
            responses={201: UserEnvelope, 409: FailureEnvelope, 422: ValidationErrorEnvelope, **_DENIED},
            tags=TAGS,
        ),
        store,
    )
    registry.add(
        BASE_PATH,
        RouteSpec(
            name="users.update",
            method="PUT",
            path="/{id}",
            description="Update a user",
            authenticated=True,
            permission="users.update",
            validation=Validation(params=IdParams, body=UserUpdate),
            responses={
                200: UserEnvelope,
                404: FailureEnvelope,
                409: FailureEnvelope,
                422: ValidationErrorEnvelope,
                **_DENIED,
            },
            tags=TAGS,
        ),
        update,
    )
    registry.add(
        BASE_PATH,
        RouteSpec(
            name="users.destroy",
            method="DELETE",
            path="/{id}",
            description="Delete a user and its role assignments",
            authenticated=True,
            permission="users.delete",
            validation=Validation(params=IdParams),
            responses={200: Envelope, 404: FailureEnvelope, 422: ValidationErrorEnvelope, **_DENIED},
            tags=TAGS,
        ),
        destroy,
    )
    registry.add(
        BASE_PATH,
        RouteSpec(
            name="users.roles",
            method="POST",
            path="/{id}/roles",
            description="Replace the roles assigned to a user",
            authenticated=True,
            permission="users.update",
            validation=Validation(params=IdParams, body=AssignRoles),
            responses={200: UserEnvelope, 404: FailureEnvelope, 422: ValidationErrorEnvelope, **_DENIED},
            tags=TAGS,
        ),
        assign_roles,
    )
