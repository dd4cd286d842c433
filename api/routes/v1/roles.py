"""
api/routes/v1/roles.py -- Role endpoints.

Routes (all require auth):
  GET    /roles                    roles.read
  GET    /roles/{id}               roles.read    includes permissions + users_count
  POST   /roles                    roles.create
  PUT    /roles/{id}               roles.update
  DELETE /roles/{id}               roles.delete  cascades to both junctions
  POST   /roles/{id}/permissions   roles.update  replaces the permission set
"""

from __future__ import annotations

from starlette.responses import Response

from api.limiter import Limiters
from api.models import (
    AssignPermissions,
    Envelope,
    FailureEnvelope,
    IdParams,
    ListQuery,
    RoleCreate,
    RoleEnvelope,
    RoleListEnvelope,
    RoleUpdate,
    ValidationErrorEnvelope,
)
from api.responses import success
from api.routing import RequestContext, RouteRegistry, RouteSpec, Validation
from services import roles as roles_service

BASE_PATH = "/roles"
TAGS = ["Roles"]

_DENIED = {401: FailureEnvelope, 403: FailureEnvelope}


def index(ctx: RequestContext) -> Response:
    query: ListQuery = ctx.validated["query"]
    result = roles_service.list_roles(ctx.state.rbac, query.page, query.per_page)
    return success("Roles retrieved successfully", result["data"], meta=result["meta"])


def show(ctx: RequestContext) -> Response:
    params: IdParams = ctx.validated["params"]
    return success("Role retrieved successfully", roles_service.get_role(ctx.state.rbac, params.value))


def store(ctx: RequestContext) -> Response:
    body: RoleCreate = ctx.validated["body"]
    data = roles_service.create_role(ctx.state.rbac, body.name, body.description)
    return success("Role created successfully", data, status_code=201)


def update(ctx: RequestContext) -> Response:
    params: IdParams = ctx.validated["params"]
    body: RoleUpdate = ctx.validated["body"]
    data = roles_service.update_role(ctx.state.rbac, params.value, **body.model_dump(exclude_unset=True))
    return success("Role updated successfully", data)


def destroy(ctx: RequestContext) -> Response:
    params: IdParams = ctx.validated["params"]
    return success("Role deleted successfully", roles_service.delete_role(ctx.state.rbac, params.value))


def assign_permissions(ctx: RequestContext) -> Response:
    params: IdParams = ctx.validated["params"]
    body: AssignPermissions = ctx.validated["body"]
    data = roles_service.assign_permissions(ctx.state.rbac, params.value, [str(p) for p in body.permission_ids])
    return success("Permissions assigned successfully", data)


def register(registry: RouteRegistry, limiters: Limiters) -> None:
    registry.add(
        BASE_PATH,
        RouteSpec(
            name="roles.index",
            method="GET",
            path="/",
            description="List roles with their permissions",
            authenticated=True,
            permission="roles.read",
            validation=Validation(query=ListQuery),
            responses={200: RoleListEnvelope, 422: ValidationErrorEnvelope, **_DENIED},
            tags=TAGS,
        ),
        index,
    )
    registry.add(
        BASE_PATH,
        RouteSpec(
            name="roles.show",
            method="GET",
            path="/{id}",
            description="Get a role by id",
            authenticated=True,
            permission="roles.read",
            validation=Validation(params=IdParams),
            responses={200: RoleEnvelope, 404: FailureEnvelope, 422: ValidationErrorEnvelope, **_DENIED},
            tags=TAGS,
        ),
        show,
    )
    registry.add(
        BASE_PATH,
        RouteSpec(
            name="roles.store",
            method="POST",
            path="/",
            description="Create a role",
            authenticated=True,
            permission="roles.create",
            validation=Validation(body=RoleCreate),
            responses={201: RoleEnvelope, 409: FailureEnvelope, 422: ValidationErrorEnvelope, **_DENIED},
            tags=TAGS,
        ),
        store,
    )
    registry.add(
        BASE_PATH,
        RouteSpec(
            name="roles.update",
            method="PUT",
            path="/{id}",
            description="Update a role",
            authenticated=True,
            permission="roles.update",
            validation=Validation(params=IdParams, body=RoleUpdate),
            responses={
                200: RoleEnvelope,
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
            name="roles.destroy",
            method="DELETE",
            path="/{id}",
            description="Delete a role",
            authenticated=True,
            permission="roles.delete",
            validation=Validation(params=IdParams),
            responses={200: Envelope, 404: FailureEnvelope, 422: ValidationErrorEnvelope, **_DENIED},
            tags=TAGS,
        ),
        destroy,
    )
    registry.add(
        BASE_PATH,
        RouteSpec(
            name="roles.permissions",
            method="POST",
            path="/{id}/permissions",
            description="Replace the permissions granted to a role",
            authenticated=True,
            permission="roles.update",
            validation=Validation(params=IdParams, body=AssignPermissions),
            responses={200: RoleEnvelope, 404: FailureEnvelope, 422: ValidationErrorEnvelope, **_DENIED},
            tags=TAGS,
        ),
        assign_permissions,
    )
