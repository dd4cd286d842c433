"""
api/routes/v1/permissions.py -- Permission endpoints (all require auth).

  GET    /permissions        permissions.read    list rows carry roles_count
  GET    /permissions/{id}   permissions.read    detail carries roles
  POST   /permissions        permissions.create
  PUT    /permissions/{id}   permissions.update
  DELETE /permissions/{id}   permissions.delete
"""

from __future__ import annotations

from starlette.responses import Response

from api.limiter import Limiters
from api.models import (
    Envelope,
    FailureEnvelope,
    IdParams,
    ListQuery,
    PermissionCreate,
    PermissionEnvelope,
    PermissionListEnvelope,
    PermissionUpdate,
    ValidationErrorEnvelope,
)
from api.responses import success
from api.routing import RequestContext, RouteRegistry, RouteSpec, Validation
from services import permissions as permissions_service

BASE_PATH = "/permissions"
TAGS = ["Permissions"]

_DENIED = {401: FailureEnvelope, 403: FailureEnvelope}


def index(ctx: RequestContext) -> Response:
    query: ListQuery = ctx.validated["query"]
    result = permissions_service.list_permissions(ctx.state.rbac, query.page, query.per_page)
    return success("Permissions retrieved successfully", result["data"], meta=result["meta"])


def show(ctx: RequestContext) -> Response:
    params: IdParams = ctx.validated["params"]
    data = permissions_service.get_permission(ctx.state.rbac, params.value)
    return success("Permission retrieved successfully", data)


def store(ctx: RequestContext) -> Response:
    body: PermissionCreate = ctx.validated["body"]
    data = permissions_service.create_permission(ctx.state.rbac, body.name, body.description)
    return success("Permission created successfully", data, status_code=201)


def update(ctx: RequestContext) -> Response:
    params: IdParams = ctx.validated["params"]
    body: PermissionUpdate = ctx.validated["body"]
    data = permissions_service.update_permission(
        ctx.state.rbac, params.value, **body.model_dump(exclude_unset=True)
    )
    return success("Permission updated successfully", data)


def destroy(ctx: RequestContext) -> Response:
    params: IdParams = ctx.validated["params"]
    data = permissions_service.delete_permission(ctx.state.rbac, params.value)
    return success("Permission deleted successfully", data)


def register(registry: RouteRegistry, limiters: Limiters) -> None:
    routes = [
        (
            RouteSpec(
                name="permissions.index",
                method="GET",
                path="/",
                description="List permissions",
                permission="permissions.read",
                validation=Validation(query=ListQuery),
                responses={200: PermissionListEnvelope, 422: ValidationErrorEnvelope, **_DENIED},
            ),
            index,
        ),
        (
            RouteSpec(
                name="permissions.show",
                method="GET",
                path="/{id}",
                description="Get a permission by id",
                permission="permissions.read",
                validation=Validation(params=IdParams),
                responses={200: PermissionEnvelope, 404: FailureEnvelope, 422: ValidationErrorEnvelope, **_DENIED},
            ),
            show,
        ),
        (
            RouteSpec(
                name="permissions.store",
                method="POST",
                path="/",
                description="Create a permission",
                permission="permissions.create",
                validation=Validation(body=PermissionCreate),
                responses={201: PermissionEnvelope, 409: FailureEnvelope, 422: ValidationErrorEnvelope, **_DENIED},
            ),
            store,
        ),
        (
            RouteSpec(
                name="permissions.update",
                method="PUT",
                path="/{id}",
                description="Update a permission",
                permission="permissions.update",
                validation=Validation(params=IdParams, body=PermissionUpdate),
                responses={
                    200: PermissionEnvelope,
                    404: FailureEnvelope,
                    409: FailureEnvelope,
                    422: ValidationErrorEnvelope,
                    **_DENIED,
                },
            ),
            update,
        ),
        (
            RouteSpec(
                name="permissions.destroy",
                method="DELETE",
                path="/{id}",
                description="Delete a permission",
                permission="permissions.delete",
                validation=Validation(params=IdParams),
                responses={200: Envelope, 404: FailureEnvelope, 422: ValidationErrorEnvelope, **_DENIED},
            ),
            destroy,
        ),
    ]
    for spec, handler in routes:
        spec.authenticated = True
        spec.tags = TAGS
        registry.add(BASE_PATH, spec, handler)
