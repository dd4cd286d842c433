"""
rbac/access.py -- Authorization stages: has_role() and has_permission().

Both factories take one name or a list of names and return a pipeline stage.
The stage must run after authenticate (it reads ctx.user) and resolves the
caller's roles / permissions fresh from app.state.rbac on every request.

  has_role        OR  -- passes if the user holds at least one listed role.
  has_permission  AND -- passes only if the union of the user's role
                         permissions contains every listed permission.

Outcomes:
  no identity on the context     401 "User not authenticated"
  policy not satisfied           403 "Access denied. Required ...: a, b"
  store lookup raised            500 "Failed to check ..." (logged)

The request is denied in every case except a satisfied policy.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable, Iterable, Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from starlette.responses import Response

from api.responses import failure_for
from core.errors import ErrorKind

if TYPE_CHECKING:
    from api.routing import RequestContext

logger = logging.getLogger("rbacapi.access")

Names = Union[str, Iterable[str]]


def _as_list(names: Names) -> list[str]:
    return [names] if isinstance(names, str) else list(names)


def has_role(roles: Names) -> Callable[[RequestContext], Optional[Response]]:
    required = _as_list(roles)

    def check_role(ctx: RequestContext) -> Optional[Response]:
        if ctx.user is None:
            return failure_for(ErrorKind.UNAUTHENTICATED, "User not authenticated")
        try:
            held = ctx.state.rbac.get_user_role_names(ctx.user.user_id)
        except SQLAlchemyError:
            logger.exception("Role lookup failed for user %s", ctx.user.user_id)
            return failure_for(ErrorKind.INTERNAL, "Failed to check user role")
        if not any(name in held for name in required):
            message = f"Access denied. Required role(s): {', '.join(required)}"
            return failure_for(ErrorKind.FORBIDDEN, message)
        return None

    check_role.required = required  # type: ignore[attr-defined]
    return check_role


def has_permission(permissions: Names) -> Callable[[RequestContext], Optional[Response]]:
    required = _as_list(permissions)

    def check_permission(ctx: RequestContext) -> Optional[Response]:
        if ctx.user is None:
            return failure_for(ErrorKind.UNAUTHENTICATED, "User not authenticated")
        try:
            granted = ctx.state.rbac.get_user_permission_names(ctx.user.user_id)
        except SQLAlchemyError:
            logger.exception("Permission lookup failed for user %s", ctx.user.user_id)
            return failure_for(ErrorKind.INTERNAL, "Failed to check user permissions")
        if not all(name in granted for name in required):
            message = f"Access denied. Required permission(s): {', '.join(required)}"
            return failure_for(ErrorKind.FORBIDDEN, message)
        return None

    check_permission.required = required  # type: ignore[attr-defined]
    return check_permission
