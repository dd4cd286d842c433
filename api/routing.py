"""
api/routing.py -- Route registry, request context and the stage pipeline.

Every endpoint is declared once as a RouteSpec and registered on a
RouteRegistry. Registration:

  1. joins the module base path and the sub-path into the full path
  2. records name -> full path for url_for()
  3. stores the descriptor under (METHOD, full path); a repeat overwrites it
  4. builds the Pipeline in fixed order:
       rate limiter -> request validator -> authenticate -> has_permission
       -> extra route stages -> handler

A stage is any callable taking the RequestContext and returning None
(continue) or a Response (stop and answer with it). Handlers take the same
context and always return a Response.

The registry is frozen after bootstrap. mount() attaches every pipeline to the
FastAPI app as a plain Starlette route, and build_openapi() (api/openapi.py)
reads the same descriptors to produce the schema.

Pipelines are synchronous: stores use blocking SQLAlchemy / sqlite3 calls, so
the async endpoint created by mount() reads the body and then runs the
pipeline in Starlette's thread pool.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional, Union
from urllib.parse import quote, urlencode

from fastapi import FastAPI, Request
from pydantic import BaseModel, ValidationError
from starlette.concurrency import run_in_threadpool
from starlette.responses import Response

from api.responses import error_for, validation_error
from auth.dependencies import authenticate
from auth.models import Identity
from core.errors import ServiceError
from rbac.access import has_permission

logger = logging.getLogger("rbacapi.routing")

Stage = Callable[["RequestContext"], Optional[Response]]
Handler = Callable[["RequestContext"], Response]


# ---------------------------------------------------------------------------
# Request context
# ---------------------------------------------------------------------------


@dataclass
class RequestContext:
    """Per-request state shared by every stage and the handler.

    body holds the decoded JSON body; after validation it is replaced by the
    validated body. query / path_params / headers are never rewritten: the
    validated versions live in validated["query"] etc.
    """

    request: Request
    path_params: dict[str, str] = field(default_factory=dict)
    query: dict[str, str] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None
    body_error: Optional[str] = None
    validated: dict[str, BaseModel] = field(default_factory=dict)
    user: Optional[Identity] = None
    response_headers: dict[str, str] = field(default_factory=dict)
    post_commit: list[Callable[[], None]] = field(default_factory=list)

    @classmethod
    async def from_request(cls, request: Request) -> "RequestContext":
        ctx = cls(
            request=request,
            path_params=dict(request.path_params),
            query=dict(request.query_params),
            headers={k.lower(): v for k, v in request.headers.items()},
        )
        raw = await request.body()
        if raw:
            try:
                ctx.body = json.loads(raw)
            except ValueError:
                ctx.body_error = "Invalid JSON body"
        return ctx

    @property
    def state(self) -> Any:
        return self.request.app.state

    def after_commit(self, callback: Callable[[], None]) -> None:
        """Queue callback to run once the handler has answered with a 2xx/3xx."""
        self.post_commit.append(callback)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


@dataclass
class Validation:
    body: Optional[type[BaseModel]] = None
    query: Optional[type[BaseModel]] = None
    params: Optional[type[BaseModel]] = None
    headers: Optional[type[BaseModel]] = None

    def items(self) -> list[tuple[str, type[BaseModel]]]:
        return [(where, model) for where, model in self._all() if model is not None]

    def _all(self) -> list[tuple[str, Optional[type[BaseModel]]]]:
        return [("params", self.params), ("query", self.query), ("body", self.body), ("headers", self.headers)]

    def __bool__(self) -> bool:
        return bool(self.items())


class RequestValidator:
    """Stage that validates every configured location and reports all issues at once."""

    def __init__(self, validation: Validation) -> None:
        self.validation = validation

    def __call__(self, ctx: RequestContext) -> Optional[Response]:
        issues: list[dict[str, str]] = []
        validated: dict[str, BaseModel] = {}

        for where, model in self.validation.items():
            if where == "body" and ctx.body_error:
                issues.append({"where": "body", "path": "", "message": ctx.body_error})
                continue
            try:
                validated[where] = model.model_validate(_source(ctx, where))
            except ValidationError as exc:
                for err in exc.errors():
                    issues.append(
                        {
                            "where": where,
                            "path": ".".join(str(part) for part in err["loc"]),
                            "message": err["msg"],
                        }
                    )

        if issues:
            return validation_error(issues)

        ctx.validated.update(validated)
        if "body" in validated:
            ctx.body = validated["body"].model_dump()
        return None


def _source(ctx: RequestContext, where: str) -> Any:
    if where == "params":
        return ctx.path_params
    if where == "query":
        return ctx.query
    if where == "headers":
        return ctx.headers
    return ctx.body if ctx.body is not None else {}


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class Pipeline:
    """Ordered stages followed by a handler.

    The first stage to return a Response ends the run. ServiceError raised by
    any step becomes its envelope here so informational headers collected on
    the context are still attached. Post-commit callbacks run only after a
    handler answered with a status below 400; their failures are logged.
    """

    def __init__(self, stages: Iterable[Stage], handler: Handler, name: str = "") -> None:
        self.stages: list[Stage] = list(stages)
        self.handler = handler
        self.name = name

    def run(self, ctx: RequestContext) -> Response:
        try:
            for stage in self.stages:
                response = stage(ctx)
                if response is not None:
                    return self._finish(ctx, response)
            response = self.handler(ctx)
        except ServiceError as exc:
            return self._finish(ctx, error_for(exc))

        if response.status_code < 400:
            self._run_post_commit(ctx)
        return self._finish(ctx, response)

    def _run_post_commit(self, ctx: RequestContext) -> None:
        for callback in ctx.post_commit:
            try:
                callback()
            except Exception:
                logger.exception("Post-commit hook failed on route %s", self.name)

    @staticmethod
    def _finish(ctx: RequestContext, response: Response) -> Response:
        for name, value in ctx.response_headers.items():
            response.headers.setdefault(name, value)
        return response


# ---------------------------------------------------------------------------
# Route descriptors
# ---------------------------------------------------------------------------


@dataclass
class RouteSpec:
    """Declarative description of one endpoint.

    permission adds a has_permission stage (AND semantics for a list);
    authenticated adds the mandatory authenticate stage. rate_limiter
    overrides the registry default; rate_limited=False disables limiting.
    """

    name: str
    method: str
    path: str
    description: str = ""
    authenticated: bool = False
    permission: Union[str, list[str], None] = None
    stages: list[Stage] = field(default_factory=list)
    validation: Optional[Validation] = None
    responses: dict[int, type[BaseModel]] = field(default_factory=dict)
    tags: list[str] = field(default_factory=list)
    rate_limiter: Optional[Stage] = None
    rate_limited: bool = True


@dataclass
class RegisteredRoute:
    spec: RouteSpec
    method: str
    path: str
    pipeline: Pipeline


def ensure_leading_slash(path: str) -> str:
    return path if path.startswith("/") else f"/{path}"


def join_path(base_path: str, path: str) -> str:
    full = ensure_leading_slash(base_path) + path if base_path else ensure_leading_slash(path)
    if len(full) > 1 and full.endswith("/"):
        full = full[:-1]
    return full


class RouteRegistry:
    """Named route table, built once at bootstrap and then frozen.

    Usage:
        registry = RouteRegistry(default_limiter=limiters.default)
        registry.add("/users", RouteSpec(name="users.show", method="GET", path="/{id}"), show)
        registry.freeze()
        registry.mount(app)
        registry.url_for("users.show", {"id": user_id})   # "/users/<id>"
    """

    def __init__(self, default_limiter: Optional[Stage] = None) -> None:
        self.default_limiter = default_limiter
        self._names: dict[str, str] = {}
        self._routes: dict[tuple[str, str], RegisteredRoute] = {}
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def add(self, base_path: str, spec: RouteSpec, handler: Handler) -> RegisteredRoute:
        if self._frozen:
            raise RuntimeError(f"Cannot register route {spec.name!r}: registry is frozen")
        if spec.name in self._names:
            raise ValueError(f"Duplicate route name {spec.name!r}")

        method = spec.method.upper()
        full_path = join_path(base_path, spec.path)
        self._names[spec.name] = full_path

        key = (method, full_path)
        replaced = self._routes.get(key)
        if replaced is not None:
            logger.warning("Route %s %s re-registered; replacing %s", method, full_path, replaced.spec.name)
            del self._names[replaced.spec.name]

        route = RegisteredRoute(
            spec=spec,
            method=method,
            path=full_path,
            pipeline=Pipeline(self._build_stages(spec), handler, name=spec.name),
        )
        self._routes[key] = route
        logger.debug("Registered %s %s as %s", method, full_path, spec.name)
        return route

    def _build_stages(self, spec: RouteSpec) -> list[Stage]:
        stages: list[Stage] = []
        limiter = spec.rate_limiter or self.default_limiter
        if spec.rate_limited and limiter is not None:
            stages.append(limiter)
        if spec.validation:
            stages.append(RequestValidator(spec.validation))
        if spec.authenticated:
            stages.append(authenticate)
        if spec.permission:
            stages.append(has_permission(spec.permission))
        stages.extend(spec.stages)
        return stages

    def freeze(self) -> "RouteRegistry":
        self._frozen = True
        logger.info("Route registry frozen with %d routes", len(self._routes))
        return self

    def routes(self) -> list[RegisteredRoute]:
        return list(self._routes.values())

    def get(self, method: str, path: str) -> Optional[RegisteredRoute]:
        return self._routes.get((method.upper(), path))

    def url_for(self, name: str, params: Optional[dict[str, Any]] = None, safe: bool = False) -> str:
        """Build the URL of a named route.

        Placeholders ({id}) are filled from params; remaining params become
        the query string. Unknown names raise KeyError, or yield "" when safe.
        """
        route = self._names.get(name)
        if route is None:
            if safe:
                return ""
            raise KeyError(f'Route name "{name}" not found.')

        leftovers: dict[str, str] = {}
        for key, value in (params or {}).items():
            placeholder = "{" + key + "}"
            if placeholder in route:
                route = route.replace(placeholder, quote(str(value), safe=""))
            else:
                leftovers[key] = str(value)

        if len(route) > 1 and route.endswith("/"):
            route = route[:-1]
        return f"{route}?{urlencode(leftovers)}" if leftovers else route

    def describe(self) -> list[tuple[str, str, str, str, str]]:
        """(name, method, path, description, auth) rows sorted by path then method."""
        rows = [
            (r.spec.name, r.method, r.path, r.spec.description or "-", "Yes" if r.spec.authenticated else "No")
            for r in self._routes.values()
        ]
        return sorted(rows, key=lambda row: (row[2], row[1]))

    def mount(self, app: FastAPI) -> None:
        """Attach every registered pipeline to app as a Starlette route."""
        if not self._frozen:
            raise RuntimeError("Freeze the registry before mounting it")
        for route in self._routes.values():
            app.add_route(
                route.path,
                _endpoint_for(route.pipeline),
                methods=[route.method],
                name=route.spec.name,
                include_in_schema=False,
            )


def _endpoint_for(pipeline: Pipeline) -> Callable:
    async def endpoint(request: Request) -> Response:
        ctx = await RequestContext.from_request(request)
        return await run_in_threadpool(pipeline.run, ctx)

    endpoint.__name__ = pipeline.name.replace(".", "_") or "endpoint"
    return endpoint
