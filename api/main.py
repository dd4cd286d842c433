"""
api/main.py -- FastAPI application factory for the RBAC API.

Run with:      python main.py serve
               uvicorn asgi:app --reload

create_app(settings) assembles one application:
  1. builds the rate limiters and the RouteRegistry, registers every route
     module, freezes the registry and mounts it
  2. installs CORS, request logging and the exception handlers
  3. replaces FastAPI's schema generator with build_openapi(registry)

Lifespan handles startup (database engine, stores, cache, token service,
purge task) and shutdown (cancel purge task, close cache, dispose engine)
symmetrically. Everything request-scoped reaches handlers via app.state:

  app.state.settings   Settings
  app.state.users      UserStore
  app.state.rbac       RBACStore
  app.state.cache      CacheStore
  app.state.tokens     TokenService
  app.state.registry   frozen RouteRegistry
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import build_limiters
from api.openapi import build_openapi
from api.responses import error_for, internal_error, not_found_envelope
from api.routes.v1 import auth as auth_routes
from api.routes.v1 import health as health_routes
from api.routes.v1 import permissions as permission_routes
from api.routes.v1 import roles as role_routes
from api.routes.v1 import users as user_routes
from api.routing import RouteRegistry
from auth.store import UserStore
from auth.tokens import TokenService
from cache.store import CacheStore
from core.config import Settings, get_settings
from core.database import create_db_engine
from core.errors import ServiceError
from rbac.store import RBACStore

VERSION = "1.0.0"

ROUTE_MODULES = (auth_routes, user_routes, role_routes, permission_routes, health_routes)

logger = logging.getLogger("rbacapi.api")

# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------

PURGE_INTERVAL_SECONDS = 6 * 60 * 60


async def _purge_loop(app: FastAPI) -> None:
    """Purge expired cache rows every 6 hours. Cancelled on shutdown."""
    while True:
        await asyncio.sleep(PURGE_INTERVAL_SECONDS)
        removed = app.state.cache.purge_expired()
        logger.info("Purged %d expired cache keys", removed)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open shared resources on startup and release them on shutdown.

    Startup order: engine -> stores -> cache -> tokens -> purge task
    (the purge task references app.state.cache).
    """
    settings: Settings = app.state.settings
    logger.info("%s starting up (environment=%s)", settings.app_name, settings.environment)

    engine = create_db_engine(settings.database_url)
    app.state.users = UserStore(engine)
    app.state.rbac = RBACStore(engine)
    app.state.cache = CacheStore(settings.cache_path)
    app.state.tokens = TokenService(settings)
    app.state.started_at = time.monotonic()
    logger.info("Stores initialized (database=%s, cache=%s)", engine.url.render_as_string(), settings.cache_path)
    app.state.purge_task = asyncio.create_task(_purge_loop(app))

    yield

    app.state.purge_task.cancel()
    app.state.cache.close()
    engine.dispose()
    logger.info("%s shutdown complete", settings.app_name)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


def build_registry(settings: Settings) -> RouteRegistry:
    """Register every route module and freeze the result."""
    limiters = build_limiters(settings)
    registry = RouteRegistry(default_limiter=limiters.default)
    for module in ROUTE_MODULES:
        module.register(registry, limiters)
    return registry.freeze()


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    app = FastAPI(
        title=settings.app_name,
        description="User management, authentication and role-based access control.",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.settings = settings

    registry = build_registry(settings)
    registry.mount(app)
    app.state.registry = registry

    _install_openapi(app, registry, settings)
    _install_middleware(app, settings)
    _install_exception_handlers(app, settings)
    return app


def _install_openapi(app: FastAPI, registry: RouteRegistry, settings: Settings) -> None:
    def openapi() -> dict:
        if app.openapi_schema is None:
            app.openapi_schema = build_openapi(registry, settings.app_name, VERSION, app.description)
        return app.openapi_schema

    app.openapi = openapi  # type: ignore[method-assign]


# ---------------------------------------------------------------------------
# Middleware stack
#
# CORS answers preflight requests before any route pipeline runs. The request
# logger wraps everything so latency covers the full pipeline.
# ---------------------------------------------------------------------------


def _install_middleware(app: FastAPI, settings: Settings) -> None:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_allowed_origins(),
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization"],
        expose_headers=["X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset", "Retry-After"],
        max_age=3600,
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        ms = (time.perf_counter() - start) * 1000
        logger.info(
            "%s %s %d %.1fms %s",
            request.method,
            request.url.path,
            response.status_code,
            ms,
            request.client.host if request.client else "unknown",
        )
        return response


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------


def _install_exception_handlers(app: FastAPI, settings: Settings) -> None:
    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
        return error_for(exc)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        """Unknown endpoints get the not-found envelope; other HTTP errors the generic one."""
        if exc.status_code == 404:
            return not_found_envelope(request.method, request.url.path)
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "status": "error",
                "message": str(exc.detail),
                "errors": [{"method": request.method, "path": request.url.path, "message": str(exc.detail)}],
            },
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Log the full traceback; the stack reaches the client only outside production."""
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return internal_error(exc, include_stack=not settings.is_production)
