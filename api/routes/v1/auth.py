"""
api/routes/v1/auth.py -- Authentication endpoints.

Routes:
  POST /auth/register   -- create account, 201 token pair + user
  POST /auth/login      -- password login, 200 token pair + user
  POST /auth/refresh    -- exchange refresh token for a new pair
  GET  /auth/profile    -- current user (requires auth)

Rate limits:
  register / login use the auth limiter (keyed by IP + submitted email).
  refresh uses the strict limiter. profile uses the default limiter.

Security:
  Login uses authenticate_user() for timing equalization -- never inline
  get_by_email() + verify_password().
  Cache-Control: no-store on every response that carries tokens.
"""

from __future__ import annotations

from starlette.responses import Response

from api.limiter import Limiters
from api.models import (
    FailureEnvelope,
    LoginRequest,
    RateLimitedEnvelope,
    RefreshRequest,
    RegisterRequest,
    SessionEnvelope,
    TokenPairEnvelope,
    UserEnvelope,
    ValidationErrorEnvelope,
)
from api.responses import success
from api.routing import RequestContext, RouteRegistry, RouteSpec, Validation
from services import auth as auth_service

BASE_PATH = "/auth"
TAGS = ["Auth"]


def _no_store(response: Response) -> Response:
    response.headers["Cache-Control"] = "no-store"
    return response


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def register_user(ctx: RequestContext) -> Response:
    body: RegisterRequest = ctx.validated["body"]
    data = auth_service.register(ctx.state.users, ctx.state.tokens, body.name, body.email, body.password)
    return _no_store(success("User registered successfully", data, status_code=201))


def login(ctx: RequestContext) -> Response:
    body: LoginRequest = ctx.validated["body"]
    data = auth_service.login(ctx.state.users, ctx.state.tokens, body.email, body.password)
    return _no_store(success("Login successful", data))


def refresh_token(ctx: RequestContext) -> Response:
    body: RefreshRequest = ctx.validated["body"]
    data = auth_service.refresh(ctx.state.users, ctx.state.tokens, body.refresh_token)
    return _no_store(success("Token refreshed successfully", data))


def profile(ctx: RequestContext) -> Response:
    data = auth_service.profile(ctx.state.users, ctx.user.user_id)
    return success("Profile retrieved successfully", data)


# ---------------------------------------------------------------------------
# Route table
# ---------------------------------------------------------------------------


def register(registry: RouteRegistry, limiters: Limiters) -> None:
    registry.add(
        BASE_PATH,
        RouteSpec(
            name="auth.register",
            method="POST",
            path="/register",
            description="Register a new user account",
            validation=Validation(body=RegisterRequest),
            responses={
                201: SessionEnvelope,
                409: FailureEnvelope,
                422: ValidationErrorEnvelope,
                429: RateLimitedEnvelope,
            },
            tags=TAGS,
            rate_limiter=limiters.auth,
        ),
        register_user,
    )
    registry.add(
        BASE_PATH,
        RouteSpec(
            name="auth.login",
            method="POST",
            path="/login",
            description="Login with email and password",
            validation=Validation(body=LoginRequest),
            responses={
                200: SessionEnvelope,
                401: FailureEnvelope,
                422: ValidationErrorEnvelope,
                429: RateLimitedEnvelope,
            },
            tags=TAGS,
            rate_limiter=limiters.auth,
        ),
        login,
    )
    registry.add(
        BASE_PATH,
        RouteSpec(
            name="auth.refresh",
            method="POST",
            path="/refresh",
            description="Refresh access token using refresh token",
            validation=Validation(body=RefreshRequest),
            responses={
                200: TokenPairEnvelope,
                401: FailureEnvelope,
                422: ValidationErrorEnvelope,
                429: RateLimitedEnvelope,
            },
            tags=TAGS,
            rate_limiter=limiters.strict,
        ),
        refresh_token,
    )
    registry.add(
        BASE_PATH,
        RouteSpec(
            name="auth.profile",
            method="GET",
            path="/profile",
            description="Get authenticated user profile",
            authenticated=True,
            responses={200: UserEnvelope, 401: FailureEnvelope, 404: FailureEnvelope},
            tags=TAGS,
        ),
        profile,
    )
