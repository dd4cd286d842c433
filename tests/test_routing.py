"""
tests/test_routing.py -- Route registry, validator and pipeline (api/routing.py).

These tests never start an app: RequestContext is built by hand with
request=None, which is enough for every stage that does not read app.state.
"""

from __future__ import annotations

import json

import pytest
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from api.models import IdParams, ListQuery, RegisterRequest
from api.routing import (
    Pipeline,
    RequestContext,
    RequestValidator,
    RouteRegistry,
    RouteSpec,
    Validation,
    join_path,
)
from auth.dependencies import authenticate
from core.errors import STATUS_FOR_KIND, ErrorKind, conflict


def _ok(ctx):
    return JSONResponse({"ok": True})


def _ctx(**kwargs) -> RequestContext:
    return RequestContext(request=None, **kwargs)


# ---------------------------------------------------------------------------
# Paths and names
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "base, path, expected",
    [
        ("/users", "/", "/users"),
        ("/users", "/{id}", "/users/{id}"),
        ("users", "/{id}/roles", "/users/{id}/roles"),
        ("", "/health", "/health"),
        ("", "/", "/"),
    ],
)
def test_join_path(base, path, expected):
    assert join_path(base, path) == expected


def test_url_for_fills_placeholders_and_query():
    registry = RouteRegistry()
    registry.add("/users", RouteSpec(name="users.show", method="GET", path="/{id}"), _ok)
    registry.add("/users", RouteSpec(name="users.index", method="GET", path="/"), _ok)

    assert registry.url_for("users.show", {"id": "abc"}) == "/users/abc"
    assert registry.url_for("users.show", {"id": "abc", "expand": "roles"}) == "/users/abc?expand=roles"
    assert registry.url_for("users.index", {"page": 2, "per_page": 5}) == "/users?page=2&per_page=5"


def test_url_for_unknown_name():
    registry = RouteRegistry()
    with pytest.raises(KeyError, match='Route name "nope" not found.'):
        registry.url_for("nope")
    assert registry.url_for("nope", safe=True) == ""


def test_duplicate_name_is_rejected():
    registry = RouteRegistry()
    registry.add("/a", RouteSpec(name="dup", method="GET", path="/"), _ok)
    with pytest.raises(ValueError):
        registry.add("/b", RouteSpec(name="dup", method="GET", path="/"), _ok)


def test_same_method_and_path_overwrites():
    registry = RouteRegistry()
    registry.add("/a", RouteSpec(name="first", method="GET", path="/"), _ok)
    registry.add("/a", RouteSpec(name="second", method="get", path="/"), _ok)

    assert len(registry.routes()) == 1
    assert registry.get("GET", "/a").spec.name == "second"
    assert registry.url_for("second") == "/a"
    assert registry.url_for("first", safe=True) == ""
    # the replaced name can be reused
    registry.add("/b", RouteSpec(name="first", method="GET", path="/"), _ok)


def test_frozen_registry_rejects_new_routes():
    registry = RouteRegistry().freeze()
    assert registry.frozen
    with pytest.raises(RuntimeError):
        registry.add("/a", RouteSpec(name="late", method="GET", path="/"), _ok)


def test_mount_requires_frozen_registry():
    with pytest.raises(RuntimeError):
        RouteRegistry().mount(app=None)


def test_describe_is_sorted_by_path_then_method():
    registry = RouteRegistry()
    registry.add("/users", RouteSpec(name="users.store", method="POST", path="/", authenticated=True), _ok)
    registry.add("/users", RouteSpec(name="users.index", method="GET", path="/", description="List"), _ok)
    registry.add("/auth", RouteSpec(name="auth.login", method="POST", path="/login"), _ok)

    assert registry.describe() == [
        ("auth.login", "POST", "/auth/login", "-", "No"),
        ("users.index", "GET", "/users", "List", "No"),
        ("users.store", "POST", "/users", "-", "Yes"),
    ]


# ---------------------------------------------------------------------------
# Stage order
# ---------------------------------------------------------------------------


def test_stage_order():
    def limiter(ctx):
        return None

    def extra(ctx):
        return None

    registry = RouteRegistry(default_limiter=limiter)
    route = registry.add(
        "/users",
        RouteSpec(
            name="users.index",
            method="GET",
            path="/",
            authenticated=True,
            permission=["users.read", "users.create"],
            validation=Validation(query=ListQuery),
            stages=[extra],
        ),
        _ok,
    )
    stages = route.pipeline.stages
    assert stages[0] is limiter
    assert isinstance(stages[1], RequestValidator)
    assert stages[2] is authenticate
    assert stages[3].required == ["users.read", "users.create"]
    assert stages[4] is extra


def test_rate_limited_false_skips_limiter():
    registry = RouteRegistry(default_limiter=lambda ctx: None)
    route = registry.add("/health", RouteSpec(name="health", method="GET", path="/", rate_limited=False), _ok)
    assert route.pipeline.stages == []


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def test_validator_collects_issues_from_every_location():
    class Headers(BaseModel):
        x_tenant: str = Field(alias="x-tenant")

    stage = RequestValidator(Validation(params=IdParams, query=ListQuery, body=RegisterRequest, headers=Headers))
    ctx = _ctx(
        path_params={"id": "not-a-uuid"},
        query={"page": "0"},
        body={"name": "A", "email": "nope", "password": "short"},
        headers={},
    )

    response = stage(ctx)
    assert response.status_code == 422

    payload = json.loads(response.body)
    assert payload["status"] == "error"
    assert payload["message"] == "Validation error"
    where_paths = {(e["where"], e["path"]) for e in payload["errors"]}
    assert ("params", "id") in where_paths
    assert ("query", "page") in where_paths
    assert ("body", "name") in where_paths
    assert ("body", "email") in where_paths
    assert ("body", "password") in where_paths
    assert ("headers", "x-tenant") in where_paths


def test_validator_status_follows_error_table(monkeypatch):
    monkeypatch.setitem(STATUS_FOR_KIND, ErrorKind.VALIDATION, 400)
    response = RequestValidator(Validation(query=ListQuery))(_ctx(query={"page": "0"}))
    assert response.status_code == 400


def test_validator_reports_password_strength():
    stage = RequestValidator(Validation(body=RegisterRequest))
    ctx = _ctx(body={"name": "Ada", "email": "ada@example.com", "password": "alllowercase1"})

    errors = json.loads(stage(ctx).body)["errors"]
    assert errors[0]["path"] == "password"
    assert "uppercase" in errors[0]["message"]


def test_validator_replaces_body_but_keeps_raw_query():
    stage = RequestValidator(Validation(query=ListQuery, body=RegisterRequest))
    ctx = _ctx(
        query={"page": "2"},
        body={"name": "  Ada  ", "email": "ada@example.com", "password": "Secret123"},
    )

    assert stage(ctx) is None
    assert ctx.body["name"] == "Ada"
    assert ctx.query == {"page": "2"}
    assert ctx.validated["query"].page == 2
    assert ctx.validated["query"].per_page == 10


def test_invalid_json_is_a_single_body_issue():
    stage = RequestValidator(Validation(body=RegisterRequest))
    response = stage(_ctx(body_error="Invalid JSON body"))

    assert json.loads(response.body)["errors"] == [{"where": "body", "path": "", "message": "Invalid JSON body"}]


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


def test_first_terminal_stage_stops_the_pipeline():
    calls = []

    def deny(ctx):
        calls.append("deny")
        return JSONResponse({"denied": True}, status_code=403)

    def never(ctx):
        calls.append("never")

    response = Pipeline([deny, never], _ok).run(_ctx())
    assert response.status_code == 403
    assert calls == ["deny"]


def test_service_error_becomes_envelope_with_collected_headers():
    def tag(ctx):
        ctx.response_headers["X-RateLimit-Limit"] = "5"

    def handler(ctx):
        raise conflict("Role with this name already exists")

    response = Pipeline([tag], handler).run(_ctx())
    assert response.status_code == 409
    assert response.headers["X-RateLimit-Limit"] == "5"


def test_post_commit_runs_only_after_success():
    ran = []

    def ok_handler(ctx):
        ctx.after_commit(lambda: ran.append("ok"))
        return JSONResponse({}, status_code=201)

    def failing_handler(ctx):
        ctx.after_commit(lambda: ran.append("failed"))
        return JSONResponse({}, status_code=404)

    Pipeline([], ok_handler).run(_ctx())
    Pipeline([], failing_handler).run(_ctx())
    assert ran == ["ok"]


def test_post_commit_failure_does_not_change_response():
    def handler(ctx):
        ctx.after_commit(lambda: 1 / 0)
        return JSONResponse({"done": True})

    response = Pipeline([], handler, name="boom").run(_ctx())
    assert response.status_code == 200
