"""
api/openapi.py -- OpenAPI 3.1 document generated from the route registry.

Pipelines are mounted as plain Starlette routes, so FastAPI's own schema
generator never sees them. build_openapi() walks the frozen RouteRegistry
instead and turns each RouteSpec into an operation:

  params / query / headers models -> parameters
  body model                      -> requestBody
  responses {status: model}       -> responses (500 added to every operation)
  authenticated                   -> bearerAuth security requirement

Pydantic's model_json_schema() provides every schema; nested definitions are
hoisted into components.schemas so references resolve.
"""

from __future__ import annotations

import re
from http import HTTPStatus
from typing import Any

from pydantic import BaseModel

from api.models import InternalErrorEnvelope
from api.routing import RouteRegistry

_REF_TEMPLATE = "#/components/schemas/{model}"
_PLACEHOLDER_RE = re.compile(r"{(\w+)}")


def build_openapi(registry: RouteRegistry, title: str, version: str, description: str = "") -> dict[str, Any]:
    schemas: dict[str, Any] = {}
    paths: dict[str, dict[str, Any]] = {}

    for route in registry.routes():
        spec = route.spec
        operation: dict[str, Any] = {
            "operationId": spec.name,
            "summary": spec.description or spec.name,
            "tags": spec.tags,
            "parameters": _parameters(spec, route.path),
            "responses": {},
        }

        validation = spec.validation
        if validation is not None and validation.body is not None:
            operation["requestBody"] = {
                "required": True,
                "content": {"application/json": {"schema": _schema_ref(validation.body, schemas)}},
            }

        responses = dict(spec.responses)
        responses.setdefault(500, InternalErrorEnvelope)
        for status in sorted(responses):
            operation["responses"][str(status)] = {
                "description": HTTPStatus(status).phrase,
                "content": {"application/json": {"schema": _schema_ref(responses[status], schemas)}},
            }

        if spec.authenticated:
            operation["security"] = [{"bearerAuth": []}]

        paths.setdefault(route.path, {})[route.method.lower()] = operation

    return {
        "openapi": "3.1.0",
        "info": {"title": title, "version": version, "description": description},
        "paths": paths,
        "components": {
            "schemas": schemas,
            "securitySchemes": {"bearerAuth": {"type": "http", "scheme": "bearer", "bearerFormat": "JWT"}},
        },
    }


def _parameters(spec, path: str) -> list[dict[str, Any]]:
    validation = spec.validation
    params: list[dict[str, Any]] = []

    if validation is not None and validation.params is not None:
        params.extend(_model_parameters(validation.params, "path"))
    else:
        for name in _PLACEHOLDER_RE.findall(path):
            params.append({"name": name, "in": "path", "required": True, "schema": {"type": "string"}})

    if validation is not None and validation.query is not None:
        params.extend(_model_parameters(validation.query, "query"))
    if validation is not None and validation.headers is not None:
        params.extend(_model_parameters(validation.headers, "header"))
    return params


def _model_parameters(model: type[BaseModel], location: str) -> list[dict[str, Any]]:
    schema = model.model_json_schema()
    required = set(schema.get("required", []))
    params = []
    for name, prop in schema.get("properties", {}).items():
        param: dict[str, Any] = {
            "name": name,
            "in": location,
            "required": location == "path" or name in required,
            "schema": {k: v for k, v in prop.items() if k != "description"},
        }
        if "description" in prop:
            param["description"] = prop["description"]
        params.append(param)
    return params


def _schema_ref(model: type[BaseModel], schemas: dict[str, Any]) -> dict[str, str]:
    name = model.__name__
    if name not in schemas:
        schema = model.model_json_schema(ref_template=_REF_TEMPLATE)
        for def_name, definition in schema.pop("$defs", {}).items():
            schemas.setdefault(def_name, definition)
        schemas[name] = schema
    return {"$ref": _REF_TEMPLATE.format(model=name)}
