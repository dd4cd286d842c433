"""
api/responses.py -- JSON envelope builders shared by handlers and stages.

Two envelope families exist:

  Domain envelope   {"success": bool, "message": str, "data": ...}
                    used for every handler result and for domain failures
                    (conflict, unauthenticated, forbidden, not found).

  Error envelope    {"status": "error", "message": str, "errors": [...]}
                    used for request validation, unknown endpoints and
                    unexpected server errors.

Every JSONResponse leaving the API is built here so the shapes cannot drift.
"""

from __future__ import annotations

import traceback
from typing import Any, Optional

from fastapi.responses import JSONResponse

from core.errors import STATUS_FOR_KIND, ErrorKind, ServiceError


def success(message: str, data: Any = None, status_code: int = 200, **extra: Any) -> JSONResponse:
    """Domain success envelope. extra keys (meta, cached) are merged in."""
    content: dict[str, Any] = {"success": True, "message": message, "data": data}
    content.update(extra)
    return JSONResponse(status_code=status_code, content=content)


def failure(message: str, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message, "data": None})


def failure_for(kind: ErrorKind, message: str) -> JSONResponse:
    """Domain failure envelope whose status comes from STATUS_FOR_KIND."""
    return failure(message, STATUS_FOR_KIND[kind])


def error_for(exc: ServiceError) -> JSONResponse:
    """Translate a ServiceError into its envelope via STATUS_FOR_KIND."""
    if exc.errors:
        return JSONResponse(
            status_code=exc.status_code,
            content={"status": "error", "message": exc.message, "errors": exc.errors},
        )
    return failure(exc.message, exc.status_code)


def validation_error(issues: list[dict[str, str]]) -> JSONResponse:
    return JSONResponse(
        status_code=STATUS_FOR_KIND[ErrorKind.VALIDATION],
        content={"status": "error", "message": "Validation error", "errors": issues},
    )


def not_found_envelope(method: str, path: str) -> JSONResponse:
    return JSONResponse(
        status_code=STATUS_FOR_KIND[ErrorKind.NOT_FOUND],
        content={
            "status": "error",
            "message": "Not Found",
            "errors": [{"method": method, "path": path, "message": f"Endpoint {method} {path} not found"}],
        },
    )


def internal_error(exc: Optional[BaseException], include_stack: bool) -> JSONResponse:
    """Sanitised 500 envelope. The stack trace is attached only when include_stack is set."""
    content: dict[str, Any] = {
        "status": "error",
        "message": "Internal Server Error",
        "errors": [{"message": "An unexpected error occurred."}],
    }
    if include_stack and exc is not None:
        content["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return JSONResponse(status_code=STATUS_FOR_KIND[ErrorKind.INTERNAL], content=content)


def rate_limited(message: str, retry_after: int, headers: dict[str, str]) -> JSONResponse:
    return JSONResponse(
        status_code=STATUS_FOR_KIND[ErrorKind.RATE_LIMITED],
        content={"message": message, "retryAfter": retry_after},
        headers=headers,
    )
