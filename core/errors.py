"""
core/errors.py -- Tagged error type shared by services, stages and handlers.

Services raise ServiceError(kind, message). The HTTP layer looks the kind up in
STATUS_FOR_KIND -- the only place where an error category becomes a status
code. Nothing downstream inspects message text to pick a status.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    UNAUTHENTICATED = "unauthenticated"
    FORBIDDEN = "forbidden"
    RATE_LIMITED = "rate_limited"
    INTERNAL = "internal"


STATUS_FOR_KIND: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 422,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.UNAUTHENTICATED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.INTERNAL: 500,
}


class ServiceError(Exception):
    """A domain failure with an explicit category.

    errors carries optional structured detail (e.g. validation issues) that
    the envelope builder copies into the response body.
    """

    def __init__(self, kind: ErrorKind, message: str, errors: Optional[list[dict[str, Any]]] = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.errors = errors or []

    @property
    def status_code(self) -> int:
        return STATUS_FOR_KIND[self.kind]

    def __repr__(self) -> str:
        return f"ServiceError({self.kind.value!r}, {self.message!r})"


def not_found(message: str) -> ServiceError:
    return ServiceError(ErrorKind.NOT_FOUND, message)


def conflict(message: str) -> ServiceError:
    return ServiceError(ErrorKind.CONFLICT, message)


def unauthenticated(message: str) -> ServiceError:
    return ServiceError(ErrorKind.UNAUTHENTICATED, message)
