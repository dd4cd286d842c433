"""
auth/dependencies.py -- Authentication stages for the route pipeline.

Only one credential is accepted: the Authorization: Bearer <token> header,
verified as an access token by app.state.tokens (auth/tokens.py TokenService).

authenticate() is the hard variant: it answers 401 and stops the pipeline when
the header is missing, malformed, or carries a token that fails verification.
optional_authenticate() is the soft variant: it never stops the pipeline and
only attaches an identity when verification succeeds.

On success the caller's Identity(user_id, email) is stored on ctx.user. That
is the only channel through which later stages and handlers see who is
calling.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from starlette.responses import Response

from api.responses import failure_for
from auth.models import Identity
from core.errors import ErrorKind

if TYPE_CHECKING:
    from api.routing import RequestContext

_BEARER_PREFIX = "Bearer "


def bearer_token(ctx: RequestContext) -> Optional[str]:
    """Return the raw token from the Authorization header, or None if absent/malformed."""
    header = ctx.headers.get("authorization", "")
    if not header.startswith(_BEARER_PREFIX):
        return None
    token = header[len(_BEARER_PREFIX) :].strip()
    return token or None


def _verify(ctx: RequestContext, token: str) -> Optional[Identity]:
    return ctx.state.tokens.verify_access_token(token)


def authenticate(ctx: RequestContext) -> Optional[Response]:
    """Require a valid access token. Answers 401 otherwise."""
    token = bearer_token(ctx)
    if token is None:
        return failure_for(ErrorKind.UNAUTHENTICATED, "Missing or invalid authorization header")
    identity = _verify(ctx, token)
    if identity is None:
        return failure_for(ErrorKind.UNAUTHENTICATED, "Unauthorized")
    ctx.user = identity
    return None


def optional_authenticate(ctx: RequestContext) -> Optional[Response]:
    """Attach the identity when a valid access token is present. Never fails."""
    token = bearer_token(ctx)
    if token is not None:
        identity = _verify(ctx, token)
        if identity is not None:
            ctx.user = identity
    return None
