"""
api/routes/v1/health.py -- Liveness endpoint.

GET /health is public and not rate-limited: load balancers and monitoring
probes must never be throttled.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone

from fastapi.responses import JSONResponse
from starlette.responses import Response

from api.limiter import Limiters
from api.models import HealthEnvelope
from api.routing import RequestContext, RouteRegistry, RouteSpec


def health(ctx: RequestContext) -> Response:
    """Return status, ISO timestamp and process uptime in seconds."""
    started_at = getattr(ctx.state, "started_at", None) or time.monotonic()
    return JSONResponse(
        {
            "status": "success",
            "data": {
                "status": "ok",
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "uptime": round(time.monotonic() - started_at, 3),
            },
        }
    )


def register(registry: RouteRegistry, limiters: Limiters) -> None:
    registry.add(
        "/health",
        RouteSpec(
            name="health",
            method="GET",
            path="/",
            description="Service liveness check",
            responses={200: HealthEnvelope},
            tags=["Health"],
            rate_limited=False,
        ),
        health,
    )
