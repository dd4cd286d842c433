"""
api/limiter.py -- Sliding-window rate limiter stage backed by the cache store.

Policies use the slowapi / limits notation ("100/minute", "5/15minutes") and
are parsed with limits.parse(), so the same strings work in .env files.

Algorithm, per request, for key = "rate-limit:<scope>:<client key>":
  1. drop sorted-set members scored before now - window
  2. count the remaining members
  3. count >= limit  -> 429 {message, retryAfter} with X-RateLimit-* and
                        Retry-After (seconds left on the key, else the window)
  4. otherwise       -> add now, refresh the key expiry to the window and
                        queue X-RateLimit-* headers for the eventual response

The scope keeps limiters that share a client key (default and strict both
key by IP) from counting each other's hits.

A cache failure is logged and the request is allowed through.

Three limiters are built per application by build_limiters():
  default  settings.rate_limit         keyed by client IP
  strict   settings.strict_rate_limit  keyed by client IP   (token refresh)
  auth     settings.auth_rate_limit    keyed by IP + email  (register, login)
"""

from __future__ import annotations

import logging
import math
import sqlite3
import time
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Optional

from limits import parse
from slowapi.util import get_remote_address
from starlette.responses import Response

from api.responses import rate_limited
from core.config import Settings

if TYPE_CHECKING:
    from api.routing import RequestContext
    from cache.store import CacheStore

logger = logging.getLogger("rbacapi.limiter")

DEFAULT_MESSAGE = "Too many requests, please try again later."
STRICT_MESSAGE = "Too many requests. Please slow down."
AUTH_MESSAGE = "Too many authentication attempts. Please try again later."


def client_key(ctx: RequestContext) -> str:
    return get_remote_address(ctx.request)


def client_and_email_key(ctx: RequestContext) -> str:
    """IP plus the email submitted in the (not yet validated) JSON body."""
    body = ctx.body if isinstance(ctx.body, dict) else {}
    identifier = body.get("email") or body.get("username") or ""
    return f"{get_remote_address(ctx.request)}:{identifier}"


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset: int

    def headers(self) -> dict[str, str]:
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.reset)
        return headers


class RateLimiter:
    """Pipeline stage enforcing one policy.

    Usage:
        limiter = RateLimiter("100/minute")
        registry = RouteRegistry(default_limiter=limiter)

    clock returns seconds since the epoch and exists so tests can step time.
    """

    def __init__(
        self,
        policy: str,
        scope: str = "default",
        key_func: Callable[[RequestContext], str] = client_key,
        message: str = DEFAULT_MESSAGE,
        clock: Callable[[], float] = time.time,
    ) -> None:
        item = parse(policy)
        self.policy = policy
        self.limit: int = item.amount
        self.window: int = item.get_expiry()
        self.scope = scope
        self.key_func = key_func
        self.message = message
        self._clock = clock

    def hit(self, cache: CacheStore, client: str) -> RateLimitDecision:
        """Record one request for client unless it is over the limit."""
        key = f"rate-limit:{self.scope}:{client}"
        now = self._clock()

        cache.zremrangebyscore(key, 0, now - self.window)
        count = cache.zcard(key)

        if count >= self.limit:
            ttl_ms = cache.pttl(key)
            reset = math.ceil(ttl_ms / 1000) if ttl_ms > 0 else self.window
            return RateLimitDecision(allowed=False, limit=self.limit, remaining=0, reset=reset)

        cache.zadd(key, now, f"{now}:{uuid.uuid4().hex}")
        cache.expire(key, self.window)
        return RateLimitDecision(
            allowed=True,
            limit=self.limit,
            remaining=self.limit - count - 1,
            reset=self.window,
        )

    def __call__(self, ctx: RequestContext) -> Optional[Response]:
        client = self.key_func(ctx)
        try:
            decision = self.hit(ctx.state.cache, client)
        except sqlite3.Error:
            logger.exception("Rate limiter error for %s (scope=%s); allowing request", client, self.scope)
            return None

        if not decision.allowed:
            logger.warning("Rate limit exceeded for %s (scope=%s, policy=%s)", client, self.scope, self.policy)
            return rate_limited(self.message, decision.reset, decision.headers())

        ctx.response_headers.update(decision.headers())
        return None


@dataclass(frozen=True)
class Limiters:
    default: RateLimiter
    strict: RateLimiter
    auth: RateLimiter


def build_limiters(settings: Settings, clock: Callable[[], float] = time.time) -> Limiters:
    return Limiters(
        default=RateLimiter(settings.rate_limit, scope="default", clock=clock),
        strict=RateLimiter(settings.strict_rate_limit, scope="strict", message=STRICT_MESSAGE, clock=clock),
        auth=RateLimiter(
            settings.auth_rate_limit,
            scope="auth",
            key_func=client_and_email_key,
            message=AUTH_MESSAGE,
            clock=clock,
        ),
    )
