"""Redis fixed-window rate limiting.

Rules:
  - Order creation (POST /api/v1/orders): RATE_LIMIT_ORDERS_PER_MINUTE per user
  - Everything else:                      RATE_LIMIT_DEFAULT_PER_MINUTE per user
  - PSP webhook and /health are exempt (the PSP retries until it gets OK)

Key pattern: "ratelimit:{user_id_or_ip}:{endpoint_group}:{window}".
Anonymous callers are keyed by the first X-Forwarded-For hop, else the peer IP.
If Redis is unreachable the request is let through and a WARNING is logged.
"""

import logging
import time
from collections.abc import Awaitable, Callable

import redis.asyncio as aioredis
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from config.settings import settings
from src.sf_common.errors import InvalidCredentialsError, RateLimitError
from src.sf_common.redis_client import get_redis
from src.sf_common.response import error_response
from src.sf_gateway.auth.jwt_handler import decode_token

logger = logging.getLogger(__name__)

_WINDOW_SECONDS = 60
_EXEMPT_PATHS = frozenset({"/health", "/api/v1/payments/callback"})


def client_ip(request: Request, trusted_hops: int | None = None) -> str:
    """Client address as seen by the outermost trusted proxy.

    Each trusted proxy appends the address it received the request from, so
    the entry `trusted_hops` from the right of X-Forwarded-For is the first
    one a client cannot forge. Entries left of it are client-supplied.
    """
    hops = settings.TRUSTED_PROXY_HOPS if trusted_hops is None else trusted_hops
    peer = request.client.host if request.client else "unknown"
    forwarded = request.headers.get("x-forwarded-for")
    if hops <= 0 or not forwarded:
        return peer
    chain = [addr.strip() for addr in forwarded.split(",") if addr.strip()]
    if not chain:
        return peer
    return chain[-min(hops, len(chain))]


def client_identity(request: Request) -> str:
    """Return "user:<id>" for a valid bearer token, else "ip:<addr>"."""
    auth = request.headers.get("authorization", "")
    if auth.lower().startswith("bearer "):
        try:
            payload = decode_token(auth[7:])
            if payload.get("sub"):
                return f"user:{payload['sub']}"
        except InvalidCredentialsError:
            pass
    return f"ip:{client_ip(request)}"


def endpoint_group(request: Request) -> str:
    if request.method == "POST" and request.url.path.rstrip("/") == "/api/v1/orders":
        return "orders"
    return "default"


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app: ASGIApp,
        enabled: bool = settings.RATE_LIMIT_ENABLED,
        redis_factory: Callable[[], Awaitable[aioredis.Redis]] = get_redis,
        limits: dict[str, int] | None = None,
    ) -> None:
        super().__init__(app)
        self._enabled = enabled
        self._redis_factory = redis_factory
        self._limits = limits or {
            "orders": settings.RATE_LIMIT_ORDERS_PER_MINUTE,
            "default": settings.RATE_LIMIT_DEFAULT_PER_MINUTE,
        }

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if not self._enabled or request.url.path in _EXEMPT_PATHS:
            return await call_next(request)

        group = endpoint_group(request)
        window = int(time.time()) // _WINDOW_SECONDS
        key = f"ratelimit:{client_identity(request)}:{group}:{window}"
        try:
            redis = await self._redis_factory()
            count = await redis.incr(key)
            if count == 1:
                await redis.expire(key, _WINDOW_SECONDS)
        except (RedisError, OSError):
            logger.warning("Rate limiter unavailable, allowing request: key=%s", key)
            return await call_next(request)

        if count > self._limits.get(group, self._limits["default"]):
            err = RateLimitError()
            retry_after = _WINDOW_SECONDS - int(time.time()) % _WINDOW_SECONDS
            return JSONResponse(
                status_code=err.http_status,
                content=error_response(err.code, err.message).model_dump(),
                headers={"Retry-After": str(retry_after)},
            )
        return await call_next(request)
