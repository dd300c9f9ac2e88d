"""Redis-backed fixed window rate limiting: global per-IP middleware and auth helpers."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from mohallahub.errors import HTTP_STATUS_HINDI, RateLimitedError
from mohallahub.redis_client import get_redis

if TYPE_CHECKING:
    from redis.asyncio import Redis

# Paths exempt from rate limiting
_EXEMPT_PATHS = frozenset({"/health", "/ready", "/"})


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Rate limit requests per IP using Redis counters."""

    def __init__(self, app: Any, requests_per_window: int = 100, window_seconds: int = 900) -> None:  # noqa: ANN401
        super().__init__(app)
        self.requests_per_window = requests_per_window
        self.window_seconds = window_seconds

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        """Check rate limit, return 429 if exceeded."""
        if request.url.path in _EXEMPT_PATHS:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        window = int(time.time()) // self.window_seconds
        rate_key = f"ratelimit:{client_ip}:{window}"

        try:
            redis = get_redis()
        except RuntimeError:
            # Redis not initialized, let the request through without rate limiting
            return await call_next(request)

        pipe = redis.pipeline()
        pipe.incr(rate_key)
        pipe.expire(rate_key, self.window_seconds + 1)
        results: list[Any] = await pipe.execute()

        current_count: int = results[0]
        remaining = max(0, self.requests_per_window - current_count)

        if current_count > self.requests_per_window:
            return JSONResponse(
                status_code=429,
                content={
                    "detail": "Too many requests from this IP, please try again later.",
                    "detail_hi": HTTP_STATUS_HINDI[429],
                },
                headers={
                    "Retry-After": str(self.window_seconds),
                    "X-RateLimit-Remaining": "0",
                    "X-RateLimit-Limit": str(self.requests_per_window),
                },
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        response.headers["X-RateLimit-Limit"] = str(self.requests_per_window)
        return response


async def hit_counter(redis: Redis, key: str, window_seconds: int) -> int:
    """Increment a windowed counter. The TTL is set only when the key has none."""
    pipe = redis.pipeline()
    pipe.incr(key)
    pipe.expire(key, window_seconds, nx=True)
    results: list[Any] = await pipe.execute()
    return int(results[0])


async def enforce_auth_rate_limit(
    redis: Redis,
    identifier: str,
    max_attempts: int,
    window_seconds: int,
) -> None:
    """
    Count an authentication attempt from ``identifier``.

    Raises:
        RateLimitedError: Once more than ``max_attempts`` were made in the window.
    """
    key = f"auth_attempts:{identifier}"
    count = await hit_counter(redis, key, window_seconds)
    if count > max_attempts:
        ttl = await redis.ttl(key)
        minutes = max(1, -(-int(ttl) // 60)) if ttl and ttl > 0 else max(1, window_seconds // 60)
        raise RateLimitedError(
            f"Too many authentication attempts. Please try again in {minutes} minutes.",
            f"बहुत अधिक प्रमाणीकरण प्रयास। कृपया {minutes} मिनट में पुनः प्रयास करें।",
            retry_after=minutes * 60,
        )
