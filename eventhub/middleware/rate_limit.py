from __future__ import annotations

import time

import structlog
from fastapi import Request
from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response

from eventhub.core.config import settings
from eventhub.redis_client import get_redis

logger = structlog.get_logger()

_WINDOWS = {
    "sec": 1,
    "second": 1,
    "seconds": 1,
    "min": 60,
    "minute": 60,
    "minutes": 60,
    "hour": 3600,
    "hours": 3600,
    "day": 86400,
    "days": 86400,
}


def parse_rate(rate: str) -> tuple[int, int]:
    """
    Parse formats like:
      - "60/minute"
      - "5/15minutes"
      - "120/hour"
    Returns: (limit, window_seconds)
    """
    raw = rate.strip().lower()
    if "/" not in raw:
        raise ValueError(f"Invalid rate format: {rate}")

    limit_str, window_str = raw.split("/", 1)
    limit = int(limit_str)
    window_str = window_str.strip()

    digits = ""
    while window_str and window_str[0].isdigit():
        digits += window_str[0]
        window_str = window_str[1:]
    multiplier = int(digits) if digits else 1

    unit = _WINDOWS.get(window_str.strip())
    if unit is None or multiplier < 1 or limit < 1:
        raise ValueError(f"Invalid rate window: {rate}")
    return limit, unit * multiplier


def rule_for(method: str, path: str) -> tuple[str, str]:
    """Pick the (scope, rate) that applies to a request."""
    if path.startswith("/api/v1/auth"):
        return "auth", settings.rate_limit_auth
    if path.startswith("/api/v1/chat") and method == "POST":
        return "chat", settings.rate_limit_chat
    return "default", settings.rate_limit_default


class RateLimitMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        if not settings.rate_limit_enabled:
            return await call_next(request)

        # Don't rate-limit CORS preflight
        if request.method == "OPTIONS":
            return await call_next(request)

        path = request.url.path
        if path in set(settings.rate_limit_exempt_paths) or not path.startswith("/api/"):
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        scope, rate = rule_for(request.method, path)

        try:
            limit, window_seconds = parse_rate(rate)
        except ValueError:
            # Misconfigured rate => fail open
            logger.warning("rate_limit_misconfigured", scope=scope, rate=rate)
            return await call_next(request)

        now = int(time.time())
        bucket = now // window_seconds
        key = f"rl:{scope}:{client_ip}:{window_seconds}:{bucket}"

        try:
            r = get_redis()
            count = r.incr(key)
            if count == 1:
                r.expire(key, window_seconds)
        except RedisError as exc:
            # Fail open if Redis is unavailable
            logger.warning("rate_limit_unavailable", error=str(exc))
            return await call_next(request)

        remaining = max(0, limit - int(count))
        reset = (bucket + 1) * window_seconds

        if count > limit:
            logger.info("rate_limited", scope=scope, client_ip=client_ip, path=path)
            return JSONResponse(
                status_code=429,
                content={
                    "success": False,
                    "message": "too many requests, please try again later",
                    "code": "RATE_LIMITED",
                },
                headers={
                    "X-RateLimit-Limit": str(limit),
                    "X-RateLimit-Remaining": "0",
                    "X-RateLimit-Reset": str(reset),
                    "Retry-After": str(max(0, reset - now)),
                },
            )

        response = await call_next(request)
        response.headers.setdefault("X-RateLimit-Limit", str(limit))
        response.headers.setdefault("X-RateLimit-Remaining", str(remaining))
        response.headers.setdefault("X-RateLimit-Reset", str(reset))
        return response
