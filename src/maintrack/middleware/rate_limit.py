"""Rate limiting middleware — Redis fixed-window counter per client.

Each peer address gets a counter key "maintrack:rl:{ip}:{bucket}:{minute}".
The key uses the socket peer, never X-Forwarded-For, which callers control.
Push-sending admin endpoints share a stricter bucket, since each call
fans out to every matching device.

Skips rate limiting entirely when Redis is unavailable (e.g. in tests).
"""

import time

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

logger = structlog.get_logger()

SEND_PREFIX = "/api/v1/notifications/send"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Redis-based rate limiting per client per minute."""

    def __init__(self, app, default_rpm: int = 100, send_rpm: int = 10):
        super().__init__(app)
        self.default_rpm = default_rpm
        self.send_rpm = send_rpm

    async def dispatch(self, request: Request, call_next) -> Response:
        try:
            from maintrack.cache import get_redis

            redis = get_redis()
        except RuntimeError:
            return await call_next(request)

        is_send = request.url.path.startswith(SEND_PREFIX)
        rpm = self.send_rpm if is_send else self.default_rpm
        bucket = "send" if is_send else "api"
        window = int(time.time() // 60)
        peer = request.client.host if request.client else "unknown"
        key = f"maintrack:rl:{peer}:{bucket}:{window}"

        try:
            count = await redis.incr(key)
            if count == 1:
                await redis.expire(key, 120)
        except Exception as e:
            logger.warning("rate_limit.redis_error", error=str(e))
            return await call_next(request)

        if count > rpm:
            return JSONResponse(
                status_code=429,
                content={"detail": "Rate limit exceeded. Try again later."},
                headers={"Retry-After": "60"},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(rpm)
        response.headers["X-RateLimit-Remaining"] = str(max(0, rpm - count))
        return response
