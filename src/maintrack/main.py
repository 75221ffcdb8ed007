"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. Lifespan manages startup/shutdown (push notifier, Redis,
database engine). Middleware, error handling and routers are all
registered here; each concern lives in its own module.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from maintrack import __version__
from maintrack.api import api_router
from maintrack.config import settings
from maintrack.services.errors import ServiceError

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Anything before `yield` runs at startup, after `yield` at shutdown.
    """
    logger.info(
        "maintrack.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )

    from maintrack.db.engine import async_session_factory, engine
    from maintrack.notifications.notifier import init_notifier
    from maintrack.notifications.provider import build_default_provider

    notifier = init_notifier(async_session_factory, build_default_provider())
    if not settings.vapid_private_key:
        logger.warning("maintrack.vapid_missing", detail="push delivery will fail")

    # Redis is optional: only rate limiting depends on it
    from maintrack.cache import close_redis, init_redis
    try:
        await init_redis()
        logger.info("maintrack.redis_connected", url=settings.redis_url)
    except Exception as e:
        logger.warning("maintrack.redis_unavailable", error=str(e))

    yield

    logger.info("maintrack.shutdown", pending_pushes=notifier.pending)
    await notifier.drain()
    await close_redis()
    await engine.dispose()


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Map service-layer errors to their HTTP status with a {detail} body."""
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    app = FastAPI(
        title="MainTrack",
        description="Equipment maintenance requests with realtime and push notifications",
        version=__version__,
        lifespan=lifespan,
    )

    # ── Middleware stack ──────────────────────────────────────
    # Note: Starlette middleware executes in reverse order of registration.
    # Request flow: CORS → RateLimit → Security → RequestId → handler

    from maintrack.middleware.rate_limit import RateLimitMiddleware
    from maintrack.middleware.request_id import RequestIdMiddleware
    from maintrack.middleware.security import SecurityHeadersMiddleware

    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        default_rpm=settings.rate_limit_rpm,
        send_rpm=settings.rate_limit_send_rpm,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ServiceError, service_error_handler)

    app.include_router(api_router)

    from maintrack.realtime.websocket import router as ws_router
    app.include_router(ws_router)

    return app


# Default app instance (used by uvicorn: maintrack.main:app)
app = create_app()
