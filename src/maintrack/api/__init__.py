"""API route aggregation.

All routers registered here get mounted in main.py.

Learn: Auth is applied at the include_router level using FastAPI's
dependencies parameter. This protects every route in a router without
touching individual handlers. Health and the VAPID key are open.
"""

from fastapi import APIRouter, Depends

from maintrack.api.health import router as health_router
from maintrack.api.logs import router as logs_router
from maintrack.api.machines import router as machines_router
from maintrack.api.notifications import public_router as notifications_public_router
from maintrack.api.notifications import router as notifications_router
from maintrack.api.requests import router as requests_router
from maintrack.auth.dependencies import get_current_user

# All protected routers require authentication
_auth = [Depends(get_current_user)]

api_router = APIRouter(prefix="/api/v1")

# Open routes: no auth required
api_router.include_router(health_router, tags=["health"])
api_router.include_router(notifications_public_router, tags=["notifications"])

# Protected routes: require a valid JWT
api_router.include_router(requests_router, tags=["maintenance-requests"], dependencies=_auth)
api_router.include_router(logs_router, tags=["maintenance-logs"], dependencies=_auth)
api_router.include_router(machines_router, tags=["machines"], dependencies=_auth)
api_router.include_router(notifications_router, tags=["notifications"], dependencies=_auth)
