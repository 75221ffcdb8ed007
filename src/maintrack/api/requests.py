"""Maintenance request API routes.

Routes translate HTTP to RequestService calls. Lifecycle rules live in
the service; role requirements that depend only on the caller's role
are enforced here with require_roles. ServiceErrors raised below are
turned into JSON responses by the handler registered in create_app.
"""

import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from maintrack.auth.dependencies import CurrentIdentity, get_current_user, require_roles
from maintrack.db.engine import get_db, get_session_factory
from maintrack.db.models import Priority, Role, Status
from maintrack.notifications.notifier import PushNotifier, get_notifier
from maintrack.realtime.broadcaster import RoomBroadcaster, get_broadcaster
from maintrack.schemas.reporting import DashboardSnapshot, StatusCounts
from maintrack.schemas.request import (
    RequestCreate,
    RequestFilter,
    RequestPage,
    RequestRead,
    RequestSummary,
    RequestUpdate,
    StatusChange,
    TechnicianAssign,
)
from maintrack.services.errors import ValidationError
from maintrack.services.request_service import RequestService

router = APIRouter(prefix="/maintenance-requests")


def _svc(
    db: AsyncSession = Depends(get_db),
    broadcaster: RoomBroadcaster = Depends(get_broadcaster),
    notifier: PushNotifier = Depends(get_notifier),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> RequestService:
    return RequestService(db, broadcaster, notifier, session_factory)


def _filters(
    machine_id: Optional[uuid.UUID] = Query(None),
    priority: Optional[Priority] = Query(None),
    status: Optional[Status] = Query(None),
    start_date: Optional[date] = Query(None, description="Created on or after (local date)"),
    end_date: Optional[date] = Query(None, description="Created on or before (local date)"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
) -> RequestFilter:
    if start_date and end_date and start_date > end_date:
        raise ValidationError("start_date must not be after end_date")
    return RequestFilter(
        machine_id=machine_id,
        priority=priority,
        status=status,
        start_date=start_date,
        end_date=end_date,
        page=page,
        limit=limit,
    )


# ═══════════════════════════════════════════════════════════
# Create / list
# ═══════════════════════════════════════════════════════════


@router.post("", response_model=RequestRead, status_code=201)
async def create_request(
    body: RequestCreate,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: RequestService = Depends(_svc),
):
    """File a maintenance request. It starts OPEN and admins are notified."""
    return await svc.create(body, identity.user_id)


@router.get("", response_model=RequestPage)
async def list_requests(
    filters: RequestFilter = Depends(_filters),
    svc: RequestService = Depends(_svc),
):
    return await svc.list(filters)


# ─── Reporting ───────────────────────────────────────────


@router.get("/stats", response_model=StatusCounts)
async def request_stats(svc: RequestService = Depends(_svc)):
    return await svc.get_stats()


@router.get("/dashboard", response_model=DashboardSnapshot)
async def dashboard(svc: RequestService = Depends(_svc)):
    """Today's counts, work queues, technician workload, downtime and a 7-day chart."""
    return await svc.get_dashboard_snapshot()


# ─── Personal views ──────────────────────────────────────


@router.get("/my-requests", response_model=list[RequestSummary])
async def my_requests(
    identity: CurrentIdentity = Depends(get_current_user),
    svc: RequestService = Depends(_svc),
):
    return await svc.list_for_requester(identity.user_id)


@router.get("/my-assignments", response_model=list[RequestSummary])
async def my_assignments(
    identity: CurrentIdentity = Depends(require_roles(Role.TECHNICIAN, Role.ADMIN)),
    svc: RequestService = Depends(_svc),
):
    return await svc.list_for_technician(identity.user_id)


# ═══════════════════════════════════════════════════════════
# Single request
# ═══════════════════════════════════════════════════════════


@router.get("/{request_id}", response_model=RequestRead)
async def get_request(request_id: uuid.UUID, svc: RequestService = Depends(_svc)):
    return await svc.get(request_id)


@router.patch("/{request_id}", response_model=RequestRead)
async def update_request(
    request_id: uuid.UUID,
    body: RequestUpdate,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: RequestService = Depends(_svc),
):
    """Partial update of descriptive fields; status has its own route."""
    return await svc.update(request_id, body, identity.user_id)


@router.patch("/{request_id}/assign", response_model=RequestRead)
async def assign_technician(
    request_id: uuid.UUID,
    body: TechnicianAssign,
    identity: CurrentIdentity = Depends(require_roles(Role.ADMIN)),
    svc: RequestService = Depends(_svc),
):
    return await svc.assign_technician(request_id, body.technician_id, identity.user_id)


@router.patch("/{request_id}/status", response_model=RequestRead)
async def change_status(
    request_id: uuid.UUID,
    body: StatusChange,
    identity: CurrentIdentity = Depends(require_roles(Role.ADMIN, Role.TECHNICIAN)),
    svc: RequestService = Depends(_svc),
):
    """Set the status. Technicians may only update requests assigned to them."""
    return await svc.update_status(
        request_id,
        body.status,
        acting_user_id=identity.user_id,
        acting_role=identity.role,
        message=body.message,
    )


@router.delete("/{request_id}", status_code=204)
async def delete_request(
    request_id: uuid.UUID,
    _: CurrentIdentity = Depends(require_roles(Role.ADMIN)),
    svc: RequestService = Depends(_svc),
):
    """Hard-delete a request together with its log history."""
    await svc.remove(request_id)
    return Response(status_code=204)
