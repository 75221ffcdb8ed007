"""Maintenance log (audit trail) API routes. Read-only: entries are never edited."""

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from maintrack.db.engine import get_db
from maintrack.events.audit import AuditLog
from maintrack.schemas.request import LogRead, LogWithRequest

router = APIRouter(prefix="/maintenance-logs")


def _audit(db: AsyncSession = Depends(get_db)) -> AuditLog:
    return AuditLog(db)


@router.get("", response_model=list[LogWithRequest])
async def recent_logs(
    limit: int = Query(100, ge=1, le=100),
    audit: AuditLog = Depends(_audit),
):
    """Latest entries across all requests, newest first."""
    return await audit.list_recent(limit)


@router.get("/request/{request_id}", response_model=list[LogRead])
async def logs_for_request(request_id: uuid.UUID, audit: AuditLog = Depends(_audit)):
    return await audit.list_by_request(request_id)
