"""Audit log: append-only history of every request mutation.

Every lifecycle operation writes exactly one entry. Entries are never
updated; they disappear only with their parent request. append() flushes
but does not commit, so the entry lands in the same transaction as the
mutation it describes.
"""

import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from maintrack.db.models import MaintenanceLog, MaintenanceRequest
from maintrack.services.errors import NotFoundError


class AuditLog:
    """Append-only maintenance log backed by the maintenance_logs table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def append(
        self,
        request_id: uuid.UUID,
        actor_id: uuid.UUID,
        message: str,
    ) -> MaintenanceLog:
        """Append an entry for a request. Returns the created entry."""
        exists = await self.db.scalar(
            select(MaintenanceRequest.id).where(MaintenanceRequest.id == request_id)
        )
        if exists is None:
            raise NotFoundError(f"Maintenance request with ID {request_id} not found")

        entry = MaintenanceLog(
            request_id=request_id,
            action_by=actor_id,
            message=message,
        )
        self.db.add(entry)
        await self.db.flush()  # assigns id and created_at
        return entry

    async def list_by_request(self, request_id: uuid.UUID) -> list[MaintenanceLog]:
        """Entries for one request, newest first, with the actor loaded."""
        result = await self.db.execute(
            select(MaintenanceLog)
            .where(MaintenanceLog.request_id == request_id)
            .options(selectinload(MaintenanceLog.actor))
            .order_by(MaintenanceLog.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_recent(self, limit: int = 100) -> list[MaintenanceLog]:
        """Cross-request feed for monitoring, newest first."""
        result = await self.db.execute(
            select(MaintenanceLog)
            .options(
                selectinload(MaintenanceLog.actor),
                selectinload(MaintenanceLog.request).selectinload(
                    MaintenanceRequest.machine
                ),
            )
            .order_by(MaintenanceLog.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def count_for_request(self, request_id: uuid.UUID) -> int:
        return await self.db.scalar(
            select(func.count())
            .select_from(MaintenanceLog)
            .where(MaintenanceLog.request_id == request_id)
        )
