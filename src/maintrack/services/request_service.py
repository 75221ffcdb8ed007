"""Request service: the maintenance request lifecycle.

Learn: Every lifecycle mutation follows the same sequence:
1. Validate input and permissions (before touching any row)
2. Mutate the request and append an audit entry (same transaction)
3. Commit once
4. Broadcast to live WebSocket clients (awaited inline)
5. Schedule a push to offline devices (detached, never fails the caller)

The state machine over status:
  OPEN → IN_PROGRESS → COMPLETED / CANCELED

Assigning a technician to an OPEN request moves it to IN_PROGRESS.
update_status() accepts any target, so an admin can reopen a finished
request.
"""

import math
import uuid
from datetime import datetime
from typing import Any, Optional, Union

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from maintrack.db.models import (
    Machine,
    MaintenanceLog,
    MaintenanceRequest,
    Priority,
    Role,
    Status,
    User,
)
from maintrack.events.audit import AuditLog
from maintrack.events.types import (
    NEW_ASSIGNMENT,
    REQUEST_ASSIGNED,
    REQUEST_CREATED,
    REQUEST_UPDATED,
    STATUS_CHANGED,
)
from maintrack.notifications import messages
from maintrack.notifications.messages import Notification
from maintrack.notifications.notifier import PushNotifier
from maintrack.realtime.broadcaster import (
    RoomBroadcaster,
    request_room,
    technician_room,
)
from maintrack.schemas.reporting import DashboardSnapshot, StatusCounts
from maintrack.schemas.request import RequestCreate, RequestFilter, RequestRead, RequestUpdate
from maintrack.services.errors import NotFoundError, PermissionDeniedError, ValidationError
from maintrack.services.reporting import ReportingService, day_bounds

logger = structlog.get_logger()

PATCHABLE_FIELDS = {"title", "description", "priority", "image_url"}


def serialize(request: MaintenanceRequest) -> dict[str, Any]:
    """JSON-ready form of a fully loaded request, as sent to WebSocket clients."""
    return RequestRead.model_validate(request).model_dump(mode="json")


def _joined():
    return (
        selectinload(MaintenanceRequest.machine),
        selectinload(MaintenanceRequest.requester),
        selectinload(MaintenanceRequest.assignee),
    )


class RequestService:
    """Lifecycle operations on maintenance requests."""

    def __init__(
        self,
        db: AsyncSession,
        broadcaster: RoomBroadcaster,
        notifier: PushNotifier,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    ):
        self.db = db
        self.broadcaster = broadcaster
        self.notifier = notifier
        self.session_factory = session_factory
        self.audit = AuditLog(db)

    # ─── Create ──────────────────────────────────────────

    async def create(
        self, data: RequestCreate, requester_id: uuid.UUID
    ) -> MaintenanceRequest:
        """File a new request. Always starts OPEN; admins get a push."""
        if await self.db.get(Machine, data.machine_id) is None:
            raise NotFoundError(f"Machine {data.machine_id} not found")
        if await self.db.get(User, requester_id) is None:
            raise NotFoundError(f"User {requester_id} not found")

        request = MaintenanceRequest(
            machine_id=data.machine_id,
            requested_by=requester_id,
            title=data.title,
            description=data.description,
            priority=_priority(data.priority),
            image_url=data.image_url,
            status=Status.OPEN.value,
        )
        self.db.add(request)
        await self.db.flush()

        await self.audit.append(request.id, requester_id, "Maintenance request created")
        await self.db.commit()

        request = await self.get(request.id)
        logger.info("request.created", request_id=str(request.id), machine=request.machine.code)

        await self._broadcast_all(REQUEST_CREATED, serialize(request))
        self._push_role(Role.ADMIN, messages.request_created(request))
        return request

    # ─── Lifecycle ───────────────────────────────────────

    async def assign_technician(
        self,
        request_id: uuid.UUID,
        technician_id: uuid.UUID,
        acting_user_id: uuid.UUID,
    ) -> MaintenanceRequest:
        """Assign a technician. An OPEN request moves to IN_PROGRESS."""
        request = await self._load(request_id)
        technician = await self.db.get(User, technician_id)
        if technician is None or technician.role != Role.TECHNICIAN.value:
            raise ValidationError("Assignee must be an existing technician")

        request.assigned_to = technician.id
        if request.status == Status.OPEN.value:
            request.status = Status.IN_PROGRESS.value
        await self.audit.append(request.id, acting_user_id, "Technician assigned to the request")
        await self.db.commit()

        request = await self.get(request.id)
        logger.info(
            "request.assigned",
            request_id=str(request.id),
            technician_id=str(technician.id),
            status=request.status,
        )

        payload = serialize(request)
        await self._broadcast_all(REQUEST_ASSIGNED, payload)
        await self._broadcast_room(technician_room(technician.id), NEW_ASSIGNMENT, payload)
        self._push_user(technician.id, messages.technician_assigned(request))
        return request

    async def update_status(
        self,
        request_id: uuid.UUID,
        new_status: Union[Status, str],
        acting_user_id: uuid.UUID,
        acting_role: Union[Role, str],
        message: Optional[str] = None,
    ) -> MaintenanceRequest:
        """Set any status. Technicians may only touch requests assigned to them.

        Learn: The permission check runs before the status is read or
        written, so a refused call leaves no trace in the audit log.
        """
        try:
            new_status = Status(new_status)
            acting_role = Role(acting_role)
        except ValueError as e:
            raise ValidationError(str(e)) from e

        request = await self._load(request_id)
        if acting_role == Role.TECHNICIAN and request.assigned_to != acting_user_id:
            raise PermissionDeniedError("You are not assigned to this request")

        old_status = request.status
        request.status = new_status.value
        await self.audit.append(
            request.id,
            acting_user_id,
            message or f"Status changed from {old_status} to {new_status.value}",
        )
        await self.db.commit()

        request = await self.get(request.id)
        logger.info(
            "request.status_changed",
            request_id=str(request.id),
            old_status=old_status,
            new_status=request.status,
        )

        payload = serialize(request)
        await self._broadcast_all(
            STATUS_CHANGED,
            {"request": payload, "oldStatus": old_status, "newStatus": request.status},
        )
        await self._broadcast_room(request_room(request.id), REQUEST_UPDATED, payload)
        self._push_user(request.requested_by, messages.status_changed(request))
        return request

    async def update(
        self,
        request_id: uuid.UUID,
        patch: Union[RequestUpdate, dict[str, Any]],
        acting_user_id: uuid.UUID,
    ) -> MaintenanceRequest:
        """Patch descriptive fields. Status is never touched here."""
        changes = (
            patch.model_dump(exclude_unset=True)
            if isinstance(patch, RequestUpdate)
            else dict(patch)
        )
        unknown = set(changes) - PATCHABLE_FIELDS
        if unknown:
            raise ValidationError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")
        nulled = sorted(f for f, v in changes.items() if v is None and f != "image_url")
        if nulled:
            raise ValidationError(f"Fields cannot be null: {', '.join(nulled)}")
        if "priority" in changes:
            changes["priority"] = _priority(changes["priority"])

        request = await self._load(request_id)
        for field, value in changes.items():
            setattr(request, field, value)
        await self.audit.append(request.id, acting_user_id, "Maintenance request updated")
        await self.db.commit()
        return await self.get(request.id)

    async def remove(self, request_id: uuid.UUID) -> None:
        """Hard-delete a request and its log history in one commit."""
        await self._load(request_id)
        await self.db.execute(
            delete(MaintenanceLog).where(MaintenanceLog.request_id == request_id)
        )
        await self.db.execute(
            delete(MaintenanceRequest).where(MaintenanceRequest.id == request_id)
        )
        await self.db.commit()
        logger.info("request.removed", request_id=str(request_id))

    # ─── Read ────────────────────────────────────────────

    async def get(self, request_id: uuid.UUID) -> MaintenanceRequest:
        result = await self.db.execute(
            select(MaintenanceRequest)
            .where(MaintenanceRequest.id == request_id)
            .options(
                *_joined(),
                selectinload(MaintenanceRequest.logs).selectinload(MaintenanceLog.actor),
            )
            .execution_options(populate_existing=True)
        )
        request = result.scalars().first()
        if request is None:
            raise NotFoundError(f"Maintenance request {request_id} not found")
        return request

    async def list_for_requester(self, user_id: uuid.UUID) -> list[MaintenanceRequest]:
        return await self._list_where(MaintenanceRequest.requested_by == user_id)

    async def list_for_technician(self, user_id: uuid.UUID) -> list[MaintenanceRequest]:
        return await self._list_where(MaintenanceRequest.assigned_to == user_id)

    # ─── Reporting ───────────────────────────────────────

    async def get_stats(self) -> StatusCounts:
        return await self._reporting().get_stats()

    async def get_dashboard_snapshot(
        self, now: Optional[datetime] = None
    ) -> DashboardSnapshot:
        return await self._reporting().get_dashboard_snapshot(now)

    # ─── Internals ───────────────────────────────────────

    async def _load(self, request_id: uuid.UUID) -> MaintenanceRequest:
        request = await self.db.get(MaintenanceRequest, request_id)
        if request is None:
            raise NotFoundError(f"Maintenance request {request_id} not found")
        return request

    async def _list_where(self, *criteria) -> list[MaintenanceRequest]:
        result = await self.db.execute(
            select(MaintenanceRequest)
            .where(*criteria)
            .options(*_joined())
            .order_by(MaintenanceRequest.created_at.desc())
        )
        return list(result.scalars().all())

    def _reporting(self) -> ReportingService:
        if self.session_factory is None:
            raise RuntimeError("Reporting needs a session factory")
        return ReportingService(self.session_factory)

    async def _broadcast_all(self, event_type: str, data: dict[str, Any]) -> None:
        try:
            await self.broadcaster.broadcast_all(event_type, data)
        except Exception:
            logger.exception("realtime.broadcast_failed", event_type=event_type)

    async def _broadcast_room(self, room: str, event_type: str, data: dict[str, Any]) -> None:
        try:
            await self.broadcaster.broadcast_to_room(room, event_type, data)
        except Exception:
            logger.exception("realtime.broadcast_failed", event_type=event_type, room=room)

    def _push_user(self, user_id: uuid.UUID, notification: Notification) -> None:
        try:
            self.notifier.notify_user(user_id, notification)
        except Exception:
            logger.exception("push.schedule_failed", user_id=str(user_id))

    def _push_role(self, role: Role, notification: Notification) -> None:
        try:
            self.notifier.notify_role(role.value, notification)
        except Exception:
            logger.exception("push.schedule_failed", role=role.value)

    # ─── Listing ─────────────────────────────────────────
    # Defined last: the method name shadows the builtin in the class body.

    async def list(self, filters: Optional[RequestFilter] = None) -> dict[str, Any]:
        """Filtered, paginated listing, newest first."""
        filters = filters or RequestFilter()
        criteria = []
        if filters.machine_id:
            criteria.append(MaintenanceRequest.machine_id == filters.machine_id)
        if filters.priority:
            criteria.append(MaintenanceRequest.priority == filters.priority.value)
        if filters.status:
            criteria.append(MaintenanceRequest.status == filters.status.value)
        if filters.start_date:
            criteria.append(MaintenanceRequest.created_at >= day_bounds(filters.start_date)[0])
        if filters.end_date:
            # end_date covers the whole day
            criteria.append(MaintenanceRequest.created_at < day_bounds(filters.end_date)[1])

        count_query = select(func.count()).select_from(MaintenanceRequest)
        if criteria:
            count_query = count_query.where(*criteria)
        total = (await self.db.scalar(count_query)) or 0

        query = select(MaintenanceRequest).options(*_joined())
        if criteria:
            query = query.where(*criteria)
        result = await self.db.execute(
            query.order_by(MaintenanceRequest.created_at.desc())
            .offset((filters.page - 1) * filters.limit)
            .limit(filters.limit)
        )
        return {
            "data": list(result.scalars().all()),
            "total": total,
            "page": filters.page,
            "limit": filters.limit,
            "total_pages": math.ceil(total / filters.limit),
        }


def _priority(value: Any) -> str:
    try:
        return Priority(value).value
    except ValueError as e:
        raise ValidationError(str(e)) from e
