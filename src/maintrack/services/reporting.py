"""Reporting: status counts and the operations dashboard.

Every figure comes from a COUNT or a bounded query, never from loading
the table into memory. Independent counts are issued concurrently, each
in its own short session (an AsyncSession can't run two statements at
once), so reporting takes a session factory rather than a session.

Day boundaries are local midnights in settings.timezone, converted to UTC
before they reach the database.
"""

import asyncio
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from maintrack.config import settings
from maintrack.db.models import MaintenanceRequest, Status, User
from maintrack.schemas.reporting import (
    ChartDay,
    DashboardSnapshot,
    DowntimeEntry,
    DowntimeMetrics,
    StatusCounts,
    TechnicianWorkload,
)
from maintrack.schemas.request import RequestSummary

DASHBOARD_LIST_SIZE = 10
DOWNTIME_SAMPLE_SIZE = 20
CHART_DAYS = 7


# ─── Time helpers ────────────────────────────────────────


def local_zone() -> ZoneInfo:
    return ZoneInfo(settings.timezone)


def local_today(now: Optional[datetime] = None) -> date:
    now = now or datetime.now(timezone.utc)
    return now.astimezone(local_zone()).date()


def day_bounds(day: date) -> tuple[datetime, datetime]:
    """[local midnight, next local midnight) for a calendar day, in UTC."""
    zone = local_zone()
    start = datetime.combine(day, time.min, tzinfo=zone)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=zone)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def round_half_up(value: float) -> int:
    """Round like a dashboard user expects: 2.5 → 3, not banker's 2."""
    return int(value + 0.5) if value >= 0 else -int(-value + 0.5)


def _summaries(requests: list[MaintenanceRequest]) -> list[RequestSummary]:
    return [RequestSummary.model_validate(r) for r in requests]


def downtime_minutes(request: MaintenanceRequest) -> int:
    elapsed = request.updated_at - request.created_at
    return round_half_up(elapsed.total_seconds() * 1000 / 60000)


# ─── Service ─────────────────────────────────────────────


class ReportingService:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def _count(self, *criteria) -> int:
        query = select(func.count()).select_from(MaintenanceRequest)
        if criteria:
            query = query.where(*criteria)
        async with self.session_factory() as db:
            return (await db.scalar(query)) or 0

    async def _status_counts(self, *criteria) -> StatusCounts:
        total, open_, in_progress, completed, canceled = await asyncio.gather(
            self._count(*criteria),
            self._count(MaintenanceRequest.status == Status.OPEN.value, *criteria),
            self._count(MaintenanceRequest.status == Status.IN_PROGRESS.value, *criteria),
            self._count(MaintenanceRequest.status == Status.COMPLETED.value, *criteria),
            self._count(MaintenanceRequest.status == Status.CANCELED.value, *criteria),
        )
        return StatusCounts(
            total=total,
            open=open_,
            in_progress=in_progress,
            completed=completed,
            canceled=canceled,
        )

    # ─── Stats ───────────────────────────────────────────

    async def get_stats(self) -> StatusCounts:
        """Per-status counts over the whole table."""
        return await self._status_counts()

    # ─── Dashboard ───────────────────────────────────────

    async def get_dashboard_snapshot(
        self, now: Optional[datetime] = None
    ) -> DashboardSnapshot:
        today = local_today(now)
        start, end = day_bounds(today)
        created_today = (
            MaintenanceRequest.created_at >= start,
            MaintenanceRequest.created_at < end,
        )

        today_counts = await self._status_counts(*created_today)
        open_requests = await self._recent(
            MaintenanceRequest.status == Status.OPEN.value,
            order_by=MaintenanceRequest.created_at.desc(),
        )
        in_progress_requests = await self._recent(
            MaintenanceRequest.status == Status.IN_PROGRESS.value,
            order_by=MaintenanceRequest.created_at.desc(),
        )
        completed_today = await self._recent(
            MaintenanceRequest.status == Status.COMPLETED.value,
            MaintenanceRequest.updated_at >= start,
            MaintenanceRequest.updated_at < end,
            order_by=MaintenanceRequest.updated_at.desc(),
        )

        return DashboardSnapshot(
            today=today_counts,
            open_requests=_summaries(open_requests),
            in_progress_requests=_summaries(in_progress_requests),
            completed_today=_summaries(completed_today),
            technician_workload=await self._technician_workload(),
            downtime=await self._downtime(),
            chart=await self._chart(today),
        )

    async def _recent(
        self, *criteria, order_by, limit: int = DASHBOARD_LIST_SIZE
    ) -> list[MaintenanceRequest]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(MaintenanceRequest)
                .where(*criteria)
                .options(
                    selectinload(MaintenanceRequest.machine),
                    selectinload(MaintenanceRequest.requester),
                    selectinload(MaintenanceRequest.assignee),
                )
                .order_by(order_by)
                .limit(limit)
            )
            return list(result.scalars().all())

    async def _technician_workload(self) -> list[TechnicianWorkload]:
        """Counts per assignee, lightest active load first."""

        def status_sum(status: Status):
            return func.sum(
                case((MaintenanceRequest.status == status.value, 1), else_=0)
            )

        query = (
            select(
                MaintenanceRequest.assigned_to,
                User.full_name,
                status_sum(Status.OPEN).label("open"),
                status_sum(Status.IN_PROGRESS).label("in_progress"),
                status_sum(Status.COMPLETED).label("completed"),
            )
            .join(User, User.id == MaintenanceRequest.assigned_to)
            .where(MaintenanceRequest.assigned_to.is_not(None))
            .group_by(MaintenanceRequest.assigned_to, User.full_name)
        )
        async with self.session_factory() as db:
            rows = (await db.execute(query)).all()

        workload = [
            TechnicianWorkload(
                technician_id=row.assigned_to,
                technician_name=row.full_name,
                open=int(row.open or 0),
                in_progress=int(row.in_progress or 0),
                completed=int(row.completed or 0),
                active_load=int(row.open or 0) + int(row.in_progress or 0),
            )
            for row in rows
        ]
        # sorted() is stable: equal loads keep grouping order
        return sorted(workload, key=lambda w: w.active_load)

    async def _downtime(self) -> DowntimeMetrics:
        completed = await self._recent(
            MaintenanceRequest.status == Status.COMPLETED.value,
            order_by=MaintenanceRequest.updated_at.desc(),
            limit=DOWNTIME_SAMPLE_SIZE,
        )
        entries = [
            DowntimeEntry(
                request_id=req.id,
                title=req.title,
                machine_name=req.machine.name if req.machine else None,
                downtime_minutes=downtime_minutes(req),
            )
            for req in completed
        ]
        average = (
            round_half_up(sum(e.downtime_minutes for e in entries) / len(entries))
            if entries
            else 0
        )
        return DowntimeMetrics(
            average_minutes=average,
            sample_size=len(entries),
            recent=entries[:DASHBOARD_LIST_SIZE],
        )

    async def _chart(self, today: date) -> list[ChartDay]:
        """Trailing week, oldest day first. Days run in order; counts per day concurrently."""
        chart = []
        for offset in range(CHART_DAYS - 1, -1, -1):
            day = today - timedelta(days=offset)
            start, end = day_bounds(day)
            opened, completed, canceled = await asyncio.gather(
                self._count(
                    MaintenanceRequest.status == Status.OPEN.value,
                    MaintenanceRequest.created_at >= start,
                    MaintenanceRequest.created_at < end,
                ),
                self._count(
                    MaintenanceRequest.status == Status.COMPLETED.value,
                    MaintenanceRequest.updated_at >= start,
                    MaintenanceRequest.updated_at < end,
                ),
                self._count(
                    MaintenanceRequest.status == Status.CANCELED.value,
                    MaintenanceRequest.updated_at >= start,
                    MaintenanceRequest.updated_at < end,
                ),
            )
            chart.append(
                ChartDay(day=day, open=opened, completed=completed, canceled=canceled)
            )
        return chart
