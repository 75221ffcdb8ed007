"""Pydantic schemas for stats and the dashboard snapshot."""

import uuid
from datetime import date
from typing import Optional

from pydantic import BaseModel

from maintrack.schemas.request import RequestSummary


class StatusCounts(BaseModel):
    total: int
    open: int
    in_progress: int
    completed: int
    canceled: int


class TechnicianWorkload(BaseModel):
    technician_id: uuid.UUID
    technician_name: Optional[str]
    open: int
    in_progress: int
    completed: int
    active_load: int  # open + in_progress


class DowntimeEntry(BaseModel):
    request_id: uuid.UUID
    title: str
    machine_name: Optional[str]
    downtime_minutes: int


class DowntimeMetrics(BaseModel):
    average_minutes: int
    sample_size: int
    recent: list[DowntimeEntry]


class ChartDay(BaseModel):
    day: date
    open: int
    completed: int
    canceled: int


class DashboardSnapshot(BaseModel):
    today: StatusCounts
    open_requests: list[RequestSummary]
    in_progress_requests: list[RequestSummary]
    completed_today: list[RequestSummary]
    technician_workload: list[TechnicianWorkload]
    downtime: DowntimeMetrics
    chart: list[ChartDay]
