"""Pydantic schemas for maintenance requests.

Separate schemas for create/update/read keep the API clean:
- RequestCreate: what you POST to file a request
- RequestUpdate: what you PATCH (all optional, no status)
- StatusChange / TechnicianAssign: dedicated lifecycle commands
- RequestRead: the fully joined record the API and realtime events return
"""

import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from maintrack.db.models import Priority, Status


# ─── Embedded read models ────────────────────────────────

class UserBrief(BaseModel):
    id: uuid.UUID
    username: str
    full_name: str
    role: str

    model_config = {"from_attributes": True}


class MachineBrief(BaseModel):
    id: uuid.UUID
    code: str
    name: str
    location: Optional[str] = None

    model_config = {"from_attributes": True}


class LogRead(BaseModel):
    id: uuid.UUID
    request_id: uuid.UUID
    action_by: uuid.UUID
    message: str
    created_at: datetime
    actor: Optional[UserBrief] = None

    model_config = {"from_attributes": True}


class RequestBrief(BaseModel):
    id: uuid.UUID
    title: str
    status: str
    machine: Optional[MachineBrief] = None

    model_config = {"from_attributes": True}


class LogWithRequest(LogRead):
    """Feed entry: the log line plus which request and machine it concerns."""
    request: Optional[RequestBrief] = None


# ─── Commands ────────────────────────────────────────────

class RequestCreate(BaseModel):
    machine_id: uuid.UUID
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    priority: Priority = Priority.MEDIUM
    image_url: Optional[str] = Field(None, max_length=500)


class RequestUpdate(BaseModel):
    """Partial update — only fields present in the body are applied."""
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, min_length=1)
    priority: Optional[Priority] = None
    image_url: Optional[str] = Field(None, max_length=500)


class StatusChange(BaseModel):
    """Any target status is accepted; there is no transition whitelist."""
    status: Status
    message: Optional[str] = Field(None, description="Audit message (auto-generated if omitted)")


class TechnicianAssign(BaseModel):
    technician_id: uuid.UUID


class RequestFilter(BaseModel):
    machine_id: Optional[uuid.UUID] = None
    priority: Optional[Priority] = None
    status: Optional[Status] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1, le=100)

    @model_validator(mode="after")
    def check_date_range(self):
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        return self


# ─── Read ────────────────────────────────────────────────

class RequestRead(BaseModel):
    id: uuid.UUID
    machine_id: uuid.UUID
    requested_by: uuid.UUID
    assigned_to: Optional[uuid.UUID]
    title: str
    description: str
    priority: str
    status: str
    image_url: Optional[str]
    created_at: datetime
    updated_at: datetime
    machine: Optional[MachineBrief] = None
    requester: Optional[UserBrief] = None
    assignee: Optional[UserBrief] = None
    logs: list[LogRead] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class RequestSummary(BaseModel):
    """List/dashboard row — joins, but no log history."""
    id: uuid.UUID
    machine_id: uuid.UUID
    requested_by: uuid.UUID
    assigned_to: Optional[uuid.UUID]
    title: str
    description: str
    priority: str
    status: str
    image_url: Optional[str]
    created_at: datetime
    updated_at: datetime
    machine: Optional[MachineBrief] = None
    requester: Optional[UserBrief] = None
    assignee: Optional[UserBrief] = None

    model_config = {"from_attributes": True}


class RequestPage(BaseModel):
    data: list[RequestSummary]
    total: int
    page: int
    limit: int
    total_pages: int
