"""SQLAlchemy ORM models — single source of truth for the database schema.

Declarative ORM mapping with SQLAlchemy 2.0 style (Mapped[] + mapped_column).
Column types are the portable ones (Uuid, Text, DateTime) so the same
schema runs on PostgreSQL in production and SQLite in tests.

Timestamps are assigned application-side (utcnow) rather than with
server_default, so ordering by created_at is stable at sub-second
resolution on every backend.
"""

import enum
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_uuid() -> uuid.UUID:
    return uuid.uuid4()


# ══════════════════════════════════════════════════════════════
# Enumerations (stored as plain strings)
# ══════════════════════════════════════════════════════════════


class Role(str, enum.Enum):
    ADMIN = "ADMIN"
    TECHNICIAN = "TECHNICIAN"
    USER = "USER"


class Priority(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class Status(str, enum.Enum):
    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELED = "CANCELED"


# ══════════════════════════════════════════════════════════════
# Users and machines (collaborator entities)
# ══════════════════════════════════════════════════════════════


class User(Base):
    """A person who files, handles, or administers requests.

    Credentials live with the identity provider; this table only holds
    what the lifecycle needs: who someone is and which role they act in.
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=new_uuid
    )
    username: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    email: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    full_name: Mapped[str] = mapped_column(String(100), nullable=False)
    role: Mapped[str] = mapped_column(
        String(20), nullable=False, default=Role.USER.value
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )


class Machine(Base):
    """A piece of equipment that maintenance requests are filed against."""

    __tablename__ = "machines"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=new_uuid
    )
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    location: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )


# ══════════════════════════════════════════════════════════════
# Maintenance requests and their audit trail
# ══════════════════════════════════════════════════════════════


class MaintenanceRequest(Base):
    """A maintenance ticket — the entity the lifecycle state machine owns.

    status only changes through RequestService. Logs are owned by the
    request: delete-orphan cascade on the relationship plus ON DELETE
    CASCADE on the foreign key.
    """

    __tablename__ = "maintenance_requests"
    __table_args__ = (
        Index("idx_requests_status_created", "status", "created_at"),
        Index("idx_requests_assigned", "assigned_to"),
        Index("idx_requests_machine", "machine_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=new_uuid
    )
    machine_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("machines.id"), nullable=False
    )
    requested_by: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False
    )
    assigned_to: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=True
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    priority: Mapped[str] = mapped_column(
        String(20), nullable=False, default=Priority.MEDIUM.value
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=Status.OPEN.value
    )
    image_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    # Relationships
    machine: Mapped["Machine"] = relationship()
    requester: Mapped["User"] = relationship(foreign_keys=[requested_by])
    assignee: Mapped[Optional["User"]] = relationship(foreign_keys=[assigned_to])
    logs: Mapped[list["MaintenanceLog"]] = relationship(
        back_populates="request",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="desc(MaintenanceLog.created_at)",
    )


class MaintenanceLog(Base):
    """Immutable audit entry — one per lifecycle mutation.

    Append-only: nothing in the codebase updates or deletes a log row
    except the cascade from its parent request.
    """

    __tablename__ = "maintenance_logs"
    __table_args__ = (
        Index("idx_logs_request_created", "request_id", "created_at"),
        Index("idx_logs_created", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=new_uuid
    )
    request_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("maintenance_requests.id", ondelete="CASCADE"),
        nullable=False,
    )
    action_by: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False
    )
    message: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )

    # Relationships
    request: Mapped["MaintenanceRequest"] = relationship(back_populates="logs")
    actor: Mapped["User"] = relationship()


# ══════════════════════════════════════════════════════════════
# Web Push subscriptions
# ══════════════════════════════════════════════════════════════


class PushSubscription(Base):
    """One browser/device registered for Web Push.

    endpoint is the natural key: subscribing the same endpoint again
    updates this row in place. is_active goes false on unsubscribe or
    when the push service reports the endpoint gone (404/410).
    """

    __tablename__ = "push_subscriptions"
    __table_args__ = (
        Index("idx_push_user_ip", "user_id", "ip_address"),
        Index("idx_push_active_last_used", "is_active", "last_used"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=new_uuid
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    endpoint: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    p256dh: Mapped[str] = mapped_column(String(500), nullable=False)
    auth: Mapped[str] = mapped_column(String(500), nullable=False)
    ip_address: Mapped[str] = mapped_column(String(45), nullable=False)
    user_agent: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    device_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_used: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )
