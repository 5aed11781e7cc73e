"""
Ticket Infrastructure Models
=============================

SQLAlchemy ORM models for the ticket lifecycle.

These are the database representations of our domain entities.
They belong in the infrastructure layer, not the domain layer.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, Boolean, Float, ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from escalation_desk.config import TicketStatus
from escalation_desk.infrastructure.database import Base, UTCDateTime


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TicketModel(Base):
    """
    Database model for Ticket entity.

    Maps to the 'tickets' table.
    """
    __tablename__ = "tickets"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Human-readable identifier, e.g. AWGN-20250101-0042
    ticket_number: Mapped[str] = mapped_column(String(32), unique=True, index=True, nullable=False)

    # Classification
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    severity: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)

    # Location and submitter
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    centre_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    resource_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    submitted_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    is_anonymous: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    issue_date: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    # Lifecycle
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=TicketStatus.OPEN.value, index=True)
    submitted_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    last_activity_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    status_changed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    status_changed_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_dependency_started_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    resolution_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Reopen tracking
    reopen_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_reopened_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    reopened_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # SLA tracking
    sla_target_hours: Mapped[int] = mapped_column(Integer, nullable=False, default=24)
    is_sla_breached: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    resolution_time_hours: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # Soft delete
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    deleted_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    is_testing: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class UserModel(Base):
    """
    Staff and reporter directory, read-only for this service.

    Maps to the 'users' table.
    """
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(32), nullable=False)
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class TicketAssigneeModel(Base):
    """
    Live (ticket, user, role) bindings.

    Rows are only ever inserted or deleted. The composite key makes a
    repeated assignment of the same user and role a no-op.
    """
    __tablename__ = "ticket_assignees"

    ticket_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("tickets.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[str] = mapped_column(String(64), ForeignKey("users.id"), primary_key=True)
    role: Mapped[str] = mapped_column(String(16), primary_key=True)
    assigned_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    assigned_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    __table_args__ = (
        Index("ix_ticket_assignees_user_role", "user_id", "role"),
    )


class AssignmentLogModel(Base):
    """
    Append-only history of assignment changes.

    Maps to the 'assignment_log' table.
    """
    __tablename__ = "assignment_log"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    ticket_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    role: Mapped[str] = mapped_column(String(16), nullable=False)
    operation: Mapped[str] = mapped_column(String(16), nullable=False)  # assign or unassign
    performed_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    performed_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)


class TicketHistoryModel(Base):
    """
    Versioned append-only event log.

    Every mutating ticket operation writes exactly one row here.
    """
    __tablename__ = "ticket_history"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    ticket_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    action_type: Mapped[str] = mapped_column(String(32), nullable=False)
    old_value: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    new_value: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    performed_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    performed_by_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    performed_by_role: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    performed_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow, index=True)
    details: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    schema_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)


class TicketTimelineModel(Base):
    """
    Legacy timeline stream.

    No longer written by this service; read by the activity reconciler
    so older entries stay visible in the feed.
    """
    __tablename__ = "ticket_timeline"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    ticket_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    event_type: Mapped[str] = mapped_column(String(32), nullable=False)
    old_value: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    new_value: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    performed_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    performed_by_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    performed_by_role: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow, index=True)
    details: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
