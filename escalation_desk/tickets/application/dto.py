"""
Ticket Application DTOs
========================

Data Transfer Objects for the ticket API layer.

These Pydantic models handle serialization/deserialization and validation
for API requests and responses.
"""

from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, model_validator

from escalation_desk.config import AssigneeRole, IssueCategory, Severity, TicketStatus
from escalation_desk.tickets.domain import Ticket, status_label


# ========== Request DTOs ==========

class IssueDatePayload(BaseModel):
    """Exam date(s) the issue refers to."""
    type: Literal["single", "multiple", "range", "ongoing"] = Field(default="single")
    dates: List[date] = Field(default_factory=list, description="Dates for single/multiple")
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @model_validator(mode="after")
    def check_shape(self) -> "IssueDatePayload":
        if self.type == "range" and self.start_date is None and self.end_date is None:
            raise ValueError("range issue dates need a start_date or end_date")
        if self.type == "range" and self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date cannot be before start_date")
        return self


class TicketCreateRequest(BaseModel):
    """Request model for submitting a ticket."""
    category: IssueCategory = Field(..., description="Issue category")
    severity: Severity = Field(default=Severity.SEV3, description="Urgency tier")
    description: str = Field(..., min_length=1, max_length=5000, description="What happened")
    city: Optional[str] = Field(None, max_length=100)
    centre_code: Optional[str] = Field(None, max_length=50)
    resource_id: Optional[str] = Field(None, max_length=64, description="Invigilator resource id")
    submitted_by: Optional[str] = Field(None, max_length=64, description="Submitting user id")
    is_anonymous: bool = False
    issue_date: Optional[IssueDatePayload] = None
    is_testing: bool = False


class StatusChangeRequest(BaseModel):
    """Request model for a status transition."""
    status: TicketStatus = Field(..., description="Target status")
    notes: Optional[str] = Field(None, max_length=2000, description="Free-text note stored with the event")


class ReopenRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=2000)


class TicketFilter(BaseModel):
    """Filters for ticket listing."""
    status: List[TicketStatus] = Field(default_factory=list)
    severity: List[Severity] = Field(default_factory=list)
    category: List[str] = Field(default_factory=list)
    city: List[str] = Field(default_factory=list)
    resolver_ids: List[str] = Field(default_factory=list)
    approver_ids: List[str] = Field(default_factory=list)
    resource_ids: List[str] = Field(default_factory=list)
    search: Optional[str] = Field(None, description="Comma-separated terms, any may match")
    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None
    include_deleted: bool = False

    @property
    def search_terms(self) -> List[str]:
        if not self.search:
            return []
        return [term.strip().lower() for term in self.search.split(",") if term.strip()]


class AssignmentRequest(BaseModel):
    """
    Bulk assignment request.

    Resolver and approver are assigned independently; the overall flag is
    true only when both halves fully succeed.
    """
    ticket_ids: List[str] = Field(..., min_length=1, max_length=500)
    resolver_id: Optional[str] = None
    approver_id: Optional[str] = None

    @model_validator(mode="after")
    def require_assignee(self) -> "AssignmentRequest":
        if not self.resolver_id and not self.approver_id:
            raise ValueError("resolver_id or approver_id is required")
        return self


# ========== Response DTOs ==========

class TicketResponse(BaseModel):
    """Response model for a ticket."""
    id: str
    ticket_number: str
    category: str
    severity: str
    description: str
    status: str
    status_label: str
    city: Optional[str] = None
    centre_code: Optional[str] = None
    resource_id: Optional[str] = None
    submitted_by: Optional[str] = None
    is_anonymous: bool = False
    issue_date: Optional[dict] = None

    submitted_at: datetime
    last_activity_at: datetime
    resolved_at: Optional[datetime] = None
    status_changed_at: Optional[datetime] = None
    status_changed_by: Optional[str] = None
    user_dependency_started_at: Optional[datetime] = None
    resolution_notes: Optional[str] = None
    reopen_count: int = 0
    last_reopened_at: Optional[datetime] = None

    sla_target_hours: int
    is_sla_breached: bool
    resolution_time_hours: Optional[float] = None

    resolvers: List[str] = Field(default_factory=list)
    approvers: List[str] = Field(default_factory=list)
    tracking_url: Optional[str] = None

    @classmethod
    def from_entity(cls, ticket: Ticket, tracking_base_url: Optional[str] = None) -> "TicketResponse":
        tracking_url = None
        if tracking_base_url:
            tracking_url = f"{tracking_base_url.rstrip('/')}/track/{ticket.ticket_number}"
        return cls(
            id=ticket.id,
            ticket_number=ticket.ticket_number,
            category=ticket.category,
            severity=ticket.severity,
            description=ticket.description,
            status=ticket.status.value,
            status_label=status_label(ticket.status),
            city=ticket.city,
            centre_code=ticket.centre_code,
            resource_id=ticket.resource_id,
            submitted_by=None if ticket.is_anonymous else ticket.submitted_by,
            is_anonymous=ticket.is_anonymous,
            issue_date=ticket.issue_date,
            submitted_at=ticket.submitted_at,
            last_activity_at=ticket.last_activity_at,
            resolved_at=ticket.resolved_at,
            status_changed_at=ticket.status_changed_at,
            status_changed_by=ticket.status_changed_by,
            user_dependency_started_at=ticket.user_dependency_started_at,
            resolution_notes=ticket.resolution_notes,
            reopen_count=ticket.reopen_count,
            last_reopened_at=ticket.last_reopened_at,
            sla_target_hours=ticket.sla_target_hours,
            is_sla_breached=ticket.is_sla_breached,
            resolution_time_hours=ticket.resolution_time_hours,
            resolvers=list(ticket.resolvers),
            approvers=list(ticket.approvers),
            tracking_url=tracking_url,
        )


class TicketPage(BaseModel):
    """One page of a ticket listing."""
    items: List[TicketResponse]
    total: int
    page: int
    page_size: int
    has_more: bool


class AssigneeResponse(BaseModel):
    user_id: str
    name: Optional[str] = None
    role: AssigneeRole
    assigned_at: datetime
    assigned_by: Optional[str] = None


class AssignmentOutcome(BaseModel):
    """Per-ticket result of an assignment."""
    ticket_id: str
    user_id: str
    role: AssigneeRole
    success: bool
    created: bool = Field(False, description="False when the binding already existed")
    error: Optional[str] = None


class BulkAssignmentResponse(BaseModel):
    """Aggregate result of a bulk assignment."""
    success: bool
    processed_count: int
    errors: List[str] = Field(default_factory=list)
    results: List[AssignmentOutcome] = Field(default_factory=list)
