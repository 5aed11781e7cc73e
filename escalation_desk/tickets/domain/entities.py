"""
Ticket Domain Entities
=======================

Pure Python domain entities for the ticket lifecycle.

Following Domain-Driven Design principles, these entities contain
business logic and are free of infrastructure concerns. The Ticket is
the aggregate root: assignees and events reference it by id.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from escalation_desk.config import SYSTEM_ACTOR, ActorRole, TicketStatus
from escalation_desk.sla.domain.value_objects import IssueDate, SLACalculator
from escalation_desk.tickets.domain.state_machine import (
    DEPENDENCY_STATUSES,
    Transition,
    validate_reopen,
    validate_transition,
)


@dataclass(frozen=True)
class Actor:
    """Who performs an action: id, display name and role."""
    id: str
    name: str
    role: ActorRole

    @classmethod
    def system(cls) -> "Actor":
        return cls(id=SYSTEM_ACTOR, name="System", role=ActorRole.SYSTEM)

    @property
    def is_system(self) -> bool:
        return self.role == ActorRole.SYSTEM


@dataclass
class Ticket:
    """
    Ticket entity representing one reported issue.

    Invariant: `resolved_at` is set if and only if status is resolved.
    """

    # Core attributes
    id: str
    ticket_number: str
    category: str
    severity: str
    description: str
    status: TicketStatus

    # Timestamps
    submitted_at: datetime
    last_activity_at: datetime

    # Location and submitter
    city: Optional[str] = None
    centre_code: Optional[str] = None
    resource_id: Optional[str] = None
    submitted_by: Optional[str] = None
    is_anonymous: bool = False
    issue_date: Optional[dict] = None

    # Lifecycle tracking
    resolved_at: Optional[datetime] = None
    status_changed_at: Optional[datetime] = None
    status_changed_by: Optional[str] = None
    user_dependency_started_at: Optional[datetime] = None
    resolution_notes: Optional[str] = None
    reopen_count: int = 0
    last_reopened_at: Optional[datetime] = None
    reopened_by: Optional[str] = None

    # SLA tracking
    sla_target_hours: int = 24
    is_sla_breached: bool = False
    resolution_time_hours: Optional[float] = None

    is_deleted: bool = False
    is_testing: bool = False

    # Live assignee sets, filled by the repository when loaded
    resolvers: List[str] = field(default_factory=list)
    approvers: List[str] = field(default_factory=list)

    def __post_init__(self):
        """Validate ticket on initialization."""
        self.status = TicketStatus(self.status)
        if (self.status == TicketStatus.RESOLVED) != (self.resolved_at is not None):
            raise ValueError("resolved_at must be set exactly when status is resolved")
        if self.resolved_at and self.resolved_at < self.submitted_at:
            raise ValueError("resolved_at cannot be before submitted_at")

    @property
    def is_resolved(self) -> bool:
        return self.status == TicketStatus.RESOLVED

    @property
    def in_dependency(self) -> bool:
        return self.status in DEPENDENCY_STATUSES

    @property
    def exam_date(self) -> Optional[IssueDate]:
        return IssueDate.from_payload(self.issue_date)

    def refresh_sla(self, now: datetime) -> bool:
        """
        Recompute the breach flag.

        Returns:
            True if the ticket has just become breached
        """
        was_breached = self.is_sla_breached
        self.is_sla_breached = SLACalculator.is_breached(
            self.submitted_at, self.sla_target_hours, now, self.resolved_at
        )
        return self.is_sla_breached and not was_breached

    def breach_details(self) -> dict:
        """Details recorded on the `sla_breached` event."""
        return {
            "target_hours": self.sla_target_hours,
            "severity": self.severity,
            "deadline": SLACalculator.deadline(self.submitted_at, self.sla_target_hours).isoformat(),
        }


    def change_status(self, new_status: TicketStatus, actor: Actor, now: Optional[datetime] = None) -> Transition:
        """
        Move the ticket along the state machine.

        Raises:
            InvalidTransitionException: If the actor may not take this edge
        """
        now = now or datetime.now(timezone.utc)
        transition = validate_transition(self.status, new_status, actor.role)

        self.status = transition.target
        self.last_activity_at = now
        self.status_changed_at = now
        self.status_changed_by = actor.id

        if self.in_dependency:
            # entering (or re-entering) a dependency restarts the timer
            self.user_dependency_started_at = now
        else:
            self.user_dependency_started_at = None

        if self.status == TicketStatus.RESOLVED:
            self.resolved_at = now
            self.resolution_time_hours = SLACalculator.resolution_time_hours(self.submitted_at, now)

        self.refresh_sla(now)
        return transition

    def resolve_by_system(self, notes: str, now: datetime) -> None:
        """Force-resolve a ticket stuck in user dependency."""
        self.change_status(TicketStatus.RESOLVED, Actor.system(), now)
        self.resolution_notes = notes

    def reopen(self, actor: Actor, now: Optional[datetime] = None) -> TicketStatus:
        """
        Send the ticket back to open.

        Returns:
            The status the ticket was reopened from
        """
        now = now or datetime.now(timezone.utc)
        validate_reopen(self.status, actor.role)

        previous = self.status
        self.status = TicketStatus.OPEN
        self.reopen_count += 1
        self.last_reopened_at = now
        self.reopened_by = actor.id
        self.last_activity_at = now
        self.status_changed_at = now
        self.status_changed_by = actor.id
        self.user_dependency_started_at = None
        self.refresh_sla(now)
        return previous

    def dependency_reference(self, reference: str = "submitted_at") -> datetime:
        """Timestamp the dependency age is measured from."""
        if reference == "user_dependency_started_at" and self.user_dependency_started_at:
            return self.user_dependency_started_at
        return self.submitted_at


@dataclass
class User:
    """Directory entry for a staff member or reporter."""
    id: str
    name: str
    role: str
    city: Optional[str] = None
    is_active: bool = True


@dataclass
class Assignee:
    """A live (ticket, user, role) binding."""
    ticket_id: str
    user_id: str
    role: str
    assigned_at: datetime
    assigned_by: Optional[str] = None
    name: Optional[str] = None
