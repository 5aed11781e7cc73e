"""
Ticket Application Services
============================

Application services orchestrate the ticket lifecycle and coordinate
between domain entities, repositories and the event bus.

Following SOLID principles:
- Single Responsibility: Each service has one clear purpose
- Dependency Inversion: Depend on abstractions (repositories), not concrete implementations

Every accepted mutation writes its field update and exactly one event in
the same unit of work; bus subscribers are told afterwards.
"""

import random
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, AsyncContextManager, Dict, Iterable, List, Optional, Tuple

from escalation_desk.config import ActorRole, EventAction, TicketStatus, settings
from escalation_desk.core import (
    RepositoryException,
    ResourceNotFoundException,
    ValidationException,
)
from escalation_desk.shared.events import (
    EventBus,
    TicketCreated,
    TicketReopened,
    TicketStatusChanged,
)
from escalation_desk.shared.infrastructure.logging import get_logger
from escalation_desk.sla.domain import ISLAPolicyProvider, StaticPolicyProvider
from escalation_desk.tickets.application.dto import TicketCreateRequest, TicketFilter
from escalation_desk.tickets.domain import Actor, Assignee, Ticket, User, status_label

logger = get_logger(__name__)

TICKET_NUMBER_ATTEMPTS = 5


# ========== Repository Interfaces (Dependency Inversion) ==========

class ITicketRepository(ABC):
    """Interface for ticket data access."""

    @abstractmethod
    async def get_by_id(self, ticket_id: str, include_deleted: bool = False) -> Optional[Ticket]:
        """Get ticket by internal ID."""

    @abstractmethod
    async def get_by_number(self, ticket_number: str) -> Optional[Ticket]:
        """Get ticket by its human-readable number."""

    @abstractmethod
    async def exists_by_number(self, ticket_number: str) -> bool:
        """Check if a ticket number is taken."""

    @abstractmethod
    async def create(self, ticket: Ticket) -> Ticket:
        """Persist a new ticket."""

    @abstractmethod
    async def save(self, ticket: Ticket) -> None:
        """Write the ticket's mutable fields (last write wins)."""

    @abstractmethod
    async def save_if_status(self, ticket: Ticket, expected_status: TicketStatus) -> bool:
        """
        Write the ticket only if the stored status still equals `expected_status`.

        Returns:
            False when another writer got there first
        """

    @abstractmethod
    async def list(
        self,
        filters: TicketFilter,
        page: int = 1,
        page_size: int = 50
    ) -> Tuple[List[Ticket], int]:
        """List tickets with filters; returns the page and the total count."""

    @abstractmethod
    async def list_all(self, filters: TicketFilter) -> List[Ticket]:
        """Every ticket matching the filters, unpaginated and without assignees."""

    @abstractmethod
    async def mark_sla_breached(self, ticket_id: str) -> bool:
        """
        Set the breach flag on an unresolved, not-yet-breached ticket.

        Returns:
            False if the ticket was already flagged or has been resolved
        """

    @abstractmethod
    async def list_by_status(self, statuses: Iterable[TicketStatus]) -> List[Ticket]:
        """All non-deleted tickets in any of the given statuses."""

    @abstractmethod
    async def ticket_numbers(self, ticket_ids: Iterable[str]) -> Dict[str, str]:
        """Map ticket ids to ticket numbers in one lookup."""

    @abstractmethod
    async def soft_delete(self, ticket_id: str, deleted_by: str, now: datetime) -> bool:
        """Flag a ticket as deleted."""

    @abstractmethod
    def savepoint(self) -> AsyncContextManager[Any]:
        """Nested transaction so one item of a batch can fail on its own."""


class IEventStore(ABC):
    """Interface for the append-only event log."""

    @abstractmethod
    async def append(
        self,
        ticket_id: str,
        action: EventAction,
        actor: Actor,
        old_value: Optional[str] = None,
        new_value: Optional[str] = None,
        details: Optional[dict] = None,
        performed_at: Optional[datetime] = None
    ) -> str:
        """Append one event; returns its id."""


class IUserRepository(ABC):
    """Interface for the user directory."""

    @abstractmethod
    async def get(self, user_id: str) -> Optional[User]:
        """Get user by ID."""

    @abstractmethod
    async def get_many(self, user_ids: Iterable[str]) -> Dict[str, User]:
        """Get several users keyed by ID."""


class IAssigneeRepository(ABC):
    """Interface for live assignee bindings and the assignment log."""

    @abstractmethod
    async def add(self, ticket_id: str, user_id: str, role: str, assigned_by: str, now: datetime) -> bool:
        """Insert a binding; returns False if it already existed."""

    @abstractmethod
    async def remove(self, ticket_id: str, user_id: str, role: str) -> bool:
        """Delete a binding; returns False if there was none."""

    @abstractmethod
    async def list_for_ticket(self, ticket_id: str) -> List[Assignee]:
        """Current assignees of a ticket."""

    @abstractmethod
    async def log(
        self,
        ticket_id: str,
        user_id: str,
        role: str,
        operation: str,
        performed_by: str,
        now: datetime
    ) -> None:
        """Append to the assignment history."""


# ========== Application Services ==========

class TicketService:
    """
    Service for the ticket lifecycle.

    Creates tickets, moves them through the state machine, reopens and
    soft-deletes them. Each operation appends one event.
    """

    def __init__(
        self,
        ticket_repository: ITicketRepository,
        event_store: IEventStore,
        event_bus: Optional[EventBus] = None,
        policy_provider: Optional[ISLAPolicyProvider] = None,
        ticket_number_prefix: Optional[str] = None,
        rng: Optional[random.Random] = None
    ):
        self._ticket_repo = ticket_repository
        self._events = event_store
        self._bus = event_bus
        self._policy_provider = policy_provider or StaticPolicyProvider()
        self._prefix = ticket_number_prefix or settings.ticket_number_prefix
        self._rng = rng or random.Random()

    async def _publish(self, event) -> None:
        if self._bus is not None:
            await self._bus.publish(event)

    async def _generate_ticket_number(self, now: datetime) -> str:
        """`<PREFIX>-YYYYMMDD-NNNN`, retried on collision."""
        for _ in range(TICKET_NUMBER_ATTEMPTS):
            candidate = f"{self._prefix}-{now:%Y%m%d}-{self._rng.randint(0, 9999):04d}"
            if not await self._ticket_repo.exists_by_number(candidate):
                return candidate
        raise RepositoryException(
            "Could not allocate a unique ticket number",
            {"attempts": TICKET_NUMBER_ATTEMPTS, "date": f"{now:%Y-%m-%d}"}
        )

    async def create_ticket(
        self,
        request: TicketCreateRequest,
        actor: Optional[Actor] = None,
        now: Optional[datetime] = None
    ) -> Ticket:
        """
        Submit a new ticket.

        Args:
            request: Validated submission
            actor: Submitting user; anonymous submissions fall back to the request
            now: Submission time (defaults to the current UTC time)

        Returns:
            The created Ticket
        """
        now = now or datetime.now(timezone.utc)
        policy = self._policy_provider.get_policy()
        submitted_by = None if request.is_anonymous else (request.submitted_by or (actor.id if actor else None))

        ticket = Ticket(
            id="",
            ticket_number=await self._generate_ticket_number(now),
            category=request.category.value,
            severity=request.severity.value,
            description=request.description,
            status=TicketStatus.OPEN,
            submitted_at=now,
            last_activity_at=now,
            city=request.city,
            centre_code=request.centre_code,
            resource_id=request.resource_id,
            submitted_by=submitted_by,
            is_anonymous=request.is_anonymous,
            issue_date=request.issue_date.model_dump(mode="json") if request.issue_date else None,
            sla_target_hours=policy.target_hours(request.severity.value),
            is_testing=request.is_testing,
        )
        ticket = await self._ticket_repo.create(ticket)

        author = actor or Actor(id=submitted_by or "anonymous", name="Reporter", role=ActorRole.INVIGILATOR)
        await self._events.append(
            ticket.id,
            EventAction.CREATED,
            author,
            new_value=TicketStatus.OPEN.value,
            details={"severity": ticket.severity, "category": ticket.category},
            performed_at=now,
        )

        logger.info(
            "Ticket created",
            extra={
                "ticket_id": ticket.id,
                "ticket_number": ticket.ticket_number,
                "severity": ticket.severity,
                "category": ticket.category,
            }
        )
        await self._publish(TicketCreated(
            ticket_id=ticket.id,
            ticket_number=ticket.ticket_number,
            category=ticket.category,
            description=ticket.description,
            severity=ticket.severity,
            city=ticket.city or "",
        ))
        return ticket

    async def get_ticket(self, ticket_id: str) -> Ticket:
        """
        Raises:
            ResourceNotFoundException: If the ticket does not exist or is deleted
        """
        ticket = await self._ticket_repo.get_by_id(ticket_id)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", ticket_id)
        return ticket

    async def get_ticket_by_number(self, ticket_number: str) -> Ticket:
        ticket = await self._ticket_repo.get_by_number(ticket_number)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", ticket_number)
        return ticket

    async def list_tickets(
        self,
        filters: TicketFilter,
        page: int = 1,
        page_size: int = 50
    ) -> Tuple[List[Ticket], int]:
        """Filtered, newest-first page of tickets plus the total count."""
        if page < 1 or page_size < 1:
            raise ValidationException("page and page_size must be positive")
        if filters.created_from and filters.created_to and filters.created_to < filters.created_from:
            raise ValidationException("created_to cannot be before created_from")
        return await self._ticket_repo.list(filters, page=page, page_size=page_size)

    async def transition_status(
        self,
        ticket_id: str,
        new_status: TicketStatus,
        actor: Actor,
        notes: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Ticket:
        """
        Move a ticket to `new_status`.

        Raises:
            ResourceNotFoundException: Unknown ticket
            InvalidTransitionException: Edge not permitted for the actor's role
        """
        now = now or datetime.now(timezone.utc)
        try:
            new_status = TicketStatus(new_status)
        except ValueError:
            raise ValidationException(f"Unknown status '{new_status}'")

        ticket = await self.get_ticket(ticket_id)
        old_status = ticket.status
        was_breached = ticket.is_sla_breached
        transition = ticket.change_status(new_status, actor, now)

        await self._ticket_repo.save(ticket)

        details: Dict[str, Any] = {"status_label": status_label(new_status)}
        if transition.cleared_dependencies:
            details["cleared_dependencies"] = list(transition.cleared_dependencies)
        if notes:
            details["notes"] = notes
        await self._events.append(
            ticket.id,
            EventAction.STATUS_CHANGED,
            actor,
            old_value=old_status.value,
            new_value=new_status.value,
            details=details,
            performed_at=now,
        )
        if ticket.is_sla_breached and not was_breached:
            await self._events.append(
                ticket.id,
                EventAction.SLA_BREACHED,
                Actor.system(),
                old_value="false",
                new_value="true",
                details=ticket.breach_details(),
                performed_at=now,
            )

        logger.info(
            "Ticket status changed",
            extra={
                "ticket_id": ticket.id,
                "ticket_number": ticket.ticket_number,
                "old_status": old_status.value,
                "new_status": new_status.value,
                "actor_id": actor.id,
                "is_sla_breached": ticket.is_sla_breached,
            }
        )
        await self._publish(TicketStatusChanged(
            ticket_id=ticket.id,
            ticket_number=ticket.ticket_number,
            old_status=old_status.value,
            new_status=new_status.value,
            category=ticket.category,
            description=ticket.description,
            changed_by=actor.id,
        ))
        return ticket

    async def reopen(
        self,
        ticket_id: str,
        actor: Actor,
        reason: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Ticket:
        """Send a ticket back to open and bump its reopen count."""
        now = now or datetime.now(timezone.utc)
        ticket = await self.get_ticket(ticket_id)
        previous = ticket.reopen(actor, now)

        await self._ticket_repo.save(ticket)

        details: Dict[str, Any] = {"reopen_count": ticket.reopen_count}
        if reason:
            details["reason"] = reason
        await self._events.append(
            ticket.id,
            EventAction.REOPENED,
            actor,
            old_value=previous.value,
            new_value=TicketStatus.OPEN.value,
            details=details,
            performed_at=now,
        )

        logger.info(
            "Ticket reopened",
            extra={
                "ticket_id": ticket.id,
                "ticket_number": ticket.ticket_number,
                "from_status": previous.value,
                "reopen_count": ticket.reopen_count,
            }
        )
        await self._publish(TicketReopened(
            ticket_id=ticket.id,
            ticket_number=ticket.ticket_number,
            old_status=previous.value,
            reopen_count=ticket.reopen_count,
            reopened_by=actor.id,
        ))
        return ticket

    async def soft_delete(self, ticket_id: str, actor: Actor, now: Optional[datetime] = None) -> None:
        """Hide a ticket from listings; its events stay in the log."""
        now = now or datetime.now(timezone.utc)
        ticket = await self.get_ticket(ticket_id)

        await self._ticket_repo.soft_delete(ticket.id, actor.id, now)
        await self._events.append(
            ticket.id,
            EventAction.DELETED,
            actor,
            old_value=ticket.status.value,
            performed_at=now,
        )
        logger.info(
            "Ticket deleted",
            extra={"ticket_id": ticket.id, "ticket_number": ticket.ticket_number, "actor_id": actor.id}
        )
