"""
Assignment Service
==================

Many-to-many binding of tickets to resolvers and approvers.

Bindings are inserted or deleted, never updated. Every call writes one
`assigned` event per ticket, even when the binding already existed;
collapsing repeats is left to the activity reconciler. Assignment never
touches ticket status.
"""

from datetime import datetime, timezone
from typing import List, Optional

from escalation_desk.config import AssigneeRole, EventAction
from escalation_desk.core import ResourceNotFoundException
from escalation_desk.shared.events import EventBus, TicketAssigned, TicketUnassigned
from escalation_desk.shared.infrastructure.logging import get_logger
from escalation_desk.tickets.application.dto import AssignmentOutcome, BulkAssignmentResponse
from escalation_desk.tickets.application.services import (
    IAssigneeRepository,
    IEventStore,
    ITicketRepository,
    IUserRepository,
)
from escalation_desk.tickets.domain import Actor, Assignee, User

logger = get_logger(__name__)


class AssignmentService:
    """
    Service for assigning resolvers and approvers.

    A bulk call is attempted ticket by ticket, each inside its own
    savepoint: one ticket failing leaves the others assigned.
    """

    def __init__(
        self,
        ticket_repository: ITicketRepository,
        assignee_repository: IAssigneeRepository,
        user_repository: IUserRepository,
        event_store: IEventStore,
        event_bus: Optional[EventBus] = None
    ):
        self._ticket_repo = ticket_repository
        self._assignees = assignee_repository
        self._users = user_repository
        self._events = event_store
        self._bus = event_bus

    async def require_user(self, user_id: str) -> User:
        """
        Raises:
            ResourceNotFoundException: Unknown or inactive user
        """
        user = await self._users.get(user_id)
        if user is None or not user.is_active:
            raise ResourceNotFoundException("User", user_id)
        return user

    async def assign_role(
        self,
        ticket_ids: List[str],
        user_id: str,
        role: AssigneeRole,
        actor: Actor,
        now: Optional[datetime] = None
    ) -> BulkAssignmentResponse:
        """
        Assign `user_id` as `role` on every ticket in `ticket_ids`.

        Args:
            ticket_ids: Tickets to assign; duplicates are processed once
            user_id: Resolver or approver
            role: Assignee role
            actor: Who is assigning
            now: Assignment time

        Returns:
            Per-ticket outcomes with processed_count and errors

        Raises:
            ResourceNotFoundException: Unknown user (nothing is attempted)
        """
        now = now or datetime.now(timezone.utc)
        role = AssigneeRole(role)
        await self.require_user(user_id)

        results: List[AssignmentOutcome] = []
        errors: List[str] = []
        assigned: List[tuple] = []

        for ticket_id in dict.fromkeys(ticket_ids):
            try:
                async with self._ticket_repo.savepoint():
                    ticket = await self._ticket_repo.get_by_id(ticket_id)
                    if ticket is None:
                        raise ResourceNotFoundException("Ticket", ticket_id)

                    created = await self._assignees.add(ticket.id, user_id, role.value, actor.id, now)
                    await self._assignees.log(ticket.id, user_id, role.value, "assign", actor.id, now)
                    await self._events.append(
                        ticket.id,
                        EventAction.ASSIGNED,
                        actor,
                        new_value=user_id,
                        details={"role": role.value},
                        performed_at=now,
                    )

                results.append(AssignmentOutcome(
                    ticket_id=ticket.id, user_id=user_id, role=role, success=True, created=created
                ))
                assigned.append((ticket.id, ticket.ticket_number))
            except Exception as e:
                message = getattr(e, "message", str(e))
                errors.append(f"Ticket {ticket_id}: {message}")
                results.append(AssignmentOutcome(
                    ticket_id=ticket_id, user_id=user_id, role=role, success=False, error=message
                ))
                logger.warning(
                    "Assignment failed",
                    extra={"ticket_id": ticket_id, "user_id": user_id, "role": role.value, "error": message}
                )

        logger.info(
            "Bulk assignment finished",
            extra={
                "user_id": user_id,
                "role": role.value,
                "requested": len(results),
                "processed_count": len(assigned),
                "error_count": len(errors),
            }
        )

        if self._bus is not None:
            for ticket_id, ticket_number in assigned:
                await self._bus.publish(TicketAssigned(
                    ticket_id=ticket_id,
                    ticket_number=ticket_number,
                    user_id=user_id,
                    role=role.value,
                    assigned_by=actor.id,
                ))

        return BulkAssignmentResponse(
            success=not errors,
            processed_count=len(assigned),
            errors=errors,
            results=results,
        )

    async def unassign(
        self,
        ticket_id: str,
        user_id: str,
        role: AssigneeRole,
        actor: Actor,
        now: Optional[datetime] = None
    ) -> None:
        """
        Remove one binding.

        Raises:
            ResourceNotFoundException: Unknown ticket, or no such binding
        """
        now = now or datetime.now(timezone.utc)
        role = AssigneeRole(role)

        ticket = await self._ticket_repo.get_by_id(ticket_id)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", ticket_id)

        removed = await self._assignees.remove(ticket.id, user_id, role.value)
        if not removed:
            raise ResourceNotFoundException(
                "Assignee", user_id, {"ticket_id": ticket.id, "role": role.value}
            )

        await self._assignees.log(ticket.id, user_id, role.value, "unassign", actor.id, now)
        await self._events.append(
            ticket.id,
            EventAction.ASSIGNED,
            actor,
            old_value=user_id,
            new_value=None,
            details={"role": role.value, "operation": "unassign"},
            performed_at=now,
        )

        logger.info(
            "Assignee removed",
            extra={"ticket_id": ticket.id, "ticket_number": ticket.ticket_number, "user_id": user_id, "role": role.value}
        )
        if self._bus is not None:
            await self._bus.publish(TicketUnassigned(
                ticket_id=ticket.id,
                ticket_number=ticket.ticket_number,
                user_id=user_id,
                role=role.value,
                unassigned_by=actor.id,
            ))

    async def list_assignees(self, ticket_id: str) -> List[Assignee]:
        """Current resolvers and approvers of a ticket, with display names."""
        ticket = await self._ticket_repo.get_by_id(ticket_id)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", ticket_id)

        assignees = await self._assignees.list_for_ticket(ticket.id)
        users = await self._users.get_many(a.user_id for a in assignees)
        for assignee in assignees:
            user = users.get(assignee.user_id)
            assignee.name = user.name if user else None
        return assignees
