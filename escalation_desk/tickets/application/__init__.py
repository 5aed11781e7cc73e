"""
Ticket Application Layer
=========================

Contains:
- Services: Ticket lifecycle and assignment orchestration
- DTOs: Data transfer objects for API serialization
- Repository interfaces implemented by the infrastructure layer

This layer depends on the domain layer and repository interfaces,
but not on concrete infrastructure implementations.
"""

from escalation_desk.tickets.application.dto import (
    AssigneeResponse,
    AssignmentOutcome,
    AssignmentRequest,
    BulkAssignmentResponse,
    IssueDatePayload,
    ReopenRequest,
    StatusChangeRequest,
    TicketCreateRequest,
    TicketFilter,
    TicketPage,
    TicketResponse,
)
from escalation_desk.tickets.application.services import (
    IAssigneeRepository,
    IEventStore,
    ITicketRepository,
    IUserRepository,
    TicketService,
)
from escalation_desk.tickets.application.assignment import AssignmentService

__all__ = [
    # DTOs
    "AssigneeResponse",
    "AssignmentOutcome",
    "AssignmentRequest",
    "BulkAssignmentResponse",
    "IssueDatePayload",
    "ReopenRequest",
    "StatusChangeRequest",
    "TicketCreateRequest",
    "TicketFilter",
    "TicketPage",
    "TicketResponse",
    # Services
    "AssignmentService",
    "TicketService",
    # Repository Interfaces
    "IAssigneeRepository",
    "IEventStore",
    "ITicketRepository",
    "IUserRepository",
]
