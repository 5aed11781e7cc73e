"""
Ticket Domain Layer
===================

Contains:
- Entities: Ticket (aggregate root) and Actor
- State machine: role-gated status transitions

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from escalation_desk.tickets.domain.entities import Actor, Assignee, Ticket, User
from escalation_desk.tickets.domain.state_machine import (
    DEPENDENCY_STATUSES,
    STATUS_LABELS,
    TRANSITIONS,
    Transition,
    allowed_targets,
    status_label,
    successors,
    validate_reopen,
    validate_transition,
)

__all__ = [
    # Entities
    "Actor",
    "Assignee",
    "Ticket",
    "User",
    # State machine
    "DEPENDENCY_STATUSES",
    "STATUS_LABELS",
    "TRANSITIONS",
    "Transition",
    "allowed_targets",
    "status_label",
    "successors",
    "validate_reopen",
    "validate_transition",
]
