"""
Ticket Infrastructure Layer
============================

Contains:
- Models: SQLAlchemy ORM models
- Repositories: Concrete implementations of repository interfaces
- External: Notification webhook client
"""

from escalation_desk.tickets.infrastructure.models import (
    AssignmentLogModel,
    TicketAssigneeModel,
    TicketHistoryModel,
    TicketModel,
    TicketTimelineModel,
    UserModel,
)
from escalation_desk.tickets.infrastructure.repositories import (
    SQLAlchemyAssigneeRepository,
    SQLAlchemyEventStore,
    SQLAlchemyTicketRepository,
    SQLAlchemyUserRepository,
)
from escalation_desk.tickets.infrastructure.external import (
    INotifier,
    NotificationSubscriber,
    TicketNotification,
    WebhookNotifier,
)

__all__ = [
    # Models
    "AssignmentLogModel",
    "TicketAssigneeModel",
    "TicketHistoryModel",
    "TicketModel",
    "TicketTimelineModel",
    "UserModel",
    # Repositories
    "SQLAlchemyAssigneeRepository",
    "SQLAlchemyEventStore",
    "SQLAlchemyTicketRepository",
    "SQLAlchemyUserRepository",
    # External
    "INotifier",
    "NotificationSubscriber",
    "TicketNotification",
    "WebhookNotifier",
]
