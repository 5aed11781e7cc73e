"""
Domain Event Bus
================

Typed publish/subscribe channel between the ticket services and
downstream readers (notifications, live dashboards).

Events are immutable dataclasses. Handlers are registered per event type
and may be plain functions or coroutines. A failing handler is logged and
never propagates to the publisher or to other handlers.
"""

import inspect
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type, Union

from escalation_desk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class DomainEvent:
    """Base class for all domain events."""
    ticket_id: str
    ticket_number: str
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def name(self) -> str:
        return type(self).__name__


@dataclass(frozen=True)
class TicketCreated(DomainEvent):
    category: str = ""
    description: str = ""
    severity: str = ""
    city: str = ""


@dataclass(frozen=True)
class TicketStatusChanged(DomainEvent):
    old_status: str = ""
    new_status: str = ""
    category: str = ""
    description: str = ""
    changed_by: Optional[str] = None


@dataclass(frozen=True)
class TicketReopened(DomainEvent):
    old_status: str = ""
    reopen_count: int = 0
    reopened_by: Optional[str] = None


@dataclass(frozen=True)
class TicketAssigned(DomainEvent):
    user_id: str = ""
    role: str = ""
    assigned_by: Optional[str] = None


@dataclass(frozen=True)
class TicketUnassigned(DomainEvent):
    user_id: str = ""
    role: str = ""
    unassigned_by: Optional[str] = None


@dataclass(frozen=True)
class TicketAutoResolved(TicketStatusChanged):
    """A sweep force-resolved a ticket; delivered to status-change subscribers too."""
    sweep_type: str = ""
    triggered_by: str = ""


Handler = Callable[[Any], Union[None, Awaitable[None]]]


class EventBus:
    """
    In-process event bus.

    One instance per application; services receive it by injection.
    """

    def __init__(self):
        self._handlers: Dict[Type[DomainEvent], List[Handler]] = defaultdict(list)

    def subscribe(self, event_type: Type[DomainEvent], handler: Handler) -> None:
        """Register a handler for an event type (and its subclasses)."""
        self._handlers[event_type].append(handler)

    def unsubscribe(self, event_type: Type[DomainEvent], handler: Handler) -> None:
        if handler in self._handlers.get(event_type, []):
            self._handlers[event_type].remove(handler)

    def handlers_for(self, event: DomainEvent) -> List[Handler]:
        matched: List[Handler] = []
        for event_type, handlers in self._handlers.items():
            if isinstance(event, event_type):
                matched.extend(handlers)
        return matched

    async def publish(self, event: DomainEvent) -> int:
        """
        Deliver an event to every matching handler.

        Returns:
            Number of handlers that completed without raising
        """
        delivered = 0
        for handler in self.handlers_for(event):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
                delivered += 1
            except Exception as e:
                logger.error(
                    "Event handler failed",
                    extra={
                        "event": event.name,
                        "ticket_id": event.ticket_id,
                        "handler": getattr(handler, "__qualname__", repr(handler)),
                        "error": str(e),
                    }
                )
        return delivered


class PendingEvents:
    """
    Events held back until the surrounding transaction commits.

    Services publish to it exactly as they would to the bus. Whoever owns
    the transaction calls `flush()` after a successful commit, or
    `discard()` after a rollback so subscribers never hear about writes
    that did not persist.
    """

    def __init__(self, bus: EventBus):
        self._bus = bus
        self._events: List[DomainEvent] = []

    def __len__(self) -> int:
        return len(self._events)

    async def publish(self, event: DomainEvent) -> int:
        self._events.append(event)
        return 0

    async def flush(self) -> int:
        """Deliver queued events in publish order; returns handlers reached."""
        events, self._events = self._events, []
        delivered = 0
        for event in events:
            delivered += await self._bus.publish(event)
        return delivered

    def discard(self) -> None:
        if self._events:
            logger.info("Dropped events from rolled-back transaction", extra={"count": len(self._events)})
        self._events = []
