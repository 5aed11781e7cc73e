"""Unit-of-work tests: commit, rollback and when bus subscribers hear about it."""
from datetime import datetime, timezone

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from escalation_desk.config import IssueCategory, TicketStatus
from escalation_desk.core import DependencyUnavailableException
from escalation_desk.infrastructure.database import deferred_event_bus, transaction
from escalation_desk.shared.events import TicketCreated, TicketStatusChanged
from escalation_desk.tickets.application import TicketCreateRequest, TicketService
from escalation_desk.tickets.infrastructure import (
    SQLAlchemyEventStore,
    SQLAlchemyTicketRepository,
    TicketModel,
)

T0 = datetime(2025, 5, 1, 9, 0, tzinfo=timezone.utc)
REQUEST = TicketCreateRequest(category=IssueCategory.OTHER, description="Centre gate locked at 8am")


class _LostConnectionSession(AsyncSession):
    async def commit(self):
        raise OperationalError("COMMIT", {}, ConnectionError("server closed the connection"))


def service_for(session, bus) -> TicketService:
    return TicketService(
        SQLAlchemyTicketRepository(session),
        SQLAlchemyEventStore(session),
        event_bus=deferred_event_bus(session, bus),
    )


async def count_tickets(session_factory) -> int:
    async with session_factory() as session:
        return (await session.execute(select(func.count()).select_from(TicketModel))).scalar_one()


class TestTransaction:

    async def test_events_published_only_after_commit(self, session_factory, bus, resolver):
        async with session_factory() as session:
            async with transaction(session):
                service = service_for(session, bus)
                ticket = await service.create_ticket(REQUEST, now=T0)
                await service.transition_status(ticket.id, TicketStatus.IN_PROGRESS, resolver, now=T0)
                assert bus.published == []

        assert [type(e) for e in bus.published] == [TicketCreated, TicketStatusChanged]
        assert bus.published[0].ticket_number == ticket.ticket_number
        assert await count_tickets(session_factory) == 1

    async def test_rollback_drops_queued_events(self, session_factory, bus):
        with pytest.raises(RuntimeError):
            async with session_factory() as session:
                async with transaction(session):
                    await service_for(session, bus).create_ticket(REQUEST, now=T0)
                    raise RuntimeError("request failed after the write")

        assert bus.published == []
        assert await count_tickets(session_factory) == 0

    async def test_failed_commit_is_unavailable_and_silent(self, engine, session_factory, bus):
        with pytest.raises(DependencyUnavailableException):
            async with _LostConnectionSession(bind=engine, expire_on_commit=False) as session:
                async with transaction(session):
                    await service_for(session, bus).create_ticket(REQUEST, now=T0)

        assert bus.published == []
        assert await count_tickets(session_factory) == 0

    async def test_one_queue_per_session(self, session_factory, bus):
        async with session_factory() as session:
            assert deferred_event_bus(session, bus) is deferred_event_bus(session, bus)
            assert deferred_event_bus(session, None) is None
