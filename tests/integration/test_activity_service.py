"""Integration tests for the reconciled activity feed."""
from datetime import datetime, timedelta, timezone
from uuid import UUID, uuid4

import pytest

from escalation_desk.config import AssigneeRole, TicketStatus
from escalation_desk.core import ResourceNotFoundException, ValidationException
from escalation_desk.tickets.infrastructure import TicketTimelineModel

T0 = datetime(2025, 5, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def add_timeline(session):
    """Insert a legacy timeline row."""

    async def _add(ticket_id, event_type, at, old=None, new=None, **actor):
        session.add(TicketTimelineModel(
            id=uuid4(),
            ticket_id=UUID(ticket_id),
            event_type=event_type,
            old_value=old,
            new_value=new,
            created_at=at,
            **actor,
        ))
        await session.flush()

    return _add


class TestTicketActivity:

    async def test_merges_streams_without_duplicates(self, make_ticket, move_to, add_timeline, activity_service):
        ticket = await make_ticket()
        await move_to(ticket, TicketStatus.IN_PROGRESS)
        # the legacy stream recorded the same status change a second later
        await add_timeline(ticket.id, "status_change", T0 + timedelta(minutes=5, seconds=1), "open", "in_progress")
        await add_timeline(ticket.id, "assignment", T0 + timedelta(hours=1), None, "res-1")

        entries = await activity_service.get_ticket_activity(ticket.id)

        assert [(e.action_type, e.source) for e in entries] == [
            ("assigned", "timeline"),
            ("status_changed", "history"),
            ("created", "history"),
        ]
        legacy = entries[0]
        assert legacy.performed_by == "system"
        assert legacy.performed_by_name == "System"
        assert all(e.ticket_number == ticket.ticket_number for e in entries)

    async def test_unknown_ticket(self, activity_service):
        with pytest.raises(ResourceNotFoundException):
            await activity_service.get_ticket_activity(str(uuid4()))


class TestActivityFeed:

    async def test_bulk_assignment_is_grouped(self, make_ticket, assignment_service, admin, activity_service):
        tickets = [await make_ticket() for _ in range(3)]
        await assignment_service.assign_role(
            [t.id for t in tickets], "res-1", AssigneeRole.RESOLVER, admin, now=T0 + timedelta(minutes=10)
        )

        feed = await activity_service.get_activity_feed()

        assert [(item.action_type, item.is_bulk) for item in feed] == [("assigned", True), ("created", True)]
        assigned = feed[0]
        assert assigned.count == 3
        assert sorted(assigned.ticket_ids) == sorted(t.id for t in tickets)
        assert sorted(assigned.ticket_numbers) == sorted(t.ticket_number for t in tickets)

    async def test_ungrouped_listing_keeps_every_entry(self, make_ticket, assignment_service, admin, activity_service):
        tickets = [await make_ticket() for _ in range(2)]
        await assignment_service.assign_role([t.id for t in tickets], "res-1", AssigneeRole.RESOLVER, admin)

        entries = await activity_service.get_all_activities()

        assert len(entries) == 4
        assert entries[0].action_type == "assigned"

    async def test_feed_is_deterministic(self, make_ticket, activity_service):
        for hour in range(3):
            await make_ticket(now=T0 + timedelta(minutes=hour))

        first = await activity_service.get_activity_feed()
        second = await activity_service.get_activity_feed()

        assert [item.id for item in first] == [item.id for item in second]

    async def test_negative_limit_rejected(self, activity_service):
        with pytest.raises(ValidationException):
            await activity_service.get_activity_feed(limit=-1)


class TestBulkDetails:

    async def test_returns_events_for_requested_tickets_only(
        self, make_ticket, move_to, activity_service
    ):
        wanted = await make_ticket()
        other = await make_ticket()
        await move_to(wanted, TicketStatus.IN_PROGRESS)
        await move_to(other, TicketStatus.IN_PROGRESS)

        entries = await activity_service.get_bulk_action_details([wanted.id, wanted.id])

        assert {e.ticket_id for e in entries} == {wanted.id}
        assert len(entries) == 2

    async def test_requires_ids(self, activity_service):
        with pytest.raises(ValidationException):
            await activity_service.get_bulk_action_details([])
