"""Integration tests for resolver/approver assignment."""
import pytest
from sqlalchemy import func, select

from escalation_desk.config import AssigneeRole
from escalation_desk.core import ResourceNotFoundException
from escalation_desk.shared.events import TicketAssigned, TicketUnassigned
from escalation_desk.tickets.infrastructure import AssignmentLogModel, TicketAssigneeModel

MISSING_ID = "00000000-0000-0000-0000-000000000000"


async def count_rows(session, model) -> int:
    return (await session.execute(select(func.count()).select_from(model))).scalar_one()


class TestAssignRole:

    async def test_bulk_assign(self, make_ticket, assignment_service, admin, history, bus):
        first = await make_ticket()
        second = await make_ticket()

        result = await assignment_service.assign_role(
            [first.id, second.id], "res-1", AssigneeRole.RESOLVER, admin
        )

        assert result.success is True
        assert result.processed_count == 2
        assert result.errors == []
        assert all(r.created for r in result.results)

        event = (await history(first.id, "assigned"))[0]
        assert event.new_value == "res-1"
        assert event.details == {"role": "resolver"}
        assert len([e for e in bus.published if isinstance(e, TicketAssigned)]) == 2

    async def test_assigning_twice_keeps_one_binding(self, session, make_ticket, assignment_service, admin, history):
        ticket = await make_ticket()

        await assignment_service.assign_role([ticket.id], "res-1", AssigneeRole.RESOLVER, admin)
        again = await assignment_service.assign_role([ticket.id], "res-1", AssigneeRole.RESOLVER, admin)

        assert again.success is True
        assert again.results[0].created is False
        assert await count_rows(session, TicketAssigneeModel) == 1
        assert len(await history(ticket.id, "assigned")) == 2

    async def test_multiple_resolvers_per_ticket(self, make_ticket, assignment_service, ticket_service, admin):
        ticket = await make_ticket()

        await assignment_service.assign_role([ticket.id], "res-1", AssigneeRole.RESOLVER, admin)
        await assignment_service.assign_role([ticket.id], "res-2", AssigneeRole.RESOLVER, admin)
        await assignment_service.assign_role([ticket.id], "app-1", AssigneeRole.APPROVER, admin)

        stored = await ticket_service.get_ticket(ticket.id)
        assert sorted(stored.resolvers) == ["res-1", "res-2"]
        assert stored.approvers == ["app-1"]

    async def test_partial_failure_keeps_good_tickets(self, session, make_ticket, assignment_service, admin):
        ticket = await make_ticket()

        result = await assignment_service.assign_role(
            [ticket.id, MISSING_ID], "res-1", AssigneeRole.RESOLVER, admin
        )

        assert result.success is False
        assert result.processed_count == 1
        assert result.errors == [f"Ticket {MISSING_ID}: Ticket with id '{MISSING_ID}' not found"]
        assert [r.success for r in result.results] == [True, False]
        assert await count_rows(session, TicketAssigneeModel) == 1

    async def test_duplicate_ids_processed_once(self, make_ticket, assignment_service, admin, history):
        ticket = await make_ticket()

        result = await assignment_service.assign_role(
            [ticket.id, ticket.id], "res-1", AssigneeRole.RESOLVER, admin
        )

        assert result.processed_count == 1
        assert len(await history(ticket.id, "assigned")) == 1

    @pytest.mark.parametrize("user_id", ["nobody", "gone-1"])
    async def test_unknown_or_inactive_user(self, session, make_ticket, assignment_service, admin, user_id):
        ticket = await make_ticket()

        with pytest.raises(ResourceNotFoundException):
            await assignment_service.assign_role([ticket.id], user_id, AssigneeRole.RESOLVER, admin)

        assert await count_rows(session, TicketAssigneeModel) == 0


class TestUnassign:

    async def test_unassign_writes_event_and_log(self, session, make_ticket, assignment_service, admin, history, bus):
        ticket = await make_ticket()
        await assignment_service.assign_role([ticket.id], "res-1", AssigneeRole.RESOLVER, admin)

        await assignment_service.unassign(ticket.id, "res-1", AssigneeRole.RESOLVER, admin)

        assert await count_rows(session, TicketAssigneeModel) == 0
        assert await count_rows(session, AssignmentLogModel) == 2
        event = (await history(ticket.id, "assigned"))[-1]
        assert (event.old_value, event.new_value) == ("res-1", None)
        assert event.details["operation"] == "unassign"
        assert isinstance(bus.published[-1], TicketUnassigned)

    async def test_unassign_missing_binding(self, make_ticket, assignment_service, admin):
        ticket = await make_ticket()
        with pytest.raises(ResourceNotFoundException):
            await assignment_service.unassign(ticket.id, "res-1", AssigneeRole.RESOLVER, admin)

    async def test_list_assignees_includes_names(self, make_ticket, assignment_service, admin):
        ticket = await make_ticket()
        await assignment_service.assign_role([ticket.id], "res-2", AssigneeRole.RESOLVER, admin)

        assignees = await assignment_service.list_assignees(ticket.id)

        assert [(a.user_id, a.name) for a in assignees] == [("res-2", "Anita Desai")]
