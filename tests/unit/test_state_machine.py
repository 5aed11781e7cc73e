"""Tests for the ticket status state machine and Ticket entity rules."""
from datetime import datetime, timedelta, timezone

import pytest

from escalation_desk.config import ActorRole, TicketStatus
from escalation_desk.core import InvalidTransitionException
from escalation_desk.tickets.domain import (
    Actor,
    Ticket,
    allowed_targets,
    status_label,
    successors,
    validate_reopen,
    validate_transition,
)

S = TicketStatus
T0 = datetime(2025, 5, 1, 9, 0, tzinfo=timezone.utc)
RESOLVER = Actor("res-1", "Ravi Kumar", ActorRole.RESOLVER)
APPROVER = Actor("app-1", "Meera Shah", ActorRole.APPROVER)


def make_ticket(status=S.OPEN, severity="sev3", target=24, **fields) -> Ticket:
    return Ticket(
        id="t-1",
        ticket_number="AWGN-20250501-0001",
        category="payment_delay",
        severity=severity,
        description="Fee not paid",
        status=status,
        submitted_at=T0,
        last_activity_at=T0,
        sla_target_hours=target,
        **fields,
    )


class TestTransitionTable:

    def test_resolved_is_terminal(self):
        assert successors(S.RESOLVED) == []

    def test_open_only_goes_to_in_progress(self):
        assert successors(S.OPEN) == [S.IN_PROGRESS]

    @pytest.mark.parametrize("role", ["resolver", "approver", "ticket_admin", "super_admin"])
    def test_working_roles_can_start_work(self, role):
        transition = validate_transition(S.OPEN, S.IN_PROGRESS, role)
        assert transition.target == S.IN_PROGRESS

    def test_invigilator_cannot_move_tickets(self):
        with pytest.raises(InvalidTransitionException) as exc:
            validate_transition(S.OPEN, S.IN_PROGRESS, ActorRole.INVIGILATOR)
        assert exc.value.details["actor_role"] == "invigilator"

    def test_unknown_role_is_treated_as_invigilator(self):
        with pytest.raises(InvalidTransitionException):
            validate_transition(S.OPEN, S.IN_PROGRESS, "janitor")

    def test_resolved_to_approved_rejected(self):
        with pytest.raises(InvalidTransitionException) as exc:
            validate_transition(S.RESOLVED, S.APPROVED, ActorRole.SUPER_ADMIN)
        assert "closed" in exc.value.message

    def test_skipping_steps_rejected(self):
        with pytest.raises(InvalidTransitionException):
            validate_transition(S.OPEN, S.RESOLVED, ActorRole.RESOLVER)

    def test_only_approver_approves(self):
        validate_transition(S.SEND_FOR_APPROVAL, S.APPROVED, ActorRole.APPROVER)
        for role in (ActorRole.RESOLVER, ActorRole.TICKET_ADMIN, ActorRole.SUPER_ADMIN):
            with pytest.raises(InvalidTransitionException):
                validate_transition(S.SEND_FOR_APPROVAL, S.APPROVED, role)

    def test_approved_resolved_by_resolver_or_approver_only(self):
        validate_transition(S.APPROVED, S.RESOLVED, ActorRole.RESOLVER)
        validate_transition(S.APPROVED, S.RESOLVED, ActorRole.APPROVER)
        with pytest.raises(InvalidTransitionException):
            validate_transition(S.APPROVED, S.RESOLVED, ActorRole.TICKET_ADMIN)

    def test_user_dependency_resolved_by_system_only(self):
        validate_transition(S.USER_DEPENDENCY, S.RESOLVED, ActorRole.SYSTEM)
        with pytest.raises(InvalidTransitionException):
            validate_transition(S.USER_DEPENDENCY, S.RESOLVED, ActorRole.SUPER_ADMIN)

    def test_system_cannot_take_working_edges(self):
        with pytest.raises(InvalidTransitionException):
            validate_transition(S.OPEN, S.IN_PROGRESS, ActorRole.SYSTEM)

    @pytest.mark.parametrize("target,cleared", [
        (S.IN_PROGRESS, ("ops", "user")),
        (S.SEND_FOR_APPROVAL, ("ops", "user")),
        (S.OPS_INPUT_REQUIRED, ("user",)),
        (S.USER_DEPENDENCY, ("ops",)),
    ])
    def test_ops_user_dependency_exits_record_cleared(self, target, cleared):
        transition = validate_transition(S.OPS_USER_DEPENDENCY, target, ActorRole.RESOLVER)
        assert transition.cleared_dependencies == cleared

    def test_allowed_targets_filters_by_role(self):
        assert allowed_targets(S.SEND_FOR_APPROVAL, ActorRole.RESOLVER) == [S.IN_PROGRESS]
        assert set(allowed_targets(S.SEND_FOR_APPROVAL, ActorRole.APPROVER)) == {S.APPROVED, S.IN_PROGRESS}


class TestReopenRules:

    def test_cannot_reopen_open_or_resolved(self):
        for status in (S.OPEN, S.RESOLVED):
            with pytest.raises(InvalidTransitionException):
                validate_reopen(status, ActorRole.SUPER_ADMIN)

    def test_invigilator_cannot_reopen(self):
        with pytest.raises(InvalidTransitionException):
            validate_reopen(S.IN_PROGRESS, ActorRole.INVIGILATOR)

    def test_reopen_bumps_count_and_clears_timer(self):
        ticket = make_ticket(status=S.USER_DEPENDENCY, user_dependency_started_at=T0)
        previous = ticket.reopen(RESOLVER, T0 + timedelta(hours=1))

        assert previous == S.USER_DEPENDENCY
        assert ticket.status == S.OPEN
        assert ticket.reopen_count == 1
        assert ticket.reopened_by == "res-1"
        assert ticket.user_dependency_started_at is None


class TestTicketEntity:

    def test_resolved_requires_resolved_at(self):
        with pytest.raises(ValueError):
            make_ticket(status=S.RESOLVED)
        with pytest.raises(ValueError):
            make_ticket(status=S.IN_PROGRESS, resolved_at=T0)

    def test_resolution_sets_time_and_breach(self):
        ticket = make_ticket(status=S.APPROVED, severity="sev1", target=4)
        ticket.change_status(S.RESOLVED, APPROVER, T0 + timedelta(hours=5))

        assert ticket.resolved_at == T0 + timedelta(hours=5)
        assert ticket.resolution_time_hours == 5.0
        assert ticket.is_sla_breached is True

    def test_entering_dependency_starts_timer(self):
        ticket = make_ticket(status=S.IN_PROGRESS)
        at = T0 + timedelta(hours=2)
        ticket.change_status(S.USER_DEPENDENCY, RESOLVER, at)
        assert ticket.user_dependency_started_at == at

        ticket.change_status(S.IN_PROGRESS, RESOLVER, at + timedelta(hours=1))
        assert ticket.user_dependency_started_at is None

    def test_refresh_sla_reports_only_new_breaches(self):
        ticket = make_ticket(status=S.IN_PROGRESS, severity="sev1", target=4)
        assert ticket.refresh_sla(T0 + timedelta(hours=4)) is False
        assert ticket.refresh_sla(T0 + timedelta(hours=4, seconds=1)) is True
        assert ticket.refresh_sla(T0 + timedelta(hours=6)) is False
        assert ticket.is_sla_breached is True

    def test_failed_transition_leaves_ticket_untouched(self):
        ticket = make_ticket(status=S.RESOLVED, resolved_at=T0 + timedelta(hours=1))
        with pytest.raises(InvalidTransitionException):
            ticket.change_status(S.APPROVED, APPROVER, T0 + timedelta(hours=2))
        assert ticket.status == S.RESOLVED
        assert ticket.resolved_at == T0 + timedelta(hours=1)


class TestStatusLabels:

    @pytest.mark.parametrize("status,label", [
        ("open", "OPEN"),
        ("in_progress", "PENDING ON CX"),
        ("ops_user_dependency", "OPS + USER DEPENDENCY"),
        ("resolved", "CLOSED"),
        (S.SEND_FOR_APPROVAL, "SEND FOR APPROVAL"),
    ])
    def test_known_labels(self, status, label):
        assert status_label(status) == label

    def test_unknown_status_is_upper_cased(self):
        assert status_label("on_hold") == "ON HOLD"
        assert status_label(None) == ""
