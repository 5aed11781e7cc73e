"""Tests for SLA arithmetic, the SLA policy model and exam dates."""
from datetime import date, datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from escalation_desk.sla.application import SLAService, SweepResult
from escalation_desk.sla.domain import IssueDate, SLACalculator, SLAPolicy
from escalation_desk.tickets.domain import Ticket

T0 = datetime(2025, 5, 1, 9, 0, tzinfo=timezone.utc)


class TestTargets:

    @pytest.mark.parametrize("severity,hours", [
        ("sev1", 4),
        ("sev2", 8),
        ("sev3", 24),
        ("sev9", 24),
        (None, 24),
    ])
    def test_default_targets(self, severity, hours):
        assert SLACalculator.target_hours(severity) == hours

    def test_policy_fills_missing_severities(self):
        policy = SLAPolicy(severity_targets={"sev1": 2})
        assert policy.target_hours("sev1") == 2
        assert policy.target_hours("sev2") == 8

    def test_policy_rejects_non_positive_targets(self):
        with pytest.raises(ValidationError):
            SLAPolicy(severity_targets={"sev1": 0})


class TestBreach:

    def test_exactly_on_target_is_not_breached(self):
        assert not SLACalculator.is_breached(T0, 4, T0 + timedelta(hours=4))

    def test_past_target_is_breached(self):
        assert SLACalculator.is_breached(T0, 4, T0 + timedelta(hours=4, minutes=1))

    def test_resolved_ticket_judged_on_resolution_time(self):
        resolved_at = T0 + timedelta(hours=3)
        assert not SLACalculator.is_breached(T0, 4, T0 + timedelta(days=10), resolved_at)

    def test_resolution_time_one_decimal(self):
        assert SLACalculator.resolution_time_hours(T0, T0 + timedelta(hours=5)) == 5.0
        assert SLACalculator.resolution_time_hours(T0, T0 + timedelta(minutes=100)) == 1.7

    def test_whole_days_are_floored(self):
        assert SLACalculator.whole_days_between(T0, T0 + timedelta(days=6, hours=23)) == 6
        assert SLACalculator.whole_days_between(T0, T0 + timedelta(days=7, hours=1)) == 7


class TestCompliance:

    def test_empty_resolved_set_is_fully_compliant(self):
        assert SLACalculator.compliance_percentage(0, 0) == 100.0

    def test_compliance_percentage(self):
        assert SLACalculator.compliance_percentage(3, 1) == 66.67

    def test_average_ignores_missing(self):
        assert SLACalculator.average_resolution_hours([2.0, None, 3.0]) == 2.5
        assert SLACalculator.average_resolution_hours([]) == 0.0

    def test_summary_counts_by_severity(self):
        now = T0 + timedelta(hours=10)
        tickets = [
            Ticket(
                id="a", ticket_number="A", category="other", severity="sev1", description="x",
                status="resolved", submitted_at=T0, last_activity_at=T0,
                resolved_at=T0 + timedelta(hours=5), resolution_time_hours=5.0, sla_target_hours=4,
            ),
            Ticket(
                id="b", ticket_number="B", category="other", severity="sev2", description="x",
                status="resolved", submitted_at=T0, last_activity_at=T0,
                resolved_at=T0 + timedelta(hours=1), resolution_time_hours=1.0, sla_target_hours=8,
            ),
            Ticket(
                id="c", ticket_number="C", category="other", severity="sev3", description="x",
                status="in_progress", submitted_at=T0, last_activity_at=T0, sla_target_hours=24,
            ),
        ]

        summary = SLAService.summarize(tickets, now)

        assert summary.total == 3
        assert summary.resolved == 2
        assert summary.breached == 1
        assert summary.breached_resolved == 1
        assert summary.compliance_percentage == 50.0
        assert summary.average_resolution_hours == 3.0
        assert summary.by_severity["sev1"].breached == 1
        assert summary.by_severity["sev3"].resolved == 0


class TestIssueDate:

    def test_single(self):
        issue = IssueDate.from_payload({"type": "single", "dates": ["2025-05-10"]})
        assert issue.last_exam_date == date(2025, 5, 10)

    def test_multiple_uses_latest(self):
        issue = IssueDate.from_payload({
            "type": "multiple",
            "dates": [{"date": "2025-05-10", "description": "Paper 1"}, "2025-05-14", "2025-05-12"],
        })
        assert issue.last_exam_date == date(2025, 5, 14)

    def test_range_uses_end_then_start(self):
        assert IssueDate.from_payload(
            {"type": "range", "start_date": "2025-05-10", "end_date": "2025-05-12"}
        ).last_exam_date == date(2025, 5, 12)
        assert IssueDate.from_payload(
            {"type": "range", "start_date": "2025-05-10"}
        ).last_exam_date == date(2025, 5, 10)

    def test_ongoing_never_passes(self):
        issue = IssueDate.from_payload({"type": "ongoing"})
        assert issue.last_exam_date is None
        assert not issue.has_passed(date(2030, 1, 1))

    def test_has_passed_is_strict(self):
        issue = IssueDate.from_payload({"type": "single", "dates": ["2025-05-10"]})
        assert not issue.has_passed(date(2025, 5, 10))
        assert issue.has_passed(date(2025, 5, 11))

    def test_missing_payload(self):
        assert IssueDate.from_payload(None) is None

    def test_unreadable_date_raises_by_default(self):
        with pytest.raises(ValueError, match="Unreadable exam date '15/04/2025'"):
            IssueDate.from_payload({"type": "single", "dates": ["15/04/2025"]})

    def test_lenient_parsing_skips_unreadable_dates(self):
        issue = IssueDate.from_payload(
            {"type": "multiple", "dates": ["15/04/2025", "2025-04-16"]}, strict=False
        )
        assert issue.last_exam_date == date(2025, 4, 16)


class TestSweepStatus:

    def test_status_for(self):
        assert SweepResult.status_for(3, []) == "success"
        assert SweepResult.status_for(0, []) == "success"
        assert SweepResult.status_for(2, ["Ticket X: boom"]) == "partial"
        assert SweepResult.status_for(0, ["Ticket X: boom"]) == "error"
