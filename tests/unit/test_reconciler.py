"""Tests for activity stream deduplication, bulk grouping and descriptions."""
from datetime import datetime, timedelta, timezone

import pytest

from escalation_desk.activity.domain import (
    TIMELINE_STREAM,
    ActivityEntry,
    ActivityReconciler,
    BulkActivityGroup,
    describe,
    describe_activity,
    format_role,
)

T0 = datetime(2025, 5, 1, 9, 0, tzinfo=timezone.utc)


def entry(
    id,
    ticket_id="t-1",
    action="assigned",
    old=None,
    new="res-1",
    at=T0,
    actor="adm-1",
    role="ticket_admin",
    name="Kiran Rao",
    source="history",
    number=None,
) -> ActivityEntry:
    return ActivityEntry(
        id=id,
        ticket_id=ticket_id,
        action_type=action,
        old_value=old,
        new_value=new,
        performed_by=actor,
        performed_by_name=name,
        performed_by_role=role,
        performed_at=at,
        source=source,
        ticket_number=number,
    )


@pytest.fixture
def reconciler() -> ActivityReconciler:
    return ActivityReconciler(dedup_seconds=2.0, bulk_window_seconds=300.0)


class TestMergeStreams:

    def test_same_change_in_both_streams_kept_once(self, reconciler):
        history = [entry("h1", action="status_changed", old="open", new="in_progress")]
        timeline = [entry(
            "tl1", action="status_change", old="open", new="in_progress",
            at=T0 + timedelta(seconds=1), source=TIMELINE_STREAM,
        )]

        merged = reconciler.merge_streams(history, timeline)

        assert [e.id for e in merged] == ["h1"]

    def test_two_seconds_apart_is_not_a_duplicate(self, reconciler):
        history = [entry("h1")]
        timeline = [entry("tl1", at=T0 + timedelta(seconds=2), source=TIMELINE_STREAM)]

        merged = reconciler.merge_streams(history, timeline)

        assert {e.id for e in merged} == {"h1", "tl1"}

    def test_different_values_are_not_duplicates(self, reconciler):
        history = [entry("h1", new="res-1")]
        timeline = [entry("tl1", new="res-2", source=TIMELINE_STREAM)]

        assert len(reconciler.merge_streams(history, timeline)) == 2

    def test_legacy_aliases_are_normalised(self):
        assert entry("x", action="assignment").action_type == "assigned"
        assert entry("y", action="status_change").action_type == "status_changed"

    def test_missing_actor_becomes_system(self):
        legacy = entry("tl1", actor=None, role=None, name=None, source=TIMELINE_STREAM)
        assert legacy.performed_by == "system"
        assert legacy.performed_by_name == "System"
        assert legacy.performed_by_role == "system"

    def test_output_is_newest_first(self, reconciler):
        history = [entry("h1", at=T0), entry("h2", ticket_id="t-2", at=T0 + timedelta(hours=1))]
        timeline = [entry("tl1", ticket_id="t-3", at=T0 + timedelta(minutes=30), source=TIMELINE_STREAM)]

        merged = reconciler.merge_streams(history, timeline)

        assert [e.id for e in merged] == ["h2", "tl1", "h1"]


class TestGroupBulk:

    def test_five_assignments_become_one_group(self, reconciler):
        entries = [
            entry(f"e{i}", ticket_id=f"t-{i}", number=f"AWGN-{i}", at=T0 - timedelta(seconds=45 * i))
            for i in range(5)
        ]

        feed = reconciler.group_bulk(entries)

        assert len(feed) == 1
        group = feed[0]
        assert isinstance(group, BulkActivityGroup)
        assert group.count == 5
        assert group.ticket_ids == ["t-0", "t-1", "t-2", "t-3", "t-4"]
        assert group.id == "bulk_e0"
        assert group.performed_at == T0

    def test_grouped_entries_do_not_appear_alone(self, reconciler):
        entries = [entry(f"e{i}", ticket_id=f"t-{i}", at=T0 - timedelta(minutes=i)) for i in range(3)]
        entries.append(entry("other", action="reopened", new="open", at=T0 - timedelta(minutes=1)))

        feed = reconciler.group_bulk(entries)

        singles = [item.id for item in feed if not item.is_bulk]
        assert singles == ["other"]
        assert sum(item.count for item in feed if item.is_bulk) == 3

    def test_window_edge_not_grouped(self, reconciler):
        entries = [
            entry("e1", ticket_id="t-1", at=T0),
            entry("e2", ticket_id="t-2", at=T0 - timedelta(minutes=5, seconds=1)),
        ]

        feed = reconciler.group_bulk(entries)

        assert [item.is_bulk for item in feed] == [False, False]

    def test_window_is_measured_from_anchor(self, reconciler):
        # 4 minutes apart each: the third is 8 minutes from the anchor
        entries = [entry(f"e{i}", ticket_id=f"t-{i}", at=T0 - timedelta(minutes=4 * i)) for i in range(3)]

        feed = reconciler.group_bulk(entries)

        assert feed[0].is_bulk and feed[0].ticket_ids == ["t-0", "t-1"]
        assert not feed[1].is_bulk and feed[1].id == "e2"

    def test_different_actor_not_grouped(self, reconciler):
        entries = [
            entry("e1", ticket_id="t-1", actor="adm-1"),
            entry("e2", ticket_id="t-2", actor="adm-2", at=T0 - timedelta(seconds=10)),
        ]
        assert all(not item.is_bulk for item in reconciler.group_bulk(entries))

    def test_ticket_numbers_skip_unknown(self, reconciler):
        entries = [
            entry("e1", ticket_id="t-1", number="AWGN-1"),
            entry("e2", ticket_id="t-2", number=None, at=T0 - timedelta(seconds=5)),
        ]
        group = reconciler.group_bulk(entries)[0]
        assert group.ticket_numbers == ["AWGN-1"]
        assert group.ticket_ids == ["t-1", "t-2"]

    def test_identical_input_gives_identical_output(self, reconciler):
        entries = [entry(f"e{i}", ticket_id=f"t-{i}", at=T0 - timedelta(seconds=i)) for i in range(4)]
        first = reconciler.reconcile(entries, [])
        second = reconciler.reconcile(entries, [])
        assert [item.id for item in first] == [item.id for item in second]


class TestDescriptions:

    def test_status_change_uses_labels(self):
        text = describe_activity(
            "status_changed", "open", "in_progress", "Ravi Kumar", "resolver", ticket_number="AWGN-1"
        )
        assert text == 'Ticket AWGN-1 status changed from "OPEN" to "PENDING ON CX" by Ravi Kumar (Resolver)'

    def test_bulk_assignment(self):
        text = describe_activity("assigned", None, "res-1", "Kiran Rao", "ticket_admin", is_bulk=True, count=5)
        assert text == "5 tickets were assigned to res-1 by Kiran Rao (Ticket Admin)"

    def test_unassign(self):
        text = describe_activity("assigned", "res-1", None, "Kiran Rao", ticket_number="AWGN-1")
        assert text == "Ticket AWGN-1 was unassigned from res-1 by Kiran Rao"

    def test_unknown_action_falls_back(self):
        text = describe_activity("comment_added", None, None, "Ravi Kumar", ticket_number="AWGN-1")
        assert text == "Ticket AWGN-1 comment added by Ravi Kumar"

    def test_describe_group(self, reconciler):
        entries = [entry(f"e{i}", ticket_id=f"t-{i}", at=T0 - timedelta(seconds=i)) for i in range(2)]
        group = reconciler.group_bulk(entries)[0]
        assert describe(group).startswith("2 tickets were assigned to res-1")

    def test_format_role(self):
        assert format_role("super_admin") == "Super Admin"
        assert format_role(None) == ""
