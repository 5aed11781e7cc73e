"""
Activity Reconciler
===================

Pure read-side logic that turns the two event streams into one feed:

1. Merge: every history entry is kept; a timeline entry is dropped when a
   history entry records the same change on the same ticket within the
   dedup window.
2. Group: identical actions by the same actor close together in time are
   folded into a BulkActivityGroup.

Output is deterministic for identical input.
"""

from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Tuple

from escalation_desk.activity.domain.entities import ActivityEntry, BulkActivityGroup, FeedItem

DEFAULT_DEDUP_SECONDS = 2.0
DEFAULT_BULK_WINDOW_SECONDS = 300.0

_DedupKey = Tuple[str, str, Optional[str], Optional[str]]


def _dedup_key(entry: ActivityEntry) -> _DedupKey:
    return entry.ticket_id, entry.action_type, entry.old_value, entry.new_value


def newest_first(items: Iterable[FeedItem]) -> List[FeedItem]:
    """Sort by performed_at descending; ties keep their input order."""
    return sorted(items, key=lambda item: item.performed_at, reverse=True)


class ActivityReconciler:
    """Deduplicates and groups activity entries."""

    def __init__(
        self,
        dedup_seconds: float = DEFAULT_DEDUP_SECONDS,
        bulk_window_seconds: float = DEFAULT_BULK_WINDOW_SECONDS
    ):
        self.dedup_seconds = dedup_seconds
        self.bulk_window_seconds = bulk_window_seconds

    def is_duplicate(self, entry: ActivityEntry, other: ActivityEntry) -> bool:
        if _dedup_key(entry) != _dedup_key(other):
            return False
        delta = abs((entry.performed_at - other.performed_at).total_seconds())
        return delta < self.dedup_seconds

    def merge_streams(
        self,
        history: Iterable[ActivityEntry],
        timeline: Iterable[ActivityEntry]
    ) -> List[ActivityEntry]:
        """
        Combine both streams, history first, newest first.

        When the same change appears in both, the history entry wins.
        """
        merged: List[ActivityEntry] = list(history)

        seen: Dict[_DedupKey, List[ActivityEntry]] = defaultdict(list)
        for entry in merged:
            seen[_dedup_key(entry)].append(entry)

        for entry in timeline:
            candidates = seen.get(_dedup_key(entry), ())
            if any(self.is_duplicate(entry, kept) for kept in candidates):
                continue
            merged.append(entry)

        return newest_first(merged)

    def group_bulk(self, entries: List[ActivityEntry]) -> List[FeedItem]:
        """
        Fold identical actions within the bulk window into groups.

        Entries are scanned in the given order. Each unprocessed entry anchors
        a group and collects every later unprocessed entry that matches it
        and lies within the window of the anchor itself; windows are not
        chained. Each entry ends up in exactly one output item.
        """
        processed = [False] * len(entries)
        result: List[FeedItem] = []

        for i, anchor in enumerate(entries):
            if processed[i]:
                continue
            processed[i] = True
            group = [anchor]

            for j in range(i + 1, len(entries)):
                if processed[j]:
                    continue
                other = entries[j]
                delta = abs((anchor.performed_at - other.performed_at).total_seconds())
                if delta <= self.bulk_window_seconds and anchor.same_action_as(other):
                    group.append(other)
                    processed[j] = True

            result.append(BulkActivityGroup.from_entries(group) if len(group) > 1 else anchor)

        return newest_first(result)

    def reconcile(
        self,
        history: Iterable[ActivityEntry],
        timeline: Iterable[ActivityEntry],
        group: bool = True
    ) -> List[FeedItem]:
        merged = self.merge_streams(history, timeline)
        return self.group_bulk(merged) if group else merged
