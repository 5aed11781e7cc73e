"""
Activity Domain Entities
========================

Read-side records for the activity feed. Nothing here is persisted;
entries are built from the event stores and groups are derived on read.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from escalation_desk.config import SYSTEM_ACTOR

# Legacy action names that mean the same thing as the current ones
ACTION_ALIASES: Dict[str, str] = {
    "status_change": "status_changed",
    "assignment": "assigned",
}

HISTORY_STREAM = "history"
TIMELINE_STREAM = "timeline"


def canonical_action(action: str) -> str:
    return ACTION_ALIASES.get(action, action)


@dataclass
class ActivityEntry:
    """One event on one ticket, as shown in the feed."""
    id: str
    ticket_id: str
    action_type: str
    old_value: Optional[str]
    new_value: Optional[str]
    performed_by: str
    performed_by_name: str
    performed_by_role: str
    performed_at: datetime
    source: str = HISTORY_STREAM
    ticket_number: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.action_type = canonical_action(self.action_type)
        if not self.performed_by:
            self.performed_by = SYSTEM_ACTOR
        if not self.performed_by_name:
            self.performed_by_name = "System"
        if not self.performed_by_role:
            self.performed_by_role = SYSTEM_ACTOR

    @property
    def is_bulk(self) -> bool:
        return False

    def same_action_as(self, other: "ActivityEntry") -> bool:
        """Same action by the same actor with the same values (ticket and time ignored)."""
        return (
            self.action_type == other.action_type
            and self.performed_by == other.performed_by
            and self.performed_by_role == other.performed_by_role
            and self.old_value == other.old_value
            and self.new_value == other.new_value
        )


@dataclass
class BulkActivityGroup:
    """
    Near-simultaneous identical actions over several tickets.

    Carries the anchor entry's metadata; `entries` are the grouped events
    in the order they were collected.
    """
    id: str
    action_type: str
    old_value: Optional[str]
    new_value: Optional[str]
    performed_by: str
    performed_by_name: str
    performed_by_role: str
    performed_at: datetime
    entries: List[ActivityEntry] = field(default_factory=list)
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_entries(cls, entries: List[ActivityEntry]) -> "BulkActivityGroup":
        anchor = entries[0]
        return cls(
            id=f"bulk_{anchor.id}",
            action_type=anchor.action_type,
            old_value=anchor.old_value,
            new_value=anchor.new_value,
            performed_by=anchor.performed_by,
            performed_by_name=anchor.performed_by_name,
            performed_by_role=anchor.performed_by_role,
            performed_at=anchor.performed_at,
            entries=list(entries),
            details=dict(anchor.details),
        )

    @property
    def is_bulk(self) -> bool:
        return True

    @property
    def count(self) -> int:
        return len(self.entries)

    @property
    def ticket_ids(self) -> List[str]:
        return [e.ticket_id for e in self.entries]

    @property
    def ticket_numbers(self) -> List[str]:
        return [e.ticket_number for e in self.entries if e.ticket_number]


FeedItem = Union[ActivityEntry, BulkActivityGroup]
