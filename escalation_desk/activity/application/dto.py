"""
Activity Application DTOs
==========================

Response models for the activity feed.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from escalation_desk.activity.domain import ActivityEntry, BulkActivityGroup, FeedItem, describe


class ActivityEntryResponse(BaseModel):
    id: str
    ticket_id: str
    ticket_number: Optional[str] = None
    action_type: str
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    performed_by: str
    performed_by_name: str
    performed_by_role: str
    performed_at: datetime
    source: str
    details: Dict[str, Any] = Field(default_factory=dict)
    description: str
    is_bulk: Literal[False] = False

    @classmethod
    def from_entry(cls, entry: ActivityEntry) -> "ActivityEntryResponse":
        return cls(
            id=entry.id,
            ticket_id=entry.ticket_id,
            ticket_number=entry.ticket_number,
            action_type=entry.action_type,
            old_value=entry.old_value,
            new_value=entry.new_value,
            performed_by=entry.performed_by,
            performed_by_name=entry.performed_by_name,
            performed_by_role=entry.performed_by_role,
            performed_at=entry.performed_at,
            source=entry.source,
            details=entry.details,
            description=describe(entry),
        )


class BulkActivityResponse(BaseModel):
    id: str = Field(..., description="bulk_<id of the first grouped event>")
    action_type: str
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    performed_by: str
    performed_by_name: str
    performed_by_role: str
    performed_at: datetime
    count: int
    ticket_ids: List[str]
    ticket_numbers: List[str]
    details: Dict[str, Any] = Field(default_factory=dict)
    description: str
    is_bulk: Literal[True] = True

    @classmethod
    def from_group(cls, group: BulkActivityGroup) -> "BulkActivityResponse":
        return cls(
            id=group.id,
            action_type=group.action_type,
            old_value=group.old_value,
            new_value=group.new_value,
            performed_by=group.performed_by,
            performed_by_name=group.performed_by_name,
            performed_by_role=group.performed_by_role,
            performed_at=group.performed_at,
            count=group.count,
            ticket_ids=group.ticket_ids,
            ticket_numbers=group.ticket_numbers,
            details=group.details,
            description=describe(group),
        )


FeedItemResponse = Union[BulkActivityResponse, ActivityEntryResponse]


def to_response(item: FeedItem) -> FeedItemResponse:
    if isinstance(item, BulkActivityGroup):
        return BulkActivityResponse.from_group(item)
    return ActivityEntryResponse.from_entry(item)


class ActivityFeed(BaseModel):
    """Feed page: bulk groups and single entries, newest first."""
    count: int
    items: List[FeedItemResponse]


class ActivityList(BaseModel):
    """Ungrouped entries, newest first."""
    count: int
    items: List[ActivityEntryResponse]
