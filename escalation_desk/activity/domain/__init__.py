"""
Activity Domain Layer
======================

Contains:
- Entities: ActivityEntry, BulkActivityGroup
- Reconciler: stream deduplication and bulk grouping
- Descriptions: display sentences for feed items
"""

from escalation_desk.activity.domain.descriptions import describe, describe_activity, format_role
from escalation_desk.activity.domain.entities import (
    ACTION_ALIASES,
    HISTORY_STREAM,
    TIMELINE_STREAM,
    ActivityEntry,
    BulkActivityGroup,
    FeedItem,
    canonical_action,
)
from escalation_desk.activity.domain.reconciler import ActivityReconciler, newest_first

__all__ = [
    # Entities
    "ACTION_ALIASES",
    "HISTORY_STREAM",
    "TIMELINE_STREAM",
    "ActivityEntry",
    "BulkActivityGroup",
    "FeedItem",
    "canonical_action",
    # Reconciler
    "ActivityReconciler",
    "newest_first",
    # Descriptions
    "describe",
    "describe_activity",
    "format_role",
]
