"""
Activity Application Layer
===========================

Contains:
- Services: the reconciled activity feed
- DTOs: feed response models
"""

from escalation_desk.activity.application.dto import (
    ActivityEntryResponse,
    ActivityFeed,
    ActivityList,
    BulkActivityResponse,
    to_response,
)
from escalation_desk.activity.application.services import ActivityLogService, IActivitySource

__all__ = [
    # DTOs
    "ActivityEntryResponse",
    "ActivityFeed",
    "ActivityList",
    "BulkActivityResponse",
    "to_response",
    # Services
    "ActivityLogService",
    "IActivitySource",
]
