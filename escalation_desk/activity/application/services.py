"""
Activity Application Services
==============================

Builds the activity feed from the two event streams.
"""

from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional

from escalation_desk.activity.domain import ActivityEntry, ActivityReconciler, FeedItem
from escalation_desk.config import settings
from escalation_desk.core import ResourceNotFoundException, ValidationException
from escalation_desk.shared.infrastructure.logging import get_logger, log_latency

logger = get_logger(__name__)


# ========== Repository Interfaces ==========

class IActivitySource(ABC):
    """Read access to the event streams (Dependency Inversion)."""

    @abstractmethod
    async def history(self, limit: Optional[int] = None, ticket_ids: Optional[List[str]] = None) -> List[ActivityEntry]:
        """Entries from the current event log, newest first."""
        pass

    @abstractmethod
    async def timeline(self, limit: Optional[int] = None, ticket_ids: Optional[List[str]] = None) -> List[ActivityEntry]:
        """Entries from the legacy timeline, newest first."""
        pass

    @abstractmethod
    async def ticket_numbers(self, ticket_ids: Iterable[str]) -> Dict[str, str]:
        pass


# ========== Application Services ==========

class ActivityLogService:
    """
    Service for the reconciled activity feed.

    Read-only: running it twice over the same data gives the same output.
    """

    def __init__(self, source: IActivitySource, reconciler: Optional[ActivityReconciler] = None):
        self._source = source
        self._reconciler = reconciler or ActivityReconciler(
            dedup_seconds=settings.activity_dedup_seconds,
            bulk_window_seconds=settings.activity_bulk_window_seconds,
        )

    async def _load(
        self,
        limit: Optional[int] = None,
        ticket_ids: Optional[List[str]] = None
    ) -> List[ActivityEntry]:
        history = await self._source.history(limit, ticket_ids)
        timeline = await self._source.timeline(limit, ticket_ids)

        numbers = await self._source.ticket_numbers({e.ticket_id for e in history + timeline})
        for entry in history + timeline:
            entry.ticket_number = numbers.get(entry.ticket_id)

        return self._reconciler.merge_streams(history, timeline)

    @staticmethod
    def _check_limit(limit: Optional[int]) -> int:
        limit = limit or settings.activity_feed_limit
        if limit < 1:
            raise ValidationException("limit must be positive", {"limit": limit})
        return limit

    async def get_all_activities(self, limit: Optional[int] = None) -> List[ActivityEntry]:
        """
        Deduplicated entries from both streams, newest first.

        Up to `limit` rows are read from each stream before merging.
        """
        limit = self._check_limit(limit)
        with log_latency(logger, "activity_reconcile", limit=limit):
            return await self._load(limit)

    async def get_activity_feed(self, limit: Optional[int] = None) -> List[FeedItem]:
        """Deduplicated entries with bulk actions folded into groups."""
        limit = self._check_limit(limit)
        with log_latency(logger, "activity_feed", limit=limit):
            entries = await self._load(limit)
            return self._reconciler.group_bulk(entries)

    async def get_bulk_action_details(self, ticket_ids: List[str]) -> List[ActivityEntry]:
        """Every event on the given tickets, newest first."""
        ticket_ids = list(dict.fromkeys(t for t in ticket_ids if t))
        if not ticket_ids:
            raise ValidationException("At least one ticket id is required")
        return await self._load(ticket_ids=ticket_ids)

    async def get_ticket_activity(self, ticket_id: str) -> List[ActivityEntry]:
        """
        Timeline for one ticket, ungrouped, newest first.

        Raises:
            ResourceNotFoundException: If ticket not found
        """
        if not await self._source.ticket_numbers([ticket_id]):
            raise ResourceNotFoundException("Ticket", ticket_id)
        return await self._load(ticket_ids=[ticket_id])
