"""
Activity Repository Implementations
====================================

Read-only SQLAlchemy access to the event log and the legacy timeline.
"""

from typing import Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from escalation_desk.activity.application.services import IActivitySource
from escalation_desk.activity.domain import HISTORY_STREAM, TIMELINE_STREAM, ActivityEntry
from escalation_desk.tickets.infrastructure.models import (
    TicketHistoryModel,
    TicketModel,
    TicketTimelineModel,
)
from escalation_desk.tickets.infrastructure.repositories import as_uuid


def _uuids(ticket_ids: Iterable[str]) -> list:
    return list({u for u in (as_uuid(t) for t in ticket_ids) if u is not None})


class SQLAlchemyActivitySource(IActivitySource):
    """Reads both event streams from the database."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def history(self, limit: Optional[int] = None, ticket_ids: Optional[List[str]] = None) -> List[ActivityEntry]:
        stmt = select(TicketHistoryModel).order_by(TicketHistoryModel.performed_at.desc())
        if ticket_ids is not None:
            stmt = stmt.where(TicketHistoryModel.ticket_id.in_(_uuids(ticket_ids)))
        if limit:
            stmt = stmt.limit(limit)

        result = await self._session.execute(stmt)
        return [
            ActivityEntry(
                id=str(row.id),
                ticket_id=str(row.ticket_id),
                action_type=row.action_type,
                old_value=row.old_value,
                new_value=row.new_value,
                performed_by=row.performed_by,
                performed_by_name=row.performed_by_name or row.performed_by,
                performed_by_role=row.performed_by_role,
                performed_at=row.performed_at,
                source=HISTORY_STREAM,
                details=row.details or {},
            )
            for row in result.scalars().all()
        ]

    async def timeline(self, limit: Optional[int] = None, ticket_ids: Optional[List[str]] = None) -> List[ActivityEntry]:
        stmt = select(TicketTimelineModel).order_by(TicketTimelineModel.created_at.desc())
        if ticket_ids is not None:
            stmt = stmt.where(TicketTimelineModel.ticket_id.in_(_uuids(ticket_ids)))
        if limit:
            stmt = stmt.limit(limit)

        result = await self._session.execute(stmt)
        # missing actor fields are filled in as System by ActivityEntry
        return [
            ActivityEntry(
                id=str(row.id),
                ticket_id=str(row.ticket_id),
                action_type=row.event_type,
                old_value=row.old_value,
                new_value=row.new_value,
                performed_by=row.performed_by,
                performed_by_name=row.performed_by_name,
                performed_by_role=row.performed_by_role,
                performed_at=row.created_at,
                source=TIMELINE_STREAM,
                details=row.details or {},
            )
            for row in result.scalars().all()
        ]

    async def ticket_numbers(self, ticket_ids: Iterable[str]) -> Dict[str, str]:
        uuids = _uuids(ticket_ids)
        if not uuids:
            return {}
        stmt = select(TicketModel.id, TicketModel.ticket_number).where(TicketModel.id.in_(uuids))
        result = await self._session.execute(stmt)
        return {str(row.id): row.ticket_number for row in result.all()}
