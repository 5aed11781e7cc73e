"""
Activity Controllers (API Routes)
==================================

FastAPI routes for the admin activity feed.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from escalation_desk.activity.application import (
    ActivityEntryResponse,
    ActivityFeed,
    ActivityList,
    ActivityLogService,
    to_response,
)
from escalation_desk.activity.infrastructure import SQLAlchemyActivitySource
from escalation_desk.infrastructure.database import get_session

router = APIRouter(prefix="/activity", tags=["Activity"])


async def get_activity_service(session: AsyncSession = Depends(get_session)) -> ActivityLogService:
    """Get activity service instance."""
    return ActivityLogService(SQLAlchemyActivitySource(session))


@router.get(
    "",
    response_model=ActivityFeed,
    summary="Activity feed",
    description="""
    Events from the current log and the legacy timeline, deduplicated,
    newest first. Pass `grouped=false` to get single entries only.
    """
)
async def get_activity_feed(
    limit: Optional[int] = Query(None, ge=1, le=5000, description="Rows read from each stream"),
    grouped: bool = Query(True, description="Fold bulk actions into groups"),
    service: ActivityLogService = Depends(get_activity_service)
) -> ActivityFeed:
    if grouped:
        items = await service.get_activity_feed(limit)
    else:
        items = await service.get_all_activities(limit)
    return ActivityFeed(count=len(items), items=[to_response(i) for i in items])


@router.get("/bulk-details", response_model=ActivityList, summary="Events behind a bulk action")
async def get_bulk_details(
    ticket_ids: List[str] = Query(..., description="Ticket ids, repeated or comma-separated"),
    service: ActivityLogService = Depends(get_activity_service)
) -> ActivityList:
    ids = [t.strip() for value in ticket_ids for t in value.split(",") if t.strip()]
    entries = await service.get_bulk_action_details(ids)
    return ActivityList(count=len(entries), items=[ActivityEntryResponse.from_entry(e) for e in entries])


@router.get("/tickets/{ticket_id}", response_model=ActivityList, summary="Activity for one ticket")
async def get_ticket_activity(
    ticket_id: str,
    service: ActivityLogService = Depends(get_activity_service)
) -> ActivityList:
    entries = await service.get_ticket_activity(ticket_id)
    return ActivityList(count=len(entries), items=[ActivityEntryResponse.from_entry(e) for e in entries])


# Export router
activity_router = router
