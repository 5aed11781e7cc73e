"""
SLA Controllers (API Routes)
=============================

FastAPI routes for SLA reporting and the auto-resolution sweeps.
"""

import hmac
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from escalation_desk.config import Severity, TicketStatus, settings
from escalation_desk.infrastructure.database import deferred_event_bus, get_session
from escalation_desk.shared.api.dependencies import get_event_bus, get_policy_provider
from escalation_desk.shared.infrastructure.logging import get_logger
from escalation_desk.sla.application import (
    AutoResolutionService,
    DependencyWatchList,
    SLAService,
    SLASummary,
    SweepResult,
)
from escalation_desk.tickets.application import TicketFilter
from escalation_desk.tickets.infrastructure import SQLAlchemyEventStore, SQLAlchemyTicketRepository

logger = get_logger(__name__)
router = APIRouter(prefix="/sla", tags=["SLA"])


# ========== Dependencies ==========

async def get_sla_service(
    request: Request,
    session: AsyncSession = Depends(get_session)
) -> SLAService:
    """Get SLA service instance."""
    return SLAService(
        SQLAlchemyTicketRepository(session),
        SQLAlchemyEventStore(session),
        policy_provider=get_policy_provider(request),
    )


async def get_auto_resolution_service(
    request: Request,
    session: AsyncSession = Depends(get_session)
) -> AutoResolutionService:
    """Get auto-resolution service instance."""
    return AutoResolutionService(
        SQLAlchemyTicketRepository(session),
        SQLAlchemyEventStore(session),
        event_bus=deferred_event_bus(session, get_event_bus(request)),
        policy_provider=get_policy_provider(request),
    )


async def require_sweep_secret(authorization: Optional[str] = Header(None)) -> None:
    """Manual sweeps need `Authorization: Bearer <SWEEP_TRIGGER_SECRET>`."""
    expected = settings.sweep_trigger_secret
    scheme, _, token = (authorization or "").partition(" ")

    if not expected or scheme.lower() != "bearer" or not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid sweep trigger secret",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not hmac.compare_digest(token.strip().encode(), expected.encode()):
        logger.warning("Rejected manual sweep trigger")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid sweep trigger secret",
            headers={"WWW-Authenticate": "Bearer"},
        )


# ========== Route Handlers ==========

@router.get("/summary", response_model=SLASummary, summary="SLA compliance summary")
async def get_summary(
    status_filter: Optional[List[TicketStatus]] = Query(None, alias="status"),
    severity: Optional[List[Severity]] = Query(None),
    category: Optional[List[str]] = Query(None),
    city: Optional[List[str]] = Query(None),
    created_from: Optional[datetime] = Query(None),
    created_to: Optional[datetime] = Query(None),
    service: SLAService = Depends(get_sla_service)
) -> SLASummary:
    filters = TicketFilter(
        status=status_filter or [],
        severity=severity or [],
        category=category or [],
        city=city or [],
        created_from=created_from,
        created_to=created_to,
    )
    return await service.get_summary(filters)


@router.get(
    "/user-dependency",
    response_model=DependencyWatchList,
    summary="Tickets awaiting the reporter",
    description="Longest-waiting first, with days until the auto-resolution sweep picks them up."
)
async def list_user_dependency(
    service: AutoResolutionService = Depends(get_auto_resolution_service)
) -> DependencyWatchList:
    return await service.list_user_dependency_tickets()


@router.post(
    "/sweeps/auto-resolve",
    response_model=SweepResult,
    summary="Run the user-dependency auto-resolution sweep now",
    dependencies=[Depends(require_sweep_secret)],
    responses={401: {"description": "Missing or invalid sweep trigger secret"}},
)
async def trigger_auto_resolve(
    service: AutoResolutionService = Depends(get_auto_resolution_service)
) -> SweepResult:
    return await service.auto_resolve_user_dependency(triggered_by="manual")


@router.post(
    "/sweeps/cleanup",
    response_model=SweepResult,
    summary="Run the past-exam-date cleanup sweep now",
    dependencies=[Depends(require_sweep_secret)],
    responses={401: {"description": "Missing or invalid sweep trigger secret"}},
)
async def trigger_cleanup(
    service: AutoResolutionService = Depends(get_auto_resolution_service)
) -> SweepResult:
    return await service.cleanup_past_user_dependency(triggered_by="manual")


# Export router
sla_router = router
