"""
Ticket Controllers (API Routes)
================================

FastAPI routes for the ticket lifecycle and assignments.

Controllers are thin - they delegate to application services.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from escalation_desk.config import AssigneeRole, Severity, TicketStatus, settings
from escalation_desk.core import PartialBatchFailureException
from escalation_desk.infrastructure.database import deferred_event_bus, get_session
from escalation_desk.shared.api.dependencies import (
    get_actor,
    get_event_bus,
    get_optional_actor,
    get_policy_provider,
)
from escalation_desk.shared.api.middleware import partial_failure_response
from escalation_desk.shared.infrastructure.logging import get_logger
from escalation_desk.tickets.application import (
    AssigneeResponse,
    AssignmentRequest,
    AssignmentService,
    BulkAssignmentResponse,
    ReopenRequest,
    StatusChangeRequest,
    TicketCreateRequest,
    TicketFilter,
    TicketPage,
    TicketResponse,
    TicketService,
)
from escalation_desk.tickets.domain import Actor
from escalation_desk.tickets.infrastructure import (
    SQLAlchemyAssigneeRepository,
    SQLAlchemyEventStore,
    SQLAlchemyTicketRepository,
    SQLAlchemyUserRepository,
)

logger = get_logger(__name__)
router = APIRouter(prefix="/tickets", tags=["Tickets"])


# ========== Example payloads for Swagger ==========

TICKET_CREATE_EXAMPLE = {
    "category": "payment_delay",
    "severity": "sev2",
    "description": "Invigilation fee for the 12 May session has not been paid.",
    "city": "Pune",
    "centre_code": "PN-014",
    "resource_id": "R-20931",
    "issue_date": {"type": "single", "dates": ["2025-05-12"]},
}


# ========== Dependencies ==========

async def get_ticket_service(
    request: Request,
    session: AsyncSession = Depends(get_session)
) -> TicketService:
    """Get ticket service instance."""
    return TicketService(
        SQLAlchemyTicketRepository(session),
        SQLAlchemyEventStore(session),
        event_bus=deferred_event_bus(session, get_event_bus(request)),
        policy_provider=get_policy_provider(request),
    )


async def get_assignment_service(
    request: Request,
    session: AsyncSession = Depends(get_session)
) -> AssignmentService:
    """Get assignment service instance."""
    return AssignmentService(
        SQLAlchemyTicketRepository(session),
        SQLAlchemyAssigneeRepository(session),
        SQLAlchemyUserRepository(session),
        SQLAlchemyEventStore(session),
        event_bus=deferred_event_bus(session, get_event_bus(request)),
    )


def _response(ticket) -> TicketResponse:
    return TicketResponse.from_entity(ticket, settings.tracking_base_url)


def _split(values: Optional[List[str]]) -> List[str]:
    """Accept both repeated query params and comma-separated values."""
    items: List[str] = []
    for value in values or []:
        items.extend(v.strip() for v in value.split(",") if v.strip())
    return items


# ========== Route Handlers ==========

@router.post(
    "",
    response_model=TicketResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit a ticket",
    openapi_extra={"requestBody": {"content": {"application/json": {"example": TICKET_CREATE_EXAMPLE}}}},
)
async def create_ticket(
    request: TicketCreateRequest,
    actor: Optional[Actor] = Depends(get_optional_actor),
    service: TicketService = Depends(get_ticket_service)
) -> TicketResponse:
    ticket = await service.create_ticket(request, actor)
    return _response(ticket)


@router.get(
    "",
    response_model=TicketPage,
    summary="List tickets",
    description="""
    Filtered, paginated ticket listing, newest submission first.

    `search` takes comma-separated terms; a ticket matches when any term is
    a case-insensitive substring of its number, description or category.
    """
)
async def list_tickets(
    status_filter: Optional[List[TicketStatus]] = Query(None, alias="status"),
    severity: Optional[List[Severity]] = Query(None),
    category: Optional[List[str]] = Query(None),
    city: Optional[List[str]] = Query(None),
    resolver_ids: Optional[List[str]] = Query(None),
    approver_ids: Optional[List[str]] = Query(None),
    resource_ids: Optional[List[str]] = Query(None),
    search: Optional[str] = Query(None, max_length=500),
    created_from: Optional[datetime] = Query(None),
    created_to: Optional[datetime] = Query(None),
    include_deleted: bool = Query(False),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=500),
    service: TicketService = Depends(get_ticket_service)
) -> TicketPage:
    filters = TicketFilter(
        status=status_filter or [],
        severity=severity or [],
        category=_split(category),
        city=_split(city),
        resolver_ids=_split(resolver_ids),
        approver_ids=_split(approver_ids),
        resource_ids=_split(resource_ids),
        search=search,
        created_from=created_from,
        created_to=created_to,
        include_deleted=include_deleted,
    )
    tickets, total = await service.list_tickets(filters, page=page, page_size=page_size)
    return TicketPage(
        items=[_response(t) for t in tickets],
        total=total,
        page=page,
        page_size=page_size,
        has_more=page * page_size < total,
    )


@router.post(
    "/assignments",
    response_model=BulkAssignmentResponse,
    summary="Assign a resolver and/or approver to tickets",
    responses={207: {"description": "Some tickets were assigned, see errors"}},
)
async def assign_tickets(
    request: AssignmentRequest,
    actor: Actor = Depends(get_actor),
    service: AssignmentService = Depends(get_assignment_service)
) -> BulkAssignmentResponse:
    """
    Resolver and approver halves run independently and neither is rolled
    back when the other fails.
    """
    # an unknown user fails the whole request before anything is written
    for user_id in (request.resolver_id, request.approver_id):
        if user_id:
            await service.require_user(user_id)

    outcomes: List[BulkAssignmentResponse] = []
    if request.resolver_id:
        outcomes.append(await service.assign_role(
            request.ticket_ids, request.resolver_id, AssigneeRole.RESOLVER, actor
        ))
    if request.approver_id:
        outcomes.append(await service.assign_role(
            request.ticket_ids, request.approver_id, AssigneeRole.APPROVER, actor
        ))

    combined = BulkAssignmentResponse(
        success=all(o.success for o in outcomes),
        processed_count=sum(o.processed_count for o in outcomes),
        errors=[e for o in outcomes for e in o.errors],
        results=[r for o in outcomes for r in o.results],
    )
    if not combined.success and combined.processed_count > 0:
        # returned rather than raised so the succeeded half still commits
        return partial_failure_response(
            PartialBatchFailureException(combined.processed_count, combined.errors)
        )
    return combined


@router.get("/by-number/{ticket_number}", response_model=TicketResponse, summary="Get ticket by number")
async def get_ticket_by_number(
    ticket_number: str,
    service: TicketService = Depends(get_ticket_service)
) -> TicketResponse:
    return _response(await service.get_ticket_by_number(ticket_number))


@router.get("/{ticket_id}", response_model=TicketResponse, summary="Get ticket")
async def get_ticket(
    ticket_id: str,
    service: TicketService = Depends(get_ticket_service)
) -> TicketResponse:
    return _response(await service.get_ticket(ticket_id))


@router.post(
    "/{ticket_id}/status",
    response_model=TicketResponse,
    summary="Change ticket status",
    responses={409: {"description": "Transition not permitted for this status or role"}},
)
async def change_status(
    ticket_id: str,
    request: StatusChangeRequest,
    actor: Actor = Depends(get_actor),
    service: TicketService = Depends(get_ticket_service)
) -> TicketResponse:
    ticket = await service.transition_status(ticket_id, request.status, actor, notes=request.notes)
    return _response(ticket)


@router.post("/{ticket_id}/reopen", response_model=TicketResponse, summary="Reopen a ticket")
async def reopen_ticket(
    ticket_id: str,
    request: Optional[ReopenRequest] = None,
    actor: Actor = Depends(get_actor),
    service: TicketService = Depends(get_ticket_service)
) -> TicketResponse:
    reason = request.reason if request else None
    return _response(await service.reopen(ticket_id, actor, reason=reason))


@router.delete("/{ticket_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Soft-delete a ticket")
async def delete_ticket(
    ticket_id: str,
    actor: Actor = Depends(get_actor),
    service: TicketService = Depends(get_ticket_service)
) -> None:
    await service.soft_delete(ticket_id, actor)


@router.get("/{ticket_id}/assignees", response_model=List[AssigneeResponse], summary="List assignees")
async def list_assignees(
    ticket_id: str,
    service: AssignmentService = Depends(get_assignment_service)
) -> List[AssigneeResponse]:
    assignees = await service.list_assignees(ticket_id)
    return [
        AssigneeResponse(
            user_id=a.user_id,
            name=a.name,
            role=AssigneeRole(a.role),
            assigned_at=a.assigned_at,
            assigned_by=a.assigned_by,
        )
        for a in assignees
    ]


@router.delete(
    "/{ticket_id}/assignees/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove an assignee"
)
async def unassign(
    ticket_id: str,
    user_id: str,
    role: AssigneeRole = Query(..., description="Assignee role to remove"),
    actor: Actor = Depends(get_actor),
    service: AssignmentService = Depends(get_assignment_service)
) -> None:
    await service.unassign(ticket_id, user_id, role, actor)


# Export router
tickets_router = router
