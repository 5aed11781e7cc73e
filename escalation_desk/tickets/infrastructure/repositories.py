"""
Ticket Infrastructure Repositories
===================================

Concrete implementations of repository interfaces using SQLAlchemy.

This layer contains the data access logic - how we store and retrieve
entities from the database.
"""

from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, AsyncContextManager, Dict, Iterable, List, Optional, Tuple
from uuid import UUID, uuid4

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from escalation_desk.config import AssigneeRole, EventAction, TicketStatus
from escalation_desk.tickets.application import (
    IAssigneeRepository,
    IEventStore,
    ITicketRepository,
    IUserRepository,
    TicketFilter,
)
from escalation_desk.tickets.domain import Actor, Assignee, Ticket, User
from escalation_desk.tickets.infrastructure.models import (
    AssignmentLogModel,
    TicketAssigneeModel,
    TicketHistoryModel,
    TicketModel,
    UserModel,
)

EVENT_SCHEMA_VERSION = 1


def as_uuid(value: Any) -> Optional[UUID]:
    """Parse a ticket id; malformed ids simply match nothing."""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        return None


def _to_entity(model: TicketModel, assignees: Iterable[TicketAssigneeModel] = ()) -> Ticket:
    resolvers: List[str] = []
    approvers: List[str] = []
    for assignee in assignees:
        if assignee.role == AssigneeRole.RESOLVER.value:
            resolvers.append(assignee.user_id)
        elif assignee.role == AssigneeRole.APPROVER.value:
            approvers.append(assignee.user_id)

    return Ticket(
        id=str(model.id),
        ticket_number=model.ticket_number,
        category=model.category,
        severity=model.severity,
        description=model.description,
        status=TicketStatus(model.status),
        submitted_at=model.submitted_at,
        last_activity_at=model.last_activity_at,
        city=model.city,
        centre_code=model.centre_code,
        resource_id=model.resource_id,
        submitted_by=model.submitted_by,
        is_anonymous=model.is_anonymous,
        issue_date=model.issue_date,
        resolved_at=model.resolved_at,
        status_changed_at=model.status_changed_at,
        status_changed_by=model.status_changed_by,
        user_dependency_started_at=model.user_dependency_started_at,
        resolution_notes=model.resolution_notes,
        reopen_count=model.reopen_count,
        last_reopened_at=model.last_reopened_at,
        reopened_by=model.reopened_by,
        sla_target_hours=model.sla_target_hours,
        is_sla_breached=model.is_sla_breached,
        resolution_time_hours=model.resolution_time_hours,
        is_deleted=model.is_deleted,
        is_testing=model.is_testing,
        resolvers=resolvers,
        approvers=approvers,
    )


def _mutable_fields(ticket: Ticket) -> Dict[str, Any]:
    """Columns a lifecycle operation may change."""
    return {
        "status": ticket.status.value,
        "last_activity_at": ticket.last_activity_at,
        "resolved_at": ticket.resolved_at,
        "status_changed_at": ticket.status_changed_at,
        "status_changed_by": ticket.status_changed_by,
        "user_dependency_started_at": ticket.user_dependency_started_at,
        "resolution_notes": ticket.resolution_notes,
        "reopen_count": ticket.reopen_count,
        "last_reopened_at": ticket.last_reopened_at,
        "reopened_by": ticket.reopened_by,
        "is_sla_breached": ticket.is_sla_breached,
        "resolution_time_hours": ticket.resolution_time_hours,
    }


class SQLAlchemyTicketRepository(ITicketRepository):
    """
    SQLAlchemy implementation of ticket repository.

    Handles persistence of Ticket entities using async SQLAlchemy.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def _assignees_by_ticket(self, ticket_ids: List[UUID]) -> Dict[UUID, List[TicketAssigneeModel]]:
        grouped: Dict[UUID, List[TicketAssigneeModel]] = defaultdict(list)
        if not ticket_ids:
            return grouped
        stmt = (
            select(TicketAssigneeModel)
            .where(TicketAssigneeModel.ticket_id.in_(ticket_ids))
            .order_by(TicketAssigneeModel.assigned_at.asc())
        )
        result = await self._session.execute(stmt)
        for row in result.scalars().all():
            grouped[row.ticket_id].append(row)
        return grouped

    async def _hydrate(self, models: List[TicketModel]) -> List[Ticket]:
        assignees = await self._assignees_by_ticket([m.id for m in models])
        return [_to_entity(m, assignees.get(m.id, [])) for m in models]

    async def get_by_id(self, ticket_id: str, include_deleted: bool = False) -> Optional[Ticket]:
        """Get ticket by internal ID."""
        ticket_uuid = as_uuid(ticket_id)
        if ticket_uuid is None:
            return None

        stmt = select(TicketModel).where(TicketModel.id == ticket_uuid)
        if not include_deleted:
            stmt = stmt.where(TicketModel.is_deleted.is_(False))
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        if model is None:
            return None
        return (await self._hydrate([model]))[0]

    async def get_by_number(self, ticket_number: str) -> Optional[Ticket]:
        """Get ticket by its human-readable number."""
        stmt = select(TicketModel).where(
            TicketModel.ticket_number == ticket_number,
            TicketModel.is_deleted.is_(False),
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        if model is None:
            return None
        return (await self._hydrate([model]))[0]

    async def exists_by_number(self, ticket_number: str) -> bool:
        stmt = select(TicketModel.id).where(TicketModel.ticket_number == ticket_number)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def create(self, ticket: Ticket) -> Ticket:
        """Create new ticket."""
        model = TicketModel(
            id=uuid4(),
            ticket_number=ticket.ticket_number,
            category=ticket.category,
            severity=ticket.severity,
            description=ticket.description,
            city=ticket.city,
            centre_code=ticket.centre_code,
            resource_id=ticket.resource_id,
            submitted_by=ticket.submitted_by,
            is_anonymous=ticket.is_anonymous,
            issue_date=ticket.issue_date,
            submitted_at=ticket.submitted_at,
            is_testing=ticket.is_testing,
            sla_target_hours=ticket.sla_target_hours,
            **_mutable_fields(ticket),
        )
        self._session.add(model)
        await self._session.flush()

        ticket.id = str(model.id)
        return ticket

    async def save(self, ticket: Ticket) -> None:
        """Single-statement update; concurrent writers race and the last one wins."""
        stmt = (
            update(TicketModel)
            .where(TicketModel.id == as_uuid(ticket.id))
            .values(**_mutable_fields(ticket))
        )
        await self._session.execute(stmt)

    async def save_if_status(self, ticket: Ticket, expected_status: TicketStatus) -> bool:
        stmt = (
            update(TicketModel)
            .where(
                TicketModel.id == as_uuid(ticket.id),
                TicketModel.status == TicketStatus(expected_status).value,
                TicketModel.is_deleted.is_(False),
            )
            .values(**_mutable_fields(ticket))
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    def _filter_conditions(self, filters: TicketFilter) -> list:
        conditions = []

        if not filters.include_deleted:
            conditions.append(TicketModel.is_deleted.is_(False))
        if filters.status:
            conditions.append(TicketModel.status.in_([s.value for s in filters.status]))
        if filters.severity:
            conditions.append(TicketModel.severity.in_([s.value for s in filters.severity]))
        if filters.category:
            conditions.append(TicketModel.category.in_(filters.category))
        if filters.city:
            conditions.append(TicketModel.city.in_(filters.city))
        if filters.resource_ids:
            conditions.append(TicketModel.resource_id.in_(filters.resource_ids))

        for role, user_ids in (
            (AssigneeRole.RESOLVER, filters.resolver_ids),
            (AssigneeRole.APPROVER, filters.approver_ids),
        ):
            if user_ids:
                assigned = select(TicketAssigneeModel.ticket_id).where(
                    TicketAssigneeModel.role == role.value,
                    TicketAssigneeModel.user_id.in_(user_ids),
                )
                conditions.append(TicketModel.id.in_(assigned))

        terms = filters.search_terms
        if terms:
            matches = []
            for term in terms:
                matches.extend([
                    TicketModel.ticket_number.icontains(term, autoescape=True),
                    TicketModel.description.icontains(term, autoescape=True),
                    TicketModel.category.icontains(term, autoescape=True),
                ])
            conditions.append(or_(*matches))

        if filters.created_from:
            conditions.append(TicketModel.submitted_at >= filters.created_from)
        if filters.created_to:
            conditions.append(TicketModel.submitted_at <= filters.created_to)

        return conditions

    async def list(
        self,
        filters: TicketFilter,
        page: int = 1,
        page_size: int = 50
    ) -> Tuple[List[Ticket], int]:
        """List tickets with filters, newest submission first."""
        conditions = self._filter_conditions(filters)
        where = and_(*conditions) if conditions else None

        count_stmt = select(func.count()).select_from(TicketModel)
        stmt = select(TicketModel)
        if where is not None:
            count_stmt = count_stmt.where(where)
            stmt = stmt.where(where)

        total = (await self._session.execute(count_stmt)).scalar_one()

        stmt = (
            stmt.order_by(TicketModel.submitted_at.desc(), TicketModel.ticket_number.desc())
            .limit(page_size)
            .offset((page - 1) * page_size)
        )
        result = await self._session.execute(stmt)
        return await self._hydrate(list(result.scalars().all())), total

    async def list_all(self, filters: TicketFilter) -> List[Ticket]:
        conditions = self._filter_conditions(filters)
        stmt = select(TicketModel)
        if conditions:
            stmt = stmt.where(and_(*conditions))
        result = await self._session.execute(stmt.order_by(TicketModel.submitted_at.desc()))
        return [_to_entity(m) for m in result.scalars().all()]

    async def mark_sla_breached(self, ticket_id: str) -> bool:
        stmt = (
            update(TicketModel)
            .where(
                TicketModel.id == as_uuid(ticket_id),
                TicketModel.is_sla_breached.is_(False),
                TicketModel.status != TicketStatus.RESOLVED.value,
            )
            .values(is_sla_breached=True)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def list_by_status(self, statuses: Iterable[TicketStatus]) -> List[Ticket]:
        values = [TicketStatus(s).value for s in statuses]
        stmt = (
            select(TicketModel)
            .where(TicketModel.status.in_(values), TicketModel.is_deleted.is_(False))
            .order_by(TicketModel.submitted_at.asc())
        )
        result = await self._session.execute(stmt)
        return [_to_entity(m) for m in result.scalars().all()]

    async def ticket_numbers(self, ticket_ids: Iterable[str]) -> Dict[str, str]:
        uuids = list({u for u in (as_uuid(t) for t in ticket_ids) if u is not None})
        if not uuids:
            return {}
        stmt = select(TicketModel.id, TicketModel.ticket_number).where(TicketModel.id.in_(uuids))
        result = await self._session.execute(stmt)
        return {str(row.id): row.ticket_number for row in result.all()}

    async def soft_delete(self, ticket_id: str, deleted_by: str, now: datetime) -> bool:
        stmt = (
            update(TicketModel)
            .where(TicketModel.id == as_uuid(ticket_id), TicketModel.is_deleted.is_(False))
            .values(is_deleted=True, deleted_at=now, deleted_by=deleted_by, last_activity_at=now)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    def savepoint(self) -> AsyncContextManager[Any]:
        return self._session.begin_nested()


class SQLAlchemyEventStore(IEventStore):
    """
    Append-only event log backed by `ticket_history`.

    Rows are written in the caller's transaction, so an event exists
    only if the mutation it describes committed.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def append(
        self,
        ticket_id: str,
        action: EventAction,
        actor: Actor,
        old_value: Optional[str] = None,
        new_value: Optional[str] = None,
        details: Optional[dict] = None,
        performed_at: Optional[datetime] = None
    ) -> str:
        model = TicketHistoryModel(
            id=uuid4(),
            ticket_id=as_uuid(ticket_id),
            action_type=EventAction(action).value,
            old_value=old_value,
            new_value=new_value,
            performed_by=actor.id,
            performed_by_name=actor.name,
            performed_by_role=getattr(actor.role, "value", actor.role),
            performed_at=performed_at or datetime.now(timezone.utc),
            details=details or {},
            schema_version=EVENT_SCHEMA_VERSION,
        )
        self._session.add(model)
        await self._session.flush()
        return str(model.id)


class SQLAlchemyUserRepository(IUserRepository):
    """Read access to the user directory."""

    def __init__(self, session: AsyncSession):
        self._session = session

    @staticmethod
    def _to_entity(model: UserModel) -> User:
        return User(
            id=model.id,
            name=model.name,
            role=model.role,
            city=model.city,
            is_active=model.is_active,
        )

    async def get(self, user_id: str) -> Optional[User]:
        model = await self._session.get(UserModel, user_id)
        return self._to_entity(model) if model else None

    async def get_many(self, user_ids: Iterable[str]) -> Dict[str, User]:
        ids = list(set(user_ids))
        if not ids:
            return {}
        result = await self._session.execute(select(UserModel).where(UserModel.id.in_(ids)))
        return {m.id: self._to_entity(m) for m in result.scalars().all()}


class SQLAlchemyAssigneeRepository(IAssigneeRepository):
    """
    Live assignee bindings plus the assignment log.

    Bindings are inserted or deleted, never updated in place.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def add(self, ticket_id: str, user_id: str, role: str, assigned_by: str, now: datetime) -> bool:
        ticket_uuid = as_uuid(ticket_id)
        existing = await self._session.get(TicketAssigneeModel, (ticket_uuid, user_id, role))
        if existing is not None:
            return False

        self._session.add(TicketAssigneeModel(
            ticket_id=ticket_uuid,
            user_id=user_id,
            role=role,
            assigned_at=now,
            assigned_by=assigned_by,
        ))
        await self._session.flush()
        return True

    async def remove(self, ticket_id: str, user_id: str, role: str) -> bool:
        stmt = delete(TicketAssigneeModel).where(
            TicketAssigneeModel.ticket_id == as_uuid(ticket_id),
            TicketAssigneeModel.user_id == user_id,
            TicketAssigneeModel.role == role,
        )
        result = await self._session.execute(stmt)
        return result.rowcount > 0

    async def list_for_ticket(self, ticket_id: str) -> List[Assignee]:
        stmt = (
            select(TicketAssigneeModel)
            .where(TicketAssigneeModel.ticket_id == as_uuid(ticket_id))
            .order_by(TicketAssigneeModel.role.asc(), TicketAssigneeModel.assigned_at.asc())
        )
        result = await self._session.execute(stmt)
        return [
            Assignee(
                ticket_id=str(m.ticket_id),
                user_id=m.user_id,
                role=m.role,
                assigned_at=m.assigned_at,
                assigned_by=m.assigned_by,
            )
            for m in result.scalars().all()
        ]

    async def log(
        self,
        ticket_id: str,
        user_id: str,
        role: str,
        operation: str,
        performed_by: str,
        now: datetime
    ) -> None:
        self._session.add(AssignmentLogModel(
            id=uuid4(),
            ticket_id=as_uuid(ticket_id),
            user_id=user_id,
            role=role,
            operation=operation,
            performed_by=performed_by,
            performed_at=now,
        ))
        await self._session.flush()
