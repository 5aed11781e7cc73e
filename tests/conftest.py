"""
Test configuration and fixtures.

Provides:
- In-memory SQLite database (aiosqlite) with SAVEPOINT support
- Seeded users and ready-made actors
- Service instances bound to a test session
- HTTPX AsyncClient over the ASGI app with get_session overridden
"""
import os

os.environ["ENVIRONMENT"] = "test"
os.environ["SWEEPS_ENABLED"] = "false"

from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, List, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from escalation_desk.activity.application import ActivityLogService
from escalation_desk.activity.infrastructure import SQLAlchemyActivitySource
from escalation_desk.config import ActorRole, IssueCategory, Severity
from escalation_desk.infrastructure.database import Base, get_session, transaction
from escalation_desk.main import app
from escalation_desk.shared.events import DomainEvent, EventBus
from escalation_desk.sla.application import AutoResolutionService, SLAService
from escalation_desk.tickets.application import AssignmentService, TicketCreateRequest, TicketService
from escalation_desk.tickets.domain import Actor
from escalation_desk.tickets.infrastructure import (
    SQLAlchemyAssigneeRepository,
    SQLAlchemyEventStore,
    SQLAlchemyTicketRepository,
    SQLAlchemyUserRepository,
    TicketHistoryModel,
    UserModel,
)
from escalation_desk.tickets.infrastructure.repositories import as_uuid

T0 = datetime(2025, 5, 1, 9, 0, tzinfo=timezone.utc)


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture
async def engine():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
    )

    # pysqlite's own transaction handling breaks SAVEPOINT; emit BEGIN ourselves
    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def session(session_factory, seed_users) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
async def seed_users(session_factory) -> None:
    async with session_factory() as session:
        session.add_all([
            UserModel(id="res-1", name="Ravi Kumar", role="resolver", city="Pune"),
            UserModel(id="res-2", name="Anita Desai", role="resolver", city="Delhi"),
            UserModel(id="app-1", name="Meera Shah", role="approver", city="Pune"),
            UserModel(id="gone-1", name="Former Staff", role="resolver", is_active=False),
        ])
        await session.commit()


# =============================================================================
# Actors
# =============================================================================

@pytest.fixture
def resolver() -> Actor:
    return Actor(id="res-1", name="Ravi Kumar", role=ActorRole.RESOLVER)


@pytest.fixture
def approver() -> Actor:
    return Actor(id="app-1", name="Meera Shah", role=ActorRole.APPROVER)


@pytest.fixture
def admin() -> Actor:
    return Actor(id="adm-1", name="Kiran Rao", role=ActorRole.TICKET_ADMIN)


# =============================================================================
# Services
# =============================================================================

class RecordingBus(EventBus):
    """Event bus that also keeps every published event."""

    def __init__(self):
        super().__init__()
        self.published: List[DomainEvent] = []

    async def publish(self, event: DomainEvent) -> int:
        self.published.append(event)
        return await super().publish(event)


@pytest.fixture
def bus() -> RecordingBus:
    return RecordingBus()


@pytest.fixture
def ticket_service(session, bus) -> TicketService:
    return TicketService(SQLAlchemyTicketRepository(session), SQLAlchemyEventStore(session), event_bus=bus)


@pytest.fixture
def assignment_service(session, bus) -> AssignmentService:
    return AssignmentService(
        SQLAlchemyTicketRepository(session),
        SQLAlchemyAssigneeRepository(session),
        SQLAlchemyUserRepository(session),
        SQLAlchemyEventStore(session),
        event_bus=bus,
    )


@pytest.fixture
def auto_resolution_service(session, bus) -> AutoResolutionService:
    return AutoResolutionService(
        SQLAlchemyTicketRepository(session),
        SQLAlchemyEventStore(session),
        event_bus=bus,
        age_reference="submitted_at",
    )


@pytest.fixture
def sla_service(session) -> SLAService:
    return SLAService(SQLAlchemyTicketRepository(session), SQLAlchemyEventStore(session))


@pytest.fixture
def activity_service(session) -> ActivityLogService:
    return ActivityLogService(SQLAlchemyActivitySource(session))


@pytest.fixture
def make_ticket(ticket_service):
    """Create a ticket submitted at `now` (defaults to T0)."""

    async def _make(
        severity: Severity = Severity.SEV3,
        now: Optional[datetime] = None,
        description: str = "Invigilation fee not received",
        category: IssueCategory = IssueCategory.PAYMENT_DELAY,
        **fields,
    ):
        request = TicketCreateRequest(
            category=category,
            severity=severity,
            description=description,
            city=fields.pop("city", "Pune"),
            **fields,
        )
        return await ticket_service.create_ticket(request, now=now or T0)

    return _make


@pytest.fixture
def move_to(ticket_service, resolver):
    """Walk a ticket through the given statuses as the resolver."""

    async def _move(ticket, *statuses, now: Optional[datetime] = None, actor: Optional[Actor] = None):
        at = now or ticket.submitted_at + timedelta(minutes=5)
        for status in statuses:
            ticket = await ticket_service.transition_status(ticket.id, status, actor or resolver, now=at)
        return ticket

    return _move


@pytest.fixture
def history(session):
    """Events written for a ticket, oldest first."""

    async def _history(ticket_id: str, action: Optional[str] = None) -> List[TicketHistoryModel]:
        stmt = select(TicketHistoryModel).where(TicketHistoryModel.ticket_id == as_uuid(ticket_id))
        if action:
            stmt = stmt.where(TicketHistoryModel.action_type == action)
        result = await session.execute(stmt.order_by(TicketHistoryModel.performed_at.asc()))
        return list(result.scalars().all())

    return _history


# =============================================================================
# HTTP Client
# =============================================================================

@pytest.fixture
async def client(session_factory, seed_users) -> AsyncGenerator[AsyncClient, None]:
    async def override_get_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            async with transaction(session):
                yield session

    app.dependency_overrides[get_session] = override_get_session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def headers():
    """Actor headers as the auth layer would forward them."""

    def _headers(actor_id: str = "res-1", role: str = "resolver", name: str = "Ravi Kumar") -> dict:
        return {"X-Actor-Id": actor_id, "X-Actor-Role": role, "X-Actor-Name": name}

    return _headers
