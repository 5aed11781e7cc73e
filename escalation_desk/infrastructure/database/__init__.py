"""
Database Infrastructure
=======================

Manages database connections, session lifecycle, and engine configuration.

Uses SQLAlchemy 2.0 with asyncpg for async PostgreSQL operations.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator, Optional

from sqlalchemy import DateTime
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator

from escalation_desk.config import settings
from escalation_desk.core import DependencyUnavailableException
from escalation_desk.shared.events import EventBus, PendingEvents


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    SQLAlchemy 2.0 style using DeclarativeBase.
    All models inherit from this class.
    """
    pass


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware timestamp column.

    Values are stored in UTC and always come back timezone-aware, including
    on backends that drop the offset.
    """
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


# Global engine and session maker
_engine: AsyncEngine | None = None
_session_maker: async_sessionmaker[AsyncSession] | None = None

CONNECTIVITY_ERRORS = (OperationalError, InterfaceError, ConnectionError)
PENDING_EVENTS_KEY = "pending_events"


def get_engine() -> AsyncEngine:
    """
    Get the database engine.

    Raises:
        RuntimeError: If engine has not been initialized
    """
    if _engine is None:
        raise RuntimeError("Database engine not initialized. Call init_database() first.")
    return _engine


def init_database(database_url: Optional[str] = None) -> AsyncEngine:
    """
    Initialize the database engine and session maker.

    Should be called during application startup.
    """
    global _engine, _session_maker

    url = database_url or settings.database_url
    engine_kwargs = {"echo": settings.debug, "pool_pre_ping": True}
    if url.startswith("postgresql"):
        # asyncpg wants ssl= rather than sslmode=
        url = url.replace("sslmode=", "ssl=")
        engine_kwargs["pool_size"] = settings.db_pool_size
        engine_kwargs["max_overflow"] = settings.db_max_overflow

    _engine = create_async_engine(url, **engine_kwargs)
    _session_maker = async_sessionmaker(
        bind=_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    return _engine


async def close_database() -> None:
    """
    Close the database engine and dispose of connections.

    Should be called during application shutdown.
    """
    global _engine, _session_maker

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_maker = None


def deferred_event_bus(session: AsyncSession, bus: Optional[EventBus]) -> Optional[PendingEvents]:
    """
    Event queue tied to a session.

    Events published through it reach `bus` only once the session's
    transaction has committed inside `transaction()`.
    """
    if bus is None:
        return None
    pending = session.info.get(PENDING_EVENTS_KEY)
    if pending is None:
        pending = PendingEvents(bus)
        session.info[PENDING_EVENTS_KEY] = pending
    return pending


@asynccontextmanager
async def transaction(session: AsyncSession) -> AsyncGenerator[AsyncSession, None]:
    """
    Unit of work around a session.

    Commits on success and rolls back on error. Events queued through
    `deferred_event_bus` are published after the commit and dropped on
    rollback. Connectivity failures surface as DependencyUnavailableException.
    """
    try:
        yield session
        await session.commit()
    except CONNECTIVITY_ERRORS as e:
        _discard_pending(session)
        await session.rollback()
        raise DependencyUnavailableException(
            "Ticket store is unreachable", {"error": str(e)}
        ) from e
    except Exception:
        _discard_pending(session)
        await session.rollback()
        raise

    pending = session.info.pop(PENDING_EVENTS_KEY, None)
    if pending is not None:
        await pending.flush()


def _discard_pending(session: AsyncSession) -> None:
    pending = session.info.pop(PENDING_EVENTS_KEY, None)
    if pending is not None:
        pending.discard()


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Async generator for database sessions.

    For use with FastAPI's Depends(); see `transaction()` for commit,
    rollback and event publishing.
    """
    if _session_maker is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")

    async with _session_maker() as session:
        async with transaction(session):
            yield session


@asynccontextmanager
async def get_session_context() -> AsyncGenerator[AsyncSession, None]:
    """
    Async context manager for database sessions.

    For use in background jobs (sweeps, SLA refresh) and scripts.

    Usage:
        async with get_session_context() as session:
            result = await session.execute(select(TicketModel))
    """
    if _session_maker is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")

    async with _session_maker() as session:
        async with transaction(session):
            yield session


async def create_tables() -> None:
    """
    Create all database tables.

    This should only be used for development/testing.
    Production should use migrations (Alembic).
    """
    # Models must be imported so their tables are registered on Base.metadata
    import escalation_desk.tickets.infrastructure.models  # noqa: F401

    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
