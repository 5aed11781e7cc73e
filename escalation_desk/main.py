"""
Escalation Desk - Main Application
===================================

Ticket lifecycle and escalation service for exam invigilation issues.

Modules:
- Tickets: Status workflow, assignments, event log
- SLA: Targets, breach refresh, auto-resolution sweeps
- Activity: Reconciled activity feed

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Entities, value objects, state machine
- Infrastructure: Database, webhook, scheduler
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

# Configuration
from escalation_desk.config import settings

# Infrastructure
from escalation_desk.infrastructure.database import close_database, create_tables, init_database

# Shared
from escalation_desk.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    register_exception_handlers,
)
from escalation_desk.shared.events import EventBus
from escalation_desk.shared.infrastructure.logging import get_logger, setup_logging

# SLA Module - External services
from escalation_desk.sla.infrastructure import SLAConfigManager, SweepJobs, SweepScheduler

# Notifications
from escalation_desk.tickets.infrastructure import NotificationSubscriber, WebhookNotifier

# Module Routers
from escalation_desk.activity.interfaces import activity_router
from escalation_desk.sla.interfaces import sla_router
from escalation_desk.tickets.interfaces import tickets_router

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Initialize database and create tables
    3. Load SLA policy and watch it for changes
    4. Create the event bus and the notification subscriber
    5. Start the sweep scheduler

    SHUTDOWN:
    1. Stop the sweep scheduler
    2. Flush pending notifications and close the webhook client
    3. Stop the policy watcher
    4. Close database connections
    """
    # === STARTUP ===
    setup_logging(settings.log_level, settings.environment)
    logger.info("Starting Escalation Desk", extra={
        "version": settings.app_version,
        "environment": settings.environment
    })

    init_database()

    # Create tables (for development - use migrations in production)
    try:
        await create_tables()
    except Exception as e:
        logger.warning(f"Database not available - running in degraded mode: {e}")

    sla_config = SLAConfigManager()
    sla_config.load(settings.sla_config_path)
    sla_config.start_watching()
    app.state.sla_config = sla_config

    event_bus = EventBus()
    app.state.event_bus = event_bus

    notifier = None
    subscriber = None
    if settings.notification_webhook_url:
        notifier = WebhookNotifier(
            settings.notification_webhook_url,
            timeout_seconds=settings.notification_timeout_seconds
        )
        subscriber = NotificationSubscriber(notifier, settings.tracking_base_url)
        subscriber.register(event_bus)
    else:
        logger.info("Notification webhook not configured - notifications disabled")

    scheduler = None
    if settings.sweeps_enabled:
        scheduler = SweepScheduler(SweepJobs(sla_config, event_bus))
        await scheduler.start()
    app.state.sweep_scheduler = scheduler

    logger.info("Escalation Desk started successfully")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down Escalation Desk")

    if scheduler:
        await scheduler.stop()

    if subscriber:
        await subscriber.drain()
    if notifier:
        await notifier.close()

    sla_config.stop_watching()

    await close_database()

    logger.info("Escalation Desk shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="Escalation Desk API",
    description="""
    ## Exam Invigilation Escalation Desk

    Ticket workflow for issues reported by invigilators: payments, facilities,
    malpractice and app problems.

    ---

    ### Tickets
    - `POST /tickets` - Submit a ticket
    - `GET /tickets` - Filtered listing
    - `POST /tickets/{id}/status` - Move through the workflow (role-gated)
    - `POST /tickets/assignments` - Bulk assign resolvers and approvers

    ### SLA
    - `GET /sla/summary` - Compliance figures
    - `GET /sla/user-dependency` - Tickets awaiting the reporter
    - `POST /sla/sweeps/auto-resolve`, `POST /sla/sweeps/cleanup` - Manual sweeps

    ### Activity
    - `GET /activity` - Deduplicated feed with bulk actions grouped

    ---

    Acting user is passed by the auth layer as `X-Actor-Id`, `X-Actor-Name`
    and `X-Actor-Role` headers.
    """,
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# === CORS Middleware ===
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# === Custom Middleware ===
app.add_middleware(CorrelationIDMiddleware)
app.add_middleware(LoggingMiddleware)
register_exception_handlers(app)

# === Include Module Routers ===
app.include_router(tickets_router)
app.include_router(sla_router)
app.include_router(activity_router)


# === Health Check Endpoint ===

@app.get("/health", tags=["Health"])
async def health_check(request: Request):
    """Service health with component status."""
    scheduler = getattr(request.app.state, "sweep_scheduler", None)
    sla_config = getattr(request.app.state, "sla_config", None)

    checks = {
        "sla_config": "loaded" if sla_config else "defaults",
        "sweep_scheduler": "running" if scheduler and scheduler.is_running else "stopped",
        "notifications": "enabled" if settings.notification_webhook_url else "not_configured",
    }

    return {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
        "checks": checks
    }


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API information."""
    return {
        "service": "Escalation Desk",
        "version": settings.app_version,
        "architecture": "Clean Architecture / Modular Monolith",
        "docs": "/docs",
        "health": "/health",
        "modules": {
            "tickets": {"prefix": "/tickets"},
            "sla": {"prefix": "/sla"},
            "activity": {"prefix": "/activity"},
        }
    }


# === Development Entry Point ===

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "escalation_desk.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level="info"
    )
