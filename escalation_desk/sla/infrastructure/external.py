"""
SLA External Service Integrations
==================================

External services for SLA tracking:
- YAML policy file watcher (watchdog)
- APScheduler jobs for the twice-daily sweeps and the SLA breach refresh
"""

import threading
from pathlib import Path
from typing import Callable, Optional

import yaml
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from pydantic import ValidationError
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from escalation_desk.config import settings
from escalation_desk.core import ConfigurationException
from escalation_desk.infrastructure.database import deferred_event_bus, get_session_context
from escalation_desk.shared.events import EventBus
from escalation_desk.shared.infrastructure.logging import get_logger
from escalation_desk.sla.application import AutoResolutionService, SLAService, SweepResult
from escalation_desk.sla.domain import ISLAPolicyProvider, SLAPolicy
from escalation_desk.tickets.infrastructure import SQLAlchemyEventStore, SQLAlchemyTicketRepository

logger = get_logger(__name__)


class ConfigFileHandler(FileSystemEventHandler):
    """Watchdog event handler for SLA policy file changes."""

    def __init__(self, config_manager: "SLAConfigManager", config_path: Path):
        self.config_manager = config_manager
        self.config_path = config_path
        super().__init__()

    def on_modified(self, event):
        if event.is_directory:
            return
        if Path(event.src_path).resolve() == self.config_path.resolve():
            logger.info("SLA policy file changed", extra={"path": str(event.src_path)})
            self.config_manager.reload()


class SLAConfigManager(ISLAPolicyProvider):
    """
    Thread-safe SLA policy holder with hot-reload support.

    Uses watchdog to monitor file changes and reload the policy
    without restarting the service. A broken file keeps the last good policy.
    """

    def __init__(self):
        self._policy: Optional[SLAPolicy] = None
        self._lock = threading.Lock()
        self._path: Optional[Path] = None
        self._observer = None

    def load(self, path: Path) -> SLAPolicy:
        """
        Initial policy load.

        Raises:
            ConfigurationException: If the file exists but is invalid
        """
        self._path = Path(path)
        policy = self._load_from_file(self._path)
        with self._lock:
            self._policy = policy
        return policy

    def _load_from_file(self, path: Path) -> SLAPolicy:
        if not path.exists():
            logger.warning("SLA policy file not found, using defaults", extra={"path": str(path)})
            return SLAPolicy()

        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
            return SLAPolicy(**data)
        except (yaml.YAMLError, ValidationError, TypeError) as e:
            raise ConfigurationException(f"Invalid SLA policy file {path}", {"error": str(e)}) from e

    def reload(self) -> bool:
        """Reload the policy from file."""
        if self._path is None:
            return False

        try:
            new_policy = self._load_from_file(self._path)
        except ConfigurationException as e:
            logger.error("Failed to reload SLA policy", extra={"error": e.details.get("error")})
            return False

        with self._lock:
            self._policy = new_policy
        logger.info("SLA policy reloaded", extra={"severity_targets": new_policy.severity_targets})
        return True

    def start_watching(self) -> None:
        """
        Start watching the policy file for changes.

        Skips watching when the file does not exist or the platform has no
        file notification support.
        """
        if self._path is None:
            raise RuntimeError("Policy not loaded. Call load() first.")

        if not self._path.exists():
            logger.info("SLA policy file absent, not watching", extra={"path": str(self._path)})
            return

        try:
            self._observer = Observer()
            handler = ConfigFileHandler(self, self._path)
            self._observer.schedule(handler, str(self._path.parent.resolve()), recursive=False)
            self._observer.start()
            logger.info("Watching SLA policy file", extra={"path": str(self._path)})
        except OSError as e:
            logger.warning("File watching not available, using static policy", extra={"error": str(e)})
            self._observer = None

    def stop_watching(self) -> None:
        """Stop watching (safe to call even if not watching)."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    def get_policy(self) -> SLAPolicy:
        with self._lock:
            if self._policy is None:
                raise RuntimeError("SLA policy not loaded")
            return self._policy


class SweepJobs:
    """
    Job bodies run by the scheduler.

    Each run opens its own session; the manual endpoints call the same
    services, so both paths write identical events.
    """

    def __init__(
        self,
        policy_provider: ISLAPolicyProvider,
        event_bus: Optional[EventBus] = None,
        session_factory: Callable = get_session_context
    ):
        self._policy_provider = policy_provider
        self._bus = event_bus
        self._session_factory = session_factory

    async def auto_resolve(self, triggered_by: str = "scheduler") -> SweepResult:
        async with self._session_factory() as session:
            service = AutoResolutionService(
                SQLAlchemyTicketRepository(session),
                SQLAlchemyEventStore(session),
                event_bus=deferred_event_bus(session, self._bus),
                policy_provider=self._policy_provider,
            )
            return await service.auto_resolve_user_dependency(triggered_by=triggered_by)

    async def cleanup(self, triggered_by: str = "scheduler") -> SweepResult:
        async with self._session_factory() as session:
            service = AutoResolutionService(
                SQLAlchemyTicketRepository(session),
                SQLAlchemyEventStore(session),
                event_bus=deferred_event_bus(session, self._bus),
                policy_provider=self._policy_provider,
            )
            return await service.cleanup_past_user_dependency(triggered_by=triggered_by)

    async def refresh_sla(self) -> int:
        async with self._session_factory() as session:
            service = SLAService(
                SQLAlchemyTicketRepository(session),
                SQLAlchemyEventStore(session),
                policy_provider=self._policy_provider,
            )
            return await service.refresh_breach_flags()

    async def run_sweeps(self) -> None:
        """Scheduled entry point: both sweeps, independently."""
        for name, job in (("auto_resolve", self.auto_resolve), ("cleanup", self.cleanup)):
            try:
                await job()
            except Exception as e:
                logger.error("Scheduled sweep failed", extra={"sweep_type": name, "error": str(e)})

    async def run_sla_refresh(self) -> None:
        try:
            await self.refresh_sla()
        except Exception as e:
            logger.error("SLA refresh failed", extra={"error": str(e)})


class SweepScheduler:
    """
    Wrapper for APScheduler running the sweeps and the SLA refresh.

    Manages the lifecycle of the scheduler and jobs.
    """

    def __init__(
        self,
        jobs: SweepJobs,
        sweep_hours: Optional[list] = None,
        refresh_interval_seconds: Optional[int] = None
    ):
        self._jobs = jobs
        self.sweep_hours = sweep_hours or settings.sweep_hours
        self.refresh_interval_seconds = refresh_interval_seconds or settings.sla_refresh_interval
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    async def start(self) -> None:
        if self._running:
            logger.warning("Sweep scheduler already running")
            return

        self._scheduler = AsyncIOScheduler(timezone="UTC")

        self._scheduler.add_job(
            self._jobs.run_sweeps,
            CronTrigger(hour=",".join(str(h) for h in self.sweep_hours), minute=0, timezone="UTC"),
            id="user_dependency_sweeps",
            name="User dependency sweeps",
            misfire_grace_time=600,
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )
        self._scheduler.add_job(
            self._jobs.run_sla_refresh,
            "interval",
            seconds=self.refresh_interval_seconds,
            id="sla_breach_refresh",
            name="SLA breach refresh",
            misfire_grace_time=60,
            max_instances=1,
            replace_existing=True
        )

        self._scheduler.start()
        self._running = True

        logger.info(
            "Sweep scheduler started",
            extra={"sweep_hours": self.sweep_hours, "refresh_interval_seconds": self.refresh_interval_seconds}
        )

    async def stop(self) -> None:
        if not self._running:
            return
        if self._scheduler:
            self._scheduler.shutdown(wait=False)
        self._running = False
        logger.info("Sweep scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._running
