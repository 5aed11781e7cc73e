"""
SLA Application Services
=========================

Application services for SLA reporting, breach refresh and the
auto-resolution sweeps.

Following SOLID principles:
- Single Responsibility: Each service has one clear purpose
- Dependency Inversion: Depend on abstractions (repositories), not concrete implementations
"""

from collections import defaultdict
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple

from escalation_desk.config import EventAction, SweepType, TicketStatus, settings
from escalation_desk.core import DependencyUnavailableException, RepositoryException
from escalation_desk.shared.events import EventBus, TicketAutoResolved
from escalation_desk.shared.infrastructure.logging import get_logger, log_latency
from escalation_desk.sla.application.dto import (
    DependencyTicketResponse,
    DependencyWatchList,
    SeverityStats,
    SLASummary,
    SweepResult,
)
from escalation_desk.sla.domain import (
    DependencyAge,
    ISLAPolicyProvider,
    IssueDate,
    SLACalculator,
    StaticPolicyProvider,
)
from escalation_desk.tickets.application import IEventStore, ITicketRepository, TicketFilter
from escalation_desk.tickets.domain import Actor, Ticket

logger = get_logger(__name__)

# (eligible, resolution note, event details)
Eligibility = Tuple[bool, str, dict]


class SLAService:
    """
    Service for SLA reporting and breach tracking.

    Coordinates between domain logic and data access.
    """

    def __init__(
        self,
        ticket_repository: ITicketRepository,
        event_store: IEventStore,
        policy_provider: Optional[ISLAPolicyProvider] = None
    ):
        self._ticket_repo = ticket_repository
        self._events = event_store
        self._policy_provider = policy_provider or StaticPolicyProvider()

    @staticmethod
    def summarize(tickets: List[Ticket], now: datetime) -> SLASummary:
        """SLA figures for an in-memory set of tickets."""
        by_severity: Dict[str, SeverityStats] = defaultdict(SeverityStats)
        resolved = breached = breached_resolved = 0
        resolution_hours: List[Optional[float]] = []

        for ticket in tickets:
            is_breached = SLACalculator.is_breached(
                ticket.submitted_at, ticket.sla_target_hours, now, ticket.resolved_at
            )
            stats = by_severity[ticket.severity]
            stats.total += 1

            if ticket.is_resolved:
                resolved += 1
                stats.resolved += 1
                resolution_hours.append(ticket.resolution_time_hours)
            if is_breached:
                breached += 1
                stats.breached += 1
                if ticket.is_resolved:
                    breached_resolved += 1

        return SLASummary(
            total=len(tickets),
            resolved=resolved,
            breached=breached,
            breached_resolved=breached_resolved,
            compliance_percentage=SLACalculator.compliance_percentage(resolved, breached_resolved),
            average_resolution_hours=SLACalculator.average_resolution_hours(resolution_hours),
            by_severity=dict(by_severity),
            generated_at=now,
        )

    async def get_summary(self, filters: Optional[TicketFilter] = None, now: Optional[datetime] = None) -> SLASummary:
        now = now or datetime.now(timezone.utc)
        tickets = await self._ticket_repo.list_all(filters or TicketFilter())
        return self.summarize(tickets, now)

    async def refresh_breach_flags(self, now: Optional[datetime] = None) -> int:
        """
        Flag unresolved tickets that have run past their target.

        Each newly breached ticket gets one `sla_breached` event.

        Returns:
            Number of tickets newly flagged
        """
        now = now or datetime.now(timezone.utc)
        open_statuses = [s for s in TicketStatus if s != TicketStatus.RESOLVED]
        tickets = await self._ticket_repo.list_by_status(open_statuses)

        flagged = 0
        for ticket in tickets:
            if ticket.is_sla_breached or not ticket.refresh_sla(now):
                continue
            try:
                async with self._ticket_repo.savepoint():
                    if not await self._ticket_repo.mark_sla_breached(ticket.id):
                        continue
                    await self._events.append(
                        ticket.id,
                        EventAction.SLA_BREACHED,
                        Actor.system(),
                        old_value="false",
                        new_value="true",
                        details=ticket.breach_details(),
                        performed_at=now,
                    )
                flagged += 1
            except Exception as e:
                logger.error(
                    "Failed to flag SLA breach",
                    extra={"ticket_id": ticket.id, "ticket_number": ticket.ticket_number, "error": str(e)}
                )

        if flagged:
            logger.info("SLA breach flags refreshed", extra={"flagged": flagged, "checked": len(tickets)})
        return flagged


class AutoResolutionService:
    """
    Sweeps that force-resolve tickets stuck in user dependency.

    Both sweeps are idempotent and safe to run concurrently: the write is
    conditional on the ticket still being in user dependency, so a ticket
    another run already resolved is skipped without an error.
    """

    def __init__(
        self,
        ticket_repository: ITicketRepository,
        event_store: IEventStore,
        event_bus: Optional[EventBus] = None,
        policy_provider: Optional[ISLAPolicyProvider] = None,
        age_reference: Optional[str] = None
    ):
        self._ticket_repo = ticket_repository
        self._events = event_store
        self._bus = event_bus
        self._policy_provider = policy_provider or StaticPolicyProvider()
        self._age_reference = age_reference or settings.auto_resolve_reference

    @property
    def threshold_days(self) -> int:
        return self._policy_provider.get_policy().auto_resolve_after_days

    def dependency_age(self, ticket: Ticket, now: datetime) -> DependencyAge:
        reference_at = ticket.dependency_reference(self._age_reference)
        days = SLACalculator.whole_days_between(reference_at, now)
        return DependencyAge(
            ticket_id=ticket.id,
            ticket_number=ticket.ticket_number,
            reference_at=reference_at,
            days_in_dependency=days,
            will_auto_resolve_in=max(0, self.threshold_days - days),
        )

    async def _load_candidates(self) -> List[Ticket]:
        try:
            return await self._ticket_repo.list_by_status([TicketStatus.USER_DEPENDENCY])
        except RepositoryException:
            raise
        except Exception as e:
            raise DependencyUnavailableException(
                "Could not read tickets awaiting user response", {"error": str(e)}
            ) from e

    def _by_age(self, ticket: Ticket, now: datetime) -> Eligibility:
        age = self.dependency_age(ticket, now)
        if age.days_in_dependency < self.threshold_days:
            return False, "", {}
        note = (
            f"Automatically resolved by the system after {age.days_in_dependency} days "
            f"awaiting a response from the reporter."
        )
        return True, note, {
            "reason": "user_dependency_timeout",
            "days_in_dependency": age.days_in_dependency,
            "threshold_days": self.threshold_days,
        }

    def _by_exam_date(self, ticket: Ticket, now: datetime) -> Eligibility:
        exam_date = ticket.exam_date
        if exam_date is None or not exam_date.has_passed(now.date()):
            return False, "", {}
        last = exam_date.last_exam_date
        note = (
            f"Automatically resolved by the system: the exam date {last.isoformat()} has passed "
            f"while awaiting a response from the reporter."
        )
        return True, note, {
            "reason": "exam_date_passed",
            "exam_date": last.isoformat(),
            "days_in_dependency": self.dependency_age(ticket, now).days_in_dependency,
        }

    async def _sweep(
        self,
        sweep_type: SweepType,
        triggered_by: str,
        eligibility: Callable[[Ticket, datetime], Eligibility],
        now: Optional[datetime]
    ) -> SweepResult:
        started_at = datetime.now(timezone.utc)
        now = now or started_at
        actor = Actor.system()

        candidates = await self._load_candidates()

        errors: List[str] = []
        resolved: List[Ticket] = []

        for ticket in candidates:
            try:
                eligible, note, details = eligibility(ticket, now)
                if not eligible:
                    continue
                async with self._ticket_repo.savepoint():
                    was_breached = ticket.is_sla_breached
                    ticket.resolve_by_system(note, now)
                    if not await self._ticket_repo.save_if_status(ticket, TicketStatus.USER_DEPENDENCY):
                        # resolved or moved by someone else since we read it
                        continue
                    await self._events.append(
                        ticket.id,
                        EventAction.RESOLVED,
                        actor,
                        old_value=TicketStatus.USER_DEPENDENCY.value,
                        new_value=TicketStatus.RESOLVED.value,
                        details={**details, "sweep_type": sweep_type.value, "triggered_by": triggered_by},
                        performed_at=now,
                    )
                    if ticket.is_sla_breached and not was_breached:
                        await self._events.append(
                            ticket.id,
                            EventAction.SLA_BREACHED,
                            actor,
                            old_value="false",
                            new_value="true",
                            details=ticket.breach_details(),
                            performed_at=now,
                        )
                resolved.append(ticket)
            except Exception as e:
                message = getattr(e, "message", str(e))
                errors.append(f"Ticket {ticket.ticket_number}: {message}")
                logger.error(
                    "Auto-resolution failed for ticket",
                    extra={
                        "ticket_id": ticket.id,
                        "ticket_number": ticket.ticket_number,
                        "sweep_type": sweep_type.value,
                        "error": message,
                    }
                )

        result = SweepResult(
            sweep_type=sweep_type.value,
            triggered_by=triggered_by,
            resolved_count=len(resolved),
            errors=errors,
            resolved_ticket_numbers=[t.ticket_number for t in resolved],
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
            status=SweepResult.status_for(len(resolved), errors),
        )

        logger.info(
            "Sweep finished",
            extra={
                "sweep_type": sweep_type.value,
                "triggered_by": triggered_by,
                "candidates": len(candidates),
                "resolved_count": result.resolved_count,
                "error_count": len(errors),
                "status": result.status,
            }
        )

        if self._bus is not None:
            for ticket in resolved:
                await self._bus.publish(TicketAutoResolved(
                    ticket_id=ticket.id,
                    ticket_number=ticket.ticket_number,
                    old_status=TicketStatus.USER_DEPENDENCY.value,
                    new_status=TicketStatus.RESOLVED.value,
                    category=ticket.category,
                    description=ticket.description,
                    changed_by=actor.id,
                    sweep_type=sweep_type.value,
                    triggered_by=triggered_by,
                ))
        return result

    async def auto_resolve_user_dependency(
        self,
        triggered_by: str = "scheduler",
        now: Optional[datetime] = None
    ) -> SweepResult:
        """
        Resolve tickets that have been in user dependency for at least the
        configured number of whole days.

        Raises:
            DependencyUnavailableException: If the candidate list cannot be read
        """
        with log_latency(logger, "auto_resolve_sweep", triggered_by=triggered_by):
            return await self._sweep(SweepType.AUTO_RESOLVE, triggered_by, self._by_age, now)

    async def cleanup_past_user_dependency(
        self,
        triggered_by: str = "scheduler",
        now: Optional[datetime] = None
    ) -> SweepResult:
        """
        Resolve tickets in user dependency whose exam date is already past.

        Raises:
            DependencyUnavailableException: If the candidate list cannot be read
        """
        with log_latency(logger, "cleanup_sweep", triggered_by=triggered_by):
            return await self._sweep(SweepType.CLEANUP, triggered_by, self._by_exam_date, now)

    async def list_user_dependency_tickets(self, now: Optional[datetime] = None) -> DependencyWatchList:
        """Tickets awaiting the reporter, longest-waiting first."""
        now = now or datetime.now(timezone.utc)
        tickets = await self._load_candidates()

        rows = []
        for ticket in tickets:
            age = self.dependency_age(ticket, now)
            # unreadable exam dates show as unknown
            exam_date = IssueDate.from_payload(ticket.issue_date, strict=False)
            rows.append(DependencyTicketResponse(
                ticket_id=ticket.id,
                ticket_number=ticket.ticket_number,
                category=ticket.category,
                severity=ticket.severity,
                city=ticket.city,
                reference_at=age.reference_at,
                days_in_dependency=age.days_in_dependency,
                will_auto_resolve_in=age.will_auto_resolve_in,
                exam_date=exam_date.last_exam_date if exam_date else None,
            ))
        rows.sort(key=lambda r: r.reference_at)

        return DependencyWatchList(
            threshold_days=self.threshold_days,
            count=len(rows),
            auto_resolving_soon=sum(1 for r in rows if r.will_auto_resolve_in == 0),
            tickets=rows,
        )

    async def count_auto_resolving_soon(self, now: Optional[datetime] = None) -> int:
        """How many tickets the next age-based sweep would resolve."""
        now = now or datetime.now(timezone.utc)
        tickets = await self._load_candidates()
        return sum(1 for t in tickets if self.dependency_age(t, now).is_due)
