"""
SLA Application Layer
======================

Contains:
- Services: SLA reporting, breach refresh and auto-resolution sweeps
- DTOs: Data transfer objects for API serialization

This layer depends on the domain layer and repository interfaces,
but not on concrete infrastructure implementations.
"""

from escalation_desk.sla.application.dto import (
    DependencyTicketResponse,
    DependencyWatchList,
    SeverityStats,
    SLASummary,
    SweepResult,
)
from escalation_desk.sla.application.services import (
    AutoResolutionService,
    SLAService,
)

__all__ = [
    # DTOs
    "DependencyTicketResponse",
    "DependencyWatchList",
    "SeverityStats",
    "SLASummary",
    "SweepResult",
    # Services
    "AutoResolutionService",
    "SLAService",
]
