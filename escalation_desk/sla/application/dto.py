"""
SLA Application DTOs
=====================

Data Transfer Objects for SLA reporting and the auto-resolution sweeps.
"""

from datetime import date, datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

SweepStatusStr = Literal["success", "partial", "error"]


class SeverityStats(BaseModel):
    total: int = 0
    resolved: int = 0
    breached: int = 0


class SLASummary(BaseModel):
    """SLA figures over a set of tickets."""
    total: int = Field(..., description="Tickets in scope")
    resolved: int = Field(..., description="Resolved tickets")
    breached: int = Field(..., description="Breached tickets, resolved or not")
    breached_resolved: int = Field(..., description="Resolved tickets that missed their target")
    compliance_percentage: float = Field(..., description="100 when nothing is resolved yet")
    average_resolution_hours: float = Field(..., description="Mean over resolved tickets, one decimal")
    by_severity: Dict[str, SeverityStats] = Field(default_factory=dict)
    generated_at: datetime


class SweepResult(BaseModel):
    """
    Outcome of one sweep run.

    Scheduled and manual runs return the same shape; only `triggered_by`
    tells them apart.
    """
    sweep_type: str
    triggered_by: str
    resolved_count: int = 0
    errors: List[str] = Field(default_factory=list)
    resolved_ticket_numbers: List[str] = Field(default_factory=list)
    started_at: datetime
    finished_at: datetime
    status: SweepStatusStr = "success"

    @staticmethod
    def status_for(resolved_count: int, errors: List[str]) -> str:
        if not errors:
            return "success"
        return "partial" if resolved_count > 0 else "error"


class DependencyTicketResponse(BaseModel):
    """A ticket waiting on the reporter."""
    ticket_id: str
    ticket_number: str
    category: str
    severity: str
    city: Optional[str] = None
    reference_at: datetime
    days_in_dependency: int
    will_auto_resolve_in: int
    exam_date: Optional[date] = None


class DependencyWatchList(BaseModel):
    threshold_days: int
    count: int
    auto_resolving_soon: int
    tickets: List[DependencyTicketResponse]
