"""
SLA Value Objects
==================

Immutable value objects for SLA domain.

Value objects are defined by their attributes rather than an identity.
They are immutable and can be freely shared.
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, Optional

from pydantic import BaseModel, Field, field_validator

from escalation_desk.config import Severity

DEFAULT_SEVERITY_TARGETS: Dict[str, int] = {
    Severity.SEV1.value: 4,
    Severity.SEV2.value: 8,
    Severity.SEV3.value: 24,
}


class SLAPolicy(BaseModel):
    """
    SLA policy loaded from YAML.

    Target hours per severity; anything unknown falls back to
    `default_target_hours`.
    """
    severity_targets: Dict[str, int] = Field(
        default_factory=lambda: dict(DEFAULT_SEVERITY_TARGETS),
        description="SLA targets in hours by severity"
    )
    default_target_hours: int = Field(default=24, ge=1, description="Target for unknown severities")
    auto_resolve_after_days: int = Field(
        default=7,
        ge=1,
        description="Days in user dependency before a ticket is auto-resolved"
    )

    @field_validator("severity_targets")
    @classmethod
    def fill_missing_severities(cls, v: Dict[str, int]) -> Dict[str, int]:
        """Every known severity gets a target, defaulting to the built-in table."""
        for severity, hours in DEFAULT_SEVERITY_TARGETS.items():
            v.setdefault(severity, hours)
        for severity, hours in v.items():
            if hours <= 0:
                raise ValueError(f"target hours for {severity} must be positive")
        return v

    def target_hours(self, severity: Optional[str]) -> int:
        """Target hours for a severity."""
        if severity is None:
            return self.default_target_hours
        return self.severity_targets.get(str(getattr(severity, "value", severity)), self.default_target_hours)


class ISLAPolicyProvider(ABC):
    """Interface for SLA policy access."""

    @abstractmethod
    def get_policy(self) -> SLAPolicy:
        """Get the current SLA policy."""


class StaticPolicyProvider(ISLAPolicyProvider):
    """Fixed policy, used when no config file is watched."""

    def __init__(self, policy: Optional[SLAPolicy] = None):
        self._policy = policy or SLAPolicy()

    def get_policy(self) -> SLAPolicy:
        return self._policy


class SLACalculator:
    """
    Pure functions for SLA calculations.

    Stateless utility class, all SLA arithmetic in one place.
    """

    @staticmethod
    def target_hours(severity: Optional[str], policy: Optional[SLAPolicy] = None) -> int:
        """sev1 -> 4, sev2 -> 8, sev3 -> 24, unknown -> 24 under the default policy."""
        return (policy or SLAPolicy()).target_hours(severity)

    @staticmethod
    def deadline(submitted_at: datetime, target_hours: int) -> datetime:
        return submitted_at + timedelta(hours=target_hours)

    @staticmethod
    def is_breached(
        submitted_at: datetime,
        target_hours: int,
        now: datetime,
        resolved_at: Optional[datetime] = None
    ) -> bool:
        """
        Unresolved tickets breach once `now - submitted_at` exceeds the target;
        resolved tickets are judged on `resolved_at - submitted_at`.
        """
        end = resolved_at if resolved_at is not None else now
        return (end - submitted_at) > timedelta(hours=target_hours)

    @staticmethod
    def resolution_time_hours(submitted_at: datetime, resolved_at: datetime) -> float:
        """Elapsed hours between submission and resolution, one decimal."""
        return round((resolved_at - submitted_at).total_seconds() / 3600, 1)

    @staticmethod
    def whole_days_between(start: datetime, now: datetime) -> int:
        """floor((now - start) / 24h)."""
        return math.floor((now - start).total_seconds() / 86400)

    @staticmethod
    def compliance_percentage(resolved_count: int, breached_resolved_count: int) -> float:
        """
        Share of resolved tickets that met their SLA, as a percentage.

        With nothing resolved yet compliance is 100%.
        """
        if resolved_count == 0:
            return 100.0
        return round((resolved_count - breached_resolved_count) / resolved_count * 100, 2)

    @staticmethod
    def average_resolution_hours(values: Iterable[Optional[float]]) -> float:
        hours = [v for v in values if v is not None]
        if not hours:
            return 0.0
        return round(sum(hours) / len(hours), 1)


@dataclass(frozen=True)
class DependencyAge:
    """How long a ticket has been waiting on the reporter."""
    ticket_id: str
    ticket_number: str
    reference_at: datetime
    days_in_dependency: int
    will_auto_resolve_in: int

    @property
    def is_due(self) -> bool:
        return self.will_auto_resolve_in == 0


@dataclass(frozen=True)
class IssueDate:
    """
    Exam date(s) a ticket refers to.

    `last_exam_date` drives the cleanup sweep: ongoing or undated issues
    never become eligible.
    """
    type: str
    dates: tuple = ()
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @classmethod
    def from_payload(cls, payload: Optional[dict], strict: bool = True) -> Optional["IssueDate"]:
        """
        Build from the stored `issue_date` JSON.

        Raises:
            ValueError: If a date is unreadable and `strict` is set; otherwise
                the unreadable date is left out
        """
        if not payload:
            return None

        def parse(value) -> Optional[date]:
            try:
                return _parse_date(value)
            except ValueError:
                if strict:
                    raise
                return None

        raw_dates = []
        for item in payload.get("dates") or []:
            # multiple-date entries may carry a description alongside the date
            value = item.get("date") if isinstance(item, dict) else item
            parsed = parse(value)
            if parsed is not None:
                raw_dates.append(parsed)
        return cls(
            type=payload.get("type", "single"),
            dates=tuple(raw_dates),
            start_date=parse(payload.get("start_date")),
            end_date=parse(payload.get("end_date")),
        )

    @property
    def last_exam_date(self) -> Optional[date]:
        if self.type == "ongoing":
            return None
        if self.type == "range":
            return self.end_date or self.start_date
        if self.type == "multiple":
            return max(self.dates) if self.dates else None
        return self.dates[0] if self.dates else None

    def has_passed(self, today: date) -> bool:
        last = self.last_exam_date
        return last is not None and last < today


def _parse_date(value) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).date()
    except ValueError:
        raise ValueError(f"Unreadable exam date '{value}'") from None
