"""
SLA Domain Layer
================

Domain layer for SLA tracking and auto-resolution.

Contains:
- Value Objects: SLAPolicy, IssueDate, DependencyAge
- Domain Services: Stateless SLA arithmetic (SLACalculator)

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from escalation_desk.sla.domain.value_objects import (
    DEFAULT_SEVERITY_TARGETS,
    DependencyAge,
    ISLAPolicyProvider,
    IssueDate,
    SLACalculator,
    SLAPolicy,
    StaticPolicyProvider,
)

__all__ = [
    "DEFAULT_SEVERITY_TARGETS",
    "DependencyAge",
    "ISLAPolicyProvider",
    "IssueDate",
    "SLACalculator",
    "SLAPolicy",
    "StaticPolicyProvider",
]
