"""
SLA Infrastructure Layer
=========================

Contains:
- External: SLA policy hot-reload and the sweep scheduler
"""

from escalation_desk.sla.infrastructure.external import (
    ConfigFileHandler,
    SLAConfigManager,
    SweepJobs,
    SweepScheduler,
)

__all__ = [
    "ConfigFileHandler",
    "SLAConfigManager",
    "SweepJobs",
    "SweepScheduler",
]
