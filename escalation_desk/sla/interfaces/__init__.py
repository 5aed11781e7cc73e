"""
SLA Interfaces Layer
=====================

API routes for SLA reporting and the manual sweep triggers.
"""

from escalation_desk.sla.interfaces.controllers import sla_router

__all__ = ["sla_router"]
