"""
Ticket Interfaces Layer
========================

API controllers (FastAPI routes) for the ticket lifecycle.
"""

from escalation_desk.tickets.interfaces.controllers import tickets_router

__all__ = ["tickets_router"]
