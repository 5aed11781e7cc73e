"""
Shared Kernel Module
====================

This module contains shared infrastructure and domain elements used across
all bounded contexts (Tickets, SLA and Activity).

Architecture Pattern: Modular Monolith
- Each module (tickets, sla, activity) is a bounded context
- Shared kernel contains generic infrastructure and the domain event bus

DO NOT add business logic from the bounded contexts to the shared kernel.
"""

__version__ = "1.0.0"
