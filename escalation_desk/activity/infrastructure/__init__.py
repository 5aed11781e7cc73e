"""
Activity Infrastructure Layer
==============================

Read-only access to the event streams.
"""

from escalation_desk.activity.infrastructure.repositories import SQLAlchemyActivitySource

__all__ = ["SQLAlchemyActivitySource"]
