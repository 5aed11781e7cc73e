"""
Activity Interfaces Layer
==========================

API routes for the activity feed.
"""

from escalation_desk.activity.interfaces.controllers import activity_router

__all__ = ["activity_router"]
