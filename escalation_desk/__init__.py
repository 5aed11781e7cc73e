"""
Escalation Desk
===============

Ticket lifecycle and escalation engine for exam invigilation issues.
"""

__version__ = "1.0.0"
