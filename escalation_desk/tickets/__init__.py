"""
Ticket Lifecycle Module
=======================

Bounded Context for escalation tickets raised during exam invigilation.

Responsibilities:
- Ticket submission with human-readable numbering
- Role-gated status state machine, reopen and soft delete
- Resolver/approver assignment (many-to-many, append-only history)
- Append-only event log written by every mutation
"""
