"""
Activity Descriptions
=====================

Display sentences for feed items. Pure functions, no I/O.
"""

from typing import Optional

from escalation_desk.activity.domain.entities import FeedItem, canonical_action
from escalation_desk.tickets.domain import status_label

# action -> past-tense verb for the "<ref> was <verb> by <actor>" template
_SIMPLE_VERBS = {
    "reopened": "reopened",
    "resolved": "resolved",
    "approved": "approved",
    "deleted": "deleted",
}


def format_role(role: Optional[str]) -> str:
    """`ticket_admin` -> `Ticket Admin`."""
    if not role:
        return ""
    return role.replace("_", " ").title()


def _actor_text(actor: str, role: Optional[str]) -> str:
    label = format_role(role)
    return f"{actor} ({label})" if label else actor


def describe_activity(
    action_type: str,
    old_value: Optional[str],
    new_value: Optional[str],
    actor: str,
    actor_role: Optional[str] = None,
    is_bulk: bool = False,
    count: int = 1,
    ticket_number: Optional[str] = None
) -> str:
    """
    One-line description of an activity.

    Unknown action types fall back to a generic "<ref> <action> by <actor>".
    """
    action = canonical_action(action_type)
    ref = f"{count} tickets" if is_bulk else f"Ticket {ticket_number or 'N/A'}"
    was = "were" if is_bulk else "was"
    by = _actor_text(actor, actor_role)

    if action == "created":
        return f"{ref} {was} created by {by}"

    if action == "status_changed":
        old_label = status_label(old_value) if old_value else "N/A"
        new_label = status_label(new_value) if new_value else "N/A"
        return f'{ref} status changed from "{old_label}" to "{new_label}" by {by}'

    if action == "assigned":
        if new_value is None and old_value:
            return f"{ref} {was} unassigned from {old_value} by {by}"
        return f"{ref} {was} assigned to {new_value or 'N/A'} by {by}"

    if action == "sla_breached":
        target = "their SLA targets" if is_bulk else "the SLA target"
        return f"{ref} breached {target}"

    if action in _SIMPLE_VERBS:
        return f"{ref} {was} {_SIMPLE_VERBS[action]} by {by}"

    return f"{ref} {action.replace('_', ' ')} by {by}"


def describe(item: FeedItem) -> str:
    """Description for an entry or a bulk group."""
    if item.is_bulk:
        return describe_activity(
            item.action_type,
            item.old_value,
            item.new_value,
            item.performed_by_name,
            item.performed_by_role,
            is_bulk=True,
            count=item.count,
        )
    return describe_activity(
        item.action_type,
        item.old_value,
        item.new_value,
        item.performed_by_name,
        item.performed_by_role,
        ticket_number=item.ticket_number,
    )
