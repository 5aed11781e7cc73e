"""
Ticket Status State Machine
============================

Role-gated transition table for the ticket lifecycle.

    open -> in_progress -> {ops_input_required, user_dependency,
    ops_user_dependency} -> send_for_approval -> approved -> resolved

`resolved` is terminal. `ops_user_dependency` waits on operations staff
and the reporter at once; each exit records which dependencies cleared.
Reopening back to `open` is handled separately by `validate_reopen`.
"""

from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Tuple

from escalation_desk.config import ActorRole, TicketStatus
from escalation_desk.core import InvalidTransitionException

S = TicketStatus

WORKING_ROLES: FrozenSet[ActorRole] = frozenset({
    ActorRole.RESOLVER,
    ActorRole.APPROVER,
    ActorRole.TICKET_ADMIN,
    ActorRole.SUPER_ADMIN,
})
APPROVER_ONLY: FrozenSet[ActorRole] = frozenset({ActorRole.APPROVER})
RESOLVE_ROLES: FrozenSet[ActorRole] = frozenset({ActorRole.RESOLVER, ActorRole.APPROVER})
SYSTEM_ONLY: FrozenSet[ActorRole] = frozenset({ActorRole.SYSTEM})

DEPENDENCY_STATUSES: FrozenSet[TicketStatus] = frozenset({S.USER_DEPENDENCY, S.OPS_USER_DEPENDENCY})


@dataclass(frozen=True)
class Transition:
    """One permitted edge of the state machine."""
    source: TicketStatus
    target: TicketStatus
    roles: FrozenSet[ActorRole] = WORKING_ROLES
    cleared_dependencies: Tuple[str, ...] = ()


def _edges(*transitions: Transition) -> Dict[TicketStatus, Transition]:
    return {t.target: t for t in transitions}


TRANSITIONS: Dict[TicketStatus, Dict[TicketStatus, Transition]] = {
    S.OPEN: _edges(
        Transition(S.OPEN, S.IN_PROGRESS),
    ),
    S.IN_PROGRESS: _edges(
        Transition(S.IN_PROGRESS, S.OPS_INPUT_REQUIRED),
        Transition(S.IN_PROGRESS, S.USER_DEPENDENCY),
        Transition(S.IN_PROGRESS, S.OPS_USER_DEPENDENCY),
        Transition(S.IN_PROGRESS, S.SEND_FOR_APPROVAL),
    ),
    S.OPS_INPUT_REQUIRED: _edges(
        Transition(S.OPS_INPUT_REQUIRED, S.IN_PROGRESS),
        Transition(S.OPS_INPUT_REQUIRED, S.USER_DEPENDENCY),
        Transition(S.OPS_INPUT_REQUIRED, S.OPS_USER_DEPENDENCY),
        Transition(S.OPS_INPUT_REQUIRED, S.SEND_FOR_APPROVAL),
    ),
    S.USER_DEPENDENCY: _edges(
        Transition(S.USER_DEPENDENCY, S.IN_PROGRESS),
        Transition(S.USER_DEPENDENCY, S.OPS_INPUT_REQUIRED),
        Transition(S.USER_DEPENDENCY, S.OPS_USER_DEPENDENCY),
        Transition(S.USER_DEPENDENCY, S.SEND_FOR_APPROVAL),
        # auto-resolution sweeps
        Transition(S.USER_DEPENDENCY, S.RESOLVED, roles=SYSTEM_ONLY),
    ),
    S.OPS_USER_DEPENDENCY: _edges(
        Transition(S.OPS_USER_DEPENDENCY, S.IN_PROGRESS, cleared_dependencies=("ops", "user")),
        Transition(S.OPS_USER_DEPENDENCY, S.SEND_FOR_APPROVAL, cleared_dependencies=("ops", "user")),
        Transition(S.OPS_USER_DEPENDENCY, S.OPS_INPUT_REQUIRED, cleared_dependencies=("user",)),
        Transition(S.OPS_USER_DEPENDENCY, S.USER_DEPENDENCY, cleared_dependencies=("ops",)),
    ),
    S.SEND_FOR_APPROVAL: _edges(
        Transition(S.SEND_FOR_APPROVAL, S.APPROVED, roles=APPROVER_ONLY),
        Transition(S.SEND_FOR_APPROVAL, S.IN_PROGRESS),
    ),
    S.APPROVED: _edges(
        Transition(S.APPROVED, S.RESOLVED, roles=RESOLVE_ROLES),
    ),
    S.RESOLVED: {},
}

# Statuses a ticket can be reopened from
REOPENABLE: FrozenSet[TicketStatus] = frozenset(
    s for s in TicketStatus if s not in (S.OPEN, S.RESOLVED)
)


def _coerce_role(role) -> ActorRole:
    try:
        return ActorRole(getattr(role, "value", role))
    except ValueError:
        return ActorRole.INVIGILATOR


def successors(status: TicketStatus) -> List[TicketStatus]:
    """All statuses reachable from `status` by some role."""
    return list(TRANSITIONS.get(TicketStatus(status), {}))


def allowed_targets(status: TicketStatus, role) -> List[TicketStatus]:
    """Statuses the given role may move a ticket to."""
    actor_role = _coerce_role(role)
    return [
        target for target, transition in TRANSITIONS.get(TicketStatus(status), {}).items()
        if actor_role in transition.roles
    ]


def validate_transition(current: TicketStatus, new: TicketStatus, role) -> Transition:
    """
    Check that `role` may move a ticket from `current` to `new`.

    Returns:
        The matching Transition

    Raises:
        InvalidTransitionException: If the edge does not exist or the
            role is not allowed to take it
    """
    current = TicketStatus(current)
    new = TicketStatus(new)
    actor_role = _coerce_role(role)

    transition = TRANSITIONS[current].get(new)
    if transition is None:
        reason = "ticket is closed" if current == S.RESOLVED else "not a permitted successor"
        raise InvalidTransitionException(current.value, new.value, actor_role.value, reason)

    if actor_role not in transition.roles:
        allowed = ", ".join(sorted(r.value for r in transition.roles))
        raise InvalidTransitionException(
            current.value, new.value, actor_role.value, f"only {allowed} may do this"
        )
    return transition


def validate_reopen(current: TicketStatus, role) -> None:
    """Raise InvalidTransitionException unless `role` may reopen from `current`."""
    current = TicketStatus(current)
    actor_role = _coerce_role(role)

    if current not in REOPENABLE:
        raise InvalidTransitionException(
            current.value, S.OPEN.value, actor_role.value, "ticket cannot be reopened from this status"
        )
    if actor_role not in WORKING_ROLES:
        raise InvalidTransitionException(
            current.value, S.OPEN.value, actor_role.value, "role may not reopen tickets"
        )


STATUS_LABELS: Dict[str, str] = {
    S.OPEN.value: "OPEN",
    S.IN_PROGRESS.value: "PENDING ON CX",
    S.OPS_INPUT_REQUIRED.value: "OPS DEPENDENCY",
    S.USER_DEPENDENCY.value: "USER DEPENDENCY",
    S.OPS_USER_DEPENDENCY.value: "OPS + USER DEPENDENCY",
    S.SEND_FOR_APPROVAL.value: "SEND FOR APPROVAL",
    S.APPROVED.value: "APPROVED",
    S.RESOLVED.value: "CLOSED",
}


def status_label(status) -> str:
    """Display label for a status; unknown values are upper-cased."""
    if status is None:
        return ""
    value = str(getattr(status, "value", status))
    return STATUS_LABELS.get(value, value.replace("_", " ").upper())
