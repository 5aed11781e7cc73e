"""
Shared API Dependencies
=======================

Request-scoped dependencies used by every router: the acting user, the
application event bus and the live SLA policy.
"""

from typing import Optional

from fastapi import Header, HTTPException, Request, status

from escalation_desk.config import ActorRole
from escalation_desk.shared.events import EventBus
from escalation_desk.sla.domain import ISLAPolicyProvider, StaticPolicyProvider
from escalation_desk.tickets.domain import Actor


async def get_actor(
    x_actor_id: Optional[str] = Header(None, alias="X-Actor-Id"),
    x_actor_name: Optional[str] = Header(None, alias="X-Actor-Name"),
    x_actor_role: Optional[str] = Header(None, alias="X-Actor-Role"),
) -> Actor:
    """
    Acting user as forwarded by the auth layer in front of this service.

    The system role is reserved for sweeps and cannot be claimed by a request.
    """
    if not x_actor_id or not x_actor_role:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-Actor-Id and X-Actor-Role headers are required"
        )
    try:
        role = ActorRole(x_actor_role.strip().lower())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Unknown actor role '{x_actor_role}'"
        )
    actor = Actor(id=x_actor_id, name=x_actor_name or x_actor_id, role=role)
    if actor.is_system:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Role 'system' is reserved")
    return actor


async def get_optional_actor(
    x_actor_id: Optional[str] = Header(None, alias="X-Actor-Id"),
    x_actor_name: Optional[str] = Header(None, alias="X-Actor-Name"),
    x_actor_role: Optional[str] = Header(None, alias="X-Actor-Role"),
) -> Optional[Actor]:
    """Acting user if the headers are present (ticket submission may be anonymous)."""
    if not x_actor_id:
        return None
    return await get_actor(x_actor_id, x_actor_name, x_actor_role or ActorRole.INVIGILATOR.value)


def get_event_bus(request: Request) -> Optional[EventBus]:
    return getattr(request.app.state, "event_bus", None)


def get_policy_provider(request: Request) -> ISLAPolicyProvider:
    provider = getattr(request.app.state, "sla_config", None)
    return provider if provider is not None else StaticPolicyProvider()
