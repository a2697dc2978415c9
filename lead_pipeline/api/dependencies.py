"""
Request dependencies.

Caller identity arrives in headers set by the authenticating gateway and is
trusted as-is.
"""

from __future__ import annotations

from typing import Iterable

from fastapi import Header, HTTPException

from lead_pipeline.domain.actor import Actor, ActorRole


def get_actor(
    x_actor_id: str = Header(..., description="Authenticated user id"),
    x_actor_role: ActorRole = Header(..., description="Authenticated user role"),
) -> Actor:
    if not x_actor_id.strip():
        raise HTTPException(status_code=401, detail="X-Actor-Id must not be blank")
    return Actor(actor_id=x_actor_id.strip(), role=x_actor_role)


def require_role(actor: Actor, roles: Iterable[ActorRole]) -> None:
    allowed = frozenset(roles)
    if actor.role not in allowed:
        names = ", ".join(sorted(role.value for role in allowed))
        raise HTTPException(
            status_code=403,
            detail=f"Role {actor.role.value} may not perform this action (allowed: {names})",
        )
