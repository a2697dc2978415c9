"""
Domain: the authenticated caller of a mutating operation.

Identity arrives from the outer layer and is trusted as-is; no
authentication happens in this package.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ActorRole(str, Enum):
    ADMIN = "ADMIN"
    VENDOR = "VENDOR"
    ADVOCATE = "ADVOCATE"
    COLLECTIONS = "COLLECTIONS"
    FULFILLMENT = "FULFILLMENT"


@dataclass(frozen=True, slots=True)
class Actor:
    actor_id: str
    role: ActorRole

    def __post_init__(self) -> None:
        if not self.actor_id or not self.actor_id.strip():
            raise ValueError("actor_id must be a non-empty string")


SYSTEM_ACTOR = Actor(actor_id="system", role=ActorRole.ADMIN)
