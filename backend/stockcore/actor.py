# Overview: Authorization context passed explicitly from the HTTP boundary into services.

from __future__ import annotations

from dataclasses import dataclass

ROLE_ADMIN = "admin"
ROLE_MANAGER = "manager"
ROLE_CASHIER = "cashier"
ROLE_INVENTORY = "inventory"
ROLES = (ROLE_ADMIN, ROLE_MANAGER, ROLE_CASHIER, ROLE_INVENTORY)


@dataclass(frozen=True)
class ActorContext:
    """
    Identity established once at the boundary.

    Services use it only for attribution (created_by / cancelled_by); the
    role check already happened before the service was called.
    """
    user_id: int
    role: str

    def has_role(self, *roles: str) -> bool:
        return self.role in roles


def actor_user_id(actor: ActorContext | None) -> int | None:
    return actor.user_id if actor is not None else None
