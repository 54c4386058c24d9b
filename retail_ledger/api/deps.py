from dataclasses import dataclass
from enum import Enum

from fastapi import Depends, HTTPException, Request, status


class ActorRole(str, Enum):
    ADMIN = "admin"
    SHOP_OWNER = "shop_owner"
    AGENT = "agent"


ROLE_PERMISSIONS: dict[ActorRole, set[str]] = {
    ActorRole.ADMIN: {
        "stock:manage",
        "stock:view",
        "ledger:assign",
        "ledger:sell",
        "ledger:return",
        "ledger:view",
        "contracts:manage",
        "contracts:collect",
        "contracts:view",
        "reports:view",
    },
    ActorRole.SHOP_OWNER: {
        "stock:manage",
        "stock:view",
        "ledger:assign",
        "ledger:sell",
        "ledger:return",
        "ledger:view",
        "contracts:manage",
        "contracts:collect",
        "contracts:view",
        "reports:view",
    },
    ActorRole.AGENT: {"stock:view", "ledger:sell", "ledger:return", "ledger:view", "contracts:collect", "contracts:view"},
}


@dataclass(frozen=True)
class Actor:
    id: int
    role: ActorRole
    shop_id: int | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN


def _parse_int(value: str | None) -> int | None:
    if value is None:
        return None
    cleaned = value.strip().strip("\"'").strip()
    if not cleaned:
        return None
    return int(cleaned)


def get_current_actor(request: Request) -> Actor:
    """Identity forwarded by the upstream auth gateway in X-Actor-* headers."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Missing or invalid actor identity",
    )
    try:
        actor_id = _parse_int(request.headers.get("x-actor-id"))
        shop_id = _parse_int(request.headers.get("x-actor-shop-id"))
        role = ActorRole(request.headers.get("x-actor-role", "").strip().lower())
    except ValueError:
        raise credentials_exception from None
    if actor_id is None:
        raise credentials_exception
    if role != ActorRole.ADMIN and shop_id is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Actor is not attached to a shop",
        )
    return Actor(id=actor_id, role=role, shop_id=shop_id)


def require_permission(permission: str):
    def checker(actor: Actor = Depends(get_current_actor)) -> Actor:
        permissions = ROLE_PERMISSIONS.get(actor.role, set())
        if permission not in permissions:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission required: {permission}",
            )
        return actor

    return checker


def enforce_shop_scope(actor: Actor, shop_id: int | None) -> None:
    if actor.is_admin or shop_id is None:
        return
    if shop_id != actor.shop_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Cross-shop access is not allowed")


def resolve_effective_shop_id(actor: Actor, requested_shop_id: int | None) -> int | None:
    if actor.is_admin:
        return requested_shop_id
    if requested_shop_id is not None:
        enforce_shop_scope(actor, requested_shop_id)
    return actor.shop_id


def enforce_agent_scope(actor: Actor, agent_id: int) -> None:
    if actor.role == ActorRole.AGENT and agent_id != actor.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Agents can only act on their own assignments")
