"""API Dependencies"""

from typing import Optional
from uuid import UUID
from fastapi import Depends, Header, HTTPException, status

from enrollpay.database import get_db
from enrollpay.models.enums import UserRole
from enrollpay.schemas.actor import Actor

__all__ = ["get_db", "get_actor", "require_admin"]


async def get_actor(
    x_actor_id: Optional[str] = Header(None, alias="X-Actor-Id"),
    x_actor_role: Optional[str] = Header(None, alias="X-Actor-Role"),
) -> Actor:
    """
    Build the calling actor from the identity headers set by the upstream gateway.

    Raises:
        HTTPException: 401 when the headers are missing, 400 when malformed
    """
    if not x_actor_id or not x_actor_role:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing actor identity headers",
        )
    try:
        actor_id = UUID(x_actor_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid actor ID",
        )
    try:
        role = UserRole(x_actor_role.lower())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid actor role",
        )
    return Actor(id=actor_id, role=role)


async def require_admin(actor: Actor = Depends(get_actor)) -> Actor:
    if not actor.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not enough permissions",
        )
    return actor


def ensure_self_or_admin(actor: Actor, student_id: UUID) -> None:
    """Students may only read their own records"""
    if not actor.is_admin and actor.id != student_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not enough permissions",
        )
