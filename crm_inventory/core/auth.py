# crm_inventory/core/auth.py

from dataclasses import dataclass

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from crm_inventory.database import get_db
from crm_inventory.core.jwt import decode_access_token
from crm_inventory.core.oauth2 import bearer_scheme
from crm_inventory.inventory.ledger import Actor
from crm_inventory.models.organization import Organization
from crm_inventory.models.stock_movements import ActorType


@dataclass(frozen=True)
class AuthContext:
    """Identity of the caller: tenant plus the user or agent acting in it."""

    org_id: int
    user_id: str
    actor_type: ActorType = ActorType.USER

    @property
    def actor(self) -> Actor:
        return Actor(id=self.user_id, type=self.actor_type)


def get_auth_context(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> AuthContext:
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )

    payload = decode_access_token(credentials.credentials)

    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )

    user_id = payload["sub"]

    try:
        org_id = int(payload["org_id"])
        actor_type = ActorType(payload.get("actor_type", ActorType.USER.value))
    except (TypeError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )

    organization = db.query(Organization).filter(Organization.id == org_id).first()

    if organization is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Organization not found",
        )

    if organization.is_suspended:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Organization is suspended",
        )

    return AuthContext(org_id=organization.id, user_id=str(user_id), actor_type=actor_type)
