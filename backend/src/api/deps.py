"""
FastAPI dependencies for identifying the caller and building services.

This module provides dependency functions that verify the bearer token,
resolve the acting marketplace party, enforce role requirements and wire
the order service to the request-scoped database session.
"""

from typing import Annotated, Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import get_settings
from src.core.logging import get_logger, set_actor
from src.core.security import TokenError, decode_access_token
from src.database.connection import get_db
from src.services.notifications.dispatcher import (
    LoggingNotificationDispatcher,
    NotificationDispatcher,
)
from src.services.orders.enums import ActorRole
from src.services.orders.errors import OrderValidationError
from src.services.orders.service import Actor, OrderService

logger = get_logger(__name__)

security = HTTPBearer(auto_error=False)

_notification_dispatcher: NotificationDispatcher = LoggingNotificationDispatcher()


async def get_current_actor(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
) -> Actor:
    """
    Validate the bearer token and resolve the acting party.

    Args:
        credentials: HTTP Bearer token from Authorization header

    Returns:
        Actor: Party identifier and marketplace role

    Raises:
        HTTPException: 401 if the token is missing, invalid or expired
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if credentials is None:
        logger.warning("Authentication failed: No credentials provided")
        raise credentials_exception

    try:
        payload = decode_access_token(credentials.credentials)
        actor = Actor(
            actor_id=UUID(str(payload.get("sub"))),
            role=ActorRole.from_string(str(payload.get("role"))),
        )
    except TokenError as e:
        logger.warning("Authentication failed", code=e.code)
        raise credentials_exception from e
    except (ValueError, OrderValidationError) as e:
        logger.warning(
            "Authentication failed: malformed claims",
            error=str(e),
            error_type=type(e).__name__,
        )
        raise credentials_exception from e

    set_actor(str(actor.actor_id), actor.role.value)
    return actor


def require_role(*allowed_roles: ActorRole):
    """
    Create a dependency that requires specific marketplace roles.

    Example:
        @router.post("/{order_id}/transporter")
        async def assign(actor: Actor = Depends(require_role(ActorRole.FARMER))):
            ...
    """

    async def role_checker(
        actor: Annotated[Actor, Depends(get_current_actor)],
    ) -> Actor:
        if actor.role not in allowed_roles:
            logger.warning(
                "Access denied: Insufficient permissions",
                actor_role=actor.role.value,
                required_roles=[role.value for role in allowed_roles],
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return actor

    return role_checker


def get_notification_dispatcher() -> NotificationDispatcher:
    """Dispatcher receiving order status change events."""
    return _notification_dispatcher


async def get_order_service(
    db: Annotated[AsyncSession, Depends(get_db)],
    notifier: Annotated[NotificationDispatcher, Depends(get_notification_dispatcher)],
) -> OrderService:
    """Build an order service bound to the request's database session."""
    return OrderService(db, settings=get_settings(), notifier=notifier)


CurrentActor = Annotated[Actor, Depends(get_current_actor)]
PaymentCallbackActor = Annotated[
    Actor, Depends(require_role(ActorRole.ADMIN))
]
OrderServiceDep = Annotated[OrderService, Depends(get_order_service)]
DatabaseSession = Annotated[AsyncSession, Depends(get_db)]
