"""
Order status change notifications.

The order core emits one OrderStatusChanged event per accepted transition,
after the transaction that made the change has committed. Delivery belongs to
an external collaborator; a failing dispatcher is logged and never undoes the
transition.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Protocol
from uuid import UUID

from src.core.logging import get_logger
from src.database.base import utcnow

logger = get_logger(__name__)


@dataclass(frozen=True)
class OrderStatusChanged:
    """An accepted order status transition."""

    order_id: UUID
    old_status: Optional[str]
    new_status: str
    order_number: Optional[str] = None
    occurred_at: datetime = field(default_factory=utcnow)

    def to_payload(self) -> dict[str, Any]:
        """Serialize the event for transport."""
        return {
            "order_id": str(self.order_id),
            "order_number": self.order_number,
            "old_status": self.old_status,
            "new_status": self.new_status,
            "occurred_at": self.occurred_at.isoformat(),
        }


class NotificationDispatcher(Protocol):
    """Receives order status change events for delivery."""

    async def dispatch(self, event: OrderStatusChanged) -> None:
        ...


class LoggingNotificationDispatcher:
    """Dispatcher that records events in the application log."""

    async def dispatch(self, event: OrderStatusChanged) -> None:
        logger.info("Order status notification", **event.to_payload())


class RecordingNotificationDispatcher:
    """Dispatcher that keeps events in memory, for wiring checks and tests."""

    def __init__(self) -> None:
        self.events: list[OrderStatusChanged] = []

    async def dispatch(self, event: OrderStatusChanged) -> None:
        self.events.append(event)


async def dispatch_safely(
    dispatcher: NotificationDispatcher, event: OrderStatusChanged
) -> bool:
    """
    Dispatch an event, logging instead of raising on failure.

    Args:
        dispatcher: Target dispatcher
        event: Event to deliver

    Returns:
        True if the dispatcher accepted the event
    """
    try:
        await dispatcher.dispatch(event)
        return True
    except Exception as e:
        logger.error(
            "Order notification dispatch failed",
            order_id=str(event.order_id),
            new_status=event.new_status,
            error=str(e),
            error_type=type(e).__name__,
        )
        return False
