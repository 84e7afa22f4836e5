"""
Append-only tracking ledger for order status history.

The ledger only ever inserts rows. Entries are written inside the caller's
transaction, once per accepted status change, so the ledger and the order's
status commit or roll back together.
"""

from typing import Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.logging import get_logger
from src.database.models.order import TrackingEvent
from src.services.orders.enums import OrderStatus
from src.services.orders.errors import ConflictError, PersistenceError

logger = get_logger(__name__)

DEFAULT_DESCRIPTIONS: dict[OrderStatus, str] = {
    OrderStatus.PENDING: "Order has been placed successfully",
    OrderStatus.CONFIRMED: "Order confirmed by farmer",
    OrderStatus.PROCESSING: "Order is being prepared",
    OrderStatus.SHIPPED: "Order has been shipped",
    OrderStatus.IN_TRANSIT: "Order is in transit",
    OrderStatus.DELIVERED: "Order has been delivered",
    OrderStatus.CANCELLED: "Order has been cancelled",
}


class TrackingLedger:
    """Inserts and lists TrackingEvent rows."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def append(
        self,
        order_id: UUID,
        status: OrderStatus,
        location: Optional[str] = None,
        description: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> TrackingEvent:
        """
        Append one event for an accepted status change.

        Args:
            order_id: Order the event belongs to
            status: Status the order moved to
            location: Where the change happened
            description: Human-readable description, defaults per status
            notes: Free-form notes from the acting party

        Returns:
            The flushed TrackingEvent

        Raises:
            ConflictError: If another writer appended the same sequence
            PersistenceError: If the insert fails
        """
        try:
            last_sequence = await self.session.scalar(
                select(func.coalesce(func.max(TrackingEvent.sequence), 0)).where(
                    TrackingEvent.order_id == order_id
                )
            )
            event = TrackingEvent(
                order_id=order_id,
                sequence=int(last_sequence or 0) + 1,
                status=status,
                location=location,
                description=description or DEFAULT_DESCRIPTIONS.get(status),
                notes=notes,
            )
            self.session.add(event)
            await self.session.flush()
        except IntegrityError as e:
            logger.warning(
                "Concurrent tracking append detected",
                order_id=str(order_id),
                status=status.value,
                error=str(e),
            )
            raise ConflictError(
                "Order history changed concurrently", order_id=str(order_id)
            ) from e
        except SQLAlchemyError as e:
            logger.error(
                "Failed to append tracking event",
                order_id=str(order_id),
                status=status.value,
                error=str(e),
            )
            raise PersistenceError(
                "Failed to append tracking event", order_id=str(order_id)
            ) from e

        logger.debug(
            "Tracking event appended",
            order_id=str(order_id),
            status=status.value,
            sequence=event.sequence,
        )
        return event

    async def list(self, order_id: UUID) -> list[TrackingEvent]:
        """
        List an order's events in sequence order.

        Raises:
            PersistenceError: If the query fails
        """
        stmt = (
            select(TrackingEvent)
            .where(TrackingEvent.order_id == order_id)
            .order_by(TrackingEvent.sequence.asc())
        )
        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as e:
            logger.error(
                "Failed to list tracking events",
                order_id=str(order_id),
                error=str(e),
            )
            raise PersistenceError(
                "Failed to list tracking events", order_id=str(order_id)
            ) from e

        return list(result.scalars().all())
