"""Order state machine implementation with transition validation.

This module implements the OrderStateMachine class, the only code allowed to
change an order's status or payment status. Every change is a
compare-and-set against the status that was read, so a concurrent writer
surfaces as a ConflictError instead of being silently overwritten.
Cancellation returns reserved stock in the same transaction as the status
write, and every accepted status change appends one tracking event.
"""

from dataclasses import dataclass
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import case, true
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import Settings, get_settings
from src.core.logging import get_logger
from src.database.base import utcnow
from src.database.models.order import Order, TrackingEvent
from src.services.orders.enums import (
    ActorRole,
    OrderStatus,
    PaymentStatus,
    get_allowed_order_transitions,
    role_may_transition,
    validate_order_status_transition,
    validate_payment_status_transition,
)
from src.services.orders.errors import (
    ConflictError,
    InvalidTransitionError,
    OrderNotFoundError,
    UnauthorizedError,
)
from src.services.orders.ledger import TrackingLedger
from src.services.orders.repository import OrderRepository
from src.services.orders.stock import StockReserver

logger = get_logger(__name__)


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of an accepted status change."""

    order: Order
    old_status: OrderStatus
    new_status: OrderStatus
    event: TrackingEvent


@dataclass(frozen=True)
class PaymentResult:
    """Outcome of an accepted payment status change."""

    order: Order
    old_status: PaymentStatus
    new_status: PaymentStatus


class OrderStateMachine:
    """State machine for managing order lifecycle transitions.

    The caller owns the transaction: on any exception it must roll back,
    which also undoes a stock release performed during cancellation.
    """

    def __init__(
        self,
        session: AsyncSession,
        settings: Optional[Settings] = None,
        repository: Optional[OrderRepository] = None,
        stock: Optional[StockReserver] = None,
        ledger: Optional[TrackingLedger] = None,
    ):
        """Initialize state machine with database session.

        Args:
            session: Async database session for persistence
            settings: Settings carrying the late-cancellation policy
            repository: Order repository, built from the session if omitted
            stock: Stock reserver, built from the session if omitted
            ledger: Tracking ledger, built from the session if omitted
        """
        self.session = session
        self.settings = settings or get_settings()
        self.repository = repository or OrderRepository(session)
        self.stock = stock or StockReserver(session)
        self.ledger = ledger or TrackingLedger(session)

    @property
    def allow_late_cancellation(self) -> bool:
        return self.settings.allow_late_cancellation

    def validate_transition(
        self,
        current_status: OrderStatus,
        target_status: OrderStatus,
        actor_role: ActorRole,
    ) -> None:
        """Validate that a role may move an order between two statuses.

        Raises:
            InvalidTransitionError: If the edge is not part of the graph
            UnauthorizedError: If the edge exists but the role may not drive it
        """
        if not validate_order_status_transition(
            current_status, target_status, self.allow_late_cancellation
        ):
            allowed = get_allowed_order_transitions(
                current_status, self.allow_late_cancellation
            )
            raise InvalidTransitionError(
                current_status,
                target_status,
                allowed_transitions=sorted(s.value for s in allowed),
            )

        if not role_may_transition(actor_role, current_status, target_status):
            raise UnauthorizedError(
                f"Role {actor_role.value} may not move an order from "
                f"{current_status.value} to {target_status.value}",
                role=actor_role.value,
                current_status=current_status.value,
                target_status=target_status.value,
            )

    async def transition(
        self,
        order_id: UUID,
        actor_role: ActorRole,
        target_status: OrderStatus,
        *,
        location: Optional[str] = None,
        notes: Optional[str] = None,
        description: Optional[str] = None,
    ) -> TransitionResult:
        """Move an order to ``target_status``.

        Args:
            order_id: Order to transition
            actor_role: Role of the acting party
            target_status: Desired status
            location: Location recorded in the tracking event
            notes: Notes recorded in the tracking event
            description: Description recorded in the tracking event

        Returns:
            TransitionResult with the reloaded order and the new event

        Raises:
            OrderNotFoundError: If the order does not exist
            InvalidTransitionError: If the edge is not part of the graph
            UnauthorizedError: If the role may not drive the edge
            ConflictError: If the status changed after it was read
        """
        order = await self.repository.get_by_id(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)

        current_status = order.status
        self.validate_transition(current_status, target_status, actor_role)

        now = utcnow()
        values: dict[str, Any] = {"status": target_status}
        if target_status == OrderStatus.CANCELLED:
            values["cancelled_at"] = now
            # Evaluated against the row so a concurrent payment is not missed.
            values["refund_required"] = case(
                (Order.payment_status == PaymentStatus.PAID, true()),
                else_=Order.refund_required,
            )
        elif target_status == OrderStatus.DELIVERED:
            values["actual_delivery"] = now

        updated = await self.repository.compare_and_set_status(
            order.id, current_status, values
        )
        if not updated:
            logger.warning(
                "Order status changed concurrently",
                order_id=str(order.id),
                expected_status=current_status.value,
                target_status=target_status.value,
            )
            raise ConflictError(
                "Order status changed concurrently, reload and retry",
                order_id=str(order.id),
                expected_status=current_status.value,
            )

        if target_status == OrderStatus.CANCELLED:
            await self.stock.release_all(order.items)

        event = await self.ledger.append(
            order.id,
            target_status,
            location=location,
            description=description,
            notes=notes,
        )

        order = await self.repository.get_by_id(order.id)

        logger.info(
            "State transition applied",
            order_id=str(order.id),
            transition=f"{current_status.value}->{target_status.value}",
            actor_role=actor_role.value,
            refund_required=order.refund_required,
        )

        return TransitionResult(
            order=order,
            old_status=current_status,
            new_status=target_status,
            event=event,
        )

    async def mark_payment_status(
        self,
        order_id: UUID,
        payment_status: PaymentStatus,
        payment_id: Optional[str] = None,
    ) -> PaymentResult:
        """Record a payment status reported by the payment callback.

        Args:
            order_id: Order the payment belongs to
            payment_status: Reported payment status
            payment_id: Gateway payment reference

        Returns:
            PaymentResult with the reloaded order

        Raises:
            OrderNotFoundError: If the order does not exist
            InvalidTransitionError: If the payment edge is not allowed, or a
                payment is reported for a cancelled order
            ConflictError: If the payment status changed after it was read
        """
        order = await self.repository.get_by_id(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)

        current = order.payment_status
        if not validate_payment_status_transition(current, payment_status):
            raise InvalidTransitionError(
                current, payment_status, field="payment_status", order_id=str(order.id)
            )

        values: dict[str, Any] = {"payment_status": payment_status}
        if payment_id is not None:
            values["payment_id"] = payment_id

        if payment_status == PaymentStatus.PAID:
            if order.status == OrderStatus.CANCELLED:
                raise InvalidTransitionError(
                    current,
                    payment_status,
                    field="payment_status",
                    order_id=str(order.id),
                    reason="order is cancelled",
                )
            values["paid_at"] = utcnow()
        elif payment_status == PaymentStatus.REFUNDED:
            values["refund_required"] = False

        updated = await self.repository.compare_and_set_payment(
            order.id,
            current,
            values,
            excluded_status=(
                OrderStatus.CANCELLED if payment_status == PaymentStatus.PAID else None
            ),
        )
        if not updated:
            logger.warning(
                "Payment status changed concurrently",
                order_id=str(order.id),
                expected_status=current.value,
                target_status=payment_status.value,
            )
            raise ConflictError(
                "Payment status changed concurrently, reload and retry",
                order_id=str(order.id),
                expected_status=current.value,
            )

        order = await self.repository.get_by_id(order.id)

        logger.info(
            "Payment status updated",
            order_id=str(order.id),
            transition=f"{current.value}->{payment_status.value}",
        )

        return PaymentResult(order=order, old_status=current, new_status=payment_status)
