"""
Order service facade enforcing ownership and transaction boundaries.

This module implements the OrderService class, the single entry point HTTP
handlers and payment callbacks use. It checks which party may see or act on
an order, runs every mutation in one transaction (commit on success,
rollback on any error) and emits notifications only after the commit.
"""

import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, AsyncIterator, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import Settings, get_settings
from src.core.logging import get_logger
from src.database.models.order import Order, TrackingEvent
from src.services.notifications.dispatcher import (
    LoggingNotificationDispatcher,
    NotificationDispatcher,
    OrderStatusChanged,
    dispatch_safely,
)
from src.services.orders.creator import CreateOrderRequest, OrderCreator
from src.services.orders.enums import ActorRole, OrderStatus, PaymentStatus
from src.services.orders.errors import (
    ConflictError,
    OrderNotFoundError,
    OrderServiceError,
    OrderValidationError,
    PersistenceError,
    UnauthorizedError,
)
from src.services.orders.ledger import TrackingLedger
from src.services.orders.pricing import quantize_money
from src.services.orders.repository import OrderRepository, party_scope
from src.services.orders.state_machine import OrderStateMachine

logger = get_logger(__name__)

MAX_PAGE_SIZE = 100

TRANSPORTER_ASSIGNABLE = (OrderStatus.CONFIRMED, OrderStatus.PROCESSING)


@dataclass(frozen=True)
class Actor:
    """Authenticated party acting on orders."""

    actor_id: uuid.UUID
    role: ActorRole

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN


@dataclass(frozen=True)
class OrderPage:
    """One page of a party's orders."""

    items: Sequence[Order]
    total: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        return (self.total + self.page_size - 1) // self.page_size


@dataclass(frozen=True)
class OrderSummary:
    """Order counts and revenue for one party."""

    total_orders: int
    pending_orders: int
    completed_orders: int
    cancelled_orders: int
    total_revenue: Decimal
    average_order_value: Decimal
    status_breakdown: dict[str, int] = field(default_factory=dict)


class OrderService:
    """
    Order service facade.

    Attributes:
        session: Async database session whose transaction this service owns
        repository: Order repository for data access
        creator: Order creator for new orders
        state_machine: State machine for status and payment changes
        ledger: Tracking ledger for order history
        notifier: Dispatcher receiving status change events
    """

    def __init__(
        self,
        session: AsyncSession,
        settings: Optional[Settings] = None,
        notifier: Optional[NotificationDispatcher] = None,
        creator: Optional[OrderCreator] = None,
        state_machine: Optional[OrderStateMachine] = None,
    ):
        """
        Initialize order service.

        Args:
            session: Async database session
            settings: Application settings
            notifier: Optional notification dispatcher, logs events if omitted
            creator: Optional order creator
            state_machine: Optional state machine
        """
        self.session = session
        self.settings = settings or get_settings()
        self.repository = OrderRepository(session)
        self.ledger = TrackingLedger(session)
        self.creator = creator or OrderCreator(session, settings=self.settings)
        self.state_machine = state_machine or OrderStateMachine(
            session, settings=self.settings
        )
        self.notifier = notifier or LoggingNotificationDispatcher()

    @asynccontextmanager
    async def _unit_of_work(self, operation: str, **context: Any) -> AsyncIterator[None]:
        """Commit on success, roll back on any error."""
        try:
            yield
            await self.session.commit()
        except OrderServiceError as e:
            await self.session.rollback()
            logger.warning(
                "Order operation rejected",
                operation=operation,
                error=e.message,
                code=e.code,
                **context,
            )
            raise
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(
                "Order operation failed",
                operation=operation,
                error=str(e),
                error_type=type(e).__name__,
                **context,
            )
            raise PersistenceError(f"Failed to {operation.replace('_', ' ')}") from e
        except Exception:
            await self.session.rollback()
            raise

    async def create_order(self, actor: Actor, request: CreateOrderRequest) -> Order:
        """
        Create an order for a buyer.

        Buyers may only order for themselves; admins may order for any buyer.

        Raises:
            UnauthorizedError: If the actor may not place this order
            OrderValidationError, NotFoundError, ProductNotActiveError,
            InsufficientStockError, ConflictError, PersistenceError:
                Propagated from order creation
        """
        if not actor.is_admin and (
            actor.role != ActorRole.BUYER or actor.actor_id != request.buyer_id
        ):
            raise UnauthorizedError(
                "Only buyers can place orders for themselves",
                role=actor.role.value,
            )

        async with self._unit_of_work("create_order", buyer_id=str(request.buyer_id)):
            order = await self.creator.create(request)

        await self._notify(order, None, OrderStatus.PENDING)
        return order

    async def get_order(self, actor: Actor, order_id: uuid.UUID) -> Order:
        """
        Get an order the actor may see.

        Raises:
            OrderNotFoundError: If the order does not exist
            UnauthorizedError: If the actor is not a party to the order
        """
        order = await self.repository.get_by_id(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        self._ensure_can_view(actor, order)
        return order

    async def get_order_by_number(self, actor: Actor, order_number: str) -> Order:
        """
        Get an order by its human-readable number.

        Raises:
            OrderNotFoundError: If the order does not exist
            UnauthorizedError: If the actor is not a party to the order
        """
        order = await self.repository.get_by_number(order_number)
        if order is None:
            raise OrderNotFoundError(order_number)
        self._ensure_can_view(actor, order)
        return order

    async def list_orders(
        self,
        actor: Actor,
        status: Optional[OrderStatus | str] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> OrderPage:
        """
        List the actor's orders, newest first.

        Raises:
            OrderValidationError: If pagination or status filter is invalid
        """
        if page < 1 or not 1 <= page_size <= MAX_PAGE_SIZE:
            raise OrderValidationError(
                f"page must be >= 1 and page_size between 1 and {MAX_PAGE_SIZE}",
                page=page,
                page_size=page_size,
            )
        status_filter = OrderStatus.from_string(status) if status is not None else None

        orders, total = await self.repository.list_for_party(
            party_scope(actor.role, actor.actor_id),
            status=status_filter,
            skip=(page - 1) * page_size,
            limit=page_size,
        )
        return OrderPage(items=orders, total=total, page=page, page_size=page_size)

    async def update_status(
        self,
        actor: Actor,
        order_id: uuid.UUID,
        target_status: OrderStatus | str,
        notes: Optional[str] = None,
        location: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Order:
        """
        Move an order the actor is a party to along its lifecycle.

        Raises:
            OrderValidationError: If the target status is unknown
            OrderNotFoundError: If the order does not exist
            UnauthorizedError: If the actor is not a party or the role may not
                drive the edge
            InvalidTransitionError: If the edge is not part of the graph
            ConflictError: If the order changed concurrently
        """
        target = OrderStatus.from_string(target_status)

        async with self._unit_of_work(
            "update_status", order_id=str(order_id), target_status=target.value
        ):
            order = await self.repository.get_by_id(order_id)
            if order is None:
                raise OrderNotFoundError(order_id)
            self._ensure_can_act(actor, order)

            result = await self.state_machine.transition(
                order.id,
                actor.role,
                target,
                location=location,
                notes=notes,
                description=description,
            )

        await self._notify(result.order, result.old_status, result.new_status)
        return result.order

    async def cancel_order(
        self,
        actor: Actor,
        order_id: uuid.UUID,
        reason: Optional[str] = None,
    ) -> Order:
        """
        Cancel an order and return its reserved stock.

        Cancelling an already cancelled order raises InvalidTransitionError.
        """
        return await self.update_status(
            actor,
            order_id,
            OrderStatus.CANCELLED,
            notes=reason,
            description="Order has been cancelled",
        )

    async def assign_transporter(
        self,
        actor: Actor,
        order_id: uuid.UUID,
        transporter_id: uuid.UUID,
        estimated_delivery: Optional[datetime] = None,
        tracking_number: Optional[str] = None,
        tracking_url: Optional[str] = None,
    ) -> Order:
        """
        Assign a transporter and tracking details.

        Only the owning farmer or an admin may assign, and only while the
        order is confirmed or processing. This is not a status change, so no
        tracking event is written.

        Raises:
            OrderNotFoundError: If the order does not exist
            UnauthorizedError: If the actor may not assign
            ConflictError: If the order is not in an assignable status
        """
        async with self._unit_of_work(
            "assign_transporter",
            order_id=str(order_id),
            transporter_id=str(transporter_id),
        ):
            order = await self.repository.get_by_id(order_id)
            if order is None:
                raise OrderNotFoundError(order_id)
            if not (
                actor.is_admin
                or (actor.role == ActorRole.FARMER and order.farmer_id == actor.actor_id)
            ):
                raise UnauthorizedError(
                    "Only the owning farmer or an admin can assign a transporter",
                    order_id=str(order.id),
                    role=actor.role.value,
                )
            if not order.status.accepts_transporter():
                raise ConflictError(
                    f"Cannot assign a transporter to a {order.status.value} order",
                    code="ORDER_NOT_ASSIGNABLE",
                    order_id=str(order.id),
                    status=order.status.value,
                )

            values: dict[str, Any] = {"transporter_id": transporter_id}
            if estimated_delivery is not None:
                values["estimated_delivery"] = estimated_delivery
            if tracking_number is not None:
                values["tracking_number"] = tracking_number
            if tracking_url is not None:
                values["tracking_url"] = tracking_url

            updated = await self.repository.update_while_status_in(
                order.id, TRANSPORTER_ASSIGNABLE, values
            )
            if not updated:
                raise ConflictError(
                    "Order status changed concurrently, reload and retry",
                    order_id=str(order.id),
                )
            order = await self.repository.get_by_id(order.id)

        logger.info(
            "Transporter assigned",
            order_id=str(order.id),
            transporter_id=str(transporter_id),
        )
        return order

    async def mark_payment_status(
        self,
        order_id: uuid.UUID,
        payment_status: PaymentStatus | str,
        payment_id: Optional[str] = None,
    ) -> Order:
        """
        Record a payment outcome reported by the payment gateway callback.

        Raises:
            OrderValidationError: If the payment status is unknown
            OrderNotFoundError: If the order does not exist
            InvalidTransitionError: If the payment change is not allowed
            ConflictError: If the payment status changed concurrently
        """
        status = PaymentStatus.from_string(payment_status)

        async with self._unit_of_work(
            "mark_payment_status", order_id=str(order_id), payment_status=status.value
        ):
            result = await self.state_machine.mark_payment_status(
                order_id, status, payment_id=payment_id
            )

        return result.order

    async def get_tracking_history(
        self, actor: Actor, order_id: uuid.UUID
    ) -> list[TrackingEvent]:
        """
        Get an order's tracking events, oldest first.

        Raises:
            OrderNotFoundError: If the order does not exist
            UnauthorizedError: If the actor is not a party to the order
        """
        order = await self.get_order(actor, order_id)
        return await self.ledger.list(order.id)

    async def get_order_summary(self, actor: Actor) -> OrderSummary:
        """Get order counts and revenue across the actor's orders."""
        stats = await self.repository.get_statistics(
            party_scope(actor.role, actor.actor_id)
        )
        breakdown: dict[str, int] = stats["status_breakdown"]
        cancelled = breakdown.get(OrderStatus.CANCELLED.value, 0)
        revenue = quantize_money(stats["total_revenue"])
        billable = stats["total_orders"] - cancelled

        return OrderSummary(
            total_orders=stats["total_orders"],
            pending_orders=breakdown.get(OrderStatus.PENDING.value, 0),
            completed_orders=breakdown.get(OrderStatus.DELIVERED.value, 0),
            cancelled_orders=cancelled,
            total_revenue=revenue,
            average_order_value=(
                quantize_money(revenue / billable) if billable else Decimal("0.00")
            ),
            status_breakdown=breakdown,
        )

    @staticmethod
    def _ensure_can_view(actor: Actor, order: Order) -> None:
        if actor.is_admin:
            return
        owner = {
            ActorRole.BUYER: order.buyer_id,
            ActorRole.FARMER: order.farmer_id,
            ActorRole.TRANSPORTER: order.transporter_id,
            ActorRole.VENDOR: order.vendor_id,
        }.get(actor.role)
        if owner is None or owner != actor.actor_id:
            raise UnauthorizedError(
                "Not authorized to access this order",
                order_id=str(order.id),
                role=actor.role.value,
            )

    @staticmethod
    def _ensure_can_act(actor: Actor, order: Order) -> None:
        if actor.role == ActorRole.VENDOR:
            raise UnauthorizedError(
                "Vendors cannot change order status",
                order_id=str(order.id),
            )
        OrderService._ensure_can_view(actor, order)

    async def _notify(
        self,
        order: Order,
        old_status: Optional[OrderStatus],
        new_status: OrderStatus,
    ) -> None:
        await dispatch_safely(
            self.notifier,
            OrderStatusChanged(
                order_id=order.id,
                order_number=order.order_number,
                old_status=old_status.value if old_status else None,
                new_status=new_status.value,
            ),
        )
