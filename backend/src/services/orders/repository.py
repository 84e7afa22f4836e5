"""
Order data access repository.

This module implements the OrderRepository class providing async methods for
persisting new orders, loading orders by id or number, per-party listing and
statistics, and the compare-and-set updates the state machine relies on.
Transactions are owned by the caller; the repository only flushes.
"""

import uuid
from decimal import Decimal
from typing import Any, Optional, Sequence

from sqlalchemy import and_, case, func, select, true, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from src.core.logging import get_logger
from src.database.base import utcnow
from src.database.models.order import Order
from src.services.orders.enums import ActorRole, OrderStatus, PaymentStatus
from src.services.orders.errors import ConflictError, PersistenceError

logger = get_logger(__name__)


def party_scope(role: ActorRole, actor_id: uuid.UUID) -> ColumnElement[bool]:
    """
    Build the filter selecting the orders a party may see.

    Buyers see orders they placed, farmers orders they fulfil, transporters
    orders assigned to them, vendors orders placed through them. Admins see
    every order.
    """
    if role == ActorRole.ADMIN:
        return true()
    column = {
        ActorRole.BUYER: Order.buyer_id,
        ActorRole.FARMER: Order.farmer_id,
        ActorRole.TRANSPORTER: Order.transporter_id,
        ActorRole.VENDOR: Order.vendor_id,
    }[role]
    return column == actor_id


class OrderRepository:
    """
    Repository for order data access operations.

    Status and payment updates are conditional single statements that
    report whether the expected prior value still held.
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize order repository.

        Args:
            session: Async database session
        """
        self.session = session

    async def add(self, order: Order) -> Order:
        """
        Persist a new order with its items.

        Raises:
            ConflictError: If the order number is already taken
            PersistenceError: If the insert fails
        """
        try:
            self.session.add(order)
            await self.session.flush()
        except IntegrityError as e:
            logger.warning(
                "Order insert violated a constraint",
                order_number=order.order_number,
                error=str(e),
            )
            raise ConflictError(
                "Order number already exists",
                code="ORDER_NUMBER_CONFLICT",
                order_number=order.order_number,
            ) from e
        except SQLAlchemyError as e:
            logger.error(
                "Failed to insert order",
                order_number=order.order_number,
                error=str(e),
            )
            raise PersistenceError(
                "Failed to create order", order_number=order.order_number
            ) from e

        logger.debug(
            "Order inserted",
            order_id=str(order.id),
            order_number=order.order_number,
            item_count=len(order.items),
        )
        return order

    async def get_by_id(self, order_id: uuid.UUID) -> Optional[Order]:
        """
        Get order by ID with items, reloading any cached state.

        Raises:
            PersistenceError: If query fails
        """
        stmt = (
            select(Order)
            .where(Order.id == order_id)
            .execution_options(populate_existing=True)
        )
        return await self._fetch_one(stmt, order_id=str(order_id))

    async def get_by_number(self, order_number: str) -> Optional[Order]:
        """
        Get order by its human-readable number.

        Raises:
            PersistenceError: If query fails
        """
        stmt = (
            select(Order)
            .where(Order.order_number == order_number)
            .execution_options(populate_existing=True)
        )
        return await self._fetch_one(stmt, order_number=order_number)

    async def list_for_party(
        self,
        scope: ColumnElement[bool],
        status: Optional[OrderStatus] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> tuple[Sequence[Order], int]:
        """
        Get orders within a party scope, newest first.

        Args:
            scope: Filter from ``party_scope``
            status: Optional status filter
            skip: Number of records to skip
            limit: Maximum number of records to return

        Returns:
            Tuple of (orders, total_count)

        Raises:
            PersistenceError: If query fails
        """
        conditions = [scope]
        if status is not None:
            conditions.append(Order.status == status)

        stmt = (
            select(Order)
            .where(and_(*conditions))
            .order_by(Order.created_at.desc(), Order.id)
            .offset(skip)
            .limit(limit)
        )
        count_stmt = select(func.count()).select_from(Order).where(and_(*conditions))

        try:
            result = await self.session.execute(stmt)
            total_count = (await self.session.execute(count_stmt)).scalar_one()
        except SQLAlchemyError as e:
            logger.error("Failed to list orders", error=str(e))
            raise PersistenceError("Failed to list orders") from e

        orders = result.scalars().all()
        logger.debug("Orders listed", count=len(orders), total=total_count)
        return orders, total_count

    async def compare_and_set_status(
        self,
        order_id: uuid.UUID,
        expected: OrderStatus,
        values: dict[str, Any],
    ) -> bool:
        """
        Update an order only if its status still equals ``expected``.

        Returns:
            True if the row was updated, False if the status had changed
        """
        return await self._conditional_update(
            Order.status == expected,
            order_id,
            values,
        )

    async def compare_and_set_payment(
        self,
        order_id: uuid.UUID,
        expected: PaymentStatus,
        values: dict[str, Any],
        excluded_status: Optional[OrderStatus] = None,
    ) -> bool:
        """
        Update an order only if its payment status still equals ``expected``.

        Args:
            order_id: Order identifier
            expected: Payment status read by the caller
            values: Columns to write
            excluded_status: Order status that must not hold at write time

        Returns:
            True if the row was updated, False if the payment status had changed
        """
        condition = Order.payment_status == expected
        if excluded_status is not None:
            condition = and_(condition, Order.status != excluded_status)
        return await self._conditional_update(condition, order_id, values)

    async def update_while_status_in(
        self,
        order_id: uuid.UUID,
        statuses: Sequence[OrderStatus],
        values: dict[str, Any],
    ) -> bool:
        """
        Update non-status fields only while the order is in one of ``statuses``.

        Returns:
            True if the row was updated
        """
        return await self._conditional_update(
            Order.status.in_(list(statuses)),
            order_id,
            values,
        )

    async def get_statistics(self, scope: ColumnElement[bool]) -> dict[str, Any]:
        """
        Get order counts and revenue within a party scope.

        Revenue sums the totals of every order that was not cancelled.

        Raises:
            PersistenceError: If query fails
        """
        status_stmt = (
            select(Order.status, func.count())
            .where(scope)
            .group_by(Order.status)
        )
        revenue_stmt = select(
            func.coalesce(
                func.sum(
                    case(
                        (Order.status != OrderStatus.CANCELLED, Order.total_amount),
                        else_=0,
                    )
                ),
                0,
            )
        ).where(scope)

        try:
            status_result = await self.session.execute(status_stmt)
            revenue = (await self.session.execute(revenue_stmt)).scalar_one()
        except SQLAlchemyError as e:
            logger.error("Failed to fetch order statistics", error=str(e))
            raise PersistenceError("Failed to fetch order statistics") from e

        status_breakdown = {status.value: count for status, count in status_result.all()}
        return {
            "total_orders": sum(status_breakdown.values()),
            "status_breakdown": status_breakdown,
            "total_revenue": Decimal(str(revenue or 0)),
        }

    async def _fetch_one(self, stmt, **context: Any) -> Optional[Order]:
        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as e:
            logger.error("Failed to fetch order", error=str(e), **context)
            raise PersistenceError("Failed to fetch order", **context) from e

        order = result.scalar_one_or_none()
        logger.debug("Order lookup", found=order is not None, **context)
        return order

    async def _conditional_update(
        self,
        condition: ColumnElement[bool],
        order_id: uuid.UUID,
        values: dict[str, Any],
    ) -> bool:
        stmt = (
            update(Order)
            .where(Order.id == order_id, condition)
            .values(**values, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as e:
            logger.error(
                "Failed to update order",
                order_id=str(order_id),
                fields=sorted(values),
                error=str(e),
            )
            raise PersistenceError(
                "Failed to update order", order_id=str(order_id)
            ) from e

        return result.rowcount == 1
