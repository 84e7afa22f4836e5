"""
Stock reservation for order creation and cancellation.

StockReserver is the only writer of ``products.available_stock``. Each
reservation is a single conditional UPDATE, so two buyers racing for the
last unit cannot both succeed and stock never goes negative. Callers own the
transaction: a failure part way through ``reserve_all`` is undone by the
caller's rollback.
"""

from decimal import Decimal
from typing import Iterable, Protocol
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.logging import get_logger
from src.database.base import utcnow
from src.database.models.product import Product
from src.services.orders.errors import (
    InsufficientStockError,
    OrderValidationError,
    PersistenceError,
    ProductNotFoundError,
)

logger = get_logger(__name__)

STOCK_SCALE = 3


def _rounded_stock(expression):
    """Round a stock expression to the column scale inside the database.

    SQLite keeps NUMERIC values as REAL, so repeated fractional updates are
    rounded back to three decimals before they are compared or stored.
    """
    return func.round(expression, STOCK_SCALE, type_=Product.available_stock.type)


class StockLine(Protocol):
    """Anything carrying a product id and a quantity."""

    product_id: UUID
    quantity: Decimal


class StockReserver:
    """Atomic conditional decrement and increment of product stock."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def reserve(self, product_id: UUID, quantity: Decimal) -> None:
        """
        Reserve stock for one product.

        Args:
            product_id: Product to reserve
            quantity: Quantity to take from available stock

        Raises:
            OrderValidationError: If quantity is not positive
            ProductNotFoundError: If the product does not exist
            InsufficientStockError: If available stock is below quantity
            PersistenceError: If the update fails
        """
        self._check_quantity(product_id, quantity)

        remaining = _rounded_stock(Product.available_stock - quantity)
        stmt = (
            update(Product)
            .where(Product.id == product_id, remaining >= 0)
            .values(
                available_stock=remaining,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )

        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as e:
            logger.error(
                "Stock reservation failed",
                product_id=str(product_id),
                quantity=str(quantity),
                error=str(e),
            )
            raise PersistenceError(
                "Failed to reserve stock", product_id=str(product_id)
            ) from e

        if result.rowcount != 1:
            await self._raise_shortfall(product_id, quantity)

        logger.debug(
            "Stock reserved",
            product_id=str(product_id),
            quantity=str(quantity),
        )

    async def release(self, product_id: UUID, quantity: Decimal) -> None:
        """
        Return previously reserved stock.

        Raises:
            OrderValidationError: If quantity is not positive
            ProductNotFoundError: If the product does not exist
            PersistenceError: If the update fails
        """
        self._check_quantity(product_id, quantity)

        stmt = (
            update(Product)
            .where(Product.id == product_id)
            .values(
                available_stock=_rounded_stock(Product.available_stock + quantity),
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )

        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as e:
            logger.error(
                "Stock release failed",
                product_id=str(product_id),
                quantity=str(quantity),
                error=str(e),
            )
            raise PersistenceError(
                "Failed to release stock", product_id=str(product_id)
            ) from e

        if result.rowcount != 1:
            raise ProductNotFoundError(product_id)

        logger.debug(
            "Stock released",
            product_id=str(product_id),
            quantity=str(quantity),
        )

    async def reserve_all(self, lines: Iterable[StockLine]) -> None:
        """
        Reserve every line or fail on the first shortfall.

        Lines are reserved in ascending product id order so concurrent
        callers lock rows in the same order.
        """
        ordered = sorted(lines, key=lambda line: line.product_id)
        for line in ordered:
            await self.reserve(line.product_id, line.quantity)

        logger.info("Stock reserved for order", line_count=len(ordered))

    async def release_all(self, lines: Iterable[StockLine]) -> None:
        """Release every line, in ascending product id order."""
        ordered = sorted(lines, key=lambda line: line.product_id)
        for line in ordered:
            await self.release(line.product_id, line.quantity)

        logger.info("Stock released for order", line_count=len(ordered))

    @staticmethod
    def _check_quantity(product_id: UUID, quantity: Decimal) -> None:
        if quantity is None or quantity <= 0:
            raise OrderValidationError(
                "Quantity must be greater than zero",
                product_id=str(product_id),
                quantity=str(quantity),
            )

    async def _raise_shortfall(self, product_id: UUID, quantity: Decimal) -> None:
        try:
            available = await self.session.scalar(
                select(Product.available_stock).where(Product.id == product_id)
            )
        except SQLAlchemyError as e:
            raise PersistenceError(
                "Failed to read product stock", product_id=str(product_id)
            ) from e

        if available is None:
            raise ProductNotFoundError(product_id)

        logger.warning(
            "Insufficient stock",
            product_id=str(product_id),
            requested=str(quantity),
            available=str(available),
        )
        raise InsufficientStockError(product_id, quantity, available=str(available))
