"""
Product snapshot provider backed by the products table.

Order creation reads products through the ProductSnapshotProvider protocol
so it never depends on the catalog's own models or services.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional, Protocol
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.logging import get_logger
from src.database.models.product import Product
from src.services.orders.errors import PersistenceError

logger = get_logger(__name__)


@dataclass(frozen=True)
class ProductSnapshot:
    """Point-in-time view of a product used to build an order line."""

    product_id: UUID
    farmer_id: UUID
    name: str
    price: Decimal
    unit: str
    min_order: Decimal
    max_order: Optional[Decimal]
    available_stock: Decimal
    is_active: bool
    status: str
    image: Optional[str] = None
    quality_grade: Optional[str] = None
    organic: bool = False
    harvest_date: Optional[datetime] = None


class ProductSnapshotProvider(Protocol):
    """Read-only access to product snapshots."""

    async def get(self, product_id: UUID) -> Optional[ProductSnapshot]:
        """Return the product snapshot, or None if the product does not exist."""
        ...


class SQLProductSnapshotProvider:
    """Builds snapshots from the same row StockReserver contends on."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, product_id: UUID) -> Optional[ProductSnapshot]:
        """
        Load a product snapshot.

        Args:
            product_id: Product identifier

        Returns:
            Snapshot or None when the product does not exist

        Raises:
            PersistenceError: If the query fails
        """
        try:
            stmt = (
                select(Product)
                .where(Product.id == product_id)
                .execution_options(populate_existing=True)
            )
            result = await self.session.execute(stmt)
            product = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(
                "Failed to load product snapshot",
                product_id=str(product_id),
                error=str(e),
            )
            raise PersistenceError(
                "Failed to load product", product_id=str(product_id)
            ) from e

        if product is None:
            return None

        return ProductSnapshot(
            product_id=product.id,
            farmer_id=product.farmer_id,
            name=product.name,
            price=product.price_per_unit,
            unit=product.unit,
            min_order=product.min_order,
            max_order=product.max_order,
            available_stock=product.available_stock,
            is_active=product.status.is_purchasable,
            status=product.status.value,
            image=product.cover_image,
            quality_grade=product.quality_grade.value if product.quality_grade else None,
            organic=product.organic,
            harvest_date=product.harvest_date,
        )
