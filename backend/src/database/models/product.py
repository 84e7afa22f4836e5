"""
Product model for the catalog rows orders are placed against.

The catalog itself is managed elsewhere; the order core reads product rows to
build snapshots and is the only writer of ``available_stock``.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    Index,
    Numeric,
    String,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import BaseModel


class ProductStatus(str, Enum):
    """
    Product listing status.

    Attributes:
        DRAFT: Listing not yet published
        ACTIVE: Listing visible and purchasable
        INACTIVE: Listing hidden by the farmer
        SOLD_OUT: No stock left
        EXPIRED: Listing past its shelf life
    """

    DRAFT = "draft"
    ACTIVE = "active"
    INACTIVE = "inactive"
    SOLD_OUT = "sold_out"
    EXPIRED = "expired"

    @property
    def is_purchasable(self) -> bool:
        """Check if orders may be placed against the product."""
        return self == ProductStatus.ACTIVE


class QualityGrade(str, Enum):
    """Produce quality grade."""

    PREMIUM = "premium"
    STANDARD = "standard"
    ECONOMY = "economy"


class Product(BaseModel):
    """
    Farm product listing.

    Attributes:
        id: Unique product identifier (UUID)
        farmer_id: Farmer who owns the listing
        name: Display name
        images: Image URLs, first one is the cover image
        price_per_unit: Current unit price
        unit: Unit of sale (kg, crate, dozen, ...)
        available_stock: Quantity still available for reservation
        min_order: Smallest quantity per order
        max_order: Largest quantity per order, unlimited if null
        quality_grade: Quality grade of the produce
        organic: Whether the produce is certified organic
        harvest_date: Date the produce was harvested
        status: Listing status
    """

    __tablename__ = "products"

    farmer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        nullable=False,
        index=True,
        comment="Farmer who owns the listing",
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Product display name",
    )

    images: Mapped[list[Any]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
        comment="Image URLs, cover image first",
    )

    price_per_unit: Mapped[Decimal] = mapped_column(
        Numeric(precision=10, scale=2),
        nullable=False,
        comment="Current unit price",
    )

    unit: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="Unit of sale",
    )

    available_stock: Mapped[Decimal] = mapped_column(
        Numeric(precision=12, scale=3),
        nullable=False,
        default=Decimal("0"),
        comment="Quantity available for reservation",
    )

    min_order: Mapped[Decimal] = mapped_column(
        Numeric(precision=12, scale=3),
        nullable=False,
        default=Decimal("1"),
        comment="Minimum quantity per order",
    )

    max_order: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(precision=12, scale=3),
        nullable=True,
        comment="Maximum quantity per order",
    )

    quality_grade: Mapped[Optional[QualityGrade]] = mapped_column(
        SQLEnum(
            QualityGrade,
            name="quality_grade",
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=True,
        comment="Quality grade",
    )

    organic: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Certified organic",
    )

    harvest_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Harvest date",
    )

    status: Mapped[ProductStatus] = mapped_column(
        SQLEnum(
            ProductStatus,
            name="product_status",
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        default=ProductStatus.ACTIVE,
        index=True,
        comment="Listing status",
    )

    __table_args__ = (
        Index("ix_products_farmer_status", "farmer_id", "status"),
        CheckConstraint(
            "available_stock >= 0",
            name="ck_products_available_stock_non_negative",
        ),
        CheckConstraint(
            "price_per_unit >= 0",
            name="ck_products_price_non_negative",
        ),
        CheckConstraint(
            "min_order > 0",
            name="ck_products_min_order_positive",
        ),
        CheckConstraint(
            "max_order IS NULL OR max_order >= min_order",
            name="ck_products_max_order_range",
        ),
    )

    @property
    def cover_image(self) -> Optional[str]:
        """Get the first listing image, if any."""
        return self.images[0] if self.images else None

    def __repr__(self) -> str:
        return (
            f"<Product(id={self.id}, name={self.name!r}, "
            f"available_stock={self.available_stock})>"
        )
