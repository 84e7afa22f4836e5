"""
Order models for order management and fulfillment tracking.

This module defines the Order model, its write-once OrderItem snapshots and
the append-only TrackingEvent ledger. Orders are never hard-deleted;
cancellation is a terminal status.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.database.base import Base, BaseModel, utcnow
from src.database.models.product import QualityGrade
from src.services.orders.enums import OrderStatus, PaymentMethod, PaymentStatus


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


class Order(BaseModel):
    """
    Order placed by a buyer against a single farmer's products.

    Attributes:
        id: Unique order identifier (UUID)
        order_number: Human-readable order number, never reused
        buyer_id: Buyer who placed the order
        farmer_id: Farmer fulfilling the order
        vendor_id: Vendor the order was placed through
        transporter_id: Transporter assigned for delivery
        sub_total: Sum of item totals
        tax_amount: Tax on the subtotal
        shipping_cost: Shipping charge
        discount_amount: Applied discount
        total_amount: sub_total + tax_amount + shipping_cost - discount_amount
        status: Current order status
        payment_status: Current payment status
        payment_method: Payment method chosen at checkout
        payment_id: Gateway payment reference
        paid_at: When payment was confirmed
        refund_required: Set when a paid order is cancelled
        shipping_address: Street address (immutable)
        shipping_city: City (immutable)
        shipping_state: State or region (immutable)
        shipping_zip_code: Postal code (immutable)
        shipping_notes: Delivery notes (immutable)
        estimated_delivery: Estimated delivery time
        actual_delivery: Stamped when the order is delivered
        tracking_number: Carrier tracking number
        tracking_url: Carrier tracking URL
        cancelled_at: Stamped when the order is cancelled
    """

    __tablename__ = "orders"

    order_number: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        unique=True,
        comment="Human-readable order number",
    )

    # Parties
    buyer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        nullable=False,
        index=True,
        comment="Buyer who placed the order",
    )

    farmer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        nullable=False,
        index=True,
        comment="Farmer fulfilling the order",
    )

    vendor_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        nullable=True,
        index=True,
        comment="Vendor the order was placed through",
    )

    transporter_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        nullable=True,
        index=True,
        comment="Transporter assigned for delivery",
    )

    # Pricing fields
    sub_total: Mapped[Decimal] = mapped_column(
        Numeric(precision=12, scale=2),
        nullable=False,
        comment="Sum of item totals",
    )

    tax_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=12, scale=2),
        nullable=False,
        default=Decimal("0.00"),
        comment="Tax amount",
    )

    shipping_cost: Mapped[Decimal] = mapped_column(
        Numeric(precision=12, scale=2),
        nullable=False,
        default=Decimal("0.00"),
        comment="Shipping charge",
    )

    discount_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=12, scale=2),
        nullable=False,
        default=Decimal("0.00"),
        comment="Applied discount",
    )

    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=12, scale=2),
        nullable=False,
        comment="Grand total",
    )

    # Status
    status: Mapped[OrderStatus] = mapped_column(
        SQLEnum(OrderStatus, name="order_status", values_callable=_enum_values),
        nullable=False,
        default=OrderStatus.PENDING,
        index=True,
        comment="Current order status",
    )

    payment_status: Mapped[PaymentStatus] = mapped_column(
        SQLEnum(PaymentStatus, name="payment_status", values_callable=_enum_values),
        nullable=False,
        default=PaymentStatus.PENDING,
        index=True,
        comment="Current payment status",
    )

    # Payment information
    payment_method: Mapped[PaymentMethod] = mapped_column(
        SQLEnum(PaymentMethod, name="payment_method", values_callable=_enum_values),
        nullable=False,
        comment="Payment method chosen at checkout",
    )

    payment_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        comment="Gateway payment reference",
    )

    paid_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="When payment was confirmed",
    )

    refund_required: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Paid order was cancelled and awaits an external refund",
    )

    # Shipping information
    shipping_address: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Shipping street address",
    )

    shipping_city: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Shipping city",
    )

    shipping_state: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Shipping state or region",
    )

    shipping_zip_code: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
        comment="Shipping postal code",
    )

    shipping_notes: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Delivery notes",
    )

    # Delivery tracking
    estimated_delivery: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Estimated delivery time",
    )

    actual_delivery: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Actual delivery time",
    )

    tracking_number: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="Carrier tracking number",
    )

    tracking_url: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Carrier tracking URL",
    )

    cancelled_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="When the order was cancelled",
    )

    # Relationships
    items: Mapped[list["OrderItem"]] = relationship(
        "OrderItem",
        back_populates="order",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="OrderItem.product_id",
    )

    __table_args__ = (
        Index("ix_orders_buyer_status", "buyer_id", "status"),
        Index("ix_orders_farmer_status", "farmer_id", "status"),
        Index("ix_orders_status_created", "status", "created_at"),
        CheckConstraint("sub_total >= 0", name="ck_orders_sub_total_non_negative"),
        CheckConstraint("tax_amount >= 0", name="ck_orders_tax_amount_non_negative"),
        CheckConstraint(
            "shipping_cost >= 0", name="ck_orders_shipping_cost_non_negative"
        ),
        CheckConstraint(
            "discount_amount >= 0", name="ck_orders_discount_amount_non_negative"
        ),
        CheckConstraint(
            "total_amount >= 0", name="ck_orders_total_amount_non_negative"
        ),
    )

    def __repr__(self) -> str:
        status = self.status.value if self.status else None
        return (
            f"<Order(id={self.id}, order_number={self.order_number}, "
            f"status={status}, total_amount={self.total_amount})>"
        )

    def calculate_total(self) -> Decimal:
        """Recompute the grand total from its components."""
        return (
            self.sub_total
            + self.tax_amount
            + self.shipping_cost
            - self.discount_amount
        )


class OrderItem(BaseModel):
    """
    Snapshot of a cart line at order time.

    Every field is copied from the product when the order is created and is
    never written again, so later catalog edits do not alter history.
    """

    __tablename__ = "order_items"

    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    product_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("products.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    product_name: Mapped[str] = mapped_column(String(255), nullable=False)

    product_image: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    unit_price: Mapped[Decimal] = mapped_column(
        Numeric(precision=10, scale=2),
        nullable=False,
    )

    quantity: Mapped[Decimal] = mapped_column(
        Numeric(precision=12, scale=3),
        nullable=False,
    )

    unit: Mapped[str] = mapped_column(String(50), nullable=False)

    total_price: Mapped[Decimal] = mapped_column(
        Numeric(precision=12, scale=2),
        nullable=False,
    )

    quality_grade: Mapped[Optional[QualityGrade]] = mapped_column(
        SQLEnum(QualityGrade, name="quality_grade", values_callable=_enum_values),
        nullable=True,
    )

    organic: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    harvest_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    order: Mapped["Order"] = relationship("Order", back_populates="items")

    __table_args__ = (
        UniqueConstraint("order_id", "product_id", name="uq_order_items_product"),
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        CheckConstraint(
            "unit_price >= 0", name="ck_order_items_unit_price_non_negative"
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<OrderItem(order_id={self.order_id}, product_id={self.product_id}, "
            f"quantity={self.quantity}, total_price={self.total_price})>"
        )


class TrackingEvent(Base):
    """
    Append-only record of one order status change.

    Rows are never updated or deleted. ``sequence`` is 1-based per order and
    breaks ties between events written in the same instant.
    """

    __tablename__ = "order_tracking"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[OrderStatus] = mapped_column(
        SQLEnum(OrderStatus, name="order_status", values_callable=_enum_values),
        nullable=False,
    )

    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        index=True,
    )

    __table_args__ = (
        UniqueConstraint("order_id", "sequence", name="uq_order_tracking_sequence"),
        CheckConstraint("sequence > 0", name="ck_order_tracking_sequence_positive"),
    )
