"""
Order management Pydantic schemas for API request/response validation.

This module defines schemas for order creation, status changes, transporter
assignment, payment callbacks and the order, item, tracking and summary
responses. Enumerated fields use the closed enums so unknown values are
rejected at the boundary.
"""

from collections import OrderedDict
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from src.services.orders.creator import CartLine, CreateOrderRequest, ShippingDetails
from src.services.orders.enums import OrderStatus, PaymentMethod, PaymentStatus


class OrderItemRequest(BaseModel):
    """Cart line: product and quantity."""

    model_config = ConfigDict(validate_assignment=True)

    product_id: UUID = Field(
        ...,
        description="Product ID",
    )
    quantity: Decimal = Field(
        ...,
        gt=0,
        max_digits=12,
        decimal_places=3,
        description="Quantity in the product's unit",
    )


class ShippingAddressRequest(BaseModel):
    """Shipping destination captured at order time."""

    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True,
    )

    address: str = Field(
        ...,
        min_length=1,
        max_length=1000,
        description="Street address",
    )
    city: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="City",
    )
    state: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="State or region",
    )
    zip_code: Optional[str] = Field(
        None,
        max_length=20,
        description="Postal code",
    )
    notes: Optional[str] = Field(
        None,
        max_length=1000,
        description="Delivery notes",
    )


class OrderCreateRequest(BaseModel):
    """Request schema for creating a new order."""

    model_config = ConfigDict(validate_assignment=True)

    items: list[OrderItemRequest] = Field(
        ...,
        min_length=1,
        max_length=50,
        description="Cart lines, repeated products are merged",
    )
    shipping: ShippingAddressRequest = Field(
        ...,
        description="Shipping destination",
    )
    payment_method: PaymentMethod = Field(
        ...,
        description="Payment method",
    )
    vendor_id: Optional[UUID] = Field(
        None,
        description="Vendor the order is placed through",
    )
    buyer_id: Optional[UUID] = Field(
        None,
        description="Buyer to order for, admins only",
    )

    @model_validator(mode="after")
    def merge_repeated_products(self) -> "OrderCreateRequest":
        """Merge lines that name the same product."""
        merged: "OrderedDict[UUID, Decimal]" = OrderedDict()
        for item in self.items:
            merged[item.product_id] = merged.get(item.product_id, Decimal("0")) + item.quantity

        if len(merged) != len(self.items):
            # Bypass validate_assignment to avoid re-running this validator.
            object.__setattr__(
                self,
                "items",
                [
                    OrderItemRequest(product_id=product_id, quantity=quantity)
                    for product_id, quantity in merged.items()
                ],
            )
        return self

    def to_domain(self, buyer_id: UUID) -> CreateOrderRequest:
        """Build the service request for ``buyer_id``."""
        return CreateOrderRequest(
            buyer_id=buyer_id,
            lines=[
                CartLine(product_id=item.product_id, quantity=item.quantity)
                for item in self.items
            ],
            shipping=ShippingDetails(
                address=self.shipping.address,
                city=self.shipping.city,
                state=self.shipping.state,
                zip_code=self.shipping.zip_code,
                notes=self.shipping.notes,
            ),
            payment_method=self.payment_method,
            vendor_id=self.vendor_id,
        )


class OrderStatusUpdateRequest(BaseModel):
    """Request schema for moving an order along its lifecycle."""

    model_config = ConfigDict(validate_assignment=True)

    status: OrderStatus = Field(
        ...,
        description="Target order status",
    )
    notes: Optional[str] = Field(
        None,
        max_length=1000,
        description="Status change notes",
    )
    location: Optional[str] = Field(
        None,
        max_length=255,
        description="Where the change happened",
    )


class OrderCancelRequest(BaseModel):
    """Request schema for cancelling an order."""

    reason: Optional[str] = Field(
        None,
        max_length=1000,
        description="Cancellation reason",
    )


class AssignTransporterRequest(BaseModel):
    """Request schema for assigning a transporter."""

    model_config = ConfigDict(str_strip_whitespace=True)

    transporter_id: UUID = Field(
        ...,
        description="Transporter to assign",
    )
    estimated_delivery: Optional[datetime] = Field(
        None,
        description="Updated delivery estimate",
    )
    tracking_number: Optional[str] = Field(
        None,
        max_length=100,
        description="Carrier tracking number",
    )
    tracking_url: Optional[str] = Field(
        None,
        max_length=2000,
        description="Carrier tracking URL",
    )

    @field_validator("tracking_url")
    @classmethod
    def validate_tracking_url(cls, v: Optional[str]) -> Optional[str]:
        """Require an http(s) URL."""
        if v and not v.startswith(("http://", "https://")):
            raise ValueError("Tracking URL must start with http:// or https://")
        return v


class PaymentStatusUpdateRequest(BaseModel):
    """Payment callback payload."""

    payment_status: PaymentStatus = Field(
        ...,
        description="Reported payment status",
    )
    payment_id: Optional[str] = Field(
        None,
        max_length=255,
        description="Gateway payment reference",
    )


class OrderItemResponse(BaseModel):
    """Order item response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    product_id: UUID
    product_name: str
    product_image: Optional[str] = None
    unit_price: Decimal
    quantity: Decimal
    unit: str
    total_price: Decimal
    quality_grade: Optional[str] = None
    organic: bool
    harvest_date: Optional[datetime] = None

    @field_validator("quality_grade", mode="before")
    @classmethod
    def enum_to_value(cls, v):
        return getattr(v, "value", v)


class OrderResponse(BaseModel):
    """Complete order response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    order_number: str
    buyer_id: UUID
    farmer_id: UUID
    vendor_id: Optional[UUID] = None
    transporter_id: Optional[UUID] = None
    items: list[OrderItemResponse]
    status: OrderStatus
    payment_status: PaymentStatus
    payment_method: PaymentMethod
    payment_id: Optional[str] = None
    paid_at: Optional[datetime] = None
    refund_required: bool
    sub_total: Decimal
    tax_amount: Decimal
    shipping_cost: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    shipping_address: str
    shipping_city: str
    shipping_state: str
    shipping_zip_code: Optional[str] = None
    shipping_notes: Optional[str] = None
    estimated_delivery: Optional[datetime] = None
    actual_delivery: Optional[datetime] = None
    tracking_number: Optional[str] = None
    tracking_url: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class OrderListResponse(BaseModel):
    """Paginated order list."""

    items: list[OrderResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


class TrackingEventResponse(BaseModel):
    """Tracking event response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    order_id: UUID
    sequence: int
    status: OrderStatus
    location: Optional[str] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime


class OrderSummaryResponse(BaseModel):
    """Order counts and revenue for the caller."""

    model_config = ConfigDict(from_attributes=True)

    total_orders: int
    pending_orders: int
    completed_orders: int
    cancelled_orders: int
    total_revenue: Decimal
    average_order_value: Decimal
    status_breakdown: dict[str, int]


class ErrorResponse(BaseModel):
    """Error body returned for every failed order request."""

    error: str
    message: str
    code: str
    request_id: Optional[str] = None
