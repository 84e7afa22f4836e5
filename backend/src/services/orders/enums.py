"""Order status, payment and party enums for order lifecycle management.

This module defines the closed sets the order core accepts (order status,
payment status, payment method, acting role) together with the transition
tables the state machine enforces.
"""

from enum import Enum
from typing import Dict, FrozenSet, Set

from src.services.orders.errors import OrderValidationError


class _ClosedEnum(str, Enum):
    """String enum that rejects unknown values with a validation error."""

    @classmethod
    def from_string(cls, value: str):
        """Convert string to enum member.

        Raises:
            OrderValidationError: If value is not a member of the set
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            valid_values = ", ".join(s.value for s in cls)
            raise OrderValidationError(
                f"Invalid {cls._label()}: {value}. Valid values are: {valid_values}",
                field=cls._label().replace(" ", "_"),
                value=str(value),
            )

    @classmethod
    def _label(cls) -> str:
        return "value"


class OrderStatus(_ClosedEnum):
    """Order lifecycle status.

    Valid transitions:
    - PENDING -> CONFIRMED, CANCELLED
    - CONFIRMED -> PROCESSING, CANCELLED
    - PROCESSING -> SHIPPED
    - SHIPPED -> IN_TRANSIT
    - IN_TRANSIT -> DELIVERED
    - DELIVERED -> (terminal state)
    - CANCELLED -> (terminal state)

    PROCESSING, SHIPPED and IN_TRANSIT may also move to CANCELLED when late
    cancellation is enabled.
    """

    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    @classmethod
    def _label(cls) -> str:
        return "order status"

    def accepts_transporter(self) -> bool:
        """Check if a transporter may still be assigned."""
        return self in {OrderStatus.CONFIRMED, OrderStatus.PROCESSING}


class PaymentStatus(_ClosedEnum):
    """Payment status reported by the external payment callback.

    Valid transitions:
    - PENDING -> PAID, FAILED
    - FAILED -> PAID (successful retry)
    - PAID -> REFUNDED
    - REFUNDED -> (terminal state)
    """

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"

    @classmethod
    def _label(cls) -> str:
        return "payment status"


class PaymentMethod(_ClosedEnum):
    """Payment methods a buyer can choose at checkout."""

    BANK_TRANSFER = "bank_transfer"
    CREDIT_CARD = "credit_card"
    DIGITAL_WALLET = "digital_wallet"
    UPI = "upi"
    CASH_ON_DELIVERY = "cash_on_delivery"

    @classmethod
    def _label(cls) -> str:
        return "payment method"


class ActorRole(_ClosedEnum):
    """Marketplace roles that can act on orders."""

    BUYER = "buyer"
    FARMER = "farmer"
    VENDOR = "vendor"
    TRANSPORTER = "transporter"
    ADMIN = "admin"

    @classmethod
    def _label(cls) -> str:
        return "role"


# State transition validation rules
ORDER_STATUS_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.IN_TRANSIT}),
    OrderStatus.IN_TRANSIT: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

LATE_CANCELLATION_SOURCES: FrozenSet[OrderStatus] = frozenset(
    {OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.IN_TRANSIT}
)

PAYMENT_STATUS_TRANSITIONS: Dict[PaymentStatus, FrozenSet[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.PAID, PaymentStatus.FAILED}),
    PaymentStatus.FAILED: frozenset({PaymentStatus.PAID}),
    PaymentStatus.PAID: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.REFUNDED: frozenset(),
}

# Edges each non-admin role may drive. Admins may drive any legal edge.
ROLE_TRANSITIONS: Dict[ActorRole, FrozenSet[tuple[OrderStatus, OrderStatus]]] = {
    ActorRole.FARMER: frozenset(
        {
            (OrderStatus.PENDING, OrderStatus.CONFIRMED),
            (OrderStatus.CONFIRMED, OrderStatus.PROCESSING),
            (OrderStatus.PROCESSING, OrderStatus.SHIPPED),
        }
    ),
    ActorRole.TRANSPORTER: frozenset(
        {
            (OrderStatus.SHIPPED, OrderStatus.IN_TRANSIT),
            (OrderStatus.IN_TRANSIT, OrderStatus.DELIVERED),
        }
    ),
    ActorRole.BUYER: frozenset(
        {
            (OrderStatus.PENDING, OrderStatus.CANCELLED),
            (OrderStatus.CONFIRMED, OrderStatus.CANCELLED),
        }
    ),
    ActorRole.VENDOR: frozenset(),
}


def get_allowed_order_transitions(
    current: OrderStatus, allow_late_cancellation: bool = False
) -> Set[OrderStatus]:
    """Get all graph-legal transitions from current order status.

    Args:
        current: Current order status
        allow_late_cancellation: Whether late cancellation is enabled

    Returns:
        Set of allowed next statuses
    """
    allowed = set(ORDER_STATUS_TRANSITIONS.get(current, frozenset()))
    if allow_late_cancellation and current in LATE_CANCELLATION_SOURCES:
        allowed.add(OrderStatus.CANCELLED)
    return allowed


def validate_order_status_transition(
    current: OrderStatus,
    new: OrderStatus,
    allow_late_cancellation: bool = False,
) -> bool:
    """Validate if order status transition is an edge of the graph."""
    return new in get_allowed_order_transitions(current, allow_late_cancellation)


def validate_payment_status_transition(
    current: PaymentStatus, new: PaymentStatus
) -> bool:
    """Validate if payment status transition is allowed."""
    return new in PAYMENT_STATUS_TRANSITIONS.get(current, frozenset())


def role_may_transition(
    role: ActorRole, current: OrderStatus, new: OrderStatus
) -> bool:
    """Check whether a role may drive a graph-legal edge.

    Late cancellation edges are never part of a non-admin role's table, so
    only admins reach them.
    """
    if role == ActorRole.ADMIN:
        return True
    return (current, new) in ROLE_TRANSITIONS.get(role, frozenset())
