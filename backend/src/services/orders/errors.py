"""Exception hierarchy for the order core.

Every error carries a stable machine-readable ``code``, an HTTP status used
by the API layer, and free-form keyword context that is logged alongside the
message.
"""

from typing import Any


class OrderServiceError(Exception):
    """Base exception for order service errors."""

    status_code: int = 500
    default_code: str = "ORDER_ERROR"

    def __init__(self, message: str, code: str | None = None, **context: Any):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.context = context


class OrderValidationError(OrderServiceError):
    """Raised when order input is malformed or violates product limits."""

    status_code = 400
    default_code = "VALIDATION_ERROR"


class NotFoundError(OrderServiceError):
    """Raised when a referenced record does not exist."""

    status_code = 404
    default_code = "NOT_FOUND"


class OrderNotFoundError(NotFoundError):
    """Raised when an order cannot be found."""

    def __init__(self, order_ref: Any, **context: Any):
        super().__init__(
            f"Order not found: {order_ref}",
            code="ORDER_NOT_FOUND",
            order_ref=str(order_ref),
            **context,
        )


class ProductNotFoundError(NotFoundError):
    """Raised when a product referenced by a cart line does not exist."""

    def __init__(self, product_id: Any, **context: Any):
        super().__init__(
            f"Product not found: {product_id}",
            code="PRODUCT_NOT_FOUND",
            product_id=str(product_id),
            **context,
        )


class ProductNotActiveError(OrderServiceError):
    """Raised when a product exists but is not purchasable."""

    status_code = 409
    default_code = "PRODUCT_NOT_ACTIVE"

    def __init__(self, product_id: Any, status: str, **context: Any):
        super().__init__(
            f"Product {product_id} is not available for purchase ({status})",
            product_id=str(product_id),
            product_status=status,
            **context,
        )


class InsufficientStockError(OrderServiceError):
    """Raised when a product cannot cover the requested quantity."""

    status_code = 409
    default_code = "INSUFFICIENT_STOCK"

    def __init__(self, product_id: Any, requested: Any, **context: Any):
        super().__init__(
            f"Insufficient stock for product {product_id}",
            product_id=str(product_id),
            requested=str(requested),
            **context,
        )


class UnauthorizedError(OrderServiceError):
    """Raised when the acting party may not perform the operation."""

    status_code = 403
    default_code = "FORBIDDEN"


class InvalidTransitionError(OrderServiceError):
    """Raised when a status change is not an edge of the lifecycle graph."""

    status_code = 409
    default_code = "INVALID_TRANSITION"

    def __init__(self, current: Any, target: Any, **context: Any):
        current_value = getattr(current, "value", current)
        target_value = getattr(target, "value", target)
        super().__init__(
            f"Invalid transition from {current_value} to {target_value}",
            current_status=current_value,
            target_status=target_value,
            **context,
        )


class ConflictError(OrderServiceError):
    """Raised when a concurrent writer changed the record first."""

    status_code = 409
    default_code = "CONFLICT"


class PersistenceError(OrderServiceError):
    """Raised when the storage layer fails."""

    status_code = 500
    default_code = "PERSISTENCE_ERROR"
