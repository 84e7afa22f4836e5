"""
Order creation: validation, pricing, stock reservation and persistence.

OrderCreator turns a buyer's cart into an Order with write-once item
snapshots and the initial ``pending`` tracking event. All validation runs
before the first write. Reservation is all-or-nothing; the caller's
transaction rollback undoes a partial reservation together with everything
else.
"""

import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Optional, Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import Settings, get_settings
from src.core.logging import get_logger, log_performance
from src.database.base import utcnow
from src.database.models.order import Order, OrderItem
from src.database.models.product import QualityGrade
from src.services.orders.enums import OrderStatus, PaymentMethod, PaymentStatus
from src.services.orders.errors import (
    OrderValidationError,
    ProductNotActiveError,
    ProductNotFoundError,
)
from src.services.orders.ledger import TrackingLedger
from src.services.orders.pricing import OrderPricer, PricingLine, PricingPolicy
from src.services.orders.repository import OrderRepository
from src.services.orders.stock import StockReserver
from src.services.products.snapshot import (
    ProductSnapshot,
    ProductSnapshotProvider,
    SQLProductSnapshotProvider,
)

logger = get_logger(__name__)

QUANTITY_PLACES = 3


@dataclass(frozen=True)
class CartLine:
    """Requested product and quantity."""

    product_id: UUID
    quantity: Decimal


@dataclass(frozen=True)
class ShippingDetails:
    """Destination captured at order time."""

    address: str
    city: str
    state: str
    zip_code: Optional[str] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class CreateOrderRequest:
    """Everything needed to place an order."""

    buyer_id: UUID
    lines: Sequence[CartLine]
    shipping: ShippingDetails
    payment_method: PaymentMethod | str
    vendor_id: Optional[UUID] = None


@dataclass(frozen=True)
class _ValidatedLine:
    product_id: UUID
    quantity: Decimal
    snapshot: ProductSnapshot = field(compare=False)


def random_order_token() -> str:
    """Return eight random upper-case hex characters."""
    return secrets.token_hex(4).upper()


def generate_order_number(
    now: datetime,
    token: Optional[str] = None,
    prefix: str = "ORD",
) -> str:
    """
    Build a human-readable order number.

    Format is ``<prefix>-<UTC yyyymmddHHMMSS>-<8 hex chars>``. Uniqueness is
    enforced by the database constraint on ``orders.order_number``.

    Example:
        >>> generate_order_number(datetime(2024, 3, 1, 9, 30, 5), "0A1B2C3D")
        'ORD-20240301093005-0A1B2C3D'
    """
    token = token or random_order_token()
    return f"{prefix}-{now:%Y%m%d%H%M%S}-{token}"


class OrderCreator:
    """Validates a cart and persists the resulting order."""

    def __init__(
        self,
        session: AsyncSession,
        settings: Optional[Settings] = None,
        snapshots: Optional[ProductSnapshotProvider] = None,
        pricer: Optional[OrderPricer] = None,
        stock: Optional[StockReserver] = None,
        ledger: Optional[TrackingLedger] = None,
        repository: Optional[OrderRepository] = None,
        clock: Callable[[], datetime] = utcnow,
        token_factory: Callable[[], str] = random_order_token,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.snapshots = snapshots or SQLProductSnapshotProvider(session)
        self.pricer = pricer or OrderPricer(PricingPolicy.from_settings(self.settings))
        self.stock = stock or StockReserver(session)
        self.ledger = ledger or TrackingLedger(session)
        self.repository = repository or OrderRepository(session)
        self.clock = clock
        self.token_factory = token_factory

    async def create(self, request: CreateOrderRequest) -> Order:
        """
        Create an order from a cart.

        Args:
            request: Buyer, cart lines, shipping details and payment method

        Returns:
            The persisted order with items

        Raises:
            OrderValidationError: If the cart or shipping details are invalid
            ProductNotFoundError: If a product does not exist
            ProductNotActiveError: If a product is not purchasable
            InsufficientStockError: If any line cannot be reserved
            ConflictError: If the generated order number already exists
            PersistenceError: If storage fails
        """
        with log_performance(
            logger,
            "order_creation",
            buyer_id=str(request.buyer_id),
            line_count=len(request.lines),
        ):
            payment_method = PaymentMethod.from_string(request.payment_method)
            shipping = self._validate_shipping(request.shipping)
            self._validate_lines(request.lines)

            validated = [await self._validate_against_product(line) for line in request.lines]
            farmer_id = self._single_farmer(validated)

            totals = self.pricer.price(
                [
                    PricingLine(
                        product_id=line.product_id,
                        unit_price=line.snapshot.price,
                        quantity=line.quantity,
                    )
                    for line in validated
                ],
                shipping_city=shipping.city,
            )

            await self.stock.reserve_all(validated)

            now = self.clock()
            order = Order(
                order_number=generate_order_number(
                    now, self.token_factory(), self.settings.order_number_prefix
                ),
                buyer_id=request.buyer_id,
                farmer_id=farmer_id,
                vendor_id=request.vendor_id,
                sub_total=totals.sub_total,
                tax_amount=totals.tax_amount,
                shipping_cost=totals.shipping_cost,
                discount_amount=totals.discount_amount,
                total_amount=totals.total_amount,
                status=OrderStatus.PENDING,
                payment_status=PaymentStatus.PENDING,
                payment_method=payment_method,
                refund_required=False,
                shipping_address=shipping.address,
                shipping_city=shipping.city,
                shipping_state=shipping.state,
                shipping_zip_code=shipping.zip_code,
                shipping_notes=shipping.notes,
                estimated_delivery=now
                + timedelta(days=self.settings.estimated_delivery_days),
            )

            priced_by_product = {p.product_id: p for p in totals.lines}
            for line in validated:
                snapshot = line.snapshot
                priced = priced_by_product[line.product_id]
                order.items.append(
                    OrderItem(
                        product_id=line.product_id,
                        product_name=snapshot.name,
                        product_image=snapshot.image,
                        unit_price=priced.unit_price,
                        quantity=line.quantity,
                        unit=snapshot.unit,
                        total_price=priced.total_price,
                        quality_grade=(
                            QualityGrade(snapshot.quality_grade)
                            if snapshot.quality_grade
                            else None
                        ),
                        organic=snapshot.organic,
                        harvest_date=snapshot.harvest_date,
                    )
                )

            await self.repository.add(order)
            await self.ledger.append(
                order.id,
                OrderStatus.PENDING,
                location="Order created",
                description="Order has been placed successfully",
            )

        logger.info(
            "Order created",
            order_id=str(order.id),
            order_number=order.order_number,
            farmer_id=str(farmer_id),
            total_amount=str(order.total_amount),
        )
        return order

    @staticmethod
    def _validate_shipping(shipping: ShippingDetails) -> ShippingDetails:
        missing = [
            name
            for name, value in (
                ("shipping_address", shipping.address),
                ("shipping_city", shipping.city),
                ("shipping_state", shipping.state),
            )
            if value is None or not str(value).strip()
        ]
        if missing:
            raise OrderValidationError(
                "Shipping address, city and state are required",
                missing_fields=missing,
            )
        return ShippingDetails(
            address=shipping.address.strip(),
            city=shipping.city.strip(),
            state=shipping.state.strip(),
            zip_code=(shipping.zip_code or "").strip() or None,
            notes=(shipping.notes or "").strip() or None,
        )

    @staticmethod
    def _validate_lines(lines: Sequence[CartLine]) -> None:
        if not lines:
            raise OrderValidationError("Order must contain at least one item")

        seen: set[UUID] = set()
        for line in lines:
            if line.product_id in seen:
                raise OrderValidationError(
                    "Each product may appear only once per order",
                    product_id=str(line.product_id),
                )
            seen.add(line.product_id)

            quantity = line.quantity
            if not isinstance(quantity, Decimal) or not quantity.is_finite():
                raise OrderValidationError(
                    "Quantity must be a finite decimal",
                    product_id=str(line.product_id),
                    quantity=str(quantity),
                )
            if quantity <= 0:
                raise OrderValidationError(
                    "Quantity must be greater than zero",
                    product_id=str(line.product_id),
                    quantity=str(quantity),
                )
            if -quantity.as_tuple().exponent > QUANTITY_PLACES:
                raise OrderValidationError(
                    f"Quantity supports at most {QUANTITY_PLACES} decimal places",
                    product_id=str(line.product_id),
                    quantity=str(quantity),
                )

    async def _validate_against_product(self, line: CartLine) -> _ValidatedLine:
        snapshot = await self.snapshots.get(line.product_id)
        if snapshot is None:
            raise ProductNotFoundError(line.product_id)
        if not snapshot.is_active:
            raise ProductNotActiveError(line.product_id, snapshot.status)
        if line.quantity < snapshot.min_order:
            raise OrderValidationError(
                f"Minimum order for {snapshot.name} is {snapshot.min_order} {snapshot.unit}",
                product_id=str(line.product_id),
                quantity=str(line.quantity),
                min_order=str(snapshot.min_order),
            )
        if snapshot.max_order is not None and line.quantity > snapshot.max_order:
            raise OrderValidationError(
                f"Maximum order for {snapshot.name} is {snapshot.max_order} {snapshot.unit}",
                product_id=str(line.product_id),
                quantity=str(line.quantity),
                max_order=str(snapshot.max_order),
            )
        return _ValidatedLine(
            product_id=line.product_id, quantity=line.quantity, snapshot=snapshot
        )

    @staticmethod
    def _single_farmer(lines: Sequence[_ValidatedLine]) -> UUID:
        farmers = {line.snapshot.farmer_id for line in lines}
        if len(farmers) != 1:
            raise OrderValidationError(
                "All items in an order must come from the same farmer",
                farmer_count=len(farmers),
            )
        return farmers.pop()
