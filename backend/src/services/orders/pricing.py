"""
Order pricing with pluggable tax, shipping and discount policies.

OrderPricer is a pure calculation over validated cart lines: it performs no
I/O and never reads the clock, so totals can be checked against literal
inputs. Every money amount is rounded half-up to two places, per line and
per component.
"""

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Optional, Sequence
from uuid import UUID

from src.core.config import Settings, get_settings
from src.core.logging import get_logger
from src.services.orders.errors import OrderValidationError

logger = get_logger(__name__)

MONEY_QUANTUM = Decimal("0.01")
QUANTITY_QUANTUM = Decimal("0.001")
ZERO = Decimal("0.00")


def quantize_money(amount: Decimal) -> Decimal:
    """Round an amount half-up to two decimal places."""
    return Decimal(amount).quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class PricingLine:
    """Validated cart line ready for pricing."""

    product_id: UUID
    unit_price: Decimal
    quantity: Decimal


@dataclass(frozen=True)
class PricedLine:
    """Cart line with its computed total."""

    product_id: UUID
    unit_price: Decimal
    quantity: Decimal
    total_price: Decimal


@dataclass(frozen=True)
class OrderTotals:
    """Result of pricing a cart."""

    sub_total: Decimal
    tax_amount: Decimal
    shipping_cost: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    lines: tuple[PricedLine, ...] = field(default_factory=tuple)


TaxPolicy = Callable[[Decimal], Decimal]
ShippingPolicy = Callable[[Decimal, Optional[str]], Decimal]
DiscountPolicy = Callable[[Sequence[PricedLine], Decimal], Decimal]


def flat_rate_tax(rate: Decimal) -> TaxPolicy:
    """
    Build a tax policy charging a flat rate of the subtotal.

    Args:
        rate: Tax rate as a fraction (0.10 for ten percent)
    """

    def policy(sub_total: Decimal) -> Decimal:
        return sub_total * rate

    return policy


def threshold_shipping(
    base_cost: Decimal,
    free_threshold: Decimal,
    remote_surcharge: Decimal,
    remote_keywords: Sequence[str],
) -> ShippingPolicy:
    """
    Build a shipping policy with a free-shipping threshold.

    Orders whose subtotal exceeds ``free_threshold`` ship free. Otherwise the
    base cost applies, plus ``remote_surcharge`` when the destination city
    contains one of ``remote_keywords``.
    """
    keywords = tuple(keyword.lower() for keyword in remote_keywords)

    def policy(sub_total: Decimal, city: Optional[str]) -> Decimal:
        if sub_total > free_threshold:
            return ZERO
        city_lower = (city or "").lower()
        if any(keyword in city_lower for keyword in keywords):
            return base_cost + remote_surcharge
        return base_cost

    return policy


def no_discount(lines: Sequence[PricedLine], sub_total: Decimal) -> Decimal:
    """Default discount policy: no discount."""
    return ZERO


@dataclass(frozen=True)
class PricingPolicy:
    """Bundle of the policies an OrderPricer applies."""

    tax: TaxPolicy
    shipping: ShippingPolicy
    discount: DiscountPolicy = no_discount

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "PricingPolicy":
        """Build the default policy from application settings."""
        settings = settings or get_settings()
        return cls(
            tax=flat_rate_tax(settings.tax_rate),
            shipping=threshold_shipping(
                base_cost=settings.shipping_base_cost,
                free_threshold=settings.free_shipping_threshold,
                remote_surcharge=settings.remote_shipping_surcharge,
                remote_keywords=settings.remote_city_keywords,
            ),
        )


class OrderPricer:
    """
    Computes item totals, subtotal, tax, shipping, discount and grand total.

    The grand total always equals ``sub_total + tax_amount + shipping_cost -
    discount_amount`` and the subtotal always equals the sum of line totals.
    """

    def __init__(self, policy: Optional[PricingPolicy] = None):
        self.policy = policy or PricingPolicy.from_settings()

    @staticmethod
    def price_line(line: PricingLine) -> PricedLine:
        """
        Price a single cart line.

        The line total is computed from the rounded unit price, so
        ``total_price == quantize_money(unit_price * quantity)`` holds for
        every priced line. It is exact for whole quantities.

        Raises:
            OrderValidationError: If quantity is not positive or price is negative
        """
        if line.quantity <= 0:
            raise OrderValidationError(
                "Quantity must be greater than zero",
                product_id=str(line.product_id),
                quantity=str(line.quantity),
            )
        if line.unit_price < 0:
            raise OrderValidationError(
                "Unit price cannot be negative",
                product_id=str(line.product_id),
                unit_price=str(line.unit_price),
            )

        unit_price = quantize_money(line.unit_price)
        return PricedLine(
            product_id=line.product_id,
            unit_price=unit_price,
            quantity=line.quantity,
            total_price=quantize_money(unit_price * line.quantity),
        )

    def price(
        self,
        lines: Sequence[PricingLine],
        shipping_city: Optional[str] = None,
    ) -> OrderTotals:
        """
        Price validated cart lines.

        Args:
            lines: Cart lines with snapshot unit prices
            shipping_city: Destination city passed to the shipping policy

        Returns:
            OrderTotals with per-line totals and order components

        Raises:
            OrderValidationError: If there are no lines or a line is invalid
        """
        if not lines:
            raise OrderValidationError("Cannot price an empty cart")

        priced = tuple(self.price_line(line) for line in lines)
        sub_total = quantize_money(sum((p.total_price for p in priced), ZERO))

        tax_amount = quantize_money(self.policy.tax(sub_total))
        shipping_cost = quantize_money(self.policy.shipping(sub_total, shipping_city))
        discount_amount = quantize_money(self.policy.discount(priced, sub_total))
        discount_amount = min(max(discount_amount, ZERO), sub_total)

        if tax_amount < 0 or shipping_cost < 0:
            raise OrderValidationError(
                "Pricing policy produced a negative charge",
                tax_amount=str(tax_amount),
                shipping_cost=str(shipping_cost),
            )

        total_amount = sub_total + tax_amount + shipping_cost - discount_amount

        logger.debug(
            "Order priced",
            line_count=len(priced),
            sub_total=str(sub_total),
            tax_amount=str(tax_amount),
            shipping_cost=str(shipping_cost),
            discount_amount=str(discount_amount),
            total_amount=str(total_amount),
        )

        return OrderTotals(
            sub_total=sub_total,
            tax_amount=tax_amount,
            shipping_cost=shipping_cost,
            discount_amount=discount_amount,
            total_amount=total_amount,
            lines=priced,
        )
