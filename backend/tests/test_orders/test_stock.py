"""
Tests for StockReserver against a real database.

Covers conditional reservation, release, all-or-nothing behaviour under the
caller's rollback and two sessions racing for the last unit.
"""

import asyncio
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID, uuid4

import pytest

from src.services.orders.errors import (
    InsufficientStockError,
    OrderValidationError,
    ProductNotFoundError,
)
from src.services.orders.stock import StockReserver


@dataclass(frozen=True)
class Line:
    product_id: UUID
    quantity: Decimal


class TestReserve:
    """Test single product reservation."""

    async def test_reserve_decrements_stock(self, session, product_factory, stock_of) -> None:
        product = await product_factory(available_stock=Decimal("10.000"))

        await StockReserver(session).reserve(product.id, Decimal("2.5"))
        await session.commit()

        assert await stock_of(product.id) == Decimal("7.5")

    async def test_reserve_exact_remaining_stock(self, session, product_factory, stock_of) -> None:
        product = await product_factory(available_stock=Decimal("3.000"))

        await StockReserver(session).reserve(product.id, Decimal("3"))
        await session.commit()

        assert await stock_of(product.id) == Decimal("0")

    async def test_fractional_stock_drains_exactly(
        self, session, product_factory, stock_of
    ) -> None:
        product = await product_factory(available_stock=Decimal("0.300"))
        reserver = StockReserver(session)

        for _ in range(3):
            await reserver.reserve(product.id, Decimal("0.1"))
        await session.commit()

        assert await stock_of(product.id) == Decimal("0")
        with pytest.raises(InsufficientStockError):
            await reserver.reserve(product.id, Decimal("0.001"))

    async def test_insufficient_stock_leaves_row_untouched(
        self, session, product_factory, stock_of
    ) -> None:
        product = await product_factory(available_stock=Decimal("1.000"))

        with pytest.raises(InsufficientStockError) as exc_info:
            await StockReserver(session).reserve(product.id, Decimal("1.5"))
        await session.rollback()

        assert exc_info.value.status_code == 409
        assert exc_info.value.context["product_id"] == str(product.id)
        assert await stock_of(product.id) == Decimal("1")

    async def test_missing_product(self, session) -> None:
        with pytest.raises(ProductNotFoundError):
            await StockReserver(session).reserve(uuid4(), Decimal("1"))

    @pytest.mark.parametrize("quantity", [Decimal("0"), Decimal("-2")])
    async def test_non_positive_quantity(self, session, quantity: Decimal) -> None:
        with pytest.raises(OrderValidationError):
            await StockReserver(session).reserve(uuid4(), quantity)


class TestRelease:
    """Test stock release."""

    async def test_release_increments_stock(self, session, product_factory, stock_of) -> None:
        product = await product_factory(available_stock=Decimal("4.000"))

        await StockReserver(session).release(product.id, Decimal("1.25"))
        await session.commit()

        assert await stock_of(product.id) == Decimal("5.25")

    async def test_fractional_releases_restore_exact_stock(
        self, session, product_factory, stock_of
    ) -> None:
        product = await product_factory(available_stock=Decimal("0.000"))
        reserver = StockReserver(session)

        for _ in range(10):
            await reserver.release(product.id, Decimal("0.1"))
        await reserver.reserve(product.id, Decimal("1"))
        await session.commit()

        assert await stock_of(product.id) == Decimal("0")

    async def test_release_missing_product(self, session) -> None:
        with pytest.raises(ProductNotFoundError):
            await StockReserver(session).release(uuid4(), Decimal("1"))


class TestReserveAll:
    """Test multi-line reservation."""

    async def test_reserves_every_line(self, session, product_factory, stock_of) -> None:
        first = await product_factory(available_stock=Decimal("10.000"))
        second = await product_factory(name="Onions", available_stock=Decimal("20.000"))

        await StockReserver(session).reserve_all(
            [Line(first.id, Decimal("2")), Line(second.id, Decimal("5"))]
        )
        await session.commit()

        assert await stock_of(first.id) == Decimal("8")
        assert await stock_of(second.id) == Decimal("15")

    async def test_shortfall_rolls_back_with_caller_transaction(
        self, session, product_factory, stock_of
    ) -> None:
        plenty = await product_factory(available_stock=Decimal("10.000"))
        scarce = await product_factory(name="Saffron", available_stock=Decimal("0.500"))

        with pytest.raises(InsufficientStockError):
            await StockReserver(session).reserve_all(
                [Line(plenty.id, Decimal("2")), Line(scarce.id, Decimal("1"))]
            )
        await session.rollback()

        assert await stock_of(plenty.id) == Decimal("10")
        assert await stock_of(scarce.id) == Decimal("0.5")

    async def test_release_all_restores_stock(self, session, product_factory, stock_of) -> None:
        first = await product_factory(available_stock=Decimal("1.000"))
        second = await product_factory(name="Garlic", available_stock=Decimal("0.000"))
        reserver = StockReserver(session)

        await reserver.release_all(
            [Line(first.id, Decimal("2.5")), Line(second.id, Decimal("10"))]
        )
        await session.commit()

        assert await stock_of(first.id) == Decimal("3.5")
        assert await stock_of(second.id) == Decimal("10")


class TestConcurrentReservation:
    """Test two buyers racing for the last unit."""

    async def test_exactly_one_reservation_wins(
        self, session_factory, product_factory, stock_of
    ) -> None:
        product = await product_factory(available_stock=Decimal("1.000"))

        async def attempt() -> bool:
            async with session_factory() as racing_session:
                try:
                    await StockReserver(racing_session).reserve(product.id, Decimal("1"))
                    await racing_session.commit()
                    return True
                except InsufficientStockError:
                    await racing_session.rollback()
                    return False

        outcomes = await asyncio.gather(attempt(), attempt())

        assert sorted(outcomes) == [False, True]
        assert await stock_of(product.id) == Decimal("0")
