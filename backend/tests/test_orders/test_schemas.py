"""Tests for order request and response schemas."""

from decimal import Decimal
from uuid import uuid4

import pytest
from pydantic import ValidationError

from src.schemas.orders import (
    AssignTransporterRequest,
    OrderCreateRequest,
    OrderResponse,
    OrderSummaryResponse,
)
from src.services.orders.enums import PaymentMethod


def create_body(**overrides) -> dict:
    body = {
        "items": [{"product_id": str(uuid4()), "quantity": "1.5"}],
        "shipping": {"address": " 12 Market Road ", "city": "Nashik", "state": "MH"},
        "payment_method": "cash_on_delivery",
    }
    body.update(overrides)
    return body


class TestOrderCreateRequest:
    """Test order creation payload validation."""

    def test_valid_payload(self) -> None:
        request = OrderCreateRequest.model_validate(create_body())

        assert request.payment_method == PaymentMethod.CASH_ON_DELIVERY
        assert request.shipping.address == "12 Market Road"
        assert request.items[0].quantity == Decimal("1.5")

    def test_repeated_products_are_merged(self) -> None:
        product_id = str(uuid4())
        request = OrderCreateRequest.model_validate(
            create_body(
                items=[
                    {"product_id": product_id, "quantity": "1"},
                    {"product_id": product_id, "quantity": "2.25"},
                ]
            )
        )

        assert len(request.items) == 1
        assert request.items[0].quantity == Decimal("3.25")

    def test_to_domain(self) -> None:
        buyer_id = uuid4()
        request = OrderCreateRequest.model_validate(create_body())

        domain = request.to_domain(buyer_id)

        assert domain.buyer_id == buyer_id
        assert domain.shipping.city == "Nashik"
        assert domain.lines[0].quantity == Decimal("1.5")

    @pytest.mark.parametrize(
        "overrides",
        [
            {"items": []},
            {"items": [{"product_id": str(uuid4()), "quantity": "0"}]},
            {"items": [{"product_id": str(uuid4()), "quantity": "1.0001"}]},
            {"payment_method": "cheque"},
            {"shipping": {"address": "x", "city": "   ", "state": "y"}},
        ],
    )
    def test_invalid_payloads(self, overrides) -> None:
        with pytest.raises(ValidationError):
            OrderCreateRequest.model_validate(create_body(**overrides))


class TestAssignTransporterRequest:
    """Test transporter assignment payloads."""

    def test_http_tracking_url(self) -> None:
        request = AssignTransporterRequest(
            transporter_id=uuid4(), tracking_url="https://track.example.com/1"
        )

        assert request.tracking_url == "https://track.example.com/1"

    def test_rejects_other_schemes(self) -> None:
        with pytest.raises(ValidationError):
            AssignTransporterRequest(transporter_id=uuid4(), tracking_url="ftp://x")


class TestResponses:
    """Test response models built from domain objects."""

    async def test_order_response_from_model(self, place_order, product_factory) -> None:
        product = await product_factory()
        order = await place_order([(product.id, "2")])

        response = OrderResponse.model_validate(order)

        assert response.order_number == order.order_number
        assert response.items[0].quality_grade == "premium"
        assert response.total_amount == Decimal("490.00")

    def test_summary_response(self) -> None:
        response = OrderSummaryResponse(
            total_orders=1,
            pending_orders=1,
            completed_orders=0,
            cancelled_orders=0,
            total_revenue=Decimal("270.00"),
            average_order_value=Decimal("270.00"),
            status_breakdown={"pending": 1},
        )

        assert response.model_dump(mode="json")["total_revenue"] == "270.00"
