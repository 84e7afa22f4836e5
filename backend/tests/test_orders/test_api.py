"""
Integration tests for order management API endpoints.

This module exercises the order API end to end over an ASGI transport:
order placement, reads per party, status updates, cancellation, transporter
assignment, payment callbacks, tracking history and the mapping of service
errors onto HTTP responses.
"""

from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

import pytest
from fastapi import status

from src.services.orders.enums import ActorRole

ORDERS_URL = "/api/v1/orders"


# ============================================================================
# Test Data Factories
# ============================================================================


def order_payload(lines: list[tuple[UUID, str]], **overrides: Any) -> dict[str, Any]:
    """Build an order creation body from (product_id, quantity) pairs."""
    payload: dict[str, Any] = {
        "items": [
            {"product_id": str(product_id), "quantity": quantity}
            for product_id, quantity in lines
        ],
        "shipping": {
            "address": "12 Market Road",
            "city": "Nashik",
            "state": "Maharashtra",
            "zip_code": "422001",
        },
        "payment_method": "upi",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
async def tomatoes(product_factory):
    return await product_factory(available_stock=Decimal("10.000"))


@pytest.fixture
def buyer_headers(auth_headers, buyer_id) -> dict[str, str]:
    return auth_headers(buyer_id, ActorRole.BUYER)


@pytest.fixture
def farmer_headers(auth_headers, farmer_id) -> dict[str, str]:
    return auth_headers(farmer_id, ActorRole.FARMER)


@pytest.fixture
def admin_headers(auth_headers) -> dict[str, str]:
    return auth_headers(uuid4(), ActorRole.ADMIN)


# ============================================================================
# Order Creation Tests
# ============================================================================


class TestCreateOrderEndpoint:
    """Test POST /orders."""

    async def test_buyer_places_order(
        self, async_client, buyer_headers, buyer_id, tomatoes, stock_of, notifier
    ) -> None:
        response = await async_client.post(
            ORDERS_URL,
            json=order_payload([(tomatoes.id, "2")]),
            headers=buyer_headers,
        )

        assert response.status_code == status.HTTP_201_CREATED
        body = response.json()
        assert body["status"] == "pending"
        assert body["payment_status"] == "pending"
        assert body["buyer_id"] == str(buyer_id)
        assert body["order_number"].startswith("ORD-")
        assert Decimal(body["sub_total"]) == Decimal("400.00")
        assert Decimal(body["total_amount"]) == Decimal("490.00")
        assert len(body["items"]) == 1
        assert body["items"][0]["product_name"] == "Heirloom Tomatoes"
        assert await stock_of(tomatoes.id) == Decimal("8")
        assert [e.new_status for e in notifier.events] == ["pending"]

    async def test_repeated_lines_are_merged(
        self, async_client, buyer_headers, tomatoes
    ) -> None:
        response = await async_client.post(
            ORDERS_URL,
            json=order_payload([(tomatoes.id, "1"), (tomatoes.id, "1.5")]),
            headers=buyer_headers,
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert Decimal(response.json()["items"][0]["quantity"]) == Decimal("2.5")

    async def test_admin_must_name_buyer(
        self, async_client, admin_headers, buyer_id, tomatoes
    ) -> None:
        missing = await async_client.post(
            ORDERS_URL, json=order_payload([(tomatoes.id, "1")]), headers=admin_headers
        )
        named = await async_client.post(
            ORDERS_URL,
            json=order_payload([(tomatoes.id, "1")], buyer_id=str(buyer_id)),
            headers=admin_headers,
        )

        assert missing.status_code == status.HTTP_400_BAD_REQUEST
        assert missing.json()["code"] == "VALIDATION_ERROR"
        assert named.status_code == status.HTTP_201_CREATED
        assert named.json()["buyer_id"] == str(buyer_id)

    async def test_farmer_cannot_place_order(
        self, async_client, farmer_headers, tomatoes
    ) -> None:
        response = await async_client.post(
            ORDERS_URL, json=order_payload([(tomatoes.id, "1")]), headers=farmer_headers
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.json()["code"] == "FORBIDDEN"

    async def test_insufficient_stock(
        self, async_client, buyer_headers, tomatoes
    ) -> None:
        response = await async_client.post(
            ORDERS_URL, json=order_payload([(tomatoes.id, "11")]), headers=buyer_headers
        )

        assert response.status_code == status.HTTP_409_CONFLICT
        body = response.json()
        assert body["code"] == "INSUFFICIENT_STOCK"
        assert body["error"] == "InsufficientStockError"

    async def test_unknown_product(self, async_client, buyer_headers) -> None:
        response = await async_client.post(
            ORDERS_URL, json=order_payload([(uuid4(), "1")]), headers=buyer_headers
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["code"] == "PRODUCT_NOT_FOUND"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"items": []},
            {"payment_method": "barter"},
            {"shipping": {"address": "x", "city": "", "state": "y"}},
        ],
    )
    async def test_malformed_body(
        self, async_client, buyer_headers, tomatoes, overrides
    ) -> None:
        response = await async_client.post(
            ORDERS_URL,
            json=order_payload([(tomatoes.id, "1")], **overrides),
            headers=buyer_headers,
        )

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert response.json()["code"] == "REQUEST_INVALID"

    async def test_non_positive_quantity(
        self, async_client, buyer_headers, tomatoes
    ) -> None:
        response = await async_client.post(
            ORDERS_URL, json=order_payload([(tomatoes.id, "0")]), headers=buyer_headers
        )

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


# ============================================================================
# Authentication Tests
# ============================================================================


class TestAuthentication:
    """Test bearer token handling."""

    async def test_missing_token(self, async_client) -> None:
        response = await async_client.get(ORDERS_URL)

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.headers["WWW-Authenticate"] == "Bearer"

    async def test_invalid_token(self, async_client) -> None:
        response = await async_client.get(
            ORDERS_URL, headers={"Authorization": "Bearer not-a-jwt"}
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    async def test_unknown_role(self, async_client, auth_headers) -> None:
        response = await async_client.get(
            ORDERS_URL, headers=auth_headers(uuid4(), "auditor")
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED


# ============================================================================
# Retrieval Tests
# ============================================================================


class TestReadEndpoints:
    """Test order reads, listing, tracking and summary."""

    async def test_get_order_as_each_party(
        self, async_client, place_order, tomatoes, buyer_headers, farmer_headers, auth_headers
    ) -> None:
        order = await place_order([(tomatoes.id, "1")])

        for headers in (buyer_headers, farmer_headers):
            response = await async_client.get(f"{ORDERS_URL}/{order.id}", headers=headers)
            assert response.status_code == status.HTTP_200_OK
            assert response.json()["id"] == str(order.id)

        stranger = await async_client.get(
            f"{ORDERS_URL}/{order.id}", headers=auth_headers(uuid4(), ActorRole.BUYER)
        )
        assert stranger.status_code == status.HTTP_403_FORBIDDEN

    async def test_get_missing_order(self, async_client, admin_headers) -> None:
        response = await async_client.get(f"{ORDERS_URL}/{uuid4()}", headers=admin_headers)

        assert response.status_code == status.HTTP_404_NOT_FOUND
        body = response.json()
        assert body["code"] == "ORDER_NOT_FOUND"
        assert body["request_id"] == response.headers["X-Request-ID"]

    async def test_request_id_is_echoed(self, async_client, admin_headers) -> None:
        response = await async_client.get(
            f"{ORDERS_URL}/{uuid4()}",
            headers={**admin_headers, "X-Request-ID": "req-123"},
        )

        assert response.headers["X-Request-ID"] == "req-123"
        assert response.json()["request_id"] == "req-123"

    async def test_get_by_number(
        self, async_client, place_order, tomatoes, buyer_headers
    ) -> None:
        order = await place_order([(tomatoes.id, "1")])

        response = await async_client.get(
            f"{ORDERS_URL}/number/{order.order_number}", headers=buyer_headers
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["id"] == str(order.id)

    async def test_list_with_filter_and_pagination(
        self, async_client, place_order, tomatoes, buyer_headers, farmer_headers
    ) -> None:
        orders = [await place_order([(tomatoes.id, "1")]) for _ in range(3)]
        await async_client.patch(
            f"{ORDERS_URL}/{orders[0].id}/status",
            json={"status": "confirmed"},
            headers=farmer_headers,
        )

        page = await async_client.get(
            ORDERS_URL, params={"page": 1, "page_size": 2}, headers=buyer_headers
        )
        confirmed = await async_client.get(
            ORDERS_URL, params={"status": "confirmed"}, headers=buyer_headers
        )

        assert page.status_code == status.HTTP_200_OK
        assert page.json()["total"] == 3
        assert page.json()["total_pages"] == 2
        assert len(page.json()["items"]) == 2
        assert [o["id"] for o in confirmed.json()["items"]] == [str(orders[0].id)]

    async def test_list_rejects_oversized_page(self, async_client, buyer_headers) -> None:
        response = await async_client.get(
            ORDERS_URL, params={"page_size": 500}, headers=buyer_headers
        )

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    async def test_tracking_history(
        self, async_client, place_order, tomatoes, buyer_headers, farmer_headers
    ) -> None:
        order = await place_order([(tomatoes.id, "1")])
        await async_client.patch(
            f"{ORDERS_URL}/{order.id}/status",
            json={"status": "confirmed", "location": "Farm gate"},
            headers=farmer_headers,
        )

        response = await async_client.get(
            f"{ORDERS_URL}/{order.id}/tracking", headers=buyer_headers
        )

        assert response.status_code == status.HTTP_200_OK
        events = response.json()
        assert [(e["sequence"], e["status"]) for e in events] == [
            (1, "pending"),
            (2, "confirmed"),
        ]
        assert events[1]["location"] == "Farm gate"

    async def test_summary(
        self, async_client, place_order, tomatoes, farmer_headers
    ) -> None:
        await place_order([(tomatoes.id, "1")])
        await place_order([(tomatoes.id, "2")])

        response = await async_client.get(f"{ORDERS_URL}/summary", headers=farmer_headers)

        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["total_orders"] == 2
        assert body["pending_orders"] == 2
        assert Decimal(body["total_revenue"]) == Decimal("760.00")
        assert Decimal(body["average_order_value"]) == Decimal("380.00")


# ============================================================================
# Lifecycle Tests
# ============================================================================


class TestLifecycleEndpoints:
    """Test status updates, cancellation, assignment and payments."""

    async def test_invalid_transition(
        self, async_client, place_order, tomatoes, farmer_headers
    ) -> None:
        order = await place_order([(tomatoes.id, "1")])

        response = await async_client.patch(
            f"{ORDERS_URL}/{order.id}/status",
            json={"status": "delivered"},
            headers=farmer_headers,
        )

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["code"] == "INVALID_TRANSITION"

    async def test_role_may_not_drive_edge(
        self, async_client, place_order, tomatoes, buyer_headers
    ) -> None:
        order = await place_order([(tomatoes.id, "1")])

        response = await async_client.patch(
            f"{ORDERS_URL}/{order.id}/status",
            json={"status": "confirmed"},
            headers=buyer_headers,
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN

    async def test_unknown_status_value(
        self, async_client, place_order, tomatoes, farmer_headers
    ) -> None:
        order = await place_order([(tomatoes.id, "1")])

        response = await async_client.patch(
            f"{ORDERS_URL}/{order.id}/status",
            json={"status": "lost"},
            headers=farmer_headers,
        )

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    async def test_cancel_with_and_without_body(
        self, async_client, place_order, tomatoes, buyer_headers, stock_of
    ) -> None:
        first = await place_order([(tomatoes.id, "2")])
        second = await place_order([(tomatoes.id, "3")])

        with_reason = await async_client.post(
            f"{ORDERS_URL}/{first.id}/cancel",
            json={"reason": "Changed plans"},
            headers=buyer_headers,
        )
        without_body = await async_client.post(
            f"{ORDERS_URL}/{second.id}/cancel", headers=buyer_headers
        )
        again = await async_client.post(
            f"{ORDERS_URL}/{second.id}/cancel", headers=buyer_headers
        )

        assert with_reason.status_code == status.HTTP_200_OK
        assert with_reason.json()["status"] == "cancelled"
        assert with_reason.json()["cancelled_at"] is not None
        assert without_body.status_code == status.HTTP_200_OK
        assert again.status_code == status.HTTP_409_CONFLICT
        assert await stock_of(tomatoes.id) == Decimal("10")

    async def test_assign_transporter(
        self, async_client, place_order, tomatoes, farmer_headers
    ) -> None:
        order = await place_order([(tomatoes.id, "1")])
        transporter_id = uuid4()
        url = f"{ORDERS_URL}/{order.id}/transporter"
        body = {
            "transporter_id": str(transporter_id),
            "tracking_number": "TRK-9",
            "tracking_url": "https://track.example.com/TRK-9",
        }

        too_early = await async_client.post(url, json=body, headers=farmer_headers)
        await async_client.patch(
            f"{ORDERS_URL}/{order.id}/status",
            json={"status": "confirmed"},
            headers=farmer_headers,
        )
        assigned = await async_client.post(url, json=body, headers=farmer_headers)

        assert too_early.status_code == status.HTTP_409_CONFLICT
        assert too_early.json()["code"] == "ORDER_NOT_ASSIGNABLE"
        assert assigned.status_code == status.HTTP_200_OK
        assert assigned.json()["transporter_id"] == str(transporter_id)
        assert assigned.json()["tracking_number"] == "TRK-9"

    async def test_tracking_url_must_be_http(
        self, async_client, place_order, tomatoes, farmer_headers
    ) -> None:
        order = await place_order([(tomatoes.id, "1")])

        response = await async_client.post(
            f"{ORDERS_URL}/{order.id}/transporter",
            json={"transporter_id": str(uuid4()), "tracking_url": "ftp://x"},
            headers=farmer_headers,
        )

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    async def test_payment_callback_is_admin_only(
        self, async_client, place_order, tomatoes, buyer_headers, admin_headers
    ) -> None:
        order = await place_order([(tomatoes.id, "1")])
        url = f"{ORDERS_URL}/{order.id}/payment"
        body = {"payment_status": "paid", "payment_id": "pay_1"}

        forbidden = await async_client.post(url, json=body, headers=buyer_headers)
        accepted = await async_client.post(url, json=body, headers=admin_headers)

        assert forbidden.status_code == status.HTTP_403_FORBIDDEN
        assert accepted.status_code == status.HTTP_200_OK
        assert accepted.json()["payment_status"] == "paid"
        assert accepted.json()["payment_id"] == "pay_1"
        assert accepted.json()["paid_at"] is not None

    async def test_cancelling_paid_order_flags_refund(
        self, async_client, place_order, tomatoes, buyer_headers, admin_headers
    ) -> None:
        order = await place_order([(tomatoes.id, "1")])
        await async_client.post(
            f"{ORDERS_URL}/{order.id}/payment",
            json={"payment_status": "paid"},
            headers=admin_headers,
        )

        response = await async_client.post(
            f"{ORDERS_URL}/{order.id}/cancel", headers=buyer_headers
        )

        assert response.json()["refund_required"] is True
