"""
Test suite for the FastAPI main application.

Tests cover health endpoints, request correlation headers and the exception
handlers that turn failures into structured error bodies.
"""

from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest
from fastapi import status

from src.services.orders.enums import ActorRole
from src.services.orders.errors import PersistenceError
from src.services.orders.service import OrderService


# ============================================================================
# UNIT TESTS - Health Endpoints
# ============================================================================


class TestHealthEndpoints:
    """Test suite for health, readiness and liveness endpoints."""

    async def test_health_check_returns_200(self, async_client) -> None:
        response = await async_client.get("/health")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["status"] == "healthy"
        assert data["environment"] == "test"
        assert all(key in data for key in ["service", "version"])

    async def test_liveness_check(self, async_client) -> None:
        response = await async_client.get("/live")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == "alive"

    async def test_readiness_check_when_database_is_up(self, async_client) -> None:
        with patch("src.api.health.check_database_health", AsyncMock(return_value=True)):
            response = await async_client.get("/ready")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["status"] == "ready"
        assert data["dependencies_ready"] is True
        assert data["database"] == "healthy"

    async def test_readiness_check_when_database_is_down(self, async_client) -> None:
        with patch("src.api.health.check_database_health", AsyncMock(return_value=False)):
            response = await async_client.get("/ready")

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        data = response.json()
        assert data["status"] == "not_ready"
        assert data["dependencies_ready"] is False


# ============================================================================
# UNIT TESTS - Middleware
# ============================================================================


class TestRequestIdMiddleware:
    """Test request correlation headers."""

    async def test_generates_request_id(self, async_client) -> None:
        response = await async_client.get("/health")

        assert response.headers["X-Request-ID"]

    async def test_preserves_incoming_request_id(self, async_client) -> None:
        response = await async_client.get("/health", headers={"X-Request-ID": "abc-123"})

        assert response.headers["X-Request-ID"] == "abc-123"

    async def test_distinct_requests_get_distinct_ids(self, async_client) -> None:
        first = await async_client.get("/live")
        second = await async_client.get("/live")

        assert first.headers["X-Request-ID"] != second.headers["X-Request-ID"]


# ============================================================================
# UNIT TESTS - Exception Handlers
# ============================================================================


class TestExceptionHandlers:
    """Test the structured error bodies."""

    async def test_persistence_error_hides_details(
        self, async_client, auth_headers
    ) -> None:
        failing = AsyncMock(side_effect=PersistenceError("disk full on replica-3"))

        with patch.object(OrderService, "get_order_summary", failing):
            response = await async_client.get(
                "/api/v1/orders/summary", headers=auth_headers(uuid4(), ActorRole.BUYER)
            )

        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        data = response.json()
        assert data["code"] == "PERSISTENCE_ERROR"
        assert data["message"] == "An unexpected error occurred"
        assert "replica-3" not in response.text

    async def test_unexpected_error_returns_internal_error(
        self, async_client, auth_headers
    ) -> None:
        failing = AsyncMock(side_effect=RuntimeError("boom"))

        with patch.object(OrderService, "get_order_summary", failing):
            response = await async_client.get(
                "/api/v1/orders/summary", headers=auth_headers(uuid4(), ActorRole.BUYER)
            )

        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert response.json()["code"] == "INTERNAL_ERROR"
        assert "boom" not in response.text

    async def test_validation_error_lists_fields(
        self, async_client, auth_headers
    ) -> None:
        response = await async_client.get(
            "/api/v1/orders/not-a-uuid", headers=auth_headers(uuid4(), ActorRole.BUYER)
        )

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        data = response.json()
        assert data["code"] == "REQUEST_INVALID"
        assert data["details"]

    @pytest.mark.parametrize("path", ["/api/v1/orders", "/api/v1/orders/summary"])
    async def test_order_routes_require_auth(self, async_client, path: str) -> None:
        response = await async_client.get(path)

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
