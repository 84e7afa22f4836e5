"""
Order management API endpoints.

This module implements the FastAPI router for the order lifecycle: placing
orders, reading and listing them per party, moving them through their
status lifecycle, cancelling, assigning transporters, recording payment
callbacks and reading tracking history. Service errors are translated to
HTTP responses by the application's exception handler.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, Request, status

from src.api.deps import CurrentActor, OrderServiceDep, PaymentCallbackActor
from src.api.rate_limit import limiter, order_create_limit
from src.core.logging import get_logger
from src.schemas.orders import (
    AssignTransporterRequest,
    OrderCancelRequest,
    OrderCreateRequest,
    OrderListResponse,
    OrderResponse,
    OrderStatusUpdateRequest,
    OrderSummaryResponse,
    PaymentStatusUpdateRequest,
    TrackingEventResponse,
)
from src.services.orders.enums import OrderStatus
from src.services.orders.errors import OrderValidationError

logger = get_logger(__name__)

router = APIRouter()


@router.post(
    "",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create new order",
    description="Validate the cart, reserve stock and place the order atomically",
)
@limiter.limit(order_create_limit)
async def create_order(
    request: Request,
    payload: OrderCreateRequest,
    actor: CurrentActor,
    service: OrderServiceDep,
) -> OrderResponse:
    """
    Place an order from a cart.

    Buyers order for themselves. Admins must name the buyer.
    """
    buyer_id = actor.actor_id
    if actor.is_admin:
        if payload.buyer_id is None:
            raise OrderValidationError("buyer_id is required when ordering as admin")
        buyer_id = payload.buyer_id

    logger.info(
        "Creating order",
        buyer_id=str(buyer_id),
        item_count=len(payload.items),
    )

    order = await service.create_order(actor, payload.to_domain(buyer_id))
    return OrderResponse.model_validate(order)


@router.get(
    "",
    response_model=OrderListResponse,
    summary="List orders",
    description="Paginated orders the caller is a party to, newest first",
)
async def list_orders(
    actor: CurrentActor,
    service: OrderServiceDep,
    status_filter: Optional[OrderStatus] = Query(
        None, alias="status", description="Filter by order status"
    ),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Orders per page"),
) -> OrderListResponse:
    result = await service.list_orders(
        actor, status=status_filter, page=page, page_size=page_size
    )
    return OrderListResponse(
        items=[OrderResponse.model_validate(order) for order in result.items],
        total=result.total,
        page=result.page,
        page_size=result.page_size,
        total_pages=result.total_pages,
    )


@router.get(
    "/summary",
    response_model=OrderSummaryResponse,
    summary="Order summary",
    description="Order counts by status and revenue for the caller",
)
async def get_order_summary(
    actor: CurrentActor,
    service: OrderServiceDep,
) -> OrderSummaryResponse:
    summary = await service.get_order_summary(actor)
    return OrderSummaryResponse.model_validate(summary)


@router.get(
    "/number/{order_number}",
    response_model=OrderResponse,
    summary="Get order by number",
)
async def get_order_by_number(
    order_number: str,
    actor: CurrentActor,
    service: OrderServiceDep,
) -> OrderResponse:
    order = await service.get_order_by_number(actor, order_number)
    return OrderResponse.model_validate(order)


@router.get(
    "/{order_id}",
    response_model=OrderResponse,
    summary="Get order",
)
async def get_order(
    order_id: UUID,
    actor: CurrentActor,
    service: OrderServiceDep,
) -> OrderResponse:
    order = await service.get_order(actor, order_id)
    return OrderResponse.model_validate(order)


@router.get(
    "/{order_id}/tracking",
    response_model=list[TrackingEventResponse],
    summary="Get tracking history",
    description="Status history of the order, oldest first",
)
async def get_tracking_history(
    order_id: UUID,
    actor: CurrentActor,
    service: OrderServiceDep,
) -> list[TrackingEventResponse]:
    events = await service.get_tracking_history(actor, order_id)
    return [TrackingEventResponse.model_validate(event) for event in events]


@router.patch(
    "/{order_id}/status",
    response_model=OrderResponse,
    summary="Update order status",
    description="Move the order along its lifecycle as allowed for the caller's role",
)
async def update_order_status(
    order_id: UUID,
    payload: OrderStatusUpdateRequest,
    actor: CurrentActor,
    service: OrderServiceDep,
) -> OrderResponse:
    logger.info(
        "Updating order status",
        order_id=str(order_id),
        target_status=payload.status.value,
    )
    order = await service.update_status(
        actor,
        order_id,
        payload.status,
        notes=payload.notes,
        location=payload.location,
    )
    return OrderResponse.model_validate(order)


@router.post(
    "/{order_id}/cancel",
    response_model=OrderResponse,
    summary="Cancel order",
    description="Cancel the order and return its reserved stock",
)
async def cancel_order(
    order_id: UUID,
    actor: CurrentActor,
    service: OrderServiceDep,
    payload: Optional[OrderCancelRequest] = None,
) -> OrderResponse:
    order = await service.cancel_order(
        actor, order_id, reason=payload.reason if payload else None
    )
    return OrderResponse.model_validate(order)


@router.post(
    "/{order_id}/transporter",
    response_model=OrderResponse,
    summary="Assign transporter",
    description="Assign a transporter while the order is confirmed or processing",
)
async def assign_transporter(
    order_id: UUID,
    payload: AssignTransporterRequest,
    actor: CurrentActor,
    service: OrderServiceDep,
) -> OrderResponse:
    order = await service.assign_transporter(
        actor,
        order_id,
        payload.transporter_id,
        estimated_delivery=payload.estimated_delivery,
        tracking_number=payload.tracking_number,
        tracking_url=payload.tracking_url,
    )
    return OrderResponse.model_validate(order)


@router.post(
    "/{order_id}/payment",
    response_model=OrderResponse,
    summary="Record payment status",
    description="Payment gateway callback entry point",
)
async def update_payment_status(
    order_id: UUID,
    payload: PaymentStatusUpdateRequest,
    actor: PaymentCallbackActor,
    service: OrderServiceDep,
) -> OrderResponse:
    logger.info(
        "Recording payment status",
        order_id=str(order_id),
        payment_status=payload.payment_status.value,
    )
    order = await service.mark_payment_status(
        order_id, payload.payment_status, payment_id=payload.payment_id
    )
    return OrderResponse.model_validate(order)
