from typing import Optional, List
import uuid
from math import ceil
from datetime import datetime

from fastapi import APIRouter, status, Query

from fulfillment.api.deps import DB, CurrentUser
from fulfillment.schemas.base import MessageResponse
from fulfillment.schemas.order import (
    CancellationDetails,
    DispatchDetailsUpdate,
    OrderCancelRequest,
    OrderCancelResponse,
    OrderCreate,
    OrderDetailResponse,
    OrderListResponse,
    OrderPaymentUpdate,
    OrderResponse,
    OrderStatsResponse,
    OrderStatusUpdate,
    OrderUpdate,
    PartialUnavailableResponse,
)
from fulfillment.services.order_service import OrderService


router = APIRouter(tags=["Orders"])


@router.get("", response_model=OrderListResponse)
async def list_orders(
    db: DB,
    current_user: CurrentUser,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    status: Optional[str] = Query(None, description="Comma-separated statuses"),
    payment_status: Optional[str] = Query(None, description="Comma-separated payment statuses"),
    party_id: Optional[uuid.UUID] = Query(None),
    company_id: Optional[uuid.UUID] = Query(None),
    site_id: Optional[uuid.UUID] = Query(None),
    search: Optional[str] = Query(None, description="Search order number, party or quotation"),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
):
    """Get paginated list of orders."""
    service = OrderService(db)
    skip = (page - 1) * size

    orders, total = await service.get_orders(
        status=status,
        payment_status=payment_status,
        party_id=party_id,
        company_id=company_id,
        site_id=site_id,
        search=search,
        date_from=date_from,
        date_to=date_to,
        skip=skip,
        limit=size,
        sort_by=sort_by,
        sort_order=sort_order,
    )

    return OrderListResponse(
        items=[OrderResponse.model_validate(o) for o in orders],
        total=total,
        page=page,
        size=size,
        pages=ceil(total / size) if total > 0 else 1,
    )


@router.get("/stats", response_model=OrderStatsResponse)
async def get_order_stats(db: DB, current_user: CurrentUser):
    """Order counts by status and revenue figures."""
    stats = await OrderService(db).get_order_stats()
    return OrderStatsResponse(**stats)


@router.get("/partial-unavailable", response_model=PartialUnavailableResponse)
async def get_partial_unavailable_orders(
    db: DB,
    current_user: CurrentUser,
    page: int = Query(1, ge=1),
    size: int = Query(10, ge=1, le=100),
    brand: Optional[str] = Query(None),
    party_id: Optional[str] = Query(None, description="Comma-separated party IDs"),
    order_id: Optional[str] = Query(None, description="Comma-separated order IDs"),
    search: Optional[str] = Query(None),
):
    """Orders with items that fresh stock cannot cover, for purchase planning."""
    orders, total = await OrderService(db).get_partial_unavailable_orders(
        brand=brand,
        party_id=party_id,
        order_id=order_id,
        search=search,
        skip=(page - 1) * size,
        limit=size,
    )
    return PartialUnavailableResponse(
        items=orders,
        total=total,
        page=page,
        size=size,
        pages=ceil(total / size) if total > 0 else 1,
    )


@router.get("/party/{party_id}/pending", response_model=List[OrderResponse])
async def get_pending_orders_by_party(
    party_id: uuid.UUID,
    db: DB,
    current_user: CurrentUser,
):
    """Orders of a party that still have a balance to pay."""
    orders = await OrderService(db).get_pending_orders_by_party(party_id)
    return [OrderResponse.model_validate(o) for o in orders]


@router.get("/{order_id}", response_model=OrderDetailResponse)
async def get_order(
    order_id: uuid.UUID,
    db: DB,
    current_user: CurrentUser,
):
    """Get order details with per-item stock availability."""
    return await OrderService(db).get_order_with_availability(order_id)


@router.post(
    "",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_order(
    data: OrderCreate,
    db: DB,
    current_user: CurrentUser,
):
    """Create a new order. Totals are computed server-side."""
    order = await OrderService(db).create_order(data, user=current_user)
    return OrderResponse.model_validate(order)


@router.put("/{order_id}", response_model=OrderResponse)
async def update_order(
    order_id: uuid.UUID,
    data: OrderUpdate,
    db: DB,
    current_user: CurrentUser,
):
    order = await OrderService(db).update_order(order_id, data, user=current_user)
    return OrderResponse.model_validate(order)


@router.delete("/{order_id}", response_model=MessageResponse)
async def delete_order(
    order_id: uuid.UUID,
    db: DB,
    current_user: CurrentUser,
):
    """Delete a pending order that has no dispatches, receipts or purchase requests."""
    await OrderService(db).delete_order(order_id)
    return MessageResponse(message="Order deleted successfully")


@router.patch("/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    order_id: uuid.UUID,
    data: OrderStatusUpdate,
    db: DB,
    current_user: CurrentUser,
):
    """Manual status change, validated against the order transition table."""
    order = await OrderService(db).update_order_status(
        order_id,
        data.status,
        user=current_user,
        notes=data.notes,
    )
    return OrderResponse.model_validate(order)


@router.patch("/{order_id}/payment", response_model=OrderResponse)
async def update_payment_status(
    order_id: uuid.UUID,
    data: OrderPaymentUpdate,
    db: DB,
    current_user: CurrentUser,
):
    order = await OrderService(db).update_payment_status(order_id, data, user=current_user)
    return OrderResponse.model_validate(order)


@router.patch("/{order_id}/cancel", response_model=OrderCancelResponse)
async def cancel_order(
    order_id: uuid.UUID,
    data: OrderCancelRequest,
    db: DB,
    current_user: CurrentUser,
):
    """
    Cancel an order.

    Orders with payments need a payment_adjustment: adjust (onto another
    order), refund or forfeit. Dispatched quantities are kept; the rest
    of the order is dropped.
    """
    order, outcome, adjustment = await OrderService(db).cancel_order(order_id, data, user=current_user)

    message = (
        "Order partially cancelled. Dispatched items are retained."
        if outcome.is_partial
        else "Order cancelled successfully"
    )
    return OrderCancelResponse(
        message=message,
        data=OrderResponse.model_validate(order),
        cancellationDetails=CancellationDetails(
            type=outcome.type,
            totalOrderQty=outcome.total_order_qty,
            dispatchedQty=outcome.dispatched_qty,
            cancelledQty=outcome.cancelled_qty,
            paymentAdjustment=adjustment,
        ),
    )


@router.patch("/{order_id}/dispatch-details", response_model=MessageResponse)
async def record_dispatch_details(
    order_id: uuid.UUID,
    data: DispatchDetailsUpdate,
    db: DB,
    current_user: CurrentUser,
):
    """Record the vendor shipment and move the order to intrasite."""
    order = await OrderService(db).record_dispatch_details(order_id, data, user=current_user)
    return MessageResponse(
        message="Dispatch details recorded and order moved to intrasite",
        data=OrderResponse.model_validate(order).model_dump(mode="json"),
    )
