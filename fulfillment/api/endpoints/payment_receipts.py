from typing import Optional, List
import uuid
from math import ceil
from datetime import datetime

from fastapi import APIRouter, status, Query

from fulfillment.api.deps import DB, CurrentUser
from fulfillment.schemas.base import MessageResponse
from fulfillment.schemas.payment_receipt import (
    PaymentReceiptCreate,
    PaymentReceiptListResponse,
    PaymentReceiptResponse,
    PaymentReceiptSummary,
    PaymentReceiptUpdate,
)
from fulfillment.services.payment_receipt_service import PaymentReceiptService


router = APIRouter(tags=["Payment Receipts"])


@router.post(
    "",
    response_model=PaymentReceiptResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_payment_receipt(
    data: PaymentReceiptCreate,
    db: DB,
    current_user: CurrentUser,
):
    """Record a customer payment against an order's outstanding balance."""
    receipt = await PaymentReceiptService(db).create_receipt(data, user=current_user)
    return PaymentReceiptResponse.model_validate(receipt)


@router.get("", response_model=PaymentReceiptListResponse)
async def list_payment_receipts(
    db: DB,
    current_user: CurrentUser,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    order_id: Optional[uuid.UUID] = Query(None),
    party_id: Optional[uuid.UUID] = Query(None),
    payment_mode: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
):
    receipts, total = await PaymentReceiptService(db).get_receipts(
        order_id=order_id,
        party_id=party_id,
        payment_mode=payment_mode,
        status=status,
        search=search,
        date_from=date_from,
        date_to=date_to,
        skip=(page - 1) * size,
        limit=size,
    )
    return PaymentReceiptListResponse(
        items=[PaymentReceiptResponse.model_validate(r) for r in receipts],
        total=total,
        page=page,
        size=size,
        pages=ceil(total / size) if total > 0 else 1,
    )


@router.get("/summary", response_model=PaymentReceiptSummary)
async def get_payment_summary(
    db: DB,
    current_user: CurrentUser,
    party_id: Optional[uuid.UUID] = Query(None),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
):
    """Receipt totals by payment mode."""
    summary = await PaymentReceiptService(db).get_summary(
        party_id=party_id,
        date_from=date_from,
        date_to=date_to,
    )
    return PaymentReceiptSummary(**summary)


@router.get("/order/{order_id}", response_model=List[PaymentReceiptResponse])
async def get_receipts_for_order(
    order_id: uuid.UUID,
    db: DB,
    current_user: CurrentUser,
):
    receipts = await PaymentReceiptService(db).get_receipts_for_order(order_id)
    return [PaymentReceiptResponse.model_validate(r) for r in receipts]


@router.get("/{receipt_id}", response_model=PaymentReceiptResponse)
async def get_payment_receipt(
    receipt_id: uuid.UUID,
    db: DB,
    current_user: CurrentUser,
):
    receipt = await PaymentReceiptService(db).require_receipt(receipt_id)
    return PaymentReceiptResponse.model_validate(receipt)


@router.put("/{receipt_id}", response_model=PaymentReceiptResponse)
async def update_payment_receipt(
    receipt_id: uuid.UUID,
    data: PaymentReceiptUpdate,
    db: DB,
    current_user: CurrentUser,
):
    receipt = await PaymentReceiptService(db).update_receipt(receipt_id, data)
    return PaymentReceiptResponse.model_validate(receipt)


@router.delete("/{receipt_id}", response_model=MessageResponse)
async def delete_payment_receipt(
    receipt_id: uuid.UUID,
    db: DB,
    current_user: CurrentUser,
):
    """Delete a receipt and take its amount back off the order."""
    await PaymentReceiptService(db).delete_receipt(receipt_id)
    return MessageResponse(message="Payment receipt deleted successfully")
