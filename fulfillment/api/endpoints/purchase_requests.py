from typing import Optional
import uuid
from math import ceil
from datetime import datetime

from fastapi import APIRouter, status, Query

from fulfillment.api.deps import DB, CurrentUser
from fulfillment.schemas.base import MessageResponse
from fulfillment.schemas.purchase_request import (
    MaterialReceivedRequest,
    PurchaseRequestCreate,
    PurchaseRequestListResponse,
    PurchaseRequestResponse,
    PurchaseRequestUpdate,
)
from fulfillment.services.purchase_request_service import PurchaseRequestService


router = APIRouter(tags=["Purchase Requests"])


@router.post(
    "",
    response_model=PurchaseRequestResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_purchase_request(
    data: PurchaseRequestCreate,
    db: DB,
    current_user: CurrentUser,
):
    pr = await PurchaseRequestService(db).create_purchase_request(data, user=current_user)
    return PurchaseRequestResponse.model_validate(pr)


@router.get("", response_model=PurchaseRequestListResponse)
async def list_purchase_requests(
    db: DB,
    current_user: CurrentUser,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    status: Optional[str] = Query(None),
    vendor: Optional[str] = Query(None),
    pi_received: Optional[bool] = Query(None),
    search: Optional[str] = Query(None, description="Search PR number, vendor or PI number"),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
):
    prs, total = await PurchaseRequestService(db).get_purchase_requests(
        status=status,
        vendor=vendor,
        pi_received=pi_received,
        search=search,
        date_from=date_from,
        date_to=date_to,
        skip=(page - 1) * size,
        limit=size,
    )
    return PurchaseRequestListResponse(
        items=[PurchaseRequestResponse.model_validate(pr) for pr in prs],
        total=total,
        page=page,
        size=size,
        pages=ceil(total / size) if total > 0 else 1,
    )


@router.get("/{pr_id}", response_model=PurchaseRequestResponse)
async def get_purchase_request(
    pr_id: uuid.UUID,
    db: DB,
    current_user: CurrentUser,
):
    pr = await PurchaseRequestService(db).require_purchase_request(pr_id)
    return PurchaseRequestResponse.model_validate(pr)


@router.put("/{pr_id}", response_model=PurchaseRequestResponse)
async def update_purchase_request(
    pr_id: uuid.UUID,
    data: PurchaseRequestUpdate,
    db: DB,
    current_user: CurrentUser,
):
    """
    Update a purchase request.

    Carries the PI and payment milestones. A payment that covers the PI
    amount moves the PR to awaiting_dispatch and, through a fulfillment
    event, its orders to awaiting_dispatch.
    """
    pr = await PurchaseRequestService(db).update_purchase_request(pr_id, data, user=current_user)
    return PurchaseRequestResponse.model_validate(pr)


@router.delete("/{pr_id}", response_model=MessageResponse)
async def delete_purchase_request(
    pr_id: uuid.UUID,
    db: DB,
    current_user: CurrentUser,
):
    await PurchaseRequestService(db).delete_purchase_request(pr_id)
    return MessageResponse(message="Purchase request deleted successfully")


@router.post("/{pr_id}/material-received", response_model=MessageResponse)
async def record_material_received(
    pr_id: uuid.UUID,
    data: MaterialReceivedRequest,
    db: DB,
    current_user: CurrentUser,
):
    """Book vendor goods into stock. All items are validated before anything is recorded."""
    pr = await PurchaseRequestService(db).record_material_received(pr_id, data, user=current_user)
    return MessageResponse(
        message="Material received successfully",
        data=PurchaseRequestResponse.model_validate(pr).model_dump(mode="json"),
    )
