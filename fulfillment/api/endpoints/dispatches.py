from typing import Optional
import uuid
from math import ceil
from datetime import datetime

from fastapi import APIRouter, status, Query

from fulfillment.api.deps import DB, CurrentUser
from fulfillment.schemas.dispatch import (
    DispatchCreate,
    DispatchListResponse,
    DispatchResponse,
    DispatchStatusUpdate,
)
from fulfillment.services.dispatch_service import DispatchService


router = APIRouter(tags=["Dispatch"])


@router.post(
    "",
    response_model=DispatchResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_dispatch(
    data: DispatchCreate,
    db: DB,
    current_user: CurrentUser,
):
    """
    Create a dispatch note.

    Order items take the dispatched quantities and the order status is
    re-derived in the same transaction. Returns 409 if the order changed
    concurrently.
    """
    dispatch = await DispatchService(db).create_dispatch(data, user=current_user)
    return DispatchResponse.model_validate(dispatch)


@router.get("", response_model=DispatchListResponse)
async def list_dispatches(
    db: DB,
    current_user: CurrentUser,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    status: Optional[str] = Query(None),
    order_id: Optional[uuid.UUID] = Query(None),
    search: Optional[str] = Query(None),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
):
    dispatches, total = await DispatchService(db).get_dispatches(
        status=status,
        order_id=order_id,
        search=search,
        date_from=date_from,
        date_to=date_to,
        skip=(page - 1) * size,
        limit=size,
    )
    return DispatchListResponse(
        items=[DispatchResponse.model_validate(d) for d in dispatches],
        total=total,
        page=page,
        size=size,
        pages=ceil(total / size) if total > 0 else 1,
    )


@router.get("/{dispatch_id}", response_model=DispatchResponse)
async def get_dispatch(
    dispatch_id: uuid.UUID,
    db: DB,
    current_user: CurrentUser,
):
    dispatch = await DispatchService(db).require_dispatch(dispatch_id)
    return DispatchResponse.model_validate(dispatch)


@router.patch("/{dispatch_id}/status", response_model=DispatchResponse)
async def update_dispatch_status(
    dispatch_id: uuid.UUID,
    data: DispatchStatusUpdate,
    db: DB,
    current_user: CurrentUser,
):
    dispatch = await DispatchService(db).update_status(dispatch_id, data.status.value)
    return DispatchResponse.model_validate(dispatch)
