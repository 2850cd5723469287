from typing import Optional
from math import ceil

from fastapi import APIRouter, status, Query

from fulfillment.api.deps import DB, CurrentUser
from fulfillment.schemas.sell_record import SellRecordCreate, SellRecordListResponse, SellRecordResponse
from fulfillment.services.sell_record_service import SellRecordService


router = APIRouter(tags=["Sell Records"])


@router.post(
    "",
    response_model=SellRecordResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_sell_record(
    data: SellRecordCreate,
    db: DB,
    current_user: CurrentUser,
):
    """Raise a bill; fresh stock is decremented in the same transaction."""
    record = await SellRecordService(db).create_sell_record(data, user=current_user)
    return SellRecordResponse.model_validate(record)


@router.get("", response_model=SellRecordListResponse)
async def list_sell_records(
    db: DB,
    current_user: CurrentUser,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    search: Optional[str] = Query(None),
):
    records, total = await SellRecordService(db).get_sell_records(
        search=search,
        skip=(page - 1) * size,
        limit=size,
    )
    return SellRecordListResponse(
        items=[SellRecordResponse.model_validate(r) for r in records],
        total=total,
        page=page,
        size=size,
        pages=ceil(total / size) if total > 0 else 1,
    )
