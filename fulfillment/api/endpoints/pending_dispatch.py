from typing import Optional

from fastapi import APIRouter, Query

from fulfillment.api.deps import DB, CurrentUser
from fulfillment.schemas.order import PendingDispatchResponse
from fulfillment.services.order_service import OrderService


router = APIRouter(tags=["Pending Dispatch"])


@router.get("", response_model=PendingDispatchResponse)
async def get_pending_dispatch_materials(
    db: DB,
    current_user: CurrentUser,
    brand: Optional[str] = Query(None, description="Case-insensitive brand filter"),
    group: Optional[str] = Query(None, description="Case-insensitive group name filter"),
    search: Optional[str] = Query(None, description="Search order, party or product"),
):
    """Order items that still have quantity waiting to be dispatched."""
    materials = await OrderService(db).get_pending_dispatch_materials(brand=brand, group=group, search=search)
    return PendingDispatchResponse(**materials)
