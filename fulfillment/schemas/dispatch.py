from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from decimal import Decimal
import uuid

from fulfillment.models.dispatch import DispatchStatus
from fulfillment.schemas.base import BaseCreateSchema, BaseResponseSchema


class DispatchItemCreate(BaseCreateSchema):
    product_id: uuid.UUID
    group_name: Optional[str] = None  # Picks the order group when a product appears in several
    product_code: Optional[str] = None
    product_name: Optional[str] = None
    quantity: int = Field(..., ge=1)
    net_rate: Optional[Decimal] = Field(None, ge=0)  # Defaults to the order item's rate


class DispatchCreate(BaseCreateSchema):
    order_id: uuid.UUID
    dispatch_date: Optional[datetime] = None
    notes: Optional[str] = None
    vehicle_number: Optional[str] = None
    driver_name: Optional[str] = None
    driver_mobile: Optional[str] = None
    items: List[DispatchItemCreate] = Field(..., min_length=1)


class DispatchStatusUpdate(BaseModel):
    status: DispatchStatus


class DispatchItemResponse(BaseResponseSchema):
    id: uuid.UUID
    group_name: Optional[str] = None
    order_item_id: Optional[uuid.UUID] = None
    product_id: uuid.UUID
    product_code: Optional[str] = None
    product_name: Optional[str] = None
    quantity: int
    net_rate: Decimal
    total_amount: Decimal


class DispatchResponse(BaseResponseSchema):
    id: uuid.UUID
    dispatch_no: str
    dispatch_date: datetime
    order_id: uuid.UUID
    order_no: str
    company_id: Optional[uuid.UUID] = None
    company_name: Optional[str] = None
    party_id: Optional[uuid.UUID] = None
    party_name: Optional[str] = None
    site_id: Optional[uuid.UUID] = None
    site_name: Optional[str] = None
    site_address: Optional[str] = None
    contact_person: Optional[str] = None
    mobile: Optional[str] = None
    notes: Optional[str] = None
    vehicle_number: Optional[str] = None
    driver_name: Optional[str] = None
    driver_mobile: Optional[str] = None
    status: str
    sell_recorded: bool
    total_quantity: int
    total_amount: Decimal
    created_by: Optional[uuid.UUID] = None
    created_by_name: Optional[str] = None
    created_at: datetime
    items: List[DispatchItemResponse] = []


class DispatchListResponse(BaseResponseSchema):
    items: List[DispatchResponse]
    total: int
    page: int
    size: int
    pages: int
