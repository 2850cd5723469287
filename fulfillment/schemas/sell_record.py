from pydantic import Field
from typing import Optional, List
from datetime import datetime
from decimal import Decimal
import uuid

from fulfillment.schemas.base import BaseCreateSchema, BaseResponseSchema


class SellRecordItemCreate(BaseCreateSchema):
    product_id: uuid.UUID
    quantity: int = Field(..., ge=1)
    unit_price: Decimal = Field(..., ge=0)


class SellRecordCreate(BaseCreateSchema):
    customer_name: str = Field(..., min_length=1)
    customer_phone: Optional[str] = None
    customer_address: Optional[str] = None
    dispatch_id: Optional[uuid.UUID] = None
    discount: Decimal = Field(Decimal("0"), ge=0)
    tax: Decimal = Field(Decimal("0"), ge=0)
    payment_status: str = "paid"
    payment_method: Optional[str] = None
    notes: Optional[str] = None
    items: List[SellRecordItemCreate] = Field(..., min_length=1)


class SellRecordItemResponse(BaseResponseSchema):
    id: uuid.UUID
    product_id: uuid.UUID
    product_code: Optional[str] = None
    product_name: Optional[str] = None
    quantity: int
    unit_price: Decimal
    total_price: Decimal


class SellRecordResponse(BaseResponseSchema):
    id: uuid.UUID
    bill_number: str
    bill_date: datetime
    customer_name: str
    customer_phone: Optional[str] = None
    customer_address: Optional[str] = None
    dispatch_id: Optional[uuid.UUID] = None
    total_amount: Decimal
    discount: Decimal
    tax: Decimal
    final_amount: Decimal
    payment_status: str
    payment_method: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    items: List[SellRecordItemResponse] = []


class SellRecordListResponse(BaseResponseSchema):
    items: List[SellRecordResponse]
    total: int
    page: int
    size: int
    pages: int
