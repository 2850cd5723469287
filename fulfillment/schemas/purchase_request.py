from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from decimal import Decimal
import uuid

from fulfillment.models.purchase_request import PaymentMode
from fulfillment.schemas.base import (
    BaseCreateSchema,
    BaseResponseSchema,
    BaseUpdateSchema,
)


class PurchaseRequestItemCreate(BaseCreateSchema):
    item_id: Optional[str] = None
    order_id: uuid.UUID
    product_id: Optional[uuid.UUID] = None
    product_code: Optional[str] = None
    product_name: Optional[str] = None
    brand: Optional[str] = None
    quantity: int = Field(..., ge=1)
    consolidated_quantity: int = Field(0, ge=0)
    fresh_stock: int = Field(0, ge=0)
    unavailable_quantity: int = Field(0, ge=0)
    availability_status: Optional[str] = None
    pi_received_quantity: int = Field(0, ge=0)
    price: Decimal = Field(Decimal("0"), ge=0)


class PurchaseRequestItemUpdate(BaseUpdateSchema):
    """Per-item vendor quantities, matched by item id."""
    id: uuid.UUID
    pi_received_quantity: Optional[int] = Field(None, ge=0)
    price: Optional[Decimal] = Field(None, ge=0)


class PurchaseRequestCreate(BaseCreateSchema):
    vendor: str = Field(..., min_length=1)
    pr_date: Optional[datetime] = None
    remarks: Optional[str] = None
    items: List[PurchaseRequestItemCreate] = Field(..., min_length=1)


class PurchaseRequestUpdate(BaseUpdateSchema):
    """
    PR update. Carries the PI and payment milestones.

    - pi_received=True requires pi_number and pi_date
    - payment_done=True requires payment_amount > 0, payment_utr and payment_mode
    """
    vendor: Optional[str] = None
    remarks: Optional[str] = None
    status: Optional[str] = None

    pi_received: Optional[bool] = None
    pi_number: Optional[str] = None
    pi_date: Optional[datetime] = None
    pi_amount: Optional[Decimal] = Field(None, ge=0)

    payment_done: Optional[bool] = None
    payment_amount: Optional[Decimal] = Field(None, ge=0)
    payment_utr: Optional[str] = None
    payment_mode: Optional[PaymentMode] = None
    payment_reference: Optional[str] = None
    payment_bank: Optional[str] = None
    payment_date: Optional[datetime] = None
    payment_remarks: Optional[str] = None

    items: Optional[List[PurchaseRequestItemUpdate]] = None


class MaterialReceivedItem(BaseModel):
    id: uuid.UUID
    fresh_stock_received: int = Field(0, ge=0)
    damaged_stock_received: int = Field(0, ge=0)
    short_qty_received: int = Field(0, ge=0)


class MaterialReceivedRequest(BaseModel):
    vendor_invoice_number: str = Field(..., min_length=1)
    invoice_date: datetime
    material_received_date: Optional[datetime] = None
    items: List[MaterialReceivedItem] = Field(..., min_length=1)


class PurchaseRequestItemResponse(BaseResponseSchema):
    id: uuid.UUID
    item_id: Optional[str] = None
    order_id: Optional[uuid.UUID] = None
    order_no: Optional[str] = None
    party_name: Optional[str] = None
    product_id: Optional[uuid.UUID] = None
    product_code: Optional[str] = None
    product_name: Optional[str] = None
    brand: Optional[str] = None
    quantity: int
    consolidated_quantity: int
    fresh_stock: int
    unavailable_quantity: int
    availability_status: Optional[str] = None
    pi_received_quantity: int
    fresh_stock_received: int
    damaged_stock_received: int
    short_qty_received: int
    shipped: bool = False
    price: Decimal
    total: Decimal


class PurchaseRequestResponse(BaseResponseSchema):
    id: uuid.UUID
    pr_number: str
    pr_date: datetime
    vendor: str

    pi_received: bool
    pi_number: Optional[str] = None
    pi_date: Optional[datetime] = None
    pi_amount: Decimal

    payment_done: bool
    payment_amount: Decimal
    payment_utr: Optional[str] = None
    payment_mode: Optional[str] = None
    payment_reference: Optional[str] = None
    payment_bank: Optional[str] = None
    payment_date: Optional[datetime] = None
    payment_remarks: Optional[str] = None

    material_received: bool
    material_received_date: Optional[datetime] = None
    vendor_invoice_number: Optional[str] = None
    invoice_date: Optional[datetime] = None

    status: str
    remarks: Optional[str] = None
    created_by: Optional[uuid.UUID] = None
    created_by_name: Optional[str] = None
    approved_by: Optional[uuid.UUID] = None
    approved_date: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    items: List[PurchaseRequestItemResponse] = []


class PurchaseRequestListResponse(BaseResponseSchema):
    items: List[PurchaseRequestResponse]
    total: int
    page: int
    size: int
    pages: int
