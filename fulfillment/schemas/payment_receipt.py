from pydantic import BaseModel, Field
from typing import Optional, List, Dict
from datetime import datetime
from decimal import Decimal
import uuid

from fulfillment.models.payment_receipt import ReceiptPaymentMode, ReceiptStatus
from fulfillment.schemas.base import BaseCreateSchema, BaseResponseSchema, BaseUpdateSchema


class PaymentReceiptCreate(BaseCreateSchema):
    order_id: uuid.UUID
    amount_received: Decimal = Field(..., gt=0)
    payment_mode: ReceiptPaymentMode
    receipt_date: Optional[datetime] = None
    bank_name: Optional[str] = None
    cheque_number: Optional[str] = None
    cheque_date: Optional[datetime] = None
    transaction_id: Optional[str] = None
    reference_number: Optional[str] = None
    notes: Optional[str] = None


class PaymentReceiptUpdate(BaseUpdateSchema):
    """Descriptive fields only; the amount of a receipt is fixed."""
    bank_name: Optional[str] = None
    cheque_number: Optional[str] = None
    cheque_date: Optional[datetime] = None
    transaction_id: Optional[str] = None
    reference_number: Optional[str] = None
    status: Optional[ReceiptStatus] = None
    notes: Optional[str] = None


class PaymentReceiptResponse(BaseResponseSchema):
    id: uuid.UUID
    receipt_no: str
    receipt_date: datetime
    order_id: uuid.UUID
    order_no: str
    party_id: Optional[uuid.UUID] = None
    party_name: Optional[str] = None
    company_id: Optional[uuid.UUID] = None
    company_name: Optional[str] = None
    amount_received: Decimal
    payment_mode: str
    bank_name: Optional[str] = None
    cheque_number: Optional[str] = None
    cheque_date: Optional[datetime] = None
    transaction_id: Optional[str] = None
    reference_number: Optional[str] = None
    order_total: Decimal
    amount_paid_before: Decimal
    balance_before: Decimal
    balance_after: Decimal
    status: str
    notes: Optional[str] = None
    created_by_name: Optional[str] = None
    created_at: datetime


class PaymentReceiptListResponse(BaseResponseSchema):
    items: List[PaymentReceiptResponse]
    total: int
    page: int
    size: int
    pages: int


class ModeSummary(BaseModel):
    count: int
    amount: Decimal


class PaymentReceiptSummary(BaseModel):
    total_receipts: int
    total_amount: Decimal
    by_mode: Dict[str, ModeSummary]
