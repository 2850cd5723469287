from pydantic import BaseModel, Field
from typing import Literal, Optional, List
from datetime import datetime
from decimal import Decimal
import uuid

from fulfillment.schemas.base import (
    BaseCreateSchema,
    BaseResponseSchema,
    BaseUpdateSchema,
)


# ==================== ORDER ITEM / GROUP SCHEMAS ====================

class OrderItemCreate(BaseCreateSchema):
    """Order item creation schema."""
    product_id: Optional[uuid.UUID] = None
    product_code: Optional[str] = None
    product_name: Optional[str] = None  # Filled from the product when omitted
    product_description: Optional[str] = None
    product_brand: Optional[str] = None
    mrp: Decimal = Field(Decimal("0"), ge=0)
    quantity: int = Field(..., ge=1)
    discount: Decimal = Field(Decimal("0"), ge=0)
    discount_type: Literal["percentage", "amount"] = "percentage"
    net_rate: Decimal = Field(..., ge=0)
    gst_percentage: Decimal = Field(Decimal("18"), ge=0, le=100)


class OrderGroupCreate(BaseCreateSchema):
    group_id: Optional[str] = None
    group_name: str = Field(..., min_length=1)
    group_category: Optional[str] = None
    items: List[OrderItemCreate] = Field(..., min_length=1)


class OrderItemResponse(BaseResponseSchema):
    """Order item response schema."""
    id: uuid.UUID
    product_id: Optional[uuid.UUID] = None
    product_code: Optional[str] = None
    product_name: str
    product_description: Optional[str] = None
    product_brand: Optional[str] = None
    mrp: Decimal
    quantity: int
    discount: Decimal
    discount_type: str
    net_rate: Decimal
    total_amount: Decimal
    gst_percentage: Decimal
    dispatched_quantity: int
    balance_quantity: int
    cancelled_quantity: int = 0


class OrderGroupResponse(BaseResponseSchema):
    id: uuid.UUID
    group_id: Optional[str] = None
    group_name: str
    group_category: Optional[str] = None
    subtotal: Decimal
    total_discount: Decimal
    total_amount: Decimal
    items: List[OrderItemResponse] = []


class OrderStatusHistoryResponse(BaseResponseSchema):
    id: uuid.UUID
    from_status: Optional[str] = None
    to_status: str
    changed_by: Optional[uuid.UUID] = None
    source: str
    notes: Optional[str] = None
    created_at: datetime


# ==================== ORDER SCHEMAS ====================

class OrderCreate(BaseCreateSchema):
    """Order creation schema."""
    company_id: uuid.UUID
    company_name: Optional[str] = None
    party_id: uuid.UUID
    party_name: Optional[str] = None
    contact_person: Optional[str] = None
    mobile: Optional[str] = None
    email: Optional[str] = None
    site_id: Optional[uuid.UUID] = None
    site_name: Optional[str] = None
    site_address: Optional[str] = None
    site_city: Optional[str] = None
    quotation_id: Optional[uuid.UUID] = None
    quotation_no: Optional[str] = None
    order_date: Optional[datetime] = None
    expected_delivery_date: Optional[datetime] = None

    groups: List[OrderGroupCreate] = Field(..., min_length=1)

    freight_charges: Decimal = Field(Decimal("0"), ge=0)
    gst_percentage: Optional[Decimal] = Field(None, ge=0, le=100)
    additional_discount: Decimal = Field(Decimal("0"), ge=0)
    roundoff_amount: Decimal = Decimal("0")

    amount_paid: Decimal = Field(Decimal("0"), ge=0)
    payment_method: Optional[str] = None
    notes: Optional[str] = None
    internal_notes: Optional[str] = None


class OrderUpdate(BaseUpdateSchema):
    """Patch of descriptive and financial header fields. Items are not editable."""
    contact_person: Optional[str] = None
    mobile: Optional[str] = None
    email: Optional[str] = None
    site_id: Optional[uuid.UUID] = None
    site_name: Optional[str] = None
    site_address: Optional[str] = None
    site_city: Optional[str] = None
    expected_delivery_date: Optional[datetime] = None
    freight_charges: Optional[Decimal] = Field(None, ge=0)
    gst_percentage: Optional[Decimal] = Field(None, ge=0, le=100)
    additional_discount: Optional[Decimal] = Field(None, ge=0)
    roundoff_amount: Optional[Decimal] = None
    amount_paid: Optional[Decimal] = Field(None, ge=0)
    payment_method: Optional[str] = None
    notes: Optional[str] = None
    internal_notes: Optional[str] = None


class OrderStatusUpdate(BaseModel):
    status: str
    notes: Optional[str] = None


class OrderPaymentUpdate(BaseModel):
    payment_status: str
    amount_paid: Optional[Decimal] = Field(None, ge=0)
    payment_method: Optional[str] = None


class PaymentAdjustment(BaseModel):
    action: Literal["adjust", "refund", "forfeit"]
    adjust_to_order_id: Optional[uuid.UUID] = None
    notes: Optional[str] = None


class OrderCancelRequest(BaseModel):
    cancellation_reason: Optional[str] = None
    payment_adjustment: Optional[PaymentAdjustment] = None


class DispatchDetailsUpdate(BaseModel):
    """Vendor shipment details recorded when goods leave for site."""
    vendor_bill_number: Optional[str] = None
    vendor_bill_date: Optional[datetime] = None
    dispatch_through: Optional[str] = None
    docket_number: Optional[str] = None


class OrderResponse(BaseResponseSchema):
    """Order response schema."""
    id: uuid.UUID
    order_number: str
    order_date: datetime
    expected_delivery_date: Optional[datetime] = None
    quotation_id: Optional[uuid.UUID] = None
    quotation_no: Optional[str] = None
    company_id: uuid.UUID
    company_name: Optional[str] = None
    party_id: uuid.UUID
    party_name: Optional[str] = None
    contact_person: Optional[str] = None
    mobile: Optional[str] = None
    email: Optional[str] = None
    site_id: Optional[uuid.UUID] = None
    site_name: Optional[str] = None
    site_address: Optional[str] = None
    site_city: Optional[str] = None

    grand_total: Decimal
    freight_charges: Decimal
    net_amount_before_tax: Decimal
    gst_percentage: Decimal
    gst_amount: Decimal
    additional_discount: Decimal
    roundoff_amount: Decimal
    net_amount_payable: Decimal

    status: str
    payment_status: str
    payment_method: Optional[str] = None
    amount_paid: Decimal
    balance_amount: Decimal

    notes: Optional[str] = None
    internal_notes: Optional[str] = None
    dispatch_details: Optional[dict] = None

    cancellation_reason: Optional[str] = None
    cancelled_by: Optional[uuid.UUID] = None
    cancelled_by_name: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    payment_adjustment_details: Optional[dict] = None

    created_by: Optional[uuid.UUID] = None
    created_by_name: Optional[str] = None
    updated_by_name: Optional[str] = None
    version: int
    created_at: datetime
    updated_at: datetime

    groups: List[OrderGroupResponse] = []
    status_history: List[OrderStatusHistoryResponse] = []


class OrderListResponse(BaseResponseSchema):
    """Paginated order list."""
    items: List[OrderResponse]
    total: int
    page: int
    size: int
    pages: int


# ==================== AVAILABILITY ====================

class ItemStockBreakdown(BaseModel):
    fresh_stock: int = 0
    opening_stock: int = 0
    damaged_stock: int = 0
    sample_stock: int = 0
    showroom_stock: int = 0
    ordered_quantity: int = 0
    in_transit_quantity: int = 0


class OrderItemAvailability(OrderItemResponse):
    available_quantity: int = 0
    consolidated_quantity: int = 0
    availability_status: str
    stock: ItemStockBreakdown = ItemStockBreakdown()


class OrderGroupAvailability(OrderGroupResponse):
    items: List[OrderItemAvailability] = []


class OrderDetailResponse(OrderResponse):
    """Order with per-item stock availability."""
    groups: List[OrderGroupAvailability] = []


# ==================== CANCELLATION ====================

class CancellationDetails(BaseModel):
    type: Literal["partial", "full"]
    totalOrderQty: int
    dispatchedQty: int
    cancelledQty: int
    paymentAdjustment: Optional[dict] = None


class OrderCancelResponse(BaseModel):
    success: bool = True
    message: str
    data: OrderResponse
    cancellationDetails: CancellationDetails


# ==================== REPORTS ====================

class OrderStatsResponse(BaseModel):
    total_orders: int
    by_status: dict
    total_revenue: Decimal
    outstanding_balance: Decimal
    amount_received: Decimal


class UnavailableItem(BaseModel):
    group_name: str
    product_id: Optional[uuid.UUID] = None
    product_code: Optional[str] = None
    product_name: str
    product_brand: Optional[str] = None
    quantity: int
    balance_quantity: int
    consolidated_quantity: int
    fresh_stock: int
    unavailable_quantity: int
    availability_status: Literal["partial", "unavailable"]


class PartialUnavailableOrder(BaseModel):
    order_id: uuid.UUID
    order_number: str
    order_date: datetime
    party_name: Optional[str] = None
    site_name: Optional[str] = None
    status: str
    items: List[UnavailableItem]


class PartialUnavailableResponse(BaseModel):
    items: List[PartialUnavailableOrder]
    total: int
    page: int
    size: int
    pages: int


class PendingDispatchItem(BaseModel):
    order_id: uuid.UUID
    order_number: str
    order_date: datetime
    party_name: Optional[str] = None
    site_name: Optional[str] = None
    order_status: str
    group_name: str
    group_category: Optional[str] = None
    order_item_id: uuid.UUID
    product_id: Optional[uuid.UUID] = None
    product_code: Optional[str] = None
    product_name: str
    product_brand: Optional[str] = None
    quantity: int
    dispatched_quantity: int
    pending_quantity: int
    net_rate: Decimal


class PendingDispatchResponse(BaseModel):
    items: List[PendingDispatchItem]
    total: int
    brands: List[str]
    groups: List[str]
