from typing import Optional, List
from datetime import datetime
from decimal import Decimal
import uuid

from pydantic import Field

from fulfillment.schemas.base import BaseCreateSchema, BaseResponseSchema


class ProductCreate(BaseCreateSchema):
    product_code: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    brand: Optional[str] = None
    product_type: Optional[str] = None
    mrp: Decimal = Field(Decimal("0"), ge=0)
    fresh_stock: int = Field(0, ge=0)
    damaged_stock: int = Field(0, ge=0)
    sample_stock: int = Field(0, ge=0)
    showroom_stock: int = Field(0, ge=0)
    opening_stock: int = Field(0, ge=0)


class ProductResponse(BaseResponseSchema):
    id: uuid.UUID
    product_code: str
    name: str
    description: Optional[str] = None
    brand: Optional[str] = None
    product_type: Optional[str] = None
    mrp: Decimal
    fresh_stock: int
    damaged_stock: int
    sample_stock: int
    showroom_stock: int
    opening_stock: int
    ordered_quantity: int
    in_transit_quantity: int
    total_sold: int
    available_for_order: int
    created_at: datetime
    updated_at: datetime


class ProductListResponse(BaseResponseSchema):
    items: List[ProductResponse]
    total: int
    page: int
    size: int
    pages: int
