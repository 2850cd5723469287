from typing import Optional
import uuid
from math import ceil

from fastapi import APIRouter, status, Query

from fulfillment.api.deps import DB, CurrentUser
from fulfillment.schemas.product import ProductCreate, ProductListResponse, ProductResponse
from fulfillment.services.inventory_service import InventoryService


router = APIRouter(tags=["Products"])


@router.post(
    "",
    response_model=ProductResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_product(
    data: ProductCreate,
    db: DB,
    current_user: CurrentUser,
):
    product = await InventoryService(db).create_product(data)
    return ProductResponse.model_validate(product)


@router.get("", response_model=ProductListResponse)
async def list_products(
    db: DB,
    current_user: CurrentUser,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    search: Optional[str] = Query(None, description="Search by code or name"),
    brand: Optional[str] = Query(None),
):
    products, total = await InventoryService(db).get_products(
        search=search,
        brand=brand,
        skip=(page - 1) * size,
        limit=size,
    )
    return ProductListResponse(
        items=[ProductResponse.model_validate(p) for p in products],
        total=total,
        page=page,
        size=size,
        pages=ceil(total / size) if total > 0 else 1,
    )


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: uuid.UUID,
    db: DB,
    current_user: CurrentUser,
):
    """Product with its stock counters and computed availability."""
    product = await InventoryService(db).require_product(product_id)
    return ProductResponse.model_validate(product)
