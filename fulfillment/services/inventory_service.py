"""
Inventory Service

Product lookups and the counter mutations used by the fulfillment
workflow. Counter updates read the product row with SELECT FOR UPDATE
so concurrent workflows serialise on the product.
"""

from typing import List, Optional, Tuple
import uuid
import logging

from sqlalchemy import select, func, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError

from fulfillment.core.exceptions import BusinessRuleViolation, NotFound, ValidationFailed
from fulfillment.models.product import Product
from fulfillment.schemas.product import ProductCreate

logger = logging.getLogger(__name__)


class InventoryService:
    """Service for products and their stock counters."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ==================== PRODUCTS ====================

    async def create_product(self, data: ProductCreate) -> Product:
        product = Product(**data.model_dump())
        self.db.add(product)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ValidationFailed(f"Product code '{data.product_code}' already exists")
        logger.info(f"Product created: {product.product_code}")
        return product

    async def get_product(self, product_id: uuid.UUID) -> Optional[Product]:
        return await self.db.get(Product, product_id)

    async def require_product(self, product_id: uuid.UUID) -> Product:
        product = await self.get_product(product_id)
        if not product:
            raise NotFound(f"Product {product_id} not found")
        return product

    async def get_products(
        self,
        search: Optional[str] = None,
        brand: Optional[str] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[Product], int]:
        """Get paginated products."""
        filters = []
        if brand:
            filters.append(Product.brand == brand)
        if search:
            search_filter = f"%{search}%"
            filters.append(
                or_(
                    Product.product_code.ilike(search_filter),
                    Product.name.ilike(search_filter),
                )
            )

        stmt = select(Product).order_by(Product.product_code)
        count_stmt = select(func.count(Product.id))
        if filters:
            stmt = stmt.where(and_(*filters))
            count_stmt = count_stmt.where(and_(*filters))

        total = (await self.db.execute(count_stmt)).scalar() or 0
        result = await self.db.execute(stmt.offset(skip).limit(limit))
        return list(result.scalars().all()), total

    async def get_products_by_codes(self, codes: List[str]) -> dict:
        """Map product_code -> Product for the given codes."""
        if not codes:
            return {}
        result = await self.db.execute(
            select(Product).where(Product.product_code.in_(set(codes)))
        )
        return {p.product_code: p for p in result.scalars().all()}

    async def get_products_by_ids(self, ids: List[uuid.UUID]) -> dict:
        ids = [i for i in ids if i]
        if not ids:
            return {}
        result = await self.db.execute(select(Product).where(Product.id.in_(set(ids))))
        return {p.id: p for p in result.scalars().all()}

    # ==================== COUNTERS ====================

    async def _lock_product(self, product_id: uuid.UUID) -> Product:
        # Pending counter changes must reach the row before it is re-read
        await self.db.flush()
        result = await self.db.execute(
            select(Product)
            .where(Product.id == product_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        product = result.scalar_one_or_none()
        if not product:
            raise NotFound(f"Product {product_id} not found")
        return product

    async def add_ordered_quantity(self, product_id: uuid.UUID, quantity: int) -> Product:
        """Vendor has been paid for quantity units."""
        product = await self._lock_product(product_id)
        product.ordered_quantity = (product.ordered_quantity or 0) + quantity
        return product

    async def move_ordered_to_in_transit(self, product_id: uuid.UUID, quantity: int) -> Product:
        """Vendor shipped quantity units: ordered goes down (floored at 0), in transit goes up."""
        product = await self._lock_product(product_id)
        product.in_transit_quantity = (product.in_transit_quantity or 0) + quantity
        product.ordered_quantity = max(0, (product.ordered_quantity or 0) - quantity)
        return product

    async def receive_stock(
        self,
        product_id: uuid.UUID,
        fresh: int,
        damaged: int,
        short: int,
    ) -> Product:
        """
        Book a material receipt.

        fresh/damaged go into their stock buckets; everything accounted
        for (including short) leaves in transit, floored at 0.
        """
        product = await self._lock_product(product_id)
        product.fresh_stock = (product.fresh_stock or 0) + fresh
        product.damaged_stock = (product.damaged_stock or 0) + damaged
        product.in_transit_quantity = max(0, (product.in_transit_quantity or 0) - (fresh + damaged + short))
        return product

    async def sell_stock(self, product_id: uuid.UUID, quantity: int) -> Product:
        """Take quantity out of fresh stock; refuses to go negative."""
        product = await self._lock_product(product_id)
        if (product.fresh_stock or 0) < quantity:
            raise BusinessRuleViolation(
                f"Insufficient stock for {product.product_code}. "
                f"Available: {product.fresh_stock}, Requested: {quantity}",
                productCode=product.product_code,
                available=product.fresh_stock,
                requested=quantity,
            )
        product.fresh_stock -= quantity
        product.total_sold = (product.total_sold or 0) + quantity
        return product
