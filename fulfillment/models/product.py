import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, DateTime, Integer, Text, Numeric, Index
from sqlalchemy.orm import Mapped, mapped_column

from fulfillment.database import Base
from fulfillment.db_types import UUIDType


class Product(Base):
    """
    Product with its inventory ledger.

    Stock is tracked as independent counters rather than one
    "available" figure:
    - fresh/damaged/sample/showroom/opening: physical stock buckets
    - ordered_quantity: paid for at the vendor, not yet shipped
    - in_transit_quantity: shipped by the vendor, not yet received
    - total_sold: cumulative quantity billed through sell records
    """
    __tablename__ = "products"
    __table_args__ = (
        Index('ix_product_brand_code', 'brand', 'product_code'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    product_code: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        nullable=False,
        index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    brand: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    product_type: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        comment="Rough, Trim, etc."
    )
    mrp: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("0.00"),
        nullable=False
    )

    # Stock buckets
    fresh_stock: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    damaged_stock: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    sample_stock: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    showroom_stock: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    opening_stock: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Procurement pipeline
    ordered_quantity: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
        comment="Paid at vendor, awaiting shipment"
    )
    in_transit_quantity: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
        comment="Shipped by vendor, awaiting receipt"
    )
    total_sold: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    @property
    def available_for_order(self) -> int:
        """Fresh plus opening stock less damaged stock, never negative."""
        return max(0, (self.fresh_stock or 0) + (self.opening_stock or 0) - (self.damaged_stock or 0))

    def __repr__(self) -> str:
        return f"<Product(code='{self.product_code}', fresh={self.fresh_stock})>"
