import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional
from decimal import Decimal

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Integer, Text, Numeric, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fulfillment.database import Base
from fulfillment.db_types import UUIDType


class DispatchStatus(str, Enum):
    PENDING = "pending"
    IN_TRANSIT = "in-transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class DispatchNote(Base):
    """
    Goods physically shipped against one order.

    Items are fixed once the note is created; only the shipment status
    moves afterwards.
    """
    __tablename__ = "dispatch_notes"
    __table_args__ = (
        Index('ix_dispatch_order_date', 'order_id', 'dispatch_date'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    dispatch_no: Mapped[str] = mapped_column(
        String(30),
        unique=True,
        nullable=False,
        index=True
    )
    dispatch_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("orders.id", ondelete="RESTRICT"),
        nullable=False
    )
    order_no: Mapped[str] = mapped_column(String(30), nullable=False)

    # Snapshot from the order at dispatch time
    company_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    company_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    party_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    party_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    site_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    site_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    site_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    contact_person: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    mobile: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    vehicle_number: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    driver_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    driver_mobile: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    status: Mapped[str] = mapped_column(
        String(20),
        default=DispatchStatus.PENDING.value,
        nullable=False,
        index=True,
        comment="pending, in-transit, delivered, cancelled"
    )
    sell_recorded: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True
    )
    created_by_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

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

    items: Mapped[List["DispatchItem"]] = relationship(
        "DispatchItem",
        back_populates="dispatch",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="DispatchItem.position",
    )

    @property
    def total_quantity(self) -> int:
        return sum(item.quantity for item in self.items)

    @property
    def total_amount(self) -> Decimal:
        return sum((item.total_amount for item in self.items), Decimal("0.00"))

    def __repr__(self) -> str:
        return f"<DispatchNote(number='{self.dispatch_no}', order='{self.order_no}')>"


class DispatchItem(Base):
    __tablename__ = "dispatch_items"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    dispatch_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("dispatch_notes.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Group the item was shipped from; disambiguates a product ordered in several groups
    group_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    order_item_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("order_items.id", ondelete="SET NULL"),
        nullable=True
    )

    product_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False, index=True)
    product_code: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    product_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    net_rate: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"), nullable=False)

    dispatch: Mapped["DispatchNote"] = relationship("DispatchNote", back_populates="items")

    def __repr__(self) -> str:
        return f"<DispatchItem(code='{self.product_code}', qty={self.quantity})>"
