import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional
from decimal import Decimal

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Integer, Text, Numeric, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fulfillment.database import Base
from fulfillment.db_types import UUIDType


class PRStatus(str, Enum):
    """Purchase request status enumeration."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    AWAITING_PAYMENT = "awaiting_payment"    # PI received from vendor
    PARTIAL_PAYMENT = "partial_payment"      # Paid less than the PI amount
    AWAITING_DISPATCH = "awaiting_dispatch"  # Fully paid, vendor to ship
    INTRASITE = "intrasite"                  # Vendor shipment on its way
    COMPLETED = "completed"


class PaymentMode(str, Enum):
    CHEQUE = "cheque"
    RTGS = "rtgs"
    NEFT = "neft"
    IMPS = "imps"
    CASH = "cash"
    UPI = "upi"


class PurchaseRequest(Base):
    """
    Vendor purchase request raised against pending order items.

    Lifecycle: pending -> (PI received) awaiting_payment ->
    partial_payment / awaiting_dispatch -> intrasite -> completed.
    """
    __tablename__ = "purchase_requests"
    __table_args__ = (
        Index('ix_pr_status_created', 'status', 'created_at'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    pr_number: Mapped[str] = mapped_column(
        String(30),
        unique=True,
        nullable=False,
        index=True
    )
    pr_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    vendor: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    # Proforma invoice
    pi_received: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    pi_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    pi_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    pi_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("0.00"),
        nullable=False
    )

    # Vendor payment
    payment_done: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    payment_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("0.00"),
        nullable=False
    )
    payment_utr: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    payment_mode: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
        comment="cheque, rtgs, neft, imps, cash, upi"
    )
    payment_reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    payment_bank: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    payment_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    payment_remarks: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Material receipt
    material_received: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    material_received_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    vendor_invoice_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    invoice_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    status: Mapped[str] = mapped_column(
        String(30),
        default=PRStatus.PENDING.value,
        nullable=False,
        index=True,
        comment="pending, approved, rejected, awaiting_payment, partial_payment, "
                "awaiting_dispatch, intrasite, completed"
    )
    remarks: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True
    )
    created_by_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    approved_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    approved_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

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

    items: Mapped[List["PurchaseRequestItem"]] = relationship(
        "PurchaseRequestItem",
        back_populates="purchase_request",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="PurchaseRequestItem.position",
    )

    @property
    def order_ids(self) -> List[uuid.UUID]:
        """Unique orders referenced by the items, in first-seen order."""
        seen: List[uuid.UUID] = []
        for item in self.items:
            if item.order_id and item.order_id not in seen:
                seen.append(item.order_id)
        return seen

    def __repr__(self) -> str:
        return f"<PurchaseRequest(number='{self.pr_number}', status='{self.status}')>"


class PurchaseRequestItem(Base):
    """PR line referencing the order item it procures for."""
    __tablename__ = "purchase_request_items"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    purchase_request_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("purchase_requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    item_id: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="Client-side key of the order item"
    )

    # Order reference
    order_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("orders.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    order_no: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    party_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Product snapshot
    product_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("products.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    product_code: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    product_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    brand: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Requested quantities
    quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    consolidated_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    fresh_stock: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    unavailable_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    availability_status: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)

    # Vendor side quantities
    pi_received_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    fresh_stock_received: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    damaged_stock_received: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    short_qty_received: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    shipped: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        comment="Quantity moved from ordered to in transit on the product"
    )

    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"), nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"), nullable=False)

    purchase_request: Mapped["PurchaseRequest"] = relationship(
        "PurchaseRequest",
        back_populates="items"
    )

    @property
    def procured_quantity(self) -> int:
        """Quantity the vendor committed to: PI quantity, falling back to requested."""
        return self.pi_received_quantity or self.quantity

    def __repr__(self) -> str:
        return f"<PurchaseRequestItem(code='{self.product_code}', qty={self.quantity})>"
