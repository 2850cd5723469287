import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Iterator, List, Optional
from decimal import Decimal

from sqlalchemy import String, DateTime, ForeignKey, Integer, Text, Numeric, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fulfillment.database import Base
from fulfillment.db_types import UUIDType, JSONType


class OrderStatus(str, Enum):
    """Order status enumeration - full workflow set."""
    PENDING = "pending"
    PARTIALLY_PENDING = "partially pending"
    AWAITING_DISPATCH = "awaiting_dispatch"        # Linked PR fully paid
    PARTIALLY_DISPATCHED = "partially dispatched"  # Some item partly shipped
    DISPATCHING = "dispatching"                    # Every item fully shipped
    INTRASITE = "intrasite"                        # Vendor goods on the way to site
    DELIVERED = "delivered"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    """Payment status enumeration."""
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    REFUNDED = "refunded"


class Order(Base):
    """
    Customer order made of named groups of items.

    Item-level dispatch progress drives the order status; payment
    fields track what the party has paid against net_amount_payable.
    """
    __tablename__ = "orders"
    __table_args__ = (
        Index('ix_order_status_created', 'status', 'created_at'),
        Index('ix_order_party_created', 'party_id', 'created_at'),
        Index('ix_order_payment_status', 'payment_status', 'created_at'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    # Order Identification
    order_number: Mapped[str] = mapped_column(
        String(30),
        unique=True,
        nullable=False,
        index=True
    )
    order_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    expected_delivery_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )
    quotation_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    quotation_no: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Company snapshot
    company_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False, index=True)
    company_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Party snapshot
    party_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False)
    party_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    contact_person: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    mobile: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Site snapshot
    site_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True, index=True)
    site_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    site_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    site_city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Financials (all in INR)
    grand_total: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("0.00"),
        nullable=False,
        comment="Sum of group totals"
    )
    freight_charges: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("0.00"),
        nullable=False
    )
    net_amount_before_tax: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("0.00"),
        nullable=False
    )
    gst_percentage: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        default=Decimal("18.00"),
        nullable=False
    )
    gst_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("0.00"),
        nullable=False
    )
    additional_discount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("0.00"),
        nullable=False
    )
    roundoff_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("0.00"),
        nullable=False
    )
    net_amount_payable: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("0.00"),
        nullable=False
    )

    # Status
    status: Mapped[str] = mapped_column(
        String(50),
        default=OrderStatus.PENDING.value,
        nullable=False,
        index=True,
        comment="pending, partially pending, awaiting_dispatch, partially dispatched, "
                "dispatching, intrasite, delivered, completed, cancelled"
    )

    # Payment
    payment_status: Mapped[str] = mapped_column(
        String(20),
        default=PaymentStatus.PENDING.value,
        nullable=False,
        comment="pending, partial, paid, refunded"
    )
    payment_method: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    amount_paid: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("0.00"),
        nullable=False
    )
    balance_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("0.00"),
        nullable=False,
        comment="net_amount_payable - amount_paid"
    )

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    internal_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Vendor shipment details recorded when goods leave for site
    dispatch_details: Mapped[Optional[dict]] = mapped_column(
        JSONType,
        nullable=True,
        comment="vendor_bill_number, vendor_bill_date, dispatch_through, docket_number"
    )

    # Cancellation
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cancelled_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    cancelled_by_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    payment_adjustment_details: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)

    # Audit
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True
    )
    created_by_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    updated_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    updated_by_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    # Optimistic concurrency counter
    version: Mapped[int] = mapped_column(Integer, nullable=False)

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

    groups: Mapped[List["OrderGroup"]] = relationship(
        "OrderGroup",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OrderGroup.position",
    )
    status_history: Mapped[List["OrderStatusHistory"]] = relationship(
        "OrderStatusHistory",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OrderStatusHistory.created_at",
    )

    __mapper_args__ = {"version_id_col": version}

    def iter_items(self) -> Iterator["OrderItem"]:
        for group in self.groups:
            yield from group.items

    @property
    def item_count(self) -> int:
        return sum(1 for _ in self.iter_items())

    @property
    def total_quantity(self) -> int:
        return sum(item.quantity for item in self.iter_items())

    @property
    def total_dispatched_quantity(self) -> int:
        return sum(item.dispatched_quantity for item in self.iter_items())

    def __repr__(self) -> str:
        return f"<Order(number='{self.order_number}', status='{self.status}')>"


class OrderGroup(Base):
    """Named collection of items within an order (e.g. a room or a brand)."""
    __tablename__ = "order_groups"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    group_id: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="Client-side group key"
    )
    group_name: Mapped[str] = mapped_column(String(200), nullable=False)
    group_category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"), nullable=False)
    total_discount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"), nullable=False)

    order: Mapped["Order"] = relationship("Order", back_populates="groups")
    items: Mapped[List["OrderItem"]] = relationship(
        "OrderItem",
        back_populates="group",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OrderItem.position",
    )

    def __repr__(self) -> str:
        return f"<OrderGroup(name='{self.group_name}')>"


class OrderItem(Base):
    """
    Ordered product line.

    balance_quantity is always quantity - dispatched_quantity and never
    negative; dispatched_quantity only grows.
    """
    __tablename__ = "order_items"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    order_group_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("order_groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Product snapshot
    product_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("products.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    product_code: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    product_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    product_brand: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Pricing
    mrp: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"), nullable=False)
    discount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"), nullable=False)
    discount_type: Mapped[str] = mapped_column(
        String(20),
        default="percentage",
        nullable=False,
        comment="percentage, amount"
    )
    net_rate: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"), nullable=False)
    gst_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=Decimal("18.00"), nullable=False)

    # Quantities
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    dispatched_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    balance_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    cancelled_quantity: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
        comment="Undispatched quantity dropped when the order was cancelled"
    )

    group: Mapped["OrderGroup"] = relationship("OrderGroup", back_populates="items")

    @property
    def pending_quantity(self) -> int:
        return max(0, self.quantity - self.dispatched_quantity)

    def __repr__(self) -> str:
        return f"<OrderItem(code='{self.product_code}', qty={self.quantity}, dispatched={self.dispatched_quantity})>"


class OrderStatusHistory(Base):
    """Order status change history."""
    __tablename__ = "order_status_history"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    from_status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    to_status: Mapped[str] = mapped_column(String(50), nullable=False)
    changed_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    source: Mapped[str] = mapped_column(
        String(30),
        default="manual",
        nullable=False,
        comment="manual, dispatch, payment, cancellation, event, reconciliation"
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    order: Mapped["Order"] = relationship("Order", back_populates="status_history")

    def __repr__(self) -> str:
        return f"<OrderStatusHistory({self.from_status} -> {self.to_status})>"
