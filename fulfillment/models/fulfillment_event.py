import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import String, DateTime, Integer, Text, Index
from sqlalchemy.orm import Mapped, mapped_column

from fulfillment.database import Base
from fulfillment.db_types import UUIDType, JSONType


class EventType(str, Enum):
    PURCHASE_REQUEST_PAID = "PURCHASE_REQUEST_PAID"  # PR entered awaiting_dispatch
    ORDER_IN_TRANSIT = "ORDER_IN_TRANSIT"            # Order moved awaiting_dispatch -> intrasite


class EventStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSED = "PROCESSED"
    FAILED = "FAILED"


class FulfillmentEvent(Base):
    """
    Outbox row for a cross-aggregate side effect.

    Written in the same transaction as the change that caused it and
    applied afterwards by an idempotent handler, retried until it
    succeeds or runs out of attempts.
    """
    __tablename__ = "fulfillment_events"
    __table_args__ = (
        Index('ix_fulfillment_event_status_created', 'status', 'created_at'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    event_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        index=True,
        comment="PURCHASE_REQUEST_PAID, ORDER_IN_TRANSIT"
    )
    aggregate_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="purchase_request, order"
    )
    aggregate_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False, index=True)
    payload: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        default=EventStatus.PENDING.value,
        nullable=False,
        comment="PENDING, PROCESSED, FAILED"
    )
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<FulfillmentEvent(type='{self.event_type}', status='{self.status}', attempts={self.attempts})>"
