"""
Document Sequence Model for Atomic Number Generation

DOCUMENT FORMATS:
    ORD:  ORD000001      (Order)
    PR:   PR000001       (Purchase Request)
    DN:   DN000001       (Dispatch Note)
    RCP:  RCP000001      (Payment Receipt)
    BILL: BILL20260001   (Sell Record, restarts every calendar year)

USAGE:
    from fulfillment.services.document_sequence_service import DocumentSequenceService

    async def create_order(db):
        order_number = await DocumentSequenceService(db).get_next_number("ORD")
        # Returns: ORD000001
"""

import uuid
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import String, Integer, DateTime, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from fulfillment.database import Base
from fulfillment.db_types import UUIDType


class DocumentType(str, Enum):
    """Document types that use sequence numbering."""
    ORDER = "ORD"
    PURCHASE_REQUEST = "PR"
    DISPATCH_NOTE = "DN"
    PAYMENT_RECEIPT = "RCP"
    SELL_RECORD = "BILL"


class DocumentSequence(Base):
    """
    One counter per document type and period.

    Rows are read with SELECT FOR UPDATE so concurrent requests never
    hand out the same number.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        UniqueConstraint(
            "document_type", "period",
            name="uq_document_type_period"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    document_type: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        index=True,
        comment="ORD, PR, DN, RCP, BILL"
    )
    document_name: Mapped[str] = mapped_column(String(100), nullable=False)
    period: Mapped[str] = mapped_column(
        String(10),
        default="",
        nullable=False,
        comment="Empty for continuous sequences, year for yearly ones"
    )
    current_number: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
        comment="Last used sequence number"
    )
    padding_length: Mapped[int] = mapped_column(
        Integer,
        default=6,
        nullable=False,
        comment="Zero padding for sequence (6 = 000001)"
    )

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

    def format_number(self, number: int) -> str:
        return f"{self.document_type}{self.period}{str(number).zfill(self.padding_length)}"

    def get_next_number(self) -> str:
        """
        Increment the counter and return the formatted number.

        Does NOT commit; the caller owns the transaction.
        """
        self.current_number += 1
        return self.format_number(self.current_number)

    def preview_next_number(self) -> str:
        return self.format_number(self.current_number + 1)

    def __repr__(self) -> str:
        return f"<DocumentSequence(type='{self.document_type}{self.period}', current={self.current_number})>"
