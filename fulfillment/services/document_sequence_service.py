"""
Document Sequence Service for Atomic Number Generation

Formats:
    ORD000001, PR000001, DN000001, RCP000001 - continuous sequences
    BILL20260001 - restarts every calendar year

USAGE:
    service = DocumentSequenceService(db)
    order_number = await service.get_next_number(DocumentType.ORDER)
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fulfillment.models.document_sequence import DocumentSequence, DocumentType


# Document type metadata
DOCUMENT_METADATA = {
    DocumentType.ORDER.value: {"name": "Order", "padding": 6, "yearly": False},
    DocumentType.PURCHASE_REQUEST.value: {"name": "Purchase Request", "padding": 6, "yearly": False},
    DocumentType.DISPATCH_NOTE.value: {"name": "Dispatch Note", "padding": 6, "yearly": False},
    DocumentType.PAYMENT_RECEIPT.value: {"name": "Payment Receipt", "padding": 6, "yearly": False},
    DocumentType.SELL_RECORD.value: {"name": "Sell Record", "padding": 4, "yearly": True},
}


class DocumentSequenceService:
    """
    Service for generating atomic document numbers.

    Uses database-level locking (SELECT FOR UPDATE) so that no duplicate
    numbers are generated under concurrent load. The increment is only
    flushed; it commits (or rolls back) with the caller's transaction,
    so a failed create never burns a number.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    @staticmethod
    def _period_for(document_type: str, now: Optional[datetime] = None) -> str:
        if DOCUMENT_METADATA[document_type]["yearly"]:
            return str((now or datetime.now(timezone.utc)).year)
        return ""

    @staticmethod
    def _validate_type(document_type: DocumentType | str) -> str:
        if isinstance(document_type, DocumentType):
            return document_type.value
        doc_type = document_type.upper()
        if doc_type not in DOCUMENT_METADATA:
            valid_types = ", ".join(DOCUMENT_METADATA.keys())
            raise ValueError(f"Invalid document type '{doc_type}'. Valid types: {valid_types}")
        return doc_type

    async def get_next_number(self, document_type: DocumentType | str, now: Optional[datetime] = None) -> str:
        """
        Get next document number with atomic increment.

        Args:
            document_type: ORD, PR, DN, RCP or BILL
            now: Override the clock for yearly sequences

        Returns:
            Formatted document number, e.g. ORD000001
        """
        doc_type = self._validate_type(document_type)
        period = self._period_for(doc_type, now)

        sequence = await self._get_or_create_sequence(doc_type, period)
        doc_number = sequence.get_next_number()
        await self.db.flush()

        return doc_number

    async def preview_next_number(self, document_type: DocumentType | str) -> str:
        """What the next number would be, without incrementing."""
        doc_type = self._validate_type(document_type)
        period = self._period_for(doc_type)

        result = await self.db.execute(
            select(DocumentSequence).where(
                DocumentSequence.document_type == doc_type,
                DocumentSequence.period == period,
            )
        )
        sequence = result.scalar_one_or_none()
        if sequence:
            return sequence.preview_next_number()

        padding = DOCUMENT_METADATA[doc_type]["padding"]
        return f"{doc_type}{period}{'1'.zfill(padding)}"

    async def _get_or_create_sequence(self, document_type: str, period: str) -> DocumentSequence:
        """Get existing sequence with row lock, or create a new one."""
        result = await self.db.execute(
            select(DocumentSequence)
            .where(
                DocumentSequence.document_type == document_type,
                DocumentSequence.period == period,
            )
            .with_for_update()
        )
        sequence = result.scalar_one_or_none()

        if sequence:
            return sequence

        metadata = DOCUMENT_METADATA[document_type]
        sequence = DocumentSequence(
            document_type=document_type,
            document_name=metadata["name"],
            period=period,
            current_number=0,
            padding_length=metadata["padding"],
        )
        self.db.add(sequence)
        await self.db.flush()
        return sequence
