"""Tests for document numbering."""

from datetime import datetime, timezone

import pytest

from fulfillment.models.document_sequence import DocumentType
from fulfillment.services.document_sequence_service import DocumentSequenceService


class TestDocumentSequence:

    async def test_continuous_numbers(self, db_session):
        service = DocumentSequenceService(db_session)

        assert await service.get_next_number("ORD") == "ORD000001"
        assert await service.get_next_number("ord") == "ORD000002"
        assert await service.get_next_number("PR") == "PR000001"
        assert await service.preview_next_number("ORD") == "ORD000003"

    async def test_preview_before_first_use(self, db_session):
        assert await DocumentSequenceService(db_session).preview_next_number("DN") == "DN000001"

    async def test_bill_numbers_restart_every_year(self, db_session):
        service = DocumentSequenceService(db_session)
        last_year = datetime(2025, 12, 31, 23, 0, tzinfo=timezone.utc)
        this_year = datetime(2026, 1, 1, 0, 30, tzinfo=timezone.utc)

        assert await service.get_next_number("BILL", last_year) == "BILL20250001"
        assert await service.get_next_number("BILL", last_year) == "BILL20250002"
        assert await service.get_next_number("BILL", this_year) == "BILL20260001"

    async def test_rolled_back_numbers_are_reused(self, db_session):
        service = DocumentSequenceService(db_session)
        assert await service.get_next_number("RCP") == "RCP000001"
        await db_session.rollback()

        assert await service.get_next_number("RCP") == "RCP000001"

    async def test_document_type_members(self, db_session):
        service = DocumentSequenceService(db_session)
        last_year = datetime(2025, 6, 1, tzinfo=timezone.utc)

        assert await service.get_next_number(DocumentType.ORDER) == "ORD000001"
        assert await service.get_next_number("ORD") == "ORD000002"
        assert await service.get_next_number(DocumentType.SELL_RECORD, last_year) == "BILL20250001"
        assert await service.preview_next_number(DocumentType.DISPATCH_NOTE) == "DN000001"

    async def test_unknown_type(self, db_session):
        with pytest.raises(ValueError):
            await DocumentSequenceService(db_session).get_next_number("INV")
