"""
Sell Record Service

A sale takes goods out of fresh stock and, when raised from a dispatch
note, marks that note as sold. Stock decrements, the dispatch flag and
the bill are written in one transaction; any failure rolls all of it back.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple
import logging

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from fulfillment.core.exceptions import BusinessRuleViolation, NotFound
from fulfillment.models.document_sequence import DocumentType
from fulfillment.models.dispatch import DispatchNote
from fulfillment.models.sell_record import SellRecord, SellRecordItem
from fulfillment.models.user import User
from fulfillment.schemas.sell_record import SellRecordCreate
from fulfillment.services.document_sequence_service import DocumentSequenceService
from fulfillment.services.fulfillment_rules import ZERO, to_money
from fulfillment.services.inventory_service import InventoryService

logger = logging.getLogger(__name__)


class SellRecordService:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_sell_record(
        self,
        data: SellRecordCreate,
        user: Optional[User] = None,
        now: Optional[datetime] = None,
    ) -> SellRecord:
        """
        Raise a bill.

        Raises:
            NotFound: Product or dispatch note does not exist
            BusinessRuleViolation: Insufficient fresh stock, or the
                dispatch note already has a sell record
        """
        try:
            dispatch = None
            if data.dispatch_id:
                result = await self.db.execute(
                    select(DispatchNote).where(DispatchNote.id == data.dispatch_id).with_for_update()
                )
                dispatch = result.scalar_one_or_none()
                if dispatch is None:
                    raise NotFound("Dispatch not found")
                if dispatch.sell_recorded:
                    raise BusinessRuleViolation(
                        f"Dispatch {dispatch.dispatch_no} already has a sell record",
                        alreadyRecorded=True,
                    )

            inventory = InventoryService(self.db)
            record = SellRecord(
                customer_name=data.customer_name,
                customer_phone=data.customer_phone,
                customer_address=data.customer_address,
                dispatch_id=data.dispatch_id,
                discount=to_money(data.discount),
                tax=to_money(data.tax),
                payment_status=data.payment_status,
                payment_method=data.payment_method,
                notes=data.notes,
                created_by=user.id if user else None,
                items=[],
            )

            total = ZERO
            for position, item_data in enumerate(data.items):
                product = await inventory.sell_stock(item_data.product_id, item_data.quantity)
                unit_price = to_money(item_data.unit_price)
                line_total = to_money(unit_price * Decimal(item_data.quantity))
                record.items.append(
                    SellRecordItem(
                        position=position,
                        product_id=product.id,
                        product_code=product.product_code,
                        product_name=product.name,
                        quantity=item_data.quantity,
                        unit_price=unit_price,
                        total_price=line_total,
                    )
                )
                total += line_total

            record.total_amount = to_money(total)
            record.final_amount = to_money(record.total_amount - record.discount + record.tax)
            record.bill_number = await DocumentSequenceService(self.db).get_next_number(DocumentType.SELL_RECORD, now)
            if now:
                record.bill_date = now

            if dispatch is not None:
                dispatch.sell_recorded = True

            self.db.add(record)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(f"Sell record {record.bill_number} created: {len(record.items)} items, {record.final_amount}")
        return record

    async def get_sell_records(
        self,
        search: Optional[str] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[SellRecord], int]:
        stmt = select(SellRecord)
        count_stmt = select(func.count(SellRecord.id))
        if search:
            search_filter = f"%{search}%"
            condition = SellRecord.bill_number.ilike(search_filter) | SellRecord.customer_name.ilike(search_filter)
            stmt = stmt.where(condition)
            count_stmt = count_stmt.where(condition)

        total = (await self.db.execute(count_stmt)).scalar() or 0
        result = await self.db.execute(stmt.order_by(SellRecord.created_at.desc()).offset(skip).limit(limit))
        return list(result.scalars().all()), total
