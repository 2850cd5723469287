"""
Payment Receipt Service

Customer payments recorded directly against an order's balance. A
receipt snapshots the order totals before and after it was applied.
Bounced or cancelled receipts, and deleted ones, give the amount back to
the order balance.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple
import uuid
import logging

from sqlalchemy import select, func, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from fulfillment.core.exceptions import BusinessRuleViolation, NotFound, ValidationFailed
from fulfillment.database import commit_or_conflict
from fulfillment.models.document_sequence import DocumentType
from fulfillment.models.order import Order, OrderStatus, PaymentStatus
from fulfillment.models.payment_receipt import PaymentReceipt, ReceiptStatus
from fulfillment.models.user import User
from fulfillment.schemas.payment_receipt import PaymentReceiptCreate, PaymentReceiptUpdate
from fulfillment.services.document_sequence_service import DocumentSequenceService
from fulfillment.services.fulfillment_rules import ZERO, apply_payment_totals, payment_status_for, to_money
from fulfillment.services.order_service import OrderService

logger = logging.getLogger(__name__)


# Receipts whose amount counts towards the order
COUNTED_STATUSES = (ReceiptStatus.PENDING.value, ReceiptStatus.CLEARED.value)


class PaymentReceiptService:
    """Service for customer payment receipts."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_receipt(self, data: PaymentReceiptCreate, user: Optional[User] = None) -> PaymentReceipt:
        """
        Record a customer payment and apply it to the order.

        Raises:
            NotFound: Order does not exist
            BusinessRuleViolation: Order is cancelled
            ValidationFailed: Amount exceeds the outstanding balance
        """
        order = await OrderService(self.db).require_order(data.order_id)
        if order.status == OrderStatus.CANCELLED.value:
            raise BusinessRuleViolation("Payments cannot be recorded against a cancelled order")

        amount = to_money(data.amount_received)
        balance_before = to_money(order.balance_amount)
        if amount > balance_before:
            raise ValidationFailed(
                f"Amount {amount} exceeds the outstanding balance {balance_before}",
                balanceAmount=float(balance_before),
            )

        receipt_no = await DocumentSequenceService(self.db).get_next_number(DocumentType.PAYMENT_RECEIPT)
        paid_before = to_money(order.amount_paid)

        order.amount_paid = paid_before + amount
        apply_payment_totals(order)
        order.payment_status = payment_status_for(order.amount_paid, order.balance_amount)
        order.payment_method = data.payment_mode.value
        order.updated_at = datetime.now(timezone.utc)

        receipt = PaymentReceipt(
            receipt_no=receipt_no,
            receipt_date=data.receipt_date or datetime.now(timezone.utc),
            order_id=order.id,
            order_no=order.order_number,
            party_id=order.party_id,
            party_name=order.party_name,
            company_id=order.company_id,
            company_name=order.company_name,
            amount_received=amount,
            payment_mode=data.payment_mode.value,
            bank_name=data.bank_name,
            cheque_number=data.cheque_number,
            cheque_date=data.cheque_date,
            transaction_id=data.transaction_id,
            reference_number=data.reference_number,
            order_total=to_money(order.net_amount_payable),
            amount_paid_before=paid_before,
            balance_before=balance_before,
            balance_after=to_money(order.balance_amount),
            status=ReceiptStatus.CLEARED.value,
            notes=data.notes,
            created_by=user.id if user else None,
            created_by_name=user.name if user else None,
        )
        self.db.add(receipt)

        await commit_or_conflict(self.db, "Order")
        logger.info(
            f"Receipt {receipt_no}: {amount} against {order.order_number} "
            f"(balance {balance_before} -> {order.balance_amount})"
        )
        return receipt

    async def get_receipt(self, receipt_id: uuid.UUID) -> Optional[PaymentReceipt]:
        return await self.db.get(PaymentReceipt, receipt_id)

    async def require_receipt(self, receipt_id: uuid.UUID) -> PaymentReceipt:
        receipt = await self.get_receipt(receipt_id)
        if not receipt:
            raise NotFound("Payment receipt not found")
        return receipt

    async def get_receipts(
        self,
        order_id: Optional[uuid.UUID] = None,
        party_id: Optional[uuid.UUID] = None,
        payment_mode: Optional[str] = None,
        status: Optional[str] = None,
        search: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[PaymentReceipt], int]:
        filters = self._filters(order_id, party_id, payment_mode, status, date_from, date_to)
        if search:
            search_filter = f"%{search}%"
            filters.append(
                or_(
                    PaymentReceipt.receipt_no.ilike(search_filter),
                    PaymentReceipt.order_no.ilike(search_filter),
                    PaymentReceipt.party_name.ilike(search_filter),
                )
            )

        stmt = select(PaymentReceipt)
        count_stmt = select(func.count(PaymentReceipt.id))
        if filters:
            stmt = stmt.where(and_(*filters))
            count_stmt = count_stmt.where(and_(*filters))

        total = (await self.db.execute(count_stmt)).scalar() or 0
        result = await self.db.execute(
            stmt.order_by(PaymentReceipt.receipt_date.desc()).offset(skip).limit(limit)
        )
        return list(result.scalars().all()), total

    async def get_receipts_for_order(self, order_id: uuid.UUID) -> List[PaymentReceipt]:
        result = await self.db.execute(
            select(PaymentReceipt)
            .where(PaymentReceipt.order_id == order_id)
            .order_by(PaymentReceipt.receipt_date)
        )
        return list(result.scalars().all())

    async def update_receipt(self, receipt_id: uuid.UUID, data: PaymentReceiptUpdate) -> PaymentReceipt:
        """
        Update descriptive fields.

        Moving a receipt to bounced or cancelled takes its amount back off
        the order; such a receipt cannot be counted again.
        """
        receipt = await self.require_receipt(receipt_id)
        update_data = data.model_dump(exclude_unset=True)

        new_status = update_data.pop("status", None)
        if new_status is not None:
            new_status = ReceiptStatus(new_status).value
            counted = receipt.status in COUNTED_STATUSES
            if not counted and new_status in COUNTED_STATUSES:
                raise BusinessRuleViolation(f"A {receipt.status} receipt cannot be reinstated")
            if counted and new_status not in COUNTED_STATUSES:
                await self._reverse_on_order(receipt)
            receipt.status = new_status

        for field, value in update_data.items():
            setattr(receipt, field, value)

        await commit_or_conflict(self.db, "Order")
        return receipt

    async def delete_receipt(self, receipt_id: uuid.UUID) -> None:
        receipt = await self.require_receipt(receipt_id)
        if receipt.status in COUNTED_STATUSES:
            await self._reverse_on_order(receipt)

        receipt_no = receipt.receipt_no
        await self.db.delete(receipt)
        await commit_or_conflict(self.db, "Order")
        logger.info(f"Receipt deleted: {receipt_no}")

    async def _reverse_on_order(self, receipt: PaymentReceipt) -> None:
        order = await self.db.get(Order, receipt.order_id)
        if order is None or order.status == OrderStatus.CANCELLED.value:
            # Payment on a cancelled order has already been disposed of
            return

        order.amount_paid = max(ZERO, to_money(order.amount_paid) - to_money(receipt.amount_received))
        apply_payment_totals(order)
        if order.amount_paid <= ZERO:
            order.payment_status = PaymentStatus.PENDING.value
        else:
            order.payment_status = payment_status_for(order.amount_paid, order.balance_amount)
        order.updated_at = datetime.now(timezone.utc)
        logger.info(f"Reversed {receipt.amount_received} of {receipt.receipt_no} on {order.order_number}")

    async def get_summary(
        self,
        party_id: Optional[uuid.UUID] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Cleared and pending receipt totals grouped by payment mode."""
        filters = self._filters(None, party_id, None, None, date_from, date_to)
        filters.append(PaymentReceipt.status.in_(COUNTED_STATUSES))

        result = await self.db.execute(
            select(
                PaymentReceipt.payment_mode,
                func.count(PaymentReceipt.id),
                func.coalesce(func.sum(PaymentReceipt.amount_received), 0),
            )
            .where(and_(*filters))
            .group_by(PaymentReceipt.payment_mode)
        )

        by_mode = {}
        total_receipts = 0
        total_amount = Decimal("0.00")
        for mode, count, amount in result.all():
            amount = to_money(amount)
            by_mode[mode] = {"count": count, "amount": amount}
            total_receipts += count
            total_amount += amount

        return {
            "total_receipts": total_receipts,
            "total_amount": to_money(total_amount),
            "by_mode": by_mode,
        }

    @staticmethod
    def _filters(order_id, party_id, payment_mode, status, date_from, date_to) -> list:
        filters = []
        if order_id:
            filters.append(PaymentReceipt.order_id == order_id)
        if party_id:
            filters.append(PaymentReceipt.party_id == party_id)
        if payment_mode:
            filters.append(PaymentReceipt.payment_mode == payment_mode)
        if status:
            filters.append(PaymentReceipt.status == status)
        if date_from:
            filters.append(PaymentReceipt.receipt_date >= date_from)
        if date_to:
            filters.append(PaymentReceipt.receipt_date <= date_to)
        return filters
