"""
Purchase Request Service

PR lifecycle: pending -> (PI received) awaiting_payment -> partial_payment /
awaiting_dispatch -> intrasite -> material received.

Full payment against the PI is the only way into awaiting_dispatch. When
a PR gets there, a PURCHASE_REQUEST_PAID event is committed with the PR;
the product and order effects are applied by the event handler so the PR
update stands even if they fail.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple
import uuid
import logging

from sqlalchemy import select, func, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from fulfillment.core.exceptions import BusinessRuleViolation, NotFound, ValidationFailed
from fulfillment.models.document_sequence import DocumentType
from fulfillment.models.fulfillment_event import EventType
from fulfillment.models.order import Order
from fulfillment.models.purchase_request import PRStatus, PurchaseRequest, PurchaseRequestItem
from fulfillment.models.user import User
from fulfillment.schemas.purchase_request import (
    MaterialReceivedRequest,
    PurchaseRequestCreate,
    PurchaseRequestUpdate,
)
from fulfillment.services.document_sequence_service import DocumentSequenceService
from fulfillment.services.event_service import EventService
from fulfillment.services.fulfillment_rules import (
    ZERO,
    PaymentClassification,
    classify_pr_payment,
    to_money,
)
from fulfillment.services.inventory_service import InventoryService
from fulfillment.services.status_machine import can_delete_pr, transition_pr

logger = logging.getLogger(__name__)


# Statuses that mean the vendor has been paid in full
PAID_STATUSES = (
    PRStatus.AWAITING_DISPATCH.value,
    PRStatus.INTRASITE.value,
    PRStatus.COMPLETED.value,
)

PAYMENT_FIELDS = {"payment_done", "payment_amount", "pi_amount"}


class PurchaseRequestService:
    """Service for vendor purchase requests."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ==================== QUERIES ====================

    async def get_purchase_request(self, pr_id: uuid.UUID) -> Optional[PurchaseRequest]:
        result = await self.db.execute(
            select(PurchaseRequest)
            .where(PurchaseRequest.id == pr_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def require_purchase_request(self, pr_id: uuid.UUID) -> PurchaseRequest:
        pr = await self.get_purchase_request(pr_id)
        if not pr:
            raise NotFound("Purchase request not found")
        return pr

    async def get_purchase_requests(
        self,
        status: Optional[str] = None,
        vendor: Optional[str] = None,
        pi_received: Optional[bool] = None,
        search: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[PurchaseRequest], int]:
        """Get paginated purchase requests, newest first."""
        filters = []
        if status:
            filters.append(PurchaseRequest.status == status)
        if vendor:
            filters.append(PurchaseRequest.vendor.ilike(f"%{vendor}%"))
        if pi_received is not None:
            filters.append(PurchaseRequest.pi_received == pi_received)
        if date_from:
            filters.append(PurchaseRequest.pr_date >= date_from)
        if date_to:
            filters.append(PurchaseRequest.pr_date <= date_to)
        if search:
            search_filter = f"%{search}%"
            filters.append(
                or_(
                    PurchaseRequest.pr_number.ilike(search_filter),
                    PurchaseRequest.vendor.ilike(search_filter),
                    PurchaseRequest.pi_number.ilike(search_filter),
                )
            )

        stmt = select(PurchaseRequest)
        count_stmt = select(func.count(PurchaseRequest.id))
        if filters:
            stmt = stmt.where(and_(*filters))
            count_stmt = count_stmt.where(and_(*filters))

        total = (await self.db.execute(count_stmt)).scalar() or 0
        result = await self.db.execute(
            stmt.order_by(PurchaseRequest.created_at.desc()).offset(skip).limit(limit)
        )
        return list(result.scalars().all()), total

    # ==================== CREATE ====================

    async def create_purchase_request(self, data: PurchaseRequestCreate, user: Optional[User] = None) -> PurchaseRequest:
        """Create a PR for pending order items. Every item must reference an existing order."""
        order_ids = {item.order_id for item in data.items}
        result = await self.db.execute(select(Order).where(Order.id.in_(order_ids)))
        orders = {o.id: o for o in result.scalars().all()}

        missing = sorted(str(oid) for oid in order_ids if oid not in orders)
        if missing:
            raise ValidationFailed("Purchase request items reference unknown orders", details=missing)

        products = await InventoryService(self.db).get_products_by_ids([i.product_id for i in data.items])
        unknown_products = sorted({str(i.product_id) for i in data.items if i.product_id and i.product_id not in products})
        if unknown_products:
            raise ValidationFailed("Purchase request items reference unknown products", details=unknown_products)

        pr_number = await DocumentSequenceService(self.db).get_next_number(DocumentType.PURCHASE_REQUEST)

        pr = PurchaseRequest(
            pr_number=pr_number,
            pr_date=data.pr_date or datetime.now(timezone.utc),
            vendor=data.vendor,
            remarks=data.remarks,
            status=PRStatus.PENDING.value,
            created_by=user.id if user else None,
            created_by_name=user.name if user else None,
            items=[],
        )

        for position, item_data in enumerate(data.items):
            order = orders[item_data.order_id]
            product = products.get(item_data.product_id) if item_data.product_id else None
            price = to_money(item_data.price)
            pr.items.append(
                PurchaseRequestItem(
                    position=position,
                    item_id=item_data.item_id,
                    order_id=order.id,
                    order_no=order.order_number,
                    party_name=order.party_name,
                    product_id=item_data.product_id,
                    product_code=item_data.product_code or (product.product_code if product else None),
                    product_name=item_data.product_name or (product.name if product else None),
                    brand=item_data.brand or (product.brand if product else None),
                    quantity=item_data.quantity,
                    consolidated_quantity=item_data.consolidated_quantity,
                    fresh_stock=item_data.fresh_stock,
                    unavailable_quantity=item_data.unavailable_quantity,
                    availability_status=item_data.availability_status,
                    pi_received_quantity=item_data.pi_received_quantity,
                    price=price,
                    total=to_money(price * Decimal(item_data.quantity)),
                )
            )

        self.db.add(pr)
        await self.db.commit()
        logger.info(f"Purchase request created: {pr_number} ({len(pr.items)} items, vendor {pr.vendor})")

        return await self.require_purchase_request(pr.id)

    # ==================== UPDATE ====================

    async def update_purchase_request(
        self,
        pr_id: uuid.UUID,
        data: PurchaseRequestUpdate,
        user: Optional[User] = None
    ) -> PurchaseRequest:
        """
        Apply PI, payment and status changes to a PR.

        Payment is reconciled against the PI amount whenever payment is
        recorded or the amounts change:
        - payment >= PI: awaiting_dispatch (once) and PURCHASE_REQUEST_PAID
        - 0 < payment < PI: partial_payment
        - PI amount 0: rejected

        Raises:
            ValidationFailed: Missing PI/payment details, zero PI amount
            BusinessRuleViolation: awaiting_dispatch without full payment
            InvalidTransition: Explicit status not allowed from current status
        """
        pr = await self.require_purchase_request(pr_id)
        update_data = data.model_dump(exclude_unset=True)
        user_id = user.id if user else None

        if pr.status in (PRStatus.REJECTED.value, PRStatus.COMPLETED.value) and set(update_data) - {"remarks"}:
            raise BusinessRuleViolation(f"Purchase request is {pr.status}; only remarks can be changed")

        for field in ("vendor", "remarks"):
            if field in update_data:
                setattr(pr, field, update_data[field])

        if data.items:
            self._apply_item_updates(pr, data)

        self._apply_pi(pr, data, update_data)
        self._apply_payment(pr, data, update_data)

        was_paid = pr.status in PAID_STATUSES
        requested_status = update_data.get("status")

        if requested_status and requested_status != PRStatus.AWAITING_DISPATCH.value:
            transition_pr(pr, requested_status, user_id)

        if pr.payment_done and (PAYMENT_FIELDS & update_data.keys()
                                or requested_status == PRStatus.AWAITING_DISPATCH.value):
            self._reconcile_payment(pr, user_id)
        elif requested_status == PRStatus.AWAITING_DISPATCH.value:
            raise BusinessRuleViolation(
                "Purchase request can only reach awaiting_dispatch through full payment",
                requiresFullPayment=True,
            )
        elif update_data.get("pi_received") and not requested_status and pr.status in (
            PRStatus.PENDING.value, PRStatus.APPROVED.value
        ):
            transition_pr(pr, PRStatus.AWAITING_PAYMENT.value, user_id)

        if pr.status in (PRStatus.AWAITING_DISPATCH.value, PRStatus.INTRASITE.value):
            self._check_paid_in_full(pr)

        became_paid = pr.status == PRStatus.AWAITING_DISPATCH.value and not was_paid
        event_id = None
        if became_paid:
            event = EventService(self.db).enqueue(
                EventType.PURCHASE_REQUEST_PAID,
                aggregate_type="purchase_request",
                aggregate_id=pr.id,
                payload={
                    "pr_number": pr.pr_number,
                    "changed_by": str(user_id) if user_id else None,
                },
            )
            event_id = event.id

        pr.updated_at = datetime.now(timezone.utc)
        pr_number = pr.pr_number
        status = pr.status
        await self.db.commit()
        logger.info(f"Purchase request {pr_number} updated (status {status})")

        if event_id:
            await EventService(self.db).process_event(event_id)

        return await self.require_purchase_request(pr_id)

    @staticmethod
    def _apply_item_updates(pr: PurchaseRequest, data: PurchaseRequestUpdate) -> None:
        items = {item.id: item for item in pr.items}
        unknown = [str(u.id) for u in data.items if u.id not in items]
        if unknown:
            raise ValidationFailed("Items do not belong to this purchase request", details=unknown)

        for update in data.items:
            item = items[update.id]
            if update.pi_received_quantity is not None:
                item.pi_received_quantity = update.pi_received_quantity
            if update.price is not None:
                item.price = to_money(update.price)
            item.total = to_money(to_money(item.price) * Decimal(item.quantity))

    @staticmethod
    def _apply_pi(pr: PurchaseRequest, data: PurchaseRequestUpdate, update_data: Dict[str, Any]) -> None:
        for field in ("pi_number", "pi_date"):
            if field in update_data:
                setattr(pr, field, update_data[field])
        if "pi_amount" in update_data:
            pr.pi_amount = to_money(data.pi_amount)

        if data.pi_received:
            if not pr.pi_number or not pr.pi_date:
                raise ValidationFailed("PI number and PI date are required when marking PI as received")
            pr.pi_received = True
        elif data.pi_received is False:
            pr.pi_received = False

    @staticmethod
    def _apply_payment(pr: PurchaseRequest, data: PurchaseRequestUpdate, update_data: Dict[str, Any]) -> None:
        for field in ("payment_utr", "payment_reference", "payment_bank", "payment_date", "payment_remarks"):
            if field in update_data:
                setattr(pr, field, update_data[field])
        if data.payment_mode is not None:
            pr.payment_mode = data.payment_mode.value
        if "payment_amount" in update_data:
            pr.payment_amount = to_money(data.payment_amount)
            if pr.payment_done and data.payment_done is not False and pr.payment_amount <= ZERO:
                raise ValidationFailed(
                    "Payment amount must be greater than zero while payment is marked as done",
                    details=["payment_amount"],
                )

        if data.payment_done:
            missing = []
            if to_money(pr.payment_amount) <= ZERO:
                missing.append("payment_amount")
            if not pr.payment_utr:
                missing.append("payment_utr")
            if not pr.payment_mode:
                missing.append("payment_mode")
            if missing:
                raise ValidationFailed(
                    "Payment amount, UTR and payment mode are required when marking payment as done",
                    details=missing,
                )
            pr.payment_done = True
            if not pr.payment_date:
                pr.payment_date = datetime.now(timezone.utc)
        elif data.payment_done is False:
            if pr.status in PAID_STATUSES:
                raise BusinessRuleViolation(f"Payment cannot be withdrawn from a {pr.status} purchase request")
            pr.payment_done = False

    @staticmethod
    def _reconcile_payment(pr: PurchaseRequest, user_id) -> None:
        classification = classify_pr_payment(pr.payment_amount, pr.pi_amount)
        if classification == PaymentClassification.FULL:
            if pr.status not in PAID_STATUSES:
                transition_pr(pr, PRStatus.AWAITING_DISPATCH.value, user_id)
                logger.info(f"Purchase request {pr.pr_number} fully paid ({pr.payment_amount}/{pr.pi_amount})")
        elif classification == PaymentClassification.PARTIAL:
            if pr.status in PAID_STATUSES:
                raise BusinessRuleViolation(
                    f"Payment {pr.payment_amount} is below the PI amount {pr.pi_amount} "
                    f"for a {pr.status} purchase request"
                )
            transition_pr(pr, PRStatus.PARTIAL_PAYMENT.value, user_id)

    @staticmethod
    def _check_paid_in_full(pr: PurchaseRequest) -> None:
        pi = to_money(pr.pi_amount)
        if not pr.payment_done or pi <= ZERO or to_money(pr.payment_amount) < pi:
            raise BusinessRuleViolation(
                f"A {pr.status} purchase request must stay paid in full against its PI amount",
                requiresFullPayment=True,
            )

    # ==================== MATERIAL RECEIPT ====================

    async def record_material_received(
        self,
        pr_id: uuid.UUID,
        data: MaterialReceivedRequest,
        user: Optional[User] = None
    ) -> PurchaseRequest:
        """
        Book goods received from the vendor.

        Every item must satisfy fresh + damaged + short <= procured quantity
        or nothing is recorded. Product counters are then updated item by
        item; an item whose product is gone is logged and skipped. The PR
        status stays intrasite.
        """
        pr = await self.require_purchase_request(pr_id)
        if pr.status != PRStatus.INTRASITE.value:
            raise BusinessRuleViolation(
                f"Material can only be received for intrasite purchase requests (current: {pr.status})"
            )
        if pr.material_received:
            raise BusinessRuleViolation("Material has already been received for this purchase request")

        items = {item.id: item for item in pr.items}
        errors = []
        for received in data.items:
            item = items.get(received.id)
            if item is None:
                errors.append({"id": str(received.id), "error": "Item does not belong to this purchase request"})
                continue
            total = received.fresh_stock_received + received.damaged_stock_received + received.short_qty_received
            if total > item.procured_quantity:
                errors.append({
                    "id": str(received.id),
                    "product_code": item.product_code,
                    "received": total,
                    "pi_received_quantity": item.procured_quantity,
                    "error": "Received quantity exceeds PI quantity",
                })
        if errors:
            raise ValidationFailed("Invalid material receipt", details=errors)

        inventory = InventoryService(self.db)
        for received in data.items:
            item = items[received.id]
            item.fresh_stock_received = received.fresh_stock_received
            item.damaged_stock_received = received.damaged_stock_received
            item.short_qty_received = received.short_qty_received
            if not item.product_id:
                continue
            try:
                await inventory.receive_stock(
                    item.product_id,
                    fresh=received.fresh_stock_received,
                    damaged=received.damaged_stock_received,
                    short=received.short_qty_received,
                )
            except NotFound as e:
                logger.warning(f"Skipping stock update for {pr.pr_number} item {item.product_code}: {e.message}")

        pr.material_received = True
        pr.material_received_date = data.material_received_date or datetime.now(timezone.utc)
        pr.vendor_invoice_number = data.vendor_invoice_number
        pr.invoice_date = data.invoice_date
        pr.updated_at = datetime.now(timezone.utc)

        await self.db.commit()
        logger.info(f"Material received for {pr.pr_number} (invoice {data.vendor_invoice_number})")
        return await self.require_purchase_request(pr_id)

    # ==================== DELETE ====================

    async def delete_purchase_request(self, pr_id: uuid.UUID) -> None:
        pr = await self.require_purchase_request(pr_id)
        if not can_delete_pr(pr.status):
            raise BusinessRuleViolation(f"Cannot delete a {pr.status} purchase request")

        pr_number = pr.pr_number
        await self.db.delete(pr)
        await self.db.commit()
        logger.info(f"Purchase request deleted: {pr_number}")
