from typing import Any, Dict, List, Optional, Tuple
from datetime import datetime, timezone
from decimal import Decimal
import uuid
import logging

from sqlalchemy import select, func, and_, or_, exists
from sqlalchemy.ext.asyncio import AsyncSession

from fulfillment.config import settings
from fulfillment.core.exceptions import BusinessRuleViolation, NotFound, ValidationFailed
from fulfillment.database import commit_or_conflict
from fulfillment.models.document_sequence import DocumentType
from fulfillment.models.dispatch import DispatchNote
from fulfillment.models.fulfillment_event import EventType
from fulfillment.models.order import (
    Order, OrderGroup, OrderItem, OrderStatus, OrderStatusHistory, PaymentStatus
)
from fulfillment.models.payment_receipt import PaymentReceipt
from fulfillment.models.product import Product
from fulfillment.models.purchase_request import PurchaseRequestItem
from fulfillment.models.user import User
from fulfillment.schemas.order import (
    DispatchDetailsUpdate,
    OrderCancelRequest,
    OrderCreate,
    OrderDetailResponse,
    OrderPaymentUpdate,
    OrderResponse,
    OrderUpdate,
)
from fulfillment.services.document_sequence_service import DocumentSequenceService
from fulfillment.services.event_service import EventService
from fulfillment.services.fulfillment_rules import (
    ZERO,
    CancellationOutcome,
    apply_cancellation,
    apply_payment_totals,
    availability_status,
    payment_status_for,
    recalculate_order_totals,
    to_money,
)
from fulfillment.services.inventory_service import InventoryService
from fulfillment.services.status_machine import (
    can_cancel_order,
    transition_order,
)

logger = logging.getLogger(__name__)


# Header fields that change the order totals when edited
FINANCIAL_FIELDS = {"freight_charges", "gst_percentage", "additional_discount", "roundoff_amount"}

SORTABLE_FIELDS = {
    "created_at": Order.created_at,
    "order_date": Order.order_date,
    "order_number": Order.order_number,
    "net_amount_payable": Order.net_amount_payable,
    "balance_amount": Order.balance_amount,
    "status": Order.status,
}

# Orders that can still have goods waiting to leave
PENDING_DISPATCH_STATUSES = [
    OrderStatus.PENDING.value,
    OrderStatus.PARTIALLY_PENDING.value,
    OrderStatus.AWAITING_DISPATCH.value,
    OrderStatus.PARTIALLY_DISPATCHED.value,
    OrderStatus.DISPATCHING.value,
    OrderStatus.INTRASITE.value,
    OrderStatus.DELIVERED.value,
]


def _split_csv(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [v.strip() for v in value.split(",") if v.strip() and v.strip() != "all"]


def _split_uuids(value: Optional[str], field: str) -> List[uuid.UUID]:
    try:
        return [uuid.UUID(v) for v in _split_csv(value)]
    except ValueError:
        raise ValidationFailed(f"Invalid {field}: expected comma-separated UUIDs")


class OrderService:
    """Service for managing orders and their fulfillment state."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ==================== QUERIES ====================

    async def get_order(self, order_id: uuid.UUID) -> Optional[Order]:
        """Get order by ID with groups, items and history loaded."""
        result = await self.db.execute(
            select(Order)
            .where(Order.id == order_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def require_order(self, order_id: uuid.UUID) -> Order:
        order = await self.get_order(order_id)
        if not order:
            raise NotFound("Order not found")
        return order

    async def get_orders(
        self,
        status: Optional[str] = None,
        payment_status: Optional[str] = None,
        party_id: Optional[uuid.UUID] = None,
        company_id: Optional[uuid.UUID] = None,
        site_id: Optional[uuid.UUID] = None,
        search: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        skip: int = 0,
        limit: int = 20,
        sort_by: str = "created_at",
        sort_order: str = "desc"
    ) -> Tuple[List[Order], int]:
        """Get paginated orders with filters. status/payment_status accept comma-separated lists."""
        filters = []

        statuses = _split_csv(status)
        if statuses:
            filters.append(Order.status.in_(statuses))

        payment_statuses = _split_csv(payment_status)
        if payment_statuses:
            filters.append(Order.payment_status.in_(payment_statuses))

        if party_id:
            filters.append(Order.party_id == party_id)
        if company_id:
            filters.append(Order.company_id == company_id)
        if site_id:
            filters.append(Order.site_id == site_id)
        if date_from:
            filters.append(Order.order_date >= date_from)
        if date_to:
            filters.append(Order.order_date <= date_to)

        if search:
            search_filter = f"%{search}%"
            filters.append(
                or_(
                    Order.order_number.ilike(search_filter),
                    Order.party_name.ilike(search_filter),
                    Order.quotation_no.ilike(search_filter),
                )
            )

        stmt = select(Order)
        count_stmt = select(func.count(Order.id))
        if filters:
            stmt = stmt.where(and_(*filters))
            count_stmt = count_stmt.where(and_(*filters))

        total = (await self.db.execute(count_stmt)).scalar() or 0

        sort_column = SORTABLE_FIELDS.get(sort_by, Order.created_at)
        stmt = stmt.order_by(sort_column.asc() if sort_order == "asc" else sort_column.desc())
        result = await self.db.execute(stmt.offset(skip).limit(limit))
        return list(result.scalars().all()), total

    # ==================== CREATE / UPDATE ====================

    async def create_order(self, data: OrderCreate, user: Optional[User] = None) -> Order:
        """
        Create an order with server-side totals.

        Item product details are filled from the product when the request
        leaves them out.
        """
        product_ids = [item.product_id for group in data.groups for item in group.items if item.product_id]
        products = await InventoryService(self.db).get_products_by_ids(product_ids)

        missing = sorted({str(pid) for pid in product_ids if pid not in products})
        if missing:
            raise ValidationFailed("Unknown products in order", details=missing)

        order_number = await DocumentSequenceService(self.db).get_next_number(DocumentType.ORDER)

        order = Order(
            order_number=order_number,
            order_date=data.order_date or datetime.now(timezone.utc),
            expected_delivery_date=data.expected_delivery_date,
            quotation_id=data.quotation_id,
            quotation_no=data.quotation_no,
            company_id=data.company_id,
            company_name=data.company_name,
            party_id=data.party_id,
            party_name=data.party_name,
            contact_person=data.contact_person,
            mobile=data.mobile,
            email=data.email,
            site_id=data.site_id,
            site_name=data.site_name,
            site_address=data.site_address,
            site_city=data.site_city,
            freight_charges=to_money(data.freight_charges),
            gst_percentage=data.gst_percentage,
            additional_discount=to_money(data.additional_discount),
            roundoff_amount=to_money(data.roundoff_amount),
            amount_paid=to_money(data.amount_paid),
            payment_method=data.payment_method,
            notes=data.notes,
            internal_notes=data.internal_notes,
            status=OrderStatus.PENDING.value,
            payment_status=PaymentStatus.PENDING.value,
            created_by=user.id if user else None,
            created_by_name=user.name if user else None,
            groups=[],
            status_history=[],
        )

        for group_index, group_data in enumerate(data.groups):
            group = OrderGroup(
                group_id=group_data.group_id,
                group_name=group_data.group_name,
                group_category=group_data.group_category,
                position=group_index,
                items=[],
            )
            for item_index, item_data in enumerate(group_data.items):
                product = products.get(item_data.product_id) if item_data.product_id else None
                product_name = item_data.product_name or (product.name if product else None)
                if not product_name:
                    raise ValidationFailed(
                        f"Item {item_index + 1} in group '{group_data.group_name}' needs a product_id or product_name"
                    )
                group.items.append(
                    OrderItem(
                        position=item_index,
                        product_id=item_data.product_id,
                        product_code=item_data.product_code or (product.product_code if product else None),
                        product_name=product_name,
                        product_description=item_data.product_description or (product.description if product else None),
                        product_brand=item_data.product_brand or (product.brand if product else None),
                        mrp=to_money(item_data.mrp),
                        quantity=item_data.quantity,
                        discount=to_money(item_data.discount),
                        discount_type=item_data.discount_type,
                        net_rate=to_money(item_data.net_rate),
                        gst_percentage=item_data.gst_percentage,
                        dispatched_quantity=0,
                        balance_quantity=item_data.quantity,
                        cancelled_quantity=0,
                    )
                )
            order.groups.append(group)

        recalculate_order_totals(order, settings.DEFAULT_GST_PERCENTAGE)
        if to_money(order.amount_paid) > ZERO:
            order.payment_status = payment_status_for(order.amount_paid, order.balance_amount)

        order.status_history.append(
            OrderStatusHistory(
                from_status=None,
                to_status=OrderStatus.PENDING.value,
                changed_by=user.id if user else None,
                source="manual",
                notes="Order created",
            )
        )

        self.db.add(order)
        await commit_or_conflict(self.db, "Order")
        logger.info(f"Order created: {order_number} ({order.item_count} items, net {order.net_amount_payable})")

        return await self.require_order(order.id)

    async def update_order(self, order_id: uuid.UUID, data: OrderUpdate, user: Optional[User] = None) -> Order:
        """Patch header fields; totals and balance are recomputed when money fields change."""
        order = await self.require_order(order_id)
        if order.status == OrderStatus.CANCELLED.value:
            raise BusinessRuleViolation("Cancelled orders cannot be edited")

        update_data = data.model_dump(exclude_unset=True)
        for field, value in update_data.items():
            if field in FINANCIAL_FIELDS or field == "amount_paid":
                value = to_money(value) if field != "gst_percentage" else value
            setattr(order, field, value)

        if FINANCIAL_FIELDS & update_data.keys():
            recalculate_order_totals(order, settings.DEFAULT_GST_PERCENTAGE)
        if "amount_paid" in update_data or FINANCIAL_FIELDS & update_data.keys():
            apply_payment_totals(order)
            self._refresh_payment_status(order)

        self._touch(order, user)
        await commit_or_conflict(self.db, "Order")
        return await self.require_order(order_id)

    async def update_order_status(
        self,
        order_id: uuid.UUID,
        new_status: str,
        user: Optional[User] = None,
        notes: Optional[str] = None
    ) -> Order:
        """Manual status change through the order state machine."""
        order = await self.require_order(order_id)

        if new_status == OrderStatus.CANCELLED.value:
            raise BusinessRuleViolation(
                "Use the cancel operation to cancel an order",
                requiresCancellation=True,
            )

        old_status = order.status
        transition_order(order, new_status, changed_by=user.id if user else None, source="manual", notes=notes)
        self._touch(order, user)
        await commit_or_conflict(self.db, "Order")
        logger.info(f"Order {order.order_number} status: {old_status} -> {new_status}")
        return await self.require_order(order_id)

    async def update_payment_status(
        self,
        order_id: uuid.UUID,
        data: OrderPaymentUpdate,
        user: Optional[User] = None
    ) -> Order:
        valid = [s.value for s in PaymentStatus]
        if data.payment_status not in valid:
            raise ValidationFailed(
                f"Invalid payment status '{data.payment_status}'",
                validStatuses=valid,
            )

        order = await self.require_order(order_id)
        if data.amount_paid is not None:
            order.amount_paid = to_money(data.amount_paid)
            apply_payment_totals(order)
        order.payment_status = data.payment_status
        if data.payment_method is not None:
            order.payment_method = data.payment_method

        self._touch(order, user)
        await commit_or_conflict(self.db, "Order")
        return await self.require_order(order_id)

    async def delete_order(self, order_id: uuid.UUID) -> None:
        """Delete an order that nothing else references yet."""
        order = await self.require_order(order_id)
        if order.status not in (OrderStatus.PENDING.value, OrderStatus.PARTIALLY_PENDING.value):
            raise BusinessRuleViolation(f"Only pending orders can be deleted (current: {order.status})")

        referenced = await self.db.execute(
            select(
                exists().where(DispatchNote.order_id == order_id),
                exists().where(PaymentReceipt.order_id == order_id),
                exists().where(PurchaseRequestItem.order_id == order_id),
            )
        )
        has_dispatch, has_receipt, has_pr = referenced.one()
        if has_dispatch or has_receipt or has_pr:
            raise BusinessRuleViolation(
                "Order is referenced by dispatch notes, payment receipts or purchase requests",
                hasDispatches=bool(has_dispatch),
                hasReceipts=bool(has_receipt),
                hasPurchaseRequests=bool(has_pr),
            )

        order_number = order.order_number
        await self.db.delete(order)
        await self.db.commit()
        logger.info(f"Order deleted: {order_number}")

    # ==================== CANCELLATION ====================

    async def cancel_order(
        self,
        order_id: uuid.UUID,
        data: OrderCancelRequest,
        user: Optional[User] = None
    ) -> Tuple[Order, CancellationOutcome, Optional[Dict[str, Any]]]:
        """
        Cancel an order, keeping only what was already dispatched.

        Any payment received must be disposed of: adjusted onto another
        order, refunded or forfeited. The cancelled order's own payment
        fields are then reset and marked refunded.

        Returns:
            (order, cancellation outcome, payment adjustment details)
        """
        order = await self.require_order(order_id)

        if not can_cancel_order(order.status):
            if order.status == OrderStatus.CANCELLED.value:
                raise BusinessRuleViolation("Order is already cancelled")
            raise BusinessRuleViolation(f"Cannot cancel a {order.status} order")

        payment_received = to_money(order.amount_paid)
        adjustment = data.payment_adjustment
        adjustment_result: Optional[Dict[str, Any]] = None

        if payment_received > ZERO:
            if adjustment is None:
                raise BusinessRuleViolation(
                    "Payment adjustment is required for orders with received payments",
                    requiresPaymentAdjustment=True,
                    paymentAmount=float(payment_received),
                )

            if adjustment.action == "adjust":
                adjustment_result = await self._adjust_payment_to(order, adjustment.adjust_to_order_id, payment_received, user)
            else:
                adjustment_result = {"action": adjustment.action, "amount": float(payment_received)}
            if adjustment.notes:
                adjustment_result["notes"] = adjustment.notes

            order.amount_paid = ZERO
            order.balance_amount = ZERO
            order.payment_status = PaymentStatus.REFUNDED.value

        outcome = apply_cancellation(order, settings.DEFAULT_GST_PERCENTAGE)
        if payment_received <= ZERO:
            apply_payment_totals(order)

        reason = data.cancellation_reason or "No reason provided"
        transition_order(
            order, OrderStatus.CANCELLED.value,
            changed_by=user.id if user else None,
            source="cancellation",
            notes=reason,
        )
        now = datetime.now(timezone.utc)
        order.cancellation_reason = reason
        order.cancelled_by = user.id if user else None
        order.cancelled_by_name = user.name if user else None
        order.cancelled_at = now
        if adjustment_result:
            order.payment_adjustment_details = adjustment_result
        self._touch(order, user)

        await commit_or_conflict(self.db, "Order")
        logger.info(
            f"Order {order.order_number} cancelled ({outcome.type}): "
            f"{outcome.dispatched_qty}/{outcome.total_order_qty} dispatched, "
            f"payment adjustment {adjustment_result['action'] if adjustment_result else 'none'}"
        )

        return await self.require_order(order_id), outcome, adjustment_result

    async def _adjust_payment_to(
        self,
        order: Order,
        target_order_id: Optional[uuid.UUID],
        amount: Decimal,
        user: Optional[User],
    ) -> Dict[str, Any]:
        if not target_order_id:
            raise ValidationFailed("Target order ID is required for payment adjustment")
        if target_order_id == order.id:
            raise ValidationFailed("Payment cannot be adjusted onto the order being cancelled")

        target = await self.get_order(target_order_id)
        if not target:
            raise NotFound("Target order for payment adjustment not found")
        if target.status == OrderStatus.CANCELLED.value:
            raise BusinessRuleViolation("Payment cannot be adjusted onto a cancelled order")

        target.amount_paid = to_money(target.amount_paid) + amount
        apply_payment_totals(target)
        target.payment_status = payment_status_for(target.amount_paid, target.balance_amount)
        self._touch(target, user)

        logger.info(f"Adjusted {amount} from {order.order_number} to {target.order_number}")
        return {
            "action": "adjust",
            "amount": float(amount),
            "target_order_id": str(target.id),
            "target_order_no": target.order_number,
        }

    # ==================== VENDOR DISPATCH ====================

    async def record_dispatch_details(
        self,
        order_id: uuid.UUID,
        data: DispatchDetailsUpdate,
        user: Optional[User] = None
    ) -> Order:
        """
        Record the vendor shipment for an awaiting_dispatch order and move it
        to intrasite. Linked purchase requests and product counters follow
        through an ORDER_IN_TRANSIT event.
        """
        order = await self.require_order(order_id)
        if order.status != OrderStatus.AWAITING_DISPATCH.value:
            raise BusinessRuleViolation(
                f"Order is not in awaiting_dispatch status. Current status: {order.status}"
            )

        order.dispatch_details = data.model_dump(mode="json")
        transition_order(
            order, OrderStatus.INTRASITE.value,
            changed_by=user.id if user else None,
            source="dispatch",
            notes=f"Vendor bill {data.vendor_bill_number or '-'}, docket {data.docket_number or '-'}",
        )
        self._touch(order, user)

        events = EventService(self.db)
        event = events.enqueue(
            EventType.ORDER_IN_TRANSIT,
            aggregate_type="order",
            aggregate_id=order.id,
            payload={
                "order_number": order.order_number,
                "changed_by": str(user.id) if user else None,
            },
        )
        event_id = event.id
        await commit_or_conflict(self.db, "Order")
        logger.info(f"Order {order.order_number} -> intrasite")

        await events.process_event(event_id)
        return await self.require_order(order_id)

    # ==================== AVAILABILITY & REPORTS ====================

    async def get_order_with_availability(self, order_id: uuid.UUID) -> OrderDetailResponse:
        """
        Order with each item's stock position.

        consolidated_quantity is the balance of the same product code
        summed over the whole order.
        """
        order = await self.require_order(order_id)
        items = list(order.iter_items())

        inventory = InventoryService(self.db)
        by_id = await inventory.get_products_by_ids([i.product_id for i in items])
        by_code = await inventory.get_products_by_codes(
            [i.product_code for i in items if not i.product_id and i.product_code]
        )

        consolidated: Dict[str, int] = {}
        for item in items:
            key = item.product_code or str(item.product_id)
            consolidated[key] = consolidated.get(key, 0) + item.balance_quantity

        data = OrderResponse.model_validate(order).model_dump()
        for group_data, group in zip(data["groups"], order.groups):
            for item_data, item in zip(group_data["items"], group.items):
                product: Optional[Product] = by_id.get(item.product_id) or by_code.get(item.product_code)
                available = product.available_for_order if product else 0
                consolidated_qty = consolidated.get(item.product_code or str(item.product_id), 0)
                item_data.update(
                    available_quantity=available,
                    consolidated_quantity=consolidated_qty,
                    availability_status=availability_status(consolidated_qty, available, item.balance_quantity),
                    stock={
                        "fresh_stock": product.fresh_stock if product else 0,
                        "opening_stock": product.opening_stock if product else 0,
                        "damaged_stock": product.damaged_stock if product else 0,
                        "sample_stock": product.sample_stock if product else 0,
                        "showroom_stock": product.showroom_stock if product else 0,
                        "ordered_quantity": product.ordered_quantity if product else 0,
                        "in_transit_quantity": product.in_transit_quantity if product else 0,
                    },
                )
        return OrderDetailResponse(**data)

    async def get_order_stats(self) -> Dict[str, Any]:
        by_status_rows = await self.db.execute(
            select(Order.status, func.count(Order.id)).group_by(Order.status)
        )
        by_status = {status: count for status, count in by_status_rows.all()}

        not_cancelled = Order.status != OrderStatus.CANCELLED.value
        totals = (await self.db.execute(
            select(
                func.coalesce(func.sum(Order.net_amount_payable), 0),
                func.coalesce(func.sum(Order.amount_paid), 0),
            ).where(not_cancelled)
        )).one()
        outstanding = (await self.db.execute(
            select(func.coalesce(func.sum(Order.balance_amount), 0)).where(
                not_cancelled,
                Order.payment_status.in_([PaymentStatus.PENDING.value, PaymentStatus.PARTIAL.value]),
            )
        )).scalar()

        return {
            "total_orders": sum(by_status.values()),
            "by_status": by_status,
            "total_revenue": to_money(totals[0]),
            "amount_received": to_money(totals[1]),
            "outstanding_balance": to_money(outstanding),
        }

    async def get_pending_orders_by_party(self, party_id: uuid.UUID) -> List[Order]:
        """Non-cancelled orders of a party that still owe money."""
        result = await self.db.execute(
            select(Order)
            .where(
                Order.party_id == party_id,
                Order.status != OrderStatus.CANCELLED.value,
                Order.balance_amount > 0,
            )
            .order_by(Order.order_date.desc())
        )
        return list(result.scalars().all())

    async def get_partial_unavailable_orders(
        self,
        brand: Optional[str] = None,
        party_id: Optional[str] = None,
        order_id: Optional[str] = None,
        search: Optional[str] = None,
        skip: int = 0,
        limit: int = 10,
    ) -> Tuple[List[Dict[str, Any]], int]:
        """
        Orders with items that fresh stock cannot cover, for purchase planning.

        Balance quantities are consolidated per product code across all
        filtered orders; unavailable = max(0, consolidated - fresh stock).
        Items are partial when some fresh stock exists, otherwise unavailable.
        """
        filters = [Order.status != OrderStatus.CANCELLED.value]
        party_ids = _split_uuids(party_id, "party_id")
        if party_ids:
            filters.append(Order.party_id.in_(party_ids))
        order_ids = _split_uuids(order_id, "order_id")
        if order_ids:
            filters.append(Order.id.in_(order_ids))
        if search:
            search_filter = f"%{search}%"
            filters.append(or_(Order.order_number.ilike(search_filter), Order.party_name.ilike(search_filter)))

        result = await self.db.execute(select(Order).where(and_(*filters)).order_by(Order.order_date.desc()))
        orders = list(result.scalars().all())

        consolidated: Dict[str, int] = {}
        for order in orders:
            for item in order.iter_items():
                key = item.product_code or str(item.product_id)
                consolidated[key] = consolidated.get(key, 0) + item.balance_quantity

        products = await InventoryService(self.db).get_products_by_ids(
            [item.product_id for order in orders for item in order.iter_items()]
        )

        flagged: List[Dict[str, Any]] = []
        for order in orders:
            unavailable_items = []
            for group in order.groups:
                for item in group.items:
                    product = products.get(item.product_id)
                    if not product or item.balance_quantity <= 0:
                        continue
                    if brand and product.brand != brand:
                        continue
                    key = item.product_code or str(item.product_id)
                    consolidated_qty = consolidated.get(key, 0)
                    fresh = product.fresh_stock or 0
                    unavailable = max(0, consolidated_qty - fresh)
                    if unavailable <= 0:
                        continue
                    unavailable_items.append({
                        "group_name": group.group_name,
                        "product_id": item.product_id,
                        "product_code": item.product_code,
                        "product_name": item.product_name,
                        "product_brand": product.brand,
                        "quantity": item.quantity,
                        "balance_quantity": item.balance_quantity,
                        "consolidated_quantity": consolidated_qty,
                        "fresh_stock": fresh,
                        "unavailable_quantity": unavailable,
                        "availability_status": "partial" if fresh > 0 else "unavailable",
                    })
            if unavailable_items:
                flagged.append({
                    "order_id": order.id,
                    "order_number": order.order_number,
                    "order_date": order.order_date,
                    "party_name": order.party_name,
                    "site_name": order.site_name,
                    "status": order.status,
                    "items": unavailable_items,
                })

        return flagged[skip:skip + limit], len(flagged)

    async def get_pending_dispatch_materials(
        self,
        brand: Optional[str] = None,
        group: Optional[str] = None,
        search: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Flattened order items that still have quantity to dispatch."""
        stmt = (
            select(Order)
            .where(Order.status.in_(PENDING_DISPATCH_STATUSES))
            .order_by(Order.order_date.desc())
        )
        if search:
            search_filter = f"%{search}%"
            stmt = stmt.where(
                or_(
                    Order.order_number.ilike(search_filter),
                    Order.company_name.ilike(search_filter),
                    Order.party_name.ilike(search_filter),
                    Order.id.in_(
                        select(OrderGroup.order_id)
                        .join(OrderItem, OrderItem.order_group_id == OrderGroup.id)
                        .where(or_(
                            OrderItem.product_name.ilike(search_filter),
                            OrderItem.product_code.ilike(search_filter),
                        ))
                    ),
                )
            )
        orders = (await self.db.execute(stmt)).scalars().all()

        materials = []
        brands = set()
        groups = set()
        for order in orders:
            for order_group in order.groups:
                if group and order_group.group_name.lower() != group.lower():
                    continue
                for item in order_group.items:
                    if brand and item.product_brand and item.product_brand.lower() != brand.lower():
                        continue
                    pending = item.quantity - (item.dispatched_quantity or 0)
                    if pending <= 0:
                        continue
                    if item.product_brand:
                        brands.add(item.product_brand)
                    groups.add(order_group.group_name)
                    materials.append({
                        "order_id": order.id,
                        "order_number": order.order_number,
                        "order_date": order.order_date,
                        "party_name": order.party_name,
                        "site_name": order.site_name,
                        "order_status": order.status,
                        "group_name": order_group.group_name,
                        "group_category": order_group.group_category,
                        "order_item_id": item.id,
                        "product_id": item.product_id,
                        "product_code": item.product_code,
                        "product_name": item.product_name,
                        "product_brand": item.product_brand,
                        "quantity": item.quantity,
                        "dispatched_quantity": item.dispatched_quantity,
                        "pending_quantity": pending,
                        "net_rate": item.net_rate,
                    })

        return {
            "items": materials,
            "total": len(materials),
            "brands": sorted(brands),
            "groups": sorted(groups),
        }

    # ==================== HELPERS ====================

    @staticmethod
    def _refresh_payment_status(order: Order) -> None:
        if to_money(order.amount_paid) > ZERO:
            order.payment_status = payment_status_for(order.amount_paid, order.balance_amount)
        elif order.payment_status != PaymentStatus.REFUNDED.value:
            order.payment_status = PaymentStatus.PENDING.value

    @staticmethod
    def _touch(order: Order, user: Optional[User]) -> None:
        """Stamp the editor; always dirties the row so the version counter moves."""
        order.updated_at = datetime.now(timezone.utc)
        if user:
            order.updated_by = user.id
            order.updated_by_name = user.name
