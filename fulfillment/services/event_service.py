"""
Fulfillment Event Service (outbox)

Cross-aggregate side effects are written as FulfillmentEvent rows in the
same transaction as the change that caused them, then applied by the
handlers below. Each handler runs in one transaction that also marks the
event PROCESSED, so a retried event never applies twice.

Event types:
- PURCHASE_REQUEST_PAID: PR entered awaiting_dispatch.
    * each linked product: ordered_quantity += procured quantity
    * each unique referenced order -> awaiting_dispatch
- ORDER_IN_TRANSIT: order moved awaiting_dispatch -> intrasite.
    * awaiting_dispatch PRs referencing the order -> intrasite
    * that order's PR items not yet shipped: ordered -> in transit on the
      product, also for PRs already intrasite through another order
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import uuid
import logging

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from fulfillment.config import settings
from fulfillment.core.exceptions import NotFound, BusinessRuleViolation
from fulfillment.models.fulfillment_event import FulfillmentEvent, EventType, EventStatus
from fulfillment.models.order import Order, OrderStatus
from fulfillment.models.purchase_request import PurchaseRequest, PurchaseRequestItem, PRStatus
from fulfillment.services.inventory_service import InventoryService
from fulfillment.services.status_machine import (
    can_order_transition,
    can_pr_transition,
    transition_order,
    transition_pr,
)

logger = logging.getLogger(__name__)

# PRs whose items can still be shipped for an order
IN_TRANSIT_PR_STATUSES = (PRStatus.AWAITING_DISPATCH.value, PRStatus.INTRASITE.value)


class EventService:
    """Enqueue and apply fulfillment events."""

    def __init__(self, db: AsyncSession, max_attempts: Optional[int] = None):
        self.db = db
        self.max_attempts = max_attempts or settings.EVENT_MAX_ATTEMPTS

    # ==================== ENQUEUE ====================

    def enqueue(
        self,
        event_type: EventType,
        aggregate_type: str,
        aggregate_id: uuid.UUID,
        payload: Optional[Dict[str, Any]] = None,
    ) -> FulfillmentEvent:
        """Add an event to the current transaction. The caller commits."""
        event = FulfillmentEvent(
            id=uuid.uuid4(),
            event_type=event_type.value,
            aggregate_type=aggregate_type,
            aggregate_id=aggregate_id,
            payload=payload or {},
            status=EventStatus.PENDING.value,
            attempts=0,
        )
        self.db.add(event)
        return event

    # ==================== PROCESSING ====================

    async def process_event(self, event_id: uuid.UUID) -> bool:
        """
        Apply one pending event.

        On failure the transaction is rolled back, the attempt is recorded
        and the event stays PENDING until max_attempts, then FAILED.

        Returns:
            True if the event was applied
        """
        event = await self._get_event(event_id)
        if event is None:
            raise NotFound(f"Fulfillment event {event_id} not found")
        if event.status != EventStatus.PENDING.value:
            return False

        event_type = event.event_type
        aggregate_id = event.aggregate_id
        payload = dict(event.payload or {})

        try:
            handler = self._handlers().get(event_type)
            if handler is None:
                raise ValueError(f"No handler for event type '{event_type}'")
            await handler(aggregate_id, payload)

            event.status = EventStatus.PROCESSED.value
            event.attempts += 1
            event.last_error = None
            event.processed_at = datetime.now(timezone.utc)
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            await self._record_failure(event_id, e)
            return False

        logger.info(f"Fulfillment event {event_type} for {aggregate_id} processed")
        return True

    async def process_pending(self, limit: Optional[int] = None) -> Dict[str, int]:
        """Drain PENDING events oldest first."""
        limit = limit or settings.EVENT_BATCH_SIZE
        result = await self.db.execute(
            select(FulfillmentEvent.id)
            .where(FulfillmentEvent.status == EventStatus.PENDING.value)
            .order_by(FulfillmentEvent.created_at)
            .limit(limit)
        )
        event_ids = list(result.scalars().all())

        processed = 0
        failed = 0
        for event_id in event_ids:
            if await self.process_event(event_id):
                processed += 1
            else:
                failed += 1

        remaining = (await self.db.execute(
            select(func.count(FulfillmentEvent.id))
            .where(FulfillmentEvent.status == EventStatus.PENDING.value)
        )).scalar() or 0

        return {"processed": processed, "failed": failed, "remaining": remaining}

    async def retry_failed(self, event_id: uuid.UUID) -> FulfillmentEvent:
        """Put a FAILED event back in the queue with its attempt count reset."""
        event = await self._get_event(event_id)
        if event is None:
            raise NotFound(f"Fulfillment event {event_id} not found")
        if event.status != EventStatus.FAILED.value:
            raise BusinessRuleViolation(
                f"Only FAILED events can be retried (current: {event.status})"
            )
        event.status = EventStatus.PENDING.value
        event.attempts = 0
        await self.db.commit()

        await self.process_event(event_id)
        return await self._get_event(event_id)

    async def list_events(
        self,
        status: Optional[str] = None,
        aggregate_id: Optional[uuid.UUID] = None,
        limit: int = 100,
    ) -> List[FulfillmentEvent]:
        stmt = select(FulfillmentEvent).order_by(FulfillmentEvent.created_at.desc())
        if status:
            stmt = stmt.where(FulfillmentEvent.status == status)
        if aggregate_id:
            stmt = stmt.where(FulfillmentEvent.aggregate_id == aggregate_id)
        result = await self.db.execute(stmt.limit(limit))
        return list(result.scalars().all())

    async def _get_event(self, event_id: uuid.UUID) -> Optional[FulfillmentEvent]:
        result = await self.db.execute(
            select(FulfillmentEvent)
            .where(FulfillmentEvent.id == event_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _record_failure(self, event_id: uuid.UUID, error: Exception) -> None:
        event = await self._get_event(event_id)
        event.attempts += 1
        event.last_error = f"{type(error).__name__}: {error}"
        if event.attempts >= self.max_attempts:
            event.status = EventStatus.FAILED.value
        await self.db.commit()

        logger.error(
            f"Fulfillment event {event.event_type} for {event.aggregate_id} failed "
            f"(attempt {event.attempts}/{self.max_attempts}, status {event.status}): {error}"
        )

    def _handlers(self):
        return {
            EventType.PURCHASE_REQUEST_PAID.value: self._handle_purchase_request_paid,
            EventType.ORDER_IN_TRANSIT.value: self._handle_order_in_transit,
        }

    # ==================== HANDLERS ====================

    async def _handle_purchase_request_paid(self, pr_id: uuid.UUID, payload: Dict[str, Any]) -> None:
        pr = await self._load_pr(pr_id)
        inventory = InventoryService(self.db)

        for item in pr.items:
            if item.product_id and item.procured_quantity > 0:
                await inventory.add_ordered_quantity(item.product_id, item.procured_quantity)

        await self.cascade_orders_awaiting_dispatch(pr, changed_by=payload.get("changed_by"))
        await self.db.flush()

    async def cascade_orders_awaiting_dispatch(self, pr: PurchaseRequest, changed_by=None) -> Dict[str, int]:
        """
        Move every unique order referenced by the PR to awaiting_dispatch.

        Orders already there are left alone; orders the status machine
        does not allow to move (final or further along) are skipped.
        """
        target = OrderStatus.AWAITING_DISPATCH.value
        updated = 0
        skipped = 0

        order_ids = pr.order_ids
        if not order_ids:
            return {"updated": 0, "skipped": 0}

        result = await self.db.execute(select(Order).where(Order.id.in_(order_ids)))
        for order in result.scalars().all():
            if order.status == target:
                skipped += 1
                continue
            if not can_order_transition(order.status, target):
                logger.info(
                    f"Order {order.order_number} left in '{order.status}' "
                    f"while cascading PR {pr.pr_number} payment"
                )
                skipped += 1
                continue
            transition_order(
                order, target,
                changed_by=_as_uuid(changed_by),
                source="event",
                notes=f"Purchase request {pr.pr_number} fully paid",
            )
            updated += 1
            logger.info(f"Order {order.order_number} -> {target} (PR {pr.pr_number})")

        return {"updated": updated, "skipped": skipped}

    async def _handle_order_in_transit(self, order_id: uuid.UUID, payload: Dict[str, Any]) -> None:
        result = await self.db.execute(
            select(PurchaseRequest)
            .join(PurchaseRequestItem, PurchaseRequestItem.purchase_request_id == PurchaseRequest.id)
            .where(
                PurchaseRequestItem.order_id == order_id,
                PurchaseRequest.status.in_(IN_TRANSIT_PR_STATUSES),
            )
            .distinct()
        )
        prs = list(result.scalars().all())
        if not prs:
            logger.info(f"No paid purchase request references order {order_id}")
            return

        inventory = InventoryService(self.db)
        for pr in prs:
            # A PR covering several orders goes intrasite with the first shipment;
            # items of the other orders move as their own orders ship
            if pr.status == PRStatus.AWAITING_DISPATCH.value and can_pr_transition(pr.status, PRStatus.INTRASITE.value):
                transition_pr(pr, PRStatus.INTRASITE.value)
                logger.info(f"Purchase request {pr.pr_number} -> intrasite (order {order_id})")
            for item in pr.items:
                if item.order_id != order_id or item.shipped:
                    continue
                if item.product_id and item.procured_quantity > 0:
                    await inventory.move_ordered_to_in_transit(item.product_id, item.procured_quantity)
                item.shipped = True

        await self.db.flush()

    async def _load_pr(self, pr_id: uuid.UUID) -> PurchaseRequest:
        result = await self.db.execute(
            select(PurchaseRequest).where(PurchaseRequest.id == pr_id)
        )
        pr = result.scalar_one_or_none()
        if pr is None:
            raise NotFound(f"Purchase request {pr_id} not found")
        return pr


def _as_uuid(value) -> Optional[uuid.UUID]:
    if value is None or isinstance(value, uuid.UUID):
        return value
    return uuid.UUID(str(value))
