"""
Fulfillment Reconciliation Service

Repairs derived state left inconsistent by data imports, manual edits or
failed events:

- reconcile_balance_quantities: balance_quantity = quantity - dispatched_quantity
  on every item and the order status re-derived from dispatch coverage
- reconcile_pr_payment_status: PR status re-classified from payment vs PI
- reconcile_awaiting_dispatch_orders: the PR -> order awaiting_dispatch
  cascade re-run for every awaiting_dispatch PR (idempotent)

Each step commits on its own so one failure does not undo the others.
"""

from datetime import datetime, timezone
from typing import Dict
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fulfillment.core.exceptions import FulfillmentError
from fulfillment.database import commit_or_conflict
from fulfillment.models.fulfillment_event import EventType
from fulfillment.models.order import Order, OrderStatus
from fulfillment.models.purchase_request import PRStatus, PurchaseRequest
from fulfillment.services.event_service import EventService
from fulfillment.services.fulfillment_rules import (
    PaymentClassification,
    ZERO,
    classify_pr_payment,
    derive_order_status,
    to_money,
)
from fulfillment.services.status_machine import can_order_transition, can_pr_transition, transition_order, transition_pr

logger = logging.getLogger(__name__)


class ReconciliationService:
    """Batch repair of fulfillment derived state."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def reconcile_balance_quantities(self) -> Dict[str, int]:
        """Fix item balances and re-derive the status of non-cancelled orders."""
        result = await self.db.execute(
            select(Order).where(Order.status != OrderStatus.CANCELLED.value)
        )
        orders = list(result.scalars().all())

        items_fixed = 0
        statuses_changed = 0
        for order in orders:
            touched = False
            for item in order.iter_items():
                expected = max(0, item.quantity - (item.dispatched_quantity or 0))
                if item.balance_quantity != expected:
                    item.balance_quantity = expected
                    items_fixed += 1
                    touched = True

            derived = derive_order_status(order.status, order.iter_items())
            if derived != order.status and can_order_transition(order.status, derived):
                transition_order(order, derived, source="reconciliation", notes="Re-derived from dispatched quantities")
                statuses_changed += 1
                touched = True

            if touched:
                order.updated_at = datetime.now(timezone.utc)

        await commit_or_conflict(self.db, "Order")
        summary = {"orders_checked": len(orders), "items_fixed": items_fixed, "statuses_changed": statuses_changed}
        logger.info(f"Balance reconciliation: {summary}")
        return summary

    async def reconcile_pr_payment_status(self) -> Dict[str, int]:
        """
        Re-apply payment classification to PRs with a payment recorded.

        PRs with a zero PI amount are skipped. Full payments do not move
        PRs that are already intrasite or completed. A PR newly moved to
        awaiting_dispatch gets a PURCHASE_REQUEST_PAID event.
        """
        result = await self.db.execute(
            select(PurchaseRequest).where(
                PurchaseRequest.payment_done.is_(True),
                PurchaseRequest.payment_amount > 0,
            )
        )
        prs = list(result.scalars().all())

        updated = 0
        skipped = 0
        events = EventService(self.db)
        for pr in prs:
            if to_money(pr.pi_amount) <= ZERO:
                logger.info(f"Skipping {pr.pr_number}: PI amount is zero")
                skipped += 1
                continue

            classification = classify_pr_payment(pr.payment_amount, pr.pi_amount)
            if classification == PaymentClassification.FULL:
                target = PRStatus.AWAITING_DISPATCH.value
                if pr.status in (PRStatus.AWAITING_DISPATCH.value, PRStatus.INTRASITE.value, PRStatus.COMPLETED.value):
                    continue
            else:
                target = PRStatus.PARTIAL_PAYMENT.value
                if pr.status == target:
                    continue

            if not can_pr_transition(pr.status, target):
                logger.info(f"Skipping {pr.pr_number}: cannot move from {pr.status} to {target}")
                skipped += 1
                continue

            transition_pr(pr, target)
            pr.updated_at = datetime.now(timezone.utc)
            updated += 1
            if target == PRStatus.AWAITING_DISPATCH.value:
                events.enqueue(
                    EventType.PURCHASE_REQUEST_PAID,
                    aggregate_type="purchase_request",
                    aggregate_id=pr.id,
                    payload={"pr_number": pr.pr_number, "source": "reconciliation"},
                )
            logger.info(f"Purchase request {pr.pr_number} -> {target} (reconciliation)")

        await self.db.commit()
        summary = {"checked": len(prs), "updated": updated, "skipped": skipped}
        logger.info(f"PR payment reconciliation: {summary}")
        return summary

    async def reconcile_awaiting_dispatch_orders(self) -> Dict[str, int]:
        """Re-run the awaiting_dispatch cascade for every awaiting_dispatch PR."""
        result = await self.db.execute(
            select(PurchaseRequest).where(PurchaseRequest.status == PRStatus.AWAITING_DISPATCH.value)
        )
        prs = list(result.scalars().all())

        events = EventService(self.db)
        updated = 0
        skipped = 0
        for pr in prs:
            counts = await events.cascade_orders_awaiting_dispatch(pr)
            updated += counts["updated"]
            skipped += counts["skipped"]

        await commit_or_conflict(self.db, "Order")
        summary = {"purchase_requests": len(prs), "orders_updated": updated, "orders_skipped": skipped}
        logger.info(f"Awaiting-dispatch reconciliation: {summary}")
        return summary

    async def run_all(self) -> Dict[str, dict]:
        """Run every reconciliation step; a failing step is logged and reported."""
        results = {}
        steps = (
            ("balance_quantities", self.reconcile_balance_quantities),
            ("pr_payment_status", self.reconcile_pr_payment_status),
            ("awaiting_dispatch_orders", self.reconcile_awaiting_dispatch_orders),
        )
        for name, step in steps:
            try:
                results[name] = await step()
            except FulfillmentError as e:
                await self.db.rollback()
                logger.error(f"Reconciliation step {name} failed: {e.message}")
                results[name] = {"error": e.message}
        return results
