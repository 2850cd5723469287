"""
Fulfillment Rules

Pure calculations shared by the order, dispatch, purchase request and
reconciliation services. Nothing here touches the database: functions
take model instances (or plain values) and either return a result or
mutate the instance they are given.

Rules covered:
- Order status derivation from item dispatch coverage
- PR payment classification against the PI amount
- Order financial totals and payment status
- Cancellation quantity/financial recompute
- Per-item stock availability classification
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

from fulfillment.core.exceptions import ValidationFailed
from fulfillment.models.order import Order, OrderItem, OrderStatus, PaymentStatus


ZERO = Decimal("0.00")

# Statuses the dispatch derivation never overrides
FINAL_ORDER_STATUSES = {
    OrderStatus.CANCELLED.value,
    OrderStatus.DELIVERED.value,
    OrderStatus.COMPLETED.value,
}


def to_money(value) -> Decimal:
    """Coerce to a Decimal rounded to paise."""
    if value is None:
        return ZERO
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


# =============================================================================
# ORDER STATUS DERIVATION
# =============================================================================

class ItemDispatchState:
    FULL = "full"
    PARTIAL = "partial"
    NONE = "none"


def classify_item_dispatch(quantity: int, dispatched_quantity: int) -> str:
    dispatched = dispatched_quantity or 0
    if quantity > 0 and dispatched >= quantity:
        return ItemDispatchState.FULL
    if 0 < dispatched < quantity:
        return ItemDispatchState.PARTIAL
    return ItemDispatchState.NONE


def derive_order_status(current_status: str, items: Iterable[OrderItem]) -> str:
    """
    Compute the order status implied by item dispatch coverage.

    - every item fully dispatched (and at least one item) -> dispatching
    - any item partially dispatched -> partially dispatched
    - otherwise the current status is kept

    The result never moves an order out of a final status and never
    takes a dispatching order back to partially dispatched.
    """
    states = [classify_item_dispatch(i.quantity, i.dispatched_quantity) for i in items]

    if states and all(s == ItemDispatchState.FULL for s in states):
        derived = OrderStatus.DISPATCHING.value
    elif any(s == ItemDispatchState.PARTIAL for s in states):
        derived = OrderStatus.PARTIALLY_DISPATCHED.value
    else:
        return current_status

    if current_status in FINAL_ORDER_STATUSES:
        return current_status
    if (current_status == OrderStatus.DISPATCHING.value
            and derived == OrderStatus.PARTIALLY_DISPATCHED.value):
        return current_status
    return derived


# =============================================================================
# PR PAYMENT CLASSIFICATION
# =============================================================================

class PaymentClassification:
    FULL = "full"
    PARTIAL = "partial"


def classify_pr_payment(payment_amount, pi_amount) -> Optional[str]:
    """
    Compare a PR payment with its PI amount.

    Returns FULL when payment covers the PI, PARTIAL when it is positive
    but short, and None when nothing has been paid. A zero PI amount
    cannot be reconciled and raises ValidationFailed.
    """
    payment = to_money(payment_amount)
    pi = to_money(pi_amount)

    if payment <= ZERO:
        return None
    if pi <= ZERO:
        raise ValidationFailed(
            "Cannot reconcile a payment against a zero PI amount",
            pi_amount=float(pi),
            payment_amount=float(payment),
        )
    if payment >= pi:
        return PaymentClassification.FULL
    return PaymentClassification.PARTIAL


# =============================================================================
# ORDER FINANCIALS
# =============================================================================

def payment_status_for(amount_paid, balance_amount) -> str:
    """paid once nothing is owed, partial once anything is paid, else pending."""
    if to_money(balance_amount) <= ZERO:
        return PaymentStatus.PAID.value
    if to_money(amount_paid) > ZERO:
        return PaymentStatus.PARTIAL.value
    return PaymentStatus.PENDING.value


def apply_payment_totals(order: Order) -> None:
    """Recompute balance_amount from net payable and amount paid."""
    order.balance_amount = to_money(max(ZERO, to_money(order.net_amount_payable) - to_money(order.amount_paid)))


def recalculate_order_totals(order: Order, default_gst_percentage=18) -> None:
    """
    Recompute item, group and order totals from quantities and rates.

    item.total_amount = quantity * net_rate
    gst_amount = grand_total * gst_percentage / 100
    net_amount_before_tax = grand_total + freight - additional_discount
    net_amount_payable = net_amount_before_tax + gst_amount + roundoff
    """
    grand_total = ZERO
    for group in order.groups:
        subtotal = ZERO
        total_discount = ZERO
        group_total = ZERO
        for item in group.items:
            item.total_amount = to_money(Decimal(item.quantity) * to_money(item.net_rate))
            line_mrp = to_money(Decimal(item.quantity) * to_money(item.mrp))
            subtotal += line_mrp
            total_discount += max(ZERO, line_mrp - item.total_amount)
            group_total += item.total_amount
        group.subtotal = to_money(subtotal)
        group.total_discount = to_money(total_discount)
        group.total_amount = to_money(group_total)
        grand_total += group_total

    gst_percentage = order.gst_percentage
    if gst_percentage is None:
        gst_percentage = default_gst_percentage
    gst_percentage = Decimal(str(gst_percentage))

    order.gst_percentage = gst_percentage
    order.grand_total = to_money(grand_total)
    order.gst_amount = to_money(order.grand_total * gst_percentage / Decimal(100))
    order.net_amount_before_tax = to_money(
        order.grand_total + to_money(order.freight_charges) - to_money(order.additional_discount)
    )
    order.net_amount_payable = to_money(
        order.net_amount_before_tax + order.gst_amount + to_money(order.roundoff_amount)
    )
    apply_payment_totals(order)


# =============================================================================
# CANCELLATION
# =============================================================================

@dataclass
class CancellationOutcome:
    is_partial: bool
    total_order_qty: int
    dispatched_qty: int

    @property
    def cancelled_qty(self) -> int:
        return self.total_order_qty - self.dispatched_qty

    @property
    def type(self) -> str:
        return "partial" if self.is_partial else "full"


def apply_cancellation(order: Order, default_gst_percentage=18) -> CancellationOutcome:
    """
    Shrink the order to what has already been dispatched.

    Partial cancellation (something dispatched): every item keeps only its
    dispatched quantity and value; GST and net payable are recomputed from
    the retained value. Full cancellation zeroes every amount.

    Undispatched quantity is moved into cancelled_quantity so that
    balance_quantity == quantity - dispatched_quantity still holds.
    """
    items = list(order.iter_items())
    total_qty = sum(i.quantity for i in items)
    dispatched_qty = sum(i.dispatched_quantity or 0 for i in items)
    is_partial = dispatched_qty > 0

    for group in order.groups:
        group_total = ZERO
        for item in group.items:
            dispatched = item.dispatched_quantity or 0
            item.cancelled_quantity = max(0, item.quantity - dispatched)
            item.quantity = dispatched
            item.balance_quantity = 0
            item.total_amount = to_money(Decimal(dispatched) * to_money(item.net_rate)) if dispatched else ZERO
            group_total += item.total_amount
        group.total_amount = to_money(group_total)
        if not is_partial:
            group.subtotal = ZERO
            group.total_discount = ZERO

    order.roundoff_amount = ZERO
    if is_partial:
        gst_percentage = order.gst_percentage or Decimal(str(default_gst_percentage))
        order.grand_total = to_money(sum((g.total_amount for g in order.groups), ZERO))
        order.gst_amount = to_money(order.grand_total * Decimal(str(gst_percentage)) / Decimal(100))
        order.net_amount_before_tax = to_money(
            order.grand_total + to_money(order.freight_charges) - to_money(order.additional_discount)
        )
        order.net_amount_payable = to_money(order.net_amount_before_tax + order.gst_amount)
    else:
        order.grand_total = ZERO
        order.gst_amount = ZERO
        order.net_amount_before_tax = ZERO
        order.net_amount_payable = ZERO

    return CancellationOutcome(
        is_partial=is_partial,
        total_order_qty=total_qty,
        dispatched_qty=dispatched_qty,
    )


# =============================================================================
# AVAILABILITY
# =============================================================================

class Availability:
    AVAILABLE = "available"
    PARTIAL = "partial"
    NON_AVAILABLE = "non-available"


def availability_status(consolidated_quantity: int, available_quantity: int, balance_quantity: int) -> str:
    """
    Classify an order item against stock.

    Demand for the same product across the order (consolidated) beyond
    what is available makes the item partial; otherwise the item's own
    balance decides.
    """
    if consolidated_quantity > available_quantity:
        return Availability.PARTIAL
    if available_quantity >= balance_quantity:
        return Availability.AVAILABLE
    if available_quantity > 0:
        return Availability.PARTIAL
    return Availability.NON_AVAILABLE
