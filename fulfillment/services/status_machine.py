"""
Order and Purchase Request State Machines

Single place that decides which status changes are allowed. Manual
status updates, workflow transitions (dispatch, payment, events) and
reconciliation all validate through here.
"""

from datetime import datetime, timezone
from typing import Dict, List, Optional

from fulfillment.core.exceptions import InvalidTransition, ValidationFailed
from fulfillment.models.dispatch import DispatchStatus
from fulfillment.models.order import OrderStatus, OrderStatusHistory
from fulfillment.models.purchase_request import PRStatus


# =============================================================================
# ORDER TRANSITIONS
# =============================================================================

ORDER_STATUSES: List[str] = [s.value for s in OrderStatus]

ORDER_TRANSITIONS: Dict[str, List[str]] = {
    OrderStatus.PENDING.value: [
        OrderStatus.PARTIALLY_PENDING.value,
        OrderStatus.AWAITING_DISPATCH.value,     # Linked PR fully paid
        OrderStatus.PARTIALLY_DISPATCHED.value,  # Dispatched from stock
        OrderStatus.DISPATCHING.value,
        OrderStatus.COMPLETED.value,
        OrderStatus.CANCELLED.value,
    ],
    OrderStatus.PARTIALLY_PENDING.value: [
        OrderStatus.PENDING.value,
        OrderStatus.AWAITING_DISPATCH.value,
        OrderStatus.PARTIALLY_DISPATCHED.value,
        OrderStatus.DISPATCHING.value,
        OrderStatus.COMPLETED.value,
        OrderStatus.CANCELLED.value,
    ],
    OrderStatus.AWAITING_DISPATCH.value: [
        OrderStatus.PARTIALLY_DISPATCHED.value,
        OrderStatus.DISPATCHING.value,
        OrderStatus.INTRASITE.value,             # Vendor shipped to site
        OrderStatus.COMPLETED.value,
        OrderStatus.CANCELLED.value,
    ],
    OrderStatus.PARTIALLY_DISPATCHED.value: [
        OrderStatus.AWAITING_DISPATCH.value,     # PR for the remainder paid
        OrderStatus.DISPATCHING.value,
        OrderStatus.INTRASITE.value,
        OrderStatus.DELIVERED.value,
        OrderStatus.COMPLETED.value,
        OrderStatus.CANCELLED.value,
    ],
    OrderStatus.DISPATCHING.value: [
        OrderStatus.INTRASITE.value,
        OrderStatus.DELIVERED.value,
        OrderStatus.COMPLETED.value,
        OrderStatus.CANCELLED.value,
    ],
    OrderStatus.INTRASITE.value: [
        OrderStatus.PARTIALLY_DISPATCHED.value,
        OrderStatus.DISPATCHING.value,
        OrderStatus.DELIVERED.value,
        OrderStatus.COMPLETED.value,
        OrderStatus.CANCELLED.value,
    ],
    OrderStatus.DELIVERED.value: [
        OrderStatus.COMPLETED.value,
    ],
    OrderStatus.COMPLETED.value: [],   # Terminal
    OrderStatus.CANCELLED.value: [],   # Terminal
}


# =============================================================================
# PURCHASE REQUEST TRANSITIONS
# =============================================================================

PR_STATUSES: List[str] = [s.value for s in PRStatus]

PR_TRANSITIONS: Dict[str, List[str]] = {
    PRStatus.PENDING.value: [
        PRStatus.APPROVED.value,
        PRStatus.REJECTED.value,
        PRStatus.AWAITING_PAYMENT.value,
        PRStatus.PARTIAL_PAYMENT.value,
        PRStatus.AWAITING_DISPATCH.value,
        PRStatus.COMPLETED.value,
    ],
    PRStatus.APPROVED.value: [
        PRStatus.AWAITING_PAYMENT.value,
        PRStatus.PARTIAL_PAYMENT.value,
        PRStatus.AWAITING_DISPATCH.value,
        PRStatus.REJECTED.value,
        PRStatus.COMPLETED.value,
    ],
    PRStatus.AWAITING_PAYMENT.value: [
        PRStatus.PARTIAL_PAYMENT.value,
        PRStatus.AWAITING_DISPATCH.value,
        PRStatus.REJECTED.value,
    ],
    PRStatus.PARTIAL_PAYMENT.value: [
        PRStatus.AWAITING_DISPATCH.value,
    ],
    PRStatus.AWAITING_DISPATCH.value: [
        PRStatus.INTRASITE.value,
        PRStatus.COMPLETED.value,
    ],
    PRStatus.INTRASITE.value: [
        PRStatus.COMPLETED.value,
    ],
    PRStatus.REJECTED.value: [],    # Terminal
    PRStatus.COMPLETED.value: [],   # Terminal
}


# =============================================================================
# DISPATCH NOTE TRANSITIONS
# =============================================================================

DISPATCH_STATUSES: List[str] = [s.value for s in DispatchStatus]

DISPATCH_TRANSITIONS: Dict[str, List[str]] = {
    DispatchStatus.PENDING.value: [
        DispatchStatus.IN_TRANSIT.value,
        DispatchStatus.DELIVERED.value,
        DispatchStatus.CANCELLED.value,
    ],
    DispatchStatus.IN_TRANSIT.value: [
        DispatchStatus.DELIVERED.value,
        DispatchStatus.CANCELLED.value,
    ],
    DispatchStatus.DELIVERED.value: [],   # Terminal
    DispatchStatus.CANCELLED.value: [],   # Terminal
}


# =============================================================================
# HELPERS
# =============================================================================

def can_transition(transitions: Dict[str, List[str]], current_status: str, new_status: str) -> bool:
    if current_status == new_status:
        return True
    return new_status in transitions.get(current_status, [])


def _validate(transitions: Dict[str, List[str]], statuses: List[str], label: str,
              current_status: str, new_status: str) -> None:
    if new_status not in statuses:
        raise ValidationFailed(
            f"Invalid {label} status '{new_status}'",
            validStatuses=statuses,
        )
    if current_status == new_status:
        return

    if not can_transition(transitions, current_status, new_status):
        allowed = transitions.get(current_status, [])
        if not allowed:
            raise InvalidTransition(
                f"{label.capitalize()} in '{current_status}' status cannot be modified. This is a terminal state.",
                current_status, new_status,
            )
        raise InvalidTransition(
            f"Cannot change {label} from '{current_status}' to '{new_status}'. "
            f"Allowed transitions: {', '.join(allowed)}",
            current_status, new_status, allowed,
        )


def validate_order_transition(current_status: str, new_status: str) -> None:
    """Raise ValidationFailed/InvalidTransition unless the order may move to new_status."""
    _validate(ORDER_TRANSITIONS, ORDER_STATUSES, "order", current_status, new_status)


def validate_pr_transition(current_status: str, new_status: str) -> None:
    _validate(PR_TRANSITIONS, PR_STATUSES, "purchase request", current_status, new_status)


def validate_dispatch_transition(current_status: str, new_status: str) -> None:
    _validate(DISPATCH_TRANSITIONS, DISPATCH_STATUSES, "dispatch note", current_status, new_status)


def can_order_transition(current_status: str, new_status: str) -> bool:
    return can_transition(ORDER_TRANSITIONS, current_status, new_status)


def can_pr_transition(current_status: str, new_status: str) -> bool:
    return can_transition(PR_TRANSITIONS, current_status, new_status)


def is_order_terminal(status: str) -> bool:
    return status in (OrderStatus.CANCELLED.value, OrderStatus.COMPLETED.value)


def can_dispatch_against(status: str) -> bool:
    """Can a dispatch note be created for an order in this status?"""
    return status not in (
        OrderStatus.CANCELLED.value,
        OrderStatus.DELIVERED.value,
        OrderStatus.COMPLETED.value,
    )


def can_cancel_order(status: str) -> bool:
    return status not in (
        OrderStatus.CANCELLED.value,
        OrderStatus.DELIVERED.value,
        OrderStatus.COMPLETED.value,
    )


def can_delete_pr(status: str) -> bool:
    """PRs can be deleted until money has moved."""
    return status in (
        PRStatus.PENDING.value,
        PRStatus.APPROVED.value,
        PRStatus.REJECTED.value,
        PRStatus.AWAITING_PAYMENT.value,
    )


# =============================================================================
# TRANSITION EXECUTORS
# =============================================================================

def transition_order(order, new_status: str, changed_by=None, source: str = "manual",
                     notes: Optional[str] = None) -> bool:
    """
    Move an order to new_status and append a history row.

    Returns False when the order is already in new_status.

    Raises:
        ValidationFailed / InvalidTransition: If the transition is not allowed
    """
    current_status = order.status
    validate_order_transition(current_status, new_status)
    if current_status == new_status:
        return False

    order.status = new_status
    order.updated_at = datetime.now(timezone.utc)
    order.status_history.append(
        OrderStatusHistory(
            from_status=current_status,
            to_status=new_status,
            changed_by=changed_by,
            source=source,
            notes=notes,
        )
    )
    return True


def transition_pr(pr, new_status: str, user_id=None) -> bool:
    """Move a PR to new_status, stamping approval audit fields."""
    current_status = pr.status
    validate_pr_transition(current_status, new_status)
    if current_status == new_status:
        return False

    pr.status = new_status
    if new_status == PRStatus.APPROVED.value:
        pr.approved_by = user_id
        pr.approved_date = datetime.now(timezone.utc)
    return True
