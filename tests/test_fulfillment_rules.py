"""Tests for the pure fulfillment calculations."""

from decimal import Decimal

import pytest

from fulfillment.core.exceptions import ValidationFailed
from fulfillment.models.order import Order, OrderGroup, OrderItem, OrderStatus, PaymentStatus
from fulfillment.services.fulfillment_rules import (
    Availability,
    PaymentClassification,
    apply_cancellation,
    apply_payment_totals,
    availability_status,
    classify_pr_payment,
    derive_order_status,
    payment_status_for,
    recalculate_order_totals,
    to_money,
)


def make_item(quantity, dispatched=0, net_rate="100.00", mrp="0.00"):
    return OrderItem(
        product_name="Item",
        quantity=quantity,
        dispatched_quantity=dispatched,
        balance_quantity=quantity - dispatched,
        cancelled_quantity=0,
        net_rate=Decimal(net_rate),
        mrp=Decimal(mrp),
    )


def make_order(*items, status=OrderStatus.PENDING.value, gst="18", amount_paid="0.00"):
    return Order(
        status=status,
        gst_percentage=Decimal(gst),
        freight_charges=Decimal("0.00"),
        additional_discount=Decimal("0.00"),
        roundoff_amount=Decimal("0.00"),
        amount_paid=Decimal(amount_paid),
        groups=[OrderGroup(group_name="Main", items=list(items))],
    )


class TestToMoney:

    def test_rounds_half_up_to_paise(self):
        assert to_money("10.005") == Decimal("10.01")
        assert to_money(2.5) == Decimal("2.50")

    def test_none_is_zero(self):
        assert to_money(None) == Decimal("0.00")


class TestDeriveOrderStatus:

    def test_all_items_fully_dispatched(self):
        items = [make_item(10, 10), make_item(5, 5)]
        assert derive_order_status(OrderStatus.PENDING.value, items) == OrderStatus.DISPATCHING.value

    def test_one_item_partially_dispatched(self):
        items = [make_item(10, 4), make_item(5, 0)]
        assert derive_order_status(OrderStatus.PENDING.value, items) == OrderStatus.PARTIALLY_DISPATCHED.value

    def test_mix_of_full_and_untouched_keeps_status(self):
        items = [make_item(10, 10), make_item(5, 0)]
        assert derive_order_status(OrderStatus.AWAITING_DISPATCH.value, items) == OrderStatus.AWAITING_DISPATCH.value

    def test_nothing_dispatched_keeps_status(self):
        items = [make_item(10), make_item(5)]
        assert derive_order_status(OrderStatus.PENDING.value, items) == OrderStatus.PENDING.value

    def test_no_items_keeps_status(self):
        assert derive_order_status(OrderStatus.PENDING.value, []) == OrderStatus.PENDING.value

    @pytest.mark.parametrize("final_status", [
        OrderStatus.CANCELLED.value,
        OrderStatus.DELIVERED.value,
        OrderStatus.COMPLETED.value,
    ])
    def test_final_statuses_are_never_overridden(self, final_status):
        items = [make_item(10, 10)]
        assert derive_order_status(final_status, items) == final_status

    def test_dispatching_never_goes_back_to_partial(self):
        items = [make_item(10, 4)]
        assert derive_order_status(OrderStatus.DISPATCHING.value, items) == OrderStatus.DISPATCHING.value


class TestClassifyPrPayment:

    def test_payment_covering_pi_is_full(self):
        assert classify_pr_payment(Decimal("1000"), Decimal("1000")) == PaymentClassification.FULL
        assert classify_pr_payment(Decimal("1200"), Decimal("1000")) == PaymentClassification.FULL

    def test_payment_below_pi_is_partial(self):
        assert classify_pr_payment(Decimal("400"), Decimal("1000")) == PaymentClassification.PARTIAL

    def test_no_payment_is_unclassified(self):
        assert classify_pr_payment(Decimal("0"), Decimal("1000")) is None

    def test_zero_pi_amount_is_rejected(self):
        with pytest.raises(ValidationFailed):
            classify_pr_payment(Decimal("500"), Decimal("0"))


class TestOrderFinancials:

    def test_recalculate_totals(self):
        order = make_order(make_item(10, net_rate="100.00", mrp="120.00"), make_item(5, net_rate="200.00"))
        order.freight_charges = Decimal("50.00")
        order.additional_discount = Decimal("100.00")

        recalculate_order_totals(order)

        group = order.groups[0]
        assert group.total_amount == Decimal("2000.00")
        assert group.subtotal == Decimal("1200.00")
        assert group.total_discount == Decimal("200.00")
        assert order.grand_total == Decimal("2000.00")
        assert order.gst_amount == Decimal("360.00")
        assert order.net_amount_before_tax == Decimal("1950.00")
        assert order.net_amount_payable == Decimal("2310.00")
        assert order.balance_amount == Decimal("2310.00")

    def test_default_gst_applies_when_order_has_none(self):
        order = make_order(make_item(1, net_rate="100.00"))
        order.gst_percentage = None

        recalculate_order_totals(order, default_gst_percentage=12)

        assert order.gst_amount == Decimal("12.00")

    def test_balance_never_negative(self):
        order = make_order(make_item(1), amount_paid="500.00")
        order.net_amount_payable = Decimal("300.00")
        apply_payment_totals(order)
        assert order.balance_amount == Decimal("0.00")

    @pytest.mark.parametrize("paid,balance,expected", [
        ("0", "100", PaymentStatus.PENDING.value),
        ("40", "60", PaymentStatus.PARTIAL.value),
        ("100", "0", PaymentStatus.PAID.value),
    ])
    def test_payment_status_for(self, paid, balance, expected):
        assert payment_status_for(Decimal(paid), Decimal(balance)) == expected


class TestApplyCancellation:

    def test_partial_cancellation_keeps_dispatched_value(self):
        first = make_item(10, 4, net_rate="100.00")
        second = make_item(5, 0, net_rate="200.00")
        order = make_order(first, second)
        recalculate_order_totals(order)

        outcome = apply_cancellation(order)

        assert outcome.is_partial
        assert outcome.type == "partial"
        assert outcome.total_order_qty == 15
        assert outcome.dispatched_qty == 4
        assert outcome.cancelled_qty == 11
        assert (first.quantity, first.cancelled_quantity, first.balance_quantity) == (4, 6, 0)
        assert (second.quantity, second.cancelled_quantity, second.balance_quantity) == (0, 5, 0)
        assert first.total_amount == Decimal("400.00")
        assert second.total_amount == Decimal("0.00")
        assert order.grand_total == Decimal("400.00")
        assert order.gst_amount == Decimal("72.00")
        assert order.net_amount_payable == Decimal("472.00")

    def test_full_cancellation_zeroes_amounts(self):
        order = make_order(make_item(10), make_item(5))
        recalculate_order_totals(order)

        outcome = apply_cancellation(order)

        assert not outcome.is_partial
        assert outcome.type == "full"
        assert outcome.cancelled_qty == 15
        assert order.grand_total == Decimal("0.00")
        assert order.gst_amount == Decimal("0.00")
        assert order.net_amount_payable == Decimal("0.00")
        assert all(i.quantity == 0 for i in order.iter_items())

    def test_balance_invariant_holds_after_cancellation(self):
        order = make_order(make_item(7, 3), make_item(2, 2))
        apply_cancellation(order)
        for item in order.iter_items():
            assert item.balance_quantity == item.quantity - item.dispatched_quantity


class TestAvailabilityStatus:

    def test_enough_stock(self):
        assert availability_status(5, 10, 5) == Availability.AVAILABLE

    def test_consolidated_demand_beyond_stock_is_partial(self):
        assert availability_status(12, 10, 5) == Availability.PARTIAL

    def test_some_stock_is_partial(self):
        assert availability_status(5, 3, 5) == Availability.PARTIAL

    def test_no_stock(self):
        assert availability_status(0, 0, 5) == Availability.NON_AVAILABLE
