"""Tests for customer payment receipts against order balances."""

import uuid
from decimal import Decimal

from tests.conftest import PARTY_ID, money


async def receive(client, order, amount, mode="UPI", **extra):
    return await client.post("/api/payment-receipt", json={
        "order_id": order["id"],
        "amount_received": amount,
        "payment_mode": mode,
        **extra,
    })


async def fetch_order(client, order) -> dict:
    return (await client.get(f"/api/order/{order['id']}")).json()


class TestCreateReceipt:

    async def test_receipt_reduces_the_balance(self, client, create_order):
        order = await create_order()

        response = await receive(client, order, "1000.00", transaction_id="TXN-1")

        assert response.status_code == 201
        receipt = response.json()
        assert receipt["receipt_no"] == "RCP000001"
        assert receipt["status"] == "cleared"
        assert money(receipt["order_total"]) == Decimal("2360.00")
        assert money(receipt["amount_paid_before"]) == Decimal("0.00")
        assert money(receipt["balance_before"]) == Decimal("2360.00")
        assert money(receipt["balance_after"]) == Decimal("1360.00")
        assert receipt["created_by_name"] == "Test User"

        updated = await fetch_order(client, order)
        assert money(updated["amount_paid"]) == Decimal("1000.00")
        assert money(updated["balance_amount"]) == Decimal("1360.00")
        assert updated["payment_status"] == "partial"
        assert updated["payment_method"] == "UPI"

    async def test_settling_the_balance_marks_order_paid(self, client, create_order):
        order = await create_order()
        await receive(client, order, "1360.00")

        response = await receive(client, order, "1000.00", mode="Cheque", cheque_number="000123")

        assert response.status_code == 201
        updated = await fetch_order(client, order)
        assert updated["payment_status"] == "paid"
        assert money(updated["balance_amount"]) == Decimal("0.00")

    async def test_amount_above_balance_is_rejected(self, client, create_order):
        order = await create_order()

        response = await receive(client, order, "2360.01")

        assert response.status_code == 400
        assert response.json()["balanceAmount"] == 2360.0

    async def test_cancelled_order_takes_no_payments(self, client, create_order):
        order = await create_order()
        await client.patch(f"/api/order/{order['id']}/cancel", json={})

        response = await receive(client, order, "10.00")

        assert response.status_code == 400

    async def test_missing_order(self, client):
        response = await receive(client, {"id": str(uuid.uuid4())}, "10.00")
        assert response.status_code == 404


class TestUpdateAndDeleteReceipt:

    async def test_bounced_receipt_is_reversed(self, client, create_order):
        order = await create_order()
        receipt = (await receive(client, order, "1000.00", mode="Cheque")).json()
        url = f"/api/payment-receipt/{receipt['id']}"

        response = await client.put(url, json={"status": "bounced", "notes": "Insufficient funds"})

        assert response.status_code == 200
        assert response.json()["status"] == "bounced"
        assert response.json()["notes"] == "Insufficient funds"
        updated = await fetch_order(client, order)
        assert money(updated["amount_paid"]) == Decimal("0.00")
        assert money(updated["balance_amount"]) == Decimal("2360.00")
        assert updated["payment_status"] == "pending"

        response = await client.put(url, json={"status": "cleared"})
        assert response.status_code == 400

    async def test_descriptive_update_keeps_amounts(self, client, create_order):
        order = await create_order()
        receipt = (await receive(client, order, "500.00")).json()

        response = await client.put(f"/api/payment-receipt/{receipt['id']}", json={"reference_number": "REF-9"})

        assert response.json()["reference_number"] == "REF-9"
        assert money((await fetch_order(client, order))["amount_paid"]) == Decimal("500.00")

    async def test_delete_gives_the_amount_back(self, client, create_order):
        order = await create_order()
        await receive(client, order, "300.00")
        receipt = (await receive(client, order, "200.00")).json()

        response = await client.delete(f"/api/payment-receipt/{receipt['id']}")

        assert response.status_code == 200
        updated = await fetch_order(client, order)
        assert money(updated["amount_paid"]) == Decimal("300.00")
        assert updated["payment_status"] == "partial"
        assert (await client.get(f"/api/payment-receipt/{receipt['id']}")).status_code == 404


class TestReceiptQueries:

    async def test_list_for_order_and_summary(self, client, create_order):
        first = await create_order()
        second = await create_order()
        await receive(client, first, "100.00", mode="UPI")
        await receive(client, first, "50.00", mode="Cash")
        bounced = (await receive(client, second, "70.00", mode="UPI")).json()
        await client.put(f"/api/payment-receipt/{bounced['id']}", json={"status": "bounced"})

        response = await client.get(f"/api/payment-receipt/order/{first['id']}")
        assert [money(r["amount_received"]) for r in response.json()] == [Decimal("100.00"), Decimal("50.00")]

        response = await client.get("/api/payment-receipt", params={"payment_mode": "UPI"})
        assert response.json()["total"] == 2

        response = await client.get("/api/payment-receipt/summary", params={"party_id": str(PARTY_ID)})
        summary = response.json()
        assert summary["total_receipts"] == 2
        assert money(summary["total_amount"]) == Decimal("150.00")
        assert summary["by_mode"]["UPI"]["count"] == 1
        assert money(summary["by_mode"]["Cash"]["amount"]) == Decimal("50.00")
