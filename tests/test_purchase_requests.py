"""Tests for the purchase request lifecycle: PI, vendor payment, shipment and receipt."""

import uuid
from decimal import Decimal

from tests.conftest import money

PI_DETAILS = {
    "pi_received": True,
    "pi_number": "PI-2026-17",
    "pi_date": "2026-03-01T00:00:00Z",
    "pi_amount": "1000.00",
}


def payment(amount: str) -> dict:
    return {
        "payment_done": True,
        "payment_amount": amount,
        "payment_utr": "UTR123456",
        "payment_mode": "neft",
    }


async def create_pr(client, order, product, quantity=10, **item_extra):
    response = await client.post("/api/purchase-request", json={
        "vendor": "Kajaria Ceramics",
        "items": [{
            "order_id": order["id"],
            "product_id": str(product.id),
            "quantity": quantity,
            "price": "100.00",
            **item_extra,
        }],
    })
    assert response.status_code == 201, response.text
    return response.json()


async def get_product(client, product) -> dict:
    return (await client.get(f"/api/product/{product.id}")).json()


class TestCreatePurchaseRequest:

    async def test_snapshots_order_and_product(self, client, create_order, tile):
        order = await create_order()

        pr = await create_pr(client, order, tile)

        assert pr["pr_number"] == "PR000001"
        assert pr["status"] == "pending"
        item = pr["items"][0]
        assert item["order_no"] == order["order_number"]
        assert item["party_name"] == "Sharma Builders"
        assert item["product_code"] == "TILE-001"
        assert item["brand"] == "Kajaria"
        assert money(item["total"]) == Decimal("1000.00")

    async def test_unknown_order_is_rejected(self, client, tile):
        response = await client.post("/api/purchase-request", json={
            "vendor": "Kajaria Ceramics",
            "items": [{"order_id": str(uuid.uuid4()), "product_id": str(tile.id), "quantity": 1}],
        })
        assert response.status_code == 400
        assert response.json()["detail"] == "Purchase request items reference unknown orders"

    async def test_list_filters(self, client, create_order, tile):
        order = await create_order()
        pr = await create_pr(client, order, tile)
        await client.put(f"/api/purchase-request/{pr['id']}", json=PI_DETAILS)

        response = await client.get("/api/purchase-request", params={"pi_received": True})
        assert response.json()["total"] == 1

        response = await client.get("/api/purchase-request", params={"status": "pending"})
        assert response.json()["total"] == 0

        response = await client.get("/api/purchase-request", params={"search": "PI-2026"})
        assert response.json()["items"][0]["pr_number"] == "PR000001"


class TestProformaInvoice:

    async def test_pi_received_moves_to_awaiting_payment(self, client, create_order, tile):
        order = await create_order()
        pr = await create_pr(client, order, tile)

        response = await client.put(f"/api/purchase-request/{pr['id']}", json=PI_DETAILS)

        assert response.status_code == 200
        updated = response.json()
        assert updated["status"] == "awaiting_payment"
        assert updated["pi_received"] is True
        assert money(updated["pi_amount"]) == Decimal("1000.00")

    async def test_pi_number_and_date_are_required(self, client, create_order, tile):
        order = await create_order()
        pr = await create_pr(client, order, tile)

        response = await client.put(f"/api/purchase-request/{pr['id']}", json={"pi_received": True})

        assert response.status_code == 400
        unchanged = (await client.get(f"/api/purchase-request/{pr['id']}")).json()
        assert unchanged["pi_received"] is False


class TestVendorPayment:

    async def test_partial_then_full_payment(self, client, create_order, tile):
        order = await create_order()
        pr = await create_pr(client, order, tile)
        url = f"/api/purchase-request/{pr['id']}"
        await client.put(url, json=PI_DETAILS)

        response = await client.put(url, json=payment("400.00"))
        assert response.json()["status"] == "partial_payment"
        assert (await get_product(client, tile))["ordered_quantity"] == 0
        assert (await client.get(f"/api/order/{order['id']}")).json()["status"] == "pending"

        response = await client.put(url, json={"payment_amount": "1000.00"})
        assert response.status_code == 200
        assert response.json()["status"] == "awaiting_dispatch"

        assert (await get_product(client, tile))["ordered_quantity"] == 10
        linked = (await client.get(f"/api/order/{order['id']}")).json()
        assert linked["status"] == "awaiting_dispatch"
        assert linked["status_history"][-1]["source"] == "event"

        events = (await client.get("/api/fulfillment-events")).json()
        assert events["total"] == 1
        assert events["items"][0]["event_type"] == "PURCHASE_REQUEST_PAID"
        assert events["items"][0]["status"] == "PROCESSED"

    async def test_full_payment_updates_every_linked_order_once(self, client, create_order, tile):
        first = await create_order()
        second = await create_order()
        response = await client.post("/api/purchase-request", json={
            "vendor": "Kajaria Ceramics",
            "items": [
                {"order_id": first["id"], "product_id": str(tile.id), "quantity": 4},
                {"order_id": first["id"], "product_id": str(tile.id), "quantity": 2},
                {"order_id": second["id"], "product_id": str(tile.id), "quantity": 3, "pi_received_quantity": 5},
            ],
        })
        pr = response.json()

        response = await client.put(f"/api/purchase-request/{pr['id']}", json={**PI_DETAILS, **payment("1000.00")})

        assert response.json()["status"] == "awaiting_dispatch"
        assert (await get_product(client, tile))["ordered_quantity"] == 11
        for order in (first, second):
            linked = (await client.get(f"/api/order/{order['id']}")).json()
            assert linked["status"] == "awaiting_dispatch"
            assert [h["to_status"] for h in linked["status_history"]].count("awaiting_dispatch") == 1

    async def test_lines_for_the_same_product_add_up(self, client, create_order, tile):
        order = await create_order()
        response = await client.post("/api/purchase-request", json={
            "vendor": "Kajaria Ceramics",
            "items": [
                {"order_id": order["id"], "product_id": str(tile.id), "quantity": 6, "price": "100.00"},
                {"order_id": order["id"], "product_id": str(tile.id), "quantity": 4, "price": "100.00"},
            ],
        })
        pr = response.json()

        await client.put(f"/api/purchase-request/{pr['id']}", json={**PI_DETAILS, **payment("1000.00")})

        assert (await get_product(client, tile))["ordered_quantity"] == 10

    async def test_zero_amount_while_paid_is_rejected(self, client, create_order, tile):
        order = await create_order()
        pr = await create_pr(client, order, tile)
        url = f"/api/purchase-request/{pr['id']}"
        await client.put(url, json=PI_DETAILS)
        assert (await client.put(url, json=payment("400.00"))).json()["status"] == "partial_payment"

        response = await client.put(url, json={"payment_amount": "0"})

        assert response.status_code == 400
        assert response.json()["details"] == ["payment_amount"]
        unchanged = (await client.get(url)).json()
        assert unchanged["payment_done"] is True
        assert money(unchanged["payment_amount"]) == Decimal("400.00")
        assert unchanged["status"] == "partial_payment"

    async def test_payment_requires_utr_and_mode(self, client, create_order, tile):
        order = await create_order()
        pr = await create_pr(client, order, tile)

        response = await client.put(
            f"/api/purchase-request/{pr['id']}",
            json={**PI_DETAILS, "payment_done": True, "payment_amount": "1000.00"},
        )

        assert response.status_code == 400
        assert set(response.json()["details"]) == {"payment_utr", "payment_mode"}

    async def test_payment_against_zero_pi_amount_is_rejected(self, client, create_order, tile):
        order = await create_order()
        pr = await create_pr(client, order, tile)

        response = await client.put(f"/api/purchase-request/{pr['id']}", json=payment("500.00"))

        assert response.status_code == 400
        assert (await client.get(f"/api/purchase-request/{pr['id']}")).json()["status"] == "pending"

    async def test_awaiting_dispatch_needs_full_payment(self, client, create_order, tile):
        order = await create_order()
        pr = await create_pr(client, order, tile)
        await client.put(f"/api/purchase-request/{pr['id']}", json=PI_DETAILS)

        response = await client.put(f"/api/purchase-request/{pr['id']}", json={"status": "awaiting_dispatch"})

        assert response.status_code == 400
        assert response.json()["requiresFullPayment"] is True

    async def test_paid_request_cannot_drop_below_pi(self, client, create_order, tile):
        order = await create_order()
        pr = await create_pr(client, order, tile)
        url = f"/api/purchase-request/{pr['id']}"
        await client.put(url, json={**PI_DETAILS, **payment("1000.00")})

        response = await client.put(url, json={"payment_amount": "500.00"})
        assert response.status_code == 400

        response = await client.put(url, json={"payment_done": False})
        assert response.status_code == 400

    async def test_cascade_skips_orders_that_cannot_move(self, client, create_order, tile, tap):
        order = await create_order()
        await client.post("/api/dispatch", json={
            "order_id": order["id"],
            "items": [
                {"product_id": str(tile.id), "quantity": 10},
                {"product_id": str(tap.id), "quantity": 5},
            ],
        })
        pr = await create_pr(client, order, tile)

        response = await client.put(f"/api/purchase-request/{pr['id']}", json={**PI_DETAILS, **payment("1000.00")})

        assert response.json()["status"] == "awaiting_dispatch"
        assert (await client.get(f"/api/order/{order['id']}")).json()["status"] == "dispatching"


class TestVendorShipment:

    async def test_dispatch_details_move_order_and_request_to_intrasite(self, client, create_order, tile):
        order = await create_order()
        pr = await create_pr(client, order, tile)
        await client.put(f"/api/purchase-request/{pr['id']}", json={**PI_DETAILS, **payment("1000.00")})

        response = await client.patch(f"/api/order/{order['id']}/dispatch-details", json={
            "vendor_bill_number": "VB-881",
            "vendor_bill_date": "2026-03-05T00:00:00Z",
            "dispatch_through": "VRL Logistics",
            "docket_number": "DK-42",
        })

        assert response.status_code == 200
        body = response.json()
        assert body["data"]["status"] == "intrasite"
        assert body["data"]["dispatch_details"]["docket_number"] == "DK-42"

        assert (await client.get(f"/api/purchase-request/{pr['id']}")).json()["status"] == "intrasite"
        product = await get_product(client, tile)
        assert (product["ordered_quantity"], product["in_transit_quantity"]) == (0, 10)

    async def test_each_order_ships_its_own_lines(self, client, create_order, tile):
        first = await create_order()
        second = await create_order()
        pr = (await client.post("/api/purchase-request", json={
            "vendor": "Kajaria Ceramics",
            "items": [
                {"order_id": first["id"], "product_id": str(tile.id), "quantity": 3, "price": "100.00"},
                {"order_id": second["id"], "product_id": str(tile.id), "quantity": 4, "price": "100.00"},
            ],
        })).json()
        url = f"/api/purchase-request/{pr['id']}"
        await client.put(url, json={**PI_DETAILS, "pi_amount": "700.00", **payment("700.00")})
        assert (await get_product(client, tile))["ordered_quantity"] == 7

        await client.patch(f"/api/order/{first['id']}/dispatch-details", json={"docket_number": "DK-1"})

        product = await get_product(client, tile)
        assert (product["ordered_quantity"], product["in_transit_quantity"]) == (4, 3)
        shipped = (await client.get(url)).json()
        assert shipped["status"] == "intrasite"
        assert [item["shipped"] for item in shipped["items"] if item["order_id"] == first["id"]] == [True]
        assert [item["shipped"] for item in shipped["items"] if item["order_id"] == second["id"]] == [False]

        await client.patch(f"/api/order/{second['id']}/dispatch-details", json={"docket_number": "DK-2"})

        product = await get_product(client, tile)
        assert (product["ordered_quantity"], product["in_transit_quantity"]) == (0, 7)
        assert all(item["shipped"] for item in (await client.get(url)).json()["items"])


class TestMaterialReceived:

    async def _intrasite_pr(self, client, order, product):
        pr = await create_pr(client, order, product, pi_received_quantity=8)
        await client.put(f"/api/purchase-request/{pr['id']}", json={**PI_DETAILS, **payment("1000.00")})
        await client.patch(f"/api/order/{order['id']}/dispatch-details", json={"docket_number": "DK-1"})
        return (await client.get(f"/api/purchase-request/{pr['id']}")).json()

    async def test_stock_is_booked(self, client, create_order, tile):
        order = await create_order()
        pr = await self._intrasite_pr(client, order, tile)
        assert pr["status"] == "intrasite"
        assert (await get_product(client, tile))["in_transit_quantity"] == 8

        response = await client.post(f"/api/purchase-request/{pr['id']}/material-received", json={
            "vendor_invoice_number": "INV-77",
            "invoice_date": "2026-03-10T00:00:00Z",
            "items": [{
                "id": pr["items"][0]["id"],
                "fresh_stock_received": 6,
                "damaged_stock_received": 1,
                "short_qty_received": 1,
            }],
        })

        assert response.status_code == 200
        received = response.json()["data"]
        assert received["material_received"] is True
        assert received["vendor_invoice_number"] == "INV-77"
        assert received["status"] == "intrasite"
        assert received["items"][0]["fresh_stock_received"] == 6

        product = await get_product(client, tile)
        assert (product["fresh_stock"], product["damaged_stock"], product["in_transit_quantity"]) == (16, 1, 0)

    async def test_quantities_above_pi_reject_the_whole_receipt(self, client, create_order, tile):
        order = await create_order()
        pr = await self._intrasite_pr(client, order, tile)

        response = await client.post(f"/api/purchase-request/{pr['id']}/material-received", json={
            "vendor_invoice_number": "INV-77",
            "invoice_date": "2026-03-10T00:00:00Z",
            "items": [{"id": pr["items"][0]["id"], "fresh_stock_received": 9}],
        })

        assert response.status_code == 400
        assert response.json()["details"][0]["pi_received_quantity"] == 8
        assert (await get_product(client, tile))["fresh_stock"] == 10
        assert (await client.get(f"/api/purchase-request/{pr['id']}")).json()["material_received"] is False

    async def test_lines_for_the_same_product_are_all_booked(self, client, create_order, tile):
        order = await create_order()
        pr = (await client.post("/api/purchase-request", json={
            "vendor": "Kajaria Ceramics",
            "items": [
                {"order_id": order["id"], "product_id": str(tile.id), "quantity": 6, "price": "100.00"},
                {"order_id": order["id"], "product_id": str(tile.id), "quantity": 4, "price": "100.00"},
            ],
        })).json()
        await client.put(f"/api/purchase-request/{pr['id']}", json={**PI_DETAILS, **payment("1000.00")})
        await client.patch(f"/api/order/{order['id']}/dispatch-details", json={"docket_number": "DK-1"})
        assert (await get_product(client, tile))["in_transit_quantity"] == 10

        response = await client.post(f"/api/purchase-request/{pr['id']}/material-received", json={
            "vendor_invoice_number": "INV-78",
            "invoice_date": "2026-03-10T00:00:00Z",
            "items": [
                {"id": item["id"], "fresh_stock_received": item["quantity"]}
                for item in pr["items"]
            ],
        })

        assert response.status_code == 200
        product = await get_product(client, tile)
        assert (product["fresh_stock"], product["in_transit_quantity"]) == (20, 0)

    async def test_only_intrasite_requests(self, client, create_order, tile):
        order = await create_order()
        pr = await create_pr(client, order, tile)

        response = await client.post(f"/api/purchase-request/{pr['id']}/material-received", json={
            "vendor_invoice_number": "INV-77",
            "invoice_date": "2026-03-10T00:00:00Z",
            "items": [{"id": pr["items"][0]["id"], "fresh_stock_received": 1}],
        })

        assert response.status_code == 400


class TestDeleteAndTerminalStates:

    async def test_delete_until_money_moves(self, client, create_order, tile):
        order = await create_order()
        pending = await create_pr(client, order, tile)
        paid = await create_pr(client, order, tile)
        await client.put(f"/api/purchase-request/{paid['id']}", json={**PI_DETAILS, **payment("1000.00")})

        assert (await client.delete(f"/api/purchase-request/{pending['id']}")).status_code == 200
        assert (await client.get(f"/api/purchase-request/{pending['id']}")).status_code == 404
        assert (await client.delete(f"/api/purchase-request/{paid['id']}")).status_code == 400

    async def test_rejected_request_only_takes_remarks(self, client, create_order, tile):
        order = await create_order()
        pr = await create_pr(client, order, tile)
        url = f"/api/purchase-request/{pr['id']}"

        assert (await client.put(url, json={"status": "rejected"})).json()["status"] == "rejected"
        assert (await client.put(url, json={"remarks": "Vendor out of stock"})).status_code == 200
        assert (await client.put(url, json={"vendor": "Someone else"})).status_code == 400
