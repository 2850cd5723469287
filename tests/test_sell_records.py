"""Tests for sell records: bills raised out of fresh stock."""

from datetime import datetime, timezone
from decimal import Decimal

from tests.conftest import money


def bill(product, quantity, **extra):
    return {
        "customer_name": "Walk-in Customer",
        "items": [{"product_id": str(product.id), "quantity": quantity, "unit_price": "150.00"}],
        **extra,
    }


class TestCreateSellRecord:

    async def test_stock_is_taken_and_totals_computed(self, client, tile):
        response = await client.post("/api/sell-record", json=bill(tile, 3, discount="50.00", tax="18.00"))

        assert response.status_code == 201
        record = response.json()
        year = datetime.now(timezone.utc).year
        assert record["bill_number"] == f"BILL{year}0001"
        assert money(record["total_amount"]) == Decimal("450.00")
        assert money(record["final_amount"]) == Decimal("418.00")
        assert record["items"][0]["product_code"] == "TILE-001"

        product = (await client.get(f"/api/product/{tile.id}")).json()
        assert (product["fresh_stock"], product["total_sold"]) == (7, 3)

    async def test_insufficient_stock_rolls_everything_back(self, client, tile, tap):
        body = {
            "customer_name": "Walk-in Customer",
            "items": [
                {"product_id": str(tile.id), "quantity": 2, "unit_price": "150.00"},
                {"product_id": str(tap.id), "quantity": 1, "unit_price": "300.00"},
            ],
        }

        response = await client.post("/api/sell-record", json=body)

        assert response.status_code == 400
        assert response.json()["productCode"] == "TAP-001"
        assert (await client.get(f"/api/product/{tile.id}")).json()["fresh_stock"] == 10

        record = (await client.post("/api/sell-record", json=bill(tile, 1))).json()
        assert record["bill_number"].endswith("0001")

    async def test_repeated_product_lines_share_one_stock_check(self, client, tile):
        body = {
            "customer_name": "Walk-in Customer",
            "items": [
                {"product_id": str(tile.id), "quantity": 8, "unit_price": "150.00"},
                {"product_id": str(tile.id), "quantity": 8, "unit_price": "150.00"},
            ],
        }

        response = await client.post("/api/sell-record", json=body)

        assert response.status_code == 400
        assert response.json()["available"] == 2
        product = (await client.get(f"/api/product/{tile.id}")).json()
        assert (product["fresh_stock"], product["total_sold"]) == (10, 0)

    async def test_dispatch_note_is_billed_once(self, client, create_order, tile):
        order = await create_order()
        note = (await client.post("/api/dispatch", json={
            "order_id": order["id"],
            "items": [{"product_id": str(tile.id), "quantity": 2}],
        })).json()

        response = await client.post("/api/sell-record", json=bill(tile, 2, dispatch_id=note["id"]))
        assert response.status_code == 201
        assert (await client.get(f"/api/dispatch/{note['id']}")).json()["sell_recorded"] is True

        response = await client.post("/api/sell-record", json=bill(tile, 1, dispatch_id=note["id"]))
        assert response.status_code == 400
        assert response.json()["alreadyRecorded"] is True
        assert (await client.get(f"/api/product/{tile.id}")).json()["fresh_stock"] == 8

    async def test_list(self, client, tile):
        await client.post("/api/sell-record", json=bill(tile, 1))
        await client.post("/api/sell-record", json=bill(tile, 1, customer_name="Mehta Traders"))

        response = await client.get("/api/sell-record", params={"search": "mehta"})

        data = response.json()
        assert data["total"] == 1
        assert data["items"][0]["customer_name"] == "Mehta Traders"
