"""Tests for dispatch notes and their effect on order items."""

import uuid
from decimal import Decimal

from tests.conftest import money


def dispatch_body(order, *lines, **extra):
    return {
        "order_id": order["id"],
        "items": [
            {"product_id": str(product.id), "quantity": quantity, **kwargs}
            for product, quantity, kwargs in lines
        ],
        **extra,
    }


class TestCreateDispatch:

    async def test_partial_dispatch(self, client, create_order, tile):
        order = await create_order()

        response = await client.post(
            "/api/dispatch",
            json=dispatch_body(order, (tile, 4, {}), vehicle_number="MH12AB1234"),
        )

        assert response.status_code == 201
        note = response.json()
        assert note["dispatch_no"] == "DN000001"
        assert note["order_no"] == order["order_number"]
        assert note["party_name"] == "Sharma Builders"
        assert note["status"] == "pending"
        assert note["total_quantity"] == 4
        assert money(note["total_amount"]) == Decimal("400.00")
        assert note["items"][0]["group_name"] == "Kitchen"

        updated = (await client.get(f"/api/order/{order['id']}")).json()
        assert updated["status"] == "partially dispatched"
        tile_item = updated["groups"][0]["items"][0]
        assert (tile_item["dispatched_quantity"], tile_item["balance_quantity"]) == (4, 6)
        assert updated["status_history"][-1]["source"] == "dispatch"

    async def test_full_dispatch_moves_order_to_dispatching(self, client, create_order, tile, tap):
        order = await create_order()

        await client.post("/api/dispatch", json=dispatch_body(order, (tile, 4, {})))
        response = await client.post("/api/dispatch", json=dispatch_body(order, (tile, 6, {}), (tap, 5, {})))

        assert response.status_code == 201
        assert response.json()["dispatch_no"] == "DN000002"

        updated = (await client.get(f"/api/order/{order['id']}")).json()
        assert updated["status"] == "dispatching"
        assert all(i["balance_quantity"] == 0 for i in updated["groups"][0]["items"])

    async def test_net_rate_override(self, client, create_order, tile):
        order = await create_order()

        response = await client.post("/api/dispatch", json=dispatch_body(order, (tile, 2, {"net_rate": "90.00"})))

        assert money(response.json()["items"][0]["total_amount"]) == Decimal("180.00")

    async def test_over_dispatch_is_rejected(self, client, create_order, tile):
        order = await create_order()
        await client.post("/api/dispatch", json=dispatch_body(order, (tile, 8, {})))

        response = await client.post("/api/dispatch", json=dispatch_body(order, (tile, 3, {})))

        assert response.status_code == 400
        body = response.json()
        assert body["detail"] == "Dispatch quantity exceeds the balance on the order"
        assert body["details"][0]["already_dispatched"] == 8
        assert body["details"][0]["requested"] == 3

        updated = (await client.get(f"/api/order/{order['id']}")).json()
        assert updated["groups"][0]["items"][0]["dispatched_quantity"] == 8

    async def test_lines_for_the_same_item_are_summed(self, client, create_order, tile):
        order = await create_order()

        response = await client.post("/api/dispatch", json=dispatch_body(order, (tile, 6, {}), (tile, 6, {})))

        assert response.status_code == 400
        assert response.json()["details"][0]["requested"] == 12

    async def test_unknown_product_is_rejected(self, client, create_order):
        order = await create_order()
        body = {"order_id": order["id"], "items": [{"product_id": str(uuid.uuid4()), "quantity": 1}]}

        response = await client.post("/api/dispatch", json=body)

        assert response.status_code == 400
        assert response.json()["detail"] == "Dispatch items do not match any order item"

    async def test_group_name_picks_the_order_group(self, client, create_order, tile):
        order = await create_order(groups=[
            {"group_name": "Kitchen", "items": [{"product_id": str(tile.id), "quantity": 10, "net_rate": "100"}]},
            {"group_name": "Bathroom", "items": [{"product_id": str(tile.id), "quantity": 3, "net_rate": "110"}]},
        ])

        response = await client.post(
            "/api/dispatch",
            json=dispatch_body(order, (tile, 3, {"group_name": "Bathroom"})),
        )

        assert response.status_code == 201
        assert money(response.json()["items"][0]["net_rate"]) == Decimal("110.00")

        kitchen, bathroom = (await client.get(f"/api/order/{order['id']}")).json()["groups"]
        assert kitchen["items"][0]["dispatched_quantity"] == 0
        assert bathroom["items"][0]["dispatched_quantity"] == 3

    async def test_cancelled_order_cannot_be_dispatched(self, client, create_order, tile):
        order = await create_order()
        await client.patch(f"/api/order/{order['id']}/cancel", json={})

        response = await client.post("/api/dispatch", json=dispatch_body(order, (tile, 1, {})))

        assert response.status_code == 400

    async def test_missing_order_is_404(self, client, tile):
        response = await client.post("/api/dispatch", json=dispatch_body({"id": str(uuid.uuid4())}, (tile, 1, {})))
        assert response.status_code == 404


class TestDispatchQueries:

    async def test_list_and_get(self, client, create_order, tile):
        first = await create_order()
        second = await create_order()
        created = (await client.post("/api/dispatch", json=dispatch_body(first, (tile, 1, {})))).json()
        await client.post("/api/dispatch", json=dispatch_body(second, (tile, 1, {})))

        response = await client.get("/api/dispatch", params={"order_id": first["id"]})
        data = response.json()
        assert data["total"] == 1
        assert data["items"][0]["id"] == created["id"]

        response = await client.get("/api/dispatch", params={"search": "DN000002"})
        assert response.json()["total"] == 1

        response = await client.get(f"/api/dispatch/{created['id']}")
        assert response.json()["dispatch_no"] == "DN000001"

    async def test_status_updates_do_not_touch_quantities(self, client, create_order, tile):
        order = await create_order()
        note = (await client.post("/api/dispatch", json=dispatch_body(order, (tile, 4, {})))).json()
        url = f"/api/dispatch/{note['id']}/status"

        assert (await client.patch(url, json={"status": "in-transit"})).json()["status"] == "in-transit"
        assert (await client.patch(url, json={"status": "delivered"})).json()["status"] == "delivered"

        response = await client.patch(url, json={"status": "pending"})
        assert response.status_code == 400

        updated = (await client.get(f"/api/order/{order['id']}")).json()
        assert updated["groups"][0]["items"][0]["dispatched_quantity"] == 4


class TestPendingDispatch:

    async def test_lists_items_with_quantity_left(self, client, create_order, tile):
        order = await create_order()
        await client.post("/api/dispatch", json=dispatch_body(order, (tile, 4, {})))

        response = await client.get("/api/pending-dispatch")

        data = response.json()
        assert data["total"] == 2
        assert data["brands"] == ["Jaquar", "Kajaria"]
        assert data["groups"] == ["Kitchen"]
        pending = {i["product_code"]: i["pending_quantity"] for i in data["items"]}
        assert pending == {"TILE-001": 6, "TAP-001": 5}

    async def test_brand_filter_and_cancelled_orders(self, client, create_order):
        await create_order()
        cancelled = await create_order()
        await client.patch(f"/api/order/{cancelled['id']}/cancel", json={})

        response = await client.get("/api/pending-dispatch", params={"brand": "jaquar"})

        data = response.json()
        assert data["total"] == 1
        assert data["items"][0]["product_code"] == "TAP-001"
