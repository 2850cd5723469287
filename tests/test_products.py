"""Tests for the product catalogue and the health check."""

import uuid


class TestProducts:

    async def test_create_and_list(self, client):
        response = await client.post("/api/product", json={
            "product_code": "SINK-001",
            "name": "Steel Sink",
            "brand": "Nirali",
            "mrp": "4500.00",
            "fresh_stock": 3,
        })
        assert response.status_code == 201
        assert response.json()["fresh_stock"] == 3

        response = await client.get("/api/product", params={"brand": "Nirali"})
        assert response.json()["total"] == 1

    async def test_duplicate_code(self, client, tile):
        response = await client.post("/api/product", json={"product_code": "TILE-001", "name": "Copy"})

        assert response.status_code == 400

    async def test_search(self, client, tile, tap):
        response = await client.get("/api/product", params={"search": "tap"})

        assert [p["product_code"] for p in response.json()["items"]] == ["TAP-001"]

    async def test_missing_product(self, client):
        response = await client.get(f"/api/product/{uuid.uuid4()}")

        assert response.status_code == 404


async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["checks"]["database"] == "connected"
    assert data["events"] == {"pending": 0, "failed": 0}
    assert data["scheduler"] == "stopped"
