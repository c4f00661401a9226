"""Integration tests for store management, the product catalogue and stock."""

from __future__ import annotations

import pytest
from httpx import AsyncClient

from src.domain.enums import UserRole
from tests.factories import ACCRA, OSU, auth, create_product, create_store, create_user

STORE = {
    "name": "Labone Fresh Market",
    "category": "Grocery",
    "address": "Labone Crescent",
    "latitude": OSU[0],
    "longitude": OSU[1],
    "business_hours": [
        {"day_of_week": 1, "open_time": "08:00", "close_time": "20:00"},
        {"day_of_week": 0, "open_time": "00:00", "close_time": "00:00", "is_closed": True},
    ],
}
PRODUCT = {
    "name": "Plantain chips",
    "price": 4.5,
    "category": "Snacks",
    "stock_quantity": 12,
}


async def _open_store(client: AsyncClient, owner) -> dict:
    resp = await client.post("/api/v1/stores", json=STORE, headers=auth(owner))
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


# ── Stores ────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_owner_opens_a_store(client: AsyncClient):
    owner = await create_user(UserRole.STORE_OWNER)
    store = await _open_store(client, owner)
    assert store["owner_id"] == owner.id
    assert store["is_active"] is True
    assert [h["day_of_week"] for h in store["business_hours"]] == [0, 1]

    resp = await client.get("/api/v1/stores", params={"category": "grocery"})
    assert resp.json()["pagination"]["total"] == 1
    resp = await client.get("/api/v1/stores/mine", headers=auth(owner))
    assert resp.json()["data"][0]["name"] == "Labone Fresh Market"


@pytest.mark.asyncio
async def test_customer_cannot_open_a_store(client: AsyncClient):
    customer = await create_user()
    resp = await client.post("/api/v1/stores", json=STORE, headers=auth(customer))
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_business_hours_are_validated(client: AsyncClient):
    owner = await create_user(UserRole.STORE_OWNER)
    store = await _open_store(client, owner)
    url = f"/api/v1/stores/{store['id']}/business-hours"

    twice = {"day_of_week": 2, "open_time": "08:00", "close_time": "18:00"}
    body = {"business_hours": [twice, twice]}
    resp = await client.put(url, json=body, headers=auth(owner))
    assert resp.status_code == 400

    backwards = {"day_of_week": 2, "open_time": "18:00", "close_time": "08:00"}
    resp = await client.put(url, json={"business_hours": [backwards]}, headers=auth(owner))
    assert resp.status_code == 400
    assert resp.json()["message"] == "Opening time must be before closing time"

    bad_format = {"day_of_week": 2, "open_time": "8am", "close_time": "18:00"}
    resp = await client.put(url, json={"business_hours": [bad_format]}, headers=auth(owner))
    assert resp.json()["error"] == "VALIDATION_ERROR"

    resp = await client.put(url, json={"business_hours": [twice]}, headers=auth(owner))
    assert resp.status_code == 200
    assert resp.json()["data"]["business_hours"] == [{**twice, "is_closed": False}]


@pytest.mark.asyncio
async def test_owner_or_admin_updates_and_closes(client: AsyncClient):
    owner = await create_user(UserRole.STORE_OWNER)
    store = await _open_store(client, owner)
    url = f"/api/v1/stores/{store['id']}"

    rival = await create_user(UserRole.STORE_OWNER)
    resp = await client.put(url, json={"name": "Mine now"}, headers=auth(rival))
    assert resp.status_code == 403
    assert (await client.delete(url, headers=auth(rival))).status_code == 403

    resp = await client.put(url, json={"phone": "0302000000"}, headers=auth(owner))
    assert resp.json()["data"]["phone"] == "0302000000"

    admin = await create_user(UserRole.CITY_ADMIN)
    resp = await client.put(url, json={"name": "Labone Market"}, headers=auth(admin))
    assert resp.json()["data"]["name"] == "Labone Market"

    assert (await client.delete(url, headers=auth(owner))).status_code == 200
    assert (await client.get(url)).status_code == 404
    resp = await client.get("/api/v1/stores")
    assert resp.json()["pagination"]["total"] == 0
    resp = await client.get("/api/v1/stores/mine", headers=auth(owner))
    assert resp.json()["data"][0]["is_active"] is False


@pytest.mark.asyncio
async def test_nearby_stores(client: AsyncClient):
    owner = await create_user(UserRole.STORE_OWNER)
    await create_store(owner)
    resp = await client.get(
        "/api/v1/stores/nearby",
        params={"latitude": OSU[0], "longitude": OSU[1], "radius_km": 1},
    )
    found = resp.json()["data"]
    assert len(found) == 1
    assert found[0]["distance_km"] == 0.0

    resp = await client.get(
        "/api/v1/stores/nearby",
        params={"latitude": ACCRA[0], "longitude": ACCRA[1], "radius_km": 0.5},
    )
    assert resp.json()["data"] == []


# ── Products and stock ────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_product_catalogue(client: AsyncClient):
    owner = await create_user(UserRole.STORE_OWNER)
    store = await _open_store(client, owner)
    base = f"/api/v1/stores/{store['id']}/products"

    resp = await client.post(base, json=PRODUCT, headers=auth(owner))
    assert resp.status_code == 201
    product = resp.json()["data"]
    assert product["in_stock"] is True

    rival = await create_user(UserRole.STORE_OWNER)
    resp = await client.post(base, json=PRODUCT, headers=auth(rival))
    assert resp.status_code == 403

    resp = await client.put(
        f"{base}/{product['id']}", json={"price": 5.0}, headers=auth(owner)
    )
    assert resp.json()["data"]["price"] == 5.0

    resp = await client.get(base, params={"category": "snacks"})
    assert [p["name"] for p in resp.json()["data"]] == ["Plantain chips"]
    resp = await client.get(base, params={"in_stock": "false"})
    assert resp.json()["data"] == []

    resp = await client.delete(f"{base}/{product['id']}", headers=auth(owner))
    assert resp.status_code == 200
    resp = await client.get(base)
    assert resp.json()["pagination"]["total"] == 0


@pytest.mark.asyncio
async def test_inventory_operations(client: AsyncClient):
    owner = await create_user(UserRole.STORE_OWNER)
    store = await create_store(owner)
    product = await create_product(store, "Sobolo", 3.5, stock_quantity=12)
    url = f"/api/v1/stores/{store.id}/products/{product.id}/inventory"

    async def adjust(quantity: int, operation: str) -> dict:
        body = {"stock_quantity": quantity, "operation": operation}
        resp = await client.patch(url, json=body, headers=auth(owner))
        assert resp.status_code == 200, resp.text
        return resp.json()["data"]

    assert (await adjust(3, "add"))["stock_quantity"] == 15
    assert (await adjust(5, "set"))["stock_quantity"] == 5

    low_stock = f"/api/v1/stores/{store.id}/products/low-stock"
    resp = await client.get(low_stock, headers=auth(owner))
    assert [p["id"] for p in resp.json()["data"]] == [product.id]
    resp = await client.get(low_stock, params={"threshold": 5}, headers=auth(owner))
    assert resp.json()["data"] == []

    emptied = await adjust(9, "subtract")
    assert emptied["stock_quantity"] == 0
    assert emptied["in_stock"] is False

    assert (await adjust(2, "add"))["in_stock"] is True

    resp = await client.patch(
        url, json={"stock_quantity": 1, "operation": "double"}, headers=auth(owner)
    )
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_store_analytics(client: AsyncClient):
    owner = await create_user(UserRole.STORE_OWNER)
    store = await create_store(owner)
    rice = await create_product(store, "Jollof rice", 10.0)
    sobolo = await create_product(store, "Sobolo", 3.5, stock_quantity=5)
    customer = await create_user()
    resp = await client.post(
        "/api/v1/orders",
        json={
            "store_id": store.id,
            "items": [
                {"product_id": rice.id, "quantity": 2},
                {"product_id": sobolo.id, "quantity": 1},
            ],
            "delivery": {"latitude": ACCRA[0], "longitude": ACCRA[1]},
        },
        headers=auth(customer),
    )
    assert resp.status_code == 201

    resp = await client.get(f"/api/v1/stores/{store.id}/analytics", headers=auth(customer))
    assert resp.status_code == 403

    resp = await client.get(f"/api/v1/stores/{store.id}/analytics", headers=auth(owner))
    data = resp.json()["data"]
    assert data["total_orders"] == 1
    assert data["delivered_orders"] == 0
    assert data["revenue"] == 0.0
    assert data["product_count"] == 2
    assert data["low_stock_products"] == 1
    assert data["popular_products"] == [
        {"name": "Jollof rice", "quantity": 2},
        {"name": "Sobolo", "quantity": 1},
    ]
