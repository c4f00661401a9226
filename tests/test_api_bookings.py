"""
Integration tests for the customer booking endpoints.

Uses the in-memory SQLite database from ``conftest`` with Redis and
webhooks stubbed out.
"""

from __future__ import annotations

import pytest
from httpx import AsyncClient

from src.domain.enums import UserRole
from tests.factories import ACCRA, OSU, auth, create_provider, create_user

TRIP = {
    "pickup": {"latitude": ACCRA[0], "longitude": ACCRA[1], "address": "Kwame Nkrumah Circle"},
    "dropoff": {"latitude": OSU[0], "longitude": OSU[1], "address": "Oxford Street"},
}


async def _create(client: AsyncClient, user, **extra):
    resp = await client.post("/api/v1/bookings", json={**TRIP, **extra}, headers=auth(user))
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient):
    resp = await client.get("/api/v1/admin/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_estimate_fare(client: AsyncClient):
    await create_provider(UserRole.DRIVER, 5.605, -0.188)
    resp = await client.post("/api/v1/bookings/estimate", json={**TRIP, "ride_type": "COMFORT"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    data = body["data"]
    assert data["estimated_price"] >= 5.0
    assert data["available_providers"] == 1
    assert data["currency"] == "GHS"
    assert set(data["breakdown"]) >= {"base_price", "distance_price", "time_price"}


@pytest.mark.asyncio
async def test_create_booking(client: AsyncClient):
    customer = await create_user()
    data = await _create(client, customer, ride_type="PREMIUM")
    assert data["status"] == "PENDING"
    assert data["kind"] == "RIDE"
    assert data["booking_number"].startswith("RB")
    assert data["customer_id"] == customer.id
    assert data["pickup_address"] == "Kwame Nkrumah Circle"
    assert data["estimated_price"] > 0


@pytest.mark.asyncio
async def test_create_requires_auth(client: AsyncClient):
    resp = await client.post("/api/v1/bookings", json=TRIP)
    assert resp.status_code == 401
    body = resp.json()
    assert body["success"] is False
    assert body["message"] == "Authentication required"


@pytest.mark.asyncio
async def test_invalid_token_rejected(client: AsyncClient):
    resp = await client.get(
        "/api/v1/bookings/mine", headers={"Authorization": "Bearer not-a-jwt"}
    )
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_validation_error_envelope(client: AsyncClient):
    customer = await create_user()
    bad = {**TRIP, "pickup": {"latitude": 120, "longitude": 0}}
    resp = await client.post("/api/v1/bookings", json=bad, headers=auth(customer))
    assert resp.status_code == 400
    body = resp.json()
    assert body["error"] == "VALIDATION_ERROR"
    assert body["message"].startswith("pickup.latitude")


@pytest.mark.asyncio
async def test_moving_kind_rejected_here(client: AsyncClient):
    customer = await create_user()
    resp = await client.post(
        "/api/v1/bookings", json={**TRIP, "kind": "MOVING"}, headers=auth(customer)
    )
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_scheduled_booking_needs_future_time(client: AsyncClient):
    customer = await create_user()
    resp = await client.post(
        "/api/v1/bookings",
        json={**TRIP, "booking_type": "SCHEDULED", "scheduled_at": "2020-01-01T08:00:00"},
        headers=auth(customer),
    )
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_get_booking(client: AsyncClient):
    customer = await create_user()
    booking = await _create(client, customer)
    resp = await client.get(f"/api/v1/bookings/{booking['id']}", headers=auth(customer))
    assert resp.status_code == 200
    assert resp.json()["data"]["id"] == booking["id"]


@pytest.mark.asyncio
async def test_get_booking_not_found(client: AsyncClient):
    customer = await create_user()
    resp = await client.get("/api/v1/bookings/9999", headers=auth(customer))
    assert resp.status_code == 404
    assert resp.json()["message"] == "Booking not found"


@pytest.mark.asyncio
async def test_other_customer_cannot_read(client: AsyncClient):
    owner = await create_user()
    stranger = await create_user()
    admin = await create_user(UserRole.SUPER_ADMIN)
    booking = await _create(client, owner)

    resp = await client.get(f"/api/v1/bookings/{booking['id']}", headers=auth(stranger))
    assert resp.status_code == 403
    resp = await client.get(f"/api/v1/bookings/{booking['id']}", headers=auth(admin))
    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_my_bookings_paginated(client: AsyncClient):
    customer = await create_user()
    for _ in range(3):
        await _create(client, customer)

    resp = await client.get(
        "/api/v1/bookings/mine", params={"page": 1, "limit": 2}, headers=auth(customer)
    )
    assert resp.status_code == 200
    body = resp.json()
    assert len(body["data"]) == 2
    assert body["pagination"] == {"page": 1, "limit": 2, "total": 3, "totalPages": 2}


@pytest.mark.asyncio
async def test_active_booking_limit(client: AsyncClient):
    """The free plan allows three open bookings at a time."""
    customer = await create_user()
    for _ in range(3):
        await _create(client, customer)
    resp = await client.post("/api/v1/bookings", json=TRIP, headers=auth(customer))
    assert resp.status_code == 400
    assert "limit" in resp.json()["message"]


@pytest.mark.asyncio
async def test_tracking_history(client: AsyncClient):
    customer = await create_user()
    booking = await _create(client, customer)
    resp = await client.get(
        f"/api/v1/bookings/{booking['id']}/tracking", headers=auth(customer)
    )
    assert resp.status_code == 200
    history = resp.json()["data"]
    assert [row["status"] for row in history] == ["PENDING"]


@pytest.mark.asyncio
async def test_cancel_pending_booking(client: AsyncClient):
    customer = await create_user()
    booking = await _create(client, customer)
    resp = await client.patch(
        f"/api/v1/bookings/{booking['id']}/cancel",
        json={"reason": "Changed my plans"},
        headers=auth(customer),
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["status"] == "CANCELLED"
    assert data["cancellation_reason"] == "Changed my plans"


@pytest.mark.asyncio
async def test_cancel_already_cancelled_booking_fails(client: AsyncClient):
    customer = await create_user()
    booking = await _create(client, customer)
    await client.patch(f"/api/v1/bookings/{booking['id']}/cancel", headers=auth(customer))
    resp = await client.patch(
        f"/api/v1/bookings/{booking['id']}/cancel", headers=auth(customer)
    )
    assert resp.status_code == 409
    assert resp.json()["error"] == "INVALID_STATUS_TRANSITION"


@pytest.mark.asyncio
async def test_idempotency_key(client: AsyncClient):
    customer = await create_user()
    first = await _create(client, customer, idempotency_key="unique-key-123")
    second = await _create(client, customer, idempotency_key="unique-key-123")
    assert first["id"] == second["id"]


@pytest.mark.asyncio
async def test_idempotency_key_of_someone_else(client: AsyncClient):
    await _create(client, await create_user(), idempotency_key="shared-key")
    other = await create_user()
    resp = await client.post(
        "/api/v1/bookings",
        json={**TRIP, "idempotency_key": "shared-key"},
        headers=auth(other),
    )
    assert resp.status_code == 400
