"""Integration tests for house moving and emergency dispatch."""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest
from httpx import AsyncClient

from src.domain.enums import UserRole
from tests.factories import ACCRA, OSU, auth, create_provider, create_user

ROUTE = {
    "pickup": {"latitude": ACCRA[0], "longitude": ACCRA[1]},
    "dropoff": {"latitude": OSU[0], "longitude": OSU[1]},
}
ITEMS = [
    {"name": "Sofa", "quantity": 1, "requires_disassembly": True},
    {"name": "Boxes", "quantity": 12},
]


def _moving_date(days: int = 3) -> str:
    return (datetime.utcnow() + timedelta(days=days)).replace(microsecond=0).isoformat()


# ── Moving ────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_moving_quote(client: AsyncClient):
    resp = await client.post(
        "/api/v1/moving/quote",
        json={**ROUTE, "items": ITEMS, "requires_packing": True},
    )
    assert resp.status_code == 200
    quote = resp.json()["data"]
    assert quote["total_price"] > 0
    assert quote["packing_cost"] > 0
    assert quote["crew_size"] >= 2


@pytest.mark.asyncio
async def test_moving_booking_uses_quote(client: AsyncClient):
    customer = await create_user()
    when = _moving_date()
    quote = (
        await client.post(
            "/api/v1/moving/quote", json={**ROUTE, "items": ITEMS, "moving_date": when}
        )
    ).json()["data"]

    resp = await client.post(
        "/api/v1/moving/bookings",
        json={**ROUTE, "items": ITEMS, "moving_date": when},
        headers=auth(customer),
    )
    assert resp.status_code == 201, resp.text
    booking = resp.json()["data"]
    assert booking["booking_number"].startswith("MV")
    assert booking["kind"] == "MOVING"
    assert booking["booking_type"] == "SCHEDULED"
    assert booking["estimated_price"] == quote["total_price"]
    assert booking["service_data"]["items"][0]["name"] == "Sofa"
    assert booking["service_data"]["quote"]["crew_size"] == quote["crew_size"]

    resp = await client.get("/api/v1/moving/bookings/mine", headers=auth(customer))
    assert resp.json()["pagination"]["total"] == 1


@pytest.mark.asyncio
async def test_moving_date_must_be_future(client: AsyncClient):
    customer = await create_user()
    resp = await client.post(
        "/api/v1/moving/bookings",
        json={**ROUTE, "items": ITEMS, "moving_date": _moving_date(-1)},
        headers=auth(customer),
    )
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_mover_takes_a_move(client: AsyncClient, realtime):
    mover, _ = await create_provider(UserRole.HOUSE_MOVER, 5.60, -0.19)
    customer = await create_user()
    booking = (
        await client.post(
            "/api/v1/moving/bookings",
            json={**ROUTE, "items": ITEMS, "moving_date": _moving_date()},
            headers=auth(customer),
        )
    ).json()["data"]

    resp = await client.get(
        "/api/v1/moving/movers/nearby",
        params={"latitude": ACCRA[0], "longitude": ACCRA[1]},
        headers=auth(customer),
    )
    assert [m["provider_id"] for m in resp.json()["data"]] == [mover.id]

    resp = await client.post(
        f"/api/v1/moving/movers/bookings/{booking['id']}/accept", headers=auth(mover)
    )
    assert resp.status_code == 200
    assert realtime.names(f"booking:{booking['id']}") == ["moving_booking_accepted"]


# ── Emergency ─────────────────────────────────────────────────────────


EMERGENCY = {
    "location": {"latitude": ACCRA[0], "longitude": ACCRA[1], "address": "Circle"},
    "emergency_type": "MEDICAL",
    "severity": "CRITICAL",
    "description": "Collapsed on the street",
}


@pytest.mark.asyncio
async def test_emergency_dispatches_immediately(client: AsyncClient, realtime):
    responder, _ = await create_provider(UserRole.EMERGENCY_RESPONDER, 5.61, -0.19)
    customer = await create_user()

    resp = await client.post("/api/v1/emergency", json=EMERGENCY, headers=auth(customer))
    assert resp.status_code == 201
    data = resp.json()["data"]
    assert data["dispatched_count"] == 1
    assert data["booking"]["booking_number"].startswith("EM")
    assert data["booking"]["estimated_price"] == 0.0
    assert data["booking"]["service_data"]["severity"] == "CRITICAL"
    assert "emergency_dispatch" in realtime.names(f"user:{responder.id}")

    resp = await client.get(
        f"/api/v1/emergency/{data['booking']['id']}", headers=auth(customer)
    )
    assert resp.status_code == 200

    offers = (
        await client.get("/api/v1/emergency/responders/offers", headers=auth(responder))
    ).json()["data"]
    assert [o["booking"]["id"] for o in offers] == [data["booking"]["id"]]


@pytest.mark.asyncio
async def test_emergency_ignores_booking_limit(client: AsyncClient):
    customer = await create_user()
    for _ in range(4):
        resp = await client.post("/api/v1/emergency", json=EMERGENCY, headers=auth(customer))
        assert resp.status_code == 201
    assert resp.json()["data"]["dispatched_count"] == 0


@pytest.mark.asyncio
async def test_responder_sees_nearby_emergencies(client: AsyncClient):
    responder, _ = await create_provider(UserRole.EMERGENCY_RESPONDER, 5.61, -0.19)
    far, _ = await create_provider(UserRole.EMERGENCY_RESPONDER, 6.6885, -1.6244)
    customer = await create_user()
    await client.post("/api/v1/emergency", json=EMERGENCY, headers=auth(customer))

    resp = await client.get("/api/v1/emergency/nearby", headers=auth(responder))
    assert len(resp.json()["data"]) == 1
    resp = await client.get("/api/v1/emergency/nearby", headers=auth(far))
    assert resp.json()["data"] == []

    resp = await client.get("/api/v1/emergency/nearby", headers=auth(customer))
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_emergency_analytics(client: AsyncClient):
    admin = await create_user(UserRole.SUPER_ADMIN)
    customer = await create_user()
    await client.post("/api/v1/emergency", json=EMERGENCY, headers=auth(customer))
    await client.post(
        "/api/v1/emergency",
        json={**EMERGENCY, "emergency_type": "FIRE", "severity": "HIGH"},
        headers=auth(customer),
    )

    resp = await client.get("/api/v1/emergency/analytics", headers=auth(admin))
    data = resp.json()["data"]
    assert data["total"] == 2
    assert data["by_type"] == {"MEDICAL": 1, "FIRE": 1}
    assert data["by_severity"] == {"CRITICAL": 1, "HIGH": 1}
    assert data["average_response_minutes"] is None
