"""Integration tests for the shared provider surface (drivers, taxis, ...)."""

from __future__ import annotations

import pytest
from httpx import AsyncClient

from src.domain.enums import UserRole
from tests.factories import ACCRA, OSU, auth, create_provider, create_user

TRIP = {
    "pickup": {"latitude": ACCRA[0], "longitude": ACCRA[1]},
    "dropoff": {"latitude": OSU[0], "longitude": OSU[1]},
}
KUMASI = (6.6885, -1.6244)


async def _booking(client: AsyncClient, kind: str = "RIDE") -> dict:
    customer = await create_user()
    resp = await client.post(
        "/api/v1/bookings", json={**TRIP, "kind": kind}, headers=auth(customer)
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


# ── Onboarding and verification ───────────────────────────────────────


@pytest.mark.asyncio
async def test_onboard_verify_and_go_online(client: AsyncClient):
    driver = await create_user(UserRole.DRIVER)
    admin = await create_user(UserRole.SUPER_ADMIN)

    resp = await client.post(
        "/api/v1/drivers/onboard",
        json={
            "license_number": "DL-0042",
            "vehicle_make": "Toyota",
            "vehicle_model": "Vitz",
            "vehicle_plate": "GT-4242-23",
            "latitude": ACCRA[0],
            "longitude": ACCRA[1],
        },
        headers=auth(driver),
    )
    assert resp.status_code == 201
    profile = resp.json()["data"]
    assert profile["verification_status"] == "PENDING"
    assert profile["role"] == "DRIVER"

    resp = await client.patch(
        "/api/v1/drivers/availability", json={"is_available": True}, headers=auth(driver)
    )
    assert resp.status_code == 400

    resp = await client.post(
        f"/api/v1/drivers/{profile['id']}/verify", headers=auth(admin)
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["verification_status"] == "APPROVED"

    resp = await client.patch(
        "/api/v1/drivers/availability", json={"is_available": True}, headers=auth(driver)
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["profile"]["is_available"] is True
    assert data["profile"]["is_online"] is True


@pytest.mark.asyncio
async def test_onboard_twice_conflicts(client: AsyncClient):
    driver = await create_user(UserRole.DRIVER)
    await client.post("/api/v1/drivers/onboard", json={}, headers=auth(driver))
    resp = await client.post("/api/v1/drivers/onboard", json={}, headers=auth(driver))
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_customer_cannot_use_provider_routes(client: AsyncClient):
    customer = await create_user()
    resp = await client.get("/api/v1/drivers/profile", headers=auth(customer))
    assert resp.status_code == 403
    assert resp.json()["message"] == "Insufficient permissions"


@pytest.mark.asyncio
async def test_role_prefixes_are_separate(client: AsyncClient):
    taxi, _ = await create_provider(UserRole.TAXI_DRIVER)
    assert (await client.get("/api/v1/taxi-drivers/profile", headers=auth(taxi))).status_code == 200
    assert (await client.get("/api/v1/drivers/profile", headers=auth(taxi))).status_code == 403


@pytest.mark.asyncio
async def test_profile_missing(client: AsyncClient):
    driver = await create_user(UserRole.DRIVER)
    resp = await client.get("/api/v1/drivers/profile", headers=auth(driver))
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_admin_lists_and_suspends(client: AsyncClient):
    admin = await create_user(UserRole.SUPER_ADMIN)
    _, profile = await create_provider(UserRole.DRIVER)
    await create_provider(UserRole.TAXI_DRIVER)

    resp = await client.get("/api/v1/drivers", headers=auth(admin))
    assert resp.status_code == 200
    assert resp.json()["pagination"]["total"] == 1

    resp = await client.post(
        f"/api/v1/drivers/{profile.id}/suspend",
        json={"reason": "Documents expired"},
        headers=auth(admin),
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["verification_status"] == "REJECTED"
    assert data["is_available"] is False


# ── Booking lifecycle ─────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_full_ride_lifecycle(client: AsyncClient, realtime):
    driver, _ = await create_provider(UserRole.DRIVER, 5.605, -0.188)
    booking = await _booking(client)
    base = f"/api/v1/drivers/bookings/{booking['id']}"

    resp = await client.post(f"{base}/accept", headers=auth(driver))
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "DRIVER_ASSIGNED"
    assert resp.json()["data"]["provider_id"] == driver.id

    resp = await client.get("/api/v1/drivers/bookings/active", headers=auth(driver))
    assert resp.json()["data"]["id"] == booking["id"]

    assert (await client.post(f"{base}/arrive", headers=auth(driver))).status_code == 200
    assert (await client.post(f"{base}/start", headers=auth(driver))).status_code == 200

    resp = await client.post(f"{base}/complete", json={"final_price": 20}, headers=auth(driver))
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["status"] == "COMPLETED"
    assert data["final_price"] == 20.0
    assert data["platform_commission"] == 3.6
    assert data["provider_earning"] == 16.4

    assert realtime.names(f"booking:{booking['id']}") == [
        "booking_accepted",
        "driver_arrived",
        "trip_started",
        "trip_completed",
    ]

    resp = await client.get("/api/v1/drivers/earnings", headers=auth(driver))
    earnings = resp.json()["data"]
    assert earnings["total_earnings"] == pytest.approx(16.4)
    assert earnings["total_jobs"] == 1
    assert len(earnings["records"]) == 1

    profile = (await client.get("/api/v1/drivers/profile", headers=auth(driver))).json()["data"]
    assert profile["is_available"] is True


@pytest.mark.asyncio
async def test_second_acceptance_conflicts(client: AsyncClient):
    first, _ = await create_provider(UserRole.DRIVER, 5.605, -0.188)
    second, _ = await create_provider(UserRole.DRIVER, 5.606, -0.189)
    booking = await _booking(client)
    url = f"/api/v1/drivers/bookings/{booking['id']}/accept"

    assert (await client.post(url, headers=auth(first))).status_code == 200
    resp = await client.post(url, headers=auth(second))
    assert resp.status_code == 409
    assert resp.json()["message"] == "Booking is no longer available"


@pytest.mark.asyncio
async def test_taxi_events_are_prefixed(client: AsyncClient, realtime):
    taxi, _ = await create_provider(UserRole.TAXI_DRIVER, 5.605, -0.188)
    booking = await _booking(client, "TAXI")
    base = f"/api/v1/taxi-drivers/bookings/{booking['id']}"

    await client.post(f"{base}/accept", headers=auth(taxi))
    await client.post(f"{base}/start", headers=auth(taxi))
    assert realtime.names(f"booking:{booking['id']}") == [
        "taxi_booking_accepted",
        "taxi_trip_started",
    ]


@pytest.mark.asyncio
async def test_driver_cannot_take_taxi_booking(client: AsyncClient):
    driver, _ = await create_provider(UserRole.DRIVER, 5.605, -0.188)
    booking = await _booking(client, "TAXI")
    resp = await client.post(
        f"/api/v1/drivers/bookings/{booking['id']}/accept", headers=auth(driver)
    )
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_too_far_to_accept(client: AsyncClient):
    driver, _ = await create_provider(UserRole.DRIVER, *KUMASI)
    booking = await _booking(client)
    resp = await client.post(
        f"/api/v1/drivers/bookings/{booking['id']}/accept", headers=auth(driver)
    )
    assert resp.status_code == 400
    assert resp.json()["message"] == "Driver too far from pickup location"


@pytest.mark.asyncio
async def test_cannot_complete_before_start(client: AsyncClient):
    driver, _ = await create_provider(UserRole.DRIVER, 5.605, -0.188)
    booking = await _booking(client)
    base = f"/api/v1/drivers/bookings/{booking['id']}"
    await client.post(f"{base}/accept", headers=auth(driver))

    resp = await client.post(f"{base}/complete", headers=auth(driver))
    assert resp.status_code == 409
    assert resp.json()["error"] == "INVALID_STATUS_TRANSITION"


@pytest.mark.asyncio
async def test_only_assigned_provider_progresses(client: AsyncClient):
    driver, _ = await create_provider(UserRole.DRIVER, 5.605, -0.188)
    other, _ = await create_provider(UserRole.DRIVER, 5.605, -0.188)
    booking = await _booking(client)
    base = f"/api/v1/drivers/bookings/{booking['id']}"
    await client.post(f"{base}/accept", headers=auth(driver))

    resp = await client.post(f"{base}/start", headers=auth(other))
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_decline_without_offer(client: AsyncClient):
    driver, _ = await create_provider(UserRole.DRIVER, 5.605, -0.188)
    booking = await _booking(client)
    resp = await client.post(
        f"/api/v1/drivers/bookings/{booking['id']}/decline", headers=auth(driver)
    )
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_customer_cancel_frees_provider(client: AsyncClient):
    driver, _ = await create_provider(UserRole.DRIVER, 5.605, -0.188)
    customer = await create_user()
    resp = await client.post("/api/v1/bookings", json=TRIP, headers=auth(customer))
    booking = resp.json()["data"]
    await client.post(
        f"/api/v1/drivers/bookings/{booking['id']}/accept", headers=auth(driver)
    )

    resp = await client.patch(
        f"/api/v1/bookings/{booking['id']}/cancel", headers=auth(customer)
    )
    assert resp.status_code == 200
    profile = (await client.get("/api/v1/drivers/profile", headers=auth(driver))).json()["data"]
    assert profile["is_available"] is True


# ── Location ──────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_location_update_reaches_customer(client: AsyncClient, realtime):
    driver, _ = await create_provider(UserRole.DRIVER, 5.605, -0.188)
    booking = await _booking(client)
    await client.post(
        f"/api/v1/drivers/bookings/{booking['id']}/accept", headers=auth(driver)
    )

    resp = await client.patch(
        "/api/v1/drivers/location",
        json={"latitude": 5.59, "longitude": -0.185, "heading": 90},
        headers=auth(driver),
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["zone"] is None
    assert data["authorized"] is True
    assert data["profile"]["current_lat"] == 5.59
    assert "driver_location_update" in realtime.names(f"booking:{booking['id']}")
    assert "driver_location_update" in realtime.names(f"user:{booking['customer_id']}")
