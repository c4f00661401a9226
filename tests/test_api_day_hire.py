"""Integration tests for hiring a driver by the hour."""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest
from httpx import AsyncClient

from src.domain.enums import SubscriptionTier, UserRole
from src.infrastructure.database import utcnow
from src.workers.dispatcher import dispatch_pending
from tests.factories import (
    OSU,
    RecordingBroadcaster,
    TestSessionFactory,
    auth,
    create_provider,
    create_user,
)

# A Tuesday late morning: no weekend, rush-hour or late-night uplift
TUESDAY = datetime(2030, 1, 8, 11, 0)
DAY_URL = "/api/v1/bookings/day"
SETUP_URL = "/api/v1/drivers/day-booking"
SETUP = {"hourly_rate": 15, "minimum_hours": 4, "maximum_hours": 10}


async def _premium():
    return await create_user(
        subscription_tier=SubscriptionTier.PREMIUM,
        subscription_expires_at=utcnow() + timedelta(days=30),
    )


async def _day_driver(client: AsyncClient):
    driver, _ = await create_provider(UserRole.DRIVER)
    resp = await client.put(SETUP_URL, json=SETUP, headers=auth(driver))
    assert resp.status_code == 200, resp.text
    return driver


def _hire(driver, at: datetime = TUESDAY, hours: float = 6, **extra) -> dict:
    return {
        "driver_id": driver.id,
        "scheduled_at": at.isoformat(),
        "duration_hours": hours,
        "service_area": "Greater Accra",
        "pickup": {"latitude": OSU[0], "longitude": OSU[1], "address": "Osu"},
        **extra,
    }


# ── Driver setup ──────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_driver_offers_day_hire(client: AsyncClient):
    driver = await _day_driver(client)
    resp = await client.get("/api/v1/drivers/profile", headers=auth(driver))
    profile = resp.json()["data"]
    assert profile["day_booking_enabled"] is True
    assert profile["day_booking_rate"] == 15.0
    assert profile["day_booking_max_hours"] == 10


@pytest.mark.asyncio
async def test_day_hire_setup_rules(client: AsyncClient):
    pending, _ = await create_provider(UserRole.DRIVER, verified=False)
    resp = await client.put(SETUP_URL, json=SETUP, headers=auth(pending))
    assert resp.status_code == 403

    driver, _ = await create_provider(UserRole.DRIVER)
    inverted = {**SETUP, "minimum_hours": 8, "maximum_hours": 6}
    resp = await client.put(SETUP_URL, json=inverted, headers=auth(driver))
    assert resp.status_code == 400
    assert resp.json()["message"] == "Minimum hours cannot exceed maximum hours"

    steep = {**SETUP, "hourly_rate": 50}
    resp = await client.put(SETUP_URL, json=steep, headers=auth(driver))
    assert resp.status_code == 400

    taxi, _ = await create_provider(UserRole.TAXI_DRIVER)
    resp = await client.put(
        "/api/v1/taxi-drivers/day-booking", json=SETUP, headers=auth(taxi)
    )
    assert resp.status_code == 404


# ── Booking ───────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_basic_plan_cannot_book(client: AsyncClient):
    driver = await _day_driver(client)
    customer = await create_user()
    resp = await client.post(DAY_URL, json=_hire(driver), headers=auth(customer))
    assert resp.status_code == 403
    assert resp.json()["message"] == (
        "Day booking requires Premium or Enterprise subscription"
    )


@pytest.mark.asyncio
async def test_premium_customer_hires_a_driver(client: AsyncClient, realtime):
    driver = await _day_driver(client)
    customer = await _premium()

    resp = await client.post(DAY_URL, json=_hire(driver), headers=auth(customer))
    assert resp.status_code == 201, resp.text
    booking = resp.json()["data"]
    assert booking["kind"] == "DAY"
    assert booking["booking_number"].startswith("DAY")
    assert booking["status"] == "DRIVER_ASSIGNED"
    assert booking["provider_id"] == driver.id
    assert booking["estimated_price"] == 90.0
    assert booking["estimated_duration_min"] == 360.0
    assert booking["service_data"]["pricing"]["hourly_rate"] == 15.0
    assert booking["service_data"]["service_area"] == "Greater Accra"

    inbox = (await client.get("/api/v1/notifications", headers=auth(driver))).json()["data"]
    assert inbox[0]["type"] == "DAY_BOOKING_ASSIGNED"
    assert inbox[0]["body"] == "You have a new day booking for 6 hours"
    assert "day_booking_assigned" in realtime.names(f"user:{driver.id}")

    resp = await client.get("/api/v1/drivers/day-booking/schedule", headers=auth(driver))
    assert [b["id"] for b in resp.json()["data"]] == [booking["id"]]
    resp = await client.get("/api/v1/bookings/mine", headers=auth(customer))
    assert resp.json()["data"][0]["kind"] == "DAY"


@pytest.mark.asyncio
async def test_day_hire_request_rules(client: AsyncClient):
    driver = await _day_driver(client)
    customer = await _premium()

    async def hire(**kwargs):
        body = _hire(driver, **kwargs)
        return await client.post(DAY_URL, json=body, headers=auth(customer))

    resp = await hire(hours=25)
    assert resp.json()["message"] == "Duration cannot exceed 24 hours"
    resp = await hire(hours=2)
    assert resp.json()["message"] == "This driver takes day hires of 4 to 10 hours"
    resp = await hire(at=utcnow() - timedelta(hours=1))
    assert resp.status_code == 400

    idle, _ = await create_provider(UserRole.DRIVER)
    resp = await client.post(DAY_URL, json=_hire(idle), headers=auth(customer))
    assert resp.status_code == 404

    assert (await hire()).status_code == 201
    resp = await hire(at=TUESDAY + timedelta(hours=5))
    assert resp.status_code == 409
    assert (await hire(at=TUESDAY + timedelta(hours=6))).status_code == 201


@pytest.mark.asyncio
async def test_day_hire_runs_through_the_driver_lifecycle(client: AsyncClient):
    driver = await _day_driver(client)
    customer = await _premium()
    resp = await client.post(DAY_URL, json=_hire(driver), headers=auth(customer))
    booking = resp.json()["data"]

    async with TestSessionFactory() as session:
        assert await dispatch_pending(session, RecordingBroadcaster()) == 0

    base = f"/api/v1/drivers/bookings/{booking['id']}"
    for step in ("arrive", "start"):
        resp = await client.post(f"{base}/{step}", headers=auth(driver))
        assert resp.status_code == 200
    resp = await client.post(
        f"{base}/complete", json={"actual_distance_km": 80}, headers=auth(driver)
    )
    data = resp.json()["data"]
    assert data["status"] == "COMPLETED"
    assert data["final_price"] == 90.0
    assert data["platform_commission"] == 13.5
    assert data["provider_earning"] == 76.5


@pytest.mark.asyncio
async def test_cancelled_day_hire_frees_the_slot(client: AsyncClient):
    driver = await _day_driver(client)
    customer = await _premium()
    resp = await client.post(DAY_URL, json=_hire(driver), headers=auth(customer))
    booking = resp.json()["data"]

    cancel = f"/api/v1/bookings/{booking['id']}/cancel"
    resp = await client.patch(cancel, headers=auth(customer))
    assert resp.json()["data"]["status"] == "CANCELLED"
    resp = await client.post(DAY_URL, json=_hire(driver), headers=auth(customer))
    assert resp.status_code == 201
