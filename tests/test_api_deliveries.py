"""Integration tests for customer deliveries and the dispatch rider flow."""

from __future__ import annotations

import pytest
from httpx import AsyncClient

from src.domain.enums import UserRole
from tests.factories import ACCRA, OSU, auth, create_provider, create_user

PARCEL = {
    "pickup": {"latitude": ACCRA[0], "longitude": ACCRA[1], "address": "Kwame Nkrumah Ave"},
    "dropoff": {"latitude": OSU[0], "longitude": OSU[1], "address": "Oxford Street"},
    "recipient_name": "Esi",
    "recipient_phone": "+233200000000",
    "package_description": "Documents",
}
RIDER = "/api/v1/dispatch-riders/deliveries"


async def _delivery(client: AsyncClient, customer=None) -> dict:
    customer = customer or await create_user()
    resp = await client.post("/api/v1/deliveries", json=PARCEL, headers=auth(customer))
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


@pytest.mark.asyncio
async def test_estimate_matches_created_fee(client: AsyncClient):
    resp = await client.post(
        "/api/v1/deliveries/estimate",
        json={"pickup": PARCEL["pickup"], "dropoff": PARCEL["dropoff"]},
    )
    assert resp.status_code == 200
    estimate = resp.json()["data"]
    assert estimate["delivery_type"] == "PACKAGE"
    assert estimate["delivery_fee"] >= 5.0

    delivery = await _delivery(client)
    assert delivery["status"] == "PENDING"
    assert delivery["delivery_fee"] == estimate["delivery_fee"]
    assert delivery["tracking_code"].startswith("TRK")


@pytest.mark.asyncio
async def test_nearby_riders_are_notified(client: AsyncClient, realtime):
    near, _ = await create_provider(UserRole.DISPATCHER, 5.605, -0.188)
    far, _ = await create_provider(UserRole.DISPATCHER, 6.6885, -1.6244)
    await _delivery(client)

    assert "new_delivery_request" in realtime.names(f"user:{near.id}")
    assert "new_delivery_request" not in realtime.names(f"user:{far.id}")


@pytest.mark.asyncio
async def test_full_delivery_flow(client: AsyncClient, realtime):
    rider, _ = await create_provider(UserRole.DISPATCHER, 5.605, -0.188)
    delivery = await _delivery(client)
    base = f"{RIDER}/{delivery['id']}"

    resp = await client.get("/api/v1/dispatch-riders/delivery-requests", headers=auth(rider))
    assert [item["delivery"]["id"] for item in resp.json()["data"]] == [delivery["id"]]

    resp = await client.post(f"{base}/accept", headers=auth(rider))
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "ASSIGNED"
    assert resp.json()["data"]["rider_id"] == rider.id

    for step, status in (
        ("start-pickup", "PICKUP_IN_PROGRESS"),
        ("confirm-pickup", "PICKED_UP"),
        ("start-delivery", "IN_TRANSIT"),
        ("complete", "DELIVERED"),
    ):
        resp = await client.post(f"{base}/{step}", headers=auth(rider))
        assert resp.status_code == 200, step
        assert resp.json()["data"]["status"] == status

    done = resp.json()["data"]
    assert done["platform_commission"] == pytest.approx(done["delivery_fee"] * 0.15, abs=0.01)
    assert done["rider_earning"] + done["platform_commission"] == pytest.approx(
        done["delivery_fee"]
    )
    assert realtime.names(f"delivery:{delivery['id']}") == [
        "dispatch_booking_accepted",
        "dispatch_pickup_started",
        "dispatch_driver_arrived",
        "dispatch_trip_started",
        "dispatch_trip_completed",
    ]

    resp = await client.get("/api/v1/dispatch-riders/earnings", headers=auth(rider))
    assert resp.json()["data"]["total_jobs"] == 1


@pytest.mark.asyncio
async def test_skipping_a_step_conflicts(client: AsyncClient):
    rider, _ = await create_provider(UserRole.DISPATCHER, 5.605, -0.188)
    delivery = await _delivery(client)
    base = f"{RIDER}/{delivery['id']}"
    await client.post(f"{base}/accept", headers=auth(rider))

    resp = await client.post(f"{base}/complete", headers=auth(rider))
    assert resp.status_code == 409
    assert resp.json()["error"] == "INVALID_STATUS_TRANSITION"


@pytest.mark.asyncio
async def test_second_rider_conflicts(client: AsyncClient):
    first, _ = await create_provider(UserRole.DISPATCHER, 5.605, -0.188)
    second, _ = await create_provider(UserRole.DISPATCHER, 5.606, -0.189)
    delivery = await _delivery(client)

    assert (await client.post(f"{RIDER}/{delivery['id']}/accept", headers=auth(first))).status_code == 200
    resp = await client.post(f"{RIDER}/{delivery['id']}/accept", headers=auth(second))
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_declined_request_is_hidden(client: AsyncClient):
    rider, _ = await create_provider(UserRole.DISPATCHER, 5.605, -0.188)
    delivery = await _delivery(client)

    resp = await client.post(
        f"{RIDER}/{delivery['id']}/decline", json={"reason": "Busy"}, headers=auth(rider)
    )
    assert resp.status_code == 200
    resp = await client.get("/api/v1/dispatch-riders/delivery-requests", headers=auth(rider))
    assert resp.json()["data"] == []


@pytest.mark.asyncio
async def test_public_tracking(client: AsyncClient):
    rider, _ = await create_provider(UserRole.DISPATCHER, 5.605, -0.188)
    delivery = await _delivery(client)
    await client.post(f"{RIDER}/{delivery['id']}/accept", headers=auth(rider))

    resp = await client.get(f"/api/v1/deliveries/track/{delivery['tracking_code']}")
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["delivery"]["status"] == "ASSIGNED"
    assert data["rider_location"]["latitude"] == 5.605
    assert [h["status"] for h in data["history"]] == ["PENDING", "ASSIGNED"]

    resp = await client.get("/api/v1/deliveries/track/TRKNOPE")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_cancel_after_pickup_is_rejected(client: AsyncClient):
    customer = await create_user()
    rider, _ = await create_provider(UserRole.DISPATCHER, 5.605, -0.188)
    delivery = await _delivery(client, customer)
    base = f"{RIDER}/{delivery['id']}"
    await client.post(f"{base}/accept", headers=auth(rider))
    await client.post(f"{base}/start-pickup", headers=auth(rider))
    await client.post(f"{base}/confirm-pickup", headers=auth(rider))

    resp = await client.patch(
        f"/api/v1/deliveries/{delivery['id']}/cancel", headers=auth(customer)
    )
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_customer_cancels_pending(client: AsyncClient):
    customer = await create_user()
    stranger = await create_user()
    delivery = await _delivery(client, customer)
    url = f"/api/v1/deliveries/{delivery['id']}/cancel"

    assert (await client.patch(url, headers=auth(stranger))).status_code == 403
    resp = await client.patch(url, json={"reason": "No longer needed"}, headers=auth(customer))
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "CANCELLED"


@pytest.mark.asyncio
async def test_rider_reports_issue(client: AsyncClient):
    rider, _ = await create_provider(UserRole.DISPATCHER, 5.605, -0.188)
    delivery = await _delivery(client)
    await client.post(f"{RIDER}/{delivery['id']}/accept", headers=auth(rider))

    resp = await client.post(
        f"{RIDER}/{delivery['id']}/issues",
        json={"issue_type": "ADDRESS", "description": "Gate locked"},
        headers=auth(rider),
    )
    assert resp.status_code == 200
    issues = resp.json()["data"]["issues"]
    assert issues[0]["type"] == "ADDRESS"
    assert issues[0]["reported_by"] == rider.id


@pytest.mark.asyncio
async def test_customer_lists_own_deliveries(client: AsyncClient):
    customer = await create_user()
    await _delivery(client, customer)
    await _delivery(client)

    resp = await client.get("/api/v1/deliveries/mine", headers=auth(customer))
    assert resp.json()["pagination"]["total"] == 1


@pytest.mark.asyncio
async def test_statistics_for_admin(client: AsyncClient):
    admin = await create_user(UserRole.CITY_ADMIN)
    await _delivery(client)

    resp = await client.get("/api/v1/deliveries/statistics", headers=auth(admin))
    assert resp.status_code == 200
    assert resp.json()["data"]["total_deliveries"] == 1
    assert resp.json()["data"]["by_status"]["PENDING"] == 1
