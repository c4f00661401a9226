"""Integration tests for booking and store reviews and provider ratings."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest
from httpx import AsyncClient

from src.domain.enums import UserRole
from tests.factories import ACCRA, OSU, auth, create_provider, create_store, create_user

TRIP = {
    "pickup": {"latitude": ACCRA[0], "longitude": ACCRA[1]},
    "dropoff": {"latitude": OSU[0], "longitude": OSU[1]},
}


async def _trip(client: AsyncClient, finish: bool = True, driver=None):
    """A ride booked by a fresh customer and driven by *driver* (or a new one)."""
    if driver is None:
        driver, _ = await create_provider(UserRole.DRIVER, 5.605, -0.188)
    customer = await create_user()
    resp = await client.post("/api/v1/bookings", json=TRIP, headers=auth(customer))
    booking = resp.json()["data"]
    base = f"/api/v1/drivers/bookings/{booking['id']}"
    steps = ("accept", "arrive", "start", "complete") if finish else ("accept",)
    for step in steps:
        resp = await client.post(f"{base}/{step}", headers=auth(driver))
        assert resp.status_code == 200, resp.text
    return customer, driver, booking["id"]


async def _review(client: AsyncClient, user, **body):
    return await client.post("/api/v1/reviews", json=body, headers=auth(user))


async def _driver_rating(client: AsyncClient, driver) -> float:
    resp = await client.get("/api/v1/drivers/profile", headers=auth(driver))
    return resp.json()["data"]["rating"]


# ── Booking reviews ───────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_customer_rates_driver(client: AsyncClient):
    customer, driver, booking_id = await _trip(client)

    resp = await _review(
        client, customer, booking_id=booking_id, rating=4, comment="Smooth ride"
    )
    assert resp.status_code == 201
    review = resp.json()["data"]
    assert review["receiver_id"] == driver.id
    assert review["reviewer_id"] == customer.id
    assert await _driver_rating(client, driver) == 4.0

    inbox = (await client.get("/api/v1/notifications", headers=auth(driver))).json()["data"]
    assert inbox[0]["type"] == "NEW_REVIEW"
    assert inbox[0]["data"]["rating"] == 4

    resp = await _review(client, customer, booking_id=booking_id, rating=5)
    assert resp.status_code == 400
    assert resp.json()["message"] == "You have already reviewed this booking"


@pytest.mark.asyncio
async def test_driver_rates_customer(client: AsyncClient):
    customer, driver, booking_id = await _trip(client)
    resp = await _review(client, driver, booking_id=booking_id, rating=3)
    assert resp.status_code == 201
    assert resp.json()["data"]["receiver_id"] == customer.id
    assert await _driver_rating(client, driver) == 5.0


@pytest.mark.asyncio
async def test_only_participants_review_completed_bookings(client: AsyncClient):
    customer, _, booking_id = await _trip(client, finish=False)
    resp = await _review(client, customer, booking_id=booking_id, rating=5)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Only completed bookings can be reviewed"

    customer, _, booking_id = await _trip(client)
    stranger = await create_user()
    resp = await _review(client, stranger, booking_id=booking_id, rating=1)
    assert resp.status_code == 403
    assert resp.json()["message"] == "You can only review bookings you were involved in"

    resp = await _review(client, customer, booking_id=999, rating=5)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_review_targets_one_thing(client: AsyncClient):
    customer = await create_user()
    resp = await _review(client, customer, rating=5)
    assert resp.status_code == 400
    resp = await _review(client, customer, booking_id=1, store_id=1, rating=5)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Review either a booking or a store"


@pytest.mark.asyncio
async def test_simultaneous_duplicate_review_is_rejected(client: AsyncClient):
    customer, _, booking_id = await _trip(client)
    with patch(
        "src.services.reviews.ReviewRepository.find_for_booking",
        new=AsyncMock(return_value=None),
    ):
        first = await _review(client, customer, booking_id=booking_id, rating=5)
        second = await _review(client, customer, booking_id=booking_id, rating=5)
    assert first.status_code == 201
    assert second.status_code == 400
    assert second.json()["message"] == "You have already reviewed this booking"


# ── Editing and rating upkeep ─────────────────────────────────────────


@pytest.mark.asyncio
async def test_rating_follows_edits_and_deletes(client: AsyncClient):
    customer, driver, booking_id = await _trip(client)
    resp = await _review(client, customer, booking_id=booking_id, rating=4)
    review = resp.json()["data"]
    url = f"/api/v1/reviews/{review['id']}"

    other = await create_user()
    resp = await client.put(url, json={"rating": 1}, headers=auth(other))
    assert resp.status_code == 403

    resp = await client.put(url, json={"rating": 2}, headers=auth(customer))
    assert resp.json()["data"]["rating"] == 2
    assert await _driver_rating(client, driver) == 2.0

    assert (await client.delete(url, headers=auth(other))).status_code == 403
    admin = await create_user(UserRole.SUPER_ADMIN)
    assert (await client.delete(url, headers=auth(admin))).status_code == 200
    assert (await client.get(url)).status_code == 404
    assert await _driver_rating(client, driver) == 5.0


@pytest.mark.asyncio
async def test_review_listing_and_stats(client: AsyncClient):
    driver, _ = await create_provider(UserRole.DRIVER, 5.605, -0.188)
    for rating in (5, 3):
        customer, _, booking_id = await _trip(client, driver=driver)
        resp = await _review(client, customer, booking_id=booking_id, rating=rating)
        assert resp.status_code == 201

    resp = await client.get("/api/v1/reviews", params={"receiver_id": driver.id})
    assert resp.json()["pagination"]["total"] == 2

    resp = await client.get("/api/v1/reviews/stats", params={"receiver_id": driver.id})
    stats = resp.json()["data"]
    assert stats["total_reviews"] == 2
    assert stats["average_rating"] == 4.0
    assert stats["distribution"] == {"1": 0, "2": 0, "3": 1, "4": 0, "5": 1}
    assert await _driver_rating(client, driver) == 4.0

    resp = await client.get("/api/v1/reviews/mine", headers=auth(customer))
    assert [r["rating"] for r in resp.json()["data"]] == [3]


# ── Store reviews ─────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_store_review(client: AsyncClient):
    owner = await create_user(UserRole.STORE_OWNER)
    store = await create_store(owner)
    customer = await create_user()

    resp = await _review(
        client, customer, store_id=store.id, rating=5, comment="Fresh bread"
    )
    assert resp.status_code == 201
    assert resp.json()["data"]["receiver_id"] is None

    inbox = (await client.get("/api/v1/notifications", headers=auth(owner))).json()["data"]
    assert inbox[0]["type"] == "NEW_REVIEW"
    assert inbox[0]["data"]["store_id"] == store.id

    resp = await _review(client, customer, store_id=store.id, rating=4)
    assert resp.status_code == 400
    assert resp.json()["message"] == "You have already reviewed this store"

    resp = await _review(client, owner, store_id=store.id, rating=5)
    assert resp.status_code == 400

    resp = await client.get("/api/v1/reviews/stats", params={"store_id": store.id})
    assert resp.json()["data"]["average_rating"] == 5.0
