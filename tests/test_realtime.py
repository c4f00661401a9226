"""Tests for the socket connection manager, Redis publishing and room access."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, patch

import pytest
import redis.asyncio as aioredis

from src.api.routes.realtime import can_join
from src.domain.entities import Location
from src.domain.enums import BookingKind, UserRole
from src.infrastructure.models import BookingModel
from src.services.bookings import BookingService
from src.services.realtime import ConnectionManager, RealtimeBroadcaster
from src.services.webhooks import WebhookService
from tests.factories import (
    ACCRA,
    OSU,
    RecordingBroadcaster,
    TestSessionFactory,
    create_provider,
    create_user,
)


def _socket() -> AsyncMock:
    ws = AsyncMock()
    ws.send_json = AsyncMock()
    return ws


# ── ConnectionManager ─────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_connect_joins_personal_room():
    manager = ConnectionManager()
    ws = _socket()
    await manager.connect(ws, 7, "CUSTOMER")

    ws.accept.assert_awaited_once()
    assert manager.members("user:7") == {7}
    assert manager.stats() == {
        "active_connections": 1,
        "rooms": 1,
        "connections_by_role": {"CUSTOMER": 1},
    }


@pytest.mark.asyncio
async def test_broadcast_reaches_room_members_only():
    manager = ConnectionManager()
    a, b = _socket(), _socket()
    await manager.connect(a, 1, "CUSTOMER")
    await manager.connect(b, 2, "DRIVER")
    manager.join(1, "booking:5")

    sent = await manager.broadcast("booking:5", {"event": "trip_started"})
    assert sent == 1
    a.send_json.assert_awaited_once_with({"event": "trip_started"})
    b.send_json.assert_not_awaited()


@pytest.mark.asyncio
async def test_reconnect_replaces_previous_socket():
    manager = ConnectionManager()
    old, new = _socket(), _socket()
    await manager.connect(old, 1, "DRIVER")
    manager.join(1, "booking:9")
    await manager.connect(new, 1, "DRIVER")

    old.close.assert_awaited_once()
    assert manager.active_connections == 1
    assert manager.members("booking:9") == set()

    # The stale socket's disconnect must not drop the new one
    await manager.disconnect(1, old)
    assert manager.active_connections == 1


@pytest.mark.asyncio
async def test_dead_socket_is_dropped():
    manager = ConnectionManager()
    ws = _socket()
    ws.send_json.side_effect = RuntimeError("closed")
    await manager.connect(ws, 3, "CUSTOMER")

    assert await manager.broadcast("user:3", {"event": "x"}) == 0
    assert manager.active_connections == 0
    assert manager.members("user:3") == set()


@pytest.mark.asyncio
async def test_leave_removes_empty_room():
    manager = ConnectionManager()
    await manager.connect(_socket(), 1, "CUSTOMER")
    manager.join(1, "delivery:2")
    manager.leave(1, "delivery:2")
    assert manager.stats()["rooms"] == 1


# ── RealtimeBroadcaster ───────────────────────────────────────────────


@pytest.mark.asyncio
async def test_emit_publishes_envelope():
    client = AsyncMock()
    await RealtimeBroadcaster(client).notify_user(4, "notification", {"id": 1})

    channel, payload = client.publish.await_args.args
    assert channel == "rt:user:4"
    envelope = json.loads(payload)
    assert envelope["room"] == "user:4"
    assert envelope["event"] == "notification"
    assert envelope["data"] == {"id": 1}
    assert "timestamp" in envelope


@pytest.mark.asyncio
async def test_emit_survives_redis_outage():
    client = AsyncMock()
    client.publish.side_effect = aioredis.ConnectionError("down")
    await RealtimeBroadcaster(client).emit_to_room("booking:1", "trip_started", {})


# ── Room access ───────────────────────────────────────────────────────


async def _booking(customer) -> BookingModel:
    async with TestSessionFactory() as session:
        service = BookingService(session, RecordingBroadcaster(), WebhookService())
        booking = await service.create(
            customer, BookingKind.RIDE, Location(*ACCRA), Location(*OSU)
        )
        await session.commit()
        return booking


@pytest.mark.asyncio
async def test_room_access(db_session):
    customer = await create_user()
    stranger = await create_user()
    admin = await create_user(UserRole.SUPER_ADMIN)
    driver, _ = await create_provider(UserRole.DRIVER)
    booking = await _booking(customer)
    room = f"booking:{booking.id}"

    with patch("src.api.routes.realtime.async_session_factory", TestSessionFactory):
        assert await can_join(customer, room)
        assert not await can_join(stranger, room)
        assert not await can_join(driver, room)
        assert await can_join(admin, room)
        assert await can_join(customer, f"user:{customer.id}")
        assert not await can_join(customer, f"user:{stranger.id}")
        assert not await can_join(customer, "booking:abc")
        assert not await can_join(admin, "zone:1")
        assert not await can_join(customer, "delivery:999")
