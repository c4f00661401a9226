"""
Concurrency safety tests.

Demonstrates:
1. The conditional claim lets exactly one provider take a booking or delivery.
2. Idempotency keys prevent double-booking on network retries.
3. Distributed lock prevents simultaneous dispatch cycles.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from src.domain.entities import Location
from src.domain.enums import BookingKind, BookingStatus, DeliveryStatus
from src.infrastructure.database import utcnow
from src.infrastructure.locks import DistributedLock, LockNotAcquired
from src.infrastructure.repositories import BookingRepository, DeliveryRepository
from src.services.bookings import BookingService
from src.services.deliveries import DeliveryService
from src.services.webhooks import WebhookService
from tests.factories import ACCRA, OSU, RecordingBroadcaster, create_user


class TestConditionalClaim:
    """Repository-level guard behind every accept endpoint."""

    @pytest.mark.asyncio
    async def test_booking_claimed_once(self, db_session):
        customer = await create_user()
        first = await create_user()
        second = await create_user()
        service = BookingService(db_session, RecordingBroadcaster(), WebhookService())
        booking = await service.create(
            customer, BookingKind.RIDE, Location(*ACCRA), Location(*OSU)
        )

        repo = BookingRepository(db_session)
        assert await repo.claim(booking.id, first.id, utcnow()) is True
        assert await repo.claim(booking.id, second.id, utcnow()) is False

        await db_session.refresh(booking)
        assert booking.provider_id == first.id
        assert booking.status == BookingStatus.DRIVER_ASSIGNED

    @pytest.mark.asyncio
    async def test_delivery_claimed_once(self, db_session):
        customer = await create_user()
        rider = await create_user()
        other = await create_user()
        service = DeliveryService(db_session, RecordingBroadcaster(), WebhookService())
        delivery = await service.create(customer, Location(*ACCRA), Location(*OSU))

        repo = DeliveryRepository(db_session)
        assert await repo.claim(delivery.id, rider.id, utcnow()) is True
        assert await repo.claim(delivery.id, other.id, utcnow()) is False

        await db_session.refresh(delivery)
        assert delivery.rider_id == rider.id
        assert delivery.status == DeliveryStatus.ASSIGNED


class TestIdempotency:
    @pytest.mark.asyncio
    async def test_same_key_returns_same_booking(self, db_session):
        customer = await create_user()
        service = BookingService(db_session, RecordingBroadcaster(), WebhookService())
        kwargs = dict(idempotency_key="retry-123")

        first = await service.create(
            customer, BookingKind.RIDE, Location(*ACCRA), Location(*OSU), **kwargs
        )
        second = await service.create(
            customer, BookingKind.RIDE, Location(*ACCRA), Location(*OSU), **kwargs
        )
        assert first.id == second.id


class TestDistributedLock:
    """Tests the Redis distributed lock logic (mocked Redis)."""

    @pytest.mark.asyncio
    async def test_acquire_succeeds(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)

        lock = DistributedLock(mock_redis, "test-key", ttl_seconds=10)
        assert await lock.acquire() is True
        mock_redis.set.assert_called_once_with(
            "lock:test-key", lock.token, nx=True, ex=10
        )

    @pytest.mark.asyncio
    async def test_acquire_fails_if_held(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=None)

        lock = DistributedLock(mock_redis, "test-key", ttl_seconds=10)
        assert await lock.acquire() is False

    @pytest.mark.asyncio
    async def test_release_only_own_token(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)
        mock_redis.eval = AsyncMock(return_value=1)

        lock = DistributedLock(mock_redis, "test-key", ttl_seconds=10)
        await lock.acquire()
        assert await lock.release() is True

        args = mock_redis.eval.call_args.args
        assert args[1:] == (1, "lock:test-key", lock.token)

    @pytest.mark.asyncio
    async def test_context_manager_releases(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)
        mock_redis.eval = AsyncMock(return_value=1)

        async with DistributedLock(mock_redis, "test-key"):
            pass
        mock_redis.eval.assert_called_once()

    @pytest.mark.asyncio
    async def test_context_manager_acquire_fail_raises(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=False)

        lock = DistributedLock(mock_redis, "test-key", ttl_seconds=10)
        with pytest.raises(LockNotAcquired, match="lock:test-key"):
            async with lock:
                pass
        mock_redis.eval.assert_not_called()
