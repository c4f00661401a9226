"""Tests for the background dispatch worker (offers, expansion, exhaustion)."""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import select

from src.domain.entities import Location
from src.domain.enums import (
    BookingKind,
    BookingStatus,
    BookingType,
    NotificationType,
    OfferStatus,
    UserRole,
)
from src.infrastructure.database import utcnow
from src.infrastructure.models import BookingOfferModel, NotificationModel
from src.services.bookings import BookingService
from src.services.webhooks import WebhookService
from src.workers.dispatcher import dispatch_pending, offer_booking, run_dispatch_cycle
from tests.factories import (
    ACCRA,
    OSU,
    RecordingBroadcaster,
    create_provider,
    create_user,
)

KUMASI = (6.6885, -1.6244)


async def _booking(session, realtime, kind=BookingKind.RIDE, **kwargs):
    customer = await create_user()
    service = BookingService(session, realtime, WebhookService())
    return await service.create(customer, kind, Location(*ACCRA), Location(*OSU), **kwargs)


async def _offers(session, booking_id):
    result = await session.execute(
        select(BookingOfferModel).where(BookingOfferModel.booking_id == booking_id)
    )
    return list(result.scalars().all())


class TestOfferBooking:
    @pytest.mark.asyncio
    async def test_offers_nearby_providers(self, db_session):
        realtime = RecordingBroadcaster()
        driver, _ = await create_provider(UserRole.DRIVER, 5.605, -0.188)
        await create_provider(UserRole.DRIVER, *KUMASI)  # too far
        await create_provider(UserRole.TAXI_DRIVER, 5.605, -0.188)  # wrong role
        booking = await _booking(db_session, realtime)

        sent = await offer_booking(db_session, realtime, booking)

        assert sent == 1
        assert booking.dispatch_attempts == 1
        offers = await _offers(db_session, booking.id)
        assert [o.provider_id for o in offers] == [driver.id]
        assert offers[0].status == OfferStatus.SENT
        assert offers[0].expires_at > offers[0].sent_at
        assert "new_booking_request" in realtime.names(f"user:{driver.id}")

    @pytest.mark.asyncio
    async def test_skips_unverified_and_unavailable(self, db_session):
        realtime = RecordingBroadcaster()
        await create_provider(UserRole.DRIVER, 5.605, -0.188, verified=False)
        await create_provider(UserRole.DRIVER, 5.605, -0.188, available=False)
        booking = await _booking(db_session, realtime)

        assert await offer_booking(db_session, realtime, booking) == 0

    @pytest.mark.asyncio
    async def test_declined_provider_not_offered_again(self, db_session):
        realtime = RecordingBroadcaster()
        await create_provider(UserRole.DRIVER, 5.605, -0.188)
        booking = await _booking(db_session, realtime)

        await offer_booking(db_session, realtime, booking)
        (offer,) = await _offers(db_session, booking.id)
        offer.status = OfferStatus.DECLINED

        assert await offer_booking(db_session, realtime, booking) == 0
        assert booking.dispatch_attempts == 2

    @pytest.mark.asyncio
    async def test_emergency_offer_is_critical(self, db_session):
        realtime = RecordingBroadcaster()
        responder, _ = await create_provider(UserRole.EMERGENCY_RESPONDER, 5.605, -0.188)
        booking = await _booking(db_session, realtime, BookingKind.EMERGENCY, price=0.0)

        assert await offer_booking(db_session, realtime, booking) == 1
        assert "emergency_dispatch" in realtime.names(f"user:{responder.id}")

    @pytest.mark.asyncio
    async def test_exhausted_plan_closes_booking(self, db_session):
        realtime = RecordingBroadcaster()
        booking = await _booking(db_session, realtime)
        booking.dispatch_attempts = 2

        assert await offer_booking(db_session, realtime, booking) == -1
        assert booking.status == BookingStatus.NO_DRIVER_AVAILABLE

        result = await db_session.execute(
            select(NotificationModel).where(
                NotificationModel.user_id == booking.customer_id,
                NotificationModel.type == NotificationType.NO_DRIVER_AVAILABLE,
            )
        )
        assert result.scalar_one_or_none() is not None


class TestDispatchPending:
    @pytest.mark.asyncio
    async def test_live_offer_blocks_next_attempt(self, db_session):
        realtime = RecordingBroadcaster()
        await create_provider(UserRole.DRIVER, 5.605, -0.188)
        booking = await _booking(db_session, realtime)

        assert await dispatch_pending(db_session, realtime) == 1
        assert await dispatch_pending(db_session, realtime) == 0
        assert booking.dispatch_attempts == 1

    @pytest.mark.asyncio
    async def test_stale_offers_expire(self, db_session):
        realtime = RecordingBroadcaster()
        await create_provider(UserRole.DRIVER, 5.605, -0.188)
        booking = await _booking(db_session, realtime)
        await dispatch_pending(db_session, realtime)

        (offer,) = await _offers(db_session, booking.id)
        offer.expires_at = utcnow() - timedelta(seconds=1)
        await db_session.flush()

        # The expired offer frees the booking for its second attempt
        await dispatch_pending(db_session, realtime)
        await db_session.refresh(offer)
        assert offer.status == OfferStatus.EXPIRED
        assert booking.dispatch_attempts == 2

    @pytest.mark.asyncio
    async def test_scheduled_booking_waits(self, db_session):
        realtime = RecordingBroadcaster()
        await create_provider(UserRole.DRIVER, 5.605, -0.188)
        booking = await _booking(
            db_session,
            realtime,
            booking_type=BookingType.SCHEDULED,
            scheduled_at=utcnow() + timedelta(hours=3),
        )

        assert await dispatch_pending(db_session, realtime) == 0
        assert booking.dispatch_attempts == 0


class TestDispatchCycle:
    @pytest.mark.asyncio
    async def test_skips_when_lock_is_held(self):
        redis = AsyncMock()
        redis.set = AsyncMock(return_value=False)
        with patch("src.workers.dispatcher.get_redis", AsyncMock(return_value=redis)):
            assert await run_dispatch_cycle() == 0
        redis.eval.assert_not_called()
