"""
Background Dispatch Worker
==========================

Runs every ``DISPATCH_INTERVAL_SECONDS`` (default 15 s).

Concurrency safety
------------------
* **Redis distributed lock** ensures only one instance runs the dispatch
  cycle at a time across multiple API processes.
* Acceptance itself is a conditional UPDATE in the lifecycle service, so an
  offer racing with a cycle can never double-assign a booking.

Algorithm per cycle
-------------------
1. Expire offers older than ``OFFER_TTL_SECONDS``.
2. Fetch PENDING bookings (scheduled ones once inside the lead window).
3. Skip bookings that still have a live offer.
4. Run the next attempt of the kind's dispatch plan: nearby available,
   online, verified providers of the serving role, minus those who declined.
5. Send offers (notification + ``new_booking_request`` event).
6. Plan exhausted -> NO_DRIVER_AVAILABLE and tell the customer.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.config import settings
from src.domain.enums import (
    KIND_PROVIDER_ROLE,
    BookingKind,
    BookingStatus,
    BookingType,
    NotificationType,
    Priority,
)
from src.domain.lifecycle import booking_machine
from src.domain.matching import dispatch_attempt
from src.infrastructure.database import async_session_factory, utcnow
from src.infrastructure.locks import DistributedLock
from src.infrastructure.models import BookingModel, BookingOfferModel
from src.infrastructure.redis_client import get_redis
from src.infrastructure.repositories import (
    BookingRepository,
    OfferRepository,
    TrackingRepository,
)
from src.services.lifecycle import booking_payload
from src.services.notifications import NotificationService
from src.services.providers import nearby_providers
from src.services.realtime import RealtimeBroadcaster

logger = logging.getLogger(__name__)

# Scheduled bookings enter dispatch this long before their pickup time
SCHEDULED_LEAD = timedelta(minutes=30)

# (notification type, title, priority, socket event) per kind
OFFER_NOTICE = {
    BookingKind.EMERGENCY: (
        NotificationType.EMERGENCY_DISPATCH,
        "Emergency Dispatch",
        Priority.CRITICAL,
        "emergency_dispatch",
    ),
}
DEFAULT_OFFER_NOTICE = (
    NotificationType.BOOKING_REQUEST,
    "New Booking Request",
    Priority.URGENT,
    "new_booking_request",
)

_task: asyncio.Task | None = None
_stop_event: asyncio.Event | None = None


# ── Public API ────────────────────────────────────────────────────────


async def start_dispatch_loop() -> None:
    global _task, _stop_event
    _stop_event = asyncio.Event()
    _task = asyncio.create_task(_loop())
    logger.info(
        "Dispatch worker started (interval=%ds)", settings.dispatch_interval_seconds
    )


async def stop_dispatch_loop() -> None:
    if _stop_event:
        _stop_event.set()
    if _task:
        _task.cancel()
        try:
            await _task
        except asyncio.CancelledError:
            pass
    logger.info("Dispatch worker stopped")


async def offer_booking(
    session: AsyncSession,
    realtime: RealtimeBroadcaster,
    booking: BookingModel,
) -> int:
    """
    Run the booking's next dispatch attempt.

    Returns the number of offers sent, or -1 when the plan was already
    exhausted and the booking has been closed as NO_DRIVER_AVAILABLE.
    """
    notifications = NotificationService(session, realtime)
    attempt = dispatch_attempt(booking.kind, booking.dispatch_attempts)
    if attempt is None:
        await _close_unserved(session, notifications, realtime, booking)
        return -1

    offers = OfferRepository(session)
    declined = await offers.declined_provider_ids(booking.id)
    candidates = await nearby_providers(
        session,
        KIND_PROVIDER_ROLE[booking.kind],
        booking.pickup_lat,
        booking.pickup_lng,
        attempt.radius_km,
        attempt.max_providers,
        exclude_user_ids=declined,
    )

    notice_type, title, priority, event = OFFER_NOTICE.get(booking.kind, DEFAULT_OFFER_NOTICE)
    now = utcnow()
    expires_at = now + timedelta(seconds=settings.offer_ttl_seconds)
    booking.dispatch_attempts += 1
    for profile, distance in candidates:
        await offers.add(
            BookingOfferModel(
                booking_id=booking.id,
                provider_id=profile.user_id,
                attempt=booking.dispatch_attempts,
                distance_km=round(distance, 2),
                sent_at=now,
                expires_at=expires_at,
            )
        )
        data = booking_payload(
            booking,
            pickup={"latitude": booking.pickup_lat, "longitude": booking.pickup_lng},
            pickup_address=booking.pickup_address,
            dropoff_address=booking.dropoff_address,
            estimated_price=booking.estimated_price,
            distance_km=round(distance, 2),
            expires_at=expires_at.isoformat(),
        )
        await notifications.notify(
            profile.user_id,
            notice_type,
            title,
            f"New {booking.kind.value.lower()} request {distance:.1f} km away",
            data,
            priority,
        )
        await realtime.notify_user(profile.user_id, event, data)

    logger.info(
        "Booking %s attempt %d: %d offers within %.0f km",
        booking.id,
        booking.dispatch_attempts,
        len(candidates),
        attempt.radius_km,
    )
    return len(candidates)


async def run_dispatch_cycle(
    session_factory: Optional[async_sessionmaker] = None,
    realtime: Optional[RealtimeBroadcaster] = None,
) -> int:
    """Execute one dispatch cycle.  Returns the number of offers sent."""
    redis = await get_redis()
    lock = DistributedLock(redis, "dispatcher", ttl_seconds=60)

    if not await lock.acquire():
        logger.debug("Lock held by another worker – skipping cycle")
        return 0

    realtime = realtime or RealtimeBroadcaster(redis)
    session_factory = session_factory or async_session_factory
    sent = 0
    try:
        async with session_factory() as session:
            sent = await dispatch_pending(session, realtime)
            await session.commit()
    except Exception:
        logger.exception("Error in dispatch cycle")
    finally:
        await lock.release()

    return sent


async def dispatch_pending(session: AsyncSession, realtime: RealtimeBroadcaster) -> int:
    """One pass over pending bookings inside an open session (no commit)."""
    now = utcnow()
    offers = OfferRepository(session)
    expired = await offers.expire_stale(now)
    if expired:
        logger.info("Expired %d stale offers", expired)

    sent = 0
    for booking in await BookingRepository(session).get_pending():
        if (
            booking.booking_type == BookingType.SCHEDULED
            and booking.scheduled_at
            and booking.scheduled_at - now > SCHEDULED_LEAD
        ):
            continue
        if await offers.count_live(booking.id):
            continue
        sent += max(0, await offer_booking(session, realtime, booking))
    return sent


# ── Internals ─────────────────────────────────────────────────────────


async def _close_unserved(
    session: AsyncSession,
    notifications: NotificationService,
    realtime: RealtimeBroadcaster,
    booking: BookingModel,
) -> None:
    booking_machine.ensure(booking.status, BookingStatus.NO_DRIVER_AVAILABLE)
    booking.status = BookingStatus.NO_DRIVER_AVAILABLE
    await TrackingRepository(session).record(
        booking_id=booking.id,
        status=booking.status.value,
        message="No provider accepted the booking",
    )
    await notifications.notify(
        booking.customer_id,
        NotificationType.NO_DRIVER_AVAILABLE,
        "No Provider Available",
        f"We could not find a provider for booking {booking.booking_number}. "
        "Please try again shortly.",
        {"booking_id": booking.id},
        Priority.HIGH,
    )
    await realtime.notify_user(
        booking.customer_id, "booking_update", booking_payload(booking)
    )
    logger.info("Booking %s closed: no provider available", booking.id)


async def _loop() -> None:
    """Periodic loop: run a dispatch cycle then sleep."""
    assert _stop_event is not None
    while not _stop_event.is_set():
        try:
            await run_dispatch_cycle()
        except Exception:
            logger.exception("Unhandled error in dispatch cycle")
        # Wait for the interval or until stop is signalled
        try:
            await asyncio.wait_for(
                _stop_event.wait(), timeout=settings.dispatch_interval_seconds
            )
            break
        except asyncio.TimeoutError:
            pass  # next cycle
