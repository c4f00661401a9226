"""
Customer-side booking service
=============================

Creates and reads bookings of every kind.  Ride and taxi bookings are priced
here from the ride fare model; moving and emergency bookings arrive with a
price already decided by their own services and reuse the rest of the flow:

1. Idempotency key short-circuit (same key returns the original booking).
2. Subscription limit on open bookings.
3. Zone detection for pickup and drop-off, inter-regional check and fee.
4. Persist with a human-readable booking number and a first tracking row.
5. ``<kind>.booking_request`` webhook; the dispatcher picks it up from here.

Inter-regional bookings that need admin approval are held out of dispatch
until an admin approves them (``approve``) or rejects them (``reject``).
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.domain.distance import haversine_km
from src.domain.entities import FareEstimate, Location
from src.domain.enums import (
    ADMIN_ROLES,
    KIND_PROVIDER_ROLE,
    BookingKind,
    BookingStatus,
    BookingType,
    NotificationType,
    Priority,
    RideType,
)
from src.domain.errors import Conflict, NotFound, PermissionDenied, ValidationFailed
from src.domain.lifecycle import ACTIVE_BOOKING_STATUSES
from src.domain.matching import DISPATCH_PLANS
from src.domain.pricing import PricingEngine
from src.infrastructure.database import utcnow
from src.infrastructure.models import BookingModel, UserModel
from src.infrastructure.repositories import (
    AuditLogRepository,
    BookingRepository,
    TrackingRepository,
)
from src.services.lifecycle import BookingLifecycle, booking_payload
from src.services.providers import nearby_providers
from src.services.realtime import RealtimeBroadcaster
from src.services.subscriptions import active_plan
from src.services.webhooks import WebhookService
from src.services.zones import ZoneService

logger = logging.getLogger(__name__)

BOOKING_PREFIXES = {
    BookingKind.RIDE: "RB",
    BookingKind.TAXI: "TX",
    BookingKind.MOVING: "MV",
    BookingKind.EMERGENCY: "EM",
    BookingKind.DAY: "DAY",
}

OPEN_STATUSES = (BookingStatus.PENDING, *ACTIVE_BOOKING_STATUSES)

# Pending bookings younger than this count as demand for surge pricing
DEMAND_WINDOW = timedelta(minutes=30)


def booking_number(kind: BookingKind, now: Optional[datetime] = None) -> str:
    now = now or utcnow()
    return f"{BOOKING_PREFIXES[kind]}{now:%y%m%d}{secrets.token_hex(3).upper()}"


class BookingService:
    def __init__(
        self,
        session: AsyncSession,
        realtime: RealtimeBroadcaster,
        webhooks: WebhookService,
    ):
        self.session = session
        self.realtime = realtime
        self.webhooks = webhooks
        self.repo = BookingRepository(session)
        self.tracking = TrackingRepository(session)
        self.zones = ZoneService(session)
        self.lifecycle = BookingLifecycle(session, realtime, webhooks)
        self.notifications = self.lifecycle.notifications
        self.pricing = PricingEngine(
            city_speed_kmh=settings.city_speed_kmh, currency=settings.currency
        )

    # ── Estimate ──────────────────────────────────────────────────

    async def _supply_and_demand(
        self, kind: BookingKind, pickup: Location
    ) -> tuple[int, int]:
        radius = DISPATCH_PLANS[kind][0].radius_km
        supply = len(
            await nearby_providers(
                self.session,
                KIND_PROVIDER_ROLE[kind],
                pickup.latitude,
                pickup.longitude,
                radius,
            )
        )
        recent = await self.repo.list_pending_of_kind(kind, utcnow() - DEMAND_WINDOW)
        demand = sum(
            1
            for b in recent
            if haversine_km(pickup.latitude, pickup.longitude, b.pickup_lat, b.pickup_lng)
            <= radius
        )
        return supply, demand

    async def estimate(
        self,
        pickup: Location,
        dropoff: Location,
        ride_type: RideType = RideType.ECONOMY,
        kind: BookingKind = BookingKind.RIDE,
    ) -> FareEstimate:
        distance = haversine_km(
            pickup.latitude, pickup.longitude, dropoff.latitude, dropoff.longitude
        )
        supply, demand = await self._supply_and_demand(kind, pickup)
        return self.pricing.estimate_ride(distance, ride_type, supply, demand)

    # ── Create ────────────────────────────────────────────────────

    async def create(
        self,
        user: UserModel,
        kind: BookingKind,
        pickup: Location,
        dropoff: Optional[Location] = None,
        *,
        pickup_address: Optional[str] = None,
        dropoff_address: Optional[str] = None,
        booking_type: BookingType = BookingType.IMMEDIATE,
        scheduled_at: Optional[datetime] = None,
        ride_type: Optional[RideType] = None,
        notes: Optional[str] = None,
        idempotency_key: Optional[str] = None,
        service_data: Optional[dict[str, Any]] = None,
        price: Optional[float] = None,
        enforce_limit: bool = True,
    ) -> BookingModel:
        if idempotency_key:
            existing = await self.repo.get_by_idempotency_key(idempotency_key)
            if existing is not None:
                if existing.customer_id != user.id:
                    raise ValidationFailed("Idempotency key already used")
                logger.info("Idempotent replay for booking %s", existing.id)
                return existing

        if enforce_limit:
            plan = active_plan(user)
            open_count = await self.repo.count_customer_open(user.id, OPEN_STATUSES)
            if open_count >= plan.max_active_bookings:
                raise ValidationFailed(
                    f"Active booking limit reached ({plan.max_active_bookings}) "
                    f"for the {plan.name} plan"
                )

        now = utcnow()
        if booking_type == BookingType.SCHEDULED:
            if scheduled_at is None or scheduled_at <= now:
                raise ValidationFailed("Scheduled bookings need a future scheduled time")

        distance = 0.0
        if dropoff is not None:
            distance = haversine_km(
                pickup.latitude, pickup.longitude, dropoff.latitude, dropoff.longitude
            )

        origin = await self.zones.find_zone(pickup.latitude, pickup.longitude)
        destination = (
            await self.zones.find_zone(dropoff.latitude, dropoff.longitude)
            if dropoff is not None
            else None
        )
        check = self.zones.check_inter_regional(origin, destination, distance)
        if not check.allowed:
            raise ValidationFailed(check.reason or "Inter-regional booking not allowed")

        surge = 1.0
        duration = self.pricing.duration_minutes(distance)
        if price is None:
            if dropoff is None:
                raise ValidationFailed("Drop-off location is required")
            supply, demand = await self._supply_and_demand(kind, pickup)
            estimate = self.pricing.estimate_ride(
                distance, ride_type or RideType.ECONOMY, supply, demand
            )
            price = estimate.estimated_price
            surge = estimate.surge_multiplier
            duration = estimate.estimated_duration_min
        if check.is_inter_regional:
            price = round(price + check.fee, 2)

        booking = BookingModel(
            booking_number=booking_number(kind, now),
            kind=kind,
            booking_type=booking_type,
            status=BookingStatus.PENDING,
            customer_id=user.id,
            pickup_lat=pickup.latitude,
            pickup_lng=pickup.longitude,
            pickup_address=pickup_address,
            dropoff_lat=dropoff.latitude if dropoff else None,
            dropoff_lng=dropoff.longitude if dropoff else None,
            dropoff_address=dropoff_address,
            scheduled_at=scheduled_at,
            ride_type=ride_type.value if ride_type else None,
            estimated_distance_km=round(distance, 2),
            estimated_duration_min=round(duration, 1),
            estimated_price=price,
            surge_multiplier=surge,
            origin_zone_id=origin.id if origin else None,
            destination_zone_id=destination.id if destination else None,
            is_inter_regional=check.is_inter_regional,
            inter_regional_fee=check.fee,
            requires_approval=check.requires_approval,
            service_data=service_data or {},
            notes=notes,
            idempotency_key=idempotency_key,
        )
        await self.repo.add(booking)
        await self.tracking.record(
            booking_id=booking.id,
            status=BookingStatus.PENDING.value,
            latitude=pickup.latitude,
            longitude=pickup.longitude,
            message="Booking created",
        )
        await self.webhooks.send(
            f"{kind.value.lower()}.booking_request",
            booking_payload(
                booking,
                customer_id=user.id,
                pickup={"latitude": pickup.latitude, "longitude": pickup.longitude},
                estimated_price=price,
                booking_type=booking_type.value,
            ),
            booking.id,
        )
        if booking.requires_approval:
            await self._request_approval(booking, origin, destination)
        logger.info(
            "Booking %s created: kind=%s price=%.2f", booking.booking_number, kind.value, price
        )
        return booking

    async def _request_approval(self, booking: BookingModel, origin, destination) -> None:
        route = (
            f"{origin.name if origin else 'unknown zone'} to "
            f"{destination.name if destination else 'unknown zone'}"
        )
        data = {
            "booking_id": booking.id,
            "booking_number": booking.booking_number,
            "origin_zone_id": booking.origin_zone_id,
            "destination_zone_id": booking.destination_zone_id,
            "distance_km": booking.estimated_distance_km,
        }
        await self.notifications.notify_admins(
            NotificationType.INTER_REGIONAL_BOOKING_REQUEST,
            "Inter-regional Booking Needs Approval",
            f"Booking {booking.booking_number} ({route}) is waiting for approval.",
            data,
            Priority.HIGH,
        )
        await self.notifications.notify(
            booking.customer_id,
            NotificationType.BOOKING_UPDATE,
            "Booking Awaiting Approval",
            f"Your inter-regional booking {booking.booking_number} will be "
            "dispatched once an administrator approves it.",
            data,
        )
        logger.info("Booking %s held for inter-regional approval", booking.id)

    # ── Approval ──────────────────────────────────────────────────

    async def list_awaiting_approval(self, page: int = 1, limit: int = 20):
        return await self.repo.list_awaiting_approval(page, limit)

    async def _held_booking(self, booking_id: int) -> BookingModel:
        booking = await self.repo.get_by_id(booking_id)
        if booking is None:
            raise NotFound("Booking not found")
        if booking.status != BookingStatus.PENDING or not booking.requires_approval:
            raise Conflict("Booking is not awaiting approval")
        return booking

    async def approve(self, admin: UserModel, booking_id: int) -> BookingModel:
        """Release an approval-gated booking to the dispatcher."""
        booking = await self._held_booking(booking_id)
        booking.requires_approval = False
        booking.approved_by = admin.id
        booking.approved_at = utcnow()
        await self.tracking.record(
            booking_id=booking.id,
            status=booking.status.value,
            message="Inter-regional booking approved",
        )
        await AuditLogRepository(self.session).record(
            "booking_approved", "booking", booking.id, admin.id
        )
        await self.notifications.notify(
            booking.customer_id,
            NotificationType.BOOKING_UPDATE,
            "Booking Approved",
            f"Your inter-regional booking {booking.booking_number} has been "
            "approved and is being dispatched.",
            {"booking_id": booking.id},
        )
        await self.realtime.notify_user(
            booking.customer_id,
            "booking_update",
            booking_payload(booking, requires_approval=False),
        )
        logger.info("Booking %s approved by admin %s", booking.id, admin.id)
        return booking

    async def reject(
        self, admin: UserModel, booking_id: int, reason: Optional[str] = None
    ) -> BookingModel:
        await self._held_booking(booking_id)
        booking = await self.lifecycle.cancel(
            admin, booking_id, reason or "Inter-regional booking not approved"
        )
        await AuditLogRepository(self.session).record(
            "booking_rejected", "booking", booking.id, admin.id, {"reason": reason}
        )
        await self.notifications.notify(
            booking.customer_id,
            NotificationType.BOOKING_CANCELLED,
            "Booking Not Approved",
            f"Your inter-regional booking {booking.booking_number} was not approved.",
            {"booking_id": booking.id, "reason": reason},
            Priority.HIGH,
        )
        return booking

    # ── Read ──────────────────────────────────────────────────────

    async def get(self, user: UserModel, booking_id: int) -> BookingModel:
        booking = await self.repo.get_by_id(booking_id)
        if booking is None:
            raise NotFound("Booking not found")
        if (
            booking.customer_id != user.id
            and booking.provider_id != user.id
            and user.role not in ADMIN_ROLES
        ):
            raise PermissionDenied("You do not have access to this booking")
        return booking

    async def list_mine(
        self,
        user: UserModel,
        kinds: Optional[tuple[BookingKind, ...]] = None,
        status: Optional[BookingStatus] = None,
        page: int = 1,
        limit: int = 20,
    ):
        return await self.repo.list_for_customer(user.id, kinds, status, page, limit)

    async def tracking_history(self, user: UserModel, booking_id: int):
        booking = await self.get(user, booking_id)
        return await self.tracking.list_for_booking(booking.id)

    async def cancel(
        self, user: UserModel, booking_id: int, reason: Optional[str] = None
    ) -> BookingModel:
        return await self.lifecycle.cancel(user, booking_id, reason)
