"""
Provider booking lifecycle
==========================

One engine for every provider role that serves bookings (ride driver,
taxi driver, house mover, emergency responder):

    accept -> [arrive] -> start -> complete
    decline (offer only)            cancel (customer, before the trip starts)

Day hires are created already assigned to the chosen driver, so they enter
the flow at ``arrive`` and are billed at their quoted hourly price.

Each step validates the transition against ``BOOKING_TRANSITIONS``, writes
the new state plus a tracking row, then fans out:

* a notification row for the other party,
* a role-prefixed socket event in ``booking:{id}`` (``taxi_trip_started``,
  ``moving_driver_arrived``, ...) and ``booking_update`` on the customer's
  personal channel,
* a ``<kind>.<event>`` webhook.

Concurrency
-----------
Acceptance is a conditional ``UPDATE ... WHERE status = 'PENDING'`` so two
providers racing for the same booking cannot both win.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.domain.distance import eta_minutes, haversine_km
from src.domain.enums import (
    ADMIN_ROLES,
    KIND_PROVIDER_ROLE,
    BookingKind,
    BookingStatus,
    BookingType,
    NotificationType,
    OfferStatus,
    Priority,
    UserRole,
)
from src.domain.errors import Conflict, NotFound, PermissionDenied, ValidationFailed
from src.domain.lifecycle import booking_machine, role_event
from src.domain.pricing import (
    BOOKING_COMMISSION_RATE,
    DAY_HIRE_COMMISSION_RATE,
    PricingEngine,
)
from src.infrastructure.database import utcnow
from src.infrastructure.models import (
    BookingModel,
    BookingOfferModel,
    DriverEarningModel,
    DriverProfileModel,
    UserModel,
)
from src.infrastructure.repositories import (
    BookingRepository,
    EarningRepository,
    OfferRepository,
    ProviderRepository,
    TrackingRepository,
)
from src.services.notifications import NotificationService
from src.services.realtime import RealtimeBroadcaster, booking_room
from src.services.subscriptions import active_plan
from src.services.webhooks import WebhookService
from src.services.zones import ZoneService

logger = logging.getLogger(__name__)


def booking_payload(booking: BookingModel, **extra: Any) -> dict[str, Any]:
    payload = {
        "booking_id": booking.id,
        "booking_number": booking.booking_number,
        "kind": booking.kind.value,
        "status": booking.status.value,
        "provider_id": booking.provider_id,
    }
    payload.update(extra)
    return payload


def week_start(moment: datetime) -> date:
    """Monday of the week containing *moment*."""
    day = moment.date()
    return day - timedelta(days=day.weekday())


class BookingLifecycle:
    def __init__(
        self,
        session: AsyncSession,
        realtime: RealtimeBroadcaster,
        webhooks: WebhookService,
    ):
        self.session = session
        self.realtime = realtime
        self.webhooks = webhooks
        self.notifications = NotificationService(session, realtime)
        self.zones = ZoneService(session, self.notifications)
        self.bookings = BookingRepository(session)
        self.providers = ProviderRepository(session)
        self.offers = OfferRepository(session)
        self.tracking = TrackingRepository(session)
        self.pricing = PricingEngine(
            city_speed_kmh=settings.city_speed_kmh, currency=settings.currency
        )

    # ── Lookups ───────────────────────────────────────────────────

    async def get_booking(self, booking_id: int) -> BookingModel:
        booking = await self.bookings.get_by_id(booking_id)
        if booking is None:
            raise NotFound("Booking not found")
        return booking

    async def get_profile(self, user: UserModel) -> DriverProfileModel:
        profile = await self.providers.get_by_user_id(user.id)
        if profile is None:
            raise NotFound("Provider profile not found")
        return profile

    @staticmethod
    def _ensure_serves(profile: DriverProfileModel, booking: BookingModel) -> None:
        if KIND_PROVIDER_ROLE.get(booking.kind) != profile.role:
            raise PermissionDenied(
                f"{profile.role.value} providers cannot handle {booking.kind.value} bookings"
            )

    async def _assigned_booking(
        self, user: UserModel, booking_id: int
    ) -> tuple[BookingModel, DriverProfileModel]:
        profile = await self.get_profile(user)
        booking = await self.get_booking(booking_id)
        if booking.provider_id != user.id:
            raise PermissionDenied("Booking is not assigned to you")
        return booking, profile

    # ── Fan-out ───────────────────────────────────────────────────

    async def _broadcast(
        self,
        booking: BookingModel,
        role: UserRole,
        base_event: str,
        webhook_event: str,
        **extra: Any,
    ) -> None:
        data = booking_payload(booking, **extra)
        await self.realtime.emit_to_room(
            booking_room(booking.id), role_event(role, base_event), data
        )
        await self.realtime.notify_user(booking.customer_id, "booking_update", data)
        await self.webhooks.send(
            f"{booking.kind.value.lower()}.{webhook_event}", data, booking.id
        )

    # ── Steps ─────────────────────────────────────────────────────

    async def accept(self, user: UserModel, booking_id: int) -> BookingModel:
        profile = await self.get_profile(user)
        if not profile.is_verified or not profile.is_available:
            raise ValidationFailed("Provider not available or not verified")

        booking = await self.get_booking(booking_id)
        self._ensure_serves(profile, booking)
        if booking.status != BookingStatus.PENDING:
            raise Conflict("Booking is no longer available")
        if booking.requires_approval:
            raise Conflict("Booking is awaiting admin approval")

        if booking.is_inter_regional and not await self.zones.can_accept_inter_regional(
            profile.id, booking.origin_zone_id, booking.destination_zone_id
        ):
            raise PermissionDenied("Not authorised for inter-regional bookings")

        distance = None
        if profile.current_lat is not None and profile.current_lng is not None:
            distance = haversine_km(
                profile.current_lat,
                profile.current_lng,
                booking.pickup_lat,
                booking.pickup_lng,
            )
            if (
                booking.booking_type == BookingType.IMMEDIATE
                and distance > settings.max_pickup_distance_km
            ):
                raise ValidationFailed("Driver too far from pickup location")

        now = utcnow()
        if not await self.bookings.claim(booking.id, user.id, now):
            raise Conflict("Booking is no longer available")
        await self.session.refresh(booking)

        profile.is_available = False
        await self.offers.close_open_offers(
            booking.id, OfferStatus.EXPIRED, except_provider_id=user.id
        )
        offer = await self.offers.get_for_provider(booking.id, user.id)
        if offer is not None:
            offer.status = OfferStatus.ACCEPTED
            offer.responded_at = now
        await self.tracking.record(
            booking_id=booking.id,
            status=BookingStatus.DRIVER_ASSIGNED.value,
            latitude=profile.current_lat,
            longitude=profile.current_lng,
            message=f"Accepted by {user.full_name}",
        )

        eta = eta_minutes(distance or 0.0, settings.city_speed_kmh)
        provider_info = {
            "id": user.id,
            "name": user.full_name,
            "phone": user.phone,
            "vehicle": " ".join(
                part for part in (profile.vehicle_make, profile.vehicle_model) if part
            )
            or None,
            "plate": profile.vehicle_plate,
            "rating": profile.rating,
        }
        await self.notifications.notify(
            booking.customer_id,
            NotificationType.BOOKING_ACCEPTED,
            "Booking Accepted",
            f"{user.full_name} accepted your booking and will arrive in about {eta} min",
            {"booking_id": booking.id, "provider": provider_info, "eta_minutes": eta},
            Priority.URGENT,
        )
        await self._broadcast(
            booking,
            profile.role,
            "booking_accepted",
            "booking_accepted",
            provider=provider_info,
            eta_minutes=eta,
        )
        logger.info("Booking %s accepted by provider %s", booking.id, user.id)
        return booking

    async def decline(
        self, user: UserModel, booking_id: int, reason: Optional[str] = None
    ) -> BookingOfferModel:
        await self.get_profile(user)
        booking = await self.get_booking(booking_id)
        offer = await self.offers.get_for_provider(booking.id, user.id)
        if offer is None:
            raise NotFound("No offer for this booking")
        if offer.status != OfferStatus.SENT:
            raise Conflict(f"Offer already {offer.status.value.lower()}")

        offer.status = OfferStatus.DECLINED
        offer.decline_reason = reason
        offer.responded_at = utcnow()
        logger.info("Provider %s declined booking %s", user.id, booking.id)
        return offer

    async def arrive(self, user: UserModel, booking_id: int) -> BookingModel:
        booking, profile = await self._assigned_booking(user, booking_id)
        if booking.status == BookingStatus.DRIVER_ARRIVED:
            return booking
        booking_machine.ensure(booking.status, BookingStatus.DRIVER_ARRIVED)

        booking.status = BookingStatus.DRIVER_ARRIVED
        booking.arrived_at = utcnow()
        await self.tracking.record(
            booking_id=booking.id,
            status=booking.status.value,
            latitude=profile.current_lat,
            longitude=profile.current_lng,
            message="Provider arrived at pickup",
        )
        await self.notifications.notify(
            booking.customer_id,
            NotificationType.BOOKING_UPDATE,
            "Provider Arrived",
            f"{user.full_name} has arrived at your pickup location",
            {"booking_id": booking.id},
            Priority.HIGH,
        )
        await self._broadcast(booking, profile.role, "driver_arrived", "status_update")
        return booking

    async def start(self, user: UserModel, booking_id: int) -> BookingModel:
        booking, profile = await self._assigned_booking(user, booking_id)
        booking_machine.ensure(booking.status, BookingStatus.IN_PROGRESS)

        booking.status = BookingStatus.IN_PROGRESS
        booking.started_at = utcnow()
        profile.is_available = False
        await self.tracking.record(
            booking_id=booking.id,
            status=booking.status.value,
            latitude=profile.current_lat,
            longitude=profile.current_lng,
            message="Trip started",
        )
        await self.notifications.notify(
            booking.customer_id,
            NotificationType.BOOKING_UPDATE,
            "Trip Started",
            "Your trip has started",
            {"booking_id": booking.id},
        )
        await self._broadcast(booking, profile.role, "trip_started", "status_update")
        return booking

    async def complete(
        self,
        user: UserModel,
        booking_id: int,
        actual_distance_km: Optional[float] = None,
        final_price: Optional[float] = None,
    ) -> BookingModel:
        booking, profile = await self._assigned_booking(user, booking_id)
        booking_machine.ensure(booking.status, BookingStatus.COMPLETED)

        day_hire = booking.kind == BookingKind.DAY
        # day hires are billed by the hour, not by distance
        price = self.pricing.final_price(
            booking.estimated_price,
            actual_distance_km=None if day_hire else actual_distance_km,
            surge_multiplier=booking.surge_multiplier,
            override=final_price,
        )
        commission, earning = self.pricing.split_commission(
            price,
            DAY_HIRE_COMMISSION_RATE if day_hire else BOOKING_COMMISSION_RATE,
            discount=active_plan(user).commission_discount,
        )

        now = utcnow()
        booking.status = BookingStatus.COMPLETED
        booking.completed_at = now
        booking.final_price = price
        booking.actual_distance_km = actual_distance_km
        booking.platform_commission = commission
        booking.provider_earning = earning

        profile.total_rides += 1
        profile.total_earnings = round(profile.total_earnings + earning, 2)
        profile.monthly_commission_due = round(
            profile.monthly_commission_due + commission, 2
        )
        profile.is_available = True

        await EarningRepository(self.session).add(
            DriverEarningModel(
                provider_id=user.id,
                booking_id=booking.id,
                gross_amount=price,
                commission=commission,
                net_amount=earning,
                week_starting=week_start(now),
                month_year=now.strftime("%Y-%m"),
            )
        )
        await self.tracking.record(
            booking_id=booking.id,
            status=booking.status.value,
            latitude=profile.current_lat,
            longitude=profile.current_lng,
            message="Trip completed",
        )

        await self.notifications.notify(
            booking.customer_id,
            NotificationType.TRIP_COMPLETED,
            "Trip Completed",
            f"Your trip is complete. Total: {settings.currency} {price:.2f}",
            {"booking_id": booking.id, "final_price": price},
            Priority.STANDARD,
        )
        await self.notifications.notify(
            booking.customer_id,
            NotificationType.REVIEW_REQUEST,
            "Rate Your Trip",
            f"How was your trip with {user.full_name}?",
            {"booking_id": booking.id, "provider_id": user.id},
            Priority.LOW,
        )
        await self._broadcast(
            booking,
            profile.role,
            "trip_completed",
            "status_update",
            final_price=price,
        )
        logger.info("Booking %s completed: price=%.2f", booking.id, price)
        return booking

    async def cancel(
        self, user: UserModel, booking_id: int, reason: Optional[str] = None
    ) -> BookingModel:
        """Customer (or admin) cancellation before the trip starts."""
        booking = await self.get_booking(booking_id)
        if booking.customer_id != user.id and user.role not in ADMIN_ROLES:
            raise PermissionDenied("You can only cancel your own bookings")
        booking_machine.ensure(booking.status, BookingStatus.CANCELLED)

        booking.status = BookingStatus.CANCELLED
        booking.cancelled_at = utcnow()
        booking.cancelled_by = user.id
        booking.cancellation_reason = reason
        await self.offers.close_open_offers(booking.id, OfferStatus.EXPIRED)
        await self.tracking.record(
            booking_id=booking.id,
            status=booking.status.value,
            message=reason or "Cancelled by customer",
        )

        provider_role = KIND_PROVIDER_ROLE.get(booking.kind, UserRole.DRIVER)
        if booking.provider_id:
            profile = await self.providers.get_by_user_id(booking.provider_id)
            if profile is not None:
                # a day hire does not hold the driver until it starts
                if booking.kind != BookingKind.DAY:
                    profile.is_available = True
                provider_role = profile.role
            await self.notifications.notify(
                booking.provider_id,
                NotificationType.BOOKING_CANCELLED,
                "Booking Cancelled",
                f"Booking {booking.booking_number} was cancelled by the customer",
                {"booking_id": booking.id, "reason": reason},
                Priority.HIGH,
            )
        await self._broadcast(
            booking, provider_role, "booking_cancelled", "status_update", reason=reason
        )
        return booking
