"""
Day hire: customers book a chosen driver by the hour.

Drivers opt in with an hourly rate and the shortest and longest hire they
accept.  A day hire is a SCHEDULED booking of kind DAY that is created
already assigned to the driver, so it never goes through dispatch; the
driver works it through ``arrive -> start -> complete`` like any other
booking.  The hourly quote, duration and service area travel in
``service_data``.

Only Premium and Enterprise subscribers may book, and a driver cannot be
hired twice for overlapping hours.
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.domain.entities import Location
from src.domain.enums import (
    BookingKind,
    BookingStatus,
    BookingType,
    NotificationType,
    Priority,
    UserRole,
)
from src.domain.errors import Conflict, NotFound, PermissionDenied, ValidationFailed
from src.domain.pricing import DAY_HIRE_MAX_RATE
from src.infrastructure.database import utcnow
from src.infrastructure.models import BookingModel, DriverProfileModel, UserModel
from src.infrastructure.repositories import ProviderRepository, UserRepository
from src.services.bookings import BookingService
from src.services.lifecycle import booking_payload
from src.services.realtime import RealtimeBroadcaster
from src.services.subscriptions import SubscriptionService
from src.services.webhooks import WebhookService

logger = logging.getLogger(__name__)

MAX_DAY_HIRE_HOURS = 24
# Day hires that still hold the driver's time
BOOKED_STATUSES = (
    BookingStatus.DRIVER_ASSIGNED,
    BookingStatus.DRIVER_ARRIVED,
    BookingStatus.IN_PROGRESS,
)


def hire_window(booking: BookingModel) -> tuple[datetime, datetime]:
    hours = float((booking.service_data or {}).get("duration_hours", 0))
    return booking.scheduled_at, booking.scheduled_at + timedelta(hours=hours)


class DayHireService:
    def __init__(
        self,
        session: AsyncSession,
        realtime: RealtimeBroadcaster,
        webhooks: WebhookService,
    ):
        self.session = session
        self.webhooks = webhooks
        self.bookings = BookingService(session, realtime, webhooks)
        self.providers = ProviderRepository(session)

    # ── Driver ────────────────────────────────────────────────────

    async def _driver_profile(self, user: UserModel) -> DriverProfileModel:
        profile = await self.providers.get_by_user_id(user.id)
        if profile is None or profile.role != UserRole.DRIVER:
            raise NotFound("Driver profile not found")
        return profile

    async def setup(self, user: UserModel, data: dict[str, Any]) -> DriverProfileModel:
        profile = await self._driver_profile(user)
        if not profile.is_verified:
            raise PermissionDenied("Only verified drivers can offer day hire")
        if data["minimum_hours"] > data["maximum_hours"]:
            raise ValidationFailed("Minimum hours cannot exceed maximum hours")
        if data["hourly_rate"] > DAY_HIRE_MAX_RATE:
            raise ValidationFailed(f"Hourly rate cannot exceed {DAY_HIRE_MAX_RATE:.2f}")

        profile.day_booking_enabled = data["is_available"]
        profile.day_booking_rate = data["hourly_rate"]
        profile.day_booking_min_hours = data["minimum_hours"]
        profile.day_booking_max_hours = data["maximum_hours"]
        logger.info(
            "Driver %s day hire %s at %.2f/h",
            user.id,
            "enabled" if profile.day_booking_enabled else "disabled",
            profile.day_booking_rate,
        )
        return profile

    async def schedule(self, user: UserModel) -> list[BookingModel]:
        await self._driver_profile(user)
        return await self.bookings.repo.list_day_hires_for_provider(
            user.id, BOOKED_STATUSES
        )

    # ── Customer ──────────────────────────────────────────────────

    async def book(
        self,
        user: UserModel,
        driver_id: int,
        scheduled_at: datetime,
        duration_hours: float,
        service_area: str,
        pickup: Optional[Location] = None,
        pickup_address: Optional[str] = None,
        special_requirements: Optional[str] = None,
        contact_phone: Optional[str] = None,
    ) -> BookingModel:
        if not SubscriptionService.benefits(user)["day_booking"]:
            raise PermissionDenied(
                "Day booking requires Premium or Enterprise subscription"
            )
        if duration_hours <= 0:
            raise ValidationFailed("Duration must be greater than 0")
        if duration_hours > MAX_DAY_HIRE_HOURS:
            raise ValidationFailed(f"Duration cannot exceed {MAX_DAY_HIRE_HOURS} hours")
        if scheduled_at.tzinfo is not None:
            scheduled_at = scheduled_at.astimezone(timezone.utc).replace(tzinfo=None)
        if scheduled_at <= utcnow():
            raise ValidationFailed("Day hires must be scheduled in the future")

        profile = await self.providers.get_by_user_id(driver_id)
        if (
            profile is None
            or profile.role != UserRole.DRIVER
            or not profile.is_verified
            or not profile.day_booking_enabled
        ):
            raise NotFound("Driver is not available for day hire")
        low, high = profile.day_booking_min_hours, profile.day_booking_max_hours
        if not low <= duration_hours <= high:
            raise ValidationFailed(
                f"This driver takes day hires of {low} to {high} hours"
            )

        end = scheduled_at + timedelta(hours=duration_hours)
        for other in await self.bookings.repo.list_day_hires_for_provider(
            driver_id, BOOKED_STATUSES
        ):
            other_start, other_end = hire_window(other)
            if scheduled_at < other_end and other_start < end:
                raise Conflict("Driver is already booked for that time")

        if pickup is None:
            if profile.current_lat is None or profile.current_lng is None:
                raise ValidationFailed("Pickup location is required")
            pickup = Location(profile.current_lat, profile.current_lng)

        quote = self.bookings.pricing.day_hire_quote(
            duration_hours, scheduled_at, profile.day_booking_rate
        )
        booking = await self.bookings.create(
            user,
            BookingKind.DAY,
            pickup,
            pickup_address=pickup_address,
            booking_type=BookingType.SCHEDULED,
            scheduled_at=scheduled_at,
            notes=special_requirements,
            service_data={
                "duration_hours": duration_hours,
                "service_area": service_area,
                "special_requirements": special_requirements,
                "contact_phone": contact_phone,
                "pricing": asdict(quote),
            },
            price=quote.total_price,
        )
        return await self._assign(booking, profile, user)

    async def _assign(
        self, booking: BookingModel, profile: DriverProfileModel, customer: UserModel
    ) -> BookingModel:
        now = utcnow()
        hours = booking.service_data["duration_hours"]
        booking.status = BookingStatus.DRIVER_ASSIGNED
        booking.provider_id = profile.user_id
        booking.accepted_at = now
        booking.estimated_duration_min = round(hours * 60, 1)

        driver = await UserRepository(self.session).get_by_id(profile.user_id)
        await self.bookings.tracking.record(
            booking_id=booking.id,
            status=booking.status.value,
            message=f"Day hire assigned to {driver.full_name}",
        )
        data = booking_payload(
            booking,
            customer_id=customer.id,
            scheduled_at=booking.scheduled_at.isoformat(),
            duration_hours=hours,
            service_area=booking.service_data["service_area"],
            estimated_price=booking.estimated_price,
        )
        await self.bookings.notifications.notify(
            profile.user_id,
            NotificationType.DAY_BOOKING_ASSIGNED,
            "New Day Booking",
            f"You have a new day booking for {hours:g} hours",
            data,
            Priority.HIGH,
        )
        await self.bookings.realtime.notify_user(
            profile.user_id, "day_booking_assigned", data
        )
        await self.webhooks.send("day.booking_assigned", data, booking.id)
        logger.info(
            "Day hire %s: driver %s for %sh", booking.booking_number, profile.user_id, hours
        )
        return booking

    async def list_mine(self, user: UserModel, status=None, page: int = 1, limit: int = 20):
        return await self.bookings.list_mine(user, (BookingKind.DAY,), status, page, limit)
