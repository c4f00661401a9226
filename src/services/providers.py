"""
Provider profiles
=================

Shared by every provider role: ride drivers, taxi drivers, dispatch riders,
house movers and emergency responders all carry a ``driver_profiles`` row
that differs only in ``role`` and ``capabilities``.

Location updates
----------------
1. Detect the zone of the new position.
2. A provider is authorised when no zone covers the position or when it
   holds an active link to the detected zone.  Entering an unauthorised
   zone (position moved by more than 0.1 degrees) raises a CRITICAL safety
   alert to the provider.
3. Refresh the provider's H3 cell so dispatch lookups stay current.
4. Stream the position to customers of the provider's active jobs.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.domain.distance import moved_significantly
from src.domain.enums import (
    NotificationType,
    Priority,
    UserRole,
    VerificationStatus,
)
from src.domain.errors import Conflict, NotFound, PermissionDenied, ValidationFailed
from src.domain.lifecycle import ACTIVE_BOOKING_STATUSES, ACTIVE_DELIVERY_STATUSES
from src.domain.matching import cell_for, cells_within, rank_candidates
from src.infrastructure.database import utcnow
from src.infrastructure.models import DriverProfileModel, UserModel
from src.infrastructure.repositories import (
    AuditLogRepository,
    BookingRepository,
    DeliveryRepository,
    EarningRepository,
    OfferRepository,
    ProviderRepository,
    UserRepository,
)
from src.services.lifecycle import week_start
from src.services.notifications import NotificationService
from src.services.realtime import RealtimeBroadcaster, booking_room, delivery_room
from src.services.webhooks import WebhookService
from src.services.zones import ZoneService

logger = logging.getLogger(__name__)

PROFILE_FIELDS = (
    "license_number",
    "vehicle_make",
    "vehicle_model",
    "vehicle_plate",
    "vehicle_color",
    "vehicle_type",
    "capabilities",
)


async def nearby_providers(
    session: AsyncSession,
    role: UserRole,
    lat: float,
    lng: float,
    radius_km: float,
    limit: Optional[int] = None,
    exclude_user_ids: Iterable[int] = (),
) -> list[tuple[DriverProfileModel, float]]:
    """Available providers of *role* within *radius_km*, nearest first."""
    cells = cells_within(lat, lng, radius_km, settings.h3_resolution)
    candidates = await ProviderRepository(session).get_available_in_cells(
        role, cells, exclude_user_ids
    )
    return rank_candidates(lat, lng, candidates, radius_km, limit)


class ProviderService:
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
        self.repo = ProviderRepository(session)

    async def get_profile(self, user: UserModel) -> DriverProfileModel:
        profile = await self.repo.get_by_user_id(user.id)
        if profile is None:
            raise NotFound("Provider profile not found")
        return profile

    def _place(self, profile: DriverProfileModel, lat: float, lng: float) -> None:
        profile.current_lat = lat
        profile.current_lng = lng
        profile.h3_cell = cell_for(lat, lng, settings.h3_resolution)
        profile.last_location_at = utcnow()

    # ── Profile ───────────────────────────────────────────────────

    async def onboard(
        self,
        user: UserModel,
        role: UserRole,
        data: dict[str, Any],
        lat: Optional[float] = None,
        lng: Optional[float] = None,
    ) -> DriverProfileModel:
        if user.role != role:
            raise PermissionDenied(f"Only {role.value} accounts can onboard here")
        if await self.repo.get_by_user_id(user.id):
            raise Conflict("Provider profile already exists")

        profile = DriverProfileModel(
            user_id=user.id,
            role=role,
            verification_status=VerificationStatus.PENDING,
            **{k: v for k, v in data.items() if k in PROFILE_FIELDS},
        )
        if lat is not None and lng is not None:
            self._place(profile, lat, lng)
        await self.repo.add(profile)

        if lat is not None and lng is not None:
            zone = await self.zones.find_zone(lat, lng)
            if zone is not None:
                await self.zones.assign_provider(profile, zone, is_primary=True)

        await self.notifications.notify_admins(
            NotificationType.SYSTEM_ALERT,
            "New Provider Registration",
            f"{user.full_name} registered as {role.value} and awaits verification",
            {"provider_id": profile.id, "user_id": user.id, "role": role.value},
            Priority.HIGH,
        )
        logger.info("Provider %s onboarded as %s", user.id, role.value)
        return profile

    async def update_profile(
        self, user: UserModel, data: dict[str, Any]
    ) -> DriverProfileModel:
        profile = await self.get_profile(user)
        for key, value in data.items():
            if key in PROFILE_FIELDS and value is not None:
                setattr(profile, key, value)
        for key in ("first_name", "last_name", "phone"):
            if data.get(key) is not None:
                setattr(user, key, data[key])
        return profile

    # ── Availability / location ───────────────────────────────────

    async def set_availability(
        self,
        user: UserModel,
        is_available: bool,
        is_online: Optional[bool] = None,
        lat: Optional[float] = None,
        lng: Optional[float] = None,
    ) -> dict[str, Any]:
        profile = await self.get_profile(user)
        if is_available and not profile.is_verified:
            raise ValidationFailed("Provider must be verified before going available")

        profile.is_available = is_available
        profile.is_online = is_available if is_online is None else is_online

        zone_updated = False
        if lat is not None and lng is not None:
            self._place(profile, lat, lng)
            zone = await self.zones.find_zone(lat, lng)
            if zone is not None and zone.id != profile.current_zone_id:
                profile.current_zone_id = zone.id
                zone_updated = True
                await self.notifications.notify(
                    user.id,
                    NotificationType.SYSTEM_ALERT,
                    "Service Zone Updated",
                    f"You are now operating in {zone.name}",
                    {"zone_id": zone.id, "zone_name": zone.name},
                )

        data = {
            "provider_id": profile.id,
            "user_id": user.id,
            "role": profile.role.value,
            "is_available": profile.is_available,
            "is_online": profile.is_online,
            "zone_id": profile.current_zone_id,
        }
        await self.realtime.notify_user(user.id, "availability_updated", data)
        await self.webhooks.send(
            f"{profile.role.value.lower()}.availability_change", data, profile.id
        )
        return {"profile": profile, "zone_updated": zone_updated}

    async def update_location(
        self,
        user: UserModel,
        lat: float,
        lng: float,
        heading: Optional[float] = None,
        speed: Optional[float] = None,
    ) -> dict[str, Any]:
        profile = await self.get_profile(user)
        zone_changed = moved_significantly(
            profile.current_lat, profile.current_lng, lat, lng
        )
        zone = await self.zones.find_zone(lat, lng)
        authorized = zone is None or await self.zones.is_authorized(profile.id, zone.id)

        if zone is not None and not authorized and zone_changed:
            await self.notifications.notify(
                user.id,
                NotificationType.SAFETY_ALERT,
                "Unauthorized Service Zone",
                f"You have entered {zone.name}, which is outside your registered "
                "service zones",
                {"zone_id": zone.id, "zone_name": zone.name},
                Priority.CRITICAL,
            )
            logger.warning(
                "Provider %s entered unauthorised zone %s", profile.id, zone.name
            )

        self._place(profile, lat, lng)
        if zone is not None and authorized:
            profile.current_zone_id = zone.id

        location = {
            "provider_id": user.id,
            "latitude": lat,
            "longitude": lng,
            "heading": heading,
            "speed": speed,
            "timestamp": profile.last_location_at,
        }
        bookings = await BookingRepository(self.session).list_active_for_provider(
            user.id, ACTIVE_BOOKING_STATUSES
        )
        for booking in bookings:
            await self.realtime.emit_to_room(
                booking_room(booking.id),
                "driver_location_update",
                {"booking_id": booking.id, **location},
            )
            await self.realtime.notify_user(
                booking.customer_id,
                "driver_location_update",
                {"booking_id": booking.id, **location},
            )

        if profile.role == UserRole.DISPATCHER:
            deliveries = await DeliveryRepository(self.session).list_active_for_rider(
                user.id, ACTIVE_DELIVERY_STATUSES
            )
            for delivery in deliveries:
                await self.realtime.emit_to_room(
                    delivery_room(delivery.id),
                    "driver_location_update",
                    {"delivery_id": delivery.id, **location},
                )

        if profile.role in (UserRole.TAXI_DRIVER, UserRole.DISPATCHER):
            await self.webhooks.send(
                f"{profile.role.value.lower()}.location_update", location, profile.id
            )

        return {
            "profile": profile,
            "zone": zone,
            "zone_changed": zone_changed,
            "authorized": authorized,
        }

    # ── Work ──────────────────────────────────────────────────────

    async def bookings(
        self,
        user: UserModel,
        status=None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        page: int = 1,
        limit: int = 20,
    ):
        await self.get_profile(user)
        return await BookingRepository(self.session).list_for_provider(
            user.id, status, date_from, date_to, page, limit
        )

    async def pending_offers(self, user: UserModel) -> list[dict[str, Any]]:
        await self.get_profile(user)
        offers = await OfferRepository(self.session).list_pending_for_provider(
            user.id, utcnow()
        )
        bookings = BookingRepository(self.session)
        result = []
        for offer in offers:
            booking = await bookings.get_by_id(offer.booking_id)
            result.append({"offer": offer, "booking": booking})
        return result

    async def active_booking(self, user: UserModel):
        await self.get_profile(user)
        return await BookingRepository(self.session).get_active_for_provider(
            user.id, ACTIVE_BOOKING_STATUSES
        )

    async def earnings(
        self, user: UserModel, page: int = 1, limit: int = 20
    ) -> dict[str, Any]:
        profile = await self.get_profile(user)
        repo = EarningRepository(self.session)
        now = utcnow()
        week_from = datetime.combine(week_start(now), datetime.min.time())
        month_from = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        records, total = await repo.list_for_provider(user.id, page, limit)
        return {
            "total_earnings": await repo.total_since(user.id),
            "week_earnings": await repo.total_since(user.id, week_from),
            "month_earnings": await repo.total_since(user.id, month_from),
            "total_jobs": profile.total_rides,
            "commission_due": profile.monthly_commission_due,
            "records": records,
            "records_total": total,
        }

    # ── Zones ─────────────────────────────────────────────────────

    async def service_zones(self, user: UserModel) -> list[dict[str, Any]]:
        return await self.zones.provider_zones(await self.get_profile(user))

    async def set_service_zones(
        self, user: UserModel, zone_ids: list[int], can_accept_inter_regional: bool
    ) -> list[dict[str, Any]]:
        profile = await self.get_profile(user)
        return await self.zones.set_provider_zones(
            profile, zone_ids, can_accept_inter_regional
        )

    async def request_zone_transfer(
        self,
        user: UserModel,
        from_zone_id: int,
        to_zone_id: int,
        reason: Optional[str] = None,
    ) -> dict[str, Any]:
        profile = await self.get_profile(user)
        return await self.zones.request_transfer(
            profile, user, from_zone_id, to_zone_id, reason
        )

    async def zone_statistics(self, user: UserModel) -> dict[str, Any]:
        profile = await self.get_profile(user)
        if profile.current_zone_id is None:
            raise NotFound("Provider is not in a service zone")
        return await self.zones.zone_statistics(profile.current_zone_id)

    # ── Administration ────────────────────────────────────────────

    async def list_providers(
        self,
        role: Optional[UserRole] = None,
        verification_status: Optional[VerificationStatus] = None,
        page: int = 1,
        limit: int = 20,
    ):
        return await self.repo.list_providers(role, verification_status, page, limit)

    async def _profile_by_id(self, profile_id: int) -> DriverProfileModel:
        profile = await self.repo.get_by_id(profile_id)
        if profile is None:
            raise NotFound("Provider profile not found")
        return profile

    async def verify(self, admin: UserModel, profile_id: int) -> DriverProfileModel:
        profile = await self._profile_by_id(profile_id)
        profile.verification_status = VerificationStatus.APPROVED
        await AuditLogRepository(self.session).record(
            "PROVIDER_VERIFIED", "driver_profile", profile.id, admin.id
        )
        await self.notifications.notify(
            profile.user_id,
            NotificationType.SYSTEM_ALERT,
            "Account Verified",
            "Your provider account has been verified. You can now go online.",
            {"provider_id": profile.id},
            Priority.HIGH,
        )
        return profile

    async def suspend(
        self, admin: UserModel, profile_id: int, reason: Optional[str] = None
    ) -> DriverProfileModel:
        profile = await self._profile_by_id(profile_id)
        profile.verification_status = VerificationStatus.REJECTED
        profile.is_available = False
        profile.is_online = False
        await AuditLogRepository(self.session).record(
            "PROVIDER_SUSPENDED",
            "driver_profile",
            profile.id,
            admin.id,
            {"reason": reason},
        )
        await self.notifications.notify(
            profile.user_id,
            NotificationType.SAFETY_ALERT,
            "Account Suspended",
            f"Your provider account has been suspended. Reason: {reason or 'not given'}",
            {"provider_id": profile.id, "reason": reason},
            Priority.CRITICAL,
        )
        return profile

    async def profile_with_user(self, user_id: int) -> dict[str, Any]:
        user = await UserRepository(self.session).get_by_id(user_id)
        if user is None:
            raise NotFound("User not found")
        profile = await self.repo.get_by_user_id(user_id)
        return {"user": user, "profile": profile}
