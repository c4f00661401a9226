"""
Service zones
=============

Zones are either a circle (centre + ``radius_km``) or a polygon
``boundary``.  Detection walks active zones by descending priority, circles
first, then polygons, and returns the first hit.

Inter-regional trips
--------------------
A trip whose origin and destination fall in different zones is
inter-regional.  It is allowed only when both zones allow it and are
connected; the fee is the larger zone fee plus a per-km charge, and trips
touching high-risk regions or international zones need admin approval.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Any, Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.domain.distance import haversine_km, point_in_polygon
from src.domain.entities import InterRegionalCheck
from src.domain.enums import BookingStatus, NotificationType, Priority, ZoneType
from src.domain.errors import NotFound, PermissionDenied, ValidationFailed
from src.domain.pricing import PricingEngine
from src.infrastructure.models import (
    DriverProfileModel,
    DriverServiceZoneModel,
    ServiceZoneModel,
    UserModel,
)
from src.infrastructure.repositories import (
    BookingRepository,
    ProviderRepository,
    ZoneRepository,
)
from src.services.notifications import NotificationService

logger = logging.getLogger(__name__)

HIGH_RISK_REGIONS = ("Northern", "Upper East", "Upper West")

DEFAULT_ZONES: tuple[dict[str, Any], ...] = (
    {"name": "Greater Accra", "center_lat": 5.6037, "center_lng": -0.1870, "radius_km": 50},
    {"name": "Ashanti", "center_lat": 6.6885, "center_lng": -1.6244, "radius_km": 60},
    {"name": "Western", "center_lat": 5.2767, "center_lng": -2.3200, "radius_km": 70},
    {"name": "Central", "center_lat": 5.4518, "center_lng": -1.3955, "radius_km": 45},
    {"name": "Eastern", "center_lat": 6.1248, "center_lng": -0.8381, "radius_km": 55},
    {"name": "Northern", "center_lat": 9.4034, "center_lng": -0.8424, "radius_km": 80},
)
DEFAULT_INTER_REGIONAL_FEE = 50.0


def zone_contains(zone: ServiceZoneModel, lat: float, lng: float) -> bool:
    if zone.radius_km:
        return haversine_km(zone.center_lat, zone.center_lng, lat, lng) <= zone.radius_km
    if zone.boundary:
        return point_in_polygon(lat, lng, zone.boundary)
    return False


def detect_zone(
    zones: Iterable[ServiceZoneModel], lat: float, lng: float
) -> Optional[ServiceZoneModel]:
    """First matching zone; *zones* must already be in priority order."""
    zones = list(zones)
    for zone in zones:
        if zone.radius_km and zone_contains(zone, lat, lng):
            return zone
    for zone in zones:
        if not zone.radius_km and zone.boundary and zone_contains(zone, lat, lng):
            return zone
    return None


class ZoneService:
    def __init__(
        self,
        session: AsyncSession,
        notifications: Optional[NotificationService] = None,
    ):
        self.session = session
        self.notifications = notifications
        self.repo = ZoneRepository(session)
        self.pricing = PricingEngine()

    # ── Detection ─────────────────────────────────────────────────

    async def find_zone(self, lat: float, lng: float) -> Optional[ServiceZoneModel]:
        return detect_zone(await self.repo.get_active(), lat, lng)

    async def get_zone(self, zone_id: int) -> ServiceZoneModel:
        zone = await self.repo.get_by_id(zone_id)
        if zone is None:
            raise NotFound("Service zone not found")
        return zone

    def check_inter_regional(
        self,
        origin: Optional[ServiceZoneModel],
        destination: Optional[ServiceZoneModel],
        distance_km: float,
    ) -> InterRegionalCheck:
        if origin is None or destination is None or origin.id == destination.id:
            return InterRegionalCheck(allowed=True, is_inter_regional=False)

        if not (origin.allow_inter_regional and destination.allow_inter_regional):
            return InterRegionalCheck(
                allowed=False,
                is_inter_regional=True,
                reason="Inter-regional travel not allowed for these zones",
            )

        connected = destination.id in (origin.connected_zone_ids or []) or origin.id in (
            destination.connected_zone_ids or []
        )
        if not connected:
            return InterRegionalCheck(
                allowed=False,
                is_inter_regional=True,
                reason=f"No service route between {origin.name} and {destination.name}",
            )

        requires_approval = any(
            zone.name in HIGH_RISK_REGIONS or zone.zone_type == ZoneType.INTERNATIONAL
            for zone in (origin, destination)
        )
        return InterRegionalCheck(
            allowed=True,
            is_inter_regional=True,
            fee=self.pricing.inter_regional_fee(
                origin.inter_regional_fee, destination.inter_regional_fee, distance_km
            ),
            requires_approval=requires_approval,
        )

    # ── Provider membership ───────────────────────────────────────

    async def assign_provider(
        self,
        profile: DriverProfileModel,
        zone: ServiceZoneModel,
        is_primary: bool = False,
        can_accept_inter_regional: bool = False,
    ) -> DriverServiceZoneModel:
        link = await self.repo.get_link(profile.id, zone.id)
        if link is None:
            link = await self.repo.add(
                DriverServiceZoneModel(
                    provider_id=profile.id,
                    zone_id=zone.id,
                    is_primary=is_primary,
                    can_accept_inter_regional=can_accept_inter_regional,
                )
            )
        else:
            link.is_active = True
            link.is_primary = link.is_primary or is_primary
            link.can_accept_inter_regional = (
                link.can_accept_inter_regional or can_accept_inter_regional
            )
        profile.current_zone_id = profile.current_zone_id or zone.id
        logger.info("Provider %s assigned to zone %s", profile.id, zone.name)
        return link

    async def is_authorized(self, profile_id: int, zone_id: int) -> bool:
        link = await self.repo.get_link(profile_id, zone_id)
        return bool(link and link.is_active)

    async def can_accept_inter_regional(
        self,
        profile_id: int,
        origin_zone_id: Optional[int],
        destination_zone_id: Optional[int],
    ) -> bool:
        for zone_id in (origin_zone_id, destination_zone_id):
            if zone_id is None:
                continue
            link = await self.repo.get_link(profile_id, zone_id)
            if link and link.is_active and link.can_accept_inter_regional:
                return True
        return False

    async def provider_zones(
        self, profile: DriverProfileModel
    ) -> list[dict[str, Any]]:
        zones = []
        for link in await self.repo.get_provider_links(profile.id):
            zone = await self.repo.get_by_id(link.zone_id)
            zones.append(
                {
                    "zone": zone,
                    "is_primary": link.is_primary,
                    "can_accept_inter_regional": link.can_accept_inter_regional,
                }
            )
        return zones

    async def set_provider_zones(
        self,
        profile: DriverProfileModel,
        zone_ids: list[int],
        can_accept_inter_regional: bool = False,
    ) -> list[dict[str, Any]]:
        if not zone_ids:
            raise ValidationFailed("At least one service zone is required")

        wanted = set(zone_ids)
        for link in await self.repo.get_provider_links(profile.id, active_only=False):
            if link.zone_id not in wanted:
                link.is_active = False
        for index, zone_id in enumerate(zone_ids):
            zone = await self.get_zone(zone_id)
            link = await self.assign_provider(profile, zone, is_primary=index == 0)
            link.can_accept_inter_regional = can_accept_inter_regional
        await self.session.flush()
        return await self.provider_zones(profile)

    async def request_transfer(
        self,
        profile: DriverProfileModel,
        user: UserModel,
        from_zone_id: int,
        to_zone_id: int,
        reason: Optional[str] = None,
    ) -> dict[str, Any]:
        if not await self.is_authorized(profile.id, from_zone_id):
            raise PermissionDenied("Provider is not registered in the source zone")
        from_zone = await self.get_zone(from_zone_id)
        to_zone = await self.get_zone(to_zone_id)
        if not to_zone.is_active:
            raise ValidationFailed("Target zone is not active")

        request = {
            "provider_id": profile.id,
            "user_id": user.id,
            "from_zone": {"id": from_zone.id, "name": from_zone.name},
            "to_zone": {"id": to_zone.id, "name": to_zone.name},
            "reason": reason,
            "status": "PENDING",
        }
        if self.notifications:
            await self.notifications.notify_admins(
                NotificationType.ZONE_TRANSFER_REQUESTED,
                "Zone Transfer Request",
                f"{user.full_name} requests a transfer from "
                f"{from_zone.name} to {to_zone.name}",
                request,
                Priority.HIGH,
            )
        return request

    # ── Administration ────────────────────────────────────────────

    async def create_zone(self, **fields) -> ServiceZoneModel:
        if await self.repo.get_by_name(fields["name"]):
            raise ValidationFailed(f"Zone '{fields['name']}' already exists")
        if not fields.get("radius_km") and not fields.get("boundary"):
            raise ValidationFailed("A zone needs either a radius or a boundary")
        return await self.repo.add(ServiceZoneModel(**fields))

    async def list_zones(self) -> list[ServiceZoneModel]:
        return await self.repo.get_all()

    async def setup_default_zones(self) -> list[ServiceZoneModel]:
        """Create the Ghana regional zones (idempotent) and connect them all."""
        zones: list[ServiceZoneModel] = []
        for zone_def in DEFAULT_ZONES:
            zone = await self.repo.get_by_name(zone_def["name"])
            if zone is None:
                zone = await self.repo.add(
                    ServiceZoneModel(
                        zone_type=ZoneType.REGIONAL,
                        allow_inter_regional=True,
                        inter_regional_fee=DEFAULT_INTER_REGIONAL_FEE,
                        **zone_def,
                    )
                )
            zones.append(zone)

        ids = [z.id for z in zones]
        for zone in zones:
            zone.connected_zone_ids = [i for i in ids if i != zone.id]
        await self.session.flush()
        logger.info("Default zones ready: %d", len(zones))
        return zones

    async def zone_statistics(self, zone_id: int) -> dict[str, Any]:
        zone = await self.get_zone(zone_id)
        bookings = await BookingRepository(self.session).list_for_zone(zone.id)

        completed = [b for b in bookings if b.status == BookingStatus.COMPLETED]
        destinations = Counter(
            b.destination_zone_id
            for b in bookings
            if b.is_inter_regional and b.origin_zone_id == zone.id
        )
        top = []
        for dest_id, count in destinations.most_common(5):
            dest = await self.repo.get_by_id(dest_id)
            top.append({"zone_id": dest_id, "name": dest.name if dest else None, "bookings": count})

        return {
            "zone": {"id": zone.id, "name": zone.name},
            "total_bookings": len(bookings),
            "inter_regional_bookings": sum(1 for b in bookings if b.is_inter_regional),
            "completed_bookings": len(completed),
            "active_providers": await ProviderRepository(
                self.session
            ).count_active_in_zone(zone.id),
            "revenue": round(sum(b.final_price or 0.0 for b in completed), 2),
            "top_destinations": top,
        }
