"""
House moving: quotes and moving bookings.

A moving job is a SCHEDULED booking of kind MOVING whose price comes from
the moving quote rather than the ride fare model.  The full quote, the item
list and the requested extras travel in ``service_data`` so the mover sees
exactly what was priced.
"""

from __future__ import annotations

from dataclasses import asdict
from datetime import datetime
from typing import Any, Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.domain.distance import haversine_km
from src.domain.entities import Location, MovingItem, MovingQuote
from src.domain.enums import BookingKind, BookingType, ServiceTier, UserRole
from src.domain.matching import DISPATCH_PLANS
from src.domain.pricing import PricingEngine
from src.infrastructure.models import BookingModel, UserModel
from src.services.bookings import BookingService
from src.services.providers import nearby_providers
from src.services.realtime import RealtimeBroadcaster
from src.services.webhooks import WebhookService


class MovingService:
    def __init__(
        self,
        session: AsyncSession,
        realtime: RealtimeBroadcaster,
        webhooks: WebhookService,
    ):
        self.session = session
        self.bookings = BookingService(session, realtime, webhooks)

    @staticmethod
    def quote(
        pickup: Location,
        dropoff: Location,
        items: Iterable[MovingItem],
        tier: ServiceTier = ServiceTier.STANDARD,
        moving_date: Optional[datetime] = None,
        estimated_volume: Optional[float] = None,
        requires_packing: bool = False,
        requires_storage: bool = False,
        requires_disassembly: bool = False,
    ) -> MovingQuote:
        distance = haversine_km(
            pickup.latitude, pickup.longitude, dropoff.latitude, dropoff.longitude
        )
        return PricingEngine.moving_quote(
            distance,
            items,
            tier,
            moving_date=moving_date,
            estimated_volume=estimated_volume,
            requires_packing=requires_packing,
            requires_storage=requires_storage,
            requires_disassembly=requires_disassembly,
        )

    async def create(
        self,
        user: UserModel,
        pickup: Location,
        dropoff: Location,
        moving_date: datetime,
        items: list[MovingItem],
        *,
        tier: ServiceTier = ServiceTier.STANDARD,
        pickup_address: Optional[str] = None,
        dropoff_address: Optional[str] = None,
        estimated_volume: Optional[float] = None,
        requires_packing: bool = False,
        requires_storage: bool = False,
        requires_disassembly: bool = False,
        notes: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> BookingModel:
        quote = self.quote(
            pickup,
            dropoff,
            items,
            tier,
            moving_date,
            estimated_volume,
            requires_packing,
            requires_storage,
            requires_disassembly,
        )
        service_data: dict[str, Any] = {
            "service_tier": tier.value,
            "items": [asdict(item) for item in items],
            "estimated_volume": estimated_volume,
            "requires_packing": requires_packing,
            "requires_storage": requires_storage,
            "requires_disassembly": requires_disassembly,
            "quote": asdict(quote),
        }
        return await self.bookings.create(
            user,
            BookingKind.MOVING,
            pickup,
            dropoff,
            pickup_address=pickup_address,
            dropoff_address=dropoff_address,
            booking_type=BookingType.SCHEDULED,
            scheduled_at=moving_date,
            notes=notes,
            idempotency_key=idempotency_key,
            service_data=service_data,
            price=quote.total_price,
        )

    async def list_mine(self, user: UserModel, status=None, page: int = 1, limit: int = 20):
        return await self.bookings.list_mine(
            user, (BookingKind.MOVING,), status, page, limit
        )

    async def available_movers(
        self, lat: float, lng: float, radius_km: Optional[float] = None
    ) -> list[dict[str, Any]]:
        radius = radius_km or DISPATCH_PLANS[BookingKind.MOVING][0].radius_km
        movers = await nearby_providers(
            self.session, UserRole.HOUSE_MOVER, lat, lng, radius
        )
        return [
            {
                "provider_id": profile.user_id,
                "profile_id": profile.id,
                "distance_km": round(distance, 2),
                "vehicle_type": profile.vehicle_type,
                "capabilities": profile.capabilities or {},
                "rating": profile.rating,
            }
            for profile, distance in movers
        ]
