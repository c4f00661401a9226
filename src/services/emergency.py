"""
Emergency requests
==================

An emergency is a free booking of kind EMERGENCY.  It skips the
subscription limit and is dispatched on creation instead of waiting for the
next dispatcher cycle: the nearest responders of the first plan attempt get
a CRITICAL ``EMERGENCY_DISPATCH`` notification and an offer.  Later attempts
(wider radius) are left to the dispatcher.
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.domain.distance import haversine_km
from src.domain.entities import Location
from src.domain.enums import BookingKind, BookingStatus, EmergencySeverity, UserRole
from src.domain.errors import NotFound, ValidationFailed
from src.domain.matching import DISPATCH_PLANS
from src.infrastructure.models import BookingModel, UserModel
from src.infrastructure.repositories import (
    AuditLogRepository,
    BookingRepository,
    ProviderRepository,
)
from src.services.bookings import BookingService
from src.services.realtime import RealtimeBroadcaster
from src.services.webhooks import WebhookService
from src.workers.dispatcher import offer_booking

logger = logging.getLogger(__name__)


class EmergencyService:
    def __init__(
        self,
        session: AsyncSession,
        realtime: RealtimeBroadcaster,
        webhooks: WebhookService,
    ):
        self.session = session
        self.realtime = realtime
        self.bookings = BookingService(session, realtime, webhooks)
        self.repo = BookingRepository(session)

    async def create(
        self,
        user: UserModel,
        location: Location,
        emergency_type: str,
        severity: EmergencySeverity = EmergencySeverity.HIGH,
        *,
        address: Optional[str] = None,
        description: Optional[str] = None,
        contact_phone: Optional[str] = None,
        destination: Optional[Location] = None,
        destination_address: Optional[str] = None,
    ) -> dict[str, Any]:
        booking = await self.bookings.create(
            user,
            BookingKind.EMERGENCY,
            location,
            destination,
            pickup_address=address,
            dropoff_address=destination_address,
            notes=description,
            service_data={
                "emergency_type": emergency_type,
                "severity": severity.value,
                "description": description,
                "contact_phone": contact_phone or user.phone,
            },
            price=0.0,
            enforce_limit=False,
        )

        dispatched = await offer_booking(self.session, self.realtime, booking)
        await AuditLogRepository(self.session).record(
            "EMERGENCY_DISPATCHED",
            "booking",
            booking.id,
            user.id,
            {
                "emergency_type": emergency_type,
                "severity": severity.value,
                "responders_notified": dispatched,
            },
        )
        if not dispatched:
            logger.warning("Emergency %s: no responder in range", booking.id)
        return {"booking": booking, "dispatched_count": dispatched}

    async def list_mine(self, user: UserModel, status=None, page: int = 1, limit: int = 20):
        return await self.bookings.list_mine(
            user, (BookingKind.EMERGENCY,), status, page, limit
        )

    async def nearby_for_responder(
        self, user: UserModel, radius_km: Optional[float] = None
    ) -> list[dict[str, Any]]:
        profile = await ProviderRepository(self.session).get_by_user_id(user.id)
        if profile is None or profile.role != UserRole.EMERGENCY_RESPONDER:
            raise NotFound("Emergency responder profile not found")
        if profile.current_lat is None or profile.current_lng is None:
            raise ValidationFailed("Update your location to see nearby emergencies")

        radius = radius_km or DISPATCH_PLANS[BookingKind.EMERGENCY][0].radius_km
        nearby = []
        for booking in await self.repo.list_pending_of_kind(BookingKind.EMERGENCY):
            distance = haversine_km(
                profile.current_lat,
                profile.current_lng,
                booking.pickup_lat,
                booking.pickup_lng,
            )
            if distance <= radius:
                nearby.append({"booking": booking, "distance_km": round(distance, 2)})
        nearby.sort(key=lambda item: item["distance_km"])
        return nearby

    async def analytics(
        self, start: Optional[datetime] = None, end: Optional[datetime] = None
    ) -> dict[str, Any]:
        emergencies = [
            b
            for b in await self.repo.list_between(start, end)
            if b.kind == BookingKind.EMERGENCY
        ]
        by_type = Counter(
            (b.service_data or {}).get("emergency_type", "UNKNOWN") for b in emergencies
        )
        by_severity = Counter(
            (b.service_data or {}).get("severity", "UNKNOWN") for b in emergencies
        )
        by_status = Counter(b.status.value for b in emergencies)
        response_minutes = [
            (b.accepted_at - b.created_at).total_seconds() / 60
            for b in emergencies
            if b.accepted_at and b.created_at
        ]
        return {
            "total": len(emergencies),
            "by_type": dict(by_type),
            "by_severity": dict(by_severity),
            "by_status": dict(by_status),
            "resolved": by_status.get(BookingStatus.COMPLETED.value, 0),
            "average_response_minutes": (
                round(sum(response_minutes) / len(response_minutes), 1)
                if response_minutes
                else None
            ),
        }

    async def get(self, user: UserModel, booking_id: int) -> BookingModel:
        booking = await self.bookings.get(user, booking_id)
        if booking.kind != BookingKind.EMERGENCY:
            raise NotFound("Emergency not found")
        return booking
