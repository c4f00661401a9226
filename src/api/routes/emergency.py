"""
Emergency endpoints
===================

POST /api/v1/emergency              -- raise an emergency (dispatched at once)
GET  /api/v1/emergency/mine         -- my emergencies
GET  /api/v1/emergency/nearby       -- open emergencies near the responder
GET  /api/v1/emergency/analytics    -- breakdowns and response time (admin)
GET  /api/v1/emergency/{id}         -- one emergency
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import (
    get_current_user,
    get_db,
    get_realtime,
    get_webhooks,
    require_admin,
    require_roles,
)
from src.api.middleware import RATE_LIMIT, limiter
from src.api.schemas import (
    BookingResponse,
    EmergencyCreateRequest,
    dump,
    ok,
    paginated,
)
from src.domain.entities import Location
from src.domain.enums import BookingStatus, UserRole
from src.infrastructure.models import UserModel
from src.services.emergency import EmergencyService
from src.services.realtime import RealtimeBroadcaster
from src.services.webhooks import WebhookService

router = APIRouter(prefix="/emergency", tags=["emergency"])


def _service(
    db: AsyncSession = Depends(get_db),
    realtime: RealtimeBroadcaster = Depends(get_realtime),
    webhooks: WebhookService = Depends(get_webhooks),
) -> EmergencyService:
    return EmergencyService(db, realtime, webhooks)


@router.post("", status_code=201, summary="Raise an emergency")
@limiter.limit(RATE_LIMIT)
async def create_emergency(
    request: Request,
    body: EmergencyCreateRequest,
    user: UserModel = Depends(get_current_user),
    service: EmergencyService = Depends(_service),
):
    destination = (
        Location(body.destination.latitude, body.destination.longitude)
        if body.destination
        else None
    )
    result = await service.create(
        user,
        Location(body.location.latitude, body.location.longitude),
        body.emergency_type,
        body.severity,
        address=body.location.address,
        description=body.description,
        contact_phone=body.contact_phone,
        destination=destination,
        destination_address=body.destination.address if body.destination else None,
    )
    return ok(
        {
            "booking": dump(BookingResponse, result["booking"]),
            "dispatched_count": result["dispatched_count"],
        },
        "Emergency request created",
    )


@router.get("/mine", summary="My emergency requests")
@limiter.limit(RATE_LIMIT)
async def my_emergencies(
    request: Request,
    status: Optional[BookingStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: UserModel = Depends(get_current_user),
    service: EmergencyService = Depends(_service),
):
    rows, total = await service.list_mine(user, status, page, limit)
    return paginated(rows, total, page, limit, BookingResponse)


@router.get("/nearby", summary="Open emergencies near me (responders)")
@limiter.limit(RATE_LIMIT)
async def nearby_emergencies(
    request: Request,
    radius_km: Optional[float] = Query(None, gt=0, le=200),
    user: UserModel = Depends(require_roles(UserRole.EMERGENCY_RESPONDER)),
    service: EmergencyService = Depends(_service),
):
    nearby = await service.nearby_for_responder(user, radius_km)
    return ok(
        [
            {
                "booking": dump(BookingResponse, item["booking"]),
                "distance_km": item["distance_km"],
            }
            for item in nearby
        ]
    )


@router.get("/analytics", summary="Emergency analytics (admin)")
@limiter.limit(RATE_LIMIT)
async def emergency_analytics(
    request: Request,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    admin: UserModel = Depends(require_admin),
    service: EmergencyService = Depends(_service),
):
    return ok(await service.analytics(start, end))


@router.get("/{booking_id}", summary="Get an emergency")
@limiter.limit(RATE_LIMIT)
async def get_emergency(
    request: Request,
    booking_id: int,
    user: UserModel = Depends(get_current_user),
    service: EmergencyService = Depends(_service),
):
    return ok(dump(BookingResponse, await service.get(user, booking_id)))
