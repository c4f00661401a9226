"""
House moving endpoints
======================

POST /api/v1/moving/quote            -- price a move
POST /api/v1/moving/bookings         -- book a move (always scheduled)
GET  /api/v1/moving/bookings/mine    -- my moves
GET  /api/v1/moving/movers/nearby    -- verified movers around a point
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_current_user, get_db, get_realtime, get_webhooks
from src.api.middleware import RATE_LIMIT, limiter
from src.api.schemas import (
    BookingResponse,
    MovingBookingRequest,
    MovingQuoteRequest,
    dump,
    ok,
    paginated,
)
from src.domain.entities import Location, MovingItem
from src.domain.enums import BookingStatus
from src.infrastructure.models import UserModel
from src.services.moving import MovingService
from src.services.realtime import RealtimeBroadcaster
from src.services.webhooks import WebhookService

router = APIRouter(prefix="/moving", tags=["moving"])


def _service(
    db: AsyncSession = Depends(get_db),
    realtime: RealtimeBroadcaster = Depends(get_realtime),
    webhooks: WebhookService = Depends(get_webhooks),
) -> MovingService:
    return MovingService(db, realtime, webhooks)


def _items(body: MovingQuoteRequest) -> list[MovingItem]:
    return [MovingItem(**item.model_dump()) for item in body.items]


@router.post("/quote", summary="Quote a move")
@limiter.limit(RATE_LIMIT)
async def quote_move(request: Request, body: MovingQuoteRequest):
    quote = MovingService.quote(
        Location(body.pickup.latitude, body.pickup.longitude),
        Location(body.dropoff.latitude, body.dropoff.longitude),
        _items(body),
        body.service_tier,
        body.moving_date,
        body.estimated_volume,
        body.requires_packing,
        body.requires_storage,
        body.requires_disassembly,
    )
    return ok(quote, "Moving quote calculated")


@router.post("/bookings", status_code=201, summary="Book a move")
@limiter.limit(RATE_LIMIT)
async def create_move(
    request: Request,
    body: MovingBookingRequest,
    user: UserModel = Depends(get_current_user),
    service: MovingService = Depends(_service),
):
    booking = await service.create(
        user,
        Location(body.pickup.latitude, body.pickup.longitude),
        Location(body.dropoff.latitude, body.dropoff.longitude),
        body.moving_date,
        _items(body),
        tier=body.service_tier,
        pickup_address=body.pickup.address,
        dropoff_address=body.dropoff.address,
        estimated_volume=body.estimated_volume,
        requires_packing=body.requires_packing,
        requires_storage=body.requires_storage,
        requires_disassembly=body.requires_disassembly,
        notes=body.notes,
        idempotency_key=body.idempotency_key,
    )
    return ok(dump(BookingResponse, booking), "Moving booking created")


@router.get("/bookings/mine", summary="My moving bookings")
@limiter.limit(RATE_LIMIT)
async def my_moves(
    request: Request,
    status: Optional[BookingStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: UserModel = Depends(get_current_user),
    service: MovingService = Depends(_service),
):
    rows, total = await service.list_mine(user, status, page, limit)
    return paginated(rows, total, page, limit, BookingResponse)


@router.get("/movers/nearby", summary="Available movers near a point")
@limiter.limit(RATE_LIMIT)
async def nearby_movers(
    request: Request,
    latitude: float = Query(..., ge=-90, le=90),
    longitude: float = Query(..., ge=-180, le=180),
    radius_km: Optional[float] = Query(None, gt=0, le=200),
    user: UserModel = Depends(get_current_user),
    service: MovingService = Depends(_service),
):
    return ok(await service.available_movers(latitude, longitude, radius_km))
