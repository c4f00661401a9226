"""
Customer booking endpoints (rides, taxis and day hires)
=======================================================

POST  /api/v1/bookings/estimate          -- fare estimate with live surge
POST  /api/v1/bookings                   -- create a booking (dispatch is async)
POST  /api/v1/bookings/day               -- hire a driver by the hour (Premium+)
GET   /api/v1/bookings/mine              -- the caller's rides, taxis and day hires
GET   /api/v1/bookings/{id}              -- one booking
GET   /api/v1/bookings/{id}/tracking     -- status / position history
PATCH /api/v1/bookings/{id}/cancel       -- cancel
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_current_user, get_db, get_realtime, get_webhooks
from src.api.middleware import RATE_LIMIT, limiter
from src.api.schemas import (
    BookingCreateRequest,
    BookingResponse,
    DayBookingRequest,
    FareEstimateRequest,
    ReasonRequest,
    TrackingResponse,
    dump,
    ok,
    paginated,
)
from src.domain.entities import Location
from src.domain.enums import BookingKind, BookingStatus
from src.domain.errors import ValidationFailed
from src.infrastructure.models import UserModel
from src.services.bookings import BookingService
from src.services.day_hire import DayHireService
from src.services.realtime import RealtimeBroadcaster
from src.services.webhooks import WebhookService

router = APIRouter(prefix="/bookings", tags=["bookings"])

CUSTOMER_KINDS = (BookingKind.RIDE, BookingKind.TAXI)
LISTED_KINDS = (*CUSTOMER_KINDS, BookingKind.DAY)


def _service(
    db: AsyncSession = Depends(get_db),
    realtime: RealtimeBroadcaster = Depends(get_realtime),
    webhooks: WebhookService = Depends(get_webhooks),
) -> BookingService:
    return BookingService(db, realtime, webhooks)


def _day_hire(
    db: AsyncSession = Depends(get_db),
    realtime: RealtimeBroadcaster = Depends(get_realtime),
    webhooks: WebhookService = Depends(get_webhooks),
) -> DayHireService:
    return DayHireService(db, realtime, webhooks)


def _kind(kind: BookingKind) -> BookingKind:
    if kind not in CUSTOMER_KINDS:
        raise ValidationFailed(
            "Use the moving, emergency or day hire endpoints for that service"
        )
    return kind


@router.post("/estimate", summary="Estimate a fare")
@limiter.limit(RATE_LIMIT)
async def estimate_fare(
    request: Request,
    body: FareEstimateRequest,
    service: BookingService = Depends(_service),
):
    estimate = await service.estimate(
        Location(body.pickup.latitude, body.pickup.longitude),
        Location(body.dropoff.latitude, body.dropoff.longitude),
        body.ride_type,
        _kind(body.kind),
    )
    return ok(estimate, "Fare estimated")


@router.post(
    "",
    status_code=201,
    summary="Create a booking",
    responses={201: {"description": "Booking created; dispatch runs in the background."}},
)
@limiter.limit(RATE_LIMIT)
async def create_booking(
    request: Request,
    body: BookingCreateRequest,
    user: UserModel = Depends(get_current_user),
    service: BookingService = Depends(_service),
):
    booking = await service.create(
        user,
        _kind(body.kind),
        Location(body.pickup.latitude, body.pickup.longitude),
        Location(body.dropoff.latitude, body.dropoff.longitude),
        pickup_address=body.pickup.address,
        dropoff_address=body.dropoff.address,
        booking_type=body.booking_type,
        scheduled_at=body.scheduled_at,
        ride_type=body.ride_type,
        notes=body.notes,
        idempotency_key=body.idempotency_key,
    )
    return ok(dump(BookingResponse, booking), "Booking created")


@router.post("/day", status_code=201, summary="Hire a driver by the hour")
@limiter.limit(RATE_LIMIT)
async def create_day_booking(
    request: Request,
    body: DayBookingRequest,
    user: UserModel = Depends(get_current_user),
    service: DayHireService = Depends(_day_hire),
):
    booking = await service.book(
        user,
        body.driver_id,
        body.scheduled_at,
        body.duration_hours,
        body.service_area,
        Location(body.pickup.latitude, body.pickup.longitude) if body.pickup else None,
        body.pickup.address if body.pickup else None,
        body.special_requirements,
        body.contact_phone,
    )
    return ok(dump(BookingResponse, booking), "Day booking created")


@router.get("/mine", summary="List my bookings")
@limiter.limit(RATE_LIMIT)
async def my_bookings(
    request: Request,
    status: Optional[BookingStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: UserModel = Depends(get_current_user),
    service: BookingService = Depends(_service),
):
    rows, total = await service.list_mine(user, LISTED_KINDS, status, page, limit)
    return paginated(rows, total, page, limit, BookingResponse)


@router.get("/{booking_id}", summary="Get a booking")
@limiter.limit(RATE_LIMIT)
async def get_booking(
    request: Request,
    booking_id: int,
    user: UserModel = Depends(get_current_user),
    service: BookingService = Depends(_service),
):
    return ok(dump(BookingResponse, await service.get(user, booking_id)))


@router.get("/{booking_id}/tracking", summary="Booking tracking history")
@limiter.limit(RATE_LIMIT)
async def booking_tracking(
    request: Request,
    booking_id: int,
    user: UserModel = Depends(get_current_user),
    service: BookingService = Depends(_service),
):
    history = await service.tracking_history(user, booking_id)
    return ok(dump(TrackingResponse, history))


@router.patch("/{booking_id}/cancel", summary="Cancel a booking")
@limiter.limit(RATE_LIMIT)
async def cancel_booking(
    request: Request,
    booking_id: int,
    body: Optional[ReasonRequest] = None,
    user: UserModel = Depends(get_current_user),
    service: BookingService = Depends(_service),
):
    booking = await service.cancel(user, booking_id, body.reason if body else None)
    return ok(dump(BookingResponse, booking), "Booking cancelled")
