"""
Admin / observability endpoints
===============================

GET  /api/v1/admin/dashboard                 -- headline counters
GET  /api/v1/admin/metrics                   -- per-kind and hourly activity
GET  /api/v1/admin/pending-verifications     -- providers awaiting review
GET  /api/v1/admin/users/{id}                -- user with provider profile
POST /api/v1/admin/users/{id}/suspend
POST /api/v1/admin/users/{id}/reactivate
GET  /api/v1/admin/zones · POST /api/v1/admin/zones
POST /api/v1/admin/zones/setup-defaults      -- Ghana regional zones
GET  /api/v1/admin/zones/{id}/statistics
GET  /api/v1/admin/bookings/pending-approval -- inter-regional bookings on hold
POST /api/v1/admin/bookings/{id}/approve
POST /api/v1/admin/bookings/{id}/reject
GET  /api/v1/admin/realtime                  -- socket connection stats
GET  /api/v1/admin/health                    -- simple health check
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import (
    get_db,
    get_notifications,
    get_realtime,
    get_webhooks,
    require_admin,
)
from src.api.middleware import RATE_LIMIT, limiter
from src.api.schemas import (
    BookingResponse,
    HealthResponse,
    ProviderProfileResponse,
    ReasonRequest,
    RejectRequest,
    UserResponse,
    ZoneCreateRequest,
    ZoneResponse,
    dump,
    ok,
    paginated,
)
from src.infrastructure.models import UserModel
from src.services.admin import AdminService
from src.services.bookings import BookingService
from src.services.notifications import NotificationService
from src.services.providers import ProviderService
from src.services.realtime import RealtimeBroadcaster, manager
from src.services.webhooks import WebhookService
from src.services.zones import ZoneService

router = APIRouter(prefix="/admin", tags=["admin"])


def _service(
    db: AsyncSession = Depends(get_db),
    notifications: NotificationService = Depends(get_notifications),
) -> AdminService:
    return AdminService(db, notifications)


def _zones(
    db: AsyncSession = Depends(get_db),
    notifications: NotificationService = Depends(get_notifications),
) -> ZoneService:
    return ZoneService(db, notifications)


@router.get("/dashboard", summary="Dashboard counters")
@limiter.limit(RATE_LIMIT)
async def dashboard(
    request: Request,
    admin: UserModel = Depends(require_admin),
    service: AdminService = Depends(_service),
):
    return ok(await service.dashboard())


@router.get("/metrics", summary="Booking metrics over a period")
@limiter.limit(RATE_LIMIT)
async def metrics(
    request: Request,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    admin: UserModel = Depends(require_admin),
    service: AdminService = Depends(_service),
):
    return ok(await service.metrics(start, end))


@router.get("/pending-verifications", summary="Providers awaiting verification")
@limiter.limit(RATE_LIMIT)
async def pending_verifications(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    admin: UserModel = Depends(require_admin),
    service: AdminService = Depends(_service),
):
    rows, total = await service.pending_verifications(page, limit)
    return paginated(rows, total, page, limit, ProviderProfileResponse)


@router.get("/users/{user_id}", summary="User with provider profile")
@limiter.limit(RATE_LIMIT)
async def get_user(
    request: Request,
    user_id: int,
    admin: UserModel = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    realtime: RealtimeBroadcaster = Depends(get_realtime),
    webhooks: WebhookService = Depends(get_webhooks),
):
    result = await ProviderService(db, realtime, webhooks).profile_with_user(user_id)
    return ok(
        {
            "user": dump(UserResponse, result["user"]),
            "profile": dump(ProviderProfileResponse, result["profile"]),
        }
    )


@router.post("/users/{user_id}/suspend", summary="Suspend a user")
@limiter.limit(RATE_LIMIT)
async def suspend_user(
    request: Request,
    user_id: int,
    body: Optional[ReasonRequest] = None,
    admin: UserModel = Depends(require_admin),
    service: AdminService = Depends(_service),
):
    user = await service.suspend_user(admin, user_id, body.reason if body else None)
    return ok(dump(UserResponse, user), "User suspended")


@router.post("/users/{user_id}/reactivate", summary="Reactivate a user")
@limiter.limit(RATE_LIMIT)
async def reactivate_user(
    request: Request,
    user_id: int,
    admin: UserModel = Depends(require_admin),
    service: AdminService = Depends(_service),
):
    user = await service.reactivate_user(admin, user_id)
    return ok(dump(UserResponse, user), "User reactivated")


# ── Zones ─────────────────────────────────────────────────────────────


@router.get("/zones", summary="List service zones")
@limiter.limit(RATE_LIMIT)
async def list_zones(
    request: Request,
    admin: UserModel = Depends(require_admin),
    zones: ZoneService = Depends(_zones),
):
    return ok(dump(ZoneResponse, await zones.list_zones()))


@router.post("/zones", status_code=201, summary="Create a service zone")
@limiter.limit(RATE_LIMIT)
async def create_zone(
    request: Request,
    body: ZoneCreateRequest,
    admin: UserModel = Depends(require_admin),
    zones: ZoneService = Depends(_zones),
):
    zone = await zones.create_zone(**body.model_dump())
    return ok(dump(ZoneResponse, zone), "Zone created")


@router.post("/zones/setup-defaults", summary="Create the default regional zones")
@limiter.limit(RATE_LIMIT)
async def setup_default_zones(
    request: Request,
    admin: UserModel = Depends(require_admin),
    zones: ZoneService = Depends(_zones),
):
    created = await zones.setup_default_zones()
    return ok(dump(ZoneResponse, created), f"{len(created)} zones ready")


@router.get("/zones/{zone_id}/statistics", summary="Zone statistics")
@limiter.limit(RATE_LIMIT)
async def zone_statistics(
    request: Request,
    zone_id: int,
    admin: UserModel = Depends(require_admin),
    zones: ZoneService = Depends(_zones),
):
    return ok(await zones.zone_statistics(zone_id))


# ── Inter-regional approval ───────────────────────────────────────────


def _bookings(
    db: AsyncSession = Depends(get_db),
    realtime: RealtimeBroadcaster = Depends(get_realtime),
    webhooks: WebhookService = Depends(get_webhooks),
) -> BookingService:
    return BookingService(db, realtime, webhooks)


@router.get("/bookings/pending-approval", summary="Bookings awaiting approval")
@limiter.limit(RATE_LIMIT)
async def bookings_pending_approval(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    admin: UserModel = Depends(require_admin),
    bookings: BookingService = Depends(_bookings),
):
    rows, total = await bookings.list_awaiting_approval(page, limit)
    return paginated(rows, total, page, limit, BookingResponse)


@router.post("/bookings/{booking_id}/approve", summary="Approve an inter-regional booking")
@limiter.limit(RATE_LIMIT)
async def approve_booking(
    request: Request,
    booking_id: int,
    admin: UserModel = Depends(require_admin),
    bookings: BookingService = Depends(_bookings),
):
    booking = await bookings.approve(admin, booking_id)
    return ok(dump(BookingResponse, booking), "Booking approved")


@router.post("/bookings/{booking_id}/reject", summary="Reject an inter-regional booking")
@limiter.limit(RATE_LIMIT)
async def reject_booking(
    request: Request,
    booking_id: int,
    body: RejectRequest,
    admin: UserModel = Depends(require_admin),
    bookings: BookingService = Depends(_bookings),
):
    booking = await bookings.reject(admin, booking_id, body.reason)
    return ok(dump(BookingResponse, booking), "Booking rejected")


# ── Observability ─────────────────────────────────────────────────────


@router.get("/realtime", summary="WebSocket connection stats for this process")
@limiter.limit(RATE_LIMIT)
async def realtime_stats(request: Request, admin: UserModel = Depends(require_admin)):
    return ok(manager.stats())


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health():
    return HealthResponse(realtime_connections=manager.active_connections)
