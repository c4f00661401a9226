"""
Provider endpoints
==================

One router factory serves every provider role; each role gets the same
surface under its own prefix::

    /api/v1/drivers                 DRIVER
    /api/v1/taxi-drivers            TAXI_DRIVER
    /api/v1/moving/movers           HOUSE_MOVER
    /api/v1/emergency/responders    EMERGENCY_RESPONDER
    /api/v1/dispatch-riders         DISPATCHER (profile, zones, earnings only;
                                    the delivery work lives in dispatch_riders)

Profile and status
    POST  /onboard · GET /profile · PUT /profile
    PATCH /availability · PATCH /location

Work (booking roles)
    GET  /bookings · GET /bookings/active · GET /offers
    POST /bookings/{id}/accept | decline | arrive | start | complete

Day hire (drivers only)
    PUT /day-booking · GET /day-booking/schedule

Money and zones
    GET /earnings · GET|PUT /zones · POST /zones/transfer · GET /zones/statistics

Administration
    GET "" · POST /{profile_id}/verify · POST /{profile_id}/suspend
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import (
    get_db,
    get_realtime,
    get_webhooks,
    require_admin,
    require_roles,
)
from src.api.middleware import RATE_LIMIT, limiter
from src.api.schemas import (
    AvailabilityRequest,
    BookingResponse,
    CompleteRequest,
    DayHireSetupRequest,
    EarningResponse,
    LocationUpdateRequest,
    OfferResponse,
    OnboardRequest,
    ProfileUpdateRequest,
    ProviderProfileResponse,
    ReasonRequest,
    ServiceZonesRequest,
    ZoneResponse,
    ZoneTransferRequest,
    dump,
    ok,
    paginated,
)
from src.domain.enums import BookingStatus, UserRole, VerificationStatus
from src.infrastructure.models import UserModel
from src.services.day_hire import DayHireService
from src.services.lifecycle import BookingLifecycle
from src.services.providers import ProviderService
from src.services.realtime import RealtimeBroadcaster
from src.services.webhooks import WebhookService


def provider_service(
    db: AsyncSession = Depends(get_db),
    realtime: RealtimeBroadcaster = Depends(get_realtime),
    webhooks: WebhookService = Depends(get_webhooks),
) -> ProviderService:
    return ProviderService(db, realtime, webhooks)


def lifecycle_service(
    db: AsyncSession = Depends(get_db),
    realtime: RealtimeBroadcaster = Depends(get_realtime),
    webhooks: WebhookService = Depends(get_webhooks),
) -> BookingLifecycle:
    return BookingLifecycle(db, realtime, webhooks)


def day_hire_service(
    db: AsyncSession = Depends(get_db),
    realtime: RealtimeBroadcaster = Depends(get_realtime),
    webhooks: WebhookService = Depends(get_webhooks),
) -> DayHireService:
    return DayHireService(db, realtime, webhooks)


def _zones(links: list[dict]) -> list[dict]:
    return [
        {
            "zone": dump(ZoneResponse, link["zone"]),
            "is_primary": link["is_primary"],
            "can_accept_inter_regional": link["can_accept_inter_regional"],
        }
        for link in links
    ]


def make_provider_router(
    prefix: str,
    role: UserRole,
    tag: str,
    with_bookings: bool = True,
    with_day_hire: bool = False,
) -> APIRouter:
    router = APIRouter(prefix=prefix, tags=[tag])
    provider = require_roles(role)
    name_prefix = role.value.lower()

    def route(method: str, path: str, **kwargs) -> Callable:
        """Register *fn* under a role-specific name so rate limits stay per route."""

        def decorator(fn):
            fn.__name__ = f"{name_prefix}_{fn.__name__}"
            limited = limiter.limit(RATE_LIMIT)(fn)
            router.api_route(path, methods=[method], **kwargs)(limited)
            return limited

        return decorator

    # ── Profile ───────────────────────────────────────────────────

    @route("POST", "/onboard", status_code=201, summary="Create a provider profile")
    async def onboard(
        request: Request,
        body: OnboardRequest,
        user: UserModel = Depends(provider),
        service: ProviderService = Depends(provider_service),
    ):
        data = body.model_dump(exclude={"latitude", "longitude"})
        profile = await service.onboard(user, role, data, body.latitude, body.longitude)
        return ok(dump(ProviderProfileResponse, profile), "Profile created, pending verification")

    @route("GET", "/profile", summary="Get my provider profile")
    async def get_profile(
        request: Request,
        user: UserModel = Depends(provider),
        service: ProviderService = Depends(provider_service),
    ):
        return ok(dump(ProviderProfileResponse, await service.get_profile(user)))

    @route("PUT", "/profile", summary="Update my provider profile")
    async def update_profile(
        request: Request,
        body: ProfileUpdateRequest,
        user: UserModel = Depends(provider),
        service: ProviderService = Depends(provider_service),
    ):
        profile = await service.update_profile(user, body.model_dump(exclude_none=True))
        return ok(dump(ProviderProfileResponse, profile), "Profile updated")

    @route("PATCH", "/availability", summary="Go online / offline")
    async def set_availability(
        request: Request,
        body: AvailabilityRequest,
        user: UserModel = Depends(provider),
        service: ProviderService = Depends(provider_service),
    ):
        result = await service.set_availability(
            user, body.is_available, body.is_online, body.latitude, body.longitude
        )
        return ok(
            {
                "profile": dump(ProviderProfileResponse, result["profile"]),
                "zone_updated": result["zone_updated"],
            },
            "Availability updated",
        )

    @route("PATCH", "/location", summary="Report current position")
    async def update_location(
        request: Request,
        body: LocationUpdateRequest,
        user: UserModel = Depends(provider),
        service: ProviderService = Depends(provider_service),
    ):
        result = await service.update_location(
            user, body.latitude, body.longitude, body.heading, body.speed
        )
        return ok(
            {
                "profile": dump(ProviderProfileResponse, result["profile"]),
                "zone": dump(ZoneResponse, result["zone"]),
                "zone_changed": result["zone_changed"],
                "authorized": result["authorized"],
            },
            "Location updated",
        )

    # ── Work ──────────────────────────────────────────────────────

    if with_bookings:

        @route("GET", "/bookings", summary="My assigned bookings")
        async def list_bookings(
            request: Request,
            status: Optional[BookingStatus] = None,
            date_from: Optional[datetime] = None,
            date_to: Optional[datetime] = None,
            page: int = Query(1, ge=1),
            limit: int = Query(20, ge=1, le=100),
            user: UserModel = Depends(provider),
            service: ProviderService = Depends(provider_service),
        ):
            rows, total = await service.bookings(
                user, status, date_from, date_to, page, limit
            )
            return paginated(rows, total, page, limit, BookingResponse)

        @route("GET", "/bookings/active", summary="My current booking")
        async def active_booking(
            request: Request,
            user: UserModel = Depends(provider),
            service: ProviderService = Depends(provider_service),
        ):
            return ok(dump(BookingResponse, await service.active_booking(user)))

        @route("GET", "/offers", summary="Open booking offers")
        async def pending_offers(
            request: Request,
            user: UserModel = Depends(provider),
            service: ProviderService = Depends(provider_service),
        ):
            offers = await service.pending_offers(user)
            return ok(
                [
                    {
                        "offer": dump(OfferResponse, item["offer"]),
                        "booking": dump(BookingResponse, item["booking"]),
                    }
                    for item in offers
                ]
            )

        @route("POST", "/bookings/{booking_id}/accept", summary="Accept a booking")
        async def accept_booking(
            request: Request,
            booking_id: int,
            user: UserModel = Depends(provider),
            lifecycle: BookingLifecycle = Depends(lifecycle_service),
        ):
            booking = await lifecycle.accept(user, booking_id)
            return ok(dump(BookingResponse, booking), "Booking accepted")

        @route("POST", "/bookings/{booking_id}/decline", summary="Decline a booking offer")
        async def decline_booking(
            request: Request,
            booking_id: int,
            body: Optional[ReasonRequest] = None,
            user: UserModel = Depends(provider),
            lifecycle: BookingLifecycle = Depends(lifecycle_service),
        ):
            offer = await lifecycle.decline(user, booking_id, body.reason if body else None)
            return ok(dump(OfferResponse, offer), "Booking declined")

        @route("POST", "/bookings/{booking_id}/arrive", summary="Mark arrival at pickup")
        async def arrive(
            request: Request,
            booking_id: int,
            user: UserModel = Depends(provider),
            lifecycle: BookingLifecycle = Depends(lifecycle_service),
        ):
            booking = await lifecycle.arrive(user, booking_id)
            return ok(dump(BookingResponse, booking), "Arrival confirmed")

        @route("POST", "/bookings/{booking_id}/start", summary="Start the job")
        async def start(
            request: Request,
            booking_id: int,
            user: UserModel = Depends(provider),
            lifecycle: BookingLifecycle = Depends(lifecycle_service),
        ):
            booking = await lifecycle.start(user, booking_id)
            return ok(dump(BookingResponse, booking), "Trip started")

        @route("POST", "/bookings/{booking_id}/complete", summary="Complete the job")
        async def complete(
            request: Request,
            booking_id: int,
            body: Optional[CompleteRequest] = None,
            user: UserModel = Depends(provider),
            lifecycle: BookingLifecycle = Depends(lifecycle_service),
        ):
            body = body or CompleteRequest()
            booking = await lifecycle.complete(
                user, booking_id, body.actual_distance_km, body.final_price
            )
            return ok(dump(BookingResponse, booking), "Trip completed")

    # ── Earnings and zones ────────────────────────────────────────

    @route("GET", "/earnings", summary="Earnings summary and history")
    async def earnings(
        request: Request,
        page: int = Query(1, ge=1),
        limit: int = Query(20, ge=1, le=100),
        user: UserModel = Depends(provider),
        service: ProviderService = Depends(provider_service),
    ):
        summary = await service.earnings(user, page, limit)
        records = summary.pop("records")
        total = summary.pop("records_total")
        body = paginated(records, total, page, limit, EarningResponse)
        body["data"] = {**summary, "records": body["data"]}
        return body

    @route("GET", "/zones", summary="My service zones")
    async def service_zones(
        request: Request,
        user: UserModel = Depends(provider),
        service: ProviderService = Depends(provider_service),
    ):
        return ok(_zones(await service.service_zones(user)))

    @route("PUT", "/zones", summary="Replace my service zones")
    async def set_service_zones(
        request: Request,
        body: ServiceZonesRequest,
        user: UserModel = Depends(provider),
        service: ProviderService = Depends(provider_service),
    ):
        links = await service.set_service_zones(
            user, body.zone_ids, body.can_accept_inter_regional
        )
        return ok(_zones(links), "Service zones updated")

    @route("POST", "/zones/transfer", summary="Request a zone transfer")
    async def request_zone_transfer(
        request: Request,
        body: ZoneTransferRequest,
        user: UserModel = Depends(provider),
        service: ProviderService = Depends(provider_service),
    ):
        result = await service.request_zone_transfer(
            user, body.from_zone_id, body.to_zone_id, body.reason
        )
        return ok(result, "Zone transfer requested")

    @route("GET", "/zones/statistics", summary="Statistics for my current zone")
    async def zone_statistics(
        request: Request,
        user: UserModel = Depends(provider),
        service: ProviderService = Depends(provider_service),
    ):
        return ok(await service.zone_statistics(user))

    # ── Day hire (drivers) ────────────────────────────────────────

    if with_day_hire:

        @route("PUT", "/day-booking", summary="Offer day hire at an hourly rate")
        async def setup_day_booking(
            request: Request,
            body: DayHireSetupRequest,
            user: UserModel = Depends(provider),
            service: DayHireService = Depends(day_hire_service),
        ):
            profile = await service.setup(user, body.model_dump())
            return ok(dump(ProviderProfileResponse, profile), "Day booking settings updated")

        @route("GET", "/day-booking/schedule", summary="My upcoming day hires")
        async def day_booking_schedule(
            request: Request,
            user: UserModel = Depends(provider),
            service: DayHireService = Depends(day_hire_service),
        ):
            return ok(dump(BookingResponse, await service.schedule(user)))

    # ── Administration ────────────────────────────────────────────

    @route("GET", "", summary="List providers (admin)")
    async def list_providers(
        request: Request,
        verification_status: Optional[VerificationStatus] = None,
        page: int = Query(1, ge=1),
        limit: int = Query(20, ge=1, le=100),
        admin: UserModel = Depends(require_admin),
        service: ProviderService = Depends(provider_service),
    ):
        rows, total = await service.list_providers(role, verification_status, page, limit)
        return paginated(rows, total, page, limit, ProviderProfileResponse)

    @route("POST", "/{profile_id}/verify", summary="Verify a provider (admin)")
    async def verify(
        request: Request,
        profile_id: int,
        admin: UserModel = Depends(require_admin),
        service: ProviderService = Depends(provider_service),
    ):
        profile = await service.verify(admin, profile_id)
        return ok(dump(ProviderProfileResponse, profile), "Provider verified")

    @route("POST", "/{profile_id}/suspend", summary="Suspend a provider (admin)")
    async def suspend(
        request: Request,
        profile_id: int,
        body: Optional[ReasonRequest] = None,
        admin: UserModel = Depends(require_admin),
        service: ProviderService = Depends(provider_service),
    ):
        profile = await service.suspend(admin, profile_id, body.reason if body else None)
        return ok(dump(ProviderProfileResponse, profile), "Provider suspended")

    return router


drivers = make_provider_router(
    "/drivers", UserRole.DRIVER, "drivers", with_day_hire=True
)
taxi_drivers = make_provider_router("/taxi-drivers", UserRole.TAXI_DRIVER, "taxi-drivers")
movers = make_provider_router("/moving/movers", UserRole.HOUSE_MOVER, "moving")
responders = make_provider_router(
    "/emergency/responders", UserRole.EMERGENCY_RESPONDER, "emergency"
)
dispatch_riders = make_provider_router(
    "/dispatch-riders", UserRole.DISPATCHER, "dispatch-riders", with_bookings=False
)
