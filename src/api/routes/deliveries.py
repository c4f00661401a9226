"""
Customer delivery endpoints
===========================

POST  /api/v1/deliveries/estimate        -- fee estimate
POST  /api/v1/deliveries                 -- request a courier
GET   /api/v1/deliveries/track/{code}    -- public tracking by code
GET   /api/v1/deliveries/mine            -- my deliveries
GET   /api/v1/deliveries/statistics      -- totals (admin)
GET   /api/v1/deliveries/{id}            -- one delivery
PATCH /api/v1/deliveries/{id}/cancel     -- cancel
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from src.api.dependencies import get_current_user, require_admin
from src.api.middleware import RATE_LIMIT, limiter
from src.api.routes.dispatch_riders import delivery_service
from src.api.schemas import (
    DeliveryCreateRequest,
    DeliveryEstimateRequest,
    DeliveryResponse,
    ReasonRequest,
    TrackingResponse,
    dump,
    ok,
    paginated,
)
from src.domain.entities import Location
from src.domain.enums import DeliveryStatus
from src.infrastructure.models import UserModel
from src.services.deliveries import DeliveryService

router = APIRouter(prefix="/deliveries", tags=["deliveries"])


@router.post("/estimate", summary="Estimate a delivery fee")
@limiter.limit(RATE_LIMIT)
async def estimate_delivery(
    request: Request,
    body: DeliveryEstimateRequest,
    service: DeliveryService = Depends(delivery_service),
):
    estimate = service.estimate(
        Location(body.pickup.latitude, body.pickup.longitude),
        Location(body.dropoff.latitude, body.dropoff.longitude),
        body.delivery_type,
    )
    return ok(estimate, "Delivery fee estimated")


@router.post("", status_code=201, summary="Request a delivery")
@limiter.limit(RATE_LIMIT)
async def create_delivery(
    request: Request,
    body: DeliveryCreateRequest,
    user: UserModel = Depends(get_current_user),
    service: DeliveryService = Depends(delivery_service),
):
    delivery = await service.create(
        user,
        Location(body.pickup.latitude, body.pickup.longitude),
        Location(body.dropoff.latitude, body.dropoff.longitude),
        delivery_type=body.delivery_type,
        pickup_address=body.pickup.address,
        dropoff_address=body.dropoff.address,
        recipient_name=body.recipient_name,
        recipient_phone=body.recipient_phone,
        package_description=body.package_description,
    )
    return ok(dump(DeliveryResponse, delivery), "Delivery requested")


@router.get("/track/{code}", summary="Track a delivery by code")
@limiter.limit(RATE_LIMIT)
async def track_delivery(
    request: Request,
    code: str,
    service: DeliveryService = Depends(delivery_service),
):
    result = await service.track(code)
    return ok(
        {
            "delivery": dump(DeliveryResponse, result["delivery"]),
            "rider_location": result["rider_location"],
            "history": dump(TrackingResponse, result["history"]),
        }
    )


@router.get("/mine", summary="List my deliveries")
@limiter.limit(RATE_LIMIT)
async def my_deliveries(
    request: Request,
    status: Optional[DeliveryStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: UserModel = Depends(get_current_user),
    service: DeliveryService = Depends(delivery_service),
):
    rows, total = await service.list_mine(user, status, page, limit)
    return paginated(rows, total, page, limit, DeliveryResponse)


@router.get("/statistics", summary="Delivery statistics (admin)")
@limiter.limit(RATE_LIMIT)
async def delivery_statistics(
    request: Request,
    admin: UserModel = Depends(require_admin),
    service: DeliveryService = Depends(delivery_service),
):
    return ok(await service.statistics())


@router.get("/{delivery_id}", summary="Get a delivery")
@limiter.limit(RATE_LIMIT)
async def get_delivery(
    request: Request,
    delivery_id: int,
    user: UserModel = Depends(get_current_user),
    service: DeliveryService = Depends(delivery_service),
):
    return ok(dump(DeliveryResponse, await service.get(user, delivery_id)))


@router.patch("/{delivery_id}/cancel", summary="Cancel a delivery")
@limiter.limit(RATE_LIMIT)
async def cancel_delivery(
    request: Request,
    delivery_id: int,
    body: Optional[ReasonRequest] = None,
    user: UserModel = Depends(get_current_user),
    service: DeliveryService = Depends(delivery_service),
):
    delivery = await service.cancel(user, delivery_id, body.reason if body else None)
    return ok(dump(DeliveryResponse, delivery), "Delivery cancelled")
