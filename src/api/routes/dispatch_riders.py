"""
Dispatch rider delivery work
============================

GET  /api/v1/dispatch-riders/delivery-requests                 -- pending jobs nearby
POST /api/v1/dispatch-riders/deliveries/{id}/accept            -- claim a delivery
POST /api/v1/dispatch-riders/deliveries/{id}/decline
POST /api/v1/dispatch-riders/deliveries/{id}/start-pickup
POST /api/v1/dispatch-riders/deliveries/{id}/confirm-pickup
POST /api/v1/dispatch-riders/deliveries/{id}/start-delivery
POST /api/v1/dispatch-riders/deliveries/{id}/complete
POST /api/v1/dispatch-riders/deliveries/{id}/issues            -- report a problem
GET  /api/v1/dispatch-riders/deliveries                        -- my deliveries
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_db, get_realtime, get_webhooks, require_roles
from src.api.middleware import RATE_LIMIT, limiter
from src.api.schemas import (
    DeliveryResponse,
    IssueReportRequest,
    ReasonRequest,
    dump,
    ok,
    paginated,
)
from src.domain.enums import DeliveryStatus, UserRole
from src.infrastructure.models import UserModel
from src.services.deliveries import DeliveryService
from src.services.realtime import RealtimeBroadcaster
from src.services.webhooks import WebhookService

router = APIRouter(prefix="/dispatch-riders", tags=["dispatch-riders"])

rider = require_roles(UserRole.DISPATCHER)


def delivery_service(
    db: AsyncSession = Depends(get_db),
    realtime: RealtimeBroadcaster = Depends(get_realtime),
    webhooks: WebhookService = Depends(get_webhooks),
) -> DeliveryService:
    return DeliveryService(db, realtime, webhooks)


@router.get("/delivery-requests", summary="Pending delivery requests near me")
@limiter.limit(RATE_LIMIT)
async def delivery_requests(
    request: Request,
    user: UserModel = Depends(rider),
    service: DeliveryService = Depends(delivery_service),
):
    nearby = await service.requests_near(user)
    return ok(
        [
            {
                "delivery": dump(DeliveryResponse, item["delivery"]),
                "distance_km": item["distance_km"],
            }
            for item in nearby
        ]
    )


@router.get("/deliveries", summary="My deliveries")
@limiter.limit(RATE_LIMIT)
async def my_deliveries(
    request: Request,
    status: Optional[DeliveryStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: UserModel = Depends(rider),
    service: DeliveryService = Depends(delivery_service),
):
    rows, total = await service.rider_deliveries(user, status, page, limit)
    return paginated(rows, total, page, limit, DeliveryResponse)


@router.post("/deliveries/{delivery_id}/accept", summary="Accept a delivery")
@limiter.limit(RATE_LIMIT)
async def accept_delivery(
    request: Request,
    delivery_id: int,
    user: UserModel = Depends(rider),
    service: DeliveryService = Depends(delivery_service),
):
    delivery = await service.accept(user, delivery_id)
    return ok(dump(DeliveryResponse, delivery), "Delivery accepted")


@router.post("/deliveries/{delivery_id}/decline", summary="Decline a delivery")
@limiter.limit(RATE_LIMIT)
async def decline_delivery(
    request: Request,
    delivery_id: int,
    body: Optional[ReasonRequest] = None,
    user: UserModel = Depends(rider),
    service: DeliveryService = Depends(delivery_service),
):
    delivery = await service.decline(user, delivery_id, body.reason if body else None)
    return ok(dump(DeliveryResponse, delivery), "Delivery declined")


@router.post("/deliveries/{delivery_id}/start-pickup", summary="Head to the pickup")
@limiter.limit(RATE_LIMIT)
async def start_pickup(
    request: Request,
    delivery_id: int,
    user: UserModel = Depends(rider),
    service: DeliveryService = Depends(delivery_service),
):
    delivery = await service.start_pickup(user, delivery_id)
    return ok(dump(DeliveryResponse, delivery), "Pickup started")


@router.post("/deliveries/{delivery_id}/confirm-pickup", summary="Package collected")
@limiter.limit(RATE_LIMIT)
async def confirm_pickup(
    request: Request,
    delivery_id: int,
    user: UserModel = Depends(rider),
    service: DeliveryService = Depends(delivery_service),
):
    delivery = await service.confirm_pickup(user, delivery_id)
    return ok(dump(DeliveryResponse, delivery), "Pickup confirmed")


@router.post("/deliveries/{delivery_id}/start-delivery", summary="Head to the recipient")
@limiter.limit(RATE_LIMIT)
async def start_delivery(
    request: Request,
    delivery_id: int,
    user: UserModel = Depends(rider),
    service: DeliveryService = Depends(delivery_service),
):
    delivery = await service.start_delivery(user, delivery_id)
    return ok(dump(DeliveryResponse, delivery), "Delivery in transit")


@router.post("/deliveries/{delivery_id}/complete", summary="Delivered")
@limiter.limit(RATE_LIMIT)
async def complete_delivery(
    request: Request,
    delivery_id: int,
    user: UserModel = Depends(rider),
    service: DeliveryService = Depends(delivery_service),
):
    delivery = await service.complete(user, delivery_id)
    return ok(dump(DeliveryResponse, delivery), "Delivery completed")


@router.post("/deliveries/{delivery_id}/issues", summary="Report a delivery issue")
@limiter.limit(RATE_LIMIT)
async def report_issue(
    request: Request,
    delivery_id: int,
    body: IssueReportRequest,
    user: UserModel = Depends(rider),
    service: DeliveryService = Depends(delivery_service),
):
    delivery = await service.report_issue(
        user, delivery_id, body.issue_type, body.description
    )
    return ok(dump(DeliveryResponse, delivery), "Issue reported")
