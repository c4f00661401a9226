"""
Subscription endpoints
======================

GET  /api/v1/subscriptions/plans      -- available plans
GET  /api/v1/subscriptions/me         -- my tier and expiry
GET  /api/v1/subscriptions/benefits   -- what my tier unlocks
POST /api/v1/subscriptions            -- subscribe to a plan
POST /api/v1/subscriptions/renew      -- extend the current plan
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_current_user, get_db, get_notifications
from src.api.middleware import RATE_LIMIT, limiter
from src.api.schemas import SubscribeRequest, ok
from src.infrastructure.models import UserModel
from src.services.notifications import NotificationService
from src.services.subscriptions import SubscriptionService

router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


def _service(
    db: AsyncSession = Depends(get_db),
    notifications: NotificationService = Depends(get_notifications),
) -> SubscriptionService:
    return SubscriptionService(db, notifications)


@router.get("/plans", summary="List subscription plans")
@limiter.limit(RATE_LIMIT)
async def list_plans(request: Request):
    return ok(SubscriptionService.list_plans())


@router.get("/me", summary="My subscription")
@limiter.limit(RATE_LIMIT)
async def my_subscription(request: Request, user: UserModel = Depends(get_current_user)):
    return ok(SubscriptionService.status(user))


@router.get("/benefits", summary="Benefits of my tier")
@limiter.limit(RATE_LIMIT)
async def my_benefits(request: Request, user: UserModel = Depends(get_current_user)):
    return ok(SubscriptionService.benefits(user))


@router.post("", summary="Subscribe to a plan")
@limiter.limit(RATE_LIMIT)
async def subscribe(
    request: Request,
    body: SubscribeRequest,
    user: UserModel = Depends(get_current_user),
    service: SubscriptionService = Depends(_service),
):
    return ok(await service.subscribe(user, body.plan_id), "Subscription activated")


@router.post("/renew", summary="Renew my subscription")
@limiter.limit(RATE_LIMIT)
async def renew(
    request: Request,
    user: UserModel = Depends(get_current_user),
    service: SubscriptionService = Depends(_service),
):
    return ok(await service.renew(user), "Subscription renewed")
