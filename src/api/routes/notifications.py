"""
Notification inbox
==================

GET   /api/v1/notifications                 -- my notifications
GET   /api/v1/notifications/unread-count
PATCH /api/v1/notifications/read-all
PATCH /api/v1/notifications/{id}/read
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request

from src.api.dependencies import get_current_user, get_notifications
from src.api.middleware import RATE_LIMIT, limiter
from src.api.schemas import NotificationResponse, dump, ok, paginated
from src.infrastructure.models import UserModel
from src.services.notifications import NotificationService

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", summary="List my notifications")
@limiter.limit(RATE_LIMIT)
async def list_notifications(
    request: Request,
    unread_only: bool = False,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: UserModel = Depends(get_current_user),
    service: NotificationService = Depends(get_notifications),
):
    rows, total = await service.list_for_user(user.id, unread_only, page, limit)
    return paginated(rows, total, page, limit, NotificationResponse)


@router.get("/unread-count", summary="Number of unread notifications")
@limiter.limit(RATE_LIMIT)
async def unread_count(
    request: Request,
    user: UserModel = Depends(get_current_user),
    service: NotificationService = Depends(get_notifications),
):
    return ok({"unread": await service.unread_count(user.id)})


@router.patch("/read-all", summary="Mark everything read")
@limiter.limit(RATE_LIMIT)
async def mark_all_read(
    request: Request,
    user: UserModel = Depends(get_current_user),
    service: NotificationService = Depends(get_notifications),
):
    return ok({"updated": await service.mark_all_read(user.id)}, "All notifications read")


@router.patch("/{notification_id}/read", summary="Mark one notification read")
@limiter.limit(RATE_LIMIT)
async def mark_read(
    request: Request,
    notification_id: int,
    user: UserModel = Depends(get_current_user),
    service: NotificationService = Depends(get_notifications),
):
    notification = await service.mark_read(user.id, notification_id)
    return ok(dump(NotificationResponse, notification), "Notification read")
