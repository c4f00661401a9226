"""
Reviews
=======

POST   /api/v1/reviews              -- review a completed booking or a store
GET    /api/v1/reviews              -- filter by receiver_id or store_id
GET    /api/v1/reviews/mine         -- reviews I wrote
GET    /api/v1/reviews/stats        -- average and 1..5 distribution
GET    /api/v1/reviews/{id}
PUT    /api/v1/reviews/{id}         -- author only
DELETE /api/v1/reviews/{id}         -- author or admin
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_current_user, get_db, get_notifications
from src.api.middleware import RATE_LIMIT, limiter
from src.api.schemas import (
    ReviewCreateRequest,
    ReviewResponse,
    ReviewUpdateRequest,
    dump,
    ok,
    paginated,
)
from src.infrastructure.models import UserModel
from src.services.notifications import NotificationService
from src.services.reviews import ReviewService

router = APIRouter(prefix="/reviews", tags=["reviews"])


def _service(
    db: AsyncSession = Depends(get_db),
    notifications: NotificationService = Depends(get_notifications),
) -> ReviewService:
    return ReviewService(db, notifications)


@router.post("", status_code=201, summary="Submit a review")
@limiter.limit(RATE_LIMIT)
async def create_review(
    request: Request,
    body: ReviewCreateRequest,
    user: UserModel = Depends(get_current_user),
    service: ReviewService = Depends(_service),
):
    review = await service.create(user, body.model_dump())
    return ok(dump(ReviewResponse, review), "Review submitted")


@router.get("", summary="List reviews")
@limiter.limit(RATE_LIMIT)
async def list_reviews(
    request: Request,
    receiver_id: Optional[int] = None,
    store_id: Optional[int] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    service: ReviewService = Depends(_service),
):
    rows, total = await service.list_reviews(receiver_id, store_id, page, limit)
    return paginated(rows, total, page, limit, ReviewResponse)


@router.get("/mine", summary="Reviews I wrote")
@limiter.limit(RATE_LIMIT)
async def my_reviews(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: UserModel = Depends(get_current_user),
    service: ReviewService = Depends(_service),
):
    rows, total = await service.list_mine(user, page, limit)
    return paginated(rows, total, page, limit, ReviewResponse)


@router.get("/stats", summary="Rating statistics")
@limiter.limit(RATE_LIMIT)
async def review_stats(
    request: Request,
    receiver_id: Optional[int] = None,
    store_id: Optional[int] = None,
    service: ReviewService = Depends(_service),
):
    return ok(await service.stats(receiver_id, store_id))


@router.get("/{review_id}", summary="Get a review")
@limiter.limit(RATE_LIMIT)
async def get_review(
    request: Request, review_id: int, service: ReviewService = Depends(_service)
):
    return ok(dump(ReviewResponse, await service.get(review_id)))


@router.put("/{review_id}", summary="Edit my review")
@limiter.limit(RATE_LIMIT)
async def update_review(
    request: Request,
    review_id: int,
    body: ReviewUpdateRequest,
    user: UserModel = Depends(get_current_user),
    service: ReviewService = Depends(_service),
):
    review = await service.update(user, review_id, body.model_dump(exclude_unset=True))
    return ok(dump(ReviewResponse, review), "Review updated")


@router.delete("/{review_id}", summary="Delete a review")
@limiter.limit(RATE_LIMIT)
async def delete_review(
    request: Request,
    review_id: int,
    user: UserModel = Depends(get_current_user),
    service: ReviewService = Depends(_service),
):
    await service.delete(user, review_id)
    return ok(None, "Review deleted")
