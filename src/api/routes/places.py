"""
Community places
================

Public
    GET  /api/v1/places                         -- approved places (filter, text)
    GET  /api/v1/places/nearby                  -- approved places around a point
    GET  /api/v1/places/categories              -- active categories
    GET  /api/v1/places/categories/{id}/places
    GET  /api/v1/places/{id}
    GET  /api/v1/places/{id}/votes              -- like / dislike summary
    GET  /api/v1/places/{id}/category-suggestions
    POST /api/v1/places/{id}/votes/anonymous    -- vote with a session id

Signed in
    POST   /api/v1/places                       -- submit (admins auto-approve)
    PUT    /api/v1/places/{id} · DELETE /api/v1/places/{id}
    POST   /api/v1/places/{id}/votes
    GET    /api/v1/places/votes/mine

Moderation (admin)
    GET  /api/v1/places/admin/all · GET /api/v1/places/admin/pending
    POST /api/v1/places/{id}/approve · POST /api/v1/places/{id}/reject
    POST /api/v1/places/categories · PUT /api/v1/places/categories/{id}
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import (
    get_current_user,
    get_db,
    get_notifications,
    get_optional_user,
    require_admin,
)
from src.api.middleware import RATE_LIMIT, limiter
from src.api.schemas import (
    AnonymousVoteRequest,
    CategoryCreateRequest,
    CategoryResponse,
    CategoryUpdateRequest,
    PlaceCreateRequest,
    PlaceResponse,
    PlaceUpdateRequest,
    RejectRequest,
    VoteRequest,
    VoteResponse,
    dump,
    ok,
    paginated,
)
from src.domain.enums import PlaceStatus
from src.infrastructure.models import UserModel
from src.services.notifications import NotificationService
from src.services.places import PlaceService

router = APIRouter(prefix="/places", tags=["places"])


def _service(
    db: AsyncSession = Depends(get_db),
    notifications: NotificationService = Depends(get_notifications),
) -> PlaceService:
    return PlaceService(db, notifications)


# ── Categories ────────────────────────────────────────────────────────


@router.get("/categories", summary="List place categories")
@limiter.limit(RATE_LIMIT)
async def list_categories(request: Request, service: PlaceService = Depends(_service)):
    return ok(dump(CategoryResponse, await service.list_categories()))


@router.post("/categories", status_code=201, summary="Create a category (admin)")
@limiter.limit(RATE_LIMIT)
async def create_category(
    request: Request,
    body: CategoryCreateRequest,
    admin: UserModel = Depends(require_admin),
    service: PlaceService = Depends(_service),
):
    category = await service.create_category(body.model_dump())
    return ok(dump(CategoryResponse, category), "Category created")


@router.put("/categories/{category_id}", summary="Update a category (admin)")
@limiter.limit(RATE_LIMIT)
async def update_category(
    request: Request,
    category_id: int,
    body: CategoryUpdateRequest,
    admin: UserModel = Depends(require_admin),
    service: PlaceService = Depends(_service),
):
    category = await service.update_category(category_id, body.model_dump(exclude_none=True))
    return ok(dump(CategoryResponse, category), "Category updated")


@router.get("/categories/{category_id}/places", summary="Approved places in a category")
@limiter.limit(RATE_LIMIT)
async def places_by_category(
    request: Request,
    category_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    service: PlaceService = Depends(_service),
):
    rows, total = await service.by_category(category_id, page, limit)
    return paginated(rows, total, page, limit, PlaceResponse)


# ── Public listing ────────────────────────────────────────────────────


@router.get("", summary="List approved places")
@limiter.limit(RATE_LIMIT)
async def list_places(
    request: Request,
    category_id: Optional[int] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    service: PlaceService = Depends(_service),
):
    rows, total = await service.list_public(category_id, search, page, limit)
    return paginated(rows, total, page, limit, PlaceResponse)


@router.get("/nearby", summary="Approved places near a point")
@limiter.limit(RATE_LIMIT)
async def nearby_places(
    request: Request,
    latitude: float = Query(..., ge=-90, le=90),
    longitude: float = Query(..., ge=-180, le=180),
    radius_km: float = Query(5.0, gt=0, le=100),
    limit: int = Query(20, ge=1, le=100),
    category_id: Optional[int] = None,
    service: PlaceService = Depends(_service),
):
    found = await service.nearby(latitude, longitude, radius_km, limit, category_id)
    return ok(
        [
            {"place": dump(PlaceResponse, item["place"]), "distance_km": item["distance_km"]}
            for item in found
        ]
    )


@router.get("/votes/mine", summary="My votes")
@limiter.limit(RATE_LIMIT)
async def my_votes(
    request: Request,
    user: UserModel = Depends(get_current_user),
    service: PlaceService = Depends(_service),
):
    return ok(dump(VoteResponse, await service.user_votes(user)))


# ── Moderation ────────────────────────────────────────────────────────


@router.get("/admin/all", summary="All places (admin)")
@limiter.limit(RATE_LIMIT)
async def all_places(
    request: Request,
    status: Optional[PlaceStatus] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    admin: UserModel = Depends(require_admin),
    service: PlaceService = Depends(_service),
):
    rows, total = await service.list_all(status, search, page, limit)
    return paginated(rows, total, page, limit, PlaceResponse)


@router.get("/admin/pending", summary="Places awaiting moderation (admin)")
@limiter.limit(RATE_LIMIT)
async def pending_places(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    admin: UserModel = Depends(require_admin),
    service: PlaceService = Depends(_service),
):
    rows, total = await service.list_pending(page, limit)
    return paginated(rows, total, page, limit, PlaceResponse)


@router.post("/{place_id}/approve", summary="Approve a place (admin)")
@limiter.limit(RATE_LIMIT)
async def approve_place(
    request: Request,
    place_id: int,
    admin: UserModel = Depends(require_admin),
    service: PlaceService = Depends(_service),
):
    return ok(dump(PlaceResponse, await service.approve(admin, place_id)), "Place approved")


@router.post("/{place_id}/reject", summary="Reject a place (admin)")
@limiter.limit(RATE_LIMIT)
async def reject_place(
    request: Request,
    place_id: int,
    body: RejectRequest,
    admin: UserModel = Depends(require_admin),
    service: PlaceService = Depends(_service),
):
    place = await service.reject(admin, place_id, body.reason)
    return ok(dump(PlaceResponse, place), "Place rejected")


# ── Single place ──────────────────────────────────────────────────────


@router.post("", status_code=201, summary="Submit a place")
@limiter.limit(RATE_LIMIT)
async def create_place(
    request: Request,
    body: PlaceCreateRequest,
    user: UserModel = Depends(get_current_user),
    service: PlaceService = Depends(_service),
):
    place = await service.create(user, body.model_dump())
    message = (
        "Place created"
        if place.status == PlaceStatus.APPROVED
        else "Place submitted for approval"
    )
    return ok(dump(PlaceResponse, place), message)


@router.get("/{place_id}", summary="Get a place")
@limiter.limit(RATE_LIMIT)
async def get_place(
    request: Request,
    place_id: int,
    user: Optional[UserModel] = Depends(get_optional_user),
    service: PlaceService = Depends(_service),
):
    return ok(dump(PlaceResponse, await service.get(place_id, user)))


@router.put("/{place_id}", summary="Update a place")
@limiter.limit(RATE_LIMIT)
async def update_place(
    request: Request,
    place_id: int,
    body: PlaceUpdateRequest,
    user: UserModel = Depends(get_current_user),
    service: PlaceService = Depends(_service),
):
    place = await service.update(user, place_id, body.model_dump(exclude_unset=True))
    return ok(dump(PlaceResponse, place), "Place updated")


@router.delete("/{place_id}", summary="Delete a place")
@limiter.limit(RATE_LIMIT)
async def delete_place(
    request: Request,
    place_id: int,
    user: UserModel = Depends(get_current_user),
    service: PlaceService = Depends(_service),
):
    await service.delete(user, place_id)
    return ok(None, "Place deleted")


# ── Votes ─────────────────────────────────────────────────────────────


@router.post("/{place_id}/votes", status_code=201, summary="Vote on a place")
@limiter.limit(RATE_LIMIT)
async def vote(
    request: Request,
    place_id: int,
    body: VoteRequest,
    user: UserModel = Depends(get_current_user),
    service: PlaceService = Depends(_service),
):
    created = await service.vote(
        place_id,
        body.is_positive,
        user=user,
        suggested_category_id=body.suggested_category_id,
        comment=body.comment,
    )
    return ok(dump(VoteResponse, created), "Vote recorded")


@router.post("/{place_id}/votes/anonymous", status_code=201, summary="Vote anonymously")
@limiter.limit(RATE_LIMIT)
async def vote_anonymous(
    request: Request,
    place_id: int,
    body: AnonymousVoteRequest,
    service: PlaceService = Depends(_service),
):
    created = await service.vote(
        place_id,
        body.is_positive,
        session_id=body.session_id,
        suggested_category_id=body.suggested_category_id,
        comment=body.comment,
    )
    return ok(dump(VoteResponse, created), "Vote recorded")


@router.get("/{place_id}/votes", summary="Vote summary")
@limiter.limit(RATE_LIMIT)
async def vote_summary(
    request: Request, place_id: int, service: PlaceService = Depends(_service)
):
    return ok(await service.vote_summary(place_id))


@router.get("/{place_id}/category-suggestions", summary="Suggested categories")
@limiter.limit(RATE_LIMIT)
async def category_suggestions(
    request: Request, place_id: int, service: PlaceService = Depends(_service)
):
    return ok(await service.category_suggestions(place_id))
