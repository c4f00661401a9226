"""
Search endpoints
================

GET /api/v1/search               -- places and stores by text
GET /api/v1/search/suggestions   -- name completions
GET /api/v1/search/popular       -- most frequent queries
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_db, get_optional_user
from src.api.middleware import RATE_LIMIT, limiter
from src.api.schemas import PlaceResponse, StoreResponse, dump, ok
from src.infrastructure.models import UserModel
from src.services.search import SearchService

router = APIRouter(prefix="/search", tags=["search"])


@router.get("", summary="Search places and stores")
@limiter.limit(RATE_LIMIT)
async def search(
    request: Request,
    q: str = Query(..., description="At least two characters"),
    type: str = Query("all", description="all | places | stores"),
    limit: int = Query(20, ge=1, le=50),
    user: Optional[UserModel] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    result = await SearchService(db).search(q, type, limit, user)
    return ok(
        {
            "query": result["query"],
            "places": dump(PlaceResponse, result["places"]),
            "stores": dump(StoreResponse, result["stores"]),
            "total": result["total"],
        }
    )


@router.get("/suggestions", summary="Search suggestions")
@limiter.limit(RATE_LIMIT)
async def suggestions(
    request: Request,
    q: str = Query(""),
    limit: int = Query(5, ge=1, le=20),
    db: AsyncSession = Depends(get_db),
):
    return ok(await SearchService(db).suggestions(q, limit))


@router.get("/popular", summary="Popular searches")
@limiter.limit(RATE_LIMIT)
async def popular(
    request: Request,
    limit: int = Query(10, ge=1, le=50),
    db: AsyncSession = Depends(get_db),
):
    return ok(await SearchService(db).popular(limit))
