"""
Stores and product catalogue
============================

Public
    GET  /api/v1/stores                         -- active stores (category, text)
    GET  /api/v1/stores/nearby                  -- active stores around a point
    GET  /api/v1/stores/{id}
    GET  /api/v1/stores/{id}/products           -- active products (filters)

Store owners
    POST   /api/v1/stores                       -- open a store
    GET    /api/v1/stores/mine
    PUT    /api/v1/stores/{id} · DELETE /api/v1/stores/{id}   (owner or admin)
    PUT    /api/v1/stores/{id}/business-hours
    GET    /api/v1/stores/{id}/analytics        (owner or admin)
    POST   /api/v1/stores/{id}/products
    PUT    /api/v1/stores/{id}/products/{pid} · DELETE /api/v1/stores/{id}/products/{pid}
    PATCH  /api/v1/stores/{id}/products/{pid}/inventory   -- set | add | subtract
    GET    /api/v1/stores/{id}/products/low-stock
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_current_user, get_db, require_roles
from src.api.middleware import RATE_LIMIT, limiter
from src.api.schemas import (
    BusinessHoursRequest,
    InventoryRequest,
    ProductCreateRequest,
    ProductResponse,
    ProductUpdateRequest,
    StoreCreateRequest,
    StoreResponse,
    StoreUpdateRequest,
    dump,
    ok,
    paginated,
)
from src.domain.enums import UserRole
from src.infrastructure.models import UserModel
from src.services.stores import LOW_STOCK_THRESHOLD, StoreService

router = APIRouter(prefix="/stores", tags=["stores"])

store_owner = require_roles(UserRole.STORE_OWNER, UserRole.SUPER_ADMIN)


def _service(db: AsyncSession = Depends(get_db)) -> StoreService:
    return StoreService(db)


# ── Listing ───────────────────────────────────────────────────────────


@router.get("", summary="List active stores")
@limiter.limit(RATE_LIMIT)
async def list_stores(
    request: Request,
    category: Optional[str] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    service: StoreService = Depends(_service),
):
    rows, total = await service.list_stores(category, search, page, limit)
    return paginated(rows, total, page, limit, StoreResponse)


@router.get("/nearby", summary="Active stores near a point")
@limiter.limit(RATE_LIMIT)
async def nearby_stores(
    request: Request,
    latitude: float = Query(..., ge=-90, le=90),
    longitude: float = Query(..., ge=-180, le=180),
    radius_km: float = Query(5.0, gt=0, le=100),
    limit: int = Query(20, ge=1, le=100),
    category: Optional[str] = None,
    service: StoreService = Depends(_service),
):
    found = await service.nearby(latitude, longitude, radius_km, limit, category)
    return ok(
        [
            {"store": dump(StoreResponse, item["store"]), "distance_km": item["distance_km"]}
            for item in found
        ]
    )


@router.get("/mine", summary="My stores")
@limiter.limit(RATE_LIMIT)
async def my_stores(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: UserModel = Depends(store_owner),
    service: StoreService = Depends(_service),
):
    rows, total = await service.list_mine(user, page, limit)
    return paginated(rows, total, page, limit, StoreResponse)


# ── Single store ──────────────────────────────────────────────────────


@router.post("", status_code=201, summary="Open a store")
@limiter.limit(RATE_LIMIT)
async def create_store(
    request: Request,
    body: StoreCreateRequest,
    user: UserModel = Depends(store_owner),
    service: StoreService = Depends(_service),
):
    store = await service.create(user, body.model_dump())
    return ok(dump(StoreResponse, store), "Store created")


@router.get("/{store_id}", summary="Get a store")
@limiter.limit(RATE_LIMIT)
async def get_store(
    request: Request, store_id: int, service: StoreService = Depends(_service)
):
    return ok(dump(StoreResponse, await service.get(store_id)))


@router.put("/{store_id}", summary="Update a store")
@limiter.limit(RATE_LIMIT)
async def update_store(
    request: Request,
    store_id: int,
    body: StoreUpdateRequest,
    user: UserModel = Depends(get_current_user),
    service: StoreService = Depends(_service),
):
    store = await service.update(user, store_id, body.model_dump(exclude_unset=True))
    return ok(dump(StoreResponse, store), "Store updated")


@router.delete("/{store_id}", summary="Close a store")
@limiter.limit(RATE_LIMIT)
async def close_store(
    request: Request,
    store_id: int,
    user: UserModel = Depends(get_current_user),
    service: StoreService = Depends(_service),
):
    await service.close(user, store_id)
    return ok(None, "Store closed")


@router.put("/{store_id}/business-hours", summary="Replace opening hours")
@limiter.limit(RATE_LIMIT)
async def set_business_hours(
    request: Request,
    store_id: int,
    body: BusinessHoursRequest,
    user: UserModel = Depends(store_owner),
    service: StoreService = Depends(_service),
):
    hours = [entry.model_dump() for entry in body.business_hours]
    store = await service.set_business_hours(user, store_id, hours)
    return ok(dump(StoreResponse, store), "Business hours updated")


@router.get("/{store_id}/analytics", summary="Store sales analytics")
@limiter.limit(RATE_LIMIT)
async def store_analytics(
    request: Request,
    store_id: int,
    user: UserModel = Depends(get_current_user),
    service: StoreService = Depends(_service),
):
    return ok(await service.analytics(user, store_id))


# ── Products ──────────────────────────────────────────────────────────


@router.get("/{store_id}/products", summary="Products of a store")
@limiter.limit(RATE_LIMIT)
async def list_products(
    request: Request,
    store_id: int,
    category: Optional[str] = None,
    in_stock: Optional[bool] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    service: StoreService = Depends(_service),
):
    rows, total = await service.list_products(
        store_id, category, in_stock, search, page, limit
    )
    return paginated(rows, total, page, limit, ProductResponse)


@router.get("/{store_id}/products/low-stock", summary="Products running low")
@limiter.limit(RATE_LIMIT)
async def low_stock(
    request: Request,
    store_id: int,
    threshold: int = Query(LOW_STOCK_THRESHOLD, ge=1, le=1000),
    user: UserModel = Depends(store_owner),
    service: StoreService = Depends(_service),
):
    return ok(dump(ProductResponse, await service.low_stock(user, store_id, threshold)))


@router.post("/{store_id}/products", status_code=201, summary="Add a product")
@limiter.limit(RATE_LIMIT)
async def add_product(
    request: Request,
    store_id: int,
    body: ProductCreateRequest,
    user: UserModel = Depends(store_owner),
    service: StoreService = Depends(_service),
):
    product = await service.add_product(user, store_id, body.model_dump())
    return ok(dump(ProductResponse, product), "Product added")


@router.put("/{store_id}/products/{product_id}", summary="Update a product")
@limiter.limit(RATE_LIMIT)
async def update_product(
    request: Request,
    store_id: int,
    product_id: int,
    body: ProductUpdateRequest,
    user: UserModel = Depends(store_owner),
    service: StoreService = Depends(_service),
):
    product = await service.update_product(
        user, store_id, product_id, body.model_dump(exclude_unset=True)
    )
    return ok(dump(ProductResponse, product), "Product updated")


@router.delete("/{store_id}/products/{product_id}", summary="Remove a product")
@limiter.limit(RATE_LIMIT)
async def delete_product(
    request: Request,
    store_id: int,
    product_id: int,
    user: UserModel = Depends(store_owner),
    service: StoreService = Depends(_service),
):
    await service.delete_product(user, store_id, product_id)
    return ok(None, "Product removed")


@router.patch("/{store_id}/products/{product_id}/inventory", summary="Adjust stock")
@limiter.limit(RATE_LIMIT)
async def update_inventory(
    request: Request,
    store_id: int,
    product_id: int,
    body: InventoryRequest,
    user: UserModel = Depends(store_owner),
    service: StoreService = Depends(_service),
):
    product = await service.update_inventory(
        user, store_id, product_id, body.stock_quantity, body.operation
    )
    return ok(dump(ProductResponse, product), "Inventory updated")
