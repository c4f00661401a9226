"""
Marketplace order endpoints
===========================

Customers
    POST /api/v1/orders                 -- place an order
    GET  /api/v1/orders/mine            -- my orders
    GET  /api/v1/orders/mine/{id}

Store owners (and super admins)
    GET   /api/v1/orders/store          -- orders for my stores
    GET   /api/v1/orders/store/statistics
    GET   /api/v1/orders/store/{id}
    PATCH /api/v1/orders/store/{id}/status
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import (
    get_current_user,
    get_db,
    get_realtime,
    get_webhooks,
    require_roles,
)
from src.api.middleware import RATE_LIMIT, limiter
from src.api.schemas import (
    DeliveryResponse,
    OrderCreateRequest,
    OrderResponse,
    OrderStatusRequest,
    dump,
    ok,
    paginated,
)
from src.domain.enums import OrderStatus, UserRole
from src.infrastructure.models import UserModel
from src.services.orders import OrderService
from src.services.realtime import RealtimeBroadcaster
from src.services.webhooks import WebhookService

router = APIRouter(prefix="/orders", tags=["orders"])

store_owner = require_roles(UserRole.STORE_OWNER, UserRole.SUPER_ADMIN)


def _service(
    db: AsyncSession = Depends(get_db),
    realtime: RealtimeBroadcaster = Depends(get_realtime),
    webhooks: WebhookService = Depends(get_webhooks),
) -> OrderService:
    return OrderService(db, realtime, webhooks)


# ── Customer ──────────────────────────────────────────────────────────


@router.post("", status_code=201, summary="Place an order")
@limiter.limit(RATE_LIMIT)
async def create_order(
    request: Request,
    body: OrderCreateRequest,
    user: UserModel = Depends(get_current_user),
    service: OrderService = Depends(_service),
):
    order = await service.create(
        user,
        body.store_id,
        [item.model_dump() for item in body.items],
        body.delivery.latitude,
        body.delivery.longitude,
        body.delivery.address,
        body.notes,
    )
    return ok(dump(OrderResponse, order), "Order placed")


@router.get("/mine", summary="My orders")
@limiter.limit(RATE_LIMIT)
async def my_orders(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: UserModel = Depends(get_current_user),
    service: OrderService = Depends(_service),
):
    rows, total = await service.list_mine(user, page, limit)
    return paginated(rows, total, page, limit, OrderResponse)


@router.get("/mine/{order_id}", summary="One of my orders")
@limiter.limit(RATE_LIMIT)
async def my_order(
    request: Request,
    order_id: int,
    user: UserModel = Depends(get_current_user),
    service: OrderService = Depends(_service),
):
    return ok(dump(OrderResponse, await service.get_mine(user, order_id)))


# ── Store owner ───────────────────────────────────────────────────────


@router.get("/store", summary="Orders for my stores")
@limiter.limit(RATE_LIMIT)
async def store_orders(
    request: Request,
    status: Optional[OrderStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: UserModel = Depends(store_owner),
    service: OrderService = Depends(_service),
):
    rows, total = await service.list_for_owner(user, status, page, limit)
    return paginated(rows, total, page, limit, OrderResponse)


@router.get("/store/statistics", summary="Order statistics for my stores")
@limiter.limit(RATE_LIMIT)
async def store_statistics(
    request: Request,
    user: UserModel = Depends(store_owner),
    service: OrderService = Depends(_service),
):
    return ok(await service.statistics(user))


@router.get("/store/{order_id}", summary="One order of my stores")
@limiter.limit(RATE_LIMIT)
async def store_order(
    request: Request,
    order_id: int,
    user: UserModel = Depends(store_owner),
    service: OrderService = Depends(_service),
):
    return ok(dump(OrderResponse, await service.get_for_owner(user, order_id)))


@router.patch("/store/{order_id}/status", summary="Move an order to a new status")
@limiter.limit(RATE_LIMIT)
async def update_order_status(
    request: Request,
    order_id: int,
    body: OrderStatusRequest,
    user: UserModel = Depends(store_owner),
    service: OrderService = Depends(_service),
):
    result = await service.update_status(user, order_id, body.status, body.note)
    return ok(
        {
            "order": dump(OrderResponse, result["order"]),
            "delivery": dump(DeliveryResponse, result["delivery"]),
        },
        "Order status updated",
    )
