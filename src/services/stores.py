"""
Store and product catalogue management.

Store owners open stores, keep their opening hours and maintain a product
catalogue with optional stock counts.  The catalogue is what orders are
priced from, so prices never come from the client.

Admins may edit or close any store; only the owner manages its products.
Closing a store deactivates it rather than deleting it so its order history
stays intact.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.domain.distance import haversine_km
from src.domain.enums import ADMIN_ROLES, OrderStatus
from src.domain.errors import NotFound, PermissionDenied, ValidationFailed
from src.infrastructure.models import ProductModel, StoreModel, UserModel
from src.infrastructure.repositories import (
    OrderRepository,
    ProductRepository,
    StoreRepository,
)

logger = logging.getLogger(__name__)

STORE_FIELDS = (
    "name",
    "description",
    "category",
    "address",
    "latitude",
    "longitude",
    "phone",
    "is_active",
)
PRODUCT_FIELDS = ("name", "description", "price", "category", "in_stock", "stock_quantity")

LOW_STOCK_THRESHOLD = 10


def validate_business_hours(hours: list[dict[str, Any]]) -> list[dict[str, Any]]:
    seen = set()
    for entry in hours:
        day = entry["day_of_week"]
        if day in seen:
            raise ValidationFailed(f"Business hours for day {day} given twice")
        seen.add(day)
        if not entry.get("is_closed") and entry["open_time"] >= entry["close_time"]:
            raise ValidationFailed("Opening time must be before closing time")
    return sorted(hours, key=lambda e: e["day_of_week"])


class StoreService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.repo = StoreRepository(session)
        self.products = ProductRepository(session)
        self.orders = OrderRepository(session)

    # ── Stores ────────────────────────────────────────────────────

    async def create(self, owner: UserModel, data: dict[str, Any]) -> StoreModel:
        hours = validate_business_hours(data.pop("business_hours", None) or [])
        store = await self.repo.add(
            StoreModel(
                **{k: v for k, v in data.items() if k in STORE_FIELDS},
                owner_id=owner.id,
                business_hours=hours,
            )
        )
        logger.info("Store %s opened by user %s", store.id, owner.id)
        return store

    async def list_stores(
        self,
        category: Optional[str] = None,
        text: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ):
        return await self.repo.list_stores(category, text, page=page, limit=limit)

    async def list_mine(self, owner: UserModel, page: int = 1, limit: int = 20):
        return await self.repo.list_stores(owner_id=owner.id, page=page, limit=limit)

    async def nearby(
        self,
        lat: float,
        lng: float,
        radius_km: float = 5.0,
        limit: int = 20,
        category: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        found = []
        for store in await self.repo.list_all_active(category):
            distance = haversine_km(lat, lng, store.latitude, store.longitude)
            if distance <= radius_km:
                found.append({"store": store, "distance_km": round(distance, 2)})
        found.sort(key=lambda item: item["distance_km"])
        return found[:limit]

    async def get(self, store_id: int) -> StoreModel:
        store = await self.repo.get_by_id(store_id)
        if store is None or not store.is_active:
            raise NotFound("Store not found")
        return store

    async def _managed(
        self, user: UserModel, store_id: int, allow_admin: bool = True
    ) -> StoreModel:
        store = await self.repo.get_by_id(store_id)
        if store is None:
            raise NotFound("Store not found")
        if store.owner_id != user.id and not (allow_admin and user.role in ADMIN_ROLES):
            raise PermissionDenied("You can only manage your own stores")
        return store

    async def update(
        self, user: UserModel, store_id: int, data: dict[str, Any]
    ) -> StoreModel:
        store = await self._managed(user, store_id)
        for key, value in data.items():
            if key in STORE_FIELDS and value is not None:
                setattr(store, key, value)
        return store

    async def close(self, user: UserModel, store_id: int) -> StoreModel:
        store = await self._managed(user, store_id)
        store.is_active = False
        logger.info("Store %s closed by user %s", store.id, user.id)
        return store

    async def set_business_hours(
        self, user: UserModel, store_id: int, hours: list[dict[str, Any]]
    ) -> StoreModel:
        store = await self._managed(user, store_id, allow_admin=False)
        store.business_hours = validate_business_hours(hours)
        return store

    # ── Products ──────────────────────────────────────────────────

    async def add_product(
        self, user: UserModel, store_id: int, data: dict[str, Any]
    ) -> ProductModel:
        store = await self._managed(user, store_id, allow_admin=False)
        product = ProductModel(
            **{k: v for k, v in data.items() if k in PRODUCT_FIELDS}, store_id=store.id
        )
        if product.stock_quantity is not None and product.stock_quantity == 0:
            product.in_stock = False
        return await self.products.add(product)

    async def list_products(
        self,
        store_id: int,
        category: Optional[str] = None,
        in_stock: Optional[bool] = None,
        text: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ):
        store = await self.get(store_id)
        return await self.products.list_for_store(
            store.id, category, in_stock, text, page, limit
        )

    async def _product(
        self, user: UserModel, store_id: int, product_id: int
    ) -> ProductModel:
        store = await self._managed(user, store_id, allow_admin=False)
        product = await self.products.get_by_id(product_id)
        if product is None or product.store_id != store.id or not product.is_active:
            raise NotFound("Product not found")
        return product

    async def update_product(
        self, user: UserModel, store_id: int, product_id: int, data: dict[str, Any]
    ) -> ProductModel:
        product = await self._product(user, store_id, product_id)
        for key, value in data.items():
            if key in PRODUCT_FIELDS and value is not None:
                setattr(product, key, value)
        if "stock_quantity" in data and data["stock_quantity"] is not None:
            product.in_stock = data["stock_quantity"] > 0
        return product

    async def delete_product(self, user: UserModel, store_id: int, product_id: int) -> None:
        product = await self._product(user, store_id, product_id)
        product.is_active = False

    async def update_inventory(
        self,
        user: UserModel,
        store_id: int,
        product_id: int,
        quantity: int,
        operation: str = "set",
    ) -> ProductModel:
        product = await self._product(user, store_id, product_id)
        current = product.stock_quantity or 0
        if operation == "set":
            stock = quantity
        elif operation == "add":
            stock = current + quantity
        elif operation == "subtract":
            stock = max(0, current - quantity)
        else:
            raise ValidationFailed("Operation must be set, add or subtract")
        product.stock_quantity = stock
        product.in_stock = stock > 0
        return product

    async def low_stock(
        self, user: UserModel, store_id: int, threshold: int = LOW_STOCK_THRESHOLD
    ) -> list[ProductModel]:
        store = await self._managed(user, store_id, allow_admin=False)
        return await self.products.low_stock(store.id, threshold)

    # ── Analytics ─────────────────────────────────────────────────

    async def analytics(self, user: UserModel, store_id: int) -> dict[str, Any]:
        store = await self._managed(user, store_id)
        orders = await self.orders.list_all_for_store(store.id)
        delivered = [o for o in orders if o.status == OrderStatus.DELIVERED]
        revenue = round(sum(o.total_amount for o in delivered), 2)

        sold = Counter()
        for order in orders:
            if order.status == OrderStatus.CANCELLED:
                continue
            for item in order.items or []:
                sold[item.get("name")] += int(item.get("quantity", 1))

        return {
            "store_id": store.id,
            "total_orders": len(orders),
            "delivered_orders": len(delivered),
            "revenue": revenue,
            "average_order_value": round(revenue / len(delivered), 2) if delivered else 0.0,
            "product_count": await self.products.count_for_store(store.id),
            "low_stock_products": len(
                await self.products.low_stock(store.id, LOW_STOCK_THRESHOLD)
            ),
            "popular_products": [
                {"name": name, "quantity": quantity}
                for name, quantity in sold.most_common(5)
            ],
        }
