"""
Store orders.

Customers order products from a store, priced from its catalogue; tracked
stock is taken when the order is placed.  The store owner drives the order
through its statuses.  Marking an order READY_FOR_PICKUP hands it to the
courier flow by creating a PENDING delivery from the store to the customer.
"""

from __future__ import annotations

import logging
import secrets
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.domain.distance import haversine_km
from src.domain.enums import (
    NotificationType,
    OrderStatus,
    Priority,
    UserRole,
)
from src.domain.errors import NotFound, PermissionDenied, ValidationFailed
from src.domain.lifecycle import order_machine
from src.domain.pricing import PricingEngine
from src.infrastructure.database import utcnow
from src.infrastructure.models import OrderModel, StoreModel, UserModel
from src.infrastructure.repositories import (
    OrderRepository,
    ProductRepository,
    StoreRepository,
    UserRepository,
)
from src.services.deliveries import DeliveryService
from src.services.notifications import NotificationService
from src.services.realtime import RealtimeBroadcaster
from src.services.webhooks import WebhookService

logger = logging.getLogger(__name__)


def order_number() -> str:
    return f"ORD{utcnow():%y%m%d}{secrets.token_hex(3).upper()}"


def order_payload(order: OrderModel, **extra: Any) -> dict[str, Any]:
    payload = {
        "order_id": order.id,
        "order_number": order.order_number,
        "store_id": order.store_id,
        "status": order.status.value,
    }
    payload.update(extra)
    return payload


class OrderService:
    def __init__(
        self,
        session: AsyncSession,
        realtime: RealtimeBroadcaster,
        webhooks: WebhookService,
    ):
        self.session = session
        self.realtime = realtime
        self.webhooks = webhooks
        self.notifications = NotificationService(session, realtime)
        self.repo = OrderRepository(session)
        self.stores = StoreRepository(session)
        self.products = ProductRepository(session)

    # ── Customer ──────────────────────────────────────────────────

    async def create(
        self,
        user: UserModel,
        store_id: int,
        items: list[dict[str, Any]],
        delivery_lat: float,
        delivery_lng: float,
        delivery_address: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> OrderModel:
        store = await self.stores.get_by_id(store_id)
        if store is None or not store.is_active:
            raise NotFound("Store not found")
        if not items:
            raise ValidationFailed("An order needs at least one item")

        lines = await self._price_lines(store, items)
        subtotal = round(sum(line["line_total"] for line in lines), 2)
        fee = PricingEngine.delivery_fee(
            haversine_km(store.latitude, store.longitude, delivery_lat, delivery_lng)
        )
        order = await self.repo.add(
            OrderModel(
                order_number=order_number(),
                customer_id=user.id,
                store_id=store.id,
                items=lines,
                subtotal=subtotal,
                delivery_fee=fee,
                total_amount=round(subtotal + fee, 2),
                status=OrderStatus.ORDER_PROCESSING,
                delivery_address=delivery_address,
                delivery_lat=delivery_lat,
                delivery_lng=delivery_lng,
                notes=notes,
            )
        )
        await self.notifications.notify(
            store.owner_id,
            NotificationType.ORDER_STATUS_UPDATE,
            "New Order",
            f"New order {order.order_number} from {user.full_name}",
            order_payload(order, total_amount=order.total_amount),
            Priority.HIGH,
        )
        logger.info("Order %s created for store %s", order.order_number, store.id)
        return order

    async def _price_lines(
        self, store: StoreModel, items: list[dict[str, Any]]
    ) -> list[dict[str, Any]]:
        """Price each line from the catalogue and take tracked stock."""
        wanted: dict[int, int] = {}
        for item in items:
            product_id = int(item["product_id"])
            wanted[product_id] = wanted.get(product_id, 0) + int(item.get("quantity", 1))

        products = await self.products.get_many(wanted)
        lines = []
        for product_id, quantity in wanted.items():
            product = products.get(product_id)
            if product is None or product.store_id != store.id or not product.is_active:
                raise ValidationFailed(f"Product {product_id} is not sold by this store")
            if not product.in_stock:
                raise ValidationFailed(f"{product.name} is out of stock")
            if product.stock_quantity is not None:
                left = product.stock_quantity
                if not await self.products.reserve_stock(product.id, quantity):
                    raise ValidationFailed(f"Only {left} {product.name} left in stock")
            lines.append(
                {
                    "product_id": product.id,
                    "name": product.name,
                    "price": product.price,
                    "quantity": quantity,
                    "line_total": round(product.price * quantity, 2),
                }
            )
        return lines

    async def list_mine(self, user: UserModel, page: int = 1, limit: int = 20):
        return await self.repo.list_for_customer(user.id, page, limit)

    async def get_mine(self, user: UserModel, order_id: int) -> OrderModel:
        order = await self.repo.get_by_id(order_id)
        if order is None or order.customer_id != user.id:
            raise NotFound("Order not found")
        return order

    # ── Store owner ───────────────────────────────────────────────

    async def _store_scope(self, user: UserModel) -> Optional[list[int]]:
        """Store ids the user manages; ``None`` means every store."""
        if user.role == UserRole.SUPER_ADMIN:
            return None
        return await self.stores.ids_for_owner(user.id)

    async def _owned_order(self, user: UserModel, order_id: int) -> OrderModel:
        order = await self.repo.get_by_id(order_id)
        if order is None:
            raise NotFound("Order not found")
        scope = await self._store_scope(user)
        if scope is not None and order.store_id not in scope:
            raise PermissionDenied("This order does not belong to your store")
        return order

    async def list_for_owner(
        self,
        user: UserModel,
        status: Optional[OrderStatus] = None,
        page: int = 1,
        limit: int = 20,
    ):
        scope = await self._store_scope(user)
        if scope is not None and not scope:
            return [], 0
        return await self.repo.list_for_stores(scope, status, page, limit)

    async def get_for_owner(self, user: UserModel, order_id: int) -> OrderModel:
        return await self._owned_order(user, order_id)

    async def update_status(
        self,
        user: UserModel,
        order_id: int,
        status: OrderStatus,
        note: Optional[str] = None,
    ) -> dict[str, Any]:
        order = await self._owned_order(user, order_id)
        order_machine.ensure(order.status, status)
        previous = order.status
        order.status = status

        delivery = None
        if status == OrderStatus.READY_FOR_PICKUP:
            store: StoreModel = await self.stores.get_by_id(order.store_id)
            customer = await UserRepository(self.session).get_by_id(order.customer_id)
            delivery = await DeliveryService(
                self.session, self.realtime, self.webhooks
            ).create_for_order(order, store, customer)

        data = order_payload(
            order,
            previous_status=previous.value,
            note=note,
            tracking_code=delivery.tracking_code if delivery else None,
        )
        await self.notifications.notify(
            order.customer_id,
            NotificationType.ORDER_STATUS_UPDATE,
            "Order Update",
            f"Order {order.order_number} is now {status.value.replace('_', ' ').lower()}",
            data,
        )
        await self.realtime.notify_user(order.customer_id, "order_update", data)
        logger.info(
            "Order %s: %s -> %s", order.order_number, previous.value, status.value
        )
        return {"order": order, "delivery": delivery}

    async def statistics(self, user: UserModel) -> dict[str, Any]:
        scope = await self._store_scope(user)
        if scope is not None and not scope:
            return {"total_orders": 0, "by_status": {}, "revenue": 0.0}
        counts, revenue = await self.repo.stats_for_stores(scope)
        return {
            "total_orders": sum(counts.values()),
            "by_status": counts,
            "revenue": round(revenue, 2),
        }
