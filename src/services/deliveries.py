"""
Deliveries and dispatch riders
==============================

A delivery is either user-to-user (a customer sends a package) or the
courier leg of a store order (created when the store marks the order
READY_FOR_PICKUP).  Riders are DISPATCHER providers.

Rider flow::

    accept -> start_pickup -> confirm_pickup -> start_delivery -> complete

Store orders follow their courier: pickup confirmation moves the order to
PICKED_UP, starting the run to IN_TRANSIT and completion to DELIVERED.
"""

from __future__ import annotations

import logging
import secrets
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.domain.distance import eta_minutes, haversine_km
from src.domain.entities import Location
from src.domain.enums import (
    ADMIN_ROLES,
    DeliveryStatus,
    DeliveryType,
    NotificationType,
    OrderStatus,
    Priority,
    UserRole,
)
from src.domain.errors import Conflict, NotFound, PermissionDenied, ValidationFailed
from src.domain.lifecycle import delivery_machine, order_machine, role_event
from src.domain.matching import DELIVERY_SEARCH
from src.domain.pricing import DELIVERY_COMMISSION_RATE, PricingEngine
from src.infrastructure.database import utcnow
from src.infrastructure.models import (
    DeliveryModel,
    DriverEarningModel,
    DriverProfileModel,
    OrderModel,
    StoreModel,
    UserModel,
)
from src.infrastructure.repositories import (
    DeliveryRepository,
    EarningRepository,
    OrderRepository,
    ProviderRepository,
    TrackingRepository,
)
from src.services.lifecycle import week_start
from src.services.notifications import NotificationService
from src.services.providers import nearby_providers
from src.services.realtime import RealtimeBroadcaster, delivery_room
from src.services.subscriptions import active_plan
from src.services.webhooks import WebhookService

logger = logging.getLogger(__name__)

# Order status that mirrors each courier milestone
ORDER_FOLLOWS = {
    DeliveryStatus.PICKED_UP: OrderStatus.PICKED_UP,
    DeliveryStatus.IN_TRANSIT: OrderStatus.IN_TRANSIT,
    DeliveryStatus.DELIVERED: OrderStatus.DELIVERED,
}

STATUS_MESSAGES = {
    DeliveryStatus.ASSIGNED: "A rider has accepted your delivery",
    DeliveryStatus.PICKUP_IN_PROGRESS: "Your rider is on the way to the pickup point",
    DeliveryStatus.PICKED_UP: "Your package has been picked up",
    DeliveryStatus.IN_TRANSIT: "Your package is on its way",
    DeliveryStatus.DELIVERED: "Your package has been delivered",
    DeliveryStatus.CANCELLED: "Your delivery was cancelled",
}


def tracking_code() -> str:
    return f"TRK{utcnow():%y%m%d}{secrets.token_hex(4).upper()}"


def delivery_payload(delivery: DeliveryModel, **extra: Any) -> dict[str, Any]:
    payload = {
        "delivery_id": delivery.id,
        "tracking_code": delivery.tracking_code,
        "status": delivery.status.value,
        "rider_id": delivery.rider_id,
        "order_id": delivery.order_id,
    }
    payload.update(extra)
    return payload


class DeliveryService:
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
        self.repo = DeliveryRepository(session)
        self.providers = ProviderRepository(session)
        self.tracking = TrackingRepository(session)
        self.pricing = PricingEngine(
            city_speed_kmh=settings.city_speed_kmh, currency=settings.currency
        )

    # ── Customer side ─────────────────────────────────────────────

    def estimate(
        self,
        pickup: Location,
        dropoff: Location,
        delivery_type: DeliveryType = DeliveryType.PACKAGE,
    ) -> dict[str, Any]:
        distance = haversine_km(
            pickup.latitude, pickup.longitude, dropoff.latitude, dropoff.longitude
        )
        return {
            "distance_km": round(distance, 2),
            "delivery_fee": self.pricing.delivery_fee(distance, delivery_type),
            "estimated_duration_min": eta_minutes(distance, settings.city_speed_kmh),
            "delivery_type": delivery_type.value,
            "currency": settings.currency,
        }

    async def create(
        self,
        user: UserModel,
        pickup: Location,
        dropoff: Location,
        *,
        delivery_type: DeliveryType = DeliveryType.PACKAGE,
        pickup_address: Optional[str] = None,
        dropoff_address: Optional[str] = None,
        recipient_name: Optional[str] = None,
        recipient_phone: Optional[str] = None,
        package_description: Optional[str] = None,
        order_id: Optional[int] = None,
    ) -> DeliveryModel:
        quote = self.estimate(pickup, dropoff, delivery_type)
        delivery = await self.repo.add(
            DeliveryModel(
                tracking_code=tracking_code(),
                order_id=order_id,
                customer_id=user.id,
                delivery_type=delivery_type,
                status=DeliveryStatus.PENDING,
                pickup_lat=pickup.latitude,
                pickup_lng=pickup.longitude,
                pickup_address=pickup_address,
                dropoff_lat=dropoff.latitude,
                dropoff_lng=dropoff.longitude,
                dropoff_address=dropoff_address,
                recipient_name=recipient_name,
                recipient_phone=recipient_phone,
                package_description=package_description,
                distance_km=quote["distance_km"],
                delivery_fee=quote["delivery_fee"],
                issues=[],
                declined_by=[],
            )
        )
        await self.tracking.record(
            delivery_id=delivery.id,
            status=delivery.status.value,
            latitude=pickup.latitude,
            longitude=pickup.longitude,
            message="Delivery created",
        )
        notified = await self._notify_nearby_riders(delivery)
        await self.webhooks.send(
            "delivery.created",
            delivery_payload(
                delivery,
                customer_id=user.id,
                delivery_fee=delivery.delivery_fee,
                riders_notified=notified,
            ),
            delivery.id,
        )
        logger.info(
            "Delivery %s created (fee=%.2f, riders notified=%d)",
            delivery.tracking_code,
            delivery.delivery_fee,
            notified,
        )
        return delivery

    async def create_for_order(
        self, order: OrderModel, store: StoreModel, customer: UserModel
    ) -> DeliveryModel:
        """Courier leg of a store order, from the store to the order's drop-off."""
        existing = await self.repo.get_for_order(order.id)
        if existing is not None and existing.status != DeliveryStatus.CANCELLED:
            return existing
        return await self.create(
            customer,
            Location(store.latitude, store.longitude),
            Location(order.delivery_lat, order.delivery_lng),
            pickup_address=store.address,
            dropoff_address=order.delivery_address,
            recipient_name=customer.full_name,
            recipient_phone=customer.phone,
            package_description=f"Order {order.order_number} from {store.name}",
            order_id=order.id,
        )

    async def _notify_nearby_riders(self, delivery: DeliveryModel) -> int:
        riders = await nearby_providers(
            self.session,
            UserRole.DISPATCHER,
            delivery.pickup_lat,
            delivery.pickup_lng,
            DELIVERY_SEARCH.radius_km,
            DELIVERY_SEARCH.max_providers,
        )
        for profile, distance in riders:
            data = delivery_payload(
                delivery,
                distance_km=round(distance, 2),
                delivery_fee=delivery.delivery_fee,
                pickup_address=delivery.pickup_address,
            )
            await self.notifications.notify(
                profile.user_id,
                NotificationType.BOOKING_REQUEST,
                "New Delivery Request",
                f"Delivery pickup {distance:.1f} km away, fee "
                f"{settings.currency} {delivery.delivery_fee:.2f}",
                data,
                Priority.URGENT,
            )
            await self.realtime.notify_user(profile.user_id, "new_delivery_request", data)
        return len(riders)

    async def track(self, code: str) -> dict[str, Any]:
        delivery = await self.repo.get_by_tracking_code(code)
        if delivery is None:
            raise NotFound("Delivery not found")
        rider_location = None
        if delivery.rider_id:
            profile = await self.providers.get_by_user_id(delivery.rider_id)
            if profile and profile.current_lat is not None:
                rider_location = {
                    "latitude": profile.current_lat,
                    "longitude": profile.current_lng,
                    "updated_at": profile.last_location_at,
                }
        return {
            "delivery": delivery,
            "rider_location": rider_location,
            "history": await self.tracking.list_for_delivery(delivery.id),
        }

    async def list_mine(
        self,
        user: UserModel,
        status: Optional[DeliveryStatus] = None,
        page: int = 1,
        limit: int = 20,
    ):
        return await self.repo.list_for_customer(user.id, status, page, limit)

    async def get(self, user: UserModel, delivery_id: int) -> DeliveryModel:
        delivery = await self._get(delivery_id)
        if (
            delivery.customer_id != user.id
            and delivery.rider_id != user.id
            and user.role not in ADMIN_ROLES
        ):
            raise PermissionDenied("You do not have access to this delivery")
        return delivery

    async def cancel(
        self, user: UserModel, delivery_id: int, reason: Optional[str] = None
    ) -> DeliveryModel:
        delivery = await self._get(delivery_id)
        if delivery.customer_id != user.id and user.role not in ADMIN_ROLES:
            raise PermissionDenied("You can only cancel your own deliveries")
        delivery_machine.ensure(delivery.status, DeliveryStatus.CANCELLED)

        delivery.status = DeliveryStatus.CANCELLED
        delivery.cancelled_at = utcnow()
        if delivery.rider_id:
            profile = await self.providers.get_by_user_id(delivery.rider_id)
            if profile is not None:
                profile.is_available = True
            await self.notifications.notify(
                delivery.rider_id,
                NotificationType.DELIVERY_UPDATE,
                "Delivery Cancelled",
                f"Delivery {delivery.tracking_code} was cancelled",
                {"delivery_id": delivery.id, "reason": reason},
                Priority.HIGH,
            )
        await self._after_transition(delivery, None, reason or "Cancelled by customer")
        return delivery

    # ── Rider side ────────────────────────────────────────────────

    async def _get(self, delivery_id: int) -> DeliveryModel:
        delivery = await self.repo.get_by_id(delivery_id)
        if delivery is None:
            raise NotFound("Delivery not found")
        return delivery

    async def _rider(self, user: UserModel) -> DriverProfileModel:
        profile = await self.providers.get_by_user_id(user.id)
        if profile is None or profile.role != UserRole.DISPATCHER:
            raise NotFound("Dispatch rider profile not found")
        return profile

    async def _assigned(
        self, user: UserModel, delivery_id: int
    ) -> tuple[DeliveryModel, DriverProfileModel]:
        profile = await self._rider(user)
        delivery = await self._get(delivery_id)
        if delivery.rider_id != user.id:
            raise PermissionDenied("Delivery is not assigned to you")
        return delivery, profile

    async def requests_near(self, user: UserModel) -> list[dict[str, Any]]:
        """Pending deliveries within the search radius of the rider, nearest first."""
        profile = await self._rider(user)
        if profile.current_lat is None or profile.current_lng is None:
            raise ValidationFailed("Update your location to see delivery requests")

        nearby = []
        for delivery in await self.repo.get_pending():
            if user.id in (delivery.declined_by or []):
                continue
            distance = haversine_km(
                profile.current_lat,
                profile.current_lng,
                delivery.pickup_lat,
                delivery.pickup_lng,
            )
            if distance <= DELIVERY_SEARCH.radius_km:
                nearby.append({"delivery": delivery, "distance_km": round(distance, 2)})
        nearby.sort(key=lambda item: item["distance_km"])
        return nearby[: DELIVERY_SEARCH.max_providers * 2]

    async def accept(self, user: UserModel, delivery_id: int) -> DeliveryModel:
        profile = await self._rider(user)
        if not profile.is_verified or not profile.is_available:
            raise ValidationFailed("Rider not available or not verified")

        delivery = await self._get(delivery_id)
        if delivery.status != DeliveryStatus.PENDING:
            raise Conflict("Delivery is no longer available")

        distance = None
        if profile.current_lat is not None and profile.current_lng is not None:
            distance = haversine_km(
                profile.current_lat,
                profile.current_lng,
                delivery.pickup_lat,
                delivery.pickup_lng,
            )
            if distance > DELIVERY_SEARCH.radius_km:
                raise ValidationFailed("Rider too far from pickup location")

        if not await self.repo.claim(delivery.id, user.id, utcnow()):
            raise Conflict("Delivery is no longer available")
        await self.session.refresh(delivery)
        profile.is_available = False

        eta = eta_minutes(distance or 0.0, settings.city_speed_kmh)
        rider = {
            "id": user.id,
            "name": user.full_name,
            "phone": user.phone,
            "vehicle_plate": profile.vehicle_plate,
            "rating": profile.rating,
        }
        await self._after_transition(
            delivery,
            profile,
            f"Accepted by {user.full_name}",
            event=role_event(UserRole.DISPATCHER, "booking_accepted"),
            rider=rider,
            eta_minutes=eta,
        )
        await self.webhooks.send(
            "dispatch.rider_assigned",
            delivery_payload(delivery, rider=rider, eta_minutes=eta),
            delivery.id,
        )
        return delivery

    async def decline(
        self, user: UserModel, delivery_id: int, reason: Optional[str] = None
    ) -> DeliveryModel:
        await self._rider(user)
        delivery = await self._get(delivery_id)
        if delivery.status != DeliveryStatus.PENDING:
            raise Conflict("Delivery is no longer pending")
        if user.id not in (delivery.declined_by or []):
            delivery.declined_by = [*(delivery.declined_by or []), user.id]
        logger.info(
            "Rider %s declined delivery %s: %s", user.id, delivery.id, reason or "-"
        )
        return delivery

    async def _advance(
        self,
        user: UserModel,
        delivery_id: int,
        target: DeliveryStatus,
        message: str,
        base_event: str,
    ) -> DeliveryModel:
        delivery, profile = await self._assigned(user, delivery_id)
        delivery_machine.ensure(delivery.status, target)
        delivery.status = target
        if target == DeliveryStatus.PICKED_UP:
            delivery.picked_up_at = utcnow()
        await self._after_transition(
            delivery, profile, message, event=role_event(UserRole.DISPATCHER, base_event)
        )
        return delivery

    async def start_pickup(self, user: UserModel, delivery_id: int) -> DeliveryModel:
        return await self._advance(
            user,
            delivery_id,
            DeliveryStatus.PICKUP_IN_PROGRESS,
            "Rider heading to pickup",
            "pickup_started",
        )

    async def confirm_pickup(self, user: UserModel, delivery_id: int) -> DeliveryModel:
        return await self._advance(
            user, delivery_id, DeliveryStatus.PICKED_UP, "Package picked up", "driver_arrived"
        )

    async def start_delivery(self, user: UserModel, delivery_id: int) -> DeliveryModel:
        return await self._advance(
            user, delivery_id, DeliveryStatus.IN_TRANSIT, "Out for delivery", "trip_started"
        )

    async def complete(self, user: UserModel, delivery_id: int) -> DeliveryModel:
        delivery, profile = await self._assigned(user, delivery_id)
        delivery_machine.ensure(delivery.status, DeliveryStatus.DELIVERED)

        commission, earning = self.pricing.split_commission(
            delivery.delivery_fee,
            DELIVERY_COMMISSION_RATE,
            discount=active_plan(user).commission_discount,
        )
        now = utcnow()
        delivery.status = DeliveryStatus.DELIVERED
        delivery.delivered_at = now
        delivery.platform_commission = commission
        delivery.rider_earning = earning

        profile.total_rides += 1
        profile.total_earnings = round(profile.total_earnings + earning, 2)
        profile.monthly_commission_due = round(
            profile.monthly_commission_due + commission, 2
        )
        profile.is_available = True

        await EarningRepository(self.session).add(
            DriverEarningModel(
                provider_id=user.id,
                delivery_id=delivery.id,
                gross_amount=delivery.delivery_fee,
                commission=commission,
                net_amount=earning,
                week_starting=week_start(now),
                month_year=now.strftime("%Y-%m"),
            )
        )
        await self._after_transition(
            delivery,
            profile,
            "Delivered",
            event=role_event(UserRole.DISPATCHER, "trip_completed"),
            webhook_event="delivery.completed",
        )
        logger.info("Delivery %s completed: earning=%.2f", delivery.id, earning)
        return delivery

    async def report_issue(
        self,
        user: UserModel,
        delivery_id: int,
        issue_type: str,
        description: str,
    ) -> DeliveryModel:
        delivery, profile = await self._assigned(user, delivery_id)
        issue = {
            "type": issue_type,
            "description": description,
            "reported_by": user.id,
            "reported_at": utcnow().isoformat(),
            "latitude": profile.current_lat,
            "longitude": profile.current_lng,
        }
        delivery.issues = [*(delivery.issues or []), issue]

        data = delivery_payload(delivery, issue=issue)
        await self.notifications.notify_admins(
            NotificationType.SYSTEM_ALERT,
            "Delivery Issue Reported",
            f"{issue_type} on delivery {delivery.tracking_code}: {description}",
            data,
            Priority.HIGH,
        )
        await self.notifications.notify(
            delivery.customer_id,
            NotificationType.DELIVERY_UPDATE,
            "Delivery Issue",
            f"Your rider reported an issue: {description}",
            data,
            Priority.HIGH,
        )
        await self.webhooks.send("delivery.issue", data, delivery.id)
        return delivery

    async def rider_deliveries(
        self,
        user: UserModel,
        status: Optional[DeliveryStatus] = None,
        page: int = 1,
        limit: int = 20,
    ):
        await self._rider(user)
        return await self.repo.list_for_rider(user.id, status, page, limit)

    # ── Administration ────────────────────────────────────────────

    async def statistics(self) -> dict[str, Any]:
        by_status = await self.repo.count_by_status()
        revenue, commission = await self.repo.delivered_totals()
        return {
            "total_deliveries": sum(by_status.values()),
            "by_status": by_status,
            "delivered_revenue": round(revenue, 2),
            "platform_commission": round(commission, 2),
            "rider_payouts": round(revenue - commission, 2),
        }

    # ── Fan-out ───────────────────────────────────────────────────

    async def _after_transition(
        self,
        delivery: DeliveryModel,
        profile: Optional[DriverProfileModel],
        message: str,
        event: str = "delivery_status_update",
        webhook_event: str = "delivery.status_update",
        **extra: Any,
    ) -> None:
        await self.tracking.record(
            delivery_id=delivery.id,
            status=delivery.status.value,
            latitude=profile.current_lat if profile else None,
            longitude=profile.current_lng if profile else None,
            message=message,
        )
        await self._sync_order(delivery)

        data = delivery_payload(delivery, message=message, **extra)
        await self.realtime.emit_to_room(delivery_room(delivery.id), event, data)
        await self.realtime.notify_user(delivery.customer_id, "delivery_update", data)
        await self.notifications.notify(
            delivery.customer_id,
            NotificationType.DELIVERY_UPDATE,
            "Delivery Update",
            STATUS_MESSAGES.get(delivery.status, message),
            data,
            Priority.HIGH if delivery.status == DeliveryStatus.ASSIGNED else Priority.STANDARD,
        )
        await self.webhooks.send(webhook_event, data, delivery.id)

    async def _sync_order(self, delivery: DeliveryModel) -> None:
        target = ORDER_FOLLOWS.get(delivery.status)
        if delivery.order_id is None or target is None:
            return
        order = await OrderRepository(self.session).get_by_id(delivery.order_id)
        if order is None or not order_machine.can(order.status, target):
            return
        order.status = target
        await self.realtime.notify_user(
            order.customer_id,
            "order_update",
            {"order_id": order.id, "order_number": order.order_number, "status": target.value},
        )
