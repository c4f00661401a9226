"""
Admin reporting and account moderation.

Everything here is read-mostly aggregation over the booking, delivery and
user tables; the only writes are account suspension / reactivation, which
are audit logged.
"""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.domain.enums import (
    BookingStatus,
    NotificationType,
    Priority,
    VerificationStatus,
)
from src.domain.errors import NotFound, ValidationFailed
from src.infrastructure.models import UserModel
from src.infrastructure.repositories import (
    AuditLogRepository,
    BookingRepository,
    DeliveryRepository,
    ProviderRepository,
    UserRepository,
)
from src.services.notifications import NotificationService

logger = logging.getLogger(__name__)


class AdminService:
    def __init__(self, session: AsyncSession, notifications: NotificationService):
        self.session = session
        self.notifications = notifications
        self.users = UserRepository(session)
        self.bookings = BookingRepository(session)
        self.deliveries = DeliveryRepository(session)
        self.providers = ProviderRepository(session)
        self.audit = AuditLogRepository(session)

    async def dashboard(self) -> dict[str, Any]:
        users_by_role = await self.users.count_by_role()
        bookings_by_status = await self.bookings.count_by_status()
        revenue, commission = await self.bookings.completed_totals()
        deliveries_by_status = await self.deliveries.count_by_status()
        delivery_revenue, delivery_commission = await self.deliveries.delivered_totals()
        return {
            "users": {"total": sum(users_by_role.values()), "by_role": users_by_role},
            "bookings": {
                "total": sum(bookings_by_status.values()),
                "by_status": bookings_by_status,
            },
            "deliveries": {
                "total": sum(deliveries_by_status.values()),
                "by_status": deliveries_by_status,
            },
            "revenue": round(revenue + delivery_revenue, 2),
            "platform_commission": round(commission + delivery_commission, 2),
            "pending_verifications": await self.providers.count_pending_verification(),
        }

    async def metrics(
        self, start: Optional[datetime] = None, end: Optional[datetime] = None
    ) -> dict[str, Any]:
        if start and end and start > end:
            raise ValidationFailed("start must be before end")

        bookings = await self.bookings.list_between(start, end)
        per_kind: dict[str, dict[str, Any]] = defaultdict(
            lambda: {"bookings": 0, "completed": 0, "cancelled": 0, "revenue": 0.0}
        )
        hourly = Counter()
        for booking in bookings:
            stats = per_kind[booking.kind.value]
            stats["bookings"] += 1
            if booking.status == BookingStatus.COMPLETED:
                stats["completed"] += 1
                stats["revenue"] = round(stats["revenue"] + (booking.final_price or 0.0), 2)
            elif booking.status == BookingStatus.CANCELLED:
                stats["cancelled"] += 1
            if booking.created_at:
                hourly[booking.created_at.hour] += 1

        return {
            "period": {"start": start, "end": end},
            "total_bookings": len(bookings),
            "by_kind": dict(per_kind),
            "hourly_activity": [{"hour": h, "bookings": hourly.get(h, 0)} for h in range(24)],
        }

    async def pending_verifications(self, page: int = 1, limit: int = 20):
        return await self.providers.list_providers(
            verification_status=VerificationStatus.PENDING, page=page, limit=limit
        )

    async def _user(self, user_id: int) -> UserModel:
        user = await self.users.get_by_id(user_id)
        if user is None:
            raise NotFound("User not found")
        return user

    async def suspend_user(
        self, admin: UserModel, user_id: int, reason: Optional[str] = None
    ) -> UserModel:
        user = await self._user(user_id)
        if user.id == admin.id:
            raise ValidationFailed("You cannot suspend your own account")
        user.is_active = False

        profile = await self.providers.get_by_user_id(user.id)
        if profile is not None:
            profile.is_available = False
            profile.is_online = False

        await self.audit.record(
            "USER_SUSPENDED", "user", user.id, admin.id, {"reason": reason}
        )
        await self.notifications.notify(
            user.id,
            NotificationType.SAFETY_ALERT,
            "Account Suspended",
            f"Your account has been suspended. Reason: {reason or 'not given'}",
            {"reason": reason},
            Priority.CRITICAL,
        )
        logger.info("User %s suspended by %s", user.id, admin.id)
        return user

    async def reactivate_user(self, admin: UserModel, user_id: int) -> UserModel:
        user = await self._user(user_id)
        user.is_active = True
        await self.audit.record("USER_REACTIVATED", "user", user.id, admin.id)
        await self.notifications.notify(
            user.id,
            NotificationType.SYSTEM_ALERT,
            "Account Reactivated",
            "Your account has been reactivated",
        )
        return user
