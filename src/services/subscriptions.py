"""
Subscription plans and benefits.

Plans are static configuration; a subscription is just ``tier`` +
``expires_at`` on the user row.  Payment capture happens outside this
service, so subscribing activates the plan immediately.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.domain.entities import SubscriptionPlan
from src.domain.enums import NotificationType, Priority, SubscriptionTier
from src.domain.errors import NotFound, ValidationFailed
from src.infrastructure.database import utcnow
from src.infrastructure.models import UserModel
from src.services.notifications import NotificationService

PLANS: dict[SubscriptionTier, SubscriptionPlan] = {
    SubscriptionTier.BASIC: SubscriptionPlan(
        id="basic",
        name="Basic",
        price=0.0,
        duration_days=30,
        features=("Standard booking", "Basic support", "Standard pricing"),
        max_active_bookings=3,
        commission_discount=0.0,
    ),
    SubscriptionTier.PREMIUM: SubscriptionPlan(
        id="premium",
        name="Premium",
        price=5000.0,
        duration_days=30,
        features=(
            "Priority booking",
            "24/7 support",
            "5% discount on rides",
            "Free cancellation",
            "Day booking",
        ),
        max_active_bookings=10,
        commission_discount=0.05,
        priority_support=True,
    ),
    SubscriptionTier.ENTERPRISE: SubscriptionPlan(
        id="enterprise",
        name="Enterprise",
        price=15000.0,
        duration_days=30,
        features=(
            "Unlimited bookings",
            "Dedicated support",
            "15% discount on rides",
            "Custom integrations",
            "Analytics dashboard",
            "Day booking",
        ),
        max_active_bookings=50,
        commission_discount=0.15,
        priority_support=True,
    ),
}

PLANS_BY_ID = {plan.id: tier for tier, plan in PLANS.items()}


def active_tier(user: UserModel, now: Optional[datetime] = None) -> SubscriptionTier:
    """The user's tier while unexpired, BASIC otherwise."""
    now = now or utcnow()
    if (
        user.subscription_tier
        and user.subscription_expires_at
        and user.subscription_expires_at > now
    ):
        return SubscriptionTier(user.subscription_tier)
    return SubscriptionTier.BASIC


def active_plan(user: UserModel, now: Optional[datetime] = None) -> SubscriptionPlan:
    return PLANS[active_tier(user, now)]


def plan_for(plan_id: str) -> tuple[SubscriptionTier, SubscriptionPlan]:
    tier = PLANS_BY_ID.get(plan_id.lower())
    if tier is None:
        raise NotFound("Subscription plan not found")
    return tier, PLANS[tier]


class SubscriptionService:
    def __init__(self, session: AsyncSession, notifications: NotificationService):
        self.session = session
        self.notifications = notifications

    @staticmethod
    def list_plans() -> list[SubscriptionPlan]:
        return list(PLANS.values())

    async def subscribe(self, user: UserModel, plan_id: str) -> dict[str, Any]:
        tier, plan = plan_for(plan_id)
        now = utcnow()
        user.subscription_tier = tier
        user.subscription_expires_at = now + timedelta(days=plan.duration_days)

        await self.notifications.notify(
            user.id,
            NotificationType.SUBSCRIPTION_ACTIVATED,
            "Subscription Activated",
            f"Your {plan.name} subscription is active until "
            f"{user.subscription_expires_at:%Y-%m-%d}",
            {"plan": plan.id, "expires_at": user.subscription_expires_at.isoformat()},
            Priority.STANDARD,
        )
        return self.status(user)

    async def renew(self, user: UserModel) -> dict[str, Any]:
        if not user.subscription_tier:
            raise ValidationFailed("No subscription to renew")
        plan = PLANS[SubscriptionTier(user.subscription_tier)]
        now = utcnow()
        start = max(now, user.subscription_expires_at or now)
        user.subscription_expires_at = start + timedelta(days=plan.duration_days)

        await self.notifications.notify(
            user.id,
            NotificationType.SUBSCRIPTION_RENEWED,
            "Subscription Renewed",
            f"Your {plan.name} subscription now runs until "
            f"{user.subscription_expires_at:%Y-%m-%d}",
            {"plan": plan.id, "expires_at": user.subscription_expires_at.isoformat()},
        )
        return self.status(user)

    @staticmethod
    def status(user: UserModel) -> dict[str, Any]:
        now = utcnow()
        tier = active_tier(user, now)
        expires_at = user.subscription_expires_at
        return {
            "tier": tier.value,
            "plan": PLANS[tier],
            "expires_at": expires_at,
            "is_active": expires_at is not None and expires_at > now,
        }

    @staticmethod
    def benefits(user: UserModel) -> dict[str, Any]:
        plan = active_plan(user)
        return {
            "tier": active_tier(user).value,
            "max_active_bookings": plan.max_active_bookings,
            "commission_discount": plan.commission_discount,
            "priority_support": plan.priority_support,
            "day_booking": "Day booking" in plan.features,
            "features": list(plan.features),
        }
