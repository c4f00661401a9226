"""
Reviews and provider ratings.

Either party of a COMPLETED booking may review the other once.  A customer
may also review a store once.  Whenever a review about a provider is added,
changed or removed, the provider's ``rating`` is recomputed as the average of
every review they received (5.0 when none are left).
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.domain.enums import ADMIN_ROLES, BookingStatus, NotificationType
from src.domain.errors import NotFound, PermissionDenied, ValidationFailed
from src.infrastructure.models import ReviewModel, UserModel
from src.infrastructure.repositories import (
    BookingRepository,
    ProviderRepository,
    ReviewRepository,
    StoreRepository,
)
from src.services.notifications import NotificationService

logger = logging.getLogger(__name__)

DEFAULT_RATING = 5.0
REVIEW_FIELDS = (
    "rating",
    "comment",
    "service_rating",
    "timeliness_rating",
    "cleanliness_rating",
    "communication_rating",
)


def rating_summary(counts: dict[int, int]) -> dict[str, Any]:
    total = sum(counts.values())
    average = sum(r * c for r, c in counts.items()) / total if total else 0.0
    return {
        "total_reviews": total,
        "average_rating": round(average, 2),
        "distribution": {str(r): counts.get(r, 0) for r in range(1, 6)},
    }


class ReviewService:
    def __init__(self, session: AsyncSession, notifications: NotificationService):
        self.session = session
        self.notifications = notifications
        self.repo = ReviewRepository(session)
        self.bookings = BookingRepository(session)
        self.stores = StoreRepository(session)
        self.providers = ProviderRepository(session)

    async def create(self, user: UserModel, data: dict[str, Any]) -> ReviewModel:
        booking_id, store_id = data.get("booking_id"), data.get("store_id")
        if (booking_id is None) == (store_id is None):
            raise ValidationFailed("Review either a booking or a store")

        fields = {k: v for k, v in data.items() if k in REVIEW_FIELDS}
        if booking_id is not None:
            review, notice = await self._booking_review(user, booking_id, fields)
        else:
            review, notice = await self._store_review(user, store_id, fields)

        try:
            await self.repo.add(review)
        except IntegrityError:
            # a concurrent duplicate review won the unique constraint
            await self.session.rollback()
            raise ValidationFailed(notice)

        await self._refresh_rating(review.receiver_id)
        recipient = review.receiver_id
        if recipient is None:
            recipient = (await self.stores.get_by_id(review.store_id)).owner_id
        await self.notifications.notify(
            recipient,
            NotificationType.NEW_REVIEW,
            "New Review",
            f"{user.full_name} left you a {review.rating}-star review",
            {
                "review_id": review.id,
                "booking_id": review.booking_id,
                "store_id": review.store_id,
                "rating": review.rating,
            },
        )
        logger.info("Review %s by user %s", review.id, user.id)
        return review

    async def _booking_review(self, user: UserModel, booking_id: int, fields: dict):
        booking = await self.bookings.get_by_id(booking_id)
        if booking is None:
            raise NotFound("Booking not found")
        if user.id not in (booking.customer_id, booking.provider_id):
            raise PermissionDenied("You can only review bookings you were involved in")
        if booking.status != BookingStatus.COMPLETED:
            raise ValidationFailed("Only completed bookings can be reviewed")
        notice = "You have already reviewed this booking"
        if await self.repo.find_for_booking(booking.id, user.id):
            raise ValidationFailed(notice)
        receiver = (
            booking.provider_id if user.id == booking.customer_id else booking.customer_id
        )
        review = ReviewModel(
            **fields, reviewer_id=user.id, receiver_id=receiver, booking_id=booking.id
        )
        return review, notice

    async def _store_review(self, user: UserModel, store_id: int, fields: dict):
        store = await self.stores.get_by_id(store_id)
        if store is None or not store.is_active:
            raise NotFound("Store not found")
        if store.owner_id == user.id:
            raise ValidationFailed("You cannot review your own store")
        notice = "You have already reviewed this store"
        if await self.repo.find_for_store(store.id, user.id):
            raise ValidationFailed(notice)
        return ReviewModel(**fields, reviewer_id=user.id, store_id=store.id), notice

    async def _refresh_rating(self, receiver_id: Optional[int]) -> None:
        if receiver_id is None:
            return
        profile = await self.providers.get_by_user_id(receiver_id)
        if profile is None:
            return
        summary = rating_summary(await self.repo.rating_counts(receiver_id=receiver_id))
        profile.rating = (
            summary["average_rating"] if summary["total_reviews"] else DEFAULT_RATING
        )

    # ── Reading ───────────────────────────────────────────────────

    async def get(self, review_id: int) -> ReviewModel:
        review = await self.repo.get_by_id(review_id)
        if review is None:
            raise NotFound("Review not found")
        return review

    async def list_reviews(
        self,
        receiver_id: Optional[int] = None,
        store_id: Optional[int] = None,
        page: int = 1,
        limit: int = 20,
    ):
        return await self.repo.list_reviews(receiver_id, store_id, None, page, limit)

    async def list_mine(self, user: UserModel, page: int = 1, limit: int = 20):
        return await self.repo.list_reviews(reviewer_id=user.id, page=page, limit=limit)

    async def stats(
        self, receiver_id: Optional[int] = None, store_id: Optional[int] = None
    ) -> dict[str, Any]:
        counts = await self.repo.rating_counts(receiver_id=receiver_id, store_id=store_id)
        return {"receiver_id": receiver_id, "store_id": store_id, **rating_summary(counts)}

    # ── Editing ───────────────────────────────────────────────────

    async def update(
        self, user: UserModel, review_id: int, data: dict[str, Any]
    ) -> ReviewModel:
        review = await self.get(review_id)
        if review.reviewer_id != user.id:
            raise PermissionDenied("You can only edit your own reviews")
        for key, value in data.items():
            if key in REVIEW_FIELDS and value is not None:
                setattr(review, key, value)
        await self._refresh_rating(review.receiver_id)
        return review

    async def delete(self, user: UserModel, review_id: int) -> None:
        review = await self.get(review_id)
        if review.reviewer_id != user.id and user.role not in ADMIN_ROLES:
            raise PermissionDenied("You can only delete your own reviews")
        receiver_id = review.receiver_id
        await self.repo.delete(review)
        await self._refresh_rating(receiver_id)
