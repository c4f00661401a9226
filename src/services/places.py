"""
Community places: submissions, moderation, votes and categories.

Places submitted by regular users wait in PENDING until an admin approves
them; admin submissions are approved on creation.  Only APPROVED, active
places are visible to the public listing, search and nearby lookups.

Votes are one per user per place, or one per anonymous session per place.
A vote may suggest a different category for the place.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.domain.distance import haversine_km
from src.domain.enums import ADMIN_ROLES, NotificationType, PlaceStatus, Priority
from src.domain.errors import NotFound, PermissionDenied, ValidationFailed
from src.infrastructure.database import utcnow
from src.infrastructure.models import (
    PlaceCategoryModel,
    PlaceModel,
    PlaceVoteModel,
    UserModel,
)
from src.infrastructure.repositories import (
    AuditLogRepository,
    PlaceCategoryRepository,
    PlaceRepository,
    PlaceVoteRepository,
)
from src.services.notifications import NotificationService

logger = logging.getLogger(__name__)

PLACE_FIELDS = (
    "name",
    "description",
    "category_id",
    "address",
    "latitude",
    "longitude",
    "contact_phone",
    "website",
)
CATEGORY_FIELDS = ("name", "description", "icon", "sort_order", "is_active")


class PlaceService:
    def __init__(self, session: AsyncSession, notifications: NotificationService):
        self.session = session
        self.notifications = notifications
        self.repo = PlaceRepository(session)
        self.categories = PlaceCategoryRepository(session)
        self.votes = PlaceVoteRepository(session)

    # ── Places ────────────────────────────────────────────────────

    async def _category(self, category_id: Optional[int]) -> Optional[PlaceCategoryModel]:
        if category_id is None:
            return None
        category = await self.categories.get_by_id(category_id)
        if category is None:
            raise NotFound("Category not found")
        return category

    async def create(self, user: UserModel, data: dict[str, Any]) -> PlaceModel:
        await self._category(data.get("category_id"))
        is_admin = user.role in ADMIN_ROLES
        now = utcnow()
        place = await self.repo.add(
            PlaceModel(
                **{k: v for k, v in data.items() if k in PLACE_FIELDS},
                status=PlaceStatus.APPROVED if is_admin else PlaceStatus.PENDING,
                created_by=user.id,
                approved_by=user.id if is_admin else None,
                approved_at=now if is_admin else None,
            )
        )
        if not is_admin:
            await self.notifications.notify_admins(
                NotificationType.SYSTEM_ALERT,
                "New Place Requires Approval",
                f"{place.name} has been submitted for approval",
                {"place_id": place.id},
            )
        return place

    async def list_public(
        self,
        category_id: Optional[int] = None,
        text: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ):
        return await self.repo.list_places(PlaceStatus.APPROVED, category_id, text, page, limit)

    async def get(self, place_id: int, user: Optional[UserModel] = None) -> PlaceModel:
        place = await self.repo.get_by_id(place_id)
        if place is None or not place.is_active:
            raise NotFound("Place not found")
        if place.status != PlaceStatus.APPROVED and not self._can_manage(user, place):
            raise NotFound("Place not found")
        return place

    async def by_category(self, category_id: int, page: int = 1, limit: int = 20):
        await self._category(category_id)
        return await self.repo.list_places(PlaceStatus.APPROVED, category_id, None, page, limit)

    async def nearby(
        self,
        lat: float,
        lng: float,
        radius_km: float = 5.0,
        limit: int = 20,
        category_id: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        found = []
        for place in await self.repo.get_approved():
            if category_id and place.category_id != category_id:
                continue
            distance = haversine_km(lat, lng, place.latitude, place.longitude)
            if distance <= radius_km:
                found.append({"place": place, "distance_km": round(distance, 2)})
        found.sort(key=lambda item: item["distance_km"])
        return found[:limit]

    @staticmethod
    def _can_manage(user: Optional[UserModel], place: PlaceModel) -> bool:
        return user is not None and (
            user.role in ADMIN_ROLES or place.created_by == user.id
        )

    async def update(
        self, user: UserModel, place_id: int, data: dict[str, Any]
    ) -> PlaceModel:
        place = await self.repo.get_by_id(place_id)
        if place is None:
            raise NotFound("Place not found")
        if not self._can_manage(user, place):
            raise PermissionDenied("Insufficient permissions to update this place")
        if "category_id" in data:
            await self._category(data["category_id"])
        for key, value in data.items():
            if key in PLACE_FIELDS and value is not None:
                setattr(place, key, value)
        return place

    async def delete(self, user: UserModel, place_id: int) -> None:
        place = await self.repo.get_by_id(place_id)
        if place is None:
            raise NotFound("Place not found")
        if not self._can_manage(user, place):
            raise PermissionDenied("Insufficient permissions to delete this place")
        await self.votes.delete_for_place(place.id)
        await self.repo.delete(place)

    # ── Votes ─────────────────────────────────────────────────────

    async def vote(
        self,
        place_id: int,
        is_positive: bool,
        *,
        user: Optional[UserModel] = None,
        session_id: Optional[str] = None,
        suggested_category_id: Optional[int] = None,
        comment: Optional[str] = None,
    ) -> PlaceVoteModel:
        if user is None and not session_id:
            raise ValidationFailed("Anonymous votes need a session id")
        place = await self.get(place_id)
        await self._category(suggested_category_id)

        user_id = user.id if user else None
        if await self.votes.find(place.id, user_id=user_id, session_id=session_id):
            raise ValidationFailed("You have already voted for this place")

        vote = PlaceVoteModel(
            place_id=place.id,
            user_id=user_id,
            session_id=None if user else session_id,
            is_positive=is_positive,
            suggested_category_id=(
                suggested_category_id
                if suggested_category_id != place.category_id
                else None
            ),
            comment=comment,
        )
        try:
            return await self.votes.add(vote)
        except IntegrityError:
            # a concurrent identical vote won the unique constraint
            await self.session.rollback()
            raise ValidationFailed("You have already voted for this place")

    async def vote_summary(self, place_id: int) -> dict[str, Any]:
        place = await self.get(place_id)
        votes = await self.votes.list_for_place(place.id)
        likes = sum(1 for v in votes if v.is_positive)
        return {
            "place_id": place.id,
            "total_votes": len(votes),
            "likes": likes,
            "dislikes": len(votes) - likes,
            "like_ratio": round(likes / len(votes), 2) if votes else None,
        }

    async def category_suggestions(self, place_id: int) -> list[dict[str, Any]]:
        place = await self.get(place_id)
        counts = Counter(
            v.suggested_category_id
            for v in await self.votes.list_for_place(place.id)
            if v.suggested_category_id
        )
        suggestions = []
        for category_id, count in counts.most_common():
            category = await self.categories.get_by_id(category_id)
            suggestions.append(
                {
                    "category_id": category_id,
                    "category_name": category.name if category else None,
                    "votes": count,
                }
            )
        return suggestions

    async def user_votes(self, user: UserModel) -> list[PlaceVoteModel]:
        return await self.votes.list_for_user(user.id)

    # ── Moderation ────────────────────────────────────────────────

    async def list_all(
        self,
        status: Optional[PlaceStatus] = None,
        text: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ):
        return await self.repo.list_places(status, None, text, page, limit)

    async def list_pending(self, page: int = 1, limit: int = 20):
        return await self.repo.list_places(PlaceStatus.PENDING, None, None, page, limit)

    async def _moderate(
        self,
        admin: UserModel,
        place_id: int,
        status: PlaceStatus,
        reason: Optional[str] = None,
    ) -> PlaceModel:
        place = await self.repo.get_by_id(place_id)
        if place is None:
            raise NotFound("Place not found")
        place.status = status
        place.approved_by = admin.id if status == PlaceStatus.APPROVED else None
        place.approved_at = utcnow() if status == PlaceStatus.APPROVED else None
        place.rejection_reason = reason if status == PlaceStatus.REJECTED else None

        await AuditLogRepository(self.session).record(
            f"PLACE_{status.value}", "place", place.id, admin.id, {"reason": reason}
        )
        if place.created_by and place.created_by != admin.id:
            verdict = "approved" if status == PlaceStatus.APPROVED else "rejected"
            body = f"Your place '{place.name}' was {verdict}"
            if reason:
                body += f": {reason}"
            await self.notifications.notify(
                place.created_by,
                NotificationType.SYSTEM_ALERT,
                f"Place {verdict.capitalize()}",
                body,
                {"place_id": place.id, "status": status.value},
                Priority.LOW,
            )
        return place

    async def approve(self, admin: UserModel, place_id: int) -> PlaceModel:
        return await self._moderate(admin, place_id, PlaceStatus.APPROVED)

    async def reject(self, admin: UserModel, place_id: int, reason: str) -> PlaceModel:
        if not reason:
            raise ValidationFailed("A rejection reason is required")
        return await self._moderate(admin, place_id, PlaceStatus.REJECTED, reason)

    # ── Categories ────────────────────────────────────────────────

    async def list_categories(self, include_inactive: bool = False):
        return await self.categories.list_categories(active_only=not include_inactive)

    async def create_category(self, data: dict[str, Any]) -> PlaceCategoryModel:
        if await self.categories.get_by_name(data["name"]):
            raise ValidationFailed(f"Category '{data['name']}' already exists")
        return await self.categories.add(
            PlaceCategoryModel(**{k: v for k, v in data.items() if k in CATEGORY_FIELDS})
        )

    async def update_category(
        self, category_id: int, data: dict[str, Any]
    ) -> PlaceCategoryModel:
        category = await self._category(category_id)
        new_name = data.get("name")
        if new_name and new_name != category.name:
            if await self.categories.get_by_name(new_name):
                raise ValidationFailed(f"Category '{new_name}' already exists")
        for key, value in data.items():
            if key in CATEGORY_FIELDS and value is not None:
                setattr(category, key, value)
        return category
