"""In-app notifications: persisted rows plus a realtime ``notification`` push."""

from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.domain.enums import NotificationType, Priority
from src.domain.errors import NotFound
from src.infrastructure.database import utcnow
from src.infrastructure.models import NotificationModel
from src.infrastructure.repositories import NotificationRepository, UserRepository
from src.services.realtime import RealtimeBroadcaster

logger = logging.getLogger(__name__)


class NotificationService:
    def __init__(self, session: AsyncSession, realtime: RealtimeBroadcaster):
        self.session = session
        self.realtime = realtime
        self.repo = NotificationRepository(session)

    async def notify(
        self,
        user_id: int,
        type: NotificationType,
        title: str,
        body: str,
        data: Optional[dict[str, Any]] = None,
        priority: Priority = Priority.STANDARD,
    ) -> NotificationModel:
        notification = await self.repo.add(
            NotificationModel(
                user_id=user_id,
                type=type,
                title=title,
                body=body,
                data=data or {},
                priority=priority,
            )
        )
        await self.realtime.notify_user(
            user_id,
            "notification",
            {
                "id": notification.id,
                "type": type.value,
                "title": title,
                "body": body,
                "data": data or {},
                "priority": priority.value,
            },
        )
        return notification

    async def notify_admins(
        self,
        type: NotificationType,
        title: str,
        body: str,
        data: Optional[dict[str, Any]] = None,
        priority: Priority = Priority.STANDARD,
    ) -> int:
        admins = await UserRepository(self.session).get_active_admins()
        for admin in admins:
            await self.notify(admin.id, type, title, body, data, priority)
        if not admins:
            logger.warning("No active admins to receive %s", type.value)
        return len(admins)

    async def list_for_user(
        self, user_id: int, unread_only: bool = False, page: int = 1, limit: int = 20
    ) -> tuple[list[NotificationModel], int]:
        return await self.repo.list_for_user(user_id, unread_only, page, limit)

    async def unread_count(self, user_id: int) -> int:
        return await self.repo.count_unread(user_id)

    async def mark_read(self, user_id: int, notification_id: int) -> NotificationModel:
        notification = await self.repo.get_by_id(notification_id)
        if notification is None or notification.user_id != user_id:
            raise NotFound("Notification not found")
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = utcnow()
        return notification

    async def mark_all_read(self, user_id: int) -> int:
        return await self.repo.mark_all_read(user_id, utcnow())
