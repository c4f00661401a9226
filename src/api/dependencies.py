"""FastAPI dependency injection helpers."""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.security import decode_token
from src.domain.enums import ADMIN_ROLES, UserRole
from src.infrastructure.database import async_session_factory
from src.infrastructure.models import UserModel
from src.infrastructure.redis_client import get_redis
from src.infrastructure.repositories import UserRepository
from src.services.notifications import NotificationService
from src.services.realtime import RealtimeBroadcaster
from src.services.webhooks import WebhookService

bearer = HTTPBearer(auto_error=False)


async def get_db() -> AsyncSession:  # type: ignore[misc]
    """Yield an async DB session; commit on success, rollback on error."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


# ── Side channels ─────────────────────────────────────────────────────


async def get_realtime() -> RealtimeBroadcaster:
    return RealtimeBroadcaster(await get_redis())


def get_webhooks() -> WebhookService:
    return WebhookService.from_settings()


def get_notifications(
    db: AsyncSession = Depends(get_db),
    realtime: RealtimeBroadcaster = Depends(get_realtime),
) -> NotificationService:
    return NotificationService(db, realtime)


# ── Auth ──────────────────────────────────────────────────────────────


async def _user_from_credentials(
    credentials: Optional[HTTPAuthorizationCredentials], db: AsyncSession
) -> Optional[UserModel]:
    if credentials is None:
        return None
    user_id = decode_token(credentials.credentials)
    if user_id is None:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    user = await UserRepository(db).get_by_id(user_id)
    if user is None or not user.is_active:
        raise HTTPException(status_code=401, detail="User not found or inactive")
    return user


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    db: AsyncSession = Depends(get_db),
) -> UserModel:
    user = await _user_from_credentials(credentials, db)
    if user is None:
        raise HTTPException(
            status_code=401,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    db: AsyncSession = Depends(get_db),
) -> Optional[UserModel]:
    return await _user_from_credentials(credentials, db)


def require_roles(*roles: UserRole):
    """Dependency factory: the caller must hold one of *roles*."""
    allowed = frozenset(roles)

    async def checker(user: UserModel = Depends(get_current_user)) -> UserModel:
        if user.role not in allowed:
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return user

    return checker


require_admin = require_roles(*ADMIN_ROLES)
