"""
Database plumbing for the logistics store.

* ``engine`` -- asyncpg-backed engine; pool sizing comes from settings so the
  API process and the dispatcher can be tuned separately.
* ``async_session_factory`` -- sessions keep loaded attributes after commit,
  which the services rely on when building response payloads.
* ``Base`` -- declarative base every table in ``models`` derives from.
"""

from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from src.config import settings

engine = create_async_engine(
    settings.database_url,
    echo=settings.db_echo,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    pool_pre_ping=True,
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    pass


def utcnow() -> datetime:
    """Naive UTC timestamp; every DateTime column stores naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
