"""
Test data factories and the SQLite engine shared by every test module.

The production models are portable (plain lat/lng columns, H3 cells as
strings, JSON for boundaries), so the schema is created straight from
``Base.metadata``.
"""

from __future__ import annotations

import uuid
from typing import Optional

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from src.api.security import create_access_token
from src.config import settings
from src.domain.enums import UserRole, VerificationStatus
from src.domain.matching import cell_for
from src.infrastructure import models  # noqa: F401  (registers tables)
from src.infrastructure.database import utcnow
from src.infrastructure.models import (
    DriverProfileModel,
    ProductModel,
    StoreModel,
    UserModel,
)
from src.services.realtime import RealtimeBroadcaster


# ── Test DB (SQLite in-memory) ────────────────────────────────────────

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"

test_engine = create_async_engine(
    TEST_DB_URL,
    echo=False,
    poolclass=StaticPool,
    connect_args={"check_same_thread": False},
)
TestSessionFactory = async_sessionmaker(
    test_engine, class_=AsyncSession, expire_on_commit=False
)

# Accra city centre and a point ~2 km away
ACCRA = (5.6037, -0.1870)
OSU = (5.5560, -0.1820)


class RecordingBroadcaster(RealtimeBroadcaster):
    """Keeps every emitted ``(room, event, data)`` instead of publishing."""

    def __init__(self):
        super().__init__(client=None)
        self.events: list[tuple[str, str, dict]] = []

    async def emit_to_room(self, room, event, data):
        self.events.append((room, event, data))

    def names(self, room: Optional[str] = None) -> list[str]:
        return [e for r, e, _ in self.events if room is None or r == room]


# ── Factories ─────────────────────────────────────────────────────────


async def create_user(
    role: UserRole = UserRole.CUSTOMER, email: Optional[str] = None, **fields
) -> UserModel:
    async with TestSessionFactory() as session:
        user = UserModel(
            email=email or f"{uuid.uuid4().hex[:10]}@example.com",
            first_name=fields.pop("first_name", "Test"),
            last_name=fields.pop("last_name", role.value.title()),
            role=role,
            **fields,
        )
        session.add(user)
        await session.commit()
        return user


async def create_provider(
    role: UserRole = UserRole.DRIVER,
    lat: float = ACCRA[0],
    lng: float = ACCRA[1],
    verified: bool = True,
    available: bool = True,
) -> tuple[UserModel, DriverProfileModel]:
    user = await create_user(role)
    async with TestSessionFactory() as session:
        profile = DriverProfileModel(
            user_id=user.id,
            role=role,
            vehicle_make="Toyota",
            vehicle_model="Corolla",
            vehicle_plate=f"GR-{uuid.uuid4().hex[:4].upper()}-24",
            verification_status=(
                VerificationStatus.APPROVED if verified else VerificationStatus.PENDING
            ),
            is_available=available,
            is_online=available,
            current_lat=lat,
            current_lng=lng,
            h3_cell=cell_for(lat, lng, settings.h3_resolution),
            last_location_at=utcnow(),
        )
        session.add(profile)
        await session.commit()
        return user, profile


async def create_store(owner: UserModel, lat: float = OSU[0], lng: float = OSU[1]):
    async with TestSessionFactory() as session:
        store = StoreModel(
            owner_id=owner.id,
            name="Osu Corner Shop",
            category="Grocery",
            address="Oxford Street, Osu",
            latitude=lat,
            longitude=lng,
        )
        session.add(store)
        await session.commit()
        return store


async def create_product(
    store: StoreModel,
    name: str = "Jollof rice",
    price: float = 10.0,
    stock_quantity: Optional[int] = None,
    **fields,
) -> ProductModel:
    async with TestSessionFactory() as session:
        product = ProductModel(
            store_id=store.id,
            name=name,
            price=price,
            category=fields.pop("category", "Food"),
            stock_quantity=stock_quantity,
            **fields,
        )
        session.add(product)
        await session.commit()
        return product


def auth(user: UserModel) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}

