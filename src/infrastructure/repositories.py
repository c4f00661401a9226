"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.  List queries that back paginated endpoints
return ``(rows, total)``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Optional, Sequence

from sqlalchemy import Select, case, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    AuditLogModel,
    BookingModel,
    BookingOfferModel,
    DeliveryModel,
    DriverEarningModel,
    DriverProfileModel,
    DriverServiceZoneModel,
    NotificationModel,
    OrderModel,
    PlaceCategoryModel,
    PlaceModel,
    PlaceVoteModel,
    ProductModel,
    ReviewModel,
    SearchQueryModel,
    ServiceZoneModel,
    StoreModel,
    TrackingUpdateModel,
    UserModel,
)
from src.domain.enums import (
    BookingKind,
    BookingStatus,
    DeliveryStatus,
    OfferStatus,
    OrderStatus,
    PlaceStatus,
    UserRole,
    VerificationStatus,
)


class _Repository:
    model: Any = None

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, obj):
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def get_by_id(self, obj_id: int):
        return await self.session.get(self.model, obj_id)

    async def delete(self, obj) -> None:
        await self.session.delete(obj)
        await self.session.flush()

    async def _page(
        self, query: Select, page: int, limit: int
    ) -> tuple[list, int]:
        total = await self.session.scalar(
            select(func.count()).select_from(query.order_by(None).subquery())
        )
        result = await self.session.execute(
            query.offset((page - 1) * limit).limit(limit)
        )
        return list(result.scalars().all()), total or 0

    async def _count(self, *criteria) -> int:
        result = await self.session.execute(
            select(func.count()).select_from(self.model).where(*criteria)
        )
        return result.scalar() or 0


class UserRepository(_Repository):
    model = UserModel

    async def get_active_admins(self) -> list[UserModel]:
        result = await self.session.execute(
            select(UserModel).where(
                UserModel.role.in_([UserRole.SUPER_ADMIN, UserRole.CITY_ADMIN]),
                UserModel.is_active.is_(True),
            )
        )
        return list(result.scalars().all())

    async def count_by_role(self) -> dict[str, int]:
        result = await self.session.execute(
            select(UserModel.role, func.count()).group_by(UserModel.role)
        )
        return {role.value: count for role, count in result.all()}


class ProviderRepository(_Repository):
    model = DriverProfileModel

    async def get_by_user_id(self, user_id: int) -> Optional[DriverProfileModel]:
        result = await self.session.execute(
            select(DriverProfileModel).where(DriverProfileModel.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def get_available_in_cells(
        self,
        role: UserRole,
        cells: Sequence[str],
        exclude_user_ids: Iterable[int] = (),
    ) -> list[DriverProfileModel]:
        """Available, online, verified providers of *role* in the given H3 cells."""
        query = (
            select(DriverProfileModel)
            .join(UserModel, UserModel.id == DriverProfileModel.user_id)
            .where(
                DriverProfileModel.role == role,
                DriverProfileModel.is_available.is_(True),
                DriverProfileModel.is_online.is_(True),
                DriverProfileModel.verification_status
                == VerificationStatus.APPROVED,
                DriverProfileModel.h3_cell.in_(list(cells)),
                UserModel.is_active.is_(True),
            )
        )
        excluded = list(exclude_user_ids)
        if excluded:
            query = query.where(DriverProfileModel.user_id.notin_(excluded))
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def list_providers(
        self,
        role: Optional[UserRole] = None,
        verification_status: Optional[VerificationStatus] = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[DriverProfileModel], int]:
        query = select(DriverProfileModel).order_by(DriverProfileModel.created_at.desc())
        if role:
            query = query.where(DriverProfileModel.role == role)
        if verification_status:
            query = query.where(
                DriverProfileModel.verification_status == verification_status
            )
        return await self._page(query, page, limit)

    async def count_active_in_zone(self, zone_id: int) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(DriverServiceZoneModel)
            .join(
                DriverProfileModel,
                DriverProfileModel.id == DriverServiceZoneModel.provider_id,
            )
            .where(
                DriverServiceZoneModel.zone_id == zone_id,
                DriverServiceZoneModel.is_active.is_(True),
                DriverProfileModel.is_online.is_(True),
            )
        )
        return result.scalar() or 0

    async def count_pending_verification(self) -> int:
        return await self._count(
            DriverProfileModel.verification_status == VerificationStatus.PENDING
        )


class ZoneRepository(_Repository):
    model = ServiceZoneModel

    async def get_active(self) -> list[ServiceZoneModel]:
        result = await self.session.execute(
            select(ServiceZoneModel)
            .where(ServiceZoneModel.is_active.is_(True))
            .order_by(ServiceZoneModel.priority.desc(), ServiceZoneModel.id)
        )
        return list(result.scalars().all())

    async def get_all(self) -> list[ServiceZoneModel]:
        result = await self.session.execute(
            select(ServiceZoneModel).order_by(ServiceZoneModel.name)
        )
        return list(result.scalars().all())

    async def get_by_name(self, name: str) -> Optional[ServiceZoneModel]:
        result = await self.session.execute(
            select(ServiceZoneModel).where(ServiceZoneModel.name == name)
        )
        return result.scalar_one_or_none()

    async def get_link(
        self, provider_id: int, zone_id: int
    ) -> Optional[DriverServiceZoneModel]:
        result = await self.session.execute(
            select(DriverServiceZoneModel).where(
                DriverServiceZoneModel.provider_id == provider_id,
                DriverServiceZoneModel.zone_id == zone_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_provider_links(
        self, provider_id: int, active_only: bool = True
    ) -> list[DriverServiceZoneModel]:
        query = select(DriverServiceZoneModel).where(
            DriverServiceZoneModel.provider_id == provider_id
        )
        if active_only:
            query = query.where(DriverServiceZoneModel.is_active.is_(True))
        result = await self.session.execute(query)
        return list(result.scalars().all())


class BookingRepository(_Repository):
    model = BookingModel

    async def get_by_idempotency_key(self, key: str) -> Optional[BookingModel]:
        result = await self.session.execute(
            select(BookingModel).where(BookingModel.idempotency_key == key)
        )
        return result.scalar_one_or_none()

    async def claim(self, booking_id: int, provider_id: int, now: datetime) -> bool:
        """
        Conditional UPDATE ... WHERE status = PENDING.

        Exactly one of several concurrent acceptances sees ``rowcount == 1``.
        """
        result = await self.session.execute(
            update(BookingModel)
            .where(
                BookingModel.id == booking_id,
                BookingModel.status == BookingStatus.PENDING,
            )
            .values(
                provider_id=provider_id,
                status=BookingStatus.DRIVER_ASSIGNED,
                accepted_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount == 1

    async def get_pending(
        self, kinds: Optional[Iterable[BookingKind]] = None
    ) -> list[BookingModel]:
        """Pending bookings ready for dispatch (approval-gated ones excluded)."""
        query = (
            select(BookingModel)
            .where(
                BookingModel.status == BookingStatus.PENDING,
                BookingModel.requires_approval.is_(False),
            )
            .order_by(BookingModel.created_at)
        )
        if kinds is not None:
            query = query.where(BookingModel.kind.in_(list(kinds)))
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def list_awaiting_approval(
        self, page: int = 1, limit: int = 20
    ) -> tuple[list[BookingModel], int]:
        query = (
            select(BookingModel)
            .where(
                BookingModel.status == BookingStatus.PENDING,
                BookingModel.requires_approval.is_(True),
            )
            .order_by(BookingModel.created_at, BookingModel.id)
        )
        return await self._page(query, page, limit)

    async def list_for_customer(
        self,
        customer_id: int,
        kinds: Optional[Iterable[BookingKind]] = None,
        status: Optional[BookingStatus] = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[BookingModel], int]:
        query = (
            select(BookingModel)
            .where(BookingModel.customer_id == customer_id)
            .order_by(BookingModel.created_at.desc(), BookingModel.id.desc())
        )
        if kinds is not None:
            query = query.where(BookingModel.kind.in_(list(kinds)))
        if status:
            query = query.where(BookingModel.status == status)
        return await self._page(query, page, limit)

    async def list_for_provider(
        self,
        provider_id: int,
        status: Optional[BookingStatus] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[BookingModel], int]:
        query = (
            select(BookingModel)
            .where(BookingModel.provider_id == provider_id)
            .order_by(BookingModel.created_at.desc(), BookingModel.id.desc())
        )
        if status:
            query = query.where(BookingModel.status == status)
        if date_from:
            query = query.where(BookingModel.created_at >= date_from)
        if date_to:
            query = query.where(BookingModel.created_at <= date_to)
        return await self._page(query, page, limit)

    async def get_active_for_provider(
        self, provider_id: int, statuses: Iterable[BookingStatus]
    ) -> Optional[BookingModel]:
        result = await self.session.execute(
            select(BookingModel)
            .where(
                BookingModel.provider_id == provider_id,
                BookingModel.status.in_(list(statuses)),
            )
            .order_by(BookingModel.accepted_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_active_for_provider(
        self, provider_id: int, statuses: Iterable[BookingStatus]
    ) -> list[BookingModel]:
        result = await self.session.execute(
            select(BookingModel).where(
                BookingModel.provider_id == provider_id,
                BookingModel.status.in_(list(statuses)),
            )
        )
        return list(result.scalars().all())

    async def list_day_hires_for_provider(
        self, provider_id: int, statuses: Iterable[BookingStatus]
    ) -> list[BookingModel]:
        result = await self.session.execute(
            select(BookingModel)
            .where(
                BookingModel.provider_id == provider_id,
                BookingModel.kind == BookingKind.DAY,
                BookingModel.status.in_(list(statuses)),
            )
            .order_by(BookingModel.scheduled_at)
        )
        return list(result.scalars().all())

    async def count_customer_open(
        self, customer_id: int, statuses: Iterable[BookingStatus]
    ) -> int:
        return await self._count(
            BookingModel.customer_id == customer_id,
            BookingModel.status.in_(list(statuses)),
        )

    async def list_pending_of_kind(
        self, kind: BookingKind, since: Optional[datetime] = None
    ) -> list[BookingModel]:
        query = select(BookingModel).where(
            BookingModel.kind == kind,
            BookingModel.status == BookingStatus.PENDING,
        )
        if since:
            query = query.where(BookingModel.created_at >= since)
        result = await self.session.execute(query.order_by(BookingModel.created_at))
        return list(result.scalars().all())

    async def list_for_zone(self, zone_id: int) -> list[BookingModel]:
        result = await self.session.execute(
            select(BookingModel).where(
                or_(
                    BookingModel.origin_zone_id == zone_id,
                    BookingModel.destination_zone_id == zone_id,
                )
            )
        )
        return list(result.scalars().all())

    async def list_between(
        self, start: Optional[datetime] = None, end: Optional[datetime] = None
    ) -> list[BookingModel]:
        query = select(BookingModel)
        if start:
            query = query.where(BookingModel.created_at >= start)
        if end:
            query = query.where(BookingModel.created_at <= end)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def count_by_status(self) -> dict[str, int]:
        result = await self.session.execute(
            select(BookingModel.status, func.count()).group_by(BookingModel.status)
        )
        return {status.value: count for status, count in result.all()}

    async def completed_totals(self) -> tuple[float, float]:
        """``(revenue, platform_commission)`` over completed bookings."""
        result = await self.session.execute(
            select(
                func.coalesce(func.sum(BookingModel.final_price), 0.0),
                func.coalesce(func.sum(BookingModel.platform_commission), 0.0),
            ).where(BookingModel.status == BookingStatus.COMPLETED)
        )
        revenue, commission = result.one()
        return float(revenue), float(commission)


class OfferRepository(_Repository):
    model = BookingOfferModel

    async def get_for_provider(
        self, booking_id: int, provider_id: int
    ) -> Optional[BookingOfferModel]:
        result = await self.session.execute(
            select(BookingOfferModel)
            .where(
                BookingOfferModel.booking_id == booking_id,
                BookingOfferModel.provider_id == provider_id,
            )
            .order_by(BookingOfferModel.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_for_booking(self, booking_id: int) -> list[BookingOfferModel]:
        result = await self.session.execute(
            select(BookingOfferModel).where(BookingOfferModel.booking_id == booking_id)
        )
        return list(result.scalars().all())

    async def count_live(self, booking_id: int) -> int:
        return await self._count(
            BookingOfferModel.booking_id == booking_id,
            BookingOfferModel.status == OfferStatus.SENT,
        )

    async def list_pending_for_provider(
        self, provider_id: int, now: datetime
    ) -> list[BookingOfferModel]:
        result = await self.session.execute(
            select(BookingOfferModel)
            .where(
                BookingOfferModel.provider_id == provider_id,
                BookingOfferModel.status == OfferStatus.SENT,
                or_(
                    BookingOfferModel.expires_at.is_(None),
                    BookingOfferModel.expires_at > now,
                ),
            )
            .order_by(BookingOfferModel.sent_at.desc())
        )
        return list(result.scalars().all())

    async def declined_provider_ids(self, booking_id: int) -> set[int]:
        result = await self.session.execute(
            select(BookingOfferModel.provider_id).where(
                BookingOfferModel.booking_id == booking_id,
                BookingOfferModel.status == OfferStatus.DECLINED,
            )
        )
        return set(result.scalars().all())

    async def close_open_offers(
        self,
        booking_id: int,
        status: OfferStatus = OfferStatus.EXPIRED,
        except_provider_id: Optional[int] = None,
    ) -> int:
        stmt = (
            update(BookingOfferModel)
            .where(
                BookingOfferModel.booking_id == booking_id,
                BookingOfferModel.status == OfferStatus.SENT,
            )
            .values(status=status)
            .execution_options(synchronize_session="fetch")
        )
        if except_provider_id is not None:
            stmt = stmt.where(BookingOfferModel.provider_id != except_provider_id)
        result = await self.session.execute(stmt)
        return result.rowcount or 0

    async def expire_stale(self, now: datetime) -> int:
        result = await self.session.execute(
            update(BookingOfferModel)
            .where(
                BookingOfferModel.status == OfferStatus.SENT,
                BookingOfferModel.expires_at.is_not(None),
                BookingOfferModel.expires_at <= now,
            )
            .values(status=OfferStatus.EXPIRED)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount or 0


class TrackingRepository(_Repository):
    model = TrackingUpdateModel

    async def record(self, **fields) -> TrackingUpdateModel:
        return await self.add(TrackingUpdateModel(**fields))

    async def list_for_booking(self, booking_id: int) -> list[TrackingUpdateModel]:
        result = await self.session.execute(
            select(TrackingUpdateModel)
            .where(TrackingUpdateModel.booking_id == booking_id)
            .order_by(TrackingUpdateModel.created_at, TrackingUpdateModel.id)
        )
        return list(result.scalars().all())

    async def list_for_delivery(self, delivery_id: int) -> list[TrackingUpdateModel]:
        result = await self.session.execute(
            select(TrackingUpdateModel)
            .where(TrackingUpdateModel.delivery_id == delivery_id)
            .order_by(TrackingUpdateModel.created_at, TrackingUpdateModel.id)
        )
        return list(result.scalars().all())


class EarningRepository(_Repository):
    model = DriverEarningModel

    async def total_since(
        self, provider_id: int, since: Optional[datetime] = None
    ) -> float:
        query = select(func.coalesce(func.sum(DriverEarningModel.net_amount), 0.0)).where(
            DriverEarningModel.provider_id == provider_id
        )
        if since:
            query = query.where(DriverEarningModel.created_at >= since)
        return float(await self.session.scalar(query) or 0.0)

    async def list_for_provider(
        self, provider_id: int, page: int = 1, limit: int = 20
    ) -> tuple[list[DriverEarningModel], int]:
        query = (
            select(DriverEarningModel)
            .where(DriverEarningModel.provider_id == provider_id)
            .order_by(DriverEarningModel.created_at.desc(), DriverEarningModel.id.desc())
        )
        return await self._page(query, page, limit)


class DeliveryRepository(_Repository):
    model = DeliveryModel

    async def get_by_tracking_code(self, code: str) -> Optional[DeliveryModel]:
        result = await self.session.execute(
            select(DeliveryModel).where(DeliveryModel.tracking_code == code)
        )
        return result.scalar_one_or_none()

    async def claim(self, delivery_id: int, rider_id: int, now: datetime) -> bool:
        result = await self.session.execute(
            update(DeliveryModel)
            .where(
                DeliveryModel.id == delivery_id,
                DeliveryModel.status == DeliveryStatus.PENDING,
            )
            .values(
                rider_id=rider_id,
                status=DeliveryStatus.ASSIGNED,
                assigned_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount == 1

    async def get_pending(self) -> list[DeliveryModel]:
        result = await self.session.execute(
            select(DeliveryModel)
            .where(DeliveryModel.status == DeliveryStatus.PENDING)
            .order_by(DeliveryModel.created_at)
        )
        return list(result.scalars().all())

    async def list_for_customer(
        self,
        customer_id: int,
        status: Optional[DeliveryStatus] = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[DeliveryModel], int]:
        query = (
            select(DeliveryModel)
            .where(DeliveryModel.customer_id == customer_id)
            .order_by(DeliveryModel.created_at.desc(), DeliveryModel.id.desc())
        )
        if status:
            query = query.where(DeliveryModel.status == status)
        return await self._page(query, page, limit)

    async def list_for_rider(
        self,
        rider_id: int,
        status: Optional[DeliveryStatus] = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[DeliveryModel], int]:
        query = (
            select(DeliveryModel)
            .where(DeliveryModel.rider_id == rider_id)
            .order_by(DeliveryModel.created_at.desc(), DeliveryModel.id.desc())
        )
        if status:
            query = query.where(DeliveryModel.status == status)
        return await self._page(query, page, limit)

    async def list_active_for_rider(
        self, rider_id: int, statuses: Iterable[DeliveryStatus]
    ) -> list[DeliveryModel]:
        result = await self.session.execute(
            select(DeliveryModel).where(
                DeliveryModel.rider_id == rider_id,
                DeliveryModel.status.in_(list(statuses)),
            )
        )
        return list(result.scalars().all())

    async def get_for_order(self, order_id: int) -> Optional[DeliveryModel]:
        result = await self.session.execute(
            select(DeliveryModel)
            .where(DeliveryModel.order_id == order_id)
            .order_by(DeliveryModel.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def count_by_status(self) -> dict[str, int]:
        result = await self.session.execute(
            select(DeliveryModel.status, func.count()).group_by(DeliveryModel.status)
        )
        return {status.value: count for status, count in result.all()}

    async def delivered_totals(self) -> tuple[float, float]:
        result = await self.session.execute(
            select(
                func.coalesce(func.sum(DeliveryModel.delivery_fee), 0.0),
                func.coalesce(func.sum(DeliveryModel.platform_commission), 0.0),
            ).where(DeliveryModel.status == DeliveryStatus.DELIVERED)
        )
        revenue, commission = result.one()
        return float(revenue), float(commission)


class StoreRepository(_Repository):
    model = StoreModel

    async def ids_for_owner(self, owner_id: int) -> list[int]:
        result = await self.session.execute(
            select(StoreModel.id).where(StoreModel.owner_id == owner_id)
        )
        return list(result.scalars().all())

    async def search(self, text: str, limit: int = 20) -> list[StoreModel]:
        pattern = f"%{text}%"
        result = await self.session.execute(
            select(StoreModel)
            .where(
                StoreModel.is_active.is_(True),
                or_(
                    StoreModel.name.ilike(pattern),
                    StoreModel.description.ilike(pattern),
                    StoreModel.category.ilike(pattern),
                ),
            )
            .order_by(StoreModel.name)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def names_starting_with(self, prefix: str, limit: int = 5) -> list[str]:
        result = await self.session.execute(
            select(StoreModel.name)
            .where(StoreModel.is_active.is_(True), StoreModel.name.ilike(f"{prefix}%"))
            .order_by(StoreModel.name)
            .limit(limit)
        )
        return list(result.scalars().all())

    def _listing(
        self,
        category: Optional[str] = None,
        text: Optional[str] = None,
        owner_id: Optional[int] = None,
    ) -> Select:
        query = select(StoreModel).order_by(StoreModel.name, StoreModel.id)
        if owner_id is not None:
            query = query.where(StoreModel.owner_id == owner_id)
        else:
            query = query.where(StoreModel.is_active.is_(True))
        if category:
            query = query.where(StoreModel.category.ilike(category))
        if text:
            pattern = f"%{text}%"
            query = query.where(
                or_(StoreModel.name.ilike(pattern), StoreModel.description.ilike(pattern))
            )
        return query

    async def list_stores(
        self,
        category: Optional[str] = None,
        text: Optional[str] = None,
        owner_id: Optional[int] = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[StoreModel], int]:
        """Active stores, or every store of *owner_id* when given."""
        return await self._page(self._listing(category, text, owner_id), page, limit)

    async def list_all_active(
        self, category: Optional[str] = None, text: Optional[str] = None
    ) -> list[StoreModel]:
        result = await self.session.execute(self._listing(category, text))
        return list(result.scalars().all())


class ProductRepository(_Repository):
    model = ProductModel

    async def list_for_store(
        self,
        store_id: int,
        category: Optional[str] = None,
        in_stock: Optional[bool] = None,
        text: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[ProductModel], int]:
        query = (
            select(ProductModel)
            .where(ProductModel.store_id == store_id, ProductModel.is_active.is_(True))
            .order_by(ProductModel.name, ProductModel.id)
        )
        if category:
            query = query.where(ProductModel.category.ilike(category))
        if in_stock is not None:
            query = query.where(ProductModel.in_stock.is_(in_stock))
        if text:
            query = query.where(ProductModel.name.ilike(f"%{text}%"))
        return await self._page(query, page, limit)

    async def get_many(self, product_ids: Iterable[int]) -> dict[int, ProductModel]:
        ids = list(product_ids)
        if not ids:
            return {}
        result = await self.session.execute(
            select(ProductModel).where(ProductModel.id.in_(ids))
        )
        return {p.id: p for p in result.scalars().all()}

    async def reserve_stock(self, product_id: int, quantity: int) -> bool:
        """
        Conditional UPDATE ... WHERE stock_quantity >= quantity.

        Two orders racing for the last units cannot both take them.
        """
        remaining = ProductModel.stock_quantity - quantity
        result = await self.session.execute(
            update(ProductModel)
            .where(
                ProductModel.id == product_id,
                ProductModel.stock_quantity >= quantity,
            )
            .values(
                stock_quantity=remaining,
                in_stock=case((remaining > 0, True), else_=False),
            )
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount == 1

    async def low_stock(self, store_id: int, threshold: int) -> list[ProductModel]:
        result = await self.session.execute(
            select(ProductModel)
            .where(
                ProductModel.store_id == store_id,
                ProductModel.is_active.is_(True),
                ProductModel.stock_quantity.is_not(None),
                ProductModel.stock_quantity < threshold,
            )
            .order_by(ProductModel.stock_quantity, ProductModel.id)
        )
        return list(result.scalars().all())

    async def count_for_store(self, store_id: int) -> int:
        return await self._count(
            ProductModel.store_id == store_id, ProductModel.is_active.is_(True)
        )


class OrderRepository(_Repository):
    model = OrderModel

    async def list_for_stores(
        self,
        store_ids: Optional[Sequence[int]],
        status: Optional[OrderStatus] = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[OrderModel], int]:
        """``store_ids=None`` means every store (super admin view)."""
        query = select(OrderModel).order_by(
            OrderModel.created_at.desc(), OrderModel.id.desc()
        )
        if store_ids is not None:
            query = query.where(OrderModel.store_id.in_(list(store_ids)))
        if status:
            query = query.where(OrderModel.status == status)
        return await self._page(query, page, limit)

    async def list_for_customer(
        self, customer_id: int, page: int = 1, limit: int = 20
    ) -> tuple[list[OrderModel], int]:
        query = (
            select(OrderModel)
            .where(OrderModel.customer_id == customer_id)
            .order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
        )
        return await self._page(query, page, limit)

    async def list_all_for_store(self, store_id: int) -> list[OrderModel]:
        result = await self.session.execute(
            select(OrderModel)
            .where(OrderModel.store_id == store_id)
            .order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
        )
        return list(result.scalars().all())

    async def stats_for_stores(
        self, store_ids: Optional[Sequence[int]]
    ) -> tuple[dict[str, int], float]:
        counts_q = select(OrderModel.status, func.count()).group_by(OrderModel.status)
        revenue_q = select(
            func.coalesce(func.sum(OrderModel.total_amount), 0.0)
        ).where(OrderModel.status == OrderStatus.DELIVERED)
        if store_ids is not None:
            counts_q = counts_q.where(OrderModel.store_id.in_(list(store_ids)))
            revenue_q = revenue_q.where(OrderModel.store_id.in_(list(store_ids)))

        counts = {
            status.value: count
            for status, count in (await self.session.execute(counts_q)).all()
        }
        revenue = float(await self.session.scalar(revenue_q) or 0.0)
        return counts, revenue


class PlaceRepository(_Repository):
    model = PlaceModel

    async def list_places(
        self,
        status: Optional[PlaceStatus] = PlaceStatus.APPROVED,
        category_id: Optional[int] = None,
        text: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[PlaceModel], int]:
        query = select(PlaceModel).where(PlaceModel.is_active.is_(True))
        if status:
            query = query.where(PlaceModel.status == status)
        if category_id:
            query = query.where(PlaceModel.category_id == category_id)
        if text:
            pattern = f"%{text}%"
            query = query.where(
                or_(
                    PlaceModel.name.ilike(pattern),
                    PlaceModel.description.ilike(pattern),
                    PlaceModel.address.ilike(pattern),
                )
            )
        query = query.order_by(PlaceModel.created_at.desc(), PlaceModel.id.desc())
        return await self._page(query, page, limit)

    async def get_approved(self) -> list[PlaceModel]:
        result = await self.session.execute(
            select(PlaceModel).where(
                PlaceModel.status == PlaceStatus.APPROVED,
                PlaceModel.is_active.is_(True),
            )
        )
        return list(result.scalars().all())

    async def search(self, text: str, limit: int = 20) -> list[PlaceModel]:
        places, _ = await self.list_places(text=text, page=1, limit=limit)
        return places

    async def names_starting_with(self, prefix: str, limit: int = 5) -> list[str]:
        result = await self.session.execute(
            select(PlaceModel.name)
            .where(
                PlaceModel.status == PlaceStatus.APPROVED,
                PlaceModel.is_active.is_(True),
                PlaceModel.name.ilike(f"{prefix}%"),
            )
            .order_by(PlaceModel.name)
            .limit(limit)
        )
        return list(result.scalars().all())


class PlaceCategoryRepository(_Repository):
    model = PlaceCategoryModel

    async def list_categories(self, active_only: bool = True) -> list[PlaceCategoryModel]:
        query = select(PlaceCategoryModel).order_by(
            PlaceCategoryModel.sort_order, PlaceCategoryModel.name
        )
        if active_only:
            query = query.where(PlaceCategoryModel.is_active.is_(True))
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_by_name(self, name: str) -> Optional[PlaceCategoryModel]:
        result = await self.session.execute(
            select(PlaceCategoryModel).where(PlaceCategoryModel.name == name)
        )
        return result.scalar_one_or_none()


class PlaceVoteRepository(_Repository):
    model = PlaceVoteModel

    async def find(
        self,
        place_id: int,
        user_id: Optional[int] = None,
        session_id: Optional[str] = None,
    ) -> Optional[PlaceVoteModel]:
        query = select(PlaceVoteModel).where(PlaceVoteModel.place_id == place_id)
        if user_id is not None:
            query = query.where(PlaceVoteModel.user_id == user_id)
        else:
            query = query.where(PlaceVoteModel.session_id == session_id)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def list_for_place(self, place_id: int) -> list[PlaceVoteModel]:
        result = await self.session.execute(
            select(PlaceVoteModel).where(PlaceVoteModel.place_id == place_id)
        )
        return list(result.scalars().all())

    async def list_for_user(self, user_id: int) -> list[PlaceVoteModel]:
        result = await self.session.execute(
            select(PlaceVoteModel)
            .where(PlaceVoteModel.user_id == user_id)
            .order_by(PlaceVoteModel.created_at.desc())
        )
        return list(result.scalars().all())

    async def delete_for_place(self, place_id: int) -> None:
        for vote in await self.list_for_place(place_id):
            await self.session.delete(vote)
        await self.session.flush()


class ReviewRepository(_Repository):
    model = ReviewModel

    async def find_for_booking(
        self, booking_id: int, reviewer_id: int
    ) -> Optional[ReviewModel]:
        result = await self.session.execute(
            select(ReviewModel).where(
                ReviewModel.booking_id == booking_id,
                ReviewModel.reviewer_id == reviewer_id,
            )
        )
        return result.scalar_one_or_none()

    async def find_for_store(
        self, store_id: int, reviewer_id: int
    ) -> Optional[ReviewModel]:
        result = await self.session.execute(
            select(ReviewModel).where(
                ReviewModel.store_id == store_id,
                ReviewModel.booking_id.is_(None),
                ReviewModel.reviewer_id == reviewer_id,
            )
        )
        return result.scalar_one_or_none()

    async def list_reviews(
        self,
        receiver_id: Optional[int] = None,
        store_id: Optional[int] = None,
        reviewer_id: Optional[int] = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[ReviewModel], int]:
        query = select(ReviewModel).order_by(
            ReviewModel.created_at.desc(), ReviewModel.id.desc()
        )
        if receiver_id is not None:
            query = query.where(ReviewModel.receiver_id == receiver_id)
        if store_id is not None:
            query = query.where(ReviewModel.store_id == store_id)
        if reviewer_id is not None:
            query = query.where(ReviewModel.reviewer_id == reviewer_id)
        return await self._page(query, page, limit)

    async def rating_counts(
        self, receiver_id: Optional[int] = None, store_id: Optional[int] = None
    ) -> dict[int, int]:
        """``{rating: count}`` for the reviews of a user, a store, or everyone."""
        query = select(ReviewModel.rating, func.count()).group_by(ReviewModel.rating)
        if receiver_id is not None:
            query = query.where(ReviewModel.receiver_id == receiver_id)
        if store_id is not None:
            query = query.where(ReviewModel.store_id == store_id)
        rows = (await self.session.execute(query)).all()
        return {rating: count for rating, count in rows}


class NotificationRepository(_Repository):
    model = NotificationModel

    async def list_for_user(
        self, user_id: int, unread_only: bool = False, page: int = 1, limit: int = 20
    ) -> tuple[list[NotificationModel], int]:
        query = (
            select(NotificationModel)
            .where(NotificationModel.user_id == user_id)
            .order_by(NotificationModel.created_at.desc(), NotificationModel.id.desc())
        )
        if unread_only:
            query = query.where(NotificationModel.is_read.is_(False))
        return await self._page(query, page, limit)

    async def count_unread(self, user_id: int) -> int:
        return await self._count(
            NotificationModel.user_id == user_id,
            NotificationModel.is_read.is_(False),
        )

    async def mark_all_read(self, user_id: int, now: datetime) -> int:
        result = await self.session.execute(
            update(NotificationModel)
            .where(
                NotificationModel.user_id == user_id,
                NotificationModel.is_read.is_(False),
            )
            .values(is_read=True, read_at=now)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount or 0


class SearchQueryRepository(_Repository):
    model = SearchQueryModel

    async def popular(self, limit: int = 10) -> list[tuple[str, int]]:
        count = func.count(SearchQueryModel.id)
        result = await self.session.execute(
            select(SearchQueryModel.query, count)
            .group_by(SearchQueryModel.query)
            .order_by(count.desc(), SearchQueryModel.query)
            .limit(limit)
        )
        return [(q, c) for q, c in result.all()]


class AuditLogRepository(_Repository):
    model = AuditLogModel

    async def record(
        self,
        action: str,
        resource_type: str,
        resource_id: Any = None,
        user_id: Optional[int] = None,
        details: Optional[dict] = None,
    ) -> AuditLogModel:
        return await self.add(
            AuditLogModel(
                action=action,
                resource_type=resource_type,
                resource_id=str(resource_id) if resource_id is not None else None,
                user_id=user_id,
                details=details or {},
            )
        )
