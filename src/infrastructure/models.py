"""
SQLAlchemy ORM models  (PostgreSQL in production, SQLite in tests).

Tables
------
* ``users``                 -- every account, one role each
* ``driver_profiles``       -- provider profile for any provider role
* ``service_zones``         -- regional operating areas (radius or polygon)
* ``driver_service_zones``  -- which zones a provider may operate in
* ``bookings``              -- rides, taxis, day hires, moving jobs, emergencies
* ``booking_offers``        -- dispatcher offers sent to providers
* ``tracking_updates``      -- status / position history per booking or delivery
* ``driver_earnings``       -- one row per completed job
* ``stores`` / ``products`` / ``orders`` -- store catalogue and marketplace orders
* ``deliveries``            -- courier jobs (user-to-user or store orders)
* ``place_categories`` / ``places`` / ``place_votes`` -- community places
* ``reviews``               -- booking and store ratings
* ``notifications``, ``search_queries``, ``audit_logs``

Indexes
-------
* **B-Tree** on ``driver_profiles.h3_cell`` for nearby-provider lookups
  (spatial binning replaces a GIST index so the schema stays portable).
* **B-Tree** on status / owner / foreign-key columns used by the
  dispatcher and the list endpoints.
"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from .database import Base, utcnow
from src.domain.enums import (
    BookingKind,
    BookingStatus,
    BookingType,
    DeliveryStatus,
    DeliveryType,
    NotificationType,
    OfferStatus,
    OrderStatus,
    PlaceStatus,
    Priority,
    SubscriptionTier,
    UserRole,
    VerificationStatus,
    ZoneType,
)


def _enum(cls):
    return Enum(cls, native_enum=False, length=32)


class UserModel(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), unique=True, nullable=False)
    phone = Column(String(32), nullable=True)
    first_name = Column(String(80), nullable=False)
    last_name = Column(String(80), nullable=False, default="")
    role = Column(_enum(UserRole), default=UserRole.CUSTOMER, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    subscription_tier = Column(_enum(SubscriptionTier), nullable=True)
    subscription_expires_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (Index("idx_users_role", "role"),)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class DriverProfileModel(Base):
    __tablename__ = "driver_profiles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    role = Column(_enum(UserRole), nullable=False)

    license_number = Column(String(64), nullable=True)
    vehicle_make = Column(String(64), nullable=True)
    vehicle_model = Column(String(64), nullable=True)
    vehicle_plate = Column(String(32), nullable=True)
    vehicle_color = Column(String(32), nullable=True)
    vehicle_type = Column(String(32), nullable=True)
    # Role-specific extras (mover capacity / services, responder unit, ...)
    capabilities = Column(JSON, default=dict)

    verification_status = Column(
        _enum(VerificationStatus), default=VerificationStatus.PENDING, nullable=False
    )
    is_available = Column(Boolean, default=False, nullable=False)
    is_online = Column(Boolean, default=False, nullable=False)

    current_lat = Column(Float, nullable=True)
    current_lng = Column(Float, nullable=True)
    h3_cell = Column(String(20), nullable=True)
    current_zone_id = Column(Integer, ForeignKey("service_zones.id"), nullable=True)
    last_location_at = Column(DateTime, nullable=True)

    rating = Column(Float, default=5.0)
    total_rides = Column(Integer, default=0, nullable=False)
    total_earnings = Column(Float, default=0.0, nullable=False)
    monthly_commission_due = Column(Float, default=0.0, nullable=False)

    # Day hire: the customer books this driver by the hour
    day_booking_enabled = Column(Boolean, default=False, nullable=False)
    day_booking_rate = Column(Float, nullable=True)
    day_booking_min_hours = Column(Integer, default=4, nullable=False)
    day_booking_max_hours = Column(Integer, default=12, nullable=False)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_driver_profiles_cell", "h3_cell"),
        Index("idx_driver_profiles_role_available", "role", "is_available"),
    )

    @property
    def is_verified(self) -> bool:
        return self.verification_status == VerificationStatus.APPROVED


class ServiceZoneModel(Base):
    __tablename__ = "service_zones"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(120), unique=True, nullable=False)
    zone_type = Column(_enum(ZoneType), default=ZoneType.REGIONAL, nullable=False)
    center_lat = Column(Float, nullable=False)
    center_lng = Column(Float, nullable=False)
    radius_km = Column(Float, nullable=True)
    # GeoJSON Polygon or bare [[lng, lat], ...] ring
    boundary = Column(JSON, nullable=True)
    priority = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    allow_inter_regional = Column(Boolean, default=True, nullable=False)
    inter_regional_fee = Column(Float, default=0.0, nullable=False)
    connected_zone_ids = Column(JSON, default=list)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class DriverServiceZoneModel(Base):
    __tablename__ = "driver_service_zones"

    id = Column(Integer, primary_key=True, autoincrement=True)
    provider_id = Column(Integer, ForeignKey("driver_profiles.id"), nullable=False)
    zone_id = Column(Integer, ForeignKey("service_zones.id"), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    is_primary = Column(Boolean, default=False, nullable=False)
    can_accept_inter_regional = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        UniqueConstraint("provider_id", "zone_id", name="uq_provider_zone"),
    )


class BookingModel(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    booking_number = Column(String(32), unique=True, nullable=False)
    kind = Column(_enum(BookingKind), nullable=False)
    booking_type = Column(
        _enum(BookingType), default=BookingType.IMMEDIATE, nullable=False
    )
    status = Column(_enum(BookingStatus), default=BookingStatus.PENDING, nullable=False)

    customer_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    provider_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    pickup_lat = Column(Float, nullable=False)
    pickup_lng = Column(Float, nullable=False)
    pickup_address = Column(String(255), nullable=True)
    dropoff_lat = Column(Float, nullable=True)
    dropoff_lng = Column(Float, nullable=True)
    dropoff_address = Column(String(255), nullable=True)
    scheduled_at = Column(DateTime, nullable=True)

    ride_type = Column(String(20), nullable=True)
    estimated_distance_km = Column(Float, nullable=True)
    estimated_duration_min = Column(Float, nullable=True)
    estimated_price = Column(Float, nullable=True)
    surge_multiplier = Column(Float, default=1.0)
    final_price = Column(Float, nullable=True)
    actual_distance_km = Column(Float, nullable=True)
    platform_commission = Column(Float, nullable=True)
    provider_earning = Column(Float, nullable=True)

    origin_zone_id = Column(Integer, ForeignKey("service_zones.id"), nullable=True)
    destination_zone_id = Column(Integer, ForeignKey("service_zones.id"), nullable=True)
    is_inter_regional = Column(Boolean, default=False, nullable=False)
    inter_regional_fee = Column(Float, default=0.0)
    requires_approval = Column(Boolean, default=False, nullable=False)
    approved_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    approved_at = Column(DateTime, nullable=True)

    service_data = Column(JSON, default=dict)
    notes = Column(Text, nullable=True)
    idempotency_key = Column(String(64), unique=True, nullable=True)
    dispatch_attempts = Column(Integer, default=0, nullable=False)

    cancellation_reason = Column(String(255), nullable=True)
    cancelled_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    accepted_at = Column(DateTime, nullable=True)
    arrived_at = Column(DateTime, nullable=True)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_bookings_status", "status"),
        Index("idx_bookings_kind_status", "kind", "status"),
        Index("idx_bookings_customer", "customer_id"),
        Index("idx_bookings_provider", "provider_id"),
    )


class BookingOfferModel(Base):
    __tablename__ = "booking_offers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False)
    provider_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    status = Column(_enum(OfferStatus), default=OfferStatus.SENT, nullable=False)
    attempt = Column(Integer, default=1, nullable=False)
    distance_km = Column(Float, nullable=True)
    decline_reason = Column(String(255), nullable=True)
    sent_at = Column(DateTime, default=utcnow)
    expires_at = Column(DateTime, nullable=True)
    responded_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("idx_offers_booking", "booking_id"),
        Index("idx_offers_provider_status", "provider_id", "status"),
    )


class TrackingUpdateModel(Base):
    __tablename__ = "tracking_updates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=True)
    delivery_id = Column(Integer, ForeignKey("deliveries.id"), nullable=True)
    status = Column(String(32), nullable=False)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    message = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        Index("idx_tracking_booking", "booking_id"),
        Index("idx_tracking_delivery", "delivery_id"),
    )


class DriverEarningModel(Base):
    __tablename__ = "driver_earnings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    provider_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=True)
    delivery_id = Column(Integer, ForeignKey("deliveries.id"), nullable=True)
    gross_amount = Column(Float, nullable=False)
    commission = Column(Float, nullable=False)
    net_amount = Column(Float, nullable=False)
    week_starting = Column(Date, nullable=False)
    month_year = Column(String(7), nullable=False)  # "YYYY-MM"
    created_at = Column(DateTime, default=utcnow)

    __table_args__ = (Index("idx_earnings_provider", "provider_id"),)


class StoreModel(Base):
    __tablename__ = "stores"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    name = Column(String(160), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(64), nullable=True)
    address = Column(String(255), nullable=True)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    phone = Column(String(32), nullable=True)
    # [{"day_of_week": 0-6, "open_time": "08:00", "close_time": "20:00", "is_closed": false}]
    business_hours = Column(JSON, default=list)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (Index("idx_stores_owner", "owner_id"),)


class ProductModel(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, autoincrement=True)
    store_id = Column(Integer, ForeignKey("stores.id"), nullable=False)
    name = Column(String(160), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Float, nullable=False)
    category = Column(String(64), nullable=True)
    in_stock = Column(Boolean, default=True, nullable=False)
    # NULL means the store does not track a count for this product
    stock_quantity = Column(Integer, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (Index("idx_products_store", "store_id", "is_active"),)


class OrderModel(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_number = Column(String(32), unique=True, nullable=False)
    customer_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    store_id = Column(Integer, ForeignKey("stores.id"), nullable=False)
    items = Column(JSON, default=list)
    subtotal = Column(Float, default=0.0, nullable=False)
    delivery_fee = Column(Float, default=0.0, nullable=False)
    total_amount = Column(Float, default=0.0, nullable=False)
    status = Column(
        _enum(OrderStatus), default=OrderStatus.ORDER_PROCESSING, nullable=False
    )
    delivery_address = Column(String(255), nullable=True)
    delivery_lat = Column(Float, nullable=False)
    delivery_lng = Column(Float, nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_orders_store_status", "store_id", "status"),
        Index("idx_orders_customer", "customer_id"),
    )


class DeliveryModel(Base):
    __tablename__ = "deliveries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tracking_code = Column(String(32), unique=True, nullable=False)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=True)
    customer_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    rider_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    delivery_type = Column(
        _enum(DeliveryType), default=DeliveryType.PACKAGE, nullable=False
    )
    status = Column(
        _enum(DeliveryStatus), default=DeliveryStatus.PENDING, nullable=False
    )

    pickup_lat = Column(Float, nullable=False)
    pickup_lng = Column(Float, nullable=False)
    pickup_address = Column(String(255), nullable=True)
    dropoff_lat = Column(Float, nullable=False)
    dropoff_lng = Column(Float, nullable=False)
    dropoff_address = Column(String(255), nullable=True)
    recipient_name = Column(String(120), nullable=True)
    recipient_phone = Column(String(32), nullable=True)
    package_description = Column(String(255), nullable=True)

    distance_km = Column(Float, nullable=True)
    delivery_fee = Column(Float, nullable=False, default=0.0)
    platform_commission = Column(Float, nullable=True)
    rider_earning = Column(Float, nullable=True)
    issues = Column(JSON, default=list)
    declined_by = Column(JSON, default=list)

    assigned_at = Column(DateTime, nullable=True)
    picked_up_at = Column(DateTime, nullable=True)
    delivered_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_deliveries_status", "status"),
        Index("idx_deliveries_rider", "rider_id"),
        Index("idx_deliveries_customer", "customer_id"),
    )


class PlaceCategoryModel(Base):
    __tablename__ = "place_categories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(80), unique=True, nullable=False)
    description = Column(String(255), nullable=True)
    icon = Column(String(64), nullable=True)
    sort_order = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow)


class PlaceModel(Base):
    __tablename__ = "places"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(160), nullable=False)
    description = Column(Text, nullable=True)
    category_id = Column(Integer, ForeignKey("place_categories.id"), nullable=True)
    address = Column(String(255), nullable=True)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    contact_phone = Column(String(32), nullable=True)
    website = Column(String(255), nullable=True)
    status = Column(_enum(PlaceStatus), default=PlaceStatus.PENDING, nullable=False)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    approved_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    approved_at = Column(DateTime, nullable=True)
    rejection_reason = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_places_status", "status"),
        Index("idx_places_category", "category_id"),
    )


class PlaceVoteModel(Base):
    __tablename__ = "place_votes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    place_id = Column(Integer, ForeignKey("places.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    session_id = Column(String(64), nullable=True)
    is_positive = Column(Boolean, nullable=False)
    suggested_category_id = Column(
        Integer, ForeignKey("place_categories.id"), nullable=True
    )
    comment = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        UniqueConstraint("place_id", "user_id", name="uq_vote_place_user"),
        UniqueConstraint("place_id", "session_id", name="uq_vote_place_session"),
    )


class ReviewModel(Base):
    """A rating left for the other party of a booking, or for a store."""

    __tablename__ = "reviews"

    id = Column(Integer, primary_key=True, autoincrement=True)
    reviewer_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    receiver_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=True)
    store_id = Column(Integer, ForeignKey("stores.id"), nullable=True)
    rating = Column(Integer, nullable=False)
    comment = Column(Text, nullable=True)
    service_rating = Column(Integer, nullable=True)
    timeliness_rating = Column(Integer, nullable=True)
    cleanliness_rating = Column(Integer, nullable=True)
    communication_rating = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("booking_id", "reviewer_id", name="uq_review_booking_reviewer"),
        UniqueConstraint("store_id", "reviewer_id", name="uq_review_store_reviewer"),
        Index("idx_reviews_receiver", "receiver_id"),
    )


class NotificationModel(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    type = Column(_enum(NotificationType), nullable=False)
    title = Column(String(160), nullable=False)
    body = Column(String(500), nullable=False)
    data = Column(JSON, default=dict)
    priority = Column(_enum(Priority), default=Priority.STANDARD, nullable=False)
    is_read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    __table_args__ = (Index("idx_notifications_user_read", "user_id", "is_read"),)


class SearchQueryModel(Base):
    __tablename__ = "search_queries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    query = Column(String(160), nullable=False)
    search_type = Column(String(16), default="all", nullable=False)
    results_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=utcnow)

    __table_args__ = (Index("idx_search_queries_query", "query"),)


class AuditLogModel(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    action = Column(String(64), nullable=False)
    resource_type = Column(String(32), nullable=False)
    resource_id = Column(String(64), nullable=True)
    details = Column(JSON, default=dict)
    created_at = Column(DateTime, default=utcnow)

    __table_args__ = (Index("idx_audit_logs_action", "action"),)
